from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Boolean, Text, Float, JSON
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from ..core.database import Base

class Doctor(Base):
    __tablename__ = "doctors"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=True)

    # Profile
    name = Column(String(150), nullable=False)
    name_extension = Column(String(50), nullable=False, default="")
    email = Column(String(255), nullable=False, unique=True)
    image = Column(String(500), nullable=False, default="")
    speciality = Column(String(100), nullable=False)
    degree = Column(String(100), nullable=False, default="")
    experience = Column(String(50), nullable=False, default="")
    about = Column(Text, nullable=False, default="")
    address = Column(JSON, nullable=False, default=dict)
    license_number = Column(String(50), nullable=False, default="")
    fees = Column(Float, nullable=False)

    # Availability: "" means no weekly day off, otherwise a weekday name
    available = Column(Boolean, nullable=False, default=True)
    day_off = Column(String(10), nullable=False, default="", index=True)

    # Slot ledger: {"29_10_2026": ["10:00 AM", ...]}. Reassign, never mutate in place.
    slots_booked = Column(JSON, nullable=False, default=dict)

    # Soft delete
    is_archived = Column(Boolean, nullable=False, default=False)
    archived_at = Column(DateTime, nullable=True)

    # Timestamps
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    version = Column(Integer, nullable=False)

    # Relationships
    user = relationship("User", back_populates="doctor")
    appointments = relationship("Appointment", back_populates="doctor")

    __mapper_args__ = {"version_id_col": version}

    def snapshot(self) -> dict:
        """Doctor data copied into an appointment at booking time."""
        return {
            "id": self.id,
            "name": self.name,
            "name_extension": self.name_extension,
            "email": self.email,
            "image": self.image,
            "speciality": self.speciality,
            "degree": self.degree,
            "experience": self.experience,
            "about": self.about,
            "fees": self.fees,
            "address": self.address,
        }

    def __repr__(self):
        return f"<Doctor(id={self.id}, name='{self.name}', speciality='{self.speciality}')>"
