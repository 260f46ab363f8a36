from sqlalchemy import Column, Integer, String, DateTime, Boolean, Enum as SQLEnum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from ..core.database import Base
from ..core.security import UserRole

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    role = Column(SQLEnum(UserRole), nullable=False, default=UserRole.PATIENT)
    is_active = Column(Boolean, default=True)
    is_archived = Column(Boolean, default=False)
    archived_at = Column(DateTime, nullable=True)

    # Personal information
    first_name = Column(String(100), nullable=False, default="")
    middle_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=False, default="")
    date_of_birth = Column(DateTime, nullable=True)
    phone_number = Column(String(20), nullable=True)

    # Timestamps
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    doctor = relationship("Doctor", back_populates="user", uselist=False)

    # Bumped by every booking the user makes, so their bookings commit one at a time
    version = Column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version, "version_id_generator": False}

    def snapshot(self) -> dict:
        """Patient data copied into an appointment at booking time."""
        return {
            "id": self.id,
            "email": self.email,
            "firstName": self.first_name,
            "middleName": self.middle_name or "",
            "lastName": self.last_name,
            "phone": self.phone_number or "",
            "dob": self.date_of_birth.date().isoformat() if self.date_of_birth else None,
        }

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"
