from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Boolean, Text, Float, JSON, Enum as SQLEnum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from typing import Optional
import enum

from ..core.database import Base
from ..core.exceptions import InvalidInput, InvalidTransition, PreconditionFailed

class AppointmentStatus(str, enum.Enum):
    PENDING = "pending"
    CANCELLED = "cancelled"
    COMPLETED = "completed"

class LifecycleState(str, enum.Enum):
    """Status as seen by callers: payment only shows up while still pending."""
    PENDING = "Pending"
    PAID = "Paid"
    CANCELLED = "Cancelled"
    COMPLETED = "Completed"

class CancelledBy(str, enum.Enum):
    ADMIN = "admin"
    DOCTOR = "doctor"
    USER = "user"

DEFAULT_CANCELLATION_REASONS = {
    CancelledBy.ADMIN: "Cancelled by admin",
    CancelledBy.DOCTOR: "Cancelled by doctor",
    CancelledBy.USER: "Cancelled by patient",
}

class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True, index=True)

    # Relationships
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    doc_id = Column(Integer, ForeignKey("doctors.id"), nullable=False, index=True)

    # Slot, as keyed in the doctor's ledger
    slot_date = Column(String(10), nullable=False, index=True)
    slot_time = Column(String(20), nullable=False)

    # Booking-time snapshots; never updated after creation
    user_data = Column(JSON, nullable=False)
    doc_data = Column(JSON, nullable=False)
    amount = Column(Float, nullable=False)
    appointment_reason = Column(Text, nullable=False, default="")

    # Lifecycle
    status = Column(SQLEnum(AppointmentStatus), nullable=False, default=AppointmentStatus.PENDING)
    cancellation_reason = Column(String(255), nullable=False, default="")
    cancelled_by = Column(String(10), nullable=False, default="")
    payment = Column(Boolean, nullable=False, default=False)
    payment_reference = Column(String(100), nullable=True)
    is_read = Column(Boolean, nullable=False, default=False)
    consultation_summary = Column(Text, nullable=False, default="")

    # Tracking
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    version = Column(Integer, nullable=False)

    # Relationships
    doctor = relationship("Doctor", back_populates="appointments")

    __mapper_args__ = {"version_id_col": version}

    @property
    def cancelled(self) -> bool:
        return self.status == AppointmentStatus.CANCELLED

    @property
    def is_completed(self) -> bool:
        return self.status == AppointmentStatus.COMPLETED

    @property
    def is_active(self) -> bool:
        return self.status == AppointmentStatus.PENDING

    @property
    def state(self) -> LifecycleState:
        if self.status == AppointmentStatus.CANCELLED:
            return LifecycleState.CANCELLED
        if self.status == AppointmentStatus.COMPLETED:
            return LifecycleState.COMPLETED
        return LifecycleState.PAID if self.payment else LifecycleState.PENDING

    def cancel(self, actor: CancelledBy, reason: Optional[str] = None) -> None:
        """Pending|Paid -> Cancelled. The caller must release the slot."""
        if self.status != AppointmentStatus.PENDING:
            raise InvalidTransition(
                f"Appointment {self.id} is already {self.status.value} and cannot be cancelled"
            )
        actor = CancelledBy(actor)
        self.status = AppointmentStatus.CANCELLED
        self.cancelled_by = actor.value
        self.cancellation_reason = (reason or "").strip() or DEFAULT_CANCELLATION_REASONS[actor]

    def complete(self) -> None:
        """Pending|Paid -> Completed."""
        if self.status != AppointmentStatus.PENDING:
            raise InvalidTransition(
                f"Appointment {self.id} is already {self.status.value} and cannot be completed"
            )
        self.status = AppointmentStatus.COMPLETED

    def mark_paid(self, reference: Optional[str] = None) -> bool:
        """Set the payment flag. Returns False if it was already set."""
        if reference:
            self.payment_reference = reference
        if self.payment:
            return False
        self.payment = True
        return True

    def add_consultation_summary(self, text: str) -> None:
        if self.status != AppointmentStatus.COMPLETED:
            raise PreconditionFailed(
                "Consultation summary can only be added to a completed appointment"
            )
        if not text or not text.strip():
            raise InvalidInput("Consultation summary is required")
        self.consultation_summary = text.strip()

    def mark_read(self) -> None:
        self.is_read = True

    def summary(self) -> dict:
        """Data handed to the notification sink."""
        return {
            "id": self.id,
            "slotDate": self.slot_date,
            "slotTime": self.slot_time,
            "userData": self.user_data,
            "docData": self.doc_data,
            "amount": self.amount,
        }

    def __repr__(self):
        return f"<Appointment(id={self.id}, user_id={self.user_id}, doc_id={self.doc_id}, slot='{self.slot_date} {self.slot_time}')>"
