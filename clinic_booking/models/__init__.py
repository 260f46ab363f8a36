from .user import User
from .doctor import Doctor
from .appointment import Appointment, AppointmentStatus, CancelledBy, LifecycleState

__all__ = [
    "User",
    "Doctor",
    "Appointment",
    "AppointmentStatus",
    "CancelledBy",
    "LifecycleState",
]
