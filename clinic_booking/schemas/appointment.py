from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Optional
from datetime import datetime

from ..models.appointment import AppointmentStatus, LifecycleState

SLOT_DATE_PATTERN = r"^\d{1,2}_\d{1,2}_\d{4}$"

class BookAppointmentRequest(BaseModel):
    doc_id: int = Field(alias="docId")
    slot_date: str = Field(alias="slotDate", pattern=SLOT_DATE_PATTERN)
    slot_time: str = Field(alias="slotTime", min_length=1, max_length=20)
    appointment_reason: Optional[str] = Field(default="", alias="appointmentReason", max_length=1000)

    model_config = ConfigDict(populate_by_name=True)

class CancelAppointmentRequest(BaseModel):
    cancellation_reason: Optional[str] = Field(default=None, alias="cancellationReason", max_length=255)

    model_config = ConfigDict(populate_by_name=True)

class ConsultationSummaryRequest(BaseModel):
    consultation_summary: str = Field(alias="consultationSummary", min_length=1)

    model_config = ConfigDict(populate_by_name=True)

class AppointmentResponse(BaseModel):
    id: int
    user_id: int
    doc_id: int
    slot_date: str
    slot_time: str
    user_data: Dict[str, Any]
    doc_data: Dict[str, Any]
    amount: float
    appointment_reason: str
    created_at: Optional[datetime] = None
    status: AppointmentStatus
    state: LifecycleState
    cancelled: bool
    cancellation_reason: str
    cancelled_by: str
    payment: bool
    is_completed: bool
    is_read: bool
    consultation_summary: str

    model_config = ConfigDict(from_attributes=True)

class BookedSlotsResponse(BaseModel):
    booked_slots: Dict[str, List[str]]

class BookedDatesResponse(BaseModel):
    booked_dates: List[str]

class DoctorDashboard(BaseModel):
    earnings: float
    appointments: int
    patients: int
    latest_appointments: List[AppointmentResponse]

class AdminDashboard(BaseModel):
    doctors: int
    appointments: int
    patients: int
    latest_appointments: List[AppointmentResponse]

class PaymentOrderRequest(BaseModel):
    order_id: str = Field(alias="orderId", min_length=1)

    model_config = ConfigDict(populate_by_name=True)
