from fastapi import APIRouter, Depends, HTTPException, Query, status
from typing import List, Optional

from ...api.deps import (
    booking_rate_limit, get_appointment_service, get_patient_user,
    get_payment_gateway
)
from ...models import CancelledBy, User
from ...schemas.appointment import (
    AppointmentResponse, BookAppointmentRequest, BookedDatesResponse,
    BookedSlotsResponse, CancelAppointmentRequest, PaymentOrderRequest
)
from ...services.appointment_service import AppointmentService
from ...services.payment_service import PaymentService, RazorpayGateway

router = APIRouter(prefix="/appointments", tags=["Appointments"])

@router.post("", response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def book_appointment(
    booking: BookAppointmentRequest,
    current_user: User = Depends(get_patient_user),
    service: AppointmentService = Depends(get_appointment_service),
    _: None = Depends(booking_rate_limit)
):
    """Book a slot with a doctor."""
    appointment = service.book(
        user_id=current_user.id,
        doc_id=booking.doc_id,
        slot_date=booking.slot_date,
        slot_time=booking.slot_time,
        reason=booking.appointment_reason,
    )
    return AppointmentResponse.model_validate(appointment)

@router.get("", response_model=List[AppointmentResponse])
def list_my_appointments(
    current_user: User = Depends(get_patient_user),
    service: AppointmentService = Depends(get_appointment_service)
):
    """Appointments of the current patient."""
    return [AppointmentResponse.model_validate(a) for a in service.list_for_user(current_user.id)]

@router.get("/booked-slots", response_model=BookedSlotsResponse)
def my_booked_slots(
    start_date: Optional[str] = Query(default=None, alias="startDate"),
    end_date: Optional[str] = Query(default=None, alias="endDate"),
    current_user: User = Depends(get_patient_user),
    service: AppointmentService = Depends(get_appointment_service)
):
    """Non-cancelled slots of the current patient, grouped by date."""
    return BookedSlotsResponse(
        booked_slots=service.user_booked_slots(current_user.id, start_date, end_date)
    )

@router.get("/booked-dates", response_model=BookedDatesResponse)
def my_booked_dates_with_doctor(
    doc_id: int = Query(alias="docId"),
    current_user: User = Depends(get_patient_user),
    service: AppointmentService = Depends(get_appointment_service)
):
    """Dates on which the current patient already has a booking with a doctor."""
    return BookedDatesResponse(
        booked_dates=service.user_doctor_booked_dates(current_user.id, doc_id)
    )

@router.post("/payment/verify")
def verify_payment(
    payment: PaymentOrderRequest,
    current_user: User = Depends(get_patient_user),
    service: AppointmentService = Depends(get_appointment_service),
    gateway: Optional[RazorpayGateway] = Depends(get_payment_gateway)
):
    """Confirm a gateway order and mark its appointment paid."""
    appointment = _payment_service(gateway, service).confirm_payment(payment.order_id)
    if appointment is None:
        return {"success": False, "message": "Payment Failed"}
    return {
        "success": True,
        "message": "Payment Successful",
        "appointment": AppointmentResponse.model_validate(appointment)
    }

@router.post("/{appointment_id}/cancel", response_model=AppointmentResponse)
def cancel_my_appointment(
    appointment_id: int,
    cancel_data: Optional[CancelAppointmentRequest] = None,
    current_user: User = Depends(get_patient_user),
    service: AppointmentService = Depends(get_appointment_service)
):
    """Cancel one of the current patient's appointments."""
    appointment = service.cancel(
        appointment_id,
        CancelledBy.USER,
        actor_id=current_user.id,
        reason=cancel_data.cancellation_reason if cancel_data else None,
    )
    return AppointmentResponse.model_validate(appointment)

@router.post("/{appointment_id}/read", response_model=AppointmentResponse)
def mark_appointment_read(
    appointment_id: int,
    current_user: User = Depends(get_patient_user),
    service: AppointmentService = Depends(get_appointment_service)
):
    """Mark an appointment notification as read."""
    appointment = service.mark_read(appointment_id, current_user.id)
    return AppointmentResponse.model_validate(appointment)

@router.post("/{appointment_id}/payment")
def start_payment(
    appointment_id: int,
    current_user: User = Depends(get_patient_user),
    service: AppointmentService = Depends(get_appointment_service),
    gateway: Optional[RazorpayGateway] = Depends(get_payment_gateway)
):
    """Create a gateway order for an appointment's fee."""
    order = _payment_service(gateway, service).start_payment(appointment_id, current_user.id)
    return {"success": True, "order": order}

def _payment_service(
    gateway: Optional[RazorpayGateway], service: AppointmentService
) -> PaymentService:
    if gateway is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Online payment is not configured"
        )
    return PaymentService(gateway, service)
