from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Dict, List, Optional

from ...api.deps import get_appointment_service, get_clock, get_current_doctor
from ...core.clock import Clock
from ...core.database import get_db
from ...models import CancelledBy, Doctor
from ...schemas.appointment import (
    AppointmentResponse, CancelAppointmentRequest, ConsultationSummaryRequest,
    DoctorDashboard
)
from ...schemas.doctor import AvailabilityResponse, DoctorProfileUpdate, DoctorPublic, DoctorResponse
from ...services.appointment_service import AppointmentService
from ...services.availability import AvailabilityService
from ...services.doctor_service import DoctorService
from ...services.slot_ledger import SlotLedger

router = APIRouter(prefix="/doctors", tags=["Doctors"])

@router.get("", response_model=List[DoctorPublic])
def list_doctors(db: Session = Depends(get_db)):
    """Public doctor roster."""
    return [DoctorPublic.model_validate(d) for d in DoctorService(db).list_doctors()]

@router.get("/me/profile", response_model=DoctorResponse)
def my_profile(doctor: Doctor = Depends(get_current_doctor)):
    return DoctorResponse.model_validate(doctor)

@router.patch("/me/profile", response_model=DoctorResponse)
def update_my_profile(
    profile: DoctorProfileUpdate,
    doctor: Doctor = Depends(get_current_doctor),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    """Update fees, address, about, availability or weekly day off."""
    changes = profile.model_dump(exclude_unset=True)
    updated = DoctorService(db).update_profile(doctor.id, clock.today(), **changes)
    return DoctorResponse.model_validate(updated)

@router.post("/me/availability", response_model=AvailabilityResponse)
def toggle_my_availability(
    doctor: Doctor = Depends(get_current_doctor),
    db: Session = Depends(get_db)
):
    available = AvailabilityService(db).change_availability(doctor.id)
    return AvailabilityResponse(doc_id=doctor.id, available=available)

@router.get("/me/appointments", response_model=List[AppointmentResponse])
def my_appointments(
    doctor: Doctor = Depends(get_current_doctor),
    service: AppointmentService = Depends(get_appointment_service)
):
    return [AppointmentResponse.model_validate(a) for a in service.list_for_doctor(doctor.id)]

@router.get("/me/appointments/history", response_model=List[AppointmentResponse])
def my_appointment_history(
    doctor: Doctor = Depends(get_current_doctor),
    service: AppointmentService = Depends(get_appointment_service)
):
    """Completed appointments."""
    return [AppointmentResponse.model_validate(a) for a in service.appointment_history(doctor.id)]

@router.get("/me/dashboard", response_model=DoctorDashboard)
def my_dashboard(
    doctor: Doctor = Depends(get_current_doctor),
    service: AppointmentService = Depends(get_appointment_service)
):
    data = service.doctor_dashboard(doctor.id)
    return DoctorDashboard(
        earnings=data["earnings"],
        appointments=data["appointments"],
        patients=data["patients"],
        latest_appointments=[AppointmentResponse.model_validate(a) for a in data["latestAppointments"]],
    )

@router.post("/me/appointments/{appointment_id}/cancel", response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: int,
    cancel_data: Optional[CancelAppointmentRequest] = None,
    doctor: Doctor = Depends(get_current_doctor),
    service: AppointmentService = Depends(get_appointment_service)
):
    appointment = service.cancel(
        appointment_id,
        CancelledBy.DOCTOR,
        actor_id=doctor.id,
        reason=cancel_data.cancellation_reason if cancel_data else None,
    )
    return AppointmentResponse.model_validate(appointment)

@router.post("/me/appointments/{appointment_id}/complete", response_model=AppointmentResponse)
def complete_appointment(
    appointment_id: int,
    doctor: Doctor = Depends(get_current_doctor),
    service: AppointmentService = Depends(get_appointment_service)
):
    appointment = service.complete(appointment_id, doctor.id)
    return AppointmentResponse.model_validate(appointment)

@router.post("/me/appointments/{appointment_id}/summary", response_model=AppointmentResponse)
def add_consultation_summary(
    appointment_id: int,
    summary: ConsultationSummaryRequest,
    doctor: Doctor = Depends(get_current_doctor),
    service: AppointmentService = Depends(get_appointment_service)
):
    appointment = service.add_consultation_summary(
        appointment_id, doctor.id, summary.consultation_summary
    )
    return AppointmentResponse.model_validate(appointment)

@router.get("/{doc_id}/slots", response_model=Dict[str, List[str]])
def doctor_booked_slots(
    doc_id: int,
    slot_date: Optional[str] = Query(default=None, alias="slotDate"),
    db: Session = Depends(get_db)
):
    """Taken slots of a doctor, optionally for one date."""
    return SlotLedger(db).booked_slots(doc_id, slot_date)
