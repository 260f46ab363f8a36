from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import Dict, List, Optional

from ...api.deps import get_admin_user, get_appointment_service, get_clock
from ...core.clock import Clock
from ...core.database import get_db
from ...models import CancelledBy
from ...schemas.appointment import AdminDashboard, AppointmentResponse, CancelAppointmentRequest
from ...schemas.doctor import (
    AvailabilityResponse, DoctorCreate, DoctorProfileUpdate, DoctorResponse, ReconcileSummary
)
from ...schemas.user import UserResponse
from ...services.appointment_service import AppointmentService
from ...services.availability import AvailabilityService
from ...services.doctor_service import DoctorService
from ...services.slot_ledger import SlotLedger
from ...services.user_service import UserService

router = APIRouter(
    prefix="/admin",
    tags=["Admin"],
    dependencies=[Depends(get_admin_user)]
)

# Appointments
@router.get("/appointments", response_model=List[AppointmentResponse])
def all_appointments(service: AppointmentService = Depends(get_appointment_service)):
    return [AppointmentResponse.model_validate(a) for a in service.list_all()]

@router.post("/appointments/{appointment_id}/cancel", response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: int,
    cancel_data: Optional[CancelAppointmentRequest] = None,
    service: AppointmentService = Depends(get_appointment_service)
):
    appointment = service.cancel(
        appointment_id,
        CancelledBy.ADMIN,
        reason=cancel_data.cancellation_reason if cancel_data else None,
    )
    return AppointmentResponse.model_validate(appointment)

@router.get("/dashboard", response_model=AdminDashboard)
def dashboard(service: AppointmentService = Depends(get_appointment_service)):
    data = service.admin_dashboard()
    return AdminDashboard(
        doctors=data["doctors"],
        appointments=data["appointments"],
        patients=data["patients"],
        latest_appointments=[AppointmentResponse.model_validate(a) for a in data["latestAppointments"]],
    )

@router.get("/users/appointment-stats", response_model=Dict[int, Dict[str, int]])
def users_appointment_stats(service: AppointmentService = Depends(get_appointment_service)):
    return service.users_appointment_stats()

# Users
@router.get("/users", response_model=List[UserResponse])
def all_users(db: Session = Depends(get_db)):
    return [UserResponse.model_validate(u) for u in UserService(db).list_users()]

@router.get("/users/archived", response_model=List[UserResponse])
def archived_users(db: Session = Depends(get_db)):
    return [UserResponse.model_validate(u) for u in UserService(db).list_archived()]

@router.put("/users/{user_id}/archive", response_model=UserResponse)
def archive_user(user_id: int, db: Session = Depends(get_db), clock: Clock = Depends(get_clock)):
    return UserResponse.model_validate(UserService(db).archive_user(user_id, clock.now()))

@router.put("/users/{user_id}/restore", response_model=UserResponse)
def restore_user(user_id: int, db: Session = Depends(get_db)):
    return UserResponse.model_validate(UserService(db).restore_user(user_id))

# Doctor roster
@router.get("/doctors", response_model=List[DoctorResponse])
def all_doctors(db: Session = Depends(get_db)):
    return [DoctorResponse.model_validate(d) for d in DoctorService(db).list_doctors()]

@router.get("/doctors/archived", response_model=List[DoctorResponse])
def archived_doctors(db: Session = Depends(get_db)):
    return [DoctorResponse.model_validate(d) for d in DoctorService(db).list_archived()]

@router.post("/doctors", response_model=DoctorResponse, status_code=status.HTTP_201_CREATED)
def add_doctor(
    doctor_data: DoctorCreate,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    doctor = DoctorService(db).create_doctor(clock.today(), **doctor_data.model_dump())
    return DoctorResponse.model_validate(doctor)

@router.get("/doctors/{doc_id}", response_model=DoctorResponse)
def get_doctor(doc_id: int, db: Session = Depends(get_db)):
    return DoctorResponse.model_validate(DoctorService(db).get_doctor(doc_id))

@router.patch("/doctors/{doc_id}", response_model=DoctorResponse)
def update_doctor(
    doc_id: int,
    profile: DoctorProfileUpdate,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    changes = profile.model_dump(exclude_unset=True)
    doctor = DoctorService(db).update_profile(doc_id, clock.today(), **changes)
    return DoctorResponse.model_validate(doctor)

@router.put("/doctors/{doc_id}/archive", response_model=DoctorResponse)
def archive_doctor(doc_id: int, db: Session = Depends(get_db), clock: Clock = Depends(get_clock)):
    return DoctorResponse.model_validate(DoctorService(db).archive_doctor(doc_id, clock.now()))

@router.put("/doctors/{doc_id}/restore", response_model=DoctorResponse)
def restore_doctor(doc_id: int, db: Session = Depends(get_db)):
    return DoctorResponse.model_validate(DoctorService(db).restore_doctor(doc_id))

@router.post("/doctors/{doc_id}/availability", response_model=AvailabilityResponse)
def change_availability(doc_id: int, db: Session = Depends(get_db)):
    available = AvailabilityService(db).change_availability(doc_id)
    return AvailabilityResponse(doc_id=doc_id, available=available)

# Day-off availability
@router.post("/availability/reconcile", response_model=ReconcileSummary)
def run_day_off_check(db: Session = Depends(get_db), clock: Clock = Depends(get_clock)):
    """Run the day-off availability pass now."""
    return AvailabilityService(db).reconcile_all(clock.today())

@router.get("/availability/report")
def day_off_report(db: Session = Depends(get_db), clock: Clock = Depends(get_clock)):
    return AvailabilityService(db).day_off_report(clock.today())

# Slot ledger integrity
@router.get("/ledger/drift")
def ledger_drift(doc_id: Optional[int] = None, db: Session = Depends(get_db)):
    return [drift.as_dict() for drift in SlotLedger(db).find_drift(doc_id)]

@router.post("/ledger/repair")
def repair_ledger(doc_id: Optional[int] = None, db: Session = Depends(get_db)):
    repaired = SlotLedger(db).repair_drift(doc_id)
    return {"repaired": [drift.as_dict() for drift in repaired]}
