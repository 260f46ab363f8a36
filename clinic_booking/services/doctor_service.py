from datetime import date, datetime
from sqlalchemy.orm import Session
from typing import List, Optional
import logging

from ..core.database import run_with_retry
from ..core.exceptions import DoctorNotFound, InvalidInput
from ..core.slot_dates import normalize_day_off
from ..models import Doctor
from .availability import AvailabilityService

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("fees", "address", "about", "available", "day_off")


class DoctorService:
    def __init__(self, db: Session):
        self.db = db
        self.availability = AvailabilityService(db)

    def get_doctor(self, doc_id: int) -> Doctor:
        doctor = self.db.get(Doctor, doc_id, populate_existing=True)
        if not doctor:
            raise DoctorNotFound()
        return doctor

    def list_doctors(self) -> List[Doctor]:
        """Roster without archived doctors."""
        return self.db.query(Doctor).filter(
            Doctor.is_archived == False  # noqa: E712
        ).order_by(Doctor.id).all()

    def list_archived(self) -> List[Doctor]:
        return self.db.query(Doctor).filter(
            Doctor.is_archived == True  # noqa: E712
        ).order_by(Doctor.id).all()

    def create_doctor(self, today: date, **data) -> Doctor:
        """Add a doctor; a day off falling on today marks them unavailable at once."""
        if self.db.query(Doctor).filter(Doctor.email == data["email"]).first():
            raise InvalidInput("Email already registered")
        if data.get("fees") is not None and data["fees"] < 0:
            raise InvalidInput("Fees must not be negative")

        data["day_off"] = normalize_day_off(data.get("day_off"))
        doctor = Doctor(slots_booked={}, **data)
        self.db.add(doctor)
        self.db.commit()
        self.db.refresh(doctor)
        logger.info(f"Doctor {doctor.name} ({doctor.id}) added")

        if doctor.day_off:
            self.availability.apply_to_doctor(doctor.id, today)
            return self.get_doctor(doctor.id)
        return doctor

    def update_profile(self, doc_id: int, today: date, **changes) -> Doctor:
        """Update editable profile fields.

        A changed day off is applied right away so the doctor does not have to
        wait for the next reconciler pass.
        """
        unknown = set(changes) - set(PROFILE_FIELDS)
        if unknown:
            raise InvalidInput(f"Cannot update fields: {', '.join(sorted(unknown))}")
        if changes.get("fees") is not None and changes["fees"] < 0:
            raise InvalidInput("Fees must not be negative")
        if "day_off" in changes:
            changes["day_off"] = normalize_day_off(changes["day_off"])

        def work():
            doctor = self.get_doctor(doc_id)
            day_off_changed = "day_off" in changes and changes["day_off"] != doctor.day_off
            for field, value in changes.items():
                if value is not None:
                    setattr(doctor, field, value)
            return day_off_changed

        day_off_changed = run_with_retry(self.db, work, f"update profile of doctor {doc_id}")
        logger.info(f"Doctor {doc_id} profile updated")

        if day_off_changed:
            self.availability.apply_to_doctor(doc_id, today)
        return self.get_doctor(doc_id)

    def archive_doctor(self, doc_id: int, now: Optional[datetime] = None) -> Doctor:
        def work():
            doctor = self.get_doctor(doc_id)
            doctor.is_archived = True
            doctor.archived_at = now or datetime.now()
            return doctor

        doctor = run_with_retry(self.db, work, f"archive doctor {doc_id}")
        logger.info(f"Doctor {doc_id} archived")
        return doctor

    def restore_doctor(self, doc_id: int) -> Doctor:
        def work():
            doctor = self.get_doctor(doc_id)
            doctor.is_archived = False
            doctor.archived_at = None
            return doctor

        doctor = run_with_retry(self.db, work, f"restore doctor {doc_id}")
        logger.info(f"Doctor {doc_id} restored")
        return doctor
