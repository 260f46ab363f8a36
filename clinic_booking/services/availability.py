"""
Day-off availability policy.

A doctor with a weekly day off is unavailable on that weekday and available on
every other day; each pass overrides manual toggles for such doctors. Doctors
without a day off are under manual control only and are never touched here.
"""
from datetime import date
from sqlalchemy.orm import Session
from typing import Optional
import logging

from ..core.database import run_with_retry
from ..core.exceptions import DoctorNotFound, TransientStorageError
from ..core.slot_dates import weekday_name
from ..models import Doctor

logger = logging.getLogger(__name__)


def compute_availability(day_off: Optional[str], current_available: bool, today: date) -> bool:
    if not day_off:
        return current_available
    return day_off != weekday_name(today)


class AvailabilityService:
    def __init__(self, db: Session):
        self.db = db

    def _get_doctor(self, doc_id: int) -> Doctor:
        doctor = self.db.get(Doctor, doc_id, populate_existing=True)
        if not doctor:
            raise DoctorNotFound()
        return doctor

    def apply_to_doctor(self, doc_id: int, today: date) -> bool:
        """Evaluate the policy for one doctor. Returns True if a write happened."""
        return self._apply(doc_id, today) is not None

    def _apply(self, doc_id: int, today: date) -> Optional[bool]:
        # Returns the new flag when it changed, None when nothing was written
        def work():
            doctor = self._get_doctor(doc_id)
            new_available = compute_availability(doctor.day_off, doctor.available, today)
            if new_available == doctor.available:
                return None
            doctor.available = new_available
            return doctor.name, doctor.day_off, new_available

        outcome = run_with_retry(self.db, work, f"apply day-off policy to doctor {doc_id}")
        if outcome is None:
            return None

        name, day_off, available = outcome
        day = weekday_name(today)
        if available:
            logger.info(
                f"Reset availability for doctor {name} ({doc_id}) to available "
                f"because today ({day}) is not their day off ({day_off})"
            )
        else:
            logger.info(
                f"Updated availability for doctor {name} ({doc_id}) to unavailable "
                f"because today is their day off ({day})"
            )
        return available

    def reconcile_all(self, today: date) -> dict:
        """Apply the policy to every doctor that has a day off."""
        summary = {
            "day": weekday_name(today),
            "checked": 0,
            "set_available": 0,
            "set_unavailable": 0,
            "unchanged": 0,
            "failed": 0,
        }

        doc_ids = [
            doc_id for (doc_id,) in
            self.db.query(Doctor.id).filter(Doctor.day_off != "").order_by(Doctor.id).all()
        ]
        for doc_id in doc_ids:
            summary["checked"] += 1
            try:
                new_available = self._apply(doc_id, today)
            except (DoctorNotFound, TransientStorageError) as e:
                # One bad row must not stop the pass; the next tick retries it
                logger.error(f"Failed to apply day-off policy to doctor {doc_id}: {e.detail}")
                summary["failed"] += 1
                continue

            if new_available is None:
                summary["unchanged"] += 1
            elif new_available:
                summary["set_available"] += 1
            else:
                summary["set_unavailable"] += 1

        logger.info(f"Day-off availability pass complete: {summary}")
        return summary

    def change_availability(self, doc_id: int) -> bool:
        """Manually toggle a doctor's availability. Returns the new value."""
        def work():
            doctor = self._get_doctor(doc_id)
            doctor.available = not doctor.available
            return doctor.available

        available = run_with_retry(self.db, work, f"toggle availability of doctor {doc_id}")
        logger.info(f"Doctor {doc_id} is now {'available' if available else 'unavailable'}")
        return available

    def day_off_report(self, today: date) -> dict:
        current_day = weekday_name(today)
        doctors = self.db.query(Doctor).order_by(Doctor.id).all()

        def day_off_status(doctor: Doctor) -> str:
            if not doctor.day_off:
                return "No day off set"
            if doctor.day_off == current_day:
                return "Currently on day off"
            return f"Day off is on {doctor.day_off}"

        return {
            "currentDay": current_day,
            "stats": {
                "total": len(doctors),
                "onDayOff": sum(1 for d in doctors if d.day_off == current_day),
                "available": sum(1 for d in doctors if d.available),
                "unavailable": sum(1 for d in doctors if not d.available),
                "withDayOff": sum(1 for d in doctors if d.day_off),
                "withoutDayOff": sum(1 for d in doctors if not d.day_off),
            },
            "doctors": [
                {
                    "id": d.id,
                    "name": d.name,
                    "dayOff": d.day_off or "None",
                    "available": d.available,
                    "isOnDayOff": d.day_off == current_day,
                    "status": "Available" if d.available else "Unavailable",
                    "dayOffStatus": day_off_status(d),
                }
                for d in doctors
            ],
        }
