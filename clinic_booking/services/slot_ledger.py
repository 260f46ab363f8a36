"""
Slot ledger: which (slot_date, slot_time) pairs of a doctor are taken.

The ledger lives on ``Doctor.slots_booked``. Every write replaces the mapping
and goes through the doctor's version column, so two requests reserving the
same slot cannot both commit: the loser re-reads and sees the slot taken.
"""
from dataclasses import dataclass, field
from sqlalchemy.orm import Session
from typing import Dict, List, Optional
import logging

from ..core.database import run_with_retry
from ..core.exceptions import DoctorNotFound, SlotUnavailable
from ..models import Appointment, AppointmentStatus, Doctor

logger = logging.getLogger(__name__)


def add_slot(doctor: Doctor, slot_date: str, slot_time: str) -> None:
    """Add a slot to the doctor's ledger in the current unit of work."""
    ledger = doctor.slots_booked or {}
    times = ledger.get(slot_date, [])
    if slot_time in times:
        raise SlotUnavailable()
    updated = dict(ledger)
    updated[slot_date] = times + [slot_time]
    doctor.slots_booked = updated


def remove_slot(doctor: Doctor, slot_date: str, slot_time: str) -> bool:
    """Remove a slot from the ledger. Returns False if it was not there."""
    ledger = doctor.slots_booked or {}
    times = ledger.get(slot_date, [])
    if slot_time not in times:
        return False
    updated = dict(ledger)
    remaining = [t for t in times if t != slot_time]
    if remaining:
        updated[slot_date] = remaining
    else:
        del updated[slot_date]
    doctor.slots_booked = updated
    return True


@dataclass
class LedgerDrift:
    """Mismatch between a doctor's ledger and its active appointments."""
    doc_id: int
    # Held in the ledger with no live appointment behind them
    orphaned: Dict[str, List[str]] = field(default_factory=dict)
    # Live appointments whose slot is missing from the ledger
    unreserved: Dict[str, List[str]] = field(default_factory=dict)

    @property
    def is_clean(self) -> bool:
        return not self.orphaned and not self.unreserved

    def as_dict(self) -> dict:
        return {"docId": self.doc_id, "orphaned": self.orphaned, "unreserved": self.unreserved}


class SlotLedger:
    def __init__(self, db: Session):
        self.db = db

    def _get_doctor(self, doc_id: int) -> Doctor:
        doctor = self.db.get(Doctor, doc_id, populate_existing=True)
        if not doctor:
            raise DoctorNotFound()
        return doctor

    def reserve(self, doc_id: int, slot_date: str, slot_time: str) -> None:
        """Reserve a slot, raising SlotUnavailable if it is already taken."""
        def work():
            add_slot(self._get_doctor(doc_id), slot_date, slot_time)

        run_with_retry(self.db, work, f"reserve {slot_date} {slot_time} for doctor {doc_id}")
        logger.info(f"Reserved slot {slot_date} {slot_time} for doctor {doc_id}")

    def release(self, doc_id: int, slot_date: str, slot_time: str) -> bool:
        """Release a slot. Releasing a slot that is not held is a no-op."""
        def work():
            return remove_slot(self._get_doctor(doc_id), slot_date, slot_time)

        released = run_with_retry(
            self.db, work, f"release {slot_date} {slot_time} for doctor {doc_id}"
        )
        if released:
            logger.info(f"Released slot {slot_date} {slot_time} for doctor {doc_id}")
        return released

    def is_booked(self, doc_id: int, slot_date: str, slot_time: str) -> bool:
        doctor = self._get_doctor(doc_id)
        return slot_time in (doctor.slots_booked or {}).get(slot_date, [])

    def booked_slots(self, doc_id: int, slot_date: Optional[str] = None) -> Dict[str, List[str]]:
        ledger = self._get_doctor(doc_id).slots_booked or {}
        if slot_date is not None:
            return {slot_date: list(ledger.get(slot_date, []))}
        return {key: list(times) for key, times in ledger.items()}

    def find_drift(self, doc_id: Optional[int] = None) -> List[LedgerDrift]:
        """Compare ledgers with live (pending or completed) appointments.

        A cancellation whose slot release failed leaves an orphaned entry;
        this is how such partial failures are detected.
        """
        query = self.db.query(Doctor)
        if doc_id is not None:
            query = query.filter(Doctor.id == doc_id)

        drifts = []
        for doctor in query.order_by(Doctor.id).all():
            active = self.db.query(Appointment.slot_date, Appointment.slot_time).filter(
                Appointment.doc_id == doctor.id,
                Appointment.status != AppointmentStatus.CANCELLED
            ).all()
            expected = {(slot_date, slot_time) for slot_date, slot_time in active}
            held = {
                (slot_date, slot_time)
                for slot_date, times in (doctor.slots_booked or {}).items()
                for slot_time in times
            }

            drift = LedgerDrift(doc_id=doctor.id)
            for slot_date, slot_time in sorted(held - expected):
                drift.orphaned.setdefault(slot_date, []).append(slot_time)
            for slot_date, slot_time in sorted(expected - held):
                drift.unreserved.setdefault(slot_date, []).append(slot_time)

            if not drift.is_clean:
                logger.warning(
                    f"Slot ledger drift for doctor {doctor.id}: "
                    f"orphaned={drift.orphaned} unreserved={drift.unreserved}"
                )
                drifts.append(drift)
        return drifts

    def repair_drift(self, doc_id: Optional[int] = None) -> List[LedgerDrift]:
        """Bring ledgers back in line with live appointments."""
        drifts = self.find_drift(doc_id)
        for drift in drifts:
            def work(drift=drift):
                doctor = self._get_doctor(drift.doc_id)
                for slot_date, times in drift.orphaned.items():
                    for slot_time in times:
                        remove_slot(doctor, slot_date, slot_time)
                for slot_date, times in drift.unreserved.items():
                    for slot_time in times:
                        if slot_time not in (doctor.slots_booked or {}).get(slot_date, []):
                            add_slot(doctor, slot_date, slot_time)

            run_with_retry(self.db, work, f"repair slot ledger of doctor {drift.doc_id}")
            logger.info(f"Repaired slot ledger of doctor {drift.doc_id}")
        return drifts
