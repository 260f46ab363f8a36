from sqlalchemy.orm import Session
from typing import Dict, List, Optional
import logging

from ..core.clock import Clock, system_clock
from ..core.config import settings
from ..core.database import run_with_retry
from ..core.exceptions import (
    AppointmentNotFound, DoctorNotFound, DoctorUnavailable, DuplicateBooking,
    InvalidInput, OutOfWindow, SlotReleaseFailed, TransientStorageError, UserNotFound
)
from ..core.security import AuthorizationError, UserRole
from ..core.slot_dates import add_months, parse_slot_date
from ..models import Appointment, AppointmentStatus, CancelledBy, Doctor, User
from .notification_service import NotificationSink
from .slot_ledger import SlotLedger, add_slot

logger = logging.getLogger(__name__)


class AppointmentService:
    def __init__(
        self,
        db: Session,
        notifier: Optional[NotificationSink] = None,
        clock: Optional[Clock] = None,
    ):
        self.db = db
        self.notifier = notifier or NotificationSink()
        self.clock = clock or system_clock
        self.ledger = SlotLedger(db)

    # ------------------------------------------------------------------
    # Booking
    # ------------------------------------------------------------------

    def check_booking_window(self, slot_date: str) -> None:
        """Raise OutOfWindow unless the date is 5 days to 1 month ahead."""
        appointment_date = parse_slot_date(slot_date)
        today = self.clock.today()

        if (appointment_date - today).days < settings.BOOKING_MIN_DAYS_AHEAD:
            raise OutOfWindow(
                f"Appointments must be booked at least {settings.BOOKING_MIN_DAYS_AHEAD} days in advance"
            )

        if appointment_date > add_months(today, settings.BOOKING_MAX_MONTHS_AHEAD):
            raise OutOfWindow(
                f"Appointments cannot be booked more than {settings.BOOKING_MAX_MONTHS_AHEAD} month(s) in advance"
            )

    def book(
        self,
        user_id: int,
        doc_id: int,
        slot_date: str,
        slot_time: str,
        reason: Optional[str] = None,
    ) -> Appointment:
        """Book a slot for a patient.

        Checks run in order: booking window, patient account, duplicate
        booking, doctor availability, slot availability. The appointment row
        and the ledger entry are committed together. Each booking bumps the
        patient's version and the doctor's ledger, so a concurrent booking by
        the same patient or with the same doctor forces a retry against fresh
        data.
        """
        slot_time = (slot_time or "").strip()
        if not slot_time:
            raise InvalidInput("Slot time is required")

        self.check_booking_window(slot_date)

        def work():
            user = self.db.get(User, user_id, populate_existing=True)
            if not user or not user.is_active or user.is_archived:
                raise UserNotFound()
            # Read before the duplicate check so a racing booking by this user
            # fails the version check at commit
            user.version = user.version + 1

            existing = self.db.query(Appointment).filter(
                Appointment.user_id == user_id,
                Appointment.slot_date == slot_date,
                Appointment.slot_time == slot_time,
                Appointment.status != AppointmentStatus.CANCELLED
            ).first()
            if existing:
                raise DuplicateBooking()

            doctor = self.db.get(Doctor, doc_id, populate_existing=True)
            if not doctor or doctor.is_archived:
                raise DoctorNotFound()
            if not doctor.available:
                raise DoctorUnavailable()

            add_slot(doctor, slot_date, slot_time)

            appointment = Appointment(
                user_id=user_id,
                doc_id=doc_id,
                slot_date=slot_date,
                slot_time=slot_time,
                user_data=user.snapshot(),
                doc_data=doctor.snapshot(),
                amount=doctor.fees,
                appointment_reason=(reason or "").strip(),
                created_at=self.clock.now(),
            )
            self.db.add(appointment)
            return appointment

        appointment = run_with_retry(
            self.db, work, f"book {slot_date} {slot_time} with doctor {doc_id}"
        )
        logger.info(
            f"Appointment {appointment.id} booked: user {user_id} with doctor {doc_id} "
            f"on {slot_date} at {slot_time}"
        )

        self.notifier.notify_doctor_of_booking(
            appointment.doc_data.get("email"), appointment.summary()
        )
        return appointment

    # ------------------------------------------------------------------
    # Lifecycle transitions
    # ------------------------------------------------------------------

    def _get_appointment(self, appointment_id: int) -> Appointment:
        appointment = self.db.get(Appointment, appointment_id, populate_existing=True)
        if not appointment:
            raise AppointmentNotFound()
        return appointment

    @staticmethod
    def _check_owner(appointment: Appointment, actor: CancelledBy, actor_id: Optional[int]) -> None:
        if actor == CancelledBy.ADMIN:
            return
        owner_id = appointment.user_id if actor == CancelledBy.USER else appointment.doc_id
        if actor_id is None or owner_id != actor_id:
            raise AuthorizationError("Unauthorized action")

    def _patient_contact(self, appointment: Appointment) -> Optional[str]:
        patient = self.db.get(User, appointment.user_id)
        if patient and patient.email:
            return patient.email
        return (appointment.user_data or {}).get("email")

    def cancel(
        self,
        appointment_id: int,
        actor: CancelledBy,
        actor_id: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> Appointment:
        """Cancel an appointment and give its slot back to the doctor.

        The cancellation is committed first. If releasing the slot then fails
        the cancellation stands, the error is logged and SlotReleaseFailed is
        raised; the orphaned ledger entry shows up in ``SlotLedger.find_drift``.
        """
        actor = CancelledBy(actor)

        def work():
            appointment = self._get_appointment(appointment_id)
            self._check_owner(appointment, actor, actor_id)
            appointment.cancel(actor, reason)
            return appointment

        appointment = run_with_retry(self.db, work, f"cancel appointment {appointment_id}")
        logger.info(f"Appointment {appointment_id} cancelled by {actor.value}")

        release_error = None
        try:
            self.ledger.release(appointment.doc_id, appointment.slot_date, appointment.slot_time)
        except (TransientStorageError, DoctorNotFound) as e:
            release_error = e
            logger.error(
                f"Appointment {appointment_id} cancelled but slot {appointment.slot_date} "
                f"{appointment.slot_time} of doctor {appointment.doc_id} is still held: {e.detail}"
            )

        if actor != CancelledBy.USER:
            self.notifier.notify_patient_of_status_change(
                self._patient_contact(appointment), appointment.summary(), "cancelled"
            )

        if release_error is not None:
            raise SlotReleaseFailed() from release_error
        return appointment

    def complete(self, appointment_id: int, doc_id: int) -> Appointment:
        def work():
            appointment = self._get_appointment(appointment_id)
            self._check_owner(appointment, CancelledBy.DOCTOR, doc_id)
            appointment.complete()
            return appointment

        appointment = run_with_retry(self.db, work, f"complete appointment {appointment_id}")
        logger.info(f"Appointment {appointment_id} completed by doctor {doc_id}")

        self.notifier.notify_patient_of_status_change(
            self._patient_contact(appointment), appointment.summary(), "completed"
        )
        return appointment

    def add_consultation_summary(self, appointment_id: int, doc_id: int, text: str) -> Appointment:
        def work():
            appointment = self._get_appointment(appointment_id)
            self._check_owner(appointment, CancelledBy.DOCTOR, doc_id)
            appointment.add_consultation_summary(text)
            return appointment

        appointment = run_with_retry(
            self.db, work, f"add consultation summary to appointment {appointment_id}"
        )
        logger.info(f"Consultation summary added to appointment {appointment_id}")

        self.notifier.notify_patient_of_status_change(
            self._patient_contact(appointment), appointment.summary(), "summary_added"
        )
        return appointment

    def mark_paid(self, appointment_id: int, reference: Optional[str] = None) -> Appointment:
        """Record a confirmed payment. Safe to call more than once."""
        def work():
            appointment = self._get_appointment(appointment_id)
            return appointment, appointment.mark_paid(reference)

        appointment, changed = run_with_retry(
            self.db, work, f"mark appointment {appointment_id} as paid"
        )
        if changed:
            logger.info(f"Payment recorded for appointment {appointment_id}")
        return appointment

    def mark_read(self, appointment_id: int, user_id: int) -> Appointment:
        def work():
            appointment = self._get_appointment(appointment_id)
            self._check_owner(appointment, CancelledBy.USER, user_id)
            appointment.mark_read()
            return appointment

        return run_with_retry(self.db, work, f"mark appointment {appointment_id} as read")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_appointment(self, appointment_id: int) -> Appointment:
        return self._get_appointment(appointment_id)

    def list_for_user(self, user_id: int) -> List[Appointment]:
        return self.db.query(Appointment).filter(
            Appointment.user_id == user_id
        ).order_by(Appointment.id).all()

    def list_for_doctor(self, doc_id: int) -> List[Appointment]:
        return self.db.query(Appointment).filter(
            Appointment.doc_id == doc_id
        ).order_by(Appointment.id).all()

    def list_all(self) -> List[Appointment]:
        return self.db.query(Appointment).order_by(Appointment.id).all()

    def appointment_history(self, doc_id: int) -> List[Appointment]:
        """Completed appointments of a doctor."""
        return self.db.query(Appointment).filter(
            Appointment.doc_id == doc_id,
            Appointment.status == AppointmentStatus.COMPLETED
        ).order_by(Appointment.id).all()

    def user_booked_slots(
        self,
        user_id: int,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> Dict[str, List[str]]:
        """Non-cancelled slots of a user as {slot_date: [slot_time, ...]}.

        The optional range compares slot keys as strings, exactly as stored.
        """
        query = self.db.query(Appointment.slot_date, Appointment.slot_time).filter(
            Appointment.user_id == user_id,
            Appointment.status != AppointmentStatus.CANCELLED
        )
        if start_date and end_date:
            query = query.filter(
                Appointment.slot_date >= start_date,
                Appointment.slot_date <= end_date
            )

        booked: Dict[str, List[str]] = {}
        for slot_date, slot_time in query.order_by(Appointment.id).all():
            booked.setdefault(slot_date, []).append(slot_time)
        return booked

    def user_doctor_booked_dates(self, user_id: int, doc_id: int) -> List[str]:
        rows = self.db.query(Appointment.slot_date).filter(
            Appointment.user_id == user_id,
            Appointment.doc_id == doc_id,
            Appointment.status != AppointmentStatus.CANCELLED
        ).order_by(Appointment.id).all()
        return list(dict.fromkeys(slot_date for (slot_date,) in rows))

    def doctor_dashboard(self, doc_id: int) -> dict:
        appointments = self.list_for_doctor(doc_id)
        earnings = sum(a.amount for a in appointments if a.is_completed or a.payment)
        patients = {a.user_id for a in appointments}
        return {
            "earnings": earnings,
            "appointments": len(appointments),
            "patients": len(patients),
            "latestAppointments": list(reversed(appointments)),
        }

    def users_appointment_stats(self) -> Dict[int, dict]:
        stats: Dict[int, dict] = {}
        for appointment in self.list_all():
            user_stats = stats.setdefault(
                appointment.user_id,
                {"total": 0, "approved": 0, "pending": 0, "cancelled": 0}
            )
            user_stats["total"] += 1
            if appointment.cancelled:
                user_stats["cancelled"] += 1
            elif appointment.is_completed:
                user_stats["approved"] += 1
            else:
                user_stats["pending"] += 1
        return stats

    def admin_dashboard(self) -> dict:
        appointments = self.list_all()
        return {
            "doctors": self.db.query(Doctor).count(),
            "appointments": len(appointments),
            "patients": self.db.query(User).filter(User.role == UserRole.PATIENT).count(),
            "latestAppointments": list(reversed(appointments)),
        }
