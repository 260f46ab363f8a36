import threading

import pytest

from clinic_booking.core.exceptions import DoctorNotFound, SlotUnavailable
from clinic_booking.models import Appointment, AppointmentStatus, CancelledBy, Doctor
from clinic_booking.services.slot_ledger import SlotLedger, add_slot, remove_slot

SLOT_DATE = "29_10_2026"
SLOT_TIME = "10:00 AM"


def _ledger_of(db, doc_id):
    return db.get(Doctor, doc_id, populate_existing=True).slots_booked


class TestSlotLedger:

    def test_reserve_marks_slot_taken(self, db, make_doctor):
        """A reserved slot is reported as booked."""
        doctor = make_doctor()
        ledger = SlotLedger(db)

        ledger.reserve(doctor.id, SLOT_DATE, SLOT_TIME)

        assert ledger.is_booked(doctor.id, SLOT_DATE, SLOT_TIME)
        assert ledger.booked_slots(doctor.id) == {SLOT_DATE: [SLOT_TIME]}

    def test_reserve_taken_slot_fails(self, db, make_doctor):
        doctor = make_doctor()
        ledger = SlotLedger(db)
        ledger.reserve(doctor.id, SLOT_DATE, SLOT_TIME)

        with pytest.raises(SlotUnavailable):
            ledger.reserve(doctor.id, SLOT_DATE, SLOT_TIME)

        assert _ledger_of(db, doctor.id) == {SLOT_DATE: [SLOT_TIME]}

    def test_same_time_on_other_date_is_free(self, db, make_doctor):
        doctor = make_doctor()
        ledger = SlotLedger(db)
        ledger.reserve(doctor.id, SLOT_DATE, SLOT_TIME)
        ledger.reserve(doctor.id, "30_10_2026", SLOT_TIME)

        assert ledger.booked_slots(doctor.id) == {
            SLOT_DATE: [SLOT_TIME],
            "30_10_2026": [SLOT_TIME],
        }

    def test_release_after_reserve_restores_ledger(self, db, make_doctor):
        """Round trip: reserve then release leaves the ledger as it was."""
        doctor = make_doctor(slots_booked={SLOT_DATE: ["09:00 AM"], "2_11_2026": ["11:30 AM"]})
        ledger = SlotLedger(db)
        before = _ledger_of(db, doctor.id)

        ledger.reserve(doctor.id, SLOT_DATE, SLOT_TIME)
        assert ledger.release(doctor.id, SLOT_DATE, SLOT_TIME) is True

        assert _ledger_of(db, doctor.id) == before

    def test_release_last_time_drops_date_key(self, db, make_doctor):
        doctor = make_doctor()
        ledger = SlotLedger(db)

        ledger.reserve(doctor.id, SLOT_DATE, SLOT_TIME)
        ledger.release(doctor.id, SLOT_DATE, SLOT_TIME)

        assert _ledger_of(db, doctor.id) == {}

    def test_release_never_reserved_is_noop(self, db, make_doctor):
        doctor = make_doctor(slots_booked={SLOT_DATE: ["09:00 AM"]})
        ledger = SlotLedger(db)

        assert ledger.release(doctor.id, SLOT_DATE, SLOT_TIME) is False
        assert ledger.release(doctor.id, "1_11_2026", SLOT_TIME) is False
        assert _ledger_of(db, doctor.id) == {SLOT_DATE: ["09:00 AM"]}

    def test_unknown_doctor(self, db):
        ledger = SlotLedger(db)

        with pytest.raises(DoctorNotFound):
            ledger.reserve(999, SLOT_DATE, SLOT_TIME)
        with pytest.raises(DoctorNotFound):
            ledger.booked_slots(999)

    def test_booked_slots_for_one_date(self, db, make_doctor):
        doctor = make_doctor(slots_booked={SLOT_DATE: ["09:00 AM", SLOT_TIME], "2_11_2026": ["11:30 AM"]})
        ledger = SlotLedger(db)

        assert ledger.booked_slots(doctor.id, SLOT_DATE) == {SLOT_DATE: ["09:00 AM", SLOT_TIME]}
        assert ledger.booked_slots(doctor.id, "3_11_2026") == {"3_11_2026": []}

    def test_concurrent_reserve_has_single_winner(self, session_factory, make_doctor):
        """Many sessions racing for one slot: exactly one reservation sticks."""
        doc_id = make_doctor().id
        attempts = 6
        barrier = threading.Barrier(attempts)
        results = []
        lock = threading.Lock()

        def worker():
            session = session_factory()
            try:
                barrier.wait()
                try:
                    SlotLedger(session).reserve(doc_id, SLOT_DATE, SLOT_TIME)
                    outcome = "reserved"
                except SlotUnavailable:
                    outcome = "unavailable"
            finally:
                session.close()
            with lock:
                results.append(outcome)

        threads = [threading.Thread(target=worker) for _ in range(attempts)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=60)

        assert sorted(results) == ["reserved"] + ["unavailable"] * (attempts - 1)

        check = session_factory()
        try:
            assert check.get(Doctor, doc_id).slots_booked == {SLOT_DATE: [SLOT_TIME]}
        finally:
            check.close()


class TestSlotHelpers:

    def test_add_slot_reassigns_mapping(self):
        before = {SLOT_DATE: ["09:00 AM"]}
        doctor = Doctor(slots_booked=before)

        add_slot(doctor, SLOT_DATE, SLOT_TIME)

        assert doctor.slots_booked == {SLOT_DATE: ["09:00 AM", SLOT_TIME]}
        assert doctor.slots_booked is not before
        assert before == {SLOT_DATE: ["09:00 AM"]}

    def test_remove_slot_keeps_other_times(self):
        doctor = Doctor(slots_booked={SLOT_DATE: ["09:00 AM", SLOT_TIME]})

        assert remove_slot(doctor, SLOT_DATE, SLOT_TIME) is True
        assert doctor.slots_booked == {SLOT_DATE: ["09:00 AM"]}


class TestLedgerDrift:

    def test_clean_ledger_has_no_drift(self, db, service, make_user, make_doctor):
        doctor = make_doctor()
        service.book(make_user().id, doctor.id, SLOT_DATE, SLOT_TIME)

        assert SlotLedger(db).find_drift() == []

    def test_completed_appointment_keeps_its_slot(self, db, service, make_user, make_doctor):
        doctor = make_doctor()
        appointment = service.book(make_user().id, doctor.id, SLOT_DATE, SLOT_TIME)
        service.complete(appointment.id, doctor.id)

        assert SlotLedger(db).is_booked(doctor.id, SLOT_DATE, SLOT_TIME)
        assert SlotLedger(db).find_drift() == []

    def test_orphaned_slot_detected_and_repaired(self, db, make_user, make_doctor):
        doctor = make_doctor(slots_booked={SLOT_DATE: [SLOT_TIME]})
        ledger = SlotLedger(db)

        drifts = ledger.find_drift()
        assert len(drifts) == 1
        assert drifts[0].doc_id == doctor.id
        assert drifts[0].orphaned == {SLOT_DATE: [SLOT_TIME]}
        assert drifts[0].unreserved == {}

        ledger.repair_drift()

        assert _ledger_of(db, doctor.id) == {}
        assert ledger.find_drift() == []

    def test_unreserved_appointment_detected_and_repaired(self, db, make_user, make_doctor):
        user = make_user()
        doctor = make_doctor()
        db.add(Appointment(
            user_id=user.id,
            doc_id=doctor.id,
            slot_date=SLOT_DATE,
            slot_time=SLOT_TIME,
            user_data=user.snapshot(),
            doc_data=doctor.snapshot(),
            amount=doctor.fees,
        ))
        db.commit()
        ledger = SlotLedger(db)

        drift = ledger.find_drift(doctor.id)[0]
        assert drift.unreserved == {SLOT_DATE: [SLOT_TIME]}
        assert drift.as_dict()["docId"] == doctor.id

        ledger.repair_drift(doctor.id)

        assert _ledger_of(db, doctor.id) == {SLOT_DATE: [SLOT_TIME]}
        assert ledger.find_drift() == []

    def test_cancelled_appointment_does_not_count(self, db, service, make_user, make_doctor):
        doctor = make_doctor()
        appointment = service.book(make_user().id, doctor.id, SLOT_DATE, SLOT_TIME)
        service.cancel(appointment.id, CancelledBy.ADMIN)

        stored = db.get(Appointment, appointment.id, populate_existing=True)
        assert stored.status == AppointmentStatus.CANCELLED
        assert SlotLedger(db).find_drift() == []
