import asyncio
import logging
from datetime import datetime

from clinic_booking.core.clock import FixedClock
from clinic_booking.models import Doctor
from clinic_booking.services.reconciler import AvailabilityReconciler


class TestAvailabilityReconciler:

    def test_run_once_applies_policy_and_checks_ledger(self, db, session_factory, make_doctor):
        doctor = make_doctor(day_off="Monday", available=True, slots_booked={"29_10_2026": ["10:00 AM"]})
        clock = FixedClock(datetime(2026, 10, 19, 0, 5))
        reconciler = AvailabilityReconciler(session_factory, clock=clock, interval_seconds=60)

        summary = reconciler.run_once()

        assert summary["set_unavailable"] == 1
        assert summary["ledger_drift"] == [
            {"docId": doctor.id, "orphaned": {"29_10_2026": ["10:00 AM"]}, "unreserved": {}}
        ]
        assert reconciler.last_summary == summary
        assert db.get(Doctor, doctor.id, populate_existing=True).available is False

        clock.set(datetime(2026, 10, 20, 0, 5))
        assert reconciler.run_once()["set_available"] == 1

    def test_failed_pass_is_logged(self, caplog):
        def broken_session():
            raise RuntimeError("database is gone")

        reconciler = AvailabilityReconciler(broken_session, interval_seconds=60)

        with caplog.at_level(logging.ERROR):
            assert reconciler.run_once() is None

        assert "database is gone" in caplog.text
        assert reconciler.last_summary is None

    def test_start_runs_now_and_then_on_interval(self, session_factory, make_doctor):
        make_doctor(day_off="Monday", available=True)
        clock = FixedClock(datetime(2026, 10, 19, 0, 5))
        reconciler = AvailabilityReconciler(session_factory, clock=clock, interval_seconds=0.05)
        passes = []
        run_once = reconciler.run_once

        def counting_run_once():
            passes.append(clock.today())
            return run_once()

        reconciler.run_once = counting_run_once

        async def scenario():
            await reconciler.start()
            assert len(passes) == 1
            assert reconciler.is_running
            await asyncio.sleep(0.3)
            await reconciler.stop()

        asyncio.run(scenario())

        assert len(passes) >= 2
        assert not reconciler.is_running
        assert reconciler.last_summary["unchanged"] == 1

    def test_stop_without_start(self, session_factory):
        reconciler = AvailabilityReconciler(session_factory, interval_seconds=60)

        asyncio.run(reconciler.stop())

        assert not reconciler.is_running
