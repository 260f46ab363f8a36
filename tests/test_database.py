import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from clinic_booking.core.config import settings
from clinic_booking.core.database import run_with_retry
from clinic_booking.core.exceptions import TransientStorageError


class RecordingSession:
    """Counts commits and rollbacks; commit can be told to fail."""

    def __init__(self, commit_errors=()):
        self.commit_errors = list(commit_errors)
        self.commits = 0
        self.rollbacks = 0

    def commit(self):
        if self.commit_errors:
            raise self.commit_errors.pop(0)
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1


class TestRunWithRetry:

    def test_success_commits_once(self):
        session = RecordingSession()

        assert run_with_retry(session, lambda: "done", "save") == "done"
        assert session.commits == 1
        assert session.rollbacks == 0

    def test_conflict_then_success(self):
        """A version conflict at commit rolls back and runs the work again."""
        session = RecordingSession(commit_errors=[StaleDataError("version mismatch")])
        calls = []

        def work():
            calls.append(1)
            return len(calls)

        assert run_with_retry(session, work, "save") == 2
        assert session.rollbacks == 1
        assert session.commits == 1

    def test_conflicts_exhaust_default_attempts(self):
        session = RecordingSession()
        calls = []

        def work():
            calls.append(1)
            raise StaleDataError("version mismatch")

        with pytest.raises(TransientStorageError) as exc_info:
            run_with_retry(session, work, "book appointment")

        assert len(calls) == settings.STORAGE_MAX_RETRIES
        assert session.rollbacks == settings.STORAGE_MAX_RETRIES
        assert session.commits == 0
        assert exc_info.value.status_code == 503
        assert "book appointment" in exc_info.value.detail

    def test_conflicts_exhaust_explicit_attempts(self):
        session = RecordingSession(commit_errors=[StaleDataError("version mismatch")] * 3)
        calls = []

        with pytest.raises(TransientStorageError):
            run_with_retry(session, lambda: calls.append(1), "save", max_attempts=3)

        assert len(calls) == 3
        assert session.rollbacks == 3
        assert session.commits == 0

    def test_operational_error_is_not_retried(self):
        session = RecordingSession()
        calls = []
        locked = OperationalError("UPDATE doctors", {}, Exception("database is locked"))

        def work():
            calls.append(1)
            raise locked

        with pytest.raises(TransientStorageError) as exc_info:
            run_with_retry(session, work, "save")

        assert len(calls) == 1
        assert session.rollbacks == 1
        assert session.commits == 0
        assert exc_info.value.__cause__ is locked

    def test_other_errors_roll_back_and_propagate(self):
        session = RecordingSession()
        calls = []

        def work():
            calls.append(1)
            raise ValueError("bad input")

        with pytest.raises(ValueError, match="bad input"):
            run_with_retry(session, work, "save")

        assert len(calls) == 1
        assert session.rollbacks == 1
        assert session.commits == 0
