from datetime import date, datetime


class Clock:
    """Source of "now" for booking windows and day-off checks."""

    def now(self) -> datetime:
        return datetime.now()

    def today(self) -> date:
        return self.now().date()


class FixedClock(Clock):
    """Clock pinned to a given instant. Used by tests and manual reruns."""

    def __init__(self, instant: datetime):
        self.instant = instant

    def now(self) -> datetime:
        return self.instant

    def set(self, instant: datetime) -> None:
        self.instant = instant


system_clock = Clock()
