"""Injectable time source for token expiry and record timestamps."""
from datetime import datetime, timezone


class Clock:
    """Wall clock. Swap for a fixed clock in tests."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """Clock frozen at a given instant; ``advance`` moves it forward."""

    def __init__(self, instant: datetime):
        self.instant = instant

    def now(self) -> datetime:
        return self.instant

    def advance(self, delta) -> None:
        self.instant = self.instant + delta


system_clock = Clock()
