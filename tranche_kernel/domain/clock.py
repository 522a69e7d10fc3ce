"""
Clock -- source of "now" for accrual and checkpoints.

The accounting engine measures accrual windows in whole epoch seconds.
Services take a Clock by constructor injection and read ``timestamp()``;
nothing below the service layer asks the system for the time.

Architecture position:
    Kernel > Domain.  SystemClock is the only implementation that
    touches the real time source.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

_DEFAULT_START = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class Clock(ABC):
    @abstractmethod
    def now(self) -> datetime:
        """Current time, timezone-aware UTC."""
        ...

    def timestamp(self) -> int:
        """Epoch seconds, floored; two reads within one second are equal."""
        return int(self.now().timestamp())


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Clock that only moves when told to.

    Same-instant syncs and preview-then-commit sequences rely on
    ``timestamp()`` repeating until ``advance()`` is called.
    """

    def __init__(self, start: datetime | None = None):
        self._start = (start or _DEFAULT_START).astimezone(timezone.utc)
        self._elapsed = 0

    def now(self) -> datetime:
        return self._start + timedelta(seconds=self._elapsed)

    def advance(self, seconds: int = 1) -> None:
        """Move by ``seconds``; negative values simulate a clock regression."""
        self._elapsed += seconds
