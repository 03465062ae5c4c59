"""Clocks used to timestamp and age metrics."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

ZERO_TIME = datetime.min.replace(tzinfo=timezone.utc)


class Clock(ABC):
    """Source of the current time."""

    @abstractmethod
    def now(self) -> datetime:
        """Return the current time."""

    @abstractmethod
    def since(self, moment: datetime) -> timedelta:
        """Return the time elapsed since ``moment``."""


class RealClock(Clock):
    """Clock backed by the system time, in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def since(self, moment: datetime) -> timedelta:
        return self.now() - moment


@dataclass
class FakeClock(Clock):
    """Clock that reports a settable fixed time."""

    current: datetime = field(default=ZERO_TIME)

    def now(self) -> datetime:
        return self.current

    def since(self, moment: datetime) -> timedelta:
        return self.current - moment