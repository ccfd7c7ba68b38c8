"""Builders shared by the unit tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from shared.models.rain import TelemetryEvent

PRESENCE = "RainSensorData"
DETAIL = "RainSensorData/aiData"


class FakeClock:
    """Deterministic clock; every call advances by ``step``."""

    def __init__(self, start: Optional[datetime] = None, step: timedelta = timedelta(seconds=5)):
        self.now = start or datetime(2025, 8, 15, 6, 30, tzinfo=timezone.utc)
        self.step = step
        self.calls = 0

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + self.step
        self.calls += 1
        return current


def presence(payload: str) -> TelemetryEvent:
    return TelemetryEvent(channel=PRESENCE, payload=payload)


def detail(intensity: float, duration: str = "5s") -> TelemetryEvent:
    return TelemetryEvent(channel=DETAIL, payload=f"Intensity: {intensity}%, Duration: {duration}")
