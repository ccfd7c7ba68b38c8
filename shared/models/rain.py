"""Pydantic v2 schemas for the rain monitor.

These schemas define the contract between the rain sensor telemetry,
the aggregator's HTTP facade, the prediction oracle and the display
poller. JSON keys of the status payload are camelCase.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

DRY_DURATION = "0s"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Reading(BaseModel):
    """One intensity sample captured while it is raining."""

    model_config = ConfigDict(frozen=True)

    intensity: float = Field(..., description="Rain intensity in percent")
    timestamp: datetime = Field(..., description="Capture UTC timestamp")


class RainStatus(BaseModel):
    """Point-in-time copy of the current rain event.

    Served by ``GET /status``. Instances are immutable; the aggregator
    builds a fresh one for every reader.
    """

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        json_schema_extra={"examples": [
            {
                "isRaining": True,
                "intensity": 60.0,
                "duration": "10s",
                "averageIntensity": 50.0,
                "startTime": "2025-08-15T06:30:00Z",
                "readings": [
                    {"intensity": 40.0, "timestamp": "2025-08-15T06:30:00Z"},
                    {"intensity": 60.0, "timestamp": "2025-08-15T06:30:05Z"},
                ],
            }
        ]},
    )

    is_raining: bool = Field(False, alias="isRaining")
    intensity: float = Field(0.0, description="Latest reported intensity in percent")
    duration: str = Field(DRY_DURATION, description="Latest reported duration label, verbatim")
    average_intensity: float = Field(0.0, alias="averageIntensity")
    start_time: Optional[datetime] = Field(None, alias="startTime")
    readings: Tuple[Reading, ...] = ()

    def client_view(self) -> "RainStatus":
        """Return the copy a display should show.

        While dry the last reported intensity and duration are kept
        internally but a client sees ``0`` and ``"0s"``.
        """
        if self.is_raining:
            return self
        return self.model_copy(update={"intensity": 0.0, "duration": DRY_DURATION})


class DetailReport(BaseModel):
    """Parsed ``Intensity: <n>%, Duration: <label>`` payload."""

    model_config = ConfigDict(frozen=True)

    intensity: float
    duration: str


class TelemetryEvent(BaseModel):
    """One inbound message from the presence or detail channel."""

    model_config = ConfigDict(frozen=True)

    channel: str = Field(..., description="Topic the message arrived on")
    payload: str = Field(..., description="Raw UTF-8 message body")
    received_at: datetime = Field(default_factory=utc_now)


class OracleRequest(BaseModel):
    """Body sent to the prediction oracle."""

    rain_intensity: float
    duration: str


class Prediction(BaseModel):
    """Oracle answer. Unknown keys are preserved."""

    model_config = ConfigDict(extra="allow")

    predicted_remaining_minutes: float
    confidence: str


class ViewState(BaseModel):
    """What the display renders; produced only by the poller."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    is_raining: bool = Field(False, alias="isRaining")
    intensity: float = 0.0
    duration: str = DRY_DURATION
    average_intensity: float = Field(0.0, alias="averageIntensity")
    start_time: Optional[datetime] = Field(None, alias="startTime")
    readings: Tuple[Reading, ...] = ()
    prediction: Optional[Prediction] = None
    loading: bool = True

    @classmethod
    def from_status(
        cls,
        status: RainStatus,
        prediction: Optional[Prediction] = None,
    ) -> "ViewState":
        return cls(
            is_raining=status.is_raining,
            intensity=status.intensity,
            duration=status.duration,
            average_intensity=status.average_intensity,
            start_time=status.start_time,
            readings=status.readings,
            prediction=prediction,
            loading=False,
        )
