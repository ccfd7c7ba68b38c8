# Rain monitor — shared models package

from shared.models.rain import (
    DRY_DURATION,
    DetailReport,
    OracleRequest,
    Prediction,
    RainStatus,
    Reading,
    TelemetryEvent,
    ViewState,
)

__all__ = [
    "DRY_DURATION",
    "DetailReport",
    "OracleRequest",
    "Prediction",
    "RainStatus",
    "Reading",
    "TelemetryEvent",
    "ViewState",
]
