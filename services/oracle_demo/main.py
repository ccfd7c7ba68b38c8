"""Demo prediction oracle — FastAPI service (port 5000).

Stand-in for the remaining-rain model so the aggregator and the poller
can run end to end on a laptop. The estimate is a plain heuristic, not
the production model.

Endpoints:
  POST /ai-predict   → {predicted_remaining_minutes, confidence}
  GET  /health       → liveness

Run: ``uvicorn services.oracle_demo.main:app --reload --port 5000``
"""

from __future__ import annotations

import re
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import structlog
import uvicorn
from fastapi import FastAPI, HTTPException

from shared.config import get_settings
from shared.logging_config import configure_logging
from shared.models.rain import OracleRequest, Prediction

logger = structlog.get_logger(__name__)

_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([smh]?)\s*$")
_UNIT_SECONDS = {"": 1, "s": 1, "m": 60, "h": 3600}


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL, settings.LOG_JSON)
    logger.info("oracle_demo_ready", port=settings.ORACLE_PORT)
    yield


app = FastAPI(
    title="Rain Oracle (demo)",
    version="1.0.0",
    description="Heuristic remaining-rain estimate for local development",
    lifespan=lifespan,
)


def parse_duration_seconds(label: str) -> float:
    """``"12s"`` → 12.0, ``"3m"`` → 180.0. Raises ValueError otherwise."""
    match = _DURATION_RE.match(label)
    if match is None:
        raise ValueError(f"unrecognised duration: {label!r}")
    value, unit = match.groups()
    return float(value) * _UNIT_SECONDS[unit]


def estimate(rain_intensity: float, elapsed_s: float) -> Prediction:
    """Heavier rain lasts longer; a longer observation is more certain."""
    intensity = min(max(rain_intensity, 0.0), 100.0)
    remaining = round(2.0 + intensity * 0.3, 1)

    if elapsed_s >= 600:
        confidence = "High"
    elif elapsed_s >= 60:
        confidence = "Medium"
    else:
        confidence = "Low"
    return Prediction(predicted_remaining_minutes=remaining, confidence=confidence)


@app.post("/ai-predict", response_model=Prediction)
async def ai_predict(req: OracleRequest):
    try:
        elapsed_s = parse_duration_seconds(req.duration)
    except ValueError as e:
        raise HTTPException(400, str(e))

    prediction = estimate(req.rain_intensity, elapsed_s)
    logger.info(
        "oracle_demo_prediction",
        rain_intensity=req.rain_intensity,
        duration=req.duration,
        predicted_remaining_minutes=prediction.predicted_remaining_minutes,
        confidence=prediction.confidence,
    )
    return prediction


@app.get("/health")
async def health():
    return {
        "service": "oracle_demo",
        "status": "healthy",
        "version": "1.0.0",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


if __name__ == "__main__":
    uvicorn.run(
        "services.oracle_demo.main:app",
        host="0.0.0.0",
        port=get_settings().ORACLE_PORT,
        reload=True,
    )
