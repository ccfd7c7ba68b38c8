"""Rain Aggregator — FastAPI service (port 4000).

Consumes rain sensor telemetry (MQTT or Kafka), keeps the current rain
event summary, and serves it to the display.

Endpoints:
  GET  /status               → current rain status snapshot
  POST /ai-predict           → forward intensity/duration to the oracle
  POST /api/v1/telemetry     → inject one telemetry message over HTTP
  GET  /health               → liveness + transport and event counters

Run: ``uvicorn services.aggregator.main:app --reload --port 4000``
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Optional

import structlog
import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from services.aggregator.consumer import TelemetryConsumer
from services.aggregator.engine import RainEventEngine
from services.aggregator.facade import RainStatusFacade
from services.aggregator.oracle_client import OracleClient
from shared.config import Settings, get_settings
from shared.errors import TransportFault, UpstreamUnavailable
from shared.kafka_client import KafkaTelemetryClient
from shared.logging_config import configure_logging
from shared.models.rain import RainStatus, TelemetryEvent
from shared.mqtt_client import MqttTelemetryClient

logger = structlog.get_logger(__name__)

SERVICE_VERSION = "1.0.0"
PREDICTION_ERROR = {"error": "Failed to get AI prediction"}

TransportFactory = Callable[[Settings, Callable[[str, str], None]], Any]


class TelemetryIngest(BaseModel):
    channel: str = Field(..., description="Presence or detail topic name")
    payload: str = Field(..., description="Raw message body")


def build_transport(settings: Settings, on_message: Callable[[str, str], None]) -> Any:
    """Return the configured telemetry transport, or None for HTTP-only."""
    topics = [settings.PRESENCE_TOPIC, settings.DETAIL_TOPIC]
    kind = settings.TELEMETRY_TRANSPORT
    if kind == "mqtt":
        return MqttTelemetryClient(topics, on_message, settings=settings)
    if kind == "kafka":
        return KafkaTelemetryClient(topics, on_message, settings=settings)
    if kind != "none":
        logger.warning("unknown_transport_http_only", transport=kind)
    return None


def create_app(
    settings: Optional[Settings] = None,
    oracle: Optional[OracleClient] = None,
    transport_factory: TransportFactory = build_transport,
) -> FastAPI:
    """Wire engine, consumer, facade and transport into a FastAPI app."""
    settings = settings or get_settings()
    engine = RainEventEngine(
        presence_topic=settings.PRESENCE_TOPIC,
        detail_topic=settings.DETAIL_TOPIC,
        trigger=settings.PRESENCE_TRIGGER,
    )
    consumer = TelemetryConsumer(engine)
    oracle = oracle or OracleClient(settings.ORACLE_URL, timeout_s=settings.ORACLE_TIMEOUT_S)
    facade = RainStatusFacade(engine, oracle)

    def _on_transport_message(topic: str, payload: str) -> None:
        consumer.submit_threadsafe(TelemetryEvent(channel=topic, payload=payload))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings.LOG_LEVEL, settings.LOG_JSON)
        logger.info(
            "aggregator_starting",
            port=settings.AGGREGATOR_PORT,
            transport=settings.TELEMETRY_TRANSPORT,
            oracle=settings.ORACLE_URL,
        )
        await consumer.start()

        transport = transport_factory(settings, _on_transport_message)
        if transport is not None:
            try:
                transport.start()
            except TransportFault as e:
                # HTTP ingestion keeps working without a broker
                logger.warning("transport_unavailable", error=str(e))
        app.state.transport = transport

        logger.info("aggregator_ready")
        yield

        if transport is not None:
            transport.stop()
        await consumer.stop()
        logger.info("aggregator_shutdown")

    app = FastAPI(
        title="Rain Aggregator",
        version=SERVICE_VERSION,
        description="Rain sensor telemetry aggregation and prediction facade",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.settings = settings
    app.state.engine = engine
    app.state.consumer = consumer
    app.state.facade = facade
    app.state.transport = None

    # ── Status & prediction ──────────────────────────────────────────────

    @app.get("/status", response_model=RainStatus)
    async def get_status():
        """Return the current rain status snapshot."""
        return facade.get_snapshot()

    @app.post("/ai-predict")
    async def ai_predict():
        """Ask the oracle how much longer it will rain."""
        try:
            return await facade.request_prediction()
        except UpstreamUnavailable as e:
            logger.error("ai_prediction_failed", error=str(e))
            return JSONResponse(PREDICTION_ERROR, status_code=500)

    # ── HTTP ingestion ───────────────────────────────────────────────────

    @app.post("/api/v1/telemetry", status_code=202)
    async def ingest_telemetry(body: TelemetryIngest):
        """Inject one telemetry message, e.g. from a device without MQTT."""
        if body.channel not in (engine.presence_topic, engine.detail_topic):
            raise HTTPException(422, f"Unknown channel: {body.channel}")
        if not consumer.is_running:
            raise HTTPException(503, "Telemetry consumer not running")

        applied = await consumer.publish(TelemetryEvent(channel=body.channel, payload=body.payload))
        return {"status": "accepted", "channel": body.channel, "applied": applied}

    # ── Health ───────────────────────────────────────────────────────────

    @app.get("/health")
    async def health(request: Request):
        transport = request.app.state.transport
        return {
            "service": "aggregator",
            "status": "healthy" if consumer.is_running else "initializing",
            "version": SERVICE_VERSION,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "transport": settings.TELEMETRY_TRANSPORT,
            "transport_connected": bool(transport is not None and transport.is_connected),
            "transport_faults": getattr(transport, "faults", 0),
            "events": engine.stats(),
        }

    return app


app = create_app()


if __name__ == "__main__":
    _settings = get_settings()
    uvicorn.run(
        "services.aggregator.main:app",
        host=_settings.AGGREGATOR_HOST,
        port=_settings.AGGREGATOR_PORT,
        reload=True,
    )
