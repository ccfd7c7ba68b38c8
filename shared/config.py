"""Centralised configuration for the rain monitor services.

Loads values from environment variables (via ``python-dotenv``)
so that the aggregator, the poller and the demo oracle share the
same config surface area.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


class Settings:
    """Simple settings object — reads from env vars with sensible defaults."""

    # ── Aggregator HTTP facade ───────────────────────────────
    AGGREGATOR_HOST: str = os.getenv("AGGREGATOR_HOST", "0.0.0.0")
    AGGREGATOR_PORT: int = int(os.getenv("AGGREGATOR_PORT", "4000"))
    AGGREGATOR_URL: str = os.getenv("AGGREGATOR_URL", "http://localhost:4000")

    # ── Telemetry transport ──────────────────────────────────
    TELEMETRY_TRANSPORT: str = os.getenv("TELEMETRY_TRANSPORT", "mqtt").lower()  # mqtt | kafka | none
    PRESENCE_TOPIC: str = os.getenv("PRESENCE_TOPIC", "RainSensorData")
    DETAIL_TOPIC: str = os.getenv("DETAIL_TOPIC", "RainSensorData/aiData")
    PRESENCE_TRIGGER: str = os.getenv("PRESENCE_TRIGGER", "Raining")

    # ── MQTT ─────────────────────────────────────────────────
    MQTT_BROKER: str = os.getenv("MQTT_BROKER", "localhost")
    MQTT_PORT: int = int(os.getenv("MQTT_PORT", "1883"))
    MQTT_USERNAME: str = os.getenv("MQTT_USERNAME", "")
    MQTT_PASSWORD: str = os.getenv("MQTT_PASSWORD", "")
    MQTT_TLS: bool = _flag("MQTT_TLS", "false")
    MQTT_CLIENT_ID: str = os.getenv("MQTT_CLIENT_ID", "rain-monitor-aggregator")
    MQTT_KEEPALIVE_S: int = int(os.getenv("MQTT_KEEPALIVE_S", "60"))

    # ── Kafka ────────────────────────────────────────────────
    KAFKA_BOOTSTRAP_SERVERS: str = os.getenv("KAFKA_BOOTSTRAP_SERVERS", "localhost:9092")
    KAFKA_GROUP_PREFIX: str = os.getenv("KAFKA_GROUP_PREFIX", "rain-monitor")

    # ── Prediction oracle ────────────────────────────────────
    ORACLE_URL: str = os.getenv("ORACLE_URL", "http://localhost:5000/ai-predict")
    ORACLE_TIMEOUT_S: float = float(os.getenv("ORACLE_TIMEOUT_S", "5.0"))
    ORACLE_PORT: int = int(os.getenv("ORACLE_PORT", "5000"))

    # ── Poller ───────────────────────────────────────────────
    POLL_INTERVAL_S: float = float(os.getenv("POLL_INTERVAL_S", "2.0"))
    PREDICTION_INTERVAL_S: float = float(os.getenv("PREDICTION_INTERVAL_S", "5.0"))
    POLLER_HTTP_TIMEOUT_S: float = float(os.getenv("POLLER_HTTP_TIMEOUT_S", "3.0"))

    # ── General ──────────────────────────────────────────────
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_JSON: bool = _flag("LOG_JSON", "false")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a singleton Settings instance."""
    return Settings()
