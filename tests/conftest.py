"""Shared fixtures for the rain monitor test suite."""

from __future__ import annotations

import pytest

from services.aggregator.engine import RainEventEngine
from shared.config import Settings
from tests.helpers import DETAIL, PRESENCE, FakeClock


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def engine(clock) -> RainEventEngine:
    return RainEventEngine(presence_topic=PRESENCE, detail_topic=DETAIL, trigger="Raining", clock=clock)


@pytest.fixture
def settings() -> Settings:
    s = Settings()
    s.TELEMETRY_TRANSPORT = "none"
    s.PRESENCE_TOPIC = PRESENCE
    s.DETAIL_TOPIC = DETAIL
    s.PRESENCE_TRIGGER = "Raining"
    s.ORACLE_URL = "http://oracle.test/ai-predict"
    s.ORACLE_TIMEOUT_S = 0.5
    return s
