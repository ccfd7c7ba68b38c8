"""Read side of the aggregator: snapshots and prediction forwarding."""

from __future__ import annotations

from typing import Any

from services.aggregator.engine import RainEventEngine
from services.aggregator.oracle_client import OracleClient
from shared.models.rain import OracleRequest, RainStatus


class RainStatusFacade:
    """What the HTTP layer talks to; never mutates the rain status."""

    def __init__(self, engine: RainEventEngine, oracle: OracleClient) -> None:
        self._engine = engine
        self._oracle = oracle

    def get_snapshot(self) -> RainStatus:
        return self._engine.snapshot()

    async def request_prediction(self) -> Any:
        """Forward the latest intensity and duration to the oracle.

        Raises:
            UpstreamUnavailable: the oracle failed or timed out.
        """
        snapshot = self._engine.snapshot()
        return await self._oracle.predict(
            OracleRequest(rain_intensity=snapshot.intensity, duration=snapshot.duration)
        )
