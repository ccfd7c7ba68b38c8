"""Display refresh poller.

Fetches the aggregator's ``/status`` on a fixed cadence and keeps a
:class:`ViewState` for the display. While the status reports rain, a
second, slower cadence fetches predictions from ``/ai-predict``.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Optional

import httpx
import structlog
from pydantic import ValidationError

from services.poller.scheduler import PredictionScheduler
from shared.errors import RainMonitorError
from shared.models.rain import Prediction, RainStatus, ViewState

logger = structlog.get_logger(__name__)

STATUS_PATH = "/status"
PREDICTION_PATH = "/ai-predict"


class PollerFetchError(RainMonitorError):
    """A status or prediction request failed; the tick is skipped."""


class DisplayPoller:
    """Drives :class:`ViewState` from the aggregator's HTTP facade.

    Both tasks run on one event loop and their writes to the view are
    serialised by an ``asyncio.Lock``. Use as an async context manager
    so teardown always cancels both tasks::

        async with DisplayPoller("http://localhost:4000") as poller:
            poller.start()
            ...
    """

    def __init__(
        self,
        base_url: str,
        poll_interval_s: float = 2.0,
        prediction_interval_s: float = 5.0,
        timeout_s: float = 3.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        on_update: Optional[Callable[[ViewState], None]] = None,
    ) -> None:
        if poll_interval_s <= 0:
            raise ValueError("poll_interval_s must be positive")
        if prediction_interval_s <= poll_interval_s:
            raise ValueError("prediction_interval_s must be longer than poll_interval_s")

        self.poll_interval_s = poll_interval_s
        self._client = httpx.AsyncClient(base_url=base_url, timeout=timeout_s, transport=transport)
        self._on_update = on_update
        self._view = ViewState()
        self._lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None
        self.predictions = PredictionScheduler(self._prediction_tick, prediction_interval_s)

    @property
    def view(self) -> ViewState:
        return self._view

    # ── lifecycle ────────────────────────────────────────────
    async def __aenter__(self) -> "DisplayPoller":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.stop()

    def start(self) -> None:
        """Start the primary refresh task (non-blocking)."""
        if self._task is not None:
            return
        self._task = asyncio.create_task(self.run())
        logger.info("poller_started", interval_s=self.poll_interval_s)

    async def stop(self) -> None:
        """Cancel both tasks and close the HTTP client."""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        await self.predictions.aclose()
        await self._client.aclose()
        logger.info("poller_stopped")

    async def run(self) -> None:
        """Refresh now and then every ``poll_interval_s`` seconds."""
        while True:
            await self.refresh_once()
            await asyncio.sleep(self.poll_interval_s)

    # ── HTTP ─────────────────────────────────────────────────
    async def fetch_status(self) -> RainStatus:
        try:
            resp = await self._client.get(STATUS_PATH)
            resp.raise_for_status()
            return RainStatus.model_validate(resp.json())
        except (httpx.HTTPError, ValueError, ValidationError) as e:
            raise PollerFetchError(f"status fetch failed: {e}") from e

    async def fetch_prediction(self) -> Prediction:
        try:
            resp = await self._client.post(PREDICTION_PATH)
            resp.raise_for_status()
            return Prediction.model_validate(resp.json())
        except (httpx.HTTPError, ValueError, ValidationError) as e:
            raise PollerFetchError(f"prediction fetch failed: {e}") from e

    # ── ticks ────────────────────────────────────────────────
    async def refresh_once(self) -> ViewState:
        """Primary tick: fetch the status and start/stop predictions."""
        try:
            status = await self.fetch_status()
        except PollerFetchError as e:
            logger.warning("status_fetch_failed", error=str(e))
            async with self._lock:
                if self._view.loading:
                    self._view = self._view.model_copy(update={"loading": False})
                view = self._view
            return view

        async with self._lock:
            if status.is_raining:
                self._view = ViewState.from_status(status, prediction=self._view.prediction)
                self.predictions.start()
            else:
                self._view = ViewState.from_status(status.client_view(), prediction=None)
                self.predictions.stop()
            view = self._view

        self._notify(view)
        return view

    async def _prediction_tick(self, generation: int) -> None:
        try:
            prediction = await self.fetch_prediction()
        except PollerFetchError as e:
            logger.warning("prediction_fetch_failed", error=str(e))
            return

        async with self._lock:
            if not self.predictions.is_current(generation):
                logger.debug("stale_prediction_discarded", generation=generation)
                return
            self._view = self._view.model_copy(update={"prediction": prediction})
            view = self._view

        self._notify(view)

    def _notify(self, view: ViewState) -> None:
        if self._on_update is None:
            return
        try:
            self._on_update(view)
        except Exception:
            logger.exception("view_update_callback_error")
