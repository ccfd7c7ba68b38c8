"""Rain event aggregation engine.

Owns the canonical rain status and applies telemetry events to it
one at a time. Two states, driven only by telemetry:

* Dry — ``is_raining`` is false, no readings are kept.
* Wet — every detail report appends a reading and the running mean
  intensity is recomputed over the whole event.

Writers and readers share one lock so a snapshot never observes a
half-applied event.
"""

from __future__ import annotations

import threading
from datetime import datetime
from statistics import fmean
from typing import Callable, Dict, List, Optional

import structlog

from services.aggregator.parser import parse_detail_payload
from shared.errors import MalformedTelemetry
from shared.models.rain import (
    DRY_DURATION,
    DetailReport,
    RainStatus,
    Reading,
    TelemetryEvent,
    utc_now,
)

logger = structlog.get_logger(__name__)


class RainEventEngine:
    """State machine for the current rain event.

    Args:
        presence_topic: channel carrying the on/off rain signal.
        detail_topic: channel carrying intensity/duration reports.
        trigger: presence payload meaning "raining"; compared exactly.
        clock: source of capture timestamps.
    """

    def __init__(
        self,
        presence_topic: str,
        detail_topic: str,
        trigger: str = "Raining",
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.presence_topic = presence_topic
        self.detail_topic = detail_topic
        self.trigger = trigger
        self._clock = clock
        self._lock = threading.Lock()

        self._is_raining = False
        self._intensity = 0.0
        self._duration = DRY_DURATION
        self._average_intensity = 0.0
        self._start_time: Optional[datetime] = None
        self._readings: List[Reading] = []

        self._stats: Dict[str, int] = {
            "presence_events": 0,
            "detail_events": 0,
            "malformed": 0,
            "unknown_channel": 0,
        }

    # ── public API ───────────────────────────────────────────
    def apply(self, event: TelemetryEvent) -> bool:
        """Apply one telemetry event.

        Returns False for events on channels the engine does not know.

        Raises:
            MalformedTelemetry: for an unparseable detail payload. State
                is left untouched.
        """
        if event.channel == self.presence_topic:
            with self._lock:
                self._stats["presence_events"] += 1
                self._apply_presence(event.payload)
            return True

        if event.channel == self.detail_topic:
            try:
                report = parse_detail_payload(event.payload)
            except MalformedTelemetry:
                with self._lock:
                    self._stats["malformed"] += 1
                raise
            with self._lock:
                self._stats["detail_events"] += 1
                self._apply_detail(report)
            return True

        with self._lock:
            self._stats["unknown_channel"] += 1
        logger.warning("unknown_channel", channel=event.channel)
        return False

    def snapshot(self) -> RainStatus:
        """Immutable copy of the current status."""
        with self._lock:
            return RainStatus(
                is_raining=self._is_raining,
                intensity=self._intensity,
                duration=self._duration,
                average_intensity=self._average_intensity,
                start_time=self._start_time,
                readings=tuple(self._readings),
            )

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._stats)

    # ── transitions (caller holds the lock) ──────────────────
    def _apply_presence(self, payload: str) -> None:
        was_raining = self._is_raining
        self._is_raining = payload == self.trigger

        if self._is_raining:
            if not was_raining:
                logger.info("rain_started")
            return

        # Every dry message resets the event, not only the wet→dry edge.
        self._readings = []
        self._start_time = None
        self._average_intensity = 0.0
        if was_raining:
            logger.info("rain_stopped")

    def _apply_detail(self, report: DetailReport) -> None:
        self._intensity = report.intensity
        self._duration = report.duration

        if not self._is_raining:
            logger.debug("dry_detail_ignored", intensity=report.intensity)
            return

        now = self._clock()
        if self._start_time is None:
            self._start_time = now
            # Drops readings a delayed dry reset may have left behind
            self._readings = []

        self._readings.append(Reading(intensity=report.intensity, timestamp=now))
        self._average_intensity = fmean(r.intensity for r in self._readings)
        logger.debug(
            "reading_recorded",
            intensity=report.intensity,
            duration=report.duration,
            readings=len(self._readings),
            average_intensity=round(self._average_intensity, 3),
        )
