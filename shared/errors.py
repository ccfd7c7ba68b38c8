"""Error taxonomy for the rain monitor.

None of these are fatal: the aggregator keeps consuming telemetry and
the poller keeps polling after any of them.
"""

from __future__ import annotations


class RainMonitorError(Exception):
    """Base class for recoverable rain monitor failures."""


class MalformedTelemetry(RainMonitorError):
    """A detail payload could not be parsed; the event is dropped."""

    def __init__(self, payload: str, reason: str) -> None:
        super().__init__(f"{reason}: {payload!r}")
        self.payload = payload
        self.reason = reason


class TransportFault(RainMonitorError):
    """Broker connection, subscription or delivery error."""


class UpstreamUnavailable(RainMonitorError):
    """The prediction oracle errored, timed out or answered garbage."""
