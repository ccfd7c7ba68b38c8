"""Parser for detail telemetry.

Payload format (fields always in this order)::

    Intensity: 42.5%, Duration: 12s
"""

from __future__ import annotations

import math

from shared.errors import MalformedTelemetry
from shared.models.rain import DetailReport

FIELD_SEPARATOR = ", "
VALUE_MARKER = ": "


def _field_value(payload: str, field: str, name: str) -> str:
    label, marker, value = field.partition(VALUE_MARKER)
    if not marker or not label.strip():
        raise MalformedTelemetry(payload, f"{name} field has no label")
    if not value:
        raise MalformedTelemetry(payload, f"{name} field has no value")
    return value


def parse_detail_payload(payload: str) -> DetailReport:
    """Parse a detail payload into intensity and duration.

    Fields after the second one are ignored. The duration value is
    passed through untouched.

    Raises:
        MalformedTelemetry: when fewer than two fields are present, a
            field lacks its ``": "`` marker or value, or the intensity
            is not a finite number.
    """
    fields = payload.split(FIELD_SEPARATOR)
    if len(fields) < 2:
        raise MalformedTelemetry(payload, "expected intensity and duration fields")

    raw_intensity = _field_value(payload, fields[0], "intensity").strip()
    duration = _field_value(payload, fields[1], "duration")

    if raw_intensity.endswith("%"):
        raw_intensity = raw_intensity[:-1].strip()
    try:
        intensity = float(raw_intensity)
    except ValueError:
        raise MalformedTelemetry(payload, "intensity is not a number") from None
    if not math.isfinite(intensity):
        raise MalformedTelemetry(payload, "intensity is not finite")

    return DetailReport(intensity=intensity, duration=duration)
