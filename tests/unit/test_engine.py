"""Rain event engine: state transitions and running mean."""

from __future__ import annotations

import random
import threading
from statistics import fmean

import pytest
from pydantic import ValidationError

from services.aggregator.engine import RainEventEngine
from shared.errors import MalformedTelemetry
from shared.models.rain import Reading, TelemetryEvent
from tests.helpers import DETAIL, PRESENCE, detail, presence


class TestRunningMean:

    def test_example_event(self, engine):
        engine.apply(presence("Raining"))
        engine.apply(TelemetryEvent(channel=DETAIL, payload="Intensity: 40%, Duration: 5s"))
        engine.apply(TelemetryEvent(channel=DETAIL, payload="Intensity: 60%, Duration: 10s"))

        snap = engine.snapshot()
        assert snap.is_raining is True
        assert snap.intensity == 60
        assert snap.duration == "10s"
        assert snap.average_intensity == 50
        assert len(snap.readings) == 2

    @pytest.mark.parametrize("seed", [1, 7, 42])
    def test_mean_matches_readings(self, engine, seed):
        rng = random.Random(seed)
        values = [round(rng.uniform(0, 100), 2) for _ in range(rng.randint(1, 40))]

        engine.apply(presence("Raining"))
        for v in values:
            engine.apply(detail(v))

        snap = engine.snapshot()
        assert [r.intensity for r in snap.readings] == values
        assert snap.average_intensity == pytest.approx(fmean(values))

    def test_readings_are_chronological(self, engine, clock):
        engine.apply(presence("Raining"))
        for v in (10, 20, 30):
            engine.apply(detail(v))
        stamps = [r.timestamp for r in engine.snapshot().readings]
        assert stamps == sorted(stamps)
        assert len(set(stamps)) == 3


class TestDryReset:

    def test_dry_clears_event(self, engine):
        engine.apply(presence("Raining"))
        engine.apply(detail(40, "5s"))
        engine.apply(detail(60, "10s"))
        engine.apply(presence("Dry"))

        snap = engine.snapshot()
        assert snap.is_raining is False
        assert snap.readings == ()
        assert snap.average_intensity == 0
        assert snap.start_time is None
        # last observed values are kept internally
        assert snap.intensity == 60
        assert snap.duration == "10s"

    def test_client_view_masks_dry_values(self, engine):
        engine.apply(presence("Raining"))
        engine.apply(detail(60, "10s"))
        engine.apply(presence("Dry"))

        view = engine.snapshot().client_view()
        assert view.intensity == 0
        assert view.duration == "0s"

    def test_client_view_untouched_while_raining(self, engine):
        engine.apply(presence("Raining"))
        engine.apply(detail(60, "10s"))
        snap = engine.snapshot()
        assert snap.client_view() == snap

    @pytest.mark.parametrize("payload", ["Dry", "raining", "Raining ", "", "0"])
    def test_anything_but_trigger_means_dry(self, engine, payload):
        engine.apply(presence("Raining"))
        engine.apply(detail(30))
        engine.apply(presence(payload))
        snap = engine.snapshot()
        assert snap.is_raining is False
        assert snap.readings == ()

    def test_reset_fires_on_every_dry_message(self, engine, clock):
        """The reset is level-triggered: dry→dry still clears the event."""
        engine.apply(presence("Dry"))
        # Leftover state, as a racing detail handler could have left it
        engine._readings = [Reading(intensity=12.0, timestamp=clock())]
        engine._start_time = clock()
        engine._average_intensity = 12.0
        engine.apply(presence("Dry"))

        snap = engine.snapshot()
        assert snap.readings == ()
        assert snap.average_intensity == 0
        assert snap.start_time is None

    def test_repeated_raining_is_idempotent(self, engine):
        engine.apply(presence("Raining"))
        engine.apply(detail(20))
        before = engine.snapshot()
        engine.apply(presence("Raining"))
        assert engine.snapshot() == before


class TestStartTime:

    def test_set_on_first_detail_only(self, engine, clock):
        engine.apply(presence("Raining"))
        assert engine.snapshot().start_time is None

        engine.apply(detail(10))
        first = engine.snapshot().start_time
        assert first is not None

        for v in (20, 30, 40):
            engine.apply(detail(v))
        assert engine.snapshot().start_time == first
        assert engine.snapshot().readings[0].timestamp == first

    def test_new_event_gets_new_start(self, engine):
        engine.apply(presence("Raining"))
        engine.apply(detail(10))
        first = engine.snapshot().start_time

        engine.apply(presence("Dry"))
        engine.apply(presence("Raining"))
        engine.apply(detail(50))

        snap = engine.snapshot()
        assert snap.start_time is not None and snap.start_time > first
        assert [r.intensity for r in snap.readings] == [50]
        assert snap.average_intensity == 50

    def test_first_reading_clears_stale_readings(self, engine):
        """A new event's first reading discards anything left from before."""
        engine.apply(presence("Raining"))
        engine.apply(detail(90))
        # Leftover reading without a start time, as if a reset raced
        engine._start_time = None
        engine.apply(detail(10))

        snap = engine.snapshot()
        assert [r.intensity for r in snap.readings] == [10]
        assert snap.average_intensity == 10

    def test_malformed_first_detail_does_not_latch(self, engine):
        engine.apply(presence("Raining"))
        with pytest.raises(MalformedTelemetry):
            engine.apply(TelemetryEvent(channel=DETAIL, payload="garbage"))
        assert engine.snapshot().start_time is None


class TestDryDetails:

    def test_updates_fields_but_no_reading(self, engine):
        engine.apply(detail(35, "7s"))
        snap = engine.snapshot()
        assert snap.intensity == 35
        assert snap.duration == "7s"
        assert snap.readings == ()
        assert snap.average_intensity == 0
        assert snap.start_time is None

    def test_dry_details_after_event(self, engine):
        engine.apply(presence("Raining"))
        engine.apply(detail(40))
        engine.apply(presence("Dry"))
        for v in (5, 15, 25):
            engine.apply(detail(v))

        snap = engine.snapshot()
        assert snap.intensity == 25
        assert snap.readings == ()
        assert snap.average_intensity == 0


class TestBadInput:

    def test_malformed_detail_leaves_state_unchanged(self, engine):
        engine.apply(presence("Raining"))
        engine.apply(detail(40, "5s"))
        before = engine.snapshot()

        with pytest.raises(MalformedTelemetry):
            engine.apply(TelemetryEvent(channel=DETAIL, payload="garbage"))

        assert engine.snapshot() == before
        assert engine.stats()["malformed"] == 1

    def test_events_after_malformed_still_apply(self, engine):
        engine.apply(presence("Raining"))
        with pytest.raises(MalformedTelemetry):
            engine.apply(TelemetryEvent(channel=DETAIL, payload="Intensity: x%, Duration: 1s"))
        engine.apply(detail(70))
        assert engine.snapshot().average_intensity == 70

    def test_unknown_channel_ignored(self, engine):
        assert engine.apply(TelemetryEvent(channel="Other/topic", payload="Raining")) is False
        assert engine.snapshot().is_raining is False
        assert engine.stats()["unknown_channel"] == 1

    def test_counters(self, engine):
        engine.apply(presence("Raining"))
        engine.apply(detail(1))
        engine.apply(detail(2))
        assert engine.stats() == {
            "presence_events": 1,
            "detail_events": 2,
            "malformed": 0,
            "unknown_channel": 0,
        }


class TestSnapshot:

    def test_snapshot_is_immutable(self, engine):
        engine.apply(presence("Raining"))
        engine.apply(detail(40))
        snap = engine.snapshot()
        with pytest.raises(ValidationError):
            snap.intensity = 1.0  # type: ignore[misc]
        assert isinstance(snap.readings, tuple)

    def test_snapshot_detached_from_later_events(self, engine):
        engine.apply(presence("Raining"))
        engine.apply(detail(40))
        snap = engine.snapshot()
        engine.apply(detail(80))
        engine.apply(presence("Dry"))
        assert len(snap.readings) == 1
        assert snap.average_intensity == 40

    def test_json_uses_camel_case(self, engine):
        engine.apply(presence("Raining"))
        engine.apply(detail(40))
        data = engine.snapshot().model_dump(mode="json", by_alias=True)
        assert set(data) == {
            "isRaining", "intensity", "duration", "averageIntensity", "startTime", "readings",
        }
        assert set(data["readings"][0]) == {"intensity", "timestamp"}

    def test_readers_never_see_torn_state(self):
        engine = RainEventEngine(presence_topic=PRESENCE, detail_topic=DETAIL)
        stop = threading.Event()
        problems: list[str] = []

        def writer():
            rng = random.Random(3)
            for i in range(2000):
                if i % 50 == 0:
                    engine.apply(presence("Dry" if (i // 50) % 2 else "Raining"))
                engine.apply(detail(rng.uniform(0, 100)))
            stop.set()

        def reader():
            while not stop.is_set():
                snap = engine.snapshot()
                if snap.readings and not snap.is_raining:
                    problems.append("readings while dry")
                if snap.readings:
                    mean = fmean(r.intensity for r in snap.readings)
                    if abs(mean - snap.average_intensity) > 1e-9:
                        problems.append("stale average")
                elif snap.average_intensity != 0:
                    problems.append("average without readings")

        threads = [threading.Thread(target=writer)] + [threading.Thread(target=reader) for _ in range(3)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        assert problems == []
