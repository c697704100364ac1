"""Unit tests — probes/base.py (Probe contract, LiveTest)."""

from __future__ import annotations

import gc
from typing import Any, Callable

import pytest

from conditioner.events.bus import EVENT_CHANGE, EventBus
from conditioner.probes.base import LiveTest, Probe


class _ThresholdProbe(Probe):
    """Signals with a numeric reading; only changes of 10 or more count."""

    PROBE_ID = "threshold"

    def __init__(self) -> None:
        self.reading = 0
        self.last_reported = 0
        self.signal_fn: Callable[[Any], None] | None = None
        self.setup_calls = 0
        self.checks = 0
        super().__init__()

    def setup(self, signal: Callable[[Any], None]) -> None:
        self.setup_calls += 1
        self.signal_fn = signal

    def measure(self, event: Any) -> bool:
        if abs(event - self.last_reported) < 10:
            return False
        self.last_reported = event
        return True

    def check(self, expected: str, context: Any) -> bool:
        self.checks += 1
        return self.reading >= int(expected)

    def push(self, reading: int) -> None:
        self.reading = reading
        assert self.signal_fn is not None
        self.signal_fn(reading)


class _UnsupportedProbe(Probe):
    PROBE_ID = "unsupported"

    def is_supported(self) -> bool:
        return False

    def check(self, expected: str, context: Any) -> bool:
        return True


@pytest.mark.unit
class TestProbeContract:
    def test_setup_runs_once_for_many_consumers(self) -> None:
        probe = _ThresholdProbe()
        probe.attach(lambda _: None)
        probe.attach(lambda _: None)
        probe.attach(lambda _: None)
        assert probe.setup_calls == 1
        assert probe.consumer_count == 3
        assert probe.is_setup is True

    def test_measure_filters_signals(self) -> None:
        probe = _ThresholdProbe()
        events: list[Any] = []
        probe.attach(events.append)
        probe.push(5)
        probe.push(12)
        probe.push(15)
        assert events == [12]

    def test_detach(self) -> None:
        probe = _ThresholdProbe()
        events: list[Any] = []
        probe.attach(events.append)
        assert probe.detach(events.append) is True
        assert probe.detach(events.append) is False
        probe.push(50)
        assert events == []

    def test_unsupported_always_fails(self) -> None:
        probe = _UnsupportedProbe()
        assert probe.supported is False
        assert probe.assert_expected("anything", None) is False

    def test_unsupported_skips_setup(self) -> None:
        probe = _UnsupportedProbe()
        probe.attach(lambda _: None)
        assert probe.is_setup is False
        assert probe.consumer_count == 0

    def test_setup_failure_marks_unsupported(self) -> None:
        class _Fragile(Probe):
            PROBE_ID = "fragile"

            def setup(self, signal: Callable[[Any], None]) -> None:
                raise OSError("device missing")

            def check(self, expected: str, context: Any) -> bool:
                return True

        probe = _Fragile()
        probe.attach(lambda _: None)
        assert probe.supported is False
        assert probe.error == "device missing"
        assert probe.assert_expected("x", None) is False

    def test_check_error_fails_closed(self) -> None:
        probe = _ThresholdProbe()
        assert probe.assert_expected("not-a-number", None) is False


@pytest.mark.unit
class TestLiveTest:
    def test_arranges_probe(self, bus: EventBus) -> None:
        probe = _ThresholdProbe()
        LiveTest("threshold", probe, "10", None, bus)
        assert probe.is_setup is True
        assert probe.consumer_count == 1

    def test_result_cached_until_change(self, bus: EventBus) -> None:
        probe = _ThresholdProbe()
        test = LiveTest("threshold", probe, "10", None, bus)
        assert test.succeeds() is False
        assert test.succeeds() is False
        assert probe.checks == 1
        assert test.dirty is False

        probe.reading = 20  # no signal: cached result stands
        assert test.succeeds() is False

        probe.push(20)
        assert test.dirty is True
        assert test.succeeds() is True
        assert probe.checks == 2

    def test_change_published_on_bus(self, bus: EventBus) -> None:
        probe = _ThresholdProbe()
        test = LiveTest("threshold", probe, "10", None, bus)
        changes: list[Any] = []
        bus.subscribe(test, EVENT_CHANGE, changes.append)
        probe.push(30)
        assert len(changes) == 1

    def test_all_tests_dirty_before_any_change_published(self, bus: EventBus) -> None:
        probe = _ThresholdProbe()
        first = LiveTest("threshold", probe, "10", None, bus)
        second = LiveTest("threshold", probe, "20", None, bus)
        first.succeeds()
        second.succeeds()
        seen: list[bool] = []
        bus.subscribe(first, EVENT_CHANGE, lambda _: seen.append(second.dirty))
        probe.push(30)
        assert seen == [True]

    def test_context_passed_to_check(self, bus: EventBus) -> None:
        seen: list[Any] = []

        class _ContextProbe(Probe):
            PROBE_ID = "ctx"

            def check(self, expected: str, context: Any) -> bool:
                seen.append(context)
                return True

        probe = _ContextProbe()
        LiveTest("ctx", probe, "x", "sidebar", bus).succeeds()
        assert seen == ["sidebar"]

    def test_close_detaches(self, bus: EventBus) -> None:
        probe = _ThresholdProbe()
        test = LiveTest("threshold", probe, "10", None, bus)
        bus.subscribe(test, EVENT_CHANGE, print)
        test.close()
        assert probe.consumer_count == 0
        assert bus.subscriber_count(test) == 0

    def test_probe_held_weakly(self, bus: EventBus) -> None:
        probe = _ThresholdProbe()
        test = LiveTest("threshold", probe, "0", None, bus)
        del probe
        gc.collect()
        assert test.probe is None
        assert test.succeeds() is False
