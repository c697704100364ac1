"""Unit tests — activation/binding.py (CandidateBinding, ExecutionResult)."""

from __future__ import annotations

import asyncio
from typing import Any, Callable

import pytest

from conditioner.activation.binding import CandidateBinding, ExecutionResult
from conditioner.activation.implementations import ImplementationRegistry
from conditioner.events.bus import (
    EVENT_AVAILABLE,
    EVENT_FAIL,
    EVENT_LOAD,
    EVENT_READY,
    EVENT_UNLOAD,
    EventBus,
)
from conditioner.exceptions import (
    ConfigurationError,
    ContractViolationError,
    DeclarationError,
    MethodNotFoundError,
)
from conditioner.probes.registry import ProbeRegistry
from conditioner.resolvers import MappingResolver

MakeBinding = Callable[..., CandidateBinding]


def _record(bus: EventBus, source: Any, *events: str) -> list[tuple[str, Any]]:
    log: list[tuple[str, Any]] = []
    for event in events:
        bus.subscribe(source, event, lambda data, event=event: log.append((event, data)))
    return log


@pytest.mark.unit
class TestConstruction:
    def test_locator_required(self, make_binding: MakeBinding) -> None:
        with pytest.raises(ConfigurationError):
            make_binding("")

    def test_target_required(self, make_binding: MakeBinding) -> None:
        with pytest.raises(ConfigurationError):
            make_binding("ui.Map", target=None)

    def test_options_json_string(self, make_binding: MakeBinding) -> None:
        binding = make_binding("ui.Map", options='{"zoom": 3}')
        assert binding.options == {"zoom": 3}

    @pytest.mark.parametrize("raw", ["{not json", "[1, 2]"])
    def test_bad_options_string(self, make_binding: MakeBinding, raw: str) -> None:
        with pytest.raises(DeclarationError):
            make_binding("ui.Map", options=raw)

    def test_unconditioned_is_ready_and_available(self, make_binding: MakeBinding) -> None:
        binding = make_binding("ui.Map")
        assert binding.is_conditioned() is False
        assert binding.is_ready() is True
        assert binding.is_available() is True
        assert binding.is_active() is False

    async def test_conditioned_becomes_ready(
        self, make_binding: MakeBinding, bus: EventBus, flags: Any, settle: Any
    ) -> None:
        flags.set("maps")
        binding = make_binding("ui.Map", conditions="flag:{maps}")
        events = _record(bus, binding, EVENT_READY, EVENT_AVAILABLE)
        assert binding.is_conditioned() is True
        assert binding.is_ready() is False
        await settle()
        assert binding.is_ready() is True
        assert events == [(EVENT_READY, binding), (EVENT_AVAILABLE, binding)]

    async def test_unsuitable_ready_without_available(
        self, make_binding: MakeBinding, bus: EventBus, settle: Any
    ) -> None:
        binding = make_binding("ui.Map", conditions="flag:{maps}")
        events = _record(bus, binding, EVENT_READY, EVENT_AVAILABLE)
        await settle()
        assert events == [(EVENT_READY, binding)]
        assert binding.is_available() is False


@pytest.mark.unit
class TestLoad:
    async def test_load_instantiates_with_merged_options(
        self, make_binding: MakeBinding, implementations: ImplementationRegistry, bus: EventBus
    ) -> None:
        implementations.register("ui.Map", options={"zoom": 4, "layers": ["roads"]})
        binding = make_binding("ui.Map", options={"zoom": 7})
        events = _record(bus, binding, EVENT_LOAD)

        assert await binding.load() is True
        instance = binding.instance
        assert binding.is_active() is True
        assert instance.describe() == "MapBehavior"
        assert instance.target == "target-1"
        # behavior defaults < registry defaults < declaration options
        assert instance.options == {"size": "m", "layers": ["base", "roads"], "zoom": 7}
        assert events == [(EVENT_LOAD, instance)]

    async def test_load_through_alias(
        self, make_binding: MakeBinding, implementations: ImplementationRegistry
    ) -> None:
        implementations.register("ui.Map", alias="map")
        binding = make_binding("map")
        assert await binding.load() is True
        assert binding.instance.describe() == "MapBehavior"
        assert binding.matches_locator("ui.Map") is True
        assert binding.matches_locator("map") is True
        assert binding.matches_locator("ui.List") is False

    async def test_concurrent_loads_share_resolution(self, make_binding: MakeBinding) -> None:
        binding = make_binding("ui.Map")
        first, second = binding.load(), binding.load()
        assert first is second
        assert await asyncio.gather(first, second) == [True, True]

    async def test_cached_factory_loads_immediately(self, make_binding: MakeBinding) -> None:
        warm = make_binding("ui.Map", target="warm")
        await warm.load()
        cold = make_binding("ui.Map", target="other")
        future = cold.load()
        assert future.done()
        assert cold.is_active() is True

    async def test_load_when_active_is_noop(self, make_binding: MakeBinding) -> None:
        binding = make_binding("ui.Map")
        await binding.load()
        instance = binding.instance
        assert await binding.load() is True
        assert binding.instance is instance

    async def test_unload_during_resolution_discards_result(
        self, make_binding: MakeBinding, settle: Any
    ) -> None:
        binding = make_binding("ui.Map")
        future = binding.load()
        binding.unload()
        assert await future is False
        assert binding.is_active() is False

    async def test_unsuitable_during_resolution_withdraws(
        self, make_binding: MakeBinding, bus: EventBus, flags: Any, settle: Any
    ) -> None:
        flags.set("maps")
        binding = make_binding("ui.Map", conditions="flag:{maps}")
        await settle()
        events = _record(bus, binding, EVENT_UNLOAD)
        future = binding.load()
        flags.clear("maps")
        assert events == [(EVENT_UNLOAD, binding)]
        assert await future is False
        assert binding.is_active() is False


@pytest.mark.unit
class TestFailure:
    async def test_resolution_failure(self, probes: ProbeRegistry, bus: EventBus) -> None:
        registry = ImplementationRegistry(MappingResolver())
        binding = CandidateBinding(
            "ui.Missing", target="t", implementations=registry, probes=probes, bus=bus
        )
        events = _record(bus, binding, EVENT_FAIL)
        assert await binding.load() is False
        assert binding.failed is True
        assert binding.is_available() is False
        assert "ui.Missing" in (binding.error or "")
        assert events == [(EVENT_FAIL, binding)]

    async def test_no_retry_after_failure(self, probes: ProbeRegistry, bus: EventBus) -> None:
        resolver = MappingResolver()
        registry = ImplementationRegistry(resolver)
        binding = CandidateBinding("ui.Late", target="t", implementations=registry, probes=probes, bus=bus)
        await binding.load()
        resolver.add("ui.Late", dict)
        assert await binding.load() is False
        assert binding.is_active() is False

    async def test_factory_error(
        self, make_binding: MakeBinding, implementations: ImplementationRegistry, bus: EventBus
    ) -> None:
        def explode(target: Any, options: dict[str, Any]) -> Any:
            raise RuntimeError("bad target")

        implementations._factories["ui.Boom"] = explode
        binding = make_binding("ui.Boom")
        events = _record(bus, binding, EVENT_FAIL)
        assert await binding.load() is False
        assert binding.error == "bad target"
        assert len(events) == 1


@pytest.mark.unit
class TestUnload:
    async def test_unload_calls_hook_and_publishes(self, make_binding: MakeBinding, bus: EventBus) -> None:
        binding = make_binding("ui.Map")
        await binding.load()
        instance = binding.instance
        events = _record(bus, binding, EVENT_UNLOAD)
        assert binding.unload() is True
        assert instance.unload_calls == 1
        assert binding.is_active() is False
        assert events == [(EVENT_UNLOAD, binding)]

    def test_unload_without_instance(self, make_binding: MakeBinding) -> None:
        assert make_binding("ui.Map").unload() is False

    async def test_unsuitable_active_binding_unloads_itself(
        self, make_binding: MakeBinding, flags: Any, settle: Any
    ) -> None:
        flags.set("maps")
        binding = make_binding("ui.Map", conditions="flag:{maps}")
        await settle()
        await binding.load()
        instance = binding.instance
        flags.clear("maps")
        assert binding.is_active() is False
        assert instance.unload_calls == 1

    async def test_becoming_suitable_publishes_available(
        self, make_binding: MakeBinding, bus: EventBus, flags: Any, settle: Any
    ) -> None:
        binding = make_binding("ui.Map", conditions="flag:{maps}")
        await settle()
        events = _record(bus, binding, EVENT_AVAILABLE)
        flags.set("maps")
        assert events == [(EVENT_AVAILABLE, binding)]

    async def test_instance_events_bubble_to_binding(self, make_binding: MakeBinding, bus: EventBus) -> None:
        binding = make_binding("ui.Map")
        await binding.load()
        events = _record(bus, binding, "slide")
        assert binding.instance.publish("slide", 3) is True
        assert events == [("slide", 3)]

        instance = binding.instance
        binding.unload()
        assert instance.publish("slide", 4) is False
        assert events == [("slide", 3)]


@pytest.mark.unit
class TestExecute:
    def test_inactive_returns_404(self, make_binding: MakeBinding) -> None:
        result = make_binding("ui.Map").execute("describe")
        assert result == ExecutionResult(404, None)
        assert result.to_dict() == {"status": 404, "response": None}
        assert result.ok is False

    async def test_active_returns_200(self, make_binding: MakeBinding) -> None:
        binding = make_binding("ui.Map")
        await binding.load()
        result = binding.execute("echo", [1, 2], {"k": "v"})
        assert result.status == 200
        assert result.response == ((1, 2), {"k": "v"})

    async def test_missing_method_raises(self, make_binding: MakeBinding) -> None:
        binding = make_binding("ui.Map")
        await binding.load()
        with pytest.raises(MethodNotFoundError) as exc_info:
            binding.execute("missing")
        assert isinstance(exc_info.value, ContractViolationError)
        assert exc_info.value.method == "missing"

    async def test_non_callable_attribute_raises(self, make_binding: MakeBinding) -> None:
        binding = make_binding("ui.Map")
        await binding.load()
        with pytest.raises(MethodNotFoundError):
            binding.execute("options")


@pytest.mark.unit
class TestClose:
    async def test_close_unloads_and_detaches(
        self, make_binding: MakeBinding, flags: Any, settle: Any
    ) -> None:
        flags.set("maps")
        binding = make_binding("ui.Map", conditions="flag:{maps}")
        await settle()
        await binding.load()
        binding.close()
        assert binding.is_active() is False
        assert flags.consumer_count == 0
