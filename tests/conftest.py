"""Shared pytest fixtures for the conditioner test suite."""

from __future__ import annotations

import asyncio
from typing import Any, Callable

import pytest

from conditioner.activation.behavior import BaseBehavior
from conditioner.activation.binding import CandidateBinding
from conditioner.activation.implementations import ImplementationRegistry
from conditioner.events.bus import EventBus
from conditioner.probes.base import Probe
from conditioner.probes.builtin import FlagProbe
from conditioner.probes.registry import ProbeRegistry
from conditioner.resolvers import MappingResolver


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class ValueProbe(Probe):
    """Probe holding one settable value; ``check`` compares its string form."""

    def __init__(self, probe_id: str, value: Any = None) -> None:
        self.PROBE_ID = probe_id
        self.value = value
        self.setup_calls = 0
        super().__init__()

    def setup(self, signal: Callable[[Any], None]) -> None:
        self.setup_calls += 1

    def check(self, expected: str, context: Any) -> bool:
        return self.value is not None and str(self.value) == expected

    def set(self, value: Any) -> None:
        self.value = value
        self.signal(value)


class RecordingBehavior(BaseBehavior):
    DEFAULT_OPTIONS = {"size": "m", "layers": ["base"]}

    def __init__(self, target: Any, options: dict[str, Any] | None = None) -> None:
        super().__init__(target, options)
        self.unload_calls = 0

    def describe(self) -> str:
        return type(self).__name__

    def echo(self, *args: Any, **kwargs: Any) -> tuple[tuple[Any, ...], dict[str, Any]]:
        return args, kwargs

    def unload(self) -> None:
        self.unload_calls += 1


class MapBehavior(RecordingBehavior):
    pass


class ListBehavior(RecordingBehavior):
    pass


class StaticBehavior(RecordingBehavior):
    pass


# ---------------------------------------------------------------------------
# Engine collaborators
# ---------------------------------------------------------------------------


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def probes() -> ProbeRegistry:
    registry = ProbeRegistry(resolver=MappingResolver())
    registry.register_instance(FlagProbe())
    registry.register_instance(ValueProbe("a"))
    registry.register_instance(ValueProbe("b"))
    return registry


@pytest.fixture
def flags(probes: ProbeRegistry) -> FlagProbe:
    probe = probes.get("flag")
    assert isinstance(probe, FlagProbe)
    return probe


@pytest.fixture
def implementations() -> ImplementationRegistry:
    return ImplementationRegistry(
        MappingResolver(
            {
                "ui.Map": MapBehavior,
                "ui.List": ListBehavior,
                "ui.Static": StaticBehavior,
            }
        )
    )


@pytest.fixture
def make_binding(
    bus: EventBus, probes: ProbeRegistry, implementations: ImplementationRegistry
) -> Callable[..., CandidateBinding]:
    """Build a CandidateBinding wired to the shared fixtures.

    Conditioned bindings must be created inside a running event loop.
    """

    def _make(locator: str = "ui.Map", conditions: str | None = None, **kwargs: Any) -> CandidateBinding:
        kwargs.setdefault("target", "target-1")
        return CandidateBinding(
            locator,
            conditions=conditions,
            implementations=implementations,
            probes=probes,
            bus=bus,
            **kwargs,
        )

    return _make


@pytest.fixture
def settle() -> Callable[..., Any]:
    """Let scheduled callbacks and resolution tasks run."""

    async def _settle(rounds: int = 20) -> None:
        for _ in range(rounds):
            await asyncio.sleep(0)

    return _settle


@pytest.fixture
def value_probe_cls() -> type[ValueProbe]:
    return ValueProbe
