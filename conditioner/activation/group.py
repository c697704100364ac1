"""Activation layer — Activation group.

One group per target.  The group owns the target's candidate bindings in
priority order and keeps at most one of them active.

Arbitration rule (first fit): the active binding is the first binding, in
priority order, that is available.  The rule is re-applied whenever a
binding becomes available and whenever the active binding unloads or
fails.  A binding that becomes available behind an available, higher
ranked binding therefore never preempts it; one that becomes available
ahead of the active binding does.

Switching always tears the previous binding down before loading the next,
so a target never has two live instances.
"""

from __future__ import annotations

from typing import Any, Mapping, Sequence

from conditioner.activation.binding import CandidateBinding, ExecutionResult, STATUS_NOT_AVAILABLE
from conditioner.events.bus import (
    EVENT_AVAILABLE,
    EVENT_CHANGE,
    EVENT_FAIL,
    EVENT_READY,
    EVENT_UNLOAD,
    EventBus,
)
from conditioner.exceptions import ConfigurationError
from conditioner.logging import bind_target_context, clear_target_context, get_logger

log = get_logger(__name__)


class ActivationGroup:
    """Arbitrates the candidate bindings of one target.

    Bindings are ordered by descending ``priority``; bindings with equal
    priority keep their declaration order.

    Usage::

        group = ActivationGroup(target, [map_binding, static_binding], bus=bus)
        group.init()
        ...
        result = group.execute("zoom", [3])
        if result.status == 404:
            ...   # nothing active right now
    """

    def __init__(
        self,
        target: Any,
        bindings: Sequence[CandidateBinding],
        *,
        bus: EventBus,
        priority: int = 0,
    ) -> None:
        if target is None:
            raise ConfigurationError("ActivationGroup requires a target")
        if not bindings:
            raise ConfigurationError(
                "ActivationGroup requires at least one binding", context={"target": repr(target)}
            )
        self.target = target
        self.priority = priority
        self._bindings: list[CandidateBinding] = sorted(bindings, key=lambda b: -b.priority)
        self._bus = bus
        self._active: CandidateBinding | None = None
        self._initialised = False
        self._armed = False

    # ---------------------------------------------------------------------------
    # Queries
    # ---------------------------------------------------------------------------

    @property
    def bindings(self) -> list[CandidateBinding]:
        return list(self._bindings)

    @property
    def active(self) -> CandidateBinding | None:
        return self._active

    def get_active_binding(self) -> CandidateBinding | None:
        return self._active

    def is_ready(self) -> bool:
        return self._armed

    def get_binding(self, locator: str) -> CandidateBinding | None:
        """Return the first binding matching *locator* (or its alias)."""
        return next((b for b in self._bindings if b.matches_locator(locator)), None)

    def get_bindings(self, locator: str | None = None) -> list[CandidateBinding]:
        if locator is None:
            return list(self._bindings)
        return [b for b in self._bindings if b.matches_locator(locator)]

    # ---------------------------------------------------------------------------
    # Lifecycle
    # ---------------------------------------------------------------------------

    def init(self) -> None:
        """Start arbitration once every binding has resolved its conditions."""
        if self._initialised:
            return
        self._initialised = True
        for binding in self._bindings:
            if not binding.is_ready():
                self._bus.subscribe(binding, EVENT_READY, self._on_binding_ready)
        self._arm_if_ready()

    def close(self) -> None:
        """Unload the active binding and release every binding."""
        if self._active is not None:
            self._bus.unsubscribe(self._active, EVENT_UNLOAD, self._on_active_unload)
            self._active = None
        for binding in self._bindings:
            self._bus.unsubscribe(binding, EVENT_READY, self._on_binding_ready)
            self._bus.unsubscribe(binding, EVENT_AVAILABLE, self._on_available)
            self._bus.unsubscribe(binding, EVENT_FAIL, self._on_fail)
            binding.close()
        self._bus.clear(self)
        log.debug("group_closed", target=repr(self.target))

    def execute(
        self,
        method: str,
        args: Sequence[Any] | None = None,
        kwargs: Mapping[str, Any] | None = None,
    ) -> ExecutionResult:
        """Call *method* on the active implementation (404 when none)."""
        if self._active is None:
            return ExecutionResult(STATUS_NOT_AVAILABLE, None)
        return self._active.execute(method, args, kwargs)

    # ---------------------------------------------------------------------------
    # Arbitration
    # ---------------------------------------------------------------------------

    def _first_fit(self, exclude: CandidateBinding | None = None) -> CandidateBinding | None:
        for binding in self._bindings:
            if binding is not exclude and binding.is_available():
                return binding
        return None

    def _elect(self, binding: CandidateBinding | None) -> None:
        previous = self._active
        if binding is previous:
            return
        token = bind_target_context(repr(self.target))
        try:
            if previous is not None:
                self._bus.unsubscribe(previous, EVENT_UNLOAD, self._on_active_unload)
                previous.unload()
            self._active = binding
            log.info(
                "group_elected",
                locator=binding.locator if binding else None,
                previous=previous.locator if previous else None,
            )
            self._bus.publish(self, EVENT_CHANGE, binding)
            if binding is not None:
                self._bus.subscribe(binding, EVENT_UNLOAD, self._on_active_unload)
                binding.load()
        finally:
            clear_target_context(token)

    def _arm_if_ready(self) -> None:
        if self._armed or not all(b.is_ready() for b in self._bindings):
            return
        self._armed = True
        for binding in self._bindings:
            self._bus.subscribe(binding, EVENT_AVAILABLE, self._on_available)
            self._bus.subscribe(binding, EVENT_FAIL, self._on_fail)
        self._elect(self._first_fit())
        log.debug("group_ready", target=repr(self.target), bindings=len(self._bindings))
        self._bus.publish(self, EVENT_READY, self)

    # ---------------------------------------------------------------------------
    # Binding events
    # ---------------------------------------------------------------------------

    def _on_binding_ready(self, binding: CandidateBinding) -> None:
        self._bus.unsubscribe(binding, EVENT_READY, self._on_binding_ready)
        self._arm_if_ready()

    def _on_available(self, _binding: CandidateBinding) -> None:
        winner = self._first_fit()
        if winner is None:
            return
        if winner is self._active:
            if not winner.is_active():
                winner.load()
            return
        self._elect(winner)

    def _on_active_unload(self, binding: CandidateBinding) -> None:
        if binding is not self._active:
            return
        self._bus.unsubscribe(binding, EVENT_UNLOAD, self._on_active_unload)
        self._active = None
        self._elect(self._first_fit(exclude=binding))
        if self._active is None:
            # nothing else fits; report the empty state
            self._bus.publish(self, EVENT_CHANGE, None)

    def _on_fail(self, binding: CandidateBinding) -> None:
        if binding is not self._active:
            return
        self._on_active_unload(binding)
