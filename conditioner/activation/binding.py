"""Activation layer — Candidate binding.

A candidate binding couples one implementation locator to one condition
expression for one target.  It owns the suitability evaluator, resolves the
implementation lazily on first load and holds at most one live instance.

Lifecycle::

    construct ──► (evaluator ready) ──► READY ──► publishes "ready"
                                            └──► publishes "available" if suitable

    load()    ──► resolve factory (shared, cached) ──► instantiate ──► "load"
    unload()  ──► instance.unload() ──► "unload"
    failure   ──► "fail"; the binding is never available again

The binding never loads itself; its owning group decides when to call
:meth:`CandidateBinding.load`.  It does unload itself when its verdict turns
false while active.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from conditioner.activation.declarations import parse_options
from conditioner.activation.implementations import ImplementationFactory, ImplementationRegistry
from conditioner.activation.suitability import SuitabilityEvaluator, SuitabilityState
from conditioner.events.bus import (
    EVENT_AVAILABLE,
    EVENT_CHANGE,
    EVENT_FAIL,
    EVENT_LOAD,
    EVENT_READY,
    EVENT_UNLOAD,
    EventBus,
)
from conditioner.exceptions import ConfigurationError, ImplementationResolveError, MethodNotFoundError
from conditioner.logging import get_logger
from conditioner.probes.registry import ProbeRegistry
from conditioner.utils import merge_options

log = get_logger(__name__)

STATUS_OK = 200
STATUS_NOT_AVAILABLE = 404


@dataclass
class ExecutionResult:
    """Outcome of :meth:`CandidateBinding.execute`.

    ``status`` is 200 when the method ran on an active instance and 404 when
    no instance was active (``response`` is then None).
    """

    status: int
    response: Any = None

    @property
    def ok(self) -> bool:
        return self.status == STATUS_OK

    def to_dict(self) -> dict[str, Any]:
        return {"status": self.status, "response": self.response}


class CandidateBinding:
    """One candidate implementation for a target, gated by a condition.

    Raises:
        ConfigurationError: *locator* or *target* is missing.
        DeclarationError: *options* is a string that is not a JSON object.
        ExpressionParseError: *conditions* is malformed.
    """

    def __init__(
        self,
        locator: str,
        *,
        target: Any,
        conditions: str | None = None,
        options: Mapping[str, Any] | str | None = None,
        priority: int = 0,
        implementations: ImplementationRegistry,
        probes: ProbeRegistry,
        bus: EventBus,
    ) -> None:
        if not locator:
            raise ConfigurationError("CandidateBinding requires a locator")
        if target is None:
            raise ConfigurationError(
                "CandidateBinding requires a target", context={"locator": locator}
            )
        self.locator = locator
        self.target = target
        self.priority = priority
        self.options: dict[str, Any] = parse_options(options)
        self.error: str | None = None

        self._implementations = implementations
        self._bus = bus
        self._instance: Any = None
        self._ready = False
        self._failed = False
        # True between load() and unload(); a resolution finishing while
        # False is discarded.
        self._wanted = False
        self._pending: asyncio.Task[bool] | None = None

        self._evaluator = SuitabilityEvaluator(conditions, probes=probes, bus=bus, context=target)
        if self._evaluator.is_ready:
            self._on_evaluator_ready(self._evaluator.get_suitability())
        else:
            bus.subscribe(self._evaluator, EVENT_READY, self._on_evaluator_ready)

    # ---------------------------------------------------------------------------
    # Queries
    # ---------------------------------------------------------------------------

    @property
    def evaluator(self) -> SuitabilityEvaluator:
        return self._evaluator

    @property
    def conditions(self) -> str | None:
        return self._evaluator.conditions

    @property
    def instance(self) -> Any:
        return self._instance

    @property
    def failed(self) -> bool:
        return self._failed

    def is_conditioned(self) -> bool:
        return self._evaluator.state is not SuitabilityState.UNCONDITIONED

    def is_ready(self) -> bool:
        return self._ready

    def is_available(self) -> bool:
        return not self._failed and self._evaluator.get_suitability()

    def is_active(self) -> bool:
        return self._instance is not None

    def get_suitability(self) -> bool:
        return self._evaluator.get_suitability()

    def matches_locator(self, locator: str) -> bool:
        resolve = self._implementations.resolve_locator
        return locator == self.locator or resolve(locator) == resolve(self.locator)

    # ---------------------------------------------------------------------------
    # Load / unload
    # ---------------------------------------------------------------------------

    def load(self) -> asyncio.Future[bool]:
        """Instantiate the implementation.

        Returns a future resolving to True once an instance is live, or
        False when the load failed or was withdrawn.  Concurrent calls share
        one in-flight resolution.
        """
        loop = asyncio.get_running_loop()
        self._wanted = True

        if self._failed or self._instance is not None:
            done = loop.create_future()
            done.set_result(self._instance is not None)
            return done

        if self._pending is not None and not self._pending.done():
            return self._pending

        factory = self._implementations.get_factory(self.locator)
        if factory is not None:
            done = loop.create_future()
            done.set_result(self._instantiate(factory))
            return done

        self._pending = loop.create_task(self._resolve_and_load(), name=f"load_{self.locator}")
        return self._pending

    async def _resolve_and_load(self) -> bool:
        try:
            factory = await self._implementations.resolve(self.locator)
        except ImplementationResolveError as exc:
            self._fail(exc)
            return False
        if not self._wanted or not self.is_available():
            log.debug("binding_load_discarded", locator=self.locator)
            return False
        return self._instantiate(factory)

    def _instantiate(self, factory: ImplementationFactory) -> bool:
        options = merge_options(self._implementations.get_defaults(self.locator), self.options)
        try:
            instance = factory(self.target, options)
        except Exception as exc:
            self._fail(exc)
            return False

        self._instance = instance
        if not self._bus.link(instance, self):
            log.debug("binding_instance_not_linkable", locator=self.locator)
        attach_bus = getattr(instance, "attach_bus", None)
        if callable(attach_bus):
            attach_bus(self._bus)

        log.info("binding_loaded", locator=self.locator)
        self._bus.publish(self, EVENT_LOAD, instance)
        return True

    def _fail(self, exc: Exception) -> None:
        self._failed = True
        self._wanted = False
        self.error = str(exc)
        log.error("binding_failed", locator=self.locator, error=self.error)
        self._bus.publish(self, EVENT_FAIL, self)

    def unload(self) -> bool:
        """Destroy the live instance.  False if there was none."""
        self._wanted = False
        instance = self._instance
        if instance is None:
            return False

        self._instance = None
        self._bus.unlink(instance, self)
        hook = getattr(instance, "unload", None)
        if callable(hook):
            try:
                hook()
            except Exception as exc:
                log.error("binding_unload_hook_failed", locator=self.locator, error=str(exc))
        attach_bus = getattr(instance, "attach_bus", None)
        if callable(attach_bus):
            attach_bus(None)

        log.info("binding_unloaded", locator=self.locator)
        self._bus.publish(self, EVENT_UNLOAD, self)
        return True

    # ---------------------------------------------------------------------------
    # Execution
    # ---------------------------------------------------------------------------

    def execute(
        self,
        method: str,
        args: Sequence[Any] | None = None,
        kwargs: Mapping[str, Any] | None = None,
    ) -> ExecutionResult:
        """Call *method* on the live instance.

        Raises:
            MethodNotFoundError: The instance has no callable *method*.
        """
        if self._instance is None:
            return ExecutionResult(STATUS_NOT_AVAILABLE, None)
        fn = getattr(self._instance, method, None)
        if not callable(fn):
            raise MethodNotFoundError(self.locator, method)
        return ExecutionResult(STATUS_OK, fn(*(args or ()), **(kwargs or {})))

    # ---------------------------------------------------------------------------
    # Evaluator events
    # ---------------------------------------------------------------------------

    def _on_evaluator_ready(self, suitable: bool) -> None:
        self._bus.unsubscribe(self._evaluator, EVENT_READY, self._on_evaluator_ready)
        self._ready = True
        self._bus.subscribe(self._evaluator, EVENT_CHANGE, self._on_evaluator_change)
        log.debug("binding_ready", locator=self.locator, suitable=suitable)
        self._bus.publish(self, EVENT_READY, self)
        if self.is_available():
            self._bus.publish(self, EVENT_AVAILABLE, self)

    def _on_evaluator_change(self, suitable: bool) -> None:
        if suitable:
            if not self.is_active() and self.is_available():
                self._bus.publish(self, EVENT_AVAILABLE, self)
            return
        if self.is_active():
            self.unload()
        elif self._wanted:
            # Load still resolving: withdraw it and let the owner re-elect.
            self._wanted = False
            log.debug("binding_load_withdrawn", locator=self.locator)
            self._bus.publish(self, EVENT_UNLOAD, self)

    # ---------------------------------------------------------------------------
    # Shutdown
    # ---------------------------------------------------------------------------

    def close(self) -> None:
        """Unload and release the evaluator and every subscription."""
        self.unload()
        self._evaluator.close()
        self._bus.clear(self)

    def __repr__(self) -> str:
        return f"CandidateBinding({self.locator!r}, conditions={self.conditions!r})"
