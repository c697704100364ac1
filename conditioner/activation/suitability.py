"""Activation layer — Suitability evaluator.

Aggregates the probe results behind one condition expression into a single
verdict and reports when it flips.

State machine::

    conditions=None ──► UNCONDITIONED   verdict True, nothing to resolve

    conditions="..." ──► RESOLVING ──(last leaf bound)──► READY
                         verdict False                    publishes "ready"(verdict) once
                                                          publishes "change"(verdict)
                                                          whenever it flips

Leaves are resolved in whatever order the probe registry completes them;
the verdict is first computed when the last leaf is bound.
"""

from __future__ import annotations

import asyncio
import functools
from enum import Enum
from typing import Any

from conditioner.events.bus import EVENT_CHANGE, EVENT_READY, EventBus
from conditioner.expressions.nodes import ExpressionNode, Leaf
from conditioner.expressions.parser import parse_expression
from conditioner.logging import get_logger
from conditioner.probes.base import LiveTest, Probe
from conditioner.probes.registry import ProbeRegistry

log = get_logger(__name__)


class SuitabilityState(str, Enum):
    UNCONDITIONED = "unconditioned"
    RESOLVING = "resolving"
    READY = "ready"


class SuitabilityEvaluator:
    """Owns one expression tree and its current verdict.

    Must be constructed inside a running event loop when *conditions* is
    given: leaf probes are requested immediately.

    Raises:
        ExpressionParseError: *conditions* is empty or malformed.
    """

    def __init__(
        self,
        conditions: str | None,
        *,
        probes: ProbeRegistry,
        bus: EventBus,
        context: Any = None,
    ) -> None:
        self._conditions = conditions
        self._probes = probes
        self._bus = bus
        self._context = context
        self._tests: list[LiveTest] = []
        self._ready_event = asyncio.Event()
        self._closed = False

        if conditions is None:
            self._tree: ExpressionNode | None = None
            self._state = SuitabilityState.UNCONDITIONED
            self._suitable = True
            self._pending = 0
            self._ready_event.set()
            return

        self._tree = parse_expression(conditions)
        leaves = list(self._tree.leaves())
        self._state = SuitabilityState.RESOLVING
        self._suitable = False
        self._pending = len(leaves)
        for leaf in leaves:
            self._probes.get_probe(leaf.probe_id, functools.partial(self._on_probe_ready, leaf))

    # ---------------------------------------------------------------------------
    # Queries
    # ---------------------------------------------------------------------------

    @property
    def state(self) -> SuitabilityState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is not SuitabilityState.RESOLVING

    @property
    def conditions(self) -> str | None:
        return self._conditions

    @property
    def expression(self) -> ExpressionNode | None:
        return self._tree

    @property
    def pending(self) -> int:
        """Number of leaves still waiting for their probe."""
        return self._pending

    def get_suitability(self) -> bool:
        return self._suitable

    async def wait_ready(self) -> bool:
        """Wait until every leaf is bound; return the verdict."""
        await self._ready_event.wait()
        return self._suitable

    # ---------------------------------------------------------------------------
    # Evaluation
    # ---------------------------------------------------------------------------

    def test(self) -> bool:
        """Recompute the verdict; publish ``change`` if it flipped."""
        if self._state is not SuitabilityState.READY or self._tree is None:
            return self._suitable
        verdict = self._tree.evaluate()
        if verdict == self._suitable:
            return verdict
        self._suitable = verdict
        log.debug("suitability_changed", conditions=self._conditions, suitable=verdict)
        self._bus.publish(self, EVENT_CHANGE, verdict)
        return verdict

    def _on_probe_ready(self, leaf: Leaf, probe: Probe) -> None:
        if self._closed or self._tree is None:
            return
        test = LiveTest(leaf.probe_id, probe, leaf.expected, self._context, self._bus)
        leaf.resolve(test)
        self._tests.append(test)
        self._bus.subscribe(test, EVENT_CHANGE, self._on_test_change)
        self._pending -= 1
        if self._pending:
            return
        self._state = SuitabilityState.READY
        self._suitable = self._tree.evaluate()
        log.debug("suitability_ready", conditions=self._conditions, suitable=self._suitable)
        self._ready_event.set()
        self._bus.publish(self, EVENT_READY, self._suitable)

    def _on_test_change(self, _data: Any) -> None:
        self.test()

    # ---------------------------------------------------------------------------
    # Shutdown
    # ---------------------------------------------------------------------------

    def close(self) -> None:
        """Detach every live test from its probe and drop subscriptions."""
        self._closed = True
        for test in self._tests:
            self._bus.unsubscribe(test, EVENT_CHANGE, self._on_test_change)
            test.close()
        self._tests.clear()
        self._bus.clear(self)

    def __repr__(self) -> str:
        return f"SuitabilityEvaluator({self._conditions!r}, state={self._state.value})"
