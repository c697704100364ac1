"""Event infrastructure — synchronous publish/subscribe keyed by source object.

Every component of the engine communicates through one ``EventBus``
instance injected at construction.  An event is identified by the object
that publishes it (the *source*) and an event name:

    SuitabilityEvaluator ──publish(ready/change)──►  CandidateBinding
    LiveTest             ──publish(change)───────►  SuitabilityEvaluator
    CandidateBinding     ──publish(ready/available/load/unload/fail)──► ActivationGroup
    behavior instance    ──publish(anything)─────►  (propagates to) CandidateBinding

Dispatch rules:
  - ``publish`` invokes every subscriber synchronously, in subscription
    order, before it returns.
  - If the source has a parent (see :meth:`EventBus.link`) the event is then
    republished on the parent, after all direct subscribers have run.
    Forwarding stops after ``max_depth`` hops.
  - A subscriber that raises is logged and skipped; later subscribers still
    run.

Standard event names (use the constants below for consistency):
  EVENT_READY     = "ready"      — first resolution finished
  EVENT_AVAILABLE = "available"  — binding may be loaded
  EVENT_LOAD      = "load"       — implementation instance created
  EVENT_UNLOAD    = "unload"     — implementation instance destroyed
  EVENT_CHANGE    = "change"     — verdict or active binding changed
  EVENT_FAIL      = "fail"       — binding could not resolve its implementation
"""

from __future__ import annotations

import weakref
from dataclasses import dataclass
from typing import Any, Callable

from conditioner.logging import get_logger

log = get_logger(__name__)

# ---------------------------------------------------------------------------
# Standard event names
# ---------------------------------------------------------------------------

EVENT_READY = "ready"
EVENT_AVAILABLE = "available"
EVENT_LOAD = "load"
EVENT_UNLOAD = "unload"
EVENT_CHANGE = "change"
EVENT_FAIL = "fail"

EventHandler = Callable[[Any], None]
"""
Signature: def handler(data) -> None
"""


@dataclass
class _Subscription:
    event: str
    handler: EventHandler


class EventBus:
    """Synchronous, source-keyed event bus with bounded upward propagation.

    Sources must be hashable and weak-referenceable (any ordinary class
    instance is).  Subscriptions and parent links disappear with their
    source.

    Usage::

        bus = EventBus()
        bus.subscribe(evaluator, "change", on_change)
        bus.publish(evaluator, "change", True)

        bus.link(behavior_instance, binding)     # instance events bubble up
        bus.unlink(behavior_instance, binding)
    """

    def __init__(self, max_depth: int = 16) -> None:
        if max_depth < 1:
            raise ValueError("max_depth must be at least 1")
        self._max_depth = max_depth
        self._subscriptions: weakref.WeakKeyDictionary[Any, list[_Subscription]] = (
            weakref.WeakKeyDictionary()
        )
        self._parents: weakref.WeakKeyDictionary[Any, Any] = weakref.WeakKeyDictionary()

    @property
    def max_depth(self) -> int:
        return self._max_depth

    # ---------------------------------------------------------------------------
    # Subscription management
    # ---------------------------------------------------------------------------

    def subscribe(self, source: Any, event: str, handler: EventHandler) -> None:
        """Call *handler* whenever *source* publishes *event*.

        Subscribing the same (event, handler) pair twice is a no-op.
        """
        subs = self._subscriptions.setdefault(source, [])
        for sub in subs:
            if sub.event == event and sub.handler == handler:
                return
        subs.append(_Subscription(event, handler))

    def unsubscribe(self, source: Any, event: str, handler: EventHandler) -> bool:
        """Remove a subscription.  Returns False if it was not registered."""
        subs = self._subscriptions.get(source)
        if not subs:
            return False
        for i, sub in enumerate(subs):
            if sub.event == event and sub.handler == handler:
                subs.pop(i)
                return True
        return False

    def subscriber_count(self, source: Any, event: str | None = None) -> int:
        """Number of subscriptions on *source* (optionally for one event)."""
        subs = self._subscriptions.get(source, [])
        if event is None:
            return len(subs)
        return sum(1 for sub in subs if sub.event == event)

    def clear(self, source: Any) -> None:
        """Drop every subscription and the parent link of *source*."""
        self._subscriptions.pop(source, None)
        self._parents.pop(source, None)

    # ---------------------------------------------------------------------------
    # Propagation
    # ---------------------------------------------------------------------------

    def link(self, source: Any, parent: Any) -> bool:
        """Forward every event published on *source* to *parent*."""
        if source is None or parent is None or source is parent:
            return False
        try:
            self._parents[source] = parent
        except TypeError:
            # not weak-referenceable
            return False
        return True

    def unlink(self, source: Any, parent: Any) -> bool:
        """Remove the link from *source* to *parent*.  False if not linked."""
        if source is None or parent is None:
            return False
        try:
            current = self._parents.get(source)
        except TypeError:
            return False
        if current is parent:
            del self._parents[source]
            return True
        return False

    def parent_of(self, source: Any) -> Any | None:
        return self._parents.get(source)

    # ---------------------------------------------------------------------------
    # Dispatch
    # ---------------------------------------------------------------------------

    def publish(self, source: Any, event: str, data: Any = None) -> None:
        """Publish *event* on *source*, then forward it up the parent chain."""
        depth = 0
        current: Any | None = source
        while current is not None:
            self._dispatch(current, event, data)
            current = self._parents.get(current)
            if current is None:
                return
            depth += 1
            if depth >= self._max_depth:
                log.warning(
                    "event_propagation_depth_exceeded",
                    event_name=event,
                    source=type(source).__name__,
                    max_depth=self._max_depth,
                )
                return

    def _dispatch(self, source: Any, event: str, data: Any) -> None:
        # Snapshot so handlers may (un)subscribe while we iterate.
        matching = [sub for sub in self._subscriptions.get(source, []) if sub.event == event]
        for sub in matching:
            try:
                sub.handler(data)
            except Exception as exc:
                log.error(
                    "event_handler_error",
                    event_name=event,
                    source=type(source).__name__,
                    handler=getattr(sub.handler, "__qualname__", repr(sub.handler)),
                    error=str(exc),
                )
