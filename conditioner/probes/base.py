"""Probe layer — Probe base class and the per-leaf LiveTest.

A probe is a named environment signal with a boolean assertion.  The
registry keeps exactly one instance per probe id; every expression leaf that
references the id gets its own :class:`LiveTest` wrapping that shared
instance.

Probe contract
--------------
Subclasses must:
  1. Set ``PROBE_ID`` (the name used in conditions, e.g. ``"flag"``)
  2. Implement :meth:`Probe.check` — ``(expected, context) -> bool``

and may:
  3. Override :meth:`Probe.is_supported` — static capability check.
     Unsupported probes always fail their assertion.
  4. Override :meth:`Probe.setup` — start monitoring the signal.  Runs at
     most once per probe instance, lazily, when the first leaf attaches.
     Call the supplied ``signal(event)`` callback whenever the monitored
     value may have changed.
  5. Override :meth:`Probe.measure` — ``(event) -> bool`` filter deciding
     whether a signal is a real change worth re-evaluating.
  6. Override :meth:`Probe.arrange` — per-leaf arrangement (defaults to
     attaching the leaf's change callback and running setup).
  7. Override :meth:`Probe.teardown` — stop monitoring.

Usage::

    class OnlineProbe(Probe):
        PROBE_ID = "online"

        def setup(self, signal):
            network.on_change(signal)

        def check(self, expected, context):
            return network.is_online() == (expected == "yes")
"""

from __future__ import annotations

import weakref
from abc import ABC, abstractmethod
from typing import Any, Callable

from conditioner.events.bus import EVENT_CHANGE, EventBus
from conditioner.logging import get_logger

log = get_logger(__name__)

ChangeCallback = Callable[[Any], "Callable[[], None] | None"]
"""
Signature: def on_change(event) -> follow_up | None

A consumer marks its own state stale and may return a follow-up.  Follow-ups
run only after every consumer has seen the change, so no consumer observes a
half-updated set of sibling consumers.
"""


class Probe(ABC):
    """Abstract base for all probes."""

    PROBE_ID: str = ""

    def __init__(self) -> None:
        self._consumers: list[ChangeCallback] = []
        self._is_setup = False
        self.error: str | None = None  # set when setup fails
        self.supported: bool = self.is_supported()

    # ---------------------------------------------------------------------------
    # Overridable hooks
    # ---------------------------------------------------------------------------

    def is_supported(self) -> bool:
        """Static capability check.  Called once, at construction."""
        return True

    def setup(self, signal: Callable[[Any], None]) -> None:
        """Start monitoring.  Call ``signal(event)`` when the value may have changed."""

    def teardown(self) -> None:
        """Stop monitoring.  Called by the registry on close."""

    def measure(self, event: Any) -> bool:
        """Return True if *event* is a change consumers should re-evaluate."""
        return True

    def arrange(self, expected: str, context: Any, notify: ChangeCallback) -> None:
        """Prepare this probe for one consuming leaf."""
        self.attach(notify)

    @abstractmethod
    def check(self, expected: str, context: Any) -> bool:
        """Return True if the signal currently matches *expected*."""

    # ---------------------------------------------------------------------------
    # Public API
    # ---------------------------------------------------------------------------

    @property
    def is_setup(self) -> bool:
        return self._is_setup

    @property
    def consumer_count(self) -> int:
        return len(self._consumers)

    def attach(self, callback: ChangeCallback) -> None:
        """Register a consumer callback and run the one-time setup if needed."""
        if not self.supported:
            return
        if callback not in self._consumers:
            self._consumers.append(callback)
        if self._is_setup:
            return
        self._is_setup = True
        try:
            self.setup(self.signal)
        except Exception as exc:
            self.error = str(exc)
            self.supported = False
            log.error("probe_setup_failed", probe_id=self.PROBE_ID, error=str(exc))

    def detach(self, callback: ChangeCallback) -> bool:
        """Remove a consumer callback.  False if it was not attached."""
        try:
            self._consumers.remove(callback)
        except ValueError:
            return False
        return True

    def signal(self, event: Any = None) -> None:
        """Entry point for the monitored source: fan out real changes.

        Every consumer is invalidated before any follow-up runs.
        """
        if not self.measure(event):
            return
        follow_ups = []
        for callback in list(self._consumers):
            follow_up = callback(event)
            if follow_up is not None:
                follow_ups.append(follow_up)
        for follow_up in follow_ups:
            follow_up()

    def assert_expected(self, expected: str, context: Any) -> bool:
        """Run :meth:`check`, failing closed when unsupported or on error."""
        if not self.supported:
            return False
        try:
            return bool(self.check(expected, context))
        except Exception as exc:
            log.warning(
                "probe_check_failed", probe_id=self.PROBE_ID, expected=expected, error=str(exc)
            )
            return False


class UnavailableProbe(Probe):
    """Placeholder bound when a probe id cannot be resolved.

    Never supported, so every leaf referencing it fails closed.
    """

    def __init__(self, probe_id: str, reason: str) -> None:
        self.PROBE_ID = probe_id
        self.reason = reason
        super().__init__()

    def is_supported(self) -> bool:
        return False

    def check(self, expected: str, context: Any) -> bool:
        return False


class LiveTest:
    """Binds one leaf's ``(expected, context)`` to a shared probe.

    The last result is cached and recomputed only after the probe reported
    a change.  The probe is held by weak reference; the registry owns it.
    """

    def __init__(
        self,
        probe_id: str,
        probe: Probe,
        expected: str,
        context: Any,
        bus: EventBus,
    ) -> None:
        self.probe_id = probe_id
        self.expected = expected
        self.context = context
        self._probe_ref: weakref.ref[Probe] = weakref.ref(probe)
        self._bus = bus
        self._result = False
        self._dirty = True
        probe.arrange(expected, context, self._on_probe_change)

    @property
    def probe(self) -> Probe | None:
        return self._probe_ref()

    @property
    def dirty(self) -> bool:
        return self._dirty

    def succeeds(self) -> bool:
        if self._dirty:
            self._dirty = False
            probe = self._probe_ref()
            self._result = probe.assert_expected(self.expected, self.context) if probe else False
        return self._result

    def close(self) -> None:
        """Detach from the probe and drop subscriptions on this test."""
        probe = self._probe_ref()
        if probe is not None:
            probe.detach(self._on_probe_change)
        self._bus.clear(self)

    def _on_probe_change(self, _event: Any = None) -> Callable[[], None]:
        self._dirty = True
        return self._publish_change

    def _publish_change(self) -> None:
        self._bus.publish(self, EVENT_CHANGE)

    def __repr__(self) -> str:
        return f"LiveTest({self.probe_id!r}, {self.expected!r})"
