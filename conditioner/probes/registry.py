"""Probe layer — Probe registry.

The registry is the single point of truth for probe instances.  It handles:
  - Explicit registration of probe classes (or pre-built instances)
  - Lazy, asynchronous resolution of unknown probe ids through a resolver
  - Instantiate-once caching: one probe instance per id
  - Memoized resolution: at most one in-flight resolution per id, every
    waiter is notified when it completes
  - Graceful degradation: an id that cannot be resolved is bound to an
    :class:`UnavailableProbe`, so conditions referencing it fail closed
    instead of hanging

Usage::

    registry = ProbeRegistry()
    registry.register(FlagProbe)

    registry.get_probe("flag", on_ready)      # callback style
    probe = await registry.acquire("flag")    # awaitable style
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Mapping

from conditioner.exceptions import ProbeResolveError
from conditioner.logging import get_logger
from conditioner.probes.base import Probe, UnavailableProbe
from conditioner.resolvers import ImportResolver, Resolver

log = get_logger(__name__)

ProbeReadyCallback = Callable[[Probe], None]


class ProbeRegistry:
    """Runtime registry for probes, keyed by probe id."""

    def __init__(
        self,
        resolver: Resolver | None = None,
        aliases: Mapping[str, str] | None = None,
    ) -> None:
        self._classes: dict[str, type[Probe]] = {}
        self._aliases: dict[str, str] = dict(aliases or {})
        self._instances: dict[str, Probe] = {}
        self._pending: dict[str, asyncio.Task[Probe]] = {}
        # Probe ids whose resolution failed (id → reason).
        self._failed: dict[str, str] = {}
        self._resolver: Resolver = resolver or ImportResolver()

    # ---------------------------------------------------------------------------
    # Registration
    # ---------------------------------------------------------------------------

    def register(self, probe_class: type[Probe]) -> None:
        """Register a probe class.  Instantiation is deferred until first use."""
        probe_id = probe_class.PROBE_ID
        if not probe_id:
            raise ValueError(f"Probe class {probe_class.__name__} has no PROBE_ID.")
        if probe_id in self._classes:
            log.warning("probe_already_registered", probe_id=probe_id)
        self._classes[probe_id] = probe_class
        log.debug("probe_registered", probe_id=probe_id)

    def register_instance(self, probe: Probe) -> None:
        """Register a pre-constructed probe (e.g. one that needs configuration)."""
        probe_id = probe.PROBE_ID
        if not probe_id:
            raise ValueError(f"Probe instance {type(probe).__name__} has no PROBE_ID.")
        self._classes[probe_id] = type(probe)
        self._instances[probe_id] = probe
        log.debug("probe_instance_registered", probe_id=probe_id)

    def register_alias(self, probe_id: str, locator: str) -> None:
        """Resolve *probe_id* through *locator* (e.g. ``"myapp.probes.Battery"``)."""
        self._aliases[probe_id] = locator

    # ---------------------------------------------------------------------------
    # Lookup
    # ---------------------------------------------------------------------------

    def get_probe(self, probe_id: str, on_ready: ProbeReadyCallback) -> asyncio.Task[Probe]:
        """Resolve *probe_id* and call ``on_ready(probe)`` once it is available.

        The callback always runs as a scheduled continuation, never inside
        this call, even when the probe is already cached.  Must be called
        from within a running event loop.
        """
        task = self._task_for(probe_id)

        def _notify(done: asyncio.Task[Probe]) -> None:
            if done.cancelled():
                return
            on_ready(done.result())

        task.add_done_callback(_notify)
        return task

    async def acquire(self, probe_id: str) -> Probe:
        """Awaitable form of :meth:`get_probe`."""
        return await self._task_for(probe_id)

    def get(self, probe_id: str) -> Probe | None:
        """Return the cached instance for *probe_id*, if resolved."""
        return self._instances.get(probe_id)

    def _task_for(self, probe_id: str) -> asyncio.Task[Probe]:
        task = self._pending.get(probe_id)
        if task is None:
            loop = asyncio.get_running_loop()
            task = loop.create_task(self._load(probe_id), name=f"probe_{probe_id}")
            self._pending[probe_id] = task
        return task

    async def _load(self, probe_id: str) -> Probe:
        cached = self._instances.get(probe_id)
        if cached is not None:
            return cached
        try:
            probe_class = await self._resolve_class(probe_id)
            probe = probe_class()
        except Exception as exc:
            reason = str(exc)
            self._failed[probe_id] = reason
            log.error("probe_resolve_failed", probe_id=probe_id, reason=reason)
            probe = UnavailableProbe(probe_id, reason)
        else:
            log.info("probe_loaded", probe_id=probe_id, supported=probe.supported)
        self._instances[probe_id] = probe
        return probe

    async def _resolve_class(self, probe_id: str) -> type[Probe]:
        if probe_id in self._classes:
            return self._classes[probe_id]
        locator = self._aliases.get(probe_id, probe_id)
        resolved: Any = await self._resolver.resolve(locator)
        if not (isinstance(resolved, type) and issubclass(resolved, Probe)):
            raise ProbeResolveError(probe_id, f"'{locator}' is not a Probe subclass")
        return resolved

    # ---------------------------------------------------------------------------
    # Introspection
    # ---------------------------------------------------------------------------

    def list_probes(self) -> list[str]:
        """Return ids of all registered or resolved probes."""
        return sorted(set(self._classes) | set(self._instances) | set(self._aliases))

    def list_failed(self) -> dict[str, str]:
        """Return probe_id → reason for probes that failed to resolve."""
        return dict(self._failed)

    def status_report(self) -> dict[str, Any]:
        """Return a structured status report.

        Schema::

            {
                "loaded": ["env", "flag"],
                "unsupported": ["resource"],
                "failed": {"battery": "Invalid locator 'battery': ..."}
            }
        """
        return {
            "loaded": sorted(pid for pid, p in self._instances.items() if p.supported),
            "unsupported": sorted(
                pid
                for pid, p in self._instances.items()
                if not p.supported and pid not in self._failed
            ),
            "failed": self.list_failed(),
        }

    # ---------------------------------------------------------------------------
    # Shutdown
    # ---------------------------------------------------------------------------

    def close(self) -> None:
        """Tear down every probe that was set up and forget pending work."""
        for task in self._pending.values():
            if not task.done():
                task.cancel()
        for probe_id, probe in self._instances.items():
            if not probe.is_setup:
                continue
            try:
                probe.teardown()
            except Exception as exc:
                log.warning("probe_teardown_failed", probe_id=probe_id, error=str(exc))
        self._pending.clear()
        self._instances.clear()
