"""Probe layer — Built-in probes.

  flag      — programmatic switches toggled by the application
              (``flag:{lite-mode}``)
  env       — process environment variables
              (``env:{DEBUG}`` / ``env:{MODE=kiosk}``)
  platform  — host operating system
              (``platform:{linux}`` / ``windows`` / ``macos``)
  resource  — system resource thresholds, sampled with psutil
              (``resource:{cpu_percent<90}``, ``memory_percent>50``,
              ``disk_percent<95``).  Only supported when psutil is installed.
"""

from __future__ import annotations

import asyncio
import os
import re
import sys
from typing import Any, Callable

from conditioner.config import ProbeConfig
from conditioner.logging import get_logger
from conditioner.probes.base import ChangeCallback, Probe
from conditioner.probes.registry import ProbeRegistry

log = get_logger(__name__)


class FlagProbe(Probe):
    """Named boolean switches.

    Usage::

        flags = registry.get("flag")
        flags.set("lite-mode")      # every "flag:{lite-mode}" leaf re-evaluates
        flags.clear("lite-mode")
    """

    PROBE_ID = "flag"

    def __init__(self) -> None:
        self._flags: dict[str, bool] = {}
        super().__init__()

    def set(self, name: str, value: bool = True) -> None:
        previous = self._flags.get(name, False)
        self._flags[name] = bool(value)
        if previous != bool(value):
            log.debug("flag_changed", flag=name, value=bool(value))
            self.signal(name)

    def clear(self, name: str) -> None:
        self.set(name, False)

    def is_set(self, name: str) -> bool:
        return self._flags.get(name, False)

    def check(self, expected: str, context: Any) -> bool:
        return self.is_set(expected.strip())


class EnvProbe(Probe):
    """Environment variables.  ``NAME`` tests presence, ``NAME=value`` equality.

    The environment is not watched; call :meth:`refresh` after changing it.
    """

    PROBE_ID = "env"

    def check(self, expected: str, context: Any) -> bool:
        name, sep, value = expected.partition("=")
        name = name.strip()
        if not name:
            raise ValueError(f"env probe needs a variable name, got '{expected}'")
        if not sep:
            return name in os.environ
        return os.environ.get(name) == value

    def refresh(self) -> None:
        self.signal(None)


def _current_platform() -> str:
    if sys.platform.startswith("linux"):
        return "linux"
    if sys.platform in ("win32", "cygwin"):
        return "windows"
    if sys.platform == "darwin":
        return "macos"
    return sys.platform


class PlatformProbe(Probe):
    PROBE_ID = "platform"

    def __init__(self) -> None:
        self.current = _current_platform()
        super().__init__()

    def check(self, expected: str, context: Any) -> bool:
        return expected.strip().lower() == self.current


# ---------------------------------------------------------------------------
# Resource thresholds
# ---------------------------------------------------------------------------

_RESOURCE_RE = re.compile(
    r"^\s*(?P<metric>cpu_percent|memory_percent|disk_percent)\s*"
    r"(?P<op><=|>=|<|>)\s*(?P<threshold>\d+(?:\.\d+)?)\s*$"
)

_COMPARATORS: dict[str, Callable[[float, float], bool]] = {
    "<": lambda value, threshold: value < threshold,
    "<=": lambda value, threshold: value <= threshold,
    ">": lambda value, threshold: value > threshold,
    ">=": lambda value, threshold: value >= threshold,
}


def parse_resource_condition(expected: str) -> tuple[str, str, float]:
    """Split ``"cpu_percent<90"`` into ``("cpu_percent", "<", 90.0)``."""
    match = _RESOURCE_RE.match(expected)
    if match is None:
        raise ValueError(
            f"Invalid resource condition '{expected}': expected "
            "'<cpu_percent|memory_percent|disk_percent><op><number>'"
        )
    return match["metric"], match["op"], float(match["threshold"])


class ResourceProbe(Probe):
    """System resource usage compared against a threshold.

    Samples the metrics referenced by attached leaves every
    ``poll_interval`` seconds in a background task and signals consumers
    whenever a sampled value moves.
    """

    PROBE_ID = "resource"

    def __init__(self, poll_interval: float = 5.0, disk_path: str = "/") -> None:
        self._poll = poll_interval
        self._disk_path = disk_path
        self._metrics: set[str] = set()
        self._latest: dict[str, float] = {}
        self._task: asyncio.Task[None] | None = None
        super().__init__()

    def is_supported(self) -> bool:
        try:
            import psutil  # type: ignore[import]  # noqa: F401
        except ImportError:
            log.info("resource_probe_missing_dep")
            return False
        return True

    def arrange(self, expected: str, context: Any, notify: ChangeCallback) -> None:
        try:
            metric, _, _ = parse_resource_condition(expected)
        except ValueError as exc:
            log.warning("resource_probe_bad_condition", expected=expected, error=str(exc))
        else:
            self._metrics.add(metric)
        super().arrange(expected, context, notify)

    def setup(self, signal: Callable[[Any], None]) -> None:
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run(signal), name="probe_resource_poll")

    def teardown(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    def measure(self, event: Any) -> bool:
        # event: (metric, value) from the poll loop
        if event is None:
            return True
        metric, value = event
        if self._latest.get(metric) == value:
            return False
        self._latest[metric] = value
        return True

    def check(self, expected: str, context: Any) -> bool:
        metric, op, threshold = parse_resource_condition(expected)
        value = self._latest.get(metric)
        if value is None:
            value = self._sample(metric)
            if value is None:
                return False
            self._latest[metric] = value
        return _COMPARATORS[op](value, threshold)

    async def _run(self, signal: Callable[[Any], None]) -> None:
        log.debug("resource_probe_started", metrics=sorted(self._metrics), poll=self._poll)
        while True:
            await asyncio.sleep(self._poll)
            for metric in sorted(self._metrics):
                value = self._sample(metric)
                if value is not None:
                    signal((metric, value))

    def _sample(self, metric: str) -> float | None:
        import psutil  # type: ignore[import]

        try:
            if metric == "cpu_percent":
                return psutil.cpu_percent(interval=None)
            if metric == "memory_percent":
                return psutil.virtual_memory().percent
            if metric == "disk_percent":
                return psutil.disk_usage(self._disk_path).percent
        except Exception as exc:
            log.warning("resource_probe_sample_error", metric=metric, error=str(exc))
        return None


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


def register_builtin_probes(registry: ProbeRegistry, config: ProbeConfig | None = None) -> list[str]:
    """Register the built-in probes on *registry*.  Returns their ids."""
    config = config or ProbeConfig()
    probes: list[Probe] = [
        FlagProbe(),
        EnvProbe(),
        PlatformProbe(),
        ResourceProbe(poll_interval=config.poll_interval_seconds),
    ]
    for probe in probes:
        registry.register_instance(probe)
    return [probe.PROBE_ID for probe in probes]
