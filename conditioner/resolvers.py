"""Resolvers — turn a textual locator into a Python object, asynchronously.

Both the implementation registry and the probe registry delegate the
"locator → object" step to a resolver so that applications can plug in their
own loading mechanism (plugin entry points, remote bundles, ...).

Resolver protocol::

    class Resolver(Protocol):
        async def resolve(self, locator: str) -> Any: ...

Provided implementations:
  - ImportResolver  — ``"package.module.ClassName"`` or
                      ``"package.module:attribute"`` via importlib
  - MappingResolver — in-memory table, used for programmatic registration
                      and in tests
"""

from __future__ import annotations

import importlib
from typing import Any, Mapping, Protocol

from conditioner.exceptions import ResolutionError
from conditioner.logging import get_logger

log = get_logger(__name__)


class Resolver(Protocol):
    async def resolve(self, locator: str) -> Any: ...


class ImportResolver:
    """Import the object named by a fully-qualified path.

    Usage::

        resolver = ImportResolver()
        cls = await resolver.resolve("myapp.behaviors.Carousel")
        cls = await resolver.resolve("myapp.behaviors:Carousel")
    """

    async def resolve(self, locator: str) -> Any:
        if ":" in locator:
            mod_path, _, attr = locator.partition(":")
        else:
            mod_path, _, attr = locator.rpartition(".")
        if not mod_path or not attr:
            raise ResolutionError(
                f"Invalid locator '{locator}': expected 'module.Name' or 'module:Name'",
                context={"locator": locator},
            )
        try:
            mod = importlib.import_module(mod_path)
        except ImportError as exc:
            raise ResolutionError(
                f"Cannot import module '{mod_path}': {exc}",
                context={"locator": locator},
            ) from exc
        if not hasattr(mod, attr):
            raise ResolutionError(
                f"Module '{mod_path}' has no attribute '{attr}'",
                context={"locator": locator},
            )
        log.debug("locator_imported", locator=locator)
        return getattr(mod, attr)


class MappingResolver:
    """Resolve locators from an in-memory mapping."""

    def __init__(self, entries: Mapping[str, Any] | None = None) -> None:
        self._entries: dict[str, Any] = dict(entries or {})

    def add(self, locator: str, obj: Any) -> None:
        self._entries[locator] = obj

    async def resolve(self, locator: str) -> Any:
        try:
            return self._entries[locator]
        except KeyError:
            raise ResolutionError(
                f"No entry registered for '{locator}'",
                context={"locator": locator},
            ) from None
