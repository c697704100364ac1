"""Activation layer — Implementation registry.

Maps implementation locators (``"app.ui.Map"``) to factories and holds the
configuration registry of default options and aliases.  A factory is any
callable ``factory(target, options) -> instance``; classes qualify.

Resolution is asynchronous and cached per locator: concurrent requests for
the same locator share one in-flight resolution, and later requests return
the cached factory without consulting the resolver again.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Mapping, Protocol

from conditioner.config import ImplementationConfig
from conditioner.exceptions import ImplementationResolveError
from conditioner.logging import get_logger
from conditioner.resolvers import ImportResolver
from conditioner.utils import merge_options

log = get_logger(__name__)

ImplementationFactory = Callable[[Any, dict[str, Any]], Any]
"""
Signature: def factory(target, options) -> instance
"""


class ImplementationResolver(Protocol):
    async def resolve(self, locator: str) -> ImplementationFactory: ...


class ImplementationRegistry:
    """Locator → factory cache plus per-locator defaults and aliases.

    Usage::

        registry = ImplementationRegistry()
        registry.register("app.ui.Map", options={"zoom": 4}, alias="map")

        registry.resolve_locator("map")          # "app.ui.Map"
        registry.get_defaults("map")             # {"zoom": 4}
        factory = await registry.resolve("map")
    """

    def __init__(self, resolver: ImplementationResolver | None = None) -> None:
        self._resolver: ImplementationResolver = resolver or ImportResolver()
        self._options: dict[str, dict[str, Any]] = {}
        self._aliases: dict[str, str] = {}
        self._factories: dict[str, ImplementationFactory] = {}
        self._pending: dict[str, asyncio.Task[ImplementationFactory]] = {}

    # ---------------------------------------------------------------------------
    # Configuration registry
    # ---------------------------------------------------------------------------

    def register(
        self,
        locator: str,
        options: Mapping[str, Any] | None = None,
        alias: str | None = None,
    ) -> None:
        """Register default *options* and an optional *alias* for *locator*.

        Options are merged into any previously registered defaults.
        """
        if not locator:
            raise ValueError("locator must be a non-empty string")
        self._options[locator] = merge_options(self._options.get(locator), options)
        if alias:
            previous = self._aliases.get(alias)
            if previous is not None and previous != locator:
                log.warning("implementation_alias_replaced", alias=alias, old=previous, new=locator)
            self._aliases[alias] = locator
        log.debug("implementation_registered", locator=locator, alias=alias)

    def configure(self, implementations: Mapping[str, ImplementationConfig]) -> None:
        """Register every entry of a ``Settings.implementations`` table."""
        for locator, config in implementations.items():
            self.register(locator, options=config.options, alias=config.alias)

    def resolve_locator(self, name: str) -> str:
        """Return the locator an alias points to, or *name* unchanged."""
        return self._aliases.get(name, name)

    def get_defaults(self, locator: str) -> dict[str, Any]:
        """Return a copy of the default options registered for *locator*."""
        return merge_options(self._options.get(self.resolve_locator(locator)), None)

    def list_registered(self) -> list[str]:
        return sorted(self._options)

    # ---------------------------------------------------------------------------
    # Resolution
    # ---------------------------------------------------------------------------

    def get_factory(self, locator: str) -> ImplementationFactory | None:
        """Return the cached factory for *locator* if already resolved."""
        return self._factories.get(self.resolve_locator(locator))

    async def resolve(self, locator: str) -> ImplementationFactory:
        """Resolve *locator* (or its alias) to a factory.

        Raises:
            ImplementationResolveError: The resolver failed or returned a
                non-callable object.
        """
        locator = self.resolve_locator(locator)
        cached = self._factories.get(locator)
        if cached is not None:
            return cached
        task = self._pending.get(locator)
        if task is None:
            task = asyncio.get_running_loop().create_task(
                self._resolve(locator), name=f"implementation_{locator}"
            )
            self._pending[locator] = task
        try:
            return await asyncio.shield(task)
        finally:
            if task.done():
                self._pending.pop(locator, None)

    async def _resolve(self, locator: str) -> ImplementationFactory:
        try:
            factory = await self._resolver.resolve(locator)
        except ImplementationResolveError:
            raise
        except Exception as exc:
            raise ImplementationResolveError(locator, str(exc)) from exc
        if not callable(factory):
            raise ImplementationResolveError(locator, f"resolved to non-callable {factory!r}")
        self._factories[locator] = factory
        log.info("implementation_resolved", locator=locator)
        return factory
