"""Conditioner — Engine facade.

Wires the shared collaborators together (event bus, implementation
registry, probe registry) from a :class:`~conditioner.config.Settings`
instance and turns target declarations into running activation groups.

Usage::

    async def main():
        engine = Conditioner()
        engine.set_options({"app.ui.Map": {"alias": "map", "options": {"zoom": 4}}})
        engine.load([
            {"target": sidebar, "candidates": [
                {"locator": "map", "conditions": "flag:{maps}"},
                {"locator": "app.ui.StaticMap"},
            ]},
        ])
        await engine.wait_ready()
        engine.probes.get("flag").set("maps")
        ...
        engine.close()
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping

from conditioner.activation.binding import CandidateBinding
from conditioner.activation.declarations import TargetDeclaration, coerce_declaration
from conditioner.activation.group import ActivationGroup
from conditioner.activation.implementations import ImplementationRegistry, ImplementationResolver
from conditioner.config import ImplementationConfig, Settings, get_settings
from conditioner.events.bus import EventBus
from conditioner.expressions.parser import parse_expression
from conditioner.logging import configure_logging, get_logger
from conditioner.probes.base import Probe
from conditioner.probes.builtin import register_builtin_probes
from conditioner.probes.registry import ProbeRegistry
from conditioner.resolvers import Resolver

log = get_logger(__name__)

GroupPredicate = Callable[[ActivationGroup], bool]


class Conditioner:
    """Entry point of the activation engine.

    :meth:`load` and :meth:`wait_ready` must run inside an event loop.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        implementation_resolver: ImplementationResolver | None = None,
        probe_resolver: Resolver | None = None,
        bus: EventBus | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.bus = bus or EventBus(max_depth=self.settings.engine.max_propagation_depth)
        self.implementations = ImplementationRegistry(implementation_resolver)
        self.implementations.configure(self.settings.implementations)
        self.probes = ProbeRegistry(resolver=probe_resolver, aliases=self.settings.probes.aliases)
        if self.settings.probes.builtin:
            ids = register_builtin_probes(self.probes, self.settings.probes)
            log.debug("builtin_probes_registered", probes=ids)
        self._groups: list[ActivationGroup] = []

    # ---------------------------------------------------------------------------
    # Configuration
    # ---------------------------------------------------------------------------

    def set_options(self, implementations: Mapping[str, str | Mapping[str, Any] | ImplementationConfig]) -> None:
        """Register default options and aliases per implementation locator.

        Values are an alias string or ``{"alias": ..., "options": {...}}``.
        Options merge into anything registered before.
        """
        for locator, entry in implementations.items():
            if isinstance(entry, ImplementationConfig):
                config = entry
            elif isinstance(entry, str):
                config = ImplementationConfig(alias=entry)
            else:
                config = ImplementationConfig.model_validate(entry)
            self.implementations.register(locator, options=config.options, alias=config.alias)

    def register_probe(self, probe: type[Probe] | Probe) -> None:
        """Register a probe class or a configured probe instance."""
        if isinstance(probe, Probe):
            self.probes.register_instance(probe)
        else:
            self.probes.register(probe)

    # ---------------------------------------------------------------------------
    # Loading
    # ---------------------------------------------------------------------------

    def load(self, targets: Iterable[TargetDeclaration | Mapping[str, Any]]) -> list[ActivationGroup]:
        """Create and initialise an activation group per new target.

        Every declaration is validated before any group is created.  Targets
        that already have a group are skipped.  Groups are initialised in
        descending target priority.

        Raises:
            DeclarationError: A declaration is malformed.
            ExpressionParseError: A condition is malformed.
        """
        declarations = [coerce_declaration(raw) for raw in targets]
        for decl in declarations:
            for candidate in decl.candidates:
                if candidate.conditions is not None:
                    parse_expression(candidate.conditions)

        created: list[ActivationGroup] = []
        for decl in declarations:
            if self._find(decl.target) is not None or any(g.target is decl.target for g in created):
                log.debug("target_already_loaded", target=repr(decl.target))
                continue
            created.append(self._build_group(decl))

        created.sort(key=lambda g: -g.priority)
        self._groups.extend(created)
        for group in created:
            group.init()
        log.info("targets_loaded", count=len(created))
        return created

    def _build_group(self, decl: TargetDeclaration) -> ActivationGroup:
        bindings = [
            CandidateBinding(
                candidate.locator,
                target=decl.target,
                conditions=candidate.conditions,
                options=candidate.options,
                priority=candidate.priority,
                implementations=self.implementations,
                probes=self.probes,
                bus=self.bus,
            )
            for candidate in decl.candidates
        ]
        return ActivationGroup(decl.target, bindings, bus=self.bus, priority=decl.priority)

    # ---------------------------------------------------------------------------
    # Lookup
    # ---------------------------------------------------------------------------

    def _find(self, target: Any) -> ActivationGroup | None:
        return next((g for g in self._groups if g.target is target), None)

    def get_group(self, target: Any) -> ActivationGroup | None:
        """Return the group of *target*, or the first group matching a predicate."""
        group = self._find(target)
        if group is None and callable(target):
            group = next((g for g in self._groups if target(g)), None)
        return group

    def get_groups(self, predicate: GroupPredicate | None = None) -> list[ActivationGroup]:
        if predicate is None:
            return list(self._groups)
        return [g for g in self._groups if predicate(g)]

    async def wait_ready(self) -> None:
        """Wait until every binding of every group has resolved its conditions."""
        await asyncio.gather(
            *(binding.evaluator.wait_ready() for group in self._groups for binding in group.bindings)
        )

    # ---------------------------------------------------------------------------
    # Shutdown
    # ---------------------------------------------------------------------------

    def close(self) -> None:
        for group in self._groups:
            group.close()
        self._groups.clear()
        self.probes.close()
        log.info("engine_closed")


def create_engine(settings: Settings | None = None, config_file: Path | None = None) -> Conditioner:
    """Create a :class:`Conditioner` with logging configured from settings.

    Args:
        settings:    Optional settings override (used in tests).
        config_file: YAML file layered over the default config locations.
                     Ignored when *settings* is given.
    """
    if settings is None:
        settings = Settings.load(config_file) if config_file else get_settings()

    configure_logging(
        level=settings.logging.level,
        format=settings.logging.format,
        log_file=str(settings.logging.file) if settings.logging.file else None,
    )
    return Conditioner(settings)
