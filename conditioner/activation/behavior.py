"""Activation layer — Base class for behavior implementations.

Any callable ``factory(target, options)`` can back a candidate binding.
Subclassing :class:`BaseBehavior` adds option defaults and the ability to
publish events that bubble up to the owning binding.

Usage::

    class Carousel(BaseBehavior):
        DEFAULT_OPTIONS = {"interval": 5, "controls": {"arrows": True}}

        def next(self):
            self.publish("slide", self.index)

        def unload(self):
            self.timer.cancel()
"""

from __future__ import annotations

from typing import Any, ClassVar, Mapping

from conditioner.events.bus import EventBus
from conditioner.exceptions import ConfigurationError
from conditioner.utils import merge_options


class BaseBehavior:
    DEFAULT_OPTIONS: ClassVar[dict[str, Any]] = {}

    def __init__(self, target: Any, options: Mapping[str, Any] | None = None) -> None:
        if target is None:
            raise ConfigurationError(
                f"{type(self).__name__} requires a target",
                context={"behavior": type(self).__name__},
            )
        self.target = target
        self.options: dict[str, Any] = merge_options(self.DEFAULT_OPTIONS, options)
        self._bus: EventBus | None = None

    def attach_bus(self, bus: EventBus | None) -> None:
        """Called by the owning binding after instantiation (and with None on unload)."""
        self._bus = bus

    def publish(self, event: str, data: Any = None) -> bool:
        """Publish *event* on this instance.  False when no bus is attached."""
        if self._bus is None:
            return False
        self._bus.publish(self, event, data)
        return True

    def unload(self) -> None:
        """Release resources.  Called once, when the binding is deactivated."""
