"""Event layer — synchronous EventBus shared by every engine component.

Quick start::

    from conditioner.events import EventBus, EVENT_CHANGE

    bus = EventBus()
    bus.subscribe(evaluator, EVENT_CHANGE, lambda _: print("verdict changed"))
"""

from conditioner.events.bus import (
    EVENT_AVAILABLE,
    EVENT_CHANGE,
    EVENT_FAIL,
    EVENT_LOAD,
    EVENT_READY,
    EVENT_UNLOAD,
    EventBus,
    EventHandler,
)

__all__ = [
    "EventBus",
    "EventHandler",
    # Event names
    "EVENT_READY",
    "EVENT_AVAILABLE",
    "EVENT_LOAD",
    "EVENT_UNLOAD",
    "EVENT_CHANGE",
    "EVENT_FAIL",
]
