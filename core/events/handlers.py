from __future__ import annotations

from typing import Awaitable, Callable

from core.events.types import PaymentEvent, PaymentEventType

EventHandler = Callable[[PaymentEvent], Awaitable[None]]
_HANDLER_REGISTRY: dict[str, EventHandler] = {}


def _key(event_type: PaymentEventType | str) -> str:
    return event_type.value if isinstance(event_type, PaymentEventType) else str(event_type)


def register_handler(event_type: PaymentEventType | str, func: EventHandler) -> None:
    key = _key(event_type)
    if key in _HANDLER_REGISTRY:
        raise ValueError(f"Event type '{key}' already has a handler")
    _HANDLER_REGISTRY[key] = func


def event_handler(event_type: PaymentEventType | str) -> Callable[[EventHandler], EventHandler]:
    def decorator(func: EventHandler) -> EventHandler:
        register_handler(event_type, func)
        return func

    return decorator


def get_handler(event_type: PaymentEventType | str) -> EventHandler | None:
    return _HANDLER_REGISTRY.get(_key(event_type))


async def dispatch_event(event: PaymentEvent) -> None:
    target = get_handler(event.event_type)
    if target is None:
        valid_types = ", ".join(sorted(_HANDLER_REGISTRY)) or "<none>"
        raise ValueError(
            f"Event type '{event.event_type_value}' has no handler. Registered types: {valid_types}"
        )
    await target(event)


def list_registered_event_types() -> list[str]:
    return sorted(_HANDLER_REGISTRY.keys())
