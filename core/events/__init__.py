from core.events.handlers import (
    dispatch_event,
    event_handler,
    get_handler,
    list_registered_event_types,
    register_handler,
)
from core.events.manager import EventPublisherManager
from core.events.publisher import EventPublisher, EventPublishError
from core.events.types import PaymentEvent, PaymentEventType

__all__ = [
    "EventPublishError",
    "EventPublisher",
    "EventPublisherManager",
    "PaymentEvent",
    "PaymentEventType",
    "dispatch_event",
    "event_handler",
    "get_handler",
    "list_registered_event_types",
    "register_handler",
]
