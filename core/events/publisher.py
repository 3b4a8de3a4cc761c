from __future__ import annotations

from typing import Any, Protocol

from core.events.types import PaymentEvent, PaymentEventType


class EventPublishError(RuntimeError):
    """Raised once a publish has exhausted its retries."""


class EventPublisher(Protocol):
    backend_name: str
    enabled: bool

    def publish(
        self,
        event_type: PaymentEventType,
        data: dict[str, Any],
        correlation_id: str | None = None,
    ) -> str:
        ...

    def publish_event(self, event: PaymentEvent) -> str:
        ...

    def publish_batch(self, events: list[PaymentEvent]) -> list[str]:
        ...
