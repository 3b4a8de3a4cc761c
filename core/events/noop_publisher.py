from __future__ import annotations

import logging
from typing import Any

from core.events.publisher import EventPublisher
from core.events.types import PaymentEvent, PaymentEventType

logger = logging.getLogger(__name__)

DISABLED_MESSAGE_ID = "sqs-disabled"


class NoopEventPublisher(EventPublisher):
    """Stands in for the queue when no credentials are configured."""

    backend_name = "disabled"
    enabled = False

    def publish(
        self,
        event_type: PaymentEventType,
        data: dict[str, Any],
        correlation_id: str | None = None,
    ) -> str:
        return self.publish_event(PaymentEvent.create(event_type, data, correlation_id))

    def publish_event(self, event: PaymentEvent) -> str:
        logger.info("SQS disabled - skipping event: %s", event.event_type_value)
        return DISABLED_MESSAGE_ID

    def publish_batch(self, events: list[PaymentEvent]) -> list[str]:
        if events:
            logger.info("SQS disabled - skipping batch of %s events", len(events))
        return [DISABLED_MESSAGE_ID for _ in events]
