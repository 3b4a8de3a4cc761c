from __future__ import annotations

import logging
from threading import Lock
from typing import Any

from core.events.noop_publisher import NoopEventPublisher
from core.events.publisher import EventPublisher
from core.events.sqs_client import build_sqs_client
from core.events.sqs_publisher import SqsEventPublisher
from core.events.types import PaymentEvent, PaymentEventType
from core.settings import get_settings

logger = logging.getLogger(__name__)


class EventPublisherManager:
    _instance: "EventPublisherManager | None" = None
    _lock = Lock()

    def __init__(self, publisher: EventPublisher) -> None:
        self._publisher = publisher

    @classmethod
    def configure(cls, publisher: EventPublisher) -> "EventPublisherManager":
        with cls._lock:
            cls._instance = cls(publisher=publisher)
            return cls._instance

    @classmethod
    def configure_from_settings(cls) -> "EventPublisherManager":
        settings = get_settings()
        if settings.sqs_enabled:
            publisher: EventPublisher = SqsEventPublisher(
                client=build_sqs_client(settings),
                queue_url=settings.sqs_queue_url or "",
                max_retries=settings.sqs_max_retries,
                base_delay_seconds=settings.sqs_retry_base_delay_seconds,
            )
            logger.info("SQS event publisher configured for %s", settings.sqs_queue_url)
        else:
            publisher = NoopEventPublisher()
            logger.warning("SQS not configured - payment events will not be published")
        return cls.configure(publisher)

    @classmethod
    def get_instance(cls) -> "EventPublisherManager":
        if cls._instance is None:
            return cls.configure_from_settings()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        with cls._lock:
            cls._instance = None

    @property
    def publisher(self) -> EventPublisher:
        return self._publisher

    @property
    def enabled(self) -> bool:
        return self._publisher.enabled

    def publish(
        self,
        event_type: PaymentEventType,
        data: dict[str, Any],
        correlation_id: str | None = None,
    ) -> str:
        return self._publisher.publish(event_type, data, correlation_id)

    def publish_batch(self, events: list[PaymentEvent]) -> list[str]:
        return self._publisher.publish_batch(events)
