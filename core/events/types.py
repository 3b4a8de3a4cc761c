from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

EVENT_VERSION = "1.0"
EVENT_SOURCE = "payment-service"
REQUIRED_DATA_FIELDS = ("paymentId", "reference", "merchantId")


class PaymentEventType(str, Enum):
    PAYMENT_INITIATED = "payment.initiated"
    PAYMENT_PROCESSING = "payment.processing"
    PAYMENT_COMPLETED = "payment.completed"
    PAYMENT_FAILED = "payment.failed"
    PAYMENT_CANCELLED = "payment.cancelled"
    PAYMENT_REFUNDED = "payment.refunded"
    PAYMENT_DISPUTED = "payment.disputed"


class InvalidEventMessage(ValueError):
    """Raised when a queue message cannot be decoded into a :class:`PaymentEvent`."""


def _event_type_value(event_type: PaymentEventType | str) -> str:
    return event_type.value if isinstance(event_type, PaymentEventType) else str(event_type)


@dataclass(frozen=True)
class PaymentEvent:
    event_type: PaymentEventType | str
    event_id: str
    timestamp: datetime
    data: dict[str, Any]
    correlation_id: str
    retry_count: int = 0
    version: str = EVENT_VERSION
    source: str = EVENT_SOURCE
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def create(
        cls,
        event_type: PaymentEventType | str,
        data: dict[str, Any],
        correlation_id: str | None = None,
    ) -> "PaymentEvent":
        return cls(
            event_type=event_type,
            event_id=str(uuid4()),
            timestamp=datetime.now(timezone.utc),
            data=data,
            correlation_id=correlation_id or str(uuid4()),
        )

    @property
    def event_type_value(self) -> str:
        return _event_type_value(self.event_type)

    @property
    def merchant_id(self) -> str:
        return str(self.data.get("merchantId", ""))

    @property
    def payment_id(self) -> str:
        return str(self.data.get("paymentId", ""))

    @property
    def group_id(self) -> str:
        return f"merchant-{self.merchant_id}"

    def with_retry_count(self, retry_count: int) -> "PaymentEvent":
        return replace(self, retry_count=retry_count)

    def to_dict(self) -> dict[str, Any]:
        return {
            "eventType": self.event_type_value,
            "eventId": self.event_id,
            "timestamp": self.timestamp.isoformat(),
            "version": self.version,
            "source": self.source,
            "data": self.data,
            "correlationId": self.correlation_id,
            "retryCount": self.retry_count,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)

    def message_attributes(self) -> dict[str, dict[str, str]]:
        values = {
            "eventType": self.event_type_value,
            "merchantId": self.merchant_id,
            "paymentId": self.payment_id,
            "timestamp": self.timestamp.isoformat(),
        }
        return {key: {"DataType": "String", "StringValue": value} for key, value in values.items() if value}


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            pass
    return datetime.now(timezone.utc)


def decode_payment_event(body: str | None) -> PaymentEvent:
    """Parse a queue message body, rejecting anything missing the fields consumers rely on.

    Unknown event types are kept as plain strings so the dispatcher can report
    them separately from malformed messages.
    """
    if not body:
        raise InvalidEventMessage("message has no body")

    try:
        raw = json.loads(body)
    except (TypeError, ValueError) as err:
        raise InvalidEventMessage(f"message body is not valid JSON: {err}") from err

    if not isinstance(raw, dict):
        raise InvalidEventMessage("message body must be a JSON object")

    event_id = raw.get("eventId")
    event_type = raw.get("eventType")
    data = raw.get("data")
    if not event_id or not event_type or not isinstance(data, dict):
        raise InvalidEventMessage("message missing required fields: eventId, eventType, data")

    missing = [name for name in REQUIRED_DATA_FIELDS if not data.get(name)]
    if missing:
        raise InvalidEventMessage("message data missing required fields: " + ", ".join(missing))

    try:
        resolved_type: PaymentEventType | str = PaymentEventType(event_type)
    except ValueError:
        resolved_type = str(event_type)

    try:
        retry_count = int(raw.get("retryCount") or 0)
    except (TypeError, ValueError):
        retry_count = 0

    return PaymentEvent(
        event_type=resolved_type,
        event_id=str(event_id),
        timestamp=_parse_timestamp(raw.get("timestamp")),
        data=data,
        correlation_id=str(raw.get("correlationId") or ""),
        retry_count=retry_count,
        version=str(raw.get("version") or EVENT_VERSION),
        source=str(raw.get("source") or EVENT_SOURCE),
    )
