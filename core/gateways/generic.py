"""Gateway-agnostic webhook normalization used by the shared ``/webhooks/payment`` endpoint."""

from __future__ import annotations

import logging
from typing import Any

from core.errors import missing_payment_reference
from core.gateways.payload import optional_str, to_amount
from core.gateways.types import NormalizedWebhook, PaymentStatus

logger = logging.getLogger(__name__)

GENERIC_GATEWAY = "generic"

GATEWAY_STATUS_MAP: dict[str, PaymentStatus] = {
    "succeeded": PaymentStatus.COMPLETED,
    "completed": PaymentStatus.COMPLETED,
    "success": PaymentStatus.COMPLETED,
    "successful": PaymentStatus.COMPLETED,
    "paid": PaymentStatus.COMPLETED,
    "failed": PaymentStatus.FAILED,
    "declined": PaymentStatus.FAILED,
    "error": PaymentStatus.FAILED,
    "pending": PaymentStatus.PENDING,
    "processing": PaymentStatus.PROCESSING,
    "in_progress": PaymentStatus.PROCESSING,
    "cancelled": PaymentStatus.CANCELLED,
    "canceled": PaymentStatus.CANCELLED,
    "refunded": PaymentStatus.REFUNDED,
    "partially_refunded": PaymentStatus.PARTIALLY_REFUNDED,
    "disputed": PaymentStatus.DISPUTED,
    "chargeback": PaymentStatus.DISPUTED,
    "expired": PaymentStatus.EXPIRED,
}

# Event names are more specific than bare statuses and win when both are present.
GATEWAY_EVENT_MAP: dict[str, PaymentStatus] = {
    "payment.succeeded": PaymentStatus.COMPLETED,
    "payment.completed": PaymentStatus.COMPLETED,
    "payment.failed": PaymentStatus.FAILED,
    "payment.cancelled": PaymentStatus.CANCELLED,
    "payment.refunded": PaymentStatus.REFUNDED,
    "charge.succeeded": PaymentStatus.COMPLETED,
    "charge.failed": PaymentStatus.FAILED,
    "charge.dispute.created": PaymentStatus.DISPUTED,
}


def map_gateway_status(gateway_status: str | None, event: str | None = None) -> PaymentStatus:
    if event:
        mapped_event = GATEWAY_EVENT_MAP.get(event.strip().lower())
        if mapped_event is not None:
            return mapped_event

    mapped = GATEWAY_STATUS_MAP.get((gateway_status or "").strip().lower())
    if mapped is None:
        logger.warning("Unknown gateway status: %s, defaulting to %s", gateway_status, PaymentStatus.PROCESSING.value)
        return PaymentStatus.PROCESSING
    return mapped


def normalize_generic_payload(payload: dict[str, Any]) -> NormalizedWebhook:
    reference = optional_str(payload.get("reference"))
    if reference is None:
        raise missing_payment_reference(GENERIC_GATEWAY)

    event = optional_str(payload.get("event"))
    data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
    return NormalizedWebhook(
        gateway=GENERIC_GATEWAY,
        event_type=event or "unknown",
        reference=reference,
        status=map_gateway_status(optional_str(payload.get("status")), event),
        external_id=optional_str(payload.get("gatewayReference")),
        gateway_fee=to_amount(payload.get("gatewayFee")),
        failure_code=optional_str(payload.get("failureCode")),
        failure_reason=optional_str(payload.get("failureMessage")),
        data=data,
    )
