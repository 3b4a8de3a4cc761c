from __future__ import annotations

import asyncio
import logging
from typing import Any

from core.events.manager import EventPublisherManager
from core.events.publisher import EventPublishError
from core.events.types import PaymentEventType
from schemas.imports import PaymentStatus
from schemas.payment_schema import PaymentOut

logger = logging.getLogger(__name__)

STATUS_EVENT_TYPES: dict[PaymentStatus, PaymentEventType] = {
    PaymentStatus.PENDING: PaymentEventType.PAYMENT_INITIATED,
    PaymentStatus.PROCESSING: PaymentEventType.PAYMENT_PROCESSING,
    PaymentStatus.COMPLETED: PaymentEventType.PAYMENT_COMPLETED,
    PaymentStatus.FAILED: PaymentEventType.PAYMENT_FAILED,
    PaymentStatus.CANCELLED: PaymentEventType.PAYMENT_CANCELLED,
    PaymentStatus.EXPIRED: PaymentEventType.PAYMENT_CANCELLED,
    PaymentStatus.REFUNDED: PaymentEventType.PAYMENT_REFUNDED,
    PaymentStatus.PARTIALLY_REFUNDED: PaymentEventType.PAYMENT_REFUNDED,
    PaymentStatus.DISPUTED: PaymentEventType.PAYMENT_DISPUTED,
}

_PENDING_PUBLISHES: set[asyncio.Task] = set()


def event_type_for_status(status: PaymentStatus | str) -> PaymentEventType:
    return STATUS_EVENT_TYPES[PaymentStatus(status)]


def _money(value) -> str | None:
    return None if value is None else str(value)


def build_event_data(payment: PaymentOut) -> dict[str, Any]:
    data: dict[str, Any] = {
        "paymentId": payment.id,
        "reference": payment.reference,
        "merchantId": payment.merchant_id,
        "amount": _money(payment.amount),
        "currency": payment.currency.value,
        "status": payment.status.value,
        "gateway": payment.gateway.value,
        "gatewayFee": _money(payment.gateway_fee),
        "netAmount": _money(payment.net_amount),
        "customerEmail": payment.customer_email,
        "customerName": payment.customer_name,
        "gatewayReference": payment.gateway_reference,
        "failureCode": payment.failure_code,
        "failureReason": payment.failure_reason,
        "metadata": payment.metadata,
    }
    return {key: value for key, value in data.items() if value is not None}


def _get_manager() -> EventPublisherManager:
    return EventPublisherManager.get_instance()


def publish_payment_event(
    payment: PaymentOut,
    event_type: PaymentEventType | None = None,
    correlation_id: str | None = None,
) -> str | None:
    """Publish the lifecycle event for ``payment``; failures are logged, never raised."""
    resolved_type = event_type or event_type_for_status(payment.status)
    try:
        return _get_manager().publish(resolved_type, build_event_data(payment), correlation_id)
    except EventPublishError as err:
        logger.error(
            "Failed to publish %s for payment %s: %s",
            resolved_type.value,
            payment.reference,
            err,
        )
    except Exception:
        logger.exception("Unexpected error publishing %s for payment %s", resolved_type.value, payment.reference)
    return None


async def emit_payment_event(
    payment: PaymentOut,
    event_type: PaymentEventType | None = None,
    correlation_id: str | None = None,
) -> str | None:
    return await asyncio.to_thread(publish_payment_event, payment, event_type, correlation_id)


def dispatch_payment_event(
    payment: PaymentOut,
    event_type: PaymentEventType | None = None,
    correlation_id: str | None = None,
) -> asyncio.Task:
    """Schedule :func:`emit_payment_event` without waiting for the queue round-trip."""
    publish_task = asyncio.create_task(emit_payment_event(payment, event_type, correlation_id))
    _PENDING_PUBLISHES.add(publish_task)
    publish_task.add_done_callback(_PENDING_PUBLISHES.discard)
    return publish_task


async def drain_pending_publishes() -> None:
    if _PENDING_PUBLISHES:
        await asyncio.gather(*list(_PENDING_PUBLISHES), return_exceptions=True)
