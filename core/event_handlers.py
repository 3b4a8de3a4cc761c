from __future__ import annotations

import json
import logging
from datetime import datetime, timezone

from core.events.handlers import event_handler
from core.events.types import PaymentEvent, PaymentEventType

logger = logging.getLogger("payment.events")


def log_business_event(action: str, event: PaymentEvent) -> dict:
    entry = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "action": action,
        "eventId": event.event_id,
        "correlationId": event.correlation_id,
        "paymentId": event.data.get("paymentId"),
        "reference": event.data.get("reference"),
        "merchantId": event.data.get("merchantId"),
        "amount": event.data.get("amount"),
        "currency": event.data.get("currency"),
        "status": event.data.get("status"),
        "gateway": event.data.get("gateway"),
    }
    logger.info("BUSINESS_EVENT %s", json.dumps(entry, default=str))
    return entry


@event_handler(PaymentEventType.PAYMENT_INITIATED)
async def handle_payment_initiated(event: PaymentEvent) -> None:
    logger.info(
        "Payment initiated: %s for merchant %s",
        event.data.get("reference"),
        event.data.get("merchantId"),
    )
    log_business_event("Payment Initiated", event)


@event_handler(PaymentEventType.PAYMENT_PROCESSING)
async def handle_payment_processing(event: PaymentEvent) -> None:
    logger.info("Payment processing: %s", event.data.get("reference"))
    log_business_event("Payment Processing", event)


@event_handler(PaymentEventType.PAYMENT_COMPLETED)
async def handle_payment_completed(event: PaymentEvent) -> None:
    logger.info(
        "Payment completed: %s - Amount: %s %s",
        event.data.get("reference"),
        event.data.get("amount"),
        event.data.get("currency"),
    )
    log_business_event("Payment Completed", event)


@event_handler(PaymentEventType.PAYMENT_FAILED)
async def handle_payment_failed(event: PaymentEvent) -> None:
    logger.info(
        "Payment failed: %s - Reason: %s",
        event.data.get("reference"),
        event.data.get("failureReason"),
    )
    log_business_event("Payment Failed", event)


@event_handler(PaymentEventType.PAYMENT_CANCELLED)
async def handle_payment_cancelled(event: PaymentEvent) -> None:
    logger.info("Payment cancelled: %s (%s)", event.data.get("reference"), event.data.get("status"))
    log_business_event("Payment Cancelled", event)


@event_handler(PaymentEventType.PAYMENT_REFUNDED)
async def handle_payment_refunded(event: PaymentEvent) -> None:
    logger.info(
        "Payment refunded: %s - Amount: %s %s",
        event.data.get("reference"),
        event.data.get("amount"),
        event.data.get("currency"),
    )
    log_business_event("Payment Refunded", event)


@event_handler(PaymentEventType.PAYMENT_DISPUTED)
async def handle_payment_disputed(event: PaymentEvent) -> None:
    logger.info("Payment disputed: %s", event.data.get("reference"))
    log_business_event("Payment Disputed", event)
