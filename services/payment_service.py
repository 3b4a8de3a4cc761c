from __future__ import annotations

import logging
import secrets
import time
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

from pymongo.errors import PyMongoError

from core.errors import (
    AppException,
    invalid_status_transition,
    merchant_not_active,
    payment_method_unavailable,
    resource_not_found,
)
from core.payment_state import plan_transition
from core.settings import get_settings
from repositories.merchant_repo import get_merchant_by_id, increment_merchant_statistics
from repositories.payment_method_repo import get_payment_method_by_id, touch_payment_method
from repositories.payment_repo import (
    create_payment,
    get_payment_by_reference,
    list_expired_pending_payments,
    list_payments_by_merchant,
    summarize_merchant_payments,
    transition_payment_status,
)
from schemas.imports import PaymentStatus
from schemas.payment_schema import (
    MAX_PAGE_SIZE,
    PaymentCreate,
    PaymentInitializeIn,
    PaymentOut,
    PaymentPage,
    PaymentStatistics,
    PaymentStatusUpdateIn,
)
from services.event_service import dispatch_payment_event

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def generate_payment_reference() -> str:
    return f"PAY_{int(time.time() * 1000)}_{secrets.token_hex(4).upper()}"


def _expiry_minutes() -> int:
    return get_settings().payment_expiry_minutes


async def initialize_payment(payload: PaymentInitializeIn) -> PaymentOut:
    merchant = await get_merchant_by_id(payload.merchant_id)
    if merchant is None:
        raise resource_not_found("Merchant", payload.merchant_id)
    if not merchant.is_active:
        raise merchant_not_active(payload.merchant_id)

    now = _now()
    if payload.payment_method_id:
        payment_method = await get_payment_method_by_id(payload.payment_method_id)
        if payment_method is None or payment_method.merchant_id != payload.merchant_id:
            raise resource_not_found("PaymentMethod", payload.payment_method_id)
        if not payment_method.is_usable(now):
            reason = "expired" if payment_method.is_expired(now) else "not active"
            raise payment_method_unavailable(payload.payment_method_id, reason)

    payment = await create_payment(
        PaymentCreate(
            reference=generate_payment_reference(),
            merchant_id=payload.merchant_id,
            payment_method_id=payload.payment_method_id,
            parent_payment_id=payload.parent_payment_id,
            amount=payload.amount,
            currency=payload.currency,
            gateway=payload.gateway,
            customer_email=payload.customer_email,
            customer_name=payload.customer_name,
            customer_phone=payload.customer_phone,
            description=payload.description,
            callback_url=payload.callback_url,
            metadata=payload.metadata or {},
            initiated_at=now,
            expires_at=now + timedelta(minutes=_expiry_minutes()),
            created_at=now,
            updated_at=now,
        )
    )

    if payload.payment_method_id:
        await touch_payment_method(payload.payment_method_id, now)

    logger.info("Payment initialized: %s for merchant %s", payment.reference, payment.merchant_id)
    dispatch_payment_event(payment)
    return payment


async def retrieve_payment_by_reference(reference: str) -> PaymentOut:
    payment = await get_payment_by_reference(reference)
    if payment is None:
        raise resource_not_found("Payment", reference)
    return payment


async def list_merchant_payments(
    merchant_id: str,
    *,
    page: int = 1,
    limit: int = 10,
    status: PaymentStatus | None = None,
) -> PaymentPage:
    page = max(page, 1)
    limit = min(max(limit, 1), MAX_PAGE_SIZE)
    payments, total = await list_payments_by_merchant(merchant_id, page=page, limit=limit, status=status)
    return PaymentPage(payments=payments, total=total, page=page, limit=limit)


async def get_payment_statistics(merchant_id: str) -> PaymentStatistics:
    summary = await summarize_merchant_payments(merchant_id)
    completed = summary.get(PaymentStatus.COMPLETED.value, {})
    return PaymentStatistics(
        total_payments=sum(entry["count"] for entry in summary.values()),
        total_amount=completed.get("amount", Decimal("0")),
        successful_payments=completed.get("count", 0),
        failed_payments=summary.get(PaymentStatus.FAILED.value, {}).get("count", 0),
        pending_payments=summary.get(PaymentStatus.PENDING.value, {}).get("count", 0),
    )


async def _record_completion(payment: PaymentOut) -> None:
    try:
        await increment_merchant_statistics(payment.merchant_id, payment.amount)
    except PyMongoError as err:
        logger.error("Failed to update statistics for merchant %s: %s", payment.merchant_id, err)


async def update_payment_status(
    payment: PaymentOut,
    target_status: PaymentStatus,
    *,
    gateway_fee: Decimal | None = None,
    failure_code: str | None = None,
    failure_reason: str | None = None,
    extra_updates: dict[str, Any] | None = None,
    webhook_at: datetime | None = None,
    correlation_id: str | None = None,
) -> PaymentOut:
    """Move ``payment`` to ``target_status`` through the state machine.

    The write is conditional on the status the transition was planned from, so
    a concurrent or replayed update loses with a 409 instead of applying twice.
    Completion bumps the merchant statistics and every successful transition
    publishes its lifecycle event in the background.
    """
    now = webhook_at or _now()
    transition = plan_transition(
        payment,
        target_status,
        now=now,
        gateway_fee=gateway_fee,
        failure_code=failure_code,
        failure_reason=failure_reason,
    )

    updated = await transition_payment_status(
        reference=payment.reference,
        expected_status=transition.from_status,
        update_dict={**transition.updates, **(extra_updates or {})},
        webhook_at=webhook_at,
    )
    if updated is None:
        current = await get_payment_by_reference(payment.reference)
        if current is None:
            raise resource_not_found("Payment", payment.reference)
        raise invalid_status_transition(current.status.value, transition.to_status.value)

    logger.info(
        "Payment %s status updated: %s -> %s",
        updated.reference,
        transition.from_status.value,
        transition.to_status.value,
    )

    if transition.completes_payment:
        await _record_completion(updated)

    dispatch_payment_event(updated, correlation_id=correlation_id)
    return updated


async def expire_stale_payments(now: datetime | None = None, limit: int = 100) -> int:
    current = now or _now()
    expired = 0
    for payment in await list_expired_pending_payments(current, limit=limit):
        try:
            await update_payment_status(payment, PaymentStatus.EXPIRED, failure_reason="Payment expired")
        except AppException as err:
            logger.warning("Could not expire payment %s: %s", payment.reference, err)
            continue
        expired += 1

    if expired:
        logger.info("Expired %s pending payments", expired)
    return expired


async def change_payment_status(reference: str, payload: PaymentStatusUpdateIn) -> PaymentOut:
    """Manual or system status change, e.g. refunds and disputes raised outside a webhook.

    When ``merchant_id`` is given the payment must belong to that merchant.
    """
    payment = await get_payment_by_reference(reference)
    if payment is None or (payload.merchant_id and payment.merchant_id != payload.merchant_id):
        raise resource_not_found("Payment", reference)

    extra_updates: dict[str, Any] = {"updated_by": payload.merchant_id or "system"}
    if payload.gateway_reference:
        extra_updates["gateway_reference"] = payload.gateway_reference
    if payload.gateway_response is not None:
        extra_updates["gateway_response"] = payload.gateway_response

    return await update_payment_status(
        payment,
        payload.status,
        failure_code=payload.failure_code,
        failure_reason=payload.failure_reason,
        extra_updates=extra_updates,
    )
