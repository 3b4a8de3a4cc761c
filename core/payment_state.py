"""Payment lifecycle rules.

A status change is planned here and applied by the repository in a single
conditional update, so a rejected transition never mutates the stored payment.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Protocol

from core.errors import invalid_status_transition
from core.gateways.types import PaymentStatus

TWO_PLACES = Decimal("0.01")

ALLOWED_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset(
        {
            PaymentStatus.PROCESSING,
            PaymentStatus.COMPLETED,
            PaymentStatus.FAILED,
            PaymentStatus.CANCELLED,
            PaymentStatus.EXPIRED,
        }
    ),
    PaymentStatus.PROCESSING: frozenset(
        {
            PaymentStatus.COMPLETED,
            PaymentStatus.FAILED,
            PaymentStatus.CANCELLED,
        }
    ),
    PaymentStatus.COMPLETED: frozenset(
        {
            PaymentStatus.REFUNDED,
            PaymentStatus.PARTIALLY_REFUNDED,
            PaymentStatus.DISPUTED,
        }
    ),
    PaymentStatus.PARTIALLY_REFUNDED: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.FAILED: frozenset(),
    PaymentStatus.CANCELLED: frozenset(),
    PaymentStatus.REFUNDED: frozenset(),
    PaymentStatus.DISPUTED: frozenset(),
    PaymentStatus.EXPIRED: frozenset(),
}

TERMINAL_STATUSES = frozenset(status for status, targets in ALLOWED_TRANSITIONS.items() if not targets)
FAILURE_STATUSES = frozenset({PaymentStatus.FAILED, PaymentStatus.CANCELLED, PaymentStatus.EXPIRED})


class TransitionSubject(Protocol):
    status: Any
    amount: Decimal
    gateway_fee: Decimal
    platform_fee: Decimal
    processed_at: datetime | None
    completed_at: datetime | None
    failed_at: datetime | None


@dataclass(frozen=True)
class StatusTransition:
    from_status: PaymentStatus
    to_status: PaymentStatus
    updates: dict[str, Any] = field(default_factory=dict)

    @property
    def completes_payment(self) -> bool:
        return self.to_status == PaymentStatus.COMPLETED


def can_transition(current_status: PaymentStatus | str, target_status: PaymentStatus | str) -> bool:
    return PaymentStatus(target_status) in ALLOWED_TRANSITIONS[PaymentStatus(current_status)]


def calculate_net_amount(amount: Decimal, gateway_fee: Decimal, platform_fee: Decimal) -> Decimal:
    return (Decimal(amount) - Decimal(gateway_fee) - Decimal(platform_fee)).quantize(TWO_PLACES)


def plan_transition(
    payment: TransitionSubject,
    target_status: PaymentStatus | str,
    *,
    now: datetime | None = None,
    gateway_fee: Decimal | None = None,
    failure_code: str | None = None,
    failure_reason: str | None = None,
) -> StatusTransition:
    """Validate ``payment.status -> target_status`` and compute the fields to write.

    Raises the 409 invalid-transition error for any pair outside
    :data:`ALLOWED_TRANSITIONS`. Lifecycle timestamps are only stamped the first
    time their state is reached.
    """
    current = PaymentStatus(payment.status)
    target = PaymentStatus(target_status)
    if not can_transition(current, target):
        raise invalid_status_transition(current.value, target.value)

    timestamp = now or datetime.now(timezone.utc)
    updates: dict[str, Any] = {"status": target.value, "updated_at": timestamp}

    if gateway_fee is not None:
        updates["gateway_fee"] = gateway_fee
    if failure_code is not None:
        updates["failure_code"] = failure_code
    if failure_reason is not None:
        updates["failure_reason"] = failure_reason

    if target == PaymentStatus.PROCESSING:
        if payment.processed_at is None:
            updates["processed_at"] = timestamp
    elif target == PaymentStatus.COMPLETED:
        if payment.completed_at is None:
            updates["completed_at"] = timestamp
        fee = gateway_fee if gateway_fee is not None else payment.gateway_fee
        updates["net_amount"] = calculate_net_amount(payment.amount, fee, payment.platform_fee)
    elif target in FAILURE_STATUSES:
        if payment.failed_at is None:
            updates["failed_at"] = timestamp

    return StatusTransition(from_status=current, to_status=target, updates=updates)
