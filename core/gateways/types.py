from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any


class PaymentGateway(str, Enum):
    PAYSTACK = "paystack"
    FLUTTERWAVE = "flutterwave"
    STRIPE = "stripe"
    PAYPAL = "paypal"
    SQUARE = "square"
    RAZORPAY = "razorpay"
    INTERNAL = "internal"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"
    DISPUTED = "disputed"
    EXPIRED = "expired"


class Currency(str, Enum):
    USD = "USD"
    EUR = "EUR"
    GBP = "GBP"
    NGN = "NGN"
    GHS = "GHS"
    KES = "KES"
    ZAR = "ZAR"
    BTC = "BTC"
    ETH = "ETH"


@dataclass(frozen=True)
class NormalizedWebhook:
    """Canonical view of a gateway webhook.

    ``status`` is ``None`` when the gateway sent an event type we do not act on;
    such results are acknowledged without touching the payment.
    """

    gateway: str
    event_type: str
    reference: str | None
    status: PaymentStatus | None
    external_id: str | None = None
    gateway_fee: Decimal | None = None
    failure_code: str | None = None
    failure_reason: str | None = None
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def supported(self) -> bool:
        return self.status is not None

    @classmethod
    def unsupported(cls, *, gateway: str, event_type: str, data: dict[str, Any] | None = None) -> "NormalizedWebhook":
        return cls(gateway=gateway, event_type=event_type, reference=None, status=None, data=data or {})
