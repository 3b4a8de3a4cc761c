from __future__ import annotations

from typing import Any

from core.errors import missing_payment_reference
from core.gateways.payload import optional_str, require_mapping, to_amount
from core.gateways.provider import GatewayWebhookHandler
from core.gateways.signatures import verify_paystack_signature
from core.gateways.types import NormalizedWebhook, PaymentGateway, PaymentStatus

PAYSTACK_EVENT_STATUSES = {
    "charge.success": PaymentStatus.COMPLETED,
    "charge.failed": PaymentStatus.FAILED,
}

# Paystack reports amounts and fees in the currency's minor unit (kobo, pesewas).
PAYSTACK_MINOR_UNIT_DIVISOR = 100


class PaystackWebhookHandler(GatewayWebhookHandler):
    gateway = PaymentGateway.PAYSTACK.value
    signature_header = "x-paystack-signature"

    def verify_signature(self, *, raw_body: bytes, signature: str | None, secret: str | None) -> bool:
        return verify_paystack_signature(raw_body, signature, secret)

    def normalize(self, payload: dict[str, Any]) -> NormalizedWebhook:
        event_type = str(payload.get("event") or "unknown")
        status = PAYSTACK_EVENT_STATUSES.get(event_type)
        if status is None:
            return NormalizedWebhook.unsupported(gateway=self.gateway, event_type=event_type, data=payload)

        data = require_mapping(payload, "data", gateway=self.gateway)
        reference = optional_str(data.get("reference"))
        if reference is None:
            raise missing_payment_reference(self.gateway)

        failure_reason = None
        if status == PaymentStatus.FAILED:
            failure_reason = optional_str(data.get("gateway_response"))

        return NormalizedWebhook(
            gateway=self.gateway,
            event_type=event_type,
            reference=reference,
            status=status,
            external_id=optional_str(data.get("id")),
            gateway_fee=to_amount(data.get("fees"), divisor=PAYSTACK_MINOR_UNIT_DIVISOR),
            failure_reason=failure_reason,
            data=data,
        )
