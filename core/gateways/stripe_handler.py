from __future__ import annotations

from typing import Any

from core.errors import malformed_webhook_payload, missing_payment_reference
from core.gateways.payload import optional_str, require_mapping
from core.gateways.provider import GatewayWebhookHandler
from core.gateways.signatures import DEFAULT_TIMESTAMP_TOLERANCE_SECONDS, verify_stripe_signature
from core.gateways.types import NormalizedWebhook, PaymentGateway, PaymentStatus

STRIPE_EVENT_STATUSES = {
    "payment_intent.succeeded": PaymentStatus.COMPLETED,
    "payment_intent.payment_failed": PaymentStatus.FAILED,
}


class StripeWebhookHandler(GatewayWebhookHandler):
    gateway = PaymentGateway.STRIPE.value
    signature_header = "stripe-signature"

    def __init__(
        self,
        *,
        reference_metadata_key: str = "payment_reference",
        tolerance_seconds: int = DEFAULT_TIMESTAMP_TOLERANCE_SECONDS,
    ) -> None:
        self._reference_metadata_key = reference_metadata_key
        self._tolerance_seconds = tolerance_seconds

    def verify_signature(self, *, raw_body: bytes, signature: str | None, secret: str | None) -> bool:
        return verify_stripe_signature(raw_body, signature, secret, tolerance=self._tolerance_seconds)

    def normalize(self, payload: dict[str, Any]) -> NormalizedWebhook:
        event_type = str(payload.get("type") or "unknown")
        status = STRIPE_EVENT_STATUSES.get(event_type)
        if status is None:
            return NormalizedWebhook.unsupported(gateway=self.gateway, event_type=event_type, data=payload)

        payment_intent = require_mapping(require_mapping(payload, "data", gateway=self.gateway), "object", gateway=self.gateway)
        metadata = payment_intent.get("metadata") or {}
        if not isinstance(metadata, dict):
            raise malformed_webhook_payload(self.gateway, "'metadata' must be an object")

        reference = optional_str(metadata.get(self._reference_metadata_key))
        if reference is None:
            raise missing_payment_reference(self.gateway)

        last_error = payment_intent.get("last_payment_error") or {}
        if not isinstance(last_error, dict):
            last_error = {}

        return NormalizedWebhook(
            gateway=self.gateway,
            event_type=event_type,
            reference=reference,
            status=status,
            external_id=optional_str(payment_intent.get("id")),
            failure_code=optional_str(last_error.get("code")),
            failure_reason=optional_str(last_error.get("message")),
            data=payment_intent,
        )
