from __future__ import annotations

from typing import Any

from core.errors import missing_payment_reference
from core.gateways.payload import optional_str, require_mapping, to_amount
from core.gateways.provider import GatewayWebhookHandler
from core.gateways.signatures import verify_flutterwave_signature
from core.gateways.types import NormalizedWebhook, PaymentGateway, PaymentStatus

FLUTTERWAVE_CHARGE_EVENT = "charge.completed"
FLUTTERWAVE_SUCCESS_STATUS = "successful"


class FlutterwaveWebhookHandler(GatewayWebhookHandler):
    gateway = PaymentGateway.FLUTTERWAVE.value
    signature_header = "verif-hash"

    def verify_signature(self, *, raw_body: bytes, signature: str | None, secret: str | None) -> bool:
        return verify_flutterwave_signature(raw_body, signature, secret)

    def normalize(self, payload: dict[str, Any]) -> NormalizedWebhook:
        event_type = str(payload.get("event") or "unknown")
        if event_type != FLUTTERWAVE_CHARGE_EVENT:
            return NormalizedWebhook.unsupported(gateway=self.gateway, event_type=event_type, data=payload)

        data = require_mapping(payload, "data", gateway=self.gateway)
        reference = optional_str(data.get("tx_ref"))
        if reference is None:
            raise missing_payment_reference(self.gateway)

        charge_status = str(data.get("status") or "").strip().lower()
        if charge_status == FLUTTERWAVE_SUCCESS_STATUS:
            status = PaymentStatus.COMPLETED
            failure_reason = None
        else:
            status = PaymentStatus.FAILED
            failure_reason = optional_str(data.get("processor_response")) or charge_status or None

        return NormalizedWebhook(
            gateway=self.gateway,
            event_type=event_type,
            reference=reference,
            status=status,
            external_id=optional_str(data.get("id")),
            gateway_fee=to_amount(data.get("app_fee")),
            failure_reason=failure_reason,
            data=data,
        )
