from __future__ import annotations

import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Mapping

from core.errors import (
    AppException,
    ErrorCode,
    invalid_webhook_signature,
    malformed_webhook_payload,
    payment_not_pending,
    resource_not_found,
    unsupported_gateway,
)
from core.gateways.generic import GENERIC_GATEWAY, map_gateway_status, normalize_generic_payload
from core.gateways.registry import GatewayRegistry
from core.gateways.signatures import verify_generic_signature
from core.gateways.types import NormalizedWebhook
from core.settings import get_settings
from repositories.payment_method_repo import get_active_payment_method_by_gateway
from repositories.payment_repo import find_payment_for_webhook, get_payment_by_reference
from schemas.imports import PaymentStatus
from schemas.webhook_schema import WebhookResponse, WebhookSimulationIn
from services.payment_service import update_payment_status

logger = logging.getLogger(__name__)

GENERIC_SIGNATURE_HEADER = "x-signature"
GENERIC_TIMESTAMP_HEADER = "x-timestamp"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _get_registry() -> GatewayRegistry:
    return GatewayRegistry.get_instance()


def parse_webhook_body(raw_body: bytes, gateway: str) -> Any:
    try:
        return json.loads(raw_body or b"")
    except (TypeError, ValueError) as err:
        raise malformed_webhook_payload(gateway, "webhook body is not valid JSON") from err


async def resolve_webhook_secret(gateway: str) -> str | None:
    payment_method = await get_active_payment_method_by_gateway(gateway)
    if payment_method is None:
        raise resource_not_found("PaymentMethod", gateway)
    return payment_method.webhook_secret or payment_method.gateway_config.get("webhook_secret")


async def apply_normalized_webhook(normalized: NormalizedWebhook) -> WebhookResponse:
    payment = await find_payment_for_webhook(normalized.reference, normalized.external_id)
    if payment is None:
        raise resource_not_found("Payment", normalized.reference or normalized.external_id)

    extra_updates: dict[str, Any] = {"gateway_response": normalized.data}
    if normalized.external_id:
        key = "gateway_reference" if normalized.gateway == GENERIC_GATEWAY else "external_id"
        extra_updates[key] = normalized.external_id

    updated = await update_payment_status(
        payment,
        normalized.status,  # type: ignore[arg-type]
        gateway_fee=normalized.gateway_fee,
        failure_code=normalized.failure_code,
        failure_reason=normalized.failure_reason,
        extra_updates=extra_updates,
        webhook_at=_now(),
    )
    logger.info(
        "%s webhook processed for payment %s -> %s",
        normalized.gateway,
        updated.reference,
        updated.status.value,
    )
    return WebhookResponse(
        message="Webhook processed successfully",
        success=True,
        reference=updated.reference,
        status=updated.status,
    )


async def process_gateway_webhook(gateway: str, raw_body: bytes, signature: str | None) -> WebhookResponse:
    """Verify, normalize and apply a webhook from a named gateway.

    Raises 404 when no active payment method exists for the gateway or the
    payment cannot be found, 401 on a bad signature and 400 for a payload
    without a reference. Events we do not act on are acknowledged untouched.
    """
    registry = _get_registry()
    handler = registry.get_handler(gateway)

    secret = await resolve_webhook_secret(handler.gateway)
    if not registry.verify_signature(handler.gateway, raw_body, signature, secret):
        logger.warning("Invalid %s webhook signature", handler.gateway)
        raise invalid_webhook_signature(handler.gateway)

    normalized = registry.normalize(handler.gateway, parse_webhook_body(raw_body, handler.gateway))
    if not normalized.supported:
        logger.info("Ignoring unsupported %s event: %s", handler.gateway, normalized.event_type)
        return WebhookResponse(message=f"Unsupported event type: {normalized.event_type}", success=True)

    return await apply_normalized_webhook(normalized)


async def dispatch_gateway_webhook(
    gateway: str,
    raw_body: bytes,
    headers: Mapping[str, str],
) -> WebhookResponse:
    """Entry point for ``/webhooks/{gateway}``; a missing payment is reported, not raised."""
    registry = _get_registry()
    if not registry.has_handler(gateway):
        raise unsupported_gateway(gateway)

    handler = registry.get_handler(gateway)
    signature = headers.get(handler.signature_header)
    try:
        return await process_gateway_webhook(handler.gateway, raw_body, signature)
    except AppException as err:
        if err.code != ErrorCode.RESOURCE_NOT_FOUND:
            raise
        message = err.detail.get("message") if isinstance(err.detail, dict) else str(err.detail)
        logger.warning("%s webhook could not be matched: %s", handler.gateway, message)
        return WebhookResponse(message=message or "Resource not found", success=False)


async def process_generic_webhook(
    raw_body: bytes,
    signature: str | None,
    timestamp: str | None = None,
    *,
    secret: str | None = None,
    tolerance_seconds: int | None = None,
) -> WebhookResponse:
    if secret is None or tolerance_seconds is None:
        settings = get_settings()
        secret = settings.webhook_secret if secret is None else secret
        if tolerance_seconds is None:
            tolerance_seconds = settings.webhook_timestamp_tolerance_seconds

    if not verify_generic_signature(
        raw_body,
        signature,
        secret,
        timestamp=timestamp,
        tolerance=tolerance_seconds,
    ):
        logger.warning("Invalid generic webhook signature")
        raise invalid_webhook_signature(GENERIC_GATEWAY)

    payload = parse_webhook_body(raw_body, GENERIC_GATEWAY)
    if not isinstance(payload, dict):
        raise malformed_webhook_payload(GENERIC_GATEWAY, "webhook body must be a JSON object")

    return await apply_normalized_webhook(normalize_generic_payload(payload))


async def simulate_webhook(payload: WebhookSimulationIn) -> WebhookResponse:
    payment = await get_payment_by_reference(payload.reference)
    if payment is None:
        raise resource_not_found("Payment", payload.reference)
    if payment.status != PaymentStatus.PENDING:
        raise payment_not_pending(payment.status.value)

    target_status = map_gateway_status(payload.status or "completed")
    now = _now()
    updated = await update_payment_status(
        payment,
        target_status,
        failure_reason=payload.failure_reason,
        extra_updates={
            "gateway_reference": payload.gateway_reference or f"sim_{int(time.time() * 1000)}",
            "gateway_response": {
                "simulated": True,
                "timestamp": now.isoformat(),
                "status": payload.status,
            },
        },
        webhook_at=now,
    )

    logger.info("Webhook simulated for payment %s -> %s", updated.reference, updated.status.value)
    return WebhookResponse(
        message="Webhook simulation completed successfully",
        success=True,
        reference=updated.reference,
        status=updated.status,
    )
