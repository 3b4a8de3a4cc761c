from __future__ import annotations

from fastapi import APIRouter, Request

from core.gateways.types import PaymentGateway
from schemas.webhook_schema import WebhookResponse, WebhookSimulationIn
from services.webhook_service import (
    GENERIC_SIGNATURE_HEADER,
    GENERIC_TIMESTAMP_HEADER,
    dispatch_gateway_webhook,
    process_gateway_webhook,
    process_generic_webhook,
    simulate_webhook,
)

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])

_WEBHOOK_ERRORS = {
    400: {"description": "Malformed payload or missing reference"},
    401: {"description": "Invalid signature"},
    404: {"description": "Payment or payment method not found"},
    409: {"description": "Invalid status transition"},
}


def _response(result: WebhookResponse) -> dict:
    return result.to_payload()


@router.post("/payment", responses=_WEBHOOK_ERRORS)
async def generic_payment_webhook(request: Request):
    """
    Gateway-agnostic webhook.

    Signed with HMAC-SHA256 of the raw body in `x-signature` (optional `sha256=`
    prefix). When `x-timestamp` is sent it must be within the tolerance window.
    """
    body = await request.body()
    result = await process_generic_webhook(
        body,
        request.headers.get(GENERIC_SIGNATURE_HEADER),
        request.headers.get(GENERIC_TIMESTAMP_HEADER),
    )
    return _response(result)


@router.post("/stripe", responses=_WEBHOOK_ERRORS)
async def stripe_webhook(request: Request):
    body = await request.body()
    result = await process_gateway_webhook(
        PaymentGateway.STRIPE.value,
        body,
        request.headers.get("stripe-signature"),
    )
    return _response(result)


@router.post("/paystack", responses=_WEBHOOK_ERRORS)
async def paystack_webhook(request: Request):
    body = await request.body()
    result = await process_gateway_webhook(
        PaymentGateway.PAYSTACK.value,
        body,
        request.headers.get("x-paystack-signature"),
    )
    return _response(result)


@router.post("/flutterwave", responses=_WEBHOOK_ERRORS)
async def flutterwave_webhook(request: Request):
    body = await request.body()
    result = await process_gateway_webhook(
        PaymentGateway.FLUTTERWAVE.value,
        body,
        request.headers.get("verif-hash"),
    )
    return _response(result)


@router.post("/simulate", responses={404: _WEBHOOK_ERRORS[404], 409: {"description": "Payment is not pending"}})
async def simulate_payment_webhook(payload: WebhookSimulationIn):
    """
    Move a pending payment to `completed` (default), `failed` or `cancelled`
    without a gateway round-trip.
    """
    return _response(await simulate_webhook(payload))


@router.post("/{gateway}", responses={400: {"description": "Unsupported gateway"}, 401: _WEBHOOK_ERRORS[401]})
async def gateway_webhook(gateway: str, request: Request):
    """
    Receive a webhook for any registered gateway.

    Accepted `gateway` path values:
    - `stripe`
    - `paystack`
    - `flutterwave`

    An unknown payment is acknowledged with `success: false` instead of a 404.
    """
    body = await request.body()
    headers = {k.lower(): v for k, v in request.headers.items()}
    return _response(await dispatch_gateway_webhook(gateway, body, headers))
