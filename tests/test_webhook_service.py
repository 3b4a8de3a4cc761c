from __future__ import annotations

import hashlib
import hmac
import json
from decimal import Decimal

import pytest

from core.errors import AppException, ErrorCode
from core.gateways.registry import GatewayRegistry
from schemas.imports import PaymentStatus
from schemas.payment_method_schema import PaymentMethodOut
from schemas.payment_schema import PaymentOut
from schemas.webhook_schema import WebhookSimulationIn
from services import payment_service, webhook_service

SECRET = "gateway-secret"


def _payment(reference: str = "PAY_1", status: PaymentStatus = PaymentStatus.PENDING, **fields) -> PaymentOut:
    return PaymentOut(
        id=f"id-{reference}",
        reference=reference,
        merchant_id="merchant-1",
        amount=Decimal("100.50"),
        currency="NGN",
        gateway="paystack",
        status=status,
        **fields,
    )


class _Store:
    def __init__(self, *payments: PaymentOut) -> None:
        self.payments = {payment.reference: payment for payment in payments}
        self.statistics: list[tuple[str, Decimal]] = []
        self.events: list[tuple[str, str]] = []

    async def find_for_webhook(self, reference, gateway_reference=None):
        if reference in self.payments:
            return self.payments[reference]
        for payment in self.payments.values():
            if gateway_reference and gateway_reference in (payment.external_id, payment.gateway_reference):
                return payment
        return None

    async def get_by_reference(self, reference: str):
        return self.payments.get(reference)

    async def transition(self, *, reference, expected_status, update_dict, webhook_at=None):
        payment = self.payments.get(reference)
        if payment is None or payment.status != expected_status:
            return None
        changes = dict(update_dict)
        if webhook_at is not None:
            changes.update(
                webhook_delivered=True,
                last_webhook_at=webhook_at,
                webhook_attempts=payment.webhook_attempts + 1,
            )
        updated = PaymentOut(**{**payment.model_dump(by_alias=True), **changes})
        self.payments[reference] = updated
        return updated

    async def increment_statistics(self, merchant_id: str, amount: Decimal):
        self.statistics.append((merchant_id, amount))
        return True

    def dispatch(self, payment: PaymentOut, event_type=None, correlation_id=None):
        self.events.append((payment.reference, payment.status.value))


@pytest.fixture
def store(monkeypatch: pytest.MonkeyPatch) -> _Store:
    fake = _Store(_payment())
    GatewayRegistry.configure(GatewayRegistry(GatewayRegistry.default_handlers()))

    async def _payment_method(gateway: str):
        if gateway == "stripe":
            return None
        return PaymentMethodOut(id="pm-1", merchant_id="merchant-1", gateway=gateway, webhook_secret=SECRET)

    monkeypatch.setattr(webhook_service, "get_active_payment_method_by_gateway", _payment_method)
    monkeypatch.setattr(webhook_service, "find_payment_for_webhook", fake.find_for_webhook)
    monkeypatch.setattr(webhook_service, "get_payment_by_reference", fake.get_by_reference)
    monkeypatch.setattr(payment_service, "get_payment_by_reference", fake.get_by_reference)
    monkeypatch.setattr(payment_service, "transition_payment_status", fake.transition)
    monkeypatch.setattr(payment_service, "increment_merchant_statistics", fake.increment_statistics)
    monkeypatch.setattr(payment_service, "dispatch_payment_event", fake.dispatch)
    return fake


def _paystack_request(event: str = "charge.success", reference: str = "PAY_1") -> tuple[bytes, str]:
    body = json.dumps(
        {"event": event, "data": {"id": 987, "reference": reference, "fees": 290, "gateway_response": "Declined"}}
    ).encode()
    return body, hmac.new(SECRET.encode(), body, hashlib.sha512).hexdigest()


@pytest.mark.asyncio
async def test_paystack_webhook_completes_payment(store: _Store):
    body, signature = _paystack_request()

    result = await webhook_service.process_gateway_webhook("paystack", body, signature)

    assert result.success is True
    assert result.reference == "PAY_1"
    assert result.status == PaymentStatus.COMPLETED
    stored = store.payments["PAY_1"]
    assert stored.status == PaymentStatus.COMPLETED
    assert stored.external_id == "987"
    assert stored.gateway_fee == Decimal("2.90")
    assert stored.net_amount == Decimal("97.60")
    assert stored.webhook_attempts == 1
    assert stored.webhook_delivered is True
    assert stored.completed_at is not None
    assert store.statistics == [("merchant-1", Decimal("100.50"))]
    assert store.events == [("PAY_1", "completed")]


@pytest.mark.asyncio
async def test_replayed_completion_is_rejected_without_touching_statistics(store: _Store):
    body, signature = _paystack_request()
    await webhook_service.process_gateway_webhook("paystack", body, signature)

    with pytest.raises(AppException) as exc_info:
        await webhook_service.process_gateway_webhook("paystack", body, signature)

    assert exc_info.value.status_code == 409
    assert exc_info.value.code == ErrorCode.PAYMENT_INVALID_TRANSITION.value
    assert len(store.statistics) == 1
    assert len(store.events) == 1
    assert store.payments["PAY_1"].webhook_attempts == 1


@pytest.mark.asyncio
async def test_lost_race_is_reported_as_invalid_transition(store: _Store, monkeypatch: pytest.MonkeyPatch):
    async def _stale_lookup(reference: str, gateway_reference: str | None = None):
        return _payment()

    store.payments["PAY_1"] = _payment(status=PaymentStatus.FAILED)
    monkeypatch.setattr(webhook_service, "find_payment_for_webhook", _stale_lookup)
    body, signature = _paystack_request()

    with pytest.raises(AppException) as exc_info:
        await webhook_service.process_gateway_webhook("paystack", body, signature)

    assert exc_info.value.status_code == 409
    assert store.statistics == []


@pytest.mark.asyncio
async def test_failed_charge_records_reason(store: _Store):
    body, signature = _paystack_request(event="charge.failed")

    result = await webhook_service.process_gateway_webhook("paystack", body, signature)

    assert result.status == PaymentStatus.FAILED
    assert store.payments["PAY_1"].failure_reason == "Declined"
    assert store.payments["PAY_1"].failed_at is not None
    assert store.statistics == []


@pytest.mark.asyncio
async def test_invalid_signature_is_rejected_before_any_update(store: _Store):
    body, signature = _paystack_request()

    with pytest.raises(AppException) as exc_info:
        await webhook_service.process_gateway_webhook("paystack", body, "0" * len(signature))

    assert exc_info.value.status_code == 401
    assert exc_info.value.code == ErrorCode.PAYMENT_WEBHOOK_INVALID.value
    assert store.payments["PAY_1"].status == PaymentStatus.PENDING


@pytest.mark.asyncio
async def test_unsupported_event_is_acknowledged_without_change(store: _Store):
    body, signature = _paystack_request(event="transfer.success")

    result = await webhook_service.process_gateway_webhook("paystack", body, signature)

    assert result.success is True
    assert "transfer.success" in result.message
    assert result.reference is None
    assert store.payments["PAY_1"].status == PaymentStatus.PENDING


@pytest.mark.asyncio
async def test_gateway_without_active_payment_method_is_not_found(store: _Store):
    with pytest.raises(AppException) as exc_info:
        await webhook_service.process_gateway_webhook("stripe", b"{}", "t=1,v1=00")

    assert exc_info.value.status_code == 404


@pytest.mark.asyncio
async def test_unknown_payment_raises_not_found_on_direct_path(store: _Store):
    body, signature = _paystack_request(reference="PAY_UNKNOWN")

    with pytest.raises(AppException) as exc_info:
        await webhook_service.process_gateway_webhook("paystack", body, signature)

    assert exc_info.value.status_code == 404


@pytest.mark.asyncio
async def test_dispatch_reports_unknown_payment_as_unsuccessful(store: _Store):
    body, signature = _paystack_request(reference="PAY_UNKNOWN")

    result = await webhook_service.dispatch_gateway_webhook("paystack", body, {"x-paystack-signature": signature})

    assert result.success is False
    assert result.message == "Payment not found"


@pytest.mark.asyncio
async def test_dispatch_rejects_gateway_without_handler(store: _Store):
    with pytest.raises(AppException) as exc_info:
        await webhook_service.dispatch_gateway_webhook("square", b"{}", {})

    assert exc_info.value.status_code == 400
    assert exc_info.value.code == ErrorCode.PAYMENT_GATEWAY_UNSUPPORTED.value


@pytest.mark.asyncio
async def test_dispatch_still_raises_signature_errors(store: _Store):
    body, _ = _paystack_request()

    with pytest.raises(AppException) as exc_info:
        await webhook_service.dispatch_gateway_webhook("paystack", body, {"x-paystack-signature": "abc"})

    assert exc_info.value.status_code == 401


@pytest.mark.asyncio
async def test_generic_webhook_matches_and_stores_gateway_reference(store: _Store):
    body = json.dumps(
        {"event": "payment.completed", "reference": "PAY_1", "status": "succeeded", "gatewayReference": "gw_77"}
    ).encode()
    signature = "sha256=" + hmac.new(b"shared", body, hashlib.sha256).hexdigest()

    result = await webhook_service.process_generic_webhook(body, signature, secret="shared", tolerance_seconds=300)

    assert result.status == PaymentStatus.COMPLETED
    assert store.payments["PAY_1"].gateway_reference == "gw_77"


@pytest.mark.asyncio
async def test_generic_webhook_falls_back_to_gateway_reference(store: _Store):
    store.payments["PAY_1"] = _payment(gateway_reference="gw_123")
    body = json.dumps({"reference": "merchant-order-77", "gatewayReference": "gw_123", "status": "success"}).encode()
    signature = hmac.new(b"shared", body, hashlib.sha256).hexdigest()

    result = await webhook_service.process_generic_webhook(body, signature, secret="shared", tolerance_seconds=300)

    assert result.reference == "PAY_1"
    assert result.status == PaymentStatus.COMPLETED


@pytest.mark.asyncio
async def test_generic_webhook_rejects_bad_signature(store: _Store):
    with pytest.raises(AppException) as exc_info:
        await webhook_service.process_generic_webhook(b"{}", "sha256=00", secret="shared", tolerance_seconds=300)

    assert exc_info.value.status_code == 401


@pytest.mark.asyncio
async def test_generic_webhook_rejects_non_json_body(store: _Store):
    body = b"not json"
    signature = hmac.new(b"shared", body, hashlib.sha256).hexdigest()

    with pytest.raises(AppException) as exc_info:
        await webhook_service.process_generic_webhook(body, signature, secret="shared", tolerance_seconds=300)

    assert exc_info.value.code == ErrorCode.PAYMENT_PAYLOAD_MALFORMED.value


@pytest.mark.asyncio
async def test_simulation_defaults_to_completed(store: _Store):
    result = await webhook_service.simulate_webhook(WebhookSimulationIn(reference="PAY_1"))

    assert result.success is True
    assert result.status == PaymentStatus.COMPLETED
    stored = store.payments["PAY_1"]
    assert stored.gateway_reference.startswith("sim_")
    assert stored.gateway_response["simulated"] is True
    assert store.statistics == [("merchant-1", Decimal("100.50"))]


@pytest.mark.asyncio
async def test_simulation_can_fail_a_payment(store: _Store):
    payload = WebhookSimulationIn(reference="PAY_1", status="failed", failureReason="Card declined")

    result = await webhook_service.simulate_webhook(payload)

    assert result.status == PaymentStatus.FAILED
    assert store.payments["PAY_1"].failure_reason == "Card declined"


@pytest.mark.asyncio
async def test_simulation_on_completed_payment_conflicts(store: _Store):
    store.payments["PAY_1"] = _payment(status=PaymentStatus.COMPLETED)

    with pytest.raises(AppException) as exc_info:
        await webhook_service.simulate_webhook(WebhookSimulationIn(reference="PAY_1"))

    assert exc_info.value.status_code == 409
    assert store.payments["PAY_1"].status == PaymentStatus.COMPLETED


@pytest.mark.asyncio
async def test_simulation_unknown_reference_is_not_found(store: _Store):
    with pytest.raises(AppException) as exc_info:
        await webhook_service.simulate_webhook(WebhookSimulationIn(reference="PAY_NOPE"))

    assert exc_info.value.status_code == 404
