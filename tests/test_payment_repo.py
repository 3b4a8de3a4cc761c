from __future__ import annotations

import hashlib
import hmac
import json
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest
from bson import Decimal128, ObjectId

from repositories import merchant_repo, payment_repo
from schemas.imports import PaymentStatus
from services import payment_service, webhook_service

MERCHANT_ID = "64b7f0c2a1b2c3d4e5f60718"


def _matches(document: dict, query: dict) -> bool:
    for key, expected in query.items():
        if key == "$or":
            if not any(_matches(document, clause) for clause in expected):
                return False
            continue
        actual = document.get(key)
        if isinstance(expected, dict) and "$lte" in expected:
            if actual is None or actual > expected["$lte"]:
                return False
        elif actual != expected:
            return False
    return True


def _as_decimal(value) -> Decimal:
    return value.to_decimal() if isinstance(value, Decimal128) else Decimal(str(value or 0))


class _Cursor:
    def __init__(self, rows: list[dict]):
        self.rows = rows

    def sort(self, key: str, direction: int):
        self.rows = sorted(self.rows, key=lambda row: row.get(key), reverse=direction < 0)
        return self

    def skip(self, count: int):
        self.rows = self.rows[count:]
        return self

    def limit(self, count: int):
        self.rows = self.rows[:count]
        return self

    def __aiter__(self):
        self._iter = iter(self.rows)
        return self

    async def __anext__(self):
        try:
            return next(self._iter)
        except StopIteration:
            raise StopAsyncIteration from None


class _Collection:
    def __init__(self, *documents: dict):
        self.documents = [dict(document) for document in documents]

    async def create_index(self, *args, **kwargs):
        return kwargs.get("name")

    async def insert_one(self, document: dict):
        stored = {"_id": ObjectId(), **document}
        self.documents.append(stored)
        return SimpleNamespace(inserted_id=stored["_id"])

    async def find_one(self, query: dict):
        return next((dict(document) for document in self.documents if _matches(document, query)), None)

    async def find_one_and_update(self, query: dict, update: dict, return_document=None):
        for document in self.documents:
            if _matches(document, query):
                self._apply(document, update)
                return dict(document)
        return None

    async def update_one(self, query: dict, update: dict):
        for document in self.documents:
            if _matches(document, query):
                self._apply(document, update)
                return SimpleNamespace(modified_count=1)
        return SimpleNamespace(modified_count=0)

    async def count_documents(self, query: dict) -> int:
        return sum(1 for document in self.documents if _matches(document, query))

    def find(self, query: dict) -> _Cursor:
        return _Cursor([dict(document) for document in self.documents if _matches(document, query)])

    async def aggregate(self, pipeline: list[dict]) -> _Cursor:
        rows = [dict(document) for document in self.documents]
        for stage in pipeline:
            if "$match" in stage:
                rows = [row for row in rows if _matches(row, stage["$match"])]
            elif "$group" in stage:
                spec = dict(stage["$group"])
                group_key = spec.pop("_id").lstrip("$")
                groups: dict = {}
                for row in rows:
                    bucket = groups.setdefault(row.get(group_key), {"_id": row.get(group_key)})
                    for name, accumulator in spec.items():
                        operand = accumulator["$sum"]
                        value = _as_decimal(row.get(operand.lstrip("$"))) if isinstance(operand, str) else operand
                        bucket[name] = bucket.get(name, 0) + value
                rows = [
                    {k: Decimal128(v) if isinstance(v, Decimal) else v for k, v in bucket.items()}
                    for bucket in groups.values()
                ]
        return _Cursor(rows)

    @staticmethod
    def _apply(document: dict, update: dict) -> None:
        for key, value in update.get("$set", {}).items():
            document[key] = value
        for key, value in update.get("$inc", {}).items():
            if isinstance(value, Decimal128):
                document[key] = Decimal128(_as_decimal(document.get(key)) + value.to_decimal())
            else:
                document[key] = document.get(key, 0) + value


def _document(reference: str = "PAY_1", status: str = "pending", **fields) -> dict:
    now = datetime(2026, 1, 1, tzinfo=timezone.utc)
    document = {
        "_id": ObjectId(),
        "reference": reference,
        "merchant_id": MERCHANT_ID,
        "amount": Decimal128("100.50"),
        "currency": "NGN",
        "gateway": "paystack",
        "status": status,
        "gateway_fee": Decimal128("0.00"),
        "webhook_attempts": 0,
        "webhook_delivered": False,
        "created_at": now,
    }
    document.update(fields)
    return document


@pytest.fixture
def payments(monkeypatch: pytest.MonkeyPatch) -> _Collection:
    collection = _Collection(
        _document(),
        _document("PAY_2", external_id="pi_2"),
        _document("PAY_3", gateway_reference="gw_3"),
    )
    monkeypatch.setattr(payment_repo, "db", SimpleNamespace(payments=collection))
    return collection


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("reference", "gateway_reference", "expected"),
    [
        ("PAY_1", None, "PAY_1"),
        ("PAY_1", "gw_3", "PAY_1"),
        ("order-77", "pi_2", "PAY_2"),
        (None, "gw_3", "PAY_3"),
        ("order-77", None, None),
        ("pi_2", None, None),
    ],
)
async def test_webhook_lookup_order(payments: _Collection, reference, gateway_reference, expected):
    payment = await payment_repo.find_payment_for_webhook(reference, gateway_reference)

    assert (payment.reference if payment else None) == expected


@pytest.mark.asyncio
async def test_transition_applies_while_status_matches(payments: _Collection):
    webhook_at = datetime(2026, 1, 2, tzinfo=timezone.utc)

    updated = await payment_repo.transition_payment_status(
        reference="PAY_1",
        expected_status=PaymentStatus.PENDING,
        update_dict={"status": PaymentStatus.COMPLETED, "net_amount": Decimal("97.60")},
        webhook_at=webhook_at,
    )

    assert updated.status == PaymentStatus.COMPLETED
    assert updated.net_amount == Decimal("97.60")
    assert updated.webhook_attempts == 1
    assert updated.webhook_delivered is True
    assert updated.last_webhook_at == webhook_at
    stored = payments.documents[0]
    assert stored["status"] == "completed"
    assert isinstance(stored["net_amount"], Decimal128)


@pytest.mark.asyncio
async def test_transition_with_stale_expected_status_is_a_miss(payments: _Collection):
    payments.documents[0]["status"] = "failed"

    updated = await payment_repo.transition_payment_status(
        reference="PAY_1",
        expected_status=PaymentStatus.PENDING,
        update_dict={"status": PaymentStatus.COMPLETED},
        webhook_at=datetime.now(timezone.utc),
    )

    assert updated is None
    assert payments.documents[0]["status"] == "failed"
    assert payments.documents[0]["webhook_attempts"] == 0


@pytest.mark.asyncio
async def test_transition_without_webhook_leaves_counters(payments: _Collection):
    updated = await payment_repo.transition_payment_status(
        reference="PAY_1",
        expected_status=PaymentStatus.PENDING,
        update_dict={"status": PaymentStatus.EXPIRED},
    )

    assert updated.status == PaymentStatus.EXPIRED
    assert updated.webhook_attempts == 0
    assert updated.last_webhook_at is None


@pytest.mark.asyncio
async def test_list_payments_by_merchant_pages_newest_first(payments: _Collection):
    for index, document in enumerate(payments.documents):
        document["created_at"] = datetime(2026, 1, 1, tzinfo=timezone.utc) + timedelta(hours=index)
    payments.documents[1]["status"] = "completed"

    first_page, total = await payment_repo.list_payments_by_merchant(MERCHANT_ID, page=1, limit=2)
    completed, completed_total = await payment_repo.list_payments_by_merchant(
        MERCHANT_ID, status=PaymentStatus.COMPLETED
    )

    assert total == 3
    assert [payment.reference for payment in first_page] == ["PAY_3", "PAY_2"]
    assert completed_total == 1
    assert completed[0].reference == "PAY_2"


@pytest.mark.asyncio
async def test_summarize_merchant_payments_groups_by_status(payments: _Collection):
    payments.documents[0]["status"] = "completed"
    payments.documents[1]["status"] = "completed"
    payments.documents.append(_document("PAY_OTHER", status="completed", merchant_id="someone-else"))

    summary = await payment_repo.summarize_merchant_payments(MERCHANT_ID)

    assert summary["completed"] == {"count": 2, "amount": Decimal("201.00")}
    assert summary["pending"]["count"] == 1


@pytest.mark.asyncio
async def test_merchant_statistics_stamp_last_transaction(monkeypatch: pytest.MonkeyPatch):
    merchants = _Collection(
        {"_id": ObjectId(MERCHANT_ID), "total_processed_amount": Decimal128("10.00"), "total_transactions": 1}
    )
    monkeypatch.setattr(merchant_repo, "db", SimpleNamespace(merchants=merchants))

    assert await merchant_repo.increment_merchant_statistics(MERCHANT_ID, Decimal("5.50")) is True

    merchant = merchants.documents[0]
    assert merchant["total_processed_amount"] == Decimal128("15.50")
    assert merchant["total_transactions"] == 2
    assert merchant["last_transaction_at"] == merchant["updated_at"]


@pytest.mark.asyncio
async def test_generic_webhook_resolves_payment_by_gateway_reference(
    payments: _Collection, monkeypatch: pytest.MonkeyPatch
):
    merchants = _Collection({"_id": ObjectId(MERCHANT_ID), "total_transactions": 0})
    monkeypatch.setattr(merchant_repo, "db", SimpleNamespace(merchants=merchants))
    monkeypatch.setattr(payment_service, "dispatch_payment_event", lambda *args, **kwargs: None)
    body = json.dumps({"reference": "merchant-order-77", "gatewayReference": "gw_3", "status": "success"}).encode()
    signature = hmac.new(b"shared", body, hashlib.sha256).hexdigest()

    result = await webhook_service.process_generic_webhook(body, signature, secret="shared", tolerance_seconds=300)

    assert result.reference == "PAY_3"
    assert result.status == PaymentStatus.COMPLETED
    stored = payments.documents[2]
    assert stored["status"] == "completed"
    assert stored["webhook_attempts"] == 1
    assert merchants.documents[0]["total_transactions"] == 1
