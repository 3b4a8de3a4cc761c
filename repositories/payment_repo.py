from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum

from bson import Decimal128, ObjectId
from pymongo import ReturnDocument

from core.database import db
from schemas.imports import PaymentStatus, to_decimal128
from schemas.payment_schema import PaymentCreate, PaymentOut

_PAYMENT_INDEXES_READY = False

MONEY_FIELDS = ("amount", "gateway_fee", "platform_fee", "net_amount")


async def _ensure_payment_indexes() -> None:
    global _PAYMENT_INDEXES_READY
    if _PAYMENT_INDEXES_READY:
        return
    await db.payments.create_index(
        "reference",
        name="idx_payment_reference_unique",
        unique=True,
    )
    await db.payments.create_index("external_id", name="idx_payment_external_id", sparse=True)
    await db.payments.create_index("gateway_reference", name="idx_payment_gateway_reference", sparse=True)
    await db.payments.create_index([("merchant_id", 1), ("status", 1)], name="idx_payment_merchant_status")
    await db.payments.create_index([("status", 1), ("expires_at", 1)], name="idx_payment_status_expires_at")
    _PAYMENT_INDEXES_READY = True


def _to_storage(values: dict) -> dict:
    stored = dict(values)
    for field in MONEY_FIELDS:
        if isinstance(stored.get(field), Decimal):
            stored[field] = to_decimal128(stored[field])
    for key, value in stored.items():
        if isinstance(value, Enum):
            stored[key] = value.value
    return stored


async def create_payment(payload: PaymentCreate) -> PaymentOut:
    await _ensure_payment_indexes()
    result = await db.payments.insert_one(_to_storage(payload.model_dump(mode="python")))
    stored = await db.payments.find_one({"_id": result.inserted_id})
    return PaymentOut(**stored)  # type: ignore


async def get_payment_by_reference(reference: str) -> PaymentOut | None:
    await _ensure_payment_indexes()
    row = await db.payments.find_one({"reference": reference})
    if row is None:
        return None
    return PaymentOut(**row)


async def get_payment_by_id(payment_id: str) -> PaymentOut | None:
    await _ensure_payment_indexes()
    if not ObjectId.is_valid(payment_id):
        return None
    row = await db.payments.find_one({"_id": ObjectId(payment_id)})
    if row is None:
        return None
    return PaymentOut(**row)


async def find_payment_for_webhook(reference: str | None, gateway_reference: str | None = None) -> PaymentOut | None:
    """Resolve a webhook to a payment by our reference, then by the gateway-assigned id.

    The gateway id is matched against both `gateway_reference` and `external_id`.
    """
    await _ensure_payment_indexes()
    row = None
    if reference:
        row = await db.payments.find_one({"reference": reference})
    if row is None and gateway_reference:
        row = await db.payments.find_one(
            {"$or": [{"gateway_reference": gateway_reference}, {"external_id": gateway_reference}]}
        )
    if row is None:
        return None
    return PaymentOut(**row)


async def transition_payment_status(
    *,
    reference: str,
    expected_status: PaymentStatus,
    update_dict: dict,
    webhook_at: datetime | None = None,
) -> PaymentOut | None:
    """Apply ``update_dict`` only while the payment is still in ``expected_status``.

    Returns ``None`` when the payment is missing or another writer moved it
    first. ``webhook_at`` records a webhook delivery in the same update.
    """
    await _ensure_payment_indexes()
    update: dict = {"$set": _to_storage(update_dict)}
    if webhook_at is not None:
        update["$set"]["webhook_delivered"] = True
        update["$set"]["last_webhook_at"] = webhook_at
        update["$inc"] = {"webhook_attempts": 1}

    row = await db.payments.find_one_and_update(
        {"reference": reference, "status": PaymentStatus(expected_status).value},
        update,
        return_document=ReturnDocument.AFTER,
    )
    if row is None:
        return None
    return PaymentOut(**row)


async def list_payments_by_merchant(
    merchant_id: str,
    *,
    page: int = 1,
    limit: int = 10,
    status: PaymentStatus | None = None,
) -> tuple[list[PaymentOut], int]:
    await _ensure_payment_indexes()
    query: dict = {"merchant_id": merchant_id}
    if status is not None:
        query["status"] = PaymentStatus(status).value

    total = await db.payments.count_documents(query)
    cursor = db.payments.find(query).sort("created_at", -1).skip((page - 1) * limit).limit(limit)
    return [PaymentOut(**row) async for row in cursor], total


async def summarize_merchant_payments(merchant_id: str) -> dict[str, dict]:
    """Count and amount totals per status for one merchant, keyed by status value."""
    await _ensure_payment_indexes()
    cursor = await db.payments.aggregate(
        [
            {"$match": {"merchant_id": merchant_id}},
            {"$group": {"_id": "$status", "count": {"$sum": 1}, "amount": {"$sum": "$amount"}}},
        ]
    )
    summary: dict[str, dict] = {}
    async for row in cursor:
        amount = row.get("amount")
        summary[row["_id"]] = {
            "count": row["count"],
            "amount": amount.to_decimal() if isinstance(amount, Decimal128) else Decimal(str(amount or 0)),
        }
    return summary


async def list_expired_pending_payments(now: datetime, limit: int = 100) -> list[PaymentOut]:
    await _ensure_payment_indexes()
    cursor = db.payments.find(
        {"status": PaymentStatus.PENDING.value, "expires_at": {"$lte": now}},
    ).sort("expires_at", 1).limit(limit)
    return [PaymentOut(**row) async for row in cursor]


async def ping_database() -> bool:
    await db.command("ping")
    return True
