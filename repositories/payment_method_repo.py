from __future__ import annotations

from datetime import datetime

from bson import ObjectId

from core.database import db
from schemas.imports import PaymentMethodStatus
from schemas.payment_method_schema import PaymentMethodOut

_PAYMENT_METHOD_INDEXES_READY = False


async def _ensure_payment_method_indexes() -> None:
    global _PAYMENT_METHOD_INDEXES_READY
    if _PAYMENT_METHOD_INDEXES_READY:
        return
    await db.payment_methods.create_index(
        [("gateway", 1), ("status", 1)],
        name="idx_payment_method_gateway_status",
    )
    await db.payment_methods.create_index("merchant_id", name="idx_payment_method_merchant_id")
    _PAYMENT_METHOD_INDEXES_READY = True


async def get_active_payment_method_by_gateway(gateway: str) -> PaymentMethodOut | None:
    await _ensure_payment_method_indexes()
    row = await db.payment_methods.find_one(
        {"gateway": gateway, "status": PaymentMethodStatus.ACTIVE.value},
        sort=[("created_at", 1)],
    )
    if row is None:
        return None
    return PaymentMethodOut(**row)


async def get_payment_method_by_id(payment_method_id: str) -> PaymentMethodOut | None:
    await _ensure_payment_method_indexes()
    if not ObjectId.is_valid(payment_method_id):
        return None
    row = await db.payment_methods.find_one({"_id": ObjectId(payment_method_id)})
    if row is None:
        return None
    return PaymentMethodOut(**row)


async def touch_payment_method(payment_method_id: str, used_at: datetime) -> None:
    await _ensure_payment_method_indexes()
    if not ObjectId.is_valid(payment_method_id):
        return
    await db.payment_methods.update_one(
        {"_id": ObjectId(payment_method_id)},
        {"$set": {"last_used_at": used_at}},
    )
