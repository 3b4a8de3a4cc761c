from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from bson import ObjectId

from core.database import db
from schemas.imports import to_decimal128
from schemas.merchant_schema import MerchantOut


async def get_merchant_by_id(merchant_id: str) -> MerchantOut | None:
    if not ObjectId.is_valid(merchant_id):
        return None
    row = await db.merchants.find_one({"_id": ObjectId(merchant_id)})
    if row is None:
        return None
    return MerchantOut(**row)


async def increment_merchant_statistics(merchant_id: str, amount: Decimal) -> bool:
    if not ObjectId.is_valid(merchant_id):
        return False
    now = datetime.now(timezone.utc)
    result = await db.merchants.update_one(
        {"_id": ObjectId(merchant_id)},
        {
            "$inc": {
                "total_processed_amount": to_decimal128(amount),
                "total_transactions": 1,
            },
            "$set": {"last_transaction_at": now, "updated_at": now},
        },
    )
    return result.modified_count > 0
