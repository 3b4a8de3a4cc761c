from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field, model_validator

from schemas.imports import MerchantStatus, mongo_to_python


class MerchantOut(BaseModel):
    id: str | None = Field(default=None, alias="_id")
    business_name: str
    email: str | None = None
    status: MerchantStatus = MerchantStatus.ACTIVE
    total_processed_amount: Decimal = Decimal("0")
    total_transactions: int = 0
    last_transaction_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"populate_by_name": True}

    @model_validator(mode="before")
    @classmethod
    def convert_mongo_types(cls, values):
        return mongo_to_python(values)

    @property
    def is_active(self) -> bool:
        return self.status == MerchantStatus.ACTIVE
