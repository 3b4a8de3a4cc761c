from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field, model_validator

from schemas.imports import PaymentGateway, PaymentMethodStatus, PaymentMethodType, mongo_to_python


class PaymentMethodOut(BaseModel):
    id: str | None = Field(default=None, alias="_id")
    merchant_id: str
    gateway: PaymentGateway
    type: PaymentMethodType = PaymentMethodType.CARD
    status: PaymentMethodStatus = PaymentMethodStatus.ACTIVE
    webhook_secret: str | None = None
    gateway_config: dict[str, Any] = Field(default_factory=dict)
    expires_at: datetime | None = None
    last_used_at: datetime | None = None
    created_at: datetime | None = None

    model_config = {"populate_by_name": True}

    @model_validator(mode="before")
    @classmethod
    def convert_mongo_types(cls, values):
        return mongo_to_python(values)

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        current = now or datetime.now(timezone.utc)
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return expires_at <= current

    def is_usable(self, now: datetime | None = None) -> bool:
        return self.status == PaymentMethodStatus.ACTIVE and not self.is_expired(now)
