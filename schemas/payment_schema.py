from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field, model_validator

from schemas.imports import Currency, PaymentGateway, PaymentStatus, mongo_to_python

MAX_PAYMENT_AMOUNT = Decimal("999999999.99")
MAX_PAGE_SIZE = 100


class PaymentInitializeIn(BaseModel):
    merchant_id: str = Field(min_length=1)
    amount: Decimal = Field(ge=Decimal("0.01"), le=MAX_PAYMENT_AMOUNT, decimal_places=2)
    currency: Currency
    gateway: PaymentGateway
    payment_method_id: str | None = None
    customer_email: str | None = None
    customer_name: str | None = None
    customer_phone: str | None = None
    description: str | None = Field(default=None, max_length=500)
    callback_url: str | None = None
    parent_payment_id: str | None = None
    metadata: dict[str, Any] | None = None


class PaymentCreate(BaseModel):
    reference: str
    merchant_id: str
    payment_method_id: str | None = None
    parent_payment_id: str | None = None
    amount: Decimal
    currency: Currency
    gateway: PaymentGateway
    status: PaymentStatus = PaymentStatus.PENDING
    gateway_fee: Decimal = Decimal("0.00")
    platform_fee: Decimal = Decimal("0.00")
    net_amount: Decimal | None = None
    customer_email: str | None = None
    customer_name: str | None = None
    customer_phone: str | None = None
    description: str | None = None
    callback_url: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    initiated_at: datetime
    expires_at: datetime
    webhook_attempts: int = 0
    webhook_delivered: bool = False
    created_at: datetime
    updated_at: datetime


class PaymentOut(BaseModel):
    id: str | None = Field(default=None, alias="_id")
    reference: str
    merchant_id: str
    payment_method_id: str | None = None
    parent_payment_id: str | None = None
    amount: Decimal
    currency: Currency
    gateway: PaymentGateway
    status: PaymentStatus
    gateway_fee: Decimal = Decimal("0.00")
    platform_fee: Decimal = Decimal("0.00")
    net_amount: Decimal | None = None
    external_id: str | None = None
    gateway_reference: str | None = None
    gateway_response: dict[str, Any] | None = None
    failure_code: str | None = None
    failure_reason: str | None = None
    customer_email: str | None = None
    customer_name: str | None = None
    customer_phone: str | None = None
    description: str | None = None
    callback_url: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    initiated_at: datetime | None = None
    processed_at: datetime | None = None
    completed_at: datetime | None = None
    failed_at: datetime | None = None
    expires_at: datetime | None = None
    webhook_attempts: int = 0
    webhook_delivered: bool = False
    last_webhook_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    updated_by: str | None = None

    model_config = {"populate_by_name": True}

    @model_validator(mode="before")
    @classmethod
    def convert_mongo_types(cls, values):
        return mongo_to_python(values)


class PaymentStatusUpdateIn(BaseModel):
    status: PaymentStatus
    merchant_id: str | None = Field(default=None, alias="merchantId")
    gateway_reference: str | None = Field(default=None, alias="gatewayReference")
    gateway_response: dict[str, Any] | None = Field(default=None, alias="gatewayResponse")
    failure_code: str | None = Field(default=None, alias="failureCode")
    failure_reason: str | None = Field(default=None, alias="failureReason")

    model_config = {"populate_by_name": True}


class PaymentPage(BaseModel):
    payments: list[PaymentOut]
    total: int
    page: int
    limit: int


class PaymentStatistics(BaseModel):
    total_payments: int = 0
    total_amount: Decimal = Decimal("0")
    successful_payments: int = 0
    failed_payments: int = 0
    pending_payments: int = 0
