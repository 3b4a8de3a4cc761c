from bson import ObjectId
from bson.decimal128 import Decimal128
from decimal import Decimal
from enum import Enum

from core.gateways.types import Currency, PaymentGateway, PaymentStatus


class MerchantStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


class PaymentMethodStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    EXPIRED = "expired"


class PaymentMethodType(str, Enum):
    CARD = "card"
    BANK_TRANSFER = "bank_transfer"
    MOBILE_MONEY = "mobile_money"
    USSD = "ussd"
    WALLET = "wallet"
    CRYPTO = "crypto"


def to_decimal128(value):
    if value is None or isinstance(value, Decimal128):
        return value
    return Decimal128(Decimal(str(value)))


def mongo_to_python(values):
    """Convert ``_id`` and Decimal128 values of a raw Mongo document for pydantic."""
    if not isinstance(values, dict):
        return values
    converted = {}
    for key, value in values.items():
        if isinstance(value, ObjectId):
            converted[key] = str(value)
        elif isinstance(value, Decimal128):
            converted[key] = value.to_decimal()
        else:
            converted[key] = value
    return converted


__all__ = [
    "Currency",
    "Decimal128",
    "MerchantStatus",
    "ObjectId",
    "PaymentGateway",
    "PaymentMethodStatus",
    "PaymentMethodType",
    "PaymentStatus",
    "mongo_to_python",
    "to_decimal128",
]
