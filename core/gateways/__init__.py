from core.gateways.registry import GatewayRegistry
from core.gateways.types import (
    Currency,
    NormalizedWebhook,
    PaymentGateway,
    PaymentStatus,
)

__all__ = [
    "Currency",
    "GatewayRegistry",
    "NormalizedWebhook",
    "PaymentGateway",
    "PaymentStatus",
]
