from __future__ import annotations

import logging
from threading import Lock
from typing import Any

from core.errors import malformed_webhook_payload, unsupported_gateway
from core.gateways.flutterwave_handler import FlutterwaveWebhookHandler
from core.gateways.paystack_handler import PaystackWebhookHandler
from core.gateways.provider import GatewayWebhookHandler
from core.gateways.stripe_handler import StripeWebhookHandler
from core.gateways.types import NormalizedWebhook
from core.settings import get_settings

logger = logging.getLogger(__name__)


class GatewayRegistry:
    """Maps a gateway name to the handler that verifies and normalizes its webhooks."""

    _instance: "GatewayRegistry | None" = None
    _lock = Lock()

    def __init__(
        self,
        handlers: list[GatewayWebhookHandler] | None = None,
        *,
        allow_unverified_gateways: bool = False,
    ) -> None:
        self._handlers: dict[str, GatewayWebhookHandler] = {}
        self._allow_unverified_gateways = allow_unverified_gateways
        for handler in handlers or []:
            self.register(handler)

    @classmethod
    def default_handlers(
        cls,
        *,
        stripe_reference_metadata_key: str = "payment_reference",
        tolerance_seconds: int = 300,
    ) -> list[GatewayWebhookHandler]:
        return [
            StripeWebhookHandler(
                reference_metadata_key=stripe_reference_metadata_key,
                tolerance_seconds=tolerance_seconds,
            ),
            PaystackWebhookHandler(),
            FlutterwaveWebhookHandler(),
        ]

    @classmethod
    def configure(cls, registry: "GatewayRegistry") -> "GatewayRegistry":
        with cls._lock:
            cls._instance = registry
            return cls._instance

    @classmethod
    def configure_from_settings(cls) -> "GatewayRegistry":
        settings = get_settings()
        handlers = cls.default_handlers(
            stripe_reference_metadata_key=settings.stripe_reference_metadata_key,
            tolerance_seconds=settings.webhook_timestamp_tolerance_seconds,
        )
        return cls.configure(
            cls(handlers, allow_unverified_gateways=settings.webhook_allow_unverified_gateways)
        )

    @classmethod
    def get_instance(cls) -> "GatewayRegistry":
        if cls._instance is None:
            return cls.configure_from_settings()
        return cls._instance

    def register(self, handler: GatewayWebhookHandler) -> None:
        key = handler.gateway.lower()
        if key in self._handlers:
            raise ValueError(f"Gateway '{key}' is already registered")
        self._handlers[key] = handler

    def supported_gateways(self) -> list[str]:
        return sorted(self._handlers)

    def has_handler(self, gateway: str) -> bool:
        return gateway.lower() in self._handlers

    def get_handler(self, gateway: str) -> GatewayWebhookHandler:
        handler = self._handlers.get(gateway.lower())
        if handler is None:
            raise unsupported_gateway(gateway)
        return handler

    def verify_signature(
        self,
        gateway: str,
        raw_body: bytes,
        signature: str | None,
        secret: str | None,
    ) -> bool:
        handler = self._handlers.get(gateway.lower())
        if handler is None:
            if self._allow_unverified_gateways:
                logger.warning("No signature scheme for gateway %s; accepting unverified webhook", gateway)
                return True
            logger.warning("No signature scheme for gateway %s; rejecting webhook", gateway)
            return False

        try:
            return handler.verify_signature(raw_body=raw_body, signature=signature, secret=secret)
        except Exception:
            logger.exception("Signature verification raised for gateway %s", gateway)
            return False

    def normalize(self, gateway: str, payload: Any) -> NormalizedWebhook:
        handler = self.get_handler(gateway)
        if not isinstance(payload, dict):
            raise malformed_webhook_payload(handler.gateway, "webhook body must be a JSON object")
        return handler.normalize(payload)
