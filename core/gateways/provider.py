from __future__ import annotations

from typing import Any, Protocol

from core.gateways.types import NormalizedWebhook


class GatewayWebhookHandler(Protocol):
    gateway: str
    signature_header: str

    def verify_signature(self, *, raw_body: bytes, signature: str | None, secret: str | None) -> bool:
        ...

    def normalize(self, payload: dict[str, Any]) -> NormalizedWebhook:
        ...
