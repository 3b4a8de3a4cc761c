from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

from core.errors import malformed_webhook_payload

TWO_PLACES = Decimal("0.01")


def require_mapping(container: Any, key: str, *, gateway: str) -> dict[str, Any]:
    if not isinstance(container, dict):
        raise malformed_webhook_payload(gateway, f"expected an object containing '{key}'")
    value = container.get(key)
    if not isinstance(value, dict):
        raise malformed_webhook_payload(gateway, f"'{key}' must be an object")
    return value


def optional_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def to_amount(value: Any, *, divisor: int = 1) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = (Decimal(str(value)) / divisor).quantize(TWO_PLACES)
        if amount < 0:
            return None
    except (InvalidOperation, ValueError):
        return None
    return amount
