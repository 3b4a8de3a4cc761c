from __future__ import annotations

from typing import Any

_REQUEST_LOCATIONS = frozenset({"body", "query", "path", "header", "cookie"})


def _field_error(error: dict[str, Any]) -> dict[str, str]:
    loc = error.get("loc") or ()
    parts = [str(part) for part in loc] if isinstance(loc, (list, tuple)) else [str(loc)]
    location = parts.pop(0) if parts and parts[0] in _REQUEST_LOCATIONS else "body"
    return {
        "path": ".".join(parts) or "(root)",
        "location": location,
        "message": str(error.get("msg", "Invalid value")),
        "errorType": str(error.get("type", "validation_error")),
    }


def _plural(count: int) -> str:
    return "field" if count == 1 else "fields"


def format_validation_error_details(errors: list[dict[str, Any]]) -> dict[str, Any]:
    """Flatten pydantic errors for a payment API client.

    Missing fields are listed once, in the order they were reported.
    """
    field_errors = [_field_error(error) for error in errors]
    missing_fields = list(dict.fromkeys(item["path"] for item in field_errors if item["errorType"] == "missing"))

    if missing_fields:
        summary = f"Validation failed: missing required {_plural(len(missing_fields))}: {', '.join(missing_fields)}."
    else:
        summary = f"Validation failed for {len(field_errors)} {_plural(len(field_errors))}."

    return {
        "summary": summary,
        "missingFields": missing_fields,
        "fieldErrors": field_errors,
        "errors": errors,
    }
