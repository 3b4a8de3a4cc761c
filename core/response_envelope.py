from __future__ import annotations

from functools import wraps
from typing import Any, Callable

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute
from starlette.responses import Response

_ENVELOPE_ATTR = "__payment_envelope__"


def _envelope(success: bool, message: str, data: Any, request_id: str | None) -> dict[str, Any]:
    body: dict[str, Any] = {"success": success, "message": message, "data": data}
    if request_id:
        body["requestId"] = request_id
    return body


def success_payload(data: Any, message: str = "Success", *, request_id: str | None = None) -> dict[str, Any]:
    return _envelope(True, message, data, request_id)


def error_payload(message: str, data: Any = None, *, request_id: str | None = None) -> dict[str, Any]:
    return _envelope(False, message, data, request_id)


def error_response(
    *,
    status_code: int,
    message: str,
    data: Any = None,
    headers: dict[str, str] | None = None,
    request_id: str | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        headers=headers,
        content=jsonable_encoder(error_payload(message, data, request_id=request_id)),
    )


def http_exception_response(exc: HTTPException, request: Request | None = None) -> JSONResponse:
    """Render an ``HTTPException`` as the error envelope.

    ``AppException`` details already carry ``{message, code, details}``; any other
    detail is treated as the message with a generic ``HTTP_EXCEPTION`` code.
    """
    detail = exc.detail
    code, details = "HTTP_EXCEPTION", None
    if isinstance(detail, dict) and str(detail.get("message") or "").strip():
        message = detail["message"]
        code, details = detail.get("code", code), detail.get("details")
    elif isinstance(detail, dict):
        message, details = "Request failed", detail
    else:
        message = "Request failed" if detail is None else str(detail)

    return error_response(
        status_code=exc.status_code,
        message=message,
        data={"code": code, "details": details},
        request_id=getattr(request.state, "request_id", None) if request is not None else None,
        headers=exc.headers,
    )


def document_response(
    *,
    message: str = "Success",
    status_code: int = 200,
    response_codes: dict[int, str] | None = None,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Wrap an async route's return value in the ``{success, message, data}`` envelope.

    ``apply_response_documentation`` copies ``status_code`` and ``response_codes``
    onto the route for OpenAPI.
    """

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Response:
            result = await func(*args, **kwargs)
            if isinstance(result, Response):
                return result
            return JSONResponse(status_code=status_code, content=jsonable_encoder(success_payload(result, message)))

        setattr(wrapper, _ENVELOPE_ATTR, (status_code, response_codes or {}))
        return wrapper

    return decorator


def apply_response_documentation(app: FastAPI) -> None:
    for route in app.routes:
        documented = getattr(getattr(route, "endpoint", None), _ENVELOPE_ATTR, None)
        if not isinstance(route, APIRoute) or documented is None:
            continue
        status_code, response_codes = documented
        route.status_code = status_code
        responses = dict(route.responses or {})
        for code, description in {status_code: "Successful response", **response_codes}.items():
            responses[code] = {"description": description, **responses.get(code, {})}
        route.responses = responses
    app.openapi_schema = None
