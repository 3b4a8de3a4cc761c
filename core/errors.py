from __future__ import annotations

from enum import Enum
from typing import Any

from fastapi import HTTPException, status


class ErrorCode(str, Enum):
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    MERCHANT_NOT_ACTIVE = "MERCHANT_NOT_ACTIVE"
    PAYMENT_METHOD_UNAVAILABLE = "PAYMENT_METHOD_UNAVAILABLE"
    PAYMENT_WEBHOOK_INVALID = "PAYMENT_WEBHOOK_INVALID"
    PAYMENT_REFERENCE_MISSING = "PAYMENT_REFERENCE_MISSING"
    PAYMENT_PAYLOAD_MALFORMED = "PAYMENT_PAYLOAD_MALFORMED"
    PAYMENT_GATEWAY_UNSUPPORTED = "PAYMENT_GATEWAY_UNSUPPORTED"
    PAYMENT_INVALID_TRANSITION = "PAYMENT_INVALID_TRANSITION"


class AppException(HTTPException):
    def __init__(
        self,
        *,
        status_code: int,
        code: ErrorCode,
        message: str,
        details: Any | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        detail = {
            "message": message,
            "code": code.value,
            "details": details,
        }
        super().__init__(status_code=status_code, detail=detail, headers=headers)

    @property
    def code(self) -> str:
        return self.detail["code"]  # type: ignore[index]


def resource_not_found(resource: str, resource_id: str | None = None) -> AppException:
    details = {"resource": resource}
    if resource_id:
        details["resource_id"] = resource_id
    return AppException(
        status_code=status.HTTP_404_NOT_FOUND,
        code=ErrorCode.RESOURCE_NOT_FOUND,
        message=f"{resource} not found",
        details=details,
    )


def invalid_webhook_signature(gateway: str, reason: str | None = None) -> AppException:
    return AppException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        code=ErrorCode.PAYMENT_WEBHOOK_INVALID,
        message=f"Invalid {gateway} webhook signature",
        details={"gateway": gateway, "reason": reason} if reason else {"gateway": gateway},
    )


def missing_payment_reference(gateway: str) -> AppException:
    return AppException(
        status_code=status.HTTP_400_BAD_REQUEST,
        code=ErrorCode.PAYMENT_REFERENCE_MISSING,
        message="Payment reference not found in webhook payload",
        details={"gateway": gateway},
    )


def malformed_webhook_payload(gateway: str, details: Any | None = None) -> AppException:
    return AppException(
        status_code=status.HTTP_400_BAD_REQUEST,
        code=ErrorCode.PAYMENT_PAYLOAD_MALFORMED,
        message="Malformed webhook payload",
        details={"gateway": gateway, "error": details},
    )


def unsupported_gateway(gateway: str) -> AppException:
    return AppException(
        status_code=status.HTTP_400_BAD_REQUEST,
        code=ErrorCode.PAYMENT_GATEWAY_UNSUPPORTED,
        message=f"Unsupported gateway: {gateway}",
        details={"gateway": gateway},
    )


def invalid_status_transition(current_status: str, target_status: str) -> AppException:
    return AppException(
        status_code=status.HTTP_409_CONFLICT,
        code=ErrorCode.PAYMENT_INVALID_TRANSITION,
        message=f"Invalid status transition from {current_status} to {target_status}",
        details={"current_status": current_status, "target_status": target_status},
    )


def payment_not_pending(current_status: str) -> AppException:
    return AppException(
        status_code=status.HTTP_409_CONFLICT,
        code=ErrorCode.PAYMENT_INVALID_TRANSITION,
        message=(
            f"Payment status is {current_status}. "
            "Only pending payments can be updated via simulation."
        ),
        details={"current_status": current_status},
    )


def merchant_not_active(merchant_id: str) -> AppException:
    return AppException(
        status_code=status.HTTP_403_FORBIDDEN,
        code=ErrorCode.MERCHANT_NOT_ACTIVE,
        message="Merchant account must be active to process payments",
        details={"merchant_id": merchant_id},
    )


def payment_method_unavailable(payment_method_id: str, reason: str) -> AppException:
    return AppException(
        status_code=status.HTTP_400_BAD_REQUEST,
        code=ErrorCode.PAYMENT_METHOD_UNAVAILABLE,
        message=f"Payment method is {reason}",
        details={"payment_method_id": payment_method_id, "reason": reason},
    )
