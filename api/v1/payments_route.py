from __future__ import annotations

from fastapi import APIRouter, Query

from core.response_envelope import document_response
from schemas.imports import PaymentStatus
from schemas.payment_schema import PaymentInitializeIn, PaymentStatusUpdateIn
from services.payment_service import (
    change_payment_status,
    get_payment_statistics,
    initialize_payment,
    list_merchant_payments,
    retrieve_payment_by_reference,
)

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("/initialize")
@document_response(
    message="Payment initialized",
    status_code=201,
    response_codes={
        400: "Payment method unavailable",
        403: "Merchant not active",
        404: "Merchant or payment method not found",
    },
)
async def initialize(payload: PaymentInitializeIn):
    return await initialize_payment(payload)


@router.get("")
@document_response(message="Payments fetched")
async def list_payments(
    merchant_id: str = Query(min_length=1),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, description="Page size, capped at 100"),
    status: PaymentStatus | None = None,
):
    """Newest first."""
    return await list_merchant_payments(merchant_id, page=page, limit=limit, status=status)


@router.get("/statistics/summary")
@document_response(message="Payment statistics fetched")
async def payment_statistics(merchant_id: str = Query(min_length=1)):
    return await get_payment_statistics(merchant_id)


@router.get("/{reference}")
@document_response(message="Payment fetched", response_codes={404: "Payment not found"})
async def fetch_payment(reference: str):
    return await retrieve_payment_by_reference(reference)


@router.put("/{reference}/status")
@document_response(
    message="Payment status updated",
    response_codes={404: "Payment not found", 409: "Invalid status transition"},
)
async def update_status(reference: str, payload: PaymentStatusUpdateIn):
    return await change_payment_status(reference, payload)
