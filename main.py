from __future__ import annotations

import asyncio
import logging
import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from apscheduler.triggers.interval import IntervalTrigger
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from core.database import client as mongo_client
from core.events.manager import EventPublisherManager
from core.gateways.registry import GatewayRegistry
from core.logging_config import configure_logging
from core.response_envelope import (
    apply_response_documentation,
    document_response,
    error_response,
    http_exception_response,
)
from core.scheduler import scheduler
from core.settings import get_settings
from core.validation_errors import format_validation_error_details
from repositories.payment_repo import ping_database
from services.event_service import drain_pending_publishes
from services.payment_service import expire_stale_payments
from sqs_worker import build_consumer

settings = get_settings()
configure_logging(settings.log_level)
logger = logging.getLogger(__name__)


class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class RequestTimingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        response = await call_next(request)
        response.headers["X-Process-Time"] = str(time.time() - start_time)
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    GatewayRegistry.configure_from_settings()
    EventPublisherManager.configure_from_settings()

    scheduler.add_job(
        expire_stale_payments,
        trigger=IntervalTrigger(seconds=settings.payment_expiry_sweep_seconds),
        id="expire_stale_payments",
        name="Expire stale pending payments",
        replace_existing=True,
    )
    scheduler.start()

    consumer = None
    consumer_task = None
    if settings.sqs_enabled and settings.sqs_consumer_in_process:
        consumer = build_consumer(settings)
        consumer_task = asyncio.create_task(consumer.start())

    try:
        yield
    finally:
        if consumer is not None and consumer_task is not None:
            consumer.stop()
            await consumer_task
        await drain_pending_publishes()
        scheduler.shutdown()
        await mongo_client.close()


app = FastAPI(lifespan=lifespan, title="Payment Gateway API")
app.add_middleware(RequestIdMiddleware)
app.add_middleware(RequestTimingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins) if settings.cors_origins else ["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(HTTPException)
async def custom_http_exception_handler(request: Request, exc: HTTPException):
    return http_exception_response(exc=exc, request=request)


@app.exception_handler(RequestValidationError)
async def custom_validation_exception_handler(request: Request, exc: RequestValidationError):
    return error_response(
        status_code=422,
        message="Validation error",
        data={"code": "VALIDATION_FAILED", "details": format_validation_error_details(exc.errors())},
        request_id=getattr(request.state, "request_id", None),
    )


@app.exception_handler(Exception)
async def custom_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    details = str(exc) if (settings.debug_include_error_details and not settings.is_production) else None
    return error_response(
        status_code=500,
        message="Internal Server Error",
        data={"code": "INTERNAL_ERROR", "details": details},
        request_id=getattr(request.state, "request_id", None),
    )


@app.get("/health", tags=["Health"])
@document_response(message="Health check completed")
async def health_check():
    services: dict[str, dict[str, str | float | bool]] = {}
    overall_status = "healthy"

    start = time.perf_counter()
    try:
        await ping_database()
        services["mongo"] = {
            "status": "healthy",
            "latency_ms": round((time.perf_counter() - start) * 1000, 2),
            "message": "MongoDB ping successful",
        }
    except Exception as exc:
        overall_status = "degraded"
        services["mongo"] = {
            "status": "unhealthy",
            "latency_ms": round((time.perf_counter() - start) * 1000, 2),
            "message": str(exc),
        }

    publisher = EventPublisherManager.get_instance().publisher
    services["events"] = {
        "status": "healthy" if publisher.enabled else "disabled",
        "enabled": publisher.enabled,
        "message": f"Publisher backend: {publisher.backend_name}",
    }

    return {
        "status": overall_status,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "services": services,
    }


from api.v1.payments_route import router as v1_payments_route_router
from api.v1.webhooks_route import router as v1_webhooks_route_router

app.include_router(v1_payments_route_router, prefix='/v1')
app.include_router(v1_webhooks_route_router, prefix='/v1')

apply_response_documentation(app)
