from __future__ import annotations

from pydantic import BaseModel, Field

from schemas.imports import PaymentStatus


class WebhookSimulationIn(BaseModel):
    reference: str = Field(min_length=1)
    status: str = "completed"
    gateway_reference: str | None = Field(default=None, alias="gatewayReference")
    failure_reason: str | None = Field(default=None, alias="failureReason")

    model_config = {"populate_by_name": True}


class WebhookResponse(BaseModel):
    message: str
    success: bool
    reference: str | None = None
    status: PaymentStatus | None = None

    def to_payload(self) -> dict:
        return self.model_dump(mode="json", exclude_none=True)
