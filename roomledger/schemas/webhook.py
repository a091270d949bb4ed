"""Payment gateway webhook schemas.

The gateway owns this contract; every field is optional and unknown fields
are kept so the raw payload can be stored for review.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class AsaasPayment(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str | None = None
    status: str | None = None
    external_reference: str | None = Field(default=None, alias="externalReference")
    value: Any = None
    refunded_value: Any = Field(default=None, alias="refundedValue")
    chargeback_value: Any = Field(default=None, alias="chargebackValue")


class AsaasWebhookPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str | None = None
    event: str | None = None
    payment: AsaasPayment | None = None


class WebhookAckResponse(BaseModel):
    received: bool = True
    status: str
    detail: str | None = None
