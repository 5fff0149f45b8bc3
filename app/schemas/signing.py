"""Public signing channel schemas (token-addressed)."""
from datetime import datetime
from typing import Any, Literal

from pydantic import Field

from app.schemas.base import CamelModel


class SigningDocumentOut(CamelModel):
    id: int
    title: str
    content: list[dict[str, Any]]
    status: str
    settings: dict[str, Any] | None = None


class SigningRecipientOut(CamelModel):
    id: int
    email: str
    name: str | None = None
    role: str
    status: str
    signing_order: int


class SigningViewResponse(CamelModel):
    document: SigningDocumentOut
    recipient: SigningRecipientOut
    requires_payment: bool = False
    payment_amount: float | None = None
    payment_currency: str | None = None
    payment_timing: str | None = None


class SignatureDataIn(CamelModel):
    type: Literal["drawn", "typed", "uploaded"]
    data: str = Field(..., min_length=1)
    signed_at: str | None = None


class SignPostRequest(CamelModel):
    """Either {action: "decline", reason?} or {signatureData, updatedContent?}."""
    action: Literal["sign", "decline"] | None = None
    reason: str | None = Field(None, max_length=2000)
    signature_data: SignatureDataIn | None = None
    updated_content: list[dict[str, Any]] | None = None


class SignResponse(CamelModel):
    success: bool = True
    document_id: int
    all_signed: bool
    signed_at: datetime


class DeclineResponse(CamelModel):
    success: bool = True
    document_id: int


class PricingSelectionRequest(CamelModel):
    pricing_block_id: str = Field(..., min_length=1)
    selected_item_ids: list[str] = Field(default_factory=list)


class PricingSelectionResponse(CamelModel):
    success: bool = True
    document_id: int


class TrackEventRequest(CamelModel):
    event_type: str = Field(..., min_length=1, max_length=64)
    event_data: dict[str, Any] | None = None


class TrackEventResponse(CamelModel):
    success: bool = True
