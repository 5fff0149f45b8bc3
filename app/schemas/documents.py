"""Owner-side document schemas: create, send, history, verification."""
from datetime import datetime
from typing import Any, Literal

from pydantic import EmailStr, Field

from app.schemas.base import CamelModel


class DocumentCreate(CamelModel):
    title: str = Field(..., min_length=1, max_length=255)
    content: list[dict[str, Any]] = Field(default_factory=list)
    settings: dict[str, Any] | None = None


class DocumentContentUpdate(CamelModel):
    content: list[dict[str, Any]]


class DocumentResponse(CamelModel):
    id: int
    title: str
    status: str
    content: list[dict[str, Any]]
    settings: dict[str, Any] | None = None
    locked_at: datetime | None = None
    locked_by: int | None = None
    blockchain_tx_hash: str | None = None
    blockchain_verified_at: datetime | None = None
    sent_at: datetime | None = None
    expires_at: datetime | None = None


class RecipientIn(CamelModel):
    email: EmailStr
    name: str = Field("", max_length=255)
    role: Literal["signer", "viewer", "approver"] = "signer"


class PaymentSettingsIn(CamelModel):
    enabled: bool = False
    amount: float | None = Field(None, ge=0)
    currency: str | None = Field(None, max_length=10)
    timing: str | None = None


class SendDocumentRequest(CamelModel):
    recipients: list[RecipientIn] = Field(..., min_length=1)
    signing_order: Literal["sequential", "parallel"] = "parallel"
    expires_at: datetime | None = None
    payment: PaymentSettingsIn | None = None
    sender_name: str | None = Field(None, max_length=255)


class SentRecipientOut(CamelModel):
    id: int
    email: str
    name: str
    role: str
    signing_order: int
    signing_url: str


class SendDocumentResponse(CamelModel):
    success: bool = True
    document_id: int
    recipients: list[SentRecipientOut]


class DocumentEventOut(CamelModel):
    id: int
    document_id: int
    recipient_id: int | None = None
    event_type: str
    event_data: dict[str, Any] | None = None
    created_at: datetime


class ChainInfo(CamelModel):
    chain_id: int
    name: str
    explorer_url: str


class VerificationStatusResponse(CamelModel):
    verified: bool
    configured: bool
    can_verify: bool | None = None
    tx_hash: str | None = None
    document_hash: str | None = None
    verified_at: datetime | None = None
    block_number: int | None = None
    chain_timestamp: datetime | None = None
    explorer_url: str | None = None
    chain_info: ChainInfo | None = None
    error: str | None = None


class AnchorResponse(CamelModel):
    success: bool = True
    tx_hash: str
    document_hash: str
    explorer_url: str
    chain_info: ChainInfo
