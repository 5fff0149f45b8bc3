"""Send/dispatch: replace a document's recipient set, mint access tokens, notify recipients."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from app.config import get_settings
from app.models.document import Document, DocumentStatus, TERMINAL_STATUSES
from app.models.recipient import Recipient, RecipientStatus
from app.services import notifications, tasks
from app.services.audit_log import EVENT_DOCUMENT_SENT, record_event
from app.services.clock import as_utc, utcnow
from app.services.errors import DocumentClosed, ValidationError
from app.services.tokens import generate_access_token

SIGNING_ORDER_SEQUENTIAL = "sequential"
SIGNING_ORDER_PARALLEL = "parallel"


@dataclass(frozen=True)
class RecipientInput:
    email: str
    name: str
    role: str


@dataclass(frozen=True)
class SentRecipient:
    id: int
    email: str
    name: str
    role: str
    signing_order: int
    signing_url: str


def signing_url(token: str) -> str:
    return f"{get_settings().app_base_url.rstrip('/')}/sign/{token}"


def _payment_settings(payment: dict[str, Any] | None) -> dict[str, Any]:
    if not payment or not payment.get("enabled"):
        return {"enabled": False}
    return {
        "enabled": True,
        "amount": payment.get("amount"),
        "currency": payment.get("currency") or "USD",
        "timing": payment.get("timing"),
    }


def send_document(
    db: Session,
    document: Document,
    recipients: list[RecipientInput],
    signing_order: str,
    expires_at: datetime | None = None,
    payment: dict[str, Any] | None = None,
    sender_name: str | None = None,
) -> list[SentRecipient]:
    if not recipients:
        raise ValidationError("At least one recipient is required")
    if signing_order not in (SIGNING_ORDER_SEQUENTIAL, SIGNING_ORDER_PARALLEL):
        raise ValidationError("signingOrder must be sequential or parallel")
    if document.status in TERMINAL_STATUSES:
        raise DocumentClosed("This document can no longer be sent")
    if document.locked_at:
        raise DocumentClosed("This document has already been signed and cannot be re-sent")
    expires_at = as_utc(expires_at)
    now = utcnow()
    if expires_at and expires_at <= now:
        raise ValidationError("expiresAt must be in the future")

    sequential = signing_order == SIGNING_ORDER_SEQUENTIAL

    # Prior recipients (and their tokens) are discarded
    db.query(Recipient).filter(Recipient.document_id == document.id).delete(synchronize_session=False)

    created: list[tuple[Recipient, RecipientInput]] = []
    for index, item in enumerate(recipients):
        rec = Recipient(
            document_id=document.id,
            email=item.email.strip().lower(),
            name=(item.name or "").strip(),
            role=item.role,
            signing_order=index + 1 if sequential else 1,
            status=RecipientStatus.pending.value,
            access_token=generate_access_token(),
        )
        db.add(rec)
        created.append((rec, item))
    db.flush()

    settings = dict(document.settings or {})
    settings["requireSigningOrder"] = sequential
    settings["payment"] = _payment_settings(payment)
    document.settings = settings
    document.status = DocumentStatus.sent.value
    document.sent_at = now
    document.expires_at = expires_at
    document.updated_at = now

    record_event(
        db,
        document.id,
        EVENT_DOCUMENT_SENT,
        {
            "recipients": [{"email": r.email, "name": r.name, "role": r.role} for r, _ in created],
            "signing_order": signing_order,
            "expires_at": expires_at.isoformat() if expires_at else None,
        },
    )
    db.commit()

    sent = []
    for rec, _ in created:
        db.refresh(rec)
        url = signing_url(rec.access_token)
        sent.append(SentRecipient(rec.id, rec.email, rec.name or "", rec.role, rec.signing_order, url))
        tasks.submit(
            notifications.send_document_invitation,
            rec.email,
            rec.name or "",
            sender_name or "",
            document.title,
            url,
            rec.role,
        )
    return sent
