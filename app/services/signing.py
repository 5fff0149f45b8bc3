"""Recipient-side signing lifecycle, addressed by access token.

Every operation resolves the token, checks the document gate, applies targeted
row updates and appends its event before committing. Completion kicks off the
anchoring tasks only after the commit, so the worker reads durable state.
"""
from __future__ import annotations

import copy
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from app.models.document import Document, TERMINAL_STATUSES
from app.models.recipient import Recipient, RecipientRole, RecipientStatus
from app.services import anchoring, notifications, tasks
from app.services.audit_log import (
    EVENT_DOCUMENT_DECLINED,
    EVENT_DOCUMENT_LOCKED,
    EVENT_DOCUMENT_SIGNED,
    EVENT_DOCUMENT_VIEWED,
    EVENT_PRICING_UPDATED,
    LIFECYCLE_EVENTS,
    record_event,
)
from app.services.clock import iso_utc, utcnow
from app.services.document_state import (
    acquire_signature_lock,
    effective_status,
    ensure_accessible,
    ensure_open,
    mark_completed,
    mark_declined,
    mark_viewed,
)
from app.services.errors import (
    AlreadyDeclined,
    AlreadySigned,
    Unauthorized,
    ValidationError,
    WaitingOnPriorSigner,
)
from app.services.payment import PaymentRequirement, resolve_payment
from app.services.tokens import resolve_token

SIGNATURE_TYPES = ("drawn", "typed", "uploaded")
PRICING_TABLE_BLOCK = "pricing-table"

_SIGNED = RecipientStatus.signed.value
_DECLINED = RecipientStatus.declined.value


@dataclass(frozen=True)
class SigningView:
    document: Document
    recipient: Recipient
    status: str
    payment: PaymentRequirement


@dataclass(frozen=True)
class SignResult:
    document_id: int
    all_signed: bool
    signed_at: datetime


def check_signing_order(db: Session, document: Document, recipient: Recipient) -> None:
    """Sequential documents: a signer waits until every signer with a lower order has signed.
    Viewers and approvers are never gated."""
    if not (document.settings or {}).get("requireSigningOrder"):
        return
    if recipient.role != RecipientRole.signer.value:
        return
    others = (
        db.query(Recipient)
        .populate_existing()
        .filter(Recipient.document_id == document.id)
        .order_by(Recipient.signing_order.asc())
        .all()
    )
    for other in others:
        if (
            other.role == RecipientRole.signer.value
            and other.signing_order < recipient.signing_order
            and other.status != _SIGNED
        ):
            raise WaitingOnPriorSigner()


def _owner_email(document: Document) -> str | None:
    return document.owner.email if document.owner else None


# --- view ---


def _record_first_view(db: Session, recipient: Recipient, document: Document, user_agent: str | None, ip_address: str | None) -> bool:
    """pending -> viewed, once. Returns True only on the edge."""
    if recipient.status != RecipientStatus.pending.value:
        return False
    now = utcnow()
    updated = (
        db.query(Recipient)
        .filter(Recipient.id == recipient.id, Recipient.status == RecipientStatus.pending.value)
        .update(
            {
                Recipient.status: RecipientStatus.viewed.value,
                Recipient.viewed_at: now,
                Recipient.user_agent: (user_agent or "")[:500] or None,
            },
            synchronize_session=False,
        )
    )
    if updated != 1:
        return False
    mark_viewed(db, document)
    record_event(
        db,
        document.id,
        EVENT_DOCUMENT_VIEWED,
        {"user_agent": user_agent, "ip_address": ip_address, "timestamp": iso_utc(now)},
        recipient_id=recipient.id,
    )
    return True


def get_signing_view(db: Session, token: str, user_agent: str | None = None, ip_address: str | None = None) -> SigningView:
    recipient, document = resolve_token(db, token)
    ensure_accessible(document)
    # Closed documents show their final status to everyone
    if document.status not in TERMINAL_STATUSES:
        check_signing_order(db, document, recipient)

    first_view = _record_first_view(db, recipient, document, user_agent, ip_address)
    db.commit()
    db.refresh(recipient)
    db.refresh(document)

    if first_view:
        owner_email = _owner_email(document)
        if owner_email:
            tasks.submit(
                notifications.send_owner_document_viewed,
                owner_email,
                document.title,
                recipient.name or "",
                recipient.email,
            )

    return SigningView(
        document=document,
        recipient=recipient,
        status=effective_status(document),
        payment=resolve_payment(document.content, document.settings),
    )


# --- sign ---


def _validate_signature(signature_data: dict[str, Any] | None) -> dict[str, Any]:
    if not isinstance(signature_data, dict):
        raise ValidationError("Signature data is required")
    if signature_data.get("type") not in SIGNATURE_TYPES:
        raise ValidationError(f"Signature type must be one of {', '.join(SIGNATURE_TYPES)}")
    if not signature_data.get("data"):
        raise ValidationError("Signature data is empty")
    return dict(signature_data)


def _validate_content(content: Any) -> list[dict[str, Any]]:
    if not isinstance(content, list):
        raise ValidationError("Updated content must be a list of blocks")
    for block in content:
        if not isinstance(block, dict) or not isinstance(block.get("type"), str):
            raise ValidationError("Every content block needs a type")
    return content


def submit_signature(
    db: Session,
    token: str,
    signature_data: dict[str, Any] | None,
    updated_content: list[dict[str, Any]] | None = None,
    ip_address: str | None = None,
) -> SignResult:
    recipient, document = resolve_token(db, token)
    ensure_accessible(document)
    if recipient.role != RecipientRole.signer.value:
        raise Unauthorized()
    if recipient.status == _SIGNED:
        raise AlreadySigned()
    if recipient.status == _DECLINED:
        raise AlreadyDeclined()
    ensure_open(document)
    check_signing_order(db, document, recipient)

    signature = _validate_signature(signature_data)
    if updated_content is not None:
        updated_content = _validate_content(updated_content)

    now = utcnow()
    signature["signedAt"] = iso_utc(now)

    # Conditional on status so a concurrent duplicate submit can't sign twice
    updated = (
        db.query(Recipient)
        .filter(Recipient.id == recipient.id, Recipient.status != _SIGNED)
        .update(
            {
                Recipient.status: _SIGNED,
                Recipient.signed_at: now,
                Recipient.signature_data: signature,
                Recipient.ip_address: (ip_address or "")[:64] or None,
            },
            synchronize_session=False,
        )
    )
    if updated != 1:
        db.rollback()
        raise AlreadySigned()

    if updated_content is not None:
        db.query(Document).filter(Document.id == document.id).update(
            {Document.content: updated_content, Document.updated_at: now},
            synchronize_session=False,
        )

    if acquire_signature_lock(db, document, recipient.id, now):
        record_event(
            db,
            document.id,
            EVENT_DOCUMENT_LOCKED,
            {"locked_at": iso_utc(now), "locked_by_recipient_id": recipient.id, "reason": "first_signature"},
            recipient_id=recipient.id,
        )

    # Re-read after our own write so this signature counts
    rows = db.query(Recipient.role, Recipient.status).filter(Recipient.document_id == document.id).all()
    all_signed = all(status == _SIGNED for role, status in rows if role == RecipientRole.signer.value)
    completed_now = mark_completed(db, document, now) if all_signed else False

    record_event(
        db,
        document.id,
        EVENT_DOCUMENT_SIGNED,
        {
            "signature_type": signature.get("type"),
            "signed_at": iso_utc(now),
            "ip_address": ip_address,
            "all_signed": all_signed,
        },
        recipient_id=recipient.id,
    )

    document_id = document.id
    title = document.title
    owner_email = _owner_email(document)
    signer_email, signer_name = recipient.email, recipient.name or ""
    db.commit()

    if completed_now:
        anchoring.dispatch_completion_tasks(document_id)
        if owner_email:
            tasks.submit(notifications.send_owner_document_completed, owner_email, title)
    tasks.submit(notifications.send_signing_confirmation, signer_email, signer_name, title, iso_utc(now))

    return SignResult(document_id=document_id, all_signed=all_signed, signed_at=now)


# --- decline ---


def decline_document(db: Session, token: str, reason: str | None = None, ip_address: str | None = None) -> int:
    recipient, document = resolve_token(db, token)
    ensure_accessible(document)
    if recipient.status == _DECLINED:
        raise AlreadyDeclined()
    if recipient.status == _SIGNED:
        raise AlreadySigned()
    ensure_open(document)

    now = utcnow()
    updated = (
        db.query(Recipient)
        .filter(Recipient.id == recipient.id, Recipient.status.notin_([_SIGNED, _DECLINED]))
        .update({Recipient.status: _DECLINED}, synchronize_session=False)
    )
    if updated != 1:
        db.rollback()
        raise AlreadyDeclined()
    mark_declined(db, document)
    record_event(
        db,
        document.id,
        EVENT_DOCUMENT_DECLINED,
        {"reason": reason, "declined_at": iso_utc(now), "ip_address": ip_address},
        recipient_id=recipient.id,
    )
    document_id = document.id
    db.commit()
    return document_id


# --- pricing selections ---


def update_pricing_selection(db: Session, token: str, pricing_block_id: str, selected_item_ids: list[str]) -> int:
    recipient, document = resolve_token(db, token)
    ensure_accessible(document)
    ensure_open(document)

    selected = set(selected_item_ids or [])
    content = copy.deepcopy(document.content or [])
    final_selection = None
    for block in content:
        if isinstance(block, dict) and block.get("id") == pricing_block_id and block.get("type") == PRICING_TABLE_BLOCK:
            items = [dict(item, isSelected=item.get("id") in selected) for item in block.get("items") or []]
            block["items"] = items
            final_selection = [item.get("id") for item in items if item["isSelected"]]
            break
    if final_selection is None:
        raise ValidationError("Pricing table not found")

    document.content = content
    document.updated_at = utcnow()
    record_event(
        db,
        document.id,
        EVENT_PRICING_UPDATED,
        {"block_id": pricing_block_id, "selected_items": final_selection},
        recipient_id=recipient.id,
    )
    document_id = document.id
    db.commit()
    return document_id


# --- engagement tracking ---


def track_event(
    db: Session,
    token: str,
    event_type: str,
    event_data: dict[str, Any] | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> None:
    recipient, document = resolve_token(db, token)
    ensure_accessible(document)
    event_type = (event_type or "").strip()
    if not event_type:
        raise ValidationError("Invalid event data")
    if event_type.lower() in LIFECYCLE_EVENTS:
        raise ValidationError(f"{event_type} is recorded by the signing flow, not by tracking")
    data = dict(event_data or {})
    data.update({"user_agent": user_agent, "ip_address": ip_address, "timestamp": iso_utc(utcnow())})
    record_event(db, document.id, event_type, data, recipient_id=recipient.id)
    db.commit()
