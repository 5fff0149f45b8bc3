"""Document-level status transitions: draft -> sent -> viewed -> completed | declined.

Expiry is not a stored transition: a sent/viewed document whose expires_at has
passed reads as expired and refuses every mutation.
"""
from __future__ import annotations

from datetime import datetime

from sqlalchemy.orm import Session

from app.models.document import Document, DocumentStatus, TERMINAL_STATUSES
from app.services.clock import as_utc, utcnow
from app.services.errors import DocumentClosed, DocumentExpired, NotYetSent


def is_expired(document: Document, now: datetime | None = None) -> bool:
    if document.status == DocumentStatus.expired.value:
        return True
    if document.status in TERMINAL_STATUSES:
        return False
    expires_at = as_utc(document.expires_at)
    return bool(expires_at and expires_at < (now or utcnow()))


def effective_status(document: Document, now: datetime | None = None) -> str:
    if is_expired(document, now):
        return DocumentStatus.expired.value
    return document.status


def ensure_accessible(document: Document, now: datetime | None = None) -> None:
    """Gate for every signing-channel request, reads included."""
    if is_expired(document, now):
        raise DocumentExpired()
    if document.status == DocumentStatus.draft.value:
        raise NotYetSent()


def ensure_open(document: Document) -> None:
    """Completed and declined documents accept no further recipient action."""
    if document.status in TERMINAL_STATUSES:
        raise DocumentClosed()


def mark_viewed(db: Session, document: Document) -> bool:
    """sent -> viewed. Conditional on the stored status so repeat views are no-ops."""
    updated = (
        db.query(Document)
        .filter(Document.id == document.id, Document.status == DocumentStatus.sent.value)
        .update({Document.status: DocumentStatus.viewed.value}, synchronize_session=False)
    )
    return updated == 1


def mark_completed(db: Session, document: Document, now: datetime) -> bool:
    """The only path to completed. Also sets the durable anchoring-pending marker."""
    updated = (
        db.query(Document)
        .filter(Document.id == document.id, Document.status.notin_(list(TERMINAL_STATUSES)))
        .update(
            {
                Document.status: DocumentStatus.completed.value,
                Document.anchor_pending_at: now,
                Document.updated_at: now,
            },
            synchronize_session=False,
        )
    )
    return updated == 1


def mark_declined(db: Session, document: Document) -> bool:
    """Unconditional with respect to other recipients; only terminal documents are left alone."""
    updated = (
        db.query(Document)
        .filter(Document.id == document.id, Document.status.notin_(list(TERMINAL_STATUSES)))
        .update({Document.status: DocumentStatus.declined.value}, synchronize_session=False)
    )
    return updated == 1


def acquire_signature_lock(db: Session, document: Document, recipient_id: int, now: datetime) -> bool:
    """Set locked_at/locked_by only if unset. The affected row count is the first-signature signal."""
    updated = (
        db.query(Document)
        .filter(Document.id == document.id, Document.locked_at.is_(None))
        .update(
            {Document.locked_at: now, Document.locked_by: recipient_id},
            synchronize_session=False,
        )
    )
    return updated == 1
