"""Access token resolution: the entry gate for every signing-channel request."""
from __future__ import annotations

import re
import secrets

from sqlalchemy.orm import Session

from app.models.document import Document
from app.models.recipient import Recipient
from app.services.errors import InvalidLink

# token_urlsafe(32) -> 43 chars; anything outside this shape can't be one of ours
_TOKEN_RE = re.compile(r"^[A-Za-z0-9_-]{32,128}$")


def generate_access_token() -> str:
    return secrets.token_urlsafe(32)


def resolve_token(db: Session, token: str | None) -> tuple[Recipient, Document]:
    """Return (recipient, document) for a token or raise InvalidLink.
    Malformed and unknown tokens fail identically."""
    raw = (token or "").strip()
    if not _TOKEN_RE.match(raw):
        raise InvalidLink()
    recipient = db.query(Recipient).filter(Recipient.access_token == raw).first()
    if not recipient:
        raise InvalidLink()
    document = db.query(Document).filter(Document.id == recipient.document_id).first()
    if not document:
        raise InvalidLink()
    return recipient, document
