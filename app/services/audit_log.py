"""Append-only document event writer. Never update or delete - immutable audit trail."""
from __future__ import annotations

import enum
from datetime import date, datetime
from typing import Any

from sqlalchemy.orm import Session

from app.models.document_event import DocumentEvent

EVENT_DOCUMENT_SENT = "document_sent"
EVENT_DOCUMENT_VIEWED = "document_viewed"
EVENT_DOCUMENT_SIGNED = "document_signed"
EVENT_DOCUMENT_LOCKED = "document_locked"
EVENT_DOCUMENT_DECLINED = "document_declined"
EVENT_PRICING_UPDATED = "pricing_updated"
EVENT_BLOCKCHAIN_VERIFIED = "blockchain_verified"
EVENT_ETHSCRIPTION_COMPLETED = "ethscription_completed"
EVENT_ETHSCRIPTION_FAILED = "ethscription_failed"

# Written only by the lifecycle itself; never accepted from the engagement tracker
LIFECYCLE_EVENTS = frozenset({
    EVENT_DOCUMENT_SENT,
    EVENT_DOCUMENT_VIEWED,
    EVENT_DOCUMENT_SIGNED,
    EVENT_DOCUMENT_LOCKED,
    EVENT_DOCUMENT_DECLINED,
    EVENT_PRICING_UPDATED,
    EVENT_BLOCKCHAIN_VERIFIED,
    EVENT_ETHSCRIPTION_COMPLETED,
    EVENT_ETHSCRIPTION_FAILED,
})

# Column limits (match model)
_EVENT_TYPE_LEN = 64


def _sanitize_value(v: Any) -> Any:
    """Convert to JSON-serializable value so event_data never raises on INSERT."""
    if v is None:
        return None
    if isinstance(v, (str, int, float, bool)):
        return v
    if isinstance(v, (datetime, date)):
        return v.isoformat()
    if isinstance(v, enum.Enum):
        return getattr(v, "value", str(v))
    if isinstance(v, dict):
        return {str(k): _sanitize_value(x) for k, x in v.items()}
    if isinstance(v, (list, tuple, set, frozenset)):
        return [_sanitize_value(x) for x in v]
    return str(v)


def _sanitize_data(data: dict[str, Any] | None) -> dict[str, Any] | None:
    if data is None:
        return None
    try:
        return {str(k): _sanitize_value(v) for k, v in data.items()}
    except Exception:
        return {"_error": "event_data_serialization", "raw_keys": list(data.keys())[:10]}


def record_event(
    db: Session,
    document_id: int,
    event_type: str,
    data: dict[str, Any] | None = None,
    *,
    recipient_id: int | None = None,
) -> DocumentEvent:
    """Append one immutable event. Timestamps are UTC (server_default); commit remains with caller."""
    entry = DocumentEvent(
        document_id=document_id,
        recipient_id=recipient_id,
        event_type=(event_type or "")[:_EVENT_TYPE_LEN].strip() or "unknown",
        event_data=_sanitize_data(data),
    )
    db.add(entry)
    db.flush()
    return entry


def list_events(db: Session, document_id: int) -> list[DocumentEvent]:
    return (
        db.query(DocumentEvent)
        .filter(DocumentEvent.document_id == document_id)
        .order_by(DocumentEvent.id.asc())
        .all()
    )
