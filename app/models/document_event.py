"""Append-only document history (audit trail + async worker breadcrumbs).
No updates or deletes - every record is permanent."""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.sql import func
from app.database import Base, JSONType


class DocumentEvent(Base):
    __tablename__ = "document_events"

    id = Column(Integer, primary_key=True, index=True)

    document_id = Column(Integer, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True)
    recipient_id = Column(Integer, ForeignKey("recipients.id", ondelete="SET NULL"), nullable=True, index=True)

    # document_sent | document_viewed | document_signed | document_locked | document_declined |
    # pricing_updated | blockchain_verified | ethscription_completed | ethscription_failed | engagement events
    event_type = Column(String(64), nullable=False, index=True)
    event_data = Column(JSONType, nullable=True)

    # UTC only - server_default
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
