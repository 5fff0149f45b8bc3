"""Proposal/contract documents composed of ordered content blocks."""
import enum

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base, JSONType


class DocumentStatus(str, enum.Enum):
    draft = "draft"
    sent = "sent"
    viewed = "viewed"
    completed = "completed"
    declined = "declined"
    expired = "expired"


TERMINAL_STATUSES = frozenset({DocumentStatus.completed.value, DocumentStatus.declined.value})


class Document(Base):
    __tablename__ = "documents"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    title = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False, default=DocumentStatus.draft.value, index=True)

    # Ordered list of block dicts; order matters for rendering and hashing
    content = Column(JSONType, nullable=False, default=list)
    # Display options + requireSigningOrder + optional "payment" sub-object
    settings = Column(JSONType, nullable=True)

    # Set once, at the first accepted signature
    locked_at = Column(DateTime(timezone=True), nullable=True)
    locked_by = Column(Integer, nullable=True)  # recipients.id, no FK (recipients reference documents)

    # Set once, by the anchoring worker
    blockchain_tx_hash = Column(String(80), nullable=True)
    blockchain_verified_at = Column(DateTime(timezone=True), nullable=True)
    # Set on completion, cleared once anchored; the reconciler retries documents still carrying it
    anchor_pending_at = Column(DateTime(timezone=True), nullable=True, index=True)

    sent_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    owner = relationship("User", backref="documents")
    recipients = relationship("Recipient", back_populates="document", order_by="Recipient.signing_order")
