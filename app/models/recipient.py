"""One invitee on one document. The access token is the only credential on the signing channel."""
import enum

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base, JSONType


class RecipientRole(str, enum.Enum):
    signer = "signer"
    viewer = "viewer"
    approver = "approver"


class RecipientStatus(str, enum.Enum):
    pending = "pending"
    viewed = "viewed"
    signed = "signed"
    declined = "declined"


class Recipient(Base):
    __tablename__ = "recipients"

    id = Column(Integer, primary_key=True, index=True)
    document_id = Column(Integer, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True)

    email = Column(String(255), nullable=False, index=True)
    name = Column(String(255), nullable=True)
    role = Column(String(20), nullable=False, default=RecipientRole.signer.value)
    signing_order = Column(Integer, nullable=False, default=1)
    status = Column(String(20), nullable=False, default=RecipientStatus.pending.value)

    access_token = Column(String(128), unique=True, index=True, nullable=False)

    # {"type": drawn|typed|uploaded, "data": ..., "signedAt": iso}
    signature_data = Column(JSONType, nullable=True)

    # Forensic metadata, each set at most once
    viewed_at = Column(DateTime(timezone=True), nullable=True)
    signed_at = Column(DateTime(timezone=True), nullable=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(500), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    document = relationship("Document", back_populates="recipients")
