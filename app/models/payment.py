"""Payments collected against a document. Written by billing; the signing core only reads them."""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.sql import func
from app.database import Base

PAYMENT_SUCCEEDED = "succeeded"


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    document_id = Column(Integer, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True)
    recipient_id = Column(Integer, ForeignKey("recipients.id", ondelete="SET NULL"), nullable=True)

    stripe_payment_intent_id = Column(String(255), nullable=True, index=True)
    amount = Column(Integer, nullable=False)  # cents
    currency = Column(String(10), nullable=False, default="usd")
    # pending | processing | succeeded | failed | refunded
    status = Column(String(20), nullable=False, default="pending", index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
