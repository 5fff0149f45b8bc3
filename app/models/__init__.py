"""
All SQLAlchemy models. Schema is the source of truth for new DBs.
Base.metadata.create_all() creates every table; no migration scripts needed for fresh installs.
"""
from app.models.user import User
from app.models.document import Document, DocumentStatus
from app.models.recipient import Recipient, RecipientRole, RecipientStatus
from app.models.document_event import DocumentEvent
from app.models.payment import Payment

__all__ = [
    "User",
    "Document",
    "DocumentStatus",
    "Recipient",
    "RecipientRole",
    "RecipientStatus",
    "DocumentEvent",
    "Payment",
]
