"""Owner-side document endpoints: drafts, send, history, integrity verification."""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import get_current_user, get_owned_document
from app.models.document import Document, DocumentStatus
from app.models.user import User
from app.schemas.documents import (
    AnchorResponse,
    ChainInfo,
    DocumentContentUpdate,
    DocumentCreate,
    DocumentEventOut,
    DocumentResponse,
    SendDocumentRequest,
    SendDocumentResponse,
    SentRecipientOut,
    VerificationStatusResponse,
)
from app.services import anchoring, ledger
from app.services.audit_log import list_events
from app.services.clock import as_utc, utcnow
from app.services.errors import SigningError
from app.services.ledger import LedgerError
from app.services.send_document import RecipientInput, send_document

router = APIRouter(prefix="/documents", tags=["documents"])

_EDITABLE_STATUSES = (DocumentStatus.draft.value, DocumentStatus.sent.value, DocumentStatus.viewed.value)


def _chain_info(network: ledger.NetworkConfig) -> ChainInfo:
    explorer = network.explorer_tx_url.split("/tx/")[0]
    return ChainInfo(chain_id=network.chain_id, name=network.name, explorer_url=explorer)


@router.post("", response_model=DocumentResponse)
def create_document(
    data: DocumentCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    document = Document(
        user_id=current_user.id,
        title=data.title.strip(),
        content=data.content,
        settings=data.settings,
        status=DocumentStatus.draft.value,
    )
    db.add(document)
    db.commit()
    db.refresh(document)
    return document


@router.get("/{document_id}", response_model=DocumentResponse)
def get_document(document: Document = Depends(get_owned_document)):
    return document


@router.patch("/{document_id}/content", response_model=DocumentResponse)
def update_document_content(
    data: DocumentContentUpdate,
    document: Document = Depends(get_owned_document),
    db: Session = Depends(get_db),
):
    """Editing surface. Refused once the first signature has locked the document."""
    if document.locked_at:
        raise HTTPException(status_code=409, detail="Document is locked: it has been signed and can no longer be edited")
    if document.status not in _EDITABLE_STATUSES:
        raise HTTPException(status_code=409, detail=f"Document is {document.status} and can no longer be edited")
    document.content = data.content
    document.updated_at = utcnow()
    db.commit()
    db.refresh(document)
    return document


@router.post("/{document_id}/send", response_model=SendDocumentResponse)
def send(
    data: SendDocumentRequest,
    document: Document = Depends(get_owned_document),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        sent = send_document(
            db,
            document,
            [RecipientInput(email=str(r.email), name=r.name, role=r.role) for r in data.recipients],
            signing_order=data.signing_order,
            expires_at=data.expires_at,
            payment=data.payment.model_dump() if data.payment else None,
            sender_name=data.sender_name or current_user.full_name or current_user.email,
        )
    except SigningError as e:
        db.rollback()
        raise HTTPException(status_code=e.status_code, detail=e.to_detail()) from None
    return SendDocumentResponse(
        document_id=document.id,
        recipients=[
            SentRecipientOut(
                id=r.id,
                email=r.email,
                name=r.name,
                role=r.role,
                signing_order=r.signing_order,
                signing_url=r.signing_url,
            )
            for r in sent
        ],
    )


@router.get("/{document_id}/events", response_model=list[DocumentEventOut])
def get_document_events(document: Document = Depends(get_owned_document), db: Session = Depends(get_db)):
    return list_events(db, document.id)


@router.get("/{document_id}/verify", response_model=VerificationStatusResponse)
def get_verification_status(document: Document = Depends(get_owned_document), db: Session = Depends(get_db)):
    client = ledger.get_ledger_client()
    configured = client is not None
    network = client.network if client else ledger.anchor_network()
    chain_info = _chain_info(network) if configured else None

    if not document.blockchain_tx_hash:
        return VerificationStatusResponse(
            verified=False,
            configured=configured,
            can_verify=configured and document.status == DocumentStatus.completed.value,
            chain_info=chain_info,
        )

    verified_at = as_utc(document.blockchain_verified_at)
    document_hash = anchoring.compute_document_hash(db, document, verified_at or utcnow())
    status = VerificationStatusResponse(
        verified=False,
        configured=configured,
        tx_hash=document.blockchain_tx_hash,
        document_hash=document_hash,
        verified_at=verified_at,
        explorer_url=network.explorer_tx_url.format(tx_hash=document.blockchain_tx_hash),
        chain_info=chain_info,
    )
    if client is None:
        status.error = "Blockchain not configured"
        return status
    try:
        result = anchoring.verify_inscription(client, document.blockchain_tx_hash, document_hash)
    except LedgerError as e:
        status.error = str(e)
        return status
    status.verified = result.verified
    status.block_number = result.block_number
    status.chain_timestamp = result.timestamp
    status.error = result.error
    return status


@router.post("/{document_id}/verify", response_model=AnchorResponse)
def anchor_document_now(document: Document = Depends(get_owned_document), db: Session = Depends(get_db)):
    """Manual anchoring for a completed document the background worker did not anchor."""
    client = ledger.get_ledger_client()
    if client is None:
        raise HTTPException(status_code=503, detail="Blockchain not configured")
    if document.blockchain_tx_hash:
        raise HTTPException(status_code=400, detail="Already inscribed")
    if document.status != DocumentStatus.completed.value:
        raise HTTPException(status_code=400, detail="Document must be completed first")
    try:
        result = anchoring.inscribe_document(db, document, client, auto_triggered=False)
    except LedgerError as e:
        db.rollback()
        raise HTTPException(status_code=502, detail=f"Inscription failed: {e}") from None
    if result is None:
        raise HTTPException(status_code=409, detail="Document was anchored concurrently")
    return AnchorResponse(
        tx_hash=result.tx_hash,
        document_hash=result.document_hash,
        explorer_url=result.explorer_url,
        chain_info=_chain_info(client.network),
    )
