"""Public signing channel. The access token in the path is the only credential."""
import logging
from contextlib import contextmanager

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import client_ip, client_user_agent
from app.schemas.signing import (
    DeclineResponse,
    PricingSelectionRequest,
    PricingSelectionResponse,
    SignPostRequest,
    SignResponse,
    SigningDocumentOut,
    SigningRecipientOut,
    SigningViewResponse,
    TrackEventRequest,
    TrackEventResponse,
)
from app.services import signing
from app.services.errors import InternalError, SigningError

log = logging.getLogger("uvicorn.error")

router = APIRouter(prefix="/sign", tags=["signing"])


@contextmanager
def signing_errors(db: Session):
    """Map service errors to stable {code, message} responses; nothing partial is committed."""
    try:
        yield
    except SigningError as e:
        db.rollback()
        raise HTTPException(status_code=e.status_code, detail=e.to_detail()) from None
    except SQLAlchemyError:
        db.rollback()
        log.exception("Signing request failed")
        err = InternalError()
        raise HTTPException(status_code=err.status_code, detail=err.to_detail()) from None


@router.get("/{token}", response_model=SigningViewResponse)
def get_signing_document(token: str, request: Request, db: Session = Depends(get_db)):
    with signing_errors(db):
        view = signing.get_signing_view(db, token, user_agent=client_user_agent(request), ip_address=client_ip(request))

    doc, rec = view.document, view.recipient
    return SigningViewResponse(
        document=SigningDocumentOut(
            id=doc.id,
            title=doc.title,
            content=doc.content or [],
            status=view.status,
            settings=doc.settings,
        ),
        recipient=SigningRecipientOut.model_validate(rec),
        requires_payment=view.payment.requires_payment,
        payment_amount=view.payment.amount,
        payment_currency=view.payment.currency,
        payment_timing=view.payment.timing,
    )


@router.post("/{token}", response_model=None)
def submit_signing_action(token: str, data: SignPostRequest, request: Request, db: Session = Depends(get_db)):
    ip = client_ip(request)
    with signing_errors(db):
        if data.action == "decline":
            document_id = signing.decline_document(db, token, reason=data.reason, ip_address=ip)
            return DeclineResponse(document_id=document_id)

        signature = data.signature_data.model_dump(by_alias=True, exclude_none=True) if data.signature_data else None
        result = signing.submit_signature(
            db,
            token,
            signature,
            updated_content=data.updated_content,
            ip_address=ip,
        )
    return SignResponse(document_id=result.document_id, all_signed=result.all_signed, signed_at=result.signed_at)


@router.post("/{token}/pricing", response_model=PricingSelectionResponse)
def update_pricing_selection(token: str, data: PricingSelectionRequest, db: Session = Depends(get_db)):
    with signing_errors(db):
        document_id = signing.update_pricing_selection(db, token, data.pricing_block_id, data.selected_item_ids)
    return PricingSelectionResponse(document_id=document_id)


@router.post("/{token}/track", response_model=TrackEventResponse)
def track_engagement(token: str, data: TrackEventRequest, request: Request, db: Session = Depends(get_db)):
    with signing_errors(db):
        signing.track_event(
            db,
            token,
            data.event_type,
            data.event_data,
            ip_address=client_ip(request),
            user_agent=client_user_agent(request),
        )
    return TrackEventResponse()
