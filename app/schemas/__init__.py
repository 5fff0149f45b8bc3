from app.schemas.signing import (
    SigningViewResponse, SignPostRequest, SignResponse, DeclineResponse,
    PricingSelectionRequest, PricingSelectionResponse, TrackEventRequest, TrackEventResponse,
)
from app.schemas.documents import (
    DocumentCreate, DocumentContentUpdate, DocumentResponse, SendDocumentRequest,
    SendDocumentResponse, DocumentEventOut, VerificationStatusResponse, AnchorResponse,
)
