"""Integrity anchoring for completed documents.

Once every signer has signed, the signing request hands the document id to
`dispatch_completion_tasks` and returns. In the background:

- `anchor_document` hashes the document canonically and writes the hash into a
  zero-value transaction from the service account to itself. At most one anchor
  per document: an existing blockchain_tx_hash ends the task immediately.
- `dispatch_ethscriptions` sends each `data-uri` block's payload to the
  recipient address the block carries, one transaction per block. A bad block
  is recorded and skipped; it never stops the rest.

Nothing here raises into a request. Failures end up in the log and, where there
is a document to attach them to, in the document's event history.
"""
from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import get_settings
from app.database import SessionLocal
from app.models.document import Document, DocumentStatus
from app.models.recipient import Recipient, RecipientRole
from app.services import ledger, notifications, tasks
from app.services.audit_log import (
    EVENT_BLOCKCHAIN_VERIFIED,
    EVENT_ETHSCRIPTION_COMPLETED,
    EVENT_ETHSCRIPTION_FAILED,
    record_event,
)
from app.services.canonical import (
    DocumentHashData,
    build_hash_data,
    create_inscription_payload,
    decode_inscription,
    hash_document_data,
)
from app.services.clock import as_utc, utcnow
from app.services.ledger import LedgerClient, LedgerError
from app.services.payment import payment_collected

log = logging.getLogger("uvicorn.error")

DATA_URI_BLOCK = "data-uri"
INSCRIPTION_INSCRIBED = "inscribed"
INSCRIPTION_FAILED = "failed"


@dataclass(frozen=True)
class AnchorResult:
    tx_hash: str
    document_hash: str
    chain_id: int
    explorer_url: str
    anchored_at: datetime


@dataclass(frozen=True)
class VerificationResult:
    verified: bool
    inscription: dict[str, Any] | None = None
    timestamp: datetime | None = None
    block_number: int | None = None
    error: str | None = None


# --- canonical hash from stored state ---


def collect_hash_data(db: Session, document: Document, completed_at: datetime) -> DocumentHashData:
    signers = (
        db.query(Recipient)
        .filter(
            Recipient.document_id == document.id,
            Recipient.role == RecipientRole.signer.value,
            Recipient.signed_at.isnot(None),
        )
        .order_by(Recipient.id.asc())
        .all()
    )
    return build_hash_data(
        document_id=document.id,
        content=document.content,
        signers=[(s.email, s.signed_at) for s in signers],
        payment_collected=payment_collected(db, document.id),
        completed_at=completed_at,
    )


def compute_document_hash(db: Session, document: Document, completed_at: datetime) -> str:
    return hash_document_data(collect_hash_data(db, document, completed_at))


# --- document anchor ---


def inscribe_document(db: Session, document: Document, client: LedgerClient, *, auto_triggered: bool) -> AnchorResult | None:
    """Submit the document hash and persist the proof. Raises LedgerError on submit/confirm failure.
    Returns None if another worker anchored the document first."""
    settings = get_settings()
    anchored_at = utcnow()
    document_hash = compute_document_hash(db, document, anchored_at)
    payload = create_inscription_payload(document_hash, anchored_at)

    tx_hash = client.send_data_transaction(client.account_address, payload.encode("ascii"))
    log.info("Anchor submitted: document=%s tx=%s", document.id, tx_hash)
    client.wait_for_confirmation(tx_hash, timeout=settings.anchor_confirmation_timeout_seconds)

    updated = (
        db.query(Document)
        .filter(Document.id == document.id, Document.blockchain_tx_hash.is_(None))
        .update(
            {
                Document.blockchain_tx_hash: tx_hash,
                Document.blockchain_verified_at: anchored_at,
                Document.anchor_pending_at: None,
            },
            synchronize_session=False,
        )
    )
    if updated != 1:
        db.rollback()
        log.warning("Anchor %s for document %s confirmed but document was already anchored", tx_hash, document.id)
        return None

    explorer_url = client.explorer_url(tx_hash)
    record_event(
        db,
        document.id,
        EVENT_BLOCKCHAIN_VERIFIED,
        {
            "tx_hash": tx_hash,
            "document_hash": document_hash,
            "chain_id": client.chain_id,
            "explorer_url": explorer_url,
            "auto_triggered": auto_triggered,
        },
    )
    db.commit()
    return AnchorResult(
        tx_hash=tx_hash,
        document_hash=document_hash,
        chain_id=client.chain_id,
        explorer_url=explorer_url,
        anchored_at=anchored_at,
    )


def anchor_document(document_id: int, auto_triggered: bool = True) -> AnchorResult | None:
    """Background entry point. Opens its own session."""
    db = SessionLocal()
    try:
        document = db.query(Document).filter(Document.id == document_id).first()
        if not document:
            log.warning("Anchoring skipped: document %s not found", document_id)
            return None
        if document.blockchain_tx_hash:
            log.info("Anchoring skipped: document %s already anchored in %s", document_id, document.blockchain_tx_hash)
            return None
        if document.status != DocumentStatus.completed.value:
            log.info("Anchoring skipped: document %s is %s, not completed", document_id, document.status)
            return None
        client = ledger.get_ledger_client()
        if client is None:
            log.info("Anchoring skipped: ledger not configured (document %s)", document_id)
            return None
        try:
            return inscribe_document(db, document, client, auto_triggered=auto_triggered)
        except LedgerError as e:
            db.rollback()
            log.warning("Anchoring failed for document %s: %s", document_id, e)
            return None
    finally:
        db.close()


# --- verification read path ---


def verify_inscription(client: LedgerClient, tx_hash: str, expected_hash: str) -> VerificationResult:
    tx = client.get_transaction(tx_hash)
    if not tx:
        return VerificationResult(verified=False, error="Transaction not found")
    block_number = tx.get("blockNumber")
    if block_number is None:
        return VerificationResult(verified=False, error="Transaction not yet mined")

    block = client.get_block(block_number)
    inscription = decode_inscription(tx.get("input"))
    if not inscription or not inscription.get("hash"):
        return VerificationResult(verified=False, block_number=block_number, error="Invalid inscription format")

    verified = str(inscription["hash"]).lower() == (expected_hash or "").lower()
    return VerificationResult(
        verified=verified,
        inscription=inscription,
        timestamp=datetime.fromtimestamp(int(block["timestamp"]), tz=timezone.utc),
        block_number=int(block_number),
        error=None if verified else "Hash mismatch",
    )


# --- ethscriptions ---


def _inscribable_blocks(content: list[Any] | None) -> list[dict[str, Any]]:
    out = []
    for block in content or []:
        if not isinstance(block, dict) or block.get("type") != DATA_URI_BLOCK:
            continue
        if not (block.get("payload") and block.get("recipientAddress") and block.get("network")):
            continue
        if block.get("inscriptionStatus") == INSCRIPTION_INSCRIBED:
            continue
        out.append(block)
    return out


def _update_block(db: Session, document: Document, block_id: Any, fields: dict[str, Any]) -> None:
    """Rewrite one block's fields in place; every other block is kept as currently stored."""
    db.refresh(document)
    content = copy.deepcopy(document.content or [])
    for block in content:
        if isinstance(block, dict) and block.get("id") == block_id:
            block.update(fields)
            break
    document.content = content


def _receipt_recipients(db: Session, document: Document, block: dict[str, Any]) -> list[Recipient]:
    signers = (
        db.query(Recipient)
        .filter(Recipient.document_id == document.id, Recipient.role == RecipientRole.signer.value)
        .order_by(Recipient.signing_order.asc(), Recipient.id.asc())
        .all()
    )
    target = block.get("recipientId")
    if target is not None:
        matched = [r for r in signers if str(r.id) == str(target)]
        if matched:
            return matched
    return signers


def _inscribe_block(db: Session, document: Document, block: dict[str, Any]) -> None:
    block_id = block.get("id")
    address = (block.get("recipientAddress") or "").strip()
    network = (block.get("network") or "").strip().lower()

    if not ledger.is_valid_address(address):
        log.warning("Ethscription skipped: document=%s block=%s invalid address %r", document.id, block_id, address)
        return

    client = ledger.get_ledger_client(network)
    if client is None:
        error = f"network {network!r} not available"
        _update_block(db, document, block_id, {"inscriptionStatus": INSCRIPTION_FAILED})
        record_event(db, document.id, EVENT_ETHSCRIPTION_FAILED, {"block_id": block_id, "network": network, "error": error})
        db.commit()
        log.warning("Ethscription failed: document=%s block=%s %s", document.id, block_id, error)
        return

    try:
        tx_hash = client.send_data_transaction(address, str(block["payload"]).encode("utf-8"))
        client.wait_for_confirmation(tx_hash, timeout=get_settings().anchor_confirmation_timeout_seconds)
    except LedgerError as e:
        db.rollback()
        _update_block(db, document, block_id, {"inscriptionStatus": INSCRIPTION_FAILED})
        record_event(
            db,
            document.id,
            EVENT_ETHSCRIPTION_FAILED,
            {"block_id": block_id, "network": network, "recipient_address": address, "error": str(e)},
        )
        db.commit()
        log.warning("Ethscription failed: document=%s block=%s %s", document.id, block_id, e)
        return

    explorer_url = client.explorer_url(tx_hash)
    _update_block(db, document, block_id, {"inscriptionStatus": INSCRIPTION_INSCRIBED, "inscriptionTxHash": tx_hash})
    record_event(
        db,
        document.id,
        EVENT_ETHSCRIPTION_COMPLETED,
        {
            "block_id": block_id,
            "network": network,
            "recipient_address": address,
            "tx_hash": tx_hash,
            "explorer_url": explorer_url,
        },
    )
    db.commit()

    for recipient in _receipt_recipients(db, document, block):
        notifications.send_ethscription_receipt(
            recipient.email,
            recipient.name or "",
            document.title,
            tx_hash,
            explorer_url,
            client.network.name,
        )


def dispatch_ethscriptions(document_id: int) -> None:
    """Background entry point: one transaction per inscribable data-uri block."""
    db = SessionLocal()
    try:
        document = db.query(Document).filter(Document.id == document_id).first()
        if not document:
            return
        for block in _inscribable_blocks(document.content):
            try:
                _inscribe_block(db, document, block)
            except SQLAlchemyError:
                db.rollback()
                log.exception("Ethscription bookkeeping failed: document=%s block=%s", document_id, block.get("id"))
    finally:
        db.close()


# --- scheduling ---


def dispatch_completion_tasks(document_id: int) -> None:
    """Fire-and-forget: the caller's response never waits on either branch."""
    tasks.submit(anchor_document, document_id, True)
    tasks.submit(dispatch_ethscriptions, document_id)


def reconcile_pending_anchors(min_age_minutes: int | None = None) -> int:
    """Re-submit completed documents that still carry the anchoring-pending marker.
    Returns how many were queued."""
    if ledger.get_ledger_client() is None:
        return 0
    if min_age_minutes is None:
        min_age_minutes = get_settings().reconciler_interval_minutes
    cutoff = utcnow() - timedelta(minutes=min_age_minutes)
    db = SessionLocal()
    try:
        rows = (
            db.query(Document.id, Document.anchor_pending_at)
            .filter(
                Document.status == DocumentStatus.completed.value,
                Document.anchor_pending_at.isnot(None),
                Document.blockchain_tx_hash.is_(None),
            )
            .all()
        )
    finally:
        db.close()
    due = [doc_id for doc_id, pending_at in rows if as_utc(pending_at) <= cutoff]
    for doc_id in due:
        tasks.submit(anchor_document, doc_id, True)
    if due:
        log.info("Anchor reconciler: queued %d document(s)", len(due))
    return len(due)
