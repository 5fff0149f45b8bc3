"""Privacy-preserving canonical hash of a completed document.

Emails never leave the service in clear text: each signer is reduced to
keccak256(lower(trim(email))) plus their signed-at timestamp, and the signer
list is sorted by that hash so the final digest does not depend on the order
in which parallel signers happened to finish.
"""
from __future__ import annotations

import base64
import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from web3 import Web3

from app.services.clock import iso_utc, utcnow

INSCRIPTION_TYPE = "OpenProposal Inscription"
INSCRIPTION_NOTE = "Digital proof of signature"

# Written onto data-uri blocks after completion; excluded so the hash stays verifiable
INSCRIPTION_BOOKKEEPING_KEYS = ("inscriptionStatus", "inscriptionTxHash")


@dataclass(frozen=True)
class SignerHash:
    email_hash: str
    signed_at: str


@dataclass
class DocumentHashData:
    document_id: int
    content_hash: str
    signers: list[SignerHash] = field(default_factory=list)
    payment_collected: bool = False
    completed_at: str = ""


def _canonical_json(value: Any) -> str:
    # Sorted keys, no whitespace: JSONB round-trips may reorder keys, this must not
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def keccak_hex(text: str) -> str:
    return Web3.to_hex(Web3.keccak(text=text))


def hash_email(email: str) -> str:
    return keccak_hex((email or "").strip().lower())


def _hashable_block(block: Any) -> Any:
    if not isinstance(block, dict):
        return block
    return {k: v for k, v in block.items() if k not in INSCRIPTION_BOOKKEEPING_KEYS}


def hash_content(content: list[Any] | None) -> str:
    return keccak_hex(_canonical_json([_hashable_block(b) for b in content or []]))


def build_hash_data(
    document_id: int,
    content: list[Any] | None,
    signers: list[tuple[str, datetime]],
    payment_collected: bool,
    completed_at: datetime,
) -> DocumentHashData:
    """signers: (email, signed_at) pairs for every signer that has signed."""
    return DocumentHashData(
        document_id=document_id,
        content_hash=hash_content(content),
        signers=[SignerHash(email_hash=hash_email(email), signed_at=iso_utc(signed_at)) for email, signed_at in signers],
        payment_collected=payment_collected,
        completed_at=iso_utc(completed_at),
    )


def hash_document_data(data: DocumentHashData) -> str:
    sorted_signers = sorted(data.signers, key=lambda s: s.email_hash)
    record = {
        "documentId": data.document_id,
        "contentHash": data.content_hash,
        "signers": [{"emailHash": s.email_hash, "signedAt": s.signed_at} for s in sorted_signers],
        "paymentCollected": data.payment_collected,
        "completedAt": data.completed_at,
    }
    return keccak_hex(_canonical_json(record))


def create_inscription_payload(document_hash: str, timestamp: datetime | None = None) -> str:
    """Base64 envelope carried as the anchoring transaction's data."""
    envelope = {
        "type": INSCRIPTION_TYPE,
        "note": INSCRIPTION_NOTE,
        "hash": document_hash,
        "timestamp": iso_utc(timestamp or utcnow()),
    }
    return base64.b64encode(json.dumps(envelope, separators=(",", ":")).encode("utf-8")).decode("ascii")


def decode_inscription(tx_input: bytes | str | None) -> dict[str, Any] | None:
    """Transaction input (hex string or bytes) -> decoded envelope, or None if it isn't one."""
    if tx_input is None:
        return None
    try:
        if isinstance(tx_input, str):
            raw = bytes.fromhex(tx_input[2:] if tx_input.startswith("0x") else tx_input)
        else:
            raw = bytes(tx_input)
        decoded = json.loads(base64.b64decode(raw, validate=True).decode("utf-8"))
    except (ValueError, UnicodeDecodeError):
        return None
    return decoded if isinstance(decoded, dict) else None
