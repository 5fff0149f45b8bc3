"""Payment requirement resolution for the signing view.

Payment can be declared by a `payment` block in the content and/or by the
`payment` sub-object written into settings at send time. Settings win when enabled.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import Session

from app.models.payment import Payment, PAYMENT_SUCCEEDED


@dataclass(frozen=True)
class PaymentRequirement:
    requires_payment: bool = False
    amount: float | None = None
    currency: str | None = None
    timing: str | None = None


def find_payment_block(content: list[dict[str, Any]] | None) -> dict[str, Any] | None:
    for block in content or []:
        if isinstance(block, dict) and block.get("type") == "payment":
            return block
    return None


def resolve_payment(content: list[dict[str, Any]] | None, settings: dict[str, Any] | None) -> PaymentRequirement:
    requires_payment = False
    amount = currency = timing = None

    block = find_payment_block(content)
    if block:
        requires_payment = bool(block.get("required"))
        amount = block.get("amount")
        currency = block.get("currency")
        timing = block.get("timing")

    payment_settings = (settings or {}).get("payment")
    if isinstance(payment_settings, dict) and payment_settings.get("enabled"):
        requires_payment = True
        amount = payment_settings.get("amount")
        currency = payment_settings.get("currency") or "USD"
        timing = payment_settings.get("timing")

    return PaymentRequirement(
        requires_payment=requires_payment,
        amount=amount,
        currency=currency,
        timing=timing,
    )


def payment_collected(db: Session, document_id: int) -> bool:
    return (
        db.query(Payment.id)
        .filter(Payment.document_id == document_id, Payment.status == PAYMENT_SUCCEEDED)
        .first()
        is not None
    )
