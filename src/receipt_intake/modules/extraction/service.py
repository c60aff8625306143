from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from receipt_intake.core.logging import get_logger, log_event
from receipt_intake.modules.extraction.schemas import ReceiptCallbackIn
from receipt_intake.modules.receipts.fingerprint import fingerprint
from receipt_intake.modules.receipts.models import Receipt, ReceiptStatus
from receipt_intake.modules.receipts.service import finalize_receipt, get_receipt

logger = get_logger(__name__)

# Bounds retries of the one-original-per-fingerprint election.
DUPLICATE_ELECTION_ATTEMPTS = 5


@dataclass(frozen=True)
class ExtractedFields:
    store_name: str | None = None
    receipt_date: date | None = None
    total_amount: Decimal | None = None
    payment_method: str | None = None
    raw_text: str | None = None

    @classmethod
    def from_callback(cls, payload: ReceiptCallbackIn) -> ExtractedFields:
        return cls(
            store_name=payload.store_name,
            receipt_date=payload.receipt_date,
            total_amount=payload.total_amount,
            payment_method=payload.payment_method,
            raw_text=payload.text,
        )

    def as_values(self) -> dict:
        return {
            "store_name": self.store_name,
            "receipt_date": self.receipt_date,
            "total_amount": self.total_amount,
            "payment_method": self.payment_method,
            "raw_text": self.raw_text,
            "error_message": None,
        }


@dataclass(frozen=True)
class CallbackOutcome:
    receipt: Receipt
    applied: bool


def _find_original_id(session: Session, *, content_hash: str, exclude_id: int) -> int | None:
    return session.scalar(
        select(Receipt.id)
        .where(
            Receipt.content_hash == content_hash,
            Receipt.is_duplicate.is_(False),
            Receipt.id != exclude_id,
        )
        .order_by(Receipt.id)
        .limit(1)
    )


def _finish(session: Session, receipt: Receipt, *, applied: bool) -> CallbackOutcome:
    session.refresh(receipt)
    log_event(
        logger,
        "receipt.resolved" if applied else "receipt.callback.ignored",
        receipt_id=receipt.id,
        receipt_status=receipt.status.value,
        duplicate_of_id=receipt.duplicate_of_id,
        content_hash=receipt.content_hash,
        applied=applied,
    )
    return CallbackOutcome(receipt=receipt, applied=applied)


def resolve_callback(session: Session, *, receipt_id: int, fields: ExtractedFields) -> CallbackOutcome:
    receipt = get_receipt(session, receipt_id=receipt_id)
    if not receipt:
        log_event(logger, "receipt.callback.unknown", level=logging.WARNING, receipt_id=receipt_id)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Receipt not found")

    log_event(
        logger,
        "receipt.callback.received",
        receipt_id=receipt.id,
        receipt_status=receipt.status.value,
        has_store_name=fields.store_name is not None,
        has_receipt_date=fields.receipt_date is not None,
        has_total_amount=fields.total_amount is not None,
    )
    if receipt.status.is_terminal:
        # Replayed or late deliveries never overwrite a resolved outcome.
        return _finish(session, receipt, applied=False)

    content_hash = fingerprint(fields.store_name, fields.receipt_date, fields.total_amount)
    values = fields.as_values()

    if content_hash is None:
        applied = finalize_receipt(
            session,
            receipt_id=receipt.id,
            values={
                **values,
                "content_hash": None,
                "status": ReceiptStatus.COMPLETED,
                "is_duplicate": False,
                "duplicate_of_id": None,
            },
        )
        session.commit()
        return _finish(session, receipt, applied=applied)

    for attempt in range(1, DUPLICATE_ELECTION_ATTEMPTS + 1):
        original_id = _find_original_id(session, content_hash=content_hash, exclude_id=receipt.id)
        if original_id is not None:
            outcome = {
                "status": ReceiptStatus.DUPLICATE,
                "is_duplicate": True,
                "duplicate_of_id": original_id,
            }
        else:
            outcome = {
                "status": ReceiptStatus.COMPLETED,
                "is_duplicate": False,
                "duplicate_of_id": None,
            }
        try:
            applied = finalize_receipt(
                session,
                receipt_id=receipt.id,
                values={**values, "content_hash": content_hash, **outcome},
            )
            session.commit()
        except IntegrityError:
            # Another receipt with the same fingerprint became the original first.
            session.rollback()
            log_event(
                logger,
                "receipt.duplicate_election.conflict",
                receipt_id=receipt.id,
                content_hash=content_hash,
                attempt=attempt,
            )
            continue
        return _finish(session, receipt, applied=applied)

    raise RuntimeError(
        f"Could not settle duplicate election for receipt {receipt.id} "
        f"after {DUPLICATE_ELECTION_ATTEMPTS} attempts"
    )
