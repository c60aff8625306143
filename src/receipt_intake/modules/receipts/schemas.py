from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel

from receipt_intake.modules.receipts.models import ReceiptStatus


class DuplicateOfOut(BaseModel):
    id: int
    store_name: str | None
    receipt_date: date | None
    total_amount: Decimal | None
    status: ReceiptStatus
    created_at: datetime


class ReceiptOut(BaseModel):
    id: int
    owner_id: uuid.UUID | None
    filename: str
    content_type: str | None
    byte_size: int
    store_name: str | None
    receipt_date: date | None
    total_amount: Decimal | None
    payment_method: str | None
    raw_text: str | None
    status: ReceiptStatus
    is_duplicate: bool
    duplicate_of_id: int | None
    duplicate_of: DuplicateOfOut | None = None
    content_hash: str | None
    error_message: str | None
    created_at: datetime
    updated_at: datetime


class ReceiptEnvelope(BaseModel):
    success: bool = True
    receipt: ReceiptOut
    message: str | None = None


class ReceiptListOut(BaseModel):
    receipts: list[ReceiptOut]
