from __future__ import annotations

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator

from receipt_intake.modules.receipts.fingerprint import normalize_amount, normalize_date
from receipt_intake.modules.receipts.models import MAX_RECEIPT_ID
from receipt_intake.modules.receipts.schemas import ReceiptOut


class ReceiptCallbackIn(BaseModel):
    receipt_id: int = Field(ge=1, le=MAX_RECEIPT_ID)
    store_name: str | None = None
    receipt_date: date | None = None
    total_amount: Decimal | None = None
    payment_method: str | None = None
    raw_text: str | None = None
    # Older extraction workflows send the OCR text under this name.
    raw_ocr_text: str | None = None

    @field_validator("store_name", "payment_method", "raw_text", "raw_ocr_text", mode="before")
    @classmethod
    def _blank_is_missing(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("receipt_date", mode="before")
    @classmethod
    def _date_only(cls, value):
        if value is None or (isinstance(value, str) and not value.strip()):
            return None
        if isinstance(value, (int, float)):
            raise ValueError("receipt_date must be a date")
        return normalize_date(value)

    @field_validator("total_amount", mode="before")
    @classmethod
    def _numeric_amount(cls, value):
        if value is None or (isinstance(value, str) and not value.strip()):
            return None
        return normalize_amount(value)

    @property
    def text(self) -> str | None:
        return self.raw_text if self.raw_text is not None else self.raw_ocr_text


class CallbackAckOut(BaseModel):
    success: bool = True
    applied: bool
    receipt: ReceiptOut
    message: str
