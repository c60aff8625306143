from __future__ import annotations

import enum
import uuid
from datetime import date
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    Date,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
    false,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from receipt_intake.core.models import Base, SerialPrimaryKey, Timestamped


class ReceiptStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    DUPLICATE = "duplicate"

    @property
    def is_terminal(self) -> bool:
        return self not in OPEN_STATUSES


OPEN_STATUSES = frozenset({ReceiptStatus.PENDING, ReceiptStatus.PROCESSING})

# Ids live in an Integer column: 32-bit signed on PostgreSQL.
MAX_RECEIPT_ID = 2**31 - 1


class Receipt(SerialPrimaryKey, Timestamped, Base):
    __tablename__ = "receipts_receipt"

    owner_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("identity_user.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    image_key: Mapped[str] = mapped_column(String(1024))
    filename: Mapped[str] = mapped_column(String(512))
    content_type: Mapped[str | None] = mapped_column(String(200), nullable=True)
    byte_size: Mapped[int] = mapped_column(Integer, default=0)

    store_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    receipt_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    total_amount: Mapped[Decimal | None] = mapped_column(Numeric(15, 2), nullable=True)
    payment_method: Mapped[str | None] = mapped_column(String(255), nullable=True)
    raw_text: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[ReceiptStatus] = mapped_column(
        Enum(ReceiptStatus, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        default=ReceiptStatus.PENDING,
        index=True,
    )
    is_duplicate: Mapped[bool] = mapped_column(Boolean, default=False, server_default=false())
    duplicate_of_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("receipts_receipt.id", ondelete="RESTRICT"), nullable=True
    )
    content_hash: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    owner = relationship("User")
    duplicate_of = relationship("Receipt", remote_side="Receipt.id")


# One original per fingerprint; duplicates may share it freely.
Index(
    "uq_receipts_original_content_hash",
    Receipt.content_hash,
    unique=True,
    sqlite_where=Receipt.is_duplicate == false(),
    postgresql_where=Receipt.is_duplicate == false(),
)
