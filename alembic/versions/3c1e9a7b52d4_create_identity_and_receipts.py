"""create identity and receipts

Revision ID: 3c1e9a7b52d4
Revises:
Create Date: 2026-02-16

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "3c1e9a7b52d4"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

RECEIPT_STATUSES = ("pending", "processing", "completed", "failed", "duplicate")


def upgrade() -> None:
    op.create_table(
        "identity_user",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("full_name", sa.String(length=200), nullable=True),
        sa.Column("password_hash", sa.String(length=200), nullable=False),
        sa.Column("role", sa.Enum("USER", "ADMIN", name="userrole", native_enum=False), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
    )
    op.create_index("ix_identity_user_email", "identity_user", ["email"], unique=True)
    op.create_index("ix_identity_user_role", "identity_user", ["role"])

    op.create_table(
        "receipts_receipt",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "owner_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("identity_user.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("image_key", sa.String(length=1024), nullable=False),
        sa.Column("filename", sa.String(length=512), nullable=False),
        sa.Column("content_type", sa.String(length=200), nullable=True),
        sa.Column("byte_size", sa.Integer(), nullable=False),
        sa.Column("store_name", sa.String(length=255), nullable=True),
        sa.Column("receipt_date", sa.Date(), nullable=True),
        sa.Column("total_amount", sa.Numeric(15, 2), nullable=True),
        sa.Column("payment_method", sa.String(length=255), nullable=True),
        sa.Column("raw_text", sa.Text(), nullable=True),
        sa.Column(
            "status",
            sa.Enum(*RECEIPT_STATUSES, name="receiptstatus", native_enum=False),
            nullable=False,
        ),
        sa.Column("is_duplicate", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column(
            "duplicate_of_id",
            sa.Integer(),
            sa.ForeignKey("receipts_receipt.id", ondelete="RESTRICT"),
            nullable=True,
        ),
        sa.Column("content_hash", sa.String(length=64), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
    )
    op.create_index("ix_receipts_receipt_owner_id", "receipts_receipt", ["owner_id"])
    op.create_index("ix_receipts_receipt_status", "receipts_receipt", ["status"])
    op.create_index("ix_receipts_receipt_content_hash", "receipts_receipt", ["content_hash"])
    op.create_index(
        "uq_receipts_original_content_hash",
        "receipts_receipt",
        ["content_hash"],
        unique=True,
        sqlite_where=sa.text("is_duplicate = 0"),
        postgresql_where=sa.text("is_duplicate = false"),
    )


def downgrade() -> None:
    op.drop_index("uq_receipts_original_content_hash", table_name="receipts_receipt")
    op.drop_index("ix_receipts_receipt_content_hash", table_name="receipts_receipt")
    op.drop_index("ix_receipts_receipt_status", table_name="receipts_receipt")
    op.drop_index("ix_receipts_receipt_owner_id", table_name="receipts_receipt")
    op.drop_table("receipts_receipt")
    op.drop_index("ix_identity_user_role", table_name="identity_user")
    op.drop_index("ix_identity_user_email", table_name="identity_user")
    op.drop_table("identity_user")
