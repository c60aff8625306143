"""
Alembic model import hook.

Importing this module ensures all SQLAlchemy models are registered on Base.metadata.
"""

from __future__ import annotations

# Receipts reference identity_user, so User goes first.
from receipt_intake.modules.identity.models import User  # noqa: F401

from receipt_intake.modules.receipts.models import Receipt  # noqa: F401
