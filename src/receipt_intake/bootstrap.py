from __future__ import annotations

import secrets

from sqlalchemy import select

import receipt_intake.models  # noqa: F401
from receipt_intake.core.config import settings
from receipt_intake.core.db import SessionLocal, engine
from receipt_intake.core.logging import get_logger, log_event
from receipt_intake.core.models import Base
from receipt_intake.core.security import hash_password
from receipt_intake.modules.identity.models import User, UserRole

logger = get_logger(__name__)


def bootstrap() -> None:
    if settings.environment in ("dev", "test") and settings.database_url.startswith("sqlite"):
        Base.metadata.create_all(engine)

    admin_emails = [
        e.strip().lower() for e in (settings.init_admin_email or "").split(",") if e.strip()
    ]
    if not admin_emails:
        return

    password = settings.init_admin_password or secrets.token_urlsafe(32)
    with SessionLocal() as session:
        for email in admin_emails:
            existing = session.scalar(select(User).where(User.email == email))
            if existing:
                if existing.role != UserRole.ADMIN:
                    existing.role = UserRole.ADMIN
                    session.add(existing)
                continue
            session.add(
                User(
                    email=email,
                    full_name="Admin",
                    password_hash=hash_password(password),
                    role=UserRole.ADMIN,
                    is_active=True,
                )
            )
            log_event(logger, "bootstrap.admin.created", email=email)
        session.commit()
