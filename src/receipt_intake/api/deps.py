from __future__ import annotations

import uuid

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.orm import Session

from receipt_intake.core.config import settings
from receipt_intake.core.db import db_session
from receipt_intake.core.logging import set_user_context
from receipt_intake.core.security import decode_access_token
from receipt_intake.modules.extraction.gateway import ExtractionGateway
from receipt_intake.modules.identity.models import User, UserRole

bearer_scheme = HTTPBearer(auto_error=False)


def _user_from_token(session: Session, token: str) -> User:
    subject = decode_access_token(token)
    if not subject:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    try:
        user_id = uuid.UUID(subject)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from e

    user = session.scalar(select(User).where(User.id == user_id))
    if not user or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid user")
    set_user_context(str(user.id))
    return user


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    session: Session = Depends(db_session),
) -> User:
    if not credentials or not credentials.credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return _user_from_token(session, credentials.credentials)


def get_optional_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    session: Session = Depends(db_session),
) -> User | None:
    """Anonymous callers are allowed; a token that is present must still be valid."""
    if not credentials or not credentials.credentials:
        return None
    return _user_from_token(session, credentials.credentials)


def require_role(*roles: UserRole):
    def _checker(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions"
            )
        return user

    return _checker


def get_extraction_gateway() -> ExtractionGateway:
    return ExtractionGateway(
        default_url=settings.extraction_webhook_url,
        timeout_s=settings.extraction_timeout_s,
    )
