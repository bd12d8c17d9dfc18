"""Shared FastAPI dependencies."""
from __future__ import annotations

import uuid
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from coach_push.db.models.user import User
from coach_push.db.session import get_db
from coach_push.push.dispatcher import PushDispatcher
from coach_push.utils.exceptions import PushConfigurationError, handle_configuration_error

__all__ = ["get_db", "get_current_user", "get_push_dispatcher"]


def get_current_user(
    x_user_id: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the caller from ``X-User-Id``.

    Session handling belongs to the host application, which overrides this
    dependency with its own lookup.
    """

    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
    )
    if not x_user_id:
        raise credentials_exception
    try:
        user_id = uuid.UUID(x_user_id)
    except ValueError as exc:
        raise credentials_exception from exc

    user = db.get(User, user_id)
    if user is None or not user.is_active:
        raise credentials_exception
    return user


def get_push_dispatcher(db: Session = Depends(get_db)) -> PushDispatcher:
    try:
        return PushDispatcher.from_settings(db)
    except PushConfigurationError as exc:
        raise handle_configuration_error(exc) from exc
