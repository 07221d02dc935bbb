"""
identity.py — Who is calling.

The share service never checks credentials itself; routes hand it the user id
from an ``Identity`` resolved from the bearer token.
"""

import logging
from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

import models
from auth import JWTError, decode_token
from database import get_db

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="login", auto_error=False)


class Identity:

    def __init__(self, user_id: Optional[str] = None):
        self._user_id = user_id

    def current_user_id(self) -> Optional[str]:
        return self._user_id

    def is_authenticated(self) -> bool:
        return self._user_id is not None

    def __repr__(self):
        return f"Identity(user_id={self._user_id!r})"


ANONYMOUS = Identity()


def get_identity(token: Optional[str] = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> Identity:
    """Resolve the bearer token; anything missing or invalid is anonymous."""
    if not token:
        return ANONYMOUS
    try:
        payload = decode_token(token)
    except JWTError as e:
        logger.info(f"Rejected bearer token: {e}")
        return ANONYMOUS

    user_id = payload.get("sub")
    if not user_id:
        return ANONYMOUS
    user = db.get(models.User, user_id)
    if user is None or not user.is_active:
        return ANONYMOUS
    return Identity(user.id)


def require_user_id(identity: Identity = Depends(get_identity)) -> str:
    if not identity.is_authenticated():
        raise HTTPException(
            status_code=401,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return identity.current_user_id()
