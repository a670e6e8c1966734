from typing import Optional

from jose import JWTError
from fastapi import Request, Depends
from sqlalchemy.orm import Session

from .exceptions import (
    AccountNotActiveError,
    AccountNotVerifiedError,
    AdminRequiredError,
    InvalidTokenError,
)
from .logging_config import set_user_id
from .security import decode_access_token
from studentnet import crud, models
from studentnet.database import get_db


def _strip_bearer(value: str) -> str:
    return value[len("Bearer "):] if value.startswith("Bearer ") else value


def read_token(request: Request) -> Optional[str]:
    # An explicit header wins over the session cookie
    auth_header = request.headers.get("Authorization")
    if auth_header:
        return _strip_bearer(auth_header)

    token = request.cookies.get("token")
    if token:
        return _strip_bearer(token)
    return None


def get_token_from_cookie_or_header(request: Request) -> str:
    token = read_token(request)
    if not token:
        raise InvalidTokenError("Not authorized, no token")
    return token


def _resolve_user(token: str, db: Session) -> models.User:
    try:
        payload = decode_access_token(token)
        subject = payload.get("sub")
        if subject is None:
            raise InvalidTokenError()
        user_id = int(subject)
    except (JWTError, ValueError):
        raise InvalidTokenError("Not authorized, token failed")

    user = crud.get_user(db, user_id)
    if user is None:
        raise InvalidTokenError("User not found")
    if user.account_status != models.AccountStatus.ACTIVE:
        raise AccountNotActiveError(user.account_status.value)
    if not user.is_verified:
        raise AccountNotVerifiedError()

    set_user_id(str(user.id))
    return user


def get_current_user(
        token: str = Depends(get_token_from_cookie_or_header), db: Session = Depends(get_db)
) -> models.User:
    return _resolve_user(token, db)


def get_optional_user(request: Request, db: Session = Depends(get_db)) -> Optional[models.User]:
    """Like get_current_user, but anonymous or broken sessions yield None"""
    token = read_token(request)
    if not token:
        return None
    try:
        return _resolve_user(token, db)
    except (InvalidTokenError, AccountNotActiveError, AccountNotVerifiedError):
        return None


def require_admin(current_user: models.User = Depends(get_current_user)) -> models.User:
    if not current_user.is_admin:
        raise AdminRequiredError()
    return current_user
