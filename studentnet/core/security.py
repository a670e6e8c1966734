from __future__ import annotations
import secrets
from datetime import datetime, timedelta, timezone
from jose import jwt
from pwdlib import PasswordHash
from .config import settings

password_hash = PasswordHash.recommended()


def verify_password(plain_password, hashed_password):
    return password_hash.verify(plain_password, hashed_password)


def get_password_hash(password):
    return password_hash.hash(password)


# Verified against when no account matches, so unknown and known roll numbers cost the same
_UNMATCHED_HASH = get_password_hash(secrets.token_urlsafe(16))


def verify_unmatched_password(plain_password) -> bool:
    password_hash.verify(plain_password, _UNMATCHED_HASH)
    return False


def create_access_token(data: dict, expires_delta: timedelta | None = None):
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    return encoded_jwt


def create_session_token(user_id: int) -> str:
    return create_access_token(data={"sub": str(user_id)})


def decode_access_token(token: str) -> dict:
    """Raises jose.JWTError on a bad signature or an expired token"""
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
