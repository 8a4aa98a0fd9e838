"""
Authentication utilities for the JobSafe API.

Handles password hashing, signed session tokens (JWT in an HttpOnly cookie),
and the FastAPI dependencies that resolve the calling account.

Identity only ever comes from the signed session cookie. Headers such as
x-user-email are not trusted.
"""

import asyncio
import base64
import hashlib
import time
from dataclasses import dataclass
from typing import Optional

import bcrypt
import jwt
from fastapi import Depends, HTTPException, Request, Response, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import Settings
from app.core.database import get_db
from app.core.dependencies import get_app_settings
from app.models import Account

JWT_ALGORITHM = "HS256"
BCRYPT_ROUNDS = 12
MIN_PASSWORD_LENGTH = 8


# =============================================================================
# Emails & Passwords
# =============================================================================


def normalize_email(value: Optional[str]) -> Optional[str]:
    """Lower-case and trim an email. Returns None if it is not email-shaped."""
    if not value or not isinstance(value, str):
        return None
    email = value.strip().lower()
    return email if "@" in email else None


def _prehash(password: str) -> bytes:
    """SHA-256 digest, base64 encoded. Keeps bcrypt input under its 72 byte limit."""
    return base64.b64encode(hashlib.sha256(password.encode("utf-8")).digest())


async def hash_password(password: str) -> str:
    """Hash a password with bcrypt (off the event loop)."""
    hashed = await asyncio.to_thread(
        bcrypt.hashpw, _prehash(password), bcrypt.gensalt(BCRYPT_ROUNDS)
    )
    return hashed.decode("utf-8")


async def verify_password(password: str, password_hash: str) -> bool:
    try:
        return await asyncio.to_thread(
            bcrypt.checkpw, _prehash(password), password_hash.encode("utf-8")
        )
    except ValueError:
        # Stored hash is not a bcrypt hash
        return False


# =============================================================================
# Session Tokens
# =============================================================================


@dataclass(frozen=True)
class SessionClaims:
    """Verified contents of a session token."""
    account_id: str
    email: str


def create_session_token(account_id: str, email: str, settings: Settings) -> str:
    now = int(time.time())
    payload = {
        "sub": account_id,
        "email": email,
        "iat": now,
        "exp": now + settings.session_max_age_seconds,
    }
    return jwt.encode(payload, settings.secret_key, algorithm=JWT_ALGORITHM)


def decode_session_token(token: Optional[str], settings: Settings) -> Optional[SessionClaims]:
    """Verify signature and expiry. Any failure yields None."""
    if not token:
        return None
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[JWT_ALGORITHM])
    except jwt.PyJWTError:
        return None

    account_id = payload.get("sub")
    email = payload.get("email")
    if not account_id or not email:
        return None
    return SessionClaims(account_id=str(account_id), email=str(email))


def set_session_cookie(response: Response, account: Account, settings: Settings) -> None:
    response.set_cookie(
        key=settings.session_cookie_name,
        value=create_session_token(account.id, account.email, settings),
        max_age=settings.session_max_age_seconds,
        httponly=True,
        samesite="lax",
        secure=settings.is_production,
        path="/",
    )


def clear_session_cookie(response: Response, settings: Settings) -> None:
    response.delete_cookie(
        key=settings.session_cookie_name,
        httponly=True,
        samesite="lax",
        secure=settings.is_production,
        path="/",
    )


# =============================================================================
# Dependencies
# =============================================================================


def get_session_claims(
    request: Request,
    settings: Settings = Depends(get_app_settings),
) -> Optional[SessionClaims]:
    """Session claims from the cookie, or None. Never touches the database."""
    token = request.cookies.get(settings.session_cookie_name)
    return decode_session_token(token, settings)


def require_session(
    claims: Optional[SessionClaims] = Depends(get_session_claims),
) -> SessionClaims:
    """Require a valid session cookie. Raises 401 without any database access."""
    if claims is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required.",
        )
    return claims


async def get_account_by_email(email: str, db: AsyncSession) -> Optional[Account]:
    result = await db.execute(select(Account).where(Account.email == email))
    return result.scalar_one_or_none()


async def load_session_account(claims: SessionClaims, db: AsyncSession) -> Account:
    """Load the account a session points at. A stale session is a 401."""
    account = await db.get(Account, claims.account_id)
    if account is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required.",
        )
    return account


async def require_account(
    claims: SessionClaims = Depends(require_session),
    db: AsyncSession = Depends(get_db),
) -> Account:
    """Require authentication and return the account."""
    return await load_session_account(claims, db)
