"""
Authentication endpoints for the JobSafe API.

Endpoints:
- POST /v1/auth/signup - Create account and start a session
- POST /v1/auth/login - Start a session
- POST /v1/auth/logout - Clear the session cookie
- GET /v1/auth/me - Current account
"""

from datetime import datetime
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import (
    MIN_PASSWORD_LENGTH,
    clear_session_cookie,
    get_account_by_email,
    hash_password,
    normalize_email,
    require_account,
    set_session_cookie,
    verify_password,
)
from app.core.config import Settings
from app.core.database import get_db
from app.core.dependencies import get_analytics, get_app_settings
from app.core.posthog import ACCOUNT_SIGNED_UP, Analytics
from app.models import Account

logger = structlog.get_logger()

router = APIRouter(prefix="/auth", tags=["Authentication"])

INVALID_CREDENTIALS = "Invalid email or password."


# =============================================================================
# Request/Response Models
# =============================================================================


class SignupRequest(BaseModel):
    """Request body for signup."""
    email: EmailStr = Field(..., description="Account email address")
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH, max_length=128)


class LoginRequest(BaseModel):
    email: str
    password: str


class AccountInfo(BaseModel):
    id: str
    email: str
    createdAt: Optional[datetime] = None


class AccountResponse(BaseModel):
    success: bool = True
    user: AccountInfo


def _account_response(account: Account) -> AccountResponse:
    return AccountResponse(
        user=AccountInfo(id=account.id, email=account.email, createdAt=account.created_at)
    )


# =============================================================================
# Endpoints
# =============================================================================


@router.post("/signup", response_model=AccountResponse)
async def signup(
    body: SignupRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    analytics: Analytics = Depends(get_analytics),
):
    """Create an account and set the session cookie."""
    email = normalize_email(body.email)

    if await get_account_by_email(email, db) is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="An account with this email already exists.",
        )

    account = Account(email=email, password_hash=await hash_password(body.password))
    db.add(account)
    try:
        await db.commit()
    except IntegrityError:
        # Lost a race with a concurrent signup for the same email
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="An account with this email already exists.",
        )

    logger.info("account.created", account_id=account.id)
    analytics.capture(account.id, ACCOUNT_SIGNED_UP, {"email_domain": email.split("@")[-1]})

    set_session_cookie(response, account, settings)
    return _account_response(account)


@router.post("/login", response_model=AccountResponse)
async def login(
    body: LoginRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    email = normalize_email(body.email)
    account = await get_account_by_email(email, db) if email else None

    if account is None or not await verify_password(body.password, account.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=INVALID_CREDENTIALS,
        )

    set_session_cookie(response, account, settings)
    return _account_response(account)


@router.post("/logout")
async def logout(response: Response, settings: Settings = Depends(get_app_settings)):
    clear_session_cookie(response, settings)
    return {"success": True}


@router.get("/me", response_model=AccountResponse)
async def me(account: Account = Depends(require_account)):
    """Return the signed-in account."""
    return _account_response(account)
