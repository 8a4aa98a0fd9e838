"""
Purchase and ownership endpoints.

Endpoints:
- POST /v1/checkout - Hosted checkout for the premium report
- GET /v1/subscription/status - Ownership / subscription view for an analysis
- GET /v1/reports - Reports the signed-in account has bought
"""

from typing import Literal, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import SessionClaims, get_session_claims, load_session_account, require_account
from app.core.billing import create_checkout
from app.core.config import Settings
from app.core.database import get_db
from app.core.dependencies import get_app_settings
from app.models import Account, Analysis
from app.services.ownership import (
    find_owned_report,
    find_subscription,
    is_subscription_active,
    list_owned_reports,
)

logger = structlog.get_logger()

router = APIRouter(tags=["Billing"])


class CheckoutRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    analysis_id: str = Field(..., alias="analysisId", min_length=1)
    provider: Optional[Literal["lemonsqueezy", "stripe"]] = None


@router.post("/checkout")
async def checkout(
    body: CheckoutRequest,
    request: Request,
    account: Account = Depends(require_account),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    """Create a hosted checkout bound to this account and analysis."""
    analysis_id = body.analysis_id.strip()
    if await db.get(Analysis, analysis_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Analysis not found.")

    success_url = settings.lemonsqueezy_success_url or f"{str(request.base_url).rstrip('/')}/payment/success"
    url = await create_checkout(body.provider, account, analysis_id, settings, success_url)

    logger.info(
        "checkout.created",
        account_id=account.id,
        analysis_id=analysis_id,
        provider=body.provider or settings.checkout_provider,
    )
    return {"success": True, "checkoutUrl": url}


@router.get("/subscription/status")
async def subscription_status(
    analysis_id: Optional[str] = Query(None, alias="analysisId"),
    claims: Optional[SessionClaims] = Depends(get_session_claims),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    if settings.premium_bypass_enabled:
        return {"active": True, "status": "active"}

    if claims is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required.")
    account = await load_session_account(claims, db)

    if analysis_id and analysis_id.strip():
        report = await find_owned_report(
            db, analysis_id.strip(), account_id=account.id, email=account.email
        )
        if report is not None:
            return {"active": True, "status": "owned", "analysisId": report.source_analysis_id}

    subscription = await find_subscription(db, account.email)
    if subscription is None:
        return {"active": False, "status": "none"}

    return {
        "active": is_subscription_active(subscription),
        "status": subscription.status,
        "currentPeriodEnd": subscription.current_period_end,
    }


@router.get("/reports")
async def reports(
    account: Account = Depends(require_account),
    db: AsyncSession = Depends(get_db),
):
    """Reports bought by this account (by id or email), newest first."""
    owned = await list_owned_reports(db, account.id, account.email)
    return {
        "success": True,
        "reports": [
            {
                "id": report.id,
                "analysisId": report.source_analysis_id,
                "paymentId": report.payment_id,
                "createdAt": report.created_at,
                "reportData": report.report_data,
            }
            for report in owned
        ],
    }
