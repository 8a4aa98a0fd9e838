"""
Premium access gate.

Decides whether the caller may run a premium operation for one analysis:

1. Identity comes from the signed session only (missing/invalid -> 401).
2. The analysis id must be present (-> 400).
3. A Report owned by the account for that analysis -> allow.
4. For subscription-gated features, an active or trialing Subscription
   whose period has not ended -> allow.
5. Otherwise 403.

DEV_PREMIUM_BYPASS forces an allow, but only outside production.
"""

from dataclasses import dataclass
from typing import Optional, Union

import structlog
from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import SessionClaims
from app.core.config import Settings
from app.models import Account
from app.services.ownership import (
    find_owned_report,
    find_subscription,
    is_subscription_active,
)

logger = structlog.get_logger()

DEV_BYPASS_KEY = "dev-bypass"

AUTH_REQUIRED = "Authentication required."
ANALYSIS_ID_REQUIRED = "analysisId required"
PURCHASE_REQUIRED = "purchase required"


@dataclass(frozen=True)
class Allow:
    """Access granted. user_key is the identity artifacts are cached under."""
    user_key: str
    account: Optional[Account]
    via: str  # report, subscription, bypass


@dataclass(frozen=True)
class Deny:
    reason: str
    status_code: int


AccessDecision = Union[Allow, Deny]


async def check_access(
    db: AsyncSession,
    claims: Optional[SessionClaims],
    analysis_id: Optional[str],
    settings: Settings,
    allow_subscription: bool = True,
) -> AccessDecision:
    """Run the gate. Nothing touches the database before steps 1 and 2 pass."""
    if settings.premium_bypass_enabled:
        logger.warning("access.dev_bypass", analysis_id=analysis_id)
        return Allow(user_key=DEV_BYPASS_KEY, account=None, via="bypass")

    if claims is None:
        return Deny(AUTH_REQUIRED, 401)

    if not analysis_id or not analysis_id.strip():
        return Deny(ANALYSIS_ID_REQUIRED, 400)
    analysis_id = analysis_id.strip()

    account = await db.get(Account, claims.account_id)
    if account is None:
        return Deny(AUTH_REQUIRED, 401)

    report = await find_owned_report(
        db, analysis_id, account_id=account.id, email=account.email
    )
    if report is not None:
        return Allow(user_key=account.id, account=account, via="report")

    if allow_subscription:
        subscription = await find_subscription(db, account.email)
        if is_subscription_active(subscription):
            return Allow(user_key=account.id, account=account, via="subscription")

    return Deny(PURCHASE_REQUIRED, 403)


def enforce(decision: AccessDecision) -> Allow:
    """Turn a Deny into an HTTPException; pass an Allow through."""
    if isinstance(decision, Deny):
        raise HTTPException(status_code=decision.status_code, detail=decision.reason)
    return decision
