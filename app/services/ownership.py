"""
Subscription / ownership store.

Keyed reads over the tables the webhook reconciler writes. Uniqueness is
held by the schema: one Subscription per email, one Report per payment id.
Several Reports for the same analysis are allowed; any one of them proves
ownership.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import Report, Subscription

ACTIVE_STATUSES = frozenset({"active", "trialing"})


async def find_subscription(db: AsyncSession, email: str) -> Optional[Subscription]:
    result = await db.execute(select(Subscription).where(Subscription.email == email))
    return result.scalar_one_or_none()


async def find_owned_report(
    db: AsyncSession,
    analysis_id: str,
    account_id: Optional[str] = None,
    email: Optional[str] = None,
) -> Optional[Report]:
    """Any Report for analysis_id bought by this account id or email."""
    owners = []
    if account_id:
        owners.append(Report.user_id == account_id)
    if email:
        owners.append(Report.user_email == email)
    if not owners:
        return None

    result = await db.execute(
        select(Report)
        .where(Report.source_analysis_id == analysis_id, or_(*owners))
        .order_by(Report.created_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def list_owned_reports(
    db: AsyncSession, account_id: str, email: str
) -> list[Report]:
    result = await db.execute(
        select(Report)
        .where(or_(Report.user_id == account_id, Report.user_email == email))
        .order_by(Report.created_at.desc())
    )
    return list(result.scalars().all())


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; they are stored as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_subscription_active(
    subscription: Optional[Subscription], now: Optional[datetime] = None
) -> bool:
    """Active or trialing, and the period (if any) has not ended."""
    if subscription is None or subscription.status not in ACTIVE_STATUSES:
        return False
    if subscription.current_period_end is None:
        return True
    current = now or datetime.now(timezone.utc)
    return _as_utc(subscription.current_period_end) > _as_utc(current)
