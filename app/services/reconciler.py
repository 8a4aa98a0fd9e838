"""
Webhook reconciler.

Applies a normalized PaymentEvent to the store:

- order_created: create the Report for the payment (once per payment id),
  then mark the Subscription active with no expiry
- subscription_created / subscription_updated: set the mapped status
- order_refunded / subscription_cancelled / subscription_expired: cancelled

Unhandled events are acknowledged without writes. Persistence errors raise
WebhookPersistenceError (500) so the provider re-delivers.

Subscription writes are last-write-wins; providers send full snapshots.
"""

from dataclasses import dataclass
from typing import Any, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import get_account_by_email
from app.core.posthog import REPORT_PURCHASED, SUBSCRIPTION_STATUS_CHANGED, Analytics
from app.models import Account, Analysis, Report, Subscription
from app.services.errors import InvalidInputError, NotFoundError, ServiceError
from app.services.ownership import find_subscription
from app.services.payment_events import ORDER_CREATED, PaymentEvent

logger = structlog.get_logger()


class WebhookPersistenceError(ServiceError):
    status_code = 500


@dataclass
class ReconcileResult:
    event: str
    email: Optional[str] = None
    ignored: bool = False
    report_created: bool = False
    status: Optional[str] = None

    def to_response(self) -> dict[str, Any]:
        if self.ignored:
            return {"success": True, "ignored": True, "event": self.event}
        return {"success": True, "event": self.event, "email": self.email}


class WebhookReconciler:
    def __init__(self, db: AsyncSession, analytics: Optional[Analytics] = None):
        self.db = db
        self.analytics = analytics or Analytics()

    async def reconcile(self, event: PaymentEvent) -> ReconcileResult:
        log = logger.bind(provider=event.provider, event=event.name)

        if not event.handled:
            log.info("webhook.ignored", kind=event.kind, provider_status=event.provider_status)
            return ReconcileResult(event=event.name, ignored=True)

        email = event.email or await self._email_from_identifiers(event)
        if not email:
            raise InvalidInputError("Webhook payload missing a valid customer email.")

        try:
            report_created = False
            if event.kind == ORDER_CREATED:
                report_created = await self._record_purchase(event, email)
            await self._upsert_subscription(event, email)
        except SQLAlchemyError as e:
            await self.db.rollback()
            log.error("webhook.persistence_failed", error=str(e))
            raise WebhookPersistenceError("Internal server error")

        log.info(
            "webhook.reconciled",
            kind=event.kind,
            status=event.status,
            report_created=report_created,
        )
        return ReconcileResult(
            event=event.name,
            email=email,
            report_created=report_created,
            status=event.status,
        )

    async def _email_from_identifiers(self, event: PaymentEvent) -> Optional[str]:
        """Some provider events (cancellations, refunds) carry ids but no email."""
        if event.subscription_id:
            condition = Subscription.provider_subscription_id == event.subscription_id
        elif event.order_id:
            condition = Subscription.provider_order_id == event.order_id
        else:
            return None
        result = await self.db.execute(select(Subscription.email).where(condition).limit(1))
        return result.scalar_one_or_none()

    async def _record_purchase(self, event: PaymentEvent, email: str) -> bool:
        """Create the Report for this payment. Returns False if it already exists."""
        payment_id = event.payment_id
        if not payment_id:
            raise InvalidInputError("Missing payment identifier.")

        existing = await self.db.execute(
            select(Report.id).where(Report.payment_id == payment_id)
        )
        if existing.scalar_one_or_none() is not None:
            logger.info("webhook.report_exists", payment_id=payment_id)
            return False

        if not event.analysis_id:
            raise InvalidInputError("Missing analysis_id in webhook payload.")

        account = None
        if event.user_id:
            account = await self.db.get(Account, event.user_id)
        if account is None:
            account = await get_account_by_email(email, self.db)
        if account is None:
            raise NotFoundError("User account not found for this purchase.")

        analysis = await self.db.get(Analysis, event.analysis_id)
        if analysis is None:
            raise NotFoundError("Source analysis not found.")

        self.db.add(
            Report(
                user_id=account.id,
                user_email=account.email,
                source_analysis_id=analysis.id,
                report_data=analysis.result,
                payment_id=payment_id,
                payment_provider=event.provider,
            )
        )
        try:
            await self.db.commit()
        except IntegrityError:
            # A concurrent delivery of the same payment won the insert
            await self.db.rollback()
            logger.info("webhook.report_exists", payment_id=payment_id)
            return False

        self.analytics.capture(
            account.id,
            REPORT_PURCHASED,
            {"analysis_id": analysis.id, "provider": event.provider},
        )
        return True

    async def _upsert_subscription(self, event: PaymentEvent, email: str) -> Subscription:
        subscription = await find_subscription(self.db, email)
        previous_status = subscription.status if subscription else None
        if subscription is None:
            subscription = Subscription(email=email)
            self.db.add(subscription)

        subscription.status = event.status
        subscription.payment_provider = event.provider
        if event.kind == ORDER_CREATED:
            subscription.current_period_end = None
        elif event.current_period_end is not None:
            subscription.current_period_end = event.current_period_end

        for attr, value in (
            ("provider_customer_id", event.customer_id),
            ("provider_subscription_id", event.subscription_id),
            ("provider_order_id", event.order_id),
            ("provider_order_identifier", event.order_identifier),
        ):
            if value:
                setattr(subscription, attr, value)

        await self.db.commit()

        if previous_status != event.status:
            self.analytics.capture(
                email,
                SUBSCRIPTION_STATUS_CHANGED,
                {"from": previous_status, "to": event.status, "provider": event.provider},
            )
        return subscription
