"""
Payment provider webhooks.

POST /v1/webhooks/{provider} - provider is lemonsqueezy, paddle or stripe

The raw body is read before anything parses it; signatures are computed
over those exact bytes. Responses:
- 200 {success, event, email} when applied
- 200 {success, ignored, event} for events we do not act on
- 400 malformed payload, 401 bad signature, 404 unknown account/analysis,
  500 persistence failure (the provider retries)
"""

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import Settings
from app.core.database import get_db
from app.core.dependencies import get_analytics, get_app_settings
from app.core.posthog import Analytics
from app.services.payment_events import ADAPTERS
from app.services.reconciler import WebhookReconciler

logger = structlog.get_logger()

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.post("/{provider}")
async def receive_webhook(
    provider: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    analytics: Analytics = Depends(get_analytics),
):
    adapter = ADAPTERS.get(provider)
    if adapter is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown payment provider.")
    parse_event, signature_header = adapter

    raw_body = await request.body()
    logger.info("webhook.received", provider=provider, size=len(raw_body))
    event = parse_event(raw_body, request.headers.get(signature_header), settings)

    result = await WebhookReconciler(db, analytics).reconcile(event)
    return result.to_response()
