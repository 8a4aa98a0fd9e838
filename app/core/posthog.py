"""PostHog analytics client for backend event tracking."""

from typing import Any, Dict, Optional

import structlog

from app.core.config import Settings

logger = structlog.get_logger()

ACCOUNT_SIGNED_UP = "account_signed_up"
ANALYSIS_COMPLETED = "analysis_completed"
REPORT_PURCHASED = "report_purchased"
SUBSCRIPTION_STATUS_CHANGED = "subscription_status_changed"
PREMIUM_ARTIFACT_GENERATED = "premium_artifact_generated"


class Analytics:
    """Thin wrapper over a PostHog client. Every call is a no-op when unconfigured."""

    def __init__(self, client: Any = None):
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "Analytics":
        if not settings.posthog_api_key:
            return cls()
        from posthog import Posthog

        client = Posthog(
            settings.posthog_api_key,
            host=settings.posthog_host,
            debug=settings.debug,
        )
        return cls(client)

    @property
    def enabled(self) -> bool:
        return self._client is not None

    def capture(
        self,
        distinct_id: str,
        event: str,
        properties: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Capture an event. Analytics failures never reach the caller."""
        if self._client is None:
            return
        try:
            self._client.capture(
                distinct_id=distinct_id, event=event, properties=properties or {}
            )
        except Exception as e:
            logger.debug("posthog.capture_failed", event=event, error=str(e))

    def shutdown(self) -> None:
        """Flush pending events and shut down the client."""
        if self._client is None:
            return
        try:
            self._client.shutdown()
        except Exception as e:
            logger.debug("posthog.shutdown_failed", error=str(e))
