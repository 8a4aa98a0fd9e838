"""
Pytest configuration and fixtures for JobSafe tests.

Fixtures provide:
- In-memory SQLite database (same schema as production)
- A fake LLM client with scripted replies
- The ASGI app and an httpx client bound to it
- Helpers for accounts, sessions, analyses and signed webhooks
"""

import hashlib
import hmac
import json
import os
import sys
import time
from typing import Optional, Union

import httpx
import pytest
from sqlalchemy import func, select
from sqlalchemy.pool import StaticPool

# Add project root to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.core.auth import create_session_token
from app.core.config import Settings
from app.core.database import Database
from app.core.locks import GenerationLocks
from app.core.posthog import Analytics
from app.core.signatures import compute_hmac_sha256
from app.main import create_app
from app.models import Account, Analysis
from app.services.llm_utils import LLMResponse

LEMONSQUEEZY_SECRET = "ls-webhook-secret"
PADDLE_SECRET = "pdl_ntfset_test_secret"
STRIPE_SECRET = "whsec_test_secret"


# =============================================================================
# Sample Data
# =============================================================================

SAMPLE_ANALYSIS_RESULT = {
    "replaceability_score": 62,
    "automation_risk": "medium",
    "skill_defensibility_score": 48,
    "market_saturation": "high",
    "reasons": [
        "Reporting work is largely templated",
        "Stakeholder negotiation is still manual",
    ],
    "recommended_upgrades": ["Own the forecasting model", "Lead vendor evaluations"],
    "comparison_percentile": 55,
    "confidence": 70,
}

SAMPLE_PROFILE = (
    "Financial analyst with five years of experience building monthly reports, "
    "variance analysis and budget models in Excel for a mid-size retailer."
)

PROTECTION_PLAN_JSON = json.dumps({
    "quarters": [
        {
            "quarter": n,
            "objective": f"Objective {n}",
            "skill_focus": f"Skill {n}",
            "project_suggestion": f"Project {n}",
            "career_positioning": f"Positioning {n}",
        }
        for n in range(1, 5)
    ]
})

SALARY_PROJECTION_JSON = json.dumps({
    "scenarios": [
        {
            "id": scenario_id,
            "label": scenario_id.replace("_", " ").title(),
            "description": "Scenario description",
            "salary_now": 85000,
            "salary_year_1": 85000 + delta,
            "salary_year_3": 85000 + 3 * delta,
            "risk_commentary": "Commentary",
        }
        for scenario_id, delta in (
            ("no_change", -2000),
            ("moderate_upskill", 4000),
            ("ai_resistant_pivot", 9000),
        )
    ]
})

MARKET_COMPARISON_JSON = json.dumps({
    "percentile": 71.6,
    "percentile_label": "Top 30%",
    "summary": "Above the median for comparable analysts.",
    "strengths": [{"area": "Modeling", "detail": "Builds budget models end to end"}],
    "weaknesses": [{"area": "Automation", "detail": "Little scripting experience"}],
    "positioning_advice": "Lead with forecasting ownership.",
})

AI_SIMULATION_JSON = json.dumps({
    "summary": "Routine reporting is automated first.",
    "years": [
        {"year": 1, "exposure_level": "medium", "headline": "Reports drafted by AI", "key_change": "Review role"},
        {"year": 2, "exposure_level": "high", "headline": "Variance notes automated", "key_change": "Fewer analysts"},
        {"year": 3, "exposure_level": "high", "headline": "Planning copilots", "key_change": "Strategy focus"},
    ],
    "tasks_at_risk": [{"task": "Monthly reporting", "reason": "Templated"}],
    "tasks_safe": [{"task": "Budget negotiation", "reason": "Relationship driven"}],
})


# =============================================================================
# Fakes
# =============================================================================


class FakeLLM:
    """
    Stand-in for LLMClient.

    Replies are consumed in order; the last one repeats. A reply that is an
    exception instance is raised instead of returned.
    """

    def __init__(self, *replies: Union[str, Exception]):
        self.replies = list(replies) or ["{}"]
        self.calls: list[dict] = []
        self.available = True

    async def complete(self, system, prompt, max_tokens=2048, temperature=0.3):
        self.calls.append({"system": system, "prompt": prompt, "temperature": temperature})
        reply = self.replies[0] if len(self.replies) == 1 else self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return LLMResponse(
            text=reply,
            input_tokens=10,
            output_tokens=20,
            provider="fake",
            model="fake-model",
        )

    async def close(self):
        pass


class RecordingAnalytics(Analytics):
    def __init__(self):
        super().__init__()
        self.events: list[tuple[str, str, dict]] = []

    def capture(self, distinct_id, event, properties=None):
        self.events.append((distinct_id, event, properties or {}))


# =============================================================================
# Core Fixtures
# =============================================================================


@pytest.fixture
def settings():
    return Settings(
        environment="development",
        secret_key="test-secret-key",
        database_url="sqlite+aiosqlite://",
        redis_url=None,
        anthropic_api_key="",
        dev_premium_bypass=False,
        lemonsqueezy_webhook_secret=LEMONSQUEEZY_SECRET,
        paddle_webhook_secret=PADDLE_SECRET,
        stripe_webhook_secret=STRIPE_SECRET,
        posthog_api_key=None,
    )


@pytest.fixture
async def database():
    db = Database(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await db.create_all()
    yield db
    await db.dispose()


@pytest.fixture
async def db_session(database):
    async with database.session_factory() as session:
        yield session


@pytest.fixture
def fake_llm():
    return FakeLLM(PROTECTION_PLAN_JSON)


@pytest.fixture
def analytics():
    return RecordingAnalytics()


@pytest.fixture
def locks():
    return GenerationLocks()


@pytest.fixture
def app(settings, database, fake_llm, analytics):
    return create_app(
        settings=settings,
        database=database,
        llm=fake_llm,
        redis_client=None,
        analytics=analytics,
    )


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


# =============================================================================
# Helpers
# =============================================================================


async def create_account(
    session,
    email: str = "ana@example.com",
    account_id: Optional[str] = None,
    password_hash: str = "not-a-real-hash",
) -> Account:
    account = Account(email=email, password_hash=password_hash)
    if account_id:
        account.id = account_id
    session.add(account)
    await session.commit()
    return account


async def create_analysis(session, analysis_id: str = "A1", result: Optional[dict] = None) -> Analysis:
    analysis = Analysis(
        id=analysis_id,
        profile_text=SAMPLE_PROFILE,
        result=result or SAMPLE_ANALYSIS_RESULT,
    )
    session.add(analysis)
    await session.commit()
    return analysis


def login(client: httpx.AsyncClient, account: Account, settings: Settings) -> None:
    """Attach a valid session cookie for account to the client."""
    client.cookies.set(
        settings.session_cookie_name,
        create_session_token(account.id, account.email, settings),
    )


async def count_rows(session, model) -> int:
    result = await session.execute(select(func.count()).select_from(model))
    return result.scalar_one()


def lemonsqueezy_headers(body: bytes, secret: str = LEMONSQUEEZY_SECRET) -> dict:
    return {"X-Signature": compute_hmac_sha256(body, secret), "Content-Type": "application/json"}


def paddle_headers(body: bytes, secret: str = PADDLE_SECRET, timestamp: Optional[int] = None) -> dict:
    ts = int(time.time()) if timestamp is None else timestamp
    digest = compute_hmac_sha256(f"{ts}:".encode() + body, secret)
    return {"Paddle-Signature": f"ts={ts};h1={digest}", "Content-Type": "application/json"}


def stripe_headers(body: bytes, secret: str = STRIPE_SECRET) -> dict:
    ts = int(time.time())
    signed = f"{ts}.".encode() + body
    digest = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return {"Stripe-Signature": f"t={ts},v1={digest}", "Content-Type": "application/json"}


def lemonsqueezy_order(
    event_name: str = "order_created",
    order_id: str = "PAY1",
    email: str = "ana@example.com",
    user_id: Optional[str] = "U1",
    analysis_id: Optional[str] = "A1",
    status: str = "paid",
) -> bytes:
    custom = {"email": email}
    if user_id:
        custom["user_id"] = user_id
    if analysis_id:
        custom["analysis_id"] = analysis_id
    return json.dumps({
        "meta": {"event_name": event_name, "custom_data": custom},
        "data": {
            "id": order_id,
            "type": "orders",
            "attributes": {
                "identifier": f"ident-{order_id}",
                "user_email": email,
                "customer_id": 4242,
                "status": status,
            },
        },
    }).encode()
