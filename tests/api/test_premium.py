"""
API tests for premium artifact endpoints.

Tests cover:
1. Session required (401) before validation or any lookup
2. Scenario B - second call is served from cache
3. Scenario C - invalid salary rejected with 400 before any database access
4. Scenario E - no purchase and no subscription is 403
5. Generator failures (502) and malformed output (422)

Usage:
    pytest tests/api/test_premium.py -v
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from app.core.database import get_db
from app.models import GeneratedArtifact, Report, Subscription
from conftest import (
    AI_SIMULATION_JSON,
    MARKET_COMPARISON_JSON,
    SALARY_PROJECTION_JSON,
    count_rows,
    create_account,
    create_analysis,
    login,
)


class UntouchableSession:
    """Fails the request if anything reaches the database."""

    def __getattr__(self, name):
        raise AssertionError(f"database accessed: {name}")


async def buyer(db_session, analysis_id: str = "A1"):
    """An account that owns a Report for analysis_id."""
    account = await create_account(db_session, account_id="U1")
    await create_analysis(db_session, analysis_id)
    db_session.add(Report(
        user_id=account.id,
        user_email=account.email,
        source_analysis_id=analysis_id,
        report_data={},
        payment_id=f"PAY-{analysis_id}",
    ))
    await db_session.commit()
    return account


# =============================================================================
# Access
# =============================================================================


class TestPremiumAccess:

    @pytest.mark.api
    @pytest.mark.parametrize("path", [
        "/v1/premium/protection-plan",
        "/v1/premium/salary-projection",
        "/v1/premium/market-comparison",
        "/v1/premium/ai-simulation",
    ])
    async def test_no_session_is_401(self, client, fake_llm, path):
        response = await client.post(path, json={"analysisId": "A1"})
        assert response.status_code == 401
        assert response.json() == {"success": False, "error": "Authentication required."}
        assert fake_llm.calls == []

    @pytest.mark.api
    async def test_no_session_beats_invalid_body(self, client):
        response = await client.post("/v1/premium/salary-projection", json={"salary": -5})
        assert response.status_code == 401

    @pytest.mark.api
    async def test_forged_cookie_is_401(self, client, settings):
        client.cookies.set(settings.session_cookie_name, "not-a-jwt")
        response = await client.post("/v1/premium/protection-plan", json={"analysisId": "A1"})
        assert response.status_code == 401

    @pytest.mark.api
    async def test_identity_headers_ignored(self, client, db_session):
        await buyer(db_session)
        response = await client.post(
            "/v1/premium/protection-plan",
            json={"analysisId": "A1"},
            headers={"x-user-email": "ana@example.com"},
        )
        assert response.status_code == 401

    @pytest.mark.api
    async def test_missing_analysis_id_is_400(self, client, db_session, settings):
        account = await create_account(db_session)
        login(client, account, settings)
        response = await client.post("/v1/premium/protection-plan", json={})
        assert response.status_code == 400
        assert response.json()["error"] == "analysisId required"

    @pytest.mark.api
    async def test_not_purchased_scenario_e(self, client, db_session, settings, fake_llm):
        account = await create_account(db_session)
        await create_analysis(db_session, "A1")
        login(client, account, settings)

        response = await client.post("/v1/premium/protection-plan", json={"analysisId": "A1"})

        assert response.status_code == 403
        assert response.json() == {"success": False, "error": "purchase required"}
        assert fake_llm.calls == []


# =============================================================================
# Generation
# =============================================================================


class TestProtectionPlan:

    @pytest.mark.api
    async def test_second_call_cached_scenario_b(self, client, db_session, settings, fake_llm):
        account = await buyer(db_session)
        login(client, account, settings)

        first = await client.post("/v1/premium/protection-plan", json={"analysisId": "A1"})
        second = await client.post("/v1/premium/protection-plan", json={"analysisId": "A1"})

        assert first.status_code == second.status_code == 200
        assert first.json()["cached"] is False
        assert second.json()["cached"] is True
        assert second.json()["plan"] == first.json()["plan"]
        assert len(first.json()["plan"]) == 4
        assert len(fake_llm.calls) == 1
        assert await count_rows(db_session, GeneratedArtifact) == 1

    @pytest.mark.api
    async def test_generator_failure_is_502(self, client, db_session, settings, fake_llm):
        account = await buyer(db_session)
        login(client, account, settings)
        fake_llm.replies = [RuntimeError("upstream overloaded")]

        response = await client.post("/v1/premium/protection-plan", json={"analysisId": "A1"})

        assert response.status_code == 502
        assert "upstream overloaded" in response.json()["error"]
        assert await count_rows(db_session, GeneratedArtifact) == 0

    @pytest.mark.api
    async def test_malformed_output_is_422(self, client, db_session, settings, fake_llm):
        account = await buyer(db_session)
        login(client, account, settings)
        fake_llm.replies = ['{"quarters": [{"quarter": 1}]}']

        response = await client.post("/v1/premium/protection-plan", json={"analysisId": "A1"})

        assert response.status_code == 422
        assert response.json()["success"] is False
        assert await count_rows(db_session, GeneratedArtifact) == 0

    @pytest.mark.api
    async def test_subscription_grants_access(self, client, db_session, settings):
        account = await create_account(db_session)
        await create_analysis(db_session, "A1")
        db_session.add(Subscription(email=account.email, status="trialing", payment_provider="stripe"))
        await db_session.commit()
        login(client, account, settings)

        response = await client.post("/v1/premium/protection-plan", json={"analysisId": "A1"})
        assert response.status_code == 200

    @pytest.mark.api
    async def test_dev_bypass(self, client, db_session, settings):
        settings.dev_premium_bypass = True
        await create_analysis(db_session, "A1")

        response = await client.post("/v1/premium/protection-plan", json={"analysisId": "A1"})

        assert response.status_code == 200
        row = (await db_session.execute(GeneratedArtifact.__table__.select())).one()
        assert row.user_key == "dev-bypass"

    @pytest.mark.api
    async def test_bypass_with_missing_analysis_is_404(self, client, settings):
        settings.dev_premium_bypass = True
        response = await client.post("/v1/premium/protection-plan", json={"analysisId": "nope"})
        assert response.status_code == 404


class TestSalaryProjection:

    @pytest.mark.api
    @pytest.mark.parametrize("body", [
        {"analysisId": "A1", "salary": -5, "country": "DE"},
        {"analysisId": "A1", "salary": 0, "country": "DE"},
        {"analysisId": "A1", "salary": "85000", "country": "DE"},
        {"analysisId": "A1", "salary": 85000, "country": "   "},
        {"analysisId": "A1", "salary": 85000},
    ])
    async def test_invalid_body_scenario_c(self, app, client, db_session, settings, body):
        """Rejected with 400 before the database is queried."""
        account = await create_account(db_session)
        login(client, account, settings)

        async def untouchable_db():
            yield UntouchableSession()

        app.dependency_overrides[get_db] = untouchable_db
        try:
            response = await client.post("/v1/premium/salary-projection", json=body)
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 400
        assert response.json()["success"] is False

    @pytest.mark.api
    async def test_negative_salary_message(self, client, db_session, settings):
        account = await create_account(db_session)
        login(client, account, settings)
        response = await client.post(
            "/v1/premium/salary-projection",
            json={"analysisId": "A1", "salary": -5, "country": "DE"},
        )
        assert response.json()["error"].startswith("salary:")

    @pytest.mark.api
    async def test_scenarios_returned(self, client, db_session, settings, fake_llm):
        account = await buyer(db_session)
        login(client, account, settings)
        fake_llm.replies = [SALARY_PROJECTION_JSON]

        response = await client.post(
            "/v1/premium/salary-projection",
            json={"analysisId": "A1", "salary": 85000, "country": "Germany"},
        )

        assert response.status_code == 200
        assert len(response.json()["scenarios"]) == 3
        assert "Germany" in fake_llm.calls[0]["prompt"]


class TestOtherArtifacts:

    @pytest.mark.api
    async def test_market_comparison(self, client, db_session, settings, fake_llm):
        account = await buyer(db_session)
        login(client, account, settings)
        fake_llm.replies = [MARKET_COMPARISON_JSON]

        response = await client.post("/v1/premium/market-comparison", json={"analysisId": "A1"})

        assert response.status_code == 200
        assert response.json()["comparison"]["percentile"] == 72
        assert response.json()["cached"] is False

    @pytest.mark.api
    async def test_ai_simulation(self, client, db_session, settings, fake_llm):
        account = await buyer(db_session)
        login(client, account, settings)
        fake_llm.replies = [AI_SIMULATION_JSON]

        response = await client.post("/v1/premium/ai-simulation", json={"analysisId": "A1"})

        assert response.status_code == 200
        assert len(response.json()["simulation"]["years"]) == 3
