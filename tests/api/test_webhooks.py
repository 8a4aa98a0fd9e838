"""
API tests for payment webhooks.

Tests cover:
1. Scenario A - Lemon Squeezy order_created creates one Report and activates
2. Replayed deliveries are idempotent
3. Invalid or missing signatures are 401 with zero writes
4. Scenario D - unknown events are acknowledged and ignored
5. Paddle and Stripe deliveries through the same reconciler

Usage:
    pytest tests/api/test_webhooks.py -v
"""

import json
import os
import sys

import pytest
from sqlalchemy import select

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from app.models import Report, Subscription
from conftest import (
    count_rows,
    create_account,
    create_analysis,
    lemonsqueezy_headers,
    lemonsqueezy_order,
    paddle_headers,
    stripe_headers,
)

LS_URL = "/v1/webhooks/lemonsqueezy"


async def table_counts(session) -> tuple[int, int]:
    return await count_rows(session, Report), await count_rows(session, Subscription)


# =============================================================================
# Lemon Squeezy
# =============================================================================


class TestLemonSqueezyWebhook:

    @pytest.mark.api
    async def test_order_created_scenario_a(self, client, db_session):
        await create_account(db_session, account_id="U1")
        await create_analysis(db_session, "A1")
        body = lemonsqueezy_order()

        response = await client.post(LS_URL, content=body, headers=lemonsqueezy_headers(body))

        assert response.status_code == 200
        assert response.json() == {"success": True, "event": "order_created", "email": "ana@example.com"}

        db_session.expire_all()
        reports = (await db_session.execute(select(Report))).scalars().all()
        assert len(reports) == 1
        assert reports[0].source_analysis_id == "A1"
        assert reports[0].payment_id == "PAY1"
        subscription = (await db_session.execute(select(Subscription))).scalar_one()
        assert subscription.email == "ana@example.com"
        assert subscription.status == "active"

    @pytest.mark.api
    async def test_replay_is_idempotent(self, client, db_session):
        await create_account(db_session, account_id="U1")
        await create_analysis(db_session, "A1")
        body = lemonsqueezy_order()

        first = await client.post(LS_URL, content=body, headers=lemonsqueezy_headers(body))
        second = await client.post(LS_URL, content=body, headers=lemonsqueezy_headers(body))

        assert first.status_code == second.status_code == 200
        assert await table_counts(db_session) == (1, 1)

    @pytest.mark.api
    async def test_invalid_signature_writes_nothing(self, client, db_session):
        await create_account(db_session, account_id="U1")
        await create_analysis(db_session, "A1")
        body = lemonsqueezy_order()

        response = await client.post(
            LS_URL, content=body, headers=lemonsqueezy_headers(body, secret="wrong-secret")
        )

        assert response.status_code == 401
        assert response.json()["success"] is False
        assert await table_counts(db_session) == (0, 0)

    @pytest.mark.api
    async def test_missing_signature_is_401(self, client, db_session):
        response = await client.post(LS_URL, content=lemonsqueezy_order())
        assert response.status_code == 401
        assert response.json() == {"success": False, "error": "Missing x-signature header."}

    @pytest.mark.api
    async def test_unknown_event_scenario_d(self, client, db_session):
        body = lemonsqueezy_order(event_name="affiliate_activated")
        response = await client.post(LS_URL, content=body, headers=lemonsqueezy_headers(body))

        assert response.status_code == 200
        assert response.json() == {"success": True, "ignored": True, "event": "affiliate_activated"}
        assert await table_counts(db_session) == (0, 0)

    @pytest.mark.api
    async def test_missing_email_is_400(self, client, db_session):
        body = json.dumps({
            "meta": {"event_name": "subscription_updated"},
            "data": {"id": "SUB1", "attributes": {"status": "active"}},
        }).encode()
        response = await client.post(LS_URL, content=body, headers=lemonsqueezy_headers(body))
        assert response.status_code == 400

    @pytest.mark.api
    async def test_unknown_account_is_404(self, client, db_session):
        await create_analysis(db_session, "A1")
        body = lemonsqueezy_order()
        response = await client.post(LS_URL, content=body, headers=lemonsqueezy_headers(body))
        assert response.status_code == 404
        assert await table_counts(db_session) == (0, 0)

    @pytest.mark.api
    async def test_missing_secret_is_500(self, client, settings):
        settings.lemonsqueezy_webhook_secret = None
        body = lemonsqueezy_order()
        response = await client.post(LS_URL, content=body, headers=lemonsqueezy_headers(body))
        assert response.status_code == 500

    @pytest.mark.api
    async def test_refund_cancels_subscription(self, client, db_session):
        await create_account(db_session, account_id="U1")
        await create_analysis(db_session, "A1")
        created = lemonsqueezy_order()
        refunded = lemonsqueezy_order(event_name="order_refunded", status="refunded")

        await client.post(LS_URL, content=created, headers=lemonsqueezy_headers(created))
        response = await client.post(LS_URL, content=refunded, headers=lemonsqueezy_headers(refunded))

        assert response.status_code == 200
        db_session.expire_all()
        subscription = (await db_session.execute(select(Subscription))).scalar_one()
        assert subscription.status == "cancelled"
        # Ownership records are append-only
        assert await count_rows(db_session, Report) == 1


# =============================================================================
# Other providers
# =============================================================================


class TestOtherProviders:

    @pytest.mark.api
    async def test_paddle_transaction_creates_report(self, client, db_session):
        await create_account(db_session, account_id="U1")
        await create_analysis(db_session, "A1")
        body = json.dumps({
            "event_id": "evt_1",
            "event_type": "transaction.completed",
            "data": {
                "id": "txn_1",
                "customer_id": "ctm_1",
                "status": "completed",
                "custom_data": {"email": "ana@example.com", "user_id": "U1", "analysis_id": "A1"},
            },
        }).encode()

        response = await client.post("/v1/webhooks/paddle", content=body, headers=paddle_headers(body))

        assert response.status_code == 200
        assert await table_counts(db_session) == (1, 1)

    @pytest.mark.api
    async def test_paddle_bad_signature(self, client, db_session):
        body = b'{"event_type": "transaction.completed", "data": {}}'
        response = await client.post(
            "/v1/webhooks/paddle", content=body, headers=paddle_headers(body, secret="nope")
        )
        assert response.status_code == 401
        assert await table_counts(db_session) == (0, 0)

    @pytest.mark.api
    async def test_stripe_subscription_update(self, client, db_session):
        body = json.dumps({
            "id": "evt_1",
            "type": "customer.subscription.updated",
            "data": {"object": {
                "id": "sub_1",
                "status": "trialing",
                "customer": "cus_1",
                "metadata": {"email": "ana@example.com"},
            }},
        }).encode()

        response = await client.post("/v1/webhooks/stripe", content=body, headers=stripe_headers(body))

        assert response.status_code == 200
        subscription = (await db_session.execute(select(Subscription))).scalar_one()
        assert subscription.status == "trialing"
        assert subscription.payment_provider == "stripe"

    @pytest.mark.api
    async def test_unknown_provider_is_404(self, client):
        response = await client.post("/v1/webhooks/gumroad", content=b"{}")
        assert response.status_code == 404
