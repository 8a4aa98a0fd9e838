"""
JobSafe - Database Schema

Accounts, free analyses, and the premium ownership tables
(subscriptions, reports, generated artifacts).
"""

from datetime import datetime, timezone
from typing import Any, Optional
from uuid import uuid4

from sqlalchemy import (
    JSON,
    DateTime,
    Index,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def new_id() -> str:
    return str(uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


# =============================================================================
# ACCOUNTS & ANALYSES
# =============================================================================


class Account(Base):
    """A registered user. Email is stored lower-cased and trimmed."""

    __tablename__ = "accounts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(100), nullable=False)  # bcrypt

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )


class Analysis(Base):
    """
    A free-tier scoring result.

    Anonymous at creation. An account becomes attached to an analysis only
    through a Report (purchase) or a Generated Artifact (premium access).
    """

    __tablename__ = "analyses"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    profile_text: Mapped[str] = mapped_column(Text, nullable=False)
    result: Mapped[dict] = mapped_column(JSONType, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )


# =============================================================================
# OWNERSHIP & BILLING TABLES
# =============================================================================


class Subscription(Base):
    """
    Current payment status for an account email.

    One row per email; written only by the webhook reconciler
    (last event wins).
    """

    __tablename__ = "subscriptions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)

    # active, cancelled, past_due, trialing
    status: Mapped[str] = mapped_column(String(20), default="active", nullable=False)
    current_period_end: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    # Provider tag: lemonsqueezy, paddle, stripe
    payment_provider: Mapped[str] = mapped_column(String(30), nullable=False)

    # Opaque provider identifiers
    provider_customer_id: Mapped[Optional[str]] = mapped_column(String(255))
    provider_subscription_id: Mapped[Optional[str]] = mapped_column(String(255))
    provider_order_id: Mapped[Optional[str]] = mapped_column(String(255))
    provider_order_identifier: Mapped[Optional[str]] = mapped_column(String(255))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    __table_args__ = (
        Index("ix_subscriptions_provider_subscription_id", "provider_subscription_id"),
    )


class Report(Base):
    """
    Proof of a completed one-time purchase for one analysis.

    Exactly one row per payment id. The same analysis may be bought more
    than once; any matching row grants ownership.
    """

    __tablename__ = "reports"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    user_email: Mapped[str] = mapped_column(String(255), nullable=False)
    source_analysis_id: Mapped[str] = mapped_column(String(36), nullable=False)

    # Frozen copy of Analysis.result at purchase time
    report_data: Mapped[dict] = mapped_column(JSONType, nullable=False)

    payment_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    payment_provider: Mapped[Optional[str]] = mapped_column(String(30))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        Index("ix_reports_user_id_created", "user_id", "created_at"),
        Index("ix_reports_user_email_created", "user_email", "created_at"),
        Index("ix_reports_source_analysis_id", "source_analysis_id"),
    )


class GeneratedArtifact(Base):
    """
    Cached output of a premium generation call.

    Kinds: protection_plan, salary_projection, market_comparison, ai_simulation.
    """

    __tablename__ = "generated_artifacts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_key: Mapped[str] = mapped_column(String(255), nullable=False)
    analysis_id: Mapped[str] = mapped_column(String(36), nullable=False)
    kind: Mapped[str] = mapped_column(String(40), nullable=False)

    payload: Mapped[Any] = mapped_column(JSONType, nullable=False)
    # Request inputs that shaped the output (e.g. salary + country)
    request_params: Mapped[Optional[dict]] = mapped_column(JSONType)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint(
            "user_key", "analysis_id", "kind", name="uq_generated_artifacts_key"
        ),
    )
