"""Initial schema - accounts, analyses and premium ownership tables

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-17

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps(with_updated: bool = True) -> list:
    columns = [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]
    if with_updated:
        columns.append(
            sa.Column(
                "updated_at",
                sa.DateTime(timezone=True),
                server_default=sa.text("now()"),
                nullable=False,
            )
        )
    return columns


def upgrade() -> None:
    # ==========================================================================
    # ACCOUNTS & ANALYSES
    # ==========================================================================

    op.create_table(
        "accounts",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(100), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )

    op.create_table(
        "analyses",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("profile_text", sa.Text(), nullable=False),
        sa.Column("result", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        *_timestamps(with_updated=False),
        sa.PrimaryKeyConstraint("id"),
    )

    # ==========================================================================
    # OWNERSHIP & BILLING
    # ==========================================================================

    op.create_table(
        "subscriptions",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("current_period_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payment_provider", sa.String(30), nullable=False),
        sa.Column("provider_customer_id", sa.String(255), nullable=True),
        sa.Column("provider_subscription_id", sa.String(255), nullable=True),
        sa.Column("provider_order_id", sa.String(255), nullable=True),
        sa.Column("provider_order_identifier", sa.String(255), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )
    op.create_index(
        "ix_subscriptions_provider_subscription_id",
        "subscriptions",
        ["provider_subscription_id"],
    )

    op.create_table(
        "reports",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("user_email", sa.String(255), nullable=False),
        sa.Column("source_analysis_id", sa.String(36), nullable=False),
        sa.Column("report_data", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("payment_id", sa.String(255), nullable=False),
        sa.Column("payment_provider", sa.String(30), nullable=True),
        *_timestamps(with_updated=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("payment_id"),
    )
    op.create_index("ix_reports_user_id_created", "reports", ["user_id", "created_at"])
    op.create_index("ix_reports_user_email_created", "reports", ["user_email", "created_at"])
    op.create_index("ix_reports_source_analysis_id", "reports", ["source_analysis_id"])

    op.create_table(
        "generated_artifacts",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("user_key", sa.String(255), nullable=False),
        sa.Column("analysis_id", sa.String(36), nullable=False),
        sa.Column("kind", sa.String(40), nullable=False),
        sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("request_params", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        *_timestamps(with_updated=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "user_key", "analysis_id", "kind", name="uq_generated_artifacts_key"
        ),
    )


def downgrade() -> None:
    op.drop_table("generated_artifacts")

    op.drop_index("ix_reports_source_analysis_id", table_name="reports")
    op.drop_index("ix_reports_user_email_created", table_name="reports")
    op.drop_index("ix_reports_user_id_created", table_name="reports")
    op.drop_table("reports")

    op.drop_index("ix_subscriptions_provider_subscription_id", table_name="subscriptions")
    op.drop_table("subscriptions")

    op.drop_table("analyses")

    op.drop_table("accounts")
