"""Initial schema.

Revision ID: 001
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # SEARCH_PROFILES
    op.create_table(
        "search_profiles",
        sa.Column("id", postgresql.UUID, primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("user_id", sa.String(100), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("industry", sa.String(100)),
        sa.Column("location", sa.String(255)),
        sa.Column("keywords", postgresql.JSONB, server_default="[]"),
        sa.Column("excluded_keywords", postgresql.JSONB, server_default="[]"),
        sa.Column("sources", postgresql.JSONB, server_default="[]"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()")),
    )
    op.create_index("ix_search_profiles_user_id", "search_profiles", ["user_id"])

    # SEARCH_RUNS (append-only provenance)
    op.create_table(
        "search_runs",
        sa.Column("id", postgresql.UUID, primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column(
            "search_profile_id", postgresql.UUID, sa.ForeignKey("search_profiles.id", ondelete="SET NULL")
        ),
        sa.Column("user_id", sa.String(100), nullable=False),
        sa.Column("run_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("window_days", sa.Integer, nullable=False),
        sa.Column("sources_searched", postgresql.JSONB, server_default="[]"),
        sa.Column("signals_found", sa.Integer, default=0),
        sa.Column("new_signals", sa.Integer, default=0),
        sa.Column("errors", postgresql.JSONB, server_default="[]"),
        sa.Column("status", sa.String(30), nullable=False),
    )
    op.create_index("ix_search_runs_user_run_at", "search_runs", ["user_id", "run_at"])

    # SIGNALS
    op.create_table(
        "signals",
        sa.Column("id", postgresql.UUID, primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("user_id", sa.String(100), nullable=False),
        sa.Column("search_run_id", postgresql.UUID, sa.ForeignKey("search_runs.id", ondelete="SET NULL")),
        sa.Column("identity_key", sa.String(1200), nullable=False),
        sa.Column("company_name", sa.String(500), nullable=False),
        sa.Column("company_domain", sa.String(255)),
        sa.Column("signal_type", sa.String(50), nullable=False),
        sa.Column("signal_title", sa.String(500), nullable=False),
        sa.Column("signal_detail", sa.Text),
        sa.Column("signal_url", sa.String(1000)),
        sa.Column("location", sa.String(255)),
        sa.Column("industry", sa.String(100)),
        sa.Column("source_type", sa.String(50), nullable=False),
        sa.Column("detected_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_new", sa.Boolean, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()")),
        sa.UniqueConstraint("user_id", "identity_key"),  # Storage-level dedup
    )
    op.create_index("ix_signals_user_detected_at", "signals", ["user_id", "detected_at"])

    # SIGNAL_CONTACTS (written by enrichment)
    op.create_table(
        "signal_contacts",
        sa.Column("id", postgresql.UUID, primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column(
            "signal_id", postgresql.UUID, sa.ForeignKey("signals.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("full_name", sa.String(255)),
        sa.Column("job_title", sa.String(255)),
        sa.Column("seniority", sa.String(50)),
        sa.Column("email", sa.String(255)),
        sa.Column("email_status", sa.String(50)),
        sa.Column("phone", sa.String(50)),
        sa.Column("linkedin_url", sa.String(500)),
        sa.Column("is_primary", sa.Boolean, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()")),
    )
    op.create_index("ix_signal_contacts_signal_id", "signal_contacts", ["signal_id"])


def downgrade() -> None:
    op.drop_index("ix_signal_contacts_signal_id")
    op.drop_table("signal_contacts")
    op.drop_index("ix_signals_user_detected_at")
    op.drop_table("signals")
    op.drop_index("ix_search_runs_user_run_at")
    op.drop_table("search_runs")
    op.drop_index("ix_search_profiles_user_id")
    op.drop_table("search_profiles")
