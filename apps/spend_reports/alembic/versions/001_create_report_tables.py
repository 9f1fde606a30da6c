"""Create card usage and period report tables."""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "001_create_report_tables"
down_revision = None
branch_labels = None
depends_on = None


report_granularity_enum = sa.Enum(
    "daily", "weekly", "monthly", name="report_granularity"
)


def upgrade() -> None:
    """Apply schema upgrades."""
    bind = op.get_bind()
    report_granularity_enum.create(bind, checkfirst=True)

    op.create_table(
        "card_usages",
        sa.Column(
            "id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False
        ),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("where_to_use", sa.String(200), nullable=False),
        sa.Column("card_name", sa.String(120), nullable=False),
        sa.Column(
            "is_active",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("true"),
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
    )
    op.create_index(
        "ix_card_usages_occurred_at", "card_usages", ["occurred_at"], unique=False
    )

    op.create_table(
        "period_reports",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("path", sa.String(64), nullable=False),
        sa.Column(
            "granularity",
            postgresql.ENUM(
                "daily",
                "weekly",
                "monthly",
                name="report_granularity",
                create_type=False,
            ),
            nullable=False,
        ),
        sa.Column("year", sa.SmallInteger(), nullable=False),
        sa.Column("month", sa.SmallInteger(), nullable=False),
        sa.Column("day", sa.SmallInteger(), nullable=True),
        sa.Column("term", sa.SmallInteger(), nullable=True),
        sa.Column("period_start", sa.Date(), nullable=False),
        sa.Column("period_end", sa.Date(), nullable=False),
        sa.Column("total_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("total_count", sa.Integer(), nullable=False),
        sa.Column(
            "document_ids",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column(
            "has_notified",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("false"),
        ),
        sa.Column(
            "has_notified_level1",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("false"),
        ),
        sa.Column(
            "has_notified_level2",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("false"),
        ),
        sa.Column(
            "has_notified_level3",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("false"),
        ),
        sa.Column(
            "has_report_sent",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("false"),
        ),
        sa.Column(
            "version", sa.Integer(), nullable=False, server_default=sa.text("1")
        ),
        sa.Column("last_updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_updated_by", sa.String(120), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.CheckConstraint("total_count >= 0", name="ck_period_reports_count_positive"),
        sa.CheckConstraint("version > 0", name="ck_period_reports_version_positive"),
        sa.CheckConstraint(
            "period_end >= period_start", name="ck_period_reports_bounds_valid"
        ),
        sa.UniqueConstraint("path", name="uq_period_reports_path"),
    )
    op.create_index(
        "ix_period_reports_month",
        "period_reports",
        ["granularity", "year", "month"],
        unique=False,
    )


def downgrade() -> None:
    """Revert schema upgrades."""
    op.drop_index("ix_period_reports_month", table_name="period_reports")
    op.drop_table("period_reports")
    op.drop_index("ix_card_usages_occurred_at", table_name="card_usages")
    op.drop_table("card_usages")

    bind = op.get_bind()
    report_granularity_enum.drop(bind, checkfirst=True)
