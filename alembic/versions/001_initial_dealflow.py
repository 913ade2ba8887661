"""Initial schema: users, deals pipeline, funds and capital ledger.

Revision ID: 001_initial_dealflow
Revises:
Create Date: 2026-10-19

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

# revision identifiers, used by Alembic.
revision: str = "001_initial_dealflow"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps(updated: bool = True) -> list[sa.Column]:
    columns = [sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now())]
    if updated:
        columns.append(
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now())
        )
    return columns


def upgrade() -> None:
    # ── Users ───────────────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("username", sa.String(100), nullable=False, unique=True),
        sa.Column("hashed_password", sa.String(255), nullable=False),
        sa.Column("full_name", sa.String(200), nullable=False),
        sa.Column("initials", sa.String(4), nullable=False),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("role", sa.String(20), server_default=sa.text("'analyst'")),
        sa.Column("avatar_color", sa.String(20), server_default=sa.text("'#0E4DA4'")),
        sa.Column("last_active", sa.DateTime(timezone=True), server_default=sa.func.now()),
        *_timestamps(updated=False),
    )

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("type", sa.String(20), server_default=sa.text("'system'")),
        sa.Column("related_id", sa.Integer(), nullable=True),
        sa.Column("is_read", sa.Boolean(), server_default=sa.text("false")),
        *_timestamps(updated=False),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])

    # ── Deals ───────────────────────────────────────────────────────────────
    op.create_table(
        "deals",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(300), nullable=False),
        sa.Column("description", sa.Text(), server_default=sa.text("''")),
        sa.Column("sector", sa.String(100), server_default=sa.text("''")),
        sa.Column("stage", sa.String(30), server_default=sa.text("'initial_review'")),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("target_return", sa.String(50), nullable=True),
        sa.Column("score", sa.Integer(), nullable=True),
        sa.Column("contact_email", sa.String(255), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("tags", JSONB(), server_default=sa.text("'[]'::jsonb")),
        sa.Column("round", sa.String(50), nullable=True),
        sa.Column("target_raise", sa.String(50), nullable=True),
        sa.Column("valuation", sa.String(50), nullable=True),
        sa.Column("lead_investor", sa.String(200), nullable=True),
        sa.Column("projected_irr", sa.String(50), nullable=True),
        sa.Column("projected_multiple", sa.String(50), nullable=True),
        sa.Column("company_stage", sa.String(50), nullable=True),
        sa.Column(
            "created_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        *_timestamps(),
    )
    op.create_index("ix_deals_stage", "deals", ["stage"])

    op.create_table(
        "timeline_events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "deal_id", sa.Integer(), sa.ForeignKey("deals.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("event_type", sa.String(30), nullable=False),
        sa.Column("content", sa.Text(), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=False),
        sa.Column("metadata", JSONB(), server_default=sa.text("'{}'::jsonb")),
        *_timestamps(updated=False),
    )
    op.create_index("ix_timeline_events_deal_id", "timeline_events", ["deal_id"])

    op.create_table(
        "deal_stars",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "deal_id", sa.Integer(), sa.ForeignKey("deals.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column(
            "user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
        ),
        *_timestamps(updated=False),
        sa.UniqueConstraint("deal_id", "user_id", name="uq_deal_stars_deal_user"),
    )

    op.create_table(
        "mini_memos",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "deal_id", sa.Integer(), sa.ForeignKey("deals.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("thesis", sa.Text(), nullable=False),
        sa.Column("risks_and_mitigations", sa.Text(), nullable=True),
        sa.Column("pricing_consideration", sa.Text(), nullable=True),
        sa.Column("score", sa.Integer(), server_default=sa.text("0")),
        sa.Column("market_risk_score", sa.Integer(), nullable=True),
        sa.Column("execution_risk_score", sa.Integer(), nullable=True),
        sa.Column("team_strength_score", sa.Integer(), nullable=True),
        sa.Column("product_fit_score", sa.Integer(), nullable=True),
        sa.Column("valuation_score", sa.Integer(), nullable=True),
        sa.Column("competitive_advantage_score", sa.Integer(), nullable=True),
        sa.Column("due_diligence_checklist", JSONB(), server_default=sa.text("'{}'::jsonb")),
        sa.Column("raise_amount", sa.Numeric(14, 2), nullable=True),
        sa.Column("gp_commitment", sa.Numeric(14, 2), nullable=True),
        sa.Column("gp_alignment_percentage", sa.Float(), nullable=True),
        sa.Column("alignment_score", sa.Integer(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_mini_memos_deal_id", "mini_memos", ["deal_id"])

    op.create_table(
        "memo_comments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "memo_id", sa.Integer(), sa.ForeignKey("mini_memos.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("deal_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        *_timestamps(updated=False),
    )
    op.create_index("ix_memo_comments_memo_id", "memo_comments", ["memo_id"])

    op.create_table(
        "deal_assignments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "deal_id", sa.Integer(), sa.ForeignKey("deals.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column(
            "user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
        ),
        *_timestamps(updated=False),
        sa.UniqueConstraint("deal_id", "user_id", name="uq_deal_assignments_deal_user"),
    )

    op.create_table(
        "documents",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "deal_id", sa.Integer(), sa.ForeignKey("deals.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("file_name", sa.String(500), nullable=False),
        sa.Column("file_type", sa.String(200), nullable=False),
        sa.Column("file_size", sa.Integer(), nullable=False),
        sa.Column("file_path", sa.String(1000), nullable=False),
        sa.Column(
            "uploaded_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("uploaded_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("document_type", sa.String(40), server_default=sa.text("'other'")),
        sa.Column("metadata", JSONB(), server_default=sa.text("'{}'::jsonb")),
        sa.Column("version", sa.Integer(), server_default=sa.text("1")),
    )
    op.create_index("ix_documents_deal_id", "documents", ["deal_id"])

    op.create_table(
        "closing_schedule_events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "deal_id", sa.Integer(), sa.ForeignKey("deals.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("event_type", sa.String(30), nullable=False),
        sa.Column("event_name", sa.String(300), nullable=False),
        sa.Column("scheduled_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("actual_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("target_amount", sa.Float(), nullable=True),
        sa.Column("amount_type", sa.String(20), server_default=sa.text("'percentage'")),
        sa.Column("actual_amount", sa.Float(), nullable=True),
        sa.Column("status", sa.String(20), server_default=sa.text("'scheduled'")),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column(
            "created_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        *_timestamps(),
    )
    op.create_index(
        "ix_closing_schedule_events_deal_id", "closing_schedule_events", ["deal_id"]
    )

    # ── Funds ───────────────────────────────────────────────────────────────
    op.create_table(
        "funds",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(300), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("aum", sa.Float(), server_default=sa.text("0")),
        sa.Column("vintage", sa.Integer(), nullable=True),
        sa.Column("distribution_rate", sa.Float(), server_default=sa.text("0.3")),
        sa.Column("appreciation_rate", sa.Float(), server_default=sa.text("0.88")),
        *_timestamps(updated=False),
    )

    op.create_table(
        "fund_allocations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "fund_id", sa.Integer(), sa.ForeignKey("funds.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column(
            "deal_id", sa.Integer(), sa.ForeignKey("deals.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("amount_type", sa.String(20), server_default=sa.text("'dollar'")),
        sa.Column("security_type", sa.String(100), nullable=False),
        sa.Column("allocation_date", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), server_default=sa.text("'committed'")),
        sa.Column("portfolio_weight", sa.Float(), server_default=sa.text("0")),
        sa.Column("interest_paid", sa.Float(), server_default=sa.text("0")),
        sa.Column("distribution_paid", sa.Float(), server_default=sa.text("0")),
        sa.Column("total_returned", sa.Float(), server_default=sa.text("0")),
        sa.Column("market_value", sa.Float(), server_default=sa.text("0")),
        sa.Column("moic", sa.Float(), server_default=sa.text("1")),
        sa.Column("irr", sa.Float(), server_default=sa.text("0")),
        sa.Column("paid_amount", sa.Float(), server_default=sa.text("0")),
        sa.CheckConstraint("amount > 0", name="ck_fund_allocations_amount_positive"),
    )
    op.create_index("ix_fund_allocations_fund_id", "fund_allocations", ["fund_id"])
    op.create_index("ix_fund_allocations_deal_id", "fund_allocations", ["deal_id"])

    op.create_table(
        "capital_calls",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "allocation_id", sa.Integer(),
            sa.ForeignKey("fund_allocations.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("call_amount", sa.Float(), nullable=False),
        sa.Column("amount_type", sa.String(20), server_default=sa.text("'dollar'")),
        sa.Column(
            "call_date", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("paid_amount", sa.Float(), server_default=sa.text("0")),
        sa.Column("paid_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("outstanding_amount", sa.Float(), nullable=False),
        sa.Column("status", sa.String(20), server_default=sa.text("'scheduled'")),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("call_pct", sa.Float(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "call_pct IS NULL OR (call_pct >= 0 AND call_pct <= 100)",
            name="ck_capital_calls_call_pct_range",
        ),
    )
    op.create_index("ix_capital_calls_allocation_id", "capital_calls", ["allocation_id"])
    op.create_index("ix_capital_calls_due_date", "capital_calls", ["due_date"])

    op.create_table(
        "capital_call_payments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "capital_call_id", sa.Integer(),
            sa.ForeignKey("capital_calls.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("payment_amount", sa.Float(), nullable=False),
        sa.Column(
            "payment_date", sa.DateTime(timezone=True), nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("payment_type", sa.String(20), server_default=sa.text("'wire'")),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        *_timestamps(updated=False),
    )
    op.create_index(
        "ix_capital_call_payments_capital_call_id", "capital_call_payments", ["capital_call_id"]
    )

    op.create_table(
        "distributions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "allocation_id", sa.Integer(),
            sa.ForeignKey("fund_allocations.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("distribution_date", sa.Date(), nullable=False),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("distribution_type", sa.String(30), server_default=sa.text("'dividend'")),
        sa.Column("description", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_distributions_allocation_id", "distributions", ["allocation_id"])


def downgrade() -> None:
    for table in (
        "distributions",
        "capital_call_payments",
        "capital_calls",
        "fund_allocations",
        "funds",
        "closing_schedule_events",
        "documents",
        "deal_assignments",
        "memo_comments",
        "mini_memos",
        "deal_stars",
        "timeline_events",
        "deals",
        "notifications",
        "users",
    ):
        op.drop_table(table)
