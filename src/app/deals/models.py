"""Deal pipeline persistence models.

Eight SQLAlchemy models covering the deal lifecycle:
- DealModel: Investment opportunity moving through pipeline stages
- TimelineEventModel: Audit trail of notes, stage changes, uploads, memos
- DealStarModel: One star per (deal, user)
- MiniMemoModel: Investment memo with scores and diligence checklist
- MemoCommentModel: Discussion thread on a memo
- DealAssignmentModel: Team members assigned to a deal
- DocumentModel: Metadata of files attached to a deal
- ClosingScheduleEventModel: First/second/final close milestones
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    DateTime,
    Float,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from src.app.core.database import Base


class DealModel(Base):
    """Investment opportunity tracked through the pipeline."""

    __tablename__ = "deals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    description: Mapped[str | None] = mapped_column(
        Text, default="", server_default=text("''")
    )
    sector: Mapped[str | None] = mapped_column(
        String(100), default="", server_default=text("''")
    )
    stage: Mapped[str] = mapped_column(
        String(30),
        default="initial_review",
        server_default=text("'initial_review'"),
        index=True,
    )
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    target_return: Mapped[str | None] = mapped_column(String(50), nullable=True)
    score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    contact_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    tags: Mapped[list] = mapped_column(
        JSONB, default=list, server_default=text("'[]'::jsonb")
    )
    round: Mapped[str | None] = mapped_column(String(50), nullable=True)
    target_raise: Mapped[str | None] = mapped_column(String(50), nullable=True)
    valuation: Mapped[str | None] = mapped_column(String(50), nullable=True)
    lead_investor: Mapped[str | None] = mapped_column(String(200), nullable=True)
    projected_irr: Mapped[str | None] = mapped_column(String(50), nullable=True)
    projected_multiple: Mapped[str | None] = mapped_column(String(50), nullable=True)
    company_stage: Mapped[str | None] = mapped_column(String(50), nullable=True)
    created_by: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )


class TimelineEventModel(Base):
    """Entry on a deal's activity timeline."""

    __tablename__ = "timeline_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    deal_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("deals.id", ondelete="CASCADE"), nullable=False, index=True
    )
    event_type: Mapped[str] = mapped_column(String(30), nullable=False)
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[int] = mapped_column(Integer, nullable=False)
    metadata_json: Mapped[dict] = mapped_column(
        "metadata", JSONB, default=dict, server_default=text("'{}'::jsonb")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )


class DealStarModel(Base):
    """A user's star on a deal. At most one per (deal, user)."""

    __tablename__ = "deal_stars"
    __table_args__ = (
        UniqueConstraint("deal_id", "user_id", name="uq_deal_stars_deal_user"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    deal_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("deals.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )


class MiniMemoModel(Base):
    """Short investment memo written by one team member on a deal.

    score is the overall 1-10 conviction; the six *_score columns are the
    optional 1-10 sub-scores. gp_alignment_percentage and alignment_score
    are derived from gp_commitment / raise_amount when both are known.
    """

    __tablename__ = "mini_memos"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    deal_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("deals.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    thesis: Mapped[str] = mapped_column(Text, nullable=False)
    risks_and_mitigations: Mapped[str | None] = mapped_column(Text, nullable=True)
    pricing_consideration: Mapped[str | None] = mapped_column(Text, nullable=True)
    score: Mapped[int] = mapped_column(Integer, default=0, server_default=text("0"))
    market_risk_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    execution_risk_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    team_strength_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    product_fit_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    valuation_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    competitive_advantage_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    due_diligence_checklist: Mapped[dict] = mapped_column(
        JSONB, default=dict, server_default=text("'{}'::jsonb")
    )
    raise_amount: Mapped[float | None] = mapped_column(Numeric(14, 2), nullable=True)
    gp_commitment: Mapped[float | None] = mapped_column(Numeric(14, 2), nullable=True)
    gp_alignment_percentage: Mapped[float | None] = mapped_column(Float, nullable=True)
    alignment_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )


class MemoCommentModel(Base):
    __tablename__ = "memo_comments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    memo_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("mini_memos.id", ondelete="CASCADE"), nullable=False, index=True
    )
    deal_id: Mapped[int] = mapped_column(Integer, nullable=False)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )


class DealAssignmentModel(Base):
    __tablename__ = "deal_assignments"
    __table_args__ = (
        UniqueConstraint("deal_id", "user_id", name="uq_deal_assignments_deal_user"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    deal_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("deals.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )


class DocumentModel(Base):
    """Metadata of a file attached to a deal (content lives on disk)."""

    __tablename__ = "documents"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    deal_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("deals.id", ondelete="CASCADE"), nullable=False, index=True
    )
    file_name: Mapped[str] = mapped_column(String(500), nullable=False)
    file_type: Mapped[str] = mapped_column(String(200), nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False)
    file_path: Mapped[str] = mapped_column(String(1000), nullable=False)
    uploaded_by: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False
    )
    uploaded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    document_type: Mapped[str] = mapped_column(
        String(40), default="other", server_default=text("'other'")
    )
    metadata_json: Mapped[dict] = mapped_column(
        "metadata", JSONB, default=dict, server_default=text("'{}'::jsonb")
    )
    version: Mapped[int] = mapped_column(Integer, default=1, server_default=text("1"))


class ClosingScheduleEventModel(Base):
    """Closing milestone on a deal (first close, final close, extension...)."""

    __tablename__ = "closing_schedule_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    deal_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("deals.id", ondelete="CASCADE"), nullable=False, index=True
    )
    event_type: Mapped[str] = mapped_column(String(30), nullable=False)
    event_name: Mapped[str] = mapped_column(String(300), nullable=False)
    scheduled_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    actual_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    target_amount: Mapped[float | None] = mapped_column(Float, nullable=True)
    amount_type: Mapped[str | None] = mapped_column(
        String(20), default="percentage", server_default=text("'percentage'")
    )
    actual_amount: Mapped[float | None] = mapped_column(Float, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), default="scheduled", server_default=text("'scheduled'")
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )
