"""Fund-side persistence models.

Five SQLAlchemy models for the capital ledger:
- FundModel: Investment vehicle; aum is maintained as the fund's called capital
- FundAllocationModel: Commitment of a fund to a deal, with performance fields
- CapitalCallModel: Draw-down request against an allocation
- CapitalCallPaymentModel: Individual payment recorded against a capital call
- DistributionModel: Cash returned to the fund from an allocation

Capital calls, payments and distributions cascade when their parent
allocation is deleted.
"""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from src.app.core.database import Base


class FundModel(Base):
    __tablename__ = "funds"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    aum: Mapped[float] = mapped_column(Float, default=0.0, server_default=text("0"))
    vintage: Mapped[int | None] = mapped_column(Integer, nullable=True)
    distribution_rate: Mapped[float | None] = mapped_column(
        Float, default=0.3, server_default=text("0.3")
    )
    appreciation_rate: Mapped[float | None] = mapped_column(
        Float, default=0.88, server_default=text("0.88")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )


class FundAllocationModel(Base):
    """A fund's commitment to a deal.

    status follows committed -> partially_paid -> funded as capital calls
    are paid; written_off and unfunded are only ever set manually.
    portfolio_weight is the allocation's share (in percent) of the fund's
    non-written-off commitments.
    """

    __tablename__ = "fund_allocations"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_fund_allocations_amount_positive"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    fund_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("funds.id", ondelete="CASCADE"), nullable=False, index=True
    )
    deal_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("deals.id", ondelete="CASCADE"), nullable=False, index=True
    )
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    amount_type: Mapped[str] = mapped_column(
        String(20), default="dollar", server_default=text("'dollar'")
    )
    security_type: Mapped[str] = mapped_column(String(100), nullable=False)
    allocation_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), default="committed", server_default=text("'committed'")
    )
    portfolio_weight: Mapped[float] = mapped_column(Float, default=0.0, server_default=text("0"))
    interest_paid: Mapped[float] = mapped_column(Float, default=0.0, server_default=text("0"))
    distribution_paid: Mapped[float] = mapped_column(Float, default=0.0, server_default=text("0"))
    total_returned: Mapped[float] = mapped_column(Float, default=0.0, server_default=text("0"))
    market_value: Mapped[float] = mapped_column(Float, default=0.0, server_default=text("0"))
    moic: Mapped[float] = mapped_column(Float, default=1.0, server_default=text("1"))
    irr: Mapped[float] = mapped_column(Float, default=0.0, server_default=text("0"))
    paid_amount: Mapped[float] = mapped_column(Float, default=0.0, server_default=text("0"))


class CapitalCallModel(Base):
    """Draw-down against an allocation.

    outstanding_amount is kept equal to max(0, call_amount - paid_amount),
    except for defaulted calls where it is zeroed.
    """

    __tablename__ = "capital_calls"
    __table_args__ = (
        CheckConstraint(
            "call_pct IS NULL OR (call_pct >= 0 AND call_pct <= 100)",
            name="ck_capital_calls_call_pct_range",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    allocation_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("fund_allocations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    call_amount: Mapped[float] = mapped_column(Float, nullable=False)
    amount_type: Mapped[str] = mapped_column(
        String(20), default="dollar", server_default=text("'dollar'")
    )
    call_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    due_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    paid_amount: Mapped[float] = mapped_column(Float, default=0.0, server_default=text("0"))
    paid_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    outstanding_amount: Mapped[float] = mapped_column(Float, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default="scheduled", server_default=text("'scheduled'")
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    call_pct: Mapped[float | None] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )


class CapitalCallPaymentModel(Base):
    __tablename__ = "capital_call_payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    capital_call_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("capital_calls.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    payment_amount: Mapped[float] = mapped_column(Float, nullable=False)
    payment_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    payment_type: Mapped[str] = mapped_column(
        String(20), default="wire", server_default=text("'wire'")
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )


class DistributionModel(Base):
    __tablename__ = "distributions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    allocation_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("fund_allocations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    distribution_date: Mapped[date] = mapped_column(Date, nullable=False)
    amount: Mapped[float] = mapped_column(Numeric(14, 2), nullable=False)
    distribution_type: Mapped[str] = mapped_column(
        String(30), default="dividend", server_default=text("'dividend'")
    )
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )
