"""Pydantic schemas for funds, allocations, capital calls and distributions.

Defines all structured types for the fund side of the system:
- Enums: AmountType, AllocationStatus, CapitalCallStatus, PaymentType,
  DistributionType, CallSchedule, CallFrequency
- Funds: FundCreate/Update/Read, FundMetrics
- Allocations: AllocationCreate/Update/Read, AllocationPayment, AllocationMetrics
- Capital calls: CapitalCallCreate/Update/Read, PaymentCreate/Read, CapitalCallSummary
- Distributions: DistributionCreate/Update/Read
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field

MAX_ALLOCATION_AMOUNT = 1_000_000_000


# ── Enums ───────────────────────────────────────────────────────────────────


class AmountType(str, Enum):
    PERCENTAGE = "percentage"
    DOLLAR = "dollar"


class AllocationStatus(str, Enum):
    COMMITTED = "committed"
    FUNDED = "funded"
    UNFUNDED = "unfunded"
    PARTIALLY_PAID = "partially_paid"
    WRITTEN_OFF = "written_off"


class CapitalCallStatus(str, Enum):
    SCHEDULED = "scheduled"
    CALLED = "called"
    PARTIAL = "partial"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"
    DEFAULTED = "defaulted"
    OVERDUE = "overdue"


class PaymentType(str, Enum):
    WIRE = "wire"
    CHECK = "check"
    ACH = "ach"
    OTHER = "other"


class DistributionType(str, Enum):
    DIVIDEND = "dividend"
    CAPITAL_GAIN = "capital_gain"
    RETURN_OF_CAPITAL = "return_of_capital"
    LIQUIDATION = "liquidation"
    OTHER = "other"


class CallSchedule(str, Enum):
    """How an allocation's commitment is drawn down."""

    NONE = "none"
    SINGLE = "single"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    BIANNUAL = "biannual"
    ANNUAL = "annual"
    CUSTOM = "custom"


class CallFrequency(str, Enum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    BIANNUAL = "biannual"
    ANNUAL = "annual"


def _current_year() -> int:
    return datetime.now(timezone.utc).year


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Funds ───────────────────────────────────────────────────────────────────


class FundCreate(BaseModel):
    name: str = Field(min_length=1, max_length=300)
    description: str | None = None
    vintage: int | None = Field(default_factory=_current_year, ge=1900, le=2200)
    distribution_rate: float = Field(default=0.3, ge=0)
    appreciation_rate: float = Field(default=0.88, ge=0)


class FundUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=300)
    description: str | None = None
    vintage: int | None = Field(default=None, ge=1900, le=2200)
    distribution_rate: float | None = Field(default=None, ge=0)
    appreciation_rate: float | None = Field(default=None, ge=0)
    aum: float | None = Field(default=None, ge=0)


class FundRead(BaseModel):
    id: int
    name: str
    description: str | None = None
    aum: float = 0.0
    vintage: int | None = None
    distribution_rate: float | None = 0.3
    appreciation_rate: float | None = 0.88
    created_at: datetime | None = None


class FundMetrics(BaseModel):
    """Capital figures derived from a fund's allocations and capital calls."""

    committed_capital: float = 0.0
    called_capital: float = 0.0
    uncalled_capital: float = 0.0
    total_paid: float = 0.0
    total_distributions: float = 0.0
    moic: float = 1.0
    dpi: float = 0.0
    tvpi: float = 0.0
    allocation_count: int = 0


# ── Allocations ─────────────────────────────────────────────────────────────


class AllocationCreate(BaseModel):
    """Allocation request including the capital call schedule to generate."""

    fund_id: int
    deal_id: int
    amount: float = Field(gt=0, le=MAX_ALLOCATION_AMOUNT)
    amount_type: AmountType = AmountType.DOLLAR
    security_type: str = Field(min_length=1, max_length=100)
    allocation_date: datetime = Field(default_factory=_utcnow)
    notes: str | None = None
    status: AllocationStatus = AllocationStatus.COMMITTED

    capital_call_schedule: CallSchedule = CallSchedule.NONE
    call_frequency: CallFrequency | None = None
    call_count: int = Field(default=1, ge=1, le=120)
    first_call_date: datetime | None = None
    call_amount_type: AmountType = AmountType.PERCENTAGE
    call_percentage: float = Field(default=100.0, gt=0, le=100)
    call_dollar_amount: float = Field(default=0.0, ge=0)


class AllocationUpdate(BaseModel):
    """Partial allocation update; also used internally for derived fields."""

    amount: float | None = Field(default=None, gt=0, le=MAX_ALLOCATION_AMOUNT)
    security_type: str | None = Field(default=None, min_length=1, max_length=100)
    allocation_date: datetime | None = None
    notes: str | None = None
    status: AllocationStatus | None = None
    portfolio_weight: float | None = None
    interest_paid: float | None = Field(default=None, ge=0)
    distribution_paid: float | None = Field(default=None, ge=0)
    total_returned: float | None = Field(default=None, ge=0)
    market_value: float | None = Field(default=None, ge=0)
    moic: float | None = None
    irr: float | None = None
    paid_amount: float | None = Field(default=None, ge=0)


class AllocationRead(BaseModel):
    id: int
    fund_id: int
    deal_id: int
    amount: float
    amount_type: str = AmountType.DOLLAR.value
    security_type: str
    allocation_date: datetime | None = None
    notes: str | None = None
    status: str = AllocationStatus.COMMITTED.value
    portfolio_weight: float = 0.0
    interest_paid: float = 0.0
    distribution_paid: float = 0.0
    total_returned: float = 0.0
    market_value: float = 0.0
    moic: float = 1.0
    irr: float = 0.0
    paid_amount: float = 0.0


class AllocationPayment(BaseModel):
    amount: float
    payment_type: PaymentType = PaymentType.WIRE
    payment_date: datetime | None = None
    notes: str | None = None


class AllocationMetrics(BaseModel):
    total_invested: float = 0.0
    current_value: float = 0.0
    distributions: float = 0.0
    total_called: float = 0.0
    total_paid: float = 0.0
    moic: float = 1.0
    unrealized: float = 0.0


# ── Capital Calls ───────────────────────────────────────────────────────────


class CapitalCallCreate(BaseModel):
    allocation_id: int
    call_amount: float = Field(gt=0)
    amount_type: AmountType = AmountType.DOLLAR
    call_date: datetime
    due_date: datetime
    paid_amount: float = Field(default=0.0, ge=0)
    paid_date: datetime | None = None
    status: CapitalCallStatus = CapitalCallStatus.CALLED
    notes: str | None = None
    call_pct: float | None = Field(default=None, ge=0, le=100)


class CapitalCallUpdate(BaseModel):
    """Internal partial update; outstanding_amount is always recomputed by callers."""

    call_amount: float | None = Field(default=None, gt=0)
    call_date: datetime | None = None
    due_date: datetime | None = None
    paid_amount: float | None = Field(default=None, ge=0)
    paid_date: datetime | None = None
    outstanding_amount: float | None = Field(default=None, ge=0)
    status: CapitalCallStatus | None = None
    notes: str | None = None


class CapitalCallRead(BaseModel):
    id: int
    allocation_id: int
    call_amount: float
    amount_type: str = AmountType.DOLLAR.value
    call_date: datetime
    due_date: datetime
    paid_amount: float = 0.0
    paid_date: datetime | None = None
    outstanding_amount: float = 0.0
    status: str = CapitalCallStatus.SCHEDULED.value
    notes: str | None = None
    call_pct: float | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class CapitalCallStatusUpdate(BaseModel):
    status: CapitalCallStatus
    paid_amount: float | None = Field(default=None, ge=0)


class CapitalCallDatesUpdate(BaseModel):
    call_date: datetime
    due_date: datetime


class PaymentCreate(BaseModel):
    payment_amount: float = Field(gt=0)
    payment_date: datetime | None = None
    payment_type: PaymentType = PaymentType.WIRE
    notes: str | None = None


class PaymentRead(BaseModel):
    id: int
    capital_call_id: int
    payment_amount: float
    payment_date: datetime
    payment_type: str = PaymentType.WIRE.value
    notes: str | None = None
    created_by: int
    created_at: datetime | None = None


class CapitalCallSummary(BaseModel):
    total_calls: int = 0
    total_amount: float = 0.0
    paid_amount: float = 0.0
    pending_amount: float = 0.0
    overdue_amount: float = 0.0


# ── Distributions ───────────────────────────────────────────────────────────


class DistributionCreate(BaseModel):
    allocation_id: int
    distribution_date: date
    amount: float = Field(gt=0)
    distribution_type: DistributionType = DistributionType.DIVIDEND
    description: str | None = None


class DistributionUpdate(BaseModel):
    distribution_date: date | None = None
    amount: float | None = Field(default=None, gt=0)
    distribution_type: DistributionType | None = None
    description: str | None = None


class DistributionRead(BaseModel):
    id: int
    allocation_id: int
    distribution_date: date
    amount: float
    distribution_type: str = DistributionType.DIVIDEND.value
    description: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


# ── Views ───────────────────────────────────────────────────────────────────


class FundSummary(FundRead):
    committed_capital: float = 0.0
    called_capital: float = 0.0
    uncalled_capital: float = 0.0
    allocation_count: int = 0


class FundDetail(BaseModel):
    fund: FundRead
    metrics: FundMetrics
    allocations: list[AllocationRead] = Field(default_factory=list)


class FundDeletionPreview(BaseModel):
    fund_id: int
    fund_name: str
    allocation_count: int = 0
    capital_call_count: int = 0
    committed_capital: float = 0.0


class AllocationPaymentResult(BaseModel):
    allocation: AllocationRead
    paid_percentage: float
    remaining_amount: float
    applied_to_calls: list[int] = Field(default_factory=list)
