"""Capital figures for funds and allocations.

All functions are pure and work on already-loaded read schemas.
"""

from __future__ import annotations

from src.app.funds.schemas import (
    AllocationMetrics,
    AllocationRead,
    AllocationStatus,
    AllocationUpdate,
    CapitalCallRead,
    CapitalCallStatus,
    DistributionRead,
    FundMetrics,
)

_PARTIAL_STATUSES = {CapitalCallStatus.PARTIAL.value, CapitalCallStatus.PARTIALLY_PAID.value}


def called_capital(calls: list[CapitalCallRead]) -> float:
    """Full amount of paid calls plus what has come in on partial ones."""
    total = 0.0
    for call in calls:
        if call.status == CapitalCallStatus.PAID.value:
            total += call.call_amount
        elif call.status in _PARTIAL_STATUSES:
            total += call.paid_amount
    return total


def active_commitments(allocations: list[AllocationRead]) -> float:
    return sum(
        a.amount for a in allocations if a.status != AllocationStatus.WRITTEN_OFF.value
    )


def compute_fund_metrics(
    allocations: list[AllocationRead],
    calls: list[CapitalCallRead],
    distributions: list[DistributionRead] | None = None,
) -> FundMetrics:
    """Aggregate a fund's commitments, calls and distributions.

    Ratios are taken over total paid-in capital; with nothing paid in,
    MOIC is 1 and DPI/TVPI are 0.
    """
    distributions = distributions or []
    committed = sum(a.amount for a in allocations)
    called = called_capital(calls)
    total_paid = sum(a.paid_amount for a in allocations)
    total_distributions = sum(d.amount for d in distributions)
    market_value = sum(a.market_value for a in allocations)

    moic, dpi, tvpi = 1.0, 0.0, 0.0
    if total_paid > 0:
        moic = (market_value + total_distributions) / total_paid
        dpi = total_distributions / total_paid
        tvpi = (market_value + total_distributions) / total_paid

    return FundMetrics(
        committed_capital=committed,
        called_capital=called,
        uncalled_capital=max(0.0, active_commitments(allocations) - called),
        total_paid=total_paid,
        total_distributions=total_distributions,
        moic=moic,
        dpi=dpi,
        tvpi=tvpi,
        allocation_count=len(allocations),
    )


def compute_allocation_metrics(
    allocation: AllocationRead,
    calls: list[CapitalCallRead],
    distributions: list[DistributionRead],
) -> AllocationMetrics:
    total_called = sum(
        c.call_amount for c in calls if c.status != CapitalCallStatus.SCHEDULED.value
    )
    total_paid = sum(c.paid_amount for c in calls) if calls else allocation.paid_amount
    dist_total = sum(d.amount for d in distributions)
    moic = (
        (allocation.market_value + dist_total) / total_paid if total_paid > 0 else allocation.moic
    )
    return AllocationMetrics(
        total_invested=allocation.amount,
        current_value=allocation.market_value,
        distributions=dist_total,
        total_called=total_called,
        total_paid=total_paid,
        moic=moic,
        unrealized=allocation.market_value - total_paid if total_paid > 0 else 0.0,
    )


def distribution_totals(
    allocation: AllocationRead, distributions: list[DistributionRead]
) -> AllocationUpdate:
    """Fields to persist on an allocation after its distributions change."""
    total = sum(d.amount for d in distributions)
    update = AllocationUpdate(total_returned=total, distribution_paid=total)
    if allocation.paid_amount > 0:
        update.moic = (allocation.market_value + total) / allocation.paid_amount
    return update
