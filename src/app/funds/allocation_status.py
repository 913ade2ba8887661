"""Allocation status derivation, payment validation and portfolio weights.

An allocation's status normally follows its capital calls:

    committed -> partially_paid -> funded

``written_off`` and ``unfunded`` are only set by hand and are never
overwritten by derivation. Allocations without capital calls track
payments on their own paid_amount (see calculate_status / process_payment).
"""

from __future__ import annotations

from typing import Any, NamedTuple

import structlog

from src.app.core.monitoring import allocation_status_transitions_total
from src.app.errors import NotFoundError, ValidationError
from src.app.funds.metrics import active_commitments, called_capital
from src.app.funds.schemas import (
    AllocationRead,
    AllocationStatus,
    AllocationUpdate,
    CapitalCallRead,
    CapitalCallStatus,
    FundUpdate,
)

logger = structlog.get_logger(__name__)

MANUAL_STATUSES: frozenset[str] = frozenset(
    {AllocationStatus.WRITTEN_OFF.value, AllocationStatus.UNFUNDED.value}
)

OVERPAYMENT_TOLERANCE = 1.1


class PaymentStatus(NamedTuple):
    status: AllocationStatus
    paid_percentage: float
    remaining_amount: float


# ── Pure Rules ──────────────────────────────────────────────────────────────


def derive_status_from_calls(
    calls: list[CapitalCallRead], current: str = AllocationStatus.COMMITTED.value
) -> AllocationStatus:
    if current in MANUAL_STATUSES:
        return AllocationStatus(current)
    total_called = sum(
        c.call_amount for c in calls if c.status != CapitalCallStatus.SCHEDULED.value
    )
    total_paid = sum(c.paid_amount for c in calls)
    if total_called <= 0:
        return AllocationStatus.COMMITTED
    if total_paid >= total_called:
        return AllocationStatus.FUNDED
    if total_paid > 0:
        return AllocationStatus.PARTIALLY_PAID
    return AllocationStatus.COMMITTED


def calculate_status(
    committed: float, paid: float, current: str = AllocationStatus.COMMITTED.value
) -> PaymentStatus:
    """Status of an allocation from its own paid_amount."""
    paid_percentage = paid / committed * 100 if committed > 0 else 0.0
    remaining = max(0.0, committed - paid)
    if current in MANUAL_STATUSES:
        status = AllocationStatus(current)
    elif committed > 0 and paid >= committed:
        status = AllocationStatus.FUNDED
    elif paid > 0:
        status = AllocationStatus.PARTIALLY_PAID
    else:
        status = AllocationStatus.COMMITTED
    return PaymentStatus(status, paid_percentage, remaining)


def validate_payment(committed: float, current_paid: float, amount: float) -> None:
    if amount < 0:
        raise ValidationError("Payment amount cannot be negative")
    if current_paid + amount > committed * OVERPAYMENT_TOLERANCE:
        raise ValidationError(
            "Total payments cannot exceed 110% of the committed amount"
        )


def process_payment(allocation: AllocationRead, amount: float) -> tuple[float, PaymentStatus]:
    """Validate a payment and return the new paid_amount with its status."""
    validate_payment(allocation.amount, allocation.paid_amount, amount)
    new_paid = allocation.paid_amount + amount
    return new_paid, calculate_status(allocation.amount, new_paid, allocation.status)


def compute_portfolio_weights(allocations: list[AllocationRead]) -> dict[int, float]:
    """Each allocation's percentage of the fund's active commitments.

    Returns an empty mapping when there is nothing to weigh.
    """
    total = active_commitments(allocations)
    if total <= 0:
        return {}
    return {
        a.id: 0.0 if a.status == AllocationStatus.WRITTEN_OFF.value else a.amount / total * 100
        for a in allocations
    }


# ── Service ─────────────────────────────────────────────────────────────────


class AllocationStatusService:
    """Keeps allocation status, portfolio weights and fund AUM consistent.

    Args:
        repository: FundRepository (or a compatible double).
    """

    def __init__(self, repository: Any) -> None:
        self._repo = repository

    async def refresh_from_capital_calls(self, allocation_id: int) -> AllocationRead | None:
        """Re-derive one allocation's status and recalculate its fund on change."""
        allocation = await self._repo.get_allocation(allocation_id)
        if allocation is None:
            return None
        updated, changed = await self._apply_call_status(allocation)
        if changed:
            await self.refresh_fund_totals(allocation.fund_id)
        return updated

    async def mark_funded(self, allocation_id: int) -> AllocationRead:
        allocation = await self._repo.get_allocation(allocation_id)
        if allocation is None:
            raise NotFoundError("Allocation not found")
        calls = await self._repo.list_capital_calls(allocation_ids=[allocation_id])
        paid = sum(c.paid_amount for c in calls)
        status = (
            AllocationStatus(allocation.status)
            if allocation.status in MANUAL_STATUSES
            else AllocationStatus.FUNDED
        )
        updated = await self._set_status(allocation, status, AllocationUpdate(paid_amount=paid))
        await self.refresh_fund_totals(allocation.fund_id)
        return updated

    async def apply_payment_status(
        self, allocation: AllocationRead, paid_amount: float, status: AllocationStatus
    ) -> AllocationRead:
        updated = await self._set_status(
            allocation, status, AllocationUpdate(paid_amount=paid_amount)
        )
        await self.refresh_fund_totals(allocation.fund_id)
        return updated

    async def refresh_fund(self, fund_id: int) -> None:
        """Re-derive every allocation of a fund, then weights and AUM."""
        for allocation in await self._repo.list_allocations(fund_id=fund_id):
            await self._apply_call_status(allocation)
        await self.refresh_fund_totals(fund_id)

    async def refresh_fund_totals(self, fund_id: int) -> None:
        await self.recalculate_portfolio_weights(fund_id)
        await self.update_fund_aum(fund_id)

    async def recalculate_portfolio_weights(self, fund_id: int) -> dict[int, float]:
        allocations = await self._repo.list_allocations(fund_id=fund_id)
        weights = compute_portfolio_weights(allocations)
        for allocation in allocations:
            weight = weights.get(allocation.id)
            if weight is not None and abs(weight - allocation.portfolio_weight) > 1e-9:
                await self._repo.update_allocation(
                    allocation.id, AllocationUpdate(portfolio_weight=weight)
                )
        return weights

    async def update_fund_aum(self, fund_id: int) -> float:
        allocations = await self._repo.list_allocations(fund_id=fund_id)
        calls = await self._repo.list_capital_calls(allocation_ids=[a.id for a in allocations])
        aum = called_capital(calls)
        await self._repo.update_fund(fund_id, FundUpdate(aum=aum))
        logger.debug("fund.aum_updated", fund_id=fund_id, aum=aum)
        return aum

    async def _apply_call_status(self, allocation: AllocationRead) -> tuple[AllocationRead, bool]:
        calls = await self._repo.list_capital_calls(allocation_ids=[allocation.id])
        if not calls:
            return allocation, False
        new_status = derive_status_from_calls(calls, allocation.status)
        paid = sum(c.paid_amount for c in calls)
        changed = new_status.value != allocation.status
        if not changed and abs(paid - allocation.paid_amount) <= 1e-9:
            return allocation, False
        updated = await self._set_status(
            allocation, new_status, AllocationUpdate(paid_amount=paid)
        )
        return updated, changed

    async def _set_status(
        self, allocation: AllocationRead, status: AllocationStatus, update: AllocationUpdate
    ) -> AllocationRead:
        update.status = status
        updated = await self._repo.update_allocation(allocation.id, update)
        if status.value != allocation.status:
            allocation_status_transitions_total.labels(
                from_status=allocation.status, to_status=status.value
            ).inc()
            logger.info(
                "allocation.status_changed",
                allocation_id=allocation.id,
                fund_id=allocation.fund_id,
                from_status=allocation.status,
                to_status=status.value,
            )
        return updated
