"""Fund, allocation and distribution workflows.

Each workflow is a sequence of repository calls; AllocationStatusService
re-derives statuses, weights and AUM after anything that moves money.
"""

from __future__ import annotations

from typing import Any

import structlog

from src.app.deals.schemas import DealStage, TimelineEventType
from src.app.errors import ConflictError, NotFoundError, ValidationError
from src.app.funds.allocation_status import calculate_status, process_payment, validate_payment
from src.app.funds.capital_calls import TERMINAL_STATUSES, outstanding_amount
from src.app.funds.metrics import (
    compute_allocation_metrics,
    compute_fund_metrics,
    distribution_totals,
)
from src.app.funds.schemas import (
    AllocationCreate,
    AllocationMetrics,
    AllocationPayment,
    AllocationPaymentResult,
    AllocationRead,
    AllocationStatus,
    AllocationUpdate,
    AmountType,
    CallSchedule,
    CapitalCallStatus,
    DistributionCreate,
    DistributionRead,
    DistributionUpdate,
    FundCreate,
    FundDeletionPreview,
    FundDetail,
    FundRead,
    FundSummary,
    FundUpdate,
    PaymentCreate,
)
from src.app.users.schemas import UserRead

logger = structlog.get_logger(__name__)


# ── Funds ───────────────────────────────────────────────────────────────────


class FundService:
    def __init__(self, repository: Any, allocation_status: Any) -> None:
        self._repo = repository
        self._allocation_status = allocation_status

    async def get_fund(self, fund_id: int) -> FundRead:
        fund = await self._repo.get_fund(fund_id)
        if fund is None:
            raise NotFoundError("Fund not found")
        return fund

    async def create_fund(self, data: FundCreate) -> FundRead:
        return await self._repo.create_fund(data)

    async def update_fund(self, fund_id: int, data: FundUpdate) -> FundRead:
        await self.get_fund(fund_id)
        return await self._repo.update_fund(fund_id, data)

    async def list_with_metrics(self) -> list[FundSummary]:
        summaries = []
        for fund in await self._repo.list_funds():
            metrics = (await self.get_detail(fund.id, fund)).metrics
            summaries.append(
                FundSummary(
                    **fund.model_dump(),
                    committed_capital=metrics.committed_capital,
                    called_capital=metrics.called_capital,
                    uncalled_capital=metrics.uncalled_capital,
                    allocation_count=metrics.allocation_count,
                )
            )
        return summaries

    async def get_detail(self, fund_id: int, fund: FundRead | None = None) -> FundDetail:
        fund = fund or await self.get_fund(fund_id)
        allocations = await self._repo.list_allocations(fund_id=fund_id)
        ids = [a.id for a in allocations]
        calls = await self._repo.list_capital_calls(allocation_ids=ids)
        distributions = await self._repo.list_distributions(allocation_ids=ids)
        return FundDetail(
            fund=fund,
            metrics=compute_fund_metrics(allocations, calls, distributions),
            allocations=allocations,
        )

    async def deletion_preview(self, fund_id: int) -> FundDeletionPreview:
        fund = await self.get_fund(fund_id)
        allocations = await self._repo.list_allocations(fund_id=fund_id)
        calls = await self._repo.list_capital_calls(allocation_ids=[a.id for a in allocations])
        return FundDeletionPreview(
            fund_id=fund.id,
            fund_name=fund.name,
            allocation_count=len(allocations),
            capital_call_count=len(calls),
            committed_capital=sum(a.amount for a in allocations),
        )

    async def delete_fund(self, fund_id: int, force: bool = False) -> FundDeletionPreview:
        """Delete a fund; with allocations, only when ``force`` is set."""
        preview = await self.deletion_preview(fund_id)
        if preview.allocation_count and not force:
            raise ConflictError(
                f"Fund has {preview.allocation_count} allocation(s); "
                "delete them first or pass force=true"
            )
        if preview.allocation_count:
            removed = await self._repo.delete_allocations_for_fund(fund_id)
            logger.warning("fund.allocations_force_deleted", fund_id=fund_id, count=removed)
        await self._repo.delete_fund(fund_id)
        logger.info("fund.deleted", fund_id=fund_id)
        return preview

    async def recalculate(self, fund_id: int) -> FundDetail:
        await self.get_fund(fund_id)
        await self._allocation_status.refresh_fund(fund_id)
        return await self.get_detail(fund_id)


# ── Allocations ─────────────────────────────────────────────────────────────


class AllocationService:
    """Allocation lifecycle.

    Args:
        repository: FundRepository.
        deals: DealService, for the invested/closing stage moves.
        capital_calls: CapitalCallService.
        allocation_status: AllocationStatusService.
    """

    def __init__(
        self, repository: Any, deals: Any, capital_calls: Any, allocation_status: Any
    ) -> None:
        self._repo = repository
        self._deals = deals
        self._capital_calls = capital_calls
        self._allocation_status = allocation_status

    async def get_allocation(self, allocation_id: int) -> AllocationRead:
        allocation = await self._repo.get_allocation(allocation_id)
        if allocation is None:
            raise NotFoundError("Allocation not found")
        return allocation

    async def create_allocation(self, data: AllocationCreate, actor: UserRead) -> AllocationRead:
        """Create an allocation and everything that follows from it.

        A single-payment schedule funds the allocation immediately; the deal
        moves to ``invested``; the requested capital calls are generated;
        then statuses, portfolio weights and AUM are refreshed fund-wide.
        """
        fund = await self._repo.get_fund(data.fund_id)
        if fund is None:
            raise NotFoundError("Fund not found")
        deal = await self._deals.get_deal(data.deal_id)

        data = data.model_copy(update={"amount_type": AmountType.DOLLAR})
        if data.capital_call_schedule == CallSchedule.SINGLE:
            data = data.model_copy(update={"status": AllocationStatus.FUNDED})

        allocation = await self._repo.create_allocation(data)
        logger.info(
            "allocation.created",
            allocation_id=allocation.id,
            fund_id=fund.id,
            deal_id=deal.id,
            amount=allocation.amount,
            schedule=data.capital_call_schedule.value,
        )

        if deal.stage != DealStage.INVESTED.value:
            await self._deals.set_stage(
                deal.id,
                DealStage.INVESTED,
                actor,
                f"Deal was allocated to fund: {fund.name}",
                event_type=TimelineEventType.CLOSING_SCHEDULED,
            )

        await self._capital_calls.create_capital_calls_for_allocation(allocation, data)
        await self._allocation_status.refresh_fund(fund.id)
        return await self.get_allocation(allocation.id)

    async def update_allocation(self, allocation_id: int, data: AllocationUpdate) -> AllocationRead:
        allocation = await self.get_allocation(allocation_id)
        if data.market_value is not None and data.amount is not None and data.amount > 0:
            data = data.model_copy(update={"moic": data.market_value / data.amount})
        updated = await self._repo.update_allocation(allocation_id, data)
        await self._allocation_status.recalculate_portfolio_weights(allocation.fund_id)
        return await self.get_allocation(updated.id)

    async def delete_allocation(self, allocation_id: int, actor: UserRead) -> None:
        allocation = await self.get_allocation(allocation_id)
        await self._repo.delete_allocation(allocation_id)
        logger.info("allocation.deleted", allocation_id=allocation_id, fund_id=allocation.fund_id)
        await self._allocation_status.refresh_fund_totals(allocation.fund_id)

        if await self._repo.list_allocations(deal_id=allocation.deal_id):
            return
        deal = await self._repo_deal(allocation.deal_id)
        if deal is not None and deal.stage == DealStage.INVESTED.value:
            await self._deals.set_stage(
                deal.id,
                DealStage.CLOSING,
                actor,
                "Deal moved back to Closing after its last allocation was removed",
            )

    async def release_deal(self, deal_id: int) -> list[int]:
        """Drop a deal's allocations ahead of the deal itself and re-total the funds they sat in."""
        allocations = await self._repo.list_allocations(deal_id=deal_id)
        fund_ids = sorted({a.fund_id for a in allocations})
        for allocation in allocations:
            await self._repo.delete_allocation(allocation.id)
        for fund_id in fund_ids:
            await self._allocation_status.refresh_fund_totals(fund_id)
        if allocations:
            logger.info("deal.allocations_released", deal_id=deal_id, fund_ids=fund_ids)
        return fund_ids

    async def apply_payment(
        self, allocation_id: int, payment: AllocationPayment, actor: UserRead
    ) -> AllocationPaymentResult:
        """Apply a payment to an allocation.

        With capital calls, the amount is spread over the open calls, oldest
        due date first. Without calls it is added to the allocation's own
        paid_amount.

        Raises:
            ValidationError: Negative amount, more than 110% of the
                commitment, or more than the calls still owe.
        """
        allocation = await self.get_allocation(allocation_id)
        validate_payment(allocation.amount, allocation.paid_amount, payment.amount)

        calls = await self._repo.list_capital_calls(allocation_ids=[allocation_id])
        applied: list[int] = []
        if calls and payment.amount > 0:
            open_calls = sorted(
                (c for c in calls if CapitalCallStatus(c.status) not in TERMINAL_STATUSES),
                key=lambda c: (c.due_date, c.id),
            )
            owed = sum(outstanding_amount(c.call_amount, c.paid_amount) for c in open_calls)
            if payment.amount > owed + 1e-9:
                raise ValidationError(
                    f"Payment of {payment.amount:.2f} exceeds the {owed:.2f} outstanding "
                    "on this allocation's capital calls"
                )
            remaining = payment.amount
            for call in open_calls:
                portion = min(remaining, outstanding_amount(call.call_amount, call.paid_amount))
                if portion <= 0:
                    continue
                await self._capital_calls.add_payment(
                    call.id,
                    PaymentCreate(
                        payment_amount=portion,
                        payment_date=payment.payment_date,
                        payment_type=payment.payment_type,
                        notes=payment.notes,
                    ),
                    actor.id,
                )
                applied.append(call.id)
                remaining -= portion
                if remaining <= 1e-9:
                    break
            allocation = await self.get_allocation(allocation_id)
        elif not calls:
            new_paid, status = process_payment(allocation, payment.amount)
            allocation = await self._allocation_status.apply_payment_status(
                allocation, new_paid, status.status
            )

        result = calculate_status(allocation.amount, allocation.paid_amount, allocation.status)
        logger.info(
            "allocation.payment_applied",
            allocation_id=allocation_id,
            amount=payment.amount,
            calls=applied,
            status=allocation.status,
        )
        return AllocationPaymentResult(
            allocation=allocation,
            paid_percentage=result.paid_percentage,
            remaining_amount=result.remaining_amount,
            applied_to_calls=applied,
        )

    async def get_metrics(self, allocation_id: int) -> AllocationMetrics:
        allocation = await self.get_allocation(allocation_id)
        calls = await self._repo.list_capital_calls(allocation_ids=[allocation_id])
        distributions = await self._repo.list_distributions(allocation_ids=[allocation_id])
        return compute_allocation_metrics(allocation, calls, distributions)

    async def _repo_deal(self, deal_id: int):
        try:
            return await self._deals.get_deal(deal_id)
        except NotFoundError:
            return None


# ── Distributions ───────────────────────────────────────────────────────────


class DistributionService:
    def __init__(self, repository: Any) -> None:
        self._repo = repository

    async def get_distribution(self, distribution_id: int) -> DistributionRead:
        distribution = await self._repo.get_distribution(distribution_id)
        if distribution is None:
            raise NotFoundError("Distribution not found")
        return distribution

    async def list_for_allocation(self, allocation_id: int) -> list[DistributionRead]:
        await self._get_allocation(allocation_id)
        return await self._repo.list_distributions(allocation_ids=[allocation_id])

    async def create(self, data: DistributionCreate) -> DistributionRead:
        await self._get_allocation(data.allocation_id)
        distribution = await self._repo.create_distribution(data)
        await self._recalculate(data.allocation_id)
        return distribution

    async def update(self, distribution_id: int, data: DistributionUpdate) -> DistributionRead:
        existing = await self.get_distribution(distribution_id)
        updated = await self._repo.update_distribution(distribution_id, data)
        await self._recalculate(existing.allocation_id)
        return updated

    async def delete(self, distribution_id: int) -> None:
        existing = await self.get_distribution(distribution_id)
        await self._repo.delete_distribution(distribution_id)
        await self._recalculate(existing.allocation_id)

    async def _get_allocation(self, allocation_id: int) -> AllocationRead:
        allocation = await self._repo.get_allocation(allocation_id)
        if allocation is None:
            raise NotFoundError("Allocation not found")
        return allocation

    async def _recalculate(self, allocation_id: int) -> None:
        allocation = await self._get_allocation(allocation_id)
        distributions = await self._repo.list_distributions(allocation_ids=[allocation_id])
        await self._repo.update_allocation(
            allocation_id, distribution_totals(allocation, distributions)
        )
        logger.info(
            "allocation.distributions_recalculated",
            allocation_id=allocation_id,
            count=len(distributions),
        )
