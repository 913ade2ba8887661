"""Fund ledger repository -- async CRUD for funds, allocations, capital calls,
payments and distributions.

Uses the session_factory callable pattern shared by all repositories and
converts ORM rows into the Pydantic read schemas from funds.schemas.
outstanding_amount on new capital calls is derived here so every write
path starts from a consistent row.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timezone

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.app.funds.models import (
    CapitalCallModel,
    CapitalCallPaymentModel,
    DistributionModel,
    FundAllocationModel,
    FundModel,
)
from src.app.funds.schemas import (
    AllocationCreate,
    AllocationRead,
    AllocationUpdate,
    CapitalCallCreate,
    CapitalCallRead,
    CapitalCallUpdate,
    DistributionCreate,
    DistributionRead,
    DistributionUpdate,
    FundCreate,
    FundRead,
    FundUpdate,
    PaymentCreate,
    PaymentRead,
)

logger = structlog.get_logger(__name__)

SessionFactory = Callable[..., AsyncGenerator[AsyncSession, None]]


# ── Serialization Helpers ───────────────────────────────────────────────────


def _model_to_fund(model: FundModel) -> FundRead:
    return FundRead(
        id=model.id,
        name=model.name,
        description=model.description,
        aum=model.aum or 0.0,
        vintage=model.vintage,
        distribution_rate=model.distribution_rate,
        appreciation_rate=model.appreciation_rate,
        created_at=model.created_at,
    )


def _model_to_allocation(model: FundAllocationModel) -> AllocationRead:
    return AllocationRead(
        id=model.id,
        fund_id=model.fund_id,
        deal_id=model.deal_id,
        amount=model.amount,
        amount_type=model.amount_type or "dollar",
        security_type=model.security_type,
        allocation_date=model.allocation_date,
        notes=model.notes,
        status=model.status or "committed",
        portfolio_weight=model.portfolio_weight or 0.0,
        interest_paid=model.interest_paid or 0.0,
        distribution_paid=model.distribution_paid or 0.0,
        total_returned=model.total_returned or 0.0,
        market_value=model.market_value or 0.0,
        moic=model.moic if model.moic is not None else 1.0,
        irr=model.irr or 0.0,
        paid_amount=model.paid_amount or 0.0,
    )


def _model_to_capital_call(model: CapitalCallModel) -> CapitalCallRead:
    return CapitalCallRead(
        id=model.id,
        allocation_id=model.allocation_id,
        call_amount=model.call_amount,
        amount_type=model.amount_type or "dollar",
        call_date=model.call_date,
        due_date=model.due_date,
        paid_amount=model.paid_amount or 0.0,
        paid_date=model.paid_date,
        outstanding_amount=model.outstanding_amount or 0.0,
        status=model.status,
        notes=model.notes,
        call_pct=model.call_pct,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def _model_to_payment(model: CapitalCallPaymentModel) -> PaymentRead:
    return PaymentRead(
        id=model.id,
        capital_call_id=model.capital_call_id,
        payment_amount=model.payment_amount,
        payment_date=model.payment_date,
        payment_type=model.payment_type or "wire",
        notes=model.notes,
        created_by=model.created_by,
        created_at=model.created_at,
    )


def _model_to_distribution(model: DistributionModel) -> DistributionRead:
    return DistributionRead(
        id=model.id,
        allocation_id=model.allocation_id,
        distribution_date=model.distribution_date,
        amount=float(model.amount),
        distribution_type=model.distribution_type,
        description=model.description,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def _enum_values(data: dict) -> dict:
    """Flatten Enum members in a model_dump() into their string values."""
    return {k: getattr(v, "value", v) for k, v in data.items()}


# ── Repository ──────────────────────────────────────────────────────────────


class FundRepository:
    """Async CRUD operations for all fund ledger entities.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    # ── Funds ───────────────────────────────────────────────────────────────

    async def create_fund(self, data: FundCreate) -> FundRead:
        async for session in self._session_factory():
            model = FundModel(**data.model_dump(), aum=0.0)
            session.add(model)
            await session.commit()
            await session.refresh(model)
            logger.info("fund.created", fund_id=model.id, name=model.name)
            return _model_to_fund(model)

    async def get_fund(self, fund_id: int) -> FundRead | None:
        async for session in self._session_factory():
            model = await session.get(FundModel, fund_id)
            return _model_to_fund(model) if model else None

    async def list_funds(self) -> list[FundRead]:
        async for session in self._session_factory():
            result = await session.execute(select(FundModel).order_by(FundModel.id))
            return [_model_to_fund(m) for m in result.scalars().all()]

    async def update_fund(self, fund_id: int, data: FundUpdate) -> FundRead | None:
        async for session in self._session_factory():
            model = await session.get(FundModel, fund_id)
            if model is None:
                return None
            for key, value in data.model_dump(exclude_none=True).items():
                setattr(model, key, value)
            await session.commit()
            await session.refresh(model)
            return _model_to_fund(model)

    async def delete_fund(self, fund_id: int) -> bool:
        async for session in self._session_factory():
            result = await session.execute(delete(FundModel).where(FundModel.id == fund_id))
            await session.commit()
            return bool(result.rowcount)

    # ── Allocations ─────────────────────────────────────────────────────────

    async def create_allocation(self, data: AllocationCreate) -> AllocationRead:
        async for session in self._session_factory():
            model = FundAllocationModel(
                fund_id=data.fund_id,
                deal_id=data.deal_id,
                amount=data.amount,
                amount_type=data.amount_type.value,
                security_type=data.security_type,
                allocation_date=data.allocation_date,
                notes=data.notes,
                status=data.status.value,
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return _model_to_allocation(model)

    async def get_allocation(self, allocation_id: int) -> AllocationRead | None:
        async for session in self._session_factory():
            model = await session.get(FundAllocationModel, allocation_id)
            return _model_to_allocation(model) if model else None

    async def list_allocations(
        self, fund_id: int | None = None, deal_id: int | None = None
    ) -> list[AllocationRead]:
        async for session in self._session_factory():
            stmt = select(FundAllocationModel)
            if fund_id is not None:
                stmt = stmt.where(FundAllocationModel.fund_id == fund_id)
            if deal_id is not None:
                stmt = stmt.where(FundAllocationModel.deal_id == deal_id)
            result = await session.execute(stmt.order_by(FundAllocationModel.id))
            return [_model_to_allocation(m) for m in result.scalars().all()]

    async def update_allocation(
        self, allocation_id: int, data: AllocationUpdate
    ) -> AllocationRead | None:
        async for session in self._session_factory():
            model = await session.get(FundAllocationModel, allocation_id)
            if model is None:
                return None
            for key, value in _enum_values(data.model_dump(exclude_none=True)).items():
                setattr(model, key, value)
            await session.commit()
            await session.refresh(model)
            return _model_to_allocation(model)

    async def delete_allocation(self, allocation_id: int) -> bool:
        async for session in self._session_factory():
            result = await session.execute(
                delete(FundAllocationModel).where(FundAllocationModel.id == allocation_id)
            )
            await session.commit()
            return bool(result.rowcount)

    async def delete_allocations_for_fund(self, fund_id: int) -> int:
        async for session in self._session_factory():
            result = await session.execute(
                delete(FundAllocationModel).where(FundAllocationModel.fund_id == fund_id)
            )
            await session.commit()
            return result.rowcount or 0

    # ── Capital Calls ───────────────────────────────────────────────────────

    async def create_capital_call(self, data: CapitalCallCreate) -> CapitalCallRead:
        async for session in self._session_factory():
            model = CapitalCallModel(
                allocation_id=data.allocation_id,
                call_amount=data.call_amount,
                amount_type=data.amount_type.value,
                call_date=data.call_date,
                due_date=data.due_date,
                paid_amount=data.paid_amount,
                paid_date=data.paid_date,
                outstanding_amount=max(0.0, data.call_amount - data.paid_amount),
                status=data.status.value,
                notes=data.notes,
                call_pct=data.call_pct,
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return _model_to_capital_call(model)

    async def get_capital_call(self, capital_call_id: int) -> CapitalCallRead | None:
        async for session in self._session_factory():
            model = await session.get(CapitalCallModel, capital_call_id)
            return _model_to_capital_call(model) if model else None

    async def list_capital_calls(
        self,
        allocation_ids: list[int] | None = None,
        due_from: datetime | None = None,
        due_to: datetime | None = None,
    ) -> list[CapitalCallRead]:
        """List capital calls ordered by due date.

        allocation_ids=None means every allocation; an empty list matches nothing.
        """
        if allocation_ids is not None and not allocation_ids:
            return []
        async for session in self._session_factory():
            stmt = select(CapitalCallModel)
            if allocation_ids is not None:
                stmt = stmt.where(CapitalCallModel.allocation_id.in_(allocation_ids))
            if due_from is not None:
                stmt = stmt.where(CapitalCallModel.due_date >= due_from)
            if due_to is not None:
                stmt = stmt.where(CapitalCallModel.due_date <= due_to)
            result = await session.execute(
                stmt.order_by(CapitalCallModel.due_date, CapitalCallModel.id)
            )
            return [_model_to_capital_call(m) for m in result.scalars().all()]

    async def update_capital_call(
        self, capital_call_id: int, data: CapitalCallUpdate
    ) -> CapitalCallRead | None:
        async for session in self._session_factory():
            model = await session.get(CapitalCallModel, capital_call_id)
            if model is None:
                return None
            for key, value in _enum_values(data.model_dump(exclude_none=True)).items():
                setattr(model, key, value)
            model.updated_at = datetime.now(timezone.utc)
            await session.commit()
            await session.refresh(model)
            return _model_to_capital_call(model)

    async def delete_capital_call(self, capital_call_id: int) -> bool:
        async for session in self._session_factory():
            result = await session.execute(
                delete(CapitalCallModel).where(CapitalCallModel.id == capital_call_id)
            )
            await session.commit()
            return bool(result.rowcount)

    # ── Payments ────────────────────────────────────────────────────────────

    async def create_payment(
        self, capital_call_id: int, data: PaymentCreate, created_by: int
    ) -> PaymentRead:
        async for session in self._session_factory():
            model = CapitalCallPaymentModel(
                capital_call_id=capital_call_id,
                payment_amount=data.payment_amount,
                payment_date=data.payment_date or datetime.now(timezone.utc),
                payment_type=data.payment_type.value,
                notes=data.notes,
                created_by=created_by,
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return _model_to_payment(model)

    async def list_payments(self, capital_call_id: int) -> list[PaymentRead]:
        async for session in self._session_factory():
            result = await session.execute(
                select(CapitalCallPaymentModel)
                .where(CapitalCallPaymentModel.capital_call_id == capital_call_id)
                .order_by(CapitalCallPaymentModel.payment_date, CapitalCallPaymentModel.id)
            )
            return [_model_to_payment(m) for m in result.scalars().all()]

    # ── Distributions ───────────────────────────────────────────────────────

    async def create_distribution(self, data: DistributionCreate) -> DistributionRead:
        async for session in self._session_factory():
            model = DistributionModel(
                allocation_id=data.allocation_id,
                distribution_date=data.distribution_date,
                amount=data.amount,
                distribution_type=data.distribution_type.value,
                description=data.description,
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return _model_to_distribution(model)

    async def get_distribution(self, distribution_id: int) -> DistributionRead | None:
        async for session in self._session_factory():
            model = await session.get(DistributionModel, distribution_id)
            return _model_to_distribution(model) if model else None

    async def list_distributions(
        self, allocation_ids: list[int] | None = None
    ) -> list[DistributionRead]:
        if allocation_ids is not None and not allocation_ids:
            return []
        async for session in self._session_factory():
            stmt = select(DistributionModel)
            if allocation_ids is not None:
                stmt = stmt.where(DistributionModel.allocation_id.in_(allocation_ids))
            result = await session.execute(
                stmt.order_by(DistributionModel.distribution_date, DistributionModel.id)
            )
            return [_model_to_distribution(m) for m in result.scalars().all()]

    async def update_distribution(
        self, distribution_id: int, data: DistributionUpdate
    ) -> DistributionRead | None:
        async for session in self._session_factory():
            model = await session.get(DistributionModel, distribution_id)
            if model is None:
                return None
            for key, value in _enum_values(data.model_dump(exclude_none=True)).items():
                setattr(model, key, value)
            await session.commit()
            await session.refresh(model)
            return _model_to_distribution(model)

    async def delete_distribution(self, distribution_id: int) -> bool:
        async for session in self._session_factory():
            result = await session.execute(
                delete(DistributionModel).where(DistributionModel.id == distribution_id)
            )
            await session.commit()
            return bool(result.rowcount)
