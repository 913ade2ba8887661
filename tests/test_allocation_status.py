"""Allocation status derivation, payment rules and portfolio weights."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from src.app.errors import ValidationError
from src.app.funds.allocation_status import (
    AllocationStatusService,
    calculate_status,
    compute_portfolio_weights,
    derive_status_from_calls,
    process_payment,
    validate_payment,
)
from src.app.funds.schemas import (
    AllocationCreate,
    AllocationRead,
    AllocationStatus,
    AllocationUpdate,
    CapitalCallCreate,
    CapitalCallRead,
    FundCreate,
)

UTC = timezone.utc
DUE = datetime(2024, 6, 1, 12, tzinfo=UTC)


def _call(status: str, amount: float = 500, paid: float = 0) -> CapitalCallRead:
    return CapitalCallRead(
        id=1,
        allocation_id=1,
        call_amount=amount,
        call_date=DUE,
        due_date=DUE,
        paid_amount=paid,
        status=status,
    )


def _allocation(alloc_id: int, amount: float, status: str = "committed", paid: float = 0):
    return AllocationRead(
        id=alloc_id,
        fund_id=1,
        deal_id=alloc_id,
        amount=amount,
        security_type="Equity",
        status=status,
        paid_amount=paid,
    )


# ── derive_status_from_calls ────────────────────────────────────────────────


def test_no_calls_is_committed():
    assert derive_status_from_calls([]) == AllocationStatus.COMMITTED


def test_scheduled_calls_are_not_called_capital():
    calls = [_call("scheduled"), _call("scheduled")]
    assert derive_status_from_calls(calls) == AllocationStatus.COMMITTED


def test_fully_paid_calls_fund_allocation():
    calls = [_call("paid", paid=500), _call("scheduled")]
    assert derive_status_from_calls(calls) == AllocationStatus.FUNDED


def test_partially_paid_calls():
    calls = [_call("paid", paid=500), _call("called")]
    assert derive_status_from_calls(calls) == AllocationStatus.PARTIALLY_PAID


@pytest.mark.parametrize("manual", ["written_off", "unfunded"])
def test_manual_statuses_survive_derivation(manual):
    calls = [_call("paid", paid=500)]
    assert derive_status_from_calls(calls, manual) == AllocationStatus(manual)


# ── calculate_status / payments ─────────────────────────────────────────────


def test_calculate_status_thresholds():
    committed = calculate_status(1000, 0)
    assert committed.status == AllocationStatus.COMMITTED
    assert committed.paid_percentage == 0
    assert committed.remaining_amount == 1000

    partial = calculate_status(1000, 250)
    assert partial.status == AllocationStatus.PARTIALLY_PAID
    assert partial.paid_percentage == 25
    assert partial.remaining_amount == 750

    funded = calculate_status(1000, 1050)
    assert funded.status == AllocationStatus.FUNDED
    assert funded.remaining_amount == 0


def test_calculate_status_zero_commitment():
    result = calculate_status(0, 0)
    assert result.status == AllocationStatus.COMMITTED
    assert result.paid_percentage == 0


def test_calculate_status_keeps_manual_status():
    assert calculate_status(1000, 1000, "unfunded").status == AllocationStatus.UNFUNDED


def test_validate_payment_allows_up_to_110_percent():
    validate_payment(1000, 1000, 100)
    with pytest.raises(ValidationError, match="110%"):
        validate_payment(1000, 1000, 101)


def test_validate_payment_rejects_negative():
    with pytest.raises(ValidationError):
        validate_payment(1000, 0, -1)


def test_process_payment():
    new_paid, result = process_payment(_allocation(1, 1000, paid=300), 200)
    assert new_paid == 500
    assert result.status == AllocationStatus.PARTIALLY_PAID
    assert result.paid_percentage == 50


# ── Portfolio weights ───────────────────────────────────────────────────────


def test_portfolio_weights_exclude_written_off():
    weights = compute_portfolio_weights(
        [
            _allocation(1, 600),
            _allocation(2, 400, "funded"),
            _allocation(3, 500, "written_off"),
        ]
    )
    assert weights == {1: 60.0, 2: 40.0, 3: 0.0}


def test_portfolio_weights_empty():
    assert compute_portfolio_weights([]) == {}
    assert compute_portfolio_weights([_allocation(1, 100, "written_off")]) == {}


# ── Service ─────────────────────────────────────────────────────────────────


async def _fund_with_allocations(repo, amounts):
    fund = await repo.create_fund(FundCreate(name="Weights Fund"))
    allocations = [
        await repo.create_allocation(
            AllocationCreate(fund_id=fund.id, deal_id=i + 1, amount=amount, security_type="Equity")
        )
        for i, amount in enumerate(amounts)
    ]
    return fund, allocations


async def test_refresh_fund_totals_updates_weights_and_aum(fund_repo):
    fund, (a1, a2) = await _fund_with_allocations(fund_repo, [750, 250])
    await fund_repo.create_capital_call(
        CapitalCallCreate(
            allocation_id=a1.id, call_amount=300, paid_amount=300,
            call_date=DUE, due_date=DUE, status="paid",
        )
    )
    await fund_repo.create_capital_call(
        CapitalCallCreate(
            allocation_id=a2.id, call_amount=250, paid_amount=100,
            call_date=DUE, due_date=DUE, status="partially_paid",
        )
    )

    await AllocationStatusService(fund_repo).refresh_fund_totals(fund.id)

    assert (await fund_repo.get_allocation(a1.id)).portfolio_weight == 75.0
    assert (await fund_repo.get_allocation(a2.id)).portfolio_weight == 25.0
    assert (await fund_repo.get_fund(fund.id)).aum == 400.0


async def test_refresh_fund_rederives_every_allocation(fund_repo):
    fund, (a1, a2) = await _fund_with_allocations(fund_repo, [500, 500])
    await fund_repo.create_capital_call(
        CapitalCallCreate(
            allocation_id=a1.id, call_amount=500, paid_amount=500,
            call_date=DUE, due_date=DUE, status="paid",
        )
    )

    await AllocationStatusService(fund_repo).refresh_fund(fund.id)

    funded = await fund_repo.get_allocation(a1.id)
    assert funded.status == "funded"
    assert funded.paid_amount == 500
    assert (await fund_repo.get_allocation(a2.id)).status == "committed"


async def test_mark_funded_preserves_written_off(fund_repo):
    _, (allocation,) = await _fund_with_allocations(fund_repo, [500])
    await fund_repo.update_allocation(allocation.id, AllocationUpdate(status="written_off"))
    await fund_repo.create_capital_call(
        CapitalCallCreate(
            allocation_id=allocation.id, call_amount=500, paid_amount=500,
            call_date=DUE, due_date=DUE, status="paid",
        )
    )

    updated = await AllocationStatusService(fund_repo).mark_funded(allocation.id)

    assert updated.status == "written_off"
    assert updated.paid_amount == 500
