"""Capital call state machine and schedule generation.

Status transitions are validated against VALID_TRANSITIONS; ``paid`` and
``defaulted`` are terminal. Every call/due/paid date is normalized to
noon UTC so that a date picked in any timezone lands on the same calendar
day. outstanding_amount is always max(0, call_amount - paid_amount),
except for defaulted calls where it is zeroed.

CapitalCallService applies payments, status and date changes through the
fund repository and asks AllocationStatusService to re-derive the parent
allocation's status after every change.
"""

from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Any

import structlog
from dateutil.relativedelta import relativedelta

from src.app.core.monitoring import (
    capital_call_payments_total,
    capital_call_status_transitions_total,
    capital_calls_created_total,
)
from src.app.errors import NotFoundError, ValidationError
from src.app.funds.schemas import (
    AllocationCreate,
    AllocationRead,
    AmountType,
    CallFrequency,
    CallSchedule,
    CapitalCallCreate,
    CapitalCallDatesUpdate,
    CapitalCallRead,
    CapitalCallStatus,
    CapitalCallStatusUpdate,
    CapitalCallSummary,
    CapitalCallUpdate,
    PaymentCreate,
    PaymentRead,
)

logger = structlog.get_logger(__name__)

# ── Transition Rules ────────────────────────────────────────────────────────

VALID_TRANSITIONS: dict[CapitalCallStatus, set[CapitalCallStatus]] = {
    CapitalCallStatus.SCHEDULED: {
        CapitalCallStatus.CALLED,
        CapitalCallStatus.OVERDUE,
        CapitalCallStatus.DEFAULTED,
        CapitalCallStatus.PARTIALLY_PAID,
        CapitalCallStatus.PAID,
    },
    CapitalCallStatus.CALLED: {
        CapitalCallStatus.PARTIAL,
        CapitalCallStatus.PAID,
        CapitalCallStatus.OVERDUE,
        CapitalCallStatus.DEFAULTED,
        CapitalCallStatus.PARTIALLY_PAID,
    },
    CapitalCallStatus.PARTIAL: {
        CapitalCallStatus.PAID,
        CapitalCallStatus.OVERDUE,
        CapitalCallStatus.DEFAULTED,
        CapitalCallStatus.PARTIALLY_PAID,
    },
    CapitalCallStatus.PARTIALLY_PAID: {
        CapitalCallStatus.PAID,
        CapitalCallStatus.OVERDUE,
        CapitalCallStatus.DEFAULTED,
    },
    CapitalCallStatus.OVERDUE: {
        CapitalCallStatus.PAID,
        CapitalCallStatus.DEFAULTED,
        CapitalCallStatus.PARTIAL,
        CapitalCallStatus.PARTIALLY_PAID,
    },
    CapitalCallStatus.PAID: set(),  # Terminal
    CapitalCallStatus.DEFAULTED: set(),  # Terminal
}

TERMINAL_STATUSES: frozenset[CapitalCallStatus] = frozenset(
    {CapitalCallStatus.PAID, CapitalCallStatus.DEFAULTED}
)

# Statuses whose calls can still receive money.
OPEN_STATUSES: frozenset[CapitalCallStatus] = frozenset(
    set(CapitalCallStatus) - TERMINAL_STATUSES
)

FREQUENCY_MONTHS: dict[str, int] = {
    CallFrequency.MONTHLY.value: 1,
    CallFrequency.QUARTERLY.value: 3,
    CallFrequency.BIANNUAL.value: 6,
    CallFrequency.ANNUAL.value: 12,
}


class InvalidCapitalCallTransitionError(ValidationError):
    """Raised when a capital call status change violates the transition rules."""

    def __init__(self, from_status: CapitalCallStatus, to_status: CapitalCallStatus) -> None:
        self.from_status = from_status
        self.to_status = to_status
        allowed = sorted(s.value for s in VALID_TRANSITIONS.get(from_status, set()))
        super().__init__(
            f"Invalid status transition from {from_status.value} to {to_status.value}. "
            f"Valid transitions: {', '.join(allowed) or 'none'}"
        )


def can_transition(from_status: str, to_status: str) -> bool:
    current = CapitalCallStatus(from_status)
    target = CapitalCallStatus(to_status)
    return target in VALID_TRANSITIONS.get(current, set())


def validate_transition(from_status: str, to_status: str) -> None:
    """Raise InvalidCapitalCallTransitionError unless the move is allowed."""
    if not can_transition(from_status, to_status):
        raise InvalidCapitalCallTransitionError(
            CapitalCallStatus(from_status), CapitalCallStatus(to_status)
        )


# ── Arithmetic & Dates ──────────────────────────────────────────────────────


def outstanding_amount(call_amount: float, paid_amount: float) -> float:
    return max(0.0, call_amount - paid_amount)


def normalize_to_noon_utc(value: datetime | date) -> datetime:
    """Pin a date or datetime to 12:00 UTC on its (UTC) calendar day.

    Naive datetimes are taken to be UTC already.
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        day = value.date()
    else:
        day = value
    return datetime.combine(day, time(12, 0), tzinfo=timezone.utc)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _spacing_months(request: AllocationCreate) -> int:
    if request.call_frequency is not None:
        return FREQUENCY_MONTHS[request.call_frequency.value]
    return FREQUENCY_MONTHS.get(request.capital_call_schedule.value, 1)


def build_call_schedule(
    allocation: AllocationRead, request: AllocationCreate
) -> list[CapitalCallCreate]:
    """Expand an allocation's schedule options into capital calls to create.

    - ``none``: no calls
    - ``single``: one call, already paid, on the first call date
    - anything else: call_count calls spaced by the named schedule (or by
      call_frequency when given, which custom schedules rely on), each due
      one month after it is called

    In percentage mode the last call takes whatever percentage is left so
    the calls always add up to the full commitment.
    """
    schedule = request.capital_call_schedule
    if schedule == CallSchedule.NONE:
        return []

    first = normalize_to_noon_utc(request.first_call_date or allocation.allocation_date or _utcnow())
    dollar_mode = request.call_amount_type == AmountType.DOLLAR

    if dollar_mode and not 0 < request.call_dollar_amount <= allocation.amount:
        raise ValidationError(
            "Call dollar amount must be greater than 0 and not exceed the allocation amount"
        )

    if schedule == CallSchedule.SINGLE:
        if dollar_mode:
            amount = request.call_dollar_amount
        else:
            amount = allocation.amount * request.call_percentage / 100
        return [
            CapitalCallCreate(
                allocation_id=allocation.id,
                call_amount=amount,
                amount_type=AmountType.DOLLAR,
                call_date=first,
                due_date=first,
                paid_amount=amount,
                paid_date=first,
                status=CapitalCallStatus.PAID,
                notes="Single payment allocation - automatically paid",
            )
        ]

    count = request.call_count
    if not dollar_mode and request.call_percentage * (count - 1) >= 100:
        raise ValidationError(
            f"{count} calls of {request.call_percentage}% exceed 100% of the commitment"
        )

    months = _spacing_months(request)
    calls: list[CapitalCallCreate] = []
    for i in range(count):
        call_date = normalize_to_noon_utc(first + relativedelta(months=i * months))
        due_date = normalize_to_noon_utc(call_date + relativedelta(months=1))
        call_pct: float | None = None
        if dollar_mode:
            amount = request.call_dollar_amount / count
        else:
            is_last = i == count - 1
            call_pct = (
                100 - request.call_percentage * (count - 1) if is_last else request.call_percentage
            )
            amount = allocation.amount * call_pct / 100
        calls.append(
            CapitalCallCreate(
                allocation_id=allocation.id,
                call_amount=amount,
                amount_type=AmountType.DOLLAR,
                call_date=call_date,
                due_date=due_date,
                status=CapitalCallStatus.SCHEDULED,
                notes=f"Scheduled payment {i + 1} of {count}",
                call_pct=call_pct,
            )
        )
    return calls


def summarize_capital_calls(
    calls: list[CapitalCallRead], now: datetime | None = None
) -> CapitalCallSummary:
    """Totals for a set of calls.

    pending_amount is what is still owed on called-but-open calls;
    overdue_amount is what is owed on open calls already past due.
    """
    now = now or _utcnow()
    pending = 0.0
    overdue = 0.0
    for call in calls:
        status = CapitalCallStatus(call.status)
        if status in TERMINAL_STATUSES:
            continue
        owed = outstanding_amount(call.call_amount, call.paid_amount)
        if status != CapitalCallStatus.SCHEDULED:
            pending += owed
        if call.due_date < now:
            overdue += owed
    return CapitalCallSummary(
        total_calls=len(calls),
        total_amount=sum(c.call_amount for c in calls),
        paid_amount=sum(c.paid_amount for c in calls),
        pending_amount=pending,
        overdue_amount=overdue,
    )


# ── Service ─────────────────────────────────────────────────────────────────


class CapitalCallService:
    """Applies capital call mutations and keeps allocation status in sync.

    Args:
        repository: FundRepository (or a compatible double).
        allocation_status: AllocationStatusService used after each change.
    """

    def __init__(self, repository: Any, allocation_status: Any) -> None:
        self._repo = repository
        self._allocation_status = allocation_status

    async def get_call(self, capital_call_id: int) -> CapitalCallRead:
        call = await self._repo.get_capital_call(capital_call_id)
        if call is None:
            raise NotFoundError("Capital call not found")
        return call

    async def create_capital_calls_for_allocation(
        self, allocation: AllocationRead, request: AllocationCreate
    ) -> list[CapitalCallRead]:
        created = []
        for data in build_call_schedule(allocation, request):
            created.append(await self._repo.create_capital_call(data))
        if created:
            capital_calls_created_total.labels(
                source=request.capital_call_schedule.value
            ).inc(len(created))
            logger.info(
                "capital_calls.scheduled",
                allocation_id=allocation.id,
                schedule=request.capital_call_schedule.value,
                count=len(created),
            )
        return created

    async def create_manual(self, data: CapitalCallCreate) -> CapitalCallRead:
        allocation = await self._repo.get_allocation(data.allocation_id)
        if allocation is None:
            raise NotFoundError("Allocation not found")

        call_date = normalize_to_noon_utc(data.call_date)
        due_date = normalize_to_noon_utc(data.due_date)
        if due_date < call_date:
            raise ValidationError("Due date cannot be before call date")
        if data.paid_amount > data.call_amount:
            raise ValidationError("Paid amount cannot exceed call amount")

        paid_date = normalize_to_noon_utc(data.paid_date) if data.paid_date else None
        call = await self._repo.create_capital_call(
            data.model_copy(
                update={"call_date": call_date, "due_date": due_date, "paid_date": paid_date}
            )
        )
        capital_calls_created_total.labels(source="manual").inc()
        logger.info(
            "capital_call.created",
            capital_call_id=call.id,
            allocation_id=call.allocation_id,
            amount=call.call_amount,
            status=call.status,
        )
        await self._allocation_status.refresh_from_capital_calls(call.allocation_id)
        return call

    async def add_payment(
        self, capital_call_id: int, data: PaymentCreate, user_id: int
    ) -> tuple[CapitalCallRead, PaymentRead]:
        """Record a payment against a call and advance its status.

        Raises:
            NotFoundError: Unknown capital call.
            ValidationError: Non-positive amount, overpayment, or the call
                is already paid or defaulted.
        """
        call = await self.get_call(capital_call_id)
        if data.payment_amount <= 0:
            raise ValidationError("Payment amount must be positive")
        current = CapitalCallStatus(call.status)
        if current in TERMINAL_STATUSES:
            raise ValidationError(f"Cannot add payment to a {current.value} capital call")

        new_paid = call.paid_amount + data.payment_amount
        if new_paid > call.call_amount + 1e-9:
            raise ValidationError(
                f"Payment of {data.payment_amount:.2f} exceeds outstanding amount "
                f"of {outstanding_amount(call.call_amount, call.paid_amount):.2f}"
            )

        payment_date = normalize_to_noon_utc(data.payment_date or _utcnow())
        payment = await self._repo.create_payment(
            capital_call_id, data.model_copy(update={"payment_date": payment_date}), user_id
        )
        capital_call_payments_total.labels(payment_type=data.payment_type.value).inc()

        new_paid = min(new_paid, call.call_amount)
        remaining = outstanding_amount(call.call_amount, new_paid)
        new_status = (
            CapitalCallStatus.PAID if remaining <= 0 else CapitalCallStatus.PARTIALLY_PAID
        )
        updated = await self._repo.update_capital_call(
            capital_call_id,
            CapitalCallUpdate(
                paid_amount=new_paid,
                outstanding_amount=remaining,
                paid_date=payment_date,
                status=new_status,
            ),
        )
        self._record_transition(call, new_status)
        logger.info(
            "capital_call.payment_recorded",
            capital_call_id=capital_call_id,
            amount=data.payment_amount,
            payment_type=data.payment_type.value,
            status=new_status.value,
            user_id=user_id,
        )

        if new_status == CapitalCallStatus.PAID and await self._all_calls_settled(
            call.allocation_id
        ):
            await self._allocation_status.mark_funded(call.allocation_id)
        else:
            await self._allocation_status.refresh_from_capital_calls(call.allocation_id)
        return updated, payment

    async def update_status(
        self, capital_call_id: int, data: CapitalCallStatusUpdate
    ) -> CapitalCallRead:
        call = await self.get_call(capital_call_id)
        target = data.status
        validate_transition(call.status, target.value)

        update = CapitalCallUpdate(status=target)
        if target == CapitalCallStatus.PAID:
            paid = data.paid_amount if data.paid_amount is not None else call.call_amount
            if paid > call.call_amount:
                raise ValidationError("Paid amount cannot exceed call amount")
            update.paid_amount = paid
            update.outstanding_amount = 0.0
            update.paid_date = normalize_to_noon_utc(_utcnow())
        elif target == CapitalCallStatus.PARTIAL:
            paid = data.paid_amount
            if paid is None or not 0 < paid < call.call_amount:
                raise ValidationError(
                    "Partial payments need a paid amount greater than 0 and less than the call amount"
                )
            update.paid_amount = paid
            update.outstanding_amount = outstanding_amount(call.call_amount, paid)
            update.paid_date = normalize_to_noon_utc(_utcnow())
        elif target == CapitalCallStatus.DEFAULTED:
            update.outstanding_amount = 0.0
        elif data.paid_amount is not None:
            if data.paid_amount > call.call_amount:
                raise ValidationError("Paid amount cannot exceed call amount")
            update.paid_amount = data.paid_amount
            update.outstanding_amount = outstanding_amount(call.call_amount, data.paid_amount)

        updated = await self._repo.update_capital_call(capital_call_id, update)
        self._record_transition(call, target)
        await self._allocation_status.refresh_from_capital_calls(call.allocation_id)
        return updated

    async def update_dates(
        self, capital_call_id: int, data: CapitalCallDatesUpdate
    ) -> CapitalCallRead:
        call = await self.get_call(capital_call_id)
        if CapitalCallStatus(call.status) not in (
            CapitalCallStatus.SCHEDULED,
            CapitalCallStatus.CALLED,
        ):
            raise ValidationError(f"Cannot change dates of a {call.status} capital call")
        call_date = normalize_to_noon_utc(data.call_date)
        due_date = normalize_to_noon_utc(data.due_date)
        if due_date < call_date:
            raise ValidationError("Due date cannot be before call date")
        return await self._repo.update_capital_call(
            capital_call_id, CapitalCallUpdate(call_date=call_date, due_date=due_date)
        )

    async def delete(self, capital_call_id: int) -> None:
        call = await self.get_call(capital_call_id)
        await self._repo.delete_capital_call(capital_call_id)
        logger.info("capital_call.deleted", capital_call_id=capital_call_id)
        await self._allocation_status.refresh_from_capital_calls(call.allocation_id)

    async def _all_calls_settled(self, allocation_id: int) -> bool:
        calls = await self._repo.list_capital_calls(allocation_ids=[allocation_id])
        return all(CapitalCallStatus(c.status) in TERMINAL_STATUSES for c in calls)

    @staticmethod
    def _record_transition(call: CapitalCallRead, to_status: CapitalCallStatus) -> None:
        if call.status == to_status.value:
            return
        capital_call_status_transitions_total.labels(
            from_status=call.status, to_status=to_status.value
        ).inc()
        logger.info(
            "capital_call.status_changed",
            capital_call_id=call.id,
            from_status=call.status,
            to_status=to_status.value,
        )
