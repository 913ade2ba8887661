"""Shared test fixtures.

Provides in-memory doubles for every repository the API reads from
app.state, a dict-backed response cache, and an ``api`` harness: a
FastAPI app with the full router, domain error handlers and a switchable
current user, driven through httpx AsyncClient + ASGITransport.
"""

from __future__ import annotations

import itertools
from collections.abc import AsyncGenerator
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import pytest
import pytest_asyncio
from fastapi import FastAPI, HTTPException, status
from httpx import ASGITransport, AsyncClient

from src.app.deals.schemas import (
    ClosingEventCreate,
    ClosingEventRead,
    ClosingEventUpdate,
    DealAssignmentRead,
    DealCreate,
    DealRead,
    DealStarRead,
    DealUpdate,
    DocumentCreate,
    DocumentRead,
    DocumentUpdate,
    MemoCommentRead,
    MemoCreate,
    MemoRead,
    MemoUpdate,
    TimelineEventCreate,
    TimelineEventRead,
)
from src.app.deals.scoring import gp_alignment
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
from src.app.users.schemas import (
    NotificationCreate,
    NotificationRead,
    UserCreate,
    UserRead,
    make_initials,
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _plain(data: dict) -> dict:
    return {k: getattr(v, "value", v) for k, v in data.items()}


def _merge(model, data) -> Any:
    values = model.model_dump()
    values.update(_plain(data.model_dump(exclude_none=True)))
    return type(model)(**values)


# ── In-Memory Test Doubles ──────────────────────────────────────────────────


class InMemoryUserRepository:
    """In-memory UserRepository for testing without database."""

    def __init__(self) -> None:
        self._users: dict[int, UserRead] = {}
        self._hashes: dict[int, str] = {}
        self._ids = itertools.count(1)

    async def create_user(self, data: UserCreate, hashed_password: str) -> UserRead:
        user_id = next(self._ids)
        user = UserRead(
            id=user_id,
            username=data.username,
            full_name=data.full_name,
            initials=make_initials(data.full_name),
            email=data.email,
            role=data.role.value,
            avatar_color=data.avatar_color,
            last_active=_now(),
            created_at=_now(),
        )
        self._users[user_id] = user
        self._hashes[user_id] = hashed_password
        return user

    async def get_user(self, user_id: int) -> UserRead | None:
        return self._users.get(user_id)

    async def get_user_by_username(self, username: str) -> UserRead | None:
        return next((u for u in self._users.values() if u.username == username), None)

    async def get_user_by_email(self, email: str) -> UserRead | None:
        return next((u for u in self._users.values() if u.email == email), None)

    async def get_credentials(self, username: str) -> tuple[UserRead, str] | None:
        user = await self.get_user_by_username(username)
        if user is None:
            return None
        return user, self._hashes[user.id]

    async def list_users(self) -> list[UserRead]:
        return sorted(self._users.values(), key=lambda u: u.id)

    async def update_user(self, user_id: int, values: dict[str, Any]) -> UserRead | None:
        user = self._users.get(user_id)
        if user is None:
            return None
        values = dict(values)
        if "hashed_password" in values:
            self._hashes[user_id] = values.pop("hashed_password")
        updated = user.model_copy(update=values)
        self._users[user_id] = updated
        return updated

    async def touch_last_active(self, user_id: int) -> None:
        if user_id in self._users:
            self._users[user_id] = self._users[user_id].model_copy(
                update={"last_active": _now()}
            )


class InMemoryNotificationRepository:
    """In-memory NotificationRepository for testing without database."""

    def __init__(self) -> None:
        self._notifications: dict[int, NotificationRead] = {}
        self._ids = itertools.count(1)

    async def create_notification(self, data: NotificationCreate) -> NotificationRead:
        notification = NotificationRead(
            id=next(self._ids), created_at=_now(), **_plain(data.model_dump())
        )
        self._notifications[notification.id] = notification
        return notification

    async def get_notification(self, notification_id: int) -> NotificationRead | None:
        return self._notifications.get(notification_id)

    async def list_notifications(self, user_id: int) -> list[NotificationRead]:
        return sorted(
            (n for n in self._notifications.values() if n.user_id == user_id),
            key=lambda n: (n.created_at, n.id),
            reverse=True,
        )

    async def count_unread(self, user_id: int) -> int:
        return sum(
            1 for n in self._notifications.values() if n.user_id == user_id and not n.is_read
        )

    async def mark_read(self, notification_id: int) -> NotificationRead | None:
        notification = self._notifications.get(notification_id)
        if notification is None:
            return None
        notification = notification.model_copy(update={"is_read": True})
        self._notifications[notification_id] = notification
        return notification

    async def mark_all_read(self, user_id: int) -> int:
        count = 0
        for n in list(self._notifications.values()):
            if n.user_id == user_id and not n.is_read:
                self._notifications[n.id] = n.model_copy(update={"is_read": True})
                count += 1
        return count


class InMemoryDealRepository:
    """In-memory DealRepository for testing without database."""

    def __init__(self) -> None:
        self.deals: dict[int, DealRead] = {}
        self.timeline: dict[int, TimelineEventRead] = {}
        self.stars: dict[int, DealStarRead] = {}
        self.memos: dict[int, MemoRead] = {}
        self.comments: dict[int, MemoCommentRead] = {}
        self.assignments: dict[int, DealAssignmentRead] = {}
        self.documents: dict[int, DocumentRead] = {}
        self.closing_events: dict[int, ClosingEventRead] = {}
        self._ids = itertools.count(1)

    # Deals

    async def create_deal(self, data: DealCreate, created_by: int) -> DealRead:
        deal = DealRead(
            id=next(self._ids),
            created_by=created_by,
            created_at=_now(),
            updated_at=_now(),
            **_plain(data.model_dump()),
        )
        self.deals[deal.id] = deal
        return deal

    async def get_deal(self, deal_id: int) -> DealRead | None:
        return self.deals.get(deal_id)

    async def list_deals(self, stage: str | None = None) -> list[DealRead]:
        deals = [d for d in self.deals.values() if stage is None or d.stage == stage]
        return sorted(deals, key=lambda d: (d.created_at, d.id), reverse=True)

    async def update_deal(self, deal_id: int, data: DealUpdate) -> DealRead | None:
        deal = self.deals.get(deal_id)
        if deal is None:
            return None
        updated = _merge(deal, data).model_copy(update={"updated_at": _now()})
        self.deals[deal_id] = updated
        return updated

    async def delete_deal(self, deal_id: int) -> bool:
        return self.deals.pop(deal_id, None) is not None

    # Timeline

    async def add_timeline_event(self, data: TimelineEventCreate) -> TimelineEventRead:
        event = TimelineEventRead(id=next(self._ids), created_at=_now(), **_plain(data.model_dump()))
        self.timeline[event.id] = event
        return event

    async def list_timeline_events(self, deal_id: int) -> list[TimelineEventRead]:
        return sorted(
            (e for e in self.timeline.values() if e.deal_id == deal_id),
            key=lambda e: (e.created_at, e.id),
            reverse=True,
        )

    async def delete_timeline_events(self, deal_id: int, event_type: str, created_by: int) -> int:
        doomed = [
            e.id
            for e in self.timeline.values()
            if e.deal_id == deal_id and e.event_type == event_type and e.created_by == created_by
        ]
        for event_id in doomed:
            del self.timeline[event_id]
        return len(doomed)

    # Stars

    async def star_deal(self, deal_id: int, user_id: int) -> bool:
        if any(s.deal_id == deal_id and s.user_id == user_id for s in self.stars.values()):
            return False
        star = DealStarRead(id=next(self._ids), deal_id=deal_id, user_id=user_id, created_at=_now())
        self.stars[star.id] = star
        return True

    async def unstar_deal(self, deal_id: int, user_id: int) -> bool:
        for star in list(self.stars.values()):
            if star.deal_id == deal_id and star.user_id == user_id:
                del self.stars[star.id]
                return True
        return False

    async def list_stars(self, deal_id: int | None = None) -> list[DealStarRead]:
        return [s for s in self.stars.values() if deal_id is None or s.deal_id == deal_id]

    async def count_stars(self, deal_id: int) -> int:
        return len(await self.list_stars(deal_id))

    # Memos

    @staticmethod
    def _with_alignment(memo: MemoRead) -> MemoRead:
        pct, score = gp_alignment(memo.raise_amount, memo.gp_commitment)
        return memo.model_copy(update={"gp_alignment_percentage": pct, "alignment_score": score})

    async def create_memo(self, deal_id: int, user_id: int, data: MemoCreate) -> MemoRead:
        memo = MemoRead(
            id=next(self._ids),
            deal_id=deal_id,
            user_id=user_id,
            created_at=_now(),
            updated_at=_now(),
            **data.model_dump(),
        )
        memo = self._with_alignment(memo)
        self.memos[memo.id] = memo
        return memo

    async def get_memo(self, memo_id: int) -> MemoRead | None:
        return self.memos.get(memo_id)

    async def list_memos(self, deal_id: int | None = None) -> list[MemoRead]:
        return [m for m in self.memos.values() if deal_id is None or m.deal_id == deal_id]

    async def update_memo(self, memo_id: int, data: MemoUpdate) -> MemoRead | None:
        memo = self.memos.get(memo_id)
        if memo is None:
            return None
        updated = self._with_alignment(_merge(memo, data))
        self.memos[memo_id] = updated
        return updated

    async def create_memo_comment(
        self, memo_id: int, deal_id: int, user_id: int, text: str
    ) -> MemoCommentRead:
        comment = MemoCommentRead(
            id=next(self._ids), memo_id=memo_id, deal_id=deal_id, user_id=user_id,
            text=text, created_at=_now(),
        )
        self.comments[comment.id] = comment
        return comment

    async def list_memo_comments(self, memo_id: int) -> list[MemoCommentRead]:
        return [c for c in self.comments.values() if c.memo_id == memo_id]

    # Assignments

    async def assign_user(self, deal_id: int, user_id: int) -> DealAssignmentRead | None:
        if any(a.deal_id == deal_id and a.user_id == user_id for a in self.assignments.values()):
            return None
        assignment = DealAssignmentRead(
            id=next(self._ids), deal_id=deal_id, user_id=user_id, created_at=_now()
        )
        self.assignments[assignment.id] = assignment
        return assignment

    async def unassign_user(self, deal_id: int, user_id: int) -> bool:
        for a in list(self.assignments.values()):
            if a.deal_id == deal_id and a.user_id == user_id:
                del self.assignments[a.id]
                return True
        return False

    async def list_assignments(self, deal_id: int) -> list[DealAssignmentRead]:
        return [a for a in self.assignments.values() if a.deal_id == deal_id]

    # Documents

    async def create_document(self, data: DocumentCreate) -> DocumentRead:
        document = DocumentRead(id=next(self._ids), uploaded_at=_now(), **_plain(data.model_dump()))
        self.documents[document.id] = document
        return document

    async def get_document(self, document_id: int) -> DocumentRead | None:
        return self.documents.get(document_id)

    async def list_documents(
        self, deal_id: int, document_type: str | None = None
    ) -> list[DocumentRead]:
        return [
            d
            for d in self.documents.values()
            if d.deal_id == deal_id and (document_type is None or d.document_type == document_type)
        ]

    async def update_document(self, document_id: int, data: DocumentUpdate) -> DocumentRead | None:
        document = self.documents.get(document_id)
        if document is None:
            return None
        self.documents[document_id] = _merge(document, data)
        return self.documents[document_id]

    async def delete_document(self, document_id: int) -> bool:
        return self.documents.pop(document_id, None) is not None

    # Closing schedule

    async def create_closing_event(
        self, data: ClosingEventCreate, created_by: int
    ) -> ClosingEventRead:
        event = ClosingEventRead(
            id=next(self._ids),
            created_by=created_by,
            created_at=_now(),
            updated_at=_now(),
            **_plain(data.model_dump()),
        )
        self.closing_events[event.id] = event
        return event

    async def get_closing_event(self, event_id: int) -> ClosingEventRead | None:
        return self.closing_events.get(event_id)

    async def list_closing_events(self, deal_id: int | None = None) -> list[ClosingEventRead]:
        events = [e for e in self.closing_events.values() if deal_id is None or e.deal_id == deal_id]
        return sorted(events, key=lambda e: e.scheduled_date)

    async def update_closing_event(
        self, event_id: int, data: ClosingEventUpdate
    ) -> ClosingEventRead | None:
        event = self.closing_events.get(event_id)
        if event is None:
            return None
        self.closing_events[event_id] = _merge(event, data)
        return self.closing_events[event_id]

    async def delete_closing_event(self, event_id: int) -> bool:
        return self.closing_events.pop(event_id, None) is not None


class InMemoryFundRepository:
    """In-memory FundRepository; deletes cascade like the foreign keys do."""

    def __init__(self) -> None:
        self.funds: dict[int, FundRead] = {}
        self.allocations: dict[int, AllocationRead] = {}
        self.calls: dict[int, CapitalCallRead] = {}
        self.payments: dict[int, PaymentRead] = {}
        self.distributions: dict[int, DistributionRead] = {}
        self._ids = itertools.count(1)

    # Funds

    async def create_fund(self, data: FundCreate) -> FundRead:
        fund = FundRead(id=next(self._ids), aum=0.0, created_at=_now(), **data.model_dump())
        self.funds[fund.id] = fund
        return fund

    async def get_fund(self, fund_id: int) -> FundRead | None:
        return self.funds.get(fund_id)

    async def list_funds(self) -> list[FundRead]:
        return sorted(self.funds.values(), key=lambda f: f.id)

    async def update_fund(self, fund_id: int, data: FundUpdate) -> FundRead | None:
        fund = self.funds.get(fund_id)
        if fund is None:
            return None
        self.funds[fund_id] = _merge(fund, data)
        return self.funds[fund_id]

    async def delete_fund(self, fund_id: int) -> bool:
        if self.funds.pop(fund_id, None) is None:
            return False
        await self.delete_allocations_for_fund(fund_id)
        return True

    # Allocations

    async def create_allocation(self, data: AllocationCreate) -> AllocationRead:
        allocation = AllocationRead(
            id=next(self._ids),
            fund_id=data.fund_id,
            deal_id=data.deal_id,
            amount=data.amount,
            amount_type=data.amount_type.value,
            security_type=data.security_type,
            allocation_date=data.allocation_date,
            notes=data.notes,
            status=data.status.value,
        )
        self.allocations[allocation.id] = allocation
        return allocation

    async def get_allocation(self, allocation_id: int) -> AllocationRead | None:
        return self.allocations.get(allocation_id)

    async def list_allocations(
        self, fund_id: int | None = None, deal_id: int | None = None
    ) -> list[AllocationRead]:
        return sorted(
            (
                a
                for a in self.allocations.values()
                if (fund_id is None or a.fund_id == fund_id)
                and (deal_id is None or a.deal_id == deal_id)
            ),
            key=lambda a: a.id,
        )

    async def update_allocation(
        self, allocation_id: int, data: AllocationUpdate
    ) -> AllocationRead | None:
        allocation = self.allocations.get(allocation_id)
        if allocation is None:
            return None
        self.allocations[allocation_id] = _merge(allocation, data)
        return self.allocations[allocation_id]

    async def delete_allocation(self, allocation_id: int) -> bool:
        if self.allocations.pop(allocation_id, None) is None:
            return False
        for call in [c for c in self.calls.values() if c.allocation_id == allocation_id]:
            await self.delete_capital_call(call.id)
        for dist in [d for d in self.distributions.values() if d.allocation_id == allocation_id]:
            del self.distributions[dist.id]
        return True

    async def delete_allocations_for_fund(self, fund_id: int) -> int:
        ids = [a.id for a in self.allocations.values() if a.fund_id == fund_id]
        for allocation_id in ids:
            await self.delete_allocation(allocation_id)
        return len(ids)

    # Capital calls

    async def create_capital_call(self, data: CapitalCallCreate) -> CapitalCallRead:
        values = _plain(data.model_dump())
        call = CapitalCallRead(
            id=next(self._ids),
            outstanding_amount=max(0.0, data.call_amount - data.paid_amount),
            created_at=_now(),
            updated_at=_now(),
            **values,
        )
        self.calls[call.id] = call
        return call

    async def get_capital_call(self, capital_call_id: int) -> CapitalCallRead | None:
        return self.calls.get(capital_call_id)

    async def list_capital_calls(
        self,
        allocation_ids: list[int] | None = None,
        due_from: datetime | None = None,
        due_to: datetime | None = None,
    ) -> list[CapitalCallRead]:
        if allocation_ids is not None and not allocation_ids:
            return []
        calls = [
            c
            for c in self.calls.values()
            if (allocation_ids is None or c.allocation_id in allocation_ids)
            and (due_from is None or c.due_date >= due_from)
            and (due_to is None or c.due_date <= due_to)
        ]
        return sorted(calls, key=lambda c: (c.due_date, c.id))

    async def update_capital_call(
        self, capital_call_id: int, data: CapitalCallUpdate
    ) -> CapitalCallRead | None:
        call = self.calls.get(capital_call_id)
        if call is None:
            return None
        updated = _merge(call, data).model_copy(update={"updated_at": _now()})
        self.calls[capital_call_id] = updated
        return updated

    async def delete_capital_call(self, capital_call_id: int) -> bool:
        if self.calls.pop(capital_call_id, None) is None:
            return False
        for payment in [p for p in self.payments.values() if p.capital_call_id == capital_call_id]:
            del self.payments[payment.id]
        return True

    # Payments

    async def create_payment(
        self, capital_call_id: int, data: PaymentCreate, created_by: int
    ) -> PaymentRead:
        payment = PaymentRead(
            id=next(self._ids),
            capital_call_id=capital_call_id,
            payment_amount=data.payment_amount,
            payment_date=data.payment_date or _now(),
            payment_type=data.payment_type.value,
            notes=data.notes,
            created_by=created_by,
            created_at=_now(),
        )
        self.payments[payment.id] = payment
        return payment

    async def list_payments(self, capital_call_id: int) -> list[PaymentRead]:
        return sorted(
            (p for p in self.payments.values() if p.capital_call_id == capital_call_id),
            key=lambda p: (p.payment_date, p.id),
        )

    # Distributions

    async def create_distribution(self, data: DistributionCreate) -> DistributionRead:
        distribution = DistributionRead(
            id=next(self._ids), created_at=_now(), updated_at=_now(), **_plain(data.model_dump())
        )
        self.distributions[distribution.id] = distribution
        return distribution

    async def get_distribution(self, distribution_id: int) -> DistributionRead | None:
        return self.distributions.get(distribution_id)

    async def list_distributions(
        self, allocation_ids: list[int] | None = None
    ) -> list[DistributionRead]:
        if allocation_ids is not None and not allocation_ids:
            return []
        return sorted(
            (
                d
                for d in self.distributions.values()
                if allocation_ids is None or d.allocation_id in allocation_ids
            ),
            key=lambda d: (d.distribution_date, d.id),
        )

    async def update_distribution(
        self, distribution_id: int, data: DistributionUpdate
    ) -> DistributionRead | None:
        distribution = self.distributions.get(distribution_id)
        if distribution is None:
            return None
        self.distributions[distribution_id] = _merge(distribution, data)
        return self.distributions[distribution_id]

    async def delete_distribution(self, distribution_id: int) -> bool:
        return self.distributions.pop(distribution_id, None) is not None


class InMemoryResponseCache:
    """Dict-backed stand-in for ResponseCache."""

    def __init__(self) -> None:
        self.store: dict[tuple[str, str], Any] = {}

    async def get_json(self, namespace: str, key: str) -> Any | None:
        return self.store.get((namespace, key))

    async def set_json(self, namespace: str, key: str, value: Any, ttl: int | None = None) -> None:
        self.store[(namespace, key)] = value

    async def invalidate(self, *namespaces: str) -> None:
        for cache_key in [k for k in self.store if k[0] in namespaces]:
            del self.store[cache_key]


# ── App Harness ─────────────────────────────────────────────────────────────


def _make_mock_app() -> FastAPI:
    """Create a FastAPI app with the full API router and no lifespan."""
    from src.app.api.v1.router import router
    from src.app.errors import register_exception_handlers

    app = FastAPI()
    register_exception_handlers(app)
    app.include_router(router)
    return app


@dataclass
class ApiHarness:
    app: FastAPI
    users: InMemoryUserRepository
    notifications: InMemoryNotificationRepository
    deals: InMemoryDealRepository
    funds: InMemoryFundRepository
    cache: InMemoryResponseCache
    client: AsyncClient | None = None
    current_user: UserRead | None = None
    _user_seq: itertools.count = field(default_factory=lambda: itertools.count(1))

    def act_as(self, user: UserRead | None) -> None:
        self.current_user = user

    async def create_user(
        self, role: str = "analyst", username: str | None = None, full_name: str | None = None
    ) -> UserRead:
        n = next(self._user_seq)
        username = username or f"{role}{n}"
        return await self.users.create_user(
            UserCreate(
                username=username,
                password="secret-password",
                full_name=full_name or f"{role.title()} User{n}",
                email=f"{username}@example.com",
                role=role,
            ),
            hashed_password="not-a-real-hash",
        )


def _build_harness() -> ApiHarness:
    app = _make_mock_app()
    harness = ApiHarness(
        app=app,
        users=InMemoryUserRepository(),
        notifications=InMemoryNotificationRepository(),
        deals=InMemoryDealRepository(),
        funds=InMemoryFundRepository(),
        cache=InMemoryResponseCache(),
    )
    app.state.user_repository = harness.users
    app.state.notification_repository = harness.notifications
    app.state.deal_repository = harness.deals
    app.state.fund_repository = harness.funds
    app.state.response_cache = harness.cache
    return harness


@pytest_asyncio.fixture
async def api() -> AsyncGenerator[ApiHarness, None]:
    """Full API with in-memory repositories, authenticated as an admin."""
    from src.app.api.deps import get_current_user

    harness = _build_harness()

    def _current_user() -> UserRead:
        if harness.current_user is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated"
            )
        return harness.current_user

    harness.app.dependency_overrides[get_current_user] = _current_user
    harness.act_as(await harness.create_user(role="admin", username="admin"))

    transport = ASGITransport(app=harness.app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        harness.client = client
        yield harness


@pytest_asyncio.fixture
async def auth_api() -> AsyncGenerator[ApiHarness, None]:
    """Full API with the real session-cookie authentication."""
    harness = _build_harness()
    transport = ASGITransport(app=harness.app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        harness.client = client
        yield harness


@pytest.fixture
def fund_repo() -> InMemoryFundRepository:
    return InMemoryFundRepository()
