"""Deal pipeline rules on top of DealRepository.

Every user-visible change to a deal leaves a trace on its timeline:
creation, stage changes, notes, stars, memos, uploads and closing
milestones. Assignments and memos also notify the affected users.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import structlog

from src.app.core.permissions import (
    ASSIGNMENT_MANAGER_ROLES,
    Action,
    Role,
    can_manage_assignments,
    has_permission,
)
from src.app.deals.schemas import (
    ClosingEventCreate,
    ClosingEventRead,
    ClosingEventStatus,
    ClosingEventUpdate,
    DealCreate,
    DealDetail,
    DealRead,
    DealStage,
    DealUpdate,
    DocumentCreate,
    DocumentRead,
    MemoCommentRead,
    MemoCreate,
    MemoRead,
    MemoUpdate,
    TimelineEventCreate,
    TimelineEventRead,
    TimelineEventType,
    stage_label,
)
from src.app.deals.scoring import deal_score
from src.app.errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from src.app.users.schemas import NotificationCreate, NotificationType, UserRead

logger = structlog.get_logger(__name__)


def require_permission(user: UserRead, action: Action, resource: str) -> None:
    if not has_permission(user.role, action.value, resource):
        raise PermissionDeniedError(
            f"Your role ({user.role}) cannot {action.value} {resource}"
        )


class DealService:
    """Deal pipeline operations.

    Args:
        repository: DealRepository (or a compatible double).
        users: UserRepository, used to resolve assignees.
        notifications: NotificationRepository.
    """

    def __init__(self, repository: Any, users: Any, notifications: Any) -> None:
        self._repo = repository
        self._users = users
        self._notifications = notifications

    async def get_deal(self, deal_id: int) -> DealRead:
        deal = await self._repo.get_deal(deal_id)
        if deal is None:
            raise NotFoundError("Deal not found")
        return deal

    async def get_detail(self, deal_id: int, viewer: UserRead | None = None) -> DealDetail:
        deal = await self.get_deal(deal_id)
        stars = await self._repo.list_stars(deal_id=deal_id)
        assignments = await self._repo.list_assignments(deal_id)
        memos = await self._repo.list_memos(deal_id=deal_id)
        return DealDetail(
            **deal.model_dump(exclude={"score"}),
            score=deal_score(memos),
            stage_label=stage_label(deal.stage),
            star_count=len(stars),
            is_starred=viewer is not None and any(s.user_id == viewer.id for s in stars),
            assigned_user_ids=[a.user_id for a in assignments],
        )

    # ── Deals ───────────────────────────────────────────────────────────────

    async def list_deals(self, stage: DealStage | None = None) -> list[DealRead]:
        return await self._repo.list_deals(stage=stage.value if stage else None)

    async def create_deal(self, data: DealCreate, actor: UserRead) -> DealRead:
        require_permission(actor, Action.create, "deals")
        deal = await self._repo.create_deal(data, actor.id)
        await self._repo.assign_user(deal.id, actor.id)
        await self._timeline(
            deal.id, TimelineEventType.DEAL_CREATION, actor,
            f"Deal created by {actor.full_name}",
            {"stage": deal.stage},
        )
        logger.info("deal.created", deal_id=deal.id, user_id=actor.id, stage=deal.stage)
        return deal

    async def update_deal(self, deal_id: int, data: DealUpdate, actor: UserRead) -> DealRead:
        """Apply a partial update.

        Moving a deal into ``rejected`` requires a rejection reason and
        stamps rejected_at. Any stage change is recorded on the timeline.
        """
        require_permission(actor, Action.edit, "deals")
        deal = await self.get_deal(deal_id)
        new_stage = data.stage.value if data.stage is not None else deal.stage
        stage_changed = new_stage != deal.stage

        if stage_changed and new_stage == DealStage.REJECTED.value:
            if not (data.rejection_reason or "").strip():
                raise ValidationError("A rejection reason is required when rejecting a deal")
            data = data.model_copy(update={"rejected_at": datetime.now(timezone.utc)})

        updated = await self._repo.update_deal(deal_id, data)
        if stage_changed:
            await self._timeline(
                deal_id, TimelineEventType.STAGE_CHANGE, actor,
                f"Stage changed from {stage_label(deal.stage)} to {stage_label(new_stage)}",
                {"from": deal.stage, "to": new_stage},
            )
            logger.info(
                "deal.stage_changed", deal_id=deal_id, from_stage=deal.stage, to_stage=new_stage
            )
        return updated

    async def delete_deal(self, deal_id: int, actor: UserRead) -> None:
        require_permission(actor, Action.delete, "deals")
        if not await self._repo.delete_deal(deal_id):
            raise NotFoundError("Deal not found")
        logger.info("deal.deleted", deal_id=deal_id, user_id=actor.id)

    async def set_stage(
        self,
        deal_id: int,
        stage: DealStage,
        actor: UserRead,
        content: str,
        event_type: TimelineEventType = TimelineEventType.STAGE_CHANGE,
    ) -> DealRead:
        """Move a deal to ``stage`` on behalf of another workflow (allocations)."""
        deal = await self.get_deal(deal_id)
        if deal.stage == stage.value:
            return deal
        updated = await self._repo.update_deal(deal_id, DealUpdate(stage=stage))
        await self._timeline(
            deal_id, event_type, actor, content, {"from": deal.stage, "to": stage.value}
        )
        logger.info(
            "deal.stage_changed", deal_id=deal_id, from_stage=deal.stage, to_stage=stage.value
        )
        return updated

    # ── Timeline ────────────────────────────────────────────────────────────

    async def list_timeline(self, deal_id: int) -> list[TimelineEventRead]:
        await self.get_deal(deal_id)
        return await self._repo.list_timeline_events(deal_id)

    async def add_note(self, deal_id: int, content: str, actor: UserRead) -> TimelineEventRead:
        await self.get_deal(deal_id)
        return await self._timeline(deal_id, TimelineEventType.NOTE, actor, content)

    # ── Stars ───────────────────────────────────────────────────────────────

    async def star(self, deal_id: int, actor: UserRead) -> bool:
        await self.get_deal(deal_id)
        created = await self._repo.star_deal(deal_id, actor.id)
        if created:
            await self._timeline(
                deal_id, TimelineEventType.STAR_ADDED, actor, f"{actor.full_name} starred this deal"
            )
        return created

    async def unstar(self, deal_id: int, actor: UserRead) -> bool:
        await self.get_deal(deal_id)
        removed = await self._repo.unstar_deal(deal_id, actor.id)
        if removed:
            await self._repo.delete_timeline_events(
                deal_id, TimelineEventType.STAR_ADDED.value, actor.id
            )
        return removed

    # ── Memos ───────────────────────────────────────────────────────────────

    async def list_memos(self, deal_id: int) -> list[MemoRead]:
        await self.get_deal(deal_id)
        return await self._repo.list_memos(deal_id=deal_id)

    async def create_memo(self, deal_id: int, data: MemoCreate, actor: UserRead) -> MemoRead:
        require_permission(actor, Action.create, "memos")
        deal = await self.get_deal(deal_id)
        memo = await self._repo.create_memo(deal_id, actor.id, data)
        await self._sync_score(deal_id)
        await self._timeline(
            deal_id, TimelineEventType.MEMO_ADDED, actor,
            f"{actor.full_name} added a memo (score {memo.score}/10)",
            {"memo_id": memo.id, "score": memo.score},
        )
        for assignment in await self._repo.list_assignments(deal_id):
            if assignment.user_id == actor.id:
                continue
            await self._notifications.create_notification(
                NotificationCreate(
                    user_id=assignment.user_id,
                    title="New Memo",
                    message=f"{actor.full_name} added a memo to deal: {deal.name}",
                    type=NotificationType.memo,
                    related_id=deal_id,
                )
            )
        return memo

    async def update_memo(
        self, deal_id: int, memo_id: int, data: MemoUpdate, actor: UserRead
    ) -> MemoRead:
        memo = await self._get_memo(deal_id, memo_id)
        if memo.user_id != actor.id and actor.role != Role.admin.value:
            raise PermissionDeniedError("Only the memo author can edit this memo")
        updated = await self._repo.update_memo(memo_id, data)
        await self._sync_score(deal_id)
        return updated

    async def list_comments(self, deal_id: int, memo_id: int) -> list[MemoCommentRead]:
        await self._get_memo(deal_id, memo_id)
        return await self._repo.list_memo_comments(memo_id)

    async def add_comment(
        self, deal_id: int, memo_id: int, text: str, actor: UserRead
    ) -> MemoCommentRead:
        await self._get_memo(deal_id, memo_id)
        return await self._repo.create_memo_comment(memo_id, deal_id, actor.id, text)

    async def _get_memo(self, deal_id: int, memo_id: int) -> MemoRead:
        memo = await self._repo.get_memo(memo_id)
        if memo is None or memo.deal_id != deal_id:
            raise NotFoundError("Memo not found")
        return memo

    async def _sync_score(self, deal_id: int) -> None:
        score = deal_score(await self._repo.list_memos(deal_id=deal_id))
        if score is not None:
            await self._repo.update_deal(deal_id, DealUpdate(score=score))

    # ── Assignments ─────────────────────────────────────────────────────────

    async def list_assignees(self, deal_id: int) -> list[UserRead]:
        await self.get_deal(deal_id)
        users = []
        for assignment in await self._repo.list_assignments(deal_id):
            user = await self._users.get_user(assignment.user_id)
            if user is not None:
                users.append(user)
        return users

    async def assign(self, deal_id: int, user_id: int, actor: UserRead) -> UserRead:
        deal = await self.get_deal(deal_id)
        target = await self._get_assignable(user_id, actor)
        if await self._repo.assign_user(deal_id, user_id) is None:
            raise ConflictError("User is already assigned to this deal")
        await self._timeline(
            deal_id, TimelineEventType.NOTE, actor,
            f"{target.full_name} was assigned to this deal by {actor.full_name}",
            {"assigned_user_id": user_id},
        )
        await self._notifications.create_notification(
            NotificationCreate(
                user_id=user_id,
                title="New Deal Assignment",
                message=f"You've been assigned to deal: {deal.name}",
                type=NotificationType.assignment,
                related_id=deal_id,
            )
        )
        logger.info("deal.user_assigned", deal_id=deal_id, user_id=user_id, by=actor.id)
        return target

    async def unassign(self, deal_id: int, user_id: int, actor: UserRead) -> None:
        await self.get_deal(deal_id)
        await self._get_assignable(user_id, actor)
        if not await self._repo.unassign_user(deal_id, user_id):
            raise NotFoundError("User is not assigned to this deal")
        logger.info("deal.user_unassigned", deal_id=deal_id, user_id=user_id, by=actor.id)

    async def _get_assignable(self, user_id: int, actor: UserRead) -> UserRead:
        target = await self._users.get_user(user_id)
        if target is None:
            raise NotFoundError("User not found")
        if target.role in ASSIGNMENT_MANAGER_ROLES and not can_manage_assignments(actor.role):
            raise PermissionDeniedError(
                "Only admins and partners can manage assignments of admins or partners"
            )
        return target

    # ── Documents ───────────────────────────────────────────────────────────

    async def record_document(self, data: DocumentCreate, actor: UserRead) -> DocumentRead:
        await self.get_deal(data.deal_id)
        document = await self._repo.create_document(data)
        await self._timeline(
            data.deal_id, TimelineEventType.DOCUMENT_UPLOAD, actor,
            f"{actor.full_name} uploaded {data.file_name}",
            {"document_id": document.id, "document_type": document.document_type},
        )
        return document

    # ── Closing Schedule ────────────────────────────────────────────────────

    async def create_closing_event(
        self, data: ClosingEventCreate, actor: UserRead
    ) -> ClosingEventRead:
        await self.get_deal(data.deal_id)
        if data.status == ClosingEventStatus.COMPLETED and data.actual_date is None:
            data = data.model_copy(update={"actual_date": datetime.now(timezone.utc)})
        event = await self._repo.create_closing_event(data, actor.id)
        await self._timeline(
            data.deal_id, TimelineEventType.CLOSING_SCHEDULED, actor,
            f"{event.event_name} scheduled for {event.scheduled_date.date().isoformat()}",
            {"closing_event_id": event.id, "event_type": event.event_type},
        )
        return event

    async def update_closing_event(
        self, event_id: int, data: ClosingEventUpdate
    ) -> ClosingEventRead:
        event = await self._repo.get_closing_event(event_id)
        if event is None:
            raise NotFoundError("Closing event not found")
        if (
            data.status == ClosingEventStatus.COMPLETED
            and data.actual_date is None
            and event.actual_date is None
        ):
            data = data.model_copy(update={"actual_date": datetime.now(timezone.utc)})
        return await self._repo.update_closing_event(event_id, data)

    # ── Helpers ─────────────────────────────────────────────────────────────

    async def _timeline(
        self,
        deal_id: int,
        event_type: TimelineEventType,
        actor: UserRead,
        content: str,
        metadata: dict | None = None,
    ) -> TimelineEventRead:
        return await self._repo.add_timeline_event(
            TimelineEventCreate(
                deal_id=deal_id,
                event_type=event_type,
                content=content,
                created_by=actor.id,
                metadata=metadata or {},
            )
        )
