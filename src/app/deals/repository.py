"""Deal pipeline repository -- async CRUD for all deal entities.

Provides DealRepository with the session_factory callable pattern used by
every repository. Handles serialization between Pydantic schemas and
SQLAlchemy models for deals, timeline events, stars, memos, memo comments,
assignments, documents and closing schedule events.

JSONB columns named ``metadata`` are mapped to ``metadata_json`` on the
models (``metadata`` is reserved by SQLAlchemy's declarative base).
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timezone

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.app.deals.models import (
    ClosingScheduleEventModel,
    DealAssignmentModel,
    DealModel,
    DealStarModel,
    DocumentModel,
    MemoCommentModel,
    MiniMemoModel,
    TimelineEventModel,
)
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

logger = structlog.get_logger(__name__)


# ── Serialization Helpers ───────────────────────────────────────────────────


def _float_or_none(value) -> float | None:
    return float(value) if value is not None else None


def _model_to_deal(model: DealModel) -> DealRead:
    """Convert DealModel to DealRead schema."""
    return DealRead(
        id=model.id,
        name=model.name,
        description=model.description,
        sector=model.sector,
        stage=model.stage,
        rejection_reason=model.rejection_reason,
        rejected_at=model.rejected_at,
        target_return=model.target_return,
        score=model.score,
        contact_email=model.contact_email,
        notes=model.notes,
        tags=model.tags or [],
        round=model.round,
        target_raise=model.target_raise,
        valuation=model.valuation,
        lead_investor=model.lead_investor,
        projected_irr=model.projected_irr,
        projected_multiple=model.projected_multiple,
        company_stage=model.company_stage,
        created_by=model.created_by,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def _model_to_timeline_event(model: TimelineEventModel) -> TimelineEventRead:
    return TimelineEventRead(
        id=model.id,
        deal_id=model.deal_id,
        event_type=model.event_type,
        content=model.content,
        created_by=model.created_by,
        metadata=model.metadata_json or {},
        created_at=model.created_at,
    )


def _model_to_memo(model: MiniMemoModel) -> MemoRead:
    """Convert MiniMemoModel to MemoRead; Numeric amounts become floats."""
    return MemoRead(
        id=model.id,
        deal_id=model.deal_id,
        user_id=model.user_id,
        thesis=model.thesis,
        risks_and_mitigations=model.risks_and_mitigations,
        pricing_consideration=model.pricing_consideration,
        score=model.score or 0,
        market_risk_score=model.market_risk_score,
        execution_risk_score=model.execution_risk_score,
        team_strength_score=model.team_strength_score,
        product_fit_score=model.product_fit_score,
        valuation_score=model.valuation_score,
        competitive_advantage_score=model.competitive_advantage_score,
        due_diligence_checklist=model.due_diligence_checklist or {},
        raise_amount=_float_or_none(model.raise_amount),
        gp_commitment=_float_or_none(model.gp_commitment),
        gp_alignment_percentage=model.gp_alignment_percentage,
        alignment_score=model.alignment_score,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def _model_to_comment(model: MemoCommentModel) -> MemoCommentRead:
    return MemoCommentRead(
        id=model.id,
        memo_id=model.memo_id,
        deal_id=model.deal_id,
        user_id=model.user_id,
        text=model.text,
        created_at=model.created_at,
    )


def _model_to_document(model: DocumentModel) -> DocumentRead:
    return DocumentRead(
        id=model.id,
        deal_id=model.deal_id,
        file_name=model.file_name,
        file_type=model.file_type,
        file_size=model.file_size,
        file_path=model.file_path,
        uploaded_by=model.uploaded_by,
        uploaded_at=model.uploaded_at,
        description=model.description,
        document_type=model.document_type,
        metadata=model.metadata_json or {},
        version=model.version or 1,
    )


def _model_to_closing_event(model: ClosingScheduleEventModel) -> ClosingEventRead:
    return ClosingEventRead(
        id=model.id,
        deal_id=model.deal_id,
        event_type=model.event_type,
        event_name=model.event_name,
        scheduled_date=model.scheduled_date,
        actual_date=model.actual_date,
        target_amount=model.target_amount,
        amount_type=model.amount_type,
        actual_amount=model.actual_amount,
        status=model.status,
        notes=model.notes,
        created_by=model.created_by,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def _apply_alignment(model: MiniMemoModel) -> None:
    pct, score = gp_alignment(
        _float_or_none(model.raise_amount), _float_or_none(model.gp_commitment)
    )
    model.gp_alignment_percentage = pct
    model.alignment_score = score


def _plain(data: dict) -> dict:
    return {k: getattr(v, "value", v) for k, v in data.items()}


# ── Repository ──────────────────────────────────────────────────────────────


class DealRepository:
    """Async CRUD operations for the deal pipeline.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    # ── Deals ───────────────────────────────────────────────────────────────

    async def create_deal(self, data: DealCreate, created_by: int) -> DealRead:
        """Create a new deal.

        Args:
            data: DealCreate schema with deal details.
            created_by: ID of the user creating the deal.

        Returns:
            DealRead with all persisted fields.
        """
        async for session in self._session_factory():
            model = DealModel(**_plain(data.model_dump()), created_by=created_by)
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return _model_to_deal(model)

    async def get_deal(self, deal_id: int) -> DealRead | None:
        async for session in self._session_factory():
            model = await session.get(DealModel, deal_id)
            return _model_to_deal(model) if model else None

    async def list_deals(self, stage: str | None = None) -> list[DealRead]:
        """List deals, newest first, optionally restricted to one stage."""
        async for session in self._session_factory():
            stmt = select(DealModel)
            if stage is not None:
                stmt = stmt.where(DealModel.stage == stage)
            result = await session.execute(stmt.order_by(DealModel.created_at.desc()))
            return [_model_to_deal(m) for m in result.scalars().all()]

    async def update_deal(self, deal_id: int, data: DealUpdate) -> DealRead | None:
        """Apply the non-None fields of ``data`` to a deal.

        Returns:
            Updated DealRead, or None if the deal does not exist.
        """
        async for session in self._session_factory():
            model = await session.get(DealModel, deal_id)
            if model is None:
                return None
            for key, value in _plain(data.model_dump(exclude_none=True)).items():
                setattr(model, key, value)
            model.updated_at = datetime.now(timezone.utc)
            await session.commit()
            await session.refresh(model)
            return _model_to_deal(model)

    async def delete_deal(self, deal_id: int) -> bool:
        async for session in self._session_factory():
            result = await session.execute(delete(DealModel).where(DealModel.id == deal_id))
            await session.commit()
            return bool(result.rowcount)

    # ── Timeline ────────────────────────────────────────────────────────────

    async def add_timeline_event(self, data: TimelineEventCreate) -> TimelineEventRead:
        async for session in self._session_factory():
            model = TimelineEventModel(
                deal_id=data.deal_id,
                event_type=data.event_type.value,
                content=data.content,
                created_by=data.created_by,
                metadata_json=data.metadata,
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return _model_to_timeline_event(model)

    async def list_timeline_events(self, deal_id: int) -> list[TimelineEventRead]:
        """Timeline of a deal, newest first."""
        async for session in self._session_factory():
            result = await session.execute(
                select(TimelineEventModel)
                .where(TimelineEventModel.deal_id == deal_id)
                .order_by(TimelineEventModel.created_at.desc(), TimelineEventModel.id.desc())
            )
            return [_model_to_timeline_event(m) for m in result.scalars().all()]

    async def delete_timeline_events(
        self, deal_id: int, event_type: str, created_by: int
    ) -> int:
        async for session in self._session_factory():
            result = await session.execute(
                delete(TimelineEventModel).where(
                    TimelineEventModel.deal_id == deal_id,
                    TimelineEventModel.event_type == event_type,
                    TimelineEventModel.created_by == created_by,
                )
            )
            await session.commit()
            return result.rowcount or 0

    # ── Stars ───────────────────────────────────────────────────────────────

    async def star_deal(self, deal_id: int, user_id: int) -> bool:
        """Star a deal for a user.

        Returns:
            True if a new star was created, False if it already existed.
        """
        async for session in self._session_factory():
            existing = await session.execute(
                select(DealStarModel).where(
                    DealStarModel.deal_id == deal_id, DealStarModel.user_id == user_id
                )
            )
            if existing.scalar_one_or_none() is not None:
                return False
            session.add(DealStarModel(deal_id=deal_id, user_id=user_id))
            await session.commit()
            return True

    async def unstar_deal(self, deal_id: int, user_id: int) -> bool:
        async for session in self._session_factory():
            result = await session.execute(
                delete(DealStarModel).where(
                    DealStarModel.deal_id == deal_id, DealStarModel.user_id == user_id
                )
            )
            await session.commit()
            return bool(result.rowcount)

    async def list_stars(self, deal_id: int | None = None) -> list[DealStarRead]:
        async for session in self._session_factory():
            stmt = select(DealStarModel)
            if deal_id is not None:
                stmt = stmt.where(DealStarModel.deal_id == deal_id)
            result = await session.execute(stmt)
            return [
                DealStarRead(
                    id=m.id, deal_id=m.deal_id, user_id=m.user_id, created_at=m.created_at
                )
                for m in result.scalars().all()
            ]

    async def count_stars(self, deal_id: int) -> int:
        async for session in self._session_factory():
            result = await session.execute(
                select(func.count()).select_from(DealStarModel).where(
                    DealStarModel.deal_id == deal_id
                )
            )
            return int(result.scalar_one())

    # ── Memos ───────────────────────────────────────────────────────────────

    async def create_memo(self, deal_id: int, user_id: int, data: MemoCreate) -> MemoRead:
        """Create a memo; GP alignment fields are derived from the amounts."""
        async for session in self._session_factory():
            model = MiniMemoModel(deal_id=deal_id, user_id=user_id, **data.model_dump())
            _apply_alignment(model)
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return _model_to_memo(model)

    async def get_memo(self, memo_id: int) -> MemoRead | None:
        async for session in self._session_factory():
            model = await session.get(MiniMemoModel, memo_id)
            return _model_to_memo(model) if model else None

    async def list_memos(self, deal_id: int | None = None) -> list[MemoRead]:
        async for session in self._session_factory():
            stmt = select(MiniMemoModel)
            if deal_id is not None:
                stmt = stmt.where(MiniMemoModel.deal_id == deal_id)
            result = await session.execute(stmt.order_by(MiniMemoModel.created_at.desc()))
            return [_model_to_memo(m) for m in result.scalars().all()]

    async def update_memo(self, memo_id: int, data: MemoUpdate) -> MemoRead | None:
        async for session in self._session_factory():
            model = await session.get(MiniMemoModel, memo_id)
            if model is None:
                return None
            for key, value in data.model_dump(exclude_none=True).items():
                setattr(model, key, value)
            _apply_alignment(model)
            model.updated_at = datetime.now(timezone.utc)
            await session.commit()
            await session.refresh(model)
            return _model_to_memo(model)

    # ── Memo Comments ───────────────────────────────────────────────────────

    async def create_memo_comment(
        self, memo_id: int, deal_id: int, user_id: int, text: str
    ) -> MemoCommentRead:
        async for session in self._session_factory():
            model = MemoCommentModel(memo_id=memo_id, deal_id=deal_id, user_id=user_id, text=text)
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return _model_to_comment(model)

    async def list_memo_comments(self, memo_id: int) -> list[MemoCommentRead]:
        async for session in self._session_factory():
            result = await session.execute(
                select(MemoCommentModel)
                .where(MemoCommentModel.memo_id == memo_id)
                .order_by(MemoCommentModel.created_at, MemoCommentModel.id)
            )
            return [_model_to_comment(m) for m in result.scalars().all()]

    # ── Assignments ─────────────────────────────────────────────────────────

    async def assign_user(self, deal_id: int, user_id: int) -> DealAssignmentRead | None:
        """Assign a user to a deal.

        Returns:
            The new assignment, or None if the user was already assigned.
        """
        async for session in self._session_factory():
            existing = await session.execute(
                select(DealAssignmentModel).where(
                    DealAssignmentModel.deal_id == deal_id,
                    DealAssignmentModel.user_id == user_id,
                )
            )
            if existing.scalar_one_or_none() is not None:
                return None
            model = DealAssignmentModel(deal_id=deal_id, user_id=user_id)
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return DealAssignmentRead(
                id=model.id, deal_id=model.deal_id, user_id=model.user_id,
                created_at=model.created_at,
            )

    async def unassign_user(self, deal_id: int, user_id: int) -> bool:
        async for session in self._session_factory():
            result = await session.execute(
                delete(DealAssignmentModel).where(
                    DealAssignmentModel.deal_id == deal_id,
                    DealAssignmentModel.user_id == user_id,
                )
            )
            await session.commit()
            return bool(result.rowcount)

    async def list_assignments(self, deal_id: int) -> list[DealAssignmentRead]:
        async for session in self._session_factory():
            result = await session.execute(
                select(DealAssignmentModel).where(DealAssignmentModel.deal_id == deal_id)
            )
            return [
                DealAssignmentRead(
                    id=m.id, deal_id=m.deal_id, user_id=m.user_id, created_at=m.created_at
                )
                for m in result.scalars().all()
            ]

    # ── Documents ───────────────────────────────────────────────────────────

    async def create_document(self, data: DocumentCreate) -> DocumentRead:
        async for session in self._session_factory():
            values = _plain(data.model_dump())
            values["metadata_json"] = values.pop("metadata")
            model = DocumentModel(**values)
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return _model_to_document(model)

    async def get_document(self, document_id: int) -> DocumentRead | None:
        async for session in self._session_factory():
            model = await session.get(DocumentModel, document_id)
            return _model_to_document(model) if model else None

    async def list_documents(
        self, deal_id: int, document_type: str | None = None
    ) -> list[DocumentRead]:
        async for session in self._session_factory():
            stmt = select(DocumentModel).where(DocumentModel.deal_id == deal_id)
            if document_type is not None:
                stmt = stmt.where(DocumentModel.document_type == document_type)
            result = await session.execute(stmt.order_by(DocumentModel.uploaded_at.desc()))
            return [_model_to_document(m) for m in result.scalars().all()]

    async def update_document(
        self, document_id: int, data: DocumentUpdate
    ) -> DocumentRead | None:
        async for session in self._session_factory():
            model = await session.get(DocumentModel, document_id)
            if model is None:
                return None
            values = _plain(data.model_dump(exclude_none=True))
            if "metadata" in values:
                values["metadata_json"] = values.pop("metadata")
            for key, value in values.items():
                setattr(model, key, value)
            await session.commit()
            await session.refresh(model)
            return _model_to_document(model)

    async def delete_document(self, document_id: int) -> bool:
        async for session in self._session_factory():
            result = await session.execute(
                delete(DocumentModel).where(DocumentModel.id == document_id)
            )
            await session.commit()
            return bool(result.rowcount)

    # ── Closing Schedule ────────────────────────────────────────────────────

    async def create_closing_event(
        self, data: ClosingEventCreate, created_by: int
    ) -> ClosingEventRead:
        async for session in self._session_factory():
            model = ClosingScheduleEventModel(**_plain(data.model_dump()), created_by=created_by)
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return _model_to_closing_event(model)

    async def get_closing_event(self, event_id: int) -> ClosingEventRead | None:
        async for session in self._session_factory():
            model = await session.get(ClosingScheduleEventModel, event_id)
            return _model_to_closing_event(model) if model else None

    async def list_closing_events(self, deal_id: int | None = None) -> list[ClosingEventRead]:
        async for session in self._session_factory():
            stmt = select(ClosingScheduleEventModel)
            if deal_id is not None:
                stmt = stmt.where(ClosingScheduleEventModel.deal_id == deal_id)
            result = await session.execute(
                stmt.order_by(ClosingScheduleEventModel.scheduled_date)
            )
            return [_model_to_closing_event(m) for m in result.scalars().all()]

    async def update_closing_event(
        self, event_id: int, data: ClosingEventUpdate
    ) -> ClosingEventRead | None:
        async for session in self._session_factory():
            model = await session.get(ClosingScheduleEventModel, event_id)
            if model is None:
                return None
            for key, value in _plain(data.model_dump(exclude_none=True)).items():
                setattr(model, key, value)
            model.updated_at = datetime.now(timezone.utc)
            await session.commit()
            await session.refresh(model)
            return _model_to_closing_event(model)

    async def delete_closing_event(self, event_id: int) -> bool:
        async for session in self._session_factory():
            result = await session.execute(
                delete(ClosingScheduleEventModel).where(ClosingScheduleEventModel.id == event_id)
            )
            await session.commit()
            return bool(result.rowcount)
