"""Pydantic schemas for the deal pipeline.

Defines all structured types for the deal lifecycle:
- Enums: DealStage, TimelineEventType, DocumentType, ClosingEventType, ClosingEventStatus
- Deals: DealCreate/Update/Read
- Activity: TimelineEventCreate/Read, DealStarRead, DealAssignmentRead
- Memos: MemoCreate/Update/Read, MemoCommentCreate/Read
- Documents: DocumentCreate/Update/Read
- Closing schedule: ClosingEventCreate/Update/Read
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from src.app.funds.schemas import AmountType


# ── Enums ───────────────────────────────────────────────────────────────────


class DealStage(str, Enum):
    """Pipeline stages, in pipeline order."""

    INITIAL_REVIEW = "initial_review"
    SCREENING = "screening"
    DILIGENCE = "diligence"
    IC_REVIEW = "ic_review"
    CLOSING = "closing"
    CLOSED = "closed"
    INVESTED = "invested"
    REJECTED = "rejected"


STAGE_LABELS: dict[str, str] = {
    DealStage.INITIAL_REVIEW.value: "Initial Review",
    DealStage.SCREENING.value: "Screening",
    DealStage.DILIGENCE.value: "Diligence",
    DealStage.IC_REVIEW.value: "IC Review",
    DealStage.CLOSING.value: "Closing",
    DealStage.CLOSED.value: "Closed",
    DealStage.INVESTED.value: "Invested",
    DealStage.REJECTED.value: "Rejected",
}


def stage_label(stage: str) -> str:
    return STAGE_LABELS.get(stage, stage.replace("_", " ").title())


class TimelineEventType(str, Enum):
    NOTE = "note"
    STAGE_CHANGE = "stage_change"
    DOCUMENT_UPLOAD = "document_upload"
    MEMO_ADDED = "memo_added"
    STAR_ADDED = "star_added"
    AI_ANALYSIS = "ai_analysis"
    DEAL_CREATION = "deal_creation"
    CLOSING_SCHEDULED = "closing_scheduled"
    CAPITAL_CALL = "capital_call"
    CAPITAL_CALL_UPDATE = "capital_call_update"


class DocumentType(str, Enum):
    PITCH_DECK = "pitch_deck"
    FINANCIAL_MODEL = "financial_model"
    LEGAL_DOCUMENT = "legal_document"
    DILIGENCE_REPORT = "diligence_report"
    INVESTOR_REPORT = "investor_report"
    TERM_SHEET = "term_sheet"
    CAP_TABLE = "cap_table"
    SUBSCRIPTION_AGREEMENT = "subscription_agreement"
    OTHER = "other"


class ClosingEventType(str, Enum):
    FIRST_CLOSE = "first_close"
    SECOND_CLOSE = "second_close"
    FINAL_CLOSE = "final_close"
    EXTENSION = "extension"
    CUSTOM = "custom"


class ClosingEventStatus(str, Enum):
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    DELAYED = "delayed"
    CANCELLED = "cancelled"


DUE_DILIGENCE_ITEMS: tuple[str, ...] = (
    "financialReview",
    "technicalDD",
    "legalReview",
    "marketAnalysis",
    "customerInterviews",
    "competitorAnalysis",
    "teamBackgroundCheck",
    "regulatoryCompliance",
    "esgAssessment",
    "valuationAnalysis",
)


def default_due_diligence_checklist() -> dict[str, bool]:
    return {item: False for item in DUE_DILIGENCE_ITEMS}


# ── Deals ───────────────────────────────────────────────────────────────────


class DealCreate(BaseModel):
    name: str = Field(min_length=1, max_length=300)
    description: str | None = ""
    sector: str | None = ""
    stage: DealStage = DealStage.INITIAL_REVIEW
    target_return: str | None = None
    contact_email: str | None = None
    notes: str | None = None
    tags: list[str] = Field(default_factory=list)
    round: str | None = None
    target_raise: str | None = None
    valuation: str | None = None
    lead_investor: str | None = None
    projected_irr: str | None = None
    projected_multiple: str | None = None
    company_stage: str | None = None


class DealUpdate(BaseModel):
    """Partial deal update (all fields optional)."""

    name: str | None = Field(default=None, min_length=1, max_length=300)
    description: str | None = None
    sector: str | None = None
    stage: DealStage | None = None
    rejection_reason: str | None = None
    rejected_at: datetime | None = None
    target_return: str | None = None
    score: int | None = None
    contact_email: str | None = None
    notes: str | None = None
    tags: list[str] | None = None
    round: str | None = None
    target_raise: str | None = None
    valuation: str | None = None
    lead_investor: str | None = None
    projected_irr: str | None = None
    projected_multiple: str | None = None
    company_stage: str | None = None


class DealRead(BaseModel):
    id: int
    name: str
    description: str | None = ""
    sector: str | None = ""
    stage: str = DealStage.INITIAL_REVIEW.value
    rejection_reason: str | None = None
    rejected_at: datetime | None = None
    target_return: str | None = None
    score: int | None = None
    contact_email: str | None = None
    notes: str | None = None
    tags: list[str] = Field(default_factory=list)
    round: str | None = None
    target_raise: str | None = None
    valuation: str | None = None
    lead_investor: str | None = None
    projected_irr: str | None = None
    projected_multiple: str | None = None
    company_stage: str | None = None
    created_by: int
    created_at: datetime | None = None
    updated_at: datetime | None = None


# ── Timeline, Stars, Assignments ────────────────────────────────────────────


class TimelineEventCreate(BaseModel):
    deal_id: int
    event_type: TimelineEventType
    content: str | None = None
    created_by: int
    metadata: dict[str, Any] = Field(default_factory=dict)


class TimelineEventRead(BaseModel):
    id: int
    deal_id: int
    event_type: str
    content: str | None = None
    created_by: int
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = None


class DealStarRead(BaseModel):
    id: int
    deal_id: int
    user_id: int
    created_at: datetime | None = None


class DealAssignmentRead(BaseModel):
    id: int
    deal_id: int
    user_id: int
    created_at: datetime | None = None


# ── Memos ───────────────────────────────────────────────────────────────────


class MemoCreate(BaseModel):
    thesis: str = Field(min_length=1)
    risks_and_mitigations: str | None = None
    pricing_consideration: str | None = None
    score: int = Field(ge=1, le=10)
    market_risk_score: int | None = Field(default=None, ge=1, le=10)
    execution_risk_score: int | None = Field(default=None, ge=1, le=10)
    team_strength_score: int | None = Field(default=None, ge=1, le=10)
    product_fit_score: int | None = Field(default=None, ge=1, le=10)
    valuation_score: int | None = Field(default=None, ge=1, le=10)
    competitive_advantage_score: int | None = Field(default=None, ge=1, le=10)
    due_diligence_checklist: dict[str, bool] = Field(
        default_factory=default_due_diligence_checklist
    )
    raise_amount: float | None = Field(default=None, ge=0)
    gp_commitment: float | None = Field(default=None, ge=0)


class MemoUpdate(BaseModel):
    thesis: str | None = Field(default=None, min_length=1)
    risks_and_mitigations: str | None = None
    pricing_consideration: str | None = None
    score: int | None = Field(default=None, ge=1, le=10)
    market_risk_score: int | None = Field(default=None, ge=1, le=10)
    execution_risk_score: int | None = Field(default=None, ge=1, le=10)
    team_strength_score: int | None = Field(default=None, ge=1, le=10)
    product_fit_score: int | None = Field(default=None, ge=1, le=10)
    valuation_score: int | None = Field(default=None, ge=1, le=10)
    competitive_advantage_score: int | None = Field(default=None, ge=1, le=10)
    due_diligence_checklist: dict[str, bool] | None = None
    raise_amount: float | None = Field(default=None, ge=0)
    gp_commitment: float | None = Field(default=None, ge=0)


class MemoRead(BaseModel):
    id: int
    deal_id: int
    user_id: int
    thesis: str
    risks_and_mitigations: str | None = None
    pricing_consideration: str | None = None
    score: int = 0
    market_risk_score: int | None = None
    execution_risk_score: int | None = None
    team_strength_score: int | None = None
    product_fit_score: int | None = None
    valuation_score: int | None = None
    competitive_advantage_score: int | None = None
    due_diligence_checklist: dict[str, bool] = Field(default_factory=dict)
    raise_amount: float | None = None
    gp_commitment: float | None = None
    gp_alignment_percentage: float | None = None
    alignment_score: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class MemoCommentCreate(BaseModel):
    text: str = Field(min_length=1)


class MemoCommentRead(BaseModel):
    id: int
    memo_id: int
    deal_id: int
    user_id: int
    text: str
    created_at: datetime | None = None


# ── Documents ───────────────────────────────────────────────────────────────


class DocumentCreate(BaseModel):
    deal_id: int
    file_name: str
    file_type: str
    file_size: int = Field(ge=0)
    file_path: str
    uploaded_by: int
    description: str | None = None
    document_type: DocumentType = DocumentType.OTHER
    metadata: dict[str, Any] = Field(default_factory=dict)


class DocumentUpdate(BaseModel):
    file_name: str | None = None
    description: str | None = None
    document_type: DocumentType | None = None
    metadata: dict[str, Any] | None = None
    version: int | None = Field(default=None, ge=1)


class DocumentRead(BaseModel):
    id: int
    deal_id: int
    file_name: str
    file_type: str
    file_size: int
    file_path: str
    uploaded_by: int
    uploaded_at: datetime | None = None
    description: str | None = None
    document_type: str = DocumentType.OTHER.value
    metadata: dict[str, Any] = Field(default_factory=dict)
    version: int = 1


# ── Closing Schedule ────────────────────────────────────────────────────────


class ClosingEventCreate(BaseModel):
    deal_id: int
    event_type: ClosingEventType
    event_name: str = Field(min_length=1, max_length=300)
    scheduled_date: datetime
    actual_date: datetime | None = None
    target_amount: float | None = Field(default=None, ge=0)
    amount_type: AmountType = AmountType.PERCENTAGE
    actual_amount: float | None = Field(default=None, ge=0)
    status: ClosingEventStatus = ClosingEventStatus.SCHEDULED
    notes: str | None = None


class ClosingEventUpdate(BaseModel):
    event_type: ClosingEventType | None = None
    event_name: str | None = Field(default=None, min_length=1, max_length=300)
    scheduled_date: datetime | None = None
    actual_date: datetime | None = None
    target_amount: float | None = Field(default=None, ge=0)
    amount_type: AmountType | None = None
    actual_amount: float | None = Field(default=None, ge=0)
    status: ClosingEventStatus | None = None
    notes: str | None = None


class ClosingEventRead(BaseModel):
    id: int
    deal_id: int
    event_type: str
    event_name: str
    scheduled_date: datetime
    actual_date: datetime | None = None
    target_amount: float | None = None
    amount_type: str | None = AmountType.PERCENTAGE.value
    actual_amount: float | None = None
    status: str = ClosingEventStatus.SCHEDULED.value
    notes: str | None = None
    created_by: int
    created_at: datetime | None = None
    updated_at: datetime | None = None


# ── Views ───────────────────────────────────────────────────────────────────


class DealDetail(DealRead):
    """A deal with its derived pipeline view fields."""

    stage_label: str = ""
    star_count: int = 0
    is_starred: bool = False
    assigned_user_ids: list[int] = Field(default_factory=list)
