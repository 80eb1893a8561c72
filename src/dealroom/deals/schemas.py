"""Pydantic schemas for the deal room.

Defines the structured types exchanged with DealRepository and the API:
- Enums: AccessTier, ReminderAudience
- Deals: DealCreate, DealUpdate, DealRead
- Lenders: LenderCreate, LenderRead
- Invitations: TierChange, InvitationCreate, InvitationRead
- Documents: DocumentCreate, DocumentRead
- Commitments: CommitmentCreate, CommitmentRead
- Q&A: QACreate, QAAnswer, QAItemRead
- Audit: AuditLogCreate, AuditLogRead
- Reminders: ReminderRequest, ReminderResult
"""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, EmailStr, Field


# ── Enums ───────────────────────────────────────────────────────────────────


class AccessTier(str, Enum):
    """Graduated document visibility assigned per invitation."""

    EARLY = "early"
    FULL = "full"
    LEGAL = "legal"


class ReminderAudience(str, Enum):
    """Which invited lenders a reminder goes to."""

    ALL = "all"
    MISSING_NDA = "missing_nda"
    NO_COMMITMENT = "no_commitment"
    UNVIEWED_DOCS = "unviewed_docs"


# ── Deals ───────────────────────────────────────────────────────────────────


class DealCreate(BaseModel):
    """Schema for creating a deal."""

    name: str
    sponsor: str
    industry: str | None = None
    instrument: str
    size: float = Field(gt=0)
    currency: str = "USD"
    stage: str = "Pre-Launch"
    launch_date: date | None = None
    ioi_date: date | None = None
    commitment_date: date | None = None
    close_date: date | None = None
    hard_close_date: date | None = None
    nda_required: bool = True
    sponsor_user_id: str | None = None


class DealUpdate(BaseModel):
    """Partial deal update. Only fields sent are changed; stage moves via publish."""

    name: str | None = None
    sponsor: str | None = None
    industry: str | None = None
    instrument: str | None = None
    size: float | None = Field(default=None, gt=0)
    currency: str | None = None
    launch_date: date | None = None
    ioi_date: date | None = None
    commitment_date: date | None = None
    close_date: date | None = None
    hard_close_date: date | None = None
    nda_required: bool | None = None


class DealRead(BaseModel):
    """A deal as read by the access and deadline logic. Read-only."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    sponsor: str
    industry: str | None = None
    instrument: str
    size: float
    committed: float = 0.0
    currency: str = "USD"
    stage: str = "Pre-Launch"
    launch_date: date | None = None
    ioi_date: date | None = None
    commitment_date: date | None = None
    close_date: date | None = None
    hard_close_date: date | None = None
    nda_required: bool = True
    sponsor_user_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


# ── Lenders ─────────────────────────────────────────────────────────────────


class LenderCreate(BaseModel):
    """Schema for inviting a new lender contact. Email format is validated."""

    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    email: EmailStr
    organization: str = Field(min_length=1)
    fund_type: str | None = None
    title: str | None = None
    user_id: str | None = None


class LenderRead(BaseModel):
    id: str
    first_name: str
    last_name: str
    email: str
    organization: str
    fund_type: str | None = None
    title: str | None = None
    user_id: str | None = None
    created_at: datetime | None = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


# ── Invitations ─────────────────────────────────────────────────────────────


class TierChange(BaseModel):
    """One entry in an invitation's tier history."""

    tier: AccessTier
    changed_by: str
    changed_at: datetime


class InvitationCreate(BaseModel):
    """Schema for inviting a lender to a deal."""

    lender_id: str
    access_tier: AccessTier = AccessTier.EARLY
    nda_required: bool = True
    invited_by: str


class InvitationRead(BaseModel):
    """A lender's invitation to a deal. Unique per (deal_id, lender_id)."""

    model_config = ConfigDict(frozen=True)

    id: str
    deal_id: str
    lender_id: str
    access_tier: AccessTier = AccessTier.EARLY
    nda_required: bool = True
    nda_signed_at: datetime | None = None
    nda_version: str | None = None
    signer_email: str | None = None
    invited_by: str
    invited_at: datetime | None = None
    tier_history: list[TierChange] = Field(default_factory=list)


# ── Documents ───────────────────────────────────────────────────────────────


class DocumentCreate(BaseModel):
    """Schema for registering an uploaded document on a deal."""

    name: str = Field(min_length=1, max_length=300)
    category: str = Field(min_length=1, max_length=100)
    doc_type: str | None = None
    visibility_tier: str = Field(default="early", pattern="^(early|teaser|full|legal)$")
    file_url: str | None = None
    version: int = Field(default=1, ge=1)
    change_summary: str | None = None


class DocumentRead(BaseModel):
    id: str
    deal_id: str
    name: str
    category: str
    doc_type: str | None = None
    visibility_tier: str = "early"
    file_url: str | None = None
    version: int = 1
    change_summary: str | None = None
    uploaded_at: datetime | None = None


# ── Commitments ─────────────────────────────────────────────────────────────


class CommitmentCreate(BaseModel):
    """Request body for a lender's commitment."""

    amount: float = Field(gt=0)
    spread: int | None = Field(default=None, ge=0)  # bps
    oid: float | None = Field(default=None, gt=0, le=100)
    conditions: str | None = None


class CommitmentRead(BaseModel):
    id: str
    deal_id: str
    lender_id: str
    status: str = "submitted"
    amount: float
    spread: int | None = None
    oid: float | None = None
    conditions: str | None = None
    submitted_at: datetime | None = None


# ── Q&A ─────────────────────────────────────────────────────────────────────


class QAStatus(str, Enum):
    OPEN = "open"
    ANSWERED = "answered"


class QACreate(BaseModel):
    category: str = Field(min_length=1, max_length=100)
    question: str = Field(min_length=1)


class QAAnswer(BaseModel):
    answer: str = Field(min_length=1)


class QAItemRead(BaseModel):
    id: str
    deal_id: str
    lender_id: str | None = None
    category: str
    status: QAStatus = QAStatus.OPEN
    question: str
    asked_by: str | None = None
    asked_at: datetime | None = None
    answer: str | None = None
    answered_by: str | None = None
    answered_at: datetime | None = None


# ── Audit ───────────────────────────────────────────────────────────────────


class AuditLogCreate(BaseModel):
    """Schema for appending an audit entry."""

    deal_id: str | None = None
    lender_id: str | None = None
    user_id: str | None = None
    actor_role: str = "system"
    actor_email: str | None = None
    action: str
    resource_type: str | None = None
    resource_id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class AuditLogRead(AuditLogCreate):
    id: str
    created_at: datetime | None = None


# ── Reminders ───────────────────────────────────────────────────────────────


class ReminderRequest(BaseModel):
    """Request body for POST /api/deals/{id}/reminders."""

    audience: ReminderAudience = ReminderAudience.ALL
    subject: str = Field(min_length=1, max_length=300)
    body_text: str = Field(min_length=1)


class ReminderResult(BaseModel):
    sent_count: int
    recipients: list[str] = Field(default_factory=list)
