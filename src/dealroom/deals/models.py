"""Deal room persistence models.

Seven SQLAlchemy models:
- DealModel: Syndicated facility and its lifecycle dates
- LenderModel: Investor organisations' representatives
- InvitationModel: One per (deal, lender); NDA status and access tier
- DocumentModel: Deal documents tagged with a visibility tier
- CommitmentModel: A lender's commitment (amount and pricing) to a deal
- QAItemModel: Diligence question and its answer
- AuditLogModel: Append-only activity trail per deal
"""

from __future__ import annotations

import uuid
from datetime import date, datetime

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Float,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSON
from sqlalchemy.orm import Mapped, mapped_column

from src.dealroom.core.database import Base


def _new_id() -> str:
    return str(uuid.uuid4())


class DealModel(Base):
    """A syndicated loan facility in the deal room."""

    __tablename__ = "deals"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    sponsor: Mapped[str] = mapped_column(String(200), nullable=False)
    sponsor_user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    industry: Mapped[str | None] = mapped_column(String(100), nullable=True)
    instrument: Mapped[str] = mapped_column(String(100), nullable=False)
    size: Mapped[float] = mapped_column(Float, nullable=False)
    committed: Mapped[float] = mapped_column(Float, default=0.0, server_default=text("0"))
    currency: Mapped[str] = mapped_column(String(3), default="USD", server_default=text("'USD'"))
    stage: Mapped[str] = mapped_column(
        String(50), default="Pre-Launch", server_default=text("'Pre-Launch'")
    )
    launch_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    ioi_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    commitment_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    close_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    hard_close_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    nda_required: Mapped[bool] = mapped_column(Boolean, default=True, server_default=text("true"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        onupdate=func.now(),
        nullable=True,
    )


class LenderModel(Base):
    """Representative of an investing institution."""

    __tablename__ = "lenders"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    organization: Mapped[str] = mapped_column(String(200), nullable=False)
    fund_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    title: Mapped[str | None] = mapped_column(String(200), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )


class InvitationModel(Base):
    """A lender's invitation to a deal.

    Exactly one invitation per (deal_id, lender_id). tier_history is an
    append-only JSON list of {tier, changed_by, changed_at}.
    """

    __tablename__ = "invitations"
    __table_args__ = (
        UniqueConstraint("deal_id", "lender_id", name="uq_invitation_deal_lender"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    deal_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    lender_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    access_tier: Mapped[str] = mapped_column(
        String(20), default="early", server_default=text("'early'")
    )
    nda_required: Mapped[bool] = mapped_column(Boolean, default=True, server_default=text("true"))
    nda_signed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    nda_version: Mapped[str | None] = mapped_column(String(50), nullable=True)
    signer_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    signer_ip: Mapped[str | None] = mapped_column(String(64), nullable=True)
    invited_by: Mapped[str] = mapped_column(String(255), nullable=False)
    invited_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    tier_history: Mapped[list] = mapped_column(
        JSON, default=list, server_default=text("'[]'::json")
    )


class DocumentModel(Base):
    """A deal document gated by visibility tier."""

    __tablename__ = "documents"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    deal_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    doc_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    file_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    visibility_tier: Mapped[str] = mapped_column(
        String(20), default="early", server_default=text("'early'")
    )
    version: Mapped[int] = mapped_column(Integer, default=1, server_default=text("1"))
    change_summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    uploaded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )


class AuditLogModel(Base):
    """Deal activity entry (views, downloads, NDA signatures, reminders)."""

    __tablename__ = "audit_logs"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    deal_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    lender_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    actor_role: Mapped[str] = mapped_column(String(50), nullable=False)
    actor_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    resource_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    resource_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    metadata_json: Mapped[dict] = mapped_column(
        JSON, default=dict, server_default=text("'{}'::json")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )


class CommitmentModel(Base):
    """A lender's commitment to a deal. A lender may revise by submitting again."""

    __tablename__ = "commitments"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    deal_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    lender_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    status: Mapped[str] = mapped_column(
        String(20), default="submitted", server_default=text("'submitted'")
    )
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    spread: Mapped[int | None] = mapped_column(Integer, nullable=True)
    oid: Mapped[float | None] = mapped_column(Float, nullable=True)
    conditions: Mapped[str | None] = mapped_column(Text, nullable=True)
    submitted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )


class QAItemModel(Base):
    """A diligence question on a deal, optionally asked by a lender."""

    __tablename__ = "qa_items"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    deal_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    lender_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="open", server_default=text("'open'"))
    question: Mapped[str] = mapped_column(Text, nullable=False)
    asked_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    asked_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    answer: Mapped[str | None] = mapped_column(Text, nullable=True)
    answered_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    answered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
