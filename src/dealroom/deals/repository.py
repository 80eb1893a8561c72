"""Deal room repository -- async CRUD for users, deals, lenders, invitations,
documents, commitments, Q&A and the audit trail.

Provides DealRepository with the session_factory callable pattern. Handles
serialization between Pydantic schemas and SQLAlchemy models so the access
and deadline logic only ever sees plain read models.

Uniqueness of (deal_id, lender_id) is enforced twice: a pre-check here for
a clean error, and the database unique constraint for concurrent writers.
Either path surfaces as DuplicateInvitationError.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from datetime import date, datetime, timezone

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.dealroom.deals.models import (
    AuditLogModel,
    CommitmentModel,
    DealModel,
    DocumentModel,
    InvitationModel,
    LenderModel,
    QAItemModel,
)
from src.dealroom.deals.schemas import (
    AccessTier,
    AuditLogCreate,
    AuditLogRead,
    CommitmentCreate,
    CommitmentRead,
    DealCreate,
    DealRead,
    DealUpdate,
    DocumentCreate,
    DocumentRead,
    InvitationCreate,
    InvitationRead,
    LenderCreate,
    LenderRead,
    QACreate,
    QAItemRead,
    QAStatus,
    TierChange,
)
from src.dealroom.models.user import User, UserDealAccess
from src.dealroom.schemas.auth import SessionUser, StoredUser

logger = structlog.get_logger(__name__)

# Stage a deal enters when the bookrunner publishes it to lenders
PUBLISHED_STAGE = "Marketing"


# ── Errors ──────────────────────────────────────────────────────────────────


class DealNotFoundError(LookupError):
    def __init__(self, deal_id: str) -> None:
        super().__init__(f"Deal not found: {deal_id}")
        self.deal_id = deal_id


class InvitationNotFoundError(LookupError):
    def __init__(self, deal_id: str, lender_id: str) -> None:
        super().__init__(f"Invitation not found: deal={deal_id} lender={lender_id}")
        self.deal_id = deal_id
        self.lender_id = lender_id


class DuplicateInvitationError(ValueError):
    """A lender already holds an invitation to this deal."""

    def __init__(self, deal_id: str, lender_id: str) -> None:
        super().__init__(f"Lender {lender_id} is already invited to deal {deal_id}")
        self.deal_id = deal_id
        self.lender_id = lender_id


class DuplicateLenderError(ValueError):
    def __init__(self, email: str) -> None:
        super().__init__(f"Lender already exists: {email}")
        self.email = email


# ── Serialization Helpers ───────────────────────────────────────────────────


def _model_to_user(model: User) -> StoredUser:
    return StoredUser(
        id=str(model.id),
        email=model.email,
        name=model.name,
        role=model.role,
        lender_id=model.lender_id,
        deal_access=frozenset(g.deal_id for g in (model.deal_grants or [])),
        hashed_password=model.hashed_password,
        is_active=model.is_active,
    )


def _model_to_deal(model: DealModel) -> DealRead:
    return DealRead(
        id=str(model.id),
        name=model.name,
        sponsor=model.sponsor,
        industry=model.industry,
        instrument=model.instrument,
        size=model.size,
        committed=model.committed or 0.0,
        currency=model.currency or "USD",
        stage=model.stage or "Pre-Launch",
        launch_date=model.launch_date,
        ioi_date=model.ioi_date,
        commitment_date=model.commitment_date,
        close_date=model.close_date,
        hard_close_date=model.hard_close_date,
        nda_required=model.nda_required,
        sponsor_user_id=model.sponsor_user_id,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def _model_to_lender(model: LenderModel) -> LenderRead:
    return LenderRead(
        id=str(model.id),
        first_name=model.first_name,
        last_name=model.last_name,
        email=model.email,
        organization=model.organization,
        fund_type=model.fund_type,
        title=model.title,
        user_id=model.user_id,
        created_at=model.created_at,
    )


def _model_to_invitation(model: InvitationModel) -> InvitationRead:
    # Skip malformed history entries rather than failing the whole read
    history = []
    for entry in model.tier_history or []:
        try:
            history.append(TierChange.model_validate(entry))
        except ValueError:
            logger.warning(
                "invitation.bad_tier_history_entry",
                invitation_id=str(model.id),
                entry=entry,
            )

    return InvitationRead(
        id=str(model.id),
        deal_id=model.deal_id,
        lender_id=model.lender_id,
        access_tier=AccessTier(model.access_tier or "early"),
        nda_required=model.nda_required,
        nda_signed_at=model.nda_signed_at,
        nda_version=model.nda_version,
        signer_email=model.signer_email,
        invited_by=model.invited_by,
        invited_at=model.invited_at,
        tier_history=history,
    )


def _model_to_document(model: DocumentModel) -> DocumentRead:
    return DocumentRead(
        id=str(model.id),
        deal_id=model.deal_id,
        name=model.name,
        category=model.category,
        doc_type=model.doc_type,
        visibility_tier=model.visibility_tier or "early",
        file_url=model.file_url,
        version=model.version or 1,
        change_summary=model.change_summary,
        uploaded_at=model.uploaded_at,
    )


def _model_to_commitment(model: CommitmentModel) -> CommitmentRead:
    return CommitmentRead(
        id=str(model.id),
        deal_id=model.deal_id,
        lender_id=model.lender_id,
        status=model.status or "submitted",
        amount=model.amount,
        spread=model.spread,
        oid=model.oid,
        conditions=model.conditions,
        submitted_at=model.submitted_at,
    )


def _model_to_qa(model: QAItemModel) -> QAItemRead:
    return QAItemRead(
        id=str(model.id),
        deal_id=model.deal_id,
        lender_id=model.lender_id,
        category=model.category,
        status=QAStatus(model.status or QAStatus.OPEN.value),
        question=model.question,
        asked_by=model.asked_by,
        asked_at=model.asked_at,
        answer=model.answer,
        answered_by=model.answered_by,
        answered_at=model.answered_at,
    )


def _model_to_log(model: AuditLogModel) -> AuditLogRead:
    return AuditLogRead(
        id=str(model.id),
        deal_id=model.deal_id,
        lender_id=model.lender_id,
        user_id=model.user_id,
        actor_role=model.actor_role,
        actor_email=model.actor_email,
        action=model.action,
        resource_type=model.resource_type,
        resource_id=model.resource_id,
        metadata=model.metadata_json or {},
        created_at=model.created_at,
    )


# ── Repository ──────────────────────────────────────────────────────────────


class DealRepository:
    """Async CRUD operations for the deal room.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    # ── Users ───────────────────────────────────────────────────────────────

    async def get_user(self, user_id: str) -> SessionUser | None:
        """Active user by ID, with deal access loaded."""
        async for session in self._session_factory():
            stmt = select(User).where(
                User.id == user_id,
                User.is_active == True,  # noqa: E712
            )
            result = await session.execute(stmt)
            model = result.scalar_one_or_none()
            if model is None:
                return None
            return _model_to_user(model).to_session()

    async def get_user_by_email(self, email: str) -> StoredUser | None:
        """User by email including credential fields, active or not."""
        async for session in self._session_factory():
            stmt = select(User).where(User.email == email.lower())
            result = await session.execute(stmt)
            model = result.scalar_one_or_none()
            if model is None:
                return None
            return _model_to_user(model)

    async def create_user(
        self,
        email: str,
        role: str,
        *,
        name: str | None = None,
        hashed_password: str | None = None,
        lender_id: str | None = None,
    ) -> SessionUser:
        async for session in self._session_factory():
            model = User(
                email=email.lower(),
                name=name,
                role=role,
                hashed_password=hashed_password,
                lender_id=lender_id,
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            logger.info("user.created", user_id=str(model.id), role=role)
            return _model_to_user(model).to_session()

    async def grant_deal_access(self, user_id: str, deal_id: str) -> SessionUser | None:
        """Add deal_id to the user's deal-access set. Idempotent."""
        async for session in self._session_factory():
            result = await session.execute(select(User).where(User.id == user_id))
            model = result.scalar_one_or_none()
            if model is None:
                return None
            if deal_id not in {g.deal_id for g in model.deal_grants}:
                model.deal_grants.append(UserDealAccess(deal_id=deal_id))
                await session.commit()
                logger.info("user.deal_access_granted", user_id=user_id, deal_id=deal_id)
            return _model_to_user(model).to_session()

    # ── Deals ───────────────────────────────────────────────────────────────

    async def list_deals(self, deal_ids: set[str] | frozenset[str] | None = None) -> list[DealRead]:
        """All deals, or only those in deal_ids when given."""
        async for session in self._session_factory():
            stmt = select(DealModel).order_by(DealModel.created_at.desc())
            if deal_ids is not None:
                if not deal_ids:
                    return []
                stmt = stmt.where(DealModel.id.in_(list(deal_ids)))
            result = await session.execute(stmt)
            return [_model_to_deal(m) for m in result.scalars().all()]

    async def get_deal(self, deal_id: str) -> DealRead | None:
        async for session in self._session_factory():
            result = await session.execute(select(DealModel).where(DealModel.id == deal_id))
            model = result.scalar_one_or_none()
            if model is None:
                return None
            return _model_to_deal(model)

    async def create_deal(self, data: DealCreate) -> DealRead:
        async for session in self._session_factory():
            model = DealModel(**data.model_dump())
            session.add(model)
            await session.commit()
            await session.refresh(model)
            logger.info("deal.created", deal_id=str(model.id), name=model.name)
            return _model_to_deal(model)

    async def update_deal(self, deal_id: str, data: DealUpdate) -> DealRead:
        """Apply the fields that were sent in ``data``.

        Raises:
            DealNotFoundError: If the deal does not exist.
        """
        async for session in self._session_factory():
            model = await session.get(DealModel, deal_id)
            if model is None:
                raise DealNotFoundError(deal_id)
            for key, value in data.model_dump(exclude_unset=True).items():
                setattr(model, key, value)
            await session.commit()
            await session.refresh(model)
            logger.info("deal.updated", deal_id=deal_id)
            return _model_to_deal(model)

    async def publish_deal(self, deal_id: str, launch_date: date) -> DealRead:
        """Move a deal to marketing. An existing launch date is kept.

        Raises:
            DealNotFoundError: If the deal does not exist.
        """
        async for session in self._session_factory():
            model = await session.get(DealModel, deal_id)
            if model is None:
                raise DealNotFoundError(deal_id)
            model.stage = PUBLISHED_STAGE
            if model.launch_date is None:
                model.launch_date = launch_date
            await session.commit()
            await session.refresh(model)
            logger.info("deal.published", deal_id=deal_id)
            return _model_to_deal(model)

    # ── Lenders ─────────────────────────────────────────────────────────────

    async def list_lenders(self) -> list[LenderRead]:
        async for session in self._session_factory():
            stmt = select(LenderModel).order_by(LenderModel.organization, LenderModel.last_name)
            result = await session.execute(stmt)
            return [_model_to_lender(m) for m in result.scalars().all()]

    async def get_lender(self, lender_id: str) -> LenderRead | None:
        async for session in self._session_factory():
            result = await session.execute(select(LenderModel).where(LenderModel.id == lender_id))
            model = result.scalar_one_or_none()
            return _model_to_lender(model) if model else None

    async def get_lender_by_email(self, email: str) -> LenderRead | None:
        async for session in self._session_factory():
            result = await session.execute(
                select(LenderModel).where(LenderModel.email == email.lower())
            )
            model = result.scalar_one_or_none()
            return _model_to_lender(model) if model else None

    async def create_lender(self, data: LenderCreate) -> LenderRead:
        """Create a lender contact.

        Raises:
            DuplicateLenderError: If a lender with this email already exists.
        """
        email = str(data.email).lower()
        async for session in self._session_factory():
            model = LenderModel(**{**data.model_dump(), "email": email})
            session.add(model)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise DuplicateLenderError(email) from exc
            await session.refresh(model)
            logger.info("lender.created", lender_id=str(model.id))
            return _model_to_lender(model)

    # ── Invitations ─────────────────────────────────────────────────────────

    async def list_invitations_by_deal(self, deal_id: str) -> list[InvitationRead]:
        async for session in self._session_factory():
            stmt = (
                select(InvitationModel)
                .where(InvitationModel.deal_id == deal_id)
                .order_by(InvitationModel.invited_at)
            )
            result = await session.execute(stmt)
            return [_model_to_invitation(m) for m in result.scalars().all()]

    async def list_invitations_by_lender(self, lender_id: str) -> list[InvitationRead]:
        async for session in self._session_factory():
            stmt = (
                select(InvitationModel)
                .where(InvitationModel.lender_id == lender_id)
                .order_by(InvitationModel.invited_at)
            )
            result = await session.execute(stmt)
            return [_model_to_invitation(m) for m in result.scalars().all()]

    async def get_invitation(self, deal_id: str, lender_id: str) -> InvitationRead | None:
        async for session in self._session_factory():
            model = await self._find_invitation(session, deal_id, lender_id)
            return _model_to_invitation(model) if model else None

    async def create_invitation(self, deal_id: str, data: InvitationCreate) -> InvitationRead:
        """Invite a lender to a deal.

        The initial tier is recorded as the first tier_history entry. When the
        lender has a linked user, that user is granted access to the deal.

        Raises:
            DealNotFoundError: If the deal does not exist.
            DuplicateInvitationError: If the lender is already invited.
        """
        async for session in self._session_factory():
            deal = await session.get(DealModel, deal_id)
            if deal is None:
                raise DealNotFoundError(deal_id)
            if await self._find_invitation(session, deal_id, data.lender_id) is not None:
                raise DuplicateInvitationError(deal_id, data.lender_id)

            now = datetime.now(timezone.utc)
            model = InvitationModel(
                deal_id=deal_id,
                lender_id=data.lender_id,
                access_tier=data.access_tier.value,
                nda_required=data.nda_required,
                invited_by=data.invited_by,
                invited_at=now,
                tier_history=[
                    TierChange(
                        tier=data.access_tier, changed_by=data.invited_by, changed_at=now
                    ).model_dump(mode="json")
                ],
            )
            session.add(model)

            lender = await session.get(LenderModel, data.lender_id)
            if lender is not None and lender.user_id:
                exists = await session.execute(
                    select(UserDealAccess).where(
                        UserDealAccess.user_id == lender.user_id,
                        UserDealAccess.deal_id == deal_id,
                    )
                )
                if exists.scalar_one_or_none() is None:
                    session.add(UserDealAccess(user_id=lender.user_id, deal_id=deal_id))

            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise DuplicateInvitationError(deal_id, data.lender_id) from exc
            await session.refresh(model)
            logger.info(
                "invitation.created",
                deal_id=deal_id,
                lender_id=data.lender_id,
                access_tier=data.access_tier.value,
            )
            return _model_to_invitation(model)

    async def sign_nda(
        self,
        deal_id: str,
        lender_id: str,
        *,
        signer_email: str | None = None,
        nda_version: str | None = None,
        signer_ip: str | None = None,
    ) -> InvitationRead:
        """Record an NDA signature.

        Signing again is a no-op: the first signature's timestamp, signer,
        version and IP are kept.

        Raises:
            InvitationNotFoundError: If no invitation exists for the pair.
        """
        async for session in self._session_factory():
            model = await self._find_invitation(session, deal_id, lender_id)
            if model is None:
                raise InvitationNotFoundError(deal_id, lender_id)
            if model.nda_signed_at is not None:
                return _model_to_invitation(model)
            model.nda_signed_at = datetime.now(timezone.utc)
            model.signer_email = signer_email
            model.nda_version = nda_version
            model.signer_ip = signer_ip
            await session.commit()
            await session.refresh(model)
            logger.info("invitation.nda_signed", deal_id=deal_id, lender_id=lender_id)
            return _model_to_invitation(model)

    async def update_tier(
        self, deal_id: str, lender_id: str, tier: AccessTier, changed_by: str
    ) -> InvitationRead:
        """Change an invitation's access tier and append to its history.

        Raises:
            InvitationNotFoundError: If no invitation exists for the pair.
        """
        async for session in self._session_factory():
            model = await self._find_invitation(session, deal_id, lender_id)
            if model is None:
                raise InvitationNotFoundError(deal_id, lender_id)
            change = TierChange(
                tier=tier, changed_by=changed_by, changed_at=datetime.now(timezone.utc)
            )
            model.access_tier = tier.value
            # Reassign so SQLAlchemy sees the JSON column as dirty
            model.tier_history = [*(model.tier_history or []), change.model_dump(mode="json")]
            await session.commit()
            await session.refresh(model)
            logger.info(
                "invitation.tier_updated",
                deal_id=deal_id,
                lender_id=lender_id,
                tier=tier.value,
            )
            return _model_to_invitation(model)

    @staticmethod
    async def _find_invitation(
        session: AsyncSession, deal_id: str, lender_id: str
    ) -> InvitationModel | None:
        result = await session.execute(
            select(InvitationModel).where(
                InvitationModel.deal_id == deal_id,
                InvitationModel.lender_id == lender_id,
            )
        )
        return result.scalar_one_or_none()

    # ── Documents ───────────────────────────────────────────────────────────

    async def list_documents(self, deal_id: str) -> list[DocumentRead]:
        async for session in self._session_factory():
            stmt = (
                select(DocumentModel)
                .where(DocumentModel.deal_id == deal_id)
                .order_by(DocumentModel.category, DocumentModel.name)
            )
            result = await session.execute(stmt)
            return [_model_to_document(m) for m in result.scalars().all()]

    async def get_document(self, deal_id: str, document_id: str) -> DocumentRead | None:
        async for session in self._session_factory():
            result = await session.execute(
                select(DocumentModel).where(
                    DocumentModel.id == document_id,
                    DocumentModel.deal_id == deal_id,
                )
            )
            model = result.scalar_one_or_none()
            return _model_to_document(model) if model else None

    async def create_document(self, deal_id: str, data: DocumentCreate) -> DocumentRead:
        """Register an uploaded document on a deal.

        Raises:
            DealNotFoundError: If the deal does not exist.
        """
        async for session in self._session_factory():
            if await session.get(DealModel, deal_id) is None:
                raise DealNotFoundError(deal_id)
            model = DocumentModel(deal_id=deal_id, **data.model_dump())
            session.add(model)
            await session.commit()
            await session.refresh(model)
            logger.info(
                "document.created",
                deal_id=deal_id,
                document_id=str(model.id),
                tier=model.visibility_tier,
            )
            return _model_to_document(model)

    # ── Commitments ─────────────────────────────────────────────────────────

    async def list_commitments(
        self, deal_id: str, lender_id: str | None = None
    ) -> list[CommitmentRead]:
        """Commitments on a deal, newest first, optionally for one lender."""
        async for session in self._session_factory():
            stmt = select(CommitmentModel).where(CommitmentModel.deal_id == deal_id)
            if lender_id is not None:
                stmt = stmt.where(CommitmentModel.lender_id == lender_id)
            stmt = stmt.order_by(CommitmentModel.submitted_at.desc())
            result = await session.execute(stmt)
            return [_model_to_commitment(m) for m in result.scalars().all()]

    async def create_commitment(
        self, deal_id: str, lender_id: str, data: CommitmentCreate
    ) -> CommitmentRead:
        """Record a commitment and refresh the deal's committed total.

        The total is recomputed from the stored amounts rather than
        incremented, so it always equals the sum of the deal's commitments.

        Raises:
            DealNotFoundError: If the deal does not exist.
        """
        async for session in self._session_factory():
            deal = await session.get(DealModel, deal_id)
            if deal is None:
                raise DealNotFoundError(deal_id)
            model = CommitmentModel(deal_id=deal_id, lender_id=lender_id, **data.model_dump())
            session.add(model)
            await session.flush()
            total = await session.scalar(
                select(func.coalesce(func.sum(CommitmentModel.amount), 0.0)).where(
                    CommitmentModel.deal_id == deal_id
                )
            )
            deal.committed = float(total or 0.0)
            await session.commit()
            await session.refresh(model)
            logger.info(
                "commitment.created",
                deal_id=deal_id,
                lender_id=lender_id,
                amount=model.amount,
                committed=deal.committed,
            )
            return _model_to_commitment(model)

    # ── Q&A ─────────────────────────────────────────────────────────────────

    async def list_qa(self, deal_id: str, lender_id: str | None = None) -> list[QAItemRead]:
        """Q&A items on a deal, newest first, optionally for one lender."""
        async for session in self._session_factory():
            stmt = select(QAItemModel).where(QAItemModel.deal_id == deal_id)
            if lender_id is not None:
                stmt = stmt.where(QAItemModel.lender_id == lender_id)
            stmt = stmt.order_by(QAItemModel.asked_at.desc())
            result = await session.execute(stmt)
            return [_model_to_qa(m) for m in result.scalars().all()]

    async def create_qa(
        self,
        deal_id: str,
        data: QACreate,
        *,
        lender_id: str | None,
        asked_by: str | None,
    ) -> QAItemRead:
        """Open a question on a deal.

        Raises:
            DealNotFoundError: If the deal does not exist.
        """
        async for session in self._session_factory():
            if await session.get(DealModel, deal_id) is None:
                raise DealNotFoundError(deal_id)
            model = QAItemModel(
                deal_id=deal_id,
                lender_id=lender_id,
                category=data.category,
                question=data.question,
                asked_by=asked_by,
                status=QAStatus.OPEN.value,
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            logger.info("qa.created", deal_id=deal_id, qa_id=str(model.id))
            return _model_to_qa(model)

    async def answer_qa(
        self, deal_id: str, qa_id: str, answer: str, answered_by: str | None
    ) -> QAItemRead | None:
        """Answer a question. Returns None when it is not on this deal."""
        async for session in self._session_factory():
            result = await session.execute(
                select(QAItemModel).where(
                    QAItemModel.id == qa_id,
                    QAItemModel.deal_id == deal_id,
                )
            )
            model = result.scalar_one_or_none()
            if model is None:
                return None
            model.answer = answer
            model.answered_by = answered_by
            model.answered_at = datetime.now(timezone.utc)
            model.status = QAStatus.ANSWERED.value
            await session.commit()
            await session.refresh(model)
            logger.info("qa.answered", deal_id=deal_id, qa_id=qa_id)
            return _model_to_qa(model)

    # ── Audit Logs ──────────────────────────────────────────────────────────

    async def create_log(self, data: AuditLogCreate) -> AuditLogRead:
        async for session in self._session_factory():
            payload = data.model_dump(exclude={"metadata"})
            model = AuditLogModel(**payload, metadata_json=data.metadata)
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return _model_to_log(model)

    async def list_logs(
        self, deal_id: str, limit: int = 50, action: str | None = None
    ) -> list[AuditLogRead]:
        """Audit entries for a deal, newest first."""
        async for session in self._session_factory():
            stmt = select(AuditLogModel).where(AuditLogModel.deal_id == deal_id)
            if action is not None:
                stmt = stmt.where(AuditLogModel.action == action)
            stmt = stmt.order_by(AuditLogModel.created_at.desc()).limit(limit)
            result = await session.execute(stmt)
            return [_model_to_log(m) for m in result.scalars().all()]
