"""Shared fixtures for deal room tests.

Provides:
- InMemoryDealRepository: DealRepository test double (no database)
- FakeRedis: dict-backed stand-in for the async Redis client
- Seeded users (issuer, bookrunner, investor with and without deal access)
- FastAPI test app with the API router, repository and role store on app.state
- Async HTTP client and bearer-token helper
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator
from datetime import date, datetime, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from src.dealroom.core.redis import RolePreferenceStore
from src.dealroom.core.security import create_access_token, hash_password
from src.dealroom.deals.repository import (
    PUBLISHED_STAGE,
    DealNotFoundError,
    DuplicateInvitationError,
    DuplicateLenderError,
    InvitationNotFoundError,
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
from src.dealroom.schemas.auth import SessionUser, StoredUser

PASSWORD = "correct-horse"


# ── In-Memory Test Doubles ───────────────────────────────────────────────────


class InMemoryDealRepository:
    """In-memory DealRepository for testing without database."""

    def __init__(self) -> None:
        self._users: dict[str, StoredUser] = {}
        self._deals: dict[str, DealRead] = {}
        self._lenders: dict[str, LenderRead] = {}
        self._invitations: dict[tuple[str, str], InvitationRead] = {}
        self._documents: list[DocumentRead] = []
        self._commitments: list[CommitmentRead] = []
        self._qa: list[QAItemRead] = []
        self._logs: list[AuditLogRead] = []

    # ── Users ───────────────────────────────────────────────────────────────

    async def get_user(self, user_id: str) -> SessionUser | None:
        user = self._users.get(user_id)
        if user is None or not user.is_active:
            return None
        return user.to_session()

    async def get_user_by_email(self, email: str) -> StoredUser | None:
        for user in self._users.values():
            if user.email == email.lower():
                return user
        return None

    async def create_user(
        self,
        email: str,
        role: str,
        *,
        name: str | None = None,
        hashed_password: str | None = None,
        lender_id: str | None = None,
        deal_access: frozenset[str] = frozenset(),
    ) -> SessionUser:
        user = StoredUser(
            id=str(uuid.uuid4()),
            email=email.lower(),
            name=name,
            role=role,
            lender_id=lender_id,
            deal_access=deal_access,
            hashed_password=hashed_password,
        )
        self._users[user.id] = user
        return user.to_session()

    async def grant_deal_access(self, user_id: str, deal_id: str) -> SessionUser | None:
        user = self._users.get(user_id)
        if user is None:
            return None
        updated = user.model_copy(update={"deal_access": user.deal_access | {deal_id}})
        self._users[user_id] = updated
        return updated.to_session()

    # ── Deals ───────────────────────────────────────────────────────────────

    async def list_deals(self, deal_ids=None) -> list[DealRead]:
        deals = list(self._deals.values())
        if deal_ids is not None:
            deals = [d for d in deals if d.id in deal_ids]
        return deals

    async def get_deal(self, deal_id: str) -> DealRead | None:
        return self._deals.get(deal_id)

    async def create_deal(self, data: DealCreate, deal_id: str | None = None) -> DealRead:
        deal = DealRead(
            id=deal_id or str(uuid.uuid4()),
            created_at=datetime.now(timezone.utc),
            **data.model_dump(),
        )
        self._deals[deal.id] = deal
        return deal

    async def update_deal(self, deal_id: str, data: DealUpdate) -> DealRead:
        deal = self._deals.get(deal_id)
        if deal is None:
            raise DealNotFoundError(deal_id)
        updated = deal.model_copy(
            update={**data.model_dump(exclude_unset=True), "updated_at": datetime.now(timezone.utc)}
        )
        self._deals[deal_id] = updated
        return updated

    async def publish_deal(self, deal_id: str, launch_date: date) -> DealRead:
        deal = self._deals.get(deal_id)
        if deal is None:
            raise DealNotFoundError(deal_id)
        updated = deal.model_copy(
            update={"stage": PUBLISHED_STAGE, "launch_date": deal.launch_date or launch_date}
        )
        self._deals[deal_id] = updated
        return updated

    # ── Lenders ─────────────────────────────────────────────────────────────

    async def list_lenders(self) -> list[LenderRead]:
        return list(self._lenders.values())

    async def get_lender(self, lender_id: str) -> LenderRead | None:
        return self._lenders.get(lender_id)

    async def get_lender_by_email(self, email: str) -> LenderRead | None:
        for lender in self._lenders.values():
            if lender.email == email.lower():
                return lender
        return None

    async def create_lender(self, data: LenderCreate, lender_id: str | None = None) -> LenderRead:
        email = str(data.email).lower()
        if await self.get_lender_by_email(email) is not None:
            raise DuplicateLenderError(email)
        lender = LenderRead(
            id=lender_id or str(uuid.uuid4()),
            created_at=datetime.now(timezone.utc),
            **{**data.model_dump(), "email": email},
        )
        self._lenders[lender.id] = lender
        return lender

    # ── Invitations ─────────────────────────────────────────────────────────

    async def list_invitations_by_deal(self, deal_id: str) -> list[InvitationRead]:
        return [i for (d, _), i in self._invitations.items() if d == deal_id]

    async def list_invitations_by_lender(self, lender_id: str) -> list[InvitationRead]:
        return [i for (_, l), i in self._invitations.items() if l == lender_id]

    async def get_invitation(self, deal_id: str, lender_id: str) -> InvitationRead | None:
        return self._invitations.get((deal_id, lender_id))

    async def create_invitation(self, deal_id: str, data: InvitationCreate) -> InvitationRead:
        if deal_id not in self._deals:
            raise DealNotFoundError(deal_id)
        if (deal_id, data.lender_id) in self._invitations:
            raise DuplicateInvitationError(deal_id, data.lender_id)
        now = datetime.now(timezone.utc)
        invitation = InvitationRead(
            id=str(uuid.uuid4()),
            deal_id=deal_id,
            lender_id=data.lender_id,
            access_tier=data.access_tier,
            nda_required=data.nda_required,
            invited_by=data.invited_by,
            invited_at=now,
            tier_history=[
                TierChange(tier=data.access_tier, changed_by=data.invited_by, changed_at=now)
            ],
        )
        self._invitations[(deal_id, data.lender_id)] = invitation
        lender = self._lenders.get(data.lender_id)
        if lender is not None and lender.user_id:
            await self.grant_deal_access(lender.user_id, deal_id)
        return invitation

    async def sign_nda(
        self,
        deal_id: str,
        lender_id: str,
        *,
        signer_email: str | None = None,
        nda_version: str | None = None,
        signer_ip: str | None = None,
    ) -> InvitationRead:
        invitation = self._invitations.get((deal_id, lender_id))
        if invitation is None:
            raise InvitationNotFoundError(deal_id, lender_id)
        if invitation.nda_signed_at is not None:
            return invitation
        updated = invitation.model_copy(
            update={
                "nda_signed_at": datetime.now(timezone.utc),
                "signer_email": signer_email,
                "nda_version": nda_version,
            }
        )
        self._invitations[(deal_id, lender_id)] = updated
        return updated

    async def update_tier(
        self, deal_id: str, lender_id: str, tier: AccessTier, changed_by: str
    ) -> InvitationRead:
        invitation = self._invitations.get((deal_id, lender_id))
        if invitation is None:
            raise InvitationNotFoundError(deal_id, lender_id)
        change = TierChange(tier=tier, changed_by=changed_by, changed_at=datetime.now(timezone.utc))
        updated = invitation.model_copy(
            update={"access_tier": tier, "tier_history": [*invitation.tier_history, change]}
        )
        self._invitations[(deal_id, lender_id)] = updated
        return updated

    # ── Documents ───────────────────────────────────────────────────────────

    def add_document(self, deal_id: str, name: str, tier: str, category: str = "General") -> DocumentRead:
        doc = DocumentRead(
            id=str(uuid.uuid4()),
            deal_id=deal_id,
            name=name,
            category=category,
            visibility_tier=tier,
        )
        self._documents.append(doc)
        return doc

    async def list_documents(self, deal_id: str) -> list[DocumentRead]:
        return [d for d in self._documents if d.deal_id == deal_id]

    async def get_document(self, deal_id: str, document_id: str) -> DocumentRead | None:
        for doc in self._documents:
            if doc.id == document_id and doc.deal_id == deal_id:
                return doc
        return None

    async def create_document(self, deal_id: str, data: DocumentCreate) -> DocumentRead:
        if deal_id not in self._deals:
            raise DealNotFoundError(deal_id)
        doc = DocumentRead(
            id=str(uuid.uuid4()),
            deal_id=deal_id,
            uploaded_at=datetime.now(timezone.utc),
            **data.model_dump(),
        )
        self._documents.append(doc)
        return doc

    # ── Commitments ─────────────────────────────────────────────────────────

    async def list_commitments(
        self, deal_id: str, lender_id: str | None = None
    ) -> list[CommitmentRead]:
        items = [c for c in reversed(self._commitments) if c.deal_id == deal_id]
        if lender_id is not None:
            items = [c for c in items if c.lender_id == lender_id]
        return items

    async def create_commitment(
        self, deal_id: str, lender_id: str, data: CommitmentCreate
    ) -> CommitmentRead:
        deal = self._deals.get(deal_id)
        if deal is None:
            raise DealNotFoundError(deal_id)
        commitment = CommitmentRead(
            id=str(uuid.uuid4()),
            deal_id=deal_id,
            lender_id=lender_id,
            submitted_at=datetime.now(timezone.utc),
            **data.model_dump(),
        )
        self._commitments.append(commitment)
        total = sum(c.amount for c in self._commitments if c.deal_id == deal_id)
        self._deals[deal_id] = deal.model_copy(update={"committed": total})
        return commitment

    # ── Q&A ─────────────────────────────────────────────────────────────────

    async def list_qa(self, deal_id: str, lender_id: str | None = None) -> list[QAItemRead]:
        items = [q for q in reversed(self._qa) if q.deal_id == deal_id]
        if lender_id is not None:
            items = [q for q in items if q.lender_id == lender_id]
        return items

    async def create_qa(
        self,
        deal_id: str,
        data: QACreate,
        *,
        lender_id: str | None,
        asked_by: str | None,
    ) -> QAItemRead:
        if deal_id not in self._deals:
            raise DealNotFoundError(deal_id)
        item = QAItemRead(
            id=str(uuid.uuid4()),
            deal_id=deal_id,
            lender_id=lender_id,
            category=data.category,
            question=data.question,
            asked_by=asked_by,
            asked_at=datetime.now(timezone.utc),
        )
        self._qa.append(item)
        return item

    async def answer_qa(
        self, deal_id: str, qa_id: str, answer: str, answered_by: str | None
    ) -> QAItemRead | None:
        for index, item in enumerate(self._qa):
            if item.id == qa_id and item.deal_id == deal_id:
                updated = item.model_copy(
                    update={
                        "answer": answer,
                        "answered_by": answered_by,
                        "answered_at": datetime.now(timezone.utc),
                        "status": QAStatus.ANSWERED,
                    }
                )
                self._qa[index] = updated
                return updated
        return None

    # ── Audit Logs ──────────────────────────────────────────────────────────

    async def create_log(self, data: AuditLogCreate) -> AuditLogRead:
        log = AuditLogRead(
            id=str(uuid.uuid4()),
            created_at=datetime.now(timezone.utc),
            **data.model_dump(),
        )
        self._logs.append(log)
        return log

    async def list_logs(
        self, deal_id: str, limit: int = 50, action: str | None = None
    ) -> list[AuditLogRead]:
        logs = [l for l in reversed(self._logs) if l.deal_id == deal_id]
        if action is not None:
            logs = [l for l in logs if l.action == action]
        return logs[:limit]


class FakeRedis:
    """Dict-backed subset of the redis.asyncio client API."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int] = {}

    async def get(self, key: str) -> str | None:
        return self.data.get(key)

    async def set(self, key: str, value: str, ex: int | None = None) -> None:
        self.data[key] = value
        if ex is not None:
            self.ttls[key] = ex

    async def delete(self, key: str) -> int:
        return 1 if self.data.pop(key, None) is not None else 0


# ── Seed Data ────────────────────────────────────────────────────────────────

DEAL_ID = "101"
OTHER_DEAL_ID = "202"


@pytest.fixture
def repo() -> InMemoryDealRepository:
    return InMemoryDealRepository()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest_asyncio.fixture
async def seeded(repo: InMemoryDealRepository) -> dict:
    """Two deals, a lender with a linked investor, and one user per role."""
    hashed = hash_password(PASSWORD)

    await repo.create_deal(
        DealCreate(
            name="Atlas Term Loan B",
            sponsor="Atlas Capital",
            instrument="Term Loan B",
            size=500_000_000,
            launch_date=date(2026, 10, 1),
            ioi_date=date(2026, 11, 1),
            close_date=date(2026, 12, 15),
            hard_close_date=date(2026, 12, 31),
        ),
        deal_id=DEAL_ID,
    )
    await repo.create_deal(
        DealCreate(
            name="Borealis Unitranche",
            sponsor="Borealis Partners",
            instrument="Unitranche",
            size=250_000_000,
            close_date=date(2027, 2, 1),
        ),
        deal_id=OTHER_DEAL_ID,
    )

    issuer = await repo.create_user(
        "issuer@atlas.com", "Issuer", name="Iris Issuer", hashed_password=hashed,
        deal_access=frozenset({DEAL_ID}),
    )
    bookrunner = await repo.create_user(
        "desk@bank.com", "bookrunner", name="Bo Runner", hashed_password=hashed
    )
    lender = await repo.create_lender(
        LenderCreate(
            first_name="Lena",
            last_name="Lender",
            email="lena@fund.com",
            organization="North Fund",
        ),
        lender_id="lender-1",
    )
    investor = await repo.create_user(
        "lena@fund.com", "lender", name="Lena Lender", hashed_password=hashed,
        lender_id=lender.id,
    )
    repo._lenders[lender.id] = lender.model_copy(update={"user_id": investor.id})
    outsider = await repo.create_user(
        "out@fund.com", "Investor", hashed_password=hashed, lender_id="lender-2"
    )

    return {
        "issuer": issuer,
        "bookrunner": bookrunner,
        "investor": investor,
        "outsider": outsider,
        "lender": lender,
    }


# ── App / Client ─────────────────────────────────────────────────────────────


def _make_app():
    """Minimal FastAPI app with the API router (no lifespan, no middleware)."""
    from fastapi import FastAPI

    from src.dealroom.api.v1.router import router

    app = FastAPI()
    app.include_router(router)
    return app


@pytest_asyncio.fixture
async def client(repo, fake_redis, seeded) -> AsyncGenerator[AsyncClient, None]:
    app = _make_app()
    app.state.deal_repository = repo
    app.state.role_store = RolePreferenceStore(fake_redis)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def headers_for():
    """Build a Bearer header for a seeded user."""

    def _headers(user: SessionUser) -> dict[str, str]:
        role = user.role.value if user.role else None
        token = create_access_token({"sub": user.id, "role": role})
        return {"Authorization": f"Bearer {token}"}

    return _headers
