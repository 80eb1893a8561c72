"""REST API endpoints for deal Q&A.

Anyone who can open a deal may ask. Roles with see_all_qa read every
question; lenders read the ones they asked. Answering needs answer_qa.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status

from src.dealroom.access.capabilities import capabilities_for
from src.dealroom.api.deps import (
    ensure_deal_visible,
    get_current_user,
    get_deal_repository,
    require_capability,
)
from src.dealroom.deals.audit import AuditAction, record_audit
from src.dealroom.deals.repository import DealNotFoundError
from src.dealroom.deals.schemas import QAAnswer, QACreate, QAItemRead
from src.dealroom.schemas.auth import SessionUser

router = APIRouter(prefix="/api/deals/{deal_id}/qa", tags=["qa"])


@router.get("", response_model=list[QAItemRead])
async def list_qa(
    deal_id: str,
    user: SessionUser = Depends(get_current_user),
    repo: Any = Depends(get_deal_repository),
) -> list[QAItemRead]:
    await ensure_deal_visible(repo, user, deal_id)
    if capabilities_for(user.role).see_all_qa:
        return await repo.list_qa(deal_id)
    if not user.lender_id:
        return []
    return await repo.list_qa(deal_id, lender_id=user.lender_id)


@router.post("", response_model=QAItemRead, status_code=201)
async def ask_question(
    deal_id: str,
    body: QACreate,
    user: SessionUser = Depends(get_current_user),
    repo: Any = Depends(get_deal_repository),
) -> QAItemRead:
    """Open a question on the deal, attributed to the caller's lender."""
    await ensure_deal_visible(repo, user, deal_id)
    try:
        item = await repo.create_qa(
            deal_id, body, lender_id=user.lender_id, asked_by=user.email
        )
    except DealNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))

    await record_audit(
        repo,
        AuditAction.SUBMIT_QA,
        actor=user,
        deal_id=deal_id,
        resource_type="qa",
        resource_id=item.id,
        metadata={"category": item.category},
    )
    return item


@router.patch("/{qa_id}/answer", response_model=QAItemRead)
async def answer_question(
    deal_id: str,
    qa_id: str,
    body: QAAnswer,
    user: SessionUser = Depends(require_capability("answer_qa")),
    repo: Any = Depends(get_deal_repository),
) -> QAItemRead:
    await ensure_deal_visible(repo, user, deal_id)
    item = await repo.answer_qa(deal_id, qa_id, body.answer, user.email)
    if item is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Question not found: {qa_id}",
        )

    await record_audit(
        repo,
        AuditAction.ANSWER_QA,
        actor=user,
        deal_id=deal_id,
        lender_id=item.lender_id,
        resource_type="qa",
        resource_id=item.id,
    )
    return item
