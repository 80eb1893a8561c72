"""V1 API router -- aggregates all endpoint routers."""

from __future__ import annotations

from fastapi import APIRouter

from src.dealroom.api.v1 import (
    access,
    auth,
    commitments,
    deals,
    health,
    invitations,
    lenders,
    qa,
)

router = APIRouter()

router.include_router(health.router)
router.include_router(auth.router)
router.include_router(access.router)
router.include_router(deals.router)
router.include_router(invitations.router)
router.include_router(lenders.router)
router.include_router(commitments.router)
router.include_router(qa.router)
