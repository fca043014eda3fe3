"""API router for v1 endpoints."""

from fastapi import APIRouter

from designkit.api import sessions

router = APIRouter()

# Project sessions: phases, answers, scores, ethics
router.include_router(sessions.router, prefix="/sessions", tags=["sessions"])
