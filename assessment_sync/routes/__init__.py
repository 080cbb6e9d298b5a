"""APIRouter registration for the reference backend."""

from __future__ import annotations

from fastapi import APIRouter

from assessment_sync.routes.assessment import router as assessment_router

api_router = APIRouter()
api_router.include_router(assessment_router, tags=["Assessment"])

__all__ = ["api_router"]
