"""
BizModelAI — Main API Router

Aggregates all sub-routers under a single prefix so that ``app.main``
can mount the entire API surface with one ``include_router`` call.
"""

from fastapi import APIRouter

from app.api import assessment, reports

router = APIRouter()

router.include_router(assessment.router, prefix="/assessment", tags=["Assessment"])
router.include_router(reports.router, prefix="/reports", tags=["Reports"])
