"""
API router - aggregates all route modules.
"""
from fastapi import APIRouter
from mailsplit.api.ab_tests import router as ab_tests_router
from mailsplit.api.health import router as health_router

api_router = APIRouter()
api_router.include_router(ab_tests_router)
api_router.include_router(health_router)
