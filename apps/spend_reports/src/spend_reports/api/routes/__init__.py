"""API v1 router registration."""

from fastapi import APIRouter

from spend_reports.api.routes import card_usages, recalculations, reports, schedules

v1_router = APIRouter(prefix="/v1")
v1_router.include_router(card_usages.router)
v1_router.include_router(reports.router)
v1_router.include_router(reports.monthly_listing_router)
v1_router.include_router(schedules.router)
v1_router.include_router(recalculations.router)
