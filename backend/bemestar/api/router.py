from fastapi import APIRouter

from bemestar.api.advisory import router as advisory_router
from bemestar.api.dashboard import router as dashboard_router
from bemestar.api.health import router as health_router
from bemestar.api.reports import router as reports_router

api_router = APIRouter(prefix="/api")
api_router.include_router(health_router)
api_router.include_router(dashboard_router)
api_router.include_router(advisory_router)
api_router.include_router(reports_router)
