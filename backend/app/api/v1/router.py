from fastapi import APIRouter

from backend.app.api.v1.endpoints.health import router as health_router
from backend.app.api.v1.endpoints.requests import router as requests_router
from backend.app.api.v1.endpoints.stock import router as stock_router
from backend.app.api.v1.endpoints.statistics import router as statistics_router

router = APIRouter()
router.include_router(health_router, tags=["health"])
router.include_router(requests_router, tags=["requests"])
router.include_router(stock_router, tags=["stock"])
router.include_router(statistics_router, tags=["statistics"])
