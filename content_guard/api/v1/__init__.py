"""
API v1 Router Module - Moderation Administration

All v1 endpoints are prefixed with /api/v1/

- /api/v1/moderation/* - Audit trail, statistics, model warmup and health
- /api/v1/metrics      - Prometheus scrape endpoint
"""

from fastapi import APIRouter

from content_guard.api.v1.moderation import router as moderation_router
from content_guard.api.v1.metrics import router as metrics_router

# Main v1 router
api_v1_router = APIRouter(prefix="/api/v1")

api_v1_router.include_router(moderation_router, prefix="/moderation", tags=["moderation"])
api_v1_router.include_router(metrics_router, tags=["metrics"])
