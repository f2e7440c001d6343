"""Main API router."""

from fastapi import APIRouter

from curtailment.api.v1.endpoints import completeness, mining, summaries

api_router = APIRouter()

api_router.include_router(summaries.router, prefix="/summaries", tags=["summaries"])
api_router.include_router(mining.router, prefix="/mining", tags=["mining"])
api_router.include_router(completeness.router, prefix="/completeness", tags=["completeness"])
