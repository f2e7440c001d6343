"""Completeness endpoints."""

from datetime import date
from typing import List

from fastapi import APIRouter, Depends

from curtailment.core.deps import get_completeness_service
from curtailment.schemas.summary import CompletenessResponse
from curtailment.services.completeness import CompletenessService

router = APIRouter()


@router.get("/{settlement_date}", response_model=CompletenessResponse)
async def get_completeness(
    settlement_date: date,
    service: CompletenessService = Depends(get_completeness_service),
):
    """Gap report for one settlement date."""
    return await service.check_date(settlement_date)


@router.get("/{settlement_date}/missing-periods", response_model=List[int])
async def get_missing_periods(
    settlement_date: date,
    service: CompletenessService = Depends(get_completeness_service),
):
    """Settlement periods never checked or whose last fetch failed."""
    return await service.missing_periods(settlement_date)
