"""Daily, monthly and yearly summary endpoints."""

from datetime import date

from fastapi import APIRouter, Depends

from curtailment.core.deps import get_summary_service
from curtailment.core.exceptions import NotFoundException
from curtailment.schemas.summary import SummaryTotals
from curtailment.services.summary_service import SummaryService

router = APIRouter()


@router.get("/daily/{summary_date}", response_model=SummaryTotals)
async def get_daily_summary(
    summary_date: date,
    service: SummaryService = Depends(get_summary_service),
):
    """Curtailed energy, payment and coins per miner model for one settlement date."""
    summary = await service.get_daily(summary_date)
    if summary is None:
        raise NotFoundException(f"No summary for {summary_date}")
    return summary


@router.get("/monthly/{year_month}", response_model=SummaryTotals)
async def get_monthly_summary(
    year_month: str,
    service: SummaryService = Depends(get_summary_service),
):
    """Totals for a month given as ``YYYY-MM``."""
    summary = await service.get_monthly(year_month)
    if summary is None:
        raise NotFoundException(f"No summary for {year_month}")
    return summary


@router.get("/yearly/{year}", response_model=SummaryTotals)
async def get_yearly_summary(
    year: str,
    service: SummaryService = Depends(get_summary_service),
):
    summary = await service.get_yearly(year)
    if summary is None:
        raise NotFoundException(f"No summary for {year}")
    return summary
