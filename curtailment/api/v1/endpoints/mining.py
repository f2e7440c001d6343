"""Mining value endpoints."""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from curtailment.core.deps import get_db
from curtailment.models.mining_calculation import MiningCalculation
from curtailment.models.summary import MiningDailySummary
from curtailment.schemas.summary import MiningCalculationResponse, MiningDailyResponse

router = APIRouter()


@router.get("/daily/{summary_date}", response_model=List[MiningDailyResponse])
async def get_daily_mining(
    summary_date: date,
    miner_model: Optional[str] = Query(None, description="Only this miner model"),
    db: AsyncSession = Depends(get_db),
):
    """Coins per miner model for one settlement date."""
    query = select(MiningDailySummary).where(MiningDailySummary.summary_date == summary_date)
    if miner_model:
        query = query.where(MiningDailySummary.miner_model == miner_model)

    result = await db.execute(query.order_by(MiningDailySummary.miner_model))
    return result.scalars().all()


@router.get("/calculations/{settlement_date}", response_model=List[MiningCalculationResponse])
async def get_mining_calculations(
    settlement_date: date,
    miner_model: Optional[str] = Query(None, description="Only this miner model"),
    settlement_period: Optional[int] = Query(None, ge=1, le=48),
    db: AsyncSession = Depends(get_db),
):
    """
    Per period, per unit calculations of a settlement date.

    - **miner_model**: Optional miner model filter
    - **settlement_period**: Optional settlement period (1-48)
    """
    query = select(MiningCalculation).where(MiningCalculation.settlement_date == settlement_date)
    if miner_model:
        query = query.where(MiningCalculation.miner_model == miner_model)
    if settlement_period is not None:
        query = query.where(MiningCalculation.settlement_period == settlement_period)

    result = await db.execute(
        query.order_by(
            MiningCalculation.miner_model,
            MiningCalculation.settlement_period,
            MiningCalculation.farm_id,
        )
    )
    return result.scalars().all()
