"""Mining value of curtailed energy."""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List, Optional, Tuple

import structlog
from sqlalchemy import delete, insert, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from curtailment.core.config import HardwareProfile, MiningConfig
from curtailment.core.exceptions import ValidationException
from curtailment.models.curtailment_record import CurtailmentRecord
from curtailment.models.mining_calculation import MiningCalculation
from curtailment.services.difficulty import DifficultyClient
from curtailment.services.normalization import curtailed_energy

logger = structlog.get_logger()

HASHES_PER_DIFFICULTY = Decimal(2 ** 32)
COIN_PRECISION = Decimal("0.00000001")


def estimate_mined(
    energy_mwh: Decimal,
    profile: HardwareProfile,
    difficulty: Decimal,
    config: MiningConfig,
) -> Decimal:
    """
    Expected coins from running miners on curtailed energy for one settlement period.

    The energy decides how many whole miners could run for the period. Their
    combined hash rate, as a share of the network hash rate implied by the
    difficulty, earns that share of every block found during the period.

    Args:
        energy_mwh: Curtailed energy, already made non-negative
        profile: Miner hash rate (H/s) and power draw (W)
        difficulty: Network difficulty
        config: Block reward, block interval and period length

    Returns:
        Coins at full precision
    """
    energy_mwh = Decimal(energy_mwh)
    difficulty = Decimal(difficulty)
    if energy_mwh < 0:
        raise ValueError(f"Energy must not be negative, got {energy_mwh}")
    if difficulty <= 0:
        raise ValueError(f"Difficulty must be positive, got {difficulty}")

    period_seconds = Decimal(config.settlement_period_seconds)
    block_interval = Decimal(config.block_interval_seconds)

    energy_wh = energy_mwh * Decimal(1_000_000)
    miner_wh = profile.power_draw * period_seconds / Decimal(3600)
    miners = (energy_wh / miner_wh).to_integral_value(rounding=ROUND_FLOOR)

    fleet_hash_rate = miners * profile.hash_rate
    network_hash_rate = difficulty * HASHES_PER_DIFFICULTY / block_interval
    blocks_per_period = period_seconds / block_interval

    return fleet_hash_rate / network_hash_rate * config.block_reward * blocks_per_period


def round_coins(value: Decimal) -> Decimal:
    return Decimal(value).quantize(COIN_PRECISION, rounding=ROUND_HALF_UP)


@dataclass
class DateCalculation:
    """Calculations written for one date and miner model."""

    settlement_date: date
    miner_model: str
    difficulty: Decimal
    calculations: List[dict] = field(default_factory=list)
    total_bitcoin: Decimal = Decimal("0")


class MiningCalculator:
    """Fans curtailment records out into one calculation per miner model."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        config: MiningConfig,
        difficulty_client: Optional[DifficultyClient] = None,
    ):
        self.session_factory = session_factory
        self.config = config
        self.difficulty_client = difficulty_client

    def profile(self, miner_model: str) -> HardwareProfile:
        try:
            return self.config.hardware_profiles[miner_model]
        except KeyError:
            raise ValidationException(
                f"Unknown miner model {miner_model!r}, expected one of {self.config.miner_models}"
            ) from None

    async def resolve_difficulty(self, settlement_date: date, difficulty: Optional[Decimal] = None) -> Decimal:
        if difficulty is not None:
            return Decimal(difficulty)
        if self.difficulty_client is not None:
            return await self.difficulty_client.get_difficulty(settlement_date)

        logger.warning(
            "No difficulty source configured, using fallback difficulty",
            settlement_date=str(settlement_date),
            fallback=str(self.config.difficulty_fallback),
        )
        return self.config.difficulty_fallback

    async def calculate_for_date(
        self,
        settlement_date: date,
        miner_model: str,
        difficulty: Optional[Decimal] = None,
    ) -> DateCalculation:
        """
        Recompute every calculation of a date for one miner model.

        Existing calculations of the date and model are replaced in the same
        transaction. ``bitcoin_mined`` is stored rounded to 8 decimal places
        and ``bitcoin_mined_exact`` keeps the value summaries add up.
        """
        profile = self.profile(miner_model)
        difficulty = await self.resolve_difficulty(settlement_date, difficulty)
        result = DateCalculation(settlement_date, miner_model, difficulty)

        async with self.session_factory() as session:
            async with session.begin():
                records = await session.execute(
                    select(
                        CurtailmentRecord.settlement_period,
                        CurtailmentRecord.farm_id,
                        CurtailmentRecord.volume,
                    ).where(
                        CurtailmentRecord.settlement_date == settlement_date,
                        CurtailmentRecord.volume != 0,
                    )
                )

                energy_by_key: Dict[Tuple[int, str], Decimal] = {}
                for period, farm_id, volume in records.all():
                    key = (period, farm_id)
                    energy_by_key[key] = energy_by_key.get(key, Decimal("0")) + curtailed_energy(volume)

                calculated_at = datetime.now(timezone.utc)
                for (period, farm_id), energy in sorted(energy_by_key.items()):
                    coins = estimate_mined(energy, profile, difficulty, self.config)
                    result.total_bitcoin += coins
                    result.calculations.append(
                        {
                            "settlement_date": settlement_date,
                            "settlement_period": period,
                            "farm_id": farm_id,
                            "miner_model": miner_model,
                            "energy_volume": energy,
                            "bitcoin_mined": round_coins(coins),
                            "bitcoin_mined_exact": coins,
                            "difficulty": difficulty,
                            "calculated_at": calculated_at,
                        }
                    )

                await session.execute(
                    delete(MiningCalculation).where(
                        MiningCalculation.settlement_date == settlement_date,
                        MiningCalculation.miner_model == miner_model,
                    )
                )
                if result.calculations:
                    await session.execute(insert(MiningCalculation), result.calculations)

        logger.info(
            "Calculated mining potential",
            settlement_date=str(settlement_date),
            miner_model=miner_model,
            calculations=len(result.calculations),
            bitcoin=float(round(result.total_bitcoin, 8)),
            difficulty=str(difficulty),
        )
        return result

    async def calculate_all_models(
        self,
        settlement_date: date,
        miner_models: Optional[Iterable[str]] = None,
        difficulty: Optional[Decimal] = None,
    ) -> Dict[str, DateCalculation]:
        models = list(miner_models) if miner_models else self.config.miner_models
        difficulty = await self.resolve_difficulty(settlement_date, difficulty)
        return {
            model: await self.calculate_for_date(settlement_date, model, difficulty)
            for model in models
        }
