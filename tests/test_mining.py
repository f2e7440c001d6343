"""Tests for the mining value calculation."""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from conftest import TEST_DIFFICULTY
from curtailment.core.config import HardwareProfile, MiningConfig
from curtailment.core.exceptions import ValidationException
from curtailment.models.curtailment_record import CurtailmentRecord
from curtailment.models.mining_calculation import MiningCalculation
from curtailment.services.mining import MiningCalculator, estimate_mined, round_coins

DAY = date(2024, 5, 1)

# Two of these miners make up the whole network at difficulty 600
HALF_NETWORK = HardwareProfile(hash_rate=Decimal(2 ** 31), power_draw=Decimal(1000))


def record(period: int, farm_id: str, volume: str, payment: str = "0") -> CurtailmentRecord:
    return CurtailmentRecord(
        settlement_date=DAY,
        settlement_period=period,
        farm_id=farm_id,
        volume=Decimal(volume),
        payment=Decimal(payment),
        original_price=Decimal("0"),
        final_price=Decimal("0"),
        so_flag=True,
        cadl_flag=False,
    )


class TestEstimateMined:
    """Tests for estimate_mined."""

    def test_whole_network_earns_every_block_of_the_period(self):
        """1000 Wh runs two 1000 W miners for half an hour."""
        coins = estimate_mined(Decimal("0.001"), HALF_NETWORK, Decimal(600), MiningConfig())

        # share 1, reward 3.125, three blocks per period
        assert coins == Decimal("9.375")

    def test_partial_miners_are_not_counted(self):
        coins = estimate_mined(Decimal("0.00099"), HALF_NETWORK, Decimal(600), MiningConfig())
        assert coins == Decimal("4.6875")

    def test_energy_below_one_miner_yields_nothing(self):
        coins = estimate_mined(Decimal("0.0004"), HALF_NETWORK, Decimal(600), MiningConfig())
        assert coins == 0

    def test_zero_energy_yields_nothing(self):
        assert estimate_mined(Decimal("0"), HALF_NETWORK, Decimal(600), MiningConfig()) == 0

    def test_doubling_difficulty_halves_coins(self):
        config = MiningConfig()
        base = estimate_mined(Decimal("0.001"), HALF_NETWORK, Decimal(600), config)
        harder = estimate_mined(Decimal("0.001"), HALF_NETWORK, Decimal(1200), config)
        assert harder * 2 == base

    def test_negative_energy_rejected(self):
        with pytest.raises(ValueError):
            estimate_mined(Decimal("-1"), HALF_NETWORK, Decimal(600), MiningConfig())

    @pytest.mark.parametrize("difficulty", [Decimal(0), Decimal(-5)])
    def test_non_positive_difficulty_rejected(self, difficulty):
        with pytest.raises(ValueError):
            estimate_mined(Decimal("1"), HALF_NETWORK, difficulty, MiningConfig())

    def test_default_profile_is_plausible(self):
        """100 MWh on S19J Pros at the fallback difficulty is a few hundredths of a coin."""
        config = MiningConfig()
        coins = estimate_mined(
            Decimal("100"),
            config.hardware_profiles["S19J_PRO"],
            config.difficulty_fallback,
            config,
        )
        assert Decimal("0.07") < coins < Decimal("0.08")

    def test_round_coins_half_up(self):
        assert round_coins(Decimal("0.000000015")) == Decimal("0.00000002")
        assert round_coins(Decimal("1.123456784")) == Decimal("1.12345678")


class TestMiningCalculator:
    """Tests for MiningCalculator against stored records."""

    async def seed(self, session_factory, records):
        async with session_factory() as session:
            session.add_all(records)
            await session.commit()

    async def test_one_calculation_per_record_with_positive_energy(self, session_factory, calculator):
        await self.seed(
            session_factory,
            [
                record(5, "T_WINDA-1", "-10"),
                record(5, "T_WINDB-1", "-50"),
                record(6, "T_WINDA-1", "0"),
            ],
        )

        result = await calculator.calculate_for_date(DAY, "S19J_PRO")

        assert len(result.calculations) == 2
        assert result.difficulty == TEST_DIFFICULTY
        async with session_factory() as session:
            rows = (
                await session.execute(
                    select(MiningCalculation).order_by(MiningCalculation.farm_id)
                )
            ).scalars().all()

        assert [r.farm_id for r in rows] == ["T_WINDA-1", "T_WINDB-1"]
        assert rows[0].energy_volume == Decimal("10")
        assert all(r.miner_model == "S19J_PRO" for r in rows)
        assert all(r.bitcoin_mined > 0 for r in rows)

    async def test_stored_coins_are_rounded_total_is_not(self, session_factory, calculator):
        await self.seed(session_factory, [record(5, "T_WINDA-1", "-33.3")])

        result = await calculator.calculate_for_date(DAY, "S9")
        stored = result.calculations[0]["bitcoin_mined"]

        assert stored == round_coins(result.total_bitcoin)
        assert stored.as_tuple().exponent == -8
        assert result.calculations[0]["bitcoin_mined_exact"] == result.total_bitcoin

    async def test_recalculation_replaces_previous_rows(self, session_factory, calculator):
        await self.seed(session_factory, [record(5, "T_WINDA-1", "-10")])

        await calculator.calculate_for_date(DAY, "S9")
        await calculator.calculate_for_date(DAY, "S9", difficulty=TEST_DIFFICULTY * 2)

        async with session_factory() as session:
            count = (await session.execute(select(func.count(MiningCalculation.id)))).scalar_one()
            difficulty = (await session.execute(select(MiningCalculation.difficulty))).scalar_one()

        assert count == 1
        assert difficulty == TEST_DIFFICULTY * 2

    async def test_all_models_fan_out(self, session_factory, calculator, mining_config):
        await self.seed(session_factory, [record(5, "T_WINDA-1", "-100"), record(5, "T_WINDB-1", "-50")])

        results = await calculator.calculate_all_models(DAY)

        assert set(results) == set(mining_config.miner_models)
        assert all(len(r.calculations) == 2 for r in results.values())
        # More efficient hardware earns more from the same energy
        assert results["S19J_PRO"].total_bitcoin > results["S9"].total_bitcoin

    async def test_model_filter(self, session_factory, calculator):
        await self.seed(session_factory, [record(5, "T_WINDA-1", "-100")])

        results = await calculator.calculate_all_models(DAY, ["M20S"])

        assert list(results) == ["M20S"]

    async def test_unknown_model_rejected(self, calculator):
        with pytest.raises(ValidationException):
            await calculator.calculate_for_date(DAY, "ANTMINER_X")

    async def test_fallback_difficulty_without_source(self, session_factory, mining_config):
        calculator = MiningCalculator(session_factory, mining_config)

        result = await calculator.calculate_for_date(DAY, "S9")

        assert result.difficulty == mining_config.difficulty_fallback
        assert result.calculations == []
