"""Pytest configuration and fixtures."""

import os

# Force testing environment before settings are imported
os.environ["TESTING"] = "true"

from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Set, Tuple

import httpx
import pytest

from curtailment.core.config import MiningConfig, Settings
from curtailment.core.context import RunContext
from curtailment.core.database import build_engine, build_session_factory, init_db
from curtailment.schemas.unit_reference import UnitReference
from curtailment.services.difficulty import DifficultyClient
from curtailment.services.elexon_client import ElexonClient
from curtailment.services.mining import MiningCalculator
from curtailment.services.reconciler import RecordReconciler
from curtailment.services.summary_service import SummaryService
from curtailment.services.unit_reference import UnitReferenceTable

ELEXON_URL = "https://elexon.test/bmrs/api/v1"
DIFFICULTY_URL = "https://mempool.test/api/v1/mining/difficulty-adjustments/all"
TEST_DIFFICULTY = Decimal("80000000000000")


def acceptance(
    unit_id: str,
    volume: float,
    price: float,
    so_flag: bool = True,
    cadl_flag: bool = False,
    lead_party: Optional[str] = None,
    final_price: Optional[float] = None,
) -> dict:
    """One settlement stack row in the provider's format."""
    return {
        "id": unit_id,
        "leadPartyName": lead_party,
        "volume": volume,
        "originalPrice": price,
        "finalPrice": price if final_price is None else final_price,
        "soFlag": so_flag,
        "cadlFlag": cadl_flag,
    }


class SettlementStack:
    """In memory settlement stack served through an httpx MockTransport."""

    def __init__(self):
        self.rows: Dict[Tuple[str, str, int], List[dict]] = {}
        self.failing: Set[Tuple[str, int]] = set()
        self.malformed: Set[Tuple[str, int]] = set()
        self.calls = 0

    def set(self, side: str, settlement_date, period: int, rows: List[dict]) -> None:
        self.rows[(side, str(settlement_date), period)] = rows

    def fail(self, settlement_date, period: int) -> None:
        self.failing.add((str(settlement_date), period))

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls += 1
        side, day, period = request.url.path.rstrip("/").split("/")[-3:]
        key = (day, int(period))
        if key in self.failing:
            return httpx.Response(503, text="Service Unavailable")
        if key in self.malformed:
            return httpx.Response(200, text="<html>maintenance</html>")
        return httpx.Response(200, json={"data": self.rows.get((side, day, int(period)), [])})

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


def difficulty_transport(adjustments: List[list]) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=adjustments)

    return httpx.MockTransport(handler)


def utc_timestamp(year: int, month: int, day: int) -> int:
    return int(datetime(year, month, day, tzinfo=timezone.utc).timestamp())


@pytest.fixture
def settings() -> Settings:
    return Settings(TESTING=True, _env_file=None)


@pytest.fixture
def mining_config() -> MiningConfig:
    return MiningConfig()


@pytest.fixture
async def engine(settings):
    """Fresh in-memory database per test."""
    engine = build_engine(settings)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def unit_table() -> UnitReferenceTable:
    units = [
        UnitReference(unit_id="T_WINDA-1", fuel_type="WIND", lead_party_name="Wind A Ltd"),
        UnitReference(unit_id="T_WINDB-1", fuel_type="WIND", lead_party_name="Wind B Ltd"),
        UnitReference(unit_id="T_CCGT-1", fuel_type="CCGT", lead_party_name="Gas Co"),
    ]
    return UnitReferenceTable(units, ["WIND"])


@pytest.fixture
def stack() -> SettlementStack:
    return SettlementStack()


@pytest.fixture
def elexon_client(stack) -> ElexonClient:
    return ElexonClient(
        base_url=ELEXON_URL,
        max_attempts=3,
        retry_delay=0,
        transport=stack.transport(),
    )


@pytest.fixture
def difficulty_client(mining_config) -> DifficultyClient:
    return DifficultyClient(
        DIFFICULTY_URL,
        mining_config.difficulty_fallback,
        transport=difficulty_transport([[utc_timestamp(2020, 1, 1), 600000, float(TEST_DIFFICULTY), 0.0]]),
    )


@pytest.fixture
def reconciler(session_factory, elexon_client, unit_table) -> RecordReconciler:
    return RecordReconciler(session_factory, elexon_client, unit_table)


@pytest.fixture
def calculator(session_factory, mining_config, difficulty_client) -> MiningCalculator:
    return MiningCalculator(session_factory, mining_config, difficulty_client)


@pytest.fixture
def summaries(session_factory, mining_config) -> SummaryService:
    return SummaryService(session_factory, mining_config.miner_models)


@pytest.fixture
def context(settings, engine, session_factory, unit_table, elexon_client, difficulty_client) -> RunContext:
    return RunContext(
        settings=settings,
        engine=engine,
        session_factory=session_factory,
        unit_table=unit_table,
        elexon=elexon_client,
        difficulty=difficulty_client,
    )
