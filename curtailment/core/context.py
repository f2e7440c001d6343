"""Process wide run context."""

from dataclasses import dataclass
from typing import Optional

import httpx
import structlog
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from curtailment.core.config import Settings, get_settings
from curtailment.core.database import build_engine, build_session_factory, init_db
from curtailment.services.completeness import CompletenessService
from curtailment.services.difficulty import DifficultyClient
from curtailment.services.elexon_client import ElexonClient
from curtailment.services.mining import MiningCalculator
from curtailment.services.reconciler import RecordReconciler
from curtailment.services.summary_service import SummaryService
from curtailment.services.unit_reference import UnitReferenceTable

logger = structlog.get_logger()


@dataclass
class RunContext:
    """Everything a run needs, built once at process start and passed down."""

    settings: Settings
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    unit_table: UnitReferenceTable
    elexon: ElexonClient
    difficulty: DifficultyClient

    @classmethod
    async def create(
        cls,
        settings: Optional[Settings] = None,
        unit_table: Optional[UnitReferenceTable] = None,
        elexon_transport: Optional[httpx.AsyncBaseTransport] = None,
        difficulty_transport: Optional[httpx.AsyncBaseTransport] = None,
        create_tables: bool = True,
    ) -> "RunContext":
        """
        Build the context from settings.

        Raises ``ConfigurationException`` when the database URL or the unit
        reference file is missing.
        """
        settings = settings or get_settings()
        if unit_table is None:
            unit_table = UnitReferenceTable.load(
                settings.UNIT_REFERENCE_PATH, settings.QUALIFYING_FUEL_TYPES
            )

        engine = build_engine(settings)
        if create_tables:
            await init_db(engine)

        logger.info(
            "Run context ready",
            units=len(unit_table),
            miner_models=settings.MINING.miner_models,
        )
        return cls(
            settings=settings,
            engine=engine,
            session_factory=build_session_factory(engine),
            unit_table=unit_table,
            elexon=ElexonClient.from_settings(settings, transport=elexon_transport),
            difficulty=DifficultyClient.from_settings(settings, transport=difficulty_transport),
        )

    def reconciler(self) -> RecordReconciler:
        return RecordReconciler(self.session_factory, self.elexon, self.unit_table)

    def calculator(self, use_difficulty_source: bool = True) -> MiningCalculator:
        return MiningCalculator(
            self.session_factory,
            self.settings.MINING,
            self.difficulty if use_difficulty_source else None,
        )

    def summaries(self) -> SummaryService:
        return SummaryService(self.session_factory, self.settings.MINING.miner_models)

    def completeness(self) -> CompletenessService:
        return CompletenessService(self.session_factory, self.settings.MINING.miner_models)

    async def close(self) -> None:
        await self.engine.dispose()
