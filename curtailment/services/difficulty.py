"""Network difficulty lookup."""

import asyncio
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

import httpx
import structlog

from curtailment.core.config import Settings

logger = structlog.get_logger()


class DifficultyClient:
    """Looks up the network difficulty in force on a settlement date.

    The provider returns every difficulty adjustment as
    ``[timestamp, height, difficulty, change]``. The adjustments are fetched
    once per client and the latest one at or before the end of the requested
    day is used. When the provider is unreachable the configured fallback
    is returned and the compromise is logged.
    """

    def __init__(
        self,
        url: str,
        fallback: Decimal,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.fallback = fallback
        self.timeout = timeout
        self.transport = transport
        self._adjustments: Optional[List[Tuple[int, Decimal]]] = None
        self._cache: Dict[date, Decimal] = {}
        self._load_lock = asyncio.Lock()

    @classmethod
    def from_settings(
        cls, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> "DifficultyClient":
        return cls(
            url=settings.DIFFICULTY_API_URL,
            fallback=settings.MINING.difficulty_fallback,
            timeout=settings.DIFFICULTY_TIMEOUT,
            transport=transport,
        )

    async def _load_adjustments(self) -> List[Tuple[int, Decimal]]:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.get(self.url)
            response.raise_for_status()
            payload = response.json()

        adjustments = []
        for row in payload:
            timestamp, _height, difficulty = row[0], row[1], row[2]
            adjustments.append((int(timestamp), Decimal(str(difficulty))))

        adjustments.sort(key=lambda item: item[0])
        logger.info("Loaded difficulty adjustments", count=len(adjustments))
        return adjustments

    async def get_difficulty(self, settlement_date: date) -> Decimal:
        """Difficulty for the date, or the fallback constant."""
        if settlement_date in self._cache:
            return self._cache[settlement_date]

        try:
            async with self._load_lock:
                if self._adjustments is None:
                    self._adjustments = await self._load_adjustments()
        except (httpx.HTTPError, ValueError, TypeError, IndexError) as e:
            logger.warning(
                "Difficulty provider unavailable, using fallback difficulty",
                settlement_date=str(settlement_date),
                fallback=str(self.fallback),
                error=str(e),
            )
            return self.fallback

        day_end = datetime.combine(settlement_date + timedelta(days=1), time.min, tzinfo=timezone.utc)
        cutoff = int(day_end.timestamp())

        difficulty = None
        for timestamp, value in self._adjustments:
            if timestamp >= cutoff:
                break
            difficulty = value

        if difficulty is None:
            logger.warning(
                "No difficulty adjustment before date, using fallback difficulty",
                settlement_date=str(settlement_date),
                fallback=str(self.fallback),
            )
            return self.fallback

        self._cache[settlement_date] = difficulty
        return difficulty
