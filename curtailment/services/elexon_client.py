"""Elexon settlement stack client."""

import asyncio
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

import httpx
import pandas as pd
import structlog

from curtailment.core.config import Settings
from curtailment.core.exceptions import SettlementFetchError
from curtailment.schemas.settlement import SettlementCandidate
from curtailment.schemas.unit_reference import UnitReference

logger = structlog.get_logger()


class MalformedPayloadError(Exception):
    """The provider answered 200 but the body is not a settlement stack."""


class ElexonClient:
    """Client for the Elexon Insights settlement stack endpoints."""

    STACK_SIDES = ("bid", "offer")

    COLUMN_MAPPING = {
        "id": "unit_id",
        "leadPartyName": "lead_party_name",
        "volume": "volume",
        "originalPrice": "original_price",
        "finalPrice": "final_price",
        "soFlag": "so_flag",
        "cadlFlag": "cadl_flag",
    }

    def __init__(
        self,
        base_url: str = "https://data.elexon.co.uk/bmrs/api/v1",
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        max_attempts: int = 3,
        retry_delay: float = 2.0,
        backoff: str = "exponential",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self.retry_delay = retry_delay
        self.backoff = backoff
        self.transport = transport
        self.headers = {"Accept": "application/json"}
        if api_key:
            self.headers["x-api-key"] = api_key

    @classmethod
    def from_settings(
        cls, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> "ElexonClient":
        return cls(
            base_url=settings.ELEXON_BASE_URL,
            api_key=settings.ELEXON_API_KEY,
            timeout=settings.ELEXON_TIMEOUT,
            max_attempts=settings.ELEXON_MAX_ATTEMPTS,
            retry_delay=settings.ELEXON_RETRY_DELAY,
            backoff=settings.ELEXON_RETRY_BACKOFF,
            transport=transport,
        )

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout, headers=self.headers, transport=self.transport
        )

    def retry_delay_for(self, attempt: int) -> float:
        """Delay before retrying after the given (1-based) failed attempt."""
        if self.backoff == "exponential":
            return self.retry_delay * (2 ** (attempt - 1))
        return self.retry_delay

    async def fetch_curtailment_candidates(
        self, settlement_date: date, settlement_period: int
    ) -> List[SettlementCandidate]:
        """
        Fetch accepted bids and offers for one settlement period.

        Transient HTTP failures and malformed payloads are retried with
        backoff. Once the attempts are exhausted ``SettlementFetchError`` is
        raised so callers can tell an unreadable period from an empty one.

        Args:
            settlement_date: Settlement day
            settlement_period: Settlement period (1-48)

        Returns:
            Candidates from both sides of the stack, unfiltered
        """
        last_error: Optional[str] = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                async with self._client() as client:
                    sides = await asyncio.gather(
                        *[
                            self._fetch_stack(client, side, settlement_date, settlement_period)
                            for side in self.STACK_SIDES
                        ]
                    )
                records = [record for side in sides for record in side]
                return self._to_candidates(records, settlement_date, settlement_period)

            except (httpx.HTTPError, MalformedPayloadError) as e:
                last_error = str(e) or type(e).__name__
                if attempt < self.max_attempts:
                    delay = self.retry_delay_for(attempt)
                    logger.warning(
                        "Settlement fetch failed, retrying",
                        settlement_date=str(settlement_date),
                        settlement_period=settlement_period,
                        attempt=attempt,
                        max_attempts=self.max_attempts,
                        delay=delay,
                        error=last_error,
                    )
                    await asyncio.sleep(delay)

        raise SettlementFetchError(
            f"[{settlement_date} P{settlement_period}] settlement fetch failed after "
            f"{self.max_attempts} attempts: {last_error}",
            attempts=self.max_attempts,
        )

    async def _fetch_stack(
        self,
        client: httpx.AsyncClient,
        side: str,
        settlement_date: date,
        settlement_period: int,
    ) -> List[Dict[str, Any]]:
        url = (
            f"{self.base_url}/balancing/settlement/stack/all/{side}/"
            f"{settlement_date.isoformat()}/{settlement_period}"
        )
        response = await client.get(url)
        response.raise_for_status()

        try:
            payload = response.json()
        except ValueError as e:
            raise MalformedPayloadError(f"{side} stack is not JSON") from e

        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, list):
            raise MalformedPayloadError(f"{side} stack has no data list")

        return [row for row in data if isinstance(row, dict)]

    def _to_candidates(
        self,
        records: List[Dict[str, Any]],
        settlement_date: date,
        settlement_period: int,
    ) -> List[SettlementCandidate]:
        """Standardize raw stack rows, dropping rows without id, volume or price."""
        if not records:
            return []

        df = pd.DataFrame(records).rename(columns=self.COLUMN_MAPPING)

        for column in ("unit_id", "lead_party_name"):
            if column not in df.columns:
                df[column] = None
        for column in ("volume", "original_price", "final_price"):
            df[column] = pd.to_numeric(df[column], errors="coerce") if column in df.columns else float("nan")
        for column in ("so_flag", "cadl_flag"):
            df[column] = df[column].fillna(False).astype(bool) if column in df.columns else False

        valid = df.dropna(subset=["unit_id", "volume", "original_price"])
        valid = valid[valid["unit_id"].astype(str).str.strip() != ""]
        dropped = len(df) - len(valid)
        if dropped:
            logger.warning(
                "Dropped malformed settlement rows",
                settlement_date=str(settlement_date),
                settlement_period=settlement_period,
                dropped=dropped,
            )

        candidates = []
        for row in valid.to_dict(orient="records"):
            final_price = row["final_price"]
            lead_party = row["lead_party_name"]
            candidates.append(
                SettlementCandidate(
                    unit_id=str(row["unit_id"]),
                    volume=Decimal(str(row["volume"])),
                    original_price=Decimal(str(row["original_price"])),
                    final_price=None if pd.isna(final_price) else Decimal(str(final_price)),
                    so_flag=bool(row["so_flag"]),
                    cadl_flag=bool(row["cadl_flag"]),
                    lead_party_name=None if pd.isna(lead_party) else str(lead_party),
                )
            )

        return candidates

    async def fetch_bm_units(self) -> List[UnitReference]:
        """Fetch the provider's BM unit reference list."""
        async with self._client() as client:
            response = await client.get(f"{self.base_url}/reference/bmunits/all")
            response.raise_for_status()
            payload = response.json()

        rows = payload.get("data", payload) if isinstance(payload, dict) else payload
        units = []
        for row in rows or []:
            if isinstance(row, dict) and row.get("elexonBmUnit"):
                units.append(UnitReference.model_validate(row))

        logger.info("Fetched BM unit reference", units=len(units))
        return units
