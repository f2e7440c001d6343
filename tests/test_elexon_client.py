"""Tests for the settlement stack client."""

from datetime import date
from decimal import Decimal

import httpx
import pytest

from conftest import ELEXON_URL, acceptance
from curtailment.core.exceptions import SettlementFetchError
from curtailment.services.elexon_client import ElexonClient

DAY = date(2024, 5, 1)


class TestFetchCurtailmentCandidates:
    """Tests for ElexonClient.fetch_curtailment_candidates."""

    async def test_combines_bid_and_offer_sides(self, stack, elexon_client):
        stack.set("bid", DAY, 5, [acceptance("T_WINDA-1", -100, 20, lead_party="Wind A Ltd")])
        stack.set("offer", DAY, 5, [acceptance("T_CCGT-1", 40, 90)])

        candidates = await elexon_client.fetch_curtailment_candidates(DAY, 5)

        assert {c.unit_id for c in candidates} == {"T_WINDA-1", "T_CCGT-1"}
        wind = next(c for c in candidates if c.unit_id == "T_WINDA-1")
        assert wind.volume == Decimal("-100")
        assert wind.original_price == Decimal("20")
        assert wind.so_flag is True
        assert wind.lead_party_name == "Wind A Ltd"

    async def test_empty_period_is_not_retried(self, stack, elexon_client):
        candidates = await elexon_client.fetch_curtailment_candidates(DAY, 5)

        assert candidates == []
        assert stack.calls == 2

    async def test_rows_without_id_or_volume_are_dropped(self, stack, elexon_client):
        stack.set(
            "bid",
            DAY,
            5,
            [
                acceptance("T_WINDA-1", -100, 20),
                {"id": "", "volume": -5, "originalPrice": 10},
                {"id": "T_WINDB-1", "volume": None, "originalPrice": 10},
                {"id": "T_WINDB-1", "volume": "not a number", "originalPrice": 10},
            ],
        )

        candidates = await elexon_client.fetch_curtailment_candidates(DAY, 5)

        assert [c.unit_id for c in candidates] == ["T_WINDA-1"]

    async def test_missing_flags_default_to_false(self, stack, elexon_client):
        stack.set("bid", DAY, 5, [{"id": "T_WINDA-1", "volume": -10, "originalPrice": 20}])

        candidates = await elexon_client.fetch_curtailment_candidates(DAY, 5)

        assert candidates[0].so_flag is False
        assert candidates[0].cadl_flag is False
        assert candidates[0].final_price is None

    async def test_transient_failure_is_retried(self):
        failed_sides = set()

        def handler(request: httpx.Request) -> httpx.Response:
            side = request.url.path.split("/")[-3]
            if side not in failed_sides:
                failed_sides.add(side)
                return httpx.Response(503)
            return httpx.Response(200, json={"data": [acceptance("T_WINDA-1", -10, 20)]})

        client = ElexonClient(ELEXON_URL, retry_delay=0, transport=httpx.MockTransport(handler))

        candidates = await client.fetch_curtailment_candidates(DAY, 5)

        # One row from each side once both have recovered
        assert len(candidates) == 2

    async def test_exhausted_retries_raise(self, stack, elexon_client):
        stack.fail(DAY, 5)

        with pytest.raises(SettlementFetchError) as exc_info:
            await elexon_client.fetch_curtailment_candidates(DAY, 5)

        assert exc_info.value.attempts == 3
        assert stack.calls >= 3

    async def test_malformed_payload_is_retried_then_raises(self, stack, elexon_client):
        stack.malformed.add((str(DAY), 5))

        with pytest.raises(SettlementFetchError):
            await elexon_client.fetch_curtailment_candidates(DAY, 5)

        assert stack.calls >= 3

    async def test_missing_data_list_is_malformed(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"items": []})

        client = ElexonClient(
            ELEXON_URL, max_attempts=2, retry_delay=0, transport=httpx.MockTransport(handler)
        )

        with pytest.raises(SettlementFetchError):
            await client.fetch_curtailment_candidates(DAY, 5)

    async def test_requests_period_url(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.url.path)
            return httpx.Response(200, json={"data": []})

        client = ElexonClient(ELEXON_URL, api_key="secret", transport=httpx.MockTransport(handler))
        await client.fetch_curtailment_candidates(DAY, 12)

        assert sorted(seen) == [
            "/bmrs/api/v1/balancing/settlement/stack/all/bid/2024-05-01/12",
            "/bmrs/api/v1/balancing/settlement/stack/all/offer/2024-05-01/12",
        ]


class TestRetryDelay:
    def test_exponential(self):
        client = ElexonClient(retry_delay=2.0, backoff="exponential")
        assert [client.retry_delay_for(a) for a in (1, 2, 3)] == [2.0, 4.0, 8.0]

    def test_fixed(self):
        client = ElexonClient(retry_delay=2.0, backoff="fixed")
        assert [client.retry_delay_for(a) for a in (1, 2, 3)] == [2.0, 2.0, 2.0]


class TestFetchBmUnits:
    async def test_parses_reference_rows(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path.endswith("/reference/bmunits/all")
            return httpx.Response(
                200,
                json=[
                    {"elexonBmUnit": "T_WINDA-1", "fuelType": "wind", "leadPartyName": "Wind A Ltd"},
                    {"elexonBmUnit": None, "fuelType": "WIND"},
                ],
            )

        client = ElexonClient(ELEXON_URL, transport=httpx.MockTransport(handler))
        units = await client.fetch_bm_units()

        assert [u.unit_id for u in units] == ["T_WINDA-1"]
        assert units[0].fuel_type == "WIND"
