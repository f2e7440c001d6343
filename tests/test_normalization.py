"""Tests for curtailment filtering and sign normalization."""

from datetime import date
from decimal import Decimal

from curtailment.schemas.settlement import SettlementCandidate
from curtailment.services.normalization import (
    curtailed_energy,
    curtailment_payment,
    normalize_candidates,
)

DAY = date(2024, 5, 1)


def candidate(unit_id, volume, price, so_flag=True, cadl_flag=False, lead_party=None, final_price=None):
    return SettlementCandidate(
        unit_id=unit_id,
        volume=Decimal(str(volume)),
        original_price=Decimal(str(price)),
        final_price=None if final_price is None else Decimal(str(final_price)),
        so_flag=so_flag,
        cadl_flag=cadl_flag,
        lead_party_name=lead_party,
    )


class TestSignConventions:
    def test_curtailed_energy_is_magnitude(self):
        assert curtailed_energy(Decimal("-10")) == Decimal("10")

    def test_payment_is_positive_whatever_the_price_sign(self):
        assert curtailment_payment(Decimal("-100"), Decimal("20")) == Decimal("2000")
        assert curtailment_payment(Decimal("-100"), Decimal("-20")) == Decimal("2000")


class TestNormalizeCandidates:
    """Tests for normalize_candidates."""

    def test_only_flagged_turn_downs_of_wind_units_qualify(self, unit_table):
        candidates = [
            candidate("T_WINDA-1", -100, 20),
            candidate("T_WINDB-1", 50, 30),  # offer, not a turn down
            candidate("T_WINDB-1", -50, 30, so_flag=False, cadl_flag=False),  # energy action
            candidate("T_CCGT-1", -80, 40),  # not wind
            candidate("T_UNKNOWN", -80, 40),  # not in the unit table
        ]

        rows = normalize_candidates(candidates, DAY, 5, unit_table)

        assert [r.farm_id for r in rows] == ["T_WINDA-1"]

    def test_cadl_flag_alone_qualifies(self, unit_table):
        rows = normalize_candidates(
            [candidate("T_WINDA-1", -10, 20, so_flag=False, cadl_flag=True)], DAY, 5, unit_table
        )
        assert len(rows) == 1

    def test_row_values(self, unit_table):
        rows = normalize_candidates([candidate("T_WINDA-1", -100, -20)], DAY, 5, unit_table)
        row = rows[0]

        assert row.settlement_date == DAY
        assert row.settlement_period == 5
        assert row.volume == Decimal("-100")
        assert row.payment == Decimal("2000")
        assert row.original_price == Decimal("-20")
        assert row.final_price == Decimal("-20")

    def test_lead_party_falls_back_to_unit_table(self, unit_table):
        rows = normalize_candidates([candidate("T_WINDA-1", -10, 20)], DAY, 5, unit_table)
        assert rows[0].lead_party_name == "Wind A Ltd"

        rows = normalize_candidates(
            [candidate("T_WINDA-1", -10, 20, lead_party="Trader Ltd")], DAY, 5, unit_table
        )
        assert rows[0].lead_party_name == "Trader Ltd"

    def test_duplicate_acceptances_are_merged(self, unit_table):
        candidates = [
            candidate("T_WINDA-1", -10, 20, so_flag=True),
            candidate("T_WINDA-1", -30, 40, so_flag=False, cadl_flag=True),
        ]

        rows = normalize_candidates(candidates, DAY, 5, unit_table)

        assert len(rows) == 1
        row = rows[0]
        assert row.volume == Decimal("-40")
        assert row.payment == Decimal("1400")
        # (10 * 20 + 30 * 40) / 40
        assert row.original_price == Decimal("35")
        assert row.so_flag and row.cadl_flag

    def test_final_price_defaults_to_original(self, unit_table):
        rows = normalize_candidates([candidate("T_WINDA-1", -10, 20)], DAY, 5, unit_table)
        assert rows[0].final_price == Decimal("20")

    def test_rows_sorted_by_unit(self, unit_table):
        rows = normalize_candidates(
            [candidate("T_WINDB-1", -5, 10), candidate("T_WINDA-1", -5, 10)], DAY, 5, unit_table
        )
        assert [r.farm_id for r in rows] == ["T_WINDA-1", "T_WINDB-1"]
