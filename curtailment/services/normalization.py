"""Sign and unit conventions applied where settlement data enters the system.

Conventions:
- ``volume`` keeps the provider's sign; negative means energy turned down.
- curtailed energy is always ``abs(volume)``.
- ``payment`` is always positive and means a cost to consumers, whatever
  sign the provider uses on the accepted price.
"""

from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List

from curtailment.schemas.settlement import CurtailmentRow, SettlementCandidate
from curtailment.services.unit_reference import UnitReferenceTable


def curtailed_energy(volume: Decimal) -> Decimal:
    """Magnitude of a curtailed volume in MWh."""
    return abs(Decimal(volume))


def curtailment_payment(volume: Decimal, price: Decimal) -> Decimal:
    """Cost to consumers of one acceptance."""
    return abs(Decimal(volume)) * abs(Decimal(price))


def is_qualifying(candidate: SettlementCandidate, unit_table: UnitReferenceTable) -> bool:
    return candidate.is_curtailment and unit_table.is_qualifying(candidate.unit_id)


def normalize_candidates(
    candidates: Iterable[SettlementCandidate],
    settlement_date: date,
    settlement_period: int,
    unit_table: UnitReferenceTable,
) -> List[CurtailmentRow]:
    """
    Filter candidates to curtailment of qualifying units and merge them per unit.

    A unit can have several acceptances in one period (and appear on both
    sides of the stack). They are merged into one row: volumes and payments
    are summed, prices become the volume weighted average and flags are
    OR-ed.
    """
    merged: Dict[str, dict] = {}

    for candidate in candidates:
        if not is_qualifying(candidate, unit_table):
            continue

        energy = curtailed_energy(candidate.volume)
        final_price = candidate.final_price if candidate.final_price is not None else candidate.original_price
        lead_party = candidate.lead_party_name or unit_table.lead_party(candidate.unit_id)

        existing = merged.get(candidate.unit_id)
        if existing is None:
            merged[candidate.unit_id] = {
                "farm_id": candidate.unit_id,
                "lead_party_name": lead_party,
                "volume": candidate.volume,
                "payment": curtailment_payment(candidate.volume, candidate.original_price),
                "weighted_original": energy * candidate.original_price,
                "weighted_final": energy * final_price,
                "so_flag": candidate.so_flag,
                "cadl_flag": candidate.cadl_flag,
            }
        else:
            existing["volume"] += candidate.volume
            existing["payment"] += curtailment_payment(candidate.volume, candidate.original_price)
            existing["weighted_original"] += energy * candidate.original_price
            existing["weighted_final"] += energy * final_price
            existing["so_flag"] = existing["so_flag"] or candidate.so_flag
            existing["cadl_flag"] = existing["cadl_flag"] or candidate.cadl_flag
            existing["lead_party_name"] = existing["lead_party_name"] or lead_party

    rows = []
    for unit_id in sorted(merged):
        item = merged[unit_id]
        energy = curtailed_energy(item["volume"])
        rows.append(
            CurtailmentRow(
                settlement_date=settlement_date,
                settlement_period=settlement_period,
                farm_id=item["farm_id"],
                lead_party_name=item["lead_party_name"],
                volume=item["volume"],
                payment=item["payment"],
                original_price=item["weighted_original"] / energy,
                final_price=item["weighted_final"] / energy,
                so_flag=item["so_flag"],
                cadl_flag=item["cadl_flag"],
            )
        )

    return rows
