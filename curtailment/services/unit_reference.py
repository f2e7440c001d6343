"""BM unit reference table."""

import json
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

import structlog
from pydantic import ValidationError

from curtailment.core.exceptions import ConfigurationException
from curtailment.schemas.unit_reference import UnitReference

logger = structlog.get_logger()


class UnitReferenceTable:
    """Read-only lookup of generating units, loaded once per run."""

    def __init__(self, units: Iterable[UnitReference], qualifying_fuel_types: Iterable[str] = ("WIND",)):
        self.units: Dict[str, UnitReference] = {unit.unit_id: unit for unit in units}
        self.qualifying_fuel_types = {fuel.upper() for fuel in qualifying_fuel_types}

    def __len__(self) -> int:
        return len(self.units)

    def __contains__(self, unit_id: str) -> bool:
        return unit_id in self.units

    def get(self, unit_id: str) -> Optional[UnitReference]:
        return self.units.get(unit_id)

    def is_qualifying(self, unit_id: str) -> bool:
        """True when the unit is known and of a qualifying fuel type."""
        unit = self.units.get(unit_id)
        return bool(unit and unit.fuel_type in self.qualifying_fuel_types)

    def lead_party(self, unit_id: str) -> Optional[str]:
        unit = self.units.get(unit_id)
        return unit.lead_party_name if unit else None

    @property
    def qualifying_unit_ids(self) -> List[str]:
        return sorted(uid for uid in self.units if self.is_qualifying(uid))

    @classmethod
    def load(
        cls, path: Union[str, Path], qualifying_fuel_types: Iterable[str] = ("WIND",)
    ) -> "UnitReferenceTable":
        """
        Load the table from a JSON list in the provider's reference format.

        Rows without a unit id are skipped. A missing or unreadable file is a
        configuration error.
        """
        path = Path(path)
        if not path.is_file():
            raise ConfigurationException(f"Unit reference file not found: {path}")

        try:
            rows = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationException(f"Unit reference file unreadable: {path}: {e}") from e

        if not isinstance(rows, list):
            raise ConfigurationException(f"Unit reference file must hold a JSON list: {path}")

        units = []
        skipped = 0
        for row in rows:
            if not isinstance(row, dict) or not row.get("elexonBmUnit"):
                skipped += 1
                continue
            try:
                units.append(UnitReference.model_validate(row))
            except ValidationError:
                skipped += 1

        table = cls(units, qualifying_fuel_types)
        logger.info(
            "Loaded unit reference table",
            path=str(path),
            units=len(table),
            qualifying=len(table.qualifying_unit_ids),
            skipped=skipped,
        )
        return table

    @staticmethod
    def save(units: Iterable[UnitReference], path: Union[str, Path]) -> int:
        """Write units to ``path`` in the format ``load`` reads."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        rows = [unit.model_dump(mode="json", by_alias=True) for unit in units]
        path.write_text(json.dumps(rows, indent=2), encoding="utf-8")
        return len(rows)
