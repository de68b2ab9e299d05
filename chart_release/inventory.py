"""Durable ledger of the charts of each chart type.

Each chart type directory holds an `inventory.yaml` with one record per chart:
```yaml
- name: ubuntu
  version: 1.0.3
  description: Ubuntu container
  state: released
```

The ledger is always read and written as a whole file. Callers must not
interleave load and save cycles for the same chart type.
"""

import logging
from pathlib import Path

import aiofiles
from aiofiles.ospath import exists

from .config import ChartConfig
from .exceptions import InputException
from .manifest import (
    INVENTORY_FILE,
    ChartState,
    ChartType,
    InventoryRecord,
    dump_yaml,
    read_yaml,
)

__all__ = [
    "Inventory",
    "upsert_record",
]

_LOGGER = logging.getLogger(__name__)


def _check_unique(chart_type: ChartType, records: list[InventoryRecord]) -> None:
    names: set[str] = set()
    for record in records:
        if record.name in names:
            raise InputException(
                f"Duplicate chart '{record.name}' in {chart_type} inventory"
            )
        names.add(record.name)


def upsert_record(
    records: list[InventoryRecord], record: InventoryRecord
) -> list[InventoryRecord]:
    """Return the records with `record` replacing any with the same name."""
    result = []
    replaced = False
    for existing in records:
        if existing.name == record.name:
            result.append(record)
            replaced = True
        else:
            result.append(existing)
    if not replaced:
        result.append(record)
    return result


class Inventory:
    """Reads and writes the per chart type inventory files."""

    def __init__(self, root: Path, config: ChartConfig) -> None:
        """Initialize Inventory."""
        self._root = root
        self._config = config

    def relative_path(self, chart_type: ChartType) -> str:
        """Return the repository-relative path of the inventory file."""
        return self._config.directory(chart_type).join(INVENTORY_FILE)

    def path(self, chart_type: ChartType) -> Path:
        """Return the local path of the inventory file."""
        return self._root / self.relative_path(chart_type)

    async def load(self, chart_type: ChartType) -> list[InventoryRecord]:
        """Return the records of the ledger, or an empty list if absent."""
        path = self.path(chart_type)
        if not await exists(path):
            _LOGGER.info("No %s inventory found at '%s'", chart_type, path)
            return []
        doc = await read_yaml(path)
        if doc is None:
            return []
        if not isinstance(doc, list):
            raise InputException(f"Invalid inventory {path}: expected a list")
        records = []
        for item in doc:
            if not isinstance(item, dict):
                raise InputException(f"Invalid inventory {path} record: {item}")
            item = {**item, "version": str(item.get("version", ""))}
            records.append(InventoryRecord.parse_doc(item))
        _check_unique(chart_type, records)
        _LOGGER.debug("Loaded %d records from %s inventory", len(records), chart_type)
        return records

    async def save(self, chart_type: ChartType, records: list[InventoryRecord]) -> None:
        """Overwrite the ledger with the full set of records."""
        await self.save_all({chart_type: records})

    async def save_all(self, ledgers: dict[ChartType, list[InventoryRecord]]) -> None:
        """Overwrite several ledgers.

        Every ledger is validated and serialized before the first file is
        written, so an invalid ledger leaves all of the files untouched.
        """
        contents: dict[ChartType, str] = {}
        for chart_type, records in ledgers.items():
            _check_unique(chart_type, records)
            contents[chart_type] = dump_yaml([record.to_dict() for record in records])
        for chart_type, content in contents.items():
            async with aiofiles.open(str(self.path(chart_type)), mode="w") as ledger_file:
                await ledger_file.write(content)
            _LOGGER.info(
                "Saved %d records to %s inventory", len(ledgers[chart_type]), chart_type
            )

    async def mark_removed(self, chart_type: ChartType, name: str) -> None:
        """Flip a chart to the removed state, leaving the order unchanged."""
        records = await self.load(chart_type)
        for record in records:
            if record.name == name:
                record.state = ChartState.REMOVED
                break
        else:
            raise InputException(f"Chart '{name}' not found in {chart_type} inventory")
        await self.save(chart_type, records)
