"""Transient CSV side file used by the all-stores price sync."""

import csv
import uuid
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import structlog

logger = structlog.get_logger()

PRICE_COLUMNS = ["store_id", "id", "priceInclTax", "priceExclTax"]


class PriceExportFile:
    """Append-only CSV of price lines, deleted once applied."""

    def __init__(self, export_dir: str | Path):
        self.export_dir = Path(export_dir)
        self.path = self.export_dir / f"aspos-prices-{uuid.uuid4().hex}.csv"
        self.rows_written = 0
        self._handle = None
        self._writer: csv.DictWriter | None = None

    def open(self) -> "PriceExportFile":
        self.export_dir.mkdir(parents=True, exist_ok=True)
        self._handle = open(self.path, "w", newline="", encoding="utf-8")
        self._writer = csv.DictWriter(self._handle, fieldnames=PRICE_COLUMNS)
        self._writer.writeheader()
        return self

    def write(self, store_id: str, record: dict[str, Any]) -> None:
        if self._writer is None:
            raise RuntimeError("Price export file is not open")
        self._writer.writerow(
            {
                "store_id": store_id,
                "id": record.get("id", ""),
                "priceInclTax": record.get("priceInclTax", ""),
                "priceExclTax": record.get("priceExclTax", ""),
            }
        )
        self.rows_written += 1

    def close(self) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None
            self._writer = None

    def rows(self) -> Iterator[tuple[str, dict[str, Any]]]:
        """Yield (store_id, price record) pairs from the written file."""
        self.close()
        with open(self.path, newline="", encoding="utf-8") as f:
            for row in csv.DictReader(f):
                yield row["store_id"], {
                    "id": row["id"],
                    "priceInclTax": row["priceInclTax"],
                    "priceExclTax": row["priceExclTax"],
                }

    def delete(self) -> None:
        self.close()
        self.path.unlink(missing_ok=True)
        logger.debug("Deleted price export file", path=str(self.path))

    def __enter__(self) -> "PriceExportFile":
        return self.open()

    def __exit__(self, *exc_info: Any) -> None:
        self.delete()
