"""Catalog database construction from JSONL emission-factor exports."""

import gzip
import json
import logging
import sqlite3
import time
from pathlib import Path
from typing import Any, Iterable, Iterator

from ..models import EmissionFactorRecord

logger = logging.getLogger(__name__)


class CatalogError(Exception):
    """The catalog source file is missing or unreadable."""


# Format: alternative source key -> catalog column
# Older exports use the graph-store property names.
_FIELD_ALIASES: dict[str, str] = {
    "name": "title",
    "activity": "title",
    "subcategory": "subsector",
    "emission_factor": "factor",
    "emissionFactor": "factor",
}

_SCHEMA = """
    CREATE TABLE IF NOT EXISTS activities (
        seq INTEGER PRIMARY KEY,
        id TEXT NOT NULL UNIQUE,
        title TEXT NOT NULL,
        title_lower TEXT NOT NULL,
        sector TEXT NOT NULL,
        sector_lower TEXT NOT NULL,
        subsector TEXT,
        subsector_lower TEXT,
        unit TEXT NOT NULL,
        factor REAL NOT NULL,
        source TEXT,
        description TEXT
    );
    CREATE INDEX IF NOT EXISTS idx_activities_title_lower ON activities(title_lower);
    CREATE INDEX IF NOT EXISTS idx_activities_sector ON activities(sector_lower, subsector_lower);
"""


def create_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(_SCHEMA)


def _open_text(path: Path):
    if path.suffix == ".gz":
        return gzip.open(path, "rt", encoding="utf-8")
    return open(path, encoding="utf-8")


def record_from_dict(raw: dict[str, Any], fallback_id: str) -> EmissionFactorRecord | None:
    """Normalize one exported row. Returns None for rows without a title or numeric factor."""
    data = dict(raw)
    for alias, column in _FIELD_ALIASES.items():
        if alias in data and column not in data:
            data[column] = data[alias]

    title = str(data.get("title") or "").strip()
    if not title:
        return None
    try:
        factor = float(data.get("factor"))
    except (TypeError, ValueError):
        return None

    return EmissionFactorRecord(
        id=str(data.get("id") or fallback_id),
        title=title,
        sector=str(data.get("sector") or "").strip() or "Unknown",
        subsector=str(data.get("subsector") or "").strip() or None,
        unit=str(data.get("unit") or "").strip(),
        factor=factor,
        source=str(data.get("source") or "").strip(),
        description=str(data.get("description") or "").strip() or None,
    )


def iter_jsonl_records(path: Path) -> Iterator[EmissionFactorRecord]:
    """Yield catalog records from a JSONL (optionally gzipped) file.

    Raises:
        CatalogError: If the file does not exist.
    """
    if not path.exists():
        raise CatalogError(f"Catalog data file not found: {path}")

    skipped = 0
    with _open_text(path) as f:
        for line_no, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                raw = json.loads(line)
            except json.JSONDecodeError as e:
                logger.warning(f"Skipping malformed catalog line {line_no}: {e}")
                skipped += 1
                continue
            record = record_from_dict(raw, fallback_id=f"ef-{line_no}")
            if record is None:
                skipped += 1
                continue
            yield record

    if skipped:
        logger.warning(f"Skipped {skipped} catalog rows without a title or numeric factor")


def insert_records(conn: sqlite3.Connection, records: Iterable[EmissionFactorRecord]) -> int:
    """Insert records in iteration order (seq preserves catalog order). Returns rows written."""
    count = 0
    for record in records:
        conn.execute(
            """
            INSERT OR REPLACE INTO activities
                (id, title, title_lower, sector, sector_lower, subsector, subsector_lower,
                 unit, factor, source, description)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.id,
                record.title,
                record.title.lower(),
                record.sector,
                record.sector.lower(),
                record.subsector,
                record.subsector.lower() if record.subsector else None,
                record.unit,
                record.factor,
                record.source,
                record.description,
            ),
        )
        count += 1
    return count


def build_catalog(data_path: Path, db_path: Path, verbose: bool = False) -> dict[str, Any]:
    """Build the SQLite catalog from a JSONL export.

    Args:
        data_path: JSONL file with one emission-factor record per line
        db_path: Output database path (replaced if it exists)
        verbose: Print progress to stdout

    Returns:
        Stats dict with record count and timing
    """
    start_time = time.time()
    if verbose:
        print(f"Building catalog from {data_path}")
        print(f"Output: {db_path}")

    records = list(iter_jsonl_records(data_path))

    if db_path.exists():
        db_path.unlink()
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path)
    try:
        conn.execute("PRAGMA journal_mode=WAL")
        create_schema(conn)
        count = insert_records(conn, records)
        conn.commit()
        conn.execute("ANALYZE")
        sectors = conn.execute("SELECT COUNT(DISTINCT sector) FROM activities").fetchone()[0]
    finally:
        conn.close()

    elapsed = time.time() - start_time
    stats = {
        "total_activities": count,
        "sectors": sectors,
        "build_time_seconds": round(elapsed, 2),
    }
    logger.info(f"Built catalog with {count} activities across {sectors} sectors in {elapsed:.1f}s")
    if verbose:
        print(f"Activities: {count:,}")
        print(f"Sectors: {sectors}")
        print(f"Build time: {elapsed:.1f} seconds")
    return stats
