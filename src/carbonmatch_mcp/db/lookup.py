"""Activity lookup functions for the catalog database."""

import sqlite3

from ..models import EmissionFactorRecord

_COLUMNS = "id, title, sector, subsector, unit, factor, source, description"


def _escape_like(value: str) -> str:
    """Escape SQL LIKE wildcards (%, _) in user input.

    Uses backslash as the escape character, which must be specified
    in the LIKE clause with ESCAPE '\\'.
    """
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def exact_match(conn: sqlite3.Connection, name: str, limit: int = 10) -> list[EmissionFactorRecord]:
    """Find activities whose title equals name (case-insensitive), in catalog order."""
    key = name.strip().lower()
    if not key:
        return []
    cursor = conn.execute(
        f"SELECT {_COLUMNS} FROM activities WHERE title_lower = ? ORDER BY seq LIMIT ?",
        [key, limit],
    )
    return [EmissionFactorRecord.from_row(row) for row in cursor]


def fuzzy_match(conn: sqlite3.Connection, text: str, limit: int = 10) -> list[EmissionFactorRecord]:
    """Find activities whose title contains text (case-insensitive).

    Ordering: exact title first, then titles starting with text, then other
    containing titles; catalog order within each group.

    Args:
        conn: SQLite connection
        text: Substring to look for
        limit: Maximum records to return

    Returns:
        Matching records
    """
    key = text.strip().lower()
    if not key:
        return []
    escaped = _escape_like(key)
    cursor = conn.execute(
        f"""
        SELECT {_COLUMNS} FROM activities
        WHERE title_lower LIKE ? ESCAPE '\\'
        ORDER BY
            CASE
                WHEN title_lower = ? THEN 0
                WHEN title_lower LIKE ? ESCAPE '\\' THEN 1
                ELSE 2
            END,
            seq
        LIMIT ?
        """,
        [f"%{escaped}%", key, f"{escaped}%", limit],
    )
    return [EmissionFactorRecord.from_row(row) for row in cursor]


def by_hierarchy(
    conn: sqlite3.Connection,
    sector: str | None = None,
    subsector: str | None = None,
    activity: str | None = None,
    limit: int = 10,
) -> list[EmissionFactorRecord]:
    """Find activities by classification path (each part is a case-insensitive substring).

    Results are ordered by sector, subsector, then title.
    """
    conditions = []
    params: list = []
    for column, value in (("sector_lower", sector), ("subsector_lower", subsector), ("title_lower", activity)):
        if value and value.strip():
            conditions.append(f"{column} LIKE ? ESCAPE '\\'")
            params.append(f"%{_escape_like(value.strip().lower())}%")

    where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
    params.append(limit)
    cursor = conn.execute(
        f"""
        SELECT {_COLUMNS} FROM activities
        {where}
        ORDER BY sector, COALESCE(subsector, ''), title, seq
        LIMIT ?
        """,
        params,
    )
    return [EmissionFactorRecord.from_row(row) for row in cursor]
