"""Sector and subsector listing for the catalog database."""

import sqlite3


def all_sectors(conn: sqlite3.Connection) -> list[str]:
    """Distinct sector names, sorted."""
    cursor = conn.execute("SELECT DISTINCT sector FROM activities ORDER BY sector")
    return [row["sector"] for row in cursor]


def subsectors_of(conn: sqlite3.Connection, sector: str) -> list[str]:
    """Distinct subsectors of a sector (exact sector name), sorted."""
    cursor = conn.execute(
        """
        SELECT DISTINCT subsector FROM activities
        WHERE sector = ? AND subsector IS NOT NULL
        ORDER BY subsector
        """,
        [sector],
    )
    return [row["subsector"] for row in cursor]
