"""Catalog statistics functions."""

import sqlite3
from typing import Any

from ..models import EmissionFactorRecord


def get_stats(conn: sqlite3.Connection) -> dict[str, Any]:
    """Get catalog statistics.

    Args:
        conn: SQLite connection

    Returns:
        Dict with activity, sector and subsector counts
    """
    stats = {}

    cursor = conn.execute("SELECT COUNT(*) FROM activities")
    stats["total_activities"] = cursor.fetchone()[0]

    cursor = conn.execute("SELECT COUNT(DISTINCT sector) FROM activities")
    stats["sectors"] = cursor.fetchone()[0]

    cursor = conn.execute("SELECT COUNT(DISTINCT sector || '|' || subsector) FROM activities WHERE subsector IS NOT NULL")
    stats["subsectors"] = cursor.fetchone()[0]

    cursor = conn.execute("""
        SELECT sector, COUNT(*) as cnt
        FROM activities
        GROUP BY sector
        ORDER BY cnt DESC, sector
    """)
    stats["by_sector"] = {row["sector"]: row["cnt"] for row in cursor}

    return stats


def get_sample_data(conn: sqlite3.Connection, limit: int = 20) -> dict[str, Any]:
    """Sample of the catalog: up to 10 sectors plus the first `limit` activities."""
    cursor = conn.execute("SELECT DISTINCT sector FROM activities ORDER BY sector LIMIT 10")
    sectors = [row["sector"] for row in cursor]

    cursor = conn.execute(
        """
        SELECT id, title, sector, subsector, unit, factor, source, description
        FROM activities
        ORDER BY sector, COALESCE(subsector, ''), title
        LIMIT ?
        """,
        [limit],
    )
    activities = [EmissionFactorRecord.from_row(row).to_dict() for row in cursor]
    return {"sectors": sectors, "activities": activities}
