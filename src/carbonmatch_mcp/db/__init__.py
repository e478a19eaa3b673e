"""Catalog database package for emission-factor lookup.

Provides the catalog-store operations the search engine relies on:
- Exact title lookup and substring search ranked exact > prefix > contains
- Hierarchy search by sector / subsector / activity
- Sector listings and statistics

The database is built from a JSONL export on first use.
"""

import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any, Iterable

from ..config import CATALOG_DATA_PATH, CATALOG_DB_PATH
from ..models import EmissionFactorRecord
from .categories import all_sectors, subsectors_of
from .connection import CatalogError, build_catalog, create_schema, insert_records
from .lookup import by_hierarchy, exact_match, fuzzy_match
from .stats import get_sample_data, get_stats

logger = logging.getLogger(__name__)

__all__ = [
    "CatalogDatabase",
    "CatalogError",
    "build_catalog",
    "get_catalog",
    "close_catalog",
]


class CatalogDatabase:
    """SQLite catalog of emission-factor records.

    Thread safety: check_same_thread=False, reads only after build.
    The _conn_lock protects lazy initialization of the connection.
    """

    def __init__(self, db_path: Path | None = None, data_path: Path | None = None):
        self.db_path = db_path or CATALOG_DB_PATH
        self.data_path = data_path or CATALOG_DATA_PATH
        self._conn: sqlite3.Connection | None = None
        self._conn_lock = threading.Lock()  # Protects _conn initialization

    @classmethod
    def from_records(cls, records: Iterable[EmissionFactorRecord]) -> "CatalogDatabase":
        """Build an in-memory catalog. Iteration order becomes catalog order."""
        catalog = cls(db_path=Path(":memory:"))
        conn = sqlite3.connect(":memory:", check_same_thread=False)
        conn.row_factory = sqlite3.Row
        create_schema(conn)
        insert_records(conn, records)
        conn.commit()
        catalog._conn = conn
        return catalog

    def _ensure_db(self) -> None:
        """Ensure database exists, build if missing. Thread-safe."""
        if self._conn is not None:
            return

        with self._conn_lock:
            # Double-check after acquiring lock
            if self._conn is not None:
                return

            if not self.db_path.exists():
                logger.info(f"Catalog not found at {self.db_path}, building from {self.data_path}...")
                build_catalog(self.data_path, self.db_path)

            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row

    def close(self) -> None:
        """Close database connection. Thread-safe."""
        with self._conn_lock:
            if self._conn:
                self._conn.close()
                self._conn = None

    def exact_match(self, name: str) -> list[EmissionFactorRecord]:
        """Activities whose title equals name, ignoring case."""
        self._ensure_db()
        if not self._conn:
            return []
        return exact_match(self._conn, name)

    def fuzzy_match(self, text: str, limit: int = 10) -> list[EmissionFactorRecord]:
        """Activities whose title contains text (exact > prefix > contains)."""
        self._ensure_db()
        if not self._conn:
            return []
        return fuzzy_match(self._conn, text, limit)

    def by_hierarchy(
        self,
        sector: str | None = None,
        subsector: str | None = None,
        activity: str | None = None,
        limit: int = 10,
    ) -> list[EmissionFactorRecord]:
        """Activities matching a sector / subsector / activity path."""
        self._ensure_db()
        if not self._conn:
            return []
        return by_hierarchy(self._conn, sector=sector, subsector=subsector, activity=activity, limit=limit)

    def all_sectors(self) -> list[str]:
        self._ensure_db()
        if not self._conn:
            return []
        return all_sectors(self._conn)

    def subsectors_of(self, sector: str) -> list[str]:
        self._ensure_db()
        if not self._conn:
            return []
        return subsectors_of(self._conn, sector)

    def get_stats(self) -> dict[str, Any]:
        """Get catalog statistics."""
        self._ensure_db()
        if not self._conn:
            return {"error": "Catalog not available"}
        return get_stats(self._conn)

    def get_sample_data(self, limit: int = 20) -> dict[str, Any]:
        self._ensure_db()
        if not self._conn:
            return {"sectors": [], "activities": []}
        return get_sample_data(self._conn, limit)

    def is_healthy(self) -> bool:
        """True if the catalog can be opened and queried."""
        try:
            self._ensure_db()
            if not self._conn:
                return False
            self._conn.execute("SELECT 1 FROM activities LIMIT 1").fetchall()
            return True
        except (sqlite3.Error, CatalogError, OSError) as e:
            logger.error(f"Catalog health check failed: {e}")
            return False


# Global instance with thread safety
_catalog: CatalogDatabase | None = None
_catalog_lock = threading.Lock()


def get_catalog() -> CatalogDatabase:
    """Get or create the global catalog instance (thread-safe)."""
    global _catalog
    if _catalog is None:
        with _catalog_lock:
            # Double-check locking pattern
            if _catalog is None:
                _catalog = CatalogDatabase()
    return _catalog


def close_catalog() -> None:
    """Close the global catalog instance (thread-safe)."""
    global _catalog
    with _catalog_lock:
        if _catalog:
            _catalog.close()
            _catalog = None
