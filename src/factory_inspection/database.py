"""
SQLite database for factory and inspection records.

This module provides the persistence layer behind the REST API. Records are
stored as plain rows and returned as dictionaries keyed by the snake_case
model field names.
"""

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .utils import ensure_directory

logger = logging.getLogger(__name__)

# Default database path
DEFAULT_DB_PATH = Path("data/inspections.db")

FACTORY_COLUMNS = ("name", "address", "map_link")

INSPECTION_COLUMNS = (
    "factory_id",
    "factory_name",
    "factory_address",
    "map_link",
    "inspector",
    "gregorian_date",
    "hebrew_date",
    "contact_name",
    "contact_phone",
    "contact_email",
    "findings",
    "recommendations",
)


def _utcnow() -> datetime:
    """Current UTC time as a naive datetime, the form stored in the database."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _serialize_datetime(dt: datetime) -> str:
    """Serialize datetime to ISO format string."""
    return dt.isoformat() if dt else None


def _deserialize_datetime(s: str) -> Optional[datetime]:
    """Deserialize ISO format string to datetime."""
    if not s:
        return None
    return datetime.fromisoformat(s)


class InspectionDatabase:
    """
    SQLite storage for factories and inspections.

    Each operation opens its own connection; SQLite handles concurrent
    access with WAL mode.
    """

    def __init__(self, db_path: Path = DEFAULT_DB_PATH):
        self.db_path = Path(db_path)
        ensure_directory(self.db_path.parent)
        self._init_db()

    @contextmanager
    def _get_connection(self):
        """Get a database connection with proper settings."""
        conn = sqlite3.connect(str(self.db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self) -> None:
        """Initialize database schema."""
        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS factories (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    address TEXT NOT NULL,
                    map_link TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS inspections (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    factory_id INTEGER REFERENCES factories(id) ON DELETE SET NULL,
                    factory_name TEXT NOT NULL,
                    factory_address TEXT NOT NULL,
                    map_link TEXT,
                    inspector TEXT NOT NULL,
                    gregorian_date TEXT NOT NULL,
                    hebrew_date TEXT,
                    contact_name TEXT,
                    contact_phone TEXT,
                    contact_email TEXT,
                    findings TEXT,
                    recommendations TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_factories_name
                ON factories(name)
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_inspections_date
                ON inspections(gregorian_date DESC)
            """)

    # Shared row helpers

    def _insert(self, table: str, columns: tuple, data: Dict[str, Any]) -> Dict[str, Any]:
        now = _serialize_datetime(_utcnow())
        names = [*columns, "created_at", "updated_at"]
        values = [data.get(column) for column in columns] + [now, now]
        placeholders = ", ".join("?" for _ in names)
        with self._get_connection() as conn:
            cursor = conn.execute(
                f"INSERT INTO {table} ({', '.join(names)}) VALUES ({placeholders})",
                values,
            )
            row = conn.execute(f"SELECT * FROM {table} WHERE id = ?", (cursor.lastrowid,)).fetchone()
        return self._row_to_dict(row)

    def _get(self, table: str, record_id: int) -> Optional[Dict[str, Any]]:
        with self._get_connection() as conn:
            row = conn.execute(f"SELECT * FROM {table} WHERE id = ?", (record_id,)).fetchone()
        return self._row_to_dict(row) if row else None

    def _update(self, table: str, columns: tuple, record_id: int, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        updates = ["updated_at = ?"]
        values: List[Any] = [_serialize_datetime(_utcnow())]

        for column in columns:
            if column in changes:
                updates.append(f"{column} = ?")
                values.append(changes[column])

        values.append(record_id)

        with self._get_connection() as conn:
            cursor = conn.execute(
                f"UPDATE {table} SET {', '.join(updates)} WHERE id = ?",
                values,
            )
            if cursor.rowcount == 0:
                return None
            row = conn.execute(f"SELECT * FROM {table} WHERE id = ?", (record_id,)).fetchone()
        return self._row_to_dict(row)

    def _delete(self, table: str, record_id: int) -> bool:
        with self._get_connection() as conn:
            cursor = conn.execute(f"DELETE FROM {table} WHERE id = ?", (record_id,))
            return cursor.rowcount > 0

    # Factories

    def create_factory(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Insert a factory record.

        Args:
            data: Dictionary with name, address and optional map_link

        Returns:
            The stored record including id and timestamps
        """
        record = self._insert("factories", FACTORY_COLUMNS, data)
        logger.info(f"Created factory {record['id']} ({record['name']})")
        return record

    def get_factory(self, factory_id: int) -> Optional[Dict[str, Any]]:
        return self._get("factories", factory_id)

    def list_factories(self) -> List[Dict[str, Any]]:
        """List all factories ordered by name."""
        with self._get_connection() as conn:
            rows = conn.execute("SELECT * FROM factories ORDER BY name COLLATE NOCASE, id").fetchall()
        return [self._row_to_dict(row) for row in rows]

    def search_factories(self, query: str) -> List[Dict[str, Any]]:
        """
        Case-insensitive substring search on factory name and address.

        Args:
            query: Search text; blank queries match nothing

        Returns:
            Matching factory records ordered by name
        """
        query = query.strip()
        if not query:
            return []

        escaped = query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        pattern = f"%{escaped}%"
        with self._get_connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM factories
                WHERE name LIKE ? ESCAPE '\\' OR address LIKE ? ESCAPE '\\'
                ORDER BY name COLLATE NOCASE, id
                """,
                (pattern, pattern),
            ).fetchall()
        return [self._row_to_dict(row) for row in rows]

    def update_factory(self, factory_id: int, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Apply a partial update to a factory.

        Returns:
            The updated record, or None if the factory does not exist
        """
        return self._update("factories", FACTORY_COLUMNS, factory_id, changes)

    def delete_factory(self, factory_id: int) -> bool:
        """
        Delete a factory record.

        Returns:
            True if deleted, False if not found
        """
        deleted = self._delete("factories", factory_id)
        if deleted:
            logger.info(f"Deleted factory {factory_id}")
        return deleted

    # Inspections

    def create_inspection(self, data: Dict[str, Any]) -> Dict[str, Any]:
        record = self._insert("inspections", INSPECTION_COLUMNS, data)
        logger.info(f"Created inspection {record['id']} for {record['factory_name']}")
        return record

    def get_inspection(self, inspection_id: int) -> Optional[Dict[str, Any]]:
        return self._get("inspections", inspection_id)

    def list_inspections(self) -> List[Dict[str, Any]]:
        """List all inspections, most recent inspection date first."""
        with self._get_connection() as conn:
            rows = conn.execute("SELECT * FROM inspections ORDER BY gregorian_date DESC, id DESC").fetchall()
        return [self._row_to_dict(row) for row in rows]

    def update_inspection(self, inspection_id: int, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return self._update("inspections", INSPECTION_COLUMNS, inspection_id, changes)

    def delete_inspection(self, inspection_id: int) -> bool:
        return self._delete("inspections", inspection_id)

    def _row_to_dict(self, row: sqlite3.Row) -> Dict[str, Any]:
        """Convert a database row to a record dictionary."""
        record = dict(row)
        record["created_at"] = _deserialize_datetime(record["created_at"])
        record["updated_at"] = _deserialize_datetime(record["updated_at"])
        if record.get("map_link") is None:
            record["map_link"] = ""
        return record
