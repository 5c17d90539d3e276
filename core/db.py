"""
Persistence for the user's mapping tables.

Three key-value tables are kept: custom business name mappings
(raw name -> canonical name), the ordered list of custom groups, and
business -> group mappings. Values are stored as JSON.
"""
import copy
import json
import sqlite3
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from core.config import get_settings
from core.exceptions import StorageError
from core.logger import setup_logger

logger = setup_logger(__name__)

CUSTOM_MAPPINGS_KEY = "customBusinessMappings"
CUSTOM_GROUPS_KEY = "customGroups"
BUSINESS_GROUP_MAPPINGS_KEY = "businessGroupMappings"


class MappingStore(ABC):
    """Key-value store holding the persisted mapping tables."""

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        """Return the JSON value stored under key, or default."""

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """Store a JSON-serializable value under key."""

    def get_custom_mappings(self) -> Dict[str, str]:
        return dict(self.get(CUSTOM_MAPPINGS_KEY, {}) or {})

    def set_custom_mappings(self, mappings: Dict[str, str]) -> None:
        self.set(CUSTOM_MAPPINGS_KEY, dict(mappings))

    def get_custom_groups(self) -> List[str]:
        return list(self.get(CUSTOM_GROUPS_KEY, []) or [])

    def set_custom_groups(self, groups: List[str]) -> None:
        self.set(CUSTOM_GROUPS_KEY, list(groups))

    def get_business_group_mappings(self) -> Dict[str, str]:
        return dict(self.get(BUSINESS_GROUP_MAPPINGS_KEY, {}) or {})

    def set_business_group_mappings(self, mappings: Dict[str, str]) -> None:
        self.set(BUSINESS_GROUP_MAPPINGS_KEY, dict(mappings))


class InMemoryMappingStore(MappingStore):
    """Store kept in process memory; values are deep-copied on read and write."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = copy.deepcopy(initial or {})

    def get(self, key: str, default: Any = None) -> Any:
        if key not in self._data:
            return default
        return copy.deepcopy(self._data[key])

    def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)


class SqliteMappingStore(MappingStore):
    """Store backed by a single settings table in a sqlite file."""

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path or get_settings().database_path
        self.init_db()

    def get_connection(self) -> sqlite3.Connection:
        """Create a database connection."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        """Initialize database tables."""
        conn = self.get_connection()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS settings (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            conn.commit()
            logger.info(f"Mapping store initialized at {self.db_path}")
        except sqlite3.Error as e:
            logger.error(f"Database initialization failed: {e}")
            raise StorageError("Failed to initialize mapping store", details={"error": str(e)})
        finally:
            conn.close()

    def get(self, key: str, default: Any = None) -> Any:
        conn = self.get_connection()
        cursor = conn.cursor()

        try:
            cursor.execute("SELECT value FROM settings WHERE key = ?", (key,))
            row = cursor.fetchone()
        except sqlite3.Error as e:
            logger.error(f"Failed to read setting {key}: {e}")
            raise StorageError(f"Failed to read setting {key}", details={"error": str(e)})
        finally:
            conn.close()

        if row is None:
            return default

        try:
            return json.loads(row["value"])
        except json.JSONDecodeError as e:
            raise StorageError(f"Stored value for {key} is not valid JSON", details={"error": str(e)})

    def set(self, key: str, value: Any) -> None:
        conn = self.get_connection()
        cursor = conn.cursor()

        try:
            cursor.execute(
                """
                INSERT INTO settings (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                """,
                (key, json.dumps(value, ensure_ascii=False), datetime.now(timezone.utc).isoformat()),
            )
            conn.commit()
        except sqlite3.Error as e:
            logger.error(f"Failed to write setting {key}: {e}")
            raise StorageError(f"Failed to write setting {key}", details={"error": str(e)})
        finally:
            conn.close()
