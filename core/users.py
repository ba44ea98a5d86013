"""
User directory: owner id -> role and email.

The directory is the identity store the Face ID core consults before
minting a session after a successful match; profiles only carry the
owner id. Registration refreshes the owner's entry from the caller's
verified session.
"""

import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

from core.errors import StorageError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserRecord:
    owner_id: str
    role: str
    email: str


class UserDirectory(ABC):
    """Lookup of session attributes by owner id."""

    @abstractmethod
    def get(self, owner_id: str) -> Optional[UserRecord]:
        pass

    @abstractmethod
    def upsert(self, record: UserRecord) -> None:
        pass

    def close(self) -> None:
        pass


class InMemoryUserDirectory(UserDirectory):
    def __init__(self, records=()):
        self._records: Dict[str, UserRecord] = {r.owner_id: r for r in records}
        self._lock = threading.Lock()

    def get(self, owner_id):
        with self._lock:
            return self._records.get(owner_id)

    def upsert(self, record):
        with self._lock:
            self._records[record.owner_id] = record


class SQLiteUserDirectory(UserDirectory):
    """Directory kept in an `owners` table, normally next to the profiles."""

    def __init__(self, db_path: str):
        self.db_path = str(db_path)
        self._lock = threading.Lock()
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._execute("""
            CREATE TABLE IF NOT EXISTS owners (
                owner_id TEXT PRIMARY KEY,
                role TEXT NOT NULL,
                email TEXT NOT NULL
            )
        """)

    def _execute(self, sql: str, params=()):
        with self._lock:
            try:
                with self._conn:
                    return self._conn.execute(sql, params).fetchone()
            except sqlite3.Error as e:
                logger.error(f"User directory query failed: {e}")
                raise StorageError(f"user directory unavailable: {e}") from e

    def get(self, owner_id):
        row = self._execute("SELECT owner_id, role, email FROM owners WHERE owner_id = ?", (owner_id,))
        if row is None:
            return None
        return UserRecord(owner_id=row["owner_id"], role=row["role"], email=row["email"])

    def upsert(self, record):
        self._execute("""
            INSERT INTO owners (owner_id, role, email) VALUES (?, ?, ?)
            ON CONFLICT(owner_id) DO UPDATE SET role = excluded.role, email = excluded.email
        """, (record.owner_id, record.role, record.email))

    def close(self):
        with self._lock:
            self._conn.close()
