"""
Profile Store Module

This module owns the enrolled biometric profiles of the Face ID system.

A profile binds one descriptor to one owner; an owner may enroll several
profiles (one per device). Profiles are keyed by profile id, and an
owner -> [profile ids] index supports the management views.

Two interchangeable backends implement the ProfileStore interface:
- InMemoryProfileStore: dicts guarded by a lock (tests, single process)
- SQLiteProfileStore: a SQLite file shared by all workers of a host

Both provide the same lifecycle operations:
- create / get / list_active / list_by_owner
- update: replace the descriptor or confidence of an enrolled profile
- record_usage: bump usage stats after a successful login
- deactivate / deactivate_all_for_owner / reactivate: soft delete
- delete: hard removal
- cleanup / count_stale: retention sweep of profiles unused for too long
- get_stats / log_attempt / get_attempt_logs: reporting and audit

Usage:
    from core.profile_store import SQLiteProfileStore

    store = SQLiteProfileStore(db_path="storage/faceid.sqlite", descriptor_dim=128)
    profile = store.create("user_1", descriptor, confidence=92.0,
                           device_info={"platform": "iOS"})
    store.record_usage(profile.id)
"""

import itertools
import json
import logging
import sqlite3
import threading
import uuid
from abc import ABC, abstractmethod
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Deque, Dict, Iterator, List, Optional

import numpy as np

from core.errors import DimensionMismatch, ProfileNotFound, StorageError, ValidationError

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

RECENTLY_USED_WINDOW = timedelta(days=7)

# Audit entries kept by the in-memory store
MAX_ATTEMPT_LOGS = 10000


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_profile_id() -> str:
    """
    Generate a unique profile ID.

    Format: "face_" followed by 16 random hex characters.
    """
    return f"face_{uuid.uuid4().hex[:16]}"


@dataclass(eq=False)
class BiometricProfile:
    """
    An enrolled descriptor and its enrollment metadata.

    Attributes:
        id: Unique profile identifier (e.g., "face_9f2c...").
        owner_id: The user this profile authenticates.
        descriptor: (D,) float64 vector, read-only once constructed.
        confidence: Enrollment-time quality score in [0, 100]. Stored
                    for display only; never used for matching.
        device_info: Free-form client metadata (platform, user agent,
                     screen resolution, client id).
        created_at / updated_at: Aware UTC timestamps.
        last_used_at: Time of the last successful match, None until then.
        usage_count: Number of successful matches.
        is_active: Only active profiles take part in matching.
        version: Profile format version for future compatibility.
    """

    id: str
    owner_id: str
    descriptor: np.ndarray
    confidence: float
    device_info: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    last_used_at: Optional[datetime] = None
    usage_count: int = 0
    is_active: bool = True
    version: str = "1.0"

    def __post_init__(self):
        descriptor = np.array(self.descriptor, dtype=np.float64).ravel()
        descriptor.setflags(write=False)
        self.descriptor = descriptor
        self.confidence = float(self.confidence)
        self.device_info = dict(self.device_info or {})

    @property
    def descriptor_dim(self) -> int:
        return int(self.descriptor.shape[0])

    @property
    def last_activity(self) -> datetime:
        """Last successful use, or creation time for never-used profiles."""
        return self.last_used_at or self.created_at

    def copy(self) -> "BiometricProfile":
        return replace(self)

    def to_public_dict(self) -> Dict[str, Any]:
        """Profile summary safe to hand to clients (no descriptor)."""
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "confidence": round(self.confidence),
            "device_info": dict(self.device_info),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "last_used_at": self.last_used_at,
            "usage_count": self.usage_count,
            "is_active": self.is_active,
        }


class ProfileStore(ABC):
    """
    Abstract storage of BiometricProfile records.

    Implementations are responsible for their own consistency: create
    and its owner-index update are atomic, and the owner index never
    references a deleted profile.

    Args:
        descriptor_dim: System-wide descriptor dimensionality D.
        clock: Callable returning the current aware UTC datetime.
    """

    def __init__(self, descriptor_dim: int = 128, clock: Optional[Clock] = None):
        self.descriptor_dim = descriptor_dim
        self._clock = clock or utcnow

    def now(self) -> datetime:
        return self._clock()

    def _validate_descriptor(self, descriptor) -> np.ndarray:
        descriptor = np.asarray(descriptor, dtype=np.float64).ravel()
        if descriptor.shape[0] != self.descriptor_dim:
            raise DimensionMismatch(expected=self.descriptor_dim, actual=descriptor.shape[0])
        return descriptor

    def _validate_confidence(self, confidence: float) -> float:
        if not 0.0 <= float(confidence) <= 100.0:
            raise ValidationError(f"confidence must be within [0, 100], got {confidence}")
        return float(confidence)

    def _validate_new(self, descriptor, confidence: float) -> np.ndarray:
        descriptor = self._validate_descriptor(descriptor)
        self._validate_confidence(confidence)
        return descriptor

    def _cutoff(self, retention_days: float) -> datetime:
        if retention_days < 0:
            raise ValidationError(f"retention_days must be >= 0, got {retention_days}")
        return self.now() - timedelta(days=retention_days)

    @abstractmethod
    def create(
        self,
        owner_id: str,
        descriptor,
        confidence: float,
        device_info: Optional[Dict[str, Any]] = None,
    ) -> BiometricProfile:
        """Enroll a new active profile for owner_id and return it."""

    @abstractmethod
    def get(self, profile_id: str) -> BiometricProfile:
        """Return a profile (active or not). Raises ProfileNotFound."""

    @abstractmethod
    def list_active(self) -> List[BiometricProfile]:
        """All active profiles, used for 1:N matching."""

    @abstractmethod
    def count_active(self) -> int:
        """Number of active profiles."""

    @abstractmethod
    def list_by_owner(self, owner_id: str) -> List[BiometricProfile]:
        """Active profiles of one owner, most recent first."""

    @abstractmethod
    def update(self, profile_id: str, descriptor=None, confidence: Optional[float] = None) -> bool:
        """
        Replace the descriptor and/or confidence of an enrolled profile.

        Usage statistics and activation state are kept. Returns False if
        the profile does not exist.

        Raises:
            DimensionMismatch: The new descriptor does not have length D.
            ValidationError: Confidence outside [0, 100].
        """

    @abstractmethod
    def record_usage(self, profile_id: str) -> bool:
        """Mark a successful match. Returns False if the profile is gone."""

    @abstractmethod
    def deactivate(self, profile_id: str) -> bool:
        """Soft-delete one profile. Returns False if it does not exist."""

    @abstractmethod
    def deactivate_all_for_owner(self, owner_id: str) -> int:
        """Soft-delete every active profile of owner_id; returns the count."""

    @abstractmethod
    def reactivate(self, profile_id: str) -> bool:
        """Undo a soft delete. Returns False if the profile does not exist."""

    @abstractmethod
    def delete(self, profile_id: str) -> bool:
        """Permanently remove a profile. Returns False if it does not exist."""

    @abstractmethod
    def cleanup(self, retention_days: float) -> int:
        """Remove profiles whose last activity is older than retention_days."""

    @abstractmethod
    def count_stale(self, retention_days: float) -> int:
        """Number of profiles cleanup(retention_days) would remove now."""

    @abstractmethod
    def get_stats(self) -> Dict[str, Any]:
        """Aggregate counts for dashboards."""

    @abstractmethod
    def log_attempt(
        self,
        action: str,
        success: bool,
        owner_id: Optional[str] = None,
        profile_id: Optional[str] = None,
        similarity: Optional[float] = None,
        processing_time_ms: int = 0,
    ) -> None:
        """Append an entry to the authentication audit trail."""

    @abstractmethod
    def get_attempt_logs(self, owner_id: Optional[str] = None, limit: int = 100) -> List[Dict[str, Any]]:
        """Most recent audit entries first."""

    def close(self) -> None:
        pass


class InMemoryProfileStore(ProfileStore):
    """
    Process-local profile store.

    Profiles live in a dict keyed by profile id with a secondary
    owner -> [profile ids] index. A single lock serializes every
    operation; callers receive copies, never the stored objects.
    """

    def __init__(
        self,
        descriptor_dim: int = 128,
        clock: Optional[Clock] = None,
        max_attempt_logs: int = MAX_ATTEMPT_LOGS,
    ):
        super().__init__(descriptor_dim, clock)
        self._profiles: Dict[str, BiometricProfile] = {}
        self._owner_index: Dict[str, List[str]] = {}
        # Oldest audit entries drop off once the cap is reached
        self._attempts: Deque[Dict[str, Any]] = deque(maxlen=max_attempt_logs)
        self._attempt_ids = itertools.count(1)
        self._lock = threading.Lock()

    def create(self, owner_id, descriptor, confidence, device_info=None):
        descriptor = self._validate_new(descriptor, confidence)
        now = self.now()
        profile = BiometricProfile(
            id=generate_profile_id(),
            owner_id=owner_id,
            descriptor=descriptor,
            confidence=confidence,
            device_info=device_info or {},
            created_at=now,
            updated_at=now,
        )

        with self._lock:
            self._profiles[profile.id] = profile
            self._owner_index.setdefault(owner_id, []).append(profile.id)

        logger.info(f"Created profile {profile.id} for owner {owner_id}")
        return profile.copy()

    def get(self, profile_id):
        with self._lock:
            profile = self._profiles.get(profile_id)
            if profile is None:
                raise ProfileNotFound(profile_id)
            return profile.copy()

    def list_active(self):
        with self._lock:
            return [p.copy() for p in self._profiles.values() if p.is_active]

    def count_active(self):
        with self._lock:
            return sum(1 for p in self._profiles.values() if p.is_active)

    def list_by_owner(self, owner_id):
        with self._lock:
            profiles = [
                self._profiles[pid].copy()
                for pid in self._owner_index.get(owner_id, [])
                if self._profiles[pid].is_active
            ]
        profiles.sort(key=lambda p: p.created_at, reverse=True)
        return profiles

    def update(self, profile_id, descriptor=None, confidence=None):
        changes: Dict[str, Any] = {}
        if descriptor is not None:
            changes["descriptor"] = self._validate_descriptor(descriptor)
        if confidence is not None:
            changes["confidence"] = self._validate_confidence(confidence)

        now = self.now()
        with self._lock:
            profile = self._profiles.get(profile_id)
            if profile is None:
                return False
            self._profiles[profile_id] = replace(profile, updated_at=now, **changes)

        logger.info(f"Updated profile {profile_id}: {sorted(changes) or 'no fields'}")
        return True

    def record_usage(self, profile_id):
        now = self.now()
        with self._lock:
            profile = self._profiles.get(profile_id)
            if profile is None:
                return False
            profile.last_used_at = now
            profile.usage_count += 1
            profile.updated_at = now
        return True

    def _set_active(self, profile_id: str, active: bool) -> bool:
        now = self.now()
        with self._lock:
            profile = self._profiles.get(profile_id)
            if profile is None:
                return False
            profile.is_active = active
            profile.updated_at = now
        return True

    def deactivate(self, profile_id):
        return self._set_active(profile_id, False)

    def reactivate(self, profile_id):
        return self._set_active(profile_id, True)

    def deactivate_all_for_owner(self, owner_id):
        now = self.now()
        count = 0
        with self._lock:
            for pid in self._owner_index.get(owner_id, []):
                profile = self._profiles[pid]
                if profile.is_active:
                    profile.is_active = False
                    profile.updated_at = now
                    count += 1
        return count

    def _remove_locked(self, profile: BiometricProfile) -> None:
        del self._profiles[profile.id]
        remaining = [pid for pid in self._owner_index.get(profile.owner_id, []) if pid != profile.id]
        if remaining:
            self._owner_index[profile.owner_id] = remaining
        else:
            self._owner_index.pop(profile.owner_id, None)

    def delete(self, profile_id):
        with self._lock:
            profile = self._profiles.get(profile_id)
            if profile is None:
                return False
            self._remove_locked(profile)
        logger.info(f"Deleted profile {profile_id}")
        return True

    def cleanup(self, retention_days):
        cutoff = self._cutoff(retention_days)
        with self._lock:
            stale = [p for p in self._profiles.values() if p.last_activity < cutoff]
            for profile in stale:
                self._remove_locked(profile)
        logger.info(f"Cleanup removed {len(stale)} profile(s) unused for {retention_days} days")
        return len(stale)

    def count_stale(self, retention_days):
        cutoff = self._cutoff(retention_days)
        with self._lock:
            return sum(1 for p in self._profiles.values() if p.last_activity < cutoff)

    def get_stats(self):
        recent_cutoff = self.now() - RECENTLY_USED_WINDOW
        with self._lock:
            profiles = list(self._profiles.values())
            total_owners = len(self._owner_index)
        active = [p for p in profiles if p.is_active]
        total_usage = sum(p.usage_count for p in profiles)

        return {
            "total_profiles": len(profiles),
            "active_profiles": len(active),
            "inactive_profiles": len(profiles) - len(active),
            "total_owners": total_owners,
            "average_usage_count": round(total_usage / len(profiles), 1) if profiles else 0.0,
            "recently_used": sum(
                1 for p in active if p.last_used_at is not None and p.last_used_at >= recent_cutoff
            ),
        }

    def log_attempt(self, action, success, owner_id=None, profile_id=None,
                    similarity=None, processing_time_ms=0):
        entry = {
            "id": None,
            "action": action,
            "success": bool(success),
            "owner_id": owner_id,
            "profile_id": profile_id,
            "similarity": similarity if success else None,
            "processing_time_ms": int(processing_time_ms),
            "timestamp": self.now(),
        }
        with self._lock:
            entry["id"] = next(self._attempt_ids)
            self._attempts.append(entry)

    def get_attempt_logs(self, owner_id=None, limit=100):
        with self._lock:
            entries = [dict(e) for e in self._attempts if owner_id is None or e["owner_id"] == owner_id]
        entries.reverse()
        return entries[:limit]


def _format_ts(value: Optional[datetime]) -> Optional[str]:
    # Fixed-width ISO strings keep SQL comparisons chronological
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class SQLiteProfileStore(ProfileStore):
    """
    Profile store backed by a SQLite database file.

    Tables:
    - face_profiles: one row per enrollment; the owner index is the
      ix_face_profiles_owner index on owner_id, so it can never point at
      a deleted row.
    - auth_logs: audit trail of login and enrollment attempts.

    Descriptors are stored as raw float64 blobs, device info as JSON.
    The connection is lazily created and shared between threads behind a
    lock; every public operation runs in its own transaction.

    Attributes:
        db_path: Path to the SQLite database file (or ":memory:").
    """

    def __init__(self, db_path: str, descriptor_dim: int = 128, clock: Optional[Clock] = None):
        super().__init__(descriptor_dim, clock)
        self.db_path = str(db_path)
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()

        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._init_database()
        logger.info(f"SQLiteProfileStore initialized: db={self.db_path}, dim={descriptor_dim}")

    def _get_connection(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
        return self._conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Cursor]:
        with self._lock:
            try:
                conn = self._get_connection()
                with conn:
                    yield conn.cursor()
            except sqlite3.Error as e:
                logger.error(f"SQLite operation failed: {e}")
                raise StorageError(f"profile storage unavailable: {e}") from e

    def _init_database(self) -> None:
        with self._transaction() as cursor:
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS face_profiles (
                    profile_id TEXT PRIMARY KEY,
                    owner_id TEXT NOT NULL,
                    descriptor BLOB NOT NULL,
                    descriptor_dim INTEGER NOT NULL,
                    confidence REAL NOT NULL,
                    device_info TEXT NOT NULL DEFAULT '{}',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    last_used_at TEXT,
                    usage_count INTEGER NOT NULL DEFAULT 0,
                    is_active INTEGER NOT NULL DEFAULT 1,
                    version TEXT NOT NULL DEFAULT '1.0'
                )
            """)
            cursor.execute(
                "CREATE INDEX IF NOT EXISTS ix_face_profiles_owner ON face_profiles (owner_id)"
            )
            cursor.execute(
                "CREATE INDEX IF NOT EXISTS ix_face_profiles_active ON face_profiles (is_active)"
            )
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS auth_logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    action TEXT NOT NULL,
                    success INTEGER NOT NULL,
                    owner_id TEXT,
                    profile_id TEXT,
                    similarity REAL,
                    processing_time_ms INTEGER,
                    timestamp TEXT NOT NULL
                )
            """)
        logger.debug("Database schema initialized")

    def _row_to_profile(self, row: sqlite3.Row) -> BiometricProfile:
        return BiometricProfile(
            id=row["profile_id"],
            owner_id=row["owner_id"],
            descriptor=np.frombuffer(row["descriptor"], dtype=np.float64),
            confidence=row["confidence"],
            device_info=json.loads(row["device_info"]),
            created_at=_parse_ts(row["created_at"]),
            updated_at=_parse_ts(row["updated_at"]),
            last_used_at=_parse_ts(row["last_used_at"]),
            usage_count=row["usage_count"],
            is_active=bool(row["is_active"]),
            version=row["version"],
        )

    def create(self, owner_id, descriptor, confidence, device_info=None):
        descriptor = self._validate_new(descriptor, confidence)
        now = self.now()
        profile = BiometricProfile(
            id=generate_profile_id(),
            owner_id=owner_id,
            descriptor=descriptor,
            confidence=confidence,
            device_info=device_info or {},
            created_at=now,
            updated_at=now,
        )

        try:
            device_json = json.dumps(profile.device_info)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"device_info must be JSON serializable: {e}") from e

        with self._transaction() as cursor:
            cursor.execute("""
                INSERT INTO face_profiles
                (profile_id, owner_id, descriptor, descriptor_dim, confidence, device_info,
                 created_at, updated_at, usage_count, is_active, version)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, 0, 1, ?)
            """, (
                profile.id,
                owner_id,
                profile.descriptor.tobytes(),
                profile.descriptor_dim,
                profile.confidence,
                device_json,
                _format_ts(now),
                _format_ts(now),
                profile.version,
            ))

        logger.info(f"Created profile {profile.id} for owner {owner_id}")
        return profile

    def get(self, profile_id):
        with self._transaction() as cursor:
            cursor.execute("SELECT * FROM face_profiles WHERE profile_id = ?", (profile_id,))
            row = cursor.fetchone()
        if row is None:
            raise ProfileNotFound(profile_id)
        return self._row_to_profile(row)

    def list_active(self):
        with self._transaction() as cursor:
            cursor.execute("SELECT * FROM face_profiles WHERE is_active = 1")
            rows = cursor.fetchall()
        return [self._row_to_profile(r) for r in rows]

    def count_active(self):
        with self._transaction() as cursor:
            cursor.execute("SELECT COUNT(*) AS n FROM face_profiles WHERE is_active = 1")
            return cursor.fetchone()["n"]

    def list_by_owner(self, owner_id):
        with self._transaction() as cursor:
            cursor.execute("""
                SELECT * FROM face_profiles
                WHERE owner_id = ? AND is_active = 1
                ORDER BY created_at DESC
            """, (owner_id,))
            rows = cursor.fetchall()
        return [self._row_to_profile(r) for r in rows]

    def update(self, profile_id, descriptor=None, confidence=None):
        assignments = ["updated_at = ?"]
        params: List[Any] = [_format_ts(self.now())]
        if descriptor is not None:
            vector = self._validate_descriptor(descriptor)
            assignments.append("descriptor = ?")
            params.append(vector.tobytes())
        if confidence is not None:
            assignments.append("confidence = ?")
            params.append(self._validate_confidence(confidence))

        with self._transaction() as cursor:
            cursor.execute(
                f"UPDATE face_profiles SET {', '.join(assignments)} WHERE profile_id = ?",
                (*params, profile_id),
            )
            updated = cursor.rowcount > 0

        if updated:
            logger.info(f"Updated profile {profile_id}")
        else:
            logger.warning(f"Cannot update: profile {profile_id} not found")
        return updated

    def record_usage(self, profile_id):
        now = _format_ts(self.now())
        with self._transaction() as cursor:
            cursor.execute("""
                UPDATE face_profiles
                SET last_used_at = ?, usage_count = usage_count + 1, updated_at = ?
                WHERE profile_id = ?
            """, (now, now, profile_id))
            return cursor.rowcount > 0

    def _set_active(self, profile_id: str, active: bool) -> bool:
        with self._transaction() as cursor:
            cursor.execute(
                "UPDATE face_profiles SET is_active = ?, updated_at = ? WHERE profile_id = ?",
                (int(active), _format_ts(self.now()), profile_id),
            )
            return cursor.rowcount > 0

    def deactivate(self, profile_id):
        return self._set_active(profile_id, False)

    def reactivate(self, profile_id):
        return self._set_active(profile_id, True)

    def deactivate_all_for_owner(self, owner_id):
        with self._transaction() as cursor:
            cursor.execute("""
                UPDATE face_profiles SET is_active = 0, updated_at = ?
                WHERE owner_id = ? AND is_active = 1
            """, (_format_ts(self.now()), owner_id))
            return cursor.rowcount

    def delete(self, profile_id):
        with self._transaction() as cursor:
            cursor.execute("DELETE FROM face_profiles WHERE profile_id = ?", (profile_id,))
            deleted = cursor.rowcount > 0

        if deleted:
            logger.info(f"Deleted profile {profile_id}")
        else:
            logger.warning(f"Cannot delete: profile {profile_id} not found")
        return deleted

    def cleanup(self, retention_days):
        cutoff = _format_ts(self._cutoff(retention_days))
        with self._transaction() as cursor:
            cursor.execute(
                "DELETE FROM face_profiles WHERE COALESCE(last_used_at, created_at) < ?",
                (cutoff,),
            )
            removed = cursor.rowcount
        logger.info(f"Cleanup removed {removed} profile(s) unused for {retention_days} days")
        return removed

    def count_stale(self, retention_days):
        cutoff = _format_ts(self._cutoff(retention_days))
        with self._transaction() as cursor:
            cursor.execute(
                "SELECT COUNT(*) AS n FROM face_profiles WHERE COALESCE(last_used_at, created_at) < ?",
                (cutoff,),
            )
            return cursor.fetchone()["n"]

    def get_stats(self):
        recent_cutoff = _format_ts(self.now() - RECENTLY_USED_WINDOW)
        with self._transaction() as cursor:
            cursor.execute("""
                SELECT COUNT(*) AS total,
                       SUM(is_active) AS active,
                       COUNT(DISTINCT owner_id) AS owners,
                       SUM(usage_count) AS usage
                FROM face_profiles
            """)
            totals = cursor.fetchone()
            cursor.execute("""
                SELECT COUNT(*) AS n FROM face_profiles
                WHERE is_active = 1 AND last_used_at IS NOT NULL AND last_used_at >= ?
            """, (recent_cutoff,))
            recent = cursor.fetchone()["n"]

        total = totals["total"] or 0
        active = int(totals["active"] or 0)
        return {
            "total_profiles": total,
            "active_profiles": active,
            "inactive_profiles": total - active,
            "total_owners": totals["owners"] or 0,
            "average_usage_count": round((totals["usage"] or 0) / total, 1) if total else 0.0,
            "recently_used": recent,
        }

    def log_attempt(self, action, success, owner_id=None, profile_id=None,
                    similarity=None, processing_time_ms=0):
        with self._transaction() as cursor:
            cursor.execute("""
                INSERT INTO auth_logs
                (action, success, owner_id, profile_id, similarity, processing_time_ms, timestamp)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (
                action,
                int(bool(success)),
                owner_id,
                profile_id,
                similarity if success else None,
                int(processing_time_ms),
                _format_ts(self.now()),
            ))
            log_id = cursor.lastrowid

        logger.debug(f"Logged {action} attempt: id={log_id}, owner={owner_id}, success={success}")

    def get_attempt_logs(self, owner_id=None, limit=100):
        with self._transaction() as cursor:
            if owner_id:
                cursor.execute("""
                    SELECT * FROM auth_logs WHERE owner_id = ?
                    ORDER BY id DESC LIMIT ?
                """, (owner_id, limit))
            else:
                cursor.execute("SELECT * FROM auth_logs ORDER BY id DESC LIMIT ?", (limit,))
            rows = cursor.fetchall()

        return [
            {
                "id": row["id"],
                "action": row["action"],
                "success": bool(row["success"]),
                "owner_id": row["owner_id"],
                "profile_id": row["profile_id"],
                "similarity": row["similarity"],
                "processing_time_ms": row["processing_time_ms"],
                "timestamp": _parse_ts(row["timestamp"]),
            }
            for row in rows
        ]

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
                logger.debug("Database connection closed")
