"""
Tests for the ProfileStore backends.

Every test runs against both the in-memory and the SQLite store.

This test suite verifies:
- BiometricProfile dataclass behavior
- Profile creation and dimension/confidence validation
- Active listing and per-owner listing
- In-place descriptor and confidence updates
- Usage recording
- Soft delete, bulk deactivation, reactivation and hard delete
- Retention cleanup and stale counting with an injected clock
- Statistics and the authentication audit trail (capped in memory)

Run with: pytest tests/test_profile_store.py -v
"""

import os
import sys
import tempfile
import shutil
from datetime import datetime, timedelta, timezone

import pytest
import numpy as np

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.errors import DimensionMismatch, ProfileNotFound, StorageError, ValidationError
from core.profile_store import (
    MAX_ATTEMPT_LOGS,
    BiometricProfile,
    InMemoryProfileStore,
    SQLiteProfileStore,
    generate_profile_id,
)

DIM = 8
T0 = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Settable clock for deterministic timestamps."""

    def __init__(self, start=T0):
        self.current = start

    def __call__(self):
        return self.current

    def advance(self, **kwargs):
        self.current += timedelta(**kwargs)


def random_descriptor(dim=DIM):
    return np.random.randn(dim)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture(params=["memory", "sqlite"])
def store(request, clock):
    """Create a store of each backend sharing the fake clock."""
    if request.param == "memory":
        s = InMemoryProfileStore(descriptor_dim=DIM, clock=clock)
        yield s
        s.close()
    else:
        temp_dir = tempfile.mkdtemp(prefix="profile_store_test_")
        s = SQLiteProfileStore(
            db_path=os.path.join(temp_dir, "faceid.sqlite"),
            descriptor_dim=DIM,
            clock=clock,
        )
        yield s
        s.close()
        shutil.rmtree(temp_dir)


class TestBiometricProfile:
    """Tests for the BiometricProfile dataclass."""

    def test_descriptor_is_read_only_float64(self):
        profile = BiometricProfile(
            id="face_test",
            owner_id="user_1",
            descriptor=[1, 2, 3],
            confidence=90,
            created_at=T0,
            updated_at=T0,
        )

        assert profile.descriptor.dtype == np.float64
        assert profile.descriptor_dim == 3
        assert profile.confidence == 90.0
        assert profile.version == "1.0"
        with pytest.raises(ValueError):
            profile.descriptor[0] = 5.0

    def test_last_activity_falls_back_to_creation(self):
        profile = BiometricProfile(
            id="face_test", owner_id="user_1", descriptor=[1.0], confidence=50,
            created_at=T0, updated_at=T0,
        )
        assert profile.last_activity == T0

        profile.last_used_at = T0 + timedelta(days=3)
        assert profile.last_activity == T0 + timedelta(days=3)

    def test_public_dict_hides_descriptor(self):
        profile = BiometricProfile(
            id="face_test", owner_id="user_1", descriptor=[1.0, 2.0], confidence=87.6,
            device_info={"platform": "iOS"}, created_at=T0, updated_at=T0,
        )
        public = profile.to_public_dict()

        assert "descriptor" not in public
        assert public["confidence"] == 88
        assert public["device_info"] == {"platform": "iOS"}


class TestGenerateProfileId:
    """Tests for the generate_profile_id function."""

    def test_generate_unique_ids(self):
        ids = [generate_profile_id() for _ in range(100)]
        assert len(set(ids)) == 100

    def test_id_format(self):
        profile_id = generate_profile_id()
        assert profile_id.startswith("face_")
        assert len(profile_id) == 21  # "face_" + 16 hex chars


class TestProfileStoreCreate:
    """Tests for enrollment into the store."""

    def test_create_and_get(self, store):
        descriptor = random_descriptor()
        profile = store.create("user_1", descriptor, 91.5, {"platform": "Android"})

        loaded = store.get(profile.id)
        assert loaded.owner_id == "user_1"
        assert np.allclose(loaded.descriptor, descriptor)
        assert loaded.confidence == 91.5
        assert loaded.device_info == {"platform": "Android"}
        assert loaded.created_at == T0
        assert loaded.updated_at == T0
        assert loaded.last_used_at is None
        assert loaded.usage_count == 0
        assert loaded.is_active is True

    def test_create_without_device_info(self, store):
        profile = store.create("user_1", random_descriptor(), 50)
        assert store.get(profile.id).device_info == {}

    def test_create_wrong_dimension(self, store):
        with pytest.raises(DimensionMismatch):
            store.create("user_1", np.ones(DIM + 1), 90)
        assert store.count_active() == 0

    @pytest.mark.parametrize("confidence", [-0.1, 100.5])
    def test_create_confidence_out_of_range(self, store, confidence):
        with pytest.raises(ValidationError):
            store.create("user_1", random_descriptor(), confidence)

    def test_confidence_bounds_inclusive(self, store):
        store.create("user_1", random_descriptor(), 0)
        store.create("user_1", random_descriptor(), 100)
        assert store.count_active() == 2

    def test_get_nonexistent(self, store):
        with pytest.raises(ProfileNotFound):
            store.get("face_missing")

    def test_same_owner_multiple_profiles(self, store):
        """One owner may enroll one profile per device."""
        a = store.create("user_1", random_descriptor(), 90, {"platform": "iOS"})
        b = store.create("user_1", random_descriptor(), 90, {"platform": "Web"})
        assert a.id != b.id
        assert store.count_active() == 2


class TestProfileStoreListing:
    """Tests for list_active and list_by_owner."""

    def test_list_active_excludes_inactive(self, store):
        a = store.create("user_1", random_descriptor(), 90)
        b = store.create("user_2", random_descriptor(), 90)
        store.deactivate(a.id)

        active_ids = {p.id for p in store.list_active()}
        assert active_ids == {b.id}
        assert store.count_active() == 1

    def test_list_by_owner_newest_first(self, store, clock):
        first = store.create("user_1", random_descriptor(), 90)
        clock.advance(minutes=5)
        second = store.create("user_1", random_descriptor(), 90)
        store.create("user_2", random_descriptor(), 90)

        profiles = store.list_by_owner("user_1")
        assert [p.id for p in profiles] == [second.id, first.id]

    def test_list_by_owner_active_only(self, store):
        a = store.create("user_1", random_descriptor(), 90)
        store.deactivate(a.id)
        assert store.list_by_owner("user_1") == []

    def test_list_by_unknown_owner(self, store):
        assert store.list_by_owner("nobody") == []


class TestProfileStoreUsage:
    """Tests for record_usage."""

    def test_record_usage(self, store, clock):
        profile = store.create("user_1", random_descriptor(), 90)
        clock.advance(hours=1)

        assert store.record_usage(profile.id) is True
        assert store.record_usage(profile.id) is True

        loaded = store.get(profile.id)
        assert loaded.usage_count == 2
        assert loaded.last_used_at == T0 + timedelta(hours=1)
        assert loaded.updated_at == T0 + timedelta(hours=1)

    def test_record_usage_missing_profile(self, store):
        assert store.record_usage("face_missing") is False

    def test_returned_profiles_are_snapshots(self, store):
        profile = store.create("user_1", random_descriptor(), 90)
        snapshot = store.get(profile.id)
        store.record_usage(profile.id)
        assert snapshot.usage_count == 0


class TestProfileStoreUpdate:
    """Tests for replacing an enrolled descriptor in place."""

    def test_update_descriptor_and_confidence(self, store, clock):
        profile = store.create("user_1", random_descriptor(), 80, {"platform": "iOS"})
        store.record_usage(profile.id)
        clock.advance(hours=1)
        new_descriptor = random_descriptor()

        assert store.update(profile.id, descriptor=new_descriptor, confidence=95) is True

        loaded = store.get(profile.id)
        assert np.allclose(loaded.descriptor, new_descriptor)
        assert loaded.confidence == 95.0
        assert loaded.updated_at == T0 + timedelta(hours=1)
        # Identity, usage and metadata are untouched
        assert loaded.created_at == T0
        assert loaded.usage_count == 1
        assert loaded.device_info == {"platform": "iOS"}
        assert loaded.is_active is True

    def test_update_confidence_only(self, store):
        descriptor = random_descriptor()
        profile = store.create("user_1", descriptor, 80)

        assert store.update(profile.id, confidence=70) is True

        loaded = store.get(profile.id)
        assert loaded.confidence == 70.0
        assert np.allclose(loaded.descriptor, descriptor)

    def test_update_wrong_dimension(self, store):
        descriptor = random_descriptor()
        profile = store.create("user_1", descriptor, 80)

        with pytest.raises(DimensionMismatch):
            store.update(profile.id, descriptor=random_descriptor(DIM + 1))
        assert np.allclose(store.get(profile.id).descriptor, descriptor)

    def test_update_confidence_out_of_range(self, store):
        profile = store.create("user_1", random_descriptor(), 80)
        with pytest.raises(ValidationError):
            store.update(profile.id, confidence=101)

    def test_update_missing(self, store):
        assert store.update("face_missing", confidence=90) is False

    def test_updated_descriptor_is_read_only(self, store):
        profile = store.create("user_1", random_descriptor(), 80)
        store.update(profile.id, descriptor=random_descriptor())

        loaded = store.get(profile.id)
        with pytest.raises(ValueError):
            loaded.descriptor[0] = 1.0


class TestProfileStoreLifecycle:
    """Tests for deactivation, reactivation and deletion."""

    def test_deactivate(self, store, clock):
        profile = store.create("user_1", random_descriptor(), 90)
        clock.advance(minutes=1)

        assert store.deactivate(profile.id) is True
        loaded = store.get(profile.id)
        assert loaded.is_active is False
        assert loaded.updated_at == T0 + timedelta(minutes=1)

    def test_deactivate_missing(self, store):
        assert store.deactivate("face_missing") is False

    def test_reactivate(self, store):
        profile = store.create("user_1", random_descriptor(), 90)
        store.deactivate(profile.id)

        assert store.reactivate(profile.id) is True
        assert store.get(profile.id).is_active is True
        assert store.reactivate("face_missing") is False

    def test_deactivate_all_for_owner(self, store):
        for _ in range(3):
            store.create("user_1", random_descriptor(), 90)
        other = store.create("user_2", random_descriptor(), 90)

        assert store.deactivate_all_for_owner("user_1") == 3
        assert store.list_by_owner("user_1") == []
        assert [p.id for p in store.list_active()] == [other.id]

        # Already inactive profiles are not counted again
        assert store.deactivate_all_for_owner("user_1") == 0
        assert store.deactivate_all_for_owner("nobody") == 0

    def test_delete(self, store):
        profile = store.create("user_1", random_descriptor(), 90)

        assert store.delete(profile.id) is True
        with pytest.raises(ProfileNotFound):
            store.get(profile.id)
        assert store.list_by_owner("user_1") == []
        assert store.delete(profile.id) is False


class TestProfileStoreCleanup:
    """Tests for the retention sweep."""

    def test_cleanup_removes_stale_profiles(self, store, clock):
        stale = store.create("user_1", random_descriptor(), 90)
        clock.advance(days=10)
        fresh = store.create("user_2", random_descriptor(), 90)
        clock.advance(days=25)

        # stale: 35 days since creation, fresh: 25 days
        assert store.cleanup(30) == 1

        with pytest.raises(ProfileNotFound):
            store.get(stale.id)
        assert store.get(fresh.id).owner_id == "user_2"
        assert store.list_by_owner("user_1") == []

    def test_cleanup_uses_last_use(self, store, clock):
        profile = store.create("user_1", random_descriptor(), 90)
        clock.advance(days=80)
        store.record_usage(profile.id)
        clock.advance(days=20)

        assert store.cleanup(30) == 0
        assert store.get(profile.id).usage_count == 1

    def test_cleanup_includes_inactive(self, store, clock):
        profile = store.create("user_1", random_descriptor(), 90)
        store.deactivate(profile.id)
        clock.advance(days=100)

        assert store.cleanup(90) == 1

    def test_cleanup_with_default_retention(self, store, clock):
        """One profile last used 120 days ago, one 10 days ago, retention 90."""
        old = store.create("user_1", random_descriptor(), 90)
        recent = store.create("user_2", random_descriptor(), 90)
        store.record_usage(old.id)
        clock.advance(days=110)
        store.record_usage(recent.id)
        clock.advance(days=10)

        assert store.cleanup(90) == 1

        with pytest.raises(ProfileNotFound):
            store.get(old.id)
        assert store.get(recent.id).usage_count == 1
        assert [p.id for p in store.list_active()] == [recent.id]

    def test_cleanup_negative_retention(self, store):
        with pytest.raises(ValidationError):
            store.cleanup(-1)

    def test_count_stale_matches_cleanup(self, store, clock):
        for owner in ("user_1", "user_2"):
            store.create(owner, random_descriptor(), 90)
        clock.advance(days=60)
        store.create("user_3", random_descriptor(), 90)
        clock.advance(days=40)

        assert store.count_stale(90) == 2
        # Counting removes nothing
        assert store.get_stats()["total_profiles"] == 3
        assert store.cleanup(90) == 2
        assert store.count_stale(90) == 0

    def test_count_stale_negative_retention(self, store):
        with pytest.raises(ValidationError):
            store.count_stale(-1)


class TestProfileStoreReporting:
    """Tests for get_stats and the audit trail."""

    def test_stats_empty(self, store):
        stats = store.get_stats()
        assert stats == {
            "total_profiles": 0,
            "active_profiles": 0,
            "inactive_profiles": 0,
            "total_owners": 0,
            "average_usage_count": 0.0,
            "recently_used": 0,
        }

    def test_stats(self, store, clock):
        a = store.create("user_1", random_descriptor(), 90)
        b = store.create("user_1", random_descriptor(), 90)
        c = store.create("user_2", random_descriptor(), 90)
        store.record_usage(a.id)
        store.record_usage(a.id)
        store.record_usage(c.id)
        store.deactivate(b.id)

        stats = store.get_stats()
        assert stats["total_profiles"] == 3
        assert stats["active_profiles"] == 2
        assert stats["inactive_profiles"] == 1
        assert stats["total_owners"] == 2
        assert stats["average_usage_count"] == 1.0
        assert stats["recently_used"] == 2

        clock.advance(days=8)
        assert store.get_stats()["recently_used"] == 0

    def test_attempt_logs(self, store, clock):
        store.log_attempt("register", True, owner_id="user_1", profile_id="face_a")
        clock.advance(seconds=1)
        store.log_attempt("login", False, similarity=0.55, processing_time_ms=12)
        clock.advance(seconds=1)
        store.log_attempt("login", True, owner_id="user_1", profile_id="face_a",
                          similarity=0.93, processing_time_ms=8)

        logs = store.get_attempt_logs()
        assert [entry["action"] for entry in logs] == ["login", "login", "register"]
        assert logs[0]["success"] is True
        assert logs[0]["similarity"] == pytest.approx(0.93)
        assert logs[0]["timestamp"] == T0 + timedelta(seconds=2)
        # Failed attempts never keep the near-miss score
        assert logs[1]["similarity"] is None
        assert logs[1]["owner_id"] is None

        owner_logs = store.get_attempt_logs(owner_id="user_1")
        assert len(owner_logs) == 2
        assert len(store.get_attempt_logs(limit=1)) == 1


class TestInMemoryAttemptLog:
    """The in-memory audit trail keeps a bounded number of entries."""

    def test_log_is_capped(self):
        store = InMemoryProfileStore(descriptor_dim=DIM, max_attempt_logs=50)
        for _ in range(500):
            store.log_attempt("login", False, processing_time_ms=1)

        logs = store.get_attempt_logs(limit=1000)
        assert len(logs) == 50
        # Ids keep counting after old entries are dropped
        assert logs[0]["id"] == 500
        assert logs[-1]["id"] == 451

    def test_default_cap(self):
        store = InMemoryProfileStore(descriptor_dim=DIM)
        for _ in range(MAX_ATTEMPT_LOGS + 10):
            store.log_attempt("login", False)

        assert len(store.get_attempt_logs(limit=MAX_ATTEMPT_LOGS * 2)) == MAX_ATTEMPT_LOGS


class TestSQLiteProfileStore:
    """SQLite-specific behavior."""

    @pytest.fixture
    def temp_dir(self):
        temp_dir = tempfile.mkdtemp(prefix="sqlite_store_test_")
        yield temp_dir
        shutil.rmtree(temp_dir)

    def test_init_creates_database(self, temp_dir):
        db_path = os.path.join(temp_dir, "nested", "faceid.sqlite")
        store = SQLiteProfileStore(db_path=db_path, descriptor_dim=DIM)

        assert os.path.exists(db_path)
        store.close()

    def test_profiles_persist_across_instances(self, temp_dir):
        db_path = os.path.join(temp_dir, "faceid.sqlite")
        descriptor = random_descriptor()

        store = SQLiteProfileStore(db_path=db_path, descriptor_dim=DIM)
        profile = store.create("user_1", descriptor, 90, {"platform": "iOS"})
        store.close()

        reopened = SQLiteProfileStore(db_path=db_path, descriptor_dim=DIM)
        loaded = reopened.get(profile.id)
        assert np.array_equal(loaded.descriptor, descriptor)
        assert loaded.device_info == {"platform": "iOS"}
        assert loaded.created_at.tzinfo is not None
        reopened.close()

    def test_unusable_database_raises_storage_error(self, temp_dir):
        db_path = os.path.join(temp_dir, "faceid.sqlite")
        store = SQLiteProfileStore(db_path=db_path, descriptor_dim=DIM)
        store.close()

        # Replace the database with something that is not SQLite
        with open(db_path, "wb") as f:
            f.write(b"definitely not a database" * 100)

        with pytest.raises(StorageError):
            store.count_active()
