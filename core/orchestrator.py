"""
Face ID Orchestrator

Composes the profile store, the matching engine, the session manager and
the user directory into the Face ID flows:

- register: bind a new descriptor to an already authenticated owner
- login: identify an unknown caller from a descriptor and mint a session
- update_profile: re-enroll an existing profile of the owner in place

plus the management operations used by the profile screens and the
periodic retention sweep.

Every register, update and login call walks a small state machine:

    IDLE -> DESCRIPTOR_RECEIVED -> MATCHING | ENROLLING -> SUCCESS | REJECTED

Login guarantees that a session is only issued after the matched
profile's usage statistics were written; a failed write fails the whole
attempt. No operation retries internally.

Usage:
    service = FaceIdService(store, engine, sessions, directory, descriptor_dim=128)
    profile_id = service.register("user_1", descriptor, 91.0, {"platform": "iOS"})
    result = service.login(descriptor, 88.0, {"platform": "iOS"})
    session = service.verify_session(result.credential)
"""

import logging
import math
import numbers
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import numpy as np

from core.errors import (
    DimensionMismatch,
    FaceIdError,
    NoMatchFound,
    ProfileNotFound,
    ValidationError,
)
from core.matching.interfaces import MatchingEngine
from core.profile_store import BiometricProfile, ProfileStore
from core.sessions import Session, SessionManager
from core.users import UserDirectory, UserRecord

logger = logging.getLogger(__name__)

DEFAULT_SESSION_TTL = timedelta(days=7)
MAX_DEVICE_INFO_FIELDS = 32
MAX_DEVICE_INFO_VALUE_LENGTH = 512


class AttemptState(str, Enum):
    IDLE = "idle"
    DESCRIPTOR_RECEIVED = "descriptor_received"
    MATCHING = "matching"
    ENROLLING = "enrolling"
    SUCCESS = "success"
    REJECTED = "rejected"


_TRANSITIONS = {
    AttemptState.IDLE: {AttemptState.DESCRIPTOR_RECEIVED, AttemptState.REJECTED},
    AttemptState.DESCRIPTOR_RECEIVED: {AttemptState.MATCHING, AttemptState.ENROLLING, AttemptState.REJECTED},
    AttemptState.MATCHING: {AttemptState.SUCCESS, AttemptState.REJECTED},
    AttemptState.ENROLLING: {AttemptState.SUCCESS, AttemptState.REJECTED},
    AttemptState.SUCCESS: set(),
    AttemptState.REJECTED: set(),
}


@dataclass
class AuthAttempt:
    """Progress of a single register, update or login attempt."""

    action: str
    state: AttemptState = AttemptState.IDLE
    started_at: float = field(default_factory=time.monotonic)
    history: List[AttemptState] = field(default_factory=lambda: [AttemptState.IDLE])

    def advance(self, new_state: AttemptState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"illegal {self.action} transition {self.state.value} -> {new_state.value}")
        self.state = new_state
        self.history.append(new_state)

    @property
    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self.started_at) * 1000)


@dataclass
class LoginResult:
    credential: str
    owner_id: str
    similarity: float
    profile_id: str
    expires_at: datetime


def validate_descriptor(descriptor, expected_dim: int) -> np.ndarray:
    """Check dimensionality and finiteness; returns a float64 vector."""
    if descriptor is None:
        raise ValidationError("descriptor is required")
    try:
        vector = np.asarray(descriptor, dtype=np.float64)
    except (TypeError, ValueError):
        raise ValidationError("descriptor must be a sequence of numbers")
    if vector.ndim != 1:
        raise ValidationError("descriptor must be a flat sequence of numbers")
    if vector.shape[0] != expected_dim:
        raise DimensionMismatch(expected=expected_dim, actual=vector.shape[0])
    if not np.all(np.isfinite(vector)):
        raise ValidationError("descriptor values must be finite")
    return vector


def validate_confidence(confidence) -> float:
    if isinstance(confidence, bool) or not isinstance(confidence, numbers.Real):
        raise ValidationError("confidence must be a number")
    value = float(confidence)
    if math.isnan(value) or not 0.0 <= value <= 100.0:
        raise ValidationError(f"confidence must be within [0, 100], got {confidence}")
    return value


def validate_device_info(device_info: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Device info is informational: a small flat mapping of scalars."""
    if device_info is None:
        return {}
    if not isinstance(device_info, Mapping):
        raise ValidationError("device_info must be an object")
    if len(device_info) > MAX_DEVICE_INFO_FIELDS:
        raise ValidationError(f"device_info may have at most {MAX_DEVICE_INFO_FIELDS} fields")

    cleaned = {}
    for key, value in device_info.items():
        if not isinstance(key, str):
            raise ValidationError("device_info keys must be strings")
        if value is not None and not isinstance(value, (str, int, float, bool)):
            raise ValidationError(f"device_info.{key} must be a scalar value")
        if isinstance(value, str) and len(value) > MAX_DEVICE_INFO_VALUE_LENGTH:
            raise ValidationError(f"device_info.{key} exceeds {MAX_DEVICE_INFO_VALUE_LENGTH} characters")
        cleaned[key] = value
    return cleaned


class FaceIdService:
    """
    Entry point for Face ID enrollment, login and profile management.

    Args:
        store: ProfileStore holding enrolled profiles.
        engine: MatchingEngine used for 1:N identification.
        sessions: SessionManager that issues and verifies credentials.
        directory: UserDirectory resolving owner id -> role, email.
        descriptor_dim: System-wide descriptor dimensionality D.
        similarity_threshold: Default acceptance threshold (exclusive).
        session_ttl: Lifetime of credentials minted by login.
    """

    def __init__(
        self,
        store: ProfileStore,
        engine: MatchingEngine,
        sessions: SessionManager,
        directory: UserDirectory,
        descriptor_dim: int = 128,
        similarity_threshold: float = 0.6,
        session_ttl: timedelta = DEFAULT_SESSION_TTL,
    ):
        self.store = store
        self.engine = engine
        self.sessions = sessions
        self.directory = directory
        self.descriptor_dim = descriptor_dim
        self.similarity_threshold = similarity_threshold
        self.session_ttl = session_ttl

    # ------------------------------------------------------------------
    # Enrollment
    # ------------------------------------------------------------------

    def register(
        self,
        owner_id: str,
        descriptor,
        confidence: float,
        device_info: Optional[Mapping[str, Any]] = None,
        user: Optional[UserRecord] = None,
    ) -> str:
        """
        Enroll a descriptor for an owner who is already authenticated.

        Args:
            user: Directory entry (role, email) of the owner. Written only
                  once the profile is stored, so a rejected registration
                  leaves the directory untouched.

        Returns:
            The new profile id.

        Raises:
            ValidationError: Bad descriptor, confidence or device info.
            StorageError: The profile or directory entry could not be written.
        """
        attempt = AuthAttempt(action="register")
        try:
            vector = validate_descriptor(descriptor, self.descriptor_dim)
            confidence = validate_confidence(confidence)
            info = validate_device_info(device_info)
            if user is not None and user.owner_id != owner_id:
                raise ValidationError("directory entry belongs to a different owner")
            attempt.advance(AttemptState.DESCRIPTOR_RECEIVED)

            attempt.advance(AttemptState.ENROLLING)
            profile = self.store.create(owner_id, vector, confidence, info)
            if user is not None:
                try:
                    self.directory.upsert(user)
                except FaceIdError:
                    # Login needs the directory entry, so drop the orphaned profile
                    self.store.delete(profile.id)
                    raise
        except FaceIdError as e:
            attempt.advance(AttemptState.REJECTED)
            logger.warning(f"Face ID registration rejected for owner {owner_id}: {type(e).__name__}")
            self._audit(attempt, False, owner_id=owner_id)
            raise

        attempt.advance(AttemptState.SUCCESS)
        self._audit(attempt, True, owner_id=owner_id, profile_id=profile.id)
        logger.info(f"Face ID registered for owner {owner_id}: profile {profile.id} ({attempt.elapsed_ms}ms)")
        return profile.id

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    def login(
        self,
        descriptor,
        confidence: float,
        device_info: Optional[Mapping[str, Any]] = None,
        threshold: Optional[float] = None,
    ) -> LoginResult:
        """
        Identify the caller from a descriptor and issue a session.

        Args:
            descriptor: (D,) query descriptor.
            confidence: Capture quality in [0, 100]; range-checked only.
            device_info: Client metadata, logged but not used for matching.
            threshold: Overrides the configured similarity threshold.

        Returns:
            LoginResult with the credential and the matched owner.

        Raises:
            ValidationError: Bad input.
            NoMatchFound: No identification (deliberately uninformative).
            MatchingTimeout: The scan exceeded its budget.
            StorageError: Usage statistics could not be written; no
                          session is issued in that case.
        """
        attempt = AuthAttempt(action="login")
        threshold = self.similarity_threshold if threshold is None else threshold

        try:
            vector = validate_descriptor(descriptor, self.descriptor_dim)
            validate_confidence(confidence)
            validate_device_info(device_info)
            attempt.advance(AttemptState.DESCRIPTOR_RECEIVED)

            attempt.advance(AttemptState.MATCHING)
            candidate = self.engine.find_best_match(vector, threshold)
            profile = candidate.profile

            user = self.directory.get(profile.owner_id)
            if user is None:
                logger.error(f"Matched profile {profile.id} but owner {profile.owner_id} is unknown")
                raise NoMatchFound()

            # Usage stats must be durable before a session exists
            if not self.store.record_usage(profile.id):
                logger.warning(f"Profile {profile.id} disappeared before usage could be recorded")
                raise NoMatchFound()

            credential = self.sessions.issue(user.owner_id, user.role, user.email, ttl=self.session_ttl)
        except FaceIdError as e:
            attempt.advance(AttemptState.REJECTED)
            logger.warning(f"Face ID login rejected: {type(e).__name__} ({attempt.elapsed_ms}ms)")
            self._audit(attempt, False)
            raise

        attempt.advance(AttemptState.SUCCESS)
        session = self.sessions.verify(credential)
        self._audit(attempt, True, owner_id=profile.owner_id, profile_id=profile.id,
                    similarity=candidate.similarity)
        logger.info(
            f"Face ID login for owner {profile.owner_id} via profile {profile.id}: "
            f"similarity {candidate.similarity:.3f} ({attempt.elapsed_ms}ms)"
        )

        return LoginResult(
            credential=credential,
            owner_id=profile.owner_id,
            similarity=candidate.similarity,
            profile_id=profile.id,
            expires_at=session.expires_at,
        )

    # ------------------------------------------------------------------
    # Profile management
    # ------------------------------------------------------------------

    def list_profiles(self, owner_id: str) -> List[BiometricProfile]:
        return self.store.list_by_owner(owner_id)

    def _owned_profile(self, owner_id: str, profile_id: str) -> BiometricProfile:
        profile = self.store.get(profile_id)
        # Someone else's profile is reported exactly like a missing one
        if profile.owner_id != owner_id:
            raise ProfileNotFound(profile_id)
        return profile

    def deactivate_profile(self, owner_id: str, profile_id: str) -> None:
        self._owned_profile(owner_id, profile_id)
        if not self.store.deactivate(profile_id):
            raise ProfileNotFound(profile_id)
        logger.info(f"Deactivated profile {profile_id} of owner {owner_id}")

    def update_profile(
        self,
        owner_id: str,
        profile_id: str,
        descriptor=None,
        confidence: Optional[float] = None,
    ) -> BiometricProfile:
        """
        Re-enroll one of the owner's profiles in place.

        Either field may be omitted; usage statistics are kept.

        Raises:
            ValidationError: Nothing to update, or a bad descriptor/confidence.
            ProfileNotFound: No such profile for this owner.
        """
        attempt = AuthAttempt(action="update")
        try:
            if descriptor is None and confidence is None:
                raise ValidationError("nothing to update: provide a descriptor or a confidence")
            vector = None if descriptor is None else validate_descriptor(descriptor, self.descriptor_dim)
            confidence = None if confidence is None else validate_confidence(confidence)
            attempt.advance(AttemptState.DESCRIPTOR_RECEIVED)

            attempt.advance(AttemptState.ENROLLING)
            self._owned_profile(owner_id, profile_id)
            if not self.store.update(profile_id, descriptor=vector, confidence=confidence):
                raise ProfileNotFound(profile_id)
        except FaceIdError as e:
            attempt.advance(AttemptState.REJECTED)
            logger.warning(f"Face ID update of {profile_id} rejected for owner {owner_id}: {type(e).__name__}")
            self._audit(attempt, False, owner_id=owner_id)
            raise

        attempt.advance(AttemptState.SUCCESS)
        self._audit(attempt, True, owner_id=owner_id, profile_id=profile_id)
        logger.info(f"Updated profile {profile_id} of owner {owner_id} ({attempt.elapsed_ms}ms)")
        return self.store.get(profile_id)

    def deactivate_all(self, owner_id: str) -> int:
        """Disable Face ID login for an owner on every device."""
        count = self.store.deactivate_all_for_owner(owner_id)
        logger.info(f"Deactivated {count} profile(s) of owner {owner_id}")
        return count

    def delete_profile(self, owner_id: str, profile_id: str) -> None:
        self._owned_profile(owner_id, profile_id)
        if not self.store.delete(profile_id):
            raise ProfileNotFound(profile_id)

    def cleanup(self, retention_days: float) -> int:
        return self.store.cleanup(retention_days)

    def get_stats(self) -> Dict[str, Any]:
        return self.store.get_stats()

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def verify_session(self, credential: str) -> Session:
        return self.sessions.verify(credential)

    def refresh_session(self, credential: str, updates: Optional[Dict[str, Any]] = None) -> str:
        """
        Reissue a credential with a fresh lifetime.

        Without explicit updates, role and email are reloaded from the user
        directory so the new credential reflects the owner's current record.
        """
        if updates is None:
            session = self.sessions.verify(credential)
            user = self.directory.get(session.owner_id)
            updates = {"role": user.role, "email": user.email} if user is not None else {}
        return self.sessions.reissue(credential, updates, ttl=self.session_ttl)

    def logout(self, credential: str) -> bool:
        return self.sessions.revoke(credential)

    def _audit(self, attempt: AuthAttempt, success: bool, owner_id=None, profile_id=None, similarity=None):
        # The audit trail must never turn a finished attempt into a failure
        try:
            self.store.log_attempt(
                action=attempt.action,
                success=success,
                owner_id=owner_id,
                profile_id=profile_id,
                similarity=similarity,
                processing_time_ms=attempt.elapsed_ms,
            )
        except FaceIdError as e:
            logger.warning(f"Failed to log {attempt.action} attempt: {e}")


# Singleton instance for the service
_service_instance: Optional[FaceIdService] = None


def build_service(config: Optional[Dict[str, Any]] = None) -> FaceIdService:
    """
    Assemble a FaceIdService from configuration.

    Args:
        config: Full configuration dict. If None, config.yaml is used
                (with the FACEID_SECRET_KEY override applied).
    """
    from core.config import get_config, get_project_root, get_session_config
    from core.matching.linear_engine import LinearScanEngine
    from core.profile_store import InMemoryProfileStore, SQLiteProfileStore
    from core.users import InMemoryUserDirectory, SQLiteUserDirectory

    if config is None:
        config = get_config()
        session_config = get_session_config()
    else:
        session_config = config["session"]

    matching_config = config.get("matching", {})
    storage_config = config.get("storage", {})
    descriptor_dim = matching_config.get("descriptor_dim", 128)

    backend = storage_config.get("backend", "sqlite")
    if backend == "memory":
        store = InMemoryProfileStore(descriptor_dim=descriptor_dim)
        directory = InMemoryUserDirectory()
    elif backend == "sqlite":
        db_path = storage_config.get("db_path", "storage/faceid.sqlite")
        if db_path != ":memory:" and not Path(db_path).is_absolute():
            db_path = str(get_project_root() / db_path)
        store = SQLiteProfileStore(db_path=db_path, descriptor_dim=descriptor_dim)
        directory = SQLiteUserDirectory(db_path)
    else:
        raise ValueError(f"Unknown storage backend: {backend}")

    sessions = SessionManager.from_config(session_config)

    logger.info(
        f"Face ID service ready: backend={backend}, dim={descriptor_dim}, "
        f"threshold={matching_config.get('similarity_threshold', 0.6)}"
    )

    return FaceIdService(
        store=store,
        engine=LinearScanEngine.from_config(store, matching_config),
        sessions=sessions,
        directory=directory,
        descriptor_dim=descriptor_dim,
        similarity_threshold=matching_config.get("similarity_threshold", 0.6),
        session_ttl=sessions.default_ttl,
    )


def get_service() -> FaceIdService:
    """Get or create the shared FaceIdService instance."""
    global _service_instance

    if _service_instance is None:
        _service_instance = build_service()

    return _service_instance


def set_service(service: Optional[FaceIdService]) -> None:
    """Replace the shared instance (None drops it, closing its storage)."""
    global _service_instance

    if _service_instance is not None and _service_instance is not service:
        _service_instance.store.close()
        _service_instance.directory.close()
    _service_instance = service
