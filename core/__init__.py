"""
Core Module for the Face ID Authentication Service

This package contains descriptor matching, biometric profile storage and
the stateless session credentials built on top of a successful match.

Main components:
    - config: Configuration loading and management
    - errors: Error taxonomy shared by all components
    - matching: Descriptor similarity and 1:N matching engines
    - profile_store: Enrolled profile storage (in-memory and SQLite)
    - users: Owner id -> role/email directory
    - sessions: Signed session credential issue/verify
    - orchestrator: Register and login flows

Usage:
    from core import get_service
    service = get_service()
    result = service.login(descriptor, confidence=88.0)
"""

from core.config import (
    get_config,
    get_section,
    get_matching_config,
    get_storage_config,
    get_session_config,
    get_api_config,
    get_server_config,
)

from core.errors import (
    FaceIdError,
    ValidationError,
    DimensionMismatch,
    NoMatchFound,
    ProfileNotFound,
    SessionError,
    SignatureInvalid,
    SessionExpired,
    StorageError,
    MatchingTimeout,
)

from core.profile_store import (
    BiometricProfile,
    ProfileStore,
    InMemoryProfileStore,
    SQLiteProfileStore,
    generate_profile_id,
)

from core.users import (
    UserRecord,
    UserDirectory,
    InMemoryUserDirectory,
    SQLiteUserDirectory,
)

from core.sessions import Session, SessionManager, RevocationList

from core.orchestrator import (
    FaceIdService,
    LoginResult,
    AttemptState,
    build_service,
    get_service,
    set_service,
)

__all__ = [
    # Configuration
    "get_config",
    "get_section",
    "get_matching_config",
    "get_storage_config",
    "get_session_config",
    "get_api_config",
    "get_server_config",
    # Errors
    "FaceIdError",
    "ValidationError",
    "DimensionMismatch",
    "NoMatchFound",
    "ProfileNotFound",
    "SessionError",
    "SignatureInvalid",
    "SessionExpired",
    "StorageError",
    "MatchingTimeout",
    # Profile storage
    "BiometricProfile",
    "ProfileStore",
    "InMemoryProfileStore",
    "SQLiteProfileStore",
    "generate_profile_id",
    # User directory
    "UserRecord",
    "UserDirectory",
    "InMemoryUserDirectory",
    "SQLiteUserDirectory",
    # Sessions
    "Session",
    "SessionManager",
    "RevocationList",
    # Orchestrator
    "FaceIdService",
    "LoginResult",
    "AttemptState",
    "build_service",
    "get_service",
    "set_service",
]
