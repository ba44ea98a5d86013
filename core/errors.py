"""
Face ID error taxonomy.

Every failure raised by the core derives from FaceIdError. The API layer
maps them to HTTP responses; only ValidationError messages are meant to be
shown to end users verbatim.
"""


class FaceIdError(Exception):
    """Base class for all Face ID errors."""


class ValidationError(FaceIdError):
    """Input rejected before touching storage or the matcher."""


class DimensionMismatch(ValidationError):
    """Two descriptors (or a descriptor and the system dimension) differ in length."""

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(f"descriptor must have {expected} values, got {actual}")


class NoMatchFound(FaceIdError):
    """No active profile is similar enough to the query descriptor."""

    def __init__(self):
        super().__init__("Face ID not recognized")


class ProfileNotFound(FaceIdError):
    """The requested profile does not exist (or is not visible to the caller)."""

    def __init__(self, profile_id: str):
        self.profile_id = profile_id
        super().__init__(f"Profile {profile_id} not found")


class SessionError(FaceIdError):
    """A presented credential cannot be accepted."""


class SignatureInvalid(SessionError):
    pass


class SessionExpired(SessionError):
    pass


class StorageError(FaceIdError):
    """Transient failure of the profile storage backend."""


class MatchingTimeout(FaceIdError):
    """The 1:N scan exceeded its candidate or time budget."""
