"""
Stateless session credentials (HS256 JWT via python-jose).

A session is never stored server-side: identity, role, email and expiry
travel inside the signed token, so any worker holding the secret key can
verify it without a database lookup.

The optional RevocationList is the one exception: when enabled, verify()
also rejects session ids that were explicitly logged out in this process.
"""

import binascii
import logging
import threading
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional, Union
from uuid import uuid4

from jose import JWTError, jwt
from jose.utils import base64url_decode, base64url_encode

from core.errors import SessionExpired, SignatureInvalid, ValidationError

logger = logging.getLogger(__name__)

TOKEN_TYPE = "face_id_session"
DEFAULT_TTL = timedelta(days=7)
UPDATABLE_FIELDS = frozenset({"role", "email"})

TTLValue = Union[timedelta, int, float]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_timedelta(ttl: TTLValue) -> timedelta:
    return ttl if isinstance(ttl, timedelta) else timedelta(seconds=ttl)


@dataclass(frozen=True)
class Session:
    session_id: str
    owner_id: str
    role: str
    email: str
    issued_at: datetime
    expires_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class RevocationList:
    """In-process denylist of session ids, pruned once they expire anyway."""

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._revoked: Dict[str, datetime] = {}
        self._lock = threading.Lock()
        self._clock = clock or _utcnow

    def add(self, session_id: str, expires_at: datetime) -> None:
        with self._lock:
            self._revoked[session_id] = expires_at
            self._prune_locked()

    def __contains__(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._revoked

    def __len__(self) -> int:
        with self._lock:
            return len(self._revoked)

    def _prune_locked(self) -> None:
        now = self._clock()
        for sid in [sid for sid, exp in self._revoked.items() if exp < now]:
            del self._revoked[sid]


def _check_encoding(credential: str) -> None:
    # Reject tokens whose segments are not canonical base64url, so that a
    # flipped character can never decode to the same bytes.
    parts = credential.split(".")
    if len(parts) != 3:
        raise SignatureInvalid("malformed credential")
    for part in parts:
        try:
            raw = base64url_decode(part.encode("ascii"))
        except (binascii.Error, ValueError, UnicodeEncodeError):
            raise SignatureInvalid("malformed credential")
        if base64url_encode(raw).decode("ascii") != part:
            raise SignatureInvalid("malformed credential")


class SessionManager:
    """
    Issue, verify and reissue signed session credentials.

    Args:
        secret_key: HMAC key shared by every process that verifies tokens.
        algorithm: JWS algorithm (HS256 by default).
        issuer / audience: Optional iss / aud claims, enforced on verify.
        default_ttl: Lifetime used when issue() gets no ttl.
        revocation_list: Optional denylist consulted by verify().
        clock: Callable returning the current aware UTC datetime.
    """

    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        issuer: Optional[str] = None,
        audience: Optional[str] = None,
        default_ttl: TTLValue = DEFAULT_TTL,
        revocation_list: Optional[RevocationList] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        if not secret_key:
            raise ValueError("secret_key must not be empty")
        self._secret_key = secret_key
        self.algorithm = algorithm
        self.issuer = issuer
        self.audience = audience
        self.default_ttl = _as_timedelta(default_ttl)
        self.revocation_list = revocation_list
        self._clock = clock or _utcnow

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "SessionManager":
        return cls(
            secret_key=config["secret_key"],
            algorithm=config.get("algorithm", "HS256"),
            issuer=config.get("issuer"),
            audience=config.get("audience"),
            default_ttl=timedelta(days=config.get("ttl_days", 7)),
            revocation_list=RevocationList() if config.get("revocation_enabled") else None,
        )

    def issue(self, owner_id: str, role: str, email: str, ttl: Optional[TTLValue] = None) -> str:
        """
        Create a signed credential for owner_id.

        Returns:
            The compact JWT string.
        """
        issued_at = self._clock().replace(microsecond=0)
        expires_at = issued_at + (_as_timedelta(ttl) if ttl is not None else self.default_ttl)

        payload: Dict[str, Any] = {
            "sub": str(owner_id),
            "jti": uuid4().hex,
            "role": role,
            "email": email,
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
            "type": TOKEN_TYPE,
        }
        if self.issuer:
            payload["iss"] = self.issuer
        if self.audience:
            payload["aud"] = self.audience

        token = jwt.encode(payload, self._secret_key, algorithm=self.algorithm)
        logger.debug(f"Issued session {payload['jti']} for owner {owner_id}, expires {expires_at.isoformat()}")
        return token

    def verify(self, credential: str) -> Session:
        """
        Validate a credential and return its session.

        Raises:
            SignatureInvalid: Malformed token, bad signature, wrong claims
                              or revoked session.
            SessionExpired: The token's expiry has passed.
        """
        if not isinstance(credential, str) or not credential:
            raise SignatureInvalid("missing credential")

        _check_encoding(credential)

        try:
            payload = jwt.decode(
                credential,
                self._secret_key,
                algorithms=[self.algorithm],
                audience=self.audience,
                issuer=self.issuer,
                # Expiry is checked below against the injectable clock
                options={"verify_exp": False, "verify_aud": self.audience is not None},
            )
        except JWTError as e:
            logger.debug(f"Credential rejected: {e}")
            raise SignatureInvalid("credential signature is invalid") from e

        try:
            if payload["type"] != TOKEN_TYPE:
                raise SignatureInvalid("unexpected credential type")
            session = Session(
                session_id=payload["jti"],
                owner_id=payload["sub"],
                role=payload["role"],
                email=payload["email"],
                issued_at=datetime.fromtimestamp(payload["iat"], timezone.utc),
                expires_at=datetime.fromtimestamp(payload["exp"], timezone.utc),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise SignatureInvalid("credential payload is incomplete") from e

        if self._clock() > session.expires_at:
            raise SessionExpired("credential has expired")

        if self.revocation_list is not None and session.session_id in self.revocation_list:
            raise SignatureInvalid("credential has been revoked")

        return session

    def reissue(self, credential: str, updates: Optional[Dict[str, Any]] = None, ttl: Optional[TTLValue] = None) -> str:
        """
        Verify a credential and issue a fresh one with updated attributes.

        The presented credential stays valid until its own expiry.

        Args:
            credential: A currently valid credential.
            updates: New values for "role" and/or "email".
            ttl: Lifetime of the new credential (default_ttl if None).
        """
        session = self.verify(credential)
        updates = dict(updates or {})

        unknown = set(updates) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"cannot update session fields: {sorted(unknown)}")

        return self.issue(
            owner_id=session.owner_id,
            role=updates.get("role", session.role),
            email=updates.get("email", session.email),
            ttl=ttl,
        )

    def revoke(self, credential: str) -> bool:
        """
        Deny a credential for the rest of its lifetime.

        Returns:
            False when revocation is not enabled (the credential stays
            valid until it expires).
        """
        session = self.verify(credential)
        if self.revocation_list is None:
            return False
        self.revocation_list.add(session.session_id, session.expires_at)
        logger.info(f"Revoked session {session.session_id} of owner {session.owner_id}")
        return True
