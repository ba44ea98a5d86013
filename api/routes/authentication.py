"""
Authentication API Routes

This module provides the Face ID login endpoint and the session endpoints
built on the credential it returns:
- POST /face-id/login: Identify the caller from a descriptor
- GET /auth/session: Inspect the current session
- POST /auth/refresh: Reissue the credential with the current user record
- POST /auth/logout: Revoke the credential (when revocation is enabled)
"""

import logging

from fastapi import APIRouter, HTTPException, Response, status

from api.dependencies import BearerToken, CurrentSession, Service
from api.schemas import (
    LoginRequest,
    LoginResponse,
    SessionResponse,
    TokenResponse,
)
from core.errors import (
    MatchingTimeout,
    NoMatchFound,
    SessionError,
    StorageError,
    ValidationError,
)

# Setup logging
logger = logging.getLogger(__name__)

# Create routers
router = APIRouter(prefix="/face-id", tags=["authentication"])
session_router = APIRouter(prefix="/auth", tags=["sessions"])

_NOT_RECOGNIZED = "Face ID not recognized"
_INVALID_CREDENTIAL = "Could not validate credentials"


@router.post("/login", response_model=LoginResponse)
def login_face_id(request: LoginRequest, service: Service):
    """
    Sign in with a face descriptor.

    A failed identification always gets the same 401, whether nothing was
    enrolled, the best candidate fell short of the threshold or its owner
    is unknown.

    Raises:
        401: Face not recognized.
        422: Descriptor, confidence or device info rejected.
        503: Storage unavailable or the scan ran out of budget.
    """
    try:
        result = service.login(
            descriptor=request.descriptor,
            confidence=request.confidence,
            device_info=request.device_info,
        )
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    except NoMatchFound:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=_NOT_RECOGNIZED)
    except (StorageError, MatchingTimeout) as e:
        logger.error(f"Face ID login unavailable: {type(e).__name__}: {e}")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Face ID temporarily unavailable")

    return LoginResponse(
        credential=result.credential,
        owner_id=result.owner_id,
        similarity=round(result.similarity, 4),
        expires_at=result.expires_at,
    )


@session_router.get("/session", response_model=SessionResponse)
def get_session(session: CurrentSession):
    return SessionResponse(**session.to_dict())


@session_router.post("/refresh", response_model=TokenResponse)
def refresh_session(token: BearerToken, service: Service):
    """Issue a fresh credential carrying the owner's current role and email."""
    try:
        credential = service.refresh_session(token)
    except SessionError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=_INVALID_CREDENTIAL,
            headers={"WWW-Authenticate": "Bearer"},
        )

    session = service.verify_session(credential)
    return TokenResponse(credential=credential, expires_at=session.expires_at)


@session_router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(token: BearerToken, session: CurrentSession, service: Service):
    """
    Log out the current credential.

    Without a revocation list the credential simply runs until it expires;
    the client is expected to discard it either way.
    """
    if not service.logout(token):
        logger.info(f"Logout for owner {session.owner_id} without revocation; credential expires naturally")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
