"""FastAPI dependencies: the Face ID service and the caller's verified session."""

import logging
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from core.errors import SessionError
from core.orchestrator import FaceIdService, get_service
from core.sessions import Session

logger = logging.getLogger(__name__)

ADMIN_ROLES = frozenset({"admin", "super-admin"})

_bearer = HTTPBearer(auto_error=False)

_CREDENTIALS_EXCEPTION = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="Could not validate credentials",
    headers={"WWW-Authenticate": "Bearer"},
)


def get_face_id_service() -> FaceIdService:
    return get_service()


def get_bearer_token(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer)],
) -> str:
    if credentials is None:
        raise _CREDENTIALS_EXCEPTION
    return credentials.credentials


def get_current_session(
    token: Annotated[str, Depends(get_bearer_token)],
    service: Annotated[FaceIdService, Depends(get_face_id_service)],
) -> Session:
    """
    Authorize a request from its bearer credential.

    Expired and forged credentials get the same answer; the distinction
    only reaches the logs.
    """
    try:
        return service.verify_session(token)
    except SessionError as e:
        logger.info(f"Rejected credential: {type(e).__name__}")
        raise _CREDENTIALS_EXCEPTION


def require_admin(session: Annotated[Session, Depends(get_current_session)]) -> Session:
    if session.role not in ADMIN_ROLES:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
    return session


Service = Annotated[FaceIdService, Depends(get_face_id_service)]
CurrentSession = Annotated[Session, Depends(get_current_session)]
BearerToken = Annotated[str, Depends(get_bearer_token)]
AdminSession = Annotated[Session, Depends(require_admin)]
