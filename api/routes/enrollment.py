"""
Enrollment API Routes

This module provides the endpoint that binds a new face descriptor to the
user who is already signed in:
- POST /face-id/register: Enroll a descriptor for the caller

The descriptor itself is computed on the client; the server only stores it.
"""

import logging

from fastapi import APIRouter, HTTPException, status

from api.dependencies import CurrentSession, Service
from api.schemas import RegisterRequest, RegisterResponse
from core.errors import ValidationError
from core.users import UserRecord

# Setup logging
logger = logging.getLogger(__name__)

# Create router
router = APIRouter(prefix="/face-id", tags=["enrollment"])


@router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
def register_face_id(request: RegisterRequest, session: CurrentSession, service: Service):
    """
    Register a Face ID profile for the signed-in user.

    Once the profile is stored, the caller's session attributes are written
    to the user directory so a later face login can mint a session with the
    same role and email. A rejected registration writes nothing.

    Raises:
        401: Missing or invalid credential.
        422: Descriptor, confidence or device info rejected.
        503: Storage unavailable.
    """
    try:
        profile_id = service.register(
            owner_id=session.owner_id,
            descriptor=request.descriptor,
            confidence=request.confidence,
            device_info=request.device_info,
            user=UserRecord(session.owner_id, session.role, session.email),
        )
    except ValidationError as e:
        logger.info(f"Registration input rejected for owner {session.owner_id}: {e}")
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))

    return RegisterResponse(profile_id=profile_id)
