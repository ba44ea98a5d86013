"""
Profile Management API Routes

This module provides REST endpoints for the signed-in user's Face ID profiles:
- GET /face-id/profiles: List the caller's profiles (any owner for admins)
- PUT /face-id/profiles/{profile_id}: Re-enroll one profile in place
- DELETE /face-id/profiles/{profile_id}: Deactivate one profile
- DELETE /face-id/profiles: Deactivate every profile of an owner
- GET /face-id/stats: Store-wide statistics (admins only)

Storage failures surface as 503 through the application-wide StorageError
handler in api/app.py.
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status

from api.dependencies import ADMIN_ROLES, AdminSession, CurrentSession, Service
from api.schemas import (
    DeactivateResponse,
    ProfileInfo,
    ProfileListResponse,
    StatsResponse,
    UpdateProfileRequest,
)
from core.errors import ProfileNotFound, ValidationError
from core.sessions import Session

# Setup logging
logger = logging.getLogger(__name__)

# Create router
router = APIRouter(prefix="/face-id", tags=["profiles"])


def _resolve_owner(session: Session, owner_id: Optional[str]) -> str:
    """Default to the caller; acting on another owner requires an admin role."""
    if owner_id is None or owner_id == session.owner_id:
        return session.owner_id
    if session.role not in ADMIN_ROLES:
        logger.warning(f"Owner {session.owner_id} ({session.role}) denied access to profiles of {owner_id}")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
    return owner_id


@router.get("/profiles", response_model=ProfileListResponse)
def list_profiles(session: CurrentSession, service: Service, owner_id: Optional[str] = Query(None)):
    """
    List active Face ID profiles, newest first.

    Descriptors are never returned.
    """
    owner_id = _resolve_owner(session, owner_id)
    profiles = service.list_profiles(owner_id)

    return ProfileListResponse(
        owner_id=owner_id,
        profiles=[ProfileInfo(**p.to_public_dict()) for p in profiles],
        total=len(profiles),
    )


@router.put("/profiles/{profile_id}", response_model=ProfileInfo)
def update_profile(profile_id: str, request: UpdateProfileRequest, session: CurrentSession, service: Service):
    """
    Replace the descriptor and/or confidence of one of the caller's profiles.

    Raises:
        404: No such profile for this owner.
        422: Nothing to update, or the new values are rejected.
    """
    try:
        profile = service.update_profile(
            session.owner_id,
            profile_id,
            descriptor=request.descriptor,
            confidence=request.confidence,
        )
    except ProfileNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Profile {profile_id} not found")
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))

    return ProfileInfo(**profile.to_public_dict())


@router.delete("/profiles/{profile_id}", response_model=DeactivateResponse)
def deactivate_profile(profile_id: str, session: CurrentSession, service: Service):
    """
    Deactivate one of the caller's profiles.

    Raises:
        404: No such profile for this owner.
    """
    try:
        service.deactivate_profile(session.owner_id, profile_id)
    except ProfileNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Profile {profile_id} not found")

    return DeactivateResponse(
        success=True,
        deactivated=1,
        message=f"Profile {profile_id} deactivated",
    )


@router.delete("/profiles", response_model=DeactivateResponse)
def deactivate_all_profiles(session: CurrentSession, service: Service, owner_id: Optional[str] = Query(None)):
    """Disable Face ID on every device of an owner (the caller by default)."""
    owner_id = _resolve_owner(session, owner_id)
    count = service.deactivate_all(owner_id)

    return DeactivateResponse(
        success=True,
        deactivated=count,
        message=f"{count} profile(s) deactivated",
    )


@router.get("/stats", response_model=StatsResponse)
def get_stats(session: AdminSession, service: Service):
    return StatsResponse(**service.get_stats())
