"""
Pydantic Schemas for API Request/Response Models

This module defines the data models exchanged between the client
application and the Face ID service.

Descriptor dimensionality and confidence range are deliberately checked in
the core (not here) so that the violated constraint is reported the same
way for every caller.
"""

from datetime import datetime
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, Field


DeviceValue = Union[str, int, float, bool, None]


# ============================================================
# Face ID Schemas
# ============================================================

class DescriptorSubmission(BaseModel):
    """A descriptor produced by the client-side face model."""
    descriptor: List[float] = Field(..., description="Face descriptor (128 floats by default)")
    confidence: float = Field(..., description="Capture quality reported by the model, 0-100")
    device_info: Dict[str, DeviceValue] = Field(
        default_factory=dict,
        description="Client metadata: client id, platform, user agent, screen resolution",
    )


class RegisterRequest(DescriptorSubmission):
    """Request to enroll a new Face ID profile for the signed-in user."""


class RegisterResponse(BaseModel):
    profile_id: str = Field(..., description="Identifier of the new profile")


class LoginRequest(DescriptorSubmission):
    """Request to sign in with a face descriptor."""


class LoginResponse(BaseModel):
    credential: str = Field(..., description="Signed session credential")
    token_type: str = "bearer"
    owner_id: str = Field(..., description="Identified user")
    similarity: float = Field(..., description="Similarity of the accepted match (0-1)")
    expires_at: datetime


# ============================================================
# Profile Management Schemas
# ============================================================

class ProfileInfo(BaseModel):
    """Client-safe view of an enrolled profile (never the descriptor)."""
    id: str
    device_info: Dict[str, DeviceValue] = Field(default_factory=dict)
    confidence: int = Field(..., description="Enrollment confidence, rounded")
    created_at: datetime
    updated_at: datetime
    last_used_at: Optional[datetime] = None
    usage_count: int = 0
    is_active: bool = True


class UpdateProfileRequest(BaseModel):
    """Re-enrollment of an existing profile; omitted fields are kept."""
    descriptor: Optional[List[float]] = Field(None, description="Replacement face descriptor")
    confidence: Optional[float] = Field(None, description="Replacement capture quality, 0-100")


class ProfileListResponse(BaseModel):
    owner_id: str
    profiles: List[ProfileInfo] = Field(default_factory=list)
    total: int = 0


class DeactivateResponse(BaseModel):
    success: bool
    deactivated: int = Field(..., description="Number of profiles deactivated")
    message: str


class StatsResponse(BaseModel):
    total_profiles: int
    active_profiles: int
    inactive_profiles: int
    total_owners: int
    average_usage_count: float
    recently_used: int


# ============================================================
# Session Schemas
# ============================================================

class SessionResponse(BaseModel):
    session_id: str
    owner_id: str
    role: str
    email: str
    issued_at: datetime
    expires_at: datetime


class TokenResponse(BaseModel):
    credential: str
    token_type: str = "bearer"
    expires_at: datetime


# ============================================================
# Health Check Schemas
# ============================================================

class HealthResponse(BaseModel):
    status: str = Field(..., description="Overall status: 'healthy' or 'unhealthy'")
    storage_available: bool
    active_profiles: int
