"""Profile API routes."""

from fastapi import APIRouter, Depends, HTTPException, status

from portal.auth import get_session_manager, require_identity
from portal.schemas.profile import Profile, ProfileUpdate
from portal.services.platform import PlatformUser
from portal.services.session_manager import SessionManager

router = APIRouter(prefix="/profile", tags=["profile"])


@router.get("", response_model=Profile)
async def get_profile(
    manager: SessionManager = Depends(get_session_manager),
    _identity: PlatformUser = Depends(require_identity),
) -> Profile:
    """Get the signed-in patient's profile.

    Raises:
        HTTPException: 404 if the profile could not be loaded.
    """
    profile = manager.snapshot().profile
    if profile is None:
        profile = await manager.refresh_profile()
    if profile is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Profile not found",
        )
    return profile


@router.patch("", response_model=Profile)
async def update_profile(
    profile_data: ProfileUpdate,
    manager: SessionManager = Depends(get_session_manager),
    _identity: PlatformUser = Depends(require_identity),
) -> Profile:
    """Update the signed-in patient's profile.

    Only fields present in the request body are written. The response is the
    record as stored by the platform.

    Raises:
        HTTPException: 401 without the signed-in patient's bearer token.
        ValidationError: 422 if the platform rejects the fields.
    """
    return await manager.update_profile(profile_data)
