"""Authentication and authorization helpers."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from app.backend.src.core.permissions import AccessPolicy, get_access_policy
from app.backend.src.core.security import get_current_user
from app.backend.src.models import User
from app.backend.src.schemas.user import UserProfile

router = APIRouter(prefix="/auth", tags=["auth"])


@router.get("/me", response_model=UserProfile)
def read_current_user(
    current_user: User = Depends(get_current_user),
    policy: AccessPolicy = Depends(get_access_policy),
) -> UserProfile:
    """Return the authenticated user's profile and effective permissions."""

    return UserProfile(
        id=current_user.id,
        email=current_user.email,
        name=current_user.name,
        role=policy.resolve_role(current_user),
        permissions=sorted(policy.permissions_for(current_user)),
    )
