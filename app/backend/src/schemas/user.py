"""User schemas."""

from __future__ import annotations

from .base import ApiModel


class UserProfile(ApiModel):
    """Authenticated user's profile with the role the access policy resolved."""

    id: int
    email: str
    name: str
    role: str
    permissions: list[str]
