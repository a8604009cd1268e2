"""Role and permission policy for payroll endpoints."""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Mapping

from app.backend.src.core.config import Settings, get_settings, split_identifiers

VIEW_PAYROLL = "view_payroll"
MANAGE_PAYROLL = "manage_payroll"
MANAGE_SETTINGS = "manage_settings"

ROLES: tuple[str, ...] = ("admin", "manager", "user", "viewer")

DEFAULT_ROLE_PERMISSIONS: dict[str, frozenset[str]] = {
    "admin": frozenset({VIEW_PAYROLL, MANAGE_PAYROLL, MANAGE_SETTINGS}),
    "manager": frozenset({VIEW_PAYROLL, MANAGE_PAYROLL}),
    "user": frozenset({VIEW_PAYROLL}),
    "viewer": frozenset({VIEW_PAYROLL}),
}


@dataclass(frozen=True)
class AccessPolicy:
    """Explicit mapping of users to roles and roles to permissions.

    A role stored on the user record wins. Otherwise the Auth0 subject is
    looked up in the configured identifier lists, falling back to
    ``default_role``.
    """

    role_permissions: Mapping[str, frozenset[str]] = field(
        default_factory=lambda: dict(DEFAULT_ROLE_PERMISSIONS)
    )
    admin_subjects: frozenset[str] = frozenset()
    manager_subjects: frozenset[str] = frozenset()
    viewer_subjects: frozenset[str] = frozenset()
    default_role: str = "user"

    @classmethod
    def from_settings(cls, settings: Settings) -> "AccessPolicy":
        default_role = (settings.default_user_role or "user").strip().lower()
        if default_role not in DEFAULT_ROLE_PERMISSIONS:
            default_role = "user"
        return cls(
            admin_subjects=split_identifiers(settings.admin_user_ids),
            manager_subjects=split_identifiers(settings.manager_user_ids),
            viewer_subjects=split_identifiers(settings.viewer_user_ids),
            default_role=default_role,
        )

    def resolve_role(self, user: Any) -> str:
        stored = (getattr(user, "role", None) or "").strip().lower()
        if stored in self.role_permissions:
            return stored

        subject = getattr(user, "auth0_sub", None)
        if subject:
            if subject in self.admin_subjects:
                return "admin"
            if subject in self.manager_subjects:
                return "manager"
            if subject in self.viewer_subjects:
                return "viewer"
        return self.default_role

    def permissions_for(self, user: Any) -> frozenset[str]:
        return self.role_permissions.get(self.resolve_role(user), frozenset())

    def has_permission(self, user: Any, permission: str) -> bool:
        return permission in self.permissions_for(user)


@lru_cache()
def get_access_policy() -> AccessPolicy:
    """Return the access policy derived from the cached settings."""

    return AccessPolicy.from_settings(get_settings())


__all__ = [
    "AccessPolicy",
    "DEFAULT_ROLE_PERMISSIONS",
    "MANAGE_PAYROLL",
    "MANAGE_SETTINGS",
    "ROLES",
    "VIEW_PAYROLL",
    "get_access_policy",
]
