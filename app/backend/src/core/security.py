"""Security helpers for Auth0 integration."""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Iterable

import httpx
import structlog
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from app.backend.src.core.config import get_settings
from app.backend.src.core.permissions import AccessPolicy, get_access_policy
from app.backend.src.db import get_session_dependency
from app.backend.src.models import User

ALGORITHMS = ["RS256"]
_scheme = HTTPBearer(auto_error=False)

LOGGER = structlog.get_logger(__name__)


# -------------------------------------------------------
# JWKS + Token Utilities
# -------------------------------------------------------

@lru_cache()
def _fetch_jwks(domain: str) -> dict[str, Any]:
    """Fetch (and cache) the JWKS for the given Auth0 domain."""
    jwks_url = f"https://{domain}/.well-known/jwks.json"
    try:
        with httpx.Client(timeout=5.0) as client:
            response = client.get(jwks_url)
            response.raise_for_status()
            return response.json()
    except httpx.HTTPError as exc:
        LOGGER.warning("jwks_fetch_failed", domain=domain, error=str(exc))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Unable to retrieve JWKS",
        ) from exc


def _get_rsa_key(token: str, domain: str) -> dict[str, str] | None:
    """Return the RSA key that matches the token header."""
    try:
        unverified_header = jwt.get_unverified_header(token)
    except JWTError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header",
        ) from exc

    if "kid" not in unverified_header:
        return None

    jwks = _fetch_jwks(domain)
    for key in jwks.get("keys", []):
        if key.get("kid") == unverified_header["kid"]:
            return {
                "kty": key.get("kty"),
                "kid": key.get("kid"),
                "use": key.get("use"),
                "n": key.get("n"),
                "e": key.get("e"),
            }
    return None


def _collect_audience_values(raw_value: str | None) -> list[str]:
    """Split the configured audience string into individual values."""
    if not raw_value:
        return []
    values: list[str] = []
    for candidate in raw_value.replace("\n", " ").replace(",", " ").split():
        for option in (candidate, candidate.rstrip("/")):
            if option and option not in values:
                values.append(option)
    return values


def _token_audiences(payload: dict[str, Any]) -> list[str]:
    claim = payload.get("aud")
    if isinstance(claim, str):
        return [claim]
    if isinstance(claim, (list, tuple, set)):
        return [entry for entry in claim if isinstance(entry, str)]
    return []


def _decode_token(token: str, *, domain: str, audiences: Iterable[str]) -> dict[str, Any]:
    """Decode and validate an Auth0 access token."""
    rsa_key = _get_rsa_key(token, domain)
    if not rsa_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unable to validate token",
        )

    try:
        payload = jwt.decode(
            token,
            rsa_key,
            algorithms=ALGORITHMS,
            issuer=f"https://{domain}/",
            options={"verify_aud": False},
        )
    except JWTError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
        ) from exc

    token_audiences = {value.rstrip("/") for value in _token_audiences(payload)}
    if not token_audiences:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token missing audience",
        )
    if not token_audiences & {value.rstrip("/") for value in audiences}:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token audience",
        )
    return payload


# -------------------------------------------------------
# User Resolution
# -------------------------------------------------------

def _resolve_user(session: Session, payload: dict[str, Any]) -> User:
    """Map a verified Auth0 payload to an application user."""
    subject = payload.get("sub")
    if not subject:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token missing subject",
        )

    user = session.query(User).filter(User.auth0_sub == subject).one_or_none()
    if user:
        return user

    email = payload.get("email")
    if not email:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User record not found",
        )

    user = session.query(User).filter(User.email == email).one_or_none()
    if user:
        user.auth0_sub = subject
        session.add(user)
        session.commit()
        LOGGER.info("user_linked_to_subject", user_id=user.id)
        return user

    display_name = (payload.get("name") or payload.get("nickname") or email).strip()
    user = User(email=email, name=display_name, role=None, auth0_sub=subject)
    session.add(user)
    session.commit()
    LOGGER.info("user_created_from_token", user_id=user.id)
    return user


# -------------------------------------------------------
# Current User + Permission Enforcement
# -------------------------------------------------------

def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(_scheme),
    session: Session = Depends(get_session_dependency),
) -> User:
    """Resolve the authenticated user from the Auth0 bearer token."""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header missing",
        )

    settings = get_settings()
    audiences = _collect_audience_values(settings.auth0_audience)
    if not settings.auth0_domain or not audiences:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Auth0 configuration is incomplete",
        )

    payload = _decode_token(
        credentials.credentials,
        domain=settings.auth0_domain,
        audiences=audiences,
    )
    user = _resolve_user(session, payload)

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is deactivated",
        )
    return user


def _enforce_permission(user: User, policy: AccessPolicy, permission: str) -> User:
    """Ensure the authenticated user's role grants ``permission``."""
    if policy.has_permission(user, permission):
        return user
    LOGGER.info(
        "permission_denied",
        user_id=getattr(user, "id", None),
        role=policy.resolve_role(user),
        permission=permission,
    )
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="Insufficient permissions",
    )


def require_permission(permission: str):
    """Return a dependency that enforces ``permission`` for the caller."""

    def dependency(
        user: User = Depends(get_current_user),
        policy: AccessPolicy = Depends(get_access_policy),
    ) -> User:
        return _enforce_permission(user, policy, permission)

    return dependency


__all__ = [
    "get_current_user",
    "require_permission",
]
