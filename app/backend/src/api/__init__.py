"""Public API routers exposed by the FastAPI application."""

from . import auth, health, rcti, rcti_deductions, rcti_settings

__all__ = [
    "auth",
    "health",
    "rcti",
    "rcti_deductions",
    "rcti_settings",
]
