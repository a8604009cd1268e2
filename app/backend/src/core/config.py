"""Application configuration utilities."""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings derived from environment variables."""

    database_url: str = Field(
        default="sqlite:///./worklog.db", alias="DATABASE_URL"
    )
    auth0_domain: str | None = Field(default=None, alias="AUTH0_DOMAIN")
    auth0_audience: str | None = Field(default=None, alias="AUTH0_AUDIENCE")
    admin_user_ids: str | None = Field(default=None, alias="ADMIN_USER_IDS")
    manager_user_ids: str | None = Field(default=None, alias="MANAGER_USER_IDS")
    viewer_user_ids: str | None = Field(default=None, alias="VIEWER_USER_IDS")
    default_user_role: str = Field(default="user", alias="DEFAULT_USER_ROLE")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    cors_origins: str = Field(default="*", alias="CORS_ORIGINS")

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    def get(self, key: str, default: object | None = None) -> object | None:
        """Dictionary-style access to configuration values."""

        return self.model_dump(by_alias=True).get(key, default)

    @property
    def allowed_origins(self) -> list[str]:
        """Return the configured CORS origins as a list."""

        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


def split_identifiers(raw_value: str | None) -> frozenset[str]:
    """Split a comma separated identifier list into a set."""

    if not raw_value:
        return frozenset()
    return frozenset(part.strip() for part in raw_value.split(",") if part.strip())


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings instance."""

    return Settings()


__all__ = ["Settings", "get_settings", "split_identifiers"]
