"""Runtime settings for the club portal, read from the environment."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Optional


LOGGER = logging.getLogger(__name__)

_DEV_JWT_SECRET = "dev-only-insecure-jwt-secret"


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        LOGGER.warning("Ignoring non-numeric %s=%r; using %s.", name, raw, default)
        return default


def _env_list(name: str, default: str) -> List[str]:
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass(frozen=True)
class Settings:
    """Immutable snapshot of the environment the service runs in."""

    app_env: str
    database_url: Optional[str]
    database_name: Optional[str]
    admin_username: Optional[str]
    admin_password: Optional[str]
    jwt_secret_raw: Optional[str]
    password_salt: str
    deepl_api_key: Optional[str]
    translate_delay_seconds: float
    resend_api_key: Optional[str]
    email_from: str
    public_base_url: str
    cors_origins: List[str]
    log_level: str

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def cookie_secure(self) -> bool:
        return self.is_production

    @property
    def admin_credentials_configured(self) -> bool:
        return bool(self.admin_username) and bool(self.admin_password)

    @property
    def jwt_secret(self) -> str:
        """Signing key for member sessions.

        Production refuses to run without ``JWT_SECRET``; every other
        environment falls back to a fixed development key and says so.
        """

        if self.jwt_secret_raw:
            return self.jwt_secret_raw
        if self.is_production:
            raise RuntimeError("JWT_SECRET must be set when APP_ENV=production.")
        LOGGER.warning("JWT_SECRET is not set; using an insecure development key.")
        return _DEV_JWT_SECRET

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            app_env=os.getenv("APP_ENV", "development").strip().lower(),
            database_url=os.getenv("DATABASE_URL") or None,
            database_name=os.getenv("DATABASE_NAME") or None,
            admin_username=os.getenv("ADMIN_USERNAME") or None,
            admin_password=os.getenv("ADMIN_PASSWORD") or None,
            jwt_secret_raw=os.getenv("JWT_SECRET") or None,
            password_salt=os.getenv("PASSWORD_SALT", "static_salt"),
            deepl_api_key=os.getenv("DEEPL_API_KEY") or None,
            translate_delay_seconds=_env_float("TRANSLATE_DELAY_SECONDS", 1.0),
            resend_api_key=os.getenv("RESEND_API_KEY") or None,
            email_from=os.getenv("EMAIL_FROM", "Student Club <noreply@example.org>"),
            public_base_url=os.getenv("PUBLIC_BASE_URL", "http://localhost:3000").rstrip("/"),
            cors_origins=_env_list("CORS_ORIGINS", "*"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the cached settings; call ``get_settings.cache_clear()`` to reload."""

    return Settings.from_env()


__all__ = ["Settings", "get_settings"]
