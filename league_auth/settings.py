from __future__ import annotations

from datetime import timedelta
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    App settings.

    Notes:
    - Every field can be overridden with a ``LEAGUE_AUTH_`` environment variable.
    - ``key_encryption_secret`` protects private signing keys at rest; the app
      refuses to start an issuing instance without it.
    - Setting ``jwks_uri`` makes this a verify-only instance that polls another
      instance's key set and does not issue credentials.
    """

    model_config = SettingsConfigDict(env_prefix="LEAGUE_AUTH_", extra="ignore")

    db_url: str | None = None
    security_config_path: str | None = None
    log_level: str = "INFO"

    issuer: str = "http://localhost:8000"
    audience: str = "http://localhost:8000"
    credential_lifetime_seconds: int = 3600
    clock_skew_seconds: int = 5
    max_scope_roles: int = 500

    signing_algorithm: str = "EdDSA"
    key_encryption_secret: str | None = None
    key_rotation_interval_seconds: int = 86400
    key_grace_period_seconds: int = 7200
    key_rotation_check_seconds: int = 60

    role_lookup_timeout_seconds: float = 2.0

    session_ttl_seconds: int = 600
    session_cookie_name: str = "league_session"
    session_sweep_seconds: int = 300

    jwks_uri: str | None = None
    jwks_refresh_seconds: int = 300

    seed_demo_data: bool = False
    background_jobs: bool = True

    @model_validator(mode="after")
    def _grace_covers_lifetime(self) -> Settings:
        if self.key_grace_period_seconds < self.credential_lifetime_seconds:
            raise ValueError(
                "key_grace_period_seconds must be >= credential_lifetime_seconds "
                "so credentials signed before a rotation keep verifying"
            )
        return self

    @property
    def credential_lifetime(self) -> timedelta:
        return timedelta(seconds=self.credential_lifetime_seconds)

    @property
    def key_grace_period(self) -> timedelta:
        return timedelta(seconds=self.key_grace_period_seconds)

    @property
    def key_rotation_interval(self) -> timedelta:
        return timedelta(seconds=self.key_rotation_interval_seconds)

    @property
    def clock_skew(self) -> timedelta:
        return timedelta(seconds=self.clock_skew_seconds)

    @property
    def session_ttl(self) -> timedelta:
        return timedelta(seconds=self.session_ttl_seconds)

    @property
    def verify_only(self) -> bool:
        return bool(self.jwks_uri)

    def resolved_db_url(self) -> str:
        if self.db_url:
            return self.db_url

        repo_root = Path(__file__).resolve().parents[1]
        db_path = repo_root / "league_auth.db"
        return f"sqlite:///{db_path}"

    def resolved_security_config_path(self) -> Path:
        if self.security_config_path:
            return Path(self.security_config_path)

        return Path(__file__).resolve().parent / "config" / "security_config.yaml"


@lru_cache
def get_settings() -> Settings:
    return Settings()
