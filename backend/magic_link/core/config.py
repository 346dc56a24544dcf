"""Environment-driven settings for the magic link service.

Every field maps to an upper-case environment variable (or a line in .env).
Groups:
- storage: PostgreSQL connection for accounts and consumed signatures
- links: signing secret, lifetime, default destination, replay store
- mail: site identity, template overrides, transports
- session: the JWT cookie set after a successful redemption
- throttling: per-route slowapi limits
"""

from typing import Literal

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Development-only password; rejected when ENVIRONMENT=production
_INSECURE_DEFAULT_PASSWORD = "magic_link_dev_password"  # nosec B105

# HMAC and JWT keys shorter than 256 bits are refused in production
_MIN_SECRET_LENGTH = 32

MIN_LINK_EXPIRY_MINUTES = 1
MAX_LINK_EXPIRY_MINUTES = 24 * 60


class Settings(BaseSettings):
    """Magic link service settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    environment: str = "development"
    log_level: str = "INFO"

    # -- storage --
    database_host: str = "localhost"
    database_port: int = 5432
    database_name: str = "magic_link"
    database_user: str = "magic_link_user"
    database_password: str = _INSECURE_DEFAULT_PASSWORD

    # -- HTTP --
    # Origins allowed to call the API with cookies; "*" is refused
    allowed_origins: list[str] = ["http://localhost:3000"]
    # Absolute base for redemption URLs placed in emails
    backend_url: str = "http://localhost:8000"

    # -- links --
    # Empty secret: issuance fails closed and every redemption is rejected
    link_signing_secret: SecretStr = SecretStr("")
    link_expiry_minutes: int = 15
    default_destination: str = "/user"
    # Email validation answers the same for known and unknown emails
    neutral_validation: bool = True
    # "memory" is per-process; use "database" with more than one worker
    replay_store: Literal["database", "memory"] = "database"

    # -- mail --
    site_name: str = "Magic Link"
    site_mail: str = ""
    # Empty values fall back to the built-in sender, subject and body
    email_from_name: str = ""
    email_from_address: str = ""
    email_subject_template: str = ""
    email_body_template: str = ""
    mail_transport: Literal["resend", "smtp"] = "resend"
    mail_fallback_enabled: bool = True
    mail_timeout_seconds: float = 5.0
    resend_api_key: SecretStr = SecretStr("")
    smtp_host: str = "localhost"
    smtp_port: int = 25
    smtp_username: str = ""
    smtp_password: SecretStr = SecretStr("")
    smtp_starttls: bool = False

    # -- session --
    auth_secret: SecretStr = SecretStr("")
    auth_issuer: str = "magic-link"
    auth_cookie_name: str = "magic-link.session-token"
    auth_cookie_secure: bool = True
    auth_cookie_samesite: Literal["lax", "strict", "none"] = "lax"
    auth_cookie_domain: str = ""

    # -- throttling (slowapi "count/period") --
    rate_limit_magic_link: str = "5/hour"
    rate_limit_redeem: str = "10/minute"
    rate_limit_enabled: bool = True

    @property
    def database_url(self) -> str:
        """asyncpg DSN for SQLAlchemy."""
        credentials = f"{self.database_user}:{self.database_password}"
        location = f"{self.database_host}:{self.database_port}"
        return f"postgresql+asyncpg://{credentials}@{location}/{self.database_name}"

    @property
    def link_expiry_seconds(self) -> int:
        return self.link_expiry_minutes * 60

    @model_validator(mode="after")
    def check_ranges(self) -> "Settings":
        """Reject out-of-range link lifetime and mail timeout."""
        if not (
            MIN_LINK_EXPIRY_MINUTES
            <= self.link_expiry_minutes
            <= MAX_LINK_EXPIRY_MINUTES
        ):
            raise ValueError(
                f"LINK_EXPIRY_MINUTES must be between {MIN_LINK_EXPIRY_MINUTES} "
                f"and {MAX_LINK_EXPIRY_MINUTES}, got {self.link_expiry_minutes}"
            )
        if self.mail_timeout_seconds <= 0:
            raise ValueError(
                f"MAIL_TIMEOUT_SECONDS must be positive, got {self.mail_timeout_seconds}"
            )
        return self

    @model_validator(mode="after")
    def check_cookie_and_cors(self) -> "Settings":
        """Browser-facing combinations that would silently break sessions."""
        if self.auth_cookie_samesite == "none" and not self.auth_cookie_secure:
            raise ValueError(
                "AUTH_COOKIE_SECURE must be true when AUTH_COOKIE_SAMESITE=none; "
                "browsers drop SameSite=None cookies that are not Secure."
            )
        if "*" in self.allowed_origins:
            raise ValueError(
                "ALLOWED_ORIGINS must not contain the '*' wildcard: the session "
                "cookie requires credentialed CORS."
            )
        return self

    @model_validator(mode="after")
    def check_production_security(self) -> "Settings":
        """Production refuses the dev password and short secrets."""
        if self.environment != "production":
            return self

        if self.database_password == _INSECURE_DEFAULT_PASSWORD:
            raise ValueError(
                "Cannot use default database password in production. "
                "Set DATABASE_PASSWORD."
            )
        short = [
            name
            for name, secret in (
                ("LINK_SIGNING_SECRET", self.link_signing_secret),
                ("AUTH_SECRET", self.auth_secret),
            )
            if len(secret.get_secret_value()) < _MIN_SECRET_LENGTH
        ]
        if short:
            raise ValueError(
                f"{', '.join(short)} must be at least {_MIN_SECRET_LENGTH} "
                "characters in production (try `openssl rand -hex 32`)."
            )
        return self


settings = Settings()
