# backend/tenantgate/core/config.py

from __future__ import annotations

from urllib.parse import urlsplit, urlunsplit, parse_qsl, urlencode

from pydantic_settings import BaseSettings, SettingsConfigDict

_DEV_SECRET = "dev-secret-change-me"


def _strip_asyncpg_unsupported_params(url: str) -> str:
    """
    asyncpg does NOT accept sslmode or channel_binding as connect kwargs.
    If these appear in the URL query, SQLAlchemy passes them straight to
    asyncpg.connect() and the engine fails on first use.
    """
    parts = urlsplit(url)
    if not parts.query:
        return url

    params = parse_qsl(parts.query, keep_blank_values=True)
    filtered = [(k, v) for (k, v) in params if k not in {"sslmode", "channel_binding"}]
    new_query = urlencode(filtered, doseq=True)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, new_query, parts.fragment))


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # -----------------------------
    # Environment
    # -----------------------------
    # Use: development | staging | production
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # -----------------------------
    # DB
    # -----------------------------
    DATABASE_URL_ASYNC: str = "sqlite+aiosqlite:///./tenantgate.db"
    DATABASE_URL_SYNC: str = "sqlite:///./tenantgate.db"

    # -----------------------------
    # JWT
    # -----------------------------
    JWT_SECRET: str = _DEV_SECRET
    JWT_ALGORITHM: str = "HS256"

    # -----------------------------
    # Sessions
    # -----------------------------
    # Global session only gates tenant selection, so it lives much longer.
    GLOBAL_SESSION_TTL_MINUTES: int = 7 * 24 * 60
    TENANT_SESSION_TTL_MINUTES: int = 24 * 60

    GLOBAL_COOKIE_NAME: str = "global_token"
    TENANT_COOKIE_NAME: str = "token"

    # -----------------------------
    # Identity lifecycle
    # -----------------------------
    VERIFICATION_RESEND_COOLDOWN_SECONDS: int = 120
    EMAIL_VERIFICATION_TTL_MINUTES: int = 24 * 60
    PASSWORD_RESET_TTL_MINUTES: int = 60
    FRONTEND_BASE_URL: str = "http://localhost:5173"

    # -----------------------------
    # Federated sign-in
    # -----------------------------
    # Empty disables Google sign-in.
    GOOGLE_CLIENT_ID: str = ""

    # -----------------------------
    # Onboarding
    # -----------------------------
    PROVISIONING_TIMEOUT_SECONDS: float = 20.0
    DEFAULT_PLAN_NAME: str = "Free Trial"

    @property
    def DATABASE_URL_ASYNC_CLEAN(self) -> str:
        return _strip_asyncpg_unsupported_params(self.DATABASE_URL_ASYNC)

    @property
    def IS_PRODUCTION(self) -> bool:
        return (self.ENVIRONMENT or "").strip().lower() == "production"

    @property
    def COOKIE_SECURE(self) -> bool:
        return self.IS_PRODUCTION

    @property
    def COOKIE_SAMESITE(self) -> str:
        return "none" if self.IS_PRODUCTION else "strict"

    def model_post_init(self, __context) -> None:  # pydantic v2 hook
        env = (self.ENVIRONMENT or "").strip().lower()

        # Never run staging/production with a placeholder secret.
        if env in {"staging", "production"}:
            if not self.JWT_SECRET or self.JWT_SECRET.strip() == _DEV_SECRET:
                raise ValueError("JWT_SECRET must be set to a strong value in staging/production.")
            if len(self.JWT_SECRET.strip()) < 32:
                raise ValueError("JWT_SECRET is too short; use at least 32 characters in staging/production.")

        if self.JWT_ALGORITHM not in {"HS256"}:
            raise ValueError(f"Unsupported JWT_ALGORITHM={self.JWT_ALGORITHM!r}. Allowed: HS256")

        if self.TENANT_SESSION_TTL_MINUTES <= 0 or self.GLOBAL_SESSION_TTL_MINUTES <= 0:
            raise ValueError("Session TTLs must be positive.")


settings = Settings()
