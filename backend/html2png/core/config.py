from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Ignore unknown env vars so a shared .env can also carry deployment-only values.
    model_config = SettingsConfigDict(env_file=(".env", "../.env"), case_sensitive=True, extra="ignore")

    PROJECT_NAME: str = "html2png"
    ENVIRONMENT: str = "development"
    API_V1_STR: str = "/api/v1"

    # Signs bearer tokens and keys the API key HMAC.
    SECRET_KEY: str = "default-dev-secret-change-me-in-production"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_DAYS: int = 7

    DATABASE_URL: str = "sqlite:///./data/html2png.db"

    REDIS_URL: str = "redis://redis:6379/0"
    CELERY_BROKER_URL: str = "redis://redis:6379/1"
    CELERY_RESULT_BACKEND: str = "redis://redis:6379/2"

    BACKEND_CORS_ORIGINS: list[str] = Field(default_factory=lambda: ["http://localhost:3000"])
    ALLOWED_HOSTS: list[str] = Field(default_factory=lambda: ["localhost", "127.0.0.1", "testserver"])

    ENABLE_API_DOCS: bool = False
    REGISTRATION_ENABLED: bool = True

    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    # 64 hex chars, 44 base64 chars, or any passphrase (hashed down to 32 bytes).
    ENCRYPTION_KEY: str = ""
    REQUIRE_ENCRYPTION: bool = False

    API_KEY_PREFIX: str = "h2p_"
    SESSION_COOKIE_NAME: str = "token"
    COOKIE_SECURE: bool = False

    # limits storage URI: "memory://" for a single process, "redis://host:port/db" when scaled out.
    RATE_LIMIT_STORAGE_URI: str = "memory://"
    RATE_LIMIT_AUTH_WINDOW_MS: int = 60_000
    RATE_LIMIT_AUTH_MAX: int = 10
    RATE_LIMIT_CONVERT_WINDOW_MS: int = 60_000
    RATE_LIMIT_CONVERT_MAX: int = 30
    RATE_LIMIT_API_WINDOW_MS: int = 60_000
    RATE_LIMIT_API_MAX: int = 100
    # Optional stricter ceiling for clients without a traceable address.
    RATE_LIMIT_UNKNOWN_MAX: int | None = None
    TRUST_PROXY_HEADERS: bool = True

    # "database", "memory" or "redis".
    REVOCATION_BACKEND: str = "database"
    REVOCATION_PURGE_INTERVAL_SECONDS: int = 3600

    RENDER_MIN_WIDTH: int = 100
    RENDER_MAX_WIDTH: int = 4096
    RENDER_DEFAULT_WIDTH: int = 1200
    RENDER_MIN_HEIGHT: int = 100
    RENDER_MAX_HEIGHT: int = 10_000
    RENDER_DEFAULT_VIEWPORT_HEIGHT: int = 800
    RENDER_SETTLE_MS: int = 100
    RENDER_TIMEOUT_MS: int = 30_000
    BROWSER_ARGS: list[str] = Field(default_factory=lambda: ["--no-sandbox", "--disable-setuid-sandbox"])

    HISTORY_PREVIEW_CHARS: int = 500

    ADMIN_EMAIL: str = ""
    ADMIN_PASSWORD: str = ""

    @model_validator(mode="after")
    def _prod_guards(self):
        if self.REQUIRE_ENCRYPTION and not self.ENCRYPTION_KEY:
            raise ValueError("ENCRYPTION_KEY must be set when REQUIRE_ENCRYPTION is enabled")
        if self.REVOCATION_BACKEND not in ("database", "memory", "redis"):
            raise ValueError('REVOCATION_BACKEND must be one of "database", "memory", "redis"')
        if self.is_production:
            if self.ENABLE_API_DOCS:
                raise ValueError("ENABLE_API_DOCS must be false in production")
            if not self.SECRET_KEY or len(self.SECRET_KEY) < 32 or self.SECRET_KEY.startswith("default-dev-secret"):
                raise ValueError("SECRET_KEY must be 32+ chars in production")
            if any(h == "*" for h in self.ALLOWED_HOSTS):
                raise ValueError('ALLOWED_HOSTS must not contain "*" in production')
        elif not self.ALLOWED_HOSTS:
            self.ALLOWED_HOSTS = ["*"]
        return self

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT.lower() == "development"


@lru_cache
def get_settings() -> Settings:
    return Settings()
