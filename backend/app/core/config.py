from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator
from typing import List, Literal


class Settings(BaseSettings):
    # Pydantic v2 style — replaces inner class Config
    model_config = SettingsConfigDict(
        # Search .env in CWD first, then parent dir.
        # Works when pytest runs from backend/ (finds ../.env)
        # and when Docker mounts .env at the container working dir.
        env_file=(".env", "../.env"),
        env_file_encoding="utf-8",
        case_sensitive=True,
        # Ignore env vars (e.g. POSTGRES_USER) not declared as Settings fields
        extra="ignore",
    )

    # --- Database (required — no default prevents accidental misconfiguration) ---
    DATABASE_URL: str

    # --- Stats endpoint secret (required — compared against the `key` header) ---
    ACCESS_KEY: str

    # --- Rate limiting ---
    RATE_LIMIT_WINDOW_SECONDS: int = 60
    RATE_LIMIT_MAX: int = 20
    # memory:// for a single instance, redis://host:6379 for a shared counter
    RATE_LIMIT_STORAGE_URI: str = "memory://"
    RATE_LIMIT_ON_LOOKUP_ERROR: Literal["use-default", "raise"] = "use-default"

    # --- Authorization ---
    ENDPOINT_FLAG_ON_LOOKUP_ERROR: Literal["use-default", "raise"] = "use-default"
    DOCS_URL: str = "https://docs.keygate.dev"
    SUPPORT_URL: str = "https://keygate.dev/support"

    # --- Observability ---
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"  # development | staging | production

    # --- CORS (comma-separated string parsed into a list) ---
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    @field_validator("ACCESS_KEY")
    @classmethod
    def access_key_must_be_set(cls, v: str) -> str:
        """Reject an empty stats secret, which would never match a header."""
        if not v.strip():
            raise ValueError("ACCESS_KEY must not be empty")
        return v

    @field_validator("RATE_LIMIT_WINDOW_SECONDS", "RATE_LIMIT_MAX")
    @classmethod
    def must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("rate limit window and max must be positive")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def log_level_must_be_valid(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"LOG_LEVEL must be one of {valid}")
        return v.upper()

    def get_cors_origins(self) -> List[str]:
        """Parse comma-separated CORS_ORIGINS into a list."""
        return [
            origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()
        ]


settings = Settings()
