import os
from typing import List

from pydantic import BaseModel, Field

DEFAULT_SECRET_KEY = "super-secret-key-change-me"


def _env(name: str, default: str) -> str:
    return os.getenv(name, default).strip()


def _env_bool(name: str, default: str = "false") -> bool:
    return _env(name, default).lower() in ("1", "true", "yes")


def _env_list(name: str, default: str) -> List[str]:
    return [item.strip() for item in _env(name, default).split(",") if item.strip()]


class Settings(BaseModel):
    """Application settings, read from the environment when the instance is built."""

    APP_NAME: str = "Expense Tracker API"
    APP_ENV: str = Field(default_factory=lambda: _env("APP_ENV", "development"))
    LOG_LEVEL: str = Field(default_factory=lambda: _env("LOG_LEVEL", "INFO").upper())
    LOG_JSON: bool = Field(default_factory=lambda: _env_bool("LOG_JSON"))

    HOST: str = Field(default_factory=lambda: _env("HOST", "0.0.0.0"))
    PORT: int = Field(default_factory=lambda: int(_env("PORT", "8000")))
    CORS_ORIGINS: List[str] = Field(
        default_factory=lambda: _env_list("CORS_ORIGINS", "http://localhost:5173")
    )

    # SQLite keeps the server bootable without a database server
    DATABASE_URL: str = Field(
        default_factory=lambda: _env("DATABASE_URL", "") or "sqlite+aiosqlite:///./app.db"
    )

    # Security
    SECRET_KEY: str = Field(default_factory=lambda: _env("SECRET_KEY", DEFAULT_SECRET_KEY))
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(
        default_factory=lambda: int(_env("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 24 * 7)))
    )
    BCRYPT_ROUNDS: int = Field(default_factory=lambda: int(_env("BCRYPT_ROUNDS", "10")))

    # Demo identity created on startup
    DEMO_USER_ENABLED: bool = Field(default_factory=lambda: _env_bool("DEMO_USER_ENABLED", "true"))
    DEMO_USER_EMAIL: str = Field(
        default_factory=lambda: _env("DEMO_USER_EMAIL", "demo@tracker.com").lower()
    )
    DEMO_USER_PASSWORD: str = Field(default_factory=lambda: _env("DEMO_USER_PASSWORD", "password123"))
    DEMO_USER_NAME: str = Field(default_factory=lambda: _env("DEMO_USER_NAME", "Demo User"))

    @property
    def is_production(self) -> bool:
        return self.APP_ENV.lower() == "production"

    def check(self) -> None:
        """Refuse configurations that must never reach production."""
        if self.is_production and self.SECRET_KEY == DEFAULT_SECRET_KEY:
            raise RuntimeError("SECRET_KEY is missing. Set it before starting the server in production.")


def get_settings() -> Settings:
    return Settings()
