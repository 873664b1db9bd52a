from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict
from pydantic import field_validator, model_validator
from typing import Annotated, Any, ClassVar
import json
from pathlib import Path
import os


class Settings(BaseSettings):
    API_PREFIX: str = "/api"

    # JWT configuration (provide a fallback for local development)
    SECRET_KEY: str = "fallback_secret_for_dev_only"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # Login attempt throttling
    MAX_LOGIN_ATTEMPTS: int = 5
    LOGIN_ATTEMPT_WINDOW: int = 300  # seconds

    # Use an absolute path so running the app from different directories
    # always resolves the same DB file.
    BASE_DIR: ClassVar[Path] = Path(__file__).resolve().parents[2]
    SQLALCHEMY_DATABASE_URL: str = f"sqlite:///{BASE_DIR / 'ziyawa.db'}"

    # Redis connection URL for caching; "disabled" turns caching off
    REDIS_URL: str = "redis://localhost:6379/0"

    # NoDecode hands the raw env string to split_origins
    CORS_ORIGINS: Annotated[list[str], NoDecode] = ["http://localhost:3000"]
    CORS_ALLOW_ALL: bool = False

    # Public site base, used for payment callback URLs and email links
    APP_URL: str = "http://localhost:3000"
    APP_NAME: str = "Ziyawa"

    DEFAULT_CURRENCY: str = "ZAR"

    # Paystack
    PAYSTACK_SECRET_KEY: str = ""
    PAYSTACK_PUBLIC_KEY: str = ""
    # Webhook signatures are computed with the secret key unless overridden
    PAYSTACK_WEBHOOK_SECRET: str = ""
    PAYSTACK_BASE_URL: str = "https://api.paystack.co"
    PAYSTACK_TIMEOUT: float = 10.0

    # SMTP email settings
    EMAIL_ENABLED: bool = True
    SMTP_HOST: str = "localhost"
    SMTP_PORT: int = 25
    SMTP_USERNAME: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_FROM: str = "Ziyawa <noreply@ziyawa.co.za>"

    BANKS_CACHE_TTL: int = 86400  # seconds
    NOTIFICATION_RETENTION_DAYS: int = 90
    BULK_EMAIL_BATCH_SIZE: int = 50
    MAINTENANCE_INTERVAL_SECONDS: int = 21600

    LOG_LEVEL: str = "INFO"
    ENABLE_CONSOLE_TRACING: bool = False

    @field_validator("CORS_ORIGINS", mode="before")
    def split_origins(cls, v: Any) -> list[str]:
        """Parse comma-separated or JSON list of origins from environment."""
        if isinstance(v, str):
            try:
                parsed = json.loads(v)
                if isinstance(parsed, list):
                    return parsed
            except json.JSONDecodeError:
                pass
            return [s.strip() for s in v.split(",") if s.strip()]
        return v

    @field_validator(
        "PAYSTACK_SECRET_KEY",
        "PAYSTACK_WEBHOOK_SECRET",
        "PAYSTACK_BASE_URL",
        "APP_URL",
        mode="before",
    )
    def strip_whitespace(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().rstrip("/") if v.startswith("http") else v.strip()
        return v

    @model_validator(mode="after")
    def allow_all_if_requested(cls, values: "Settings") -> "Settings":
        if values.CORS_ALLOW_ALL:
            values.CORS_ORIGINS = ["*"]
        return values

    @property
    def webhook_secret(self) -> str:
        return self.PAYSTACK_WEBHOOK_SECRET or self.PAYSTACK_SECRET_KEY

    model_config = SettingsConfigDict(extra="ignore", case_sensitive=True)


def _env_file() -> str:
    return os.getenv("ENV_FILE", str(Path(__file__).resolve().parents[3] / ".env"))


def load_settings() -> "Settings":
    return Settings(_env_file=_env_file())


settings = load_settings()
