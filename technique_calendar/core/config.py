# technique_calendar/core/config.py
from typing import List, Optional, Union, Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Environment settings
    ENVIRONMENT: Literal["development", "testing", "production"] = "development"

    # API settings
    API_V1_STR: str = "/api/v1"

    # Server settings
    SERVER_NAME: str = "localhost"
    SERVER_HOST: str = "http://localhost:8000"
    FRONTEND_URL: str = "http://localhost:3000"
    CALENDAR_SETTINGS_PATH: str = "/settings"  # Where OAuth callbacks land in the frontend

    # CORS settings
    BACKEND_CORS_ORIGINS: List[str] = [
        "http://localhost",
        "http://localhost:3000",
    ]

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> Union[List[str], str]:
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",")]
        elif isinstance(v, (list, str)):
            return v
        raise ValueError(v)

    # Logging settings
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None  # Path to log file if file logging is enabled

    # Database settings
    SQLALCHEMY_DATABASE_URI: str

    # Identity provider JWT settings
    AUTH_JWT_SECRET: str
    AUTH_JWT_ALGORITHM: str = "HS256"
    AUTH_JWT_AUDIENCE: Optional[str] = "authenticated"

    # Token encryption (base64 of 32 random bytes)
    TOKEN_ENCRYPTION_KEY: str = ""

    # Outbound provider calls
    PROVIDER_TIMEOUT: int = 10  # seconds per call
    PROVIDER_MAX_ATTEMPTS: int = 3
    PROVIDER_BACKOFF_SECONDS: float = 0.5

    # OAuth lifecycle
    OAUTH_STATE_TTL_SECONDS: int = 600
    TOKEN_REFRESH_MARGIN_SECONDS: int = 300

    # Scheduled events
    EVENT_NOTES_MAX_LENGTH: int = 5000
    EVENT_DEFAULT_DURATION_MINUTES: int = 30
    EVENT_MAX_DURATION_MINUTES: int = 480
    EVENT_DEFAULT_TIMEZONE: str = "America/Los_Angeles"
    EVENT_REMINDER_MINUTES: List[int] = [24 * 60, 60]

    # Google
    GOOGLE_CLIENT_ID: str = ""
    GOOGLE_CLIENT_SECRET: str = ""

    # Microsoft
    MICROSOFT_CLIENT_ID: str = ""
    MICROSOFT_CLIENT_SECRET: str = ""
    MICROSOFT_TENANT: str = "common"

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=True, extra="ignore"
    )


# Create settings instance
settings = Settings()
