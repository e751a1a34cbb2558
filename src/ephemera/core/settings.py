"""Application settings and configuration.

This module defines all configuration options for the Ephemera service.
Settings are loaded from environment variables with sensible defaults.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="Ephemera", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Security and authentication
    secret_key: str = Field(alias="SECRET_KEY")
    debug: bool = Field(default=False, alias="DEBUG")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(
        default=60 * 24 * 30,
        alias="ACCESS_TOKEN_EXPIRE_MINUTES",
    )
    # Shared secret for scheduler-triggered maintenance endpoints
    cron_secret: str | None = Field(default=None, alias="CRON_SECRET")

    # Database configuration
    database_url: str = Field(default="sqlite:///./ephemera.db", alias="DATABASE_URL")
    test_database_url: str | None = Field(default=None, alias="TEST_DATABASE_URL")
    use_testing_database: bool = Field(default=False, alias="USE_TEST_DATABASE")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Messaging behaviour
    allow_self_messages: bool = Field(default=False, alias="ALLOW_SELF_MESSAGES")
    streak_window_hours: int = Field(default=24, alias="STREAK_WINDOW_HOURS")
    soft_deleted_retention_days: int = Field(default=30, alias="SOFT_DELETED_RETENTION_DAYS")
    unread_retention_days: int = Field(default=90, alias="UNREAD_RETENTION_DAYS")

    # Content store (UploadThing)
    uploadthing_api_url: str = Field(
        default="https://api.uploadthing.com",
        alias="UPLOADTHING_API_URL",
    )
    uploadthing_api_key: str | None = Field(default=None, alias="UPLOADTHING_SECRET")
    content_store_timeout_seconds: float = Field(
        default=10.0,
        alias="CONTENT_STORE_TIMEOUT_SECONDS",
    )

    # Push notifications (Expo)
    push_enabled: bool = Field(default=True, alias="PUSH_ENABLED")
    expo_push_url: str = Field(
        default="https://exp.host/--/api/v2/push/send",
        alias="EXPO_PUSH_URL",
    )
    expo_access_token: str | None = Field(default=None, alias="EXPO_ACCESS_TOKEN")
    push_timeout_seconds: float = Field(default=10.0, alias="PUSH_TIMEOUT_SECONDS")

    # CORS configuration for web frontend access
    cors_origins: list[str] = Field(
        default=["*"],
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(
        default=["*"],
        alias="CORS_ALLOW_HEADERS",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @property
    def effective_database_url(self) -> str:
        """Return the database URL respecting testing overrides.

        Returns:
            The active database URL (test database if in testing mode, otherwise production)
        """
        if self.use_testing_database and self.test_database_url:
            return self.test_database_url
        return self.database_url

    @property
    def database_url_sync(self) -> str:
        """Return a sync-compatible database URL for tooling such as Alembic."""
        url = self.effective_database_url
        if url.startswith("postgresql+asyncpg"):
            return url.replace("postgresql+asyncpg", "postgresql+psycopg", 1)
        return url


settings = Settings()  # type: ignore[call-arg]
