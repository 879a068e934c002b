"""Runtime configuration for the Brokerdesk service.

Every option maps to an upper-case environment variable; a local `.env` file
is read as well.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Brokerdesk settings resolved from the environment."""

    # Application metadata
    app_name: str = Field(default="Brokerdesk", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")

    # Security and authentication
    secret_key: str = Field(alias="SECRET_KEY")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Database configuration
    database_url: str = Field(default="sqlite:///./brokerdesk.db", alias="DATABASE_URL")
    test_database_url: str | None = Field(default=None, alias="TEST_DATABASE_URL")
    use_testing_database: bool = Field(default=False, alias="USE_TEST_DATABASE")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # JWT authentication settings
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(
        default=60 * 12,
        alias="ACCESS_TOKEN_EXPIRE_MINUTES",
    )

    # Announcement listing
    announcements_default_page_size: int = Field(
        default=10,
        alias="ANNOUNCEMENTS_DEFAULT_PAGE_SIZE",
    )
    announcements_max_page_size: int = Field(
        default=100,
        alias="ANNOUNCEMENTS_MAX_PAGE_SIZE",
    )
    dashboard_recent_limit: int = Field(default=5, alias="DASHBOARD_RECENT_LIMIT")

    # Realtime badge delivery
    realtime_queue_size: int = Field(default=32, alias="REALTIME_QUEUE_SIZE")

    # CORS configuration for web frontend access
    cors_origins: list[str] = Field(
        default=["*"],
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
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
    def database_url_sync(self) -> str:
        """Return the effective URL with the psycopg 3 driver selected.

        Bare ``postgres://`` and ``postgresql://`` schemes would otherwise pick
        psycopg2, which is not installed.
        """
        url = self.effective_database_url
        for prefix in ("postgres://", "postgresql://", "postgresql+asyncpg://"):
            if url.startswith(prefix):
                return "postgresql+psycopg://" + url[len(prefix):]
        return url

    @property
    def effective_database_url(self) -> str:
        """Return the database URL respecting testing overrides."""
        if self.use_testing_database and self.test_database_url:
            return self.test_database_url
        return self.database_url


settings = Settings()  # type: ignore[call-arg]
