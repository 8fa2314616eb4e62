"""Service configuration read from the environment (and ``.env``)."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class Settings(BaseSettings):
    """Student tracker settings.

    Every field maps to the upper-cased environment variable of the same name,
    e.g. ``CASSANDRA_HOSTS='["db1","db2"]'`` or ``BACKUP_PAGE_SIZE=1000``.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Service
    app_name: str = Field(default="student-tracker", description="Service name")
    app_version: str = Field(default="0.1.0", description="Reported version")
    environment: Literal["development", "staging", "production", "testing"] = Field(
        default="development", description="Deployment environment"
    )
    debug: bool = Field(default=False, description="Verbose development mode")

    # HTTP
    api_host: str = Field(default="0.0.0.0", description="Bind address")
    api_port: int = Field(default=8000, description="Bind port")
    api_reload: bool = Field(default=False, description="Reload on code changes")

    # Record store
    cassandra_hosts: list[str] = Field(
        default=["localhost"], description="Contact points"
    )
    cassandra_port: int = Field(default=9042, description="Native protocol port")
    cassandra_keyspace: str = Field(
        default="student_tracker", description="Keyspace holding the students table"
    )
    cassandra_username: str | None = Field(default=None, description="Login user")
    cassandra_password: str | None = Field(default=None, description="Login password")
    cassandra_protocol_version: int = Field(default=4, description="CQL protocol")
    cassandra_datacenter: str = Field(
        default="datacenter1",
        description="Local datacenter, also used for production replication",
    )
    cassandra_replication_factor: int = Field(
        default=1, gt=0, description="Replicas per datacenter"
    )
    cassandra_connect_timeout: float = Field(default=10.0, description="Seconds")
    cassandra_request_timeout: float = Field(default=10.0, description="Seconds")

    # Backup
    backup_page_size: int = Field(
        default=500,
        gt=0,
        description="Rows fetched per page while streaming a backup",
    )

    # Logging
    log_level: LogLevel = Field(default="INFO", description="Root log level")
    log_format: Literal["json", "console"] = Field(
        default="console", description="Console renderer"
    )
    log_include_caller_info: bool = Field(
        default=True, description="Add filename, line and function to events"
    )
    log_dir: str = Field(default="logs", description="Rotating log file directory")
    log_file_max_bytes: int = Field(
        default=10 * 1024 * 1024, description="Rotate after this many bytes"
    )
    log_file_backup_count: int = Field(
        default=5, description="Rotated files kept per log"
    )
    log_requests: bool = Field(default=True, description="Log each HTTP request")
    log_exclude_paths: list[str] = Field(
        default=["/health"],
        description="Path prefixes left out of request logging",
    )

    # CORS
    cors_origins: list[str] = Field(default=["*"], description="Allowed origins")
    cors_allow_credentials: bool = Field(
        default=False, description="Send Access-Control-Allow-Credentials"
    )
    cors_allow_methods: list[str] = Field(default=["*"])
    cors_allow_headers: list[str] = Field(default=["*"])
    cors_max_age: int = Field(default=600, description="Preflight cache seconds")

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_testing(self) -> bool:
        """Tests run without file logging."""
        return self.environment == "testing"


@lru_cache
def get_settings() -> Settings:
    """Settings are read once per process."""
    return Settings()
