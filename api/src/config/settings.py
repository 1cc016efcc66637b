"""Application settings using Pydantic Settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="tokenenrol", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    environment: Literal["development", "staging", "production", "testing"] = Field(
        default="development", description="Environment name"
    )
    debug: bool = Field(default=True, description="Debug mode")
    app_base_url: str = Field(
        default="http://localhost:8000",
        description="Public base URL used to build links in messages",
    )

    # API Server
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")
    api_workers: int = Field(default=1, description="Number of workers")
    api_reload: bool = Field(default=True, description="Enable auto-reload")

    # Security
    trusted_hosts: list[str] = Field(
        default=["localhost", "127.0.0.1"],
        description="Trusted hosts",
    )

    # Authentication
    auth_secret_key: str = Field(
        default="dev-jwt-secret-key-change-in-production-32chars!",
        description="JWT signing key (min 32 chars)",
    )
    auth_algorithm: str = Field(default="HS256", description="JWT algorithm")
    auth_access_token_expire_minutes: int = Field(
        default=15, description="Access token expiration (minutes)"
    )

    # Redis
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL",
    )
    redis_max_connections: int = Field(default=10, description="Max Redis connections")
    redis_socket_timeout: float = Field(default=5.0, description="Redis socket timeout")
    redis_socket_connect_timeout: float = Field(
        default=5.0, description="Redis connect timeout"
    )
    redis_retry_on_timeout: bool = Field(default=True, description="Retry on timeout")
    redis_health_check_interval: int = Field(
        default=30, description="Health check interval"
    )

    # Cassandra
    cassandra_hosts: list[str] = Field(
        default=["localhost"], description="Cassandra hosts"
    )
    cassandra_port: int = Field(default=9042, description="Cassandra port")
    cassandra_keyspace: str = Field(
        default="tokenenrol", description="Cassandra keyspace"
    )
    cassandra_username: str | None = Field(default=None, description="Cassandra user")
    cassandra_password: str | None = Field(
        default=None, description="Cassandra password"
    )
    cassandra_protocol_version: int = Field(default=4, description="Protocol version")
    cassandra_connect_timeout: float = Field(
        default=10.0, description="Connect timeout"
    )
    cassandra_request_timeout: float = Field(
        default=10.0, description="Request timeout"
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="DEBUG", description="Log level"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", description="Log format"
    )
    log_include_caller_info: bool = Field(
        default=True, description="Include caller info"
    )
    log_dir: str = Field(default="logs", description="Directory for log files")
    log_file_max_bytes: int = Field(
        default=10 * 1024 * 1024, description="Max size per log file (10MB default)"
    )
    log_file_backup_count: int = Field(
        default=5, description="Number of backup log files to keep"
    )
    log_requests: bool = Field(
        default=True, description="Log HTTP request start/finish"
    )
    log_exclude_paths: list[str] = Field(
        default=["/health", "/health/live", "/health/ready"],
        description="Paths to exclude from request logging",
    )

    # CORS
    cors_origins: list[str] = Field(default=["*"], description="CORS origins")
    cors_allow_credentials: bool = Field(default=True, description="Allow credentials")
    cors_allow_methods: list[str] = Field(default=["*"], description="Allowed methods")
    cors_allow_headers: list[str] = Field(default=["*"], description="Allowed headers")
    cors_max_age: int = Field(default=600, description="CORS max age")

    # Email (Gmail API)
    email_enabled: bool = Field(
        default=False, description="Enable email sending via Gmail API"
    )
    email_credentials_path: str = Field(
        default="credentials/google-service-account.json",
        description="Path to Google service account JSON file",
    )
    email_sender_address: str = Field(
        default="noreply@tokenenrol.example.com",
        description="Sender email address (must be in Google Workspace domain)",
    )
    email_sender_name: str = Field(
        default="Token Enrolment", description="Sender display name"
    )

    # Token enrolment plugin
    token_enrol_enabled: bool = Field(
        default=True, description="Plugin-level switch for token enrolment"
    )
    token_length: int = Field(
        default=6, ge=2, le=64, description="Default length of generated tokens"
    )
    expired_action: Literal["keep", "suspend_no_roles", "unenrol"] = Field(
        default="keep", description="Disposition applied to expired enrolments"
    )
    expiry_notify_hour: int = Field(
        default=6,
        ge=0,
        le=24,
        description="Hour of the day after which expiry notifications go out",
    )
    timezone: str = Field(
        default="UTC", description="Timezone for the daily notification gate"
    )
    course_contact_roles: list[str] = Field(
        default=["editingteacher"],
        description="Course roles treated as course contacts, in priority order",
    )
    noreply_address: str = Field(
        default="noreply@tokenenrol.example.com", description="No-reply sender address"
    )
    noreply_name: str = Field(default="No reply", description="No-reply sender name")
    support_contact_address: str = Field(
        default="support@tokenenrol.example.com",
        description="Fallback enroller address when a course has no manager",
    )
    support_contact_name: str = Field(
        default="Site support", description="Fallback enroller display name"
    )
    redeem_rate_limit_per_minute: int = Field(
        default=10, description="Token redemption attempts per user per minute"
    )

    # Token enrolment instance defaults
    default_instance_status: Literal["enabled", "disabled"] = Field(
        default="enabled", description="Status of new instances"
    )
    default_role: str = Field(default="student", description="Role given on enrol")
    default_enrol_period_seconds: int = Field(
        default=0, ge=0, description="Enrolment duration (0 = unlimited)"
    )
    default_new_enrolments: bool = Field(
        default=True, description="Allow new enrolments on new instances"
    )
    default_max_enrolled: int = Field(
        default=0, ge=0, description="Max enrolled users (0 = unlimited)"
    )
    default_inactivity_timeout_seconds: int = Field(
        default=0, ge=0, description="Unenrol inactive after (0 = disabled)"
    )
    default_expiry_notify: Literal["none", "enroller", "all"] = Field(
        default="none", description="Who gets expiry notifications"
    )
    default_expiry_threshold_seconds: int = Field(
        default=86400, ge=0, description="Expiry notification threshold"
    )
    default_welcome_send_mode: Literal[
        "disabled", "course_contact", "key_holder", "no_reply"
    ] = Field(default="course_contact", description="Welcome message sender")

    # Scheduler
    scheduler_enabled: bool = Field(
        default=True, description="Run reconciliation and notifier on a schedule"
    )
    reconciliation_interval_minutes: int = Field(
        default=60, ge=1, description="Minutes between reconciliation runs"
    )
    expiry_notify_interval_minutes: int = Field(
        default=10, ge=1, description="Minutes between expiry notifier runs"
    )

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"

    @property
    def is_testing(self) -> bool:
        """Check if running in testing mode."""
        return self.environment == "testing"

    @property
    def email_configured(self) -> bool:
        """Check if Gmail API email is configured."""
        return bool(self.email_enabled and self.email_sender_address)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
