"""
Configuration management for ClientDesk.

Provides centralized, validated configuration from environment variables
with proper type checking and defaults.
"""

from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

FIRESTORE_API = "https://firestore.googleapis.com/v1"

STORE_BACKENDS = ("firestore", "memory")
SNAPSHOT_POLICIES = ("skip", "abort")
PERMISSIONS = ("granted", "denied", "default")


class StoreConfig(BaseSettings):
    """Hosted document store configuration."""

    backend: str = Field(default="firestore", alias="STORE_BACKEND")
    project_id: Optional[str] = Field(default=None, alias="FIRESTORE_PROJECT_ID")
    database: str = Field(default="(default)", alias="FIRESTORE_DATABASE")
    api_key: Optional[str] = Field(default=None, alias="FIRESTORE_API_KEY")
    id_token: Optional[str] = Field(default=None, alias="FIRESTORE_ID_TOKEN")
    base_url: str = Field(default=FIRESTORE_API, alias="FIRESTORE_BASE_URL")

    # Live query polling and HTTP
    listen_poll_interval: float = Field(default=2.0, alias="LISTEN_POLL_INTERVAL")
    request_timeout: float = Field(default=30.0, alias="REQUEST_TIMEOUT")

    @field_validator("backend", mode="before")
    @classmethod
    def parse_backend(cls, v):
        value = str(v or "firestore").strip().lower()
        if value not in STORE_BACKENDS:
            raise ValueError(f"STORE_BACKEND must be one of {', '.join(STORE_BACKENDS)}")
        return value

    @field_validator("listen_poll_interval")
    @classmethod
    def validate_poll_interval(cls, v):
        if v <= 0:
            raise ValueError("LISTEN_POLL_INTERVAL must be positive")
        return v

    @property
    def documents_root(self) -> str:
        """Resource name prefix of every document in the configured database."""
        return f"projects/{self.project_id}/databases/{self.database}/documents"

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")


class NotificationConfig(BaseSettings):
    """User-visible notification configuration."""

    permission: str = Field(default="default", alias="NOTIFICATIONS_PERMISSION")

    @field_validator("permission", mode="before")
    @classmethod
    def parse_permission(cls, v):
        value = str(v or "default").strip().lower()
        if value not in PERMISSIONS:
            raise ValueError(f"NOTIFICATIONS_PERMISSION must be one of {', '.join(PERMISSIONS)}")
        return value

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")


class Settings(BaseSettings):
    """Main application settings."""

    # Environment
    environment: str = Field(default="production", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")

    # Principal handed over by the authentication collaborator
    user_id: Optional[str] = Field(default=None, alias="CLIENTDESK_USER_ID")

    # Malformed record handling for live snapshots
    snapshot_policy: str = Field(default="skip", alias="SNAPSHOT_POLICY")

    # Component configurations
    store: StoreConfig = Field(default_factory=StoreConfig)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)

    @field_validator("debug", mode="before")
    @classmethod
    def parse_debug(cls, v):
        if isinstance(v, str):
            return v.lower() in ("1", "true", "yes")
        return bool(v)

    @field_validator("snapshot_policy", mode="before")
    @classmethod
    def parse_snapshot_policy(cls, v):
        value = str(v or "skip").strip().lower()
        if value not in SNAPSHOT_POLICIES:
            raise ValueError(f"SNAPSHOT_POLICY must be one of {', '.join(SNAPSHOT_POLICIES)}")
        return value

    def model_post_init(self, __context) -> None:
        # Initialize sub-configurations
        self.store = StoreConfig()
        self.notifications = NotificationConfig()

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


# Global settings instance
settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global settings
    if settings is None:
        settings = Settings()
    return settings


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    global settings
    settings = None


def validate_required_settings(config: Optional[Settings] = None) -> List[str]:
    """
    Validate that required settings are present for the selected store backend.

    Args:
        config: Settings to check (the global instance when omitted)

    Returns:
        List of missing required settings
    """
    missing = []
    try:
        config = config or get_settings()

        if config.store.backend == "firestore":
            if not config.store.project_id:
                missing.append("FIRESTORE_PROJECT_ID")
            if not (config.store.api_key or config.store.id_token):
                missing.append("FIRESTORE_API_KEY or FIRESTORE_ID_TOKEN")

    except Exception as e:
        missing.append(f"Configuration error: {e}")

    return missing


def configuration_summary(config: Optional[Settings] = None) -> Dict[str, str]:
    """Flat view of the effective configuration, secrets masked."""
    config = config or get_settings()
    return {
        "environment": config.environment,
        "debug": str(config.debug),
        "user": config.user_id or "(not set)",
        "backend": config.store.backend,
        "project": config.store.project_id or "(not set)",
        "database": config.store.database,
        "credentials": "✓" if (config.store.api_key or config.store.id_token) else "✗",
        "poll_interval": f"{config.store.listen_poll_interval:g}s",
        "snapshot_policy": config.snapshot_policy,
        "notifications": config.notifications.permission,
    }


def print_configuration_summary(config: Optional[Settings] = None) -> None:
    """Print a summary of the current configuration for debugging."""
    try:
        summary = configuration_summary(config)
        print("=== ClientDesk Configuration Summary ===")
        for key, value in summary.items():
            print(f"{key.replace('_', ' ').title()}: {value}")
        print("=" * 40)
    except Exception as e:
        print(f"Error loading configuration: {e}")
