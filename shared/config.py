"""
Shared configuration management for the token bridge.
"""

from typing import List, Optional

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when required startup configuration is missing or invalid."""


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="BRIDGE_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8080)

    # Edge
    allowed_origins: str = Field(default="")

    # Observability
    enable_tracing: bool = Field(default=False)
    otel_exporter: Optional[str] = Field(default=None)
    enable_console_tracing: bool = Field(default=False)

    @property
    def is_production(self) -> bool:
        return self.env.lower() in ("production", "prod")

    @property
    def allowed_origin_list(self) -> List[str]:
        """Comma-separated ``allowed_origins`` as a list."""
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]


class BridgeConfig(BaseConfig):
    """Configuration for the token exchange service."""

    # External identity provider
    provider_name: str = Field(default="authgear", min_length=1)
    provider_endpoint: str = Field(min_length=1)
    provider_client_id: str = Field(min_length=1)
    provider_admin_token: Optional[str] = Field(default=None)
    request_timeout: float = Field(default=5.0, gt=0)

    # Internal credential backend: "firebase", or "memory" for local development
    credential_backend: str = Field(default="firebase")

    # Firebase service account
    firebase_service_account_base64: Optional[str] = Field(default=None)
    firebase_project_id: Optional[str] = Field(default=None)
    firebase_client_email: Optional[str] = Field(default=None)
    firebase_private_key: Optional[str] = Field(default=None)
    firebase_database_url: Optional[str] = Field(default=None)

    embed_identity_claims: bool = Field(default=True)

    @field_validator("provider_endpoint")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("credential_backend")
    @classmethod
    def _known_backend(cls, value: str) -> str:
        value = value.lower()
        if value not in ("firebase", "memory"):
            raise ValueError("credential_backend must be 'firebase' or 'memory'")
        return value

    @field_validator("provider_name")
    @classmethod
    def _reject_separator(cls, value: str) -> str:
        if ":" in value:
            raise ValueError("provider_name must not contain ':'")
        return value

    @property
    def has_backend_credentials(self) -> bool:
        if self.firebase_service_account_base64:
            return True
        return all((
            self.firebase_project_id,
            self.firebase_client_email,
            self.firebase_private_key,
        ))


def load_config(**overrides) -> BridgeConfig:
    """Read configuration once from the environment.

    Raises ``ConfigurationError`` when a required option is absent so the
    process can refuse to start.
    """
    try:
        config = BridgeConfig(**overrides)
    except ValidationError as e:
        missing = [".".join(str(part) for part in err["loc"]) for err in e.errors()]
        raise ConfigurationError(f"Invalid configuration: {', '.join(missing)}") from e

    if config.credential_backend == "memory" and config.is_production:
        raise ConfigurationError("Invalid configuration: the memory credential backend is not allowed in production")

    if config.credential_backend == "firebase" and not config.has_backend_credentials:
        raise ConfigurationError(
            "Invalid configuration: firebase_service_account_base64 or "
            "firebase_project_id/firebase_client_email/firebase_private_key required"
        )

    return config
