"""
Module: settings.py
Description: Application configuration using pydantic-settings.

Configures the webhook delivery service from environment variables with
validation and defaults. Supports .env files for local development.
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application settings
    app_name: str = Field(default="Form Webhooks API", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    log_level: str = Field(default="INFO", description="Logging level")

    # AWS settings
    aws_region: str = Field(default="us-east-1", description="AWS region")
    stage: str = Field(default="dev", description="Deployment stage")

    # Storage settings
    storage_backend: str = Field(
        default="memory",
        pattern=r"^(memory|dynamodb)$",
        description="Key-value store backing the webhook registry"
    )
    webhooks_table_name: str = Field(
        default="form-webhooks",
        description="Name of the DynamoDB key-value table"
    )
    webhooks_storage_key: str = Field(
        default="webhooks",
        min_length=1,
        description="Key under which the webhook config set is persisted"
    )

    # Delivery settings
    delivery_timeout: int = Field(
        default=10,
        ge=1,
        le=60,
        description="HTTP timeout in seconds for delivery attempts"
    )
    max_response_chars: int = Field(
        default=2000,
        ge=0,
        description="Response bodies longer than this are truncated in the delivery log"
    )
    require_signature: bool = Field(
        default=False,
        description="Treat webhooks without a secret as a signing error"
    )

    # Default retry policy for webhooks created without one
    default_max_retries: int = Field(default=5, ge=0)
    default_backoff_multiplier: float = Field(default=2.0, ge=1.0)
    default_initial_delay_ms: int = Field(default=1000, ge=0)
    default_max_delay_ms: int = Field(default=60000, ge=0)

    # Metrics settings
    metrics_enabled: bool = Field(default=False, description="Publish CloudWatch metrics")
    metrics_namespace: str = Field(default="FormWebhooks", description="CloudWatch namespace")

    @field_validator('webhooks_table_name')
    @classmethod
    def validate_table_name(cls, v: str) -> str:
        """Validate DynamoDB table name."""
        if not v or not isinstance(v, str):
            raise ValueError("Table name must be a non-empty string")

        # Allow alphanumeric, hyphens, underscores
        import re
        if not re.match(r'^[a-zA-Z0-9_-]+$', v):
            raise ValueError(
                "Table name must contain only letters, numbers, hyphens, and underscores"
            )

        return v

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a valid logging level."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of: {', '.join(valid_levels)}")
        return v.upper()


# Global settings instance
settings = Settings()
