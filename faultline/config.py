"""Configuration for the error aggregation pipeline.

Settings can be built directly, loaded from a YAML file with overrides, or
read from environment variables. Every validation problem is reported as a
``ConfigurationError`` at load time so a misconfigured channel fails the
process before the flush scheduler starts.
"""

import logging
import os
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, EmailStr, Field, ValidationError, model_validator

from .errors import ConfigurationError
from .storage.base import StorageBackend


logger = logging.getLogger(__name__)


class SinkKind(str, Enum):
    """Supported alert channel kinds."""
    SLACK = "slack"
    TEAMS = "teams"
    SMTP_EMAIL = "smtp_email"


class SMTPSettings(BaseModel):
    """SMTP server configuration."""

    host: str = Field(description="SMTP server hostname")
    port: int = Field(
        default=587,
        description="SMTP server port (587 for TLS, 465 for SSL, 25 for plain)"
    )
    username: Optional[str] = Field(default=None, description="SMTP authentication username")
    password: Optional[str] = Field(default=None, description="SMTP authentication password")
    use_tls: bool = Field(default=True, description="Use TLS encryption (STARTTLS)")
    use_ssl: bool = Field(default=False, description="Use SSL encryption (implicit TLS)")

    @model_validator(mode='after')
    def validate_encryption(self):
        if self.use_tls and self.use_ssl:
            raise ValueError("use_tls and use_ssl are mutually exclusive")
        return self


class EmailSettings(BaseModel):
    """Email message configuration."""

    from_email: EmailStr = Field(description="Sender email address")
    from_name: Optional[str] = Field(default="Faultline", description="Sender display name")
    to_emails: List[EmailStr] = Field(description="Primary recipients", min_length=1)
    cc_emails: List[EmailStr] = Field(default_factory=list, description="CC recipients")
    bcc_emails: List[EmailStr] = Field(default_factory=list, description="BCC recipients")
    subject_prefix: str = Field(default="[Faultline]", description="Subject line prefix")


class ChannelConfig(BaseModel):
    """One configured alert channel."""

    kind: SinkKind = Field(description="Channel kind")
    name: Optional[str] = Field(
        default=None,
        description="Channel identity used in logs and dispatch results"
    )
    enabled: bool = Field(default=True, description="Whether the channel receives batches")

    webhook_url: Optional[str] = Field(default=None, description="Slack/Teams incoming webhook URL")
    dashboard_url: Optional[str] = Field(
        default=None,
        description="Optional deep link rendered as a 'View error logs' action"
    )

    smtp: Optional[SMTPSettings] = Field(default=None, description="SMTP connection settings")
    email: Optional[EmailSettings] = Field(default=None, description="Email addressing settings")

    timeout_seconds: float = Field(default=10.0, gt=0, description="Per-send timeout")
    max_entries: int = Field(default=20, ge=1, description="Entries rendered per message")
    max_message_chars: int = Field(
        default=1000,
        ge=1,
        description="Exception message characters rendered per entry"
    )
    max_stack_trace_chars: int = Field(
        default=1500,
        ge=0,
        description="Stack trace characters rendered per entry"
    )

    @model_validator(mode='after')
    def validate_channel_fields(self):
        """Validate that the required fields for the channel kind are present."""
        if self.kind in (SinkKind.SLACK, SinkKind.TEAMS):
            if not self.webhook_url:
                raise ValueError(f"{self.kind.value} channel requires webhook_url")
        elif self.kind == SinkKind.SMTP_EMAIL:
            if self.smtp is None or self.email is None:
                raise ValueError("smtp_email channel requires smtp and email settings")

        if self.name is None:
            self.name = self.kind.value
        return self


class StorageSettings(BaseModel):
    """Aggregation store selection."""

    backend: StorageBackend = Field(default=StorageBackend.MEMORY)
    connection_string: Optional[str] = Field(
        default=None,
        description="Redis URL or database URL for remote backends"
    )
    operation_timeout_seconds: float = Field(
        default=2.0,
        gt=0,
        description="Upper bound for a single storage call"
    )
    key_prefix: str = Field(default="faultline:", description="Redis key prefix")
    shard_count: int = Field(default=16, ge=1, description="Memory store lock shards")

    @model_validator(mode='after')
    def validate_connection(self):
        if self.backend != StorageBackend.MEMORY and not self.connection_string:
            raise ValueError(f"{self.backend.value} storage requires connection_string")
        return self

    def store_kwargs(self) -> Dict[str, Any]:
        """Backend-specific keyword arguments for the store factory."""
        kwargs: Dict[str, Any] = {"operation_timeout_seconds": self.operation_timeout_seconds}
        if self.backend == StorageBackend.MEMORY:
            kwargs["shard_count"] = self.shard_count
        elif self.backend == StorageBackend.REDIS:
            kwargs["key_prefix"] = self.key_prefix
        return kwargs


class FaultlineSettings(BaseModel):
    """Complete pipeline configuration."""

    flush_interval_seconds: float = Field(
        default=1800.0,
        gt=0,
        description="Interval between flush cycles (default 30 minutes)"
    )
    shutdown_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Deadline for the final flush on shutdown"
    )
    storage: StorageSettings = Field(default_factory=StorageSettings)
    channels: List[ChannelConfig] = Field(default_factory=list)

    @classmethod
    def from_environment(cls) -> "FaultlineSettings":
        """Create configuration from environment variables."""
        data: Dict[str, Any] = {}

        interval = os.getenv("FAULTLINE_FLUSH_INTERVAL_SECONDS")
        if interval:
            data["flush_interval_seconds"] = interval

        data["storage"] = {
            "backend": os.getenv("FAULTLINE_STORAGE_BACKEND", "memory").lower(),
            "connection_string": os.getenv("FAULTLINE_STORAGE_URL"),
        }

        dashboard_url = os.getenv("FAULTLINE_DASHBOARD_URL")
        channels = []
        for kind, env_var in ((SinkKind.SLACK, "FAULTLINE_SLACK_WEBHOOK_URL"),
                              (SinkKind.TEAMS, "FAULTLINE_TEAMS_WEBHOOK_URL")):
            webhook_url = os.getenv(env_var)
            if webhook_url:
                channels.append({
                    "kind": kind.value,
                    "webhook_url": webhook_url,
                    "dashboard_url": dashboard_url,
                })
        data["channels"] = channels

        return build_settings(data)


def build_settings(data: Dict[str, Any]) -> FaultlineSettings:
    """Validate a raw settings dictionary.

    Raises:
        ConfigurationError: If validation fails
    """
    try:
        return FaultlineSettings(**data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid faultline configuration: {e}")


def load_settings(
    config_path: Optional[Union[str, Path]] = None,
    overrides: Optional[Dict[str, Any]] = None
) -> FaultlineSettings:
    """Load FaultlineSettings from a YAML file with overrides.

    Args:
        config_path: Path to YAML config file. If None, uses FAULTLINE_CONFIG
            or falls back to environment variables.
        overrides: Additional configuration overrides to apply.

    Returns:
        Validated FaultlineSettings instance.

    Raises:
        ConfigurationError: If configuration loading or validation fails.
    """
    if config_path is None:
        config_path = os.getenv("FAULTLINE_CONFIG")
        if config_path is None:
            if overrides:
                return build_settings(overrides)
            return FaultlineSettings.from_environment()

    config_path = Path(config_path)
    if not config_path.exists():
        raise ConfigurationError(f"Config file not found: {config_path}")

    try:
        with open(config_path, 'r') as f:
            config_data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Failed to parse YAML config: {e}")
    except IOError as e:
        raise ConfigurationError(f"Failed to read config file: {e}")

    if not isinstance(config_data, dict):
        raise ConfigurationError("Config file must contain a YAML dictionary")

    if overrides:
        config_data = _deep_merge(config_data, overrides)
        logger.debug("Applied additional configuration overrides")

    settings = build_settings(config_data)
    logger.info(
        f"Loaded faultline settings from {config_path} "
        f"({len(settings.channels)} channels, {settings.storage.backend.value} storage)"
    )
    return settings


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge two dictionaries, with override taking precedence."""
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result
