"""Unit tests for settings loading and validation."""

import pytest

from faultline.config import (
    ChannelConfig,
    FaultlineSettings,
    SinkKind,
    StorageSettings,
    _deep_merge,
    build_settings,
    load_settings,
)
from faultline.errors import ConfigurationError
from faultline.storage.base import StorageBackend


SLACK_URL = "https://hooks.slack.com/services/T000/B000/XXXX"


class TestChannelConfig:
    """Test per-kind channel validation."""

    def test_slack_requires_webhook(self):
        with pytest.raises(ValueError, match="webhook_url"):
            ChannelConfig(kind=SinkKind.SLACK)

    def test_email_requires_smtp_and_email(self):
        with pytest.raises(ValueError, match="smtp and email"):
            ChannelConfig(kind=SinkKind.SMTP_EMAIL)

    def test_name_defaults_to_kind(self):
        channel = ChannelConfig(kind="teams", webhook_url="https://example.webhook.office.com/x")

        assert channel.name == "teams"
        assert channel.enabled is True

    def test_email_channel(self):
        channel = ChannelConfig(
            kind="smtp_email",
            smtp={"host": "smtp.example.com", "port": 465, "use_tls": False, "use_ssl": True},
            email={"from_email": "alerts@example.com", "to_emails": ["ops@example.com"]},
        )

        assert channel.smtp.use_ssl is True
        assert channel.email.subject_prefix == "[Faultline]"

    def test_tls_and_ssl_exclusive(self):
        with pytest.raises(ValueError, match="mutually exclusive"):
            ChannelConfig(
                kind="smtp_email",
                smtp={"host": "smtp.example.com", "use_tls": True, "use_ssl": True},
                email={"from_email": "alerts@example.com", "to_emails": ["ops@example.com"]},
            )


class TestStorageSettings:
    """Test storage selection."""

    def test_memory_defaults(self):
        settings = StorageSettings()

        assert settings.backend == StorageBackend.MEMORY
        assert settings.store_kwargs() == {"operation_timeout_seconds": 2.0, "shard_count": 16}

    def test_remote_backend_requires_connection_string(self):
        with pytest.raises(ValueError, match="connection_string"):
            StorageSettings(backend="redis")

    def test_redis_kwargs(self):
        settings = StorageSettings(backend="redis", connection_string="redis://localhost:6379/0", key_prefix="app:")

        assert settings.store_kwargs() == {"operation_timeout_seconds": 2.0, "key_prefix": "app:"}


class TestBuildSettings:
    """Test settings construction and error mapping."""

    def test_defaults(self):
        settings = build_settings({})

        assert settings.flush_interval_seconds == 1800.0
        assert settings.channels == []

    def test_invalid_channel_is_configuration_error(self):
        with pytest.raises(ConfigurationError):
            build_settings({"channels": [{"kind": "slack"}]})

    def test_unknown_kind_is_configuration_error(self):
        with pytest.raises(ConfigurationError):
            build_settings({"channels": [{"kind": "pager", "webhook_url": SLACK_URL}]})

    def test_non_positive_interval_rejected(self):
        with pytest.raises(ConfigurationError):
            build_settings({"flush_interval_seconds": 0})


class TestFromEnvironment:
    """Test environment-driven configuration."""

    def test_reads_channels_and_storage(self, monkeypatch):
        monkeypatch.setenv("FAULTLINE_FLUSH_INTERVAL_SECONDS", "60")
        monkeypatch.setenv("FAULTLINE_STORAGE_BACKEND", "REDIS")
        monkeypatch.setenv("FAULTLINE_STORAGE_URL", "redis://cache:6379/1")
        monkeypatch.setenv("FAULTLINE_SLACK_WEBHOOK_URL", SLACK_URL)
        monkeypatch.delenv("FAULTLINE_TEAMS_WEBHOOK_URL", raising=False)
        monkeypatch.setenv("FAULTLINE_DASHBOARD_URL", "https://logs.example.com")

        settings = FaultlineSettings.from_environment()

        assert settings.flush_interval_seconds == 60.0
        assert settings.storage.backend == StorageBackend.REDIS
        assert settings.storage.connection_string == "redis://cache:6379/1"
        assert len(settings.channels) == 1
        assert settings.channels[0].kind == SinkKind.SLACK
        assert settings.channels[0].dashboard_url == "https://logs.example.com"

    def test_remote_backend_without_url_fails(self, monkeypatch):
        monkeypatch.setenv("FAULTLINE_STORAGE_BACKEND", "relational")
        monkeypatch.delenv("FAULTLINE_STORAGE_URL", raising=False)

        with pytest.raises(ConfigurationError):
            FaultlineSettings.from_environment()


class TestLoadSettings:
    """Test YAML loading."""

    def test_load_yaml_with_overrides(self, tmp_path):
        config_file = tmp_path / "faultline.yaml"
        config_file.write_text(
            "flush_interval_seconds: 900\n"
            "storage:\n"
            "  backend: memory\n"
            "  shard_count: 8\n"
            "channels:\n"
            f"  - kind: slack\n    webhook_url: {SLACK_URL}\n"
        )

        settings = load_settings(config_file, overrides={"storage": {"shard_count": 2}})

        assert settings.flush_interval_seconds == 900.0
        assert settings.storage.shard_count == 2
        assert settings.storage.backend == StorageBackend.MEMORY
        assert settings.channels[0].webhook_url == SLACK_URL

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_settings(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path):
        config_file = tmp_path / "broken.yaml"
        config_file.write_text("channels: [\n")

        with pytest.raises(ConfigurationError, match="parse"):
            load_settings(config_file)

    def test_non_mapping_yaml(self, tmp_path):
        config_file = tmp_path / "list.yaml"
        config_file.write_text("- a\n- b\n")

        with pytest.raises(ConfigurationError, match="dictionary"):
            load_settings(config_file)

    def test_env_path(self, tmp_path, monkeypatch):
        config_file = tmp_path / "env.yaml"
        config_file.write_text("shutdown_timeout_seconds: 5\n")
        monkeypatch.setenv("FAULTLINE_CONFIG", str(config_file))

        assert load_settings().shutdown_timeout_seconds == 5.0

    def test_deep_merge(self):
        merged = _deep_merge({"a": {"b": 1, "c": 2}, "d": 3}, {"a": {"c": 20}, "e": 4})

        assert merged == {"a": {"b": 1, "c": 20}, "d": 3, "e": 4}
