"""Unit tests for connection configuration."""

import logging

import pytest

from rcsocket.config import (
    PROCESS_SETTINGS,
    ProcessSettings,
    RcSocketConfig,
    get_debug_all,
    load_config,
    read_config_file,
    set_debug_all,
)
from rcsocket.exceptions import ConfigurationError


class TestRcSocketConfig:
    """Tests for RcSocketConfig defaults and validation."""

    def test_defaults(self):
        """Test default values."""
        config = RcSocketConfig()

        assert config.connect_timeout == 2.5
        assert config.max_retry_delay == 1.0
        assert config.retry_base_delay == 1.0
        assert config.queue_flush_delay == 0.1
        assert config.debug is False
        assert config.logger.name == "rcsocket"
        assert config.tls_config.verify_cert is True
        assert config.process_settings is PROCESS_SETTINGS

    def test_validate_ok(self):
        """Test valid config passes."""
        RcSocketConfig(connect_timeout=5.0, max_retry_delay=30.0).validate()

    @pytest.mark.parametrize(
        "key,value",
        [
            ("connect_timeout", 0),
            ("max_retry_delay", -1),
            ("retry_base_delay", -0.5),
            ("queue_flush_delay", -1),
            ("max_message_size", 0),
        ],
    )
    def test_validate_rejects(self, key, value):
        """Test invalid values raise ConfigurationError."""
        config = RcSocketConfig(**{key: value})

        with pytest.raises(ConfigurationError) as exc_info:
            config.validate()

        assert exc_info.value.config_key == key

    def test_verbose(self):
        """Test verbose combines instance and process-wide flags."""
        settings = ProcessSettings()
        config = RcSocketConfig(process_settings=settings)
        assert config.verbose is False

        settings.debug_all = True
        assert config.verbose is True

        settings.debug_all = False
        config.debug = True
        assert config.verbose is True


class TestDebugAll:
    """Tests for the process-wide debug toggle."""

    def test_set_and_get(self):
        """Test the shared toggle round trip."""
        try:
            set_debug_all(True)
            assert get_debug_all() is True
            assert RcSocketConfig().verbose is True
        finally:
            set_debug_all(False)

        assert get_debug_all() is False


class TestFromDict:
    """Tests for building configs from plain data."""

    def test_basic(self):
        """Test plain keys are applied."""
        config = RcSocketConfig.from_dict(
            {"connect_timeout": 5.0, "max_retry_delay": 30, "debug": True}
        )

        assert config.connect_timeout == 5.0
        assert config.max_retry_delay == 30
        assert config.debug is True

    def test_tls_mapping(self):
        """Test tls is converted to TLSConfig."""
        config = RcSocketConfig.from_dict({"tls": {"enabled": True, "verify_cert": False}})

        assert config.tls_config.enabled is True
        assert config.tls_config.verify_cert is False

    def test_invalid_tls(self):
        """Test unknown tls fields are rejected."""
        with pytest.raises(ConfigurationError):
            RcSocketConfig.from_dict({"tls": {"cipher": "none"}})

    def test_tls_not_mapping(self):
        """Test a scalar tls value is rejected."""
        with pytest.raises(ConfigurationError):
            RcSocketConfig.from_dict({"tls": "yes"})

    def test_logger_name(self):
        """Test logger is resolved by name."""
        config = RcSocketConfig.from_dict({"logger": "myapp.socket"})

        assert config.logger is logging.getLogger("myapp.socket")

    def test_unknown_key(self):
        """Test unknown keys are rejected."""
        with pytest.raises(ConfigurationError) as exc_info:
            RcSocketConfig.from_dict({"reconnect_forever": True})

        assert exc_info.value.config_key == "reconnect_forever"

    def test_invalid_value(self):
        """Test values are validated."""
        with pytest.raises(ConfigurationError):
            RcSocketConfig.from_dict({"connect_timeout": -1})


class TestLoadConfig:
    """Tests for YAML configuration files."""

    def test_load(self, tmp_path):
        """Test loading a flat file."""
        path = tmp_path / "rcsocket.yaml"
        path.write_text("connect_timeout: 4.0\nqueue_flush_delay: 0.5\n")

        config = load_config(path)

        assert config.connect_timeout == 4.0
        assert config.queue_flush_delay == 0.5

    def test_wrapped_section(self, tmp_path):
        """Test settings nested under an rcsocket key."""
        path = tmp_path / "app.yaml"
        path.write_text("rcsocket:\n  max_retry_delay: 30\n  debug: true\n")

        config = load_config(path)

        assert config.max_retry_delay == 30
        assert config.debug is True

    def test_read_keeps_extra_keys(self, tmp_path):
        """Test the raw reader returns url and protocols untouched."""
        path = tmp_path / "rcsocket.yaml"
        path.write_text("url: ws://localhost:8765\nprotocols: [chat]\n")

        assert read_config_file(path) == {
            "url": "ws://localhost:8765",
            "protocols": ["chat"],
        }

    def test_empty_file(self, tmp_path):
        """Test an empty file yields defaults."""
        path = tmp_path / "empty.yaml"
        path.write_text("")

        assert load_config(path).connect_timeout == 2.5

    def test_missing_file(self, tmp_path):
        """Test a missing file raises ConfigurationError."""
        with pytest.raises(ConfigurationError):
            load_config(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path):
        """Test malformed YAML raises ConfigurationError."""
        path = tmp_path / "bad.yaml"
        path.write_text("connect_timeout: [1, 2\n")

        with pytest.raises(ConfigurationError):
            load_config(path)

    def test_non_mapping_root(self, tmp_path):
        """Test a list document is rejected."""
        path = tmp_path / "list.yaml"
        path.write_text("- 1\n- 2\n")

        with pytest.raises(ConfigurationError):
            load_config(path)
