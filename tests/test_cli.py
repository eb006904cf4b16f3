"""Tests for the command-line interface."""

import pytest
from click.testing import CliRunner

from rcsocket.cli import _build_config, cli
from rcsocket.exceptions import ConfigurationError


@pytest.fixture
def runner():
    return CliRunner()


class TestBackoffCommand:
    """Tests for the backoff table."""

    def test_default_cap(self, runner):
        """Test the default schedule is capped from the first attempt."""
        result = runner.invoke(cli, ["backoff", "-n", "3"])

        assert result.exit_code == 0
        assert "Reconnect Schedule" in result.output
        assert "1.000" in result.output

    def test_growth(self, runner):
        """Test the schedule grows until the cap."""
        result = runner.invoke(cli, ["backoff", "-n", "4", "--max-retry-delay", "10"])

        assert result.exit_code == 0
        for delay in ("1.000", "3.000", "7.000", "10.000"):
            assert delay in result.output

    def test_invalid_attempts(self, runner):
        result = runner.invoke(cli, ["backoff", "-n", "0"])

        assert result.exit_code != 0


class TestConnectCommand:
    """Tests for argument handling of the connect command."""

    def test_missing_url(self, runner, monkeypatch):
        """Test connect without a URL fails with a hint."""
        monkeypatch.delenv("RCSOCKET_URL", raising=False)

        result = runner.invoke(cli, ["connect"])

        assert result.exit_code == 1
        assert "No URL given" in result.output

    def test_invalid_url(self, runner):
        """Test unsupported schemes are rejected before connecting."""
        result = runner.invoke(cli, ["connect", "http://localhost:1"], input="")

        assert result.exit_code == 1
        assert "Unsupported URL scheme" in result.output

    def test_invalid_config_file(self, runner, tmp_path):
        """Test invalid settings in the config file are reported."""
        path = tmp_path / "rcsocket.yaml"
        path.write_text("connect_timeout: -1\n")

        result = runner.invoke(cli, ["connect", "ws://localhost:1", "-c", str(path)])

        assert result.exit_code == 1
        assert "connect_timeout" in result.output


class TestBuildConfig:
    """Tests for merging file settings and command-line options."""

    def test_overrides_win(self, tmp_path):
        path = tmp_path / "rcsocket.yaml"
        path.write_text(
            "url: ws://localhost:8765\n"
            "protocols: [chat]\n"
            "connect_timeout: 4.0\n"
            "max_retry_delay: 30\n"
        )

        config, extras = _build_config(path, {"connect_timeout": 1.5, "max_retry_delay": None})

        assert config.connect_timeout == 1.5
        assert config.max_retry_delay == 30
        assert extras == {"url": "ws://localhost:8765", "protocols": ["chat"]}

    def test_without_file(self):
        config, extras = _build_config(None, {"debug": True})

        assert config.debug is True
        assert extras == {}

    def test_unknown_key(self, tmp_path):
        path = tmp_path / "rcsocket.yaml"
        path.write_text("bogus: 1\n")

        with pytest.raises(ConfigurationError):
            _build_config(path, {})
