"""Configuration for the reconnecting socket.

Two layers of configuration exist:

- ``ProcessSettings`` holds the process-wide verbose-logging toggle. A
  single shared instance is created at import time; applications set it
  once at startup with ``set_debug_all()`` and every connection reads it
  again at each event dispatch.
- ``RcSocketConfig`` holds the per-connection settings and is injected
  into each ``RcSocket``. It can be built from a mapping or a YAML file.

Example:
    >>> from rcsocket.config import RcSocketConfig, set_debug_all
    >>> set_debug_all(True)
    >>> config = RcSocketConfig(connect_timeout=5.0, max_retry_delay=30.0)
    >>> config.validate()
"""

import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Mapping, Union

import yaml

from rcsocket.constants import (
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_LOGGER_NAME,
    DEFAULT_MAX_MESSAGE_SIZE,
    DEFAULT_MAX_RETRY_DELAY,
    DEFAULT_QUEUE_FLUSH_DELAY,
    DEFAULT_RETRY_BASE_DELAY,
)
from rcsocket.exceptions import ConfigurationError
from rcsocket.types import TLSConfig


@dataclass
class ProcessSettings:
    """Settings shared by every connection in the process.

    Attributes:
        debug_all: Log every dispatched event of every connection.
    """

    debug_all: bool = False


PROCESS_SETTINGS = ProcessSettings()
"""The shared instance injected into configs that don't supply their own."""


def set_debug_all(enabled: bool) -> None:
    """Enable or disable verbose event logging for all connections."""
    PROCESS_SETTINGS.debug_all = bool(enabled)


def get_debug_all() -> bool:
    """Return the process-wide verbose logging flag."""
    return PROCESS_SETTINGS.debug_all


def _default_logger() -> logging.Logger:
    return logging.getLogger(DEFAULT_LOGGER_NAME)


@dataclass
class RcSocketConfig:
    """Per-connection configuration.

    Attributes:
        connect_timeout: Seconds a connect attempt may take before it is
            reported as timed out and retried.
        max_retry_delay: Cap for the reconnect delay (seconds).
        retry_base_delay: Unit of the reconnect delay; the delay for attempt
            ``n`` is ``(2 ** n - 1) * retry_base_delay`` before capping.
        queue_flush_delay: Base spacing for flushing queued payloads; the
            entry of rank ``r`` is sent ``r * queue_flush_delay`` after open.
        debug: Log every event this connection dispatches.
        logger: Logger receiving verbose dispatch records.
        tls_config: TLS settings for ``wss://`` URLs.
        max_message_size: Maximum incoming message size in bytes.
        process_settings: Holder of the process-wide debug toggle.

    Example:
        >>> config = RcSocketConfig(max_retry_delay=30.0)
        >>> config.validate()
    """

    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    max_retry_delay: float = DEFAULT_MAX_RETRY_DELAY
    retry_base_delay: float = DEFAULT_RETRY_BASE_DELAY
    queue_flush_delay: float = DEFAULT_QUEUE_FLUSH_DELAY
    debug: bool = False
    logger: logging.Logger = field(default_factory=_default_logger)
    tls_config: TLSConfig = field(default_factory=TLSConfig)
    max_message_size: int = DEFAULT_MAX_MESSAGE_SIZE
    process_settings: ProcessSettings = field(default_factory=lambda: PROCESS_SETTINGS)

    @property
    def verbose(self) -> bool:
        """Whether dispatches should currently be logged."""
        return self.debug or self.process_settings.debug_all

    def validate(self) -> None:
        """Validate configuration values.

        Raises:
            ConfigurationError: If configuration is invalid.
        """
        if self.connect_timeout <= 0:
            raise ConfigurationError(
                "connect_timeout must be positive",
                config_key="connect_timeout",
                config_value=self.connect_timeout,
            )

        if self.max_retry_delay < 0:
            raise ConfigurationError(
                "max_retry_delay cannot be negative",
                config_key="max_retry_delay",
                config_value=self.max_retry_delay,
            )

        if self.retry_base_delay < 0:
            raise ConfigurationError(
                "retry_base_delay cannot be negative",
                config_key="retry_base_delay",
                config_value=self.retry_base_delay,
            )

        if self.queue_flush_delay < 0:
            raise ConfigurationError(
                "queue_flush_delay cannot be negative",
                config_key="queue_flush_delay",
                config_value=self.queue_flush_delay,
            )

        if self.max_message_size <= 0:
            raise ConfigurationError(
                "max_message_size must be positive",
                config_key="max_message_size",
                config_value=self.max_message_size,
            )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RcSocketConfig":
        """Build a config from plain data, e.g. a parsed YAML document.

        ``tls`` may hold a mapping of ``TLSConfig`` fields and ``logger`` a
        logger name.

        Raises:
            ConfigurationError: On unknown keys or invalid values.
        """
        allowed = {f.name for f in fields(cls)} - {"process_settings", "tls_config"}
        allowed.add("tls")

        unknown = sorted(set(data) - allowed)
        if unknown:
            raise ConfigurationError(
                f"Unknown configuration keys: {', '.join(unknown)}",
                config_key=unknown[0],
            )

        kwargs: dict[str, Any] = {
            key: value for key, value in data.items() if key not in ("tls", "logger")
        }

        if "logger" in data:
            kwargs["logger"] = logging.getLogger(str(data["logger"]))

        if "tls" in data:
            tls = data["tls"] or {}
            if not isinstance(tls, Mapping):
                raise ConfigurationError(
                    "tls must be a mapping", config_key="tls", config_value=tls
                )
            try:
                kwargs["tls_config"] = TLSConfig(**tls)
            except TypeError as e:
                raise ConfigurationError(
                    f"Invalid tls configuration: {e}", config_key="tls"
                )

        config = cls(**kwargs)
        config.validate()
        return config


def read_config_file(path: Union[str, Path]) -> dict[str, Any]:
    """Read the raw mapping from a YAML configuration file.

    An optional top-level ``rcsocket`` key may wrap the settings.

    Raises:
        ConfigurationError: If the file is unreadable or not a mapping.
    """
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except OSError as e:
        raise ConfigurationError(
            f"Cannot read configuration file: {e}", config_key="path", config_value=str(path)
        )
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Invalid YAML in configuration file: {e}", config_value=str(path)
        )

    if not isinstance(data, Mapping):
        raise ConfigurationError("Configuration root must be a mapping", config_value=str(path))

    if "rcsocket" in data:
        data = data["rcsocket"] or {}
        if not isinstance(data, Mapping):
            raise ConfigurationError("rcsocket section must be a mapping", config_value=str(path))

    return dict(data)


def load_config(path: Union[str, Path]) -> RcSocketConfig:
    """Load a connection config from a YAML file.

    Raises:
        ConfigurationError: If the file is unreadable or invalid.
    """
    return RcSocketConfig.from_dict(read_config_file(path))
