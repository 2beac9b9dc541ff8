"""jail_exporter configuration management.

Loads configuration from jail_exporter.toml with sensible defaults. Command
line flags and environment variables take precedence over the file; see
``ExporterConfig.merged``.
"""

from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path

from jail_exporter import ExporterError

CONFIG_FILENAME = "jail_exporter.toml"

DEFAULT_LISTEN_ADDRESS = "127.0.0.1:9452"
DEFAULT_TELEMETRY_PATH = "/metrics"


class ConfigError(ExporterError):
    """Raised when the configuration file cannot be used."""

    pass


@dataclass
class WebConfig:
    """HTTP server configuration."""

    listen_address: str = DEFAULT_LISTEN_ADDRESS
    telemetry_path: str = DEFAULT_TELEMETRY_PATH
    auth_config: str | None = None  # Path to basic auth YAML


@dataclass
class OutputConfig:
    """Textfile output configuration."""

    file_path: str | None = None  # "-" for stdout; HTTP mode when unset


@dataclass
class ExporterConfig:
    """Root configuration for jail_exporter."""

    web: WebConfig = field(default_factory=WebConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    log_level: str = "INFO"

    def merged(
        self,
        listen_address: str | None = None,
        telemetry_path: str | None = None,
        auth_config: str | None = None,
        file_path: str | None = None,
    ) -> ExporterConfig:
        """Return a copy with any given (non-None) overrides applied."""
        web = replace(
            self.web,
            listen_address=listen_address or self.web.listen_address,
            telemetry_path=telemetry_path or self.web.telemetry_path,
            auth_config=auth_config or self.web.auth_config,
        )
        output = replace(self.output, file_path=file_path or self.output.file_path)
        return replace(self, web=web, output=output)


def load_config(config_path: Path | None = None) -> ExporterConfig:
    """Load configuration from jail_exporter.toml.

    Args:
        config_path: Path to config file. If None, searches current directory
                     and parent directories for jail_exporter.toml.

    Returns:
        ExporterConfig with values from file or defaults.

    Raises:
        ConfigError: If the file exists but is not valid TOML.
    """
    if config_path is None:
        config_path = _find_config_file()

    if config_path is None or not config_path.exists():
        return ExporterConfig()

    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid config file {config_path}: {e}") from e

    return _parse_config(data)


def _find_config_file() -> Path | None:
    """Search for jail_exporter.toml in current and parent directories."""
    current = Path.cwd()

    for directory in [current, *current.parents]:
        config_file = directory / CONFIG_FILENAME
        if config_file.exists():
            return config_file

    return None


def _section(data: dict, name: str) -> dict:
    """Return a TOML table, checking that it is one."""
    section = data.get(name, {})
    if not isinstance(section, dict):
        raise ConfigError(f"[{name}] must be a table")

    for key, value in section.items():
        if not isinstance(value, str):
            raise ConfigError(f"{name}.{key} must be a string")
    return section


def _parse_config(data: dict) -> ExporterConfig:
    """Parse configuration dictionary into ExporterConfig."""
    web_data = _section(data, "web")
    output_data = _section(data, "output")

    web_config = WebConfig(
        listen_address=web_data.get("listen_address", DEFAULT_LISTEN_ADDRESS),
        telemetry_path=web_data.get("telemetry_path", DEFAULT_TELEMETRY_PATH),
        auth_config=web_data.get("auth_config"),
    )

    output_config = OutputConfig(
        file_path=output_data.get("file_path"),
    )

    log_level = str(data.get("log_level", "INFO")).upper()
    if log_level not in logging.getLevelNamesMapping():
        raise ConfigError(f"Unknown log_level: {data['log_level']!r}")

    return ExporterConfig(
        web=web_config,
        output=output_config,
        log_level=log_level,
    )
