"""
Configuration loading from a YAML file and environment variables.

Reads (highest to lowest priority):
1. Environment variables — runtime overrides (NTFY_TOPIC, FORWARD_ALL, ...)
2. config.yaml — path from CONFIG_PATH, default "config.yaml"
3. Built-in defaults

The merged result is validated before any forwarder component is built; an
invalid configuration raises ConfigError and the process exits.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config.yaml"

_TRUE_VALUES = frozenset({"1", "t", "true"})
_FALSE_VALUES = frozenset({"0", "f", "false"})
_VALID_PRIORITIES = frozenset({"1", "2", "3", "4", "5"})


class ConfigError(ValueError):
    """Raised when the configuration cannot be read or fails validation."""


@dataclass
class NtfyConfig:
    server: str = ""
    topic: str = ""
    token: str = ""  # Bearer token
    username: str = ""  # Basic auth, used only together with password
    password: str = ""  # Basic auth, takes precedence over token
    priority: str = "3"


@dataclass
class ServerConfig:
    port: int = 8080
    health_path: str = "/health"
    metrics_path: str = "/metrics"


@dataclass
class ForwarderConfig:
    forward_all: bool = True
    capcodes: list[str] = field(default_factory=list)
    capcode_csv_path: str = "capcodelijst.csv"
    ntfy: NtfyConfig = field(default_factory=NtfyConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    log_level: str = "INFO"

    def validate(self) -> None:
        """
        Check required fields.

        Raises:
            ConfigError: On the first failing rule
        """
        if not self.forward_all and not self.capcodes:
            raise ConfigError("at least one capcode must be configured when forward_all is false")
        if not self.ntfy.server:
            raise ConfigError("ntfy server must be configured")
        if not self.ntfy.topic:
            raise ConfigError("ntfy topic must be configured")
        if self.ntfy.priority not in _VALID_PRIORITIES:
            raise ConfigError(f"ntfy priority must be 1-5, got {self.ntfy.priority!r}")
        if not 0 < self.server.port < 65536:
            raise ConfigError(f"server port must be 1-65535, got {self.server.port}")


class ConfigLoader:
    """
    Loads, merges and validates the forwarder configuration.

    Usage:
        config = ConfigLoader(os.getenv("CONFIG_PATH", "config.yaml")).load()
    """

    def __init__(self, config_path: str = DEFAULT_CONFIG_PATH) -> None:
        self.config_path = config_path

    def load(self) -> ForwarderConfig:
        """
        Load configuration from all sources.

        Raises:
            ConfigError: If the file cannot be read/parsed or validation fails
        """
        raw = self._read_yaml() if self.config_path else {}
        config = self._from_dict(raw)
        self._apply_env_overrides(config)
        config.validate()
        return config

    def _read_yaml(self) -> dict[str, Any]:
        try:
            with open(self.config_path, encoding="utf-8") as f:
                raw = yaml.safe_load(f)
        except OSError as exc:
            raise ConfigError(f"failed to read config file {self.config_path}: {exc}") from exc
        except yaml.YAMLError as exc:
            raise ConfigError(f"failed to parse config file {self.config_path}: {exc}") from exc

        if raw is None:
            return {}
        if not isinstance(raw, dict):
            raise ConfigError(f"config file {self.config_path} must contain a mapping")
        return raw

    def _from_dict(self, raw: dict[str, Any]) -> ForwarderConfig:
        config = ForwarderConfig()
        try:
            if "forward_all" in raw:
                config.forward_all = bool(raw["forward_all"])
            capcodes = raw.get("capcodes") or []
            # Unquoted capcodes load as ints (leading-zero ones as octal).
            if any(not isinstance(c, str) for c in capcodes):
                logger.warning("Non-string capcodes in config, quote them in YAML | path=%s", self.config_path)
            config.capcodes = [str(c) for c in capcodes]
            config.capcode_csv_path = str(raw.get("capcode_csv_path", config.capcode_csv_path) or "")
            if "log_level" in raw:
                config.log_level = str(raw["log_level"]).upper()

            ntfy = raw.get("ntfy") or {}
            config.ntfy = NtfyConfig(
                server=str(ntfy.get("server") or ""),
                topic=str(ntfy.get("topic") or ""),
                token=str(ntfy.get("token") or ""),
                username=str(ntfy.get("username") or ""),
                password=str(ntfy.get("password") or ""),
                priority=str(ntfy.get("priority") or "3"),
            )

            server = raw.get("server") or {}
            config.server = ServerConfig(
                port=int(server.get("port", 8080)),
                health_path=str(server.get("health_path") or "/health"),
                metrics_path=str(server.get("metrics_path") or "/metrics"),
            )
        except (AttributeError, TypeError, ValueError) as exc:
            raise ConfigError(f"invalid value in config file {self.config_path}: {exc}") from exc
        return config

    def _apply_env_overrides(self, config: ForwarderConfig) -> None:
        forward_all = _parse_bool(os.getenv("FORWARD_ALL", ""))
        if forward_all is not None:
            config.forward_all = forward_all

        env_strings = {
            "NTFY_SERVER": "server",
            "NTFY_TOPIC": "topic",
            "NTFY_TOKEN": "token",
            "NTFY_USERNAME": "username",
            "NTFY_PASSWORD": "password",
            "NTFY_PRIORITY": "priority",
        }
        for env_name, attr in env_strings.items():
            value = os.getenv(env_name)
            if value:
                setattr(config.ntfy, attr, value)

        port = os.getenv("SERVER_PORT")
        if port:
            try:
                config.server.port = int(port)
            except ValueError:
                logger.warning("Ignoring non-integer SERVER_PORT | value=%s", port)

        csv_path = os.getenv("CAPCODE_CSV_PATH")
        if csv_path:
            config.capcode_csv_path = csv_path

        log_level = os.getenv("LOG_LEVEL")
        if log_level:
            config.log_level = log_level.upper()


def _parse_bool(value: str) -> Optional[bool]:
    """Parse a boolean env value; None for empty or unrecognized input."""
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    return None
