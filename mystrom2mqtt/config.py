"""Configuration management with Pydantic validation.

Supports three configuration sources (in priority order):
1. YAML config file (for traditional deployments)
2. Environment variables (for Docker)
3. Default values
"""

import os
from pathlib import Path
from typing import Dict, Optional, Literal
import yaml
from pydantic import BaseModel, Field, field_validator


# The fleet this bridge was originally written for.
DEFAULT_DEVICES = {
    "living": "myStrom-Switch-72AB38",
    "automation": "myStrom-Switch-A48E4C",
    "lea": "myStrom-Switch-72B600",
    "monitor": "myStrom-Switch-A46FD0",
    "midna": "myStrom-Switch-E33414",
    "pacna": "myStrom-Switch-A4849C",
    "portabel": "myStrom-Switch-7D6FDC",
    "solar": "myStrom-Switch-943DAC",
    "basislagercam": "10.11.0.109",
}


class MQTTConfig(BaseModel):
    """MQTT broker configuration."""

    host: str = Field(
        default="localhost",
        description="MQTT broker hostname or IP"
    )
    port: int = Field(
        default=1883,
        ge=1,
        le=65535,
        description="MQTT broker port"
    )
    username: Optional[str] = Field(
        default=None,
        description="MQTT username (optional)"
    )
    password: Optional[str] = Field(
        default=None,
        description="MQTT password (optional)"
    )
    client_id: str = Field(
        default="mystrom2mqtt",
        description="MQTT client identifier (hostname is appended)"
    )
    topic_prefix: str = Field(
        default="mystrom2mqtt/",
        description="Topic prefix, prepended verbatim to every topic"
    )
    reconnect_interval: float = Field(
        default=5.0,
        gt=0,
        description="Seconds to wait between reconnect attempts"
    )
    keepalive: int = Field(
        default=60,
        ge=5,
        description="MQTT keepalive in seconds"
    )

    @field_validator("username", "password", mode="before")
    @classmethod
    def empty_str_to_none(cls, v):
        """Convert empty strings to None."""
        if v == "":
            return None
        return v


class PollConfig(BaseModel):
    """Report polling configuration."""

    interval: float = Field(
        default=30.0,
        gt=0,
        description="Polling interval in seconds"
    )
    timeout: float = Field(
        default=5.0,
        gt=0,
        description="HTTP timeout for /report in seconds"
    )


class RelayConfig(BaseModel):
    """Relay command configuration."""

    timeout: float = Field(
        default=10.0,
        gt=0,
        description="HTTP timeout for /relay in seconds"
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level"
    )
    poll_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Level for the per-device poll and publish loggers"
    )
    library_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="WARNING",
        description="Level for aiomqtt, aiohttp and asyncio"
    )
    file: Optional[Path] = Field(
        default=None,
        description="Log file path (optional)"
    )
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log message format"
    )


class AppConfig(BaseModel):
    """Complete application configuration."""

    mqtt: MQTTConfig = Field(
        default_factory=MQTTConfig,
        description="MQTT broker settings"
    )
    poll: PollConfig = Field(
        default_factory=PollConfig,
        description="Report polling settings"
    )
    relay: RelayConfig = Field(
        default_factory=RelayConfig,
        description="Relay command settings"
    )
    devices: Dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_DEVICES),
        description="Device name to hostname/IP mapping"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig,
        description="Logging settings"
    )

    @field_validator("devices")
    @classmethod
    def validate_devices(cls, v: Dict[str, str]) -> Dict[str, str]:
        """Device names must be usable as a single MQTT topic level."""
        for name, address in v.items():
            if not name or any(c in name for c in "/+#"):
                raise ValueError(f"Invalid device name: {name!r}")
            if not address:
                raise ValueError(f"Missing address for device {name!r}")
        return v


def parse_devices(value: str) -> Dict[str, str]:
    """Parse a ``name=address,name=address`` device list."""
    devices = {}
    for entry in value.split(","):
        entry = entry.strip()
        if not entry:
            continue
        name, sep, address = entry.partition("=")
        if not sep:
            raise ValueError(f"Invalid device entry (expected name=address): {entry!r}")
        devices[name.strip()] = address.strip()
    return devices


# Environment variable mapping
ENV_MAPPING = {
    # MQTT
    "MQTT_HOST": ("mqtt", "host"),
    "MQTT_PORT": ("mqtt", "port", int),
    "MQTT_USERNAME": ("mqtt", "username"),
    "MQTT_PASSWORD": ("mqtt", "password"),
    "MQTT_CLIENT_ID": ("mqtt", "client_id"),
    "MQTT_TOPIC_PREFIX": ("mqtt", "topic_prefix"),
    "MQTT_RECONNECT_INTERVAL": ("mqtt", "reconnect_interval", float),

    # Polling
    "POLL_INTERVAL": ("poll", "interval", float),
    "POLL_TIMEOUT": ("poll", "timeout", float),

    # Relay
    "RELAY_TIMEOUT": ("relay", "timeout", float),

    # Logging
    "LOG_LEVEL": ("logging", "level"),
    "LOG_POLL_LEVEL": ("logging", "poll_level"),
}


def _get_env_value(env_var: str, mapping: tuple):
    """Get environment variable value with optional type conversion."""
    value = os.environ.get(env_var)
    if value is None:
        return None

    # Apply type conversion if specified
    if len(mapping) > 2:
        converter = mapping[2]
        try:
            return converter(value)
        except (ValueError, TypeError):
            return value
    return value


def load_config_from_env() -> AppConfig:
    """Load configuration from environment variables.

    Returns:
        AppConfig with values from environment (or defaults)
    """
    config_dict = {
        "mqtt": {},
        "poll": {},
        "relay": {},
        "logging": {},
    }

    for env_var, mapping in ENV_MAPPING.items():
        value = _get_env_value(env_var, mapping)
        if value is not None:
            section = mapping[0]
            key = mapping[1]
            config_dict[section][key] = value

    devices = os.environ.get("DEVICES")
    if devices:
        config_dict["devices"] = parse_devices(devices)

    return AppConfig(**config_dict)


def load_config(config_path: str) -> AppConfig:
    """Load configuration from a YAML file.

    Args:
        config_path: Path to the YAML configuration file

    Returns:
        Validated AppConfig instance

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config validation fails
    """
    path = Path(config_path)

    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(path, "r") as f:
        raw_config = yaml.safe_load(f) or {}

    # Support environment variable substitution
    raw_config = _substitute_env_vars(raw_config)

    return AppConfig(**raw_config)


def get_config(config_path: Optional[str] = None) -> AppConfig:
    """Get configuration from config file or environment variables.

    Priority:
    1. Config file (if path provided and file exists)
    2. Environment variables
    3. Default values

    Args:
        config_path: Optional path to YAML config file

    Returns:
        Validated AppConfig instance
    """
    if config_path:
        path = Path(config_path)
        if path.exists():
            return load_config(config_path)

    return load_config_from_env()


def _substitute_env_vars(config):
    """Recursively substitute environment variables in config values.

    Environment variables are referenced as ${VAR_NAME} or $VAR_NAME.
    """
    if isinstance(config, dict):
        return {k: _substitute_env_vars(v) for k, v in config.items()}
    elif isinstance(config, list):
        return [_substitute_env_vars(item) for item in config]
    elif isinstance(config, str):
        # Handle ${VAR_NAME} format
        if config.startswith("${") and config.endswith("}"):
            var_name = config[2:-1]
            return os.environ.get(var_name, config)
        # Handle $VAR_NAME format
        elif config.startswith("$") and not config.startswith("${"):
            var_name = config[1:]
            return os.environ.get(var_name, config)
        return config
    else:
        return config


def create_default_config() -> str:
    """Generate default configuration as YAML string."""
    config = AppConfig()
    return yaml.dump(
        config.model_dump(mode="json", exclude_none=True),
        default_flow_style=False,
        sort_keys=False,
    )


def print_env_help() -> str:
    """Generate help text for environment variables."""
    lines = [
        "Environment Variables:",
        "",
        "  MQTT:",
        "    MQTT_HOST               Broker hostname/IP (default: localhost)",
        "    MQTT_PORT               Broker port (default: 1883)",
        "    MQTT_USERNAME           Username (optional)",
        "    MQTT_PASSWORD           Password (optional)",
        "    MQTT_CLIENT_ID          Client ID, @hostname is appended (default: mystrom2mqtt)",
        "    MQTT_TOPIC_PREFIX       Topic prefix (default: mystrom2mqtt/)",
        "    MQTT_RECONNECT_INTERVAL Seconds between reconnect attempts (default: 5)",
        "",
        "  Devices:",
        "    DEVICES                 name=address pairs, comma separated",
        "                            (e.g. living=myStrom-Switch-72AB38,lab=10.0.0.7)",
        "",
        "  Polling:",
        "    POLL_INTERVAL           Report poll interval seconds (default: 30)",
        "    POLL_TIMEOUT            Report request timeout seconds (default: 5)",
        "    RELAY_TIMEOUT           Relay request timeout seconds (default: 10)",
        "",
        "  Logging:",
        "    LOG_LEVEL               DEBUG, INFO, WARNING, ERROR (default: INFO)",
        "    LOG_POLL_LEVEL          Level of per-device poll messages (default: INFO)",
    ]
    return "\n".join(lines)
