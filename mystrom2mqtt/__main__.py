"""Entry point for running mystrom2mqtt as a module.

Usage:
    python -m mystrom2mqtt                    # Use env vars or defaults
    python -m mystrom2mqtt -c /path/to/config.yaml
    python -m mystrom2mqtt --help
"""

import argparse
import asyncio
import sys
from pathlib import Path

import aiomqtt

from . import __version__
from .app import run_app
from .config import create_default_config, print_env_help

DEFAULT_CONFIG_PATHS = [
    "/etc/mystrom2mqtt/config.yaml",
    "/config/config.yaml",  # Docker default
    "config.yaml",
]


def main() -> int:
    """Main entry point.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    parser = argparse.ArgumentParser(
        prog="mystrom2mqtt",
        description="myStrom switch to MQTT bridge",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Environment variables (no config file needed):
  MQTT_HOST=192.168.1.100 DEVICES=living=myStrom-Switch-72AB38 mystrom2mqtt

  # Config file:
  mystrom2mqtt -c /etc/mystrom2mqtt/config.yaml
  mystrom2mqtt --generate-config > config.yaml
        """,
    )

    parser.add_argument(
        "-c", "--config",
        default=None,
        help="Path to configuration file (optional if using env vars)",
    )
    parser.add_argument(
        "-v", "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--generate-config",
        action="store_true",
        help="Print default configuration and exit",
    )
    parser.add_argument(
        "--env-help",
        action="store_true",
        help="Print environment variable help and exit",
    )

    args = parser.parse_args()

    if args.generate_config:
        print(create_default_config())
        return 0

    if args.env_help:
        print(print_env_help())
        return 0

    config_path = args.config
    if config_path and not Path(config_path).exists():
        print(f"Error: Configuration file not found: {config_path}", file=sys.stderr)
        return 1

    if not config_path:
        for path in DEFAULT_CONFIG_PATHS:
            if Path(path).exists():
                config_path = path
                break

    if config_path:
        print(f"Using configuration file: {config_path}")
    else:
        print("Using environment variable configuration")

    try:
        asyncio.run(run_app(config_path))
        return 0
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 0
    except aiomqtt.MqttError as e:
        print(f"Error: MQTT connection failed: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
