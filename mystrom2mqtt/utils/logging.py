"""Logging setup for the bridge.

Every poll cycle logs once per device, which adds up on a large fleet, so
the per-cycle loggers get their own level independent of the rest of the
application.
"""

import logging
import sys
from typing import List

from ..config import LoggingConfig

# Loggers that emit one line per device per poll cycle
POLL_LOGGERS = (
    "mystrom2mqtt.devices.poller",
    "mystrom2mqtt.mqtt.publisher",
)

LIBRARY_LOGGERS = (
    "asyncio",
    "aiomqtt",
    "aiohttp",
)


def _level(name: str) -> int:
    return getattr(logging, name.upper(), logging.INFO)


def _handlers(config: LoggingConfig) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if config.file:
        config.file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(config.file))
    return handlers


def setup_logging(config: LoggingConfig) -> None:
    """Install stdout (and optional file) handlers on the root logger.

    Replaces any handlers already installed, so calling it twice is safe.
    """
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(config.format)
    for handler in _handlers(config):
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(_level(config.level))

    for name in POLL_LOGGERS:
        logging.getLogger(name).setLevel(_level(config.poll_level))
    for name in LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(_level(config.library_level))

    logging.getLogger(__name__).info(
        f"Logging configured: level={config.level} poll={config.poll_level}"
        + (f" file={config.file}" if config.file else "")
    )
