"""MQTT session, report publishing and relay command handling."""

from .client import MQTTClient
from .publisher import ReportPublisher
from .command_handler import CommandHandler

__all__ = ["MQTTClient", "ReportPublisher", "CommandHandler"]
