"""Report publisher for MQTT."""

import logging

from ..config import MQTTConfig
from ..models import Device
from .client import MQTTClient, QOS_AT_MOST_ONCE

logger = logging.getLogger(__name__)


class ReportPublisher:
    """Publishes raw device reports under ``<prefix>report/<name>``.

    Reports are forwarded verbatim, at most once, and never retained.
    """

    def __init__(self, mqtt_client: MQTTClient, config: MQTTConfig):
        """Initialize the report publisher.

        Args:
            mqtt_client: Shared MQTT client
            config: MQTT configuration
        """
        self.client = mqtt_client
        self.config = config

    def report_topic(self, name: str) -> str:
        """Build the report topic for a device name."""
        return f"{self.config.topic_prefix}report/{name}"

    async def publish_report(self, device: Device, report: bytes) -> None:
        """Publish one report.

        Args:
            device: Device the report was fetched from
            report: Raw response body
        """
        topic = self.report_topic(device.name)
        await self.client.publish(
            topic,
            report,
            qos=QOS_AT_MOST_ONCE,
            retain=False,
        )
        logger.info(f"Published {device.name} report to {topic} ({len(report)} bytes)")
