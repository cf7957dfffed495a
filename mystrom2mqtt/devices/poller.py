"""Per-device report polling."""

import asyncio
import logging
from typing import List

import aiohttp
import aiomqtt

from ..models import Device
from ..mqtt.publisher import ReportPublisher
from .client import DeviceClient, DeviceError

logger = logging.getLogger(__name__)


class ReportPoller:
    """Fetches a device's /report on a fixed interval and republishes it.

    One poller runs per registered device. Cycles are independent: a failed
    fetch or publish is logged and the next tick simply tries again.
    """

    def __init__(
        self,
        device: Device,
        client: DeviceClient,
        publisher: ReportPublisher,
        interval: float = 30.0,
    ):
        """Initialize the poller.

        Args:
            device: Device to poll
            client: Shared device HTTP client
            publisher: Shared report publisher
            interval: Seconds between poll starts
        """
        self.device = device
        self.client = client
        self.publisher = publisher
        self.interval = interval
        self._stop_event = asyncio.Event()
        self._stats = {
            "polls": 0,
            "published": 0,
            "failed": 0,
        }

    @property
    def stats(self) -> dict:
        return dict(self._stats)

    async def poll_and_publish(self) -> bool:
        """Run one fetch-publish cycle.

        Returns:
            True if a report was published
        """
        self._stats["polls"] += 1
        name = self.device.name

        try:
            report = await self.client.fetch_report(self.device)
        except DeviceError as e:
            logger.warning(str(e))
            self._stats["failed"] += 1
            return False
        except asyncio.TimeoutError:
            logger.warning(
                f"{name}: GET {self.device.report_url} timed out after {self.client.report_timeout}s"
            )
            self._stats["failed"] += 1
            return False
        except aiohttp.ClientError as e:
            logger.warning(f"{name}: GET {self.device.report_url} failed: {e}")
            self._stats["failed"] += 1
            return False

        try:
            await self.publisher.publish_report(self.device, report)
        except (aiomqtt.MqttError, ConnectionError) as e:
            logger.warning(f"{name}: failed to publish report: {e}")
            self._stats["failed"] += 1
            return False

        self._stats["published"] += 1
        return True

    async def run(self) -> None:
        """Poll forever at a fixed rate until stop() is called."""
        loop = asyncio.get_running_loop()
        next_tick = loop.time()

        logger.info(
            f"Polling {self.device.name} ({self.device.address}) every {self.interval}s"
        )

        while not self._stop_event.is_set():
            try:
                await self.poll_and_publish()
            except Exception as e:
                logger.error(f"{self.device.name}: poll error: {e}", exc_info=True)
                self._stats["failed"] += 1

            # Fixed rate: a slow cycle shortens the following wait
            next_tick += self.interval
            delay = next_tick - loop.time()
            if delay < 0:
                # Missed ticks are skipped rather than bunched up
                next_tick = loop.time()
                delay = 0

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
                break
            except asyncio.TimeoutError:
                continue

    def stop(self) -> None:
        """Ask run() to return after the current cycle."""
        self._stop_event.set()


def start_pollers(pollers) -> List[asyncio.Task]:
    """Start one task per poller."""
    return [
        asyncio.create_task(poller.run(), name=f"poll-{poller.device.name}")
        for poller in pollers
    ]
