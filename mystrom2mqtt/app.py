"""Main application orchestrator for mystrom2mqtt."""

import asyncio
import logging
import signal
from datetime import datetime
from typing import List, Optional, Union

from .config import AppConfig, get_config
from .devices.client import DeviceClient
from .devices.poller import ReportPoller, start_pollers
from .devices.registry import DeviceRegistry
from .mqtt.client import MQTTClient
from .mqtt.command_handler import CommandHandler
from .mqtt.publisher import ReportPublisher
from .utils.logging import setup_logging

logger = logging.getLogger(__name__)


class MyStrom2MQTT:
    """Main application class.

    Connects to the broker, starts one report poller per device and relays
    inbound relay commands until a shutdown signal arrives.
    """

    def __init__(
        self,
        config: Union[AppConfig, str, None] = None,
        mqtt_client: Optional[MQTTClient] = None,
        device_client: Optional[DeviceClient] = None,
    ):
        """Initialize the application.

        Args:
            config: AppConfig instance, path to YAML config file, or None for env/defaults
            mqtt_client: Optional pre-built MQTT client
            device_client: Optional pre-built device HTTP client
        """
        if isinstance(config, AppConfig):
            self.config = config
        elif isinstance(config, str):
            self.config = get_config(config)
        else:
            self.config = get_config()

        self.running = False
        self._shutdown_event = asyncio.Event()

        self.registry = DeviceRegistry(self.config.devices)
        self.devices = device_client or DeviceClient(
            report_timeout=self.config.poll.timeout,
            relay_timeout=self.config.relay.timeout,
        )
        self.mqtt = mqtt_client or MQTTClient(self.config.mqtt)
        self.publisher = ReportPublisher(self.mqtt, self.config.mqtt)
        self.command_handler = CommandHandler(
            self.registry,
            self.devices,
            self.config.mqtt.topic_prefix,
        )
        self.pollers: List[ReportPoller] = [
            ReportPoller(device, self.devices, self.publisher, self.config.poll.interval)
            for device in self.registry
        ]
        self._tasks: List[asyncio.Task] = []
        self._start_time: Optional[datetime] = None

    async def start(self) -> None:
        """Start the application and run until shutdown.

        Raises:
            MqttError: If the initial MQTT connection fails
        """
        logger.info("Starting mystrom2mqtt")
        self._start_time = datetime.now()
        self.running = True

        self.mqtt.add_connect_callback(self.command_handler.subscribe)

        try:
            await self.mqtt.connect()

            self._tasks = start_pollers(self.pollers)
            self._tasks.append(
                asyncio.create_task(
                    self.mqtt.run(self.command_handler.on_message),
                    name="mqtt-messages",
                )
            )
            logger.info(
                f"Bridging {len(self.registry)} devices "
                f"(poll interval={self.config.poll.interval}s)"
            )

            await self._shutdown_event.wait()

        except asyncio.CancelledError:
            logger.info("Application cancelled")
        except Exception as e:
            logger.error(f"Application error: {e}")
            raise
        finally:
            await self.stop()

    def request_shutdown(self) -> None:
        """Ask start() to return."""
        self._shutdown_event.set()

    async def stop(self) -> None:
        """Stop the application gracefully."""
        if not self.running:
            return
        logger.info("Stopping mystrom2mqtt")
        self.running = False
        self._shutdown_event.set()

        for poller in self.pollers:
            poller.stop()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

        await self.command_handler.wait_idle()

        try:
            await self.mqtt.disconnect()
        except Exception as e:
            logger.error(f"Error disconnecting MQTT: {e}")

        await self.devices.close()

        stats = self.stats
        logger.info(
            f"Statistics: polls={stats['polls']}, "
            f"published={stats['published']}, "
            f"failed_polls={stats['failed_polls']}, "
            f"commands={stats['commands']}"
        )
        logger.info("mystrom2mqtt stopped")

    def setup_signal_handlers(self) -> None:
        """Set up signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()

        def signal_handler(sig):
            logger.info(f"Received signal {sig.name}, initiating shutdown")
            self._shutdown_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, lambda s=sig: signal_handler(s))

    @property
    def stats(self) -> dict:
        """Get application statistics."""
        poller_stats = [p.stats for p in self.pollers]
        return {
            "polls": sum(s["polls"] for s in poller_stats),
            "published": sum(s["published"] for s in poller_stats),
            "failed_polls": sum(s["failed"] for s in poller_stats),
            "commands": self.command_handler.stats,
            "mqtt": self.mqtt.stats,
            "uptime": (
                str(datetime.now() - self._start_time)
                if self._start_time
                else None
            ),
        }


async def run_app(config: Union[AppConfig, str, None] = None) -> None:
    """Run the application.

    Args:
        config: AppConfig instance, path to config file, or None for env/defaults
    """
    app = MyStrom2MQTT(config)

    setup_logging(app.config.logging)
    app.setup_signal_handlers()

    await app.start()
