"""MQTT command handler for relay control.

Commands are encoded entirely in the topic:

    {prefix}cmd/relay/{device}/{action}

The payload is logged but never interpreted.
"""

import asyncio
import logging
from typing import Dict, Optional, Set

import aiohttp
import aiomqtt

from ..devices.client import DeviceClient, DeviceError
from ..devices.registry import DeviceRegistry
from ..models import CommandResult, RelayCommand
from .client import MQTTClient, QOS_AT_MOST_ONCE

logger = logging.getLogger(__name__)


class CommandHandler:
    """Relay inbound MQTT commands to device relay endpoints.

    Each message is dispatched in its own task so a hung device cannot hold
    up the MQTT message loop. Commands to the same device are serialized
    with a per-device lock and therefore reach it in arrival order.
    """

    def __init__(
        self,
        registry: DeviceRegistry,
        client: DeviceClient,
        topic_prefix: str,
    ):
        """Initialize the command handler.

        Args:
            registry: Known devices
            client: Shared device HTTP client
            topic_prefix: MQTT topic prefix (prepended verbatim)
        """
        self._registry = registry
        self._client = client
        self._command_prefix = f"{topic_prefix}cmd/relay/"
        self._locks: Dict[str, asyncio.Lock] = {}
        self._tasks: Set[asyncio.Task] = set()
        self._stats = {
            "received": 0,
            "sent": 0,
            "failed": 0,
            "discarded": 0,
        }

    @property
    def subscription_topic(self) -> str:
        """Wildcard topic covering every device and action."""
        return f"{self._command_prefix}#"

    @property
    def stats(self) -> dict:
        return dict(self._stats)

    async def subscribe(self, mqtt: MQTTClient) -> None:
        """Subscribe to the command namespace.

        Registered as a connect callback. A failed subscription is logged
        and left for the next reconnect.
        """
        try:
            await mqtt.subscribe(self.subscription_topic, qos=QOS_AT_MOST_ONCE)
        except (aiomqtt.MqttError, ConnectionError) as e:
            logger.error(f"Subscription to {self.subscription_topic} failed: {e}")
            return
        logger.info(f"Subscribed to command topics: {self.subscription_topic}")

    def parse_topic(self, topic: str, payload: bytes = b"") -> Optional[RelayCommand]:
        """Parse a command topic.

        Args:
            topic: Full MQTT topic
            payload: Message payload, carried along for logging

        Returns:
            RelayCommand, or None if the topic is malformed
        """
        if not topic.startswith(self._command_prefix):
            logger.warning(f"Ignoring non-command topic: {topic}")
            return None

        parts = topic[len(self._command_prefix):].split("/")
        if len(parts) != 2:
            logger.warning(f"Malformed command topic {topic}: parts = {parts!r}")
            return None

        return RelayCommand(device=parts[0], action=parts[1], payload=payload)

    async def handle_message(self, topic: str, payload: bytes) -> CommandResult:
        """Handle one inbound command message to completion.

        Args:
            topic: MQTT topic (e.g. 'mystrom2mqtt/cmd/relay/living/on')
            payload: Raw payload bytes (logged only)

        Returns:
            CommandResult describing what happened
        """
        self._stats["received"] += 1
        logger.info(f"mqtt: {topic}: {payload.decode('utf-8', errors='replace')!r}")

        command = self.parse_topic(topic, payload)
        if command is None:
            self._stats["discarded"] += 1
            return CommandResult(success=False, message="Malformed command topic")

        device = self._registry.get(command.device)
        if device is None:
            logger.warning(f"Unknown switch: {command.device!r}")
            self._stats["discarded"] += 1
            return CommandResult(
                success=False,
                message=f"Unknown device: {command.device}",
                device=command.device,
                action=command.action,
            )

        lock = self._locks.setdefault(device.name, asyncio.Lock())
        async with lock:
            try:
                await self._client.set_relay(device, command.state)
            except DeviceError as e:
                logger.error(str(e))
                return self._failed(command, f"HTTP {e.status}")
            except asyncio.TimeoutError:
                logger.error(
                    f"{device.name}: relay request timed out after {self._client.relay_timeout}s"
                )
                return self._failed(command, "Timed out")
            except aiohttp.ClientError as e:
                logger.error(f"{device.name}: relay request failed: {e}")
                return self._failed(command, f"Request failed: {e}")

        self._stats["sent"] += 1
        logger.info(f"Sent relay command {command}")
        return CommandResult(
            success=True,
            message="Command sent",
            device=command.device,
            action=command.action,
        )

    def _failed(self, command: RelayCommand, message: str) -> CommandResult:
        self._stats["failed"] += 1
        return CommandResult(
            success=False,
            message=message,
            device=command.device,
            action=command.action,
        )

    async def on_message(self, topic: str, payload: bytes) -> None:
        """Message-loop callback: dispatch the command in the background."""
        task = asyncio.create_task(self.handle_message(topic, payload))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def wait_idle(self) -> None:
        """Wait for all in-flight command dispatches to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
