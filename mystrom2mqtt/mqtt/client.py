"""Async MQTT session wrapper with automatic reconnect."""

import asyncio
import logging
import socket
from typing import Optional, Any, Callable, Awaitable, List, Union

import aiomqtt

from ..config import MQTTConfig

logger = logging.getLogger(__name__)

# Type alias for message callback
MessageCallback = Callable[[str, bytes], Awaitable[None]]

# Called after every successful (re)connect
ConnectCallback = Callable[["MQTTClient"], Awaitable[None]]

QOS_AT_MOST_ONCE = 0


def build_client_id(base: str) -> str:
    """Append the local hostname so co-located instances stay unique."""
    try:
        hostname = socket.gethostname()
    except OSError:
        hostname = ""
    if hostname:
        return f"{base}@{hostname}"
    return base


class MQTTClient:
    """Owns the single MQTT connection of the process.

    Wraps aiomqtt with an initial connect (whose failure is fatal), an
    endless reconnect loop, and connect callbacks that are re-run after
    every successful reconnect so subscriptions survive broker restarts.
    """

    def __init__(
        self,
        config: MQTTConfig,
        client_factory: Callable[..., Any] = aiomqtt.Client,
    ):
        """Initialize the MQTT client.

        Args:
            config: MQTT configuration
            client_factory: Callable returning an aiomqtt.Client compatible object
        """
        self.config = config
        self.client_id = build_client_id(config.client_id)
        self._client_factory = client_factory
        self._client: Optional[aiomqtt.Client] = None
        self._connected = False
        self._connect_callbacks: List[ConnectCallback] = []
        self._stop_event = asyncio.Event()
        self._stats = {
            "connects": 0,
            "disconnects": 0,
            "published": 0,
        }

    @property
    def connected(self) -> bool:
        """Check if connected to MQTT broker."""
        return self._connected

    @property
    def stats(self) -> dict:
        return dict(self._stats)

    def add_connect_callback(self, callback: ConnectCallback) -> None:
        """Register a coroutine to run after every successful connect."""
        self._connect_callbacks.append(callback)

    async def connect(self) -> None:
        """Connect to the MQTT broker.

        Raises:
            MqttError: If connection fails
        """
        logger.info(
            f"Connecting to MQTT broker at {self.config.host}:{self.config.port} "
            f"as {self.client_id}"
        )

        client = self._client_factory(
            hostname=self.config.host,
            port=self.config.port,
            username=self.config.username,
            password=self.config.password,
            identifier=self.client_id,
            keepalive=self.config.keepalive,
        )
        try:
            await client.__aenter__()
        except Exception as e:
            logger.error(f"Failed to connect to MQTT broker: {e}")
            raise

        self._client = client
        self._connected = True
        self._stats["connects"] += 1
        logger.info("Connected to MQTT broker")

        await self._run_connect_callbacks()

    async def _run_connect_callbacks(self) -> None:
        for callback in self._connect_callbacks:
            try:
                await callback(self)
            except aiomqtt.MqttError as e:
                # Retried on the next reconnect only
                logger.error(f"Connect callback failed: {e}")

    async def _close_client(self) -> None:
        client, self._client = self._client, None
        self._connected = False
        if client is None:
            return
        try:
            await client.__aexit__(None, None, None)
        except Exception as e:
            logger.debug(f"Error closing MQTT client: {e}")

    async def disconnect(self) -> None:
        """Disconnect from the MQTT broker."""
        self._stop_event.set()
        if self._client:
            await self._close_client()
            logger.info("Disconnected from MQTT broker")

    async def reconnect(self) -> None:
        """Reconnect until it succeeds or disconnect() is called."""
        await self._close_client()

        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(
                    self._stop_event.wait(),
                    timeout=self.config.reconnect_interval,
                )
                return
            except asyncio.TimeoutError:
                pass

            try:
                await self.connect()
                return
            except aiomqtt.MqttError:
                logger.info(
                    f"Retrying MQTT connection in {self.config.reconnect_interval}s"
                )

    async def publish(
        self,
        topic: str,
        payload: Union[bytes, str],
        qos: int = QOS_AT_MOST_ONCE,
        retain: bool = False,
    ) -> None:
        """Publish a message to a topic.

        Safe to call from any number of tasks on the event loop.

        Args:
            topic: MQTT topic
            payload: Message payload, sent as-is
            qos: QoS level
            retain: Whether the broker should retain the message

        Raises:
            ConnectionError: If not connected
            MqttError: If the publish fails
        """
        if not self._client or not self._connected:
            raise ConnectionError("Not connected to MQTT broker")

        await self._client.publish(topic, payload=payload, qos=qos, retain=retain)
        self._stats["published"] += 1
        logger.debug(f"Published to {topic}: {payload[:100]!r}")

    async def subscribe(self, topic: str, qos: int = QOS_AT_MOST_ONCE) -> None:
        """Subscribe to a topic.

        Args:
            topic: MQTT topic pattern
            qos: QoS level

        Raises:
            ConnectionError: If not connected
            MqttError: If the subscription fails
        """
        if not self._client or not self._connected:
            raise ConnectionError("Not connected to MQTT broker")

        logger.info(f"Subscribing to {topic}")
        await self._client.subscribe(topic, qos=qos)

    async def run(self, callback: MessageCallback) -> None:
        """Process incoming messages for the lifetime of the session.

        Connection loss is handled here: the client reconnects (running the
        connect callbacks again) and message processing resumes. Only
        returns after disconnect() or cancellation.

        Args:
            callback: Async function called with (topic, payload) for each message
        """
        if not self._client or not self._connected:
            raise ConnectionError("Not connected to MQTT broker")

        logger.debug("Starting MQTT message loop")

        while not self._stop_event.is_set():
            if not self._connected:
                await self.reconnect()
                continue

            try:
                async for message in self._client.messages:
                    await self._dispatch(message, callback)
                raise aiomqtt.MqttError("Message stream ended")
            except aiomqtt.MqttError as e:
                if self._stop_event.is_set():
                    break
                self._stats["disconnects"] += 1
                logger.warning(f"MQTT connection lost: {e}")
                self._connected = False

    async def _dispatch(self, message, callback: MessageCallback) -> None:
        topic = str(message.topic)

        if isinstance(message.payload, bytes):
            payload = message.payload
        elif message.payload is None:
            payload = b""
        else:
            payload = str(message.payload).encode()

        logger.debug(f"Received message on {topic}: {payload[:100]!r}")

        try:
            await callback(topic, payload)
        except Exception as e:
            logger.error(f"Error processing message on {topic}: {e}")
