"""Tests for the MQTT session wrapper."""

import asyncio

import aiomqtt
import pytest

from mystrom2mqtt.config import MQTTConfig
from mystrom2mqtt.devices.client import DeviceClient
from mystrom2mqtt.devices.registry import DeviceRegistry
from mystrom2mqtt.mqtt.client import MQTTClient, build_client_id
from mystrom2mqtt.mqtt.command_handler import CommandHandler


def make_client(broker, **overrides) -> MQTTClient:
    config = MQTTConfig(
        host="broker.test",
        topic_prefix="test/",
        reconnect_interval=0.01,
        **overrides,
    )
    return MQTTClient(config, client_factory=broker.factory)


async def noop(topic, payload):
    pass


class TestClientId:
    """Tests for client identifier construction."""

    def test_includes_hostname(self, monkeypatch):
        monkeypatch.setattr("socket.gethostname", lambda: "box")
        assert build_client_id("mystrom2mqtt") == "mystrom2mqtt@box"

    def test_without_hostname(self, monkeypatch):
        def fail():
            raise OSError("no hostname")

        monkeypatch.setattr("socket.gethostname", fail)
        assert build_client_id("mystrom2mqtt") == "mystrom2mqtt"


class TestConnect:
    """Tests for the initial connection."""

    @pytest.mark.asyncio
    async def test_passes_settings(self, broker):
        client = make_client(broker, username="user", password="pw")
        await client.connect()

        kwargs = broker.clients[0].kwargs
        assert kwargs["hostname"] == "broker.test"
        assert kwargs["port"] == 1883
        assert kwargs["username"] == "user"
        assert kwargs["password"] == "pw"
        assert kwargs["identifier"].startswith("mystrom2mqtt")
        assert client.connected

    @pytest.mark.asyncio
    async def test_failure_raises(self, broker):
        broker.fail_connect = True
        client = make_client(broker)

        with pytest.raises(aiomqtt.MqttError):
            await client.connect()
        assert not client.connected

    @pytest.mark.asyncio
    async def test_publish_requires_connection(self, broker):
        client = make_client(broker)

        with pytest.raises(ConnectionError):
            await client.publish("test/report/living", b"{}")

    @pytest.mark.asyncio
    async def test_subscription_failure_keeps_session(self, broker):
        """Test a failed subscription is logged and the session stays up."""
        broker.fail_subscribe = True
        client = make_client(broker)
        handler = CommandHandler(DeviceRegistry({}), DeviceClient(), "test/")
        client.add_connect_callback(handler.subscribe)

        await client.connect()

        assert client.connected
        assert broker.subscriptions == []


class TestMessageLoop:
    """Tests for message delivery."""

    @pytest.mark.asyncio
    async def test_messages_reach_callback(self, broker, wait_until):
        client = make_client(broker)
        await client.connect()
        received = []

        async def callback(topic, payload):
            received.append((topic, payload))

        task = asyncio.create_task(client.run(callback))
        broker.deliver("test/cmd/relay/living/on", b"hello")
        try:
            await wait_until(lambda: received)
        finally:
            await client.disconnect()
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        assert received == [("test/cmd/relay/living/on", b"hello")]

    @pytest.mark.asyncio
    async def test_callback_errors_do_not_stop_loop(self, broker, wait_until):
        client = make_client(broker)
        await client.connect()
        received = []

        async def callback(topic, payload):
            if payload == b"boom":
                raise RuntimeError("boom")
            received.append(payload)

        task = asyncio.create_task(client.run(callback))
        broker.deliver("t", b"boom")
        broker.deliver("t", b"ok")
        try:
            await wait_until(lambda: received)
        finally:
            await client.disconnect()
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        assert received == [b"ok"]


class TestReconnect:
    """Tests for recovery after a lost connection."""

    @pytest.mark.asyncio
    async def test_resubscribes_after_reconnect(self, broker, wait_until):
        client = make_client(broker)
        handler = CommandHandler(DeviceRegistry({}), DeviceClient(), "test/")
        client.add_connect_callback(handler.subscribe)
        await client.connect()
        assert broker.subscriptions == [("test/cmd/relay/#", 0)]

        task = asyncio.create_task(client.run(noop))
        broker.drop_connection()
        try:
            await wait_until(lambda: len(broker.subscriptions) == 2)
        finally:
            await client.disconnect()
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        assert len(broker.clients) == 2
        assert broker.clients[0].closed
        assert broker.subscriptions == [("test/cmd/relay/#", 0)] * 2
        assert client.stats["connects"] == 2
        assert client.stats["disconnects"] == 1

    @pytest.mark.asyncio
    async def test_retries_until_broker_returns(self, broker, wait_until):
        client = make_client(broker)
        await client.connect()

        task = asyncio.create_task(client.run(noop))
        broker.fail_connect = True
        broker.drop_connection()
        try:
            await wait_until(lambda: len(broker.clients) >= 3)
            assert not client.connected
            broker.fail_connect = False
            await wait_until(lambda: client.connected)
        finally:
            await client.disconnect()
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
