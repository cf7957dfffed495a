"""End-to-end tests of the bridge against a fake broker and switch."""

import asyncio

import aiomqtt
import pytest

from mystrom2mqtt.app import MyStrom2MQTT
from mystrom2mqtt.config import AppConfig
from mystrom2mqtt.mqtt.client import MQTTClient


def make_app(broker, address: str) -> MyStrom2MQTT:
    config = AppConfig(
        mqtt={"topic_prefix": "test/", "reconnect_interval": 0.01},
        poll={"interval": 0.05, "timeout": 1.0},
        devices={"living": address},
    )
    mqtt = MQTTClient(config.mqtt, client_factory=broker.factory)
    return MyStrom2MQTT(config, mqtt_client=mqtt)


class TestBridge:
    """Tests for the running bridge."""

    @pytest.mark.asyncio
    async def test_publishes_reports_and_relays_commands(self, broker, switch, wait_until):
        app = make_app(broker, switch.address)
        task = asyncio.create_task(app.start())
        try:
            await wait_until(lambda: broker.published)
            assert broker.subscriptions == [("test/cmd/relay/#", 0)]

            broker.deliver("test/cmd/relay/living/off", b"")
            await wait_until(lambda: switch.relay_states == ["0"])
        finally:
            app.request_shutdown()
            await asyncio.wait_for(task, timeout=2.0)

        topic, payload, qos, retain = broker.published[0]
        assert topic == "test/report/living"
        assert payload == switch.report_body
        assert qos == 0
        assert retain is False
        assert not app.running
        assert app.stats["published"] >= 1
        assert app.stats["commands"]["sent"] == 1

    @pytest.mark.asyncio
    async def test_survives_broker_restart(self, broker, switch, wait_until):
        app = make_app(broker, switch.address)
        task = asyncio.create_task(app.start())
        try:
            await wait_until(lambda: app.mqtt.connected)
            broker.drop_connection()
            await wait_until(lambda: len(broker.subscriptions) == 2)

            broker.deliver("test/cmd/relay/living/on", b"")
            await wait_until(lambda: switch.relay_states == ["1"])
        finally:
            app.request_shutdown()
            await asyncio.wait_for(task, timeout=2.0)

    @pytest.mark.asyncio
    async def test_initial_connect_failure_is_fatal(self, broker, switch):
        broker.fail_connect = True
        app = make_app(broker, switch.address)

        with pytest.raises(aiomqtt.MqttError):
            await app.start()

        assert switch.requests == []
        assert not app.running
