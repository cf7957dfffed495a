"""Shared fixtures: an in-memory MQTT broker and a fake myStrom switch."""

import asyncio
from types import SimpleNamespace

import aiomqtt
import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer


class FakeAiomqttClient:
    """Minimal stand-in for aiomqtt.Client bound to a FakeBroker."""

    def __init__(self, broker: "FakeBroker", **kwargs):
        self.broker = broker
        self.kwargs = kwargs
        self.closed = False
        self._queue: asyncio.Queue = asyncio.Queue()

    async def __aenter__(self):
        if self.broker.fail_connect:
            raise aiomqtt.MqttError("Connection refused")
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.closed = True

    async def publish(self, topic, payload=None, qos=0, retain=False):
        self.broker.published.append((topic, payload, qos, retain))

    async def subscribe(self, topic, qos=0):
        if self.broker.fail_subscribe:
            raise aiomqtt.MqttError("Subscribe failed")
        self.broker.subscriptions.append((topic, qos))

    @property
    def messages(self):
        return self._iterate()

    async def _iterate(self):
        while True:
            item = await self._queue.get()
            if isinstance(item, Exception):
                raise item
            yield item


class FakeBroker:
    """Records every client, publish and subscription."""

    def __init__(self):
        self.clients = []
        self.published = []
        self.subscriptions = []
        self.fail_connect = False
        self.fail_subscribe = False

    def factory(self, **kwargs) -> FakeAiomqttClient:
        client = FakeAiomqttClient(self, **kwargs)
        self.clients.append(client)
        return client

    def deliver(self, topic: str, payload: bytes = b"") -> None:
        message = SimpleNamespace(topic=topic, payload=payload)
        self.clients[-1]._queue.put_nowait(message)

    def drop_connection(self) -> None:
        self.clients[-1]._queue.put_nowait(aiomqtt.MqttError("Connection lost"))


class FakeSwitch:
    """HTTP endpoints of a myStrom switch with scriptable responses."""

    def __init__(self):
        self.requests = []
        self.report_status = 200
        self.report_body = b'{"power": 12.5, "relay": true, "temperature": 22.1}'
        self.report_delay = 0.0
        self.relay_status = 200
        self.relay_delay = 0.0
        self.server = None

    @property
    def address(self) -> str:
        return f"{self.server.host}:{self.server.port}"

    def make_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/report", self._handle_report)
        app.router.add_get("/relay", self._handle_relay)
        return app

    async def _handle_report(self, request: web.Request) -> web.StreamResponse:
        self.requests.append(("report", None))
        if self.report_delay:
            await asyncio.sleep(self.report_delay)
        return web.Response(status=self.report_status, body=self.report_body)

    async def _handle_relay(self, request: web.Request) -> web.StreamResponse:
        self.requests.append(("relay", request.query.get("state")))
        if self.relay_delay:
            await asyncio.sleep(self.relay_delay)
        return web.Response(status=self.relay_status)

    @property
    def relay_states(self):
        return [state for kind, state in self.requests if kind == "relay"]


async def _wait_until(predicate, timeout: float = 2.0) -> None:
    """Poll predicate until it holds or fail the test."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


@pytest.fixture
def broker():
    return FakeBroker()


@pytest_asyncio.fixture
async def switch():
    fake = FakeSwitch()
    async with TestServer(fake.make_app()) as server:
        fake.server = server
        yield fake


@pytest.fixture
def wait_until():
    return _wait_until
