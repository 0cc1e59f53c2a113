"""Tests for the MQTT adapter.

The fake paho client never talks to a network: each test plays the broker by
calling ``ack``, ``drop`` and ``deliver``, which fire the same callbacks paho
fires from its network thread.
"""

import asyncio
import logging
from types import SimpleNamespace

import paho.mqtt.client as mqtt
import pytest
from paho.mqtt.packettypes import PacketTypes
from paho.mqtt.reasoncodes import ReasonCode

from rcswitch_mqtt.adapters import MQTTClient, MQTTConnectionError
from rcswitch_mqtt.config import MqttConfig


class FakePaho:
    def __init__(self, callback_api_version, client_id):
        self.callback_api_version = callback_api_version
        self.client_id = client_id
        self.credentials = None
        self.endpoint = None
        self.loop_running = False
        self.disconnect_requested = False
        self.publish_rc = mqtt.MQTT_ERR_SUCCESS
        self.subscribe_rc = mqtt.MQTT_ERR_SUCCESS
        self.published: list[tuple[str, bytes, int, bool]] = []
        self.subscriptions: list[tuple[str, int]] = []

        self.on_connect = None
        self.on_disconnect = None
        self.on_message = None

    def enable_logger(self, logger):
        self.logger = logger

    def username_pw_set(self, username, password=None):
        self.credentials = (username, password)

    def connect_async(self, host, port, keepalive):
        self.endpoint = (host, port, keepalive)

    def loop_start(self):
        self.loop_running = True

    def loop_stop(self):
        self.loop_running = False

    def disconnect(self):
        self.disconnect_requested = True
        self.drop(0)

    def publish(self, topic, payload, qos=0, retain=False):
        self.published.append((topic, payload, qos, retain))
        return SimpleNamespace(rc=self.publish_rc)

    def subscribe(self, topic, qos=0):
        self.subscriptions.append((topic, qos))
        return self.subscribe_rc, 1

    # broker side
    def ack(self, reason_code=0):
        self.on_connect(self, None, None, reason_code, None)

    def drop(self, reason_code=0):
        self.on_disconnect(self, None, None, reason_code, None)

    def deliver(self, topic, payload):
        self.on_message(self, None, SimpleNamespace(topic=topic, payload=payload))


@pytest.fixture
def paho(monkeypatch) -> list:
    created: list[FakePaho] = []

    def factory(*args, **kwargs):
        client = FakePaho(*args, **kwargs)
        created.append(client)
        return client

    monkeypatch.setattr("rcswitch_mqtt.adapters.mqtt.mqtt.Client", factory)
    return created


def _config(**overrides) -> MqttConfig:
    return MqttConfig(broker_host="broker.local", **overrides)


async def _connect(client: MQTTClient, paho: list, reason_code=0) -> FakePaho:
    pending = asyncio.create_task(client.connect(timeout=1.0))
    await asyncio.sleep(0)
    paho[-1].ack(reason_code)
    await pending
    return paho[-1]


async def _settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_connect_returns_only_after_connack(paho):
    client = MQTTClient(
        _config(broker_port=1884, username="bridge", password="secret", keepalive=45),
        client_id="rcswitch-mqtt-42",
    )

    pending = asyncio.create_task(client.connect(timeout=1.0))
    await _settle()
    assert not pending.done()

    fake = paho[-1]
    assert fake.loop_running
    assert fake.endpoint == ("broker.local", 1884, 45)
    assert fake.credentials == ("bridge", "secret")
    assert fake.client_id == "rcswitch-mqtt-42"
    assert fake.callback_api_version is mqtt.CallbackAPIVersion.VERSION2

    fake.ack(0)
    await asyncio.wait_for(pending, timeout=1.0)

    client.subscribe("home/rf/cmd/send", qos=1)
    assert fake.subscriptions == [("home/rf/cmd/send", 1)]


@pytest.mark.asyncio
async def test_anonymous_session_sets_no_credentials(paho):
    fake = await _connect(MQTTClient(_config(), client_id="rf"), paho)

    assert fake.credentials is None


@pytest.mark.asyncio
async def test_refused_connack_raises_and_stops_network_loop(paho):
    client = MQTTClient(_config(), client_id="rf")
    refused = ReasonCode(PacketTypes.CONNACK, "Not authorized")

    with pytest.raises(MQTTConnectionError, match="rc=135"):
        await _connect(client, paho, refused)

    assert not paho[-1].loop_running
    with pytest.raises(MQTTConnectionError):
        client.publish("home/rf/ready", b"{}")


@pytest.mark.asyncio
async def test_missing_connack_times_out(paho):
    client = MQTTClient(_config(), client_id="rf")

    with pytest.raises(MQTTConnectionError, match="broker.local"):
        await client.connect(timeout=0.05)

    assert not paho[-1].loop_running


@pytest.mark.asyncio
async def test_every_acknowledged_connection_reaches_listeners(paho):
    client = MQTTClient(_config(), client_id="rf")
    connects: list[int] = []
    disconnects: list[int] = []
    client.register_connect_handler(connects.append)
    client.register_disconnect_handler(disconnects.append)

    fake = await _connect(client, paho)
    assert connects == [0]

    fake.drop(7)
    await _settle()
    assert disconnects == [7]

    fake.ack(ReasonCode(PacketTypes.CONNACK, "Success"))
    await _settle()
    assert connects == [0, 0]

    await client.disconnect()
    assert disconnects == [7, 0]


@pytest.mark.asyncio
async def test_refused_reconnect_is_not_reported_as_connected(paho):
    client = MQTTClient(_config(), client_id="rf")
    connects: list[int] = []
    client.register_connect_handler(connects.append)

    fake = await _connect(client, paho)
    fake.drop(7)
    fake.ack(5)
    await _settle()

    assert connects == [0]


@pytest.mark.asyncio
async def test_disconnect_waits_for_broker_then_stops_loop(paho):
    client = MQTTClient(_config(), client_id="rf")
    fake = await _connect(client, paho)

    await client.disconnect()
    await client.disconnect()

    assert fake.disconnect_requested
    assert not fake.loop_running
    with pytest.raises(MQTTConnectionError):
        client.subscribe("home/rf/cmd/ping")


@pytest.mark.asyncio
async def test_messages_are_handled_on_the_event_loop(paho):
    client = MQTTClient(_config(), client_id="rf")
    received: asyncio.Queue = asyncio.Queue()

    async def handler(topic: str, payload: bytes) -> None:
        await received.put((topic, payload, asyncio.get_running_loop()))

    client.set_message_handler(handler)
    fake = await _connect(client, paho)
    fake.deliver("home/rf/cmd/ping", b"")

    topic, payload, loop = await asyncio.wait_for(received.get(), timeout=1.0)
    assert (topic, payload) == ("home/rf/cmd/ping", b"")
    assert loop is asyncio.get_running_loop()


@pytest.mark.asyncio
async def test_failing_message_handler_is_logged(paho, caplog):
    caplog.set_level(logging.ERROR, logger="rcswitch_mqtt.adapters.mqtt")
    client = MQTTClient(_config(), client_id="rf")

    async def handler(topic: str, payload: bytes) -> None:
        raise RecursionError("maximum recursion depth exceeded")

    client.set_message_handler(handler)
    fake = await _connect(client, paho)
    fake.deliver("home/rf/cmd/send", b"[[[")

    for _ in range(20):
        if caplog.records:
            break
        await asyncio.sleep(0)

    assert len(caplog.records) == 1
    record = caplog.records[0]
    assert "home/rf/cmd/send" in record.getMessage()
    assert isinstance(record.exc_info[1], RecursionError)


@pytest.mark.asyncio
async def test_messages_without_handler_are_dropped(paho):
    client = MQTTClient(_config(), client_id="rf")
    calls: list[str] = []

    async def handler(topic: str, payload: bytes) -> None:
        calls.append(topic)

    client.set_message_handler(handler)
    fake = await _connect(client, paho)
    client.set_message_handler(None)
    fake.deliver("home/rf/cmd/ping", b"")
    await _settle()

    assert calls == []


@pytest.mark.asyncio
async def test_publish_forwards_qos_and_retain(paho):
    client = MQTTClient(_config(), client_id="rf")
    fake = await _connect(client, paho)

    client.publish("home/rf/ready", b'{"ts":1}', qos=1, retain=True)

    assert fake.published == [("home/rf/ready", b'{"ts":1}', 1, True)]


@pytest.mark.asyncio
async def test_paho_error_codes_raise(paho):
    client = MQTTClient(_config(), client_id="rf")
    fake = await _connect(client, paho)
    fake.publish_rc = mqtt.MQTT_ERR_NO_CONN
    fake.subscribe_rc = mqtt.MQTT_ERR_NO_CONN

    with pytest.raises(MQTTConnectionError, match="home/rf/pong"):
        client.publish("home/rf/pong", b"{}")
    with pytest.raises(MQTTConnectionError, match="home/rf/cmd/send"):
        client.subscribe("home/rf/cmd/send")


def test_publish_before_connect_raises():
    client = MQTTClient(_config(), client_id="rf")

    with pytest.raises(MQTTConnectionError):
        client.publish("home/rf/ready", b"{}")
