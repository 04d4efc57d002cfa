import asyncio
import json
from typing import List, Optional

import pytest
import pytest_asyncio

from feedengine.api.realtime.models import SubscribeFrame, Topic, UnsubscribeFrame, encode_frame
from feedengine.api.realtime.service import LiveUpdateChannel
from feedengine.config.constants import ChannelState, DeliveryMode
from feedengine.integrations.push_transport import PushConnection, PushTransport

POLL_INTERVAL = 0.01


class FakeConnection(PushConnection):
    def __init__(self):
        self.sent: List[dict] = []
        self.closed = False
        self.fail_sends = False
        self._inbound: asyncio.Queue = asyncio.Queue()

    async def send(self, message: str) -> None:
        if self.fail_sends:
            raise ConnectionError("send failed")
        self.sent.append(json.loads(message))

    async def __aiter__(self):
        while True:
            message = await self._inbound.get()
            if message is None:
                return
            yield message

    async def close(self) -> None:
        self.closed = True
        self._inbound.put_nowait(None)

    def push(self, frame) -> None:
        self._inbound.put_nowait(frame if isinstance(frame, str) else json.dumps(frame))

    def drop(self) -> None:
        self._inbound.put_nowait(None)


class FakeTransport(PushTransport):
    """Hands out the given connections/errors in order, then refuses"""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.attempts = 0
        self.gate: Optional[asyncio.Event] = None

    async def connect(self, url: str) -> PushConnection:
        self.attempts += 1
        if self.gate is not None:
            await self.gate.wait()
        if not self.outcomes:
            raise ConnectionRefusedError("push endpoint unreachable")
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class RecordingPoller:
    def __init__(self):
        self.calls: List[Topic] = []

    async def __call__(self, topic: Topic):
        self.calls.append(topic)
        return {"path": topic.poll_path, "tick": len(self.calls)}


async def wait_until(predicate, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def poller():
    return RecordingPoller()


@pytest_asyncio.fixture
async def make_channel(poller):
    channels: List[LiveUpdateChannel] = []

    def factory(transport: Optional[PushTransport] = None, url: Optional[str] = "ws://push.test", **kwargs):
        kwargs.setdefault("poll_interval", POLL_INTERVAL)
        kwargs.setdefault("reconnect_base_delay", 0.001)
        kwargs.setdefault("max_reconnect_attempts", 5)
        channel = LiveUpdateChannel(url, poller=poller, transport=transport or FakeTransport(), **kwargs)
        channels.append(channel)
        return channel

    yield factory

    for channel in channels:
        await channel.close()


LIKES = Topic(data_type="likes", param="p1")


class TestFrames:
    def test_control_frames_use_wire_names(self):
        frame = SubscribeFrame(subscription_id="likes_1", data_type="likes", topic_param="p1")
        assert json.loads(encode_frame(frame)) == {
            "type": "subscribe",
            "subscriptionId": "likes_1",
            "dataType": "likes",
            "topicParam": "p1",
        }
        assert json.loads(encode_frame(UnsubscribeFrame(subscription_id="likes_1"))) == {
            "type": "unsubscribe",
            "subscriptionId": "likes_1",
        }

    def test_poll_path(self):
        assert LIKES.poll_path == "/api/realtime/likes/p1"
        assert Topic(data_type="stats").poll_path == "/api/realtime/stats"


class TestBackoff:
    def test_delay_doubles_per_attempt(self):
        channel = LiveUpdateChannel(None, poller=RecordingPoller(), reconnect_base_delay=1.0)
        assert [channel.reconnect_delay(n) for n in range(4)] == [1.0, 2.0, 4.0, 8.0]


@pytest.mark.asyncio
class TestPolling:
    async def test_missing_endpoint_degrades_immediately(self, make_channel, poller):
        channel = make_channel(url=None)
        assert channel.start() is None
        assert channel.state == ChannelState.DEGRADED_POLLING

        received = []
        await channel.subscribe(LIKES, received.append)
        await wait_until(lambda: len(received) >= 3)

        assert received[0]["path"] == "/api/realtime/likes/p1"
        assert all(topic == LIKES for topic in poller.calls)

    async def test_subscriptions_poll_after_reconnects_are_exhausted(self, make_channel):
        transport = FakeTransport()
        channel = make_channel(transport)
        received = []
        subscription_id = await channel.subscribe(LIKES, received.append)

        channel.start()
        await wait_until(lambda: channel.state == ChannelState.DEGRADED_POLLING)
        assert transport.attempts == 5

        await wait_until(lambda: len(received) >= 3)
        await asyncio.sleep(POLL_INTERVAL * 5)

        assert transport.attempts == 5
        assert channel.state == ChannelState.DEGRADED_POLLING
        assert channel.get_subscription(subscription_id).delivery_mode == DeliveryMode.POLL

    async def test_unsubscribe_stops_polling(self, make_channel):
        channel = make_channel(url=None)
        channel.start()
        received = []
        subscription_id = await channel.subscribe(LIKES, received.append)
        await wait_until(lambda: len(received) >= 1)

        task = channel.get_subscription(subscription_id).poll_task
        assert await channel.unsubscribe(subscription_id) is True
        count = len(received)
        await asyncio.sleep(POLL_INTERVAL * 5)

        assert len(received) == count
        await asyncio.gather(task, return_exceptions=True)
        assert task.cancelled()
        assert channel.get_subscription(subscription_id) is None

    async def test_unsubscribe_unknown_id(self, make_channel):
        assert await make_channel(url=None).unsubscribe("likes_missing") is False

    async def test_poller_failures_keep_polling(self):
        attempts = []

        async def flaky(topic):
            attempts.append(topic)
            if len(attempts) == 1:
                raise RuntimeError("store down")
            return {"ok": True}

        channel = LiveUpdateChannel(None, poller=flaky, poll_interval=POLL_INTERVAL)
        channel.start()
        received = []
        await channel.subscribe(LIKES, received.append)
        try:
            await wait_until(lambda: received)
        finally:
            await channel.close()

        assert received[0] == {"ok": True}
        assert len(attempts) >= 2


@pytest.mark.asyncio
class TestPush:
    async def test_open_promotes_subscriptions_to_push(self, make_channel):
        connection = FakeConnection()
        transport = FakeTransport()
        transport.gate = asyncio.Event()
        transport.outcomes.append(connection)
        channel = make_channel(transport)

        received = []
        channel.start()
        subscription_id = await channel.subscribe(LIKES, received.append)
        subscription = channel.get_subscription(subscription_id)
        assert subscription.delivery_mode == DeliveryMode.POLL

        transport.gate.set()
        await wait_until(lambda: channel.state == ChannelState.OPEN and connection.sent)

        assert subscription.delivery_mode == DeliveryMode.PUSH
        assert subscription.poll_task is None
        assert connection.sent == [
            {"type": "subscribe", "subscriptionId": subscription_id, "dataType": "likes", "topicParam": "p1"}
        ]

    async def test_updates_are_dispatched_by_subscription(self, make_channel):
        connection = FakeConnection()
        channel = make_channel(FakeTransport(connection))
        channel.start()
        await wait_until(lambda: channel.state == ChannelState.OPEN)

        likes, comments = [], []
        likes_id = await channel.subscribe(LIKES, likes.append)
        await channel.subscribe(Topic(data_type="comments", param="p1"), comments.append)

        connection.push({"type": "update", "subscriptionId": likes_id, "payload": {"count": 3}})
        connection.push({"type": "update", "subscriptionId": "likes_unknown", "payload": {"count": 9}})
        await wait_until(lambda: likes)

        assert likes == [{"count": 3}]
        assert comments == []

    async def test_malformed_frames_are_dropped(self, make_channel):
        connection = FakeConnection()
        channel = make_channel(FakeTransport(connection))
        channel.start()
        await wait_until(lambda: channel.state == ChannelState.OPEN)
        received = []
        subscription_id = await channel.subscribe(LIKES, received.append)

        connection.push("not json at all")
        connection.push({"type": "mystery", "subscriptionId": subscription_id})
        connection.push({"type": "error", "message": "rate limited"})
        connection.push({"type": "update", "subscriptionId": subscription_id, "payload": 1})
        await wait_until(lambda: received)

        assert received == [1]
        assert channel.state == ChannelState.OPEN
        assert not connection.closed

    async def test_unsubscribe_sends_control_frame(self, make_channel):
        connection = FakeConnection()
        channel = make_channel(FakeTransport(connection))
        channel.start()
        await wait_until(lambda: channel.state == ChannelState.OPEN)
        received = []
        subscription_id = await channel.subscribe(LIKES, received.append)

        await channel.unsubscribe(subscription_id)
        connection.push({"type": "update", "subscriptionId": subscription_id, "payload": 1})
        await asyncio.sleep(0.02)

        assert connection.sent[-1] == {"type": "unsubscribe", "subscriptionId": subscription_id}
        assert received == []

    async def test_reconnect_resubscribes_and_promotes_pollers(self, make_channel):
        first, second = FakeConnection(), FakeConnection()
        transport = FakeTransport(first, second)
        channel = make_channel(transport)
        channel.start()
        await wait_until(lambda: channel.state == ChannelState.OPEN)
        pushed_id = await channel.subscribe(LIKES, lambda payload: None)

        transport.gate = asyncio.Event()
        first.drop()
        await wait_until(lambda: channel.state == ChannelState.RECONNECTING and transport.attempts == 2)
        polled_id = await channel.subscribe(Topic(data_type="stats"), lambda payload: None)
        assert channel.get_subscription(polled_id).delivery_mode == DeliveryMode.POLL

        transport.gate.set()
        await wait_until(lambda: channel.state == ChannelState.OPEN and len(second.sent) == 2)

        assert first.closed
        assert {frame["subscriptionId"] for frame in second.sent} == {pushed_id, polled_id}
        assert channel.get_subscription(polled_id).delivery_mode == DeliveryMode.PUSH
        assert channel.get_subscription(polled_id).poll_task is None
        assert channel.get_connection_info()["consecutive_failures"] == 0

    async def test_push_subscriptions_fall_back_when_reconnects_fail(self, make_channel):
        connection = FakeConnection()
        channel = make_channel(FakeTransport(connection), max_reconnect_attempts=2)
        channel.start()
        await wait_until(lambda: channel.state == ChannelState.OPEN)
        received = []
        subscription_id = await channel.subscribe(LIKES, received.append)

        connection.drop()
        await wait_until(lambda: channel.state == ChannelState.DEGRADED_POLLING)
        await wait_until(lambda: len(received) >= 2)

        subscription = channel.get_subscription(subscription_id)
        assert subscription.delivery_mode == DeliveryMode.POLL
        assert subscription.poll_task is not None

    async def test_failed_subscribe_frame_polls_and_reconnects(self, make_channel):
        connection = FakeConnection()
        transport = FakeTransport(connection)
        channel = make_channel(transport)
        channel.start()
        await wait_until(lambda: channel.state == ChannelState.OPEN)
        connection.fail_sends = True

        received = []
        subscription_id = await channel.subscribe(LIKES, received.append)

        assert channel.get_subscription(subscription_id).delivery_mode == DeliveryMode.POLL
        assert connection.closed
        await wait_until(lambda: len(received) >= 2)
        await wait_until(lambda: transport.attempts >= 2)

    async def test_failed_resubscribe_on_open_keeps_polling(self, make_channel):
        connection = FakeConnection()
        connection.fail_sends = True
        channel = make_channel(FakeTransport(connection), max_reconnect_attempts=2)
        received = []
        subscription_id = await channel.subscribe(LIKES, received.append)

        channel.start()
        await wait_until(lambda: connection.closed)

        subscription = channel.get_subscription(subscription_id)
        assert subscription.delivery_mode == DeliveryMode.POLL
        assert subscription.poll_task is not None
        await wait_until(lambda: len(received) >= 2)


@pytest.mark.asyncio
class TestChannelLifecycle:
    async def test_broadcast_update_reaches_matching_subscriptions(self, make_channel):
        channel = make_channel(url=None)
        first, other_item, all_items = [], [], []

        def broken(payload):
            raise RuntimeError("render failed")

        await channel.subscribe(LIKES, broken)
        await channel.subscribe(LIKES, first.append)
        await channel.subscribe(Topic(data_type="likes", param="p2"), other_item.append)
        await channel.subscribe(Topic(data_type="likes"), all_items.append)

        delivered = channel.broadcast_update("likes", {"count": 4}, param="p1")

        assert delivered == 2
        assert first == [{"count": 4}]
        assert other_item == []
        assert all_items == []

        assert channel.broadcast_update("likes", {"count": 5}) == 4

    async def test_close_cancels_every_timer(self, make_channel):
        channel = make_channel(url=None)
        channel.start()
        ids = [await channel.subscribe(LIKES, lambda payload: None) for _ in range(3)]
        tasks = [channel.get_subscription(subscription_id).poll_task for subscription_id in ids]

        await channel.close()
        await asyncio.gather(*tasks, return_exceptions=True)

        assert all(task.cancelled() for task in tasks)
        assert channel.get_connection_info()["subscriptions"] == 0

    async def test_connection_info(self, make_channel):
        channel = make_channel(url=None)
        channel.start()
        await channel.subscribe(LIKES, lambda payload: None)

        info = channel.get_connection_info()
        assert info["state"] == "degraded_polling"
        assert info["connected"] is False
        assert info["push_endpoint_configured"] is False
        assert info["poll_subscriptions"] == 1
