import asyncio
import json

import pytest
from starlette.websockets import WebSocketDisconnect, WebSocketState

from logtree.nodes.schemas import LogNode, NodesUpdatedMessage
from logtree.realtime.broadcaster import WS_1013_TRY_AGAIN_LATER, Broadcaster, Subscriber


class FakeWebSocket:
    """Just enough of Starlette's WebSocket for the subscriber pump."""

    def __init__(self, fail_on_send: bool = False):
        self.sent: list[dict] = []
        self.inbound: asyncio.Queue = asyncio.Queue()
        self.fail_on_send = fail_on_send
        self.closed_with: int | None = None
        self.application_state = WebSocketState.CONNECTED

    async def send_json(self, data):
        if self.fail_on_send:
            raise RuntimeError("connection reset")
        self.sent.append(data)

    async def receive_text(self):
        item = await self.inbound.get()
        if isinstance(item, BaseException):
            raise item
        return item

    async def close(self, code: int = 1000):
        self.closed_with = code
        self.application_state = WebSocketState.DISCONNECTED


async def _wait_for(predicate, timeout: float = 1.0):
    async def poll():
        while not predicate():
            await asyncio.sleep(0.01)

    await asyncio.wait_for(poll(), timeout)


def _update(content: str = "hello") -> NodesUpdatedMessage:
    return NodesUpdatedMessage(payload=[LogNode(content=content)])


@pytest.mark.asyncio
async def test_publish_queues_for_every_subscriber():
    broadcaster = Broadcaster(queue_size=5)
    first = broadcaster.subscribe(FakeWebSocket())
    second = broadcaster.subscribe(FakeWebSocket())

    delivered = broadcaster.publish(_update())

    assert delivered == 2
    for subscriber in (first, second):
        message = subscriber.queue.get_nowait()
        assert message["type"] == "nodes_updated"
        assert set(message["payload"][0]) == {"id", "type", "level", "content", "timestamp", "parentId"}


@pytest.mark.asyncio
async def test_publish_without_subscribers_is_noop():
    assert Broadcaster().publish(_update()) == 0


@pytest.mark.asyncio
async def test_full_queue_drops_only_that_subscriber():
    broadcaster = Broadcaster(queue_size=1)
    slow = broadcaster.subscribe(FakeWebSocket())
    fast = broadcaster.subscribe(FakeWebSocket())

    broadcaster.publish(_update("one"))
    fast.queue.get_nowait()
    delivered = broadcaster.publish(_update("two"))

    assert delivered == 1
    assert slow.dropped
    assert not fast.dropped
    assert len(broadcaster) == 1
    assert fast.queue.get_nowait()["payload"][0]["content"] == "two"


@pytest.mark.asyncio
async def test_unsubscribe_is_idempotent():
    broadcaster = Broadcaster()
    subscriber = broadcaster.subscribe(FakeWebSocket())

    broadcaster.unsubscribe(subscriber)
    broadcaster.unsubscribe(subscriber)

    assert len(broadcaster) == 0


@pytest.mark.asyncio
async def test_serve_sends_queued_messages_until_disconnect():
    websocket = FakeWebSocket()
    subscriber = Subscriber(websocket, queue_size=10)
    subscriber.offer({"type": "nodes_updated", "payload": []})
    serving = asyncio.create_task(subscriber.serve())

    await _wait_for(lambda: websocket.sent)
    websocket.inbound.put_nowait(WebSocketDisconnect(code=1000))
    await asyncio.wait_for(serving, 1.0)

    assert websocket.sent == [{"type": "nodes_updated", "payload": []}]
    assert websocket.closed_with is None


@pytest.mark.asyncio
async def test_cancelled_serve_reaps_its_pump_tasks():
    websocket = FakeWebSocket()
    subscriber = Subscriber(websocket, queue_size=10)
    before = asyncio.all_tasks()
    serving = asyncio.create_task(subscriber.serve())
    subscriber.offer({"type": "pong"})
    await _wait_for(lambda: websocket.sent)

    serving.cancel()
    with pytest.raises(asyncio.CancelledError):
        await asyncio.wait_for(serving, 1.0)

    assert asyncio.all_tasks() - before == set()


@pytest.mark.asyncio
async def test_ping_gets_pong_and_junk_is_ignored():
    websocket = FakeWebSocket()
    subscriber = Subscriber(websocket, queue_size=10)
    serving = asyncio.create_task(subscriber.serve())

    websocket.inbound.put_nowait("not json")
    websocket.inbound.put_nowait(json.dumps({"type": "hello"}))
    websocket.inbound.put_nowait(json.dumps({"type": "ping"}))
    await _wait_for(lambda: websocket.sent)
    websocket.inbound.put_nowait(WebSocketDisconnect(code=1000))
    await asyncio.wait_for(serving, 1.0)

    assert websocket.sent == [{"type": "pong"}]


@pytest.mark.asyncio
async def test_send_failure_ends_serve_quietly():
    websocket = FakeWebSocket(fail_on_send=True)
    subscriber = Subscriber(websocket, queue_size=10)
    subscriber.offer({"type": "nodes_updated", "payload": []})

    await asyncio.wait_for(subscriber.serve(), 1.0)

    assert websocket.sent == []


@pytest.mark.asyncio
async def test_dropped_subscriber_is_closed():
    websocket = FakeWebSocket()
    broadcaster = Broadcaster(queue_size=1)
    subscriber = broadcaster.subscribe(websocket)
    serving = asyncio.create_task(subscriber.serve())

    subscriber.drop()
    await asyncio.wait_for(serving, 1.0)

    assert websocket.closed_with == WS_1013_TRY_AGAIN_LATER


@pytest.mark.asyncio
async def test_close_drops_everyone():
    broadcaster = Broadcaster()
    subscribers = [broadcaster.subscribe(FakeWebSocket()) for _ in range(3)]

    broadcaster.close()

    assert len(broadcaster) == 0
    assert all(s.dropped for s in subscribers)
