"""Fan-out of tree changes to connected WebSocket clients.

Publishing never waits on a client. Each subscriber has a bounded outbound
queue drained by its own sender task; a client that falls behind far enough to
fill its queue, or whose socket errors, is dropped without affecting anyone
else.
"""

import asyncio
import json
import uuid
from typing import Any

import structlog
from pydantic import BaseModel
from starlette.websockets import WebSocket, WebSocketDisconnect, WebSocketState

logger = structlog.get_logger()

WS_1013_TRY_AGAIN_LATER = 1013


class Subscriber:
    def __init__(self, websocket: WebSocket, queue_size: int):
        self.id = str(uuid.uuid4())
        self.websocket = websocket
        self.queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=queue_size)
        self._dropped = asyncio.Event()

    @property
    def dropped(self) -> bool:
        return self._dropped.is_set()

    def offer(self, message: dict[str, Any]) -> bool:
        """Queue ``message`` without blocking. False means the queue is full."""
        try:
            self.queue.put_nowait(message)
        except asyncio.QueueFull:
            return False
        return True

    def drop(self) -> None:
        self._dropped.set()

    async def serve(self) -> None:
        """Pump queued messages out and inbound frames in until either side ends."""
        sender = asyncio.create_task(self._send_loop())
        receiver = asyncio.create_task(self._receive_loop())
        dropped = asyncio.create_task(self._dropped.wait())
        tasks = {sender, receiver, dropped}
        try:
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.wait(tasks)

        for task in done:
            if task is dropped or task.cancelled():
                continue
            exc = task.exception()
            if exc is None or isinstance(exc, WebSocketDisconnect):
                continue
            logger.warning("broadcast_failed", subscriber_id=self.id, error=str(exc))

        if self.dropped:
            await self._close(WS_1013_TRY_AGAIN_LATER)

    async def _send_loop(self) -> None:
        while True:
            message = await self.queue.get()
            await self.websocket.send_json(message)

    async def _receive_loop(self) -> None:
        while True:
            text = await self.websocket.receive_text()
            try:
                data = json.loads(text)
            except json.JSONDecodeError:
                logger.debug("client_message_ignored", subscriber_id=self.id, reason="invalid_json")
                continue
            if isinstance(data, dict) and data.get("type") == "ping":
                self.offer({"type": "pong"})

    async def _close(self, code: int) -> None:
        if self.websocket.application_state == WebSocketState.DISCONNECTED:
            return
        try:
            await self.websocket.close(code=code)
        except (RuntimeError, WebSocketDisconnect) as exc:
            logger.debug("subscriber_close_failed", subscriber_id=self.id, error=str(exc))


class Broadcaster:
    def __init__(self, queue_size: int = 100):
        self.queue_size = queue_size
        self._subscribers: dict[str, Subscriber] = {}

    def __len__(self) -> int:
        return len(self._subscribers)

    def subscribe(self, websocket: WebSocket) -> Subscriber:
        subscriber = Subscriber(websocket, self.queue_size)
        self._subscribers[subscriber.id] = subscriber
        logger.info("subscriber_connected", subscriber_id=subscriber.id, subscribers=len(self))
        return subscriber

    def unsubscribe(self, subscriber: Subscriber) -> None:
        if self._subscribers.pop(subscriber.id, None) is not None:
            logger.info("subscriber_disconnected", subscriber_id=subscriber.id, subscribers=len(self))

    def publish(self, message: BaseModel) -> int:
        """Queue ``message`` for every subscriber; returns how many accepted it."""
        data = message.model_dump(mode="json", by_alias=True)
        delivered = 0
        for subscriber in list(self._subscribers.values()):
            if subscriber.offer(data):
                delivered += 1
                continue
            logger.warning(
                "subscriber_dropped",
                subscriber_id=subscriber.id,
                reason="queue_full",
                queue_size=self.queue_size,
            )
            self.unsubscribe(subscriber)
            subscriber.drop()
        return delivered

    def close(self) -> None:
        for subscriber in list(self._subscribers.values()):
            self.unsubscribe(subscriber)
            subscriber.drop()
