"""
Realtime room broadcasting over WebSockets.

Features:
- Room-based fan-out: ``user:<id>`` (joined on connect) and ``workspace:<id>``
  (joined on request after a membership check)
- ``Broadcaster`` capability injected into request handlers via ``app.state``
- In-process ``ConnectionManager`` for single-worker deployments and tests
- ``RedisBroadcaster`` for multi-process fan-out over Redis Pub/Sub
- Dead-connection cleanup on failed sends
- Eviction of a user's sockets from a room (membership removal)
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Protocol
from uuid import UUID

from fastapi import Request, WebSocket
from fastapi.encoders import jsonable_encoder
from redis.exceptions import RedisError

from app.core.redis import get_redis

logger = logging.getLogger(__name__)

# Redis channel carrying every room message between processes
REDIS_REALTIME_CHANNEL = "tb:realtime"

# Back-off before resubscribing after a lost Redis connection
LISTENER_RETRY_SECONDS = 1.0


def user_room(user_id: UUID | str) -> str:
    return f"user:{user_id}"


def workspace_room(workspace_id: UUID | str) -> str:
    return f"workspace:{workspace_id}"


def encode_frame(event: str, data: Any) -> str:
    """Serialize a server-to-client frame: ``{"event": ..., "data": ...}``."""
    return json.dumps({"event": event, "data": jsonable_encoder(data)})


class Broadcaster(Protocol):
    """Capability for pushing events to rooms. Implementations never raise."""

    async def publish(self, room: str, event: str, data: Any) -> None: ...

    async def evict(self, room: str, user_id: UUID) -> None: ...


class ConnectionInfo:
    """Tracks a single WebSocket connection's metadata."""

    __slots__ = ("websocket", "user_id", "rooms")

    def __init__(self, websocket: WebSocket, user_id: UUID):
        self.websocket = websocket
        self.user_id = user_id
        self.rooms: set[str] = set()


class ConnectionManager:
    """
    Tracks local WebSocket connections by room and delivers frames to them.

    Also usable directly as a ``Broadcaster`` when a single process serves
    every client.
    """

    def __init__(self) -> None:
        # room -> connections subscribed to it
        self._rooms: dict[str, list[ConnectionInfo]] = {}

    @property
    def rooms(self) -> dict[str, list[ConnectionInfo]]:
        return self._rooms

    def room_size(self, room: str) -> int:
        return len(self._rooms.get(room, []))

    async def connect(self, websocket: WebSocket, user_id: UUID) -> ConnectionInfo:
        """Accept a WebSocket connection and join the caller's user room."""
        await websocket.accept()
        info = ConnectionInfo(websocket, user_id)
        self.join(info, user_room(user_id))
        logger.info("WebSocket connected: user=%s", user_id)
        return info

    async def disconnect(self, info: ConnectionInfo) -> None:
        """Remove a connection from every room it joined."""
        for room in list(info.rooms):
            self.leave(info, room)
        logger.info("WebSocket disconnected: user=%s", info.user_id)

    def join(self, info: ConnectionInfo, room: str) -> None:
        members = self._rooms.setdefault(room, [])
        if info not in members:
            members.append(info)
        info.rooms.add(room)

    def leave(self, info: ConnectionInfo, room: str) -> None:
        members = self._rooms.get(room)
        if members and info in members:
            members.remove(info)
            if not members:
                del self._rooms[room]
        info.rooms.discard(room)

    async def publish(self, room: str, event: str, data: Any) -> None:
        """Deliver a frame to every local connection in ``room``."""
        members = self._rooms.get(room)
        if not members:
            return

        msg_text = encode_frame(event, data)

        dead_connections = []
        for conn_info in list(members):
            try:
                await conn_info.websocket.send_text(msg_text)
            except Exception:
                dead_connections.append(conn_info)

        # Clean up dead connections
        for dead in dead_connections:
            logger.warning("Dropping unreachable socket: user=%s room=%s", dead.user_id, room)
            await self.disconnect(dead)

    async def evict(self, room: str, user_id: UUID) -> None:
        """Remove every local connection of ``user_id`` from ``room``."""
        for conn_info in list(self._rooms.get(room, [])):
            if conn_info.user_id == user_id:
                self.leave(conn_info, room)
                logger.info("Evicted user=%s from room=%s", user_id, room)


class RedisBroadcaster:
    """
    Publishes room messages to Redis so every process can fan them out.

    Each process runs ``listen()`` in the background, relaying messages to
    its local ``ConnectionManager``.
    """

    def __init__(
        self,
        local: ConnectionManager,
        channel: str = REDIS_REALTIME_CHANNEL,
        retry_delay: float = LISTENER_RETRY_SECONDS,
    ) -> None:
        self.local = local
        self.channel = channel
        self.retry_delay = retry_delay
        self._task: asyncio.Task | None = None

    async def publish(self, room: str, event: str, data: Any) -> None:
        await self._send({"op": "publish", "room": room, "event": event, "data": jsonable_encoder(data)})

    async def evict(self, room: str, user_id: UUID) -> None:
        await self._send({"op": "evict", "room": room, "user_id": str(user_id)})

    async def _send(self, message: dict[str, Any]) -> None:
        try:
            redis = await get_redis()
            await redis.publish(self.channel, json.dumps(message))
        except RedisError:
            logger.exception("Realtime publish failed: op=%s room=%s", message["op"], message["room"])

    async def dispatch(self, message: dict[str, Any]) -> None:
        """Apply one message received from the Redis channel locally."""
        op = message.get("op")
        if op == "publish":
            await self.local.publish(message["room"], message["event"], message.get("data"))
        elif op == "evict":
            await self.local.evict(message["room"], UUID(message["user_id"]))
        else:
            logger.warning("Ignoring unknown realtime op: %r", op)

    # --- Redis Pub/Sub Listener ---

    async def listen(self) -> None:
        """Listen to the Redis channel and broadcast locally.

        A lost Redis connection is logged and the subscription re-established
        after ``retry_delay`` seconds; only cancellation stops the loop.
        """
        try:
            while True:
                try:
                    await self._consume()
                except RedisError:
                    logger.exception(
                        "Redis realtime listener lost its connection; resubscribing in %.1fs",
                        self.retry_delay,
                    )
                await asyncio.sleep(self.retry_delay)
        except asyncio.CancelledError:
            logger.info("Redis realtime listener cancelled")

    async def _consume(self) -> None:
        redis = await get_redis()
        pubsub = redis.pubsub()
        try:
            await pubsub.subscribe(self.channel)
            async for message in pubsub.listen():
                if message["type"] != "message":
                    continue
                try:
                    await self.dispatch(json.loads(message["data"]))
                except (ValueError, KeyError):
                    logger.warning("Malformed realtime message: %r", message["data"])
        finally:
            await pubsub.aclose()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self.listen())

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None


def get_broadcaster(request: Request) -> Broadcaster:
    """FastAPI dependency: the application's configured broadcaster."""
    return request.app.state.broadcaster
