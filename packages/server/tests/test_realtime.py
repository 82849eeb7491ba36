"""
Tests for the realtime layer.

Tests cover:
- ConnectionManager rooms: connect, join/leave, publish, dead-socket cleanup, evict
- Client frame handling (ping, join/leave with membership re-check, malformed frames)
- RedisBroadcaster publish/dispatch, failure logging and listener recovery
- WebSocket handshake authentication
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient
from redis.exceptions import ConnectionError as RedisConnectionError
from starlette.websockets import WebSocketDisconnect

from app.api.v1.realtime import WS_AUTH_FAILED, handle_frame
from app.core.auth import create_jwt
from app.core.database import get_session
from app.core.realtime import (
    ConnectionManager,
    RedisBroadcaster,
    encode_frame,
    user_room,
    workspace_room,
)
from app.main import app
from app.models.membership import WorkspaceMember
from app.models.user import User
from app.models.workspace import Workspace


def _mock_ws():
    ws = AsyncMock(spec_set=["accept", "send_text", "close", "receive_text"])
    ws.accept = AsyncMock()
    ws.send_text = AsyncMock()
    ws.close = AsyncMock()
    return ws


def _sent(ws) -> list[dict]:
    return [json.loads(call.args[0]) for call in ws.send_text.await_args_list]


# ---------------------------------------------------------------------------
# Connection Manager Tests
# ---------------------------------------------------------------------------


class TestConnectionManager:
    """Test WebSocket ConnectionManager behavior."""

    @pytest.fixture
    def mgr(self):
        return ConnectionManager()

    @pytest.mark.asyncio
    async def test_connect_joins_user_room(self, mgr):
        ws = _mock_ws()
        user_id = uuid.uuid4()
        info = await mgr.connect(ws, user_id)

        ws.accept.assert_awaited_once()
        assert info.rooms == {user_room(user_id)}
        assert mgr.room_size(user_room(user_id)) == 1

        await mgr.disconnect(info)
        assert mgr.rooms == {}
        assert info.rooms == set()

    @pytest.mark.asyncio
    async def test_publish_reaches_only_room_members(self, mgr):
        ws_a, ws_b = _mock_ws(), _mock_ws()
        a = await mgr.connect(ws_a, uuid.uuid4())
        await mgr.connect(ws_b, uuid.uuid4())
        room = workspace_room(uuid.uuid4())
        mgr.join(a, room)

        await mgr.publish(room, "boards-updated", {"workspace_id": "w1"})

        assert _sent(ws_a) == [{"event": "boards-updated", "data": {"workspace_id": "w1"}}]
        ws_b.send_text.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_join_is_idempotent(self, mgr):
        info = await mgr.connect(_mock_ws(), uuid.uuid4())
        room = workspace_room(uuid.uuid4())
        mgr.join(info, room)
        mgr.join(info, room)
        assert mgr.room_size(room) == 1

        mgr.leave(info, room)
        assert mgr.room_size(room) == 0
        assert room not in mgr.rooms

    @pytest.mark.asyncio
    async def test_publish_to_empty_room_is_noop(self, mgr):
        await mgr.publish("workspace:nobody", "mention", {})

    @pytest.mark.asyncio
    async def test_dead_connection_is_dropped(self, mgr):
        good, dead = _mock_ws(), _mock_ws()
        dead.send_text = AsyncMock(side_effect=RuntimeError("socket closed"))
        room = workspace_room(uuid.uuid4())
        good_info = await mgr.connect(good, uuid.uuid4())
        dead_info = await mgr.connect(dead, uuid.uuid4())
        mgr.join(good_info, room)
        mgr.join(dead_info, room)

        await mgr.publish(room, "activity-event", {"n": 1})

        assert mgr.room_size(room) == 1
        assert dead_info.rooms == set()
        assert _sent(good) == [{"event": "activity-event", "data": {"n": 1}}]

    @pytest.mark.asyncio
    async def test_evict_removes_only_target_user(self, mgr):
        target = uuid.uuid4()
        room = workspace_room(uuid.uuid4())
        t1 = await mgr.connect(_mock_ws(), target)
        t2 = await mgr.connect(_mock_ws(), target)
        other = await mgr.connect(_mock_ws(), uuid.uuid4())
        for info in (t1, t2, other):
            mgr.join(info, room)

        await mgr.evict(room, target)

        assert mgr.rooms[room] == [other]
        assert t1.rooms == {user_room(target)}

    def test_encode_frame_serializes_uuids(self):
        uid = uuid.uuid4()
        assert json.loads(encode_frame("mention", {"user_id": uid})) == {
            "event": "mention",
            "data": {"user_id": str(uid)},
        }


# ---------------------------------------------------------------------------
# Client frame handling
# ---------------------------------------------------------------------------


class TestHandleFrame:
    @pytest.fixture
    def mgr(self):
        return ConnectionManager()

    @pytest.fixture
    async def membership(self, session):
        """A user who belongs to one workspace, plus an unrelated workspace."""
        user = User(name="Alice", email="alice@example.com", password_hash="x")
        session.add(user)
        await session.flush()
        mine = Workspace(name="Mine", owner_id=user.id)
        theirs = Workspace(name="Theirs", owner_id=user.id)
        session.add_all([mine, theirs])
        await session.flush()
        session.add(WorkspaceMember(workspace_id=mine.id, user_id=user.id, role="VIEWER"))
        await session.commit()
        return user.id, mine.id, theirs.id

    @pytest.mark.asyncio
    async def test_ping(self, mgr, session):
        ws = _mock_ws()
        info = await mgr.connect(ws, uuid.uuid4())
        await handle_frame('{"type": "ping"}', info, mgr, session)
        assert _sent(ws) == [{"type": "pong"}]

    @pytest.mark.asyncio
    async def test_join_member_workspace(self, mgr, session, membership):
        user_id, mine, _ = membership
        ws = _mock_ws()
        info = await mgr.connect(ws, user_id)

        await handle_frame(json.dumps({"type": "join-workspace", "workspace_id": str(mine)}), info, mgr, session)

        assert _sent(ws) == [{"type": "join-success", "workspace_id": str(mine)}]
        assert workspace_room(mine) in info.rooms

        await mgr.publish(workspace_room(mine), "boards-updated", {})
        assert _sent(ws)[-1] == {"event": "boards-updated", "data": {}}

    @pytest.mark.asyncio
    async def test_join_refused_for_non_member(self, mgr, session, membership):
        user_id, _, theirs = membership
        ws = _mock_ws()
        info = await mgr.connect(ws, user_id)

        await handle_frame(json.dumps({"type": "join-workspace", "workspace_id": str(theirs)}), info, mgr, session)

        reply = _sent(ws)[0]
        assert reply["type"] == "join-error"
        assert reply["workspace_id"] == str(theirs)
        assert mgr.room_size(workspace_room(theirs)) == 0

    @pytest.mark.asyncio
    async def test_join_with_bad_id(self, mgr, session):
        ws = _mock_ws()
        info = await mgr.connect(ws, uuid.uuid4())
        await handle_frame('{"type": "join-workspace", "workspace_id": "nope"}', info, mgr, session)
        assert _sent(ws)[0]["type"] == "join-error"

    @pytest.mark.asyncio
    async def test_leave_with_bad_id(self, mgr, session):
        ws = _mock_ws()
        info = await mgr.connect(ws, uuid.uuid4())
        await handle_frame('{"type": "leave-workspace", "workspace_id": 42}', info, mgr, session)
        assert _sent(ws) == [{"type": "leave-error", "workspace_id": 42, "message": "Invalid workspace_id"}]

    @pytest.mark.asyncio
    async def test_leave(self, mgr, session, membership):
        user_id, mine, _ = membership
        ws = _mock_ws()
        info = await mgr.connect(ws, user_id)
        mgr.join(info, workspace_room(mine))

        await handle_frame(json.dumps({"type": "leave-workspace", "workspace_id": str(mine)}), info, mgr, session)

        assert _sent(ws) == [{"type": "left", "workspace_id": str(mine)}]
        assert info.rooms == {user_room(user_id)}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "raw, code",
        [
            ("{not json", "INVALID_JSON"),
            ("[1, 2]", "INVALID_FRAME"),
            ('{"type": "subscribe"}', "UNKNOWN_TYPE"),
        ],
    )
    async def test_malformed_frames(self, mgr, session, raw, code):
        ws = _mock_ws()
        info = await mgr.connect(ws, uuid.uuid4())
        await handle_frame(raw, info, mgr, session)
        reply = _sent(ws)[0]
        assert reply["type"] == "error"
        assert reply["code"] == code


# ---------------------------------------------------------------------------
# Redis fan-out
# ---------------------------------------------------------------------------


class TestRedisBroadcaster:
    @pytest.mark.asyncio
    async def test_publish_goes_to_redis_channel(self):
        redis_mock = AsyncMock()
        with patch("app.core.realtime.get_redis", AsyncMock(return_value=redis_mock)):
            broadcaster = RedisBroadcaster(ConnectionManager(), channel="tb:test")
            await broadcaster.publish("workspace:1", "boards-updated", {"id": uuid.UUID(int=1)})

        channel, payload = redis_mock.publish.await_args.args
        assert channel == "tb:test"
        assert json.loads(payload) == {
            "op": "publish",
            "room": "workspace:1",
            "event": "boards-updated",
            "data": {"id": str(uuid.UUID(int=1))},
        }

    @pytest.mark.asyncio
    async def test_publish_failure_is_logged_not_raised(self, caplog):
        redis_mock = AsyncMock()
        redis_mock.publish = AsyncMock(side_effect=RedisConnectionError("down"))
        with patch("app.core.realtime.get_redis", AsyncMock(return_value=redis_mock)):
            broadcaster = RedisBroadcaster(ConnectionManager())
            with caplog.at_level(logging.ERROR, logger="app.core.realtime"):
                await broadcaster.publish("workspace:1", "mention", {})
                await broadcaster.evict("workspace:1", uuid.uuid4())

        assert len([r for r in caplog.records if "Realtime publish failed" in r.getMessage()]) == 2

    @pytest.mark.asyncio
    async def test_dispatch_publish_and_evict(self):
        local = ConnectionManager()
        broadcaster = RedisBroadcaster(local)
        user_id = uuid.uuid4()
        ws = _mock_ws()
        info = await local.connect(ws, user_id)
        local.join(info, "workspace:1")

        await broadcaster.dispatch({"op": "publish", "room": "workspace:1", "event": "mention", "data": {"a": 1}})
        assert _sent(ws) == [{"event": "mention", "data": {"a": 1}}]

        await broadcaster.dispatch({"op": "evict", "room": "workspace:1", "user_id": str(user_id)})
        assert local.room_size("workspace:1") == 0

    @pytest.mark.asyncio
    async def test_dispatch_unknown_op_ignored(self, caplog):
        broadcaster = RedisBroadcaster(ConnectionManager())
        with caplog.at_level(logging.WARNING, logger="app.core.realtime"):
            await broadcaster.dispatch({"op": "shrug"})
        assert "unknown realtime op" in caplog.text

    @pytest.mark.asyncio
    async def test_listener_resubscribes_after_connection_loss(self, caplog):
        local = ConnectionManager()
        ws = _mock_ws()
        info = await local.connect(ws, uuid.uuid4())
        local.join(info, "workspace:1")
        delivered = asyncio.Event()

        async def dropped():
            raise RedisConnectionError("connection reset")
            yield  # pragma: no cover

        async def recovered():
            yield {"type": "subscribe", "data": 1}
            yield {
                "type": "message",
                "data": json.dumps({"op": "publish", "room": "workspace:1", "event": "mention", "data": {}}),
            }
            delivered.set()
            await asyncio.Event().wait()

        pubsubs = []
        for stream in (dropped, recovered):
            pubsub = MagicMock()
            pubsub.subscribe = AsyncMock()
            pubsub.aclose = AsyncMock()
            pubsub.listen = stream
            pubsubs.append(pubsub)
        redis_mock = MagicMock()
        redis_mock.pubsub = MagicMock(side_effect=pubsubs)

        broadcaster = RedisBroadcaster(local, retry_delay=0)
        with patch("app.core.realtime.get_redis", AsyncMock(return_value=redis_mock)):
            with caplog.at_level(logging.ERROR, logger="app.core.realtime"):
                broadcaster.start()
                await asyncio.wait_for(delivered.wait(), timeout=1)
                assert broadcaster.running
                await broadcaster.stop()

        assert _sent(ws) == [{"event": "mention", "data": {}}]
        assert "resubscribing" in caplog.text
        assert redis_mock.pubsub.call_count == 2
        for pubsub in pubsubs:
            pubsub.aclose.assert_awaited()
        assert not broadcaster.running


# ---------------------------------------------------------------------------
# WebSocket handshake
# ---------------------------------------------------------------------------


class TestWebSocketEndpoint:
    @pytest.fixture
    def fake_session(self):
        session = MagicMock()
        session.get = AsyncMock(return_value=None)
        session.commit = AsyncMock()

        async def _get_session():
            yield session

        app.dependency_overrides[get_session] = _get_session
        yield session
        app.dependency_overrides.clear()

    def test_missing_token_closes_with_4001(self, fake_session):
        client = TestClient(app)
        with pytest.raises(WebSocketDisconnect) as exc:
            with client.websocket_connect("/api/v1/realtime/ws"):
                pass
        assert exc.value.code == WS_AUTH_FAILED

    def test_bad_token_closes_with_4001(self, fake_session):
        client = TestClient(app)
        with pytest.raises(WebSocketDisconnect) as exc:
            with client.websocket_connect("/api/v1/realtime/ws?token=garbage"):
                pass
        assert exc.value.code == WS_AUTH_FAILED

    def test_valid_token_connects_and_answers_ping(self, fake_session):
        user = User(id=uuid.uuid4(), name="Alice", email="alice@example.com", password_hash="x")
        fake_session.get = AsyncMock(side_effect=[user, None])
        token = create_jwt(user.id)

        client = TestClient(app)
        with client.websocket_connect("/api/v1/realtime/ws", headers={"Authorization": f"Bearer {token}"}) as ws:
            ws.send_text(json.dumps({"type": "ping"}))
            assert ws.receive_json() == {"type": "pong"}

            ws.send_text(json.dumps({"type": "join-workspace", "workspace_id": str(uuid.uuid4())}))
            assert ws.receive_json()["type"] == "join-error"

        connections: ConnectionManager = app.state.connections
        assert connections.room_size(user_room(user.id)) == 0
