"""Tests for BridgeRequest and the per-room queue."""

from __future__ import annotations

import asyncio

import pytest

from discord_bridge.appservice.queue import RoomQueue
from discord_bridge.appservice.request import BridgeRequest
from discord_bridge.errors import CallbackNotBoundError


class TestBridgeRequest:
    def test_defaults(self):
        req = BridgeRequest({"type": "m.room.message", "room_id": "!a:hs"})
        assert req.room_id == "!a:hs"
        assert req.is_pending
        assert len(req.id) == 12
        assert req.elapsed_ms >= 0

    def test_settles_only_once(self):
        req = BridgeRequest({})
        req.resolve("first")
        req.reject(RuntimeError("late"))
        req.resolve("second")
        assert req.value == "first"
        assert req.error is None

    @pytest.mark.asyncio
    async def test_outcome_from_captures_exception(self):
        req = BridgeRequest({})

        async def fail():
            raise KeyError("missing")

        await req.outcome_from(fail())
        assert isinstance(req.error, KeyError)
        with pytest.raises(KeyError):
            await req.outcome()

    @pytest.mark.asyncio
    async def test_outcome_from_on_settled_request(self):
        req = BridgeRequest({})
        req.resolve(None)

        async def noop():
            return None

        coro = noop()
        with pytest.raises(RuntimeError, match="already been settled"):
            await req.outcome_from(coro)
        coro.close()


class TestRoomQueue:
    @pytest.mark.asyncio
    async def test_same_room_is_sequential(self):
        order = []
        in_flight = 0
        overlap = False

        async def consumer(request, context):
            nonlocal in_flight, overlap
            in_flight += 1
            overlap = overlap or in_flight > 1
            await asyncio.sleep(0.01)
            order.append(request.data["n"])
            in_flight -= 1

        queue = RoomQueue(consumer)
        for n in range(5):
            queue.push(BridgeRequest({"room_id": "!a:hs", "n": n}), {})
        await queue.join()

        assert order == [0, 1, 2, 3, 4]
        assert not overlap
        assert queue.active_rooms == 0

    @pytest.mark.asyncio
    async def test_different_rooms_run_concurrently(self):
        started = asyncio.Event()
        release = asyncio.Event()
        seen = []

        async def consumer(request, context):
            room = request.room_id
            seen.append(room)
            if room == "!slow:hs":
                started.set()
                await release.wait()

        queue = RoomQueue(consumer)
        queue.push(BridgeRequest({"room_id": "!slow:hs"}), {})
        queue.push(BridgeRequest({"room_id": "!fast:hs"}), {})
        await asyncio.wait_for(started.wait(), timeout=1)
        await asyncio.sleep(0)
        assert "!fast:hs" in seen
        release.set()
        await queue.join()

    @pytest.mark.asyncio
    async def test_consumer_error_does_not_stop_room(self):
        handled = []

        async def consumer(request, context):
            if request.data["n"] == 0:
                raise RuntimeError("first fails")
            handled.append(request.data["n"])

        queue = RoomQueue(consumer)
        queue.push(BridgeRequest({"room_id": "!a:hs", "n": 0}), {})
        queue.push(BridgeRequest({"room_id": "!a:hs", "n": 1}), {})
        await queue.join()
        assert handled == [1]

    @pytest.mark.asyncio
    async def test_unbound_dispatch_propagates(self, caplog):
        async def consumer(request, context):
            raise CallbackNotBoundError("onEvent")

        queue = RoomQueue(consumer)
        queue.push(BridgeRequest({"room_id": "!a:hs"}), {})
        await queue.join()
        assert "dispatched before callbacks were bound" in caplog.text

    @pytest.mark.asyncio
    async def test_unbound_dispatch_is_reported_as_fatal(self):
        fatal = []

        async def consumer(request, context):
            raise CallbackNotBoundError("onEvent")

        queue = RoomQueue(consumer, on_fatal=fatal.append)
        queue.push(BridgeRequest({"room_id": "!a:hs"}), {})
        await queue.join()
        assert len(fatal) == 1
        assert isinstance(fatal[0], CallbackNotBoundError)
        assert fatal[0].hook == "onEvent"

    @pytest.mark.asyncio
    async def test_close_drops_pending(self, caplog):
        gate = asyncio.Event()

        async def consumer(request, context):
            await gate.wait()

        queue = RoomQueue(consumer)
        for _ in range(3):
            queue.push(BridgeRequest({"room_id": "!a:hs"}), {})
        await asyncio.sleep(0)
        await queue.close()
        assert queue.active_rooms == 0
        assert "Dropped 2 queued request(s)" in caplog.text
