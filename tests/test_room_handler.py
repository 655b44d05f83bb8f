"""Tests for the Discord bot, its room handler and the Discord client."""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from discord_bridge.appservice.request import BridgeRequest
from discord_bridge.bot import DiscordBot, DiscordClient, MatrixRoomHandler
from discord_bridge.config import apply_file_config
from discord_bridge.errors import RemoteClientError
from discord_bridge.store import RoomStore, UserStore

BOT_USER = "@_discord_bot:example.org"


@pytest.fixture()
def config(file_config, tmp_path):
    file_config["database"] = {
        "roomStorePath": str(tmp_path / "rooms.json"),
        "userStorePath": str(tmp_path / "users.json"),
    }
    return apply_file_config(file_config)


@pytest.fixture()
def bot(config):
    client = MagicMock(spec=DiscordClient)
    client.get_channel = AsyncMock(return_value={"id": "222", "guild_id": "111", "name": "general"})
    bridge = MagicMock()
    bridge.join_room = AsyncMock()
    bot = DiscordBot(BOT_USER, config, bridge, discord_client=client)
    bot.room_store.open()
    bot.user_store.open()
    return bot


def _event(**fields):
    data = {"type": "m.room.message", "room_id": "!r:hs", "sender": "@alice:hs"}
    data.update(fields)
    return BridgeRequest(data)


# ── DiscordBot ───────────────────────────────────────────────────────────


class TestDiscordBot:
    def test_constructor_builds_handler_and_stores(self, config):
        bot = DiscordBot(BOT_USER, config, MagicMock())
        assert isinstance(bot.room_handler, MatrixRoomHandler)
        assert isinstance(bot.room_store, RoomStore)
        assert isinstance(bot.user_store, UserStore)
        assert bot.room_store.path == config.database.room_store_path

    def test_init_is_idempotent(self, config):
        room_store = MagicMock(spec=RoomStore)
        room_store.list_links.return_value = []
        user_store = MagicMock(spec=UserStore)
        user_store.list_users.return_value = []
        bot = DiscordBot(
            BOT_USER, config, MagicMock(), room_store=room_store, user_store=user_store
        )

        async def _go():
            await bot.init()
            await bot.init()

        asyncio.run(_go())
        room_store.open.assert_called_once()
        user_store.open.assert_called_once()

    def test_run_and_stop(self, bot):
        bot.client.start = AsyncMock()
        bot.client.close = AsyncMock()

        async def _go():
            await bot.run()
            await bot.stop()

        asyncio.run(_go())
        bot.client.start.assert_awaited_once()
        bot.client.close.assert_awaited_once()
        assert not bot.room_store.is_open


# ── MatrixRoomHandler ────────────────────────────────────────────────────


class TestAliasQuery:
    @pytest.mark.asyncio
    async def test_channel_alias_returns_room_options(self, bot):
        opts = await bot.room_handler.on_alias_query("#_discord_111_222:example.org", "_discord_111_222")
        assert opts["visibility"] == "public"
        assert opts["room_alias_name"] == "_discord_111_222"
        assert opts["name"] == "[Discord] 111 general"
        assert opts["initial_state"][0]["content"] == {"join_rule": "public"}
        bot.client.get_channel.assert_awaited_once_with("222")

    @pytest.mark.asyncio
    async def test_non_channel_alias(self, bot):
        assert await bot.room_handler.on_alias_query("#_discord_x:hs", "_discord_x") is None
        bot.client.get_channel.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_channel(self, bot):
        bot.client.get_channel.return_value = None
        assert await bot.room_handler.on_alias_query("#_discord_1_2:hs", "_discord_1_2") is None

    @pytest.mark.asyncio
    async def test_channel_in_other_guild(self, bot):
        bot.client.get_channel.return_value = {"id": "222", "guild_id": "999", "name": "x"}
        assert await bot.room_handler.on_alias_query("#_discord_111_222:hs", "_discord_111_222") is None

    @pytest.mark.asyncio
    async def test_alias_queried_links_room(self, bot):
        await bot.room_handler.on_alias_queried("#_discord_111_222:example.org", "!new:hs")
        assert bot.room_store.get_room_for_channel("111", "222") == "!new:hs"


class TestOnEvent:
    @pytest.mark.asyncio
    async def test_bridge_senders_are_ignored(self, bot):
        result = await bot.room_handler.on_event(_event(), {"sender_is_bridged": True})
        assert result == "ignored: bridge sender"
        result = await bot.room_handler.on_event(_event(sender=BOT_USER), {})
        assert result == "ignored: bridge sender"

    @pytest.mark.asyncio
    async def test_invite_for_bot_joins(self, bot):
        request = _event(
            type="m.room.member",
            state_key=BOT_USER,
            content={"membership": "invite"},
        )
        assert await bot.room_handler.on_event(request, {}) == "joined"
        bot.bridge.join_room.assert_awaited_once_with("!r:hs")
        assert bot.user_store.get_user("@alice:hs")["last_invite_room"] == "!r:hs"

    @pytest.mark.asyncio
    async def test_invite_for_someone_else(self, bot):
        request = _event(
            type="m.room.member",
            state_key="@bob:hs",
            content={"membership": "invite"},
        )
        assert await bot.room_handler.on_event(request, {}) == "ignored: membership"
        bot.bridge.join_room.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_message_in_linked_room_is_forwarded(self, bot):
        bot.room_store.link_room("!r:hs", "111", "222")
        request = _event(content={"msgtype": "m.text", "body": "hello"})
        assert await bot.room_handler.on_event(request, {}) == "forwarded"
        bot.client.send.assert_called_once_with("222", "**@alice:hs**: hello")

    @pytest.mark.asyncio
    async def test_message_in_unlinked_room(self, bot):
        request = _event(content={"body": "hello"})
        assert await bot.room_handler.on_event(request, {}) == "ignored: unlinked room"
        bot.client.send.assert_not_called()

    @pytest.mark.asyncio
    async def test_other_event_types(self, bot):
        assert await bot.room_handler.on_event(_event(type="m.reaction"), {}) == "ignored: m.reaction"


class TestThirdPartyLookup:
    @pytest.mark.asyncio
    async def test_descriptor(self, bot):
        desc = await bot.room_handler.third_party_lookup()
        assert desc["location_fields"] == ["guild_id", "channel_name"]
        assert desc["user_fields"] == ["username", "discriminator"]
        assert desc["instances"] == []
        assert "placeholder" in desc["field_types"]["guild_id"]
        # Callers get their own copy.
        desc["instances"].append("x")
        assert (await bot.room_handler.third_party_lookup())["instances"] == []


# ── DiscordClient ────────────────────────────────────────────────────────


def _discord_client(handler, token="bot-token") -> DiscordClient:
    http = httpx.AsyncClient(
        base_url="https://discord.test/api",
        transport=httpx.MockTransport(handler),
    )
    return DiscordClient(token, "https://discord.test/api", http_client=http)


class TestDiscordClient:
    @pytest.mark.asyncio
    async def test_start_fetches_user_and_gateway(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/users/@me"):
                return httpx.Response(200, json={"id": "1", "username": "bridge"})
            if request.url.path.endswith("/gateway/bot"):
                return httpx.Response(200, json={"url": "wss://gateway.test"})
            return httpx.Response(404)

        client = _discord_client(handler)
        await client.start()
        assert client.is_started
        assert client.gateway_url == "wss://gateway.test"
        await client.close()
        assert not client.is_started

    @pytest.mark.asyncio
    async def test_rejected_token(self):
        client = _discord_client(lambda req: httpx.Response(401, json={"message": "401"}))
        with pytest.raises(RemoteClientError) as exc_info:
            await client.start()
        assert exc_info.value.status_code == 401
        assert not client.is_started
        await client.close()

    @pytest.mark.asyncio
    async def test_missing_token(self):
        client = DiscordClient("")
        with pytest.raises(RemoteClientError, match="No bot token"):
            await client.start()

    @pytest.mark.asyncio
    async def test_transport_error_is_wrapped(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        client = _discord_client(handler)
        with pytest.raises(RemoteClientError, match="failed"):
            await client.start()
        await client.close()

    @pytest.mark.asyncio
    async def test_send_queue_posts_messages(self):
        posted = []

        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "POST":
                posted.append((request.url.path, json.loads(request.read())))
                return httpx.Response(200, json={"id": "m1"})
            if request.url.path.endswith("/gateway/bot"):
                return httpx.Response(200, json={"url": "wss://gateway.test"})
            return httpx.Response(200, json={"id": "1", "username": "bridge"})

        client = _discord_client(handler)
        await client.start()
        client.send("222", "hello")
        await asyncio.wait_for(client._outbound.join(), timeout=1)
        await client.close()
        assert posted == [("/api/channels/222/messages", {"content": "hello"})]

    @pytest.mark.asyncio
    async def test_get_channel_not_found(self):
        client = _discord_client(lambda req: httpx.Response(404))
        assert await client.get_channel("5") is None
        await client.close()
