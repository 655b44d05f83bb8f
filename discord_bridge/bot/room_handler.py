"""Matrix-side handlers: the methods bound into the callback table."""

from __future__ import annotations

import copy
import logging
import re
from typing import TYPE_CHECKING, Any, Dict, Optional

from discord_bridge.config.schema import BridgeConfig
from discord_bridge.constants import NAMESPACE_PREFIX, PROTOCOL_NAME

if TYPE_CHECKING:
    from discord_bridge.bot.discord_bot import DiscordBot

logger = logging.getLogger(__name__)

_CHANNEL_ALIAS_RE = re.compile(rf"^{re.escape(NAMESPACE_PREFIX)}(\d+)_(\d+)$")

_PROTOCOL_DESCRIPTOR: Dict[str, Any] = {
    "bridge_url_fields": ["channel_id", "guild_id"],
    "location_fields": ["guild_id", "channel_name"],
    "user_fields": ["username", "discriminator"],
    "field_types": {
        "guild_id": {"regexp": r"\S+", "placeholder": "112760669178241024"},
        "channel_id": {"regexp": r"\S+", "placeholder": "112760669178241024"},
        "channel_name": {"regexp": r"\S+", "placeholder": "#Welcome"},
        "username": {"regexp": r"[A-Za-z0-9_\-]{2,32}", "placeholder": "Half-Shot"},
        "discriminator": {"regexp": r"[0-9]{4}", "placeholder": "1234"},
    },
    "instances": [],
}


class MatrixRoomHandler:
    """Answers alias queries and routes Matrix events towards Discord."""

    def __init__(self, bot: "DiscordBot", config: BridgeConfig) -> None:
        self._bot = bot
        self._config = config

    # ── aliases ─────────────────────────────────────────────────────

    async def on_alias_query(self, alias: str, alias_localpart: str) -> Optional[Dict[str, Any]]:
        """Return room creation options for a channel alias, else ``None``.

        Channel aliases have the localpart ``_discord_<guild_id>_<channel_id>``.
        """
        match = _CHANNEL_ALIAS_RE.match(alias_localpart)
        if match is None:
            logger.debug("Alias %s is not a channel alias.", alias)
            return None
        guild_id, channel_id = match.groups()

        channel = await self._bot.lookup_channel(channel_id)
        if channel is None or str(channel.get("guild_id", guild_id)) != guild_id:
            logger.info("No Discord channel %s in guild %s for %s", channel_id, guild_id, alias)
            return None

        name = (
            self._config.channel.name_pattern.replace(":guild", guild_id)
            .replace(":name", channel.get("name", channel_id))
        )
        return {
            "visibility": "public",
            "room_alias_name": alias_localpart,
            "name": name,
            "topic": channel.get("topic") or "",
            "initial_state": [
                {
                    "type": "m.room.join_rules",
                    "state_key": "",
                    "content": {"join_rule": "public"},
                }
            ],
        }

    async def on_alias_queried(self, alias: str, room_id: str) -> None:
        localpart = alias[1:].split(":", 1)[0]
        match = _CHANNEL_ALIAS_RE.match(localpart)
        if match is None:
            logger.warning("Room %s created for non-channel alias %s", room_id, alias)
            return
        guild_id, channel_id = match.groups()
        self._bot.room_store.link_room(room_id, guild_id, channel_id, alias=alias)
        logger.info("Linked %s to Discord channel %s/%s", room_id, guild_id, channel_id)

    # ── events ──────────────────────────────────────────────────────

    async def on_event(self, request: Any, context: Dict[str, Any]) -> str:
        event = request.data
        event_type = event.get("type")
        room_id = event.get("room_id")

        if context.get("sender_is_bridged") or event.get("sender") == self._bot.bot_user_id:
            return "ignored: bridge sender"

        if event_type == "m.room.member":
            content = event.get("content") or {}
            if (
                content.get("membership") == "invite"
                and event.get("state_key") == self._bot.bot_user_id
            ):
                await self._bot.bridge.join_room(room_id)
                self._bot.user_store.set_user(event.get("sender"), last_invite_room=room_id)
                return "joined"
            return "ignored: membership"

        if event_type == "m.room.message":
            link = self._bot.room_store.get_link(room_id)
            if link is None:
                return "ignored: unlinked room"
            body = (event.get("content") or {}).get("body")
            if not body:
                return "ignored: empty message"
            sender = event.get("sender", "")
            self._bot.send_to_discord(link["channel_id"], f"**{sender}**: {body}")
            return "forwarded"

        return f"ignored: {event_type}"

    # ── third-party ─────────────────────────────────────────────────

    async def third_party_lookup(self) -> Dict[str, Any]:
        logger.debug("Third-party lookup for protocol %s", PROTOCOL_NAME)
        return copy.deepcopy(_PROTOCOL_DESCRIPTOR)
