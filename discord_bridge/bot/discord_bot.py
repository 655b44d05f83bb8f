"""The Discord bot: owner of the room handler, the stores and the client."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, Optional

from discord_bridge.bot.client import DiscordClient
from discord_bridge.bot.room_handler import MatrixRoomHandler
from discord_bridge.config.schema import BridgeConfig
from discord_bridge.store import RoomStore, UserStore

if TYPE_CHECKING:
    from discord_bridge.appservice.bridge import AppServiceBridge

logger = logging.getLogger(__name__)


class DiscordBot:
    """Handler-owning component of the bridge.

    Constructing the bot builds its :class:`MatrixRoomHandler`, whose
    methods are bound into the callback table.  :meth:`init` opens the
    persistent stores and :meth:`run` starts the Discord session.

    Parameters
    ----------
    bot_user_id:
        Full Matrix id of the bridge bot (``@_discord_bot:domain``).
    config:
        The effective configuration.
    bridge:
        The application-service bridge used for homeserver actions.
    room_store, user_store, discord_client:
        Optional pre-built collaborators; defaults are built from *config*.
    """

    def __init__(
        self,
        bot_user_id: str,
        config: BridgeConfig,
        bridge: "AppServiceBridge",
        *,
        room_store: Optional[RoomStore] = None,
        user_store: Optional[UserStore] = None,
        discord_client: Optional[DiscordClient] = None,
    ) -> None:
        self.bot_user_id = bot_user_id
        self.config = config
        self.bridge = bridge
        self.room_store = room_store or RoomStore(config.database.room_store_path)
        self.user_store = user_store or UserStore(config.database.user_store_path)
        self.client = discord_client or DiscordClient(config.auth.bot_token)
        self._room_handler = MatrixRoomHandler(self, config)
        self._initialised = False

    @property
    def room_handler(self) -> MatrixRoomHandler:
        return self._room_handler

    async def init(self) -> None:
        """Open the stores.  Repeated calls after a success do nothing."""
        if self._initialised:
            return
        self.room_store.open()
        self.user_store.open()
        self._initialised = True
        logger.info(
            "Stores ready: %d room link(s), %d user(s).",
            len(self.room_store.list_links()),
            len(self.user_store.list_users()),
        )

    async def run(self) -> None:
        """Start the Discord session."""
        await self.client.start()

    async def stop_client(self) -> None:
        await self.client.close()

    async def close_store(self) -> None:
        self.room_store.close()
        self.user_store.close()
        self._initialised = False

    async def stop(self) -> None:
        await self.stop_client()
        await self.close_store()

    # ── helpers used by the room handler ────────────────────────────

    async def lookup_channel(self, channel_id: str) -> Optional[Dict[str, Any]]:
        return await self.client.get_channel(channel_id)

    def send_to_discord(self, channel_id: str, content: str) -> None:
        self.client.send(channel_id, content)
