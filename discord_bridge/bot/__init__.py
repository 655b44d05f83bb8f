"""Handler-owning components: the Discord bot and its Matrix room handler."""

from discord_bridge.bot.client import DiscordClient
from discord_bridge.bot.discord_bot import DiscordBot
from discord_bridge.bot.room_handler import MatrixRoomHandler

__all__ = ["DiscordBot", "DiscordClient", "MatrixRoomHandler"]
