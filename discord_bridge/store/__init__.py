"""Persistent JSON stores for room links and bridged users."""

from discord_bridge.store.base import SCHEMA_VERSION, JsonStore
from discord_bridge.store.rooms import RoomStore
from discord_bridge.store.users import UserStore

__all__ = ["SCHEMA_VERSION", "JsonStore", "RoomStore", "UserStore"]
