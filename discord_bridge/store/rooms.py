"""Room store: which Matrix room mirrors which Discord channel."""

from __future__ import annotations

import time
from typing import Any, Dict, List, Optional

from discord_bridge.store.base import JsonStore


def _from_unversioned(doc: Dict[str, Any]) -> Dict[str, Any]:
    # Unversioned documents were a flat ``{room_id: entry}`` mapping.
    links = {k: v for k, v in doc.items() if isinstance(v, dict)}
    return {"data": {"links": links}}


class RoomStore(JsonStore):
    """Persists room links keyed by Matrix room id."""

    kind = "room store"
    migrations = {0: _from_unversioned}

    def empty_document(self) -> Dict[str, Any]:
        return {"links": {}}

    @property
    def _links(self) -> Dict[str, Dict[str, Any]]:
        return self.data.setdefault("links", {})

    def link_room(
        self,
        room_id: str,
        guild_id: str,
        channel_id: str,
        alias: Optional[str] = None,
    ) -> Dict[str, Any]:
        entry = {
            "room_id": room_id,
            "guild_id": guild_id,
            "channel_id": channel_id,
            "alias": alias,
            "linked_at": time.time(),
        }
        self._links[room_id] = entry
        self.save()
        return entry

    def get_link(self, room_id: str) -> Optional[Dict[str, Any]]:
        return self._links.get(room_id)

    def get_room_for_channel(self, guild_id: str, channel_id: str) -> Optional[str]:
        for room_id, entry in self._links.items():
            if entry.get("guild_id") == guild_id and entry.get("channel_id") == channel_id:
                return room_id
        return None

    def remove_link(self, room_id: str) -> bool:
        if self._links.pop(room_id, None) is None:
            return False
        self.save()
        return True

    def list_links(self) -> List[Dict[str, Any]]:
        return list(self._links.values())
