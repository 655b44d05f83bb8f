"""User store: remembered Discord users behind bridged Matrix users."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from discord_bridge.store.base import JsonStore


class UserStore(JsonStore):
    kind = "user store"

    def empty_document(self) -> Dict[str, Any]:
        return {"users": {}}

    @property
    def _users(self) -> Dict[str, Dict[str, Any]]:
        return self.data.setdefault("users", {})

    def set_user(self, user_id: str, **fields: Any) -> Dict[str, Any]:
        entry = dict(self._users.get(user_id, {}))
        entry.update(fields)
        entry["user_id"] = user_id
        self._users[user_id] = entry
        self.save()
        return entry

    def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        return self._users.get(user_id)

    def remove_user(self, user_id: str) -> bool:
        if self._users.pop(user_id, None) is None:
            return False
        self.save()
        return True

    def list_users(self) -> List[Dict[str, Any]]:
        return list(self._users.values())
