"""Homeserver client factory for the application service."""

import logging
from typing import Dict, Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


class ClientFactory:
    """Builds homeserver clients authenticated with the as_token.

    Clients for virtual users masquerade through the ``user_id`` query
    parameter.  Clients are cached per user and closed by :meth:`close`.
    """

    def __init__(
        self,
        app_service_user_id: str,
        token: str,
        url: str,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.app_service_user_id = app_service_user_id
        self.token = token
        self.url = url.rstrip("/")
        self._timeout = timeout
        self._clients: Dict[str, httpx.AsyncClient] = {}

    def get_client_for_user(self, user_id: Optional[str] = None) -> httpx.AsyncClient:
        """Return the client acting as *user_id* (the bot user by default)."""
        user_id = user_id or self.app_service_user_id
        client = self._clients.get(user_id)
        if client is None or client.is_closed:
            params = {} if user_id == self.app_service_user_id else {"user_id": user_id}
            client = httpx.AsyncClient(
                base_url=self.url,
                headers={"Authorization": f"Bearer {self.token}"},
                params=params,
                timeout=self._timeout,
            )
            self._clients[user_id] = client
            logger.debug("Created homeserver client for %s", user_id)
        return client

    @property
    def bot_client(self) -> httpx.AsyncClient:
        return self.get_client_for_user(self.app_service_user_id)

    async def close(self) -> None:
        clients = list(self._clients.values())
        self._clients.clear()
        for client in clients:
            await client.aclose()
