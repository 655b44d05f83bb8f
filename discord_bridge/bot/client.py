"""Minimal async client for the Discord REST API.

Only what the bridge runtime needs: verifying the bot token, discovering
the gateway endpoint, looking up channels and sending messages through an
outbound queue.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional, Tuple

import httpx

from discord_bridge.constants import DISCORD_API_URL, DISCORD_REQUEST_TIMEOUT
from discord_bridge.errors import RemoteClientError

logger = logging.getLogger(__name__)


class DiscordClient:
    """Async HTTP client authenticated as a Discord bot.

    Parameters
    ----------
    token:
        The bot token from the ``auth.botToken`` config value.
    api_url:
        Root of the Discord REST API.
    http_client:
        Optional pre-built :class:`httpx.AsyncClient` (tests pass one with
        a mock transport).
    """

    def __init__(
        self,
        token: str,
        api_url: str = DISCORD_API_URL,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._token = token
        self._api_url = api_url.rstrip("/")
        self._client = http_client
        self._outbound: "asyncio.Queue[Tuple[str, str]]" = asyncio.Queue()
        self._sender: Optional[asyncio.Task[None]] = None
        self.user: Optional[Dict[str, Any]] = None
        self.gateway_url: Optional[str] = None

    @property
    def is_started(self) -> bool:
        return self.user is not None

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._api_url,
                headers={"Authorization": f"Bot {self._token}"},
                timeout=DISCORD_REQUEST_TIMEOUT,
            )
        return self._client

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        client = self._ensure_client()
        try:
            resp = await client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise RemoteClientError(f"{method} {path} failed: {exc}", orig_exc=exc) from exc
        return resp

    # ── lifecycle ───────────────────────────────────────────────────

    async def start(self) -> None:
        """Verify the token and resolve the gateway endpoint.

        Raises:
            RemoteClientError: If no token is configured or Discord
                rejects either call.
        """
        if not self._token:
            raise RemoteClientError("No bot token configured (auth.botToken).")

        resp = await self._request("GET", "/users/@me")
        if resp.status_code != 200:
            raise RemoteClientError("Bot token was rejected", status_code=resp.status_code)
        self.user = resp.json()

        resp = await self._request("GET", "/gateway/bot")
        if resp.status_code != 200:
            self.user = None
            raise RemoteClientError(
                "Could not fetch gateway endpoint", status_code=resp.status_code
            )
        self.gateway_url = resp.json().get("url")

        self._sender = asyncio.create_task(self._send_loop(), name="discord-sender")
        logger.info(
            "Discord session started as %s (gateway %s)",
            self.user.get("username", "?"),
            self.gateway_url,
        )

    async def close(self) -> None:
        if self._sender is not None:
            self._sender.cancel()
            await asyncio.gather(self._sender, return_exceptions=True)
            self._sender = None
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        self.user = None
        logger.debug("Discord client closed.")

    # ── API ─────────────────────────────────────────────────────────

    async def get_channel(self, channel_id: str) -> Optional[Dict[str, Any]]:
        """Return the channel object, or ``None`` if Discord does not know it."""
        resp = await self._request("GET", f"/channels/{channel_id}")
        if resp.status_code == 404:
            return None
        if resp.status_code != 200:
            raise RemoteClientError(
                f"Channel lookup for {channel_id} failed", status_code=resp.status_code
            )
        return resp.json()

    def send(self, channel_id: str, content: str) -> None:
        """Queue *content* for delivery to *channel_id*."""
        self._outbound.put_nowait((channel_id, content))

    async def _send_loop(self) -> None:
        while True:
            channel_id, content = await self._outbound.get()
            try:
                resp = await self._request(
                    "POST", f"/channels/{channel_id}/messages", json={"content": content}
                )
                if resp.status_code >= 300:
                    logger.warning(
                        "Discord rejected message to %s (HTTP %d)", channel_id, resp.status_code
                    )
            except RemoteClientError as exc:
                logger.warning("Failed to send message to %s: %s", channel_id, exc)
            finally:
                self._outbound.task_done()
