"""Application-service bridge: the HTTP listener and homeserver-facing calls.

:class:`AppServiceBridge` receives homeserver calls through the Starlette
app from :mod:`discord_bridge.appservice.app`, turns them into controller
hooks, and performs the homeserver actions the hooks ask for (creating the
room behind a queried alias, joining rooms).  It never handles events
itself: every event goes through the :class:`DispatchController`.
"""

import asyncio
import hmac
import logging
import socket
from collections import OrderedDict
from typing import Any, Dict, Mapping, Optional, Tuple
from urllib.parse import quote

import httpx
import uvicorn

from discord_bridge.appservice.app import create_app
from discord_bridge.appservice.client_factory import ClientFactory
from discord_bridge.appservice.queue import RoomQueue
from discord_bridge.appservice.request import BridgeRequest
from discord_bridge.bridge.controller import DispatchController
from discord_bridge.config.schema import BridgeConfig
from discord_bridge.constants import TXN_MEMORY_SIZE
from discord_bridge.errors import CallbackWiringError, ListenerError
from discord_bridge.registration.models import AppServiceRegistration

logger = logging.getLogger(__name__)

Reply = Tuple[int, Dict[str, Any]]

_NOT_FOUND: Reply = (404, {"errcode": "M_NOT_FOUND", "error": "Not found"})
_STARTUP_POLL = 0.05  # seconds


class AppServiceBridge:
    """Owns the listener and the request queue for one registration."""

    def __init__(
        self,
        registration: AppServiceRegistration,
        controller: DispatchController,
        client_factory: ClientFactory,
        config: BridgeConfig,
    ) -> None:
        self.registration = registration
        self.controller = controller
        self.client_factory = client_factory
        self.domain = config.bridge.domain
        self.homeserver_url = config.bridge.homeserver_url
        self._queue = RoomQueue(self.controller.on_event, on_fatal=self.report_fatal)
        self._fatal_error: Optional[BaseException] = None
        self._seen_txns: "OrderedDict[str, None]" = OrderedDict()
        self._server: Optional[uvicorn.Server] = None
        self._serve_task: Optional[asyncio.Task[None]] = None
        self.port: Optional[int] = None

    # ── Properties ──────────────────────────────────────────────────────

    @property
    def bot_user_id(self) -> str:
        return self.client_factory.app_service_user_id

    @property
    def is_listening(self) -> bool:
        return (
            self._server is not None
            and self._server.started
            and self._serve_task is not None
            and not self._serve_task.done()
        )

    @property
    def queue(self) -> RoomQueue:
        return self._queue

    @property
    def fatal_error(self) -> Optional[BaseException]:
        """The error that forced the listener down, if any."""
        return self._fatal_error

    def report_fatal(self, exc: BaseException) -> None:
        """Record *exc* as fatal and shut the listener down."""
        if self._fatal_error is None:
            self._fatal_error = exc
            logger.critical("Fatal bridge error, shutting down the listener: %s", exc)
        self.request_shutdown()

    def check_hs_token(self, token: str) -> bool:
        return bool(token) and hmac.compare_digest(token, self.registration.hs_token)

    def _log(self, line: str, is_error: bool = False) -> None:
        self.controller.on_log(line, is_error)

    # ── Lifecycle ───────────────────────────────────────────────────────

    async def run(self, port: int, host: str = "0.0.0.0") -> None:
        """Bind the listener on *host*:*port* and return once it accepts calls.

        Raises:
            CallbackWiringError: If the controller has no callbacks bound.
            ListenerError: If the port is unavailable or the server fails
                to start.
        """
        if not self.controller.is_bound:
            raise CallbackWiringError("Listener cannot start before callbacks are bound.")

        # Pre-flight: verify the port is free so a bind failure is reported
        # here rather than as a SystemExit from inside uvicorn.
        probe = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            probe.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            probe.bind((host, port))
        except OSError as e_bind:
            raise ListenerError(f"Port {port} on {host} is already in use: {e_bind}") from e_bind
        finally:
            probe.close()

        uvicorn_cfg = uvicorn.Config(
            app=create_app(self),
            host=host,
            port=port,
            log_config=None,
            lifespan="off",
            log_level="warning",
        )
        self._server = uvicorn.Server(uvicorn_cfg)
        self._serve_task = asyncio.create_task(
            self._serve(self._server), name="appservice-listener"
        )

        while not self._server.started:
            if self._serve_task.done():
                exc = self._serve_task.exception()
                raise ListenerError(f"Listener on {host}:{port} failed to start: {exc}")
            await asyncio.sleep(_STARTUP_POLL)
        self.port = port
        self._log(f"Listening on {host}:{port}")

    async def _serve(self, server: uvicorn.Server) -> None:
        try:
            await server.serve()
        except SystemExit as e_exit:
            raise ListenerError(f"uvicorn exited with code {e_exit.code}") from None

    def request_shutdown(self) -> None:
        if self._server is not None:
            self._server.should_exit = True

    async def wait_closed(self) -> None:
        """Wait until the listener stops serving."""
        if self._serve_task is not None:
            await asyncio.gather(self._serve_task, return_exceptions=True)

    async def stop(self) -> None:
        """Stop the listener, finish queued events and close clients."""
        self.request_shutdown()
        await self.wait_closed()
        await self._queue.join()
        await self._queue.close()
        await self.client_factory.close()
        self._log("Listener stopped")

    # ── Homeserver calls ────────────────────────────────────────────────

    def _build_context(self, event: Dict[str, Any]) -> Dict[str, Any]:
        sender = event.get("sender", "")
        return {
            "sender": sender,
            "room_id": event.get("room_id"),
            "sender_is_bridged": self.registration.is_user_in_namespace(sender),
            "bot_user_id": self.bot_user_id,
        }

    async def handle_transaction(self, txn_id: str, body: Dict[str, Any]) -> Reply:
        """Queue every event of a transaction; repeated ids are acknowledged only."""
        if txn_id in self._seen_txns:
            self._log(f"Transaction {txn_id} already processed")
            return 200, {}

        events = body.get("events", [])
        if not isinstance(events, list):
            return 400, {"errcode": "M_BAD_JSON", "error": "'events' must be a list"}

        for event in events:
            if not isinstance(event, dict):
                continue
            request = BridgeRequest(event)
            self._queue.push(request, self._build_context(event))
            self._log(f"[{request.id}] Queued {event.get('type')} in {event.get('room_id')}")

        self._seen_txns[txn_id] = None
        while len(self._seen_txns) > TXN_MEMORY_SIZE:
            self._seen_txns.popitem(last=False)
        return 200, {}

    async def handle_user_query(self, user_id: str) -> Reply:
        await self.controller.on_user_query(user_id)
        return _NOT_FOUND

    async def handle_alias_query(self, alias: str) -> Reply:
        """Create the room behind *alias* if the handler provisions it."""
        if not self.registration.is_alias_in_namespace(alias):
            return _NOT_FOUND
        localpart = alias[1:].split(":", 1)[0]
        provisioned = await self.controller.on_alias_query(alias, localpart)
        if not provisioned.answered:
            return _NOT_FOUND

        if not isinstance(provisioned.value, Mapping):
            logger.warning(
                "onAliasQuery for %s returned %s, not room options; ignoring.",
                alias,
                type(provisioned.value).__name__,
            )
            return _NOT_FOUND
        opts = dict(provisioned.value)
        opts.setdefault("room_alias_name", localpart)
        try:
            room_id = await self.create_room(opts)
        except (httpx.HTTPError, KeyError, ValueError) as exc:
            logger.error("Failed to create room for alias %s: %s", alias, exc)
            return 500, {"errcode": "M_UNKNOWN", "error": "Failed to create room"}

        await self.controller.on_alias_queried(alias, room_id)
        return 200, {}

    async def handle_protocol_query(self, protocol: str) -> Reply:
        if protocol not in self.registration.protocols:
            return _NOT_FOUND
        outcome = await self.controller.third_party_lookup()
        if not outcome.ok:
            return 500, {"errcode": "M_UNKNOWN", "error": "Protocol lookup failed"}
        if outcome.value is None:
            return _NOT_FOUND
        return 200, outcome.value

    # ── Homeserver actions ──────────────────────────────────────────────

    async def create_room(self, opts: Dict[str, Any]) -> str:
        resp = await self.client_factory.bot_client.post(
            "/_matrix/client/v3/createRoom", json=opts
        )
        resp.raise_for_status()
        room_id = resp.json()["room_id"]
        self._log(f"Created room {room_id} ({opts.get('room_alias_name')})")
        return room_id

    async def join_room(self, room_id: str, user_id: Optional[str] = None) -> None:
        client = self.client_factory.get_client_for_user(user_id)
        resp = await client.post(f"/_matrix/client/v3/rooms/{quote(room_id, safe='')}/join", json={})
        resp.raise_for_status()
        self._log(f"{user_id or self.bot_user_id} joined {room_id}")
