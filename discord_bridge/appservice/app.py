"""Starlette ASGI application exposing the application-service API."""

import logging
from typing import TYPE_CHECKING, Any, Dict, Tuple

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

if TYPE_CHECKING:
    from discord_bridge.appservice.bridge import AppServiceBridge

logger = logging.getLogger(__name__)

_PREFIXES = ("", "/_matrix/app/v1")


def _error(status: int, errcode: str, message: str) -> JSONResponse:
    return JSONResponse({"errcode": errcode, "error": message}, status_code=status)


def _extract_token(request: Request) -> str:
    auth = request.headers.get("authorization", "")
    if auth.lower().startswith("bearer "):
        return auth[7:].strip()
    return request.query_params.get("access_token", "")


def create_app(bridge: "AppServiceBridge") -> Starlette:
    """Create the listener app routing homeserver calls into *bridge*."""

    def _authorised(request: Request) -> bool:
        return bridge.check_hs_token(_extract_token(request))

    def _respond(result: Tuple[int, Dict[str, Any]]) -> JSONResponse:
        status, body = result
        return JSONResponse(body, status_code=status)

    async def transactions(request: Request) -> JSONResponse:
        if not _authorised(request):
            return _error(403, "M_FORBIDDEN", "Bad token supplied")
        try:
            body = await request.json()
        except ValueError:
            return _error(400, "M_NOT_JSON", "Body is not valid JSON")
        if not isinstance(body, dict):
            return _error(400, "M_BAD_JSON", "Body must be a JSON object")
        return _respond(
            await bridge.handle_transaction(request.path_params["txn_id"], body)
        )

    async def users(request: Request) -> JSONResponse:
        if not _authorised(request):
            return _error(403, "M_FORBIDDEN", "Bad token supplied")
        return _respond(await bridge.handle_user_query(request.path_params["user_id"]))

    async def rooms(request: Request) -> JSONResponse:
        if not _authorised(request):
            return _error(403, "M_FORBIDDEN", "Bad token supplied")
        return _respond(await bridge.handle_alias_query(request.path_params["alias"]))

    async def protocol(request: Request) -> JSONResponse:
        if not _authorised(request):
            return _error(403, "M_FORBIDDEN", "Bad token supplied")
        return _respond(await bridge.handle_protocol_query(request.path_params["protocol"]))

    routes = []
    for prefix in _PREFIXES:
        routes += [
            Route(f"{prefix}/transactions/{{txn_id}}", endpoint=transactions, methods=["PUT"]),
            Route(f"{prefix}/users/{{user_id}}", endpoint=users, methods=["GET"]),
            Route(f"{prefix}/rooms/{{alias}}", endpoint=rooms, methods=["GET"]),
        ]
    routes.append(
        Route(
            "/_matrix/app/v1/thirdparty/protocol/{protocol}",
            endpoint=protocol,
            methods=["GET"],
        )
    )

    application = Starlette(routes=routes)
    logger.debug("Application-service ASGI app created with %d routes.", len(routes))
    return application
