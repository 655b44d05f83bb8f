"""Application-service side of the bridge: listener, requests and clients."""

from discord_bridge.appservice.bridge import AppServiceBridge
from discord_bridge.appservice.client_factory import ClientFactory
from discord_bridge.appservice.queue import RoomQueue
from discord_bridge.appservice.request import BridgeRequest

__all__ = [
    "AppServiceBridge",
    "BridgeRequest",
    "ClientFactory",
    "RoomQueue",
]
