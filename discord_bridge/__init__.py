"""
Matrix Discord Bridge - bootstrap and runtime orchestration.

Registers the bridge as a Matrix application service, wires the Discord
handlers into the application-service controller and brings storage, the
HTTP listener and the Discord client up in order.
"""

from discord_bridge.constants import SERVER_NAME, SERVER_VERSION

__version__ = SERVER_VERSION
__app_name__ = SERVER_NAME

__all__ = [
    "SERVER_NAME",
    "SERVER_VERSION",
    "__version__",
    "__app_name__",
]
