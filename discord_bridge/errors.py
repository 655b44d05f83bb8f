"""Custom exception classes for the Matrix Discord bridge."""

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from discord_bridge.runtime.models import StartupState


class BridgeBaseError(Exception):
    """Base class for all custom exceptions in the bridge."""

    pass


class ConfigurationError(BridgeBaseError):
    """Raised when loading or validating the configuration file fails."""

    pass


class RegistrationError(BridgeBaseError):
    """Raised when the registration file is missing, malformed or invalid."""

    pass


class CallbackWiringError(BridgeBaseError):
    """
    Raised when the callback table cannot be populated: a handler-owning
    component failed during construction, or a callback slot is unset.
    """

    pass


class CallbackNotBoundError(BridgeBaseError):
    """
    Raised when an event is dispatched before the callback table is bound.

    This is a programming error and is never isolated by the controller.
    """

    def __init__(self, hook: str):
        self.hook = hook
        super().__init__(
            f"Dispatch of '{hook}' attempted before callbacks were bound."
        )


class StoreError(BridgeBaseError):
    """Raised when a persistent store cannot be opened or migrated."""

    pass


class ListenerError(BridgeBaseError):
    """Raised when the application-service HTTP listener cannot be started."""

    pass


class RemoteClientError(BridgeBaseError):
    """
    Raised when the Discord client fails to start its session,
    or when the Discord API reports an error.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        orig_exc: Optional[Exception] = None,
    ):
        self.status_code = status_code
        self.orig_exc = orig_exc

        full_msg = "Discord client error"
        if status_code is not None:
            full_msg += f" (HTTP {status_code})"
        full_msg += f": {message}"
        if orig_exc:
            full_msg += f" (original error: {type(orig_exc).__name__})"
        super().__init__(full_msg)


class StartupError(BridgeBaseError):
    """
    Raised when a startup transition fails. Records the state that was
    being entered so the caller can report where the sequence stopped.
    """

    def __init__(self, state: "StartupState", orig_exc: Exception):
        self.state = state
        self.orig_exc = orig_exc
        super().__init__(
            f"Startup failed while entering '{state.value}': "
            f"{type(orig_exc).__name__}: {orig_exc}"
        )
