"""Bridge startup sequencer: ordered bring-up with a state machine.

StartupSequencer owns every runtime component of the bridge and builds them
in a fixed order, one named step per state.  A step that raises stops the
sequence: the failure is recorded, the sequencer moves to FAILED and
:class:`StartupError` names the state that could not be entered.  There is
no retry.

Callbacks are bound before the store is opened and before the listener
accepts connections, so no event can be dispatched to an unbound
controller.
"""

import asyncio
import inspect
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, TypeVar, Union

from discord_bridge.appservice.bridge import AppServiceBridge
from discord_bridge.appservice.client_factory import ClientFactory
from discord_bridge.bot.discord_bot import DiscordBot
from discord_bridge.bridge.callbacks import BridgeCallbacks
from discord_bridge.bridge.controller import DispatchController
from discord_bridge.config.loader import apply_file_config
from discord_bridge.config.schema import BridgeConfig
from discord_bridge.constants import DEFAULT_HOST, DEFAULT_PORT
from discord_bridge.display.logging_config import (
    configure_from_config,
    secret_redaction_filter,
)
from discord_bridge.errors import CallbackWiringError, StartupError
from discord_bridge.registration.models import AppServiceRegistration, load_registration
from discord_bridge.runtime.models import (
    StartupRecord,
    StartupState,
    StartupStatus,
    is_valid_transition,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")
Step = Callable[[], Union[None, Awaitable[None]]]


class _InvalidStateTransition(Exception):
    """Raised internally when an illegal state transition is attempted."""

    def __init__(self, current: StartupState, target: StartupState) -> None:
        super().__init__(f"Invalid state transition: {current.value} → {target.value}")
        self.current = current
        self.target = target


class StartupSequencer:
    """Brings the bridge up in order and tears it down in reverse.

    State machine::

        PENDING ─► CONFIG_LOADED ─► REGISTRATION_LOADED ─► CLIENT_FACTORY_BUILT
            ─► CONTROLLER_WIRED ─► STORE_INITIALIZED ─► LISTENER_STARTED
            ─► REMOTE_CLIENT_STARTED ─► RUNNING ─► STOPPING ─► STOPPED
                 (any startup state) ─► FAILED ─► STOPPING

    Usage::

        sequencer = StartupSequencer(file_config, registration_path="reg.yaml", port=9005)
        await sequencer.start()
        await sequencer.serve()     # until request_stop()
        await sequencer.stop()
    """

    def __init__(
        self,
        file_config: Dict[str, Any],
        *,
        registration_path: str,
        port: int = DEFAULT_PORT,
        host: str = DEFAULT_HOST,
        bot_factory: Callable[..., DiscordBot] = DiscordBot,
        bridge_factory: Callable[..., AppServiceBridge] = AppServiceBridge,
        bootstrap_log_fpath: Optional[str] = None,
        configure_logging: bool = True,
    ) -> None:
        self._file_config = file_config
        self._registration_path = registration_path
        self._port = port
        self._host = host
        self._bot_factory = bot_factory
        self._bridge_factory = bridge_factory
        self._bootstrap_log_fpath = bootstrap_log_fpath
        self._configure_logging = configure_logging

        self._state: StartupState = StartupState.PENDING
        self._history: List[StartupRecord] = [StartupRecord(state=self._state)]
        self._failed_state: Optional[StartupState] = None
        self._error_message: Optional[str] = None
        self._started_at: Optional[datetime] = None
        self._stop_requested = asyncio.Event()

        # Components, set by the step methods
        self.config: Optional[BridgeConfig] = None
        self.registration: Optional[AppServiceRegistration] = None
        self.bot_user_id: Optional[str] = None
        self.client_factory: Optional[ClientFactory] = None
        self.controller: Optional[DispatchController] = None
        self.bridge: Optional[AppServiceBridge] = None
        self.bot: Optional[DiscordBot] = None

    # ------------------------------------------------------------------ #
    #  Properties
    # ------------------------------------------------------------------ #

    @property
    def state(self) -> StartupState:
        return self._state

    @property
    def history(self) -> List[StartupRecord]:
        return list(self._history)

    @property
    def failed_state(self) -> Optional[StartupState]:
        """The state that could not be entered, if startup failed."""
        return self._failed_state

    @property
    def error_message(self) -> Optional[str]:
        return self._error_message

    @property
    def is_running(self) -> bool:
        return self._state == StartupState.RUNNING

    def _reached(self, state: StartupState) -> bool:
        return any(r.state == state for r in self._history)

    def _needs(self, component: Optional[T], name: str) -> T:
        if component is None:
            raise RuntimeError(f"No {name} available in state {self._state.value}.")
        return component

    # ------------------------------------------------------------------ #
    #  State machine
    # ------------------------------------------------------------------ #

    def _transition(self, target: StartupState) -> None:
        if not is_valid_transition(self._state, target):
            raise _InvalidStateTransition(self._state, target)
        prev = self._state
        self._state = target
        self._history.append(StartupRecord(state=target))
        logger.info("Bridge state: %s → %s", prev.value, target.value)

    async def _advance(self, target: StartupState, step: Step) -> None:
        """Run *step*, then enter *target*; on failure enter FAILED."""
        if not is_valid_transition(self._state, target):
            raise _InvalidStateTransition(self._state, target)
        try:
            result = step()
            if inspect.isawaitable(result):
                await result
        except Exception as exc:
            self._failed_state = target
            self._error_message = f"{type(exc).__name__}: {exc}"
            logger.error("Startup step '%s' failed: %s", target.value, self._error_message)
            self._transition(StartupState.FAILED)
            raise StartupError(target, exc) from exc
        self._transition(target)

    # ------------------------------------------------------------------ #
    #  Startup steps
    # ------------------------------------------------------------------ #

    def load_config(self) -> None:
        """Apply the file config over the defaults and reconfigure logging."""
        self.config = apply_file_config(self._file_config)
        if self._configure_logging:
            configure_from_config(self.config.logging, self._bootstrap_log_fpath)
        if self.config.auth.bot_token:
            secret_redaction_filter.register(self.config.auth.bot_token)
        logger.info(
            "Configuration applied: domain=%s homeserver=%s",
            self.config.bridge.domain,
            self.config.bridge.homeserver_url,
        )

    def load_registration(self) -> None:
        config = self._needs(self.config, "config")
        self.registration = load_registration(self._registration_path)
        secret_redaction_filter.register(self.registration.as_token)
        secret_redaction_filter.register(self.registration.hs_token)
        self.bot_user_id = f"@{self.registration.sender_localpart}:{config.bridge.domain}"
        logger.info("Registration '%s' loaded; bot user is %s", self.registration.id, self.bot_user_id)

    def build_client_factory(self) -> None:
        config = self._needs(self.config, "config")
        registration = self._needs(self.registration, "registration")
        self.client_factory = ClientFactory(
            app_service_user_id=self._needs(self.bot_user_id, "bot user id"),
            token=registration.as_token,
            url=config.bridge.homeserver_url,
        )

    def wire_controller(self) -> None:
        """Build the controller, the listener and the bot, then bind callbacks.

        Raises:
            CallbackWiringError: If the bot cannot be constructed or does
                not provide every handler.
        """
        config = self._needs(self.config, "config")
        bot_user_id = self._needs(self.bot_user_id, "bot user id")
        self.controller = DispatchController()
        self.bridge = self._bridge_factory(
            registration=self._needs(self.registration, "registration"),
            controller=self.controller,
            client_factory=self._needs(self.client_factory, "client factory"),
            config=config,
        )
        try:
            self.bot = self._bot_factory(bot_user_id, config, self.bridge)
        except Exception as exc:
            raise CallbackWiringError(f"Failed to construct the Discord bot: {exc}") from exc
        self.controller.bind(BridgeCallbacks.from_handler(self.bot.room_handler))

    async def init_store(self) -> None:
        await self._needs(self.bot, "bot").init()

    async def start_listener(self) -> None:
        await self._needs(self.bridge, "bridge").run(self._port, self._host)
        logger.info("Application service listening on %s:%d", self._host, self._port)

    async def start_remote_client(self) -> None:
        await self._needs(self.bot, "bot").run()

    # ------------------------------------------------------------------ #
    #  Lifecycle
    # ------------------------------------------------------------------ #

    async def start(self) -> None:
        """Execute the full startup sequence.

        Raises:
            StartupError: If any step fails; ``state`` is then FAILED and
                ``failed_state`` names the step.
        """
        if self._state != StartupState.PENDING:
            raise _InvalidStateTransition(self._state, StartupState.CONFIG_LOADED)

        await self._advance(StartupState.CONFIG_LOADED, self.load_config)
        await self._advance(StartupState.REGISTRATION_LOADED, self.load_registration)
        await self._advance(StartupState.CLIENT_FACTORY_BUILT, self.build_client_factory)
        await self._advance(StartupState.CONTROLLER_WIRED, self.wire_controller)
        await self._advance(StartupState.STORE_INITIALIZED, self.init_store)
        await self._advance(StartupState.LISTENER_STARTED, self.start_listener)
        await self._advance(StartupState.REMOTE_CLIENT_STARTED, self.start_remote_client)

        self._started_at = datetime.now(timezone.utc)
        self._transition(StartupState.RUNNING)
        logger.info("Bridge is RUNNING.")

    def request_stop(self) -> None:
        """Ask :meth:`serve` to return.  Safe to call from a signal handler."""
        if not self._stop_requested.is_set():
            logger.info("Stop requested.")
        self._stop_requested.set()

    async def serve(self) -> None:
        """Wait until a stop is requested or the listener stops on its own.

        Raises:
            CallbackNotBoundError: If an event reached the controller before
                callbacks were bound; the listener has already been shut down.
        """
        if self._state != StartupState.RUNNING:
            raise RuntimeError(f"Cannot serve in state: {self._state.value}")
        bridge = self._needs(self.bridge, "bridge")
        stop_wait = asyncio.ensure_future(self._stop_requested.wait())
        listener_wait = asyncio.ensure_future(bridge.wait_closed())
        done, pending = await asyncio.wait(
            {stop_wait, listener_wait}, return_when=asyncio.FIRST_COMPLETED
        )
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        if bridge.fatal_error is not None:
            raise bridge.fatal_error
        if listener_wait in done and not self._stop_requested.is_set():
            logger.error("Application-service listener stopped unexpectedly.")

    async def stop(self) -> None:
        """Tear down whatever was started, in reverse order.

        Safe to call after a failed start.  Errors during teardown are
        logged and do not prevent the remaining components from closing.
        """
        if self._state in (StartupState.STOPPING, StartupState.STOPPED):
            logger.info("Stop requested but bridge is already %s.", self._state.value)
            return
        if self._state == StartupState.PENDING:
            logger.info("Stop requested before start; nothing to do.")
            return
        if self._state not in (StartupState.RUNNING, StartupState.FAILED):
            # Startup was interrupted between steps.
            logger.warning("Stop requested while in %s; forcing FAILED.", self._state.value)
            self._transition(StartupState.FAILED)
        self._transition(StartupState.STOPPING)

        teardown: List[Tuple[str, Callable[[], Awaitable[None]]]] = []
        if self.bot is not None and (
            self._reached(StartupState.REMOTE_CLIENT_STARTED)
            or self._failed_state == StartupState.REMOTE_CLIENT_STARTED
        ):
            teardown.append(("remote client", self.bot.stop_client))
        if self.bridge is not None and self._reached(StartupState.LISTENER_STARTED):
            teardown.append(("listener", self.bridge.stop))
        elif self.client_factory is not None:
            teardown.append(("homeserver clients", self.client_factory.close))
        if self.bot is not None and self._reached(StartupState.STORE_INITIALIZED):
            teardown.append(("store", self.bot.close_store))

        for name, step in teardown:
            try:
                logger.info("Stopping %s...", name)
                await step()
            except Exception as exc:
                logger.exception("Error while stopping %s: %s", name, exc)

        self._transition(StartupState.STOPPED)
        logger.info("Bridge stopped.")

    # ------------------------------------------------------------------ #
    #  Status reporting
    # ------------------------------------------------------------------ #

    def get_status(self) -> StartupStatus:
        status = StartupStatus(
            state=self._state,
            failed_state=self._failed_state,
            error_message=self._error_message,
            bot_user_id=self.bot_user_id,
            port=self._port if self._reached(StartupState.LISTENER_STARTED) else None,
            started_at=self._started_at,
            history=self.history,
        )
        status.compute_uptime()
        return status
