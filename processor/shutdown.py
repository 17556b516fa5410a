"""
Processor - Shutdown Coordinator.

============================================================
RESPONSIBILITY
============================================================
Runs the application lifecycle and tears it down exactly once.

- Starts the application factory as a task
- Collects termination triggers (signals, natural exit) on one
  channel with a single consumer
- Teardown body runs once, behind a one-shot gate
- Always ends with a success exit code after teardown

============================================================
STATES
============================================================
    INIT -> STARTING -> RUNNING -> STOPPING -> STOPPED

A trigger that arrives while STARTING waits for the start to
settle before stopping. A start that fails never blocks
termination.

============================================================
"""

import asyncio
import logging
import signal
import sys
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Tuple

from core.exceptions import ShutdownError, StartupError, wrap_exception
from core.state_manager import LifecycleState, StateManager

from .constants import EXIT_STARTUP_FAILURE, EXIT_SUCCESS
from .models import AppHandle


AppFactory = Callable[[], Awaitable[AppHandle]]

TRIGGER_EXIT = "exit"


def default_signals() -> Tuple[signal.Signals, ...]:
    """Termination signals available on this platform."""
    names = ("SIGINT", "SIGTERM", "SIGQUIT")
    if sys.platform == "win32":
        names = ("SIGINT", "SIGBREAK")
    return tuple(getattr(signal, n) for n in names if hasattr(signal, n))


class ShutdownCoordinator:
    """
    Single consumer of shutdown triggers.

    Producers call ``trigger(reason)``; the consumer inside
    ``run()`` reacts to the first one. ``shutdown()`` may also be
    awaited directly, any number of times.
    """

    def __init__(
        self,
        app_factory: AppFactory,
        signals: Optional[Iterable[signal.Signals]] = None,
        exit_on_startup_failure: bool = True,
    ):
        self._app_factory = app_factory
        self._signals = tuple(signals) if signals is not None else default_signals()
        self._exit_on_startup_failure = exit_on_startup_failure
        self._state = StateManager()
        self._triggers: Optional[asyncio.Queue] = None
        self._app_task: Optional[asyncio.Task] = None
        self._teardown_task: Optional[asyncio.Task] = None
        self._exit_watch: Optional[asyncio.Task] = None
        self._installed: Dict[signal.Signals, Any] = {}
        self._teardown_runs = 0
        self._logger = logging.getLogger(__name__)

    # --------------------------------------------------------
    # Properties
    # --------------------------------------------------------

    @property
    def state(self) -> LifecycleState:
        return self._state.state

    @property
    def state_manager(self) -> StateManager:
        return self._state

    @property
    def teardown_runs(self) -> int:
        """How many times the teardown body executed (0 or 1)."""
        return self._teardown_runs

    @property
    def app_task(self) -> Optional[asyncio.Task]:
        return self._app_task

    # --------------------------------------------------------
    # Triggers
    # --------------------------------------------------------

    def _channel(self) -> asyncio.Queue:
        if self._triggers is None:
            self._triggers = asyncio.Queue()
        return self._triggers

    def trigger(self, reason: str) -> None:
        """Request shutdown. Safe to call from signal callbacks, repeatedly."""
        self._logger.debug(f"Shutdown trigger: {reason}")
        self._channel().put_nowait(reason)

    def install_signal_handlers(self) -> None:
        """Route termination signals into the trigger channel."""
        loop = asyncio.get_running_loop()
        for sig in self._signals:
            if sys.platform == "win32":
                self._installed[sig] = signal.getsignal(sig)
                signal.signal(
                    sig,
                    lambda signum, frame, s=sig: loop.call_soon_threadsafe(self.trigger, s.name),
                )
            else:
                loop.add_signal_handler(sig, self.trigger, sig.name)
                self._installed[sig] = None

    def remove_signal_handlers(self) -> None:
        if not self._installed:
            return
        loop = asyncio.get_running_loop()
        for sig, previous in self._installed.items():
            try:
                if sys.platform == "win32":
                    signal.signal(sig, previous)
                else:
                    loop.remove_signal_handler(sig)
            except (ValueError, RuntimeError) as e:
                self._logger.debug(f"Could not restore handler for {sig!r}: {e}")
        self._installed = {}

    # --------------------------------------------------------
    # Lifecycle
    # --------------------------------------------------------

    def start(self) -> asyncio.Task:
        """Start the application factory. Returns the pending start."""
        if self._app_task is None:
            self._state.transition_to(LifecycleState.STARTING, "Starting workers")
            self._app_task = asyncio.ensure_future(self._app_factory())
        return self._app_task

    async def run(self) -> int:
        """
        Run the full lifecycle until the first trigger is handled.

        Returns:
            Exit code for the host process
        """
        self.install_signal_handlers()
        app_task = self.start()
        channel = self._channel()
        first_trigger = asyncio.ensure_future(channel.get())

        try:
            await asyncio.wait({app_task, first_trigger}, return_when=asyncio.FIRST_COMPLETED)

            if not first_trigger.done():
                failure = self._startup_failure(app_task)
                if failure is not None and self._exit_on_startup_failure:
                    self._logger.error(f"failed to start workers: {failure.to_log_format()}")
                    first_trigger.cancel()
                    self.remove_signal_handlers()
                    return EXIT_STARTUP_FAILURE
                if failure is None:
                    self._state.transition_to(LifecycleState.RUNNING, "Workers started")
                    self._exit_watch = asyncio.ensure_future(self._watch_natural_exit(app_task.result()))
                else:
                    self._logger.error(f"failed to start workers: {failure.to_log_format()}")
                    self.trigger(TRIGGER_EXIT)

            reason = await first_trigger
            self._logger.info(f"Shutdown requested: {reason}")
            await self.shutdown(reason)
        finally:
            if not first_trigger.done():
                first_trigger.cancel()
            if self._exit_watch is not None and not self._exit_watch.done():
                self._exit_watch.cancel()
            self.remove_signal_handlers()

        return EXIT_SUCCESS

    def _startup_failure(self, app_task: asyncio.Task) -> Optional[StartupError]:
        if app_task.cancelled():
            return StartupError("Start was cancelled")
        exc = app_task.exception()
        if exc is not None:
            return wrap_exception(exc, StartupError)
        handle = app_task.result()
        if handle.startup_error is not None:
            return wrap_exception(handle.startup_error, StartupError)
        return None

    async def _watch_natural_exit(self, handle: AppHandle) -> None:
        await handle.wait_closed()
        self.trigger(TRIGGER_EXIT)

    async def shutdown(self, reason: str = "requested") -> None:
        """Tear down once; concurrent and later calls wait for that one run."""
        if self._teardown_task is None:
            self._teardown_task = asyncio.ensure_future(self._teardown(reason))
        await asyncio.shield(self._teardown_task)

    async def _teardown(self, reason: str) -> None:
        self._teardown_runs += 1
        transition = self._state.transition_to(
            LifecycleState.STOPPING, f"Shutdown: {reason}", triggered_by=reason
        )
        await self._state.notify(transition)
        self._logger.info("closing workers...")
        try:
            app = await self._realized_app()
            if app is not None:
                self._logger.info(
                    "closing workers:\n" + "\n".join(f" - {n}" for n in app.worker_names)
                )
                await app.stop()
                self._logger.info("workers closed")
        except Exception as e:
            error = wrap_exception(e, ShutdownError)
            self._logger.error(f"failed to close workers: {error.to_log_format()}")
        finally:
            transition = self._state.transition_to(LifecycleState.STOPPED, "Teardown complete")
            await self._state.notify(transition)

    async def _realized_app(self) -> Optional[AppHandle]:
        if self._app_task is None:
            return None
        if self._app_task.done() and self._app_task.cancelled():
            self._logger.error("failed to start workers: start was cancelled")
            return None
        try:
            return await asyncio.shield(self._app_task)
        except Exception as e:
            error = wrap_exception(e, StartupError)
            self._logger.error(f"failed to start workers: {error.to_log_format()}")
            return None


__all__ = [
    "AppFactory",
    "ShutdownCoordinator",
    "default_signals",
]
