"""
Processor - Supervisor.

============================================================
RESPONSIBILITY
============================================================
Turns a cold start into a running application handle.

    resolve config -> install connection -> load modules
        -> log worker names -> attach error listeners (all)
        -> start workers (each) -> return handle

- Config is installed before any module loads, so workers built
  during loading see a valid connection
- Every worker gets its error listener before any worker starts
- Starting never waits on a run; runs go on until stopped
- A worker's failure is logged and never reaches its siblings

============================================================
"""

import asyncio
import inspect
import logging
from typing import Any, Mapping, Optional, Sequence, Union

from core.exceptions import (
    ErrorClassification,
    StartupError,
    WorkerRuntimeError,
    WorkerStartError,
    classify_exception,
    wrap_exception,
)
from core.logging_setup import install_stream_guards

from .config import ConnectionConfig, resolve_connection_config
from .loader import Loader, ModuleLoader
from .models import AppHandle
from .registry import WorkerRegistry
from .worker import Worker


class Supervisor:
    """
    Owns the start sequence of the worker set.

    ``start()`` runs at most once; later calls return the same
    handle.
    """

    def __init__(
        self,
        registry: WorkerRegistry,
        loaders: Optional[Sequence[Loader]] = None,
        defaults: Union[ConnectionConfig, Mapping[str, Any], None] = None,
        env: Optional[Mapping[str, str]] = None,
        guard_streams: bool = True,
    ):
        self._registry = registry
        self._module_loader = ModuleLoader(loaders)
        self._defaults = defaults
        self._env = env
        self._guard_streams = guard_streams
        self._handle: Optional[AppHandle] = None
        self._start_task: Optional[asyncio.Task] = None
        self._logger = logging.getLogger(__name__)

    @property
    def registry(self) -> WorkerRegistry:
        return self._registry

    @property
    def handle(self) -> Optional[AppHandle]:
        return self._handle

    async def start(self) -> AppHandle:
        """
        Start the worker set.

        The first call runs the start sequence; concurrent and later
        calls wait for that run and get the same handle.

        Returns:
            AppHandle; ``startup_error`` is set when initialization
            failed, in which case no worker was started
        """
        if self._start_task is None:
            self._start_task = asyncio.ensure_future(self._start())
        return await asyncio.shield(self._start_task)

    async def _start(self) -> AppHandle:
        if self._guard_streams:
            install_stream_guards()

        try:
            config = resolve_connection_config(self._defaults, self._env)
            self._registry.set_connection(config)
            self._logger.info(f"Queue connection: {config.describe()}")

            await self._module_loader.load_all(self._registry)

            workers = self._registry.workers
            self._logger.info(
                "starting workers:\n" + "\n".join(f" - {w.name}" for w in workers)
            )
        except Exception as e:
            error = wrap_exception(e, StartupError, stage="initialize")
            self._logger.error(
                f"failed to initialize workers: {error.to_log_format()}",
                exc_info=True,
            )
            self._handle = AppHandle(
                stop=self._registry.stop_all,
                workers=self._registry.workers,
                startup_error=error,
            )
            return self._handle

        for worker in workers:
            worker.add_error_listener(self._error_listener(worker))

        tasks = []
        for worker in workers:
            task = self._start_worker(worker)
            if task is not None:
                tasks.append(task)

        self._logger.info(f"workers started ({len(tasks)}/{len(workers)})")

        self._handle = AppHandle(
            stop=self._registry.stop_all,
            workers=workers,
            tasks=tuple(tasks),
        )
        return self._handle

    # --------------------------------------------------------
    # Per-worker isolation
    # --------------------------------------------------------

    def _error_listener(self, worker: Worker):
        def on_error(error: BaseException) -> None:
            wrapped = wrap_exception(error, WorkerRuntimeError, worker_name=worker.name)
            self._logger.error(f"worker error: {wrapped.to_log_format()}")
        return on_error

    def _start_worker(self, worker: Worker) -> Optional[asyncio.Task]:
        coro = None
        try:
            coro = worker.run()
            task = asyncio.get_running_loop().create_task(coro, name=f"worker:{worker.name}")
        except Exception as e:
            if inspect.iscoroutine(coro):
                coro.close()
            error = wrap_exception(e, WorkerStartError, worker_name=worker.name)
            self._logger.error(f"failed to start worker: {error.to_log_format()}")
            return None
        task.add_done_callback(self._monitor(worker))
        return task

    def _monitor(self, worker: Worker):
        def on_done(task: asyncio.Task) -> None:
            if task.cancelled():
                self._logger.debug(f"Worker task cancelled: {worker.name}")
                return
            exc = task.exception()
            if exc is None:
                self._logger.debug(f"Worker finished: {worker.name}")
                return
            error = wrap_exception(exc, WorkerStartError, worker_name=worker.name)
            level = logging.ERROR
            if classify_exception(exc) is ErrorClassification.TRANSIENT:
                level = logging.WARNING
            self._logger.log(
                level,
                f"worker run error: {error.to_log_format()}",
                exc_info=exc,
                extra={"error": error.to_dict()},
            )
        return on_done


async def create_workers_app(
    loaders: Optional[Sequence[Loader]] = None,
    defaults: Union[ConnectionConfig, Mapping[str, Any], None] = None,
    env: Optional[Mapping[str, str]] = None,
    registry: Optional[WorkerRegistry] = None,
) -> AppHandle:
    """
    Application factory.

    Builds a registry from the environment (unless one is given),
    runs the supervisor and returns its handle.
    """
    if registry is None:
        registry = WorkerRegistry.from_env(env)
    supervisor = Supervisor(registry, loaders=loaders, defaults=defaults, env=env)
    return await supervisor.start()


__all__ = [
    "Supervisor",
    "create_workers_app",
]
