"""
Processor - Worker Registry.

============================================================
RESPONSIBILITY
============================================================
Holds the worker set of one runtime process.

- One-time connection install, before any worker is defined
- Ordered registration (order == module-load order)
- Include/exclude filtering by worker name
- Idempotent stop-all

The registry is an explicitly constructed service passed by
reference to loaders, the supervisor and the shutdown path.
Registering a worker never starts it.

============================================================
"""

import asyncio
import logging
from typing import Any, List, Mapping, Optional, Tuple

from core.exceptions import RegistryError, ShutdownError

from .config import ConnectionConfig
from .models import WorkerFilter
from .worker import JobHandler, QueueWorker, Worker


class WorkerRegistry:
    """
    Registry of supervised workers.

    Handles:
    - Connection injection
    - Worker registration in deterministic order
    - Stopping all workers exactly once
    """

    def __init__(self, worker_filter: Optional[WorkerFilter] = None):
        self._filter = worker_filter or WorkerFilter()
        self._connection: Optional[ConnectionConfig] = None
        self._workers: List[Worker] = []
        self._skipped: List[str] = []
        self._stop_task: Optional[asyncio.Task] = None
        self._logger = logging.getLogger(__name__)

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "WorkerRegistry":
        """Create a registry whose filter comes from the environment."""
        return cls(worker_filter=WorkerFilter.from_env(env))

    async def __aenter__(self) -> "WorkerRegistry":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop_all()

    # --------------------------------------------------------
    # Connection
    # --------------------------------------------------------

    def set_connection(self, config: ConnectionConfig) -> None:
        """
        Install the shared connection configuration.

        Raises:
            RegistryError: If a connection was already installed
        """
        if self._connection is not None:
            raise RegistryError("Connection already installed")
        self._connection = config
        self._logger.debug(f"Connection installed: {config.describe()}")

    @property
    def has_connection(self) -> bool:
        return self._connection is not None

    @property
    def connection(self) -> ConnectionConfig:
        if self._connection is None:
            raise RegistryError("Connection not installed; call set_connection() first")
        return self._connection

    # --------------------------------------------------------
    # Registration
    # --------------------------------------------------------

    @property
    def worker_filter(self) -> WorkerFilter:
        return self._filter

    @property
    def workers(self) -> Tuple[Worker, ...]:
        """Registered workers, in registration order."""
        return tuple(self._workers)

    @property
    def worker_names(self) -> List[str]:
        return [w.name for w in self._workers]

    @property
    def skipped(self) -> List[str]:
        """Names rejected by the worker filter."""
        return list(self._skipped)

    def get(self, name: str) -> Optional[Worker]:
        for worker in self._workers:
            if worker.name == name:
                return worker
        return None

    def register(self, worker: Worker) -> bool:
        """
        Register a worker.

        Args:
            worker: Worker instance, not yet started

        Returns:
            False if the worker filter skipped it

        Raises:
            RegistryError: On duplicate names or after stop
        """
        if self._stop_task is not None:
            raise RegistryError("Registry is stopped", worker_name=worker.name)
        if not self._filter.allows(worker.name):
            self._skipped.append(worker.name)
            self._logger.info(f"Skipping worker (filtered): {worker.name}")
            return False
        if self.get(worker.name) is not None:
            raise RegistryError(
                f"Worker already registered: {worker.name}",
                worker_name=worker.name,
            )
        self._workers.append(worker)
        self._logger.debug(f"Registered worker: {worker.name}")
        return True

    def define_worker(
        self,
        name: str,
        handler: JobHandler,
        **options: Any,
    ) -> Optional[QueueWorker]:
        """
        Build a queue worker on the installed connection and register it.

        Returns:
            The worker, or None if the filter skipped it
        """
        if not self._filter.allows(name):
            self._skipped.append(name)
            self._logger.info(f"Skipping worker (filtered): {name}")
            return None
        worker = QueueWorker(name, handler, self.connection, **options)
        self.register(worker)
        return worker

    # --------------------------------------------------------
    # Lifecycle
    # --------------------------------------------------------

    @property
    def stopped(self) -> bool:
        return self._stop_task is not None and self._stop_task.done()

    async def stop_all(self) -> None:
        """
        Close every worker, in reverse registration order.

        The first call does the work; concurrent and later calls wait
        for it and return normally.

        Raises:
            ShutdownError: To the first caller, if any worker failed to
                close
        """
        first = self._stop_task is None
        if first:
            self._stop_task = asyncio.ensure_future(self._stop_all())
        try:
            await asyncio.shield(self._stop_task)
        except ShutdownError as e:
            if first:
                raise
            self._logger.debug(f"Stop already reported: {e}")

    async def _stop_all(self) -> None:
        failed = []
        for worker in reversed(self._workers):
            try:
                await worker.close()
                self._logger.debug(f"Closed worker: {worker.name}")
            except Exception as e:
                failed.append(worker.name)
                self._logger.error(f"Failed to close worker {worker.name}: {e}")
        if failed:
            raise ShutdownError(
                f"Failed to close {len(failed)} worker(s)",
                workers=failed,
            )


__all__ = [
    "WorkerRegistry",
]
