"""
Processor - Workers.

============================================================
RESPONSIBILITY
============================================================
Long-running job consumers.

- Worker: lifecycle contract (run once, close idempotently,
  error-listener channel)
- QueueWorker: consumes JSON jobs from a Redis list

Workers never start themselves on construction or on
registration; the supervisor decides when ``run()`` is called.

============================================================
"""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Coroutine, List, Optional, Set, Union

from core.exceptions import ConfigurationError, WorkerRuntimeError, WorkerStartError

from .config import ConnectionConfig
from .constants import (
    DEFAULT_CLOSE_TIMEOUT_SECONDS,
    DEFAULT_POLL_TIMEOUT_SECONDS,
    DEFAULT_QUEUE_PREFIX,
)
from .queue import Job, queue_key


ErrorListener = Callable[[BaseException], None]
JobHandler = Callable[[Job], Union[Awaitable[Any], Any]]


# ============================================================
# WORKER CONTRACT
# ============================================================

class Worker:
    """
    Base class for supervised workers.

    Subclasses implement ``process()``, which runs until
    ``close()`` is called. The default implementation idles.
    """

    def __init__(self, name: str, close_timeout: float = DEFAULT_CLOSE_TIMEOUT_SECONDS):
        if not name:
            raise ConfigurationError("Worker name must not be empty", config_key="name")
        self.name = name
        self._close_timeout = close_timeout
        self._error_listeners: List[ErrorListener] = []
        self._started = False
        self._closed = False
        self._stop_event = asyncio.Event()
        self._finished = asyncio.Event()
        self._logger = logging.getLogger(f"{__name__}.{name}")

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"

    @property
    def started(self) -> bool:
        return self._started

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def stopping(self) -> bool:
        """True once ``close()`` was requested."""
        return self._stop_event.is_set()

    # --------------------------------------------------------
    # Error channel
    # --------------------------------------------------------

    def add_error_listener(self, listener: ErrorListener) -> None:
        self._error_listeners.append(listener)

    def remove_error_listener(self, listener: ErrorListener) -> None:
        if listener in self._error_listeners:
            self._error_listeners.remove(listener)

    def emit_error(self, error: BaseException) -> None:
        """Deliver an error to every listener. Never raises."""
        if not self._error_listeners:
            self._logger.error(f"Unobserved worker error: {error}")
            return
        for listener in list(self._error_listeners):
            try:
                listener(error)
            except Exception as e:
                self._logger.error(f"Error listener failed: {e}", exc_info=True)

    # --------------------------------------------------------
    # Lifecycle
    # --------------------------------------------------------

    def run(self) -> Coroutine[Any, Any, None]:
        """
        Start the worker.

        Returns the coroutine that runs until the worker is closed.
        Calling it a second time raises ``WorkerStartError`` at
        once, before anything is scheduled.
        """
        if self._started:
            raise WorkerStartError("Worker already started", worker_name=self.name)
        if self._closed:
            raise WorkerStartError("Worker already closed", worker_name=self.name)
        self._started = True
        return self._run_until_closed()

    async def _run_until_closed(self) -> None:
        try:
            await self.process()
        finally:
            self._finished.set()

    async def process(self) -> None:
        await self._stop_event.wait()

    async def close(self) -> None:
        """Stop the worker and release its resources. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._stop_event.set()
        if self._started:
            try:
                await asyncio.wait_for(self._finished.wait(), timeout=self._close_timeout)
            except asyncio.TimeoutError:
                self._logger.warning(
                    f"Worker did not finish within {self._close_timeout}s: {self.name}"
                )
        await self.on_close()

    async def on_close(self) -> None:
        """Release resources after the run loop has ended."""


# ============================================================
# REDIS QUEUE WORKER
# ============================================================

class QueueWorker(Worker):
    """
    Consumes jobs from a Redis list.

    Jobs are processed with at most ``concurrency`` handlers in
    flight. A failing handler is reported on the error channel and
    the worker keeps consuming.
    """

    def __init__(
        self,
        name: str,
        handler: JobHandler,
        connection: ConnectionConfig,
        queue_name: Optional[str] = None,
        concurrency: int = 1,
        prefix: str = DEFAULT_QUEUE_PREFIX,
        poll_timeout: int = DEFAULT_POLL_TIMEOUT_SECONDS,
        client: Optional[Any] = None,
        close_timeout: float = DEFAULT_CLOSE_TIMEOUT_SECONDS,
    ):
        super().__init__(name, close_timeout=close_timeout)
        if concurrency < 1:
            raise ConfigurationError(
                "Worker concurrency must be at least 1",
                config_key="concurrency",
                actual_value=concurrency,
            )
        self.queue_name = queue_name or name
        self.key = queue_key(self.queue_name, prefix)
        self._handler = handler
        self._connection = connection
        self._concurrency = concurrency
        self._poll_timeout = poll_timeout
        self._client = client
        self._owns_client = client is None
        self.processed = 0
        self.failed = 0

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = self._connection.create_client()
        return self._client

    async def process(self) -> None:
        client = self._get_client()
        if self._connection.lazy_connect is False:
            await client.ping()

        slots = asyncio.Semaphore(self._concurrency)
        in_flight: Set[asyncio.Task] = set()

        def _done(task: asyncio.Task) -> None:
            in_flight.discard(task)
            slots.release()

        while not self.stopping:
            await slots.acquire()
            if self.stopping:
                slots.release()
                break
            try:
                item = await client.blpop([self.key], timeout=self._poll_timeout)
            except BaseException:
                slots.release()
                raise
            if item is None:
                slots.release()
                continue
            _, raw = item
            task = asyncio.create_task(self._handle(raw), name=f"{self.name}:job")
            in_flight.add(task)
            task.add_done_callback(_done)

        if in_flight:
            await asyncio.gather(*in_flight, return_exceptions=True)

    async def _handle(self, raw: Any) -> None:
        job_id = None
        try:
            job = Job.from_json(raw)
            job_id = job.id
            result = self._handler(job)
            if inspect.isawaitable(result):
                await result
            self.processed += 1
        except Exception as e:
            self.failed += 1
            self.emit_error(WorkerRuntimeError(
                f"Job failed: {e}",
                worker_name=self.name,
                job_id=job_id,
                cause=e,
            ))

    async def on_close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


__all__ = [
    "ErrorListener",
    "JobHandler",
    "Worker",
    "QueueWorker",
]
