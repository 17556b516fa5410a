"""
Processor - Models.

============================================================
RESPONSIBILITY
============================================================
Data models shared by the supervisor, registry and shutdown
coordinator.

- AppHandle: what the application factory returns
- WorkerFilter: include/exclude worker selection by name

============================================================
"""

import asyncio
import os
from dataclasses import dataclass, field
from typing import Awaitable, Callable, FrozenSet, Mapping, Optional, Tuple

from .constants import ENV_WORKERS_EXCEPT, ENV_WORKERS_ONLY
from .worker import Worker


# ============================================================
# APP HANDLE
# ============================================================

@dataclass(frozen=True)
class AppHandle:
    """
    Running application handle.

    Created once per supervisor start and never mutated after
    return. ``workers`` is the registry content at return time.
    """

    stop: Callable[[], Awaitable[None]]
    """Stops every worker. Safe to call repeatedly."""

    workers: Tuple[Worker, ...] = ()
    tasks: Tuple[asyncio.Task, ...] = ()
    """Run tasks spawned for the workers that started."""

    startup_error: Optional[BaseException] = None
    """Set when initialization failed and nothing was started."""

    @property
    def started(self) -> bool:
        return self.startup_error is None

    @property
    def worker_names(self) -> Tuple[str, ...]:
        return tuple(w.name for w in self.workers if w is not None and w.name)

    async def wait_closed(self) -> None:
        """Wait until every run task has finished."""
        if self.tasks:
            await asyncio.gather(*self.tasks, return_exceptions=True)


# ============================================================
# WORKER FILTER
# ============================================================

def _split_names(raw: Optional[str]) -> FrozenSet[str]:
    if not raw:
        return frozenset()
    return frozenset(part.strip() for part in raw.split(",") if part.strip())


@dataclass(frozen=True)
class WorkerFilter:
    """Select workers by name at registration time."""

    only: FrozenSet[str] = field(default_factory=frozenset)
    exclude: FrozenSet[str] = field(default_factory=frozenset)

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "WorkerFilter":
        """Load the filter from the dev wrapper's environment values."""
        if env is None:
            env = os.environ
        return cls(
            only=_split_names(env.get(ENV_WORKERS_ONLY)),
            exclude=_split_names(env.get(ENV_WORKERS_EXCEPT)),
        )

    @property
    def is_active(self) -> bool:
        return bool(self.only or self.exclude)

    def allows(self, name: str) -> bool:
        """Check whether a worker with this name should be registered."""
        if self.only and name not in self.only:
            return False
        return name not in self.exclude


__all__ = [
    "AppHandle",
    "WorkerFilter",
]
