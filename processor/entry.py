"""
Processor - Runtime Entry.

============================================================
RESPONSIBILITY
============================================================
The contract of a runtime entry module.

- Exposes a factory that returns the application handle
- Runs the full lifecycle (logging, signals, shutdown) only
  when the module is the program entry point, never on import

============================================================
USAGE
============================================================
A generated or hand-written entry module::

    from processor.entry import create_entry, is_entry_point

    entry = create_entry(
        ["myapp.workers.email", "myapp.workers.reports"],
        {"host": "localhost", "port": 6379},
    )
    create_workers_app = entry.create_workers_app

    if __name__ == "__main__":
        sys.exit(entry.main(is_entry_point(__file__)))

============================================================
"""

import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence, Union

from dotenv import load_dotenv

from core.logging_setup import setup_logging

from .config import ConnectionConfig, ProcessorSettings
from .constants import EXIT_SUCCESS
from .loader import Loader, module_loaders
from .models import AppHandle
from .registry import WorkerRegistry
from .shutdown import ShutdownCoordinator
from .supervisor import create_workers_app


def is_entry_point(
    module_file: Union[str, Path],
    argv: Optional[Sequence[str]] = None,
    cwd: Optional[Union[str, Path]] = None,
) -> bool:
    """
    Check whether a module file is the script the host invoked.

    Compares the resolved path of ``argv[0]`` (relative to ``cwd``)
    with the resolved module path. Any failure means "not main".
    """
    try:
        if argv is None:
            argv = sys.argv
        if not argv or not argv[0]:
            return False
        base = Path(cwd) if cwd is not None else Path(os.getcwd())
        invoked = (base / argv[0]).resolve()
        return invoked == Path(module_file).resolve()
    except (OSError, RuntimeError, TypeError, ValueError):
        return False


class Entry:
    """Factory plus guarded lifecycle runner for one worker set."""

    def __init__(
        self,
        loaders: Sequence[Loader],
        defaults: Union[ConnectionConfig, Mapping[str, Any], None] = None,
        env: Optional[Mapping[str, str]] = None,
    ):
        self._loaders = list(loaders)
        self._defaults = defaults
        self._env = env

    async def create_workers_app(self) -> AppHandle:
        """Build a fresh registry and start the worker set."""
        registry = WorkerRegistry.from_env(self._env)
        return await create_workers_app(
            loaders=self._loaders,
            defaults=self._defaults,
            env=self._env,
            registry=registry,
        )

    async def run(self) -> int:
        """Run start + signal handling + teardown; returns the exit code."""
        coordinator = ShutdownCoordinator(self.create_workers_app)
        return await coordinator.run()

    def main(self, is_main: bool) -> Optional[int]:
        """
        Run the lifecycle if this module is the entry point.

        Returns:
            Exit code, or None when not the entry point
        """
        if not is_main:
            return None

        load_dotenv(override=False)
        settings = ProcessorSettings.from_env(self._env)
        setup_logging(level=settings.log_level, log_format=settings.log_format)

        try:
            return asyncio.run(self.run())
        except KeyboardInterrupt:
            logging.getLogger(__name__).info("Interrupted")
            return EXIT_SUCCESS


def create_entry(
    worker_modules: Sequence[str],
    defaults: Union[ConnectionConfig, Mapping[str, Any], None] = None,
    env: Optional[Mapping[str, str]] = None,
) -> Entry:
    """Create an entry for dotted worker-definition modules."""
    return Entry(module_loaders(worker_modules), defaults=defaults, env=env)


__all__ = [
    "Entry",
    "create_entry",
    "is_entry_point",
]
