"""
Shared fixtures for the worker runtime tests.

Fake workers run entirely in-process; no Redis server is needed.
"""

import asyncio
from typing import List, Optional

import pytest

from processor.worker import Worker


class FakeWorker(Worker):
    """Worker double that records its lifecycle."""

    def __init__(
        self,
        name: str,
        fail_on_run: bool = False,
        run_error: Optional[BaseException] = None,
        close_error: Optional[BaseException] = None,
        finish_immediately: bool = False,
        journal: Optional[List[str]] = None,
    ):
        super().__init__(name, close_timeout=1.0)
        self.fail_on_run = fail_on_run
        self.run_error = run_error
        self.close_error = close_error
        self.finish_immediately = finish_immediately
        self.journal = journal if journal is not None else []
        self.run_calls = 0
        self.close_calls = 0
        self.listeners_at_start: Optional[int] = None

    @property
    def listener_count(self) -> int:
        return len(self._error_listeners)

    def run(self):
        self.run_calls += 1
        self.journal.append(f"run:{self.name}")
        if self.fail_on_run:
            raise RuntimeError(f"{self.name} refused to start")
        return super().run()

    async def process(self) -> None:
        if self.run_error is not None:
            raise self.run_error
        if self.finish_immediately:
            return
        await super().process()

    async def on_close(self) -> None:
        self.close_calls += 1
        self.journal.append(f"close:{self.name}")
        if self.close_error is not None:
            raise self.close_error


async def settle(rounds: int = 5) -> None:
    """Let scheduled tasks and callbacks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def journal() -> List[str]:
    return []


@pytest.fixture
def make_worker(journal):
    def _make(name: str, **kwargs) -> FakeWorker:
        return FakeWorker(name, journal=journal, **kwargs)
    return _make


async def wait_until(predicate, timeout: float = 2.0) -> None:
    """Poll until ``predicate()`` is true."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.01)
