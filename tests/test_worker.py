"""
Tests for workers and the queue producer.

Tests cover:
- Worker run/close lifecycle contract
- Error channel delivery
- QueueWorker job consumption against an in-memory client
- Queue producer
"""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import FakeWorker, settle, wait_until
from core.exceptions import ConfigurationError, WorkerRuntimeError, WorkerStartError
from processor.config import ConnectionConfig
from processor.queue import Job, Queue, queue_key
from processor.worker import QueueWorker, Worker


class InMemoryRedis:
    """Just enough of the redis.asyncio client for list-backed queues."""

    def __init__(self):
        self.lists = {}
        self.pings = 0
        self.closed = False

    async def ping(self):
        self.pings += 1
        return True

    async def rpush(self, key, value):
        self.lists.setdefault(key, []).append(value)
        return len(self.lists[key])

    async def llen(self, key):
        return len(self.lists.get(key, []))

    async def blpop(self, keys, timeout=0):
        for key in keys:
            items = self.lists.get(key)
            if items:
                return key.encode(), items.pop(0).encode()
        await asyncio.sleep(0.01)
        return None

    async def aclose(self):
        self.closed = True


# =============================================================
# TEST: Worker contract
# =============================================================

class TestWorkerLifecycle:
    """run() once, close() idempotently."""

    def test_empty_name_rejected(self):
        with pytest.raises(ConfigurationError):
            Worker("")

    def test_construction_does_not_start(self):
        worker = Worker("idle")
        assert worker.started is False
        assert worker.closed is False

    @pytest.mark.asyncio
    async def test_second_run_fails_synchronously(self):
        worker = Worker("idle")
        task = asyncio.create_task(worker.run())

        with pytest.raises(WorkerStartError) as exc_info:
            worker.run()

        assert exc_info.value.worker_name == "idle"
        await worker.close()
        await task

    @pytest.mark.asyncio
    async def test_run_after_close_fails(self):
        worker = Worker("idle")
        await worker.close()
        with pytest.raises(WorkerStartError):
            worker.run()

    @pytest.mark.asyncio
    async def test_close_ends_run_and_is_idempotent(self):
        worker = FakeWorker("idle")
        task = asyncio.create_task(worker.run())
        await settle()

        await worker.close()
        await worker.close()

        assert task.done()
        assert worker.close_calls == 1
        assert worker.closed

    @pytest.mark.asyncio
    async def test_close_without_run_skips_waiting(self):
        worker = FakeWorker("never-ran")
        await asyncio.wait_for(worker.close(), timeout=0.5)
        assert worker.close_calls == 1


class TestErrorChannel:
    """Errors fan out to listeners and never raise."""

    def test_listeners_receive_errors(self):
        worker = Worker("w")
        received = []
        worker.add_error_listener(received.append)
        worker.add_error_listener(received.append)

        error = RuntimeError("boom")
        worker.emit_error(error)

        assert received == [error, error]

    def test_failing_listener_does_not_raise(self, caplog):
        worker = Worker("w")
        received = []

        def broken(error):
            raise ValueError("listener bug")

        worker.add_error_listener(broken)
        worker.add_error_listener(received.append)

        worker.emit_error(RuntimeError("boom"))

        assert len(received) == 1
        assert "Error listener failed" in caplog.text

    def test_unobserved_error_is_logged(self, caplog):
        Worker("lonely").emit_error(RuntimeError("nobody listening"))
        assert "Unobserved worker error" in caplog.text

    def test_remove_listener(self):
        worker = Worker("w")
        received = []
        worker.add_error_listener(received.append)
        worker.remove_error_listener(received.append)
        worker.remove_error_listener(received.append)

        worker.emit_error(RuntimeError("boom"))

        assert received == []


# =============================================================
# TEST: QueueWorker
# =============================================================

class TestQueueWorker:
    """Consumes JSON jobs from a Redis list."""

    @pytest.fixture
    def client(self):
        return InMemoryRedis()

    def test_concurrency_must_be_positive(self, client):
        with pytest.raises(ConfigurationError):
            QueueWorker("w", lambda job: None, ConnectionConfig(), concurrency=0, client=client)

    @pytest.mark.asyncio
    async def test_processes_jobs_in_order(self, client):
        seen = []

        async def handler(job):
            seen.append(job.data["n"])

        connection = ConnectionConfig(host="localhost")
        worker = QueueWorker("email", handler, connection, client=client)
        queue = Queue("email", connection, client=client)
        for n in range(3):
            await queue.add("send", {"n": n})

        task = asyncio.create_task(worker.run())
        await wait_until(lambda: worker.processed == 3)
        await worker.close()
        await task

        assert seen == [0, 1, 2]
        assert worker.failed == 0

    @pytest.mark.asyncio
    async def test_handler_failure_is_reported_and_consumption_continues(self, client):
        errors = []

        def handler(job):
            if job.name == "bad":
                raise ValueError("cannot render template")

        connection = ConnectionConfig()
        worker = QueueWorker("reports", handler, connection, client=client)
        worker.add_error_listener(errors.append)
        queue = Queue("reports", connection, client=client)
        bad = await queue.add("bad")
        await queue.add("good")

        task = asyncio.create_task(worker.run())
        await wait_until(lambda: worker.processed + worker.failed == 2)
        await worker.close()
        await task

        assert worker.processed == 1
        assert worker.failed == 1
        assert len(errors) == 1
        assert isinstance(errors[0], WorkerRuntimeError)
        assert errors[0].context["job_id"] == bad.id
        assert isinstance(errors[0].cause, ValueError)

    @pytest.mark.asyncio
    async def test_eager_connection_pings(self, client):
        worker = QueueWorker("w", lambda job: None, ConnectionConfig(lazy_connect=False), client=client)

        task = asyncio.create_task(worker.run())
        await wait_until(lambda: client.pings == 1)
        await worker.close()
        await task

    @pytest.mark.asyncio
    async def test_lazy_connection_does_not_ping(self, client):
        worker = QueueWorker("w", lambda job: None, ConnectionConfig(lazy_connect=True), client=client)

        task = asyncio.create_task(worker.run())
        await settle()
        await worker.close()
        await task

        assert client.pings == 0

    @pytest.mark.asyncio
    async def test_injected_client_is_not_closed(self, client):
        worker = QueueWorker("w", lambda job: None, ConnectionConfig(), client=client)
        await worker.close()
        assert client.closed is False

    @pytest.mark.asyncio
    async def test_owned_client_is_created_and_closed(self, monkeypatch):
        async def empty_poll(keys, timeout=0):
            await asyncio.sleep(0.01)
            return None

        client = MagicMock()
        client.blpop = AsyncMock(side_effect=empty_poll)
        client.aclose = AsyncMock()
        monkeypatch.setattr(ConnectionConfig, "create_client", lambda self: client)

        worker = QueueWorker("w", lambda job: None, ConnectionConfig(), poll_timeout=0)
        task = asyncio.create_task(worker.run())
        await wait_until(lambda: client.blpop.await_count > 0)
        await worker.close()
        await task

        client.blpop.assert_awaited_with(["processor:w"], timeout=0)
        client.aclose.assert_awaited_once()

    def test_queue_name_defaults_to_worker_name(self, client):
        worker = QueueWorker("email", lambda job: None, ConnectionConfig(), prefix="jobs", client=client)
        assert worker.key == "jobs:email"


# =============================================================
# TEST: Queue producer and job payloads
# =============================================================

class TestQueue:
    """Producer side."""

    @pytest.mark.asyncio
    async def test_add_pushes_json(self):
        client = InMemoryRedis()
        queue = Queue("email", ConnectionConfig(), client=client)

        job = await queue.add("welcome", {"to": "user@example.com"})

        payload = json.loads(client.lists[queue_key("email")][0])
        assert payload["id"] == job.id
        assert payload["name"] == "welcome"
        assert payload["data"] == {"to": "user@example.com"}
        assert await queue.count() == 1

    def test_empty_name_rejected(self):
        with pytest.raises(ConfigurationError):
            Queue("", ConnectionConfig())

    def test_job_from_bytes(self):
        job = Job.from_json(b'{"name": "ping"}')
        assert job.name == "ping"
        assert job.data == {}
        assert job.id
