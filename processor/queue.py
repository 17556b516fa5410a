"""
Processor - Queue.

Job payload model and the producer side of a queue. Jobs are
JSON documents pushed onto a Redis list; workers pop them from
the other end.
"""

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from core.exceptions import ConfigurationError

from .config import ConnectionConfig
from .constants import DEFAULT_QUEUE_PREFIX


def queue_key(queue_name: str, prefix: str = DEFAULT_QUEUE_PREFIX) -> str:
    """Redis key of the list backing a queue."""
    return f"{prefix}:{queue_name}"


@dataclass
class Job:
    """A unit of work consumed by a worker."""

    name: str
    data: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_json(self) -> str:
        return json.dumps({
            "id": self.id,
            "name": self.name,
            "data": self.data,
            "created_at": self.created_at.isoformat(),
        })

    @classmethod
    def from_json(cls, raw: Any) -> "Job":
        """Decode a job payload (bytes or str)."""
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        payload = json.loads(raw)
        created_at = payload.get("created_at")
        return cls(
            name=str(payload.get("name", "")),
            data=payload.get("data") or {},
            id=str(payload.get("id") or uuid.uuid4().hex),
            created_at=(
                datetime.fromisoformat(created_at) if created_at
                else datetime.now(timezone.utc)
            ),
        )


class Queue:
    """Producer for a named queue."""

    def __init__(
        self,
        name: str,
        connection: ConnectionConfig,
        prefix: str = DEFAULT_QUEUE_PREFIX,
        client: Optional[Any] = None,
    ):
        if not name:
            raise ConfigurationError("Queue name must not be empty", config_key="name")
        self.name = name
        self.key = queue_key(name, prefix)
        self._connection = connection
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = self._connection.create_client()
        return self._client

    async def add(self, job_name: str, data: Optional[Dict[str, Any]] = None) -> Job:
        """Enqueue a job and return it."""
        job = Job(name=job_name, data=dict(data or {}))
        await self._get_client().rpush(self.key, job.to_json())
        return job

    async def count(self) -> int:
        """Number of jobs waiting."""
        return int(await self._get_client().llen(self.key))

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


__all__ = [
    "Job",
    "Queue",
    "queue_key",
]
