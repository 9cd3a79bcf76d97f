"""Background task queue using Redis lists.

The webhook endpoint is the producer: it LPUSHes a verified provider
event and answers 202 straight away.  The worker process is the
consumer: it BRPOPs and reconciles.  LPUSH at the head plus BRPOP at the
tail gives FIFO order per queue.

The 202 tells the provider the event was delivered, so it will not be
sent again.  A task whose handler fails is therefore pushed back with
its attempt count raised, and after MAX_TASK_ATTEMPTS it lands on the
queue's dead-letter list ("<queue>:dead") for inspection and replay.
Reconciliation is idempotent, so running an event twice is harmless.
A worker that crashes between BRPOP and the requeue still loses the
task.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, replace
from typing import Protocol, runtime_checkable

from app.core.metrics import QUEUE_DEPTH
from app.db.redis import redis_pool

PAYMENT_EVENTS_QUEUE = "payment_events"

MAX_TASK_ATTEMPTS = 5


def dead_letter_queue(queue: str) -> str:
    return f"{queue}:dead"


@dataclass(frozen=True, slots=True)
class Task:
    """A unit of background work.

    id:       Unique identifier for tracking and logging.
    queue:    Which queue this task belongs to ("payment_events").
    payload:  JSON-serializable data the handler needs.
    attempts: How many times a handler has already failed on it.
    """

    id: str
    queue: str
    payload: dict
    attempts: int = 0


@runtime_checkable
class TaskQueue(Protocol):
    async def enqueue(self, queue: str, payload: dict) -> Task: ...
    async def requeue(self, task: Task, queue: str | None = None) -> Task: ...
    async def dequeue(self, queue: str, timeout: int = 0) -> Task | None: ...
    async def queue_length(self, queue: str) -> int: ...


class InMemoryTaskQueue:
    """In-process queue for tests and single-process dev runs."""

    def __init__(self) -> None:
        self._queues: dict[str, list[Task]] = {}

    async def enqueue(self, queue: str, payload: dict) -> Task:
        return self._push(Task(id=str(uuid.uuid4()), queue=queue, payload=payload))

    async def requeue(self, task: Task, queue: str | None = None) -> Task:
        """Push ``task`` back (or onto ``queue``) with one more attempt recorded."""
        return self._push(
            replace(task, queue=queue or task.queue, attempts=task.attempts + 1)
        )

    def _push(self, task: Task) -> Task:
        self._queues.setdefault(task.queue, []).append(task)
        QUEUE_DEPTH.labels(queue_name=task.queue).set(len(self._queues[task.queue]))
        return task

    async def dequeue(self, queue: str, timeout: int = 0) -> Task | None:
        tasks = self._queues.get(queue, [])
        if not tasks:
            return None
        task = tasks.pop(0)
        QUEUE_DEPTH.labels(queue_name=queue).set(len(tasks))
        return task

    async def queue_length(self, queue: str) -> int:
        return len(self._queues.get(queue, []))


class RedisTaskQueue:
    """Redis-backed task queue using LPUSH/BRPOP."""

    _PREFIX = "tasks:"

    def __init__(self, redis_client) -> None:
        self._redis = redis_client

    async def enqueue(self, queue: str, payload: dict) -> Task:
        return await self._push(Task(id=str(uuid.uuid4()), queue=queue, payload=payload))

    async def requeue(self, task: Task, queue: str | None = None) -> Task:
        return await self._push(
            replace(task, queue=queue or task.queue, attempts=task.attempts + 1)
        )

    async def _push(self, task: Task) -> Task:
        task_json = json.dumps(
            {"id": task.id, "queue": task.queue, "payload": task.payload, "attempts": task.attempts}
        )
        depth = await self._redis.lpush(f"{self._PREFIX}{task.queue}", task_json)
        QUEUE_DEPTH.labels(queue_name=task.queue).set(depth)
        return task

    async def dequeue(self, queue: str, timeout: int = 5) -> Task | None:
        # Blocks up to `timeout` seconds; None means the queue stayed empty.
        result = await self._redis.brpop(f"{self._PREFIX}{queue}", timeout=timeout)
        if result is None:
            return None
        _, task_json = result
        return Task(**json.loads(task_json))

    async def queue_length(self, queue: str) -> int:
        return await self._redis.llen(f"{self._PREFIX}{queue}")


if redis_pool is not None:
    task_queue: TaskQueue = RedisTaskQueue(redis_pool)
else:
    task_queue = InMemoryTaskQueue()
