"""Background worker process.

RUN:  python -m app.worker

Same image as the API, different command:

  api:    uvicorn app.main:app --host 0.0.0.0 --port 8000
  worker: python -m app.worker

The loop polls every registered queue round-robin, dequeues one task at
a time and dispatches it to its handler.  The webhook already answered
202, so the provider will not redeliver: a failed task is requeued and,
once it runs out of attempts, parked on "<queue>:dead" instead of being
dropped.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any

from app.core.config import SETTINGS
from app.core.errors import PaymentLinkageError
from app.core.logging import setup_logging
from app.db.engine import lifespan_db
from app.db.redis import lifespan_redis
from app.repos.storage import open_storage
from app.services.application_lifecycle import ApplicationLifecycle
from app.services.payment_provider import payment_provider
from app.services.payment_reconciler import PaymentReconciler, parse_provider_event
from app.services.task_queue import (
    MAX_TASK_ATTEMPTS,
    PAYMENT_EVENTS_QUEUE,
    TaskQueue,
    dead_letter_queue,
    task_queue,
)

TaskHandler = Callable[[dict], Coroutine[Any, Any, None]]

logger = logging.getLogger("worker")

IDLE_SLEEP_SECONDS = 0.5


# ---------------------------------------------------------------------------
# Handler registry
# ---------------------------------------------------------------------------

HANDLERS: dict[str, TaskHandler] = {}


def register_handler(queue: str):
    """Decorator: register a coroutine as the handler for a queue."""

    def decorator(func):
        HANDLERS[queue] = func
        return func

    return decorator


@register_handler(PAYMENT_EVENTS_QUEUE)
async def handle_payment_event(payload: dict) -> None:
    """Apply one payment event inside its own transaction."""
    event = parse_provider_event(payload)
    async with open_storage() as storage:
        lifecycle = ApplicationLifecycle(storage, payment_provider)
        outcome = await PaymentReconciler(storage, lifecycle).reconcile(event)
    logger.info(
        "Payment event type=%s order=%s -> %s",
        event.type,
        event.order_id,
        outcome,
        extra={"order_id": event.order_id},
    )


# ---------------------------------------------------------------------------
# Main worker loop
# ---------------------------------------------------------------------------


async def process_one(queue: TaskQueue, queue_name: str, timeout: int = 1) -> bool:
    """Dequeue and run one task.  Returns False when the queue was empty.

    A failed task goes back on its queue until it has used up
    MAX_TASK_ATTEMPTS, then onto the dead-letter queue.  Broken payment
    linkage is data corruption rather than a transient failure, so it is
    dead-lettered at once.
    """
    task = await queue.dequeue(queue_name, timeout=timeout)
    if task is None:
        return False

    handler = HANDLERS[queue_name]
    try:
        await handler(task.payload)
        logger.info("Task %s on [%s] completed", task.id, queue_name)
    except PaymentLinkageError:
        logger.exception("Task %s on [%s] needs manual repair", task.id, queue_name)
        await queue.requeue(task, dead_letter_queue(queue_name))
    except Exception:
        attempt = task.attempts + 1
        if attempt < MAX_TASK_ATTEMPTS:
            logger.warning(
                "Task %s on [%s] failed (attempt %d/%d), requeued",
                task.id,
                queue_name,
                attempt,
                MAX_TASK_ATTEMPTS,
                exc_info=True,
            )
            await queue.requeue(task)
        else:
            logger.exception(
                "Task %s on [%s] failed %d times, moved to dead letters",
                task.id,
                queue_name,
                attempt,
            )
            await queue.requeue(task, dead_letter_queue(queue_name))
    return True


async def run_worker() -> None:
    """Poll all registered queues and dispatch tasks to handlers."""
    queues = list(HANDLERS.keys())
    logger.info("Worker started, listening on queues: %s", queues)

    async with lifespan_db(), lifespan_redis():
        while True:
            busy = False
            for queue_name in queues:
                busy |= await process_one(task_queue, queue_name)
            if not busy:
                await asyncio.sleep(IDLE_SLEEP_SECONDS)


if __name__ == "__main__":
    setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)
    asyncio.run(run_worker())
