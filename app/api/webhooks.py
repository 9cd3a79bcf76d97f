"""Payment provider webhook.

The provider calls this once per payment event.  The body is verified,
normalized, and queued; the worker applies it.  Answering 202 quickly
matters because the provider retries deliveries it considers slow or
failed, and the reconciler is idempotent, so a retry is harmless.
"""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError

from app.core.config import SETTINGS
from app.core.metrics import PAYMENT_EVENTS
from app.services.payment_reconciler import event_to_payload, parse_provider_event
from app.services.task_queue import PAYMENT_EVENTS_QUEUE, task_queue
from app.services.webhook_signature import SignatureError, verify_signature

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/webhooks", tags=["webhooks"])

SIGNATURE_HEADER = "stripe-signature"


def _error(status_code: int, code: str, message: str, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": code, "message": message, **extra}},
    )


@router.post("/payments", status_code=status.HTTP_202_ACCEPTED)
async def payment_webhook(request: Request):
    body = await request.body()

    if SETTINGS.payment_webhook_secret:
        try:
            verify_signature(
                body,
                request.headers.get(SIGNATURE_HEADER),
                SETTINGS.payment_webhook_secret,
                tolerance_seconds=SETTINGS.payment_webhook_tolerance_seconds,
            )
        except SignatureError as e:
            logger.warning("Rejected payment webhook: %s", e)
            return _error(400, "invalid_signature", "webhook signature verification failed")

    try:
        payload = json.loads(body)
    except ValueError:
        return _error(400, "invalid_payload", "body is not valid JSON")
    if not isinstance(payload, dict):
        return _error(400, "invalid_payload", "body must be a JSON object")

    event = parse_provider_event(payload)
    if event.kind is None:
        # Providers send many event types; acknowledge the ones we do not handle.
        PAYMENT_EVENTS.labels(event_type="unsupported", outcome="dropped").inc()
        logger.info("Ignoring payment webhook type=%s", event.type)
        return {"status": "ignored"}

    try:
        task = await task_queue.enqueue(PAYMENT_EVENTS_QUEUE, event_to_payload(event))
    except RedisError:
        logger.exception("Could not queue payment event type=%s", event.type)
        return _error(
            503, "queue_unavailable", "try again later", retryable=True
        )

    logger.info(
        "Queued payment event type=%s order=%s task=%s",
        event.type,
        event.order_id,
        task.id,
        extra={"order_id": event.order_id},
    )
    return {"status": "queued", "task_id": task.id}
