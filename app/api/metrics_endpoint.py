"""Prometheus scrape endpoint (text exposition format, not JSON).

Besides HTTP traffic it exposes the access and lifecycle series, e.g.

  access_decisions_total{decision="deny",reason="guest_denied"} 3.0
  application_transitions_total{from_status="pending_review",to_status="approved"} 12.0
  payment_events_total{event_type="payment.succeeded",outcome="noop"} 2.0

Left open here; restrict it to the scraper at the ingress in production.
"""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter(tags=["observability"])


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
