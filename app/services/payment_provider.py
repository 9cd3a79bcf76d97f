"""Payment provider client.

The lifecycle only ever asks for one thing: "create a payment intent for
this order".  Settlement arrives later as a webhook and is handled by
the reconciler, never by the code that created the intent.

StripePaymentProvider talks to the Stripe REST API over httpx.  The
order id goes into ``metadata[orderId]`` so the webhook can be linked
back, and doubles as the idempotency key so a retried request never
creates a second intent for the same order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

import httpx

from app.core.config import SETTINGS
from app.core.errors import UpstreamPaymentError
from app.models.order import Order

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PaymentIntent:
    id: str
    client_secret: str | None
    status: str


class PaymentProvider(Protocol):
    async def create_payment_intent(self, order: Order) -> PaymentIntent: ...


class StripePaymentProvider:
    def __init__(
        self,
        secret_key: str,
        api_base: str,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._secret_key = secret_key
        self._api_base = api_base.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    async def create_payment_intent(self, order: Order) -> PaymentIntent:
        data = {
            "amount": str(order.amount),
            "currency": order.currency.lower(),
            "metadata[orderId]": str(order.id),
            "metadata[applicationId]": str(order.application_id),
            "automatic_payment_methods[enabled]": "true",
        }
        headers = {
            "Authorization": f"Bearer {self._secret_key}",
            "Idempotency-Key": str(order.id),
        }
        async with httpx.AsyncClient(
            base_url=self._api_base, timeout=self._timeout, transport=self._transport
        ) as client:
            try:
                response = await client.post("/v1/payment_intents", data=data, headers=headers)
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                logger.error(
                    "Payment intent rejected by provider order=%s status=%d",
                    order.id,
                    e.response.status_code,
                    extra={"order_id": str(order.id)},
                )
                raise UpstreamPaymentError(
                    "payment provider rejected the request",
                    order_id=str(order.id),
                ) from e
            except httpx.RequestError as e:
                logger.error(
                    "Payment provider unreachable order=%s: %s",
                    order.id,
                    e,
                    extra={"order_id": str(order.id)},
                )
                raise UpstreamPaymentError(
                    "payment provider unavailable",
                    order_id=str(order.id),
                ) from e

        body = response.json()
        intent = PaymentIntent(
            id=body["id"],
            client_secret=body.get("client_secret"),
            status=body.get("status", "requires_payment_method"),
        )
        logger.info(
            "Payment intent created order=%s intent=%s",
            order.id,
            intent.id,
            extra={"order_id": str(order.id)},
        )
        return intent


class InMemoryPaymentProvider:
    """Records intents instead of charging anyone.  Set ``fail`` to simulate an outage."""

    def __init__(self) -> None:
        self.intents: dict[str, PaymentIntent] = {}
        self.requests: list[Order] = []
        self.fail = False

    async def create_payment_intent(self, order: Order) -> PaymentIntent:
        self.requests.append(order)
        if self.fail:
            raise UpstreamPaymentError(
                "payment provider unavailable", order_id=str(order.id)
            )
        key = str(order.id)
        if key not in self.intents:
            self.intents[key] = PaymentIntent(
                id=f"pi_{order.id.hex}",
                client_secret=f"pi_{order.id.hex}_secret",
                status="requires_payment_method",
            )
        return self.intents[key]


if SETTINGS.stripe_secret_key:
    payment_provider: PaymentProvider = StripePaymentProvider(
        SETTINGS.stripe_secret_key, SETTINGS.stripe_api_base
    )
else:
    payment_provider = InMemoryPaymentProvider()
