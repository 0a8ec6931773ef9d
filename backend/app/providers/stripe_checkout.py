"""Stripe Checkout sessions for shop items and ads, plus webhook verification."""
import logging
from typing import Any

import stripe
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from app.core.config import settings
from app.providers import ProviderError

logger = logging.getLogger(__name__)


def _client_ready() -> None:
    if not settings.STRIPE_SECRET_KEY:
        raise ProviderError("stripe", "STRIPE_SECRET_KEY is not set")
    stripe.api_key = settings.STRIPE_SECRET_KEY


@retry(
    retry=retry_if_exception_type((stripe.APIConnectionError, stripe.RateLimitError)),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=8),
    reraise=True,
)
def _create_session(**params: Any) -> stripe.checkout.Session:
    return stripe.checkout.Session.create(**params)


def create_session(
    *,
    name: str,
    amount_cents: int,
    currency: str,
    metadata: dict[str, str],
    success_url: str,
    cancel_url: str,
    customer_email: str | None = None,
) -> tuple[str, str]:
    """Open a one-item payment session; returns (session id, hosted url)."""
    _client_ready()
    params: dict[str, Any] = {
        "mode": "payment",
        "line_items": [
            {
                "price_data": {
                    "currency": currency,
                    "product_data": {"name": name},
                    "unit_amount": amount_cents,
                },
                "quantity": 1,
            }
        ],
        "metadata": metadata,
        "success_url": success_url,
        "cancel_url": cancel_url,
    }
    if customer_email:
        params["customer_email"] = customer_email
    try:
        session = _create_session(**params)
    except stripe.StripeError as exc:
        logger.warning("Stripe checkout session failed for %s: %s", name, exc)
        raise ProviderError("stripe", "could not create checkout session") from exc
    return session.id, session.url


def construct_event(payload: bytes, signature: str | None) -> stripe.Event:
    """Verify the Stripe-Signature header; raises ValueError when it does not match."""
    if not settings.STRIPE_WEBHOOK_SECRET:
        raise ProviderError("stripe", "STRIPE_WEBHOOK_SECRET is not set")
    if not signature:
        raise ValueError("missing Stripe-Signature header")
    try:
        return stripe.Webhook.construct_event(
            payload=payload,
            sig_header=signature,
            secret=settings.STRIPE_WEBHOOK_SECRET,
        )
    except stripe.SignatureVerificationError as exc:
        raise ValueError("invalid signature") from exc
