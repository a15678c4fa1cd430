# workproof/processor.py
import logging
from typing import Dict, Optional

import stripe
from pydantic import ValidationError as PydanticValidationError
from starlette.concurrency import run_in_threadpool

from .config import Settings
from .errors import InvalidSignature, ProcessorUnavailable, ValidationError
from .models import ProcessorIntent, WebhookEvent

log = logging.getLogger("uvicorn.error")


def _mask(secret: Optional[str]) -> str:
    if not secret:
        return "MISSING"
    return secret[:6] + "..." + secret[-4:]


class StripeProcessor:
    """Stripe payment intents plus webhook signature checks.

    Built once at startup and shared; the underlying HTTP client enforces
    ``timeout`` on every call.
    """

    def __init__(
        self,
        api_key: Optional[str],
        webhook_secret: Optional[str],
        timeout: float = 20.0,
        tolerance: int = 300,
    ):
        self.webhook_secret = webhook_secret
        self.tolerance = tolerance
        self._http_client = None
        self._client = None
        if api_key:
            self._http_client = stripe.RequestsClient(timeout=timeout)
            self._client = stripe.StripeClient(
                api_key,
                http_client=self._http_client,
                max_network_retries=2,
            )

    @classmethod
    def from_settings(cls, settings: Settings) -> "StripeProcessor":
        return cls(
            api_key=settings.stripe_secret_key,
            webhook_secret=settings.stripe_webhook_secret,
            timeout=settings.stripe_timeout_seconds,
            tolerance=settings.stripe_webhook_tolerance,
        )

    @property
    def has_secret_key(self) -> bool:
        return self._client is not None

    @property
    def has_webhook_secret(self) -> bool:
        return bool(self.webhook_secret)

    def close(self) -> None:
        if self._http_client is not None:
            self._http_client.close()

    def _require_client(self) -> stripe.StripeClient:
        if self._client is None:
            log.error("Stripe secret key missing (STRIPE_SECRET_KEY)")
            raise ProcessorUnavailable("payment processor is not configured")
        return self._client

    @staticmethod
    def _to_intent(intent) -> ProcessorIntent:
        return ProcessorIntent(
            id=intent.id,
            client_secret=intent.client_secret,
            status=intent.status,
            amount=intent.amount,
        )

    # ---- Payment intents --------------------------------------------------------
    async def create_intent(
        self,
        amount_cents: int,
        currency: str,
        metadata: Dict[str, str],
        description: str,
        idempotency_key: str,
    ) -> ProcessorIntent:
        client = self._require_client()
        params = {
            "amount": amount_cents,
            "currency": currency,
            "metadata": metadata,
            "description": description,
            "automatic_payment_methods": {"enabled": True},
        }
        try:
            intent = await run_in_threadpool(
                client.v1.payment_intents.create,
                params=params,
                options={"idempotency_key": idempotency_key},
            )
        except stripe.StripeError as e:
            log.error(f"Stripe PaymentIntent create failed: {e}")
            raise ProcessorUnavailable("failed to create payment intent") from e
        return self._to_intent(intent)

    async def retrieve_intent(self, intent_id: str) -> ProcessorIntent:
        client = self._require_client()
        try:
            intent = await run_in_threadpool(client.v1.payment_intents.retrieve, intent_id)
        except stripe.StripeError as e:
            log.error(f"Stripe PaymentIntent retrieve failed for {intent_id}: {e}")
            raise ProcessorUnavailable("failed to look up payment intent") from e
        return self._to_intent(intent)

    # ---- Webhooks ---------------------------------------------------------------
    def construct_event(self, payload: bytes, sig_header: Optional[str]) -> WebhookEvent:
        """Verify ``sig_header`` against the raw body, then decode the envelope."""
        if not self.webhook_secret:
            log.error("Stripe webhook secret missing (STRIPE_WEBHOOK_SECRET)")
            raise InvalidSignature("webhook secret not configured")
        if not sig_header:
            raise InvalidSignature("missing Stripe-Signature header")

        try:
            body = payload.decode("utf-8")
            stripe.WebhookSignature.verify_header(body, sig_header, self.webhook_secret, self.tolerance)
        except (ValueError, stripe.SignatureVerificationError) as e:
            log.error(f"Stripe webhook verify FAILED: {e}; secret={_mask(self.webhook_secret)}")
            raise InvalidSignature("signature verification failed") from e

        try:
            return WebhookEvent.model_validate_json(body)
        except PydanticValidationError as e:
            raise ValidationError(f"malformed event envelope ({e.error_count()} errors)") from e
