# workproof/webhooks.py
"""Applies verified Stripe events to invoices and jobs.

Redelivery is safe because ``mark_paid`` and ``mark_failed`` are idempotent.
Business-rule problems (unknown invoice, job in an unexpected state) are
logged and acknowledged; anything else propagates so Stripe retries.
"""
import logging
from typing import Any, Dict, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from .errors import Forbidden, InvalidState, NotFound, ValidationError
from .fees import to_minor_units
from .invoices import mark_failed, mark_paid
from .models import IntentObject, PaymentMetadata
from .processor import StripeProcessor

log = logging.getLogger("uvicorn.error")

PAYMENT_SUCCEEDED = "payment_intent.succeeded"
PAYMENT_FAILED = "payment_intent.payment_failed"

RECOVERABLE = (NotFound, Forbidden, InvalidState)

ACK: Dict[str, Any] = {"received": True}


def _decode_intent(obj: Dict[str, Any]) -> IntentObject:
    try:
        return IntentObject.model_validate(obj)
    except PydanticValidationError as e:
        raise ValidationError(f"malformed payment intent ({e.error_count()} errors)") from e


def _decode_metadata(intent: IntentObject) -> PaymentMetadata:
    try:
        return PaymentMetadata.model_validate(intent.metadata)
    except PydanticValidationError as e:
        raise ValidationError(
            f"malformed metadata on payment intent {intent.id} ({e.error_count()} errors)"
        ) from e


class WebhookReconciler:
    def __init__(self, processor: StripeProcessor):
        self.processor = processor

    async def handle(
        self, session: AsyncSession, payload: bytes, sig_header: Optional[str]
    ) -> Dict[str, Any]:
        event = self.processor.construct_event(payload, sig_header)
        log.info(f"Stripe webhook received: {event.type} ({event.id})")

        if event.type not in (PAYMENT_SUCCEEDED, PAYMENT_FAILED):
            log.info(f"Unhandled event type: {event.type}")
            return ACK

        intent = _decode_intent(event.data.object)
        if "invoiceId" not in intent.metadata:
            log.warning(f"Payment intent {intent.id} carries no invoiceId; not ours, ignoring")
            return ACK
        meta = _decode_metadata(intent)

        try:
            if event.type == PAYMENT_SUCCEEDED:
                await self._on_succeeded(session, intent, meta)
            else:
                await self._on_failed(session, intent, meta)
        except RECOVERABLE as e:
            log.warning(f"{event.type} for invoice {meta.invoice_id} not applied: {e.kind}: {e.message}")
        return ACK

    async def _on_succeeded(self, session: AsyncSession, intent: IntentObject, meta: PaymentMetadata) -> None:
        invoice = await mark_paid(session, meta.invoice_id)
        if invoice.job_id != meta.job_id:
            log.warning(f"Intent {intent.id} names job {meta.job_id} but invoice {invoice.id} is for job {invoice.job_id}")
        expected = to_minor_units(invoice.total_payable)
        if intent.amount is not None and intent.amount != expected:
            log.warning(f"Intent {intent.id} amount {intent.amount} differs from invoice {invoice.id} total {expected}")

    async def _on_failed(self, session: AsyncSession, intent: IntentObject, meta: PaymentMetadata) -> None:
        await mark_failed(session, meta.invoice_id)
        log.info(f"Payment failed for invoice {meta.invoice_id} (intent {intent.id})")
