# workproof/payments.py
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from .errors import Forbidden, InvalidState, ValidationError
from .fees import to_minor_units
from .invoices import PAYABLE, attach_payment_intent, fetch_invoice
from .jobs import fetch_job
from .models import Caller, PaymentIntentOut, PaymentMetadata
from .processor import StripeProcessor

log = logging.getLogger("uvicorn.error")

# intents in these states can no longer take a payment
FINISHED_INTENT_STATES = ("canceled", "succeeded")


class PaymentBridge:
    """Turns an invoice into a processor payment intent, at most one live intent per invoice."""

    def __init__(self, processor: StripeProcessor, currency: str = "usd"):
        self.processor = processor
        self.currency = currency

    def _out(self, intent_id: str, client_secret: str, amount_cents: int) -> PaymentIntentOut:
        return PaymentIntentOut(
            client_secret=client_secret,
            payment_intent_id=intent_id,
            amount_cents=amount_cents,
            currency=self.currency,
        )

    async def initiate_payment(
        self, session: AsyncSession, invoice_id: str, caller: Caller
    ) -> PaymentIntentOut:
        invoice = await fetch_invoice(session, invoice_id)
        if caller.id not in (invoice.client_id, invoice.provider_id):
            raise Forbidden(f"no access to invoice {invoice_id}")
        if invoice.status not in PAYABLE:
            raise InvalidState(f"invoice {invoice_id} is {invoice.status.value}")

        amount_cents = to_minor_units(invoice.total_payable)
        if amount_cents <= 0:
            raise ValidationError(f"invoice {invoice_id} has nothing to charge")

        if invoice.payment_intent_id:
            existing = await self.processor.retrieve_intent(invoice.payment_intent_id)
            if existing.status == "succeeded":
                raise InvalidState(f"invoice {invoice_id} is already charged; confirmation pending")
            if (
                existing.status not in FINISHED_INTENT_STATES
                and existing.amount == amount_cents
                and existing.client_secret
            ):
                log.info(f"Reusing payment intent {existing.id} for invoice {invoice_id}")
                return self._out(existing.id, existing.client_secret, amount_cents)

        job = await fetch_job(session, invoice.job_id)
        intent = await self.processor.create_intent(
            amount_cents=amount_cents,
            currency=self.currency,
            metadata=PaymentMetadata.for_invoice(invoice).to_wire(),
            description=f"Payment for {job.title}",
            idempotency_key=f"invoice-{invoice.id}-{invoice.payment_intent_id or 'first'}",
        )
        await attach_payment_intent(session, invoice, intent.id)

        log.info(f"Created payment intent {intent.id} for invoice {invoice_id} ({amount_cents} {self.currency}) by {caller.id}")
        return self._out(intent.id, intent.client_secret or "", amount_cents)
