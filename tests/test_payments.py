from decimal import Decimal

import pytest
import stripe

from workproof import invoices
from workproof.errors import Forbidden, InvalidState, ProcessorUnavailable, ValidationError
from workproof.models import InvoiceStatus
from workproof.payments import PaymentBridge
from workproof.processor import StripeProcessor

from .support import ADMIN, CLIENT, OTHER_CLIENT, PROVIDER, completed_job


@pytest.fixture
def bridge(processor):
    return PaymentBridge(processor, currency="usd")


async def _invoice(db, budget="100.00"):
    job = await completed_job(db, budget=budget)
    return await invoices.create_invoice(db, job.id, None, PROVIDER)


@pytest.mark.asyncio
async def test_intent_charges_amount_plus_client_fee(db, bridge, processor):
    invoice = await _invoice(db)
    out = await bridge.initiate_payment(db, invoice.id, CLIENT)

    assert out.amount_cents == 10250
    assert out.currency == "usd"
    assert out.client_secret == "pi_1_secret_abc"
    assert out.payment_intent_id == "pi_1"

    request = processor.created[0]
    assert request["amount"] == 10250
    assert request["description"] == "Payment for Fix leaking sink"
    assert request["metadata"] == {
        "invoiceId": invoice.id,
        "jobId": invoice.job_id,
        "clientId": CLIENT.id,
        "providerId": PROVIDER.id,
        "platformFee": "2.50",
        "providerFee": "2.50",
        "clientFee": "2.50",
    }
    stored = await invoices.fetch_invoice(db, invoice.id)
    assert stored.payment_intent_id == "pi_1"
    assert stored.status is InvoiceStatus.PENDING


@pytest.mark.asyncio
async def test_second_call_reuses_live_intent(db, bridge, processor):
    invoice = await _invoice(db)
    first = await bridge.initiate_payment(db, invoice.id, CLIENT)
    second = await bridge.initiate_payment(db, invoice.id, PROVIDER)

    assert second.payment_intent_id == first.payment_intent_id
    assert second.client_secret == first.client_secret
    assert len(processor.created) == 1


@pytest.mark.asyncio
async def test_cancelled_intent_is_replaced(db, bridge, processor):
    invoice = await _invoice(db)
    first = await bridge.initiate_payment(db, invoice.id, CLIENT)
    processor.set_status(first.payment_intent_id, "canceled")

    second = await bridge.initiate_payment(db, invoice.id, CLIENT)
    assert second.payment_intent_id != first.payment_intent_id
    assert processor.created[1]["idempotency_key"] != processor.created[0]["idempotency_key"]
    assert (await invoices.fetch_invoice(db, invoice.id)).payment_intent_id == second.payment_intent_id


@pytest.mark.asyncio
async def test_succeeded_intent_is_not_charged_again(db, bridge, processor):
    invoice = await _invoice(db)
    first = await bridge.initiate_payment(db, invoice.id, CLIENT)
    processor.set_status(first.payment_intent_id, "succeeded")

    with pytest.raises(InvalidState):
        await bridge.initiate_payment(db, invoice.id, CLIENT)
    assert len(processor.created) == 1


@pytest.mark.asyncio
async def test_processor_failure_leaves_invoice_untouched(db, bridge, processor):
    invoice = await _invoice(db)
    processor.fail_next = True

    with pytest.raises(ProcessorUnavailable):
        await bridge.initiate_payment(db, invoice.id, CLIENT)
    stored = await invoices.fetch_invoice(db, invoice.id)
    assert stored.status is InvoiceStatus.PENDING
    assert stored.payment_intent_id is None


@pytest.mark.asyncio
async def test_only_parties_can_pay(db, bridge, processor):
    invoice = await _invoice(db)
    for outsider in (OTHER_CLIENT, ADMIN):
        with pytest.raises(Forbidden):
            await bridge.initiate_payment(db, invoice.id, outsider)
    assert processor.created == []


@pytest.mark.asyncio
async def test_paid_invoice_cannot_be_paid_again(db, bridge):
    invoice = await _invoice(db)
    await invoices.mark_paid(db, invoice.id)
    with pytest.raises(InvalidState):
        await bridge.initiate_payment(db, invoice.id, CLIENT)


@pytest.mark.asyncio
async def test_zero_invoice_has_nothing_to_charge(db, bridge):
    job = await completed_job(db, budget="0.00")
    invoice = await invoices.create_invoice(db, job.id, None, PROVIDER)
    assert invoice.total_payable == Decimal("0.00")
    with pytest.raises(ValidationError):
        await bridge.initiate_payment(db, invoice.id, CLIENT)


@pytest.mark.asyncio
async def test_unconfigured_stripe_is_unavailable(db):
    invoice = await _invoice(db)
    bridge = PaymentBridge(StripeProcessor(api_key=None, webhook_secret=None))
    with pytest.raises(ProcessorUnavailable):
        await bridge.initiate_payment(db, invoice.id, CLIENT)


def _down(*args, **kwargs):
    raise stripe.APIConnectionError("Network error: connection refused")


@pytest.fixture
def stripe_down(monkeypatch):
    proc = StripeProcessor(api_key="sk_test_x", webhook_secret=None, timeout=1.0)
    intents = proc._client.v1.payment_intents
    monkeypatch.setattr(intents, "create", _down)
    monkeypatch.setattr(intents, "retrieve", _down)
    yield proc
    proc.close()


@pytest.mark.asyncio
async def test_stripe_connection_error_on_create(db, stripe_down):
    invoice = await _invoice(db)
    bridge = PaymentBridge(stripe_down)

    with pytest.raises(ProcessorUnavailable):
        await bridge.initiate_payment(db, invoice.id, CLIENT)
    assert (await invoices.fetch_invoice(db, invoice.id)).payment_intent_id is None


@pytest.mark.asyncio
async def test_stripe_connection_error_on_retrieve(stripe_down):
    with pytest.raises(ProcessorUnavailable):
        await stripe_down.retrieve_intent("pi_1")
