# workproof/invoices.py
"""Invoices and their payment status.

Status only moves up the lattice PENDING < FAILED < PAID (< REFUNDED), so a
late failure event can never downgrade a paid invoice. Fees are fixed when
the invoice is created.
"""
import logging
import uuid
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .db import invoices, utc_now
from .errors import Conflict, Forbidden, InvalidState, NotFound
from .fees import calculate_fees
from .jobs import fetch_job, is_party, mark_job_paid
from .models import Caller, Invoice, InvoiceStatus, JobStatus, Role

log = logging.getLogger("uvicorn.error")

PAYABLE = (InvoiceStatus.PENDING, InvoiceStatus.FAILED)
SETTLED = (InvoiceStatus.PAID, InvoiceStatus.REFUNDED)
# a job with an invoice in one of these is already billed
BILLED = PAYABLE + (InvoiceStatus.PAID,)


def can_access(invoice: Invoice, caller: Caller) -> bool:
    return caller.role is Role.ADMIN or caller.id in (invoice.client_id, invoice.provider_id)


async def fetch_invoice(session: AsyncSession, invoice_id: str) -> Invoice:
    row = (
        await session.execute(select(invoices).where(invoices.c.id == invoice_id))
    ).mappings().first()
    if row is None:
        raise NotFound(f"invoice {invoice_id} not found")
    return Invoice.model_validate(dict(row))


async def get_invoice(session: AsyncSession, invoice_id: str, caller: Caller) -> Invoice:
    invoice = await fetch_invoice(session, invoice_id)
    if not can_access(invoice, caller):
        raise Forbidden(f"no access to invoice {invoice_id}")
    return invoice


async def list_invoices(
    session: AsyncSession, caller: Caller, status: Optional[InvoiceStatus] = None
) -> List[Invoice]:
    q = select(invoices)
    if status is not None:
        q = q.where(invoices.c.status == status.value)
    if caller.role is Role.PROVIDER:
        q = q.where(invoices.c.provider_id == caller.id)
    elif caller.role is Role.CLIENT:
        q = q.where(invoices.c.client_id == caller.id)
    rows = (await session.execute(q.order_by(invoices.c.created_at.desc()))).mappings().all()
    return [Invoice.model_validate(dict(r)) for r in rows]


async def create_invoice(
    session: AsyncSession,
    job_id: str,
    amount: Optional[Decimal],
    caller: Caller,
) -> Invoice:
    job = await fetch_job(session, job_id)
    if not is_party(job, caller):
        raise Forbidden(f"only the client or provider of job {job_id} can bill it")
    if job.provider_id is None:
        raise InvalidState(f"job {job_id} has no provider to bill for")
    if job.status is not JobStatus.COMPLETED:
        raise InvalidState(f"job {job_id} is {job.status.value}; only completed jobs can be billed")

    existing = (
        await session.execute(
            select(invoices.c.id, invoices.c.status).where(
                invoices.c.job_id == job.id,
                invoices.c.status.in_([s.value for s in BILLED]),
            )
        )
    ).first()
    if existing is not None:
        raise InvalidState(f"job {job_id} already has invoice {existing.id} ({existing.status})")

    fees = calculate_fees(job.budget if amount is None else amount)

    now = utc_now()
    values = {
        "id": str(uuid.uuid4()),
        "job_id": job.id,
        "client_id": job.client_id,
        "provider_id": job.provider_id,
        "amount": fees.amount,
        "platform_fee": fees.platform_fee,
        "provider_fee": fees.provider_fee,
        "client_fee": fees.client_fee,
        "status": InvoiceStatus.PENDING.value,
        "payment_intent_id": None,
        "paid_at": None,
        "created_at": now,
        "updated_at": now,
    }
    await session.execute(invoices.insert().values(**values))
    await session.commit()
    log.info(f"Invoice {values['id']} created for job {job.id}: amount={fees.amount} fees={fees.total_fees}")
    return Invoice.model_validate(values)


async def attach_payment_intent(
    session: AsyncSession, invoice: Invoice, intent_id: str
) -> Invoice:
    """Record the processor intent id, only if nobody else has changed it meanwhile."""
    stmt = update(invoices).where(
        invoices.c.id == invoice.id,
        invoices.c.status.in_([s.value for s in PAYABLE]),
    )
    if invoice.payment_intent_id is None:
        stmt = stmt.where(invoices.c.payment_intent_id.is_(None))
    else:
        stmt = stmt.where(invoices.c.payment_intent_id == invoice.payment_intent_id)

    now = utc_now()
    result = await session.execute(stmt.values(payment_intent_id=intent_id, updated_at=now))
    if result.rowcount != 1:
        await session.rollback()
        raise Conflict(f"invoice {invoice.id} changed while attaching payment intent")
    await session.commit()
    return invoice.model_copy(update={"payment_intent_id": intent_id, "updated_at": now})


async def mark_paid(session: AsyncSession, invoice_id: str) -> Invoice:
    """Idempotent: an invoice that is already settled is returned unchanged."""
    invoice = await fetch_invoice(session, invoice_id)
    if invoice.status in SETTLED:
        return invoice

    now = utc_now()
    try:
        result = await session.execute(
            update(invoices)
            .where(
                invoices.c.id == invoice_id,
                invoices.c.status.in_([s.value for s in PAYABLE]),
            )
            .values(status=InvoiceStatus.PAID.value, paid_at=now, updated_at=now)
        )
        if result.rowcount != 1:
            # another delivery got there first
            await session.rollback()
            current = await fetch_invoice(session, invoice_id)
            if current.status in SETTLED:
                return current
            raise Conflict(f"invoice {invoice_id} changed to {current.status.value} while marking paid")

        job_moved = await mark_job_paid(session, invoice.job_id)
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    paid = invoice.model_copy(update={"status": InvoiceStatus.PAID, "paid_at": now, "updated_at": now})
    log.info(
        f"Invoice {invoice_id} paid (job {invoice.job_id} {'-> PAID' if job_moved else 'unchanged'}). "
        f"Provider payout: {paid.provider_net}"
    )
    return paid


async def mark_failed(session: AsyncSession, invoice_id: str) -> Invoice:
    """PENDING -> FAILED. Never downgrades a PAID or REFUNDED invoice."""
    invoice = await fetch_invoice(session, invoice_id)
    if invoice.status is not InvoiceStatus.PENDING:
        log.info(f"Invoice {invoice_id} is {invoice.status.value}; failure event ignored")
        return invoice

    now = utc_now()
    result = await session.execute(
        update(invoices)
        .where(invoices.c.id == invoice_id, invoices.c.status == InvoiceStatus.PENDING.value)
        .values(status=InvoiceStatus.FAILED.value, updated_at=now)
    )
    if result.rowcount != 1:
        await session.rollback()
        return await fetch_invoice(session, invoice_id)
    await session.commit()
    log.info(f"Invoice {invoice_id} payment failed")
    return invoice.model_copy(update={"status": InvoiceStatus.FAILED, "updated_at": now})
