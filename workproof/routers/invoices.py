# workproof/routers/invoices.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from .. import invoices
from ..deps import get_caller, get_session
from ..models import Caller, Invoice, InvoiceIn, InvoiceStatus
from .jobs import parse_status

router = APIRouter(prefix="/invoices", tags=["invoices"])


@router.get("", response_model=List[Invoice])
async def list_invoices(
    status: Optional[str] = Query(default=None),
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_session),
):
    return await invoices.list_invoices(db, caller, status=parse_status(status, InvoiceStatus))


@router.post("", response_model=Invoice, status_code=201)
async def create_invoice(
    payload: InvoiceIn,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_session),
):
    return await invoices.create_invoice(db, payload.job_id, payload.amount, caller)


@router.get("/{invoice_id}", response_model=Invoice)
async def get_invoice(
    invoice_id: str,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_session),
):
    return await invoices.get_invoice(db, invoice_id, caller)
