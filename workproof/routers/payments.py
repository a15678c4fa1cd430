# workproof/routers/payments.py
from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_bridge, get_caller, get_reconciler, get_session
from ..models import Caller, PaymentIntentIn, PaymentIntentOut
from ..payments import PaymentBridge
from ..webhooks import WebhookReconciler

router = APIRouter(prefix="/payments", tags=["payments"])


# ---- Health / sanity check ---------------------------------------------------
@router.get("/ping")
async def ping(bridge: PaymentBridge = Depends(get_bridge)):
    return {
        "ok": True,
        "has_secret_key": bridge.processor.has_secret_key,
        "has_webhook_secret": bridge.processor.has_webhook_secret,
    }


# ---- Payment intent (auth required) -----------------------------------------
@router.post("/create-payment-intent", response_model=PaymentIntentOut)
async def create_payment_intent(
    body: PaymentIntentIn,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_session),
    bridge: PaymentBridge = Depends(get_bridge),
):
    return await bridge.initiate_payment(db, body.invoice_id, caller)


# ---- Webhook (no auth; Stripe signature only) -------------------------------
@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    db: AsyncSession = Depends(get_session),
    reconciler: WebhookReconciler = Depends(get_reconciler),
):
    payload = await request.body()
    return await reconciler.handle(db, payload, request.headers.get("stripe-signature"))
