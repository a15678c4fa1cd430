# workproof/deps.py
from typing import AsyncIterator, Optional

from fastapi import Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from .auth import verify_and_get_caller
from .errors import Unauthorized
from .models import Caller
from .payments import PaymentBridge
from .webhooks import WebhookReconciler


async def get_session(request: Request) -> AsyncIterator[AsyncSession]:
    async with request.app.state.sessionmaker() as session:
        yield session


def get_caller(request: Request, authorization: Optional[str] = Header(default=None)) -> Caller:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise Unauthorized("Missing bearer token")
    token = authorization.split(" ", 1)[1].strip()
    return verify_and_get_caller(token, request.app.state.settings, request.app.state.supabase)


def get_bridge(request: Request) -> PaymentBridge:
    return request.app.state.bridge


def get_reconciler(request: Request) -> WebhookReconciler:
    return request.app.state.reconciler
