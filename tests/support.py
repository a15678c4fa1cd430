import hashlib
import hmac
import json
import time
from typing import Dict, List, Optional

from jose import jwt

from workproof import jobs
from workproof.errors import ProcessorUnavailable
from workproof.models import Caller, Invoice, JobAction, JobIn, ProcessorIntent, Role
from workproof.processor import StripeProcessor

WEBHOOK_SECRET = "whsec_test_secret"
JWT_SECRET = "test-jwt-secret"

CLIENT = Caller(id="client-1", role=Role.CLIENT)
OTHER_CLIENT = Caller(id="client-2", role=Role.CLIENT)
PROVIDER = Caller(id="provider-1", role=Role.PROVIDER)
OTHER_PROVIDER = Caller(id="provider-2", role=Role.PROVIDER)
ADMIN = Caller(id="admin-1", role=Role.ADMIN)


class FakeProcessor(StripeProcessor):
    """Stands in for Stripe's API; webhook signatures are still checked for real."""

    def __init__(self):
        super().__init__(api_key=None, webhook_secret=WEBHOOK_SECRET)
        self.created: List[Dict] = []
        self.intents: Dict[str, ProcessorIntent] = {}
        self._by_key: Dict[str, ProcessorIntent] = {}
        self.fail_next = False

    @property
    def has_secret_key(self) -> bool:
        return True

    async def create_intent(self, amount_cents, currency, metadata, description, idempotency_key):
        if self.fail_next:
            self.fail_next = False
            raise ProcessorUnavailable("stripe timed out")
        if idempotency_key in self._by_key:
            return self._by_key[idempotency_key]
        n = len(self.created) + 1
        intent = ProcessorIntent(
            id=f"pi_{n}",
            client_secret=f"pi_{n}_secret_abc",
            status="requires_payment_method",
            amount=amount_cents,
        )
        self.created.append(
            {
                "amount": amount_cents,
                "currency": currency,
                "metadata": metadata,
                "description": description,
                "idempotency_key": idempotency_key,
            }
        )
        self.intents[intent.id] = intent
        self._by_key[idempotency_key] = intent
        return intent

    async def retrieve_intent(self, intent_id):
        return self.intents[intent_id]

    def set_status(self, intent_id: str, status: str) -> None:
        self.intents[intent_id] = self.intents[intent_id].model_copy(update={"status": status})


def sign(payload: str, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    t = timestamp or int(time.time())
    sig = hmac.new(secret.encode(), f"{t}.{payload}".encode(), hashlib.sha256).hexdigest()
    return f"t={t},v1={sig}"


def intent_event(event_type: str, invoice: Invoice, intent_id: str = "pi_1", amount: Optional[int] = None,
                 metadata: Optional[Dict[str, str]] = None) -> str:
    if metadata is None:
        metadata = {
            "invoiceId": invoice.id,
            "jobId": invoice.job_id,
            "clientId": invoice.client_id,
            "providerId": invoice.provider_id,
            "platformFee": str(invoice.platform_fee),
            "providerFee": str(invoice.provider_fee),
            "clientFee": str(invoice.client_fee),
        }
    return json.dumps(
        {
            "id": "evt_123",
            "type": event_type,
            "data": {
                "object": {
                    "id": intent_id,
                    "object": "payment_intent",
                    "amount": amount if amount is not None else int(invoice.total_payable * 100),
                    "metadata": metadata,
                }
            },
        }
    )


def token_for(caller: Caller, secret: str = JWT_SECRET) -> str:
    return jwt.encode(
        {"sub": caller.id, "role": "authenticated", "app_metadata": {"role": caller.role.value}},
        secret,
        algorithm="HS256",
    )


def auth_header(caller: Caller) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token_for(caller)}"}


def job_in(budget: str = "100.00", title: str = "Fix leaking sink") -> JobIn:
    return JobIn(
        title=title,
        description="Kitchen sink drips under the basin",
        category="plumbing",
        location="12 Elm St",
        budget=budget,
    )


async def post_job(db, budget: str = "100.00", client: Caller = CLIENT):
    return await jobs.create_job(db, job_in(budget), client)


async def completed_job(db, budget: str = "100.00"):
    job = await post_job(db, budget)
    await jobs.transition_job(db, job.id, JobAction.ACCEPT, PROVIDER)
    await jobs.transition_job(db, job.id, JobAction.START, PROVIDER)
    return await jobs.transition_job(db, job.id, JobAction.COMPLETE, PROVIDER)
