# workproof/models.py
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field


class Role(str, Enum):
    CLIENT = "CLIENT"
    PROVIDER = "PROVIDER"
    ADMIN = "ADMIN"


class JobStatus(str, Enum):
    OPEN = "OPEN"
    ACCEPTED = "ACCEPTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


class JobAction(str, Enum):
    ACCEPT = "accept"
    START = "start"
    COMPLETE = "complete"
    CANCEL = "cancel"


class InvoiceStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class PhotoType(str, Enum):
    BEFORE = "BEFORE"
    AFTER = "AFTER"
    PROGRESS = "PROGRESS"


class Caller(BaseModel):
    """Verified identity for the current request."""

    model_config = ConfigDict(frozen=True)

    id: str
    role: Role


# ──────────────────────────────────────────────────────────────────────────────
# Jobs
# ──────────────────────────────────────────────────────────────────────────────
class Job(BaseModel):
    id: str
    title: str
    description: str
    category: str
    location: str
    budget: Decimal
    status: JobStatus
    client_id: str
    provider_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class JobIn(BaseModel):
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1)
    location: str = Field(..., min_length=1)
    budget: Decimal = Field(..., ge=0, decimal_places=2)


class JobTransitionIn(BaseModel):
    action: JobAction


# ──────────────────────────────────────────────────────────────────────────────
# Invoices
# ──────────────────────────────────────────────────────────────────────────────
class Invoice(BaseModel):
    id: str
    job_id: str
    client_id: str
    provider_id: str
    amount: Decimal
    platform_fee: Decimal
    provider_fee: Decimal
    client_fee: Decimal
    status: InvoiceStatus
    payment_intent_id: Optional[str] = None
    paid_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @computed_field
    @property
    def total_payable(self) -> Decimal:
        return self.amount + self.client_fee

    @computed_field
    @property
    def provider_net(self) -> Decimal:
        return self.amount - self.platform_fee - self.provider_fee


class InvoiceIn(BaseModel):
    job_id: str
    # defaults to the job budget
    amount: Optional[Decimal] = None


# ──────────────────────────────────────────────────────────────────────────────
# Payments
# ──────────────────────────────────────────────────────────────────────────────
class PaymentIntentIn(BaseModel):
    invoice_id: str


class PaymentIntentOut(BaseModel):
    client_secret: str
    payment_intent_id: str
    amount_cents: int
    currency: str


class ProcessorIntent(BaseModel):
    id: str
    client_secret: Optional[str] = None
    status: str
    amount: int


class PaymentMetadata(BaseModel):
    """Reconciliation metadata attached to a payment intent.

    Wire keys are camelCase strings; fee values travel as decimal strings.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    invoice_id: str = Field(alias="invoiceId", min_length=1)
    job_id: str = Field(alias="jobId", min_length=1)
    client_id: str = Field(alias="clientId", min_length=1)
    provider_id: str = Field(alias="providerId", min_length=1)
    platform_fee: Decimal = Field(alias="platformFee", ge=0)
    provider_fee: Decimal = Field(alias="providerFee", ge=0)
    client_fee: Decimal = Field(alias="clientFee", ge=0)

    @classmethod
    def for_invoice(cls, invoice: Invoice) -> "PaymentMetadata":
        return cls(
            invoice_id=invoice.id,
            job_id=invoice.job_id,
            client_id=invoice.client_id,
            provider_id=invoice.provider_id,
            platform_fee=invoice.platform_fee,
            provider_fee=invoice.provider_fee,
            client_fee=invoice.client_fee,
        )

    def to_wire(self) -> Dict[str, str]:
        return {k: str(v) for k, v in self.model_dump(by_alias=True).items()}


class IntentObject(BaseModel):
    id: str
    amount: Optional[int] = None
    metadata: Dict[str, str] = {}


class EventData(BaseModel):
    object: Dict[str, Any]


class WebhookEvent(BaseModel):
    id: Optional[str] = None
    type: str
    data: EventData


# ──────────────────────────────────────────────────────────────────────────────
# Photos (proof of work)
# ──────────────────────────────────────────────────────────────────────────────
class Photo(BaseModel):
    id: str
    job_id: str
    type: PhotoType
    url: str
    description: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    taken_at: datetime
    created_at: datetime


class PhotoIn(BaseModel):
    type: PhotoType
    url: str = Field(..., min_length=1)
    description: Optional[str] = None
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    taken_at: Optional[datetime] = None
