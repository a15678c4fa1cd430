# workproof/fees.py
"""Marketplace fee split.

Each of the three fees is 2.5% of the job amount, rounded half-up to the
cent when computed. The rounded values are what get persisted and charged,
so the split always balances exactly:

    amount == provider_net + platform_fee + provider_fee
    amount + client_fee == total charged to the client
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Union

from pydantic import BaseModel, ConfigDict

from .errors import ValidationError

FEE_RATE = Decimal("0.025")
CENT = Decimal("0.01")

Money = Union[Decimal, int, str, float]


def to_money(value: Money) -> Decimal:
    """Coerce to a two-place Decimal. Rejects NaN, infinities and sub-cent precision."""
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"not a monetary amount: {value!r}")
    if not amount.is_finite():
        raise ValidationError(f"not a monetary amount: {value!r}")
    if amount != amount.quantize(CENT):
        raise ValidationError(f"amount has more than two decimal places: {value}")
    return amount.quantize(CENT)


def to_minor_units(amount: Decimal) -> int:
    return int((amount.quantize(CENT, rounding=ROUND_HALF_UP) * 100).to_integral_value())


class FeeBreakdown(BaseModel):
    model_config = ConfigDict(frozen=True)

    amount: Decimal
    platform_fee: Decimal
    provider_fee: Decimal
    client_fee: Decimal

    @property
    def total_fees(self) -> Decimal:
        return self.platform_fee + self.provider_fee + self.client_fee

    @property
    def net_amount(self) -> Decimal:
        return self.amount - self.total_fees

    @property
    def provider_net(self) -> Decimal:
        return self.amount - self.platform_fee - self.provider_fee

    @property
    def client_total(self) -> Decimal:
        return self.amount + self.client_fee


def _fee(amount: Decimal) -> Decimal:
    return (amount * FEE_RATE).quantize(CENT, rounding=ROUND_HALF_UP)


def calculate_fees(amount: Money) -> FeeBreakdown:
    amount = to_money(amount)
    if amount < 0:
        raise ValidationError(f"amount must not be negative: {amount}")
    fee = _fee(amount)
    return FeeBreakdown(amount=amount, platform_fee=fee, provider_fee=fee, client_fee=fee)
