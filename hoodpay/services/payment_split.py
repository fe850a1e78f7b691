"""
Platform/creator split of a subscription charge.

All arithmetic is done on integer cents. The creator share is derived as
gross minus the platform fee, so the two parts always add back to the gross.
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Union

from hoodpay.core.errors import InvalidAmount

Number = Union[int, Decimal, str, float]


@dataclass(frozen=True)
class PaymentSplit:
    total: int
    platform_fee: int
    creator_amount: int
    platform_fee_percentage: Decimal
    creator_fee_percentage: Decimal

    def as_payment_details(self) -> dict:
        return {
            "totalAmount": self.total,
            "platformFee": self.platform_fee,
            "creatorAmount": self.creator_amount,
            "platformFeePercentage": self.platform_fee_percentage,
            "creatorFeePercentage": self.creator_fee_percentage,
        }


def _to_decimal(value: Number, what: str) -> Decimal:
    if isinstance(value, bool):
        raise InvalidAmount(f"Invalid {what}: {value!r}")
    try:
        # str() keeps floats like 0.1 from dragging binary noise into the math
        result = Decimal(str(value)) if isinstance(value, float) else Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidAmount(f"Invalid {what}: {value!r}")
    if not result.is_finite():
        raise InvalidAmount(f"Invalid {what}: {value!r}")
    return result


def to_minor_units(amount: Number) -> int:
    """Convert a major-unit amount (e.g. dollars) to integer cents, half-up."""
    value = _to_decimal(amount, "amount")
    if value < 0:
        raise InvalidAmount(f"Amount cannot be negative: {amount}")
    return int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def calculate_payment_split(gross_amount: int, platform_fee_percentage: Number) -> PaymentSplit:
    """
    Split gross_amount (cents) into platform fee and creator amount.

    platform_fee = round_half_up(gross * pct / 100)
    creator_amount = gross - platform_fee
    """
    if isinstance(gross_amount, bool) or not isinstance(gross_amount, int):
        raise InvalidAmount(f"Gross amount must be integer cents, got {gross_amount!r}")
    if gross_amount < 0:
        raise InvalidAmount(f"Gross amount cannot be negative: {gross_amount}")

    pct = _to_decimal(platform_fee_percentage, "platform fee percentage")
    if pct < 0 or pct > 100:
        raise InvalidAmount(f"Platform fee percentage must be between 0 and 100, got {pct}")

    platform_fee = int((Decimal(gross_amount) * pct / Decimal(100)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    creator_amount = gross_amount - platform_fee

    return PaymentSplit(
        total=gross_amount,
        platform_fee=platform_fee,
        creator_amount=creator_amount,
        platform_fee_percentage=pct,
        creator_fee_percentage=Decimal(100) - pct,
    )
