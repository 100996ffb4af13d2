# Overview: Integer minor-unit arithmetic shared by purchase orders and checkout.

from __future__ import annotations

from ..validation import ValidationError


def percent_of(amount_cents: int, percent: int) -> int:
    """amount * percent / 100, rounded half up."""
    return (amount_cents * percent + 50) // 100


def check_percent(percent: int | None, field: str = "discount_percent") -> int | None:
    if percent is not None and not 0 <= percent <= 100:
        raise ValidationError(f"{field} must be between 0 and 100")
    return percent


def effective_discount(subtotal_cents: int, discount_cents: int | None, discount_percent: int | None) -> int:
    """A fixed discount wins when > 0; otherwise the percentage of the subtotal."""
    if discount_cents:
        return discount_cents
    if discount_percent:
        return percent_of(subtotal_cents, check_percent(discount_percent))
    return 0


def check_aggregate(field: str, supplied, computed: int) -> None:
    """Reject a caller-supplied aggregate that disagrees with the server's figure."""
    if supplied is None:
        return
    if supplied != computed:
        raise ValidationError(f"{field} mismatch: expected {computed}, got {supplied}")
