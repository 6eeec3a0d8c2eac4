"""Monetary display helpers"""

from decimal import Decimal
from typing import Optional, Union

Amount = Union[Decimal, float, int]


def format_euro(amount: Amount) -> str:
    """German-style euro amount, e.g. ``1.234,50 €``"""
    formatted = f"{Decimal(str(amount)):,.2f}"
    return formatted.replace(",", "_").replace(".", ",").replace("_", ".") + " €"


def format_billing_amount(amount: Optional[Amount], currency: str = "eur") -> str:
    """Amount in major units for billing messages; ``N/A`` when unknown"""
    if amount is None:
        return "N/A"

    currency_upper = (currency or "eur").upper()
    if currency_upper == "EUR":
        return format_euro(amount)

    return f"{currency_upper} {Decimal(str(amount)):,.2f}"


def cents_to_major(cents: Optional[int]) -> Optional[Decimal]:
    """Stripe amounts arrive in the currency's minor unit"""
    if cents is None:
        return None
    return (Decimal(cents) / 100).quantize(Decimal("0.01"))
