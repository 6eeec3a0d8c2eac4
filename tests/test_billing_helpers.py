"""Tests for money formatting and billing cycle dates"""

from datetime import datetime
from decimal import Decimal

import pytest

from app.billing.currency import cents_to_major, format_billing_amount, format_euro
from app.jobs.tasks import one_month_before


def test_format_euro():
    assert format_euro(29) == "29,00 €"
    assert format_euro(Decimal("1234.5")) == "1.234,50 €"


def test_format_billing_amount():
    assert format_billing_amount(Decimal("29.00")) == "29,00 €"
    assert format_billing_amount(Decimal("29.00"), "usd") == "USD 29.00"
    assert format_billing_amount(None) == "N/A"


def test_cents_to_major():
    assert cents_to_major(2900) == Decimal("29.00")
    assert cents_to_major(1) == Decimal("0.01")
    assert cents_to_major(None) is None


@pytest.mark.parametrize(
    "moment, expected",
    [
        (datetime(2026, 3, 15, 8, 30), datetime(2026, 2, 15, 8, 30)),
        (datetime(2026, 3, 31), datetime(2026, 2, 28)),
        (datetime(2026, 1, 10), datetime(2025, 12, 10)),
    ],
)
def test_one_month_before(moment, expected):
    assert one_month_before(moment) == expected

