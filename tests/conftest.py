from datetime import date
from decimal import Decimal

import pytest

from loan_tracker.data_models import LoanTerms, Prepayment

START = date(2024, 1, 15)
# before the first due date: nothing is settled by the calendar
EARLY = date(2000, 1, 1)
# long after the last due date: everything is settled
LATE = date(2040, 1, 1)


@pytest.fixture
def terms_a():
    """100k at 12% over 12 months."""
    return LoanTerms(
        principal=Decimal("100000"),
        rate=Decimal("12"),
        term_months=12,
        start_date=START,
        name="Car loan",
    )


def prepayment(on, amount, note=None):
    return Prepayment(date=on, amount=Decimal(amount), note=note)
