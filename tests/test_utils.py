from datetime import date, datetime
from decimal import Decimal

import pytest

from loan_tracker.utils import add_months, decimal_from_str, months_between, parse_date, term_in_months, to_cents


class TestDates:
    def test_add_months_clamps_to_month_end(self):
        assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
        assert add_months(date(2023, 1, 31), 1) == date(2023, 2, 28)
        assert add_months(date(2024, 11, 15), 3) == date(2025, 2, 15)

    def test_add_months_backwards(self):
        assert add_months(date(2024, 3, 31), -1) == date(2024, 2, 29)
        assert add_months(date(2024, 1, 15), -1) == date(2023, 12, 15)

    def test_months_between_counts_whole_months(self):
        assert months_between(date(2025, 3, 20), date(2025, 1, 20)) == 2
        assert months_between(date(2025, 3, 15), date(2025, 1, 20)) == 1
        assert months_between(date(2025, 1, 20), date(2025, 3, 20)) == -2

    def test_parse_date(self):
        assert parse_date("2024-05-10") == date(2024, 5, 10)
        assert parse_date(" 2024-05-10T08:00:00 ") == date(2024, 5, 10)
        assert parse_date("2024-05") == date(2024, 5, 1)
        assert parse_date(datetime(2024, 5, 10, 12, 30)) == date(2024, 5, 10)

    @pytest.mark.parametrize("value", ["2024-13-01", "not a date", "", None, 20240510])
    def test_parse_date_rejects_garbage(self, value):
        with pytest.raises(ValueError):
            parse_date(value)


class TestMoney:
    def test_decimal_from_str(self):
        assert decimal_from_str("1,000.50") == Decimal("1000.50")
        assert decimal_from_str(0.1) == Decimal("0.1")
        assert decimal_from_str(7) == Decimal("7")

    @pytest.mark.parametrize("value", ["abc", "NaN", "Infinity", True, None])
    def test_decimal_from_str_rejects_garbage(self, value):
        with pytest.raises(ValueError):
            decimal_from_str(value)

    def test_to_cents_rounds_half_up(self):
        assert to_cents(Decimal("1.005")) == Decimal("1.01")
        assert to_cents(Decimal("1.004")) == Decimal("1.00")

    def test_term_in_months(self):
        assert term_in_months(2, "years") == 24
        assert term_in_months(18, "Months") == 18
        with pytest.raises(ValueError):
            term_in_months(2, "weeks")
