from datetime import date
from decimal import Decimal

import pytest

from loan_tracker.data_models import LoanTerms, load_prepayments
from loan_tracker_web.loan_store import LoanStore


@pytest.fixture
def store(tmp_path):
    return LoanStore(f"sqlite:///{tmp_path / 'loans.sqlite3'}")


@pytest.fixture
def loan_id(store):
    return store.add_loan(
        name="Car",
        principal_amount=Decimal("100000"),
        interest_rate=Decimal("12"),
        duration_months=12,
        start_date=date(2024, 1, 15),
    )


class TestLoans:
    def test_round_trip_through_terms(self, store, loan_id):
        record = store.get_loan(loan_id)
        terms = LoanTerms.from_dict(record)
        assert terms.principal == Decimal("100000")
        assert terms.rate == Decimal("12")
        assert terms.start_date == date(2024, 1, 15)
        assert terms.total_prepaid == Decimal("0")
        assert terms.loan_id == loan_id

    def test_list_is_ordered_by_name(self, store, loan_id):
        store.add_loan("Apartment", Decimal("500000"), Decimal("8"), 240, date(2023, 1, 1))
        assert [r["name"] for r in store.list_loans()] == ["Apartment", "Car"]

    def test_update(self, store, loan_id):
        assert store.update_loan(loan_id, name="Family car", amount_already_paid=Decimal("500"))
        record = store.get_loan(loan_id)
        assert record["name"] == "Family car"
        assert record["amount_already_paid"] == Decimal("500")
        assert store.update_loan("missing", name="x") is False

    def test_update_rejects_unknown_fields(self, store, loan_id):
        with pytest.raises(ValueError):
            store.update_loan(loan_id, total_prepayment_amount=Decimal("1"))

    def test_delete_removes_prepayments(self, store, loan_id):
        store.add_prepayment(loan_id, Decimal("1000"), date(2024, 3, 1))
        assert store.delete_loan(loan_id)
        assert store.get_loan(loan_id) is None
        assert store.list_prepayments(loan_id) == []
        assert store.delete_loan(loan_id) is False


class TestPrepayments:
    def test_listed_by_date_and_totals_cached(self, store, loan_id):
        store.add_prepayment(loan_id, Decimal("2000"), date(2024, 6, 1), notes="bonus")
        store.add_prepayment(loan_id, Decimal("1000"), date(2024, 3, 1))
        records = store.list_prepayments(loan_id)
        assert [r["date"] for r in records] == [date(2024, 3, 1), date(2024, 6, 1)]
        assert records[1]["notes"] == "bonus"
        assert store.get_loan(loan_id)["total_prepayment_amount"] == Decimal("3000")
        assert [p.amount for p in load_prepayments(records)] == [Decimal("1000"), Decimal("2000")]

    def test_unknown_loan(self, store):
        assert store.add_prepayment("missing", Decimal("10"), date(2024, 3, 1)) is None

    def test_delete_updates_cached_total(self, store, loan_id):
        first = store.add_prepayment(loan_id, Decimal("1000"), date(2024, 3, 1))
        store.add_prepayment(loan_id, Decimal("500"), date(2024, 4, 1))
        assert store.delete_prepayment(loan_id, first)
        assert store.get_loan(loan_id)["total_prepayment_amount"] == Decimal("500")
        assert store.delete_prepayment(loan_id, first) is False

    def test_delete_checks_owner(self, store, loan_id):
        other = store.add_loan("Other", Decimal("1000"), Decimal("5"), 12, date(2024, 1, 1))
        prepayment_id = store.add_prepayment(other, Decimal("100"), date(2024, 2, 1))
        assert store.delete_prepayment(loan_id, prepayment_id) is False
