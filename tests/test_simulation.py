from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest

from loan_tracker.engine import build_schedule, calculate_installment, generate_schedule, total_interest
from loan_tracker.simulation import (
    _carried_prepayments,
    analyze_loan_installment,
    prepayment_impact,
    simulate_loan_prepayment,
    simulate_new_installment,
    simulate_prepayment,
    what_if_installment,
)
from loan_tracker.status import itemized_status
from loan_tracker.utils import to_cents

from conftest import EARLY, LATE, START, prepayment

RATE = Decimal("12")
INSTALLMENT = Decimal("8884.88")


@pytest.fixture
def schedule(terms_a):
    return build_schedule(terms_a, as_of=EARLY)


class TestSimulatePrepayment:
    def test_zero_amount_is_identity(self, schedule):
        assert simulate_prepayment(schedule, Decimal("0"), 3, RATE, INSTALLMENT) == schedule

    def test_rejects_out_of_range_points(self, schedule):
        with pytest.raises(ValueError):
            simulate_prepayment(schedule, Decimal("100"), len(schedule) + 1, RATE, INSTALLMENT)
        with pytest.raises(ValueError):
            simulate_prepayment(schedule, Decimal("100"), -1, RATE, INSTALLMENT)

    def test_rejects_negative_interval(self, schedule):
        with pytest.raises(ValueError):
            simulate_prepayment(schedule, Decimal("100"), 2, RATE, INSTALLMENT, recurring_every=-1)

    def test_prefix_is_untouched_and_term_shrinks(self, schedule):
        simulated = simulate_prepayment(schedule, Decimal("20000"), 2, RATE, INSTALLMENT)
        assert simulated[:2] == schedule[:2]
        assert simulated[2].prepayment == Decimal("20000")
        assert simulated[2].starting_balance == schedule[1].ending_balance - Decimal("20000")
        assert simulated[2].payment == INSTALLMENT
        assert len(simulated) < len(schedule)
        assert simulated[-1].ending_balance == Decimal("0")
        assert [e.period for e in simulated] == list(range(1, len(simulated) + 1))
        assert total_interest(simulated) < total_interest(schedule)

    def test_suffix_keeps_monthly_dates(self, schedule):
        simulated = simulate_prepayment(schedule, Decimal("20000"), 2, RATE, INSTALLMENT)
        assert [e.date for e in simulated] == [e.date for e in schedule[: len(simulated)]]

    def test_amount_covering_balance_truncates(self, schedule):
        simulated = simulate_prepayment(schedule, Decimal("500000"), 3, RATE, INSTALLMENT)
        assert len(simulated) == 4
        assert simulated[:3] == schedule[:3]
        closing = simulated[-1]
        assert closing.principal_payment == schedule[2].ending_balance
        assert closing.interest_payment == Decimal("0")
        assert closing.ending_balance == Decimal("0")
        assert closing.date == schedule[2].date

    def test_amount_covering_principal_before_first_installment(self, schedule):
        simulated = simulate_prepayment(schedule, Decimal("100000"), 0, RATE, INSTALLMENT)
        assert len(simulated) == 1
        assert simulated[0].principal_payment == Decimal("100000")

    def test_recurring_prepayments_repay_faster(self, schedule):
        once = simulate_prepayment(schedule, Decimal("5000"), 1, RATE, INSTALLMENT)
        recurring = simulate_prepayment(schedule, Decimal("5000"), 1, RATE, INSTALLMENT, recurring_every=2)
        assert len(recurring) < len(once)
        assert recurring[3].prepayment == Decimal("5000")
        assert recurring[2].prepayment == Decimal("0")

    def test_recorded_prepayments_are_carried_over(self, terms_a):
        schedule = build_schedule(terms_a, [prepayment(date(2024, 6, 1), "5000")], as_of=EARLY)
        simulated = simulate_prepayment(schedule, Decimal("1000"), 2, RATE, INSTALLMENT)
        assert simulated[4].prepayment == Decimal("5000")

    def test_first_window_prepayment_is_not_counted_twice(self, terms_a):
        schedule = build_schedule(terms_a, [prepayment(date(2024, 1, 20), "10000")], as_of=EARLY)
        simulated = simulate_prepayment(schedule, Decimal("1000"), 0, RATE, INSTALLMENT)
        assert simulated[0].starting_balance == Decimal("89000")
        assert simulated[0].prepayment == Decimal("1000")

    def test_clearing_prepayment_is_carried_on_zero_rate_loan(self):
        schedule = generate_schedule(
            Decimal("1200"), Decimal("0"), 12, START, prepayments=[prepayment(date(2024, 6, 1), "10000")], as_of=EARLY
        )
        assert len(schedule) == 5
        simulated = simulate_prepayment(schedule, Decimal("50"), 1, Decimal("0"), Decimal("100"))
        assert len(simulated) <= len(schedule)
        assert simulated[-1].closing
        assert simulated[-1].ending_balance == Decimal("0")

    def test_final_installment_without_interest_is_not_a_lump_sum(self, schedule):
        last = replace(schedule[-1], interest_payment=Decimal("0"))
        assert _carried_prepayments(list(schedule[:-1]) + [last]) == {}

    def test_clearing_prepayment_is_carried_by_period(self, terms_a):
        schedule = build_schedule(terms_a, [prepayment(date(2024, 3, 1), "200000")], as_of=EARLY)
        assert _carried_prepayments(schedule) == {2: schedule[0].ending_balance}

    def test_installment_below_interest_is_rejected(self, schedule):
        with pytest.raises(ValueError):
            simulate_prepayment(schedule, Decimal("10"), 0, RATE, Decimal("1"))


class TestPrepaymentImpact:
    def test_reports_savings(self, schedule):
        impact = prepayment_impact(schedule, simulate_prepayment(schedule, Decimal("30000"), 2, RATE, INSTALLMENT))
        assert impact.original_closure_date == schedule[-1].date
        assert impact.new_closure_date < impact.original_closure_date
        assert impact.interest_saved > 0
        assert impact.interest_saved == impact.original_interest - impact.new_interest
        assert impact.months_saved > 0

    def test_loan_level_wrapper(self, terms_a, schedule):
        impact = simulate_loan_prepayment(terms_a, [], Decimal("30000"), 2, EARLY)
        assert impact.schedule == simulate_prepayment(schedule, Decimal("30000"), 2, RATE, INSTALLMENT)


class TestSimulateNewInstallment:
    def test_installment_equal_to_interest_never_converges(self):
        projection = simulate_new_installment(Decimal("50000"), Decimal("10"), Decimal("416.67"), date(2025, 1, 1))
        assert projection.converged is False
        assert projection.closure_date is None
        assert projection.months_to_repay is None
        assert projection.schedule == []

    def test_installment_below_interest_never_converges(self):
        projection = simulate_new_installment(Decimal("50000"), Decimal("10"), Decimal("100"), date(2025, 1, 1))
        assert projection.converged is False

    def test_converging_projection(self):
        projection = simulate_new_installment(Decimal("50000"), Decimal("10"), Decimal("1000"), date(2025, 1, 1))
        assert projection.converged is True
        assert projection.schedule[0].date == date(2025, 1, 1)
        assert projection.schedule[0].interest_payment == Decimal("416.67")
        assert projection.schedule[-1].ending_balance == Decimal("0")
        assert projection.months_to_repay == len(projection.schedule)
        assert 60 < projection.months_to_repay < 70
        assert projection.closure_date == projection.schedule[-1].date
        assert projection.total_interest == total_interest(projection.schedule)

    def test_zero_rate(self):
        projection = simulate_new_installment(Decimal("1200"), Decimal("0"), Decimal("100"), date(2025, 1, 1))
        assert projection.months_to_repay == 12
        assert projection.total_interest == Decimal("0")
        assert projection.closure_date == date(2025, 12, 1)

    def test_nothing_outstanding(self):
        projection = simulate_new_installment(Decimal("0"), Decimal("10"), Decimal("100"), date(2025, 1, 1))
        assert projection.converged is True
        assert projection.months_to_repay == 0


class TestWhatIfInstallment:
    AS_OF = date(2024, 4, 20)

    def test_higher_installment_saves_interest(self, terms_a):
        schedule = build_schedule(terms_a, as_of=self.AS_OF)
        status = itemized_status(terms_a, schedule)
        result = what_if_installment(schedule, status, RATE, Decimal("15000"), INSTALLMENT)
        assert result.projection.converged
        assert result.projection.schedule[0].date == status.next_due_date
        assert result.new_closure_date < result.original_closure_date
        assert result.interest_saved > 0
        assert result.months_saved > 0
        paid_so_far = sum(e.interest_payment for e in schedule[:3])
        assert result.new_interest == to_cents(paid_so_far + result.projection.total_interest)
        assert result.original_installment == INSTALLMENT

    def test_non_converging_installment(self, terms_a):
        schedule = build_schedule(terms_a, as_of=self.AS_OF)
        status = itemized_status(terms_a, schedule)
        result = what_if_installment(schedule, status, RATE, Decimal("500"), INSTALLMENT)
        assert result.projection.converged is False
        assert result.new_closure_date is None
        assert result.new_interest is None
        assert result.interest_saved is None
        assert result.to_dict()["interest_saved"] is None

    def test_repaid_loan_is_rejected(self, terms_a):
        schedule = build_schedule(terms_a, as_of=LATE)
        status = itemized_status(terms_a, schedule)
        with pytest.raises(ValueError):
            what_if_installment(schedule, status, RATE, Decimal("15000"), INSTALLMENT)

    def test_loan_level_wrapper(self, terms_a):
        schedule = build_schedule(terms_a, as_of=self.AS_OF)
        status = itemized_status(terms_a, schedule)
        expected = what_if_installment(schedule, status, RATE, Decimal("12000"), INSTALLMENT)
        assert analyze_loan_installment(terms_a, [], Decimal("12000"), self.AS_OF) == expected
        assert calculate_installment(terms_a.principal, terms_a.rate, terms_a.term_months) == INSTALLMENT
