"""Core calculation engine for the loan tracker.

This module implements the financial logic required to build amortization
schedules for fixed-installment (annuity) loans. It supports an "amount
already paid" offset, recorded lump-sum prepayments merged chronologically
into the monthly recurrence, and an explicit as-of date for deciding which
installments are settled. Every function here is pure: identical arguments
always produce identical schedules.

Money is carried as ``Decimal`` and rounded to cents at every step of the
recurrence, so a schedule printed to two decimals adds up exactly.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date
from decimal import Decimal, ROUND_FLOOR
from typing import Iterable, List, NamedTuple, Optional, Sequence, Tuple

from .data_models import LoanTerms, Prepayment, ScheduleEntry, sort_prepayments
from .utils import add_months, to_cents

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
# Balances at or below one cent are retired by the next installment.
BALANCE_EPSILON = Decimal("0.01")
SAFETY_BUFFER_MONTHS = 24


def monthly_rate(annual_rate: Decimal) -> Decimal:
    """Convert an annual percentage rate into a monthly decimal rate."""
    return (annual_rate / Decimal(100)) / Decimal(12)


def calculate_installment(principal: Decimal, rate: Decimal, term_months: int) -> Decimal:
    """Return the fixed monthly installment (EMI) for a loan.

    The formula is:

        payment = P * (i * (1 + i)^n) / ((1 + i)^n - 1)

    where ``P`` is the principal, ``i`` is the monthly interest rate and
    ``n`` is the number of payments. When the interest rate is zero, the
    payment simplifies to ``P / n``. The result is rounded to cents.

    Invalid terms (non-positive principal or term, negative rate) have no
    well-defined installment and yield ``Decimal("0")``.
    """
    if principal <= 0 or rate < 0 or term_months <= 0:
        return ZERO
    if rate == 0:
        return to_cents(principal / Decimal(term_months))
    rate_per_month = monthly_rate(rate)
    factor = (1 + rate_per_month) ** term_months
    return to_cents(principal * (rate_per_month * factor) / (factor - 1))


def initial_settled_count(amount_already_paid: Decimal, installment: Decimal) -> int:
    """Return how many installments ``amount_already_paid`` covers (floored)."""
    if amount_already_paid <= 0 or installment <= 0:
        return 0
    return int((amount_already_paid / installment).to_integral_value(rounding=ROUND_FLOOR))


def amortize_month(
    balance: Decimal, installment: Decimal, rate_per_month: Decimal
) -> Tuple[Decimal, Decimal, Decimal, Decimal]:
    """Split one installment into interest and principal.

    Returns ``(payment, principal, interest, ending_balance)``. On the final
    paying month the principal part is clamped to the outstanding balance and
    the payment shrinks to principal + interest, so the balance lands on
    exactly zero.
    """
    interest = to_cents(balance * rate_per_month)
    principal = to_cents(installment - interest)
    payment = installment
    if principal < 0:
        # installment does not even cover the interest
        principal = ZERO
    if balance - principal <= BALANCE_EPSILON:
        principal = balance
        payment = to_cents(principal + interest)
    ending_balance = max(ZERO, to_cents(balance - principal))
    return payment, principal, interest, ending_balance


class WindowResult(NamedTuple):
    balance: Decimal
    applied: Decimal
    cleared_on: Optional[date]
    cleared_amount: Decimal


class PrepaymentCursor:
    """Hands out date-sorted prepayments one window at a time.

    Each call to :meth:`apply_through` consumes every prepayment dated on or
    before ``limit`` that an earlier call has not consumed, so consecutive
    windows partition the list and every prepayment is applied exactly once,
    in date order. ``applied`` records ``(prepayment, amount)`` pairs in the
    order they were consumed; the amount is capped to the balance outstanding
    at that moment and is zero once the loan is cleared.
    """

    def __init__(self, prepayments: Sequence[Prepayment]) -> None:
        self._items = list(prepayments)
        self._pos = 0
        self.applied: List[Tuple[Prepayment, Decimal]] = []

    @property
    def pending(self) -> int:
        return len(self._items) - self._pos

    def apply_through(self, limit: date, balance: Decimal) -> WindowResult:
        applied = ZERO
        cleared_on: Optional[date] = None
        cleared_amount = ZERO
        while self._pos < len(self._items) and self._items[self._pos].date <= limit:
            prepayment = self._items[self._pos]
            self._pos += 1
            amount = min(prepayment.amount, balance)
            self.applied.append((prepayment, amount))
            if amount <= 0:
                continue
            if amount == balance:
                cleared_on = prepayment.date
                cleared_amount = amount
            else:
                applied += amount
            balance -= amount
        return WindowResult(balance, applied, cleared_on, cleared_amount)

    def drain(self) -> None:
        """Consume the prepayments dated after the loan was repaid."""
        while self._pos < len(self._items):
            prepayment = self._items[self._pos]
            logger.debug("Prepayment of %s on %s falls after repayment; not applied", prepayment.amount, prepayment.date)
            self.applied.append((prepayment, ZERO))
            self._pos += 1


def closing_entry(period: int, when: date, balance: Decimal, prepaid: Decimal = ZERO) -> ScheduleEntry:
    """Return an entry that retires ``balance`` in one lump, without interest."""
    return ScheduleEntry(
        period=period,
        date=when,
        starting_balance=balance,
        payment=balance,
        principal_payment=balance,
        interest_payment=ZERO,
        ending_balance=ZERO,
        prepayment=prepaid,
        closing=True,
    )


def renumber(entries: Iterable[ScheduleEntry]) -> List[ScheduleEntry]:
    """Return the entries numbered 1..N in their current order."""
    return [
        entry if entry.period == index else replace(entry, period=index)
        for index, entry in enumerate(entries, start=1)
    ]


def generate_schedule(
    principal: Decimal,
    rate: Decimal,
    term_months: int,
    start_date: date,
    initial_settled: int = 0,
    prepayments: Iterable[Prepayment] = (),
    as_of: Optional[date] = None,
) -> List[ScheduleEntry]:
    """Compute the amortization schedule of a loan.

    Parameters
    ----------
    principal, rate, term_months, start_date
        The loan's original terms. The installment is derived from them once.
    initial_settled: int
        Number of leading installments already paid before tracking began.
    prepayments: Iterable[Prepayment]
        Recorded prepayments in any order; they are sorted here. A prepayment
        dated in ``]due(m-1), due(m)]`` is applied before the interest of
        period ``m`` is computed. Prepayments up to the first due date
        (including those dated before the start date) reduce the principal
        before the first installment.
    as_of: Optional[date]
        Installments due on or before this date are marked settled. Defaults
        to today; pass it explicitly for reproducible results.

    Returns
    -------
    List[ScheduleEntry]
        One entry per installment, numbered 1..N. When a prepayment clears
        the loan, the last entry is a closing entry dated on that
        prepayment.
    """
    if as_of is None:
        as_of = date.today()
    if principal <= 0 or rate < 0:
        return []
    ordered = sort_prepayments(prepayments)

    def settle(entry: ScheduleEntry) -> ScheduleEntry:
        if entry.period <= initial_settled or entry.date <= as_of:
            return replace(entry, settled=True, settled_on=entry.date)
        return entry

    if term_months <= 0:
        return [settle(closing_entry(1, start_date, principal))]

    installment = calculate_installment(principal, rate, term_months)
    if installment <= 0:
        logger.warning(
            "Installment computed as 0 for principal %s at %s%% over %s months", principal, rate, term_months
        )
        if sum((p.amount for p in ordered), ZERO) >= principal:
            return [settle(closing_entry(1, start_date, principal))]
        return []

    rate_per_month = monthly_rate(rate)
    cursor = PrepaymentCursor(ordered)
    max_periods = term_months + 2 * len(ordered) + SAFETY_BUFFER_MONTHS
    schedule: List[ScheduleEntry] = []
    balance = principal
    period = 0
    while balance > 0 and period < max_periods:
        period += 1
        due = add_months(start_date, period)
        window = cursor.apply_through(due, balance)
        if window.cleared_on is not None:
            schedule.append(settle(closing_entry(period, window.cleared_on, window.cleared_amount, window.applied)))
            balance = ZERO
            break
        balance = window.balance
        payment, principal_part, interest, ending_balance = amortize_month(balance, installment, rate_per_month)
        if rate == 0 and period >= term_months and ending_balance > 0:
            # P/n was rounded down: the last month of the term absorbs the remainder
            payment = principal_part = balance
            ending_balance = ZERO
        schedule.append(
            settle(
                ScheduleEntry(
                    period=period,
                    date=due,
                    starting_balance=balance,
                    payment=payment,
                    principal_payment=principal_part,
                    interest_payment=interest,
                    ending_balance=ending_balance,
                    prepayment=window.applied,
                )
            )
        )
        balance = ending_balance

    if balance > 0:
        logger.warning("Schedule stopped after %s periods with %s outstanding", period, balance)
    cursor.drain()
    return renumber(schedule)


def build_schedule(
    terms: LoanTerms,
    prepayments: Iterable[Prepayment] = (),
    as_of: Optional[date] = None,
    itemized: bool = True,
) -> List[ScheduleEntry]:
    """Generate the schedule for ``terms``.

    Derives the installment and the number of initially settled months from
    ``terms.amount_already_paid``. With ``itemized=False`` the prepayments are
    left out; that schedule is the input of the approximate status mode.
    """
    installment = calculate_installment(terms.principal, terms.rate, terms.term_months)
    return generate_schedule(
        terms.principal,
        terms.rate,
        terms.term_months,
        terms.start_date,
        initial_settled=initial_settled_count(terms.amount_already_paid, installment),
        prepayments=prepayments if itemized else (),
        as_of=as_of,
    )


def total_interest(schedule: Iterable[ScheduleEntry]) -> Decimal:
    """Sum the interest component over a schedule."""
    return sum((entry.interest_payment for entry in schedule), ZERO)


def closure_date(schedule: Sequence[ScheduleEntry]) -> Optional[date]:
    """Date of the last entry, or ``None`` for an empty schedule."""
    return schedule[-1].date if schedule else None
