"""What-if simulators built on top of the schedule generator.

``simulate_prepayment`` answers "what if I prepay X after installment N (and
maybe every few months after that)?" while keeping the installment fixed, so
the term shrinks. ``simulate_new_installment`` answers "what if I pay a
different installment from now on?". Both reuse :func:`amortize_month`, the
same interest/principal split the schedule generator uses, and both check up
front whether the installment can amortize the balance at all rather than
relying on the iteration cap alone.
"""

from __future__ import annotations

import logging
import math
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence

from .data_models import (
    InstallmentProjection,
    LoanStatus,
    LoanTerms,
    Prepayment,
    PrepaymentImpact,
    ScheduleEntry,
    WhatIfResult,
)
from .engine import (
    SAFETY_BUFFER_MONTHS,
    ZERO,
    amortize_month,
    build_schedule,
    calculate_installment,
    closing_entry,
    closure_date,
    monthly_rate,
    renumber,
    total_interest,
)
from .status import itemized_status
from .utils import add_months, months_between, to_cents

logger = logging.getLogger(__name__)


def _carried_prepayments(schedule: Sequence[ScheduleEntry]) -> Dict[int, Decimal]:
    """Map period -> lump sums the original schedule applied in that period."""
    carried: Dict[int, Decimal] = {}
    for entry in schedule:
        amount = entry.prepayment
        if entry.closing:
            # the clearing prepayment shows up as principal
            amount += entry.principal_payment
        if amount > 0:
            carried[entry.period] = amount
    return carried


def simulate_prepayment(
    schedule: Sequence[ScheduleEntry],
    amount: Decimal,
    after_period: int,
    rate: Decimal,
    installment: Decimal,
    recurring_every: int = 0,
) -> List[ScheduleEntry]:
    """Return ``schedule`` with one hypothetical prepayment applied.

    Parameters
    ----------
    schedule: Sequence[ScheduleEntry]
        The current, already prepayment-adjusted schedule.
    amount: Decimal
        The hypothetical prepayment. Zero or less returns ``schedule``
        unchanged.
    after_period: int
        Entries ``1..after_period`` are kept as they are; the prepayment is
        applied right after entry ``after_period`` (0 = before the first).
    rate, installment
        The loan's annual rate and fixed installment, reused for every
        regenerated month.
    recurring_every: int
        When positive, the same amount is prepaid again every
        ``recurring_every`` months after the first application.

    Raises
    ------
    ValueError
        If ``after_period`` lies outside the schedule, ``recurring_every`` is
        negative, or ``installment`` cannot cover the interest on the reduced
        balance.
    """
    if amount <= 0:
        return list(schedule)
    if after_period < 0 or after_period > len(schedule):
        raise ValueError(f"Prepayment point must be between 0 and {len(schedule)}; got {after_period}")
    if recurring_every < 0:
        raise ValueError("Recurring interval must not be negative")
    if not schedule:
        return []

    prefix = list(schedule[:after_period])
    if prefix:
        balance = prefix[-1].ending_balance
        anchor = prefix[-1].date
    else:
        balance = schedule[0].starting_balance
        anchor = add_months(schedule[0].date, -1)
    if balance <= 0:
        return renumber(prefix)
    if amount >= balance:
        # loan closes at the application point; the surplus is not carried forward
        return renumber(prefix + [closing_entry(after_period + 1, anchor, balance)])

    balance -= amount
    rate_per_month = monthly_rate(rate)
    if installment <= to_cents(balance * rate_per_month):
        raise ValueError(f"Installment {installment} does not cover the interest on {balance}")

    carried = _carried_prepayments(schedule)
    if after_period == 0:
        # the first entry's starting balance already nets its own window
        carried[1] = carried.get(1, ZERO) - schedule[0].prepayment
    suffix: List[ScheduleEntry] = []
    max_months = len(schedule) + SAFETY_BUFFER_MONTHS
    month = 0
    while balance > 0 and month < max_months:
        month += 1
        period = after_period + month
        prepaid = amount if month == 1 else ZERO
        extra = carried.get(period, ZERO)
        if recurring_every and month > 1 and (month - 1) % recurring_every == 0:
            extra += amount
        if extra > 0:
            applied = min(extra, balance)
            if applied == balance:
                suffix.append(closing_entry(period, add_months(anchor, month - 1), balance, prepaid))
                balance = ZERO
                break
            balance -= applied
            prepaid += applied
        payment, principal, interest, ending_balance = amortize_month(balance, installment, rate_per_month)
        suffix.append(
            ScheduleEntry(
                period=period,
                date=add_months(anchor, month),
                starting_balance=balance,
                payment=payment,
                principal_payment=principal,
                interest_payment=interest,
                ending_balance=ending_balance,
                prepayment=prepaid,
            )
        )
        balance = ending_balance

    if balance > 0:
        logger.warning("Prepayment simulation stopped after %s months with %s outstanding", month, balance)
    return renumber(prefix + suffix)


def prepayment_impact(
    original: Sequence[ScheduleEntry], simulated: Sequence[ScheduleEntry]
) -> PrepaymentImpact:
    """Summarize how a simulated schedule differs from the original one."""
    original_interest = to_cents(total_interest(original))
    new_interest = to_cents(total_interest(simulated))
    original_closure = closure_date(original)
    new_closure = closure_date(simulated)
    months_saved = 0
    if original_closure and new_closure:
        months_saved = max(0, months_between(original_closure, new_closure))
    return PrepaymentImpact(
        schedule=list(simulated),
        original_closure_date=original_closure,
        new_closure_date=new_closure,
        original_interest=original_interest,
        new_interest=new_interest,
        interest_saved=to_cents(original_interest - new_interest),
        months_saved=months_saved,
    )


def simulate_loan_prepayment(
    terms: LoanTerms,
    prepayments: Iterable[Prepayment],
    amount: Decimal,
    after_period: int,
    as_of: date,
    recurring_every: int = 0,
) -> PrepaymentImpact:
    """Build the loan's itemized schedule and simulate a prepayment on it."""
    schedule = build_schedule(terms, prepayments, as_of=as_of)
    installment = calculate_installment(terms.principal, terms.rate, terms.term_months)
    simulated = simulate_prepayment(
        schedule, amount, after_period, terms.rate, installment, recurring_every=recurring_every
    )
    return prepayment_impact(schedule, simulated)


def _expected_months(balance: Decimal, rate_per_month: Decimal, installment: Decimal) -> int:
    """Closed-form number of installments needed to repay ``balance``."""
    if rate_per_month == 0:
        return math.ceil(balance / installment)
    ratio = float(rate_per_month * balance / installment)
    return math.ceil(-math.log(1 - ratio) / math.log(1 + float(rate_per_month)))


def _non_convergent() -> InstallmentProjection:
    return InstallmentProjection(
        schedule=[], total_interest=ZERO, months_to_repay=None, closure_date=None, converged=False
    )


def simulate_new_installment(
    balance: Decimal, rate: Decimal, installment: Decimal, start_date: date
) -> InstallmentProjection:
    """Project ``balance`` forward under a new fixed ``installment``.

    The first new installment falls due on ``start_date`` and the following
    ones monthly after it. If the installment does not exceed the interest
    accruing on ``balance`` in the first month the balance can never reach
    zero, and a non-converged projection (no closure date, unbounded
    duration) is returned immediately.
    """
    if balance <= 0:
        return InstallmentProjection(
            schedule=[], total_interest=ZERO, months_to_repay=0, closure_date=None, converged=True
        )
    rate_per_month = monthly_rate(rate)
    first_interest = to_cents(balance * rate_per_month)
    if installment <= 0 or installment <= first_interest or rate_per_month * balance >= installment:
        logger.warning("Installment %s cannot amortize %s at %s%%", installment, balance, rate)
        return _non_convergent()

    max_months = _expected_months(balance, rate_per_month, installment) + SAFETY_BUFFER_MONTHS
    schedule: List[ScheduleEntry] = []
    interest_sum = ZERO
    for month in range(1, max_months + 1):
        payment, principal, interest, ending_balance = amortize_month(balance, installment, rate_per_month)
        schedule.append(
            ScheduleEntry(
                period=month,
                date=add_months(start_date, month - 1),
                starting_balance=balance,
                payment=payment,
                principal_payment=principal,
                interest_payment=interest,
                ending_balance=ending_balance,
            )
        )
        interest_sum += interest
        balance = ending_balance
        if balance <= 0:
            break

    if balance > 0:
        logger.warning("Projection did not settle within %s months", max_months)
        return _non_convergent()
    return InstallmentProjection(
        schedule=schedule,
        total_interest=interest_sum,
        months_to_repay=len(schedule),
        closure_date=schedule[-1].date,
        converged=True,
    )


def what_if_installment(
    schedule: Sequence[ScheduleEntry],
    status: LoanStatus,
    rate: Decimal,
    new_installment: Decimal,
    original_installment: Decimal,
) -> WhatIfResult:
    """Compare the current plan with paying ``new_installment`` from the next due date.

    Interest already paid on settled installments before the change point is
    added to the projected interest, so both totals cover the whole life of
    the loan.

    Raises
    ------
    ValueError
        If the loan has no outstanding balance or no next due date.
    """
    if status.current_balance <= 0 or status.next_due_date is None:
        raise ValueError("Loan is already repaid; nothing to analyse")
    projection = simulate_new_installment(status.current_balance, rate, new_installment, status.next_due_date)
    original_interest = to_cents(total_interest(schedule))
    if not projection.converged:
        return WhatIfResult(
            original_closure_date=status.closure_date,
            original_interest=original_interest,
            original_installment=original_installment,
            new_closure_date=None,
            new_interest=None,
            interest_saved=None,
            months_saved=0,
            projection=projection,
        )

    interest_before_change = total_interest(
        e for e in schedule if e.settled and e.date < status.next_due_date
    )
    new_interest = to_cents(interest_before_change + projection.total_interest)
    months_saved = 0
    if status.closure_date and projection.closure_date:
        months_saved = max(0, months_between(status.closure_date, projection.closure_date))
    return WhatIfResult(
        original_closure_date=status.closure_date,
        original_interest=original_interest,
        original_installment=original_installment,
        new_closure_date=projection.closure_date,
        new_interest=new_interest,
        interest_saved=to_cents(original_interest - new_interest),
        months_saved=months_saved,
        projection=projection,
    )


def analyze_loan_installment(
    terms: LoanTerms,
    prepayments: Iterable[Prepayment],
    new_installment: Decimal,
    as_of: date,
) -> WhatIfResult:
    """Build the loan's itemized schedule and status, then run the what-if."""
    schedule = build_schedule(terms, prepayments, as_of=as_of)
    status = itemized_status(terms, schedule)
    installment = calculate_installment(terms.principal, terms.rate, terms.term_months)
    return what_if_installment(schedule, status, terms.rate, new_installment, installment)
