"""Loan status derived from a generated schedule.

Two evaluators share the :class:`~loan_tracker.data_models.LoanStatus` shape:

``itemized_status``
    The schedule already contains every recorded prepayment. Used on detail
    views where precision matters.

``approximate_status``
    The schedule was built without prepayment detail and the loan's cached
    ``total_prepaid`` figure is netted out afterwards. Used on list views and
    dashboards where rebuilding a fully itemized schedule for every loan is
    too expensive. The numbers drift from the itemized ones because interest
    saved by each prepayment is not modelled.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import NamedTuple, Optional, Sequence

from .data_models import LoanStatus, LoanTerms, ScheduleEntry
from .engine import ZERO
from .utils import to_cents

HUNDRED = Decimal("100")


class _Progress(NamedTuple):
    balance: Decimal
    principal_paid: Decimal
    interest_paid: Decimal
    settled_count: int
    next_due_date: Optional[date]
    last_settled: Optional[ScheduleEntry]


def _scan(schedule: Sequence[ScheduleEntry]) -> _Progress:
    """Locate the last settled and the first unsettled entry."""
    last_settled: Optional[ScheduleEntry] = None
    next_due: Optional[date] = None
    principal_paid = ZERO
    interest_paid = ZERO
    for entry in schedule:
        if entry.settled:
            last_settled = entry
            principal_paid += entry.principal_payment
            interest_paid += entry.interest_payment
        elif next_due is None:
            next_due = entry.date
    if last_settled is not None:
        balance = last_settled.ending_balance
        settled_count = last_settled.period
    else:
        # nothing paid yet: the balance before the first installment
        balance = schedule[0].starting_balance
        settled_count = 0
    return _Progress(balance, principal_paid, interest_paid, settled_count, next_due, last_settled)


def completion_percentage(principal_paid: Decimal, principal: Decimal) -> Decimal:
    """Share of the original principal repaid, in percent (0-100)."""
    if principal <= 0:
        return HUNDRED
    percentage = to_cents(principal_paid / principal * HUNDRED)
    return min(HUNDRED, max(ZERO, percentage))


def _empty_status(terms: LoanTerms, prepaid: Decimal, mode: str) -> LoanStatus:
    balance = max(ZERO, terms.principal - terms.amount_already_paid - prepaid)
    principal_paid = max(ZERO, terms.principal - balance)
    return LoanStatus(
        current_balance=balance,
        principal_paid=principal_paid,
        interest_paid=ZERO,
        next_due_date=None,
        settled_count=0,
        remaining_count=0,
        completion=completion_percentage(principal_paid, terms.principal),
        closure_date=terms.start_date,
        mode=mode,
    )


def _closure(schedule: Sequence[ScheduleEntry], progress: _Progress, balance: Decimal) -> date:
    if balance == 0 and progress.last_settled is not None:
        return progress.last_settled.date
    return schedule[-1].date


def itemized_status(terms: LoanTerms, schedule: Sequence[ScheduleEntry]) -> LoanStatus:
    """Derive the status from a schedule that reflects every prepayment."""
    if not schedule:
        return _empty_status(terms, ZERO, "itemized")
    progress = _scan(schedule)
    balance = max(ZERO, to_cents(progress.balance))
    # prepayments count towards principal paid, so measure against the original principal
    principal_paid = min(terms.principal, max(ZERO, to_cents(terms.principal - balance)))
    return LoanStatus(
        current_balance=balance,
        principal_paid=principal_paid,
        interest_paid=to_cents(progress.interest_paid),
        next_due_date=None if balance == 0 else progress.next_due_date,
        settled_count=progress.settled_count,
        remaining_count=max(0, len(schedule) - progress.settled_count),
        completion=completion_percentage(principal_paid, terms.principal),
        closure_date=_closure(schedule, progress, balance),
        mode="itemized",
    )


def approximate_status(terms: LoanTerms, schedule: Sequence[ScheduleEntry]) -> LoanStatus:
    """Derive the status from a prepayment-free schedule plus ``terms.total_prepaid``."""
    prepaid = terms.total_prepaid or ZERO
    if not schedule:
        return _empty_status(terms, prepaid, "approximate")
    progress = _scan(schedule)
    if prepaid > 0:
        principal_paid = min(terms.principal, to_cents(progress.principal_paid + prepaid))
        balance = max(ZERO, to_cents(terms.principal - principal_paid))
    else:
        balance = max(ZERO, to_cents(progress.balance))
        principal_paid = min(terms.principal, max(ZERO, to_cents(terms.principal - balance)))
    return LoanStatus(
        current_balance=balance,
        principal_paid=principal_paid,
        interest_paid=to_cents(progress.interest_paid),
        next_due_date=None if balance == 0 else progress.next_due_date,
        settled_count=progress.settled_count,
        remaining_count=max(0, len(schedule) - progress.settled_count),
        completion=completion_percentage(principal_paid, terms.principal),
        closure_date=_closure(schedule, progress, balance),
        mode="approximate",
    )
