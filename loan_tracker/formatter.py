"""Output helpers for the loan tracker.

This module provides simple functions to render amortization schedules, loan
status and simulation results in a tabular text format. We rely only on
built-in printing and string formatting; the CLI decides what to print.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from .comparison import OfferResult
from .data_models import LoanStatus, PrepaymentImpact, ScheduleEntry, WhatIfResult


def _fmt_date(value: Optional[date]) -> str:
    return value.isoformat() if value else "-"


def print_status(status: LoanStatus, installment: Optional[Decimal] = None) -> None:
    """Print a summary of the loan's progress in a human-readable format."""
    print(f"Status ({status.mode})")
    print("-" * 72)
    if installment is not None:
        print(f"Installment        : {installment:.2f}")
    print(f"Current balance    : {status.current_balance:.2f}")
    print(f"Principal paid     : {status.principal_paid:.2f}")
    print(f"Interest paid      : {status.interest_paid:.2f}")
    print(f"Completed          : {status.completion:.2f}%")
    print(f"Installments       : {status.settled_count} settled, {status.remaining_count} remaining")
    print(f"Next due date      : {_fmt_date(status.next_due_date)}")
    print(f"Closure date       : {_fmt_date(status.closure_date)}")
    print("-" * 72)


def print_schedule(schedule: Iterable[ScheduleEntry], show_prepayments: bool = True) -> None:
    """Print the amortization schedule as a simple table.

    Parameters
    ----------
    schedule: Iterable[ScheduleEntry]
        The schedule entries to print.
    show_prepayments: bool
        Whether to include the ``Prepaid`` column.
    """
    headers = ["Month", "Date", "StartBal", "Payment", "Principal", "Interest"]
    if show_prepayments:
        headers.append("Prepaid")
    headers += ["EndBal", "Settled"]
    print("\t".join(headers))
    for entry in schedule:
        row = [
            str(entry.period),
            entry.date.isoformat(),
            f"{entry.starting_balance:.2f}",
            f"{entry.payment:.2f}",
            f"{entry.principal_payment:.2f}",
            f"{entry.interest_payment:.2f}",
        ]
        if show_prepayments:
            row.append(f"{entry.prepayment:.2f}")
        row.append(f"{entry.ending_balance:.2f}")
        row.append("Yes" if entry.settled else "No")
        print("\t".join(row))


def print_prepayment_impact(impact: PrepaymentImpact) -> None:
    print("Prepayment simulation")
    print("-" * 72)
    print(f"Original closure   : {_fmt_date(impact.original_closure_date)}")
    print(f"New closure        : {_fmt_date(impact.new_closure_date)}")
    print(f"Original interest  : {impact.original_interest:.2f}")
    print(f"New interest       : {impact.new_interest:.2f}")
    print(f"Interest saved     : {impact.interest_saved:.2f}")
    if impact.months_saved:
        print(f"Term reduction     : {impact.months_saved} months")
    print("-" * 72)


def print_what_if(result: WhatIfResult) -> None:
    """Print the outcome of a changed installment.

    A projection that never repays the loan is reported as such instead of
    printing a closure date.
    """
    print("Installment what-if")
    print("-" * 72)
    print(f"Current installment: {result.original_installment:.2f}")
    print(f"Original closure   : {_fmt_date(result.original_closure_date)}")
    print(f"Original interest  : {result.original_interest:.2f}")
    if not result.projection.converged:
        print("New installment does not cover the monthly interest; the loan would never be repaid.")
        print("-" * 72)
        return
    print(f"New closure        : {_fmt_date(result.new_closure_date)}")
    print(f"New interest       : {result.new_interest:.2f}")
    print(f"Interest saved     : {result.interest_saved:.2f}")
    print(f"Months to repay    : {result.projection.months_to_repay}")
    if result.months_saved:
        print(f"Term reduction     : {result.months_saved} months")
    print("-" * 72)


def print_offer_comparison(results: Sequence[OfferResult]) -> None:
    """Print loan offers side by side; ``*`` marks the best value per column."""
    print("Comparison")
    print("=" * 72)
    print(f"{'Offer':20s} {'Installment':>15s} {'Interest':>15s} {'Total':>15s}")
    for r in results:
        if not r.valid:
            print(f"{r.offer.name:20s} {'invalid terms':>15s}")
            continue
        installment = f"{r.installment:.2f}{'*' if r.best_installment else ' '}"
        interest = f"{r.total_interest:.2f}{'*' if r.best_interest else ' '}"
        total = f"{r.total_payable:.2f}{'*' if r.best_total else ' '}"
        print(f"{r.offer.name:20s} {installment:>15s} {interest:>15s} {total:>15s}")
    print("=" * 72)
