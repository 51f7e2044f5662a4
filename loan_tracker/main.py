"""Command-line interface for the loan tracker.

This module uses the ``click`` library to implement a multi-command
interface. Users can compute the fixed installment, print the amortization
schedule and status of a loan, simulate an extra prepayment or a changed
installment, and compare loan offers. Schedules can be printed to the
terminal or exported to JSON/CSV files.
"""

from __future__ import annotations

import csv
import json
import logging
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import click

from .comparison import LoanOffer, compare_offers
from .data_models import LoanTerms, Prepayment, ScheduleEntry, sort_prepayments
from .engine import build_schedule, calculate_installment
from .formatter import (
    print_offer_comparison,
    print_prepayment_impact,
    print_schedule,
    print_status,
    print_what_if,
)
from .simulation import analyze_loan_installment, simulate_loan_prepayment
from .status import approximate_status, itemized_status
from .utils import decimal_from_str, parse_date, term_in_months


def parse_amount(value: str) -> Decimal:
    """Parse a numeric string with optional suffixes.

    Accepts plain numbers ("500000") and shorthand with ``k``/``m`` suffixes
    (e.g., "500k" meaning 500_000). Returns a ``Decimal``.
    """
    value = value.strip().lower()
    value = value.replace(",", "")
    factor = Decimal(1)
    if value.endswith("k"):
        factor = Decimal(1_000)
        value = value[:-1]
    elif value.endswith("m"):
        factor = Decimal(1_000_000)
        value = value[:-1]
    try:
        return decimal_from_str(value) * factor
    except ValueError:
        raise click.BadParameter(f"Invalid amount: {value}")


def _parse_cli_date(value: str) -> date:
    try:
        return parse_date(value)
    except ValueError as exc:
        raise click.BadParameter(str(exc))


def parse_prepayment_strings(values: Tuple[str, ...]) -> List[Prepayment]:
    """Parse ``DATE:AMOUNT[:NOTE]`` strings into date-sorted prepayments."""
    prepayments: List[Prepayment] = []
    for item in values:
        parts = item.split(":", 2)
        if len(parts) < 2:
            raise click.BadParameter(
                f"Prepayment must be in YYYY-MM-DD:AMOUNT[:NOTE] format; got {item}"
            )
        dt = _parse_cli_date(parts[0])
        amount = parse_amount(parts[1])
        if amount <= 0:
            raise click.BadParameter(f"Prepayment amount must be positive; got {item}")
        note = parts[2] if len(parts) == 3 else None
        prepayments.append(Prepayment(date=dt, amount=amount, note=note))
    return sort_prepayments(prepayments)


def build_terms_from_options(
    principal: str,
    rate: float,
    term: int,
    years: bool,
    start_date: str,
    paid: Optional[str],
    prepayment: Tuple[str, ...],
) -> Tuple[LoanTerms, List[Prepayment]]:
    prepayments = parse_prepayment_strings(prepayment) if prepayment else []
    total_prepaid = sum((p.amount for p in prepayments), Decimal("0"))
    terms = LoanTerms(
        principal=parse_amount(principal),
        rate=decimal_from_str(rate),
        term_months=term_in_months(term, "years" if years else "months"),
        start_date=_parse_cli_date(start_date),
        amount_already_paid=parse_amount(paid) if paid else Decimal("0"),
        total_prepaid=total_prepaid,
    )
    return terms, prepayments


def _as_of(value: Optional[str]) -> date:
    return _parse_cli_date(value) if value else date.today()


def loan_options(func: Callable) -> Callable:
    """Attach the options describing a loan shared by most commands."""
    options = [
        click.option("--principal", "-p", "principal", required=True, help="Loan amount (accepts k/m suffixes)"),
        click.option("--rate", "-r", "rate", required=True, type=float, help="Annual interest rate (percent)"),
        click.option("--term", "-t", "term", required=True, type=int, help="Loan term in months"),
        click.option("--years", "years", is_flag=True, help="Interpret --term in years"),
        click.option("--start-date", "-s", "start_date", required=True, help="Loan start date (YYYY-MM-DD)"),
        click.option("--paid", "paid", help="Amount already paid before tracking began"),
        click.option(
            "--prepayment", "prepayment", multiple=True, help="Recorded prepayment in YYYY-MM-DD:AMOUNT[:NOTE] format"
        ),
        click.option("--as-of", "as_of", help="Treat installments due on or before this date as paid (default: today)"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def export_to_json(path: Path, schedule: List[ScheduleEntry], summary: Dict[str, Any]) -> None:
    """Export status and schedule to a JSON file."""
    data = {"status": summary, "schedule": [e.to_dict() for e in schedule]}
    with path.open("w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)


def export_to_csv(path: Path, schedule: List[ScheduleEntry]) -> None:
    """Export schedule to a CSV file."""
    header = [
        "Month",
        "Date",
        "Starting_Balance",
        "Payment",
        "Principal",
        "Interest",
        "Prepayment",
        "Ending_Balance",
        "Settled",
    ]
    with path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(header)
        for e in schedule:
            writer.writerow(
                [
                    e.period,
                    e.date.isoformat(),
                    f"{e.starting_balance:.2f}",
                    f"{e.payment:.2f}",
                    f"{e.principal_payment:.2f}",
                    f"{e.interest_payment:.2f}",
                    f"{e.prepayment:.2f}",
                    f"{e.ending_balance:.2f}",
                    e.settled,
                ]
            )


@click.group()
@click.option(
    "--log-level",
    "log_level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    help="Logging verbosity",
)
def cli(log_level: str) -> None:
    """Track loans, their repayment schedule and what-if scenarios."""
    logging.basicConfig(level=log_level.upper(), format="%(levelname)s %(name)s: %(message)s")


@cli.command()
@click.option("--principal", "-p", "principal", required=True, help="Loan amount (accepts k/m suffixes)")
@click.option("--rate", "-r", "rate", required=True, type=float, help="Annual interest rate (percent)")
@click.option("--term", "-t", "term", required=True, type=int, help="Loan term in months")
@click.option("--years", "years", is_flag=True, help="Interpret --term in years")
def installment(principal: str, rate: float, term: int, years: bool) -> None:
    """Print the fixed monthly installment for a loan."""
    value = calculate_installment(
        parse_amount(principal), decimal_from_str(rate), term_in_months(term, "years" if years else "months")
    )
    if value <= 0:
        raise click.BadParameter("Principal and term must be positive and the rate non-negative")
    click.echo(f"{value:.2f}")


@cli.command()
@loan_options
@click.option("--output", "output", type=str, help="Output file path (.json or .csv)")
def schedule(
    principal: str,
    rate: float,
    term: int,
    years: bool,
    start_date: str,
    paid: Optional[str],
    prepayment: Tuple[str, ...],
    as_of: Optional[str],
    output: Optional[str],
) -> None:
    """Compute and print the full amortization schedule."""
    terms, prepayments = build_terms_from_options(principal, rate, term, years, start_date, paid, prepayment)
    schedule_entries = build_schedule(terms, prepayments, as_of=_as_of(as_of))
    status = itemized_status(terms, schedule_entries)
    if output:
        path = Path(output)
        if path.suffix.lower() == ".json":
            export_to_json(path, schedule_entries, status.to_dict())
            click.echo(f"Schedule exported to {path}")
        elif path.suffix.lower() == ".csv":
            export_to_csv(path, schedule_entries)
            click.echo(f"Schedule exported to {path}")
        else:
            raise click.BadParameter("Unsupported output format; use .json or .csv")
    else:
        print_status(status, calculate_installment(terms.principal, terms.rate, terms.term_months))
        # Limit schedule length printed to avoid flooding the terminal
        max_rows = 120
        if len(schedule_entries) > max_rows:
            click.echo(
                f"Schedule has {len(schedule_entries)} rows; showing first {max_rows} rows."
            )
            print_schedule(schedule_entries[:max_rows], show_prepayments=bool(prepayments))
        else:
            print_schedule(schedule_entries, show_prepayments=bool(prepayments))


@cli.command()
@loan_options
@click.option(
    "--approximate",
    "approximate",
    is_flag=True,
    help="Net the prepayment total off a prepayment-free schedule instead of itemizing each prepayment",
)
def status(
    principal: str,
    rate: float,
    term: int,
    years: bool,
    start_date: str,
    paid: Optional[str],
    prepayment: Tuple[str, ...],
    as_of: Optional[str],
    approximate: bool,
) -> None:
    """Print the current status of a loan."""
    terms, prepayments = build_terms_from_options(principal, rate, term, years, start_date, paid, prepayment)
    if approximate:
        loan_status = approximate_status(terms, build_schedule(terms, as_of=_as_of(as_of), itemized=False))
    else:
        loan_status = itemized_status(terms, build_schedule(terms, prepayments, as_of=_as_of(as_of)))
    print_status(loan_status, calculate_installment(terms.principal, terms.rate, terms.term_months))


@cli.command("simulate-prepayment")
@loan_options
@click.option("--amount", "amount", required=True, help="Hypothetical prepayment amount")
@click.option("--after", "after", type=int, default=0, help="Apply after this installment number (0 = before the first)")
@click.option("--every", "every", type=int, default=0, help="Repeat the prepayment every N months")
@click.option("--show-schedule", "show_schedule", is_flag=True, help="Also print the simulated schedule")
def simulate_prepayment_command(
    principal: str,
    rate: float,
    term: int,
    years: bool,
    start_date: str,
    paid: Optional[str],
    prepayment: Tuple[str, ...],
    as_of: Optional[str],
    amount: str,
    after: int,
    every: int,
    show_schedule: bool,
) -> None:
    """Simulate an extra prepayment while keeping the installment fixed."""
    terms, prepayments = build_terms_from_options(principal, rate, term, years, start_date, paid, prepayment)
    try:
        impact = simulate_loan_prepayment(
            terms, prepayments, parse_amount(amount), after, _as_of(as_of), recurring_every=every
        )
    except ValueError as exc:
        raise click.BadParameter(str(exc))
    print_prepayment_impact(impact)
    if show_schedule:
        print_schedule(impact.schedule)


@cli.command("what-if")
@loan_options
@click.option("--installment", "new_installment", required=True, help="New fixed monthly installment")
def what_if(
    principal: str,
    rate: float,
    term: int,
    years: bool,
    start_date: str,
    paid: Optional[str],
    prepayment: Tuple[str, ...],
    as_of: Optional[str],
    new_installment: str,
) -> None:
    """Project the loan forward with a different installment from the next due date."""
    terms, prepayments = build_terms_from_options(principal, rate, term, years, start_date, paid, prepayment)
    try:
        result = analyze_loan_installment(terms, prepayments, parse_amount(new_installment), _as_of(as_of))
    except ValueError as exc:
        raise click.ClickException(str(exc))
    print_what_if(result)


def parse_offer_strings(values: Tuple[str, ...]) -> List[LoanOffer]:
    offers: List[LoanOffer] = []
    for index, item in enumerate(values, start=1):
        parts = item.split(":")
        if len(parts) not in (3, 4):
            raise click.BadParameter(
                f"Offer must be in PRINCIPAL:RATE:TERM[:NAME] format; got {item}"
            )
        try:
            rate = decimal_from_str(parts[1])
            term = int(parts[2])
        except ValueError as exc:
            raise click.BadParameter(str(exc))
        name = parts[3] if len(parts) == 4 else f"Offer {index}"
        offers.append(LoanOffer(name=name, principal=parse_amount(parts[0]), rate=rate, term_months=term))
    return offers


@cli.command()
@click.option("--offer", "offer", multiple=True, required=True, help="Offer in PRINCIPAL:RATE:TERM[:NAME] format")
def compare(offer: Tuple[str, ...]) -> None:
    """Compare loan offers side by side.

    Example:

        loan-tracker compare --offer 500k:8.5:240:BankA --offer 500k:8.1:300:BankB
    """
    print_offer_comparison(compare_offers(parse_offer_strings(offer)))


if __name__ == "__main__":
    cli()
