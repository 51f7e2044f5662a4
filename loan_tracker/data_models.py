"""Data models for the loan tracker.

This module defines dataclasses representing the different entities used by the
engine: the static terms of a loan, recorded prepayments, individual schedule
entries, the derived loan status and the result bundles returned by the
what-if simulators. Using dataclasses makes it easy to construct, inspect and
serialize these structures.

Records coming from the persistence layer are converted with the
``from_dict`` constructors, which fail fast with :class:`InvalidRecordError`
instead of letting a malformed date or amount slip into the schedule merge.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from .utils import decimal_from_str, parse_date


class InvalidRecordError(ValueError):
    """Raised when a loan or prepayment record cannot be converted.

    Attributes
    ----------
    field: str
        Name of the offending field.
    record_id: Optional[str]
        Identifier of the record, when the record carries one.
    """

    def __init__(self, message: str, field: str, record_id: Optional[str] = None) -> None:
        self.field = field
        self.record_id = record_id
        if record_id:
            message = f"{message} (record {record_id})"
        super().__init__(message)


def _record_id(record: Dict[str, Any], key: str) -> Optional[str]:
    value = record.get(key)
    return str(value) if value is not None else None


def _decimal_field(record: Dict[str, Any], name: str, record_id: Optional[str], default: Any = None) -> Decimal:
    value = record.get(name, default)
    if value is None:
        raise InvalidRecordError(f"Missing value for {name}", name, record_id)
    try:
        return decimal_from_str(value)
    except ValueError as exc:
        raise InvalidRecordError(str(exc), name, record_id) from exc


def _date_field(record: Dict[str, Any], name: str, record_id: Optional[str]) -> date:
    try:
        return parse_date(record.get(name))
    except ValueError as exc:
        raise InvalidRecordError(str(exc), name, record_id) from exc


@dataclass(frozen=True)
class LoanTerms:
    """The static terms of a loan.

    Attributes
    ----------
    principal: Decimal
        The original amount borrowed.
    rate: Decimal
        Annual nominal interest rate in percent (``Decimal("12")`` is 12 %).
    term_months: int
        Original loan term in months.
    start_date: date
        The date the loan was disbursed. The first installment falls due one
        month later.
    amount_already_paid: Decimal
        Installments paid before the loan was tracked. Converted into a count
        of settled months by the engine.
    total_prepaid: Optional[Decimal]
        Cached sum of recorded prepayments. Only the approximate status mode
        reads it.
    """

    principal: Decimal
    rate: Decimal
    term_months: int
    start_date: date
    amount_already_paid: Decimal = Decimal("0")
    total_prepaid: Optional[Decimal] = None
    name: str = ""
    loan_id: Optional[str] = None

    @classmethod
    def from_dict(cls, record: Dict[str, Any]) -> "LoanTerms":
        """Build loan terms from a persistence record.

        Accepts either snake_case keys or the ``principal_amount`` /
        ``interest_rate`` / ``duration_months`` names used by the store.
        """
        record_id = _record_id(record, "id")
        if "principal" not in record and "principal_amount" in record:
            record = dict(record, principal=record["principal_amount"])
        if "rate" not in record and "interest_rate" in record:
            record = dict(record, rate=record["interest_rate"])
        term_value = record.get("term_months", record.get("duration_months"))
        try:
            term_months = int(term_value)
        except (TypeError, ValueError) as exc:
            raise InvalidRecordError(f"Invalid term: {term_value!r}", "term_months", record_id) from exc
        total_prepaid = record.get("total_prepaid", record.get("total_prepayment_amount"))
        return cls(
            principal=_decimal_field(record, "principal", record_id),
            rate=_decimal_field(record, "rate", record_id),
            term_months=term_months,
            start_date=_date_field(record, "start_date", record_id),
            amount_already_paid=_decimal_field(record, "amount_already_paid", record_id, default="0"),
            total_prepaid=(
                _decimal_field({"total_prepaid": total_prepaid}, "total_prepaid", record_id)
                if total_prepaid is not None
                else None
            ),
            name=str(record.get("name") or ""),
            loan_id=record_id,
        )


@dataclass(frozen=True)
class Prepayment:
    """An extra, out-of-schedule payment that reduces outstanding principal.

    Attributes
    ----------
    date: date
        The date the prepayment was made.
    amount: Decimal
        The amount applied to the principal.
    note: Optional[str]
        Free text supplied by the user.
    """

    date: date
    amount: Decimal
    note: Optional[str] = None
    prepayment_id: Optional[str] = None

    @classmethod
    def from_dict(cls, record: Dict[str, Any]) -> "Prepayment":
        record_id = _record_id(record, "id")
        amount = _decimal_field(record, "amount", record_id)
        if amount <= 0:
            raise InvalidRecordError(f"Prepayment amount must be positive; got {amount}", "amount", record_id)
        return cls(
            date=_date_field(record, "date", record_id),
            amount=amount,
            note=record.get("note") or record.get("notes"),
            prepayment_id=record_id,
        )


def load_prepayments(records: Iterable[Dict[str, Any]]) -> List[Prepayment]:
    """Convert raw records to prepayments sorted ascending by date.

    The first malformed record raises :class:`InvalidRecordError`; records are
    never skipped, since the merge relies on a complete, ordered list.
    """
    return sort_prepayments(Prepayment.from_dict(r) for r in records)


def sort_prepayments(prepayments: Iterable[Prepayment]) -> List[Prepayment]:
    # stable: same-day prepayments keep their recorded order
    return sorted(prepayments, key=lambda p: p.date)


@dataclass(frozen=True)
class ScheduleEntry:
    """An entry in the amortization schedule.

    Each entry corresponds to one installment. ``starting_balance`` is the
    balance once the prepayments of the period (``prepayment``) have been
    applied, so ``principal_payment + ending_balance == starting_balance``
    always holds. Closing entries produced when a lump sum clears the loan
    carry the retired balance as ``principal_payment``, no interest and
    ``closing=True``.
    """

    period: int
    date: date
    starting_balance: Decimal
    payment: Decimal
    principal_payment: Decimal
    interest_payment: Decimal
    ending_balance: Decimal
    prepayment: Decimal = Decimal("0")
    settled: bool = False
    settled_on: Optional[date] = None
    closing: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "period": self.period,
            "date": self.date.isoformat(),
            "starting_balance": float(self.starting_balance),
            "payment": float(self.payment),
            "principal": float(self.principal_payment),
            "interest": float(self.interest_payment),
            "prepayment": float(self.prepayment),
            "balance": float(self.ending_balance),
            "settled": self.settled,
            "settled_on": self.settled_on.isoformat() if self.settled_on else None,
            "closing": self.closing,
        }


@dataclass(frozen=True)
class LoanStatus:
    """Snapshot of a loan's progress derived from its schedule."""

    current_balance: Decimal
    principal_paid: Decimal
    interest_paid: Decimal
    next_due_date: Optional[date]
    settled_count: int
    remaining_count: int
    completion: Decimal  # percent, 0-100
    closure_date: Optional[date]
    mode: str = "itemized"  # or "approximate"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "current_balance": float(self.current_balance),
            "principal_paid": float(self.principal_paid),
            "interest_paid": float(self.interest_paid),
            "next_due_date": _iso(self.next_due_date),
            "settled_count": self.settled_count,
            "remaining_count": self.remaining_count,
            "completion": float(self.completion),
            "closure_date": _iso(self.closure_date),
            "mode": self.mode,
        }


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass(frozen=True)
class PrepaymentImpact:
    """Outcome of simulating one additional prepayment."""

    schedule: List[ScheduleEntry]
    original_closure_date: Optional[date]
    new_closure_date: Optional[date]
    original_interest: Decimal
    new_interest: Decimal
    interest_saved: Decimal
    months_saved: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "original_closure_date": _iso(self.original_closure_date),
            "new_closure_date": _iso(self.new_closure_date),
            "original_interest": float(self.original_interest),
            "new_interest": float(self.new_interest),
            "interest_saved": float(self.interest_saved),
            "months_saved": self.months_saved,
            "schedule": [e.to_dict() for e in self.schedule],
        }


@dataclass(frozen=True)
class InstallmentProjection:
    """Forward projection of a balance under a new fixed installment.

    ``months_to_repay`` and ``closure_date`` are ``None`` when the installment
    does not cover the interest accruing on the balance, i.e. the loan would
    never be repaid.
    """

    schedule: List[ScheduleEntry]
    total_interest: Decimal
    months_to_repay: Optional[int]
    closure_date: Optional[date]
    converged: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "converged": self.converged,
            "months_to_repay": self.months_to_repay,
            "closure_date": _iso(self.closure_date),
            "total_interest": float(self.total_interest),
            "schedule": [e.to_dict() for e in self.schedule],
        }


@dataclass(frozen=True)
class WhatIfResult:
    """Comparison of the current plan against a changed installment.

    ``new_interest`` and ``interest_saved`` are ``None`` when the new
    installment cannot amortize the balance (see ``projection.converged``).
    """

    original_closure_date: Optional[date]
    original_interest: Decimal
    original_installment: Decimal
    new_closure_date: Optional[date]
    new_interest: Optional[Decimal]
    interest_saved: Optional[Decimal]
    months_saved: int
    projection: InstallmentProjection = field(repr=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "original_closure_date": _iso(self.original_closure_date),
            "original_interest": float(self.original_interest),
            "original_installment": float(self.original_installment),
            "new_closure_date": _iso(self.new_closure_date),
            "new_interest": float(self.new_interest) if self.new_interest is not None else None,
            "interest_saved": float(self.interest_saved) if self.interest_saved is not None else None,
            "months_saved": self.months_saved,
            "projection": self.projection.to_dict(),
        }
