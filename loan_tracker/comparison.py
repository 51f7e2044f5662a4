"""Side-by-side comparison of loan offers and prepayment priority.

``compare_offers`` evaluates competing offers on their installment, total
amount payable and total interest, flagging the cheapest offer on each
metric. ``rank_by_rate`` orders outstanding loans for prepayment using the
debt avalanche rule: highest interest rate first, smaller balance first on a
tie.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, List, Sequence, Tuple

from .data_models import LoanStatus, LoanTerms
from .engine import calculate_installment
from .utils import to_cents


@dataclass(frozen=True)
class LoanOffer:
    name: str
    principal: Decimal
    rate: Decimal
    term_months: int


@dataclass(frozen=True)
class OfferResult:
    offer: LoanOffer
    installment: Decimal
    total_payable: Decimal
    total_interest: Decimal
    best_installment: bool = False
    best_interest: bool = False
    best_total: bool = False

    @property
    def valid(self) -> bool:
        return self.installment > 0


def compare_offers(offers: Sequence[LoanOffer]) -> List[OfferResult]:
    """Evaluate each offer and flag the best value on every metric.

    Offers whose terms yield no installment are kept in the output (so the
    caller can report them) but never win a metric.
    """
    rows = []
    for offer in offers:
        installment = calculate_installment(offer.principal, offer.rate, offer.term_months)
        total_payable = to_cents(installment * offer.term_months)
        rows.append(
            OfferResult(
                offer=offer,
                installment=installment,
                total_payable=total_payable,
                total_interest=to_cents(total_payable - offer.principal) if installment > 0 else Decimal("0"),
            )
        )
    valid = [r for r in rows if r.valid]
    if not valid:
        return rows
    best_installment = min(r.installment for r in valid)
    best_interest = min(r.total_interest for r in valid)
    best_total = min(r.total_payable for r in valid)
    return [
        OfferResult(
            offer=r.offer,
            installment=r.installment,
            total_payable=r.total_payable,
            total_interest=r.total_interest,
            best_installment=r.valid and r.installment == best_installment,
            best_interest=r.valid and r.total_interest == best_interest,
            best_total=r.valid and r.total_payable == best_total,
        )
        for r in rows
    ]


def rank_by_rate(loans: Iterable[Tuple[LoanTerms, LoanStatus]]) -> List[Tuple[LoanTerms, LoanStatus]]:
    """Order loans with an outstanding balance for prepayment (avalanche)."""
    active = [(terms, status) for terms, status in loans if status.current_balance > 0]
    return sorted(active, key=lambda item: (-item[0].rate, item[1].current_balance))
