"""Persistence layer for loans and their recorded prepayments.

This module is the storage collaborator of the engine: it keeps loan terms
and a per-loan sub-collection of prepayments, and hands them back as plain
dictionaries that ``LoanTerms.from_dict`` / ``load_prepayments`` validate. It
defaults to SQLite for local development, but accepts any
SQLAlchemy-compatible URL (e.g. PostgreSQL/MySQL).

The ``total_prepayment_amount`` column caches the sum of a loan's
prepayments so list views can compute an approximate status without loading
every prepayment.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional
from uuid import uuid4

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, Numeric, String, Text, create_engine, select
from sqlalchemy.orm import declarative_base, relationship, sessionmaker

Base = declarative_base()

LOAN_FIELDS = ("name", "principal_amount", "interest_rate", "duration_months", "start_date", "amount_already_paid")


class LoanModel(Base):
    __tablename__ = "loans"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)
    principal_amount = Column(Numeric(14, 2), nullable=False)
    interest_rate = Column(Numeric(7, 4), nullable=False)
    duration_months = Column(Integer, nullable=False)
    start_date = Column(Date, nullable=False)
    amount_already_paid = Column(Numeric(14, 2), default=Decimal("0"), nullable=False)
    total_prepayment_amount = Column(Numeric(14, 2), default=Decimal("0"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    prepayments = relationship("PrepaymentModel", back_populates="loan", cascade="all, delete-orphan")


class PrepaymentModel(Base):
    __tablename__ = "prepayments"

    id = Column(String(64), primary_key=True)
    loan_id = Column(String(64), ForeignKey("loans.id"), index=True, nullable=False)
    amount = Column(Numeric(14, 2), nullable=False)
    date = Column(Date, nullable=False)
    notes = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    loan = relationship("LoanModel", back_populates="prepayments")


class LoanStore:
    """Database-backed loan store."""

    def __init__(self, url: str) -> None:
        self._engine = create_engine(url, future=True)
        Base.metadata.create_all(self._engine)
        self._session_factory = sessionmaker(self._engine, expire_on_commit=False, future=True)

    def add_loan(
        self,
        name: str,
        principal_amount: Decimal,
        interest_rate: Decimal,
        duration_months: int,
        start_date: date,
        amount_already_paid: Decimal = Decimal("0"),
    ) -> str:
        loan_id = uuid4().hex
        row = LoanModel(
            id=loan_id,
            name=name,
            principal_amount=principal_amount,
            interest_rate=interest_rate,
            duration_months=duration_months,
            start_date=start_date,
            amount_already_paid=amount_already_paid,
            total_prepayment_amount=Decimal("0"),
        )
        with self._session_factory() as session:
            session.add(row)
            session.commit()
        return loan_id

    def get_loan(self, loan_id: str) -> Optional[Dict[str, Any]]:
        with self._session_factory() as session:
            row = session.get(LoanModel, loan_id)
            return self._loan_to_dict(row) if row else None

    def list_loans(self) -> List[Dict[str, Any]]:
        with self._session_factory() as session:
            rows: Iterable[LoanModel] = session.execute(
                select(LoanModel).order_by(LoanModel.name.asc(), LoanModel.created_at.asc())
            ).scalars()
            return [self._loan_to_dict(row) for row in rows]

    def update_loan(self, loan_id: str, **changes: Any) -> bool:
        unknown = set(changes) - set(LOAN_FIELDS)
        if unknown:
            raise ValueError(f"Unknown loan fields: {', '.join(sorted(unknown))}")
        with self._session_factory() as session:
            row = session.get(LoanModel, loan_id)
            if row is None:
                return False
            for key, value in changes.items():
                setattr(row, key, value)
            session.commit()
        return True

    def delete_loan(self, loan_id: str) -> bool:
        with self._session_factory() as session:
            row = session.get(LoanModel, loan_id)
            if row is None:
                return False
            session.delete(row)
            session.commit()
        return True

    def add_prepayment(self, loan_id: str, amount: Decimal, on: date, notes: Optional[str] = None) -> Optional[str]:
        """Record a prepayment and bump the loan's cached prepayment total."""
        prepayment_id = uuid4().hex
        with self._session_factory() as session:
            loan = session.get(LoanModel, loan_id)
            if loan is None:
                return None
            session.add(PrepaymentModel(id=prepayment_id, loan_id=loan_id, amount=amount, date=on, notes=notes))
            loan.total_prepayment_amount = (loan.total_prepayment_amount or Decimal("0")) + amount
            session.commit()
        return prepayment_id

    def list_prepayments(self, loan_id: str) -> List[Dict[str, Any]]:
        with self._session_factory() as session:
            rows: Iterable[PrepaymentModel] = session.execute(
                select(PrepaymentModel)
                .where(PrepaymentModel.loan_id == loan_id)
                .order_by(PrepaymentModel.date.asc(), PrepaymentModel.created_at.asc())
            ).scalars()
            return [self._prepayment_to_dict(row) for row in rows]

    def delete_prepayment(self, loan_id: str, prepayment_id: str) -> bool:
        with self._session_factory() as session:
            row = session.get(PrepaymentModel, prepayment_id)
            if row is None or row.loan_id != loan_id:
                return False
            loan = session.get(LoanModel, loan_id)
            loan.total_prepayment_amount = max(Decimal("0"), loan.total_prepayment_amount - row.amount)
            session.delete(row)
            session.commit()
        return True

    @staticmethod
    def _loan_to_dict(row: LoanModel) -> Dict[str, Any]:
        return {
            "id": row.id,
            "name": row.name,
            "principal_amount": row.principal_amount,
            "interest_rate": row.interest_rate,
            "duration_months": row.duration_months,
            "start_date": row.start_date,
            "amount_already_paid": row.amount_already_paid,
            "total_prepayment_amount": row.total_prepayment_amount,
            "created_at": row.created_at.isoformat(),
        }

    @staticmethod
    def _prepayment_to_dict(row: PrepaymentModel) -> Dict[str, Any]:
        return {
            "id": row.id,
            "loan_id": row.loan_id,
            "amount": row.amount,
            "date": row.date,
            "notes": row.notes,
            "created_at": row.created_at.isoformat(),
        }


def create_store_from_env(url: str | None) -> LoanStore:
    return LoanStore(url or "sqlite:///loan_tracker.sqlite3")
