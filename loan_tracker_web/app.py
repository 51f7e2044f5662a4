"""JSON API for the loan tracker.

Loans and prepayments live in a :class:`LoanStore`; every response that
shows a schedule, status or simulation recomputes it from the stored terms,
so nothing derived is ever persisted. Pass ``?as_of=YYYY-MM-DD`` to pin the
date used to decide which installments are settled.
"""

import logging
import os
from datetime import date

from flask import Flask, abort, jsonify, request

from loan_tracker.comparison import rank_by_rate
from loan_tracker.data_models import InvalidRecordError, LoanTerms, load_prepayments
from loan_tracker.engine import build_schedule, calculate_installment
from loan_tracker.simulation import analyze_loan_installment, simulate_loan_prepayment
from loan_tracker.status import approximate_status, itemized_status
from loan_tracker.utils import decimal_from_str, parse_date, term_in_months
from loan_tracker_web.loan_store import create_store_from_env

logger = logging.getLogger(__name__)


def _as_of() -> date:
    value = request.args.get("as_of")
    if not value:
        return date.today()
    try:
        return parse_date(value)
    except ValueError as exc:
        abort(400, description=str(exc))


def _payload() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        abort(400, description="Expected a JSON object")
    return data


def _decimal_field(data: dict, key: str, default=None):
    value = data.get(key, default)
    if value is None:
        abort(400, description=f"Missing field: {key}")
    try:
        return decimal_from_str(value)
    except ValueError as exc:
        abort(400, description=str(exc))


def _loan_summary(record: dict, as_of: date) -> dict:
    """Approximate status for list views; one bad loan must not break the list."""
    summary = {"id": record["id"], "name": record["name"]}
    try:
        terms = LoanTerms.from_dict(record)
        status = approximate_status(terms, build_schedule(terms, as_of=as_of, itemized=False))
    except InvalidRecordError as exc:
        logger.warning("Skipping status for loan %s: %s", record["id"], exc)
        summary["error"] = str(exc)
        return summary
    summary["interest_rate"] = float(terms.rate)
    summary["installment"] = float(calculate_installment(terms.principal, terms.rate, terms.term_months))
    summary["status"] = status.to_dict()
    return summary


def create_app(database_url=None, store=None):
    """Create the Flask application.

    ``database_url`` falls back to ``LOAN_TRACKER_DATABASE_URL``; tests pass
    an explicit URL (or a ready-made ``store``).
    """
    app = Flask(__name__)
    app.secret_key = os.environ.get("FLASK_SECRET_KEY", "dev-secret-key")
    logging.basicConfig(level=os.environ.get("LOAN_TRACKER_LOG_LEVEL", "INFO").upper())
    loan_store = store or create_store_from_env(database_url or os.environ.get("LOAN_TRACKER_DATABASE_URL"))
    app.config["LOAN_STORE"] = loan_store

    def _load(loan_id):
        """Return validated terms and prepayments for ``loan_id`` or abort."""
        record = loan_store.get_loan(loan_id)
        if record is None:
            abort(404, description=f"Loan {loan_id} not found")
        try:
            terms = LoanTerms.from_dict(record)
            prepayments = load_prepayments(loan_store.list_prepayments(loan_id))
        except InvalidRecordError as exc:
            abort(400, description=str(exc))
        return terms, prepayments

    @app.errorhandler(400)
    @app.errorhandler(404)
    def _json_error(error):
        return jsonify({"error": error.description}), error.code

    @app.get("/loans")
    def list_loans():
        as_of = _as_of()
        return jsonify([_loan_summary(record, as_of) for record in loan_store.list_loans()])

    @app.post("/loans")
    def create_loan():
        data = _payload()
        try:
            term = term_in_months(int(data.get("duration", 0)), data.get("duration_type", "months"))
            start = parse_date(data.get("start_date"))
        except (TypeError, ValueError) as exc:
            abort(400, description=str(exc))
        principal = _decimal_field(data, "principal_amount")
        rate = _decimal_field(data, "interest_rate")
        paid = _decimal_field(data, "amount_already_paid", default=0)
        if principal <= 0 or rate < 0 or term <= 0 or paid < 0:
            abort(400, description="Principal and duration must be positive; rate and amount paid non-negative")
        loan_id = loan_store.add_loan(
            name=str(data.get("name") or "Loan"),
            principal_amount=principal,
            interest_rate=rate,
            duration_months=term,
            start_date=start,
            amount_already_paid=paid,
        )
        return jsonify({"id": loan_id}), 201

    @app.get("/loans/<loan_id>")
    def loan_detail(loan_id):
        terms, prepayments = _load(loan_id)
        schedule = build_schedule(terms, prepayments, as_of=_as_of())
        return jsonify(
            {
                "id": loan_id,
                "name": terms.name,
                "installment": float(calculate_installment(terms.principal, terms.rate, terms.term_months)),
                "status": itemized_status(terms, schedule).to_dict(),
                "prepayments": [
                    {"id": p.prepayment_id, "date": p.date.isoformat(), "amount": float(p.amount), "notes": p.note}
                    for p in prepayments
                ],
                "schedule": [entry.to_dict() for entry in schedule],
            }
        )

    @app.delete("/loans/<loan_id>")
    def delete_loan(loan_id):
        if not loan_store.delete_loan(loan_id):
            abort(404, description=f"Loan {loan_id} not found")
        return "", 204

    @app.post("/loans/<loan_id>/prepayments")
    def record_prepayment(loan_id):
        data = _payload()
        amount = _decimal_field(data, "amount")
        if amount <= 0:
            abort(400, description="Prepayment amount must be positive")
        try:
            on = parse_date(data.get("date"))
        except ValueError as exc:
            abort(400, description=str(exc))
        prepayment_id = loan_store.add_prepayment(loan_id, amount, on, data.get("notes"))
        if prepayment_id is None:
            abort(404, description=f"Loan {loan_id} not found")
        return jsonify({"id": prepayment_id}), 201

    @app.delete("/loans/<loan_id>/prepayments/<prepayment_id>")
    def delete_prepayment(loan_id, prepayment_id):
        if not loan_store.delete_prepayment(loan_id, prepayment_id):
            abort(404, description=f"Prepayment {prepayment_id} not found")
        return "", 204

    @app.post("/loans/<loan_id>/simulate/prepayment")
    def simulate_prepayment_view(loan_id):
        terms, prepayments = _load(loan_id)
        data = _payload()
        amount = _decimal_field(data, "amount")
        try:
            impact = simulate_loan_prepayment(
                terms,
                prepayments,
                amount,
                int(data.get("after_month", 0)),
                _as_of(),
                recurring_every=int(data.get("recurring_every", 0)),
            )
        except (TypeError, ValueError) as exc:
            abort(400, description=str(exc))
        return jsonify(impact.to_dict())

    @app.post("/loans/<loan_id>/simulate/installment")
    def simulate_installment_view(loan_id):
        terms, prepayments = _load(loan_id)
        new_installment = _decimal_field(_payload(), "installment")
        try:
            result = analyze_loan_installment(terms, prepayments, new_installment, _as_of())
        except ValueError as exc:
            abort(400, description=str(exc))
        return jsonify(result.to_dict())

    @app.get("/loans/priority")
    def prepayment_priority():
        as_of = _as_of()
        candidates = []
        for record in loan_store.list_loans():
            try:
                terms = LoanTerms.from_dict(record)
            except InvalidRecordError as exc:
                logger.warning("Leaving loan %s out of the ranking: %s", record["id"], exc)
                continue
            candidates.append((terms, approximate_status(terms, build_schedule(terms, as_of=as_of, itemized=False))))
        return jsonify(
            [
                {
                    "id": terms.loan_id,
                    "name": terms.name,
                    "interest_rate": float(terms.rate),
                    "current_balance": float(status.current_balance),
                }
                for terms, status in rank_by_rate(candidates)
            ]
        )

    return app


if __name__ == "__main__":
    print("Starting Loan Tracker API...")
    create_app().run(debug=True)
