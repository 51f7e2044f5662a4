"""Flask API and SQLAlchemy store for the loan tracker."""
