"""Amortization and simulation engine for tracked loans."""
