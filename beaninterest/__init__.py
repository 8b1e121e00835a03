"""Beaninterest - idempotent monthly mortgage interest booking.

This package walks every calendar month from a configured start through the
current month and books one interest accrual per month that the ledger does
not hold yet. Re-running is always safe: each month's booking carries a
deterministic key and is skipped when it already exists.

Main export:
    run: Perform one complete run for an AccrualConfig
"""

__version__ = "1.0.0"

from .engine import run

__all__ = ["run"]
