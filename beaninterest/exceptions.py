"""Typed exception hierarchy for beaninterest.

All exceptions inherit from BeanInterestError and carry a machine-readable
``code``. Errors raised while processing a period also carry the period and
the stage that failed, so a run that aborts can say exactly where.

    BeanInterestError
    +-- ConfigurationError      invalid or missing setting, fatal at startup
    +-- NotFoundError           account/category name not in the ledger
    +-- PeriodError
        +-- DateDerivationError impossible calendar arithmetic
        +-- LedgerQueryError    existence check or balance lookup failed
        +-- CommitFailure       ledger rejected the booking
"""

from datetime import date
from typing import Optional

from .types import Stage


class BeanInterestError(Exception):
    """Base class for all beaninterest errors."""

    code: str = "BEANINTEREST_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ConfigurationError(BeanInterestError):
    """A required setting is missing or a setting cannot be parsed."""

    code = "CONFIGURATION_ERROR"

    def __init__(self, message: str, setting: Optional[str] = None):
        self.setting = setting
        super().__init__(message)


class NotFoundError(BeanInterestError):
    """A configured account or category name does not exist in the ledger."""

    code = "NOT_FOUND"

    def __init__(self, kind: str, name: str):
        self.kind = kind
        self.name = name
        super().__init__(f"{kind.capitalize()} '{name}' not found.")


class PeriodError(BeanInterestError):
    """Failure while processing one period. Aborts the whole run."""

    code = "PERIOD_ERROR"
    stage: Stage = Stage.COMPUTE

    def __init__(self, period: date, message: str, stage: Optional[Stage] = None):
        self.period = period
        if stage is not None:
            self.stage = stage
        super().__init__(f"Period {period:%Y-%m} failed at stage '{self.stage.value}': {message}")


class DateDerivationError(PeriodError):
    """Booking or snapshot date could not be derived for a period."""

    code = "DATE_DERIVATION_ERROR"
    stage = Stage.DERIVE


class LedgerQueryError(PeriodError):
    """The ledger failed to answer an existence check or balance query."""

    code = "LEDGER_QUERY_ERROR"
    stage = Stage.CHECK


class CommitFailure(PeriodError):
    """The ledger rejected or failed a booking submission.

    Safe to retry the whole run later: already booked periods are skipped.
    """

    code = "COMMIT_FAILURE"
    stage = Stage.COMMIT
