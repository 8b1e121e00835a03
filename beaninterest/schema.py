"""Pydantic schema models for run configuration and run reports."""

from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from . import constants
from .exceptions import ConfigurationError
from .periods import parse_start_basis, period_label
from .types import PeriodStatus


class AccrualConfig(BaseModel):
    """Immutable configuration snapshot for one run.

    Account and category are configured by name; the engine resolves them
    to ledger ids at the start of every run.

    Example::

        endpoint: /home/me/finance
        credential: not-used-by-file-ledgers
        sync_id: main
        account_name: Hypotheek
        category_name: "Wonen: Hypotheekrente"
        annual_rate: 0.034
        booking_day: 25
        start_date: 2024-01-01
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    # ── connection ────────────────────────────────────────────────────────
    endpoint: str = Field(..., description="Ledger endpoint (directory or file:// URL)")
    credential: str = Field(..., repr=False, description="Credential for the ledger endpoint")
    sync_id: str = Field(..., description="Dataset identifier within the endpoint")
    data_dir: Path = Field(
        Path(constants.DEFAULT_DATA_DIR), description="Local cache directory"
    )

    # ── booking target ────────────────────────────────────────────────────
    account_name: str = Field(constants.DEFAULT_ACCOUNT_NAME, description="Mortgage account name")
    category_name: str = Field(
        constants.DEFAULT_CATEGORY_NAME, description="Interest category name"
    )

    # ── accrual ───────────────────────────────────────────────────────────
    annual_rate: Decimal = Field(
        constants.DEFAULT_ANNUAL_RATE, description="Annual rate as a fraction (0.04 = 4%)"
    )
    booking_day: int = Field(constants.DEFAULT_BOOKING_DAY, description="Booking day (1-31)")
    start_date: Optional[date] = Field(None, description="First month to process")
    simulate: bool = Field(False, description="Report only, never write to the ledger")
    set_budget: bool = Field(False, description="Also budget the category for each period")

    # ── record metadata ───────────────────────────────────────────────────
    payee: str = Field(constants.DEFAULT_PAYEE, description="Payee of booked records")
    note_template: str = Field(
        constants.DEFAULT_NOTE_TEMPLATE, description="Note; {period} is replaced by YYYY-MM"
    )
    cleared: bool = Field(True, description="Book records as cleared")

    @field_validator("endpoint", "credential", "sync_id")
    @classmethod
    def validate_not_blank(cls, v: str, info) -> str:
        """Ensure connection settings are not empty."""
        if not v or not v.strip():
            raise ValueError(f"{info.field_name} cannot be empty")
        return v.strip()

    @field_validator("annual_rate")
    @classmethod
    def validate_rate(cls, v: Decimal) -> Decimal:
        """Ensure the compound monthly rate is defined for annual_rate."""
        if v < -1:
            raise ValueError("annual_rate must be at least -1")
        return v

    @field_validator("booking_day")
    @classmethod
    def validate_booking_day(cls, v: int) -> int:
        """Ensure booking_day is a day of the month."""
        if v < constants.MIN_DAY_OF_MONTH or v > constants.MAX_DAY_OF_MONTH:
            msg = (
                f"booking_day must be between {constants.MIN_DAY_OF_MONTH} "
                f"and {constants.MAX_DAY_OF_MONTH}"
            )
            raise ValueError(msg)
        return v

    @field_validator("start_date", mode="before")
    @classmethod
    def validate_start_date(cls, v: Any) -> Optional[date]:
        """Accept ISO dates and ``YYYY-MM`` month strings."""
        try:
            return parse_start_basis(v)
        except ConfigurationError as e:
            raise ValueError(e.message) from e

    @field_validator("note_template")
    @classmethod
    def validate_note_template(cls, v: str) -> str:
        """Ensure the note template only uses the {period} placeholder."""
        try:
            v.format(period="2000-01")
        except (KeyError, IndexError, ValueError) as e:
            raise ValueError(f"note_template may only reference {{period}}: {e}") from e
        return v

    def note_for(self, period: date) -> str:
        """Free-text note attached to the record for a period."""
        return self.note_template.format(period=period_label(period))


class PeriodOutcome(BaseModel):
    """Result of processing one period."""

    model_config = ConfigDict(frozen=True)

    period: date
    status: PeriodStatus
    idempotency_key: str
    booking_date: Optional[date] = None
    snapshot_date: Optional[date] = None
    balance: Optional[int] = Field(None, description="Snapshot balance in cents")
    amount: Optional[int] = Field(None, description="Accrual in cents")


class RunReport(BaseModel):
    """Summary of a completed run."""

    simulate: bool = False
    outcomes: list[PeriodOutcome] = Field(default_factory=list)

    def count(self, status: PeriodStatus) -> int:
        """Number of periods that ended in ``status``."""
        return sum(1 for o in self.outcomes if o.status == status)

    @property
    def committed(self) -> int:
        return self.count(PeriodStatus.COMMITTED)

    @property
    def skipped(self) -> int:
        return self.count(PeriodStatus.SKIPPED)

    @property
    def simulated(self) -> int:
        return self.count(PeriodStatus.SIMULATED)
