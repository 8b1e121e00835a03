"""Type definitions and enums for beaninterest."""

from enum import Enum


class PeriodStatus(str, Enum):
    """Outcome of processing a single period."""

    PENDING = "PENDING"
    SKIPPED = "SKIPPED"  # Already booked in a previous run
    SIMULATED = "SIMULATED"
    COMMITTED = "COMMITTED"
    FAILED = "FAILED"


class Stage(str, Enum):
    """Processing stage within a period, used to report failures."""

    CHECK = "check"
    DERIVE = "derive"
    BALANCE = "balance"
    COMPUTE = "compute"
    BUDGET = "budget"
    COMMIT = "commit"
