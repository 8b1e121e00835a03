"""Period cursor and per-period date derivation.

A period is one calendar month, represented by its first-of-month date.
The cursor walks from a start month up to and including the current
month; the helpers here derive everything else the engine needs for a
period (booking date, snapshot date, idempotency key, query window).
"""

import calendar
import logging
from collections.abc import Iterator
from datetime import date, datetime, time, timedelta
from typing import Optional, Union

from dateutil.parser import isoparse
from dateutil.rrule import MONTHLY, rrule

from . import constants
from .exceptions import ConfigurationError, DateDerivationError

logger = logging.getLogger(__name__)

StartBasis = Union[date, str, None]


def first_of_month(d: date) -> date:
    """Truncate a date to day 1 of its month."""
    return date(d.year, d.month, 1)


def last_day_of_month(d: date) -> int:
    """Return the number of the last calendar day of ``d``'s month."""
    return calendar.monthrange(d.year, d.month)[1]


def parse_start_basis(value: StartBasis) -> Optional[date]:
    """Parse an explicit start date.

    Accepts a date/datetime or an ISO string (``2024-01-15`` or ``2024-01``).
    Empty values mean "no explicit start".

    Raises:
        ConfigurationError: If a string is given that is not a calendar date
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    if not text:
        return None
    try:
        return isoparse(text).date()
    except (ValueError, OverflowError) as e:
        raise ConfigurationError(
            f"Invalid start date: {value!r} is not a calendar date",
            setting="start_date",
        ) from e


def periods(start_basis: StartBasis, today: date) -> Iterator[date]:
    """
    Generate the periods to process, oldest first.

    Args:
        start_basis: Explicit start date (truncated to its month), or None
                     to start at today's month
        today: Current date; its month is the last period produced

    Returns:
        Lazy iterator of first-of-month dates, one calendar month apart.
        Empty when the start month lies after today's month.

    Raises:
        ConfigurationError: If start_basis is an unparseable string
    """
    start = first_of_month(parse_start_basis(start_basis) or today)
    end = first_of_month(today)

    if start > end:
        logger.info("Start month %s is after current month %s, nothing to do", start, end)
        return iter(())

    cursor = rrule(
        MONTHLY,
        dtstart=datetime.combine(start, time.min),
        until=datetime.combine(end, time.min),
        bymonthday=1,
    )
    return (d.date() for d in cursor)


def period_label(period: date) -> str:
    """Format a period as ``YYYY-MM``."""
    return period.strftime(constants.PERIOD_FORMAT)


def idempotency_key(period: date) -> str:
    """Deterministic key identifying the accrual booked for a period."""
    return f"{constants.IDEMPOTENCY_KEY_PREFIX}{period_label(period)}"


def derive_booking_date(period: date, booking_day: int) -> date:
    """
    Date the accrual is booked on.

    The configured day is clamped to the month's length, so day 31 becomes
    the 30th in April and the 28th/29th in February.

    Raises:
        DateDerivationError: If no valid date can be built
    """
    try:
        day = min(booking_day, last_day_of_month(period))
        return date(period.year, period.month, day)
    except (TypeError, ValueError) as e:
        raise DateDerivationError(period, f"invalid booking day {booking_day!r}: {e}") from e


def derive_snapshot_date(period: date) -> date:
    """
    Date whose closing balance the accrual is computed from.

    This is the last day of the previous month, i.e. the balance before any
    principal movement on the 1st of the period.

    Raises:
        DateDerivationError: If the previous day is out of the calendar range
    """
    try:
        return first_of_month(period) - timedelta(days=1)
    except (OverflowError, ValueError) as e:
        raise DateDerivationError(period, f"no snapshot date before {period}: {e}") from e


def existence_window(period: date, today: date) -> tuple[date, date]:
    """
    Inclusive date window searched for an already booked accrual.

    Covers at least first-of-month through today. When today is earlier
    than the end of the period, the window extends to the last day of the
    month so a booking dated later in the current month is still found.
    """
    start = first_of_month(period)
    month_end = date(period.year, period.month, last_day_of_month(period))
    return start, max(today, month_end)
