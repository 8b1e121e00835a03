"""Monthly interest accrual calculation.

A single convention is used for every period: the compound monthly rate

    monthly_rate = (1 + annual_rate) ** (1/12) - 1
    accrual      = round(balance * monthly_rate)

Amounts are integer cents. The product is computed in Decimal and rounded
half away from zero, so the result does not depend on float formatting and
is the same on every call. Because the rate does not depend on the number of
days in the month, February and March accrue the same interest for the same
balance.

Example:
    >>> compute_monthly_accrual(10_000_000, Decimal("0.034"))
    27901
"""

import logging
from decimal import ROUND_HALF_UP, Decimal, localcontext
from typing import Union

from . import constants

logger = logging.getLogger(__name__)

RateLike = Union[Decimal, float, int, str]

# Enough digits that a 12th root of a rate near 1 stays exact to the cent
# for balances far beyond any mortgage.
_PRECISION = 34


def to_decimal_rate(annual_rate: RateLike) -> Decimal:
    """Convert a rate to Decimal without picking up binary float noise."""
    if isinstance(annual_rate, Decimal):
        return annual_rate
    return Decimal(str(annual_rate))


def monthly_rate(annual_rate: RateLike) -> Decimal:
    """Compound monthly equivalent of an annual nominal rate.

    Raises:
        decimal.InvalidOperation: If annual_rate is below -1
    """
    rate = to_decimal_rate(annual_rate)
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        growth = (Decimal(1) + rate) ** (Decimal(1) / Decimal(constants.MONTHS_PER_YEAR))
        return growth - Decimal(1)


def compute_monthly_accrual(balance_cents: int, annual_rate: RateLike) -> int:
    """
    Interest accrued over one month on a balance.

    Args:
        balance_cents: Signed balance in cents (negative for a liability
                       balance, which yields a negative accrual)
        annual_rate: Annual rate as a fraction (0.034 for 3.4%)

    Returns:
        Accrual in cents, rounded half away from zero
    """
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        raw = Decimal(balance_cents) * monthly_rate(annual_rate)
        amount = int(raw.quantize(Decimal(1), rounding=ROUND_HALF_UP))

    logger.debug("Accrual on %s cents at %s: %s cents", balance_cents, annual_rate, amount)
    return amount


def cents_to_decimal(cents: int) -> Decimal:
    """Convert integer cents to a two-decimal currency amount."""
    return Decimal(cents).scaleb(constants.CENTS_EXPONENT)


def decimal_to_cents(value: Decimal) -> int:
    """Convert a currency amount to integer cents, rounding half away from zero."""
    scaled = value * constants.CENTS_PER_UNIT
    return int(scaled.quantize(Decimal(1), rounding=ROUND_HALF_UP))
