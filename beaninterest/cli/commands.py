"""Click CLI commands for beaninterest."""

import logging
import sys
import traceback
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import NoReturn

import click

from beaninterest import __version__, constants
from beaninterest.engine import run as run_engine
from beaninterest.exceptions import BeanInterestError
from beaninterest.interest import cents_to_decimal, compute_monthly_accrual, monthly_rate
from beaninterest.loader import load_config
from beaninterest.periods import (
    derive_booking_date,
    derive_snapshot_date,
    idempotency_key,
    periods,
)

from .formatters import (
    print_periods_table,
    print_report_csv,
    print_report_json,
    print_report_table,
)

logger = logging.getLogger(__name__)

CONFIG_OPTION = click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help=f"Configuration file (default: ${constants.ENV_CONFIG_FILE} or "
    f"./{constants.DEFAULT_CONFIG_FILE})",
)


def _fail(message: str) -> NoReturn:
    click.echo(message, err=True)
    if logger.isEnabledFor(logging.DEBUG):
        traceback.print_exc()
    sys.exit(1)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.version_option(version=__version__)
def main(verbose: bool):
    """Beaninterest - book monthly mortgage interest accruals into a ledger."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


@main.command()
@CONFIG_OPTION
@click.option(
    "--dry-run/--no-dry-run",
    default=None,
    help="Only report what would be booked (overrides configuration)",
)
@click.option("--from-date", default=None, help="First month to process (YYYY-MM or YYYY-MM-DD)")
@click.option(
    "--today",
    type=click.DateTime(formats=["%Y-%m-%d"]),
    default=None,
    help="Treat this date as today (default: local date)",
)
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json", "csv"]),
    default="table",
    help="Output format (default: table)",
)
def run(config_path, dry_run, from_date, today, output_format: str):
    """Book interest for every month not yet recorded in the ledger.

    Walks from the configured start month through the current month,
    skips months that already carry an accrual, and books one record for
    every other month. Safe to re-run at any time.

    Examples:
        beaninterest run
        beaninterest run --dry-run
        beaninterest run --from-date 2024-01 --format json
    """
    try:
        config = load_config(
            Path(config_path) if config_path else None,
            overrides={"simulate": dry_run, "start_date": from_date},
        )
        report = run_engine(config, today=today.date() if today else None)
    except BeanInterestError as e:
        _fail(f"✗ {e}")

    if output_format == "table":
        print_report_table(report)
    elif output_format == "json":
        print_report_json(report)
    elif output_format == "csv":
        print_report_csv(report)


@main.command(name="periods")
@click.option("--from-date", default=None, help="First month (YYYY-MM or YYYY-MM-DD)")
@click.option(
    "--today",
    type=click.DateTime(formats=["%Y-%m-%d"]),
    default=None,
    help="Treat this date as today (default: local date)",
)
@click.option(
    "--booking-day",
    type=click.IntRange(constants.MIN_DAY_OF_MONTH, constants.MAX_DAY_OF_MONTH),
    default=constants.DEFAULT_BOOKING_DAY,
    show_default=True,
    help="Preferred booking day of month",
)
def list_periods(from_date, today, booking_day: int):
    """Show the months a run would consider, without touching the ledger.

    Examples:
        beaninterest periods --from-date 2024-01
        beaninterest periods --from-date 2024-01 --booking-day 31
    """
    current = today.date() if today else date.today()  # noqa: DTZ011

    try:
        rows = [
            (p, idempotency_key(p), derive_booking_date(p, booking_day), derive_snapshot_date(p))
            for p in periods(from_date, current)
        ]
    except BeanInterestError as e:
        _fail(f"Error: {e}")

    if not rows:
        click.echo("No periods to process")
        return

    print_periods_table(rows)


@main.command()
@click.argument("balance_cents", type=int)
@click.option(
    "--rate",
    default=str(constants.DEFAULT_ANNUAL_RATE),
    show_default=True,
    help="Annual interest rate as a fraction",
)
def calc(balance_cents: int, rate: str):
    """Compute one month of interest on a balance given in cents.

    Use "--" before negative balances.

    Examples:
        beaninterest calc 10000000 --rate 0.034
        beaninterest calc --rate 0.034 -- -10000000
    """
    try:
        annual_rate = Decimal(rate)
        if not annual_rate.is_finite():
            raise InvalidOperation(rate)
        accrual = compute_monthly_accrual(balance_cents, annual_rate)
        rate_per_month = monthly_rate(annual_rate)
    except ArithmeticError:
        _fail(f"Error: invalid rate '{rate}'")

    click.echo(f"Balance: {cents_to_decimal(balance_cents):,.2f}")
    click.echo(f"Annual rate: {annual_rate * 100:.3f}%")
    click.echo(f"Monthly rate: {rate_per_month * 100:.6f}%")
    click.echo(f"Interest: {cents_to_decimal(accrual):,.2f} ({accrual} cents)")


@main.command()
@CONFIG_OPTION
def validate(config_path):
    """Validate the configuration without connecting to the ledger.

    Examples:
        beaninterest validate
        beaninterest validate --config beaninterest.yaml
    """
    try:
        config = load_config(Path(config_path) if config_path else None)
    except BeanInterestError as e:
        _fail(f"✗ Validation failed: {e}")

    click.echo("✓ Configuration is valid!")
    click.echo(f"  Endpoint: {config.endpoint}")
    click.echo(f"  Ledger: {config.sync_id}")
    click.echo(f"  Account: {config.account_name}")
    click.echo(f"  Category: {config.category_name}")
    click.echo(f"  Annual rate: {config.annual_rate * 100:.3f}%")
    click.echo(f"  Booking day: {config.booking_day}")
    click.echo(f"  Start: {config.start_date or 'current month'}")
    click.echo(f"  Simulate: {'yes' if config.simulate else 'no'}")


@main.command()
@click.argument("path", type=click.Path(), required=False, default=constants.DEFAULT_CONFIG_FILE)
def init(path: str):
    """Write an example configuration file.

    PATH: File to create (default: beaninterest.yaml)

    Examples:
        beaninterest init
        beaninterest init config/beaninterest.yaml
    """
    output_path = Path(path)

    if output_path.exists():
        click.confirm(f"File already exists: {output_path}\nOverwrite?", abort=True)
    else:
        output_path.parent.mkdir(parents=True, exist_ok=True)

    config_content = f"""# beaninterest configuration
# Directory holding the ledger, and the ledger file name inside it
endpoint: ~/finance
credential: change-me
sync_id: main

account_name: {constants.DEFAULT_ACCOUNT_NAME}
category_name: "{constants.DEFAULT_CATEGORY_NAME}"

annual_rate: {constants.DEFAULT_ANNUAL_RATE}
booking_day: {constants.DEFAULT_BOOKING_DAY}
# start_date: 2024-01-01
simulate: true
"""

    with output_path.open("w") as f:
        f.write(config_content)

    click.echo(f"Created: {output_path}")
    click.echo("\nNext steps:")
    click.echo("  1. Point endpoint and sync_id at your ledger")
    click.echo(f"  2. Validate the configuration: beaninterest validate --config {output_path}")
    click.echo(f"  3. Preview, then set simulate: false: beaninterest run --config {output_path}")
