"""Output formatting functions for CLI commands."""

import csv
import json
import sys

import click

from beaninterest.interest import cents_to_decimal
from beaninterest.periods import period_label


def _money(cents) -> str:
    if cents is None:
        return ""
    return f"{cents_to_decimal(cents):,.2f}"


def _day(value) -> str:
    return value.strftime("%Y-%m-%d") if value is not None else ""


def print_report_table(report) -> None:
    """Print a run report as a formatted table.

    Args:
        report: RunReport returned by the engine.
    """
    header = (
        f"{'Period':<8} {'Status':<10} {'Booking':>12} {'Snapshot':>12} "
        f"{'Balance':>16} {'Interest':>12}"
    )
    click.echo(header)
    click.echo("-" * len(header))

    for outcome in report.outcomes:
        click.echo(
            f"{period_label(outcome.period):<8} "
            f"{outcome.status.value:<10} "
            f"{_day(outcome.booking_date):>12} "
            f"{_day(outcome.snapshot_date):>12} "
            f"{_money(outcome.balance):>16} "
            f"{_money(outcome.amount):>12}"
        )

    mode = " (simulation, nothing booked)" if report.simulate else ""
    click.echo(
        f"\nTotal: {len(report.outcomes)} periods, {report.committed} committed, "
        f"{report.skipped} skipped, {report.simulated} simulated{mode}"
    )


def print_report_csv(report) -> None:
    """Print a run report as CSV."""
    writer = csv.writer(sys.stdout)
    writer.writerow(["Period", "Status", "Key", "Booking", "Snapshot", "Balance", "Interest"])

    for outcome in report.outcomes:
        writer.writerow(
            [
                period_label(outcome.period),
                outcome.status.value,
                outcome.idempotency_key,
                _day(outcome.booking_date),
                _day(outcome.snapshot_date),
                f"{cents_to_decimal(outcome.balance):.2f}" if outcome.balance is not None else "",
                f"{cents_to_decimal(outcome.amount):.2f}" if outcome.amount is not None else "",
            ],
        )


def print_report_json(report) -> None:
    """Print a run report as JSON with amounts in cents."""
    output = {
        "summary": {
            "simulate": report.simulate,
            "periods": len(report.outcomes),
            "committed": report.committed,
            "skipped": report.skipped,
            "simulated": report.simulated,
        },
        "periods": [
            {
                "period": period_label(o.period),
                "status": o.status.value,
                "key": o.idempotency_key,
                "booking_date": _day(o.booking_date) or None,
                "snapshot_date": _day(o.snapshot_date) or None,
                "balance_cents": o.balance,
                "interest_cents": o.amount,
            }
            for o in report.outcomes
        ],
    }

    click.echo(json.dumps(output, indent=2))


def print_periods_table(rows) -> None:
    """Print planned periods.

    Args:
        rows: List of (period, key, booking_date, snapshot_date) tuples.
    """
    header = f"{'Period':<8} {'Key':<18} {'Booking':>12} {'Snapshot':>12}"
    click.echo(header)
    click.echo("-" * len(header))

    for period, key, booking_date, snapshot_date in rows:
        click.echo(
            f"{period_label(period):<8} {key:<18} "
            f"{_day(booking_date):>12} {_day(snapshot_date):>12}"
        )

    click.echo(f"\nTotal: {len(rows)} periods")
