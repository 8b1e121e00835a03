"""Accrual engine: books one interest accrual per missing month.

For each period produced by the cursor the engine runs a fixed sequence of
ledger calls:

    existence check -> balance lookup -> compute -> commit

and ends the period in exactly one state::

    PENDING -> SKIPPED | SIMULATED | COMMITTED | FAILED

A period is SKIPPED when the ledger already holds a record with the
period's idempotency key, so re-running after a partial or interrupted run
is always safe. FAILED is terminal for the whole run: the error propagates
and no later period is attempted.
"""

import logging
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import date
from typing import Optional

from .exceptions import (
    BeanInterestError,
    CommitFailure,
    LedgerQueryError,
    NotFoundError,
    PeriodError,
)
from .interest import cents_to_decimal, compute_monthly_accrual
from .ledger import (
    AccrualRecord,
    Connector,
    LedgerAccount,
    LedgerCategory,
    LedgerClient,
    open_ledger,
)
from .periods import (
    derive_booking_date,
    derive_snapshot_date,
    existence_window,
    idempotency_key,
    period_label,
    periods,
)
from .schema import AccrualConfig, PeriodOutcome, RunReport
from .types import PeriodStatus, Stage

logger = logging.getLogger(__name__)


def resolve_account(accounts: Sequence[LedgerAccount], name: str) -> LedgerAccount:
    """
    Find an account by exact name.

    An on-budget account is only warned about: budget status does not
    change the accrual, only how budget reports treat it.

    Raises:
        NotFoundError: If no account has this name
    """
    account = next((a for a in accounts if a.name == name), None)
    if account is None:
        raise NotFoundError("account", name)
    if not account.is_off_budget:
        logger.warning("Account '%s' is on-budget; consider marking it off-budget.", name)
    return account


def resolve_category(categories: Sequence[LedgerCategory], name: str) -> LedgerCategory:
    """
    Find a category by exact name.

    Raises:
        NotFoundError: If no category has this name
    """
    category = next((c for c in categories if c.name == name), None)
    if category is None:
        raise NotFoundError("category", name)
    return category


class AccrualService:
    """Ledger session plus the account/category ids resolved for one run."""

    def __init__(self, client: LedgerClient, account_id: str, category_id: str):
        self.client = client
        self.account_id = account_id
        self.category_id = category_id

    @classmethod
    def resolve(cls, client: LedgerClient, config: AccrualConfig) -> "AccrualService":
        """Resolve configured names against the ledger's current listings."""
        account = resolve_account(client.list_accounts(), config.account_name)
        category = resolve_category(client.list_categories(), config.category_name)
        logger.debug("Resolved account %s and category %s", account.id, category.id)
        return cls(client, account.id, category.id)

    def is_booked(self, period: date, key: str, today: date) -> bool:
        """Whether the ledger already holds the accrual for ``period``."""
        from_date, to_date = existence_window(period, today)
        try:
            existing = self.client.list_transactions(self.account_id, from_date, to_date)
        except BeanInterestError:
            raise
        except Exception as e:
            raise LedgerQueryError(period, f"existence check failed: {e}", Stage.CHECK) from e
        return any(t.idempotency_key == key for t in existing)

    def balance_at(self, period: date, as_of: date) -> int:
        """Account balance in cents at the end of ``as_of``."""
        try:
            return self.client.get_balance(self.account_id, as_of)
        except BeanInterestError:
            raise
        except Exception as e:
            raise LedgerQueryError(period, f"balance lookup failed: {e}", Stage.BALANCE) from e

    def set_budget(self, period: date, amount: int) -> None:
        """Budget the interest category for ``period``."""
        try:
            self.client.set_budget_amount(period, self.category_id, amount)
        except Exception as e:
            raise CommitFailure(period, f"budget update failed: {e}", Stage.BUDGET) from e

    def book(self, period: date, record: AccrualRecord) -> None:
        """Submit one record, with every automatic ledger behavior switched off."""
        try:
            self.client.add_transactions(
                self.account_id,
                [record],
                allow_transfer_matching=False,
                allow_auto_categorize=False,
            )
        except Exception as e:
            raise CommitFailure(period, f"booking rejected: {e}") from e


def process_period(
    service: AccrualService, config: AccrualConfig, period: date, today: date
) -> PeriodOutcome:
    """
    Process a single period.

    Args:
        service: Session-scoped ledger service
        config: Run configuration
        period: First-of-month date of the period
        today: Current date, bounds the existence check window

    Returns:
        PeriodOutcome with status SKIPPED, SIMULATED or COMMITTED

    Raises:
        PeriodError: On any failure; the run must stop
    """
    label = period_label(period)
    key = idempotency_key(period)

    if service.is_booked(period, key, today):
        logger.info("→ %s: already posted, skipping.", label)
        return PeriodOutcome(period=period, status=PeriodStatus.SKIPPED, idempotency_key=key)

    booking_date = derive_booking_date(period, config.booking_day)
    snapshot_date = derive_snapshot_date(period)
    logger.debug("→ %s: booking date %s, as of %s", label, booking_date, snapshot_date)

    balance = service.balance_at(period, snapshot_date)
    try:
        amount = compute_monthly_accrual(balance, config.annual_rate)
    except ArithmeticError as e:
        raise PeriodError(period, f"cannot compute accrual: {e}", Stage.COMPUTE) from e

    logger.info(
        "→ %s: balance %s, interest %s",
        label,
        cents_to_decimal(balance),
        cents_to_decimal(amount),
    )

    outcome = PeriodOutcome(
        period=period,
        status=PeriodStatus.SIMULATED if config.simulate else PeriodStatus.COMMITTED,
        idempotency_key=key,
        booking_date=booking_date,
        snapshot_date=snapshot_date,
        balance=balance,
        amount=amount,
    )

    if config.simulate:
        logger.info(
            "[simulate] %s: would book %s on %s", label, cents_to_decimal(amount), booking_date
        )
        return outcome

    record = AccrualRecord(
        idempotency_key=key,
        booking_date=booking_date,
        amount=amount,
        snapshot_date=snapshot_date,
        payee=config.payee,
        note=config.note_for(period),
        category_id=service.category_id,
        cleared=config.cleared,
    )

    if config.set_budget:
        service.set_budget(period, amount)
    service.book(period, record)
    logger.info("✔ Posted %s", label)
    return outcome


def run_accruals(service: AccrualService, config: AccrualConfig, today: date) -> RunReport:
    """
    Process every period from the configured start through today's month.

    Raises:
        PeriodError: The first period failure; earlier periods stay booked
    """
    outcomes: list[PeriodOutcome] = []

    for period in periods(config.start_date, today):
        try:
            outcomes.append(process_period(service, config, period, today))
        except PeriodError as e:
            logger.error(
                "✗ %s: FAILED at stage %s", period_label(period), e.stage.value
            )
            raise

    report = RunReport(simulate=config.simulate, outcomes=outcomes)
    logger.info(
        "All done: %d committed, %d skipped, %d simulated.",
        report.committed,
        report.skipped,
        report.simulated,
    )
    return report


@contextmanager
def ledger_session(
    config: AccrualConfig, connect: Connector = open_ledger
) -> Iterator[LedgerClient]:
    """
    Hold the ledger for the duration of a run.

    The session is always closed, also after a failure. A failing close is
    logged and never replaces the run's own result or error.
    """
    client = connect(config.endpoint, config.credential, config.data_dir)
    try:
        client.load_dataset(config.sync_id)
        yield client
    finally:
        try:
            client.close()
        except Exception as e:  # noqa: BLE001
            logger.error("Error during ledger shutdown: %s", e)


def run(
    config: AccrualConfig,
    today: Optional[date] = None,
    connect: Connector = open_ledger,
) -> RunReport:
    """
    Perform one complete run: connect, resolve, book, disconnect.

    Args:
        config: Run configuration
        today: Current date (defaults to the local date)
        connect: Ledger connector, replaceable for testing

    Returns:
        RunReport of every processed period

    Raises:
        ConfigurationError: If the ledger cannot be opened
        NotFoundError: If the account or category does not exist
        PeriodError: If a period fails
    """
    today = today or date.today()  # noqa: DTZ011
    logger.info("Connecting to ledger %s …", config.endpoint)

    with ledger_session(config, connect) as client:
        service = AccrualService.resolve(client, config)
        return run_accruals(service, config, today)
