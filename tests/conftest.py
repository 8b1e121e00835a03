"""Pytest configuration and shared fixtures for beaninterest tests."""

from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest

from beaninterest.ledger import (
    AccrualRecord,
    LedgerAccount,
    LedgerCategory,
    LedgerTransaction,
)
from beaninterest.schema import AccrualConfig

MORTGAGE_ID = "acct-mortgage"
INTEREST_ID = "cat-interest"

# ============================================================================
# In-memory ledger
# ============================================================================


class FakeLedger:
    """Deterministic in-memory LedgerClient.

    Records every call in ``calls`` so tests can assert on order and on
    which methods were (not) invoked.
    """

    def __init__(
        self,
        accounts: list[LedgerAccount] = None,
        categories: list[LedgerCategory] = None,
        balances: dict[date, int] = None,
        default_balance: int = -10_000_000,
    ):
        self.accounts = accounts if accounts is not None else [
            LedgerAccount(MORTGAGE_ID, "Hypotheek", True),
            LedgerAccount("acct-checking", "Checking", False),
        ]
        self.categories = categories if categories is not None else [
            LedgerCategory("cat-groceries", "Boodschappen"),
            LedgerCategory(INTEREST_ID, "Wonen: Hypotheekrente"),
        ]
        self.balances = balances or {}
        self.default_balance = default_balance
        self.transactions: list[tuple[str, LedgerTransaction]] = []
        self.added: list[AccrualRecord] = []
        self.add_options: list[tuple[bool, bool]] = []
        self.budgets: list[tuple[date, str, int]] = []
        self.calls: list[str] = []
        self.loaded_sync_id = None
        self.connected_with = None
        self.closed = False

        # Failure injection
        self.fail_add_for: set[date] = set()
        self.fail_list = False
        self.fail_balance = False
        self.fail_budget = False
        self.fail_close = False

    def connect(self, endpoint, credential, data_dir):
        """Connector compatible with engine.run()."""
        self.connected_with = (endpoint, credential, data_dir)
        return self

    def book_existing(self, key: str, booking_date: date, amount: int = -27901):
        """Pretend an earlier run already booked ``key``."""
        self.transactions.append(
            (
                MORTGAGE_ID,
                LedgerTransaction(key, booking_date, amount, INTEREST_ID, True, "earlier run"),
            ),
        )

    def load_dataset(self, sync_id):
        self.calls.append("load_dataset")
        self.loaded_sync_id = sync_id

    def list_accounts(self):
        self.calls.append("list_accounts")
        return list(self.accounts)

    def list_categories(self):
        self.calls.append("list_categories")
        return list(self.categories)

    def list_transactions(self, account_id, from_date, to_date):
        self.calls.append("list_transactions")
        if self.fail_list:
            raise RuntimeError("connection reset")
        return [
            txn
            for acct, txn in self.transactions
            if acct == account_id and from_date <= txn.date <= to_date
        ]

    def get_balance(self, account_id, as_of):
        self.calls.append("get_balance")
        if self.fail_balance:
            raise RuntimeError("balance unavailable")
        return self.balances.get(as_of, self.default_balance)

    def add_transactions(
        self, account_id, records, allow_transfer_matching=False, allow_auto_categorize=False
    ):
        self.calls.append("add_transactions")
        for record in records:
            if record.booking_date.replace(day=1) in self.fail_add_for:
                raise RuntimeError("ledger rejected the transaction")
        self.add_options.append((allow_transfer_matching, allow_auto_categorize))
        for record in records:
            self.added.append(record)
            self.transactions.append(
                (
                    account_id,
                    LedgerTransaction(
                        record.idempotency_key,
                        record.booking_date,
                        record.amount,
                        record.category_id,
                        record.cleared,
                        record.note,
                    ),
                ),
            )

    def set_budget_amount(self, period, category_id, amount_cents):
        self.calls.append("set_budget_amount")
        if self.fail_budget:
            raise RuntimeError("budget locked")
        self.budgets.append((period, category_id, amount_cents))

    def close(self):
        self.calls.append("close")
        self.closed = True
        if self.fail_close:
            raise RuntimeError("shutdown failed")


# ============================================================================
# Builders
# ============================================================================


def make_config(**kwargs) -> AccrualConfig:
    """Create AccrualConfig with sensible defaults."""
    settings = {
        "endpoint": "/srv/ledgers",
        "credential": "secret",
        "sync_id": "main",
        "annual_rate": Decimal("0.034"),
        "booking_day": 25,
    }
    settings.update(kwargs)
    return AccrualConfig(**settings)


LEDGER_TEXT = """option "operating_currency" "EUR"

2020-01-01 open Liabilities:Mortgage EUR
  name: "Hypotheek"
  offbudget: TRUE

2020-01-01 open Expenses:Housing:MortgageInterest EUR
  name: "Wonen: Hypotheekrente"

2020-01-01 open Expenses:Groceries EUR

2020-01-01 open Assets:Checking EUR

2020-01-01 open Equity:Opening-Balances EUR

2024-01-15 * "Bank" "Mortgage disbursement"
  Liabilities:Mortgage  -100000.00 EUR
  Equity:Opening-Balances

2024-03-01 * "Bank" "Principal payment"
  Liabilities:Mortgage  1000.00 EUR
  Assets:Checking
"""


def write_ledger(directory: Path, name: str = "main.beancount", text: str = LEDGER_TEXT) -> Path:
    """Write a Beancount ledger file and return its path."""
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    path.write_text(text, encoding="utf-8")
    return path


# ============================================================================
# Pytest Fixtures
# ============================================================================


@pytest.fixture
def fake_ledger():
    """Fixture providing a fresh in-memory ledger."""
    return FakeLedger()


@pytest.fixture
def sample_config():
    """Fixture providing a config builder function."""
    return make_config


@pytest.fixture
def ledger_dir(tmp_path):
    """Fixture providing a directory with a Beancount ledger named 'main'."""
    directory = tmp_path / "ledgers"
    write_ledger(directory)
    return directory
