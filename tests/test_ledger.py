"""Tests for the Beancount ledger backend."""

from datetime import date

import pytest
from beancount import loader as beancount_loader
from beancount.core import data

from beaninterest.exceptions import ConfigurationError
from beaninterest.ledger import AccrualRecord, BeancountLedger, endpoint_to_path, open_ledger
from tests.conftest import write_ledger

MORTGAGE = "Liabilities:Mortgage"
INTEREST = "Expenses:Housing:MortgageInterest"


def make_record(**kwargs) -> AccrualRecord:
    """Create AccrualRecord with sensible defaults."""
    defaults = {
        "idempotency_key": "interest-2024-02",
        "booking_date": date(2024, 2, 25),
        "amount": -27901,
        "snapshot_date": date(2024, 1, 31),
        "payee": "Hypotheekrente",
        "note": "Auto-generated hypotheekrente voor 2024-02",
        "category_id": INTEREST,
        "cleared": True,
    }
    defaults.update(kwargs)
    return AccrualRecord(**defaults)


@pytest.fixture
def ledger(ledger_dir, tmp_path):
    """Fixture providing a loaded BeancountLedger session."""
    session = BeancountLedger.connect(str(ledger_dir), "unused", tmp_path / "cache")
    session.load_dataset("main")
    yield session
    session.close()


class TestEndpoint:
    """Tests for endpoint resolution."""

    def test_plain_path(self, tmp_path):
        assert endpoint_to_path(str(tmp_path)) == tmp_path

    def test_file_url(self, tmp_path):
        assert endpoint_to_path(f"file://{tmp_path}") == tmp_path

    def test_home_expanded(self, monkeypatch, tmp_path):
        monkeypatch.setenv("HOME", str(tmp_path))
        assert endpoint_to_path("~/finance") == tmp_path / "finance"

    def test_remote_url_rejected(self):
        with pytest.raises(ConfigurationError) as exc_info:
            endpoint_to_path("https://ledger.example.com")
        assert exc_info.value.setting == "endpoint"

    def test_connect_requires_directory(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not a directory"):
            BeancountLedger.connect(str(tmp_path / "missing"), "pw", tmp_path / "cache")

    def test_open_ledger_connector(self, ledger_dir, tmp_path):
        session = open_ledger(str(ledger_dir), "pw", tmp_path / "cache")
        assert isinstance(session, BeancountLedger)
        assert session.root == ledger_dir

    def test_credential_not_retained(self, ledger_dir, tmp_path):
        """File ledgers have no authentication and keep no secret around."""
        session = BeancountLedger.connect(str(ledger_dir), "s3cret", tmp_path / "cache")
        assert "s3cret" not in vars(session).values()


class TestLoadDataset:
    """Tests for loading the ledger file."""

    def test_sync_id_with_suffix(self, ledger_dir, tmp_path):
        session = BeancountLedger.connect(str(ledger_dir), "pw", tmp_path / "cache")
        session.load_dataset("main.beancount")
        assert session.ledger_path == ledger_dir / "main.beancount"

    def test_unknown_sync_id(self, ledger_dir, tmp_path):
        session = BeancountLedger.connect(str(ledger_dir), "pw", tmp_path / "cache")
        with pytest.raises(ConfigurationError) as exc_info:
            session.load_dataset("household")
        assert exc_info.value.setting == "sync_id"

    def test_snapshot_copied_to_data_dir(self, ledger, tmp_path):
        assert (tmp_path / "cache" / "main.beancount").is_file()

    def test_operating_currency(self, ledger):
        assert ledger.currency == "EUR"

    def test_default_currency(self, tmp_path):
        directory = tmp_path / "plain"
        write_ledger(directory, text="2020-01-01 open Liabilities:Mortgage\n")
        session = BeancountLedger.connect(str(directory), "pw", tmp_path / "cache")
        session.load_dataset("main")
        assert session.currency == "EUR"

    def test_unwritable_data_dir(self, ledger_dir, tmp_path):
        """A data dir that cannot be created is a configuration error."""
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("")
        session = BeancountLedger.connect(str(ledger_dir), "pw", blocker / "cache")

        with pytest.raises(ConfigurationError) as exc_info:
            session.load_dataset("main")

        assert exc_info.value.setting == "data_dir"

    def test_unreadable_ledger(self, ledger_dir, tmp_path, monkeypatch):
        def refuse(path):
            raise PermissionError(13, "Permission denied", path)

        monkeypatch.setattr(beancount_loader, "load_file", refuse)
        session = BeancountLedger.connect(str(ledger_dir), "pw", tmp_path / "cache")

        with pytest.raises(ConfigurationError, match="Cannot read ledger") as exc_info:
            session.load_dataset("main")

        assert exc_info.value.setting == "sync_id"

    def test_queries_require_load(self, ledger_dir, tmp_path):
        session = BeancountLedger.connect(str(ledger_dir), "pw", tmp_path / "cache")
        with pytest.raises(RuntimeError, match="not loaded"):
            session.list_accounts()


class TestQueries:
    """Tests for account, category, transaction and balance queries."""

    def test_list_accounts(self, ledger):
        accounts = {a.id: a for a in ledger.list_accounts()}

        assert accounts[MORTGAGE].name == "Hypotheek"
        assert accounts[MORTGAGE].is_off_budget is True
        assert accounts["Assets:Checking"].name == "Assets:Checking"
        assert accounts["Assets:Checking"].is_off_budget is False

    @pytest.mark.parametrize(
        "value,expected",
        [
            ('"false"', False),
            ('"FALSE"', False),
            ('"true"', True),
            ("TRUE", True),
            ("FALSE", False),
        ],
    )
    def test_offbudget_metadata(self, tmp_path, value, expected):
        directory = tmp_path / "budgeted"
        write_ledger(
            directory,
            text=f'2020-01-01 open Liabilities:Mortgage EUR\n  offbudget: {value}\n',
        )
        session = BeancountLedger.connect(str(directory), "pw", tmp_path / "cache")
        session.load_dataset("main")

        [account] = session.list_accounts()
        assert account.is_off_budget is expected

    def test_list_categories(self, ledger):
        categories = {c.id: c.name for c in ledger.list_categories()}

        assert categories == {
            INTEREST: "Wonen: Hypotheekrente",
            "Expenses:Groceries": "Expenses:Groceries",
        }

    def test_balance_before_disbursement(self, ledger):
        assert ledger.get_balance(MORTGAGE, date(2024, 1, 14)) == 0

    def test_balance_after_disbursement(self, ledger):
        assert ledger.get_balance(MORTGAGE, date(2024, 1, 31)) == -10_000_000

    def test_balance_includes_principal_payment(self, ledger):
        assert ledger.get_balance(MORTGAGE, date(2024, 2, 29)) == -10_000_000
        assert ledger.get_balance(MORTGAGE, date(2024, 3, 31)) == -9_900_000

    def test_balance_unknown_account(self, ledger):
        assert ledger.get_balance("Liabilities:Car", date(2024, 3, 31)) == 0

    def test_list_transactions_window(self, ledger):
        txns = ledger.list_transactions(MORTGAGE, date(2024, 3, 1), date(2024, 3, 31))

        assert len(txns) == 1
        assert txns[0].date == date(2024, 3, 1)
        assert txns[0].amount_cents == 100_000
        assert txns[0].idempotency_key is None
        assert txns[0].cleared is True

    def test_list_transactions_other_account(self, ledger):
        assert ledger.list_transactions(INTEREST, date(2024, 1, 1), date(2024, 12, 31)) == []


class TestAddTransactions:
    """Tests for booking accrual records."""

    def test_added_record_is_listed(self, ledger):
        ledger.add_transactions(MORTGAGE, [make_record()])

        txns = ledger.list_transactions(MORTGAGE, date(2024, 2, 1), date(2024, 2, 29))
        assert len(txns) == 1
        assert txns[0].idempotency_key == "interest-2024-02"
        assert txns[0].amount_cents == -27901
        assert txns[0].category_id == INTEREST
        assert txns[0].note == "Auto-generated hypotheekrente voor 2024-02"

    def test_added_record_changes_later_balance(self, ledger):
        ledger.add_transactions(MORTGAGE, [make_record()])
        assert ledger.get_balance(MORTGAGE, date(2024, 2, 29)) == -10_027_901

    def test_record_persisted_to_file(self, ledger, ledger_dir):
        ledger.add_transactions(MORTGAGE, [make_record()])

        entries, errors, _ = beancount_loader.load_file(str(ledger_dir / "main.beancount"))
        assert errors == []

        booked = [
            e
            for e in entries
            if isinstance(e, data.Transaction) and e.meta.get("accrual_id") == "interest-2024-02"
        ]
        assert len(booked) == 1
        txn = booked[0]
        assert txn.date == date(2024, 2, 25)
        assert txn.payee == "Hypotheekrente"
        assert txn.meta["accrual_snapshot_date"] == "2024-01-31"
        amounts = {p.account: str(p.units.number) for p in txn.postings}
        assert amounts == {MORTGAGE: "-279.01", INTEREST: "279.01"}

    def test_record_visible_to_new_session(self, ledger, ledger_dir, tmp_path):
        ledger.add_transactions(MORTGAGE, [make_record()])
        ledger.close()

        session = BeancountLedger.connect(str(ledger_dir), "pw", tmp_path / "cache")
        session.load_dataset("main")
        keys = [
            t.idempotency_key
            for t in session.list_transactions(MORTGAGE, date(2024, 2, 1), date(2024, 2, 29))
        ]
        assert keys == ["interest-2024-02"]

    def test_uncleared_record(self, ledger):
        ledger.add_transactions(MORTGAGE, [make_record(cleared=False)])
        txns = ledger.list_transactions(MORTGAGE, date(2024, 2, 1), date(2024, 2, 29))
        assert txns[0].cleared is False

    def test_unknown_category_rejected(self, ledger, ledger_dir):
        before = (ledger_dir / "main.beancount").read_text()

        with pytest.raises(ValueError, match="not open"):
            ledger.add_transactions(MORTGAGE, [make_record(category_id="Expenses:Unknown")])

        assert (ledger_dir / "main.beancount").read_text() == before

    @pytest.mark.parametrize(
        "options",
        [{"allow_transfer_matching": True}, {"allow_auto_categorize": True}],
    )
    def test_automatic_behaviors_rejected(self, ledger, options):
        with pytest.raises(ValueError, match="do not support"):
            ledger.add_transactions(MORTGAGE, [make_record()], **options)


class TestSetBudgetAmount:
    """Tests for budget directives."""

    def test_writes_custom_budget_directive(self, ledger, ledger_dir):
        ledger.set_budget_amount(date(2024, 2, 1), INTEREST, -27901)

        text = (ledger_dir / "main.beancount").read_text()
        assert f'2024-02-01 custom "budget" {INTEREST} "monthly" 279.01 EUR' in text

    def test_directive_parses(self, ledger, ledger_dir):
        ledger.set_budget_amount(date(2024, 2, 1), INTEREST, 27901)

        entries, errors, _ = beancount_loader.load_file(str(ledger_dir / "main.beancount"))
        assert errors == []
        assert any(isinstance(e, data.Custom) and e.type == "budget" for e in entries)

    def test_same_budget_not_repeated(self, ledger, ledger_dir, tmp_path):
        """Setting the same budget again, also from a new session, adds nothing."""
        ledger.set_budget_amount(date(2024, 2, 1), INTEREST, -27901)
        ledger.set_budget_amount(date(2024, 2, 1), INTEREST, -27901)
        ledger.close()

        session = BeancountLedger.connect(str(ledger_dir), "pw", tmp_path / "cache")
        session.load_dataset("main")
        session.set_budget_amount(date(2024, 2, 1), INTEREST, -27901)

        text = (ledger_dir / "main.beancount").read_text()
        assert text.count('custom "budget"') == 1

    def test_changed_budget_appended(self, ledger, ledger_dir):
        ledger.set_budget_amount(date(2024, 2, 1), INTEREST, -27901)
        ledger.set_budget_amount(date(2024, 2, 1), INTEREST, -28000)

        text = (ledger_dir / "main.beancount").read_text()
        assert text.count('custom "budget"') == 2
        assert '"monthly" 280.00 EUR' in text

    def test_other_period_or_category_is_separate(self, ledger, ledger_dir):
        ledger.set_budget_amount(date(2024, 2, 1), INTEREST, -27901)
        ledger.set_budget_amount(date(2024, 3, 1), INTEREST, -27901)
        ledger.set_budget_amount(date(2024, 2, 1), "Expenses:Groceries", -27901)

        text = (ledger_dir / "main.beancount").read_text()
        assert text.count('custom "budget"') == 3



class TestClose:
    """Tests for ending a session."""

    def test_close_releases_dataset(self, ledger):
        ledger.close()
        with pytest.raises(RuntimeError):
            ledger.list_accounts()
