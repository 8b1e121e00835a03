"""Ledger collaborator contract and the Beancount file backend.

The accrual engine only talks to a ledger through the ``LedgerClient``
protocol below, so it can be driven by any backend (or an in-memory fake
in tests). ``BeancountLedger`` implements the protocol on top of a plain
text Beancount ledger:

- endpoint: directory (or ``file://`` URL) containing ledger files
- sync id: ledger file name, with or without the ``.beancount`` suffix
- data dir: receives a snapshot copy of the ledger when it is loaded
- accounts: ``open`` directives; ``name`` and ``offbudget`` metadata map
  to the account's display name and budget status
- categories: accounts under the expenses root
- accrual records: balanced transactions appended to the ledger file,
  keyed by ``accrual_id`` metadata
"""

import logging
import shutil
from collections.abc import Callable, Sequence
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import NamedTuple, Optional, Protocol
from urllib.parse import unquote, urlparse

from beancount import loader as beancount_loader
from beancount.core import amount, data, realization
from beancount.parser import printer

from . import constants
from .exceptions import ConfigurationError
from .interest import cents_to_decimal, decimal_to_cents

logger = logging.getLogger(__name__)


class LedgerAccount(NamedTuple):
    """Account as listed by the ledger."""

    id: str
    name: str
    is_off_budget: bool


class LedgerCategory(NamedTuple):
    """Category as listed by the ledger."""

    id: str
    name: str


class LedgerTransaction(NamedTuple):
    """Existing transaction on an account, as seen by the existence check."""

    idempotency_key: Optional[str]
    date: date
    amount_cents: int
    category_id: Optional[str]
    cleared: bool
    note: Optional[str]


class AccrualRecord(NamedTuple):
    """One accrual booking submitted to the ledger."""

    idempotency_key: str
    booking_date: date
    amount: int
    snapshot_date: date
    payee: str
    note: str
    category_id: str
    cleared: bool


class LedgerClient(Protocol):
    """Capabilities the accrual engine needs from a ledger session."""

    def load_dataset(self, sync_id: str) -> None:
        """Load the dataset; must precede every query."""

    def list_accounts(self) -> list[LedgerAccount]:
        """Return all accounts."""

    def list_categories(self) -> list[LedgerCategory]:
        """Return all categories."""

    def list_transactions(
        self, account_id: str, from_date: date, to_date: date
    ) -> list[LedgerTransaction]:
        """Return transactions on an account within an inclusive date window."""

    def get_balance(self, account_id: str, as_of: date) -> int:
        """Return the signed account balance in cents at the end of ``as_of``."""

    def add_transactions(
        self,
        account_id: str,
        records: Sequence[AccrualRecord],
        allow_transfer_matching: bool = False,
        allow_auto_categorize: bool = False,
    ) -> None:
        """Book new records on an account exactly as given."""

    def set_budget_amount(self, period: date, category_id: str, amount_cents: int) -> None:
        """Set a category's budget for the month starting at ``period``."""

    def close(self) -> None:
        """Release the session."""


# connect(endpoint, credential, data_dir) -> session
Connector = Callable[[str, str, Path], LedgerClient]


def endpoint_to_path(endpoint: str) -> Path:
    """
    Translate a ledger endpoint into a local directory path.

    Raises:
        ConfigurationError: If the endpoint uses a scheme other than file://
    """
    parsed = urlparse(endpoint)
    if parsed.scheme == "file":
        return Path(unquote(parsed.path))
    if parsed.scheme == "":
        return Path(endpoint).expanduser()
    raise ConfigurationError(
        f"Unsupported ledger endpoint '{endpoint}': only local paths and file:// URLs",
        setting="endpoint",
    )


def _is_true(value) -> bool:
    """Read a boolean metadata value; ``offbudget: "false"`` is false."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in constants.META_TRUE_STRINGS
    return False


class BeancountLedger:
    """LedgerClient backed by a Beancount ledger file."""

    def __init__(self, root: Path, data_dir: Path):
        self.root = root
        self.data_dir = data_dir
        self.ledger_path: Optional[Path] = None
        self.currency = constants.DEFAULT_CURRENCY
        self._entries: Optional[list[data.Directive]] = None
        self._options: dict = {}
        self._budgets_written: dict[tuple[date, str], list[Decimal]] = {}

    @classmethod
    def connect(cls, endpoint: str, credential: str, data_dir: Path) -> "BeancountLedger":
        """
        Open a session on a ledger directory.

        Plain-text ledgers carry no authentication; the credential is
        accepted for the connection contract and ignored.

        Raises:
            ConfigurationError: If the endpoint is not an existing directory
        """
        root = endpoint_to_path(endpoint)
        if not root.is_dir():
            raise ConfigurationError(
                f"Ledger endpoint is not a directory: {root}", setting="endpoint"
            )
        logger.debug("Connected to ledger directory %s", root)
        return cls(root, Path(data_dir))

    # ── dataset ───────────────────────────────────────────────────────────

    def _resolve_ledger(self, sync_id: str) -> Path:
        candidates = [self.root / sync_id]
        if not sync_id.endswith(constants.LEDGER_FILE_SUFFIX):
            candidates.append(self.root / f"{sync_id}{constants.LEDGER_FILE_SUFFIX}")

        for candidate in candidates:
            if candidate.is_file():
                return candidate

        raise ConfigurationError(
            f"Ledger '{sync_id}' not found in {self.root}", setting="sync_id"
        )

    def load_dataset(self, sync_id: str) -> None:
        path = self._resolve_ledger(sync_id)
        logger.info("Loading ledger: %s", path)

        try:
            entries, errors, options_map = beancount_loader.load_file(str(path))
        except OSError as e:
            raise ConfigurationError(
                f"Cannot read ledger {path}: {e}", setting="sync_id"
            ) from e
        for err in errors:
            logger.warning("Ledger load warning: %s", err.message)

        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            shutil.copy2(path, self.data_dir / path.name)
        except OSError as e:
            raise ConfigurationError(
                f"Cannot write ledger snapshot to {self.data_dir}: {e}", setting="data_dir"
            ) from e

        self.ledger_path = path
        self._entries = list(entries)
        self._options = options_map
        self._budgets_written = {}
        operating = options_map.get("operating_currency") or []
        if operating:
            self.currency = operating[0]

        logger.debug("Loaded %d entries (currency %s)", len(self._entries), self.currency)

    def _require_loaded(self) -> list[data.Directive]:
        if self._entries is None:
            raise RuntimeError("Ledger dataset not loaded; call load_dataset() first")
        return self._entries

    def _opens(self) -> list[data.Open]:
        return [e for e in self._require_loaded() if isinstance(e, data.Open)]

    # ── queries ───────────────────────────────────────────────────────────

    def list_accounts(self) -> list[LedgerAccount]:
        return [
            LedgerAccount(
                id=entry.account,
                name=entry.meta.get(constants.META_ACCOUNT_NAME, entry.account),
                is_off_budget=_is_true(entry.meta.get(constants.META_OFF_BUDGET)),
            )
            for entry in self._opens()
        ]

    def list_categories(self) -> list[LedgerCategory]:
        expenses_root = self._options.get("name_expenses", constants.CATEGORY_ACCOUNT_ROOT)
        return [
            LedgerCategory(
                id=entry.account,
                name=entry.meta.get(constants.META_ACCOUNT_NAME, entry.account),
            )
            for entry in self._opens()
            if entry.account.split(":", 1)[0] == expenses_root
        ]

    def list_transactions(
        self, account_id: str, from_date: date, to_date: date
    ) -> list[LedgerTransaction]:
        result = []
        for entry in self._require_loaded():
            if not isinstance(entry, data.Transaction):
                continue
            if entry.date < from_date or entry.date > to_date:
                continue

            own = [p for p in entry.postings if p.account == account_id and p.units is not None]
            if not own:
                continue

            total = sum(
                (p.units.number for p in own if p.units.currency == self.currency),
                Decimal("0"),
            )
            other = next((p.account for p in entry.postings if p.account != account_id), None)

            result.append(
                LedgerTransaction(
                    idempotency_key=entry.meta.get(constants.META_ACCRUAL_ID),
                    date=entry.date,
                    amount_cents=decimal_to_cents(total),
                    category_id=other,
                    cleared=entry.flag == constants.FLAG_CLEARED,
                    note=entry.narration,
                ),
            )
        return result

    def get_balance(self, account_id: str, as_of: date) -> int:
        # Use beancount's realization engine so pad directives are respected
        entries = [e for e in self._require_loaded() if e.date <= as_of]
        real_root = realization.realize(entries)
        real_account = realization.get(real_root, account_id)
        if real_account is None:
            return 0

        units = real_account.balance.get_currency_units(self.currency)
        return decimal_to_cents(units.number)

    # ── mutations ─────────────────────────────────────────────────────────

    def _append(self, text: str) -> None:
        if self.ledger_path is None:
            raise RuntimeError("Ledger dataset not loaded; call load_dataset() first")
        with self.ledger_path.open("a", encoding="utf-8") as f:
            f.write("\n")
            f.write(text)

    def _build_transaction(self, account_id: str, record: AccrualRecord) -> data.Transaction:
        meta = data.new_metadata(
            str(self.ledger_path),
            0,
            {
                constants.META_ACCRUAL_ID: record.idempotency_key,
                constants.META_SNAPSHOT_DATE: record.snapshot_date.isoformat(),
            },
        )
        number = cents_to_decimal(record.amount)
        postings = [
            data.Posting(
                account=account_id,
                units=amount.Amount(number, self.currency),
                cost=None,
                price=None,
                flag=None,
                meta=None,
            ),
            data.Posting(
                account=record.category_id,
                units=amount.Amount(-number, self.currency),
                cost=None,
                price=None,
                flag=None,
                meta=None,
            ),
        ]
        return data.Transaction(
            meta=meta,
            date=record.booking_date,
            flag=constants.FLAG_CLEARED if record.cleared else constants.FLAG_UNCLEARED,
            payee=record.payee,
            narration=record.note,
            tags=data.EMPTY_SET,
            links=data.EMPTY_SET,
            postings=postings,
        )

    def add_transactions(
        self,
        account_id: str,
        records: Sequence[AccrualRecord],
        allow_transfer_matching: bool = False,
        allow_auto_categorize: bool = False,
    ) -> None:
        if allow_transfer_matching or allow_auto_categorize:
            raise ValueError(
                "Beancount ledgers do not support transfer matching or auto-categorization"
            )

        entries = self._require_loaded()
        opened = {e.account for e in self._opens()}
        for record in records:
            for account_name in (account_id, record.category_id):
                if account_name not in opened:
                    raise ValueError(f"Account '{account_name}' is not open in the ledger")

        new_entries = [self._build_transaction(account_id, r) for r in records]
        self._append("\n".join(printer.format_entry(e) for e in new_entries))

        entries.extend(new_entries)
        entries.sort(key=data.entry_sortkey)
        logger.debug("Appended %d transactions to %s", len(new_entries), self.ledger_path)

    def _budget_amounts(self, period: date, category_id: str) -> list[Decimal]:
        amounts = list(self._budgets_written.get((period, category_id), []))
        for entry in self._require_loaded():
            if not isinstance(entry, data.Custom) or entry.date != period:
                continue
            if entry.type != constants.BUDGET_CUSTOM_TYPE or not entry.values:
                continue
            if entry.values[0].value != category_id:
                continue
            last = entry.values[-1].value
            if isinstance(last, amount.Amount):
                amounts.append(last.number)
        return amounts

    def set_budget_amount(self, period: date, category_id: str, amount_cents: int) -> None:
        # Fava-style budget directive; spending budgets are positive
        number = cents_to_decimal(abs(amount_cents))
        existing = self._budget_amounts(period, category_id)
        if number in existing:
            logger.debug("Budget for %s on %s already set to %s", category_id, period, number)
            return
        if existing:
            logger.warning(
                "Budget for %s on %s changes from %s to %s",
                category_id,
                period,
                existing[-1],
                number,
            )

        self._append(
            f'{period.isoformat()} custom "{constants.BUDGET_CUSTOM_TYPE}" {category_id} '
            f'"{constants.BUDGET_PERIOD_MONTHLY}" {number} {self.currency}\n',
        )
        self._budgets_written.setdefault((period, category_id), []).append(number)

    def close(self) -> None:
        self._entries = None
        self._options = {}
        self._budgets_written = {}
        logger.debug("Closed ledger session for %s", self.root)


def open_ledger(endpoint: str, credential: str, data_dir: Path) -> LedgerClient:
    """Default connector used by the engine."""
    return BeancountLedger.connect(endpoint, credential, data_dir)
