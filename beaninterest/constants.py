"""
Global constants for beaninterest.

This module centralizes magic strings and default values so the loader,
the engine and the CLI agree on them.
"""

from decimal import Decimal

# ============================================================================
# File Paths and Directories
# ============================================================================

DEFAULT_CONFIG_FILE = "beaninterest.yaml"
DEFAULT_DATA_DIR = ".cache"
LEDGER_FILE_SUFFIX = ".beancount"

# ============================================================================
# Environment Variables
# ============================================================================

ENV_CONFIG_FILE = "BEANINTEREST_CONFIG"

# Maps AccrualConfig field -> environment variable
ENV_OVERRIDES = {
    "endpoint": "BEANINTEREST_URL",
    "credential": "BEANINTEREST_PASSWORD",
    "sync_id": "BEANINTEREST_SYNC_ID",
    "account_name": "BEANINTEREST_ACCOUNT",
    "category_name": "BEANINTEREST_CATEGORY",
    "annual_rate": "BEANINTEREST_ANNUAL_RATE",
    "booking_day": "BEANINTEREST_BOOKING_DAY",
    "start_date": "BEANINTEREST_FROM_DATE",
    "simulate": "BEANINTEREST_DRY_RUN",
    "data_dir": "BEANINTEREST_DATA_DIR",
    "set_budget": "BEANINTEREST_SET_BUDGET",
}

REQUIRED_SETTINGS = ("endpoint", "credential", "sync_id")

# ============================================================================
# Default Configuration Values
# ============================================================================

DEFAULT_ACCOUNT_NAME = "Hypotheek"
DEFAULT_CATEGORY_NAME = "Wonen: Hypotheekrente"
DEFAULT_ANNUAL_RATE = Decimal("0.04")
DEFAULT_BOOKING_DAY = 25
DEFAULT_CURRENCY = "EUR"  # when the ledger declares no operating_currency
DEFAULT_PAYEE = "Hypotheekrente"
DEFAULT_NOTE_TEMPLATE = "Auto-generated hypotheekrente voor {period}"

# ============================================================================
# Idempotency
# ============================================================================

IDEMPOTENCY_KEY_PREFIX = "interest-"
PERIOD_FORMAT = "%Y-%m"

# ============================================================================
# Ledger Metadata Keys (Beancount backend)
# ============================================================================

META_ACCRUAL_ID = "accrual_id"
META_SNAPSHOT_DATE = "accrual_snapshot_date"
META_ACCOUNT_NAME = "name"
META_OFF_BUDGET = "offbudget"
# String metadata values read as true (case-insensitive)
META_TRUE_STRINGS = ("true", "yes", "1")

CATEGORY_ACCOUNT_ROOT = "Expenses"
BUDGET_CUSTOM_TYPE = "budget"
BUDGET_PERIOD_MONTHLY = "monthly"

FLAG_CLEARED = "*"
FLAG_UNCLEARED = "!"

# ============================================================================
# Validation Constraints
# ============================================================================

MIN_DAY_OF_MONTH = 1
MAX_DAY_OF_MONTH = 31

# ============================================================================
# Financial/Decimal Constants
# ============================================================================

CENTS_PER_UNIT = 100
CENTS_EXPONENT = -2
MONTHS_PER_YEAR = 12
