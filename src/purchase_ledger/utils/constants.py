"""
Constants for the Purchase Ledger application.

This module defines all system-wide constants including:
- Application metadata
- Purchase numbering
- Monetary precision
- Expense category defaults and purchase labels
"""

from decimal import Decimal
from typing import List

# ============================================================================
# Application Metadata
# ============================================================================

APP_NAME = "Purchase Ledger"
APP_VERSION = "0.1.0"
DATABASE_FILENAME = "purchase_ledger.db"
DATABASE_VERSION = "1.0"

# ============================================================================
# Purchase Numbering
# ============================================================================

# PREFIX-YYYYMM-NNNN
DEFAULT_PURCHASE_NUMBER_PREFIX = "COMP"
PURCHASE_COUNTER_WIDTH = 4

# Candidate numbers tried before falling back to a timestamp suffix
MAX_NUMBER_ATTEMPTS = 10

# Full unit-of-work retries when the purchase_number unique constraint fires
MAX_CREATE_ATTEMPTS = 3

# ============================================================================
# Monetary Precision
# ============================================================================

MONEY_QUANTUM = Decimal("0.01")
UNIT_COST_QUANTUM = Decimal("0.0001")
ZERO = Decimal("0.00")

# ============================================================================
# Expense Categories
# ============================================================================

DEFAULT_CATEGORY_NAME = "Merchandise Purchases"
DEFAULT_CATEGORY_DESCRIPTION = "Purchases of raw materials and products"
DEFAULT_CATEGORY_COLOR = "#10b981"

# Labels attached to financial lines by purchase composition
LABEL_RAW_MATERIALS = "Raw Materials Purchase"
LABEL_RESALE_GOODS = "Resale Goods Purchase"
LABEL_MIXED = "Mixed Purchase"
LABEL_SUPPLIES = "Supplies Purchase"

# ============================================================================
# Cost History / Stock Movements
# ============================================================================

COST_CHANGE_REASON_PURCHASE = "PURCHASE"
MOVEMENT_REASON_PURCHASE = "PURCHASE"
MOVEMENT_REASON_PURCHASE_REVERSAL = "PURCHASE_REVERSAL"

REFERENCE_TYPE_PURCHASE = "PURCHASE"

# Supply categories offered to callers when creating the catalog
SUPPLY_CATEGORIES: List[str] = [
    "Seasonings",
    "Packaging",
    "Cleaning",
    "Other",
]
