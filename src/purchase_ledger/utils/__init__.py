"""Utilities package for purchase-ledger."""

from .config import get_config, reset_config
from .datetime_utils import add_months, utc_now

__all__ = [
    "get_config",
    "reset_config",
    "add_months",
    "utc_now",
]
