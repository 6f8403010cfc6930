"""Purchase Ledger - purchase orders, payables and inventory cost tracking."""

__version__ = "0.1.0"
