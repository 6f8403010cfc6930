"""
Enumerations for purchasing and financial models.

This module contains enums used across purchase-related models:
- PurchaseStatus: Settlement state of a purchase or ledger expense
- PaymentMethod: How a purchase is paid
- ExpenseType: Accounting bucket of a financial line
- InvoiceStatus: Billing cycle state of a credit-card invoice
- InventoryKind: Variant tag of inventory items and purchase lines
- MovementDirection: Direction of a stock movement
- TransactionType: Kind of bank transaction
"""

from enum import Enum


class PurchaseStatus(str, Enum):
    """
    Settlement state of a purchase.

    Values:
        PENDING: Obligation scheduled but not yet paid
        PAID: Settled (at creation time or later via mark_purchase_paid)
    """

    PENDING = "PENDING"
    PAID = "PAID"


class PaymentMethod(str, Enum):
    """
    Payment method of a purchase.

    CREDIT_CARD is the revolving instrument: it never creates ledger
    expenses and never settles against a bank account at creation.
    """

    CASH = "CASH"
    PIX = "PIX"
    BOLETO = "BOLETO"
    BANK_TRANSFER = "BANK_TRANSFER"
    DEBIT_CARD = "DEBIT_CARD"
    CREDIT_CARD = "CREDIT_CARD"


class ExpenseType(str, Enum):
    """Accounting bucket used by financial reports."""

    RAW_MATERIALS = "RAW_MATERIALS"
    PRODUCTS = "PRODUCTS"
    OPERATIONAL = "OPERATIONAL"
    INVESTMENT = "INVESTMENT"
    OTHER = "OTHER"


class InvoiceStatus(str, Enum):
    """
    Credit-card invoice status.

    Values:
        OPEN: Accepting new expense lines
        CLOSED: Billing cycle closed, awaiting payment
        PAID: Settled; available limit restored
    """

    OPEN = "OPEN"
    CLOSED = "CLOSED"
    PAID = "PAID"


class InventoryKind(str, Enum):
    """Variant tag shared by inventory items, purchase lines and audit rows."""

    RAW_MATERIAL = "raw_material"
    SUPPLY = "supply"
    FINISHED_GOOD = "finished_good"


class MovementDirection(str, Enum):
    """Direction of a stock movement."""

    IN = "IN"
    OUT = "OUT"


class TransactionType(str, Enum):
    """Kind of bank transaction."""

    EXPENSE = "EXPENSE"
    INCOME = "INCOME"
