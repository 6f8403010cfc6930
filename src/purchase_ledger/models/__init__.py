"""
Database models package.

This package contains all SQLAlchemy ORM models for the application.
"""

from .base import Base, BaseModel
from .enums import (
    PurchaseStatus,
    PaymentMethod,
    ExpenseType,
    InvoiceStatus,
    InventoryKind,
    MovementDirection,
    TransactionType,
)
from .supplier import Supplier
from .inventory import RawMaterial, Supply, FinishedGood
from .recipe import Recipe, RecipeIngredient
from .expense_category import ExpenseCategory
from .ledger_expense import LedgerExpense
from .credit_card import CreditCard, CreditCardInvoice, CreditCardExpense
from .bank_account import BankAccount, BankTransaction
from .cost_history import CostHistory
from .stock_movement import StockMovement
from .purchase import (
    Purchase,
    PurchaseLine,
    RawMaterialLine,
    SupplyLine,
    FinishedGoodLine,
    LINE_CLASSES,
)

__all__ = [
    "Base",
    "BaseModel",
    # Enums
    "PurchaseStatus",
    "PaymentMethod",
    "ExpenseType",
    "InvoiceStatus",
    "InventoryKind",
    "MovementDirection",
    "TransactionType",
    # Catalog
    "Supplier",
    "RawMaterial",
    "Supply",
    "FinishedGood",
    "Recipe",
    "RecipeIngredient",
    # Financial
    "ExpenseCategory",
    "LedgerExpense",
    "CreditCard",
    "CreditCardInvoice",
    "CreditCardExpense",
    "BankAccount",
    "BankTransaction",
    # Audit
    "CostHistory",
    "StockMovement",
    # Purchase aggregate
    "Purchase",
    "PurchaseLine",
    "RawMaterialLine",
    "SupplyLine",
    "FinishedGoodLine",
    "LINE_CLASSES",
]
