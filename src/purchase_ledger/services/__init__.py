"""Services package - Business logic layer for Purchase Ledger.

This package contains all service modules that provide business logic
and database operations for the application.

Architecture:
- Services: Stateless functions organized by domain (purchase, payment, card, inventory)
- Transactions: Managed via session_scope() context manager
- Exceptions: Consistent error handling via PurchaseError hierarchy
- Validation: Input validation before database operations

Service Modules:
- purchase_service: Purchase transaction orchestrator and lifecycle
- sequence_service: Purchase number generation
- pricing_service: Line, subtotal and total calculation
- payment_service: Installments, labeling and ledger expenses
- credit_card_service: Card billing, invoices and limits
- expense_category_service: Expense categories
- inventory_mutation_service: Stock and cost basis updates from purchases
- inventory_service: Inventory item catalog
- cost_events: Cost basis change notifications
- bank_account_service: Bank accounts and settlement transactions
- supplier_service: Supplier catalog

Infrastructure:
- exceptions: Custom exception classes for service layer errors
- database: Session management and database utilities
- logging_utils: Structured service logging
"""

# Service modules
from . import (
    database,
    cost_events,
    sequence_service,
    pricing_service,
    expense_category_service,
    payment_service,
    bank_account_service,
    credit_card_service,
    inventory_mutation_service,
    inventory_service,
    supplier_service,
    purchase_service,
)

from .exceptions import (
    ServiceError,
    PurchaseError,
    ValidationError,
    ConflictError,
    DuplicateFinancialLinesError,
    PurchaseNumberConflictError,
    PurchaseStateError,
    DependencyNotFoundError,
    SupplierNotFoundError,
    InventoryItemNotFound,
    CreditCardNotFound,
    BankAccountNotFound,
    ExpenseCategoryNotFound,
    InvoiceNotFound,
    PurchaseNotFound,
    StorageError,
    PurchaseTimeoutError,
)

# Purchase transaction
from .purchase_service import (
    PurchaseRequest,
    PurchaseCreationState,
    create_purchase,
    get_purchase,
    get_purchase_by_number,
    list_purchases,
    mark_purchase_paid,
    delete_purchase,
)
from .pricing_service import LineItemInput, PurchaseTotals, calculate_totals

# Credit card invoices
from .credit_card_service import (
    create_credit_card,
    close_invoice,
    reopen_invoice,
    pay_invoice,
    recalculate_invoice_total,
)

__all__ = [
    "database",
    "cost_events",
    "sequence_service",
    "pricing_service",
    "expense_category_service",
    "payment_service",
    "bank_account_service",
    "credit_card_service",
    "inventory_mutation_service",
    "inventory_service",
    "supplier_service",
    "purchase_service",
    # Exceptions
    "ServiceError",
    "PurchaseError",
    "ValidationError",
    "ConflictError",
    "DuplicateFinancialLinesError",
    "PurchaseNumberConflictError",
    "PurchaseStateError",
    "DependencyNotFoundError",
    "SupplierNotFoundError",
    "InventoryItemNotFound",
    "CreditCardNotFound",
    "BankAccountNotFound",
    "ExpenseCategoryNotFound",
    "InvoiceNotFound",
    "PurchaseNotFound",
    "StorageError",
    "PurchaseTimeoutError",
    # Purchase transaction
    "PurchaseRequest",
    "PurchaseCreationState",
    "create_purchase",
    "get_purchase",
    "get_purchase_by_number",
    "list_purchases",
    "mark_purchase_paid",
    "delete_purchase",
    "LineItemInput",
    "PurchaseTotals",
    "calculate_totals",
    # Credit card invoices
    "create_credit_card",
    "close_invoice",
    "reopen_invoice",
    "pay_invoice",
    "recalculate_invoice_total",
]
