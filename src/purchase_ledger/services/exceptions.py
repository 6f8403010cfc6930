"""Service layer exception classes for Purchase Ledger.

This module defines all custom exceptions used by the service layer to provide
consistent error handling across the application.

Exception Hierarchy:
    ServiceError (base)
    └── PurchaseError (kind, retryable, to_dict)
        ├── ValidationError
        ├── ConflictError
        │   ├── DuplicateFinancialLinesError
        │   ├── PurchaseNumberConflictError
        │   └── PurchaseStateError
        ├── DependencyNotFoundError
        │   ├── SupplierNotFoundError
        │   ├── InventoryItemNotFound
        │   ├── CreditCardNotFound
        │   ├── BankAccountNotFound
        │   ├── ExpenseCategoryNotFound
        │   ├── InvoiceNotFound
        │   └── PurchaseNotFound
        └── StorageError
            └── PurchaseTimeoutError
"""

from typing import Any, Dict, List, Optional, Union


class ServiceError(Exception):
    """Base exception for all service layer errors.

    All service-specific exceptions should inherit from this class.
    """

    pass


class PurchaseError(ServiceError):
    """Base of every error raised by purchasing and ledger operations.

    Attributes:
        kind: Machine-readable category ("validation", "conflict",
              "not_found", "storage")
        retryable: True when repeating the same call may succeed
    """

    kind = "error"
    retryable = False

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for API responses."""
        return {
            "kind": self.kind,
            "error": type(self).__name__,
            "message": str(self),
            "retryable": self.retryable,
        }


class ValidationError(PurchaseError):
    """Raised when input validation fails before any storage write.

    Args:
        errors: One message or a list of messages

    Example:
        >>> raise ValidationError(["At least one line item is required"])
        ValidationError: Validation failed: At least one line item is required
    """

    kind = "validation"

    def __init__(self, errors: Union[str, List[str]]):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        super().__init__(f"Validation failed: {'; '.join(self.errors)}")


# Conflicts


class ConflictError(PurchaseError):
    """Raised when the requested change collides with existing state."""

    kind = "conflict"


class DuplicateFinancialLinesError(ConflictError):
    """Raised when card lines tagged with a purchase number already exist.

    Example:
        >>> raise DuplicateFinancialLinesError("COMP-202506-0001")
        DuplicateFinancialLinesError: Financial lines for purchase COMP-202506-0001 already exist
    """

    def __init__(self, purchase_number: str):
        self.purchase_number = purchase_number
        super().__init__(f"Financial lines for purchase {purchase_number} already exist")


class PurchaseNumberConflictError(ConflictError):
    """Raised when no unique purchase number could be persisted."""

    def __init__(self, purchase_number: str, attempts: int):
        self.purchase_number = purchase_number
        self.attempts = attempts
        super().__init__(
            f"Purchase number {purchase_number} still collides after {attempts} attempts"
        )


class PurchaseStateError(ConflictError):
    """Raised when a purchase or invoice is not in a state that allows the operation.

    Example:
        >>> raise PurchaseStateError("Purchase 12 is already PAID")
    """

    def __init__(self, message: str):
        super().__init__(message)


# Missing dependencies


class DependencyNotFoundError(PurchaseError):
    """Raised when a referenced record does not exist."""

    kind = "not_found"
    entity = "Record"

    def __init__(self, identifier: Any):
        self.identifier = identifier
        super().__init__(f"{self.entity} with ID {identifier} not found")


class SupplierNotFoundError(DependencyNotFoundError):
    """Raised when a supplier cannot be found by ID.

    Example:
        >>> raise SupplierNotFoundError(123)
        SupplierNotFoundError: Supplier with ID 123 not found
    """

    entity = "Supplier"

    def __init__(self, supplier_id: int):
        self.supplier_id = supplier_id
        super().__init__(supplier_id)


class InventoryItemNotFound(DependencyNotFoundError):
    """Raised when a raw material, supply or finished good cannot be found.

    Example:
        >>> raise InventoryItemNotFound("raw_material", 456)
        InventoryItemNotFound: raw_material with ID 456 not found
    """

    def __init__(self, item_kind: str, item_id: int):
        self.item_kind = item_kind
        self.item_id = item_id
        self.entity = item_kind
        super().__init__(item_id)


class CreditCardNotFound(DependencyNotFoundError):
    """Raised when a credit card cannot be found by ID."""

    entity = "Credit card"

    def __init__(self, credit_card_id: int):
        self.credit_card_id = credit_card_id
        super().__init__(credit_card_id)


class BankAccountNotFound(DependencyNotFoundError):
    """Raised when a bank account cannot be found by ID."""

    entity = "Bank account"

    def __init__(self, bank_account_id: int):
        self.bank_account_id = bank_account_id
        super().__init__(bank_account_id)


class ExpenseCategoryNotFound(DependencyNotFoundError):
    """Raised when an expense category cannot be found by ID."""

    entity = "Expense category"

    def __init__(self, category_id: int):
        self.category_id = category_id
        super().__init__(category_id)


class InvoiceNotFound(DependencyNotFoundError):
    """Raised when a credit-card invoice cannot be found by ID."""

    entity = "Invoice"

    def __init__(self, invoice_id: int):
        self.invoice_id = invoice_id
        super().__init__(invoice_id)


class PurchaseNotFound(DependencyNotFoundError):
    """Raised when purchase record cannot be found by ID or number.

    Example:
        >>> raise PurchaseNotFound(789)
        PurchaseNotFound: Purchase with ID 789 not found
    """

    entity = "Purchase"

    def __init__(self, purchase_id: Union[int, str]):
        self.purchase_id = purchase_id
        super().__init__(purchase_id)


# Storage


class StorageError(PurchaseError):
    """Raised when the database fails underneath an operation.

    Args:
        message: Description of the failure
        original_error: The underlying SQLAlchemy/DBAPI exception
    """

    kind = "storage"
    retryable = True

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        self.original_error = original_error
        super().__init__(f"Database error: {message}")


class PurchaseTimeoutError(StorageError):
    """Raised when purchase creation exceeds its time bound before commit."""

    def __init__(self, timeout_seconds: float, state: str):
        self.timeout_seconds = timeout_seconds
        self.state = state
        super().__init__(
            f"Purchase creation exceeded {timeout_seconds}s during {state}; rolled back"
        )
