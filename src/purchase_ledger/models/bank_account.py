"""
Bank account models.

This module contains:
- BankAccount: An account whose balance is debited by paid purchases
- BankTransaction: Movement on an account with a balance-after snapshot
"""

from decimal import Decimal

from sqlalchemy import (
    Column,
    Integer,
    String,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
)
from sqlalchemy.orm import relationship

from .base import BaseModel
from .enums import TransactionType


class BankAccount(BaseModel):
    """
    Bank account.

    Attributes:
        name: Display name
        balance: Current balance (changed only through store-level updates)
        is_active: Soft delete flag
    """

    __tablename__ = "bank_accounts"

    name = Column(String(100), nullable=False)
    balance = Column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    is_active = Column(Boolean, nullable=False, default=True)

    transactions = relationship("BankTransaction", back_populates="bank_account")


class BankTransaction(BaseModel):
    """
    Movement on a bank account.

    Attributes:
        bank_account_id: Foreign key to BankAccount
        transaction_type: TransactionType value
        amount: Moved amount (always positive)
        description: "Purchase <number> - <supplier>"
        reference_id: Id of the originating record
        reference_type: Kind of the originating record (e.g., "PURCHASE")
        category: ExpenseType value of the originating record
        date: When the money moved
        balance_after: Account balance right after this transaction
        created_by: Optional user identifier
    """

    __tablename__ = "bank_transactions"

    # Transactions are immutable after creation
    updated_at = None

    bank_account_id = Column(
        Integer, ForeignKey("bank_accounts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    transaction_type = Column(String(20), nullable=False, default=TransactionType.EXPENSE.value)
    amount = Column(Numeric(12, 2), nullable=False)
    description = Column(String(300), nullable=False)
    reference_id = Column(Integer, nullable=True)
    reference_type = Column(String(30), nullable=True)
    category = Column(String(30), nullable=True)
    date = Column(DateTime, nullable=False)
    balance_after = Column(Numeric(14, 2), nullable=False)
    created_by = Column(String(200), nullable=True)

    bank_account = relationship("BankAccount", back_populates="transactions")

    __table_args__ = (Index("idx_bank_transaction_reference", "reference_type", "reference_id"),)
