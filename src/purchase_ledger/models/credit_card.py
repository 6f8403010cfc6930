"""
Credit card models.

This module contains:
- CreditCard: Revolving instrument with a limit and a monthly billing cycle
- CreditCardInvoice: Monthly billing bucket keyed by (card, reference month)
- CreditCardExpense: One charged installment attached to an invoice

Invariant: an invoice's total_amount equals the sum of its expense lines.
Both available_limit and total_amount are only ever changed through
store-level increments so concurrent purchases cannot lose updates.
"""

from decimal import Decimal

from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Date,
    DateTime,
    Boolean,
    ForeignKey,
    Index,
    CheckConstraint,
    UniqueConstraint,
    Numeric,
)
from sqlalchemy.orm import relationship

from .base import BaseModel
from .enums import InvoiceStatus


class CreditCard(BaseModel):
    """
    Credit card.

    Attributes:
        name: Display name (e.g., "Company Visa")
        credit_limit: Total limit (0 means untracked)
        available_limit: Remaining limit; may go negative
        closing_day: Day of month the billing cycle closes (1-31)
        due_day: Day of month the invoice is due (1-31)
        is_active: Soft delete flag
    """

    __tablename__ = "credit_cards"

    name = Column(String(100), nullable=False)
    credit_limit = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    available_limit = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    closing_day = Column(Integer, nullable=False)
    due_day = Column(Integer, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    invoices = relationship("CreditCardInvoice", back_populates="credit_card")

    __table_args__ = (
        CheckConstraint("closing_day BETWEEN 1 AND 31", name="ck_credit_card_closing_day"),
        CheckConstraint("due_day BETWEEN 1 AND 31", name="ck_credit_card_due_day"),
    )

    def __repr__(self) -> str:
        return (
            f"CreditCard(id={self.id}, name='{self.name}', "
            f"closing_day={self.closing_day}, due_day={self.due_day})"
        )


class CreditCardInvoice(BaseModel):
    """
    Monthly billing bucket of a credit card.

    Attributes:
        credit_card_id: Foreign key to CreditCard
        reference_month: First day of the billed month
        closing_date: When the cycle closes
        due_date: When the invoice is due
        total_amount: Running total of attached expense lines
        status: InvoiceStatus value
        paid_at: When the invoice was paid
    """

    __tablename__ = "credit_card_invoices"

    credit_card_id = Column(
        Integer, ForeignKey("credit_cards.id", ondelete="CASCADE"), nullable=False, index=True
    )
    reference_month = Column(Date, nullable=False)
    closing_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=False)
    total_amount = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    status = Column(String(20), nullable=False, default=InvoiceStatus.OPEN.value)
    paid_at = Column(DateTime, nullable=True)

    credit_card = relationship("CreditCard", back_populates="invoices")
    expenses = relationship("CreditCardExpense", back_populates="invoice")

    __table_args__ = (
        UniqueConstraint("credit_card_id", "reference_month", name="uq_invoice_card_month"),
    )

    def __repr__(self) -> str:
        total = float(self.total_amount) if self.total_amount is not None else 0
        return (
            f"CreditCardInvoice(id={self.id}, card={self.credit_card_id}, "
            f"month={self.reference_month}, status={self.status}, total=${total:.2f})"
        )


class CreditCardExpense(BaseModel):
    """
    One card-charged installment.

    Attributes:
        credit_card_id: Foreign key to CreditCard
        invoice_id: Foreign key to the invoice the installment is billed on
        description: "Purchase <supplier> <number>" suffixed "(i/N)" when N > 1
        amount: Installment amount
        purchase_date: Date of the originating purchase
        category_id: Foreign key to ExpenseCategory
        category_label: Label derived from the purchase composition
        supplier_name: Snapshot of the supplier name
        reference_number: Purchase number (idempotency tag)
        installments / installment_number: Position i of N
        expense_type: ExpenseType value
        notes: Optional notes
        created_by: Optional user identifier
    """

    __tablename__ = "credit_card_expenses"

    credit_card_id = Column(
        Integer, ForeignKey("credit_cards.id", ondelete="CASCADE"), nullable=False, index=True
    )
    invoice_id = Column(
        Integer,
        ForeignKey("credit_card_invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    description = Column(String(300), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    purchase_date = Column(Date, nullable=False)
    category_id = Column(
        Integer, ForeignKey("expense_categories.id", ondelete="RESTRICT"), nullable=True
    )
    category_label = Column(String(200), nullable=True)
    supplier_name = Column(String(200), nullable=True)
    reference_number = Column(String(60), nullable=True)
    installments = Column(Integer, nullable=False, default=1)
    installment_number = Column(Integer, nullable=False, default=1)
    expense_type = Column(String(30), nullable=False)
    notes = Column(Text, nullable=True)
    created_by = Column(String(200), nullable=True)

    credit_card = relationship("CreditCard")
    invoice = relationship("CreditCardInvoice", back_populates="expenses")
    category = relationship("ExpenseCategory")

    __table_args__ = (
        Index("idx_card_expense_reference", "reference_number"),
        CheckConstraint("amount >= 0", name="ck_card_expense_amount_non_negative"),
    )

    def __repr__(self) -> str:
        amount = float(self.amount) if self.amount is not None else 0
        return (
            f"CreditCardExpense(id={self.id}, ref='{self.reference_number}', "
            f"installment={self.installment_number}/{self.installments}, amount=${amount:.2f})"
        )
