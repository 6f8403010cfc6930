"""
LedgerExpense model for scheduled payables.

A non-card purchase paid in N installments produces exactly N ledger
expenses. Each has its own due date; all share the purchase date as
competence (accrual) date.
"""

from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Date,
    DateTime,
    ForeignKey,
    Index,
    CheckConstraint,
    Numeric,
)
from sqlalchemy.orm import relationship

from .base import BaseModel
from .enums import PurchaseStatus


class LedgerExpense(BaseModel):
    """
    Ledger expense (account payable).

    Attributes:
        description: Label plus supplier name, suffixed "(i/N)" when N > 1
        amount: Installment amount
        category_id: Foreign key to ExpenseCategory
        supplier_id: Optional Supplier
        bank_account_id: Optional BankAccount the expense is paid from
        due_date: When the installment is due
        competence_date: Accrual date (the purchase date)
        payment_date: When it was paid (None while PENDING)
        status: PurchaseStatus value
        expense_type: ExpenseType value
        payment_method: PaymentMethod value
        installment_number / installments: Position i of N
        purchase_number: Number of the originating purchase
        purchase_id: Originating purchase (back-filled on commit)
        reference_number: Supplier invoice number
        attachment_url: Supplier invoice URL
        notes: Optional notes
        created_by: Optional user identifier
    """

    __tablename__ = "ledger_expenses"

    description = Column(String(300), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    category_id = Column(
        Integer, ForeignKey("expense_categories.id", ondelete="RESTRICT"), nullable=False
    )
    supplier_id = Column(
        Integer, ForeignKey("suppliers.id", ondelete="SET NULL"), nullable=True, index=True
    )
    bank_account_id = Column(
        Integer, ForeignKey("bank_accounts.id", ondelete="SET NULL"), nullable=True
    )

    due_date = Column(Date, nullable=False, index=True)
    competence_date = Column(Date, nullable=False, index=True)
    payment_date = Column(DateTime, nullable=True)
    status = Column(String(20), nullable=False, default=PurchaseStatus.PENDING.value)
    expense_type = Column(String(30), nullable=False)
    payment_method = Column(String(30), nullable=True)

    installment_number = Column(Integer, nullable=False, default=1)
    installments = Column(Integer, nullable=False, default=1)

    # No FK: purchases.expense_id already points here
    purchase_id = Column(Integer, nullable=True, index=True)
    purchase_number = Column(String(60), nullable=True, index=True)

    reference_number = Column(String(100), nullable=True)
    attachment_url = Column(String(500), nullable=True)
    notes = Column(Text, nullable=True)
    created_by = Column(String(200), nullable=True)

    category = relationship("ExpenseCategory")
    supplier = relationship("Supplier")
    bank_account = relationship("BankAccount")

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_ledger_expense_amount_non_negative"),
        Index("idx_ledger_expense_status_due", "status", "due_date"),
    )

    def __repr__(self) -> str:
        amount = float(self.amount) if self.amount is not None else 0
        return (
            f"LedgerExpense(id={self.id}, "
            f"installment={self.installment_number}/{self.installments}, "
            f"due={self.due_date}, amount=${amount:.2f})"
        )
