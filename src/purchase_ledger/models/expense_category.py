"""
ExpenseCategory model for classifying financial lines.

Purchases file their ledger expenses and card lines under a category:
the caller-selected supply category for supply-only purchases, otherwise
the default merchandise category created on first use.
"""

from sqlalchemy import Column, String, Text, Boolean

from .base import BaseModel
from .enums import ExpenseType


class ExpenseCategory(BaseModel):
    """
    Expense category.

    Attributes:
        name: Unique category name
        description: Optional description
        color: Display color (hex)
        expense_type: Default ExpenseType value of the category
        is_active: Soft delete flag
    """

    __tablename__ = "expense_categories"

    name = Column(String(100), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    color = Column(String(20), nullable=True)
    expense_type = Column(String(30), nullable=False, default=ExpenseType.OTHER.value)
    is_active = Column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"ExpenseCategory(id={self.id}, name='{self.name}')"
