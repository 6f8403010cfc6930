"""
Purchase aggregate models.

This module contains:
- Purchase: The aggregate root of one purchasing transaction
- PurchaseLine: Polymorphic line item tagged by InventoryKind
- RawMaterialLine / SupplyLine / FinishedGoodLine: Line variants

Lines are stored in one table (single-table inheritance on line_kind).
Each variant owns the foreign key to its inventory class. Lines are
immutable after creation.
"""

from decimal import Decimal
from typing import List

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
from .enums import InventoryKind, PaymentMethod, PurchaseStatus


class Purchase(BaseModel):
    """
    Purchase model representing one supplier purchasing transaction.

    Attributes:
        purchase_number: Human-readable unique identifier (PREFIX-YYYYMM-NNNN)
        supplier_id: Foreign key to Supplier (RESTRICT delete)
        raw_materials_total / supplies_total / finished_goods_total: Category subtotals
        tax_amount: Tax charged on the invoice
        total_amount: Sum of subtotals plus tax
        status: PurchaseStatus value (PENDING | PAID)
        purchase_date: When the purchase was made (competence date)
        due_date: Base due date of the obligation
        payment_date: When the purchase was paid (None while PENDING)
        payment_method: PaymentMethod value
        installments: Number of installments the total was split into
        bank_account_id: Optional bank account used for settlement
        credit_card_id: Card charged when payment_method is CREDIT_CARD
        expense_id: First ledger expense (None for card purchases)
        expense_type: ExpenseType value assigned to the financial lines
        invoice_number / invoice_url: Optional supplier invoice metadata
        notes: Optional notes
        created_by / paid_by: Optional user identifiers

    Relationships:
        supplier, bank_account, credit_card, expense, lines
    """

    __tablename__ = "purchases"

    purchase_number = Column(String(60), nullable=False, unique=True, index=True)

    supplier_id = Column(
        Integer, ForeignKey("suppliers.id", ondelete="RESTRICT"), nullable=False, index=True
    )

    raw_materials_total = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    supplies_total = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    finished_goods_total = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    tax_amount = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    total_amount = Column(Numeric(12, 2), nullable=False)

    status = Column(String(20), nullable=False, default=PurchaseStatus.PENDING.value, index=True)
    purchase_date = Column(Date, nullable=False, index=True)
    due_date = Column(Date, nullable=False)
    payment_date = Column(DateTime, nullable=True)
    payment_method = Column(String(30), nullable=False)
    installments = Column(Integer, nullable=False, default=1)

    bank_account_id = Column(
        Integer, ForeignKey("bank_accounts.id", ondelete="SET NULL"), nullable=True
    )
    credit_card_id = Column(
        Integer, ForeignKey("credit_cards.id", ondelete="SET NULL"), nullable=True
    )
    expense_id = Column(
        Integer, ForeignKey("ledger_expenses.id", ondelete="SET NULL"), nullable=True
    )
    expense_type = Column(String(30), nullable=False)

    invoice_number = Column(String(100), nullable=True)
    invoice_url = Column(String(500), nullable=True)
    notes = Column(Text, nullable=True)
    created_by = Column(String(200), nullable=True)
    paid_by = Column(String(200), nullable=True)

    supplier = relationship("Supplier", back_populates="purchases")
    bank_account = relationship("BankAccount")
    credit_card = relationship("CreditCard")
    expense = relationship("LedgerExpense", foreign_keys=[expense_id])
    lines = relationship(
        "PurchaseLine",
        back_populates="purchase",
        cascade="all, delete-orphan",
        order_by="PurchaseLine.id",
    )

    __table_args__ = (
        CheckConstraint("total_amount >= 0", name="ck_purchase_total_non_negative"),
        CheckConstraint("tax_amount >= 0", name="ck_purchase_tax_non_negative"),
        CheckConstraint("installments >= 1", name="ck_purchase_installments_positive"),
        Index("idx_purchase_supplier_date", "supplier_id", "purchase_date"),
    )

    def __repr__(self) -> str:
        """String representation of purchase."""
        total = float(self.total_amount) if self.total_amount is not None else 0
        return (
            f"Purchase(id={self.id}, "
            f"number='{self.purchase_number}', "
            f"status={self.status}, "
            f"total=${total:.2f})"
        )

    @property
    def is_paid(self) -> bool:
        return self.status == PurchaseStatus.PAID.value

    @property
    def is_card_purchase(self) -> bool:
        return self.payment_method == PaymentMethod.CREDIT_CARD.value

    def lines_of_kind(self, kind: InventoryKind) -> List["PurchaseLine"]:
        """Lines of one inventory kind, in creation order."""
        return [line for line in self.lines if line.line_kind == kind.value]

    @property
    def raw_material_lines(self) -> List["PurchaseLine"]:
        return self.lines_of_kind(InventoryKind.RAW_MATERIAL)

    @property
    def supply_lines(self) -> List["PurchaseLine"]:
        return self.lines_of_kind(InventoryKind.SUPPLY)

    @property
    def finished_good_lines(self) -> List["PurchaseLine"]:
        return self.lines_of_kind(InventoryKind.FINISHED_GOOD)

    def to_dict(self, include_relationships: bool = False) -> dict:
        """
        Convert purchase to dictionary.

        Args:
            include_relationships: If True, include lines and supplier name

        Returns:
            Dictionary representation
        """
        result = super().to_dict(False)
        if include_relationships:
            result["supplier_name"] = self.supplier.name if self.supplier else None
            result["lines"] = [line.to_dict() for line in self.lines]
        return result


class PurchaseLine(BaseModel):
    """
    Base line item of a purchase.

    Attributes:
        purchase_id: Foreign key to Purchase
        line_kind: InventoryKind value (polymorphic discriminator)
        quantity: Purchased quantity (> 0)
        unit_price: Price per unit (>= 0)
        total_price: quantity * unit_price
        notes: Optional line notes
    """

    __tablename__ = "purchase_lines"

    # Lines are immutable after creation
    updated_at = None

    purchase_id = Column(
        Integer, ForeignKey("purchases.id", ondelete="CASCADE"), nullable=False, index=True
    )
    line_kind = Column(String(20), nullable=False)
    quantity = Column(Numeric(14, 4), nullable=False)
    unit_price = Column(Numeric(12, 4), nullable=False)
    total_price = Column(Numeric(12, 2), nullable=False)
    notes = Column(Text, nullable=True)

    purchase = relationship("Purchase", back_populates="lines")

    __mapper_args__ = {"polymorphic_on": line_kind}

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_purchase_line_quantity_positive"),
        CheckConstraint("unit_price >= 0", name="ck_purchase_line_price_non_negative"),
    )

    @property
    def kind(self) -> InventoryKind:
        return InventoryKind(self.line_kind)

    # Name of the variant column holding the inventory item id
    item_fk = ""

    @property
    def item_id(self) -> int:
        """Foreign key of the referenced inventory item."""
        return getattr(self, self.item_fk)

    def to_dict(self, include_relationships: bool = False) -> dict:
        result = super().to_dict(include_relationships)
        result["item_id"] = self.item_id
        return result


class RawMaterialLine(PurchaseLine):
    """Purchase line for a raw material."""

    item_fk = "raw_material_id"

    raw_material_id = Column(
        Integer, ForeignKey("raw_materials.id", ondelete="RESTRICT"), nullable=True, index=True
    )
    raw_material = relationship("RawMaterial")

    __mapper_args__ = {"polymorphic_identity": InventoryKind.RAW_MATERIAL.value}


class SupplyLine(PurchaseLine):
    """Purchase line for a production supply."""

    item_fk = "supply_id"

    supply_id = Column(
        Integer, ForeignKey("supplies.id", ondelete="RESTRICT"), nullable=True, index=True
    )
    supply = relationship("Supply")

    __mapper_args__ = {"polymorphic_identity": InventoryKind.SUPPLY.value}


class FinishedGoodLine(PurchaseLine):
    """Purchase line for a finished good bought for resale."""

    item_fk = "finished_good_id"

    finished_good_id = Column(
        Integer, ForeignKey("finished_goods.id", ondelete="RESTRICT"), nullable=True, index=True
    )
    finished_good = relationship("FinishedGood")

    __mapper_args__ = {"polymorphic_identity": InventoryKind.FINISHED_GOOD.value}


LINE_CLASSES = {
    InventoryKind.RAW_MATERIAL: RawMaterialLine,
    InventoryKind.SUPPLY: SupplyLine,
    InventoryKind.FINISHED_GOOD: FinishedGoodLine,
}
