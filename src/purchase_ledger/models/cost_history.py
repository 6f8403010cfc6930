"""
CostHistory model for cost-basis changes.

A record is written only when a purchase actually raises an item's
cost_per_unit. Purchases at a lower or equal price leave no history.
"""

from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    ForeignKey,
    Index,
    CheckConstraint,
    Numeric,
)
from sqlalchemy.orm import relationship

from .base import BaseModel


class CostHistory(BaseModel):
    """
    Cost basis change of one inventory item.

    This model is IMMUTABLE after creation - no updated_at field.

    Attributes:
        item_kind: InventoryKind value of the changed item
        item_id: Id of the changed item within its kind's table
        old_cost: Cost per unit before the change
        new_cost: Cost per unit after the change
        reason: Why the cost changed ("PURCHASE")
        purchase_id: Purchase that caused the change (back-filled on commit)
        notes: "Purchase <number> - <supplier>"
    """

    __tablename__ = "cost_history"

    updated_at = None

    item_kind = Column(String(20), nullable=False)
    item_id = Column(Integer, nullable=False)
    old_cost = Column(Numeric(12, 4), nullable=False)
    new_cost = Column(Numeric(12, 4), nullable=False)
    reason = Column(String(30), nullable=False)
    purchase_id = Column(
        Integer, ForeignKey("purchases.id", ondelete="SET NULL"), nullable=True, index=True
    )
    notes = Column(Text, nullable=True)

    purchase = relationship("Purchase")

    __table_args__ = (
        Index("idx_cost_history_item", "item_kind", "item_id"),
        CheckConstraint("new_cost >= 0", name="ck_cost_history_new_cost_non_negative"),
    )

    def __repr__(self) -> str:
        return (
            f"CostHistory(id={self.id}, {self.item_kind}#{self.item_id}, "
            f"{self.old_cost} -> {self.new_cost})"
        )
