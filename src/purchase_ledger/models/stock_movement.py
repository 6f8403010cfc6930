"""
StockMovement model for the inventory audit trail.

Purchases of supplies and finished goods write one IN movement per line;
deleting a pending purchase writes the matching OUT movement.
"""

from sqlalchemy import Column, Integer, String, Text, Index, CheckConstraint, Numeric

from .base import BaseModel


class StockMovement(BaseModel):
    """
    Stock movement audit row.

    This model is IMMUTABLE after creation - no updated_at field.

    Attributes:
        item_kind: InventoryKind value
        item_id: Id of the item within its kind's table
        direction: MovementDirection value (IN | OUT)
        quantity: Moved quantity (> 0)
        previous_stock: Stock before the movement
        new_stock: Stock after the movement
        reason: Why stock moved (PURCHASE, PURCHASE_REVERSAL)
        reference: Id of the originating purchase (back-filled on commit)
        notes: "Purchase <number> - <supplier>"
        created_by: Optional user identifier
    """

    __tablename__ = "stock_movements"

    updated_at = None

    item_kind = Column(String(20), nullable=False)
    item_id = Column(Integer, nullable=False)
    direction = Column(String(5), nullable=False)
    quantity = Column(Numeric(14, 4), nullable=False)
    previous_stock = Column(Numeric(14, 4), nullable=True)
    new_stock = Column(Numeric(14, 4), nullable=True)
    reason = Column(String(30), nullable=False)
    reference = Column(Integer, nullable=True, index=True)
    notes = Column(Text, nullable=True)
    created_by = Column(String(200), nullable=True)

    __table_args__ = (
        Index("idx_stock_movement_item", "item_kind", "item_id"),
        CheckConstraint("quantity > 0", name="ck_stock_movement_quantity_positive"),
    )

    def __repr__(self) -> str:
        return (
            f"StockMovement(id={self.id}, {self.item_kind}#{self.item_id}, "
            f"{self.direction} {self.quantity}, reason={self.reason})"
        )
