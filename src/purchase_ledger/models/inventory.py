"""
Inventory item models for the three purchasable material classes.

This module contains:
- StockedItemMixin: Stock and cost-basis columns shared by every class
- RawMaterial: Ingredients consumed by recipes (flour, sugar, cheese)
- Supply: Production supplies (seasonings, packaging)
- FinishedGood: Products bought ready for resale

Each class keeps a running current_stock and a cost_per_unit that only
ratchets upward from purchase activity.
"""

from decimal import Decimal

from sqlalchemy import Column, String, Text, Boolean, DateTime, Numeric, CheckConstraint
from sqlalchemy.orm import relationship

from .base import BaseModel


class StockedItemMixin:
    """
    Columns shared by all inventory item classes.

    Attributes:
        name: Display name
        unit: Measurement unit (kg, l, each, ...)
        current_stock: Quantity on hand
        cost_per_unit: Recorded cost basis per unit
        last_cost_update: When cost_per_unit last changed
        is_active: Soft delete flag
        notes: Optional notes
    """

    name = Column(String(200), nullable=False, index=True)
    unit = Column(String(20), nullable=False, default="each")
    current_stock = Column(Numeric(14, 4), nullable=False, default=Decimal("0"))
    cost_per_unit = Column(Numeric(12, 4), nullable=False, default=Decimal("0"))
    last_cost_update = Column(DateTime, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    notes = Column(Text, nullable=True)

    @property
    def stock_value(self) -> Decimal:
        """Stock on hand valued at the recorded cost basis."""
        return Decimal(str(self.current_stock or 0)) * Decimal(str(self.cost_per_unit or 0))


class RawMaterial(StockedItemMixin, BaseModel):
    """
    RawMaterial model for ingredients referenced by recipes.

    Relationships:
        recipe_ingredients: Recipe lines that consume this material
    """

    __tablename__ = "raw_materials"

    recipe_ingredients = relationship("RecipeIngredient", back_populates="raw_material")

    __table_args__ = (
        CheckConstraint("cost_per_unit >= 0", name="ck_raw_material_cost_non_negative"),
    )


class Supply(StockedItemMixin, BaseModel):
    """
    Supply model for production supplies.

    Attributes:
        category: Supply category label (e.g., "Seasonings", "Packaging")
    """

    __tablename__ = "supplies"

    category = Column(String(100), nullable=True)

    __table_args__ = (
        CheckConstraint("cost_per_unit >= 0", name="ck_supply_cost_non_negative"),
    )


class FinishedGood(StockedItemMixin, BaseModel):
    """
    FinishedGood model for products purchased for resale.

    Attributes:
        sku: Optional stock keeping unit
    """

    __tablename__ = "finished_goods"

    sku = Column(String(50), nullable=True, unique=True)

    __table_args__ = (
        CheckConstraint("cost_per_unit >= 0", name="ck_finished_good_cost_non_negative"),
    )
