"""
Recipe models for compositions built from raw materials.

This module contains:
- Recipe: A composition whose derived cost depends on its ingredients
- RecipeIngredient: Junction table linking recipes to raw materials

Recipe cost is derived lazily; purchases that raise a raw material's cost
basis only touch Recipe.last_cost_update so readers know to recompute.
"""

from decimal import Decimal

from sqlalchemy import (
    Column,
    String,
    Integer,
    Text,
    DateTime,
    ForeignKey,
    Numeric,
    Boolean,
    UniqueConstraint,
    CheckConstraint,
)
from sqlalchemy.orm import relationship

from .base import BaseModel


class Recipe(BaseModel):
    """
    Recipe model.

    Attributes:
        name: Recipe name (required)
        yield_quantity: Units produced by one batch
        notes: Additional notes
        is_active: Soft delete flag
        last_cost_update: Set whenever an ingredient's cost basis changes
    """

    __tablename__ = "recipes"

    name = Column(String(200), nullable=False, index=True)
    yield_quantity = Column(Numeric(12, 4), nullable=False, default=Decimal("1"))
    notes = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    last_cost_update = Column(DateTime, nullable=True)

    ingredients = relationship(
        "RecipeIngredient",
        back_populates="recipe",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        """String representation of recipe."""
        return f"Recipe(id={self.id}, name='{self.name}')"

    def calculate_cost(self) -> Decimal:
        """
        Calculate total batch cost from current raw material cost bases.

        Returns:
            Sum of quantity * cost_per_unit over all ingredients
        """
        total = Decimal("0")
        for ingredient in self.ingredients:
            total += ingredient.calculate_cost()
        return total


class RecipeIngredient(BaseModel):
    """
    Junction between a recipe and one raw material.

    Attributes:
        recipe_id: Foreign key to Recipe
        raw_material_id: Foreign key to RawMaterial
        quantity: Amount of the raw material used per batch
    """

    __tablename__ = "recipe_ingredients"

    recipe_id = Column(
        Integer, ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    raw_material_id = Column(
        Integer, ForeignKey("raw_materials.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    quantity = Column(Numeric(12, 4), nullable=False)

    recipe = relationship("Recipe", back_populates="ingredients")
    raw_material = relationship("RawMaterial", back_populates="recipe_ingredients")

    __table_args__ = (
        UniqueConstraint("recipe_id", "raw_material_id", name="uq_recipe_ingredient"),
        CheckConstraint("quantity > 0", name="ck_recipe_ingredient_quantity_positive"),
    )

    def calculate_cost(self) -> Decimal:
        """Cost of this line at the raw material's current cost basis."""
        if self.raw_material is None:
            return Decimal("0")
        return Decimal(str(self.quantity)) * Decimal(str(self.raw_material.cost_per_unit))
