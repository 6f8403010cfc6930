"""
Supplier model for tracking vendors of materials, supplies and goods.

Example: "Atacadao Distribuidora" with its tax document and contact
         phone, referenced by every purchase made from it.
"""

from sqlalchemy import Column, String, Boolean, Text, Index
from sqlalchemy.orm import relationship

from .base import BaseModel


class Supplier(BaseModel):
    """
    Supplier model representing vendors purchases are made from.

    Attributes:
        name: Supplier name
        document: Optional tax document (CNPJ/CPF/EIN)
        phone: Optional contact phone
        email: Optional contact email
        notes: Optional notes (payment terms, delivery windows)
        is_active: Soft delete flag (True = active, False = deactivated)

    Relationships:
        purchases: Purchase transactions from this supplier
    """

    __tablename__ = "suppliers"

    name = Column(String(200), nullable=False)
    document = Column(String(30), nullable=True)
    phone = Column(String(30), nullable=True)
    email = Column(String(200), nullable=True)
    notes = Column(Text, nullable=True)

    # Soft delete flag
    is_active = Column(Boolean, nullable=False, default=True)

    purchases = relationship("Purchase", back_populates="supplier")

    __table_args__ = (
        Index("idx_supplier_name", "name"),
        Index("idx_supplier_active", "is_active"),
    )

    def __repr__(self) -> str:
        """String representation of supplier."""
        return f"Supplier(id={self.id}, name='{self.name}')"
