"""Inventory Service - catalog of raw materials, supplies and finished goods.

Stock and cost basis are owned by inventory_mutation_service once an item
exists; this module only creates and reads items.
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from purchase_ledger.models import InventoryKind
from purchase_ledger.services.database import session_scope
from purchase_ledger.services.exceptions import InventoryItemNotFound, ValidationError
from purchase_ledger.services.inventory_mutation_service import INVENTORY_KINDS
from purchase_ledger.services.pricing_service import to_decimal


def create_item(
    kind: InventoryKind,
    name: str,
    unit: str = "each",
    current_stock: Any = 0,
    cost_per_unit: Any = 0,
    session: Optional[Session] = None,
    **extra,
) -> Dict[str, Any]:
    """Create an inventory item of the given kind.

    Args:
        kind: Inventory class (raw material, supply, finished good)
        name: Display name (required)
        unit: Measurement unit
        current_stock: Opening stock (>= 0)
        cost_per_unit: Opening cost basis (>= 0)
        session: Optional database session
        **extra: Kind-specific columns (category for supplies, sku for
                 finished goods)

    Returns:
        Created item as dictionary (includes "kind")
    """
    if session is not None:
        return _create_item_impl(kind, name, unit, current_stock, cost_per_unit, session, extra)
    with session_scope() as session:
        return _create_item_impl(kind, name, unit, current_stock, cost_per_unit, session, extra)


def _create_item_impl(
    kind: InventoryKind,
    name: str,
    unit: str,
    current_stock: Any,
    cost_per_unit: Any,
    session: Session,
    extra: Dict[str, Any],
) -> Dict[str, Any]:
    kind = InventoryKind(kind)
    model = INVENTORY_KINDS[kind].model

    stock = to_decimal(current_stock, "current_stock")
    cost = to_decimal(cost_per_unit, "cost_per_unit")
    errors = []
    if not name or not name.strip():
        errors.append("Item name is required")
    if stock < 0:
        errors.append("current_stock cannot be negative")
    if cost < 0:
        errors.append("cost_per_unit cannot be negative")
    unknown = [key for key in extra if key not in model.__table__.columns]
    if unknown:
        errors.append(f"Unknown fields for {kind.value}: {', '.join(sorted(unknown))}")
    if errors:
        raise ValidationError(errors)

    item = model(name=name.strip(), unit=unit, current_stock=stock, cost_per_unit=cost, **extra)
    session.add(item)
    session.flush()
    return _item_to_dict(kind, item)


def get_item(
    kind: InventoryKind, item_id: int, session: Optional[Session] = None
) -> Dict[str, Any]:
    """Get an inventory item, raising InventoryItemNotFound if missing."""
    if session is not None:
        return _get_item_impl(kind, item_id, session)
    with session_scope() as session:
        return _get_item_impl(kind, item_id, session)


def _get_item_impl(kind: InventoryKind, item_id: int, session: Session) -> Dict[str, Any]:
    kind = InventoryKind(kind)
    item = session.get(INVENTORY_KINDS[kind].model, item_id)
    if item is None:
        raise InventoryItemNotFound(kind.value, item_id)
    return _item_to_dict(kind, item)


def list_items(
    kind: InventoryKind,
    include_inactive: bool = False,
    session: Optional[Session] = None,
) -> List[Dict[str, Any]]:
    """List items of one kind sorted by name."""
    if session is not None:
        return _list_items_impl(kind, include_inactive, session)
    with session_scope() as session:
        return _list_items_impl(kind, include_inactive, session)


def _list_items_impl(kind: InventoryKind, include_inactive: bool, session: Session):
    kind = InventoryKind(kind)
    model = INVENTORY_KINDS[kind].model
    query = session.query(model)
    if not include_inactive:
        query = query.filter(model.is_active == True)  # noqa: E712
    return [_item_to_dict(kind, item) for item in query.order_by(model.name).all()]


def _item_to_dict(kind: InventoryKind, item) -> Dict[str, Any]:
    result = item.to_dict()
    result["kind"] = kind.value
    result["stock_value"] = str(item.stock_value.quantize(Decimal("0.01")))
    return result
