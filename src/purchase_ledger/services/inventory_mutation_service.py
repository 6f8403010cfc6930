"""Inventory Mutation Service - stock and cost basis updates from purchases.

One code path serves raw materials, supplies and finished goods; the
per-kind differences live in INVENTORY_KINDS. For every purchased line:

1. The item is locked and read (missing item fails the whole purchase).
2. Stock increases by the purchased quantity (store-level UPDATE).
3. The cost ratchet runs: cost_per_unit becomes the unit price only when
   the price is strictly higher (conditional UPDATE ... WHERE cost < price).
4. When the ratchet fired, a CostHistory row is written and a
   CostBasisChanged event is published.
5. Supplies and finished goods get a StockMovement audit row.

Deleting a pending purchase reverses step 2 (and writes OUT movements);
the cost basis is never lowered.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from purchase_ledger.models import (
    CostHistory,
    FinishedGood,
    InventoryKind,
    MovementDirection,
    Purchase,
    RawMaterial,
    StockMovement,
    Supply,
)
from purchase_ledger.services import cost_events
from purchase_ledger.services.database import atomic_increment
from purchase_ledger.services.exceptions import InventoryItemNotFound, ValidationError
from purchase_ledger.services.logging_utils import get_service_logger, log_operation
from purchase_ledger.services.pricing_service import to_decimal
from purchase_ledger.utils.constants import (
    COST_CHANGE_REASON_PURCHASE,
    MOVEMENT_REASON_PURCHASE,
    MOVEMENT_REASON_PURCHASE_REVERSAL,
    UNIT_COST_QUANTUM,
)
from purchase_ledger.utils.datetime_utils import utc_now

logger = get_service_logger(__name__)


@dataclass(frozen=True)
class InventoryKindInfo:
    """How one inventory class is mutated by purchases."""

    model: Any
    label: str
    writes_stock_movement: bool


INVENTORY_KINDS: Dict[InventoryKind, InventoryKindInfo] = {
    InventoryKind.RAW_MATERIAL: InventoryKindInfo(RawMaterial, "raw material", False),
    InventoryKind.SUPPLY: InventoryKindInfo(Supply, "supply", True),
    InventoryKind.FINISHED_GOOD: InventoryKindInfo(FinishedGood, "finished good", True),
}


@dataclass
class LineMutation:
    """Outcome of applying one purchase line to inventory."""

    kind: InventoryKind
    item_id: int
    item_name: str
    previous_stock: Decimal
    new_stock: Decimal
    cost_history: Optional[CostHistory] = None
    stock_movement: Optional[StockMovement] = None

    @property
    def cost_changed(self) -> bool:
        return self.cost_history is not None


def _lock_item(session: Session, kind: InventoryKind, item_id: int):
    kind_info = INVENTORY_KINDS[kind]
    item = (
        session.query(kind_info.model)
        .filter(kind_info.model.id == item_id)
        .with_for_update()
        .populate_existing()
        .first()
    )
    if item is None:
        raise InventoryItemNotFound(kind.value, item_id)
    return item


def _audit_notes(purchase_number: str, supplier_name: str) -> str:
    return f"Purchase {purchase_number} - {supplier_name}"


def apply_purchase_line(
    session: Session,
    kind: InventoryKind,
    item_id: int,
    quantity: Any,
    unit_price: Any,
    purchase_number: str,
    supplier_name: str,
    created_by: Optional[str] = None,
) -> LineMutation:
    """
    Apply one purchased line to its inventory item.

    Args:
        session: Active database session (the purchase's unit of work)
        kind: Inventory class of the item
        item_id: Item id within its class
        quantity: Purchased quantity (> 0)
        unit_price: Price paid per unit (>= 0)
        purchase_number: Number of the purchase (audit notes, events)
        supplier_name: Supplier name (audit notes)
        created_by: Optional user identifier for stock movements

    Returns:
        LineMutation describing what changed. Audit rows reference the
        purchase id only after the caller back-fills it.

    Raises:
        InventoryItemNotFound: If the item does not exist
    """
    kind = InventoryKind(kind)
    kind_info = INVENTORY_KINDS[kind]
    quantity = to_decimal(quantity, "quantity")
    unit_price = to_decimal(unit_price, "unit_price").quantize(UNIT_COST_QUANTUM)
    if quantity <= 0:
        raise ValidationError(f"quantity must be greater than zero, got {quantity}")

    item = _lock_item(session, kind, item_id)
    item_name = item.name
    old_cost = Decimal(str(item.cost_per_unit or 0))

    new_stock = atomic_increment(session, kind_info.model, item_id, "current_stock", quantity)
    previous_stock = Decimal(str(new_stock)) - quantity
    notes = _audit_notes(purchase_number, supplier_name)

    mutation = LineMutation(
        kind=kind,
        item_id=item_id,
        item_name=item_name,
        previous_stock=previous_stock,
        new_stock=Decimal(str(new_stock)),
    )

    now = utc_now()
    ratchet = session.execute(
        update(kind_info.model)
        .where(kind_info.model.id == item_id, kind_info.model.cost_per_unit < unit_price)
        .values(cost_per_unit=unit_price, last_cost_update=now)
        .execution_options(synchronize_session=False)
    )
    if ratchet.rowcount:
        session.get(kind_info.model, item_id, populate_existing=True)
        history = CostHistory(
            item_kind=kind.value,
            item_id=item_id,
            old_cost=old_cost,
            new_cost=unit_price,
            reason=COST_CHANGE_REASON_PURCHASE,
            notes=notes,
        )
        session.add(history)
        mutation.cost_history = history
        cost_events.publish(
            session,
            cost_events.CostBasisChanged(
                item_kind=kind,
                item_id=item_id,
                old_cost=old_cost,
                new_cost=unit_price,
                purchase_number=purchase_number,
                occurred_at=now,
            ),
        )

    if kind_info.writes_stock_movement:
        movement = StockMovement(
            item_kind=kind.value,
            item_id=item_id,
            direction=MovementDirection.IN.value,
            quantity=quantity,
            previous_stock=mutation.previous_stock,
            new_stock=mutation.new_stock,
            reason=MOVEMENT_REASON_PURCHASE,
            notes=notes,
            created_by=created_by,
        )
        session.add(movement)
        mutation.stock_movement = movement

    session.flush()

    log_operation(
        logger,
        operation="apply_purchase_line",
        outcome="cost_raised" if mutation.cost_changed else "stock_added",
        item_kind=kind.value,
        item_id=item_id,
        quantity=str(quantity),
        new_stock=str(mutation.new_stock),
        old_cost=str(old_cost),
        unit_price=str(unit_price),
        purchase_number=purchase_number,
    )
    return mutation


def apply_purchase_lines(
    session: Session,
    lines_by_kind: Dict[InventoryKind, Iterable[Any]],
    purchase_number: str,
    supplier_name: str,
    created_by: Optional[str] = None,
) -> List[LineMutation]:
    """
    Apply every line of a purchase, raw materials first, then supplies,
    then finished goods, each in input order.

    Lines need item_id, quantity and unit_price attributes
    (pricing_service.LineItemInput). The first failure propagates; the
    caller's transaction rolls back everything already applied.
    """
    mutations = []
    for kind in (InventoryKind.RAW_MATERIAL, InventoryKind.SUPPLY, InventoryKind.FINISHED_GOOD):
        for line in lines_by_kind.get(kind) or []:
            mutations.append(
                apply_purchase_line(
                    session,
                    kind,
                    line.item_id,
                    line.quantity,
                    line.unit_price,
                    purchase_number=purchase_number,
                    supplier_name=supplier_name,
                    created_by=created_by,
                )
            )
    return mutations


def reverse_purchase_lines(session: Session, purchase: Purchase) -> List[LineMutation]:
    """
    Take a purchase's quantities back out of stock.

    Cost bases are left untouched. Supplies and finished goods get an OUT
    movement with reason PURCHASE_REVERSAL referencing the purchase. Items
    deleted since the purchase are skipped.
    """
    supplier_name = purchase.supplier.name if purchase.supplier else ""
    notes = _audit_notes(purchase.purchase_number, supplier_name)
    mutations = []

    for line in purchase.lines:
        kind = line.kind
        kind_info = INVENTORY_KINDS[kind]
        quantity = Decimal(str(line.quantity))

        new_stock = atomic_increment(
            session, kind_info.model, line.item_id, "current_stock", -quantity
        )
        if new_stock is None:
            log_operation(
                logger,
                operation="reverse_purchase_lines",
                outcome="item_missing",
                item_kind=kind.value,
                item_id=line.item_id,
                purchase_number=purchase.purchase_number,
            )
            continue

        new_stock = Decimal(str(new_stock))
        mutation = LineMutation(
            kind=kind,
            item_id=line.item_id,
            item_name=getattr(session.get(kind_info.model, line.item_id), "name", ""),
            previous_stock=new_stock + quantity,
            new_stock=new_stock,
        )
        if kind_info.writes_stock_movement:
            movement = StockMovement(
                item_kind=kind.value,
                item_id=line.item_id,
                direction=MovementDirection.OUT.value,
                quantity=quantity,
                previous_stock=mutation.previous_stock,
                new_stock=new_stock,
                reason=MOVEMENT_REASON_PURCHASE_REVERSAL,
                reference=purchase.id,
                notes=notes,
            )
            session.add(movement)
            mutation.stock_movement = movement
        mutations.append(mutation)

    session.flush()
    log_operation(
        logger,
        operation="reverse_purchase_lines",
        outcome="reversed",
        purchase_number=purchase.purchase_number,
        lines=len(mutations),
    )
    return mutations
