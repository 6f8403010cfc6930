"""Cost basis change notifications.

When a purchase raises an inventory item's cost_per_unit, a CostBasisChanged
event is published inside the purchase's unit of work. Handlers run
synchronously on the same session, so their writes commit or roll back
with the purchase.

The default handler marks every recipe using a changed raw material as
needing a cost refresh (Recipe.last_cost_update). Recipe costs themselves
are recomputed lazily by readers.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from purchase_ledger.models import InventoryKind, Recipe, RecipeIngredient
from purchase_ledger.services.logging_utils import get_service_logger, log_operation
from purchase_ledger.utils.datetime_utils import utc_now

logger = get_service_logger(__name__)


@dataclass(frozen=True)
class CostBasisChanged:
    """An item's cost_per_unit was raised by a purchase."""

    item_kind: InventoryKind
    item_id: int
    old_cost: Decimal
    new_cost: Decimal
    purchase_number: Optional[str] = None
    occurred_at: datetime = field(default_factory=utc_now)


CostHandler = Callable[[Session, CostBasisChanged], None]

_handlers: List[CostHandler] = []


def subscribe(handler: CostHandler) -> CostHandler:
    """Register a handler; usable as a decorator. Duplicates are ignored."""
    if handler not in _handlers:
        _handlers.append(handler)
    return handler


def unsubscribe(handler: CostHandler) -> None:
    if handler in _handlers:
        _handlers.remove(handler)


def publish(session: Session, event: CostBasisChanged) -> None:
    """
    Deliver an event to every handler, in subscription order.

    Handler exceptions propagate so the purchase rolls back.
    """
    for handler in list(_handlers):
        handler(session, event)


@subscribe
def touch_dependent_recipes(session: Session, event: CostBasisChanged) -> None:
    """Set last_cost_update on recipes that use the changed raw material."""
    if event.item_kind != InventoryKind.RAW_MATERIAL:
        return

    recipe_ids = select(RecipeIngredient.recipe_id).where(
        RecipeIngredient.raw_material_id == event.item_id
    )
    result = session.execute(
        update(Recipe)
        .where(Recipe.id.in_(recipe_ids))
        .values(last_cost_update=event.occurred_at)
        .execution_options(synchronize_session=False)
    )
    log_operation(
        logger,
        operation="touch_dependent_recipes",
        outcome="touched",
        raw_material_id=event.item_id,
        recipes=result.rowcount,
    )
