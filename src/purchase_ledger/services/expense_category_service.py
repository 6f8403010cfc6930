"""Expense Category Service - categories that file financial lines.

Purchases that are not supply-only are filed under the default
"Merchandise Purchases" category, created on first use.
"""

from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from purchase_ledger.models import ExpenseCategory, ExpenseType
from purchase_ledger.services.database import session_scope
from purchase_ledger.services.exceptions import ValidationError
from purchase_ledger.services.logging_utils import get_service_logger, log_operation
from purchase_ledger.utils.constants import (
    DEFAULT_CATEGORY_COLOR,
    DEFAULT_CATEGORY_DESCRIPTION,
    DEFAULT_CATEGORY_NAME,
)

logger = get_service_logger(__name__)


def create_category(
    name: str,
    expense_type: ExpenseType = ExpenseType.OTHER,
    description: Optional[str] = None,
    color: Optional[str] = None,
    session: Optional[Session] = None,
) -> Dict[str, Any]:
    """Create an expense category.

    Args:
        name: Unique category name
        expense_type: Default ExpenseType of lines filed under it
        description: Optional description
        color: Optional display color (hex)
        session: Optional database session

    Returns:
        Created category as dictionary

    Raises:
        ValidationError: If the name is blank or already used
    """
    if session is not None:
        return _create_category_impl(name, expense_type, description, color, session)
    with session_scope() as session:
        return _create_category_impl(name, expense_type, description, color, session)


def _create_category_impl(
    name: str,
    expense_type: ExpenseType,
    description: Optional[str],
    color: Optional[str],
    session: Session,
) -> Dict[str, Any]:
    """Implementation of create_category."""
    name = (name or "").strip()
    if not name:
        raise ValidationError("Category name is required")
    if session.query(ExpenseCategory.id).filter(ExpenseCategory.name == name).first():
        raise ValidationError(f"Category '{name}' already exists")

    category = ExpenseCategory(
        name=name,
        expense_type=ExpenseType(expense_type).value,
        description=description,
        color=color,
    )
    session.add(category)
    session.flush()
    return category.to_dict()


def get_category(category_id: int, session: Optional[Session] = None) -> Optional[Dict[str, Any]]:
    """Get a category by ID, or None if not found."""
    if session is not None:
        return _get_category_impl(category_id, session)
    with session_scope() as session:
        return _get_category_impl(category_id, session)


def _get_category_impl(category_id: int, session: Session) -> Optional[Dict[str, Any]]:
    category = session.get(ExpenseCategory, category_id)
    return category.to_dict() if category else None


def list_categories(
    include_inactive: bool = False,
    session: Optional[Session] = None,
) -> List[Dict[str, Any]]:
    """List categories sorted by name."""
    if session is not None:
        return _list_categories_impl(include_inactive, session)
    with session_scope() as session:
        return _list_categories_impl(include_inactive, session)


def _list_categories_impl(include_inactive: bool, session: Session) -> List[Dict[str, Any]]:
    query = session.query(ExpenseCategory)
    if not include_inactive:
        query = query.filter(ExpenseCategory.is_active == True)  # noqa: E712
    return [c.to_dict() for c in query.order_by(ExpenseCategory.name).all()]


def get_or_create_default_category(session: Session) -> ExpenseCategory:
    """
    Return the default merchandise category, creating it on first use.

    Two purchases racing to create it both insert inside a SAVEPOINT; the
    loser rolls back to the savepoint and reads the winner's row.

    Args:
        session: Active database session (the caller's unit of work)

    Returns:
        The ExpenseCategory ORM instance
    """
    category = (
        session.query(ExpenseCategory).filter(ExpenseCategory.name == DEFAULT_CATEGORY_NAME).first()
    )
    if category is not None:
        return category

    try:
        with session.begin_nested():
            category = ExpenseCategory(
                name=DEFAULT_CATEGORY_NAME,
                description=DEFAULT_CATEGORY_DESCRIPTION,
                color=DEFAULT_CATEGORY_COLOR,
                expense_type=ExpenseType.RAW_MATERIALS.value,
            )
            session.add(category)
    except IntegrityError:
        category = (
            session.query(ExpenseCategory)
            .filter(ExpenseCategory.name == DEFAULT_CATEGORY_NAME)
            .one()
        )
    else:
        log_operation(
            logger,
            operation="get_or_create_default_category",
            outcome="created",
            category_id=category.id,
        )
    return category
