"""Supplier Service - catalog of vendors purchases are made from.

Purchases reference suppliers with RESTRICT delete, so a supplier with
purchase history can only be deactivated.

Example Usage:
    >>> from purchase_ledger.services.supplier_service import create_supplier
    >>>
    >>> supplier = create_supplier(name="Atacadao Distribuidora", document="12.345.678/0001-90")
    >>> supplier["name"]
    'Atacadao Distribuidora'
"""

import re
from typing import Optional, List, Dict, Any

from sqlalchemy.orm import Session

from purchase_ledger.models import Supplier, Purchase
from purchase_ledger.services.database import session_scope
from purchase_ledger.services.exceptions import (
    ConflictError,
    SupplierNotFoundError,
    ValidationError,
)

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

_UPDATABLE_FIELDS = {"name", "document", "phone", "email", "notes"}


def _validate_supplier_fields(fields: Dict[str, Any]) -> List[str]:
    errors = []
    if "name" in fields and not (fields["name"] or "").strip():
        errors.append("Supplier name is required")
    email = fields.get("email")
    if email and not _EMAIL_PATTERN.match(email):
        errors.append(f"Invalid email address: {email}")
    return errors


def create_supplier(
    name: str,
    document: Optional[str] = None,
    phone: Optional[str] = None,
    email: Optional[str] = None,
    notes: Optional[str] = None,
    session: Optional[Session] = None,
) -> Dict[str, Any]:
    """Create a new supplier.

    Args:
        name: Supplier name (required)
        document: Tax document (optional)
        phone: Contact phone (optional)
        email: Contact email (optional, validated)
        notes: Additional notes (optional)
        session: Optional database session for transactional atomicity

    Returns:
        Dict[str, Any]: Created supplier as dictionary

    Raises:
        ValidationError: If name is blank or email is malformed
    """
    if session is not None:
        return _create_supplier_impl(name, document, phone, email, notes, session)
    with session_scope() as session:
        return _create_supplier_impl(name, document, phone, email, notes, session)


def _create_supplier_impl(
    name: str,
    document: Optional[str],
    phone: Optional[str],
    email: Optional[str],
    notes: Optional[str],
    session: Session,
) -> Dict[str, Any]:
    """Implementation of create_supplier."""
    errors = _validate_supplier_fields({"name": name, "email": email})
    if errors:
        raise ValidationError(errors)

    supplier = Supplier(
        name=name.strip(),
        document=document,
        phone=phone,
        email=email,
        notes=notes,
    )
    session.add(supplier)
    session.flush()
    return supplier.to_dict()


def get_supplier(supplier_id: int, session: Optional[Session] = None) -> Optional[Dict[str, Any]]:
    """Get supplier by ID.

    Returns:
        Dict[str, Any]: Supplier data as dictionary, or None if not found
    """
    if session is not None:
        return _get_supplier_impl(supplier_id, session)
    with session_scope() as session:
        return _get_supplier_impl(supplier_id, session)


def _get_supplier_impl(supplier_id: int, session: Session) -> Optional[Dict[str, Any]]:
    """Implementation of get_supplier."""
    supplier = session.query(Supplier).filter(Supplier.id == supplier_id).first()
    return supplier.to_dict() if supplier else None


def get_supplier_or_raise(
    supplier_id: int,
    session: Optional[Session] = None,
) -> Dict[str, Any]:
    """Get supplier by ID, raising SupplierNotFoundError if not found."""
    result = get_supplier(supplier_id, session=session)
    if result is None:
        raise SupplierNotFoundError(supplier_id)
    return result


def get_all_suppliers(
    include_inactive: bool = False,
    session: Optional[Session] = None,
) -> List[Dict[str, Any]]:
    """Get all suppliers, optionally including inactive.

    Args:
        include_inactive: If True, include deactivated suppliers (default: False)
        session: Optional database session

    Returns:
        List[Dict[str, Any]]: List of supplier dictionaries, sorted by name
    """
    if session is not None:
        return _get_all_suppliers_impl(include_inactive, session)
    with session_scope() as session:
        return _get_all_suppliers_impl(include_inactive, session)


def _get_all_suppliers_impl(include_inactive: bool, session: Session) -> List[Dict[str, Any]]:
    """Implementation of get_all_suppliers."""
    query = session.query(Supplier)
    if not include_inactive:
        query = query.filter(Supplier.is_active == True)  # noqa: E712
    return [s.to_dict() for s in query.order_by(Supplier.name).all()]


def update_supplier(
    supplier_id: int,
    session: Optional[Session] = None,
    **kwargs,
) -> Dict[str, Any]:
    """Update supplier attributes.

    Args:
        supplier_id: Supplier ID
        session: Optional database session
        **kwargs: Fields to update (name, document, phone, email, notes);
                  other keys are ignored

    Raises:
        SupplierNotFoundError: If supplier not found
        ValidationError: If name is blank or email is malformed
    """
    if session is not None:
        return _update_supplier_impl(supplier_id, session, **kwargs)
    with session_scope() as session:
        return _update_supplier_impl(supplier_id, session, **kwargs)


def _update_supplier_impl(supplier_id: int, session: Session, **kwargs) -> Dict[str, Any]:
    """Implementation of update_supplier."""
    supplier = session.query(Supplier).filter(Supplier.id == supplier_id).first()
    if not supplier:
        raise SupplierNotFoundError(supplier_id)

    updates = {key: value for key, value in kwargs.items() if key in _UPDATABLE_FIELDS}
    errors = _validate_supplier_fields(updates)
    if errors:
        raise ValidationError(errors)

    for key, value in updates.items():
        setattr(supplier, key, value.strip() if key == "name" else value)

    session.flush()
    return supplier.to_dict()


def set_supplier_active(
    supplier_id: int,
    is_active: bool,
    session: Optional[Session] = None,
) -> Dict[str, Any]:
    """Deactivate (soft delete) or reactivate a supplier.

    Deactivated suppliers keep their purchase history but are hidden from
    get_all_suppliers() by default.
    """
    if session is not None:
        return _set_supplier_active_impl(supplier_id, is_active, session)
    with session_scope() as session:
        return _set_supplier_active_impl(supplier_id, is_active, session)


def _set_supplier_active_impl(
    supplier_id: int, is_active: bool, session: Session
) -> Dict[str, Any]:
    supplier = session.query(Supplier).filter(Supplier.id == supplier_id).first()
    if not supplier:
        raise SupplierNotFoundError(supplier_id)
    supplier.is_active = is_active
    session.flush()
    return supplier.to_dict()


def delete_supplier(
    supplier_id: int,
    session: Optional[Session] = None,
) -> bool:
    """Delete supplier if no purchases exist.

    Raises:
        SupplierNotFoundError: If supplier not found
        ConflictError: If supplier has purchases (deactivate instead)
    """
    if session is not None:
        return _delete_supplier_impl(supplier_id, session)
    with session_scope() as session:
        return _delete_supplier_impl(supplier_id, session)


def _delete_supplier_impl(supplier_id: int, session: Session) -> bool:
    """Implementation of delete_supplier."""
    supplier = session.query(Supplier).filter(Supplier.id == supplier_id).first()
    if not supplier:
        raise SupplierNotFoundError(supplier_id)

    purchase_count = session.query(Purchase).filter(Purchase.supplier_id == supplier_id).count()
    if purchase_count > 0:
        raise ConflictError(
            f"Cannot delete supplier with {purchase_count} purchases. Deactivate instead."
        )

    session.delete(supplier)
    session.flush()
    return True
