"""Purchase Service - the purchase transaction orchestrator.

create_purchase() runs one atomic unit of work:

    VALIDATING -> PRICING -> PAYMENT_ROUTING -> INVENTORY_MUTATING
               -> BANK_SETTLING -> COMMITTED

Every sub-step writes through the same session. The Purchase row is
inserted last and its id is back-filled into the ledger expenses, cost
history, stock movements and bank transaction before commit. Any failure
moves the machine to FAILED and rolls everything back: no half-created
purchase, no orphaned expense, no stock change without its purchase.

Also provides the purchase lifecycle after creation: lookup, listing,
marking a pending purchase paid and deleting a pending purchase.

Example Usage:
    >>> from purchase_ledger.services.purchase_service import PurchaseRequest, create_purchase
    >>> from purchase_ledger.services.pricing_service import LineItemInput
    >>>
    >>> purchase = create_purchase(PurchaseRequest(
    ...     supplier_id=1,
    ...     payment_method=PaymentMethod.BOLETO,
    ...     raw_material_lines=[LineItemInput(item_id=3, quantity=10, unit_price="5.00")],
    ...     due_date="2025-07-10",
    ...     installments=2,
    ...     tax_amount="2.00",
    ... ))
    >>> purchase.total_amount
    Decimal('52.00')
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from purchase_ledger.models import (
    BankAccount,
    CreditCard,
    InventoryKind,
    LedgerExpense,
    LINE_CLASSES,
    PaymentMethod,
    Purchase,
    PurchaseStatus,
    Supplier,
)
from purchase_ledger.services.bank_account_service import debit_account, reverse_transactions
from purchase_ledger.services.credit_card_service import charge_credit_card, reverse_card_charges
from purchase_ledger.services.database import session_scope
from purchase_ledger.services.exceptions import (
    BankAccountNotFound,
    CreditCardNotFound,
    PurchaseError,
    PurchaseNotFound,
    PurchaseNumberConflictError,
    PurchaseStateError,
    PurchaseTimeoutError,
    StorageError,
    SupplierNotFoundError,
    ValidationError,
)
from purchase_ledger.services.inventory_mutation_service import (
    apply_purchase_lines,
    reverse_purchase_lines,
)
from purchase_ledger.services.logging_utils import get_service_logger, log_operation
from purchase_ledger.services.payment_service import (
    PurchaseComposition,
    create_ledger_expenses,
    resolve_labeling,
)
from purchase_ledger.services.pricing_service import (
    LineItemInput,
    calculate_totals,
    line_total,
    to_decimal,
)
from purchase_ledger.services.sequence_service import generate_purchase_number
from purchase_ledger.utils.config import get_config
from purchase_ledger.utils.constants import MAX_CREATE_ATTEMPTS, REFERENCE_TYPE_PURCHASE
from purchase_ledger.utils.datetime_utils import to_date, utc_now

logger = get_service_logger(__name__)


class PurchaseCreationState(str, Enum):
    """Phases of create_purchase()."""

    VALIDATING = "VALIDATING"
    PRICING = "PRICING"
    PAYMENT_ROUTING = "PAYMENT_ROUTING"
    INVENTORY_MUTATING = "INVENTORY_MUTATING"
    BANK_SETTLING = "BANK_SETTLING"
    COMMITTED = "COMMITTED"
    FAILED = "FAILED"


@dataclass
class PurchaseRequest:
    """
    Input of create_purchase().

    Line lists hold pricing_service.LineItemInput. Dates accept date,
    datetime or ISO strings. purchase_date defaults to today (UTC).
    installment_due_dates is honored only when it has at least
    `installments` entries.
    """

    supplier_id: Optional[int]
    payment_method: Any
    raw_material_lines: List[LineItemInput] = field(default_factory=list)
    supply_lines: List[LineItemInput] = field(default_factory=list)
    finished_good_lines: List[LineItemInput] = field(default_factory=list)
    supply_category_id: Optional[int] = None
    purchase_date: Any = None
    due_date: Any = None
    bank_account_id: Optional[int] = None
    credit_card_id: Optional[int] = None
    installments: int = 1
    installment_due_dates: Optional[List[Any]] = None
    tax_amount: Any = 0
    notes: Optional[str] = None
    invoice_number: Optional[str] = None
    invoice_url: Optional[str] = None
    status: Any = PurchaseStatus.PENDING
    created_by: Optional[str] = None

    def lines_by_kind(self) -> Dict[InventoryKind, List[LineItemInput]]:
        return {
            InventoryKind.RAW_MATERIAL: list(self.raw_material_lines or []),
            InventoryKind.SUPPLY: list(self.supply_lines or []),
            InventoryKind.FINISHED_GOOD: list(self.finished_good_lines or []),
        }


class _CreationTracker:
    """Tracks and logs the orchestrator state, enforcing the time bound."""

    def __init__(self, timeout_seconds: Optional[float]):
        self.state = PurchaseCreationState.VALIDATING
        self.timeout_seconds = timeout_seconds
        self._deadline = (
            time.monotonic() + timeout_seconds if timeout_seconds is not None else None
        )
        self.purchase_number: Optional[str] = None

    def check_deadline(self) -> None:
        if self._deadline is not None and time.monotonic() > self._deadline:
            raise PurchaseTimeoutError(self.timeout_seconds, self.state.value)

    def advance(self, state: PurchaseCreationState) -> None:
        self.check_deadline()
        self._enter(state)

    def committed(self) -> None:
        # Past the commit point the deadline no longer applies
        self._enter(PurchaseCreationState.COMMITTED)

    def _enter(self, state: PurchaseCreationState) -> None:
        self.state = state
        log_operation(
            logger,
            operation="create_purchase",
            outcome=f"state_{state.value.lower()}",
            level=logging.DEBUG,
            state=state.value,
            purchase_number=self.purchase_number,
        )

    def fail(self, error: Exception) -> None:
        failed_in = self.state
        self.state = PurchaseCreationState.FAILED
        log_operation(
            logger,
            operation="create_purchase",
            outcome="rolled_back",
            level=logging.WARNING,
            state=PurchaseCreationState.FAILED.value,
            failed_in=failed_in.value,
            purchase_number=self.purchase_number,
            error=str(error),
            error_type=type(error).__name__,
        )


# ============================================================================
# Creation
# ============================================================================


def create_purchase(
    request: PurchaseRequest,
    session: Optional[Session] = None,
    timeout_seconds: Optional[float] = None,
) -> Purchase:
    """
    Create a purchase and all of its side effects atomically.

    Args:
        request: The purchase to create
        session: Optional database session. When given, the purchase joins
                 the caller's transaction (retries use SAVEPOINTs) and the
                 caller commits.
        timeout_seconds: Upper bound for the whole creation (default:
                 PURCHASE_LEDGER_CREATE_TIMEOUT, unbounded when unset)

    Returns:
        The persisted Purchase with its lines

    Raises:
        ValidationError: Invalid input (nothing written)
        SupplierNotFoundError / CreditCardNotFound / BankAccountNotFound /
            InventoryItemNotFound: A referenced record does not exist
        DuplicateFinancialLinesError: Card lines for the number already exist
        PurchaseNumberConflictError: No free purchase number after retries
        PurchaseTimeoutError: The time bound was exceeded before commit
        StorageError: The database failed (retryable)
    """
    if timeout_seconds is None:
        timeout_seconds = get_config().create_timeout_seconds
    tracker = _CreationTracker(timeout_seconds)

    try:
        normalized = _normalize_request(request)
        if session is not None:
            return _create_with_retry(normalized, session, tracker)
        with session_scope() as session:
            purchase = _create_with_retry(normalized, session, tracker)
            tracker.check_deadline()
        tracker.committed()
        log_operation(
            logger,
            operation="create_purchase",
            outcome="committed",
            purchase_id=purchase.id,
            purchase_number=purchase.purchase_number,
            total=str(purchase.total_amount),
        )
        return purchase
    except PurchaseError as exc:
        if tracker.state != PurchaseCreationState.FAILED:
            tracker.fail(exc)
        raise
    except OperationalError as exc:
        tracker.fail(exc)
        raise StorageError("database unavailable or locked", exc) from exc
    except SQLAlchemyError as exc:
        tracker.fail(exc)
        raise StorageError(str(exc.__class__.__name__), exc) from exc
    except Exception as exc:
        tracker.fail(exc)
        raise


def _is_number_collision(error: IntegrityError) -> bool:
    return "purchase_number" in str(error.orig)


def _create_with_retry(
    normalized: "_NormalizedRequest", session: Session, tracker: _CreationTracker
) -> Purchase:
    """Run the unit of work, retrying on purchase_number collisions."""
    for attempt in range(1, MAX_CREATE_ATTEMPTS + 1):
        tracker.state = PurchaseCreationState.VALIDATING
        try:
            with session.begin_nested():
                return _create_purchase_impl(normalized, session, tracker)
        except IntegrityError as exc:
            if not _is_number_collision(exc):
                raise
            log_operation(
                logger,
                operation="create_purchase",
                outcome="purchase_number_collision",
                level=logging.WARNING,
                purchase_number=tracker.purchase_number,
                attempt=attempt,
            )
    raise PurchaseNumberConflictError(tracker.purchase_number, MAX_CREATE_ATTEMPTS)


@dataclass(frozen=True)
class _NormalizedRequest:
    request: PurchaseRequest
    method: PaymentMethod
    status: PurchaseStatus
    purchase_date: date
    due_date: date
    lines: Dict[InventoryKind, List[LineItemInput]]

    @property
    def is_card(self) -> bool:
        return self.method == PaymentMethod.CREDIT_CARD


def _normalize_request(request: PurchaseRequest) -> _NormalizedRequest:
    """Validate everything that needs no database access."""
    errors = []

    if request.supplier_id is None:
        errors.append("Supplier is required")

    lines = request.lines_by_kind()
    if not any(lines.values()):
        errors.append("At least one line item is required")

    try:
        method = PaymentMethod(request.payment_method)
    except ValueError:
        method = None
        errors.append(f"Unknown payment method: {request.payment_method!r}")

    try:
        status = PurchaseStatus(request.status)
    except ValueError:
        status = None
        errors.append(f"Unknown status: {request.status!r}")

    if method == PaymentMethod.CREDIT_CARD and request.credit_card_id is None:
        errors.append("Credit card is required for credit card payments")

    installments = request.installments
    if not isinstance(installments, int) or isinstance(installments, bool) or installments < 1:
        errors.append(f"Installment count must be an integer >= 1, got {installments!r}")

    purchase_date = due_date = None
    try:
        if request.purchase_date:
            purchase_date = to_date(request.purchase_date)
        else:
            purchase_date = utc_now().date()
    except ValueError:
        errors.append(f"Invalid purchase date: {request.purchase_date!r}")
    if not request.due_date:
        errors.append("Due date is required")
    else:
        try:
            due_date = to_date(request.due_date)
        except ValueError:
            errors.append(f"Invalid due date: {request.due_date!r}")

    if errors:
        raise ValidationError(errors)
    return _NormalizedRequest(request, method, status, purchase_date, due_date, lines)


def _create_purchase_impl(
    normalized: _NormalizedRequest, session: Session, tracker: _CreationTracker
) -> Purchase:
    """One attempt of create_purchase inside a SAVEPOINT."""
    request = normalized.request
    method = normalized.method
    status = normalized.status
    purchase_date = normalized.purchase_date
    due_date = normalized.due_date
    lines = normalized.lines
    is_card = normalized.is_card

    # VALIDATING: referenced records must exist
    supplier = session.get(Supplier, request.supplier_id)
    if supplier is None:
        raise SupplierNotFoundError(request.supplier_id)
    if is_card and session.get(CreditCard, request.credit_card_id) is None:
        raise CreditCardNotFound(request.credit_card_id)
    if request.bank_account_id is not None:
        if session.get(BankAccount, request.bank_account_id) is None:
            raise BankAccountNotFound(request.bank_account_id)

    # PRICING
    tracker.advance(PurchaseCreationState.PRICING)
    totals = calculate_totals(
        lines[InventoryKind.RAW_MATERIAL],
        lines[InventoryKind.SUPPLY],
        lines[InventoryKind.FINISHED_GOOD],
        request.tax_amount,
    )
    purchase_number = generate_purchase_number(session)
    tracker.purchase_number = purchase_number

    # PAYMENT_ROUTING
    tracker.advance(PurchaseCreationState.PAYMENT_ROUTING)
    composition = PurchaseComposition.from_lines(
        lines[InventoryKind.RAW_MATERIAL],
        lines[InventoryKind.SUPPLY],
        lines[InventoryKind.FINISHED_GOOD],
    )
    labeling = resolve_labeling(session, composition, request.supply_category_id)
    payment_date = utc_now() if status == PurchaseStatus.PAID else None

    expenses: List[LedgerExpense] = []
    if is_card:
        charge_credit_card(
            session,
            credit_card_id=request.credit_card_id,
            labeling=labeling,
            purchase_number=purchase_number,
            supplier_name=supplier.name,
            total=totals.total,
            installments=request.installments,
            purchase_date=purchase_date,
            notes=request.notes,
            created_by=request.created_by,
        )
    else:
        expenses = create_ledger_expenses(
            session,
            labeling=labeling,
            supplier_id=supplier.id,
            supplier_name=supplier.name,
            purchase_number=purchase_number,
            total=totals.total,
            installments=request.installments,
            purchase_date=purchase_date,
            due_date=due_date,
            explicit_due_dates=request.installment_due_dates,
            status=status,
            payment_method=method,
            payment_date=payment_date,
            bank_account_id=request.bank_account_id,
            notes=request.notes,
            invoice_number=request.invoice_number,
            invoice_url=request.invoice_url,
            created_by=request.created_by,
        )

    # INVENTORY_MUTATING
    tracker.advance(PurchaseCreationState.INVENTORY_MUTATING)
    mutations = apply_purchase_lines(
        session,
        lines,
        purchase_number=purchase_number,
        supplier_name=supplier.name,
        created_by=request.created_by,
    )

    # BANK_SETTLING
    tracker.advance(PurchaseCreationState.BANK_SETTLING)
    transaction = None
    if (
        status == PurchaseStatus.PAID
        and not is_card
        and request.bank_account_id is not None
        and totals.total > 0
    ):
        transaction = debit_account(
            session,
            bank_account_id=request.bank_account_id,
            amount=totals.total,
            description=f"Purchase {purchase_number} - {supplier.name}",
            reference_type=REFERENCE_TYPE_PURCHASE,
            category=labeling.expense_type.value,
            moment=payment_date,
            created_by=request.created_by,
        )

    # Persist the aggregate last, then back-fill its id
    purchase = Purchase(
        purchase_number=purchase_number,
        supplier=supplier,
        raw_materials_total=totals.raw_materials,
        supplies_total=totals.supplies,
        finished_goods_total=totals.finished_goods,
        tax_amount=totals.tax,
        total_amount=totals.total,
        status=status.value,
        purchase_date=purchase_date,
        due_date=due_date,
        payment_date=payment_date,
        payment_method=method.value,
        installments=request.installments,
        bank_account_id=request.bank_account_id,
        credit_card_id=request.credit_card_id if is_card else None,
        expense=expenses[0] if expenses else None,
        expense_type=labeling.expense_type.value,
        invoice_number=request.invoice_number,
        invoice_url=request.invoice_url,
        notes=request.notes,
        created_by=request.created_by,
        paid_by=request.created_by if status == PurchaseStatus.PAID else None,
    )
    for kind, kind_lines in lines.items():
        line_class = LINE_CLASSES[kind]
        for line in kind_lines:
            purchase.lines.append(
                line_class(
                    quantity=to_decimal(line.quantity, "quantity"),
                    unit_price=to_decimal(line.unit_price, "unit_price"),
                    total_price=line_total(line.quantity, line.unit_price),
                    notes=line.notes,
                    **{line_class.item_fk: line.item_id},
                )
            )
    session.add(purchase)
    session.flush()

    for expense in expenses:
        expense.purchase_id = purchase.id
    for mutation in mutations:
        if mutation.cost_history is not None:
            mutation.cost_history.purchase_id = purchase.id
        if mutation.stock_movement is not None:
            mutation.stock_movement.reference = purchase.id
    if transaction is not None:
        transaction.reference_id = purchase.id
    session.flush()

    tracker.check_deadline()
    return purchase


# ============================================================================
# Lookup
# ============================================================================


def get_purchase(purchase_id: int, session: Optional[Session] = None) -> Dict[str, Any]:
    """Get a purchase with its lines and supplier name.

    Raises:
        PurchaseNotFound: If the purchase does not exist
    """
    if session is not None:
        return _get_purchase_impl(purchase_id, session)
    with session_scope() as session:
        return _get_purchase_impl(purchase_id, session)


def _get_purchase_impl(purchase_id: int, session: Session) -> Dict[str, Any]:
    purchase = session.get(Purchase, purchase_id)
    if purchase is None:
        raise PurchaseNotFound(purchase_id)
    return purchase.to_dict(include_relationships=True)


def get_purchase_by_number(
    purchase_number: str, session: Optional[Session] = None
) -> Dict[str, Any]:
    """Get a purchase by its human-readable number.

    Raises:
        PurchaseNotFound: If no purchase carries the number
    """
    if session is not None:
        return _get_purchase_by_number_impl(purchase_number, session)
    with session_scope() as session:
        return _get_purchase_by_number_impl(purchase_number, session)


def _get_purchase_by_number_impl(purchase_number: str, session: Session) -> Dict[str, Any]:
    purchase = (
        session.query(Purchase).filter(Purchase.purchase_number == purchase_number).first()
    )
    if purchase is None:
        raise PurchaseNotFound(purchase_number)
    return purchase.to_dict(include_relationships=True)


def list_purchases(
    status: Optional[PurchaseStatus] = None,
    supplier_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    limit: Optional[int] = None,
    session: Optional[Session] = None,
) -> List[Dict[str, Any]]:
    """List purchases, newest purchase date first.

    Args:
        status: Only purchases with this status
        supplier_id: Only purchases from this supplier
        start_date: Only purchases on or after this date
        end_date: Only purchases on or before this date
        limit: Maximum number of results
        session: Optional database session

    Returns:
        List of purchase dictionaries (without lines)
    """
    if session is not None:
        return _list_purchases_impl(status, supplier_id, start_date, end_date, limit, session)
    with session_scope() as session:
        return _list_purchases_impl(status, supplier_id, start_date, end_date, limit, session)


def _list_purchases_impl(
    status: Optional[PurchaseStatus],
    supplier_id: Optional[int],
    start_date: Optional[date],
    end_date: Optional[date],
    limit: Optional[int],
    session: Session,
) -> List[Dict[str, Any]]:
    query = session.query(Purchase)
    if status is not None:
        query = query.filter(Purchase.status == PurchaseStatus(status).value)
    if supplier_id is not None:
        query = query.filter(Purchase.supplier_id == supplier_id)
    if start_date is not None:
        query = query.filter(Purchase.purchase_date >= to_date(start_date))
    if end_date is not None:
        query = query.filter(Purchase.purchase_date <= to_date(end_date))
    query = query.order_by(Purchase.purchase_date.desc(), Purchase.id.desc())
    if limit is not None:
        query = query.limit(limit)
    return [purchase.to_dict() for purchase in query.all()]


# ============================================================================
# Lifecycle
# ============================================================================


def mark_purchase_paid(
    purchase_id: int,
    bank_account_id: Optional[int] = None,
    payment_date: Optional[datetime] = None,
    paid_by: Optional[str] = None,
    session: Optional[Session] = None,
) -> Dict[str, Any]:
    """
    Move a PENDING purchase to PAID, exactly once.

    Non-card purchases are settled against bank_account_id (or the account
    recorded on the purchase) and their ledger expenses are marked PAID.
    Card purchases only change status; their money moves when the card
    invoice is paid.

    Args:
        purchase_id: Purchase to mark
        bank_account_id: Account to debit (overrides the purchase's account)
        payment_date: Payment moment (default: now)
        paid_by: Optional user identifier
        session: Optional database session

    Returns:
        Updated purchase as dictionary

    Raises:
        PurchaseNotFound: If the purchase does not exist
        PurchaseStateError: If the purchase is already PAID
        BankAccountNotFound: If the account does not exist
    """
    if session is not None:
        return _mark_purchase_paid_impl(
            purchase_id, bank_account_id, payment_date, paid_by, session
        )
    with session_scope() as session:
        return _mark_purchase_paid_impl(
            purchase_id, bank_account_id, payment_date, paid_by, session
        )


def _mark_purchase_paid_impl(
    purchase_id: int,
    bank_account_id: Optional[int],
    payment_date: Optional[datetime],
    paid_by: Optional[str],
    session: Session,
) -> Dict[str, Any]:
    purchase = session.get(Purchase, purchase_id)
    if purchase is None:
        raise PurchaseNotFound(purchase_id)

    payment_date = payment_date or utc_now()
    account_id = bank_account_id if bank_account_id is not None else purchase.bank_account_id

    # Conditional transition: only one caller can move PENDING -> PAID
    result = session.execute(
        update(Purchase)
        .where(Purchase.id == purchase_id, Purchase.status == PurchaseStatus.PENDING.value)
        .values(
            status=PurchaseStatus.PAID.value,
            payment_date=payment_date,
            paid_by=paid_by,
            bank_account_id=account_id,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise PurchaseStateError(f"Purchase {purchase.purchase_number} is already PAID")
    session.refresh(purchase)

    if not purchase.is_card_purchase:
        if account_id is not None and purchase.total_amount > 0:
            debit_account(
                session,
                bank_account_id=account_id,
                amount=purchase.total_amount,
                description=f"Purchase {purchase.purchase_number} - {purchase.supplier.name}",
                reference_id=purchase.id,
                reference_type=REFERENCE_TYPE_PURCHASE,
                category=purchase.expense_type,
                moment=payment_date,
                created_by=paid_by,
            )
        expenses = (
            session.query(LedgerExpense).filter(LedgerExpense.purchase_id == purchase.id).all()
        )
        for expense in expenses:
            expense.status = PurchaseStatus.PAID.value
            expense.payment_date = payment_date
            if account_id is not None:
                expense.bank_account_id = account_id
        session.flush()

    log_operation(
        logger,
        operation="mark_purchase_paid",
        outcome="paid",
        purchase_id=purchase.id,
        purchase_number=purchase.purchase_number,
        bank_account_id=account_id,
    )
    return purchase.to_dict()


def delete_purchase(purchase_id: int, session: Optional[Session] = None) -> bool:
    """
    Delete a PENDING purchase and undo its side effects.

    Removes its ledger expenses, card lines (restoring card limits and
    invoice totals), and bank transactions, and takes its quantities back
    out of stock. Cost bases and cost history are kept.

    Raises:
        PurchaseNotFound: If the purchase does not exist
        PurchaseStateError: If the purchase is PAID
    """
    if session is not None:
        return _delete_purchase_impl(purchase_id, session)
    with session_scope() as session:
        return _delete_purchase_impl(purchase_id, session)


def _delete_purchase_impl(purchase_id: int, session: Session) -> bool:
    purchase = session.get(Purchase, purchase_id)
    if purchase is None:
        raise PurchaseNotFound(purchase_id)
    if purchase.is_paid:
        raise PurchaseStateError(
            f"Purchase {purchase.purchase_number} is PAID and cannot be deleted"
        )

    purchase_number = purchase.purchase_number
    purchase.expense = None
    session.flush()

    reverse_transactions(session, REFERENCE_TYPE_PURCHASE, purchase.id)
    expense_count = (
        session.query(LedgerExpense)
        .filter(LedgerExpense.purchase_id == purchase.id)
        .delete()
    )
    card_lines = reverse_card_charges(session, purchase_number)
    reverse_purchase_lines(session, purchase)

    session.delete(purchase)
    session.flush()

    log_operation(
        logger,
        operation="delete_purchase",
        outcome="deleted",
        purchase_id=purchase_id,
        purchase_number=purchase_number,
        ledger_expenses=expense_count,
        card_lines=card_lines,
    )
    return True
