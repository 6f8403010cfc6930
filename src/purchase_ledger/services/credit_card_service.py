"""Credit Card Service - card path of the payment router and invoice lifecycle.

A purchase paid with CREDIT_CARD never creates ledger expenses. Instead:

1. The card's available limit drops by the full total (warning, not error,
   when it goes negative).
2. Each installment i becomes a CreditCardExpense on the invoice of month
   base + (i - 1), where base is the purchase month rolled forward once when
   the purchase day is after the card's closing day.
3. Each line atomically increments its invoice's total.

Invoices move OPEN -> CLOSED -> PAID; paying one restores the card's
available limit by the invoice total.
"""

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from purchase_ledger.models import (
    CreditCard,
    CreditCardExpense,
    CreditCardInvoice,
    InvoiceStatus,
)
from purchase_ledger.services.bank_account_service import debit_account
from purchase_ledger.services.database import atomic_increment, session_scope
from purchase_ledger.services.exceptions import (
    CreditCardNotFound,
    DuplicateFinancialLinesError,
    InvoiceNotFound,
    PurchaseStateError,
    ValidationError,
)
from purchase_ledger.services.logging_utils import get_service_logger, log_operation
from purchase_ledger.services.payment_service import (
    FinancialLabeling,
    installment_suffix,
    split_installments,
)
from purchase_ledger.services.pricing_service import quantize_money, to_decimal
from purchase_ledger.utils.datetime_utils import add_months, day_in_month, to_date, utc_now

logger = get_service_logger(__name__)


# ============================================================================
# Card catalog
# ============================================================================


def create_credit_card(
    name: str,
    credit_limit: Any,
    closing_day: int,
    due_day: int,
    available_limit: Any = None,
    session: Optional[Session] = None,
) -> Dict[str, Any]:
    """Create a credit card.

    Args:
        name: Display name
        credit_limit: Total limit (0 leaves the limit untracked)
        closing_day: Day of month the cycle closes (1-31)
        due_day: Day of month the invoice is due (1-31)
        available_limit: Starting available limit (default: credit_limit)
        session: Optional database session

    Returns:
        Created card as dictionary
    """
    if session is not None:
        return _create_credit_card_impl(
            name, credit_limit, closing_day, due_day, available_limit, session
        )
    with session_scope() as session:
        return _create_credit_card_impl(
            name, credit_limit, closing_day, due_day, available_limit, session
        )


def _create_credit_card_impl(
    name: str,
    credit_limit: Any,
    closing_day: int,
    due_day: int,
    available_limit: Any,
    session: Session,
) -> Dict[str, Any]:
    """Implementation of create_credit_card."""
    errors = []
    if not name or not name.strip():
        errors.append("Card name is required")
    for label, day in (("closing_day", closing_day), ("due_day", due_day)):
        if not isinstance(day, int) or not 1 <= day <= 31:
            errors.append(f"{label} must be between 1 and 31")
    limit = to_decimal(credit_limit, "credit_limit")
    if limit < 0:
        errors.append("credit_limit cannot be negative")
    if errors:
        raise ValidationError(errors)

    card = CreditCard(
        name=name.strip(),
        credit_limit=limit,
        available_limit=to_decimal(available_limit, "available_limit")
        if available_limit is not None
        else limit,
        closing_day=closing_day,
        due_day=due_day,
    )
    session.add(card)
    session.flush()
    return card.to_dict()


# ============================================================================
# Billing cycle
# ============================================================================


def invoice_reference_month(purchase_date: Any, closing_day: int) -> date:
    """
    First day of the invoice month a purchase is billed on.

    A purchase made after the closing day belongs to the next month's
    invoice (December rolls into January of the next year).

    Example:
        >>> invoice_reference_month(date(2025, 12, 25), 20)
        datetime.date(2026, 1, 1)
    """
    purchase_date = to_date(purchase_date)
    reference = date(purchase_date.year, purchase_date.month, 1)
    if purchase_date.day > closing_day:
        reference = add_months(reference, 1)
    return reference


def get_or_create_invoice(
    session: Session, card: CreditCard, reference_month: date
) -> CreditCardInvoice:
    """
    Return the card's invoice for a month, creating it OPEN if absent.

    The closing date is the card's closing day in the reference month and
    the due date is the card's due day in the following month, both clamped
    to the month's length. A concurrent creator losing the unique
    (card, reference_month) race rolls back its SAVEPOINT and reads the
    winner's row.

    Raises:
        PurchaseStateError: If the month's invoice exists but is not OPEN
    """
    invoice = _find_invoice(session, card.id, reference_month)
    if invoice is None:
        due_month = add_months(reference_month, 1)
        try:
            with session.begin_nested():
                invoice = CreditCardInvoice(
                    credit_card_id=card.id,
                    reference_month=reference_month,
                    closing_date=day_in_month(
                        reference_month.year, reference_month.month, card.closing_day
                    ),
                    due_date=day_in_month(due_month.year, due_month.month, card.due_day),
                    total_amount=Decimal("0"),
                    status=InvoiceStatus.OPEN.value,
                )
                session.add(invoice)
        except IntegrityError:
            log_operation(
                logger,
                operation="get_or_create_invoice",
                outcome="creation_race_lost",
                level=logging.DEBUG,
                credit_card_id=card.id,
                reference_month=reference_month.isoformat(),
            )
            invoice = _find_invoice(session, card.id, reference_month)
        else:
            log_operation(
                logger,
                operation="get_or_create_invoice",
                outcome="created",
                credit_card_id=card.id,
                reference_month=reference_month.isoformat(),
            )

    if invoice.status != InvoiceStatus.OPEN.value:
        raise PurchaseStateError(
            f"Invoice {reference_month:%Y-%m} of card {card.id} is {invoice.status}"
        )
    return invoice


def _find_invoice(
    session: Session, credit_card_id: int, reference_month: date
) -> Optional[CreditCardInvoice]:
    return (
        session.query(CreditCardInvoice)
        .filter(
            CreditCardInvoice.credit_card_id == credit_card_id,
            CreditCardInvoice.reference_month == reference_month,
        )
        .with_for_update()
        .first()
    )


# ============================================================================
# Card path
# ============================================================================


def charge_credit_card(
    session: Session,
    *,
    credit_card_id: int,
    labeling: FinancialLabeling,
    purchase_number: str,
    supplier_name: str,
    total: Decimal,
    installments: int,
    purchase_date: Any,
    notes: Optional[str] = None,
    created_by: Optional[str] = None,
) -> List[CreditCardExpense]:
    """
    Bill a purchase on a credit card.

    Args:
        session: Active database session (the purchase's unit of work)
        credit_card_id: Card to charge
        labeling: Category and labels of the purchase
        purchase_number: Number of the purchase; tags every created line
        supplier_name: Supplier name snapshot for descriptions
        total: Purchase total
        installments: Number of invoice lines to create
        purchase_date: Date of the purchase
        notes: Optional notes copied to every line
        created_by: Optional user identifier

    Returns:
        The created CreditCardExpense rows, in installment order

    Raises:
        CreditCardNotFound: If the card does not exist
        DuplicateFinancialLinesError: If lines tagged with purchase_number
            already exist (checked before any card mutation)
        PurchaseStateError: If a target invoice is no longer OPEN
    """
    card = session.get(CreditCard, credit_card_id)
    if card is None:
        raise CreditCardNotFound(credit_card_id)

    existing = (
        session.query(func.count(CreditCardExpense.id))
        .filter(CreditCardExpense.reference_number == purchase_number)
        .scalar()
    )
    if existing:
        log_operation(
            logger,
            operation="charge_credit_card",
            outcome="duplicate_lines",
            level=logging.WARNING,
            purchase_number=purchase_number,
            existing_lines=existing,
        )
        raise DuplicateFinancialLinesError(purchase_number)

    purchase_date = to_date(purchase_date)
    total = quantize_money(to_decimal(total, "total"))
    amounts = split_installments(total, installments)

    if card.credit_limit and card.credit_limit > 0:
        available = atomic_increment(session, CreditCard, card.id, "available_limit", -total)
        if available is not None and available < 0:
            log_operation(
                logger,
                operation="charge_credit_card",
                outcome="credit_limit_exceeded",
                level=logging.WARNING,
                credit_card_id=card.id,
                purchase_number=purchase_number,
                available_limit=str(available),
            )

    base_month = invoice_reference_month(purchase_date, card.closing_day)
    lines = []
    for index, amount in enumerate(amounts, start=1):
        invoice = get_or_create_invoice(session, card, add_months(base_month, index - 1))
        line = CreditCardExpense(
            credit_card_id=card.id,
            invoice_id=invoice.id,
            description=(
                f"Purchase {supplier_name} {purchase_number}"
                f"{installment_suffix(index, installments)}"
            ),
            amount=amount,
            purchase_date=purchase_date,
            category_id=labeling.category.id,
            category_label=labeling.card_label,
            supplier_name=supplier_name,
            reference_number=purchase_number,
            installments=installments,
            installment_number=index,
            expense_type=labeling.expense_type.value,
            notes=notes,
            created_by=created_by,
        )
        session.add(line)
        session.flush()
        atomic_increment(session, CreditCardInvoice, invoice.id, "total_amount", amount)
        lines.append(line)

    log_operation(
        logger,
        operation="charge_credit_card",
        outcome="charged",
        credit_card_id=card.id,
        purchase_number=purchase_number,
        installments=installments,
        first_invoice_month=base_month.isoformat(),
    )
    return lines


def reverse_card_charges(session: Session, purchase_number: str) -> int:
    """
    Remove the card lines of a purchase.

    Restores the available limit of each charged card and decrements each
    invoice total by the removed lines, both at the store level. Lines on
    PAID invoices cannot be reversed.

    Returns:
        Number of removed lines
    """
    lines = (
        session.query(CreditCardExpense)
        .filter(CreditCardExpense.reference_number == purchase_number)
        .all()
    )
    if not lines:
        return 0

    for line in lines:
        if line.invoice.status == InvoiceStatus.PAID.value:
            raise PurchaseStateError(
                f"Card line {line.id} of purchase {purchase_number} is on a PAID invoice"
            )

    restored_by_card: Dict[int, Decimal] = {}
    for line in lines:
        amount = Decimal(str(line.amount))
        atomic_increment(session, CreditCardInvoice, line.invoice_id, "total_amount", -amount)
        restored_by_card[line.credit_card_id] = (
            restored_by_card.get(line.credit_card_id, Decimal("0")) + amount
        )
        session.delete(line)

    for card_id, amount in restored_by_card.items():
        card = session.get(CreditCard, card_id)
        if card is not None and card.credit_limit and card.credit_limit > 0:
            atomic_increment(session, CreditCard, card_id, "available_limit", amount)

    session.flush()
    log_operation(
        logger,
        operation="reverse_card_charges",
        outcome="reversed",
        purchase_number=purchase_number,
        lines=len(lines),
    )
    return len(lines)


# ============================================================================
# Invoice lifecycle
# ============================================================================


def _get_invoice_or_raise(session: Session, invoice_id: int) -> CreditCardInvoice:
    invoice = session.get(CreditCardInvoice, invoice_id)
    if invoice is None:
        raise InvoiceNotFound(invoice_id)
    return invoice


def close_invoice(invoice_id: int, session: Optional[Session] = None) -> Dict[str, Any]:
    """Close an OPEN invoice so it stops accepting new lines.

    Raises:
        InvoiceNotFound: If the invoice does not exist
        PurchaseStateError: If the invoice is not OPEN
    """
    if session is not None:
        return _close_invoice_impl(invoice_id, session)
    with session_scope() as session:
        return _close_invoice_impl(invoice_id, session)


def _close_invoice_impl(invoice_id: int, session: Session) -> Dict[str, Any]:
    invoice = _get_invoice_or_raise(session, invoice_id)
    if invoice.status != InvoiceStatus.OPEN.value:
        raise PurchaseStateError(
            f"Only OPEN invoices can be closed; invoice {invoice_id} is {invoice.status}"
        )
    invoice.status = InvoiceStatus.CLOSED.value
    session.flush()
    log_operation(logger, operation="close_invoice", outcome="closed", invoice_id=invoice_id)
    return invoice.to_dict()


def reopen_invoice(invoice_id: int, session: Optional[Session] = None) -> Dict[str, Any]:
    """Reopen a CLOSED invoice. PAID invoices cannot be reopened."""
    if session is not None:
        return _reopen_invoice_impl(invoice_id, session)
    with session_scope() as session:
        return _reopen_invoice_impl(invoice_id, session)


def _reopen_invoice_impl(invoice_id: int, session: Session) -> Dict[str, Any]:
    invoice = _get_invoice_or_raise(session, invoice_id)
    if invoice.status == InvoiceStatus.PAID.value:
        raise PurchaseStateError(f"Invoice {invoice_id} is PAID and cannot be reopened")
    invoice.status = InvoiceStatus.OPEN.value
    session.flush()
    log_operation(logger, operation="reopen_invoice", outcome="reopened", invoice_id=invoice_id)
    return invoice.to_dict()


def pay_invoice(
    invoice_id: int,
    bank_account_id: Optional[int] = None,
    paid_at: Optional[datetime] = None,
    paid_by: Optional[str] = None,
    session: Optional[Session] = None,
) -> Dict[str, Any]:
    """
    Mark an invoice PAID and restore the card's available limit.

    Args:
        invoice_id: Invoice to pay
        bank_account_id: Optional account the payment is debited from
        paid_at: Payment moment (default: now)
        paid_by: Optional user identifier
        session: Optional database session

    Returns:
        Paid invoice as dictionary

    Raises:
        InvoiceNotFound: If the invoice does not exist
        PurchaseStateError: If the invoice is already PAID
        BankAccountNotFound: If bank_account_id does not exist
    """
    if session is not None:
        return _pay_invoice_impl(invoice_id, bank_account_id, paid_at, paid_by, session)
    with session_scope() as session:
        return _pay_invoice_impl(invoice_id, bank_account_id, paid_at, paid_by, session)


def _pay_invoice_impl(
    invoice_id: int,
    bank_account_id: Optional[int],
    paid_at: Optional[datetime],
    paid_by: Optional[str],
    session: Session,
) -> Dict[str, Any]:
    invoice = _get_invoice_or_raise(session, invoice_id)
    if invoice.status == InvoiceStatus.PAID.value:
        raise PurchaseStateError(f"Invoice {invoice_id} is already PAID")

    total = Decimal(str(invoice.total_amount))
    paid_at = paid_at or utc_now()
    card = invoice.credit_card

    if bank_account_id is not None and total > 0:
        debit_account(
            session,
            bank_account_id=bank_account_id,
            amount=total,
            description=f"Card invoice {card.name} {invoice.reference_month:%Y-%m}",
            reference_id=invoice.id,
            reference_type="CREDIT_CARD_INVOICE",
            category=None,
            moment=paid_at,
            created_by=paid_by,
        )

    invoice.status = InvoiceStatus.PAID.value
    invoice.paid_at = paid_at
    if card.credit_limit and card.credit_limit > 0:
        atomic_increment(session, CreditCard, card.id, "available_limit", total)
    session.flush()

    log_operation(
        logger,
        operation="pay_invoice",
        outcome="paid",
        invoice_id=invoice_id,
        credit_card_id=card.id,
        total=str(total),
    )
    return invoice.to_dict()


def recalculate_invoice_total(invoice_id: int, session: Optional[Session] = None) -> Decimal:
    """
    Reset an invoice's total to the sum of its lines.

    Returns:
        The recalculated total. A mismatch with the stored total is logged
        as a WARNING before being repaired.
    """
    if session is not None:
        return _recalculate_invoice_total_impl(invoice_id, session)
    with session_scope() as session:
        return _recalculate_invoice_total_impl(invoice_id, session)


def _recalculate_invoice_total_impl(invoice_id: int, session: Session) -> Decimal:
    invoice = _get_invoice_or_raise(session, invoice_id)
    line_sum = (
        session.query(func.coalesce(func.sum(CreditCardExpense.amount), 0))
        .filter(CreditCardExpense.invoice_id == invoice_id)
        .scalar()
    )
    line_sum = quantize_money(Decimal(str(line_sum)))
    stored = quantize_money(Decimal(str(invoice.total_amount)))
    if line_sum != stored:
        log_operation(
            logger,
            operation="recalculate_invoice_total",
            outcome="total_repaired",
            level=logging.WARNING,
            invoice_id=invoice_id,
            stored_total=str(stored),
            line_total=str(line_sum),
        )
        invoice.total_amount = line_sum
        session.flush()
    return line_sum
