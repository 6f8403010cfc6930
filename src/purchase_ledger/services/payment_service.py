"""Payment Service - routes a purchase's obligation to the ledger.

A purchase is settled either through ledger expenses (one per installment,
any payment method except CREDIT_CARD) or through credit-card invoice lines
(see credit_card_service). This module owns:

- installment splitting and due-date scheduling
- the labeling of financial lines by purchase composition
- the direct-ledger path (create_ledger_expenses)
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, ROUND_DOWN
from typing import Any, List, Optional, Sequence

from sqlalchemy.orm import Session

from purchase_ledger.models import (
    ExpenseCategory,
    ExpenseType,
    LedgerExpense,
    PaymentMethod,
    PurchaseStatus,
)
from purchase_ledger.services.exceptions import ValidationError
from purchase_ledger.services.expense_category_service import get_or_create_default_category
from purchase_ledger.services.logging_utils import get_service_logger, log_operation
from purchase_ledger.services.pricing_service import to_decimal
from purchase_ledger.utils.constants import (
    LABEL_MIXED,
    LABEL_RAW_MATERIALS,
    LABEL_RESALE_GOODS,
    LABEL_SUPPLIES,
    MONEY_QUANTUM,
)
from purchase_ledger.utils.datetime_utils import add_months, to_date

logger = get_service_logger(__name__)


# ============================================================================
# Installments
# ============================================================================


def split_installments(total: Any, count: int) -> List[Decimal]:
    """
    Split a total into N installments.

    Every installment is total / N rounded down to cents; the last one
    absorbs the remainder, so the amounts always sum to the total exactly.

    Args:
        total: Amount to split (>= 0)
        count: Number of installments (>= 1)

    Returns:
        List of N Decimal amounts

    Raises:
        ValidationError: If count < 1 or total is negative

    Example:
        >>> split_installments(Decimal("100.00"), 3)
        [Decimal('33.33'), Decimal('33.33'), Decimal('33.34')]
    """
    if count is None or int(count) < 1:
        raise ValidationError(f"Installment count must be at least 1, got {count}")
    count = int(count)
    total = to_decimal(total, "total").quantize(MONEY_QUANTUM)
    if total < 0:
        raise ValidationError(f"Cannot split a negative total ({total})")

    share = (total / count).quantize(MONEY_QUANTUM, rounding=ROUND_DOWN)
    amounts = [share] * (count - 1)
    amounts.append(total - share * (count - 1))
    return amounts


def installment_due_dates(
    base_due_date: Any,
    count: int,
    explicit: Optional[Sequence[Any]] = None,
) -> List[date]:
    """
    Schedule the due date of each installment.

    An explicit list is honored only when it has at least `count` entries;
    blank entries in it fall back to the computed date. The computed date of
    installment i is the base due date advanced by (i - 1) months, clamped to
    the end of shorter months.

    Args:
        base_due_date: Due date of the first installment (date or ISO string)
        count: Number of installments
        explicit: Optional per-installment due dates

    Returns:
        List of `count` dates
    """
    base = to_date(base_due_date)
    use_explicit = explicit is not None and len(explicit) >= count

    dates = []
    for index in range(count):
        if use_explicit and explicit[index]:
            dates.append(to_date(explicit[index]))
        else:
            dates.append(add_months(base, index))
    return dates


def installment_suffix(number: int, count: int) -> str:
    """Return " (i/N)" for multi-installment obligations, "" otherwise."""
    return f" ({number}/{count})" if count > 1 else ""


# ============================================================================
# Labeling
# ============================================================================


@dataclass(frozen=True)
class PurchaseComposition:
    """Which inventory classes a purchase contains."""

    has_raw_materials: bool
    has_supplies: bool
    has_finished_goods: bool

    @classmethod
    def from_lines(cls, raw_material_lines, supply_lines, finished_good_lines):
        return cls(
            has_raw_materials=bool(raw_material_lines),
            has_supplies=bool(supply_lines),
            has_finished_goods=bool(finished_good_lines),
        )

    @property
    def kind_count(self) -> int:
        return sum([self.has_raw_materials, self.has_supplies, self.has_finished_goods])

    @property
    def is_supply_only(self) -> bool:
        return self.has_supplies and self.kind_count == 1

    @property
    def is_raw_material_only(self) -> bool:
        return self.has_raw_materials and self.kind_count == 1

    @property
    def is_finished_good_only(self) -> bool:
        return self.has_finished_goods and self.kind_count == 1

    @property
    def is_mixed(self) -> bool:
        return self.kind_count > 1


@dataclass(frozen=True)
class FinancialLabeling:
    """
    Category and labels attached to every financial line of a purchase.

    Attributes:
        category: ExpenseCategory the lines are filed under
        ledger_label: Prefix of ledger expense descriptions
        card_label: Label stored on credit-card lines
        expense_type: ExpenseType of the lines and the purchase
    """

    category: ExpenseCategory
    ledger_label: str
    card_label: str
    expense_type: ExpenseType


def resolve_labeling(
    session: Session,
    composition: PurchaseComposition,
    supply_category_id: Optional[int] = None,
) -> FinancialLabeling:
    """
    Decide the category and labels of a purchase's financial lines.

    Rules:
        - supply only: the caller-selected category ("<name> Purchase"),
          expense type PRODUCTS; without a usable category the default one
          with the generic supplies label
        - finished goods only: "Resale Goods Purchase"
        - raw materials only: "Raw Materials Purchase"
        - mixed: "Mixed Purchase"
        Everything but a categorized supply purchase is filed under the
        default category, which is created on first use.

    Args:
        session: Active database session
        composition: Which inventory classes the purchase contains
        supply_category_id: Category chosen for supply-only purchases

    Returns:
        FinancialLabeling
    """
    if composition.is_supply_only:
        selected = None
        if supply_category_id is not None:
            selected = session.get(ExpenseCategory, supply_category_id)
            if selected is None:
                log_operation(
                    logger,
                    operation="resolve_labeling",
                    outcome="supply_category_missing",
                    supply_category_id=supply_category_id,
                )
        if selected is not None:
            return FinancialLabeling(
                category=selected,
                ledger_label=f"{selected.name} Purchase",
                card_label=selected.name,
                expense_type=ExpenseType.PRODUCTS,
            )
        return FinancialLabeling(
            category=get_or_create_default_category(session),
            ledger_label=LABEL_SUPPLIES,
            card_label=LABEL_SUPPLIES,
            expense_type=ExpenseType.PRODUCTS,
        )

    if composition.is_finished_good_only:
        label = LABEL_RESALE_GOODS
    elif composition.is_raw_material_only:
        label = LABEL_RAW_MATERIALS
    else:
        label = LABEL_MIXED

    return FinancialLabeling(
        category=get_or_create_default_category(session),
        ledger_label=label,
        card_label=label,
        expense_type=ExpenseType.RAW_MATERIALS,
    )


# ============================================================================
# Direct-ledger path
# ============================================================================


def create_ledger_expenses(
    session: Session,
    *,
    labeling: FinancialLabeling,
    supplier_id: int,
    supplier_name: str,
    purchase_number: str,
    total: Decimal,
    installments: int,
    purchase_date: date,
    due_date: Any,
    explicit_due_dates: Optional[Sequence[Any]] = None,
    status: PurchaseStatus = PurchaseStatus.PENDING,
    payment_method: PaymentMethod = PaymentMethod.BOLETO,
    payment_date: Optional[datetime] = None,
    bank_account_id: Optional[int] = None,
    notes: Optional[str] = None,
    invoice_number: Optional[str] = None,
    invoice_url: Optional[str] = None,
    created_by: Optional[str] = None,
) -> List[LedgerExpense]:
    """
    Create one ledger expense per installment.

    All rows share the purchase date as competence date. Descriptions are
    "<label> - <supplier>" suffixed "(i/N)" and notes suffixed
    "[Installment i/N]" when N > 1. Status and payment date follow the
    purchase's initial status.

    Returns:
        The created (flushed) LedgerExpense rows, in installment order.
        purchase_id is left empty for the caller to back-fill.
    """
    if payment_method == PaymentMethod.CREDIT_CARD:
        raise ValidationError("Credit card purchases are billed on card invoices, not the ledger")

    amounts = split_installments(total, installments)
    due_dates = installment_due_dates(due_date, installments, explicit_due_dates)
    status = PurchaseStatus(status)
    competence_date = to_date(purchase_date)

    expenses = []
    for index, (amount, installment_due) in enumerate(zip(amounts, due_dates), start=1):
        if installments > 1:
            line_notes = f"{notes or ''} [Installment {index}/{installments}]".strip()
        else:
            line_notes = notes

        expense = LedgerExpense(
            description=(
                f"{labeling.ledger_label} - {supplier_name}"
                f"{installment_suffix(index, installments)}"
            ),
            amount=amount,
            category_id=labeling.category.id,
            supplier_id=supplier_id,
            bank_account_id=bank_account_id,
            due_date=installment_due,
            competence_date=competence_date,
            payment_date=payment_date if status == PurchaseStatus.PAID else None,
            status=status.value,
            expense_type=labeling.expense_type.value,
            payment_method=PaymentMethod(payment_method).value,
            installment_number=index,
            installments=installments,
            purchase_number=purchase_number,
            reference_number=invoice_number,
            attachment_url=invoice_url,
            notes=line_notes,
            created_by=created_by,
        )
        session.add(expense)
        expenses.append(expense)

    session.flush()

    log_operation(
        logger,
        operation="create_ledger_expenses",
        outcome="created",
        purchase_number=purchase_number,
        installments=installments,
        total=str(total),
    )
    return expenses
