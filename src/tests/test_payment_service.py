"""Tests for installments, labeling and ledger expense creation."""

from datetime import date
from decimal import Decimal

import pytest

from purchase_ledger.models import (
    ExpenseCategory,
    ExpenseType,
    LedgerExpense,
    PaymentMethod,
    PurchaseStatus,
)
from purchase_ledger.services import expense_category_service
from purchase_ledger.services.exceptions import ValidationError
from purchase_ledger.services.payment_service import (
    PurchaseComposition,
    create_ledger_expenses,
    installment_due_dates,
    installment_suffix,
    resolve_labeling,
    split_installments,
)
from purchase_ledger.utils.constants import (
    DEFAULT_CATEGORY_NAME,
    LABEL_MIXED,
    LABEL_RAW_MATERIALS,
    LABEL_RESALE_GOODS,
    LABEL_SUPPLIES,
)


class TestSplitInstallments:
    def test_even_split(self):
        assert split_installments(Decimal("52.00"), 2) == [Decimal("26.00"), Decimal("26.00")]

    def test_last_installment_absorbs_remainder(self):
        amounts = split_installments(Decimal("100.00"), 3)
        assert amounts == [Decimal("33.33"), Decimal("33.33"), Decimal("33.34")]
        assert sum(amounts) == Decimal("100.00")

    def test_single_installment(self):
        assert split_installments("10.01", 1) == [Decimal("10.01")]

    def test_small_total_many_installments(self):
        amounts = split_installments(Decimal("0.05"), 6)
        assert amounts[:5] == [Decimal("0.00")] * 5
        assert amounts[-1] == Decimal("0.05")

    def test_zero_installments_rejected(self):
        with pytest.raises(ValidationError):
            split_installments(Decimal("10.00"), 0)

    def test_negative_total_rejected(self):
        with pytest.raises(ValidationError):
            split_installments(Decimal("-1.00"), 2)


class TestInstallmentDueDates:
    def test_monthly_from_base(self):
        assert installment_due_dates(date(2025, 7, 10), 3) == [
            date(2025, 7, 10),
            date(2025, 8, 10),
            date(2025, 9, 10),
        ]

    def test_end_of_month_clamped(self):
        assert installment_due_dates("2025-01-31", 2) == [date(2025, 1, 31), date(2025, 2, 28)]

    def test_year_rollover(self):
        assert installment_due_dates(date(2025, 12, 5), 2)[1] == date(2026, 1, 5)

    def test_explicit_dates_used_when_complete(self):
        explicit = ["2025-07-01", "2025-07-15"]
        assert installment_due_dates(date(2025, 7, 10), 2, explicit) == [
            date(2025, 7, 1),
            date(2025, 7, 15),
        ]

    def test_blank_explicit_entry_falls_back(self):
        explicit = ["2025-07-01", None]
        assert installment_due_dates(date(2025, 7, 10), 2, explicit)[1] == date(2025, 8, 10)

    def test_short_explicit_list_ignored(self):
        result = installment_due_dates(date(2025, 7, 10), 3, ["2025-07-01"])
        assert result[0] == date(2025, 7, 10)

    def test_suffix(self):
        assert installment_suffix(2, 3) == " (2/3)"
        assert installment_suffix(1, 1) == ""


class TestResolveLabeling:
    def test_raw_only_uses_default_category(self, db_session):
        composition = PurchaseComposition.from_lines([object()], [], [])
        labeling = resolve_labeling(db_session, composition)

        assert labeling.category.name == DEFAULT_CATEGORY_NAME
        assert labeling.ledger_label == LABEL_RAW_MATERIALS
        assert labeling.expense_type == ExpenseType.RAW_MATERIALS

    def test_finished_only_is_resale(self, db_session):
        composition = PurchaseComposition.from_lines([], [], [object()])
        assert resolve_labeling(db_session, composition).ledger_label == LABEL_RESALE_GOODS

    def test_mixed(self, db_session):
        composition = PurchaseComposition.from_lines([object()], [object()], [])
        labeling = resolve_labeling(db_session, composition, supply_category_id=999)
        assert labeling.ledger_label == LABEL_MIXED
        assert labeling.expense_type == ExpenseType.RAW_MATERIALS

    def test_supply_only_with_selected_category(self, db_session):
        category = expense_category_service.create_category(
            "Packaging", ExpenseType.PRODUCTS, session=db_session
        )
        composition = PurchaseComposition.from_lines([], [object()], [])
        labeling = resolve_labeling(db_session, composition, category["id"])

        assert labeling.category.id == category["id"]
        assert labeling.ledger_label == "Packaging Purchase"
        assert labeling.card_label == "Packaging"
        assert labeling.expense_type == ExpenseType.PRODUCTS

    def test_supply_only_without_category(self, db_session):
        composition = PurchaseComposition.from_lines([], [object()], [])
        labeling = resolve_labeling(db_session, composition, supply_category_id=404)

        assert labeling.category.name == DEFAULT_CATEGORY_NAME
        assert labeling.ledger_label == LABEL_SUPPLIES
        assert labeling.expense_type == ExpenseType.PRODUCTS

    def test_default_category_created_once(self, db_session):
        composition = PurchaseComposition.from_lines([object()], [], [])
        first = resolve_labeling(db_session, composition).category
        second = resolve_labeling(db_session, composition).category

        assert first.id == second.id
        count = (
            db_session.query(ExpenseCategory)
            .filter(ExpenseCategory.name == DEFAULT_CATEGORY_NAME)
            .count()
        )
        assert count == 1


class TestCreateLedgerExpenses:
    def _labeling(self, session):
        composition = PurchaseComposition.from_lines([object()], [], [])
        return resolve_labeling(session, composition)

    def test_one_expense_per_installment(self, db_session, sample_supplier):
        expenses = create_ledger_expenses(
            db_session,
            labeling=self._labeling(db_session),
            supplier_id=sample_supplier["id"],
            supplier_name=sample_supplier["name"],
            purchase_number="COMP-202506-0001",
            total=Decimal("100.00"),
            installments=3,
            purchase_date=date(2025, 6, 3),
            due_date=date(2025, 7, 10),
            notes="Weekly order",
        )

        assert [e.amount for e in expenses] == [
            Decimal("33.33"),
            Decimal("33.33"),
            Decimal("33.34"),
        ]
        assert [e.due_date for e in expenses] == [
            date(2025, 7, 10),
            date(2025, 8, 10),
            date(2025, 9, 10),
        ]
        assert expenses[0].description == (
            f"{LABEL_RAW_MATERIALS} - Atacadao Distribuidora (1/3)"
        )
        assert expenses[2].notes == "Weekly order [Installment 3/3]"
        assert all(e.competence_date == date(2025, 6, 3) for e in expenses)
        assert all(e.status == PurchaseStatus.PENDING.value for e in expenses)
        assert all(e.purchase_id is None for e in expenses)
        assert db_session.query(LedgerExpense).count() == 3

    def test_single_installment_has_no_suffix(self, db_session, sample_supplier):
        expenses = create_ledger_expenses(
            db_session,
            labeling=self._labeling(db_session),
            supplier_id=sample_supplier["id"],
            supplier_name=sample_supplier["name"],
            purchase_number="COMP-202506-0002",
            total=Decimal("10.00"),
            installments=1,
            purchase_date=date(2025, 6, 3),
            due_date=date(2025, 6, 3),
            notes="Cash",
        )

        assert expenses[0].description == f"{LABEL_RAW_MATERIALS} - Atacadao Distribuidora"
        assert expenses[0].notes == "Cash"

    def test_credit_card_rejected(self, db_session, sample_supplier):
        with pytest.raises(ValidationError):
            create_ledger_expenses(
                db_session,
                labeling=self._labeling(db_session),
                supplier_id=sample_supplier["id"],
                supplier_name=sample_supplier["name"],
                purchase_number="COMP-202506-0003",
                total=Decimal("10.00"),
                installments=1,
                purchase_date=date(2025, 6, 3),
                due_date=date(2025, 6, 3),
                payment_method=PaymentMethod.CREDIT_CARD,
            )
