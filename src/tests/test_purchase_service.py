"""Tests for the purchase transaction orchestrator and purchase lifecycle.

Covers:
- Direct-ledger and credit-card payment routing
- Inventory and cost basis side effects
- Validation before any write
- Atomic rollback on failure in any phase
- Purchase number collisions and retries
- Time bound on creation
- Concurrent creation producing distinct numbers
- mark_purchase_paid / delete_purchase
"""

import itertools
import logging
import threading
from contextlib import contextmanager
from datetime import date
from decimal import Decimal

import pytest

from purchase_ledger.models import (
    BankAccount,
    BankTransaction,
    CostHistory,
    CreditCard,
    CreditCardExpense,
    CreditCardInvoice,
    ExpenseType,
    InventoryKind,
    LedgerExpense,
    PaymentMethod,
    Purchase,
    PurchaseStatus,
    RawMaterial,
    StockMovement,
    Supply,
)
from purchase_ledger.services import (
    cost_events,
    credit_card_service,
    expense_category_service,
    purchase_service,
)
from purchase_ledger.services.exceptions import (
    BankAccountNotFound,
    CreditCardNotFound,
    DuplicateFinancialLinesError,
    InventoryItemNotFound,
    PurchaseNotFound,
    PurchaseNumberConflictError,
    PurchaseStateError,
    PurchaseTimeoutError,
    StorageError,
    SupplierNotFoundError,
    ValidationError,
)
from purchase_ledger.services.pricing_service import LineItemInput
from purchase_ledger.services.purchase_service import (
    PurchaseCreationState,
    PurchaseRequest,
    create_purchase,
    delete_purchase,
    get_purchase,
    get_purchase_by_number,
    list_purchases,
    mark_purchase_paid,
)
from purchase_ledger.services.sequence_service import format_month_key
from purchase_ledger.utils.constants import LABEL_RAW_MATERIALS
from purchase_ledger.utils.datetime_utils import utc_now


def _boleto_request(supplier, raw_material, **overrides):
    """10 units at 5.00 plus 2.00 tax, two installments: 52.00 total."""
    fields = dict(
        supplier_id=supplier["id"],
        payment_method=PaymentMethod.BOLETO,
        raw_material_lines=[LineItemInput(raw_material["id"], 10, "5.00")],
        purchase_date=date(2025, 6, 3),
        due_date=date(2025, 7, 10),
        installments=2,
        tax_amount="2.00",
    )
    fields.update(overrides)
    return PurchaseRequest(**fields)


def _card_request(supplier, raw_material, card, **overrides):
    fields = dict(
        supplier_id=supplier["id"],
        payment_method=PaymentMethod.CREDIT_CARD,
        credit_card_id=card["id"],
        raw_material_lines=[LineItemInput(raw_material["id"], 10, "5.00")],
        purchase_date=date(2025, 6, 25),
        due_date=date(2025, 7, 10),
        installments=2,
        tax_amount="2.00",
    )
    fields.update(overrides)
    return PurchaseRequest(**fields)


def _counts(session):
    return {
        "purchases": session.query(Purchase).count(),
        "ledger": session.query(LedgerExpense).count(),
        "card_lines": session.query(CreditCardExpense).count(),
        "history": session.query(CostHistory).count(),
        "movements": session.query(StockMovement).count(),
        "bank": session.query(BankTransaction).count(),
    }


EMPTY = {"purchases": 0, "ledger": 0, "card_lines": 0, "history": 0, "movements": 0, "bank": 0}


# ============================================================================
# Direct ledger path
# ============================================================================


class TestCreateLedgerPurchase:
    def test_pending_boleto_purchase(self, db_session, sample_supplier, sample_raw_material):
        purchase = create_purchase(_boleto_request(sample_supplier, sample_raw_material))

        assert purchase.id is not None
        assert purchase.purchase_number == f"COMP-{format_month_key(utc_now())}-0001"
        assert purchase.raw_materials_total == Decimal("50.00")
        assert purchase.tax_amount == Decimal("2.00")
        assert purchase.total_amount == Decimal("52.00")
        assert purchase.status == PurchaseStatus.PENDING.value
        assert purchase.payment_date is None
        assert purchase.expense_type == ExpenseType.RAW_MATERIALS.value
        assert len(purchase.lines) == 1
        assert purchase.lines[0].item_id == sample_raw_material["id"]
        assert purchase.lines[0].total_price == Decimal("50.00")

        expenses = (
            db_session.query(LedgerExpense).order_by(LedgerExpense.installment_number).all()
        )
        assert [e.amount for e in expenses] == [Decimal("26.00"), Decimal("26.00")]
        assert [e.due_date for e in expenses] == [date(2025, 7, 10), date(2025, 8, 10)]
        assert all(e.purchase_id == purchase.id for e in expenses)
        assert all(e.purchase_number == purchase.purchase_number for e in expenses)
        assert expenses[0].description == f"{LABEL_RAW_MATERIALS} - Atacadao Distribuidora (1/2)"
        assert db_session.get(Purchase, purchase.id).expense_id == expenses[0].id
        assert db_session.query(CreditCardExpense).count() == 0

        item = db_session.get(RawMaterial, sample_raw_material["id"])
        assert item.current_stock == Decimal("15")
        assert item.cost_per_unit == Decimal("5.00")

        history = db_session.query(CostHistory).one()
        assert history.purchase_id == purchase.id
        assert history.old_cost == Decimal("4.00")

    def test_lower_price_leaves_cost_untouched(
        self, db_session, sample_supplier, sample_raw_material
    ):
        request = _boleto_request(
            sample_supplier,
            sample_raw_material,
            raw_material_lines=[LineItemInput(sample_raw_material["id"], 10, "3.00")],
        )
        create_purchase(request)

        item = db_session.get(RawMaterial, sample_raw_material["id"])
        assert item.cost_per_unit == Decimal("4.00")
        assert item.current_stock == Decimal("15")
        assert db_session.query(CostHistory).count() == 0

    def test_paid_with_bank_account_settles_immediately(
        self, db_session, sample_supplier, sample_raw_material, sample_bank_account
    ):
        purchase = create_purchase(
            _boleto_request(
                sample_supplier,
                sample_raw_material,
                payment_method=PaymentMethod.PIX,
                status=PurchaseStatus.PAID,
                bank_account_id=sample_bank_account["id"],
                installments=1,
                created_by="maria",
            )
        )

        assert purchase.status == PurchaseStatus.PAID.value
        assert purchase.payment_date is not None
        assert purchase.paid_by == "maria"

        account = db_session.get(BankAccount, sample_bank_account["id"])
        assert account.balance == Decimal("948.00")
        transaction = db_session.query(BankTransaction).one()
        assert transaction.reference_id == purchase.id
        assert transaction.reference_type == "PURCHASE"
        assert transaction.balance_after == Decimal("948.00")

        expense = db_session.query(LedgerExpense).one()
        assert expense.status == PurchaseStatus.PAID.value
        assert expense.payment_date is not None

    def test_paid_zero_total_moves_no_money(
        self, db_session, sample_supplier, sample_raw_material, sample_bank_account
    ):
        purchase = create_purchase(
            _boleto_request(
                sample_supplier,
                sample_raw_material,
                raw_material_lines=[LineItemInput(sample_raw_material["id"], 10, "0")],
                tax_amount="0",
                payment_method=PaymentMethod.PIX,
                status=PurchaseStatus.PAID,
                bank_account_id=sample_bank_account["id"],
                installments=1,
            )
        )

        assert purchase.total_amount == Decimal("0.00")
        assert purchase.status == PurchaseStatus.PAID.value
        assert db_session.query(BankTransaction).count() == 0
        account = db_session.get(BankAccount, sample_bank_account["id"])
        assert account.balance == Decimal("1000.00")
        item = db_session.get(RawMaterial, sample_raw_material["id"])
        assert item.current_stock == Decimal("15")
        assert item.cost_per_unit == Decimal("4.00")

    def test_paid_without_bank_account_creates_no_transaction(
        self, db_session, sample_supplier, sample_raw_material
    ):
        create_purchase(
            _boleto_request(
                sample_supplier,
                sample_raw_material,
                payment_method=PaymentMethod.CASH,
                status=PurchaseStatus.PAID,
            )
        )
        assert db_session.query(BankTransaction).count() == 0

    def test_explicit_installment_due_dates(
        self, db_session, sample_supplier, sample_raw_material
    ):
        create_purchase(
            _boleto_request(
                sample_supplier,
                sample_raw_material,
                installment_due_dates=["2025-06-30", "2025-07-30"],
            )
        )
        due_dates = [
            e.due_date
            for e in db_session.query(LedgerExpense).order_by(LedgerExpense.installment_number)
        ]
        assert due_dates == [date(2025, 6, 30), date(2025, 7, 30)]

    def test_supply_purchase_with_category(self, db_session, sample_supplier, sample_supply):
        category = expense_category_service.create_category("Packaging", ExpenseType.PRODUCTS)

        purchase = create_purchase(
            PurchaseRequest(
                supplier_id=sample_supplier["id"],
                payment_method=PaymentMethod.BANK_TRANSFER,
                supply_lines=[LineItemInput(sample_supply["id"], 100, "1.20")],
                supply_category_id=category["id"],
                due_date=date(2025, 7, 1),
            )
        )

        assert purchase.supplies_total == Decimal("120.00")
        assert purchase.expense_type == ExpenseType.PRODUCTS.value
        expense = db_session.query(LedgerExpense).one()
        assert expense.category_id == category["id"]
        assert expense.description == "Packaging Purchase - Atacadao Distribuidora"

        movement = db_session.query(StockMovement).one()
        assert movement.reference == purchase.id
        assert movement.direction == "IN"
        assert db_session.get(Supply, sample_supply["id"]).current_stock == Decimal("100")

    def test_mixed_purchase(
        self, db_session, sample_supplier, sample_raw_material, sample_supply, sample_finished_good
    ):
        purchase = create_purchase(
            PurchaseRequest(
                supplier_id=sample_supplier["id"],
                payment_method=PaymentMethod.BOLETO,
                raw_material_lines=[LineItemInput(sample_raw_material["id"], 2, "4.00")],
                supply_lines=[LineItemInput(sample_supply["id"], 10, "1.00")],
                finished_good_lines=[LineItemInput(sample_finished_good["id"], 3, "2.50")],
                due_date=date(2025, 7, 1),
            )
        )

        assert purchase.total_amount == Decimal("25.50")
        assert {line.line_kind for line in purchase.lines} == {
            "raw_material",
            "supply",
            "finished_good",
        }
        assert db_session.query(LedgerExpense).one().description.startswith("Mixed Purchase")
        assert db_session.query(StockMovement).count() == 2

    def test_numbers_increment(self, test_db, sample_supplier, sample_raw_material):
        first = create_purchase(_boleto_request(sample_supplier, sample_raw_material))
        second = create_purchase(_boleto_request(sample_supplier, sample_raw_material))
        assert first.purchase_number.endswith("-0001")
        assert second.purchase_number.endswith("-0002")

    def test_joins_caller_session(self, db_session, sample_supplier, sample_raw_material):
        purchase = create_purchase(
            _boleto_request(sample_supplier, sample_raw_material), session=db_session
        )
        db_session.rollback()

        assert db_session.get(Purchase, purchase.id) is None
        assert _counts(db_session) == EMPTY


# ============================================================================
# Credit card path
# ============================================================================


class TestCreateCardPurchase:
    def test_card_purchase_after_closing_day(
        self, db_session, sample_supplier, sample_raw_material, sample_card
    ):
        purchase = create_purchase(
            _card_request(sample_supplier, sample_raw_material, sample_card)
        )

        assert purchase.credit_card_id == sample_card["id"]
        assert purchase.expense_id is None
        assert db_session.query(LedgerExpense).count() == 0

        lines = (
            db_session.query(CreditCardExpense)
            .order_by(CreditCardExpense.installment_number)
            .all()
        )
        assert [line.amount for line in lines] == [Decimal("26.00"), Decimal("26.00")]
        assert [line.invoice.reference_month for line in lines] == [
            date(2025, 7, 1),
            date(2025, 8, 1),
        ]
        assert all(line.reference_number == purchase.purchase_number for line in lines)
        assert lines[0].description == (
            f"Purchase Atacadao Distribuidora {purchase.purchase_number} (1/2)"
        )

        card = db_session.get(CreditCard, sample_card["id"])
        assert card.available_limit == Decimal("948.00")

        invoices = db_session.query(CreditCardInvoice).order_by(CreditCardInvoice.id).all()
        assert [invoice.total_amount for invoice in invoices] == [
            Decimal("26.00"),
            Decimal("26.00"),
        ]
        assert invoices[0].due_date == date(2025, 8, 10)

    def test_paid_card_purchase_does_not_touch_bank(
        self, db_session, sample_supplier, sample_raw_material, sample_card, sample_bank_account
    ):
        create_purchase(
            _card_request(
                sample_supplier,
                sample_raw_material,
                sample_card,
                status=PurchaseStatus.PAID,
                bank_account_id=sample_bank_account["id"],
            )
        )

        assert db_session.query(BankTransaction).count() == 0
        account = db_session.get(BankAccount, sample_bank_account["id"])
        assert account.balance == Decimal("1000.00")

    def test_duplicate_card_lines_conflict(
        self, db_session, sample_supplier, sample_raw_material, sample_card
    ):
        number = f"COMP-{format_month_key(utc_now())}-0001"
        card = db_session.get(CreditCard, sample_card["id"])
        invoice = credit_card_service.get_or_create_invoice(db_session, card, date(2025, 7, 1))
        category = expense_category_service.create_category("Stray", session=db_session)
        db_session.add(
            CreditCardExpense(
                credit_card_id=card.id,
                invoice_id=invoice.id,
                description="Leftover line",
                amount=Decimal("1.00"),
                purchase_date=date(2025, 6, 25),
                category_id=category["id"],
                reference_number=number,
                expense_type="RAW_MATERIALS",
            )
        )
        db_session.commit()

        with pytest.raises(DuplicateFinancialLinesError):
            create_purchase(_card_request(sample_supplier, sample_raw_material, sample_card))

        assert db_session.query(Purchase).count() == 0
        assert db_session.query(CreditCardExpense).count() == 1
        assert db_session.get(CreditCard, sample_card["id"]).available_limit == Decimal("1000.00")
        item = db_session.get(RawMaterial, sample_raw_material["id"])
        assert item.current_stock == Decimal("5")

    def test_closed_invoice_blocks_purchase(
        self, db_session, sample_supplier, sample_raw_material, sample_card
    ):
        card = db_session.get(CreditCard, sample_card["id"])
        invoice = credit_card_service.get_or_create_invoice(db_session, card, date(2025, 8, 1))
        db_session.commit()
        credit_card_service.close_invoice(invoice.id)

        with pytest.raises(PurchaseStateError):
            create_purchase(_card_request(sample_supplier, sample_raw_material, sample_card))

        assert db_session.query(CreditCardExpense).count() == 0
        assert db_session.get(CreditCard, sample_card["id"]).available_limit == Decimal("1000.00")


# ============================================================================
# Validation and rollback
# ============================================================================


class TestValidation:
    def test_empty_lines_rejected_without_writes(self, db_session, sample_supplier):
        request = PurchaseRequest(
            supplier_id=sample_supplier["id"],
            payment_method=PaymentMethod.BOLETO,
            due_date=date(2025, 7, 10),
        )

        with pytest.raises(ValidationError) as exc_info:
            create_purchase(request)

        assert "At least one line item is required" in exc_info.value.errors
        assert _counts(db_session) == EMPTY

    def test_all_errors_reported_together(self, test_db):
        request = PurchaseRequest(
            supplier_id=None,
            payment_method="CHEQUE",
            raw_material_lines=[LineItemInput(1, 1, "1.00")],
            installments=0,
        )

        with pytest.raises(ValidationError) as exc_info:
            create_purchase(request)

        errors = exc_info.value.errors
        assert "Supplier is required" in errors
        assert "Due date is required" in errors
        assert any("Unknown payment method" in e for e in errors)
        assert any("Installment count" in e for e in errors)

    def test_card_required_for_card_payment(self, sample_supplier, sample_raw_material):
        request = _boleto_request(
            sample_supplier, sample_raw_material, payment_method=PaymentMethod.CREDIT_CARD
        )
        with pytest.raises(ValidationError):
            create_purchase(request)

    def test_invalid_line_rejected(self, db_session, sample_supplier, sample_raw_material):
        request = _boleto_request(
            sample_supplier,
            sample_raw_material,
            raw_material_lines=[LineItemInput(sample_raw_material["id"], -1, "5.00")],
        )
        with pytest.raises(ValidationError):
            create_purchase(request)
        assert _counts(db_session) == EMPTY

    def test_unknown_supplier(self, db_session, sample_raw_material):
        request = _boleto_request({"id": 404}, sample_raw_material)
        with pytest.raises(SupplierNotFoundError):
            create_purchase(request)

    def test_unknown_card(self, sample_supplier, sample_raw_material):
        request = _card_request(sample_supplier, sample_raw_material, {"id": 404})
        with pytest.raises(CreditCardNotFound):
            create_purchase(request)

    def test_unknown_bank_account(self, sample_supplier, sample_raw_material):
        request = _boleto_request(sample_supplier, sample_raw_material, bank_account_id=404)
        with pytest.raises(BankAccountNotFound):
            create_purchase(request)


class TestAtomicity:
    def test_missing_item_rolls_back_everything(
        self, db_session, sample_supplier, sample_raw_material, sample_card
    ):
        request = _card_request(
            sample_supplier,
            sample_raw_material,
            sample_card,
            raw_material_lines=[
                LineItemInput(sample_raw_material["id"], 10, "5.00"),
                LineItemInput(404, 1, "1.00"),
            ],
        )

        with pytest.raises(InventoryItemNotFound):
            create_purchase(request)

        assert _counts(db_session) == EMPTY
        item = db_session.get(RawMaterial, sample_raw_material["id"])
        assert item.current_stock == Decimal("5")
        assert item.cost_per_unit == Decimal("4.00")
        card = db_session.get(CreditCard, sample_card["id"])
        assert card.available_limit == Decimal("1000.00")
        assert db_session.query(CreditCardInvoice).count() == 0

    def test_failing_cost_handler_rolls_back(
        self, db_session, sample_supplier, sample_raw_material
    ):
        def explode(session, event):
            raise RuntimeError("downstream failure")

        cost_events.subscribe(explode)

        with pytest.raises(RuntimeError):
            create_purchase(_boleto_request(sample_supplier, sample_raw_material))

        assert _counts(db_session) == EMPTY
        assert db_session.get(RawMaterial, sample_raw_material["id"]).cost_per_unit == Decimal(
            "4.00"
        )

    def test_failure_logged_as_rollback(self, sample_supplier, caplog):
        request = PurchaseRequest(
            supplier_id=sample_supplier["id"],
            payment_method=PaymentMethod.BOLETO,
            due_date=date(2025, 7, 10),
        )

        with caplog.at_level(logging.WARNING):
            with pytest.raises(ValidationError):
                create_purchase(request)

        record = next(r for r in caplog.records if r.getMessage() == "create_purchase: rolled_back")
        assert record.state == PurchaseCreationState.FAILED.value
        assert record.failed_in == PurchaseCreationState.VALIDATING.value

    def test_database_failure_becomes_storage_error(
        self, db_session, sample_supplier, sample_raw_material, monkeypatch
    ):
        from sqlalchemy.exc import OperationalError

        def locked(*args, **kwargs):
            raise OperationalError("UPDATE raw_materials", {}, Exception("database is locked"))

        monkeypatch.setattr(purchase_service, "apply_purchase_lines", locked)

        with pytest.raises(StorageError) as exc_info:
            create_purchase(_boleto_request(sample_supplier, sample_raw_material))

        assert exc_info.value.retryable
        assert _counts(db_session) == EMPTY


# ============================================================================
# Purchase numbers and time bound
# ============================================================================


class TestNumberCollisions:
    def test_retry_with_next_number(
        self, db_session, sample_supplier, sample_raw_material, monkeypatch, caplog
    ):
        create_purchase(_boleto_request(sample_supplier, sample_raw_material))
        taken = db_session.query(Purchase.purchase_number).scalar()

        candidates = iter([taken, "COMP-TEST-0002"])
        monkeypatch.setattr(
            purchase_service, "generate_purchase_number", lambda session: next(candidates)
        )

        with caplog.at_level(logging.WARNING):
            purchase = create_purchase(_boleto_request(sample_supplier, sample_raw_material))

        assert purchase.purchase_number == "COMP-TEST-0002"
        assert "create_purchase: purchase_number_collision" in caplog.text
        # The failed attempt left nothing behind
        assert db_session.query(LedgerExpense).count() == 4
        item = db_session.get(RawMaterial, sample_raw_material["id"])
        assert item.current_stock == Decimal("25")

    def test_gives_up_after_max_attempts(
        self, db_session, sample_supplier, sample_raw_material, monkeypatch
    ):
        create_purchase(_boleto_request(sample_supplier, sample_raw_material))
        taken = db_session.query(Purchase.purchase_number).scalar()
        monkeypatch.setattr(purchase_service, "generate_purchase_number", lambda session: taken)

        with pytest.raises(PurchaseNumberConflictError) as exc_info:
            create_purchase(_boleto_request(sample_supplier, sample_raw_material))

        assert exc_info.value.attempts == 3
        assert db_session.query(Purchase).count() == 1
        assert db_session.query(LedgerExpense).count() == 2


class TestTimeBound:
    def test_timeout_rolls_back(
        self, db_session, sample_supplier, sample_raw_material, monkeypatch
    ):
        ticks = itertools.count(0, 100)
        monkeypatch.setattr(purchase_service.time, "monotonic", lambda: next(ticks))

        with pytest.raises(PurchaseTimeoutError) as exc_info:
            create_purchase(
                _boleto_request(sample_supplier, sample_raw_material), timeout_seconds=1
            )

        assert exc_info.value.retryable
        assert _counts(db_session) == EMPTY

    def test_configured_timeout_applies(
        self, db_session, sample_supplier, sample_raw_material, monkeypatch
    ):
        monkeypatch.setenv("PURCHASE_LEDGER_CREATE_TIMEOUT", "1")
        ticks = itertools.count(0, 100)
        monkeypatch.setattr(purchase_service.time, "monotonic", lambda: next(ticks))

        with pytest.raises(PurchaseTimeoutError):
            create_purchase(_boleto_request(sample_supplier, sample_raw_material))

    def test_generous_timeout_commits(self, sample_supplier, sample_raw_material):
        purchase = create_purchase(
            _boleto_request(sample_supplier, sample_raw_material), timeout_seconds=60
        )
        assert purchase.id is not None

    def test_deadline_passing_after_commit_keeps_purchase(
        self, db_session, sample_supplier, sample_raw_material, monkeypatch
    ):
        committed = []
        real_scope = purchase_service.session_scope

        @contextmanager
        def flagging_scope():
            with real_scope() as session:
                yield session
            committed.append(True)

        monkeypatch.setattr(purchase_service, "session_scope", flagging_scope)
        monkeypatch.setattr(
            purchase_service.time, "monotonic", lambda: 1000 if committed else 0
        )

        purchase = create_purchase(
            _boleto_request(sample_supplier, sample_raw_material), timeout_seconds=5
        )

        assert committed == [True]
        assert db_session.query(Purchase).one().id == purchase.id
        assert db_session.query(LedgerExpense).count() == 2


class TestConcurrentCreation:
    def test_parallel_creations_get_distinct_numbers(self, file_db):
        from purchase_ledger.models import InventoryKind
        from purchase_ledger.services import inventory_service, supplier_service

        supplier = supplier_service.create_supplier(name="Parallel Supplier")
        item = inventory_service.create_item(InventoryKind.RAW_MATERIAL, "Yeast")

        numbers = []
        errors = []

        def worker():
            try:
                purchase = create_purchase(
                    PurchaseRequest(
                        supplier_id=supplier["id"],
                        payment_method=PaymentMethod.CASH,
                        raw_material_lines=[LineItemInput(item["id"], 1, "2.00")],
                        due_date=date(2025, 7, 1),
                    )
                )
                numbers.append(purchase.purchase_number)
            except Exception as exc:  # noqa: BLE001
                errors.append(exc)
            finally:
                file_db.remove()

        threads = [threading.Thread(target=worker) for _ in range(5)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert len(numbers) == 5
        assert len(set(numbers)) == 5

        session = file_db()
        stock = session.get(RawMaterial, item["id"]).current_stock
        assert stock == Decimal("5")


# ============================================================================
# Lifecycle
# ============================================================================


class TestLookup:
    def test_get_purchase_includes_lines(self, sample_supplier, sample_raw_material):
        purchase = create_purchase(_boleto_request(sample_supplier, sample_raw_material))

        result = get_purchase(purchase.id)

        assert result["purchase_number"] == purchase.purchase_number
        assert result["supplier_name"] == "Atacadao Distribuidora"
        assert result["total_amount"] == "52.00"
        assert result["lines"][0]["item_id"] == sample_raw_material["id"]
        assert result["lines"][0]["line_kind"] == InventoryKind.RAW_MATERIAL.value

    def test_get_by_number(self, sample_supplier, sample_raw_material):
        purchase = create_purchase(_boleto_request(sample_supplier, sample_raw_material))
        assert get_purchase_by_number(purchase.purchase_number)["id"] == purchase.id

    def test_missing_purchase(self, test_db):
        with pytest.raises(PurchaseNotFound):
            get_purchase(404)
        with pytest.raises(PurchaseNotFound):
            get_purchase_by_number("COMP-000000-0000")

    def test_list_filters(self, sample_supplier, sample_raw_material):
        create_purchase(
            _boleto_request(sample_supplier, sample_raw_material, purchase_date=date(2025, 5, 2))
        )
        create_purchase(
            _boleto_request(
                sample_supplier,
                sample_raw_material,
                purchase_date=date(2025, 6, 2),
                payment_method=PaymentMethod.CASH,
                status=PurchaseStatus.PAID,
            )
        )

        assert [p["purchase_date"] for p in list_purchases()] == ["2025-06-02", "2025-05-02"]
        assert len(list_purchases(status=PurchaseStatus.PENDING)) == 1
        assert len(list_purchases(start_date=date(2025, 6, 1))) == 1
        assert len(list_purchases(end_date="2025-05-31")) == 1
        assert len(list_purchases(supplier_id=404)) == 0
        assert len(list_purchases(limit=1)) == 1


class TestMarkPurchasePaid:
    def test_settles_pending_purchase(
        self, db_session, sample_supplier, sample_raw_material, sample_bank_account
    ):
        purchase = create_purchase(_boleto_request(sample_supplier, sample_raw_material))

        result = mark_purchase_paid(
            purchase.id, bank_account_id=sample_bank_account["id"], paid_by="joao"
        )

        assert result["status"] == PurchaseStatus.PAID.value
        assert result["paid_by"] == "joao"
        assert result["payment_date"] is not None
        account = db_session.get(BankAccount, sample_bank_account["id"])
        assert account.balance == Decimal("948.00")
        assert db_session.query(BankTransaction).one().reference_id == purchase.id
        statuses = {e.status for e in db_session.query(LedgerExpense).all()}
        assert statuses == {PurchaseStatus.PAID.value}

    def test_only_once(self, sample_supplier, sample_raw_material, sample_bank_account):
        purchase = create_purchase(_boleto_request(sample_supplier, sample_raw_material))
        mark_purchase_paid(purchase.id, bank_account_id=sample_bank_account["id"])

        with pytest.raises(PurchaseStateError):
            mark_purchase_paid(purchase.id, bank_account_id=sample_bank_account["id"])

    def test_zero_total_settles_without_debit(
        self, db_session, sample_supplier, sample_raw_material, sample_bank_account
    ):
        purchase = create_purchase(
            _boleto_request(
                sample_supplier,
                sample_raw_material,
                raw_material_lines=[LineItemInput(sample_raw_material["id"], 10, "0")],
                tax_amount="0",
            )
        )

        result = mark_purchase_paid(purchase.id, bank_account_id=sample_bank_account["id"])

        assert result["status"] == PurchaseStatus.PAID.value
        assert db_session.query(BankTransaction).count() == 0
        statuses = {e.status for e in db_session.query(LedgerExpense).all()}
        assert statuses == {PurchaseStatus.PAID.value}

    def test_card_purchase_moves_no_money(
        self, db_session, sample_supplier, sample_raw_material, sample_card, sample_bank_account
    ):
        purchase = create_purchase(
            _card_request(sample_supplier, sample_raw_material, sample_card)
        )

        mark_purchase_paid(purchase.id, bank_account_id=sample_bank_account["id"])

        assert db_session.query(BankTransaction).count() == 0

    def test_missing_purchase(self, test_db):
        with pytest.raises(PurchaseNotFound):
            mark_purchase_paid(404)


class TestDeletePurchase:
    def test_undoes_ledger_purchase(self, db_session, sample_supplier, sample_supply):
        purchase = create_purchase(
            PurchaseRequest(
                supplier_id=sample_supplier["id"],
                payment_method=PaymentMethod.BOLETO,
                supply_lines=[LineItemInput(sample_supply["id"], 40, "2.00")],
                due_date=date(2025, 7, 1),
                installments=2,
            )
        )

        assert delete_purchase(purchase.id) is True

        assert db_session.query(Purchase).count() == 0
        assert db_session.query(LedgerExpense).count() == 0
        supply = db_session.get(Supply, sample_supply["id"])
        assert supply.current_stock == Decimal("0")
        # Cost basis is never lowered
        assert supply.cost_per_unit == Decimal("2.00")
        reversal = (
            db_session.query(StockMovement).filter(StockMovement.direction == "OUT").one()
        )
        assert reversal.reason == "PURCHASE_REVERSAL"
        assert reversal.quantity == Decimal("40")
        assert db_session.query(CostHistory).one().purchase_id is None

    def test_undoes_card_purchase(
        self, db_session, sample_supplier, sample_raw_material, sample_card
    ):
        purchase = create_purchase(
            _card_request(sample_supplier, sample_raw_material, sample_card)
        )

        delete_purchase(purchase.id)

        assert db_session.query(CreditCardExpense).count() == 0
        assert db_session.get(CreditCard, sample_card["id"]).available_limit == Decimal("1000.00")
        totals = {i.total_amount for i in db_session.query(CreditCardInvoice).all()}
        assert totals == {Decimal("0.00")}

    def test_paid_purchase_cannot_be_deleted(self, sample_supplier, sample_raw_material):
        purchase = create_purchase(
            _boleto_request(
                sample_supplier,
                sample_raw_material,
                payment_method=PaymentMethod.CASH,
                status=PurchaseStatus.PAID,
            )
        )

        with pytest.raises(PurchaseStateError):
            delete_purchase(purchase.id)

    def test_missing_purchase(self, test_db):
        with pytest.raises(PurchaseNotFound):
            delete_purchase(404)


class TestCreationLogging:
    def test_commit_and_transitions_logged(self, sample_supplier, sample_raw_material, caplog):
        with caplog.at_level(logging.DEBUG, logger="purchase_ledger.services"):
            purchase = create_purchase(_boleto_request(sample_supplier, sample_raw_material))

        messages = [r.getMessage() for r in caplog.records]
        states = [r.state for r in caplog.records if hasattr(r, "state")]
        assert states == [
            "PRICING",
            "PAYMENT_ROUTING",
            "INVENTORY_MUTATING",
            "BANK_SETTLING",
            "COMMITTED",
        ]
        committed = next(
            r for r in caplog.records if r.getMessage() == "create_purchase: committed"
        )
        assert committed.purchase_number == purchase.purchase_number
        assert "apply_purchase_line: cost_raised" in messages
