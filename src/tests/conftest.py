"""Pytest configuration and fixtures for service layer tests."""

import pytest
from sqlalchemy.orm import sessionmaker, scoped_session

from purchase_ledger.models.base import Base
from purchase_ledger.services import cost_events
from purchase_ledger.services.database import create_database_engine
from purchase_ledger.utils.config import reset_config


def _install_session_factory(engine):
    """Create tables and route session_scope() to a scoped session on engine."""
    import purchase_ledger.services.database as db_module

    Base.metadata.create_all(engine)
    Session = scoped_session(sessionmaker(bind=engine, expire_on_commit=False))

    original_get_session_factory = db_module.get_session_factory
    db_module.get_session_factory = lambda: Session

    def restore():
        Session.remove()
        Base.metadata.drop_all(engine)
        engine.dispose()
        db_module.get_session_factory = original_get_session_factory

    return Session, restore


@pytest.fixture(scope="function")
def test_db():
    """Provide a clean in-memory database for each test function.

    Uses the application's engine factory so SQLite pragmas and SAVEPOINT
    handling match production.
    """
    engine = create_database_engine("sqlite:///:memory:")
    Session, restore = _install_session_factory(engine)

    yield Session

    restore()


@pytest.fixture(scope="function")
def file_db(tmp_path):
    """Provide a file-backed database, needed when several threads write."""
    engine = create_database_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    Session, restore = _install_session_factory(engine)

    yield Session

    restore()


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch):
    """Keep environment overrides from leaking between tests."""
    for name in (
        "PURCHASE_LEDGER_ENV",
        "PURCHASE_LEDGER_DATABASE_URL",
        "PURCHASE_LEDGER_NUMBER_PREFIX",
        "PURCHASE_LEDGER_CREATE_TIMEOUT",
    ):
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture(autouse=True)
def restore_cost_handlers():
    """Drop handlers a test subscribed."""
    original = list(cost_events._handlers)
    yield
    cost_events._handlers[:] = original


@pytest.fixture
def db_session(test_db):
    """Provide a database session for tests."""
    return test_db()


@pytest.fixture
def sample_supplier(test_db):
    """Provide a sample supplier for tests."""
    from purchase_ledger.services import supplier_service

    return supplier_service.create_supplier(
        name="Atacadao Distribuidora",
        document="12.345.678/0001-90",
        email="vendas@atacadao.example",
    )


@pytest.fixture
def sample_raw_material(test_db):
    """Raw material with 5 units on hand at 4.00 each."""
    from purchase_ledger.models import InventoryKind
    from purchase_ledger.services import inventory_service

    return inventory_service.create_item(
        InventoryKind.RAW_MATERIAL,
        name="Wheat Flour",
        unit="kg",
        current_stock="5",
        cost_per_unit="4.00",
    )


@pytest.fixture
def sample_supply(test_db):
    """Packaging supply with no stock."""
    from purchase_ledger.models import InventoryKind
    from purchase_ledger.services import inventory_service

    return inventory_service.create_item(
        InventoryKind.SUPPLY,
        name="Kraft Box",
        unit="each",
        cost_per_unit="1.50",
        category="Packaging",
    )


@pytest.fixture
def sample_finished_good(test_db):
    """Finished good bought for resale."""
    from purchase_ledger.models import InventoryKind
    from purchase_ledger.services import inventory_service

    return inventory_service.create_item(
        InventoryKind.FINISHED_GOOD,
        name="Chocolate Bar",
        unit="each",
        cost_per_unit="2.00",
        sku="CHOC-001",
    )


@pytest.fixture
def sample_card(test_db):
    """Card closing on the 20th, due on the 10th, limit 1000.00."""
    from purchase_ledger.services import credit_card_service

    return credit_card_service.create_credit_card(
        name="Business Visa",
        credit_limit="1000.00",
        closing_day=20,
        due_day=10,
    )


@pytest.fixture
def sample_bank_account(test_db):
    """Checking account holding 1000.00."""
    from purchase_ledger.services import bank_account_service

    return bank_account_service.create_bank_account(name="Main Checking", balance="1000.00")
