"""Bank Account Service - accounts and settlement transactions.

Paid, non-card purchases debit a bank account: the balance drops through a
store-level UPDATE and a BankTransaction records the balance right after
the debit.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from purchase_ledger.models import BankAccount, BankTransaction, TransactionType
from purchase_ledger.services.database import atomic_increment, session_scope
from purchase_ledger.services.exceptions import BankAccountNotFound, ValidationError
from purchase_ledger.services.logging_utils import get_service_logger, log_operation
from purchase_ledger.services.pricing_service import quantize_money, to_decimal
from purchase_ledger.utils.datetime_utils import utc_now

logger = get_service_logger(__name__)


def create_bank_account(
    name: str,
    balance: Any = 0,
    session: Optional[Session] = None,
) -> Dict[str, Any]:
    """Create a bank account.

    Args:
        name: Display name (required)
        balance: Opening balance
        session: Optional database session

    Returns:
        Created account as dictionary
    """
    if session is not None:
        return _create_bank_account_impl(name, balance, session)
    with session_scope() as session:
        return _create_bank_account_impl(name, balance, session)


def _create_bank_account_impl(name: str, balance: Any, session: Session) -> Dict[str, Any]:
    if not name or not name.strip():
        raise ValidationError("Bank account name is required")
    account = BankAccount(name=name.strip(), balance=quantize_money(to_decimal(balance, "balance")))
    session.add(account)
    session.flush()
    return account.to_dict()


def get_bank_account(
    bank_account_id: int, session: Optional[Session] = None
) -> Optional[Dict[str, Any]]:
    """Get a bank account by ID, or None if not found."""
    if session is not None:
        return _get_bank_account_impl(bank_account_id, session)
    with session_scope() as session:
        return _get_bank_account_impl(bank_account_id, session)


def _get_bank_account_impl(bank_account_id: int, session: Session) -> Optional[Dict[str, Any]]:
    account = session.get(BankAccount, bank_account_id)
    return account.to_dict() if account else None


def get_transactions(
    bank_account_id: int, session: Optional[Session] = None
) -> List[Dict[str, Any]]:
    """List an account's transactions, oldest first."""
    if session is not None:
        return _get_transactions_impl(bank_account_id, session)
    with session_scope() as session:
        return _get_transactions_impl(bank_account_id, session)


def _get_transactions_impl(bank_account_id: int, session: Session) -> List[Dict[str, Any]]:
    rows = (
        session.query(BankTransaction)
        .filter(BankTransaction.bank_account_id == bank_account_id)
        .order_by(BankTransaction.id)
        .all()
    )
    return [row.to_dict() for row in rows]


def debit_account(
    session: Session,
    *,
    bank_account_id: int,
    amount: Decimal,
    description: str,
    reference_id: Optional[int] = None,
    reference_type: Optional[str] = None,
    category: Optional[str] = None,
    moment: Optional[datetime] = None,
    created_by: Optional[str] = None,
) -> BankTransaction:
    """
    Debit an account and record the transaction.

    Args:
        session: Active database session (the caller's unit of work)
        bank_account_id: Account to debit
        amount: Amount to debit (> 0)
        description: Transaction description
        reference_id: Id of the originating record (may be back-filled later)
        reference_type: Kind of the originating record
        category: ExpenseType value of the originating record
        moment: When the money moved (default: now)
        created_by: Optional user identifier

    Returns:
        The flushed BankTransaction carrying balance_after

    Raises:
        BankAccountNotFound: If the account does not exist
    """
    amount = quantize_money(to_decimal(amount, "amount"))
    if amount <= 0:
        raise ValidationError(f"Debit amount must be positive, got {amount}")

    balance_after = atomic_increment(session, BankAccount, bank_account_id, "balance", -amount)
    if balance_after is None:
        raise BankAccountNotFound(bank_account_id)

    transaction = BankTransaction(
        bank_account_id=bank_account_id,
        transaction_type=TransactionType.EXPENSE.value,
        amount=amount,
        description=description,
        reference_id=reference_id,
        reference_type=reference_type,
        category=category,
        date=moment or utc_now(),
        balance_after=balance_after,
        created_by=created_by,
    )
    session.add(transaction)
    session.flush()

    log_operation(
        logger,
        operation="debit_account",
        outcome="debited",
        bank_account_id=bank_account_id,
        amount=str(amount),
        balance_after=str(balance_after),
        reference_type=reference_type,
    )
    return transaction


def reverse_transactions(session: Session, reference_type: str, reference_id: int) -> int:
    """
    Undo the debits recorded for a record.

    Each transaction's amount is credited back to its account at the store
    level and the transaction is deleted.

    Returns:
        Number of reversed transactions
    """
    transactions = (
        session.query(BankTransaction)
        .filter(
            BankTransaction.reference_type == reference_type,
            BankTransaction.reference_id == reference_id,
        )
        .all()
    )
    for transaction in transactions:
        if transaction.transaction_type == TransactionType.EXPENSE.value:
            delta = Decimal(str(transaction.amount))
        else:
            delta = -Decimal(str(transaction.amount))
        atomic_increment(session, BankAccount, transaction.bank_account_id, "balance", delta)
        session.delete(transaction)

    if transactions:
        session.flush()
        log_operation(
            logger,
            operation="reverse_transactions",
            outcome="reversed",
            reference_type=reference_type,
            reference_id=reference_id,
            count=len(transactions),
        )
    return len(transactions)
