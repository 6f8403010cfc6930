"""Sequence Service - human-readable purchase numbers.

Purchase numbers have the form PREFIX-YYYYMM-NNNN, where the counter restarts
every calendar month:

    COMP-202506-0001, COMP-202506-0002, ... COMP-202507-0001

Generation reads the greatest number already issued for the month, proposes
the next counter and checks it is free. The check is advisory: the unique
constraint on purchases.purchase_number is what actually guarantees
uniqueness, and purchase_service retries the whole creation when it fires.
"""

import logging
import secrets
import string
import time
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from purchase_ledger.models import Purchase
from purchase_ledger.services.database import session_scope
from purchase_ledger.services.logging_utils import get_service_logger, log_operation
from purchase_ledger.utils.config import get_config
from purchase_ledger.utils.constants import MAX_NUMBER_ATTEMPTS, PURCHASE_COUNTER_WIDTH
from purchase_ledger.utils.datetime_utils import utc_now

logger = get_service_logger(__name__)

_BASE36_ALPHABET = string.digits + string.ascii_uppercase


def format_month_key(moment: datetime) -> str:
    """Return the YYYYMM key of a date or datetime."""
    return f"{moment.year:04d}{moment.month:02d}"


def parse_purchase_counter(number: str, month_key: str) -> Optional[int]:
    """
    Extract the monthly counter from a purchase number.

    Args:
        number: A purchase number such as "COMP-202506-0042"
        month_key: The YYYYMM key the number is expected to carry

    Returns:
        The counter (42 above), or None when the number is malformed
    """
    parts = number.rsplit("-", 2)
    if len(parts) != 3 or parts[1] != month_key:
        return None
    counter = parts[2]
    if not counter.isdigit():
        return None
    return int(counter)


def _epoch_millis() -> int:
    return int(time.time() * 1000)


def _random_base36(length: int = 4) -> str:
    return "".join(secrets.choice(_BASE36_ALPHABET) for _ in range(length))


def generate_purchase_number(
    session: Optional[Session] = None,
    now: Optional[datetime] = None,
    prefix: Optional[str] = None,
) -> str:
    """
    Reserve the next purchase number for the current month.

    Args:
        session: Optional database session (the caller's unit of work)
        now: Moment whose month keys the sequence (default: current UTC time)
        prefix: Number prefix (default: configured prefix, "COMP")

    Returns:
        A number not used by any persisted purchase at read time. When
        MAX_NUMBER_ATTEMPTS consecutive candidates are taken, a
        timestamp-suffixed number (PREFIX-YYYYMM-<millis><RANDOM>) is returned.

    Example:
        >>> generate_purchase_number(session, now=datetime(2025, 6, 3))
        'COMP-202506-0001'
    """
    if session is not None:
        return _generate_purchase_number_impl(session, now, prefix)
    with session_scope() as session:
        return _generate_purchase_number_impl(session, now, prefix)


def _generate_purchase_number_impl(
    session: Session,
    now: Optional[datetime],
    prefix: Optional[str],
) -> str:
    """Implementation of generate_purchase_number."""
    now = now or utc_now()
    prefix = prefix or get_config().purchase_number_prefix
    month_key = format_month_key(now)
    base = f"{prefix}-{month_key}-"

    last_number = (
        session.query(Purchase.purchase_number)
        .filter(Purchase.purchase_number.like(f"{base}%"))
        .order_by(Purchase.purchase_number.desc())
        .limit(1)
        .scalar()
    )

    if last_number is None:
        counter = 1
    else:
        last_counter = parse_purchase_counter(last_number, month_key)
        if last_counter is None:
            counter = _epoch_millis() % 10000
            log_operation(
                logger,
                operation="generate_purchase_number",
                outcome="malformed_previous_number",
                level=logging.WARNING,
                previous_number=last_number,
                fallback_counter=counter,
            )
        else:
            counter = last_counter + 1

    for _ in range(MAX_NUMBER_ATTEMPTS):
        candidate = f"{base}{counter:0{PURCHASE_COUNTER_WIDTH}d}"
        taken = (
            session.query(Purchase.id).filter(Purchase.purchase_number == candidate).first()
        )
        if taken is None:
            return candidate
        log_operation(
            logger,
            operation="generate_purchase_number",
            outcome="collision",
            level=logging.DEBUG,
            candidate=candidate,
        )
        counter += 1

    fallback = f"{base}{_epoch_millis()}{_random_base36()}"
    log_operation(
        logger,
        operation="generate_purchase_number",
        outcome="fallback_used",
        level=logging.WARNING,
        purchase_number=fallback,
        attempts=MAX_NUMBER_ATTEMPTS,
    )
    return fallback
