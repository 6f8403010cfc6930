"""Service layer logging utilities.

Provides structured logging functions for service operations, enabling
consistent log format and context across purchasing, card and inventory
operations.

Usage:
    from purchase_ledger.services.logging_utils import get_service_logger, log_operation

    logger = get_service_logger(__name__)

    # Log successful operation
    log_operation(
        logger,
        operation="create_purchase",
        outcome="committed",
        purchase_id=123,
        purchase_number="COMP-202506-0001",
    )

    # Log a warning that does not block the operation
    log_operation(
        logger,
        operation="charge_credit_card",
        outcome="credit_limit_exceeded",
        level=logging.WARNING,
        credit_card_id=4,
        available_limit="-12.50",
    )
"""

import logging
from typing import Any

LOGGER_PREFIX = "purchase_ledger.services"


def get_service_logger(name: str) -> logging.Logger:
    """
    Get a logger configured for service operations.

    Args:
        name: Logger name (typically __name__ of the calling module)

    Returns:
        Configured logger instance with the 'purchase_ledger.services' prefix.

    Example:
        >>> logger = get_service_logger(__name__)
        >>> logger.name
        'purchase_ledger.services.purchase_service'
    """
    # Extract just the module name if full path is provided
    if "." in name:
        name = name.split(".")[-1]
    return logging.getLogger(f"{LOGGER_PREFIX}.{name}")


def log_operation(
    logger: logging.Logger,
    operation: str,
    outcome: str,
    level: int = logging.INFO,
    **context: Any,
) -> None:
    """
    Log a service operation with structured context.

    The context is passed via the 'extra' parameter for structured logging,
    so its keys must not shadow LogRecord attributes (name, msg, args...).

    Args:
        logger: Logger instance to use
        operation: Operation name (e.g., "create_purchase", "charge_credit_card")
        outcome: Outcome description (e.g., "committed", "rolled_back")
        level: Log level (default: INFO). Use DEBUG for verbose/frequent logs.
        **context: Additional context fields (entity IDs, error details, etc.)
            Common fields:
            - purchase_number: Number of the purchase being processed
            - state: Orchestrator state on transitions
            - error: Error message if outcome is a failure
    """
    extra = {
        "operation": operation,
        "outcome": outcome,
        **context,
    }
    logger.log(level, f"{operation}: {outcome}", extra=extra)
