"""
Audit Logger

DESIGN DECISION: Every write against the hosted store is logged.
This provides:
1. Complete traceability of budgets and the transactions behind them
2. A visible record of reconciliation drift
3. Debugging capability when a collaborator fails

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace a transaction write and its budget write
"""

from decimal import Decimal
from typing import Any, Optional
from uuid import UUID, uuid4

import structlog

from finance_tracker.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from finance_tracker.models.finance import Budget, Transaction
from finance_tracker.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The audit collection (for persistence), when storage is given
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger()

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_transaction(
        self,
        event_type: AuditEventType,
        transaction: Transaction,
        correlation_id: Optional[UUID] = None,
        previous: Optional[Transaction] = None,
    ) -> None:
        """Log a transaction create/update/delete."""
        details: dict[str, Any] = {
            "type": transaction.type.value,
            "amount": str(transaction.amount),
            "category": transaction.category,
            "date": transaction.date.isoformat(),
        }
        if previous is not None:
            details["previous"] = {
                "type": previous.type.value,
                "amount": str(previous.amount),
                "category": previous.category,
                "date": previous.date.isoformat(),
            }
        event = AuditEventBuilder.transaction_written(
            event_type=event_type,
            transaction_id=transaction.id,
            user_id=transaction.user_id,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_budget_adjusted(
        self,
        budget: Budget,
        delta: Decimal,
        created: bool,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a reconciliation step applied to a budget."""
        event = AuditEventBuilder.budget_reconciled(
            budget_id=budget.id,
            user_id=budget.user_id,
            category=budget.category,
            month=budget.month,
            delta=str(delta),
            spent_amount=str(budget.spent_amount),
            created=created,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_budget_rebuilt(
        self,
        budget: Budget,
        previous: Decimal,
    ) -> None:
        """Log a manual rebuild of a budget's spent amount."""
        event = AuditEventBuilder.budget_rebuilt(
            budget_id=budget.id,
            user_id=budget.user_id,
            category=budget.category,
            month=budget.month,
            previous=str(previous),
            recomputed=str(budget.spent_amount),
        )
        await self.log(event)

    async def log_reconciliation_failed(
        self,
        step: str,
        user_id: str,
        category: str,
        month: str,
        error_message: str,
        transaction_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a budget write that failed after its transaction write."""
        event = AuditEventBuilder.reconciliation_failed(
            step=step,
            user_id=user_id,
            category=category,
            month=month,
            error_message=error_message,
            transaction_id=transaction_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_entity(
        self,
        event_type: AuditEventType,
        entity_type: str,
        entity_id: str,
        user_id: Optional[str],
        description: str,
        details: Optional[dict[str, Any]] = None,
        severity: AuditSeverity = AuditSeverity.INFO,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a write to a budget, goal or profile."""
        event = AuditEventBuilder.entity_event(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=user_id,
            description=description,
            details=details,
            severity=severity,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_session(
        self,
        event_type: AuditEventType,
        user_id: Optional[str],
        description: str,
    ) -> None:
        """Log signup, login, logout or session expiry."""
        event = AuditEventBuilder.session_event(
            event_type=event_type,
            user_id=user_id,
            description=description,
        )
        await self.log(event)

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        event = AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a user action (e.g., adding a transaction).
    Pass it through all subsequent operations.
    """
    return uuid4()
