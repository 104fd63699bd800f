"""
Audit Models for Finance Tracker

Every write against the hosted document store is logged for audit purposes.
This provides:
1. Traceability of every transaction, budget and goal change
2. A record of reconciliation drift when a budget write fails
3. Debugging information when a collaborator misbehaves

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Transactions
    TRANSACTION_CREATED = "transaction_created"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"

    # Budgets
    BUDGET_CREATED = "budget_created"
    BUDGET_AUTO_CREATED = "budget_auto_created"
    BUDGET_MERGED = "budget_merged"
    BUDGET_UPDATED = "budget_updated"
    BUDGET_DELETED = "budget_deleted"
    BUDGET_RECONCILED = "budget_reconciled"
    BUDGET_REBUILT = "budget_rebuilt"
    RECONCILIATION_FAILED = "reconciliation_failed"

    # Goals
    GOAL_CREATED = "goal_created"
    GOAL_PROGRESS_UPDATED = "goal_progress_updated"
    GOAL_EDITED = "goal_edited"
    GOAL_EDIT_ROLLED_BACK = "goal_edit_rolled_back"
    GOAL_DELETED = "goal_deleted"

    # Profiles
    PROFILE_CREATED = "profile_created"
    PROFILE_UPDATED = "profile_updated"
    AVATAR_UPLOADED = "avatar_uploaded"

    # Sessions
    USER_SIGNED_UP = "user_signed_up"
    USER_LOGGED_IN = "user_logged_in"
    USER_LOGGED_OUT = "user_logged_out"
    SESSION_EXPIRED = "session_expired"

    # System events
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = Field(default=AuditSeverity.INFO)

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'budget', 'goal')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="Document id of the entity this event relates to"
    )
    user_id: Optional[str] = Field(
        default=None,
        description="Owner of the entity"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., a transaction write and its budget write)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(default_factory=dict)

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "user_id": self.user_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         user_id, correlation_id, description, details_json, error_message,
         is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            self.user_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transaction_written(
            AuditEventType.TRANSACTION_CREATED, tx.id, tx.user_id, details, correlation_id
        )
        event = AuditEventBuilder.budget_reconciled(
            budget.id, budget.user_id, budget.category, budget.month,
            delta="-50.00", spent_amount="250.00", created=False,
            correlation_id=correlation_id,
        )
    """

    @staticmethod
    def transaction_written(
        event_type: AuditEventType,
        transaction_id: str,
        user_id: str,
        details: dict[str, Any],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        verb = event_type.value.rsplit("_", 1)[-1]
        return AuditEvent(
            event_type=event_type,
            entity_type="transaction",
            entity_id=transaction_id,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Transaction {verb}",
            details=details,
            is_user_action=True,
        )

    @staticmethod
    def budget_reconciled(
        budget_id: str,
        user_id: str,
        category: str,
        month: str,
        delta: str,
        spent_amount: str,
        created: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        event_type = (
            AuditEventType.BUDGET_AUTO_CREATED if created
            else AuditEventType.BUDGET_RECONCILED
        )
        return AuditEvent(
            event_type=event_type,
            entity_type="budget",
            entity_id=budget_id,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Budget {category}/{month} spent adjusted by {delta}",
            details={
                "category": category,
                "month": month,
                "delta": delta,
                "spent_amount": spent_amount,
            },
        )

    @staticmethod
    def budget_rebuilt(
        budget_id: str,
        user_id: str,
        category: str,
        month: str,
        previous: str,
        recomputed: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_REBUILT,
            severity=(
                AuditSeverity.WARNING if previous != recomputed
                else AuditSeverity.INFO
            ),
            entity_type="budget",
            entity_id=budget_id,
            user_id=user_id,
            description=f"Budget {category}/{month} rebuilt from transactions",
            details={
                "previous_spent": previous,
                "recomputed_spent": recomputed,
            },
            is_user_action=True,
        )

    @staticmethod
    def reconciliation_failed(
        step: str,
        user_id: str,
        category: str,
        month: str,
        error_message: str,
        transaction_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECONCILIATION_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="budget",
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Budget {category}/{month} may be stale: {step} failed",
            details={
                "step": step,
                "category": category,
                "month": month,
                "transaction_id": transaction_id,
            },
            error_message=error_message,
        )

    @staticmethod
    def entity_event(
        event_type: AuditEventType,
        entity_type: str,
        entity_id: str,
        user_id: Optional[str],
        description: str,
        details: Optional[dict[str, Any]] = None,
        severity: AuditSeverity = AuditSeverity.INFO,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=event_type,
            severity=severity,
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=user_id,
            correlation_id=correlation_id,
            description=description,
            details=details or {},
            is_user_action=True,
        )

    @staticmethod
    def session_event(
        event_type: AuditEventType,
        user_id: Optional[str],
        description: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=event_type,
            entity_type="session",
            user_id=user_id,
            description=description,
            is_user_action=event_type != AuditEventType.SESSION_EXPIRED,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            correlation_id=correlation_id,
            description=f"External service error: {service}",
            details={"service": service},
            error_message=error_message,
        )
