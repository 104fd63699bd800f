"""
Data Models Package

This package contains all Pydantic models used in the Finance Tracker system.
All data flowing through the system must conform to these schemas.
"""

from finance_tracker.models.finance import (
    EXPENSE_CATEGORIES,
    INCOME_SOURCES,
    Budget,
    BudgetKey,
    Goal,
    Profile,
    ProfileUpdate,
    Transaction,
    TransactionFilters,
    TransactionPage,
    TransactionType,
    categories_for,
    first_day_of,
    month_of,
    new_document_id,
)
from finance_tracker.models.dashboard import (
    BalancePoint,
    BudgetStatus,
    CategorySlice,
    DashboardSummary,
    GoalProgress,
    PaymentUrgency,
    Totals,
    UpcomingPayment,
)
from finance_tracker.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Finance models
    "EXPENSE_CATEGORIES",
    "INCOME_SOURCES",
    "Budget",
    "BudgetKey",
    "Goal",
    "Profile",
    "ProfileUpdate",
    "Transaction",
    "TransactionFilters",
    "TransactionPage",
    "TransactionType",
    "categories_for",
    "first_day_of",
    "month_of",
    "new_document_id",
    # Dashboard models
    "BalancePoint",
    "BudgetStatus",
    "CategorySlice",
    "DashboardSummary",
    "GoalProgress",
    "PaymentUrgency",
    "Totals",
    "UpcomingPayment",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
