"""Validation package."""

from finance_tracker.validation.validator import (
    BudgetValidator,
    GoalValidator,
    TransactionValidator,
    ValidationFailedError,
    ValidationIssue,
    ValidationResult,
    ensure_valid,
)

__all__ = [
    "BudgetValidator",
    "GoalValidator",
    "TransactionValidator",
    "ValidationFailedError",
    "ValidationIssue",
    "ValidationResult",
    "ensure_valid",
]
