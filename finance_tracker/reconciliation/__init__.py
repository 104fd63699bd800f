"""Budget reconciliation package."""

from finance_tracker.reconciliation.reconciler import (
    BudgetReconciler,
    ManualBudgetResult,
    ReconciliationError,
    budget_key_for,
)

__all__ = [
    "BudgetReconciler",
    "ManualBudgetResult",
    "ReconciliationError",
    "budget_key_for",
]
