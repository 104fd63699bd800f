"""Dashboard metrics: pure functions over transactions, goals and budgets."""

from finance_tracker.metrics.aggregator import (
    INCOME_SLICE,
    budget_status,
    build_dashboard,
    category_breakdown,
    classify_payment,
    compute_totals,
    filter_by_month,
    goal_progress,
    monthly_spend,
    running_balance,
    upcoming_payments,
)

__all__ = [
    "INCOME_SLICE",
    "budget_status",
    "build_dashboard",
    "category_breakdown",
    "classify_payment",
    "compute_totals",
    "filter_by_month",
    "goal_progress",
    "monthly_spend",
    "running_balance",
    "upcoming_payments",
]
