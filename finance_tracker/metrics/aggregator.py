"""
Metrics Aggregator

DESIGN DECISION: Every metric is a PURE function of its inputs.
Nothing here reads the store, the clock or the settings implicitly:
callers fetch the records and pass `today` explicitly. This keeps the
dashboard numbers reproducible and trivially testable.

All money stays Decimal; only percentages are floats.
"""

from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

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
from finance_tracker.models.finance import (
    Budget,
    Goal,
    Transaction,
    TransactionType,
)


INCOME_SLICE = "Income"
DEFAULT_DUE_SOON_DAYS = 7

ZERO = Decimal("0")


def filter_by_month(
    transactions: Iterable[Transaction],
    month: Optional[str] = None,
) -> list[Transaction]:
    """Keep transactions dated in `month` ("YYYY-MM"); all of them when month is None."""
    if month is None:
        return list(transactions)
    return [t for t in transactions if t.month == month]


def compute_totals(
    transactions: Iterable[Transaction],
    month: Optional[str] = None,
) -> Totals:
    """Sum income and expense amounts."""
    income = ZERO
    expense = ZERO
    for transaction in filter_by_month(transactions, month):
        if transaction.type == TransactionType.INCOME:
            income += transaction.amount
        else:
            expense += transaction.amount
    return Totals(income=income, expense=expense)


def monthly_spend(
    transactions: Iterable[Transaction],
    month: str,
) -> dict[str, Decimal]:
    """Expense total per category for one month."""
    spend: dict[str, Decimal] = defaultdict(lambda: ZERO)
    for transaction in filter_by_month(transactions, month):
        if transaction.is_expense:
            spend[transaction.category] += transaction.amount
    return dict(spend)


def category_breakdown(
    transactions: Iterable[Transaction],
    month: Optional[str] = None,
) -> list[CategorySlice]:
    """
    Chart slices: one per expense category plus a single "Income" slice.

    Slices with a zero value are left out, the income slice included.
    Expense categories keep the order they first appear in.
    """
    selected = filter_by_month(transactions, month)

    expenses: dict[str, Decimal] = {}
    income = ZERO
    for transaction in selected:
        if transaction.is_expense:
            expenses[transaction.category] = (
                expenses.get(transaction.category, ZERO) + transaction.amount
            )
        else:
            income += transaction.amount

    slices = [
        CategorySlice(name=name, value=value)
        for name, value in expenses.items()
    ]
    slices.append(CategorySlice(name=INCOME_SLICE, value=income))
    return [s for s in slices if s.value != 0]


def running_balance(
    transactions: Iterable[Transaction],
    month: Optional[str] = None,
) -> list[BalancePoint]:
    """
    Balance after each transaction, in date order, starting from zero.

    The sort is stable, so same-day transactions keep their input order.
    """
    ordered = sorted(filter_by_month(transactions, month), key=lambda t: t.date)

    balance = ZERO
    points = []
    for transaction in ordered:
        balance += transaction.signed_amount
        points.append(BalancePoint(date=transaction.date, balance=balance))
    return points


def classify_payment(
    due_date: date,
    today: date,
    due_soon_days: int = DEFAULT_DUE_SOON_DAYS,
) -> PaymentUrgency:
    """
    Classify a due date against today, in whole calendar days.

    Past dates are overdue, today through `due_soon_days` ahead are due
    soon, anything later is later. Every date falls in exactly one class.
    """
    days = (due_date - today).days
    if days < 0:
        return PaymentUrgency.OVERDUE
    if days <= due_soon_days:
        return PaymentUrgency.DUE_SOON
    return PaymentUrgency.LATER


def upcoming_payments(
    transactions: Iterable[Transaction],
    today: date,
    include_past: bool = False,
    due_soon_days: int = DEFAULT_DUE_SOON_DAYS,
) -> list[UpcomingPayment]:
    """
    Expense transactions treated as payments due on their date.

    By default only expenses dated today or later are listed; with
    `include_past` past expenses are listed too (and come out overdue).
    Sorted by due date, soonest first.
    """
    payments = []
    for transaction in transactions:
        if not transaction.is_expense:
            continue
        if not include_past and transaction.date < today:
            continue
        payments.append(UpcomingPayment(
            transaction=transaction,
            days_until_due=(transaction.date - today).days,
            urgency=classify_payment(transaction.date, today, due_soon_days),
        ))
    payments.sort(key=lambda p: p.transaction.date)
    return payments


def goal_progress(goal: Goal) -> GoalProgress:
    """Percent saved, clamped to [0, 100]."""
    percent = float(goal.saved_amount / goal.target_amount * 100)
    percent = max(0.0, min(percent, 100.0))
    return GoalProgress(
        goal_id=goal.id,
        percent=percent,
        completed=goal.saved_amount >= goal.target_amount,
        remaining=max(goal.target_amount - goal.saved_amount, ZERO),
    )


def budget_status(budget: Budget) -> BudgetStatus:
    """
    Where a budget stands.

    A zero budget (typically auto-created) has no percentage; any
    spending against it counts as overspent and past the threshold.
    """
    spent = budget.spent_amount
    amount = budget.budget_amount

    percent_used = None
    if amount > 0:
        percent_used = float(spent / amount * 100)

    threshold = amount * Decimal(budget.alert_threshold) / Decimal(100)
    return BudgetStatus(
        budget_id=budget.id,
        category=budget.category,
        month=budget.month,
        budget_amount=amount,
        spent_amount=spent,
        remaining=amount - spent,
        percent_used=percent_used,
        threshold_reached=spent > 0 and spent >= threshold,
        overspent=spent > amount,
    )


def build_dashboard(
    transactions: list[Transaction],
    goals: list[Goal],
    today: date,
    month: Optional[str] = None,
    due_soon_days: int = DEFAULT_DUE_SOON_DAYS,
) -> DashboardSummary:
    """Compute every dashboard figure for one user."""
    return DashboardSummary(
        month=month,
        totals=compute_totals(transactions, month),
        categories=category_breakdown(transactions, month),
        balance_series=running_balance(transactions, month),
        upcoming_payments=upcoming_payments(
            transactions, today, due_soon_days=due_soon_days
        ),
        goals=[goal_progress(goal) for goal in goals],
        goal_count=len(goals),
    )
