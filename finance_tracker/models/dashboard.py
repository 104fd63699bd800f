"""
Dashboard Models

Output records of the metrics aggregator and of budget status checks.
These are derived values only; nothing here is persisted.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, computed_field

from finance_tracker.models.finance import Transaction


class Totals(BaseModel):
    """Income, expense and net balance over a set of transactions."""

    income: Decimal = Decimal("0")
    expense: Decimal = Decimal("0")

    @computed_field
    @property
    def net(self) -> Decimal:
        return self.income - self.expense


class CategorySlice(BaseModel):
    """One slice of the category chart."""

    name: str
    value: Decimal


class BalancePoint(BaseModel):
    """Running balance right after one transaction."""

    date: date
    balance: Decimal


class PaymentUrgency(str, Enum):
    """How pressing a dated expense is relative to today."""
    OVERDUE = "overdue"
    DUE_SOON = "due_soon"
    LATER = "later"


class UpcomingPayment(BaseModel):
    """An expense transaction classified by its due date."""

    transaction: Transaction
    days_until_due: int
    urgency: PaymentUrgency

    @property
    def overdue(self) -> bool:
        return self.urgency == PaymentUrgency.OVERDUE

    @property
    def due_soon(self) -> bool:
        return self.urgency == PaymentUrgency.DUE_SOON


class GoalProgress(BaseModel):
    """Progress of a savings goal."""

    goal_id: str
    percent: float = Field(ge=0.0, le=100.0)
    completed: bool
    remaining: Decimal = Field(ge=0)


class BudgetStatus(BaseModel):
    """Where a budget stands against its spending."""

    budget_id: str
    category: str
    month: str
    budget_amount: Decimal
    spent_amount: Decimal
    remaining: Decimal
    percent_used: Optional[float] = Field(
        default=None,
        description="None when the budget amount is zero"
    )
    threshold_reached: bool
    overspent: bool


class DashboardSummary(BaseModel):
    """Everything the dashboard shows, computed in one pass."""

    month: Optional[str] = None
    totals: Totals
    categories: list[CategorySlice] = Field(default_factory=list)
    balance_series: list[BalancePoint] = Field(default_factory=list)
    upcoming_payments: list[UpcomingPayment] = Field(default_factory=list)
    goals: list[GoalProgress] = Field(default_factory=list)
    goal_count: int = 0
