"""
Form Validation

DESIGN DECISION: Validation runs BEFORE any remote call.
The pydantic models reject structurally invalid records (negative
amounts, malformed months). The validators here add the checks a form
needs on top of that:

- Errors block the write (e.g. a non-positive goal contribution)
- Warnings are shown but don't block (e.g. a category outside the list
  for its type, or a zero budget amount)

IMPORTANT: Validation NEVER silently fixes issues.
It reports them and the caller decides.
"""

from datetime import date, timedelta
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from finance_tracker.models.finance import (
    Budget,
    Goal,
    Transaction,
    TransactionType,
    categories_for,
)


# Dates this far ahead are almost always typos in the year.
FAR_FUTURE_DAYS = 366
LARGE_AMOUNT = Decimal("10000000")


class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'invalid_value', 'unknown_category')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning)$",
    )


class ValidationResult(BaseModel):
    """Issues found for one record."""

    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not any(issue.severity == "error" for issue in self.issues)

    @property
    def errors(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == "error"]

    @property
    def warnings(self) -> list[str]:
        return [i.message for i in self.issues if i.severity == "warning"]

    def summary(self) -> str:
        return "; ".join(issue.message for issue in self.issues)


class ValidationFailedError(Exception):
    """Raised when a record has blocking validation errors."""

    def __init__(self, result: ValidationResult):
        self.result = result
        super().__init__(
            "; ".join(issue.message for issue in result.errors)
            or "Validation failed"
        )


class TransactionValidator:
    """Checks a transaction before it is written."""

    def validate(
        self,
        transaction: Transaction,
        today: Optional[date] = None,
    ) -> ValidationResult:
        today = today or date.today()
        issues = []

        other_type = (
            TransactionType.INCOME if transaction.is_expense
            else TransactionType.EXPENSE
        )
        if transaction.category not in categories_for(transaction.type):
            if transaction.category in categories_for(other_type):
                issues.append(ValidationIssue(
                    field="category",
                    issue_type="wrong_type",
                    message=(
                        f"'{transaction.category}' is a {other_type.value} "
                        f"category, not {transaction.type.value}"
                    ),
                    severity="warning",
                ))
            else:
                issues.append(ValidationIssue(
                    field="category",
                    issue_type="unknown_category",
                    message=f"'{transaction.category}' is not a listed category",
                    severity="warning",
                ))

        if transaction.date > today + timedelta(days=FAR_FUTURE_DAYS):
            issues.append(ValidationIssue(
                field="date",
                issue_type="far_future",
                message=f"Date ({transaction.date}) is more than a year ahead",
                severity="warning",
            ))

        if transaction.amount > LARGE_AMOUNT:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message=f"Amount ({transaction.amount:,.2f}) seems unusually high",
                severity="warning",
            ))

        return ValidationResult(issues=issues)


class BudgetValidator:
    """Checks a budget entered through the budget form."""

    def validate(self, budget: Budget) -> ValidationResult:
        issues = []

        # Zero is a valid limit; auto-created budgets start there.
        if budget.budget_amount == 0:
            issues.append(ValidationIssue(
                field="budget_amount",
                issue_type="no_limit",
                message="Budget amount is zero, so any spending overspends it",
                severity="warning",
            ))

        if budget.category not in categories_for(TransactionType.EXPENSE):
            issues.append(ValidationIssue(
                field="category",
                issue_type="unknown_category",
                message=f"'{budget.category}' is not a listed expense category",
                severity="warning",
            ))

        if budget.budget_amount > 0 and budget.spent_amount > budget.budget_amount:
            issues.append(ValidationIssue(
                field="spent_amount",
                issue_type="overspent",
                message="Spent amount already exceeds the budget",
                severity="warning",
            ))

        return ValidationResult(issues=issues)


class GoalValidator:
    """Checks a savings goal before it is written."""

    def validate(
        self,
        goal: Goal,
        today: Optional[date] = None,
    ) -> ValidationResult:
        today = today or date.today()
        issues = []

        if goal.deadline < today:
            issues.append(ValidationIssue(
                field="deadline",
                issue_type="past_date",
                message=f"Deadline ({goal.deadline}) is in the past",
                severity="warning",
            ))

        if goal.completed:
            issues.append(ValidationIssue(
                field="saved_amount",
                issue_type="already_completed",
                message="Saved amount already reaches the target",
                severity="warning",
            ))

        return ValidationResult(issues=issues)

    def validate_contribution(self, amount: Decimal) -> ValidationResult:
        issues = []
        if amount <= 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Contribution must be greater than zero",
                severity="error",
            ))
        return ValidationResult(issues=issues)


def ensure_valid(result: ValidationResult) -> ValidationResult:
    """Raise ValidationFailedError if the result has errors."""
    if not result.is_valid:
        raise ValidationFailedError(result)
    return result
