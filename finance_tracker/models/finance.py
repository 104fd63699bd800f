"""
Core Data Models for Finance Tracker

These models define the records kept in the document store:
transactions, savings goals, monthly budgets and user profiles.

DESIGN DECISION: Money is Decimal with two decimal places.
Budgets are compared and summed on every transaction write, so float
drift would show up as budgets that never quite reconcile.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import NamedTuple, Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


MONTH_PATTERN = r"^\d{4}-(0[1-9]|1[0-2])$"


def new_document_id() -> str:
    """Generate a document id the way the hosted store expects (opaque string)."""
    return str(uuid4())


def month_of(day: date) -> str:
    """Return the "YYYY-MM" month a calendar date belongs to."""
    return day.strftime("%Y-%m")


def first_day_of(month: str) -> date:
    """Return the 1st of a "YYYY-MM" month."""
    year, month_number = month.split("-")
    return date(int(year), int(month_number), 1)


# =============================================================================
# ENUMS AND CATALOGUES
# =============================================================================

class TransactionType(str, Enum):
    """Direction of a transaction."""
    INCOME = "income"
    EXPENSE = "expense"


# Category lists offered by the transaction form.
# The models do not enforce them; the validator warns on unknown ones.
INCOME_SOURCES = (
    "Salary",
    "Business",
    "Investments",
    "Freelance",
    "Other Income",
)

EXPENSE_CATEGORIES = (
    "Food",
    "Travel",
    "Bills",
    "Shopping",
    "Health",
    "Education",
    "Entertainment",
    "Other Expenses",
)


def categories_for(transaction_type: TransactionType) -> tuple[str, ...]:
    """Categories valid for a transaction type."""
    if transaction_type == TransactionType.INCOME:
        return INCOME_SOURCES
    return EXPENSE_CATEGORIES


# =============================================================================
# TRANSACTIONS
# =============================================================================

class Transaction(BaseModel):
    """
    A single income or expense entry owned by one user.

    Expense transactions drive the spent amount of the budget for
    (user, category, month of date).
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(
        default_factory=new_document_id,
        description="Document id"
    )
    user_id: str = Field(
        ...,
        min_length=1,
        description="Owning user"
    )
    type: TransactionType
    amount: Decimal = Field(
        ...,
        gt=0,
        decimal_places=2,
        description="Amount (always positive, direction comes from type)"
    )
    category: str = Field(
        ...,
        min_length=1,
        max_length=100,
    )
    date: date
    note: Optional[str] = Field(
        default=None,
        max_length=500,
    )

    @property
    def month(self) -> str:
        """The "YYYY-MM" month this transaction is booked in."""
        return month_of(self.date)

    @property
    def is_expense(self) -> bool:
        return self.type == TransactionType.EXPENSE

    @property
    def signed_amount(self) -> Decimal:
        """Amount as it moves the balance: positive for income, negative for expense."""
        return self.amount if self.type == TransactionType.INCOME else -self.amount


class TransactionFilters(BaseModel):
    """
    Listing filters for the transactions page.

    The date range only applies when both ends are given.
    """

    type: Optional[TransactionType] = None
    category: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=100)

    @model_validator(mode='after')
    def validate_range(self) -> 'TransactionFilters':
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("End date cannot be before start date")
        return self

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    @property
    def date_range(self) -> Optional[tuple[date, date]]:
        if self.start_date and self.end_date:
            return self.start_date, self.end_date
        return None


class TransactionPage(BaseModel):
    """One page of a filtered transaction listing."""

    transactions: list[Transaction] = Field(default_factory=list)
    total: int = Field(ge=0)
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1)

    @property
    def page_count(self) -> int:
        return max(1, -(-self.total // self.limit))


# =============================================================================
# GOALS
# =============================================================================

class Goal(BaseModel):
    """
    A savings goal.

    `completed` is always derived from the amounts; a value passed in
    is overwritten.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_document_id)
    user_id: str = Field(..., min_length=1)
    title: str = Field(
        ...,
        min_length=1,
        max_length=200,
    )
    target_amount: Decimal = Field(
        ...,
        gt=0,
        decimal_places=2,
    )
    saved_amount: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        decimal_places=2,
    )
    deadline: date
    description: Optional[str] = Field(
        default=None,
        max_length=1000,
    )
    completed: bool = False

    @model_validator(mode='after')
    def derive_completed(self) -> 'Goal':
        self.completed = self.saved_amount >= self.target_amount
        return self


# =============================================================================
# BUDGETS
# =============================================================================

class BudgetKey(NamedTuple):
    """Logical key of a budget: one budget per user, category and month."""
    user_id: str
    category: str
    month: str


class Budget(BaseModel):
    """
    Monthly budget for one category.

    `spent_amount` is maintained by the budget reconciler and tracks the
    sum of the matching expense transactions (best effort).
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_document_id)
    user_id: str = Field(..., min_length=1)
    category: str = Field(
        ...,
        min_length=1,
        max_length=100,
    )
    month: str = Field(
        ...,
        pattern=MONTH_PATTERN,
        description="Budget month as YYYY-MM"
    )
    budget_amount: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        decimal_places=2,
    )
    spent_amount: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        decimal_places=2,
    )
    notes: Optional[str] = Field(
        default=None,
        max_length=1000,
    )
    alert_threshold: int = Field(
        default=80,
        ge=0,
        le=100,
        description="Percent of the budget at which to alert"
    )
    auto_created: bool = Field(
        default=False,
        description="Created by reconciliation rather than by the user"
    )

    @property
    def key(self) -> BudgetKey:
        return BudgetKey(self.user_id, self.category, self.month)


# =============================================================================
# PROFILES
# =============================================================================

class Profile(BaseModel):
    """
    User profile. The document id equals the identity provider's user id.

    Email is immutable after creation.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(..., min_length=1)
    username: str = Field(
        ...,
        min_length=1,
        max_length=100,
    )
    email: str = Field(
        ...,
        pattern=r"^[^@\s]+@[^@\s]+$",
        max_length=320,
    )
    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    birth_date: Optional[date] = None
    avatar_url: Optional[str] = None
    created_date: datetime = Field(default_factory=datetime.utcnow)

    @field_validator('email')
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.lower()

    @property
    def display_name(self) -> str:
        full = " ".join(part for part in (self.first_name, self.last_name) if part)
        return full or self.username


class ProfileUpdate(BaseModel):
    """Editable profile fields. Email is deliberately absent."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    username: Optional[str] = Field(default=None, min_length=1, max_length=100)
    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    birth_date: Optional[date] = None
    avatar_url: Optional[str] = None
