"""Shared fixtures: an in-memory store with repositories and audit capture."""

from datetime import date
from decimal import Decimal

import pytest

from finance_tracker.audit import AuditLogger
from finance_tracker.models.finance import Transaction, TransactionType
from finance_tracker.reconciliation import BudgetReconciler
from finance_tracker.services.storage import (
    BudgetRepository,
    GoalRepository,
    InMemoryAuditStorage,
    InMemoryDocumentStore,
    ProfileRepository,
    TransactionRepository,
)


USER_ID = "user-1"


def make_transaction(
    type: str = "expense",
    amount: str = "100",
    category: str = "Food",
    day: date = date(2024, 1, 10),
    user_id: str = USER_ID,
    **extra,
) -> Transaction:
    return Transaction(
        user_id=user_id,
        type=TransactionType(type),
        amount=Decimal(amount),
        category=category,
        date=day,
        **extra,
    )


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(audit_storage)


@pytest.fixture
def transactions(store):
    return TransactionRepository(store)


@pytest.fixture
def budgets(store):
    return BudgetRepository(store)


@pytest.fixture
def goals(store):
    return GoalRepository(store)


@pytest.fixture
def profiles(store):
    return ProfileRepository(store)


@pytest.fixture
def reconciler(budgets, transactions, audit_logger):
    return BudgetReconciler(budgets, transactions, audit_logger, default_alert_threshold=80)
