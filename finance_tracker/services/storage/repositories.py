"""
Typed Repositories over the Document Store

The document store deals in plain dicts with camelCase field names
(the layout of the hosted collections). Repositories translate those
documents to and from the pydantic models and phrase the queries each
flow needs.

Every document is created with owner-only permissions, and every read
and write is performed on behalf of the owning user.
"""

import calendar
from decimal import Decimal
from typing import Any, Optional

from finance_tracker.models.finance import (
    Budget,
    BudgetKey,
    Goal,
    Profile,
    Transaction,
    TransactionFilters,
    TransactionPage,
    TransactionType,
    first_day_of,
)
from finance_tracker.services.storage.interface import (
    ID_KEY,
    Between,
    Document,
    DocumentStoreInterface,
    Equal,
    NotFoundError,
    Permission,
)


TRANSACTIONS = "transactions"
GOALS = "goals"
BUDGETS = "budgets"
PROFILES = "profiles"
ACCOUNTS = "accounts"

# Page size used when a caller needs every matching document
SCAN_BATCH_SIZE = 100


def _value(document: Document, key: str) -> Any:
    """Field value with blank cells treated as missing."""
    value = document.get(key)
    return None if value == "" else value


def month_bounds(month: str) -> tuple[str, str]:
    """First and last calendar day of a "YYYY-MM" month, as ISO strings."""
    first = first_day_of(month)
    last_day = calendar.monthrange(first.year, first.month)[1]
    return first.isoformat(), first.replace(day=last_day).isoformat()


async def _scan(
    store: DocumentStoreInterface,
    collection: str,
    filters: list,
    owner: str,
) -> list[Document]:
    """Fetch every matching document, page by page."""
    documents: list[Document] = []
    offset = 0
    while True:
        page = await store.query(
            collection,
            filters,
            limit=SCAN_BATCH_SIZE,
            offset=offset,
            owner=owner,
        )
        documents.extend(page.documents)
        offset += len(page.documents)
        if not page.documents or offset >= page.total:
            return documents


class TransactionRepository:
    """Transactions collection."""

    def __init__(self, store: DocumentStoreInterface):
        self._store = store

    @staticmethod
    def to_document(transaction: Transaction) -> Document:
        return {
            "userId": transaction.user_id,
            "type": transaction.type.value,
            "amount": transaction.amount,
            "category": transaction.category,
            "date": transaction.date.isoformat(),
            "note": transaction.note,
        }

    @staticmethod
    def from_document(document: Document) -> Transaction:
        return Transaction(
            id=document[ID_KEY],
            user_id=document["userId"],
            type=document["type"],
            amount=document["amount"],
            category=document["category"],
            date=document["date"],
            note=_value(document, "note"),
        )

    async def create(self, transaction: Transaction) -> Transaction:
        document = await self._store.create(
            TRANSACTIONS,
            transaction.id,
            self.to_document(transaction),
            permissions=Permission.owner(transaction.user_id),
        )
        return self.from_document(document)

    async def get(self, transaction_id: str, user_id: str) -> Transaction:
        document = await self._store.get(TRANSACTIONS, transaction_id, owner=user_id)
        return self.from_document(document)

    async def update(self, transaction: Transaction) -> Transaction:
        document = await self._store.update(
            TRANSACTIONS,
            transaction.id,
            self.to_document(transaction),
            owner=transaction.user_id,
        )
        return self.from_document(document)

    async def delete(self, transaction_id: str, user_id: str) -> None:
        await self._store.delete(TRANSACTIONS, transaction_id, owner=user_id)

    async def list_page(self, user_id: str, filters: TransactionFilters) -> TransactionPage:
        """One page of the user's transactions, narrowed by the listing filters."""
        query = [Equal("userId", user_id)]
        if filters.type:
            query.append(Equal("type", filters.type.value))
        if filters.category:
            query.append(Equal("category", filters.category))
        if filters.date_range:
            start, end = filters.date_range
            query.append(Between("date", start.isoformat(), end.isoformat()))

        page = await self._store.query(
            TRANSACTIONS,
            query,
            limit=filters.limit,
            offset=filters.offset,
            owner=user_id,
        )
        return TransactionPage(
            transactions=[self.from_document(d) for d in page.documents],
            total=page.total,
            page=filters.page,
            limit=filters.limit,
        )

    async def list_all(self, user_id: str, month: Optional[str] = None) -> list[Transaction]:
        """Every transaction of a user, optionally within one month."""
        query = [Equal("userId", user_id)]
        if month:
            query.append(Between("date", *month_bounds(month)))
        documents = await _scan(self._store, TRANSACTIONS, query, owner=user_id)
        return [self.from_document(d) for d in documents]

    async def expenses_for(self, key: BudgetKey) -> list[Transaction]:
        """Expense transactions counted by the budget with this key."""
        query = [
            Equal("userId", key.user_id),
            Equal("type", TransactionType.EXPENSE.value),
            Equal("category", key.category),
            Between("date", *month_bounds(key.month)),
        ]
        documents = await _scan(self._store, TRANSACTIONS, query, owner=key.user_id)
        return [self.from_document(d) for d in documents]


class BudgetRepository:
    """
    Budgets collection.

    Budgets are physically keyed by a generated id but logically keyed by
    (user, category, month); every write that could create a budget goes
    through the store's upsert on that key.
    """

    def __init__(self, store: DocumentStoreInterface):
        self._store = store

    @staticmethod
    def to_document(budget: Budget) -> Document:
        return {
            "userId": budget.user_id,
            "category": budget.category,
            "month": budget.month,
            "budgetAmount": budget.budget_amount,
            "spentAmount": budget.spent_amount,
            "notes": budget.notes,
            "alertThreshold": budget.alert_threshold,
            "autoCreated": budget.auto_created,
        }

    @staticmethod
    def from_document(document: Document) -> Budget:
        threshold = _value(document, "alertThreshold")
        return Budget(
            id=document[ID_KEY],
            user_id=document["userId"],
            category=document["category"],
            month=document["month"],
            budget_amount=_value(document, "budgetAmount") or Decimal("0"),
            spent_amount=_value(document, "spentAmount") or Decimal("0"),
            notes=_value(document, "notes"),
            alert_threshold=80 if threshold is None else threshold,
            auto_created=_value(document, "autoCreated") or False,
        )

    @staticmethod
    def key_filters(key: BudgetKey) -> list:
        return [
            Equal("userId", key.user_id),
            Equal("category", key.category),
            Equal("month", key.month),
        ]

    async def find(self, key: BudgetKey) -> Optional[Budget]:
        page = await self._store.query(
            BUDGETS,
            self.key_filters(key),
            limit=1,
            owner=key.user_id,
        )
        if not page.documents:
            return None
        return self.from_document(page.documents[0])

    async def get(self, budget_id: str, user_id: str) -> Budget:
        document = await self._store.get(BUDGETS, budget_id, owner=user_id)
        return self.from_document(document)

    async def list_for_month(self, user_id: str, month: str) -> list[Budget]:
        documents = await _scan(
            self._store,
            BUDGETS,
            [Equal("userId", user_id), Equal("month", month)],
            owner=user_id,
        )
        return [self.from_document(d) for d in documents]

    async def create(self, budget: Budget) -> Budget:
        document = await self._store.create(
            BUDGETS,
            budget.id,
            self.to_document(budget),
            permissions=Permission.owner(budget.user_id),
        )
        return self.from_document(document)

    async def update(self, budget: Budget) -> Budget:
        document = await self._store.update(
            BUDGETS,
            budget.id,
            self.to_document(budget),
            owner=budget.user_id,
        )
        return self.from_document(document)

    async def delete(self, budget_id: str, user_id: str) -> None:
        await self._store.delete(BUDGETS, budget_id, owner=user_id)

    async def set_spent(self, budget: Budget, spent_amount: Decimal) -> Budget:
        document = await self._store.update(
            BUDGETS,
            budget.id,
            {"spentAmount": spent_amount},
            owner=budget.user_id,
        )
        return self.from_document(document)

    async def add_spent(
        self,
        key: BudgetKey,
        amount: Decimal,
        alert_threshold: int = 80,
    ) -> tuple[Budget, bool]:
        """
        Add to the spent amount of the budget for `key`, creating an
        auto-created budget (budget amount 0) when none exists.

        Returns:
            (budget, created)
        """
        def apply(existing: Document) -> Document:
            current = self.from_document(existing)
            return {"spentAmount": current.spent_amount + amount}

        seed = Budget(
            user_id=key.user_id,
            category=key.category,
            month=key.month,
            budget_amount=Decimal("0"),
            spent_amount=amount,
            alert_threshold=alert_threshold,
            auto_created=True,
        )
        document, created = await self._store.upsert(
            BUDGETS,
            self.key_filters(key),
            self.to_document(seed),
            apply,
            permissions=Permission.owner(key.user_id),
            owner=key.user_id,
            document_id=seed.id,
        )
        return self.from_document(document), created

    async def subtract_spent(self, key: BudgetKey, amount: Decimal) -> Optional[Budget]:
        """
        Subtract from the spent amount, floored at zero.

        Returns None when there is no budget for `key`.
        """
        budget = await self.find(key)
        if budget is None:
            return None
        remaining = max(Decimal("0"), budget.spent_amount - amount)
        return await self.set_spent(budget, remaining)

    async def merge(self, incoming: Budget) -> tuple[Budget, bool]:
        """
        Sum an incoming budget into the one with the same key, or create it.

        Returns:
            (budget, created)
        """
        def apply(existing: Document) -> Document:
            current = self.from_document(existing)
            fields: Document = {
                "budgetAmount": current.budget_amount + incoming.budget_amount,
                "spentAmount": current.spent_amount + incoming.spent_amount,
                "autoCreated": False,
            }
            if incoming.notes:
                fields["notes"] = incoming.notes
            return fields

        document, created = await self._store.upsert(
            BUDGETS,
            self.key_filters(incoming.key),
            self.to_document(incoming),
            apply,
            permissions=Permission.owner(incoming.user_id),
            owner=incoming.user_id,
            document_id=incoming.id,
        )
        return self.from_document(document), created


class GoalRepository:
    """Goals collection."""

    def __init__(self, store: DocumentStoreInterface):
        self._store = store

    @staticmethod
    def to_document(goal: Goal) -> Document:
        return {
            "userId": goal.user_id,
            "title": goal.title,
            "targetAmount": goal.target_amount,
            "savedAmount": goal.saved_amount,
            "deadline": goal.deadline.isoformat(),
            "description": goal.description or "",
            "completed": goal.completed,
        }

    @staticmethod
    def from_document(document: Document) -> Goal:
        return Goal(
            id=document[ID_KEY],
            user_id=document["userId"],
            title=document["title"],
            target_amount=document["targetAmount"],
            saved_amount=_value(document, "savedAmount") or Decimal("0"),
            deadline=document["deadline"],
            description=_value(document, "description"),
        )

    async def create(self, goal: Goal) -> Goal:
        document = await self._store.create(
            GOALS,
            goal.id,
            self.to_document(goal),
            permissions=Permission.owner(goal.user_id),
        )
        return self.from_document(document)

    async def get(self, goal_id: str, user_id: str) -> Goal:
        document = await self._store.get(GOALS, goal_id, owner=user_id)
        return self.from_document(document)

    async def update(self, goal: Goal) -> Goal:
        document = await self._store.update(
            GOALS,
            goal.id,
            self.to_document(goal),
            owner=goal.user_id,
        )
        return self.from_document(document)

    async def delete(self, goal_id: str, user_id: str) -> None:
        await self._store.delete(GOALS, goal_id, owner=user_id)

    async def list_for_user(self, user_id: str) -> list[Goal]:
        documents = await _scan(self._store, GOALS, [Equal("userId", user_id)], owner=user_id)
        return [self.from_document(d) for d in documents]


class ProfileRepository:
    """Profiles collection. Profile document id == user id."""

    def __init__(self, store: DocumentStoreInterface):
        self._store = store

    @staticmethod
    def to_document(profile: Profile) -> Document:
        return {
            "username": profile.username,
            "email": profile.email,
            "firstName": profile.first_name or "",
            "lastName": profile.last_name or "",
            "birthDate": profile.birth_date.isoformat() if profile.birth_date else "",
            "avatarUrl": profile.avatar_url or "",
            "createdDate": profile.created_date.isoformat(),
        }

    @staticmethod
    def from_document(document: Document) -> Profile:
        fields = {}
        created = _value(document, "createdDate") or document.get("$createdAt")
        if created:
            fields["created_date"] = created
        return Profile(
            id=document[ID_KEY],
            username=document["username"],
            email=document["email"],
            first_name=_value(document, "firstName"),
            last_name=_value(document, "lastName"),
            birth_date=_value(document, "birthDate"),
            avatar_url=_value(document, "avatarUrl"),
            **fields,
        )

    async def create(self, profile: Profile) -> Profile:
        document = await self._store.create(
            PROFILES,
            profile.id,
            self.to_document(profile),
            permissions=Permission.owner(profile.id),
        )
        return self.from_document(document)

    async def find(self, user_id: str) -> Optional[Profile]:
        try:
            document = await self._store.get(PROFILES, user_id, owner=user_id)
        except NotFoundError:
            return None
        return self.from_document(document)

    async def find_by_email(self, email: str, user_id: str) -> Optional[Profile]:
        """Fallback lookup for profiles created before ids were aligned."""
        page = await self._store.query(
            PROFILES,
            [Equal("email", email.lower())],
            limit=1,
            owner=user_id,
        )
        if not page.documents:
            return None
        return self.from_document(page.documents[0])

    async def update(self, profile: Profile) -> Profile:
        document = await self._store.update(
            PROFILES,
            profile.id,
            self.to_document(profile),
            owner=profile.id,
        )
        return self.from_document(document)
