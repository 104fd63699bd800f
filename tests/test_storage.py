"""Tests for the document store contract and the repositories."""

import asyncio
from datetime import date
from decimal import Decimal

import pytest

from finance_tracker.models.finance import Budget, BudgetKey, Goal, Profile, TransactionFilters
from finance_tracker.services.storage import (
    DuplicateError,
    NotFoundError,
    PermissionDeniedError,
)
from finance_tracker.services.storage.interface import (
    Between,
    Equal,
    Permission,
    to_cell,
)
from finance_tracker.services.storage.repositories import month_bounds

from tests.conftest import USER_ID, make_transaction


class TestFilters:
    """Filters compare on the normalized cell form."""

    def test_to_cell(self):
        assert to_cell(None) == ""
        assert to_cell(True) == "true"
        assert to_cell(date(2024, 1, 5)) == "2024-01-05"
        assert to_cell(Decimal("300.50")) == "300.50"

    def test_equal_matches_across_types(self):
        assert Equal("amount", Decimal("300")).matches({"amount": "300"})
        assert Equal("autoCreated", True).matches({"autoCreated": "true"})
        assert not Equal("category", "Food").matches({"category": "Travel"})

    def test_between_is_inclusive(self):
        between = Between("date", "2024-01-01", "2024-01-31")
        assert between.matches({"date": "2024-01-01"})
        assert between.matches({"date": "2024-01-31"})
        assert not between.matches({"date": "2024-02-01"})
        assert not between.matches({})

    def test_month_bounds_handles_leap_year(self):
        assert month_bounds("2024-02") == ("2024-02-01", "2024-02-29")
        assert month_bounds("2023-12") == ("2023-12-01", "2023-12-31")


class TestInMemoryDocumentStore:
    """Tests for the in-memory store."""

    def test_create_get_update_delete(self, store):
        async def scenario():
            created = await store.create(
                "notes", "n1", {"text": "hi"}, permissions=Permission.owner("u1")
            )
            assert created["$id"] == "n1"
            assert created["$createdAt"]

            updated = await store.update("notes", "n1", {"text": "bye"}, owner="u1")
            assert updated["text"] == "bye"

            fetched = await store.get("notes", "n1", owner="u1")
            assert fetched["text"] == "bye"

            await store.delete("notes", "n1", owner="u1")
            with pytest.raises(NotFoundError):
                await store.get("notes", "n1")

        asyncio.run(scenario())

    def test_duplicate_id_rejected(self, store):
        async def scenario():
            await store.create("notes", "n1", {"text": "a"})
            with pytest.raises(DuplicateError):
                await store.create("notes", "n1", {"text": "b"})

        asyncio.run(scenario())

    def test_permissions_enforced(self, store):
        async def scenario():
            await store.create("notes", "n1", {"text": "a"}, permissions=Permission.owner("u1"))
            with pytest.raises(PermissionDeniedError):
                await store.get("notes", "n1", owner="u2")
            with pytest.raises(PermissionDeniedError):
                await store.update("notes", "n1", {"text": "x"}, owner="u2")
            page = await store.query("notes", owner="u2")
            assert page.total == 0

        asyncio.run(scenario())

    def test_query_paginates_with_total(self, store):
        async def scenario():
            for i in range(5):
                await store.create("notes", f"n{i}", {"kind": "a" if i % 2 else "b"})
            page = await store.query("notes", [Equal("kind", "b")], limit=2, offset=0)
            assert page.total == 3
            assert [d["$id"] for d in page.documents] == ["n0", "n2"]
            page = await store.query("notes", [Equal("kind", "b")], limit=2, offset=2)
            assert [d["$id"] for d in page.documents] == ["n4"]

        asyncio.run(scenario())

    def test_returned_documents_are_copies(self, store):
        async def scenario():
            doc = await store.create("notes", "n1", {"text": "a"})
            doc["text"] = "changed"
            assert (await store.get("notes", "n1"))["text"] == "a"

        asyncio.run(scenario())

    def test_upsert_creates_then_updates(self, store):
        async def scenario():
            key = [Equal("name", "k")]

            def bump(existing):
                return {"count": existing["count"] + 1}

            doc, created = await store.upsert("counters", key, {"name": "k", "count": 1}, bump)
            assert created
            doc, created = await store.upsert("counters", key, {"name": "k", "count": 1}, bump)
            assert not created
            assert doc["count"] == 2
            assert (await store.query("counters")).total == 1

        asyncio.run(scenario())


class TestTransactionRepository:
    """Tests for transaction persistence and listing."""

    def test_round_trip(self, transactions):
        async def scenario():
            tx = make_transaction(amount="42.50", note="lunch")
            saved = await transactions.create(tx)
            fetched = await transactions.get(saved.id, USER_ID)
            assert fetched == tx

        asyncio.run(scenario())

    def test_list_page_filters(self, transactions):
        async def scenario():
            await transactions.create(make_transaction(category="Food", day=date(2024, 1, 5)))
            await transactions.create(make_transaction(category="Travel", day=date(2024, 1, 20)))
            await transactions.create(make_transaction(category="Food", day=date(2024, 2, 1)))
            await transactions.create(make_transaction(type="income", category="Salary"))
            await transactions.create(make_transaction(user_id="someone-else"))

            page = await transactions.list_page(USER_ID, TransactionFilters())
            assert page.total == 4

            page = await transactions.list_page(USER_ID, TransactionFilters(type="expense"))
            assert page.total == 3

            page = await transactions.list_page(USER_ID, TransactionFilters(
                category="Food",
                start_date=date(2024, 1, 1),
                end_date=date(2024, 1, 31),
            ))
            assert page.total == 1
            assert page.transactions[0].date == date(2024, 1, 5)

            page = await transactions.list_page(USER_ID, TransactionFilters(page=2, limit=3))
            assert page.total == 4
            assert len(page.transactions) == 1
            assert page.page_count == 2

        asyncio.run(scenario())

    def test_expenses_for_budget_key(self, transactions):
        async def scenario():
            await transactions.create(make_transaction(amount="300", day=date(2024, 1, 31)))
            await transactions.create(make_transaction(amount="200", day=date(2024, 2, 1)))
            await transactions.create(make_transaction(type="income", category="Food"))

            expenses = await transactions.expenses_for(BudgetKey(USER_ID, "Food", "2024-01"))
            assert [t.amount for t in expenses] == [Decimal("300")]

        asyncio.run(scenario())


class TestBudgetRepository:
    """Tests for budget upserts by logical key."""

    def test_add_spent_auto_creates_once(self, budgets):
        async def scenario():
            key = BudgetKey(USER_ID, "Food", "2024-01")
            budget, created = await budgets.add_spent(key, Decimal("300"))
            assert created
            assert budget.auto_created
            assert budget.budget_amount == Decimal("0")

            budget, created = await budgets.add_spent(key, Decimal("200"))
            assert not created
            assert budget.spent_amount == Decimal("500")
            assert len(await budgets.list_for_month(USER_ID, "2024-01")) == 1

        asyncio.run(scenario())

    def test_subtract_spent_floors_at_zero(self, budgets):
        async def scenario():
            key = BudgetKey(USER_ID, "Food", "2024-01")
            assert await budgets.subtract_spent(key, Decimal("10")) is None

            await budgets.add_spent(key, Decimal("100"))
            budget = await budgets.subtract_spent(key, Decimal("250"))
            assert budget.spent_amount == Decimal("0")

        asyncio.run(scenario())

    def test_merge_sums_amounts(self, budgets):
        async def scenario():
            first = Budget(
                user_id=USER_ID, category="Food", month="2024-01",
                budget_amount=Decimal("500"),
            )
            merged, created = await budgets.merge(first)
            assert created

            second = Budget(
                user_id=USER_ID, category="Food", month="2024-01",
                budget_amount=Decimal("100"), spent_amount=Decimal("20"),
            )
            merged, created = await budgets.merge(second)
            assert not created
            assert merged.id == first.id
            assert merged.budget_amount == Decimal("600")
            assert merged.spent_amount == Decimal("20")

        asyncio.run(scenario())

    def test_merge_claims_auto_created_budget(self, budgets):
        async def scenario():
            key = BudgetKey(USER_ID, "Food", "2024-01")
            await budgets.add_spent(key, Decimal("50"))
            merged, created = await budgets.merge(Budget(
                user_id=USER_ID, category="Food", month="2024-01",
                budget_amount=Decimal("400"),
            ))
            assert not created
            assert merged.auto_created is False
            assert merged.spent_amount == Decimal("50")

        asyncio.run(scenario())


class TestGoalAndProfileRepositories:
    """Tests for goals and profiles."""

    def test_goal_round_trip(self, goals):
        async def scenario():
            goal = Goal(
                user_id=USER_ID,
                title="Bike",
                target_amount=Decimal("500"),
                deadline=date(2024, 12, 31),
            )
            await goals.create(goal)
            listed = await goals.list_for_user(USER_ID)
            assert [g.title for g in listed] == ["Bike"]
            assert listed[0].description is None

        asyncio.run(scenario())

    def test_profile_find_missing_returns_none(self, profiles):
        async def scenario():
            assert await profiles.find("nobody") is None

            await profiles.create(Profile(id=USER_ID, username="ann", email="ann@x.io"))
            found = await profiles.find(USER_ID)
            assert found.username == "ann"
            assert found.first_name is None

            by_email = await profiles.find_by_email("ANN@x.io", USER_ID)
            assert by_email.id == USER_ID

        asyncio.run(scenario())
