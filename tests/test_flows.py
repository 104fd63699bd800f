"""
Integration tests for the orchestrator flows.

Everything runs against the in-memory document store; the avatar store
is replaced by a fake that keeps uploads in a dict.
"""

import asyncio
from datetime import date
from decimal import Decimal

import pytest

from finance_tracker.config import validate_all_settings
from finance_tracker.models.audit import AuditEventType
from finance_tracker.models.finance import (
    Budget,
    BudgetKey,
    Goal,
    Profile,
    ProfileUpdate,
    TransactionFilters,
)
from finance_tracker.orchestrator import (
    AuthFlow,
    BudgetFlow,
    DashboardFlow,
    GoalFlow,
    ProfileFlow,
    TransactionFlow,
    create_app_components,
)
from finance_tracker.services.blob import CloudinaryAvatarStore, InvalidAvatarError
from finance_tracker.services.identity import DocumentStoreIdentityProvider
from finance_tracker.services.storage import (
    GoalRepository,
    InMemoryDocumentStore,
    StorageConnectionError,
)
from finance_tracker.services.storage.interface import Permission
from finance_tracker.services.storage.repositories import PROFILES
from finance_tracker.session import SessionManager
from finance_tracker.validation import (
    TransactionValidator,
    ValidationFailedError,
    ValidationIssue,
    ValidationResult,
)

from tests.conftest import USER_ID, make_transaction


class FakeAvatarStore:
    """Keeps uploads in memory."""

    default_bucket = "avatars"

    def __init__(self):
        self.uploads = {}

    async def upload(self, bucket, file_id, data):
        if data == b"bad":
            raise InvalidAvatarError("Avatar is not a readable image")
        self.uploads[(bucket, file_id)] = data
        return file_id

    def file_url(self, bucket, file_id):
        return f"https://cdn.test/{bucket}/{file_id}"


class FlakyGoalRepository(GoalRepository):
    """Goal repository whose updates fail while `failing` is set."""

    failing = False

    async def update(self, goal):
        if self.failing:
            raise StorageConnectionError("goals unavailable")
        return await super().update(goal)


class RejectingValidator(TransactionValidator):
    """Fails every transaction."""

    def validate(self, transaction, today=None):
        return ValidationResult(issues=[ValidationIssue(
            field="amount", issue_type="invalid_value", message="rejected", severity="error",
        )])


def event_types(audit_storage):
    return [e.event_type for e in audit_storage.events]


@pytest.fixture
def profile_flow(profiles, audit_logger):
    return ProfileFlow(profiles, FakeAvatarStore(), audit_logger)


@pytest.fixture
def auth(store, profile_flow, audit_logger):
    return AuthFlow(
        DocumentStoreIdentityProvider(store),
        profile_flow,
        audit_logger,
        session_manager=SessionManager(timeout_seconds=60, warning_seconds=10),
    )


class TestAuthFlow:
    """Signup, login and logout."""

    def test_signup_creates_profile_and_session(self, auth, audit_storage):
        async def scenario():
            profile = await auth.signup("ann@example.com", "pw-123456", "ann")
            assert profile.username == "ann"
            assert profile.email == "ann@example.com"
            assert auth.session.active

            current = await auth.current_profile()
            assert current.id == profile.id
            assert AuditEventType.USER_SIGNED_UP in event_types(audit_storage)
            auth.session.stop()

        asyncio.run(scenario())

    def test_login_falls_back_to_email(self, store, auth):
        async def scenario():
            identity = auth._identity
            user = await identity.create_account("ann@example.com", "pw-123456", "Ann")
            await store.create(
                PROFILES,
                "legacy-profile",
                {"username": "old-ann", "email": "ann@example.com"},
                permissions=Permission.owner(user.id),
            )

            profile = await auth.login("ann@example.com", "pw-123456")
            assert profile.id == "legacy-profile"
            assert profile.username == "old-ann"
            auth.session.stop()

        asyncio.run(scenario())

    def test_login_creates_missing_profile(self, auth, profiles, audit_storage):
        async def scenario():
            user = await auth._identity.create_account("bob@example.com", "pw-123456", "Bob")

            profile = await auth.login("bob@example.com", "pw-123456")
            assert profile.id == user.id
            assert profile.username == "Bob"
            assert await profiles.find(user.id) is not None
            assert AuditEventType.PROFILE_CREATED in event_types(audit_storage)
            auth.session.stop()

        asyncio.run(scenario())

    def test_logout_never_raises(self, auth, audit_storage):
        async def scenario():
            await auth.logout()
            assert not auth.session.active
            assert AuditEventType.EXTERNAL_SERVICE_ERROR in event_types(audit_storage)
            assert AuditEventType.USER_LOGGED_OUT not in event_types(audit_storage)

        asyncio.run(scenario())

    def test_expiry_logs_out(self, auth, audit_storage):
        async def scenario():
            await auth.signup("ann@example.com", "pw-123456", "ann")
            await auth.expire()
            assert await auth.current_profile() is None
            assert not auth.session.active
            types = event_types(audit_storage)
            assert types.index(AuditEventType.SESSION_EXPIRED) < types.index(
                AuditEventType.USER_LOGGED_OUT
            )

        asyncio.run(scenario())


class TestTransactionFlow:
    """Transaction writes followed by reconciliation."""

    @pytest.fixture
    def flow(self, transactions, reconciler, audit_logger):
        return TransactionFlow(transactions, reconciler, audit_logger=audit_logger)

    def test_add_edit_remove(self, flow, budgets, audit_storage):
        async def scenario():
            tx = await flow.add(make_transaction(amount="300"))
            assert (await budgets.find(BudgetKey(USER_ID, "Food", "2024-01"))).spent_amount == Decimal("300")

            edited = await flow.edit(tx.model_copy(update={"category": "Travel"}))
            assert edited.category == "Travel"
            assert (await budgets.find(BudgetKey(USER_ID, "Food", "2024-01"))).spent_amount == Decimal("0")
            assert (await budgets.find(BudgetKey(USER_ID, "Travel", "2024-01"))).spent_amount == Decimal("300")

            await flow.remove(tx.id, USER_ID)
            assert (await budgets.find(BudgetKey(USER_ID, "Travel", "2024-01"))).spent_amount == Decimal("0")

            created = [
                e for e in audit_storage.events
                if e.event_type == AuditEventType.TRANSACTION_CREATED
            ][0]
            reconciled = [
                e for e in audit_storage.events
                if e.event_type == AuditEventType.BUDGET_AUTO_CREATED
            ][0]
            assert created.correlation_id == reconciled.correlation_id

        asyncio.run(scenario())

    def test_invalid_transaction_never_written(self, transactions, reconciler):
        async def scenario():
            flow = TransactionFlow(transactions, reconciler, validator=RejectingValidator())
            with pytest.raises(ValidationFailedError):
                await flow.add(make_transaction())
            assert await transactions.list_all(USER_ID) == []

        asyncio.run(scenario())

    def test_off_list_category_is_saved(self, flow, budgets):
        async def scenario():
            saved = await flow.add(make_transaction(amount="20", category="Salary"))
            assert saved.category == "Salary"
            budget = await budgets.find(BudgetKey(USER_ID, "Salary", "2024-01"))
            assert budget.spent_amount == Decimal("20")

        asyncio.run(scenario())

    def test_list_with_filters(self, flow):
        async def scenario():
            await flow.add(make_transaction(amount="10"))
            await flow.add(make_transaction(type="income", amount="99", category="Salary"))
            page = await flow.list(USER_ID)
            assert page.total == 2
            page = await flow.list(USER_ID, TransactionFilters(type="income"))
            assert [t.amount for t in page.transactions] == [Decimal("99")]

        asyncio.run(scenario())


class TestBudgetFlow:
    """The budget page."""

    @pytest.fixture
    def flow(self, budgets, reconciler, audit_logger):
        return BudgetFlow(budgets, reconciler, audit_logger=audit_logger)

    def test_create_update_list_delete(self, flow, reconciler):
        async def scenario():
            result = await flow.create(Budget(
                user_id=USER_ID, category="Food", month="2024-01",
                budget_amount=Decimal("500"),
            ))
            await reconciler.on_transaction_created(make_transaction(amount="450"))

            updated = await flow.update(
                result.budget.id, USER_ID, budget_amount=Decimal("600"), alert_threshold=70
            )
            assert updated.budget_amount == Decimal("600")
            assert updated.spent_amount == Decimal("450")
            assert updated.alert_threshold == 70

            listed = await flow.list_for_month(USER_ID, "2024-01")
            assert len(listed) == 1
            budget, status = listed[0]
            assert status.percent_used == 75.0
            assert status.threshold_reached
            assert not status.overspent

            await flow.delete(budget.id, USER_ID)
            assert await flow.list_for_month(USER_ID, "2024-01") == []

        asyncio.run(scenario())

    def test_zero_budget_with_spending_accepted(self, flow, transactions):
        async def scenario():
            result = await flow.create(Budget(
                user_id=USER_ID, category="Food", month="2024-01",
                spent_amount=Decimal("30"),
            ))
            assert result.created
            assert result.budget.budget_amount == Decimal("0")
            assert result.budget.spent_amount == Decimal("30")
            assert len(await transactions.list_all(USER_ID, "2024-01")) == 1

        asyncio.run(scenario())

    def test_auto_created_budget_is_editable(self, flow, reconciler):
        async def scenario():
            auto = await reconciler.on_transaction_created(make_transaction(amount="50"))
            assert auto.budget_amount == Decimal("0")

            updated = await flow.update(auto.id, USER_ID, notes="groceries", alert_threshold=90)
            assert updated.notes == "groceries"
            assert updated.alert_threshold == 90
            assert updated.spent_amount == Decimal("50")

        asyncio.run(scenario())

    def test_synthetic_transaction_of_any_budget_is_editable(
        self, flow, transactions, reconciler, budgets
    ):
        async def scenario():
            result = await flow.create(Budget(
                user_id=USER_ID, category="Salary", month="2024-01",
                budget_amount=Decimal("100"), spent_amount=Decimal("30"),
            ))
            synthetic = result.synthetic_transaction

            transaction_flow = TransactionFlow(transactions, reconciler)
            edited = await transaction_flow.edit(synthetic.model_copy(update={"note": "payroll fee"}))
            assert edited.note == "payroll fee"
            budget = await budgets.find(BudgetKey(USER_ID, "Salary", "2024-01"))
            assert budget.spent_amount == Decimal("30")

        asyncio.run(scenario())

    def test_rebuild(self, flow, transactions):
        async def scenario():
            await transactions.create(make_transaction(amount="30"))
            rebuilt = await flow.rebuild(USER_ID, "Food", "2024-01")
            assert rebuilt.spent_amount == Decimal("30")

        asyncio.run(scenario())


class TestGoalFlow:
    """Goals with optimistic edits."""

    @pytest.fixture
    def repository(self, store):
        return FlakyGoalRepository(store)

    @pytest.fixture
    def flow(self, repository, audit_logger):
        return GoalFlow(repository, audit_logger=audit_logger)

    def make_goal(self, **extra):
        fields = {
            "user_id": USER_ID,
            "title": "Bike",
            "target_amount": Decimal("500"),
            "deadline": date(2099, 1, 1),
        }
        fields.update(extra)
        return Goal(**fields)

    def test_add_starts_at_zero(self, flow):
        async def scenario():
            goal = await flow.add(self.make_goal(saved_amount=Decimal("100")))
            assert goal.saved_amount == Decimal("0")
            assert [g.id for g in flow.goals] == [goal.id]

        asyncio.run(scenario())

    def test_progress_completes_goal(self, flow):
        async def scenario():
            goal = await flow.add(self.make_goal())
            goal = await flow.update_progress(goal.id, USER_ID, Decimal("200"))
            assert not goal.completed
            goal = await flow.update_progress(goal.id, USER_ID, Decimal("300"))
            assert goal.completed
            assert flow.goals[0].completed

        asyncio.run(scenario())

    def test_edit_success(self, flow):
        async def scenario():
            goal = await flow.add(self.make_goal())
            edited = await flow.edit(goal.model_copy(update={"title": "Car"}))
            assert edited.title == "Car"
            assert [g.title for g in await flow.list(USER_ID)] == ["Car"]

        asyncio.run(scenario())

    def test_failed_edit_rolls_back(self, flow, repository, audit_storage):
        async def scenario():
            goal = await flow.add(self.make_goal())
            before = flow.goals

            repository.failing = True
            with pytest.raises(StorageConnectionError):
                await flow.edit(goal.model_copy(update={"title": "Car"}))

            assert flow.goals == before
            assert flow.goals[0].title == "Bike"
            assert AuditEventType.GOAL_EDIT_ROLLED_BACK in event_types(audit_storage)

        asyncio.run(scenario())

    def test_delete(self, flow):
        async def scenario():
            goal = await flow.add(self.make_goal())
            await flow.delete(goal.id, USER_ID)
            assert flow.goals == []
            assert await flow.list(USER_ID) == []

        asyncio.run(scenario())


class TestProfileFlow:
    """Profile edits and avatars."""

    def test_email_cannot_change(self, profile_flow, profiles):
        async def scenario():
            await profiles.create(Profile(id=USER_ID, username="ann", email="ann@x.io"))
            changes = ProfileUpdate.model_validate({
                "username": "annie",
                "first_name": "Ann",
                "email": "evil@x.io",
            })
            updated = await profile_flow.update(USER_ID, changes)
            assert updated.username == "annie"
            assert updated.first_name == "Ann"
            assert updated.email == "ann@x.io"
            assert (await profiles.find(USER_ID)).email == "ann@x.io"

        asyncio.run(scenario())

    def test_upload_avatar(self, profile_flow, profiles, audit_storage):
        async def scenario():
            await profiles.create(Profile(id=USER_ID, username="ann", email="ann@x.io"))
            profile = await profile_flow.upload_avatar(USER_ID, b"png-bytes")
            assert profile.avatar_url.startswith("https://cdn.test/avatars/")
            assert AuditEventType.AVATAR_UPLOADED in event_types(audit_storage)

        asyncio.run(scenario())

    def test_rejected_avatar_keeps_profile(self, profile_flow, profiles, audit_storage):
        async def scenario():
            await profiles.create(Profile(id=USER_ID, username="ann", email="ann@x.io"))
            with pytest.raises(InvalidAvatarError):
                await profile_flow.upload_avatar(USER_ID, b"bad")
            assert (await profiles.find(USER_ID)).avatar_url is None
            assert AuditEventType.EXTERNAL_SERVICE_ERROR in event_types(audit_storage)

        asyncio.run(scenario())


class TestDashboardFlow:
    """Dashboard wiring."""

    def test_summary(self, transactions, goals):
        async def scenario():
            await transactions.create(make_transaction(
                type="income", amount="1000", category="Salary", day=date(2024, 1, 1)
            ))
            await transactions.create(make_transaction(amount="400", day=date(2024, 1, 2)))
            await goals.create(Goal(
                user_id=USER_ID, title="Bike",
                target_amount=Decimal("100"), saved_amount=Decimal("50"),
                deadline=date(2024, 12, 31),
            ))

            flow = DashboardFlow(transactions, goals, due_soon_days=7)
            summary = await flow.summary(USER_ID, month="2024-01", today=date(2024, 1, 1))
            assert summary.totals.net == Decimal("600")
            assert [p.balance for p in summary.balance_series] == [Decimal("1000"), Decimal("600")]
            assert summary.goals[0].percent == 50.0
            assert summary.upcoming_payments[0].due_soon

        asyncio.run(scenario())


class TestAppComponents:
    """Factory wiring."""

    def test_in_memory_components_share_a_store(self):
        async def scenario():
            app = create_app_components(
                store=InMemoryDocumentStore(),
                avatar_store=FakeAvatarStore(),
            )
            assert app.sheets_client is None

            profile = await app.auth.signup("ann@example.com", "pw-123456", "ann")
            await app.transactions.add(make_transaction(user_id=profile.id, amount="25"))
            listed = await app.budgets.list_for_month(profile.id, "2024-01")
            assert listed[0][0].spent_amount == Decimal("25")
            app.auth.session.stop()

        asyncio.run(scenario())

    def test_unconfigured_collaborators_fall_back(self, monkeypatch):
        for name in ("CLOUDINARY_CLOUD_NAME", "CLOUDINARY_API_KEY", "CLOUDINARY_API_SECRET"):
            monkeypatch.delenv(name, raising=False)
        configured = validate_all_settings()
        assert configured["cloudinary"] is False
        assert "cloudinary_error" in configured
        assert configured["session"] is True

        app = create_app_components(use_storage=False)
        assert app.sheets_client is None
        assert app.profiles._avatar_store is None

    def test_configured_avatar_store_is_built(self, monkeypatch):
        monkeypatch.setenv("CLOUDINARY_CLOUD_NAME", "demo")
        monkeypatch.setenv("CLOUDINARY_API_KEY", "key")
        monkeypatch.setenv("CLOUDINARY_API_SECRET", "secret")
        assert validate_all_settings()["cloudinary"] is True

        app = create_app_components(use_storage=False)
        assert isinstance(app.profiles._avatar_store, CloudinaryAvatarStore)
