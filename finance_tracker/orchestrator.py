"""
Main Orchestrator for Finance Tracker

This module ties together all the components and defines the
end-to-end flows for:
1. Auth (signup / login / logout, with the inactivity timer)
2. Transactions (write → reconcile the matching budget)
3. Budgets (manual entry merged by key, status, rebuild)
4. Goals (progress and optimistic edits)
5. Profile (failsafe creation, immutable email, avatar upload)
6. Dashboard (fetch → pure aggregation)

DESIGN DECISION: The orchestrator enforces the ordering:
- Validation happens before any remote call
- The transaction write happens before its budget write
- Every write is audited, every user action gets a correlation id

Remote calls inside one flow are strictly sequential. There is no
rollback across collaborators; a failed budget write surfaces as
ReconciliationError after the transaction is already stored.
"""

from datetime import date
from decimal import Decimal
from typing import NamedTuple, Optional

import structlog

from finance_tracker.audit import AuditLogger, create_correlation_id
from finance_tracker.config import get_settings, validate_all_settings
from finance_tracker.metrics import budget_status, build_dashboard
from finance_tracker.models.audit import AuditEventType, AuditSeverity
from finance_tracker.models.dashboard import BudgetStatus, DashboardSummary
from finance_tracker.models.finance import (
    Budget,
    BudgetKey,
    Goal,
    Profile,
    ProfileUpdate,
    Transaction,
    TransactionFilters,
    TransactionPage,
    new_document_id,
)
from finance_tracker.reconciliation import BudgetReconciler, ManualBudgetResult
from finance_tracker.services.blob import BlobStoreError, CloudinaryAvatarStore
from finance_tracker.services.identity import (
    DocumentStoreIdentityProvider,
    IdentityProviderInterface,
    NotAuthenticatedError,
    User,
)
from finance_tracker.services.storage import (
    BudgetRepository,
    DocumentStoreInterface,
    GoalRepository,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsDocumentStore,
    InMemoryDocumentStore,
    NotFoundError,
    ProfileRepository,
    TransactionRepository,
)
from finance_tracker.session import SessionManager
from finance_tracker.validation import (
    BudgetValidator,
    GoalValidator,
    TransactionValidator,
    ensure_valid,
)


logger = structlog.get_logger()


def _revalidate(goal: Goal, **changes) -> Goal:
    """Copy a goal with changes applied, re-deriving `completed`."""
    return Goal.model_validate({**goal.model_dump(), **changes})


class ProfileFlow:
    """
    Orchestrates profile reads and writes.

    A profile is expected at id == user id. Older profiles may only be
    findable by email; a missing profile is created on the spot so a
    logged-in user always has one.
    """

    def __init__(
        self,
        profiles: ProfileRepository,
        avatar_store: Optional[CloudinaryAvatarStore] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._profiles = profiles
        self._avatar_store = avatar_store
        self._audit_logger = audit_logger or AuditLogger()

    async def create(self, user: User, username: Optional[str] = None) -> Profile:
        profile = await self._profiles.create(Profile(
            id=user.id,
            username=username or user.name or user.email.split("@")[0],
            email=user.email,
        ))
        await self._audit_logger.log_entity(
            event_type=AuditEventType.PROFILE_CREATED,
            entity_type="profile",
            entity_id=profile.id,
            user_id=user.id,
            description=f"Profile created for {profile.email}",
        )
        return profile

    async def get(self, user: User) -> Profile:
        """Profile by id, then by email, else create it."""
        profile = await self._profiles.find(user.id)
        if profile is None:
            profile = await self._profiles.find_by_email(user.email, user.id)
        if profile is None:
            logger.warning("profile_missing_creating", user_id=user.id)
            profile = await self.create(user)
        return profile

    async def update(self, profile_id: str, changes: ProfileUpdate) -> Profile:
        """
        Apply profile edits.

        The email always keeps its stored value, whatever the caller sends.
        """
        current = await self._profiles.find(profile_id)
        if current is None:
            raise NotFoundError(f"Profile not found: {profile_id}")

        updated = Profile.model_validate({
            **current.model_dump(),
            **changes.model_dump(exclude_none=True),
            "email": current.email,
        })
        saved = await self._profiles.update(updated)

        await self._audit_logger.log_entity(
            event_type=AuditEventType.PROFILE_UPDATED,
            entity_type="profile",
            entity_id=saved.id,
            user_id=saved.id,
            description="Profile updated",
            details={"fields": sorted(changes.model_dump(exclude_none=True))},
        )
        return saved

    async def upload_avatar(self, profile_id: str, data: bytes) -> Profile:
        """Upload avatar bytes and point the profile at the new image."""
        if self._avatar_store is None:
            raise BlobStoreError("Avatar storage is not configured")

        bucket = self._avatar_store.default_bucket
        try:
            file_id = await self._avatar_store.upload(bucket, new_document_id(), data)
        except BlobStoreError as e:
            await self._audit_logger.log_external_service_error(
                service="cloudinary",
                error_message=str(e),
            )
            raise

        url = self._avatar_store.file_url(bucket, file_id)
        profile = await self.update(profile_id, ProfileUpdate(avatar_url=url))

        await self._audit_logger.log_entity(
            event_type=AuditEventType.AVATAR_UPLOADED,
            entity_type="profile",
            entity_id=profile_id,
            user_id=profile_id,
            description="Avatar uploaded",
            details={"file_id": file_id, "bucket": bucket},
        )
        return profile


class AuthFlow:
    """
    Orchestrates signup, login and logout.

    Flow (login):
    1. Create a session with the identity provider
    2. Resolve the profile (id → email → create)
    3. Start the inactivity timer
    """

    def __init__(
        self,
        identity: IdentityProviderInterface,
        profile_flow: ProfileFlow,
        audit_logger: Optional[AuditLogger] = None,
        session_manager: Optional[SessionManager] = None,
    ):
        self._identity = identity
        self._profile_flow = profile_flow
        self._audit_logger = audit_logger or AuditLogger()
        self._session = session_manager or SessionManager(on_expired=self.expire)

    @property
    def session(self) -> SessionManager:
        return self._session

    async def signup(self, email: str, password: str, username: str) -> Profile:
        """Create an account, log in and create the profile."""
        account = await self._identity.create_account(email, password, username)
        user = await self._identity.create_session(account.email, password)
        profile = await self._profile_flow.create(user, username=username)

        await self._audit_logger.log_session(
            AuditEventType.USER_SIGNED_UP, user.id, f"Signed up as {user.email}"
        )
        self._session.start()
        return profile

    async def login(self, email: str, password: str) -> Profile:
        user = await self._identity.create_session(email, password)
        profile = await self._profile_flow.get(user)

        await self._audit_logger.log_session(
            AuditEventType.USER_LOGGED_IN, user.id, f"Logged in as {user.email}"
        )
        self._session.start()
        return profile

    async def logout(self) -> None:
        """
        End the session.

        Never raises: a failing identity provider is logged and the local
        session is dropped anyway.
        """
        self._session.stop()
        user = await self._identity.get_current_user()
        try:
            await self._identity.delete_session()
        except Exception as e:
            await self._audit_logger.log_external_service_error(
                service="identity",
                error_message=f"Logout failed: {e}",
            )
            return

        await self._audit_logger.log_session(
            AuditEventType.USER_LOGGED_OUT,
            user.id if user else None,
            "Logged out",
        )

    async def expire(self) -> None:
        """Inactivity timeout: audit it and log out."""
        user = await self._identity.get_current_user()
        await self._audit_logger.log_session(
            AuditEventType.SESSION_EXPIRED,
            user.id if user else None,
            f"Logged out after {self._session.timeout_seconds:g}s of inactivity",
        )
        await self.logout()

    def touch(self) -> None:
        """Record user activity."""
        self._session.touch()

    async def require_user(self) -> User:
        user = await self._identity.get_current_user()
        if user is None:
            raise NotAuthenticatedError("Login required")
        return user

    async def current_profile(self) -> Optional[Profile]:
        """The logged-in user's profile, or None when logged out."""
        user = await self._identity.get_current_user()
        if user is None:
            return None
        return await self._profile_flow.get(user)


class TransactionFlow:
    """
    Orchestrates transaction writes.

    Flow (every write):
    1. Validate
    2. Write the transaction
    3. Reconcile the affected budget(s)
    """

    def __init__(
        self,
        transactions: TransactionRepository,
        reconciler: BudgetReconciler,
        validator: Optional[TransactionValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._transactions = transactions
        self._reconciler = reconciler
        self._validator = validator or TransactionValidator()
        self._audit_logger = audit_logger or AuditLogger()

    async def add(self, transaction: Transaction) -> Transaction:
        ensure_valid(self._validator.validate(transaction))
        correlation_id = create_correlation_id()

        saved = await self._transactions.create(transaction)
        await self._audit_logger.log_transaction(
            AuditEventType.TRANSACTION_CREATED, saved, correlation_id=correlation_id
        )
        await self._reconciler.on_transaction_created(saved, correlation_id)
        return saved

    async def edit(self, transaction: Transaction) -> Transaction:
        ensure_valid(self._validator.validate(transaction))
        correlation_id = create_correlation_id()

        previous = await self._transactions.get(transaction.id, transaction.user_id)
        saved = await self._transactions.update(transaction)
        await self._audit_logger.log_transaction(
            AuditEventType.TRANSACTION_UPDATED,
            saved,
            correlation_id=correlation_id,
            previous=previous,
        )
        await self._reconciler.on_transaction_updated(previous, saved, correlation_id)
        return saved

    async def remove(self, transaction_id: str, user_id: str) -> Transaction:
        correlation_id = create_correlation_id()

        removed = await self._transactions.get(transaction_id, user_id)
        await self._transactions.delete(transaction_id, user_id)
        await self._audit_logger.log_transaction(
            AuditEventType.TRANSACTION_DELETED, removed, correlation_id=correlation_id
        )
        await self._reconciler.on_transaction_deleted(removed, correlation_id)
        return removed

    async def list_all(self, user_id: str, month: Optional[str] = None) -> list[Transaction]:
        return await self._transactions.list_all(user_id, month)

    async def list(
        self,
        user_id: str,
        filters: Optional[TransactionFilters] = None,
    ) -> TransactionPage:
        if filters is None:
            filters = TransactionFilters(limit=get_settings().app.default_page_size)
        return await self._transactions.list_page(user_id, filters)


class BudgetFlow:
    """
    Orchestrates the budget page.

    Spent amounts belong to reconciliation: updates from the form change
    the budget amount, notes and alert threshold only. Category and month
    form the budget's key and are fixed once created.
    """

    def __init__(
        self,
        budgets: BudgetRepository,
        reconciler: BudgetReconciler,
        validator: Optional[BudgetValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._budgets = budgets
        self._reconciler = reconciler
        self._validator = validator or BudgetValidator()
        self._audit_logger = audit_logger or AuditLogger()

    async def create(self, budget: Budget) -> ManualBudgetResult:
        ensure_valid(self._validator.validate(budget))
        return await self._reconciler.create_manual_budget(
            budget, correlation_id=create_correlation_id()
        )

    async def update(
        self,
        budget_id: str,
        user_id: str,
        budget_amount: Optional[Decimal] = None,
        notes: Optional[str] = None,
        alert_threshold: Optional[int] = None,
    ) -> Budget:
        current = await self._budgets.get(budget_id, user_id)
        changes = {
            "budget_amount": budget_amount,
            "notes": notes,
            "alert_threshold": alert_threshold,
        }
        updated = Budget.model_validate({
            **current.model_dump(),
            **{k: v for k, v in changes.items() if v is not None},
        })
        ensure_valid(self._validator.validate(updated))

        saved = await self._budgets.update(updated)
        await self._audit_logger.log_entity(
            event_type=AuditEventType.BUDGET_UPDATED,
            entity_type="budget",
            entity_id=saved.id,
            user_id=user_id,
            description=f"Budget {saved.category}/{saved.month} updated",
            details={"budget_amount": str(saved.budget_amount)},
        )
        return saved

    async def delete(self, budget_id: str, user_id: str) -> None:
        await self._budgets.delete(budget_id, user_id)
        await self._audit_logger.log_entity(
            event_type=AuditEventType.BUDGET_DELETED,
            entity_type="budget",
            entity_id=budget_id,
            user_id=user_id,
            description="Budget deleted",
        )

    async def list_for_month(
        self,
        user_id: str,
        month: str,
    ) -> list[tuple[Budget, BudgetStatus]]:
        budgets = await self._budgets.list_for_month(user_id, month)
        return [(budget, budget_status(budget)) for budget in budgets]

    async def rebuild(self, user_id: str, category: str, month: str) -> Optional[Budget]:
        return await self._reconciler.rebuild(BudgetKey(user_id, category, month))


class GoalEditCommand:
    """
    Optimistic goal edit.

    The edited goal replaces the old one in the shared list right away;
    if the remote write fails the list is restored from a snapshot and
    the error is re-raised.
    """

    def __init__(
        self,
        goals: list[Goal],
        repository: GoalRepository,
        edited: Goal,
    ):
        self._goals = goals
        self._repository = repository
        self._edited = edited
        self._snapshot: list[Goal] = []

    def _apply(self, goal: Goal) -> None:
        for index, existing in enumerate(self._goals):
            if existing.id == goal.id:
                self._goals[index] = goal
                return
        self._goals.append(goal)

    def rollback(self) -> None:
        self._goals[:] = self._snapshot

    async def execute(self) -> Goal:
        self._snapshot = list(self._goals)
        self._apply(self._edited)
        try:
            saved = await self._repository.update(self._edited)
        except Exception:
            self.rollback()
            raise
        self._apply(saved)
        return saved


class GoalFlow:
    """
    Orchestrates savings goals.

    Keeps the user's goal list in memory (what the goals page shows) so
    edits can be applied optimistically.
    """

    def __init__(
        self,
        goals: GoalRepository,
        validator: Optional[GoalValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._repository = goals
        self._validator = validator or GoalValidator()
        self._audit_logger = audit_logger or AuditLogger()
        self._goals: list[Goal] = []

    @property
    def goals(self) -> list[Goal]:
        return list(self._goals)

    def _replace(self, goal: Goal) -> None:
        self._goals = [goal if g.id == goal.id else g for g in self._goals]

    async def list(self, user_id: str) -> list[Goal]:
        self._goals = await self._repository.list_for_user(user_id)
        return self.goals

    async def add(self, goal: Goal) -> Goal:
        """Create a goal. New goals always start with nothing saved."""
        goal = _revalidate(goal, saved_amount=Decimal("0"))
        ensure_valid(self._validator.validate(goal))

        saved = await self._repository.create(goal)
        self._goals.append(saved)
        await self._audit_logger.log_entity(
            event_type=AuditEventType.GOAL_CREATED,
            entity_type="goal",
            entity_id=saved.id,
            user_id=saved.user_id,
            description=f"Goal '{saved.title}' created",
            details={"target_amount": str(saved.target_amount)},
        )
        return saved

    async def update_progress(self, goal_id: str, user_id: str, amount: Decimal) -> Goal:
        """Add a contribution to a goal's saved amount."""
        ensure_valid(self._validator.validate_contribution(amount))

        goal = await self._repository.get(goal_id, user_id)
        updated = _revalidate(goal, saved_amount=goal.saved_amount + amount)
        saved = await self._repository.update(updated)
        self._replace(saved)

        await self._audit_logger.log_entity(
            event_type=AuditEventType.GOAL_PROGRESS_UPDATED,
            entity_type="goal",
            entity_id=saved.id,
            user_id=user_id,
            description=f"Added {amount} to '{saved.title}'",
            details={
                "saved_amount": str(saved.saved_amount),
                "completed": saved.completed,
            },
        )
        return saved

    async def edit(self, goal: Goal) -> Goal:
        goal = _revalidate(goal)
        ensure_valid(self._validator.validate(goal))

        command = GoalEditCommand(self._goals, self._repository, goal)
        try:
            saved = await command.execute()
        except Exception as e:
            await self._audit_logger.log_entity(
                event_type=AuditEventType.GOAL_EDIT_ROLLED_BACK,
                entity_type="goal",
                entity_id=goal.id,
                user_id=goal.user_id,
                description=f"Edit of '{goal.title}' rolled back: {e}",
                severity=AuditSeverity.WARNING,
            )
            raise

        await self._audit_logger.log_entity(
            event_type=AuditEventType.GOAL_EDITED,
            entity_type="goal",
            entity_id=saved.id,
            user_id=saved.user_id,
            description=f"Goal '{saved.title}' edited",
        )
        return saved

    async def delete(self, goal_id: str, user_id: str) -> None:
        await self._repository.delete(goal_id, user_id)
        self._goals = [g for g in self._goals if g.id != goal_id]
        await self._audit_logger.log_entity(
            event_type=AuditEventType.GOAL_DELETED,
            entity_type="goal",
            entity_id=goal_id,
            user_id=user_id,
            description="Goal deleted",
        )


class DashboardFlow:
    """Fetches a user's records and runs the aggregator over them."""

    def __init__(
        self,
        transactions: TransactionRepository,
        goals: GoalRepository,
        due_soon_days: Optional[int] = None,
    ):
        self._transactions = transactions
        self._goals = goals
        if due_soon_days is None:
            due_soon_days = get_settings().app.due_soon_days
        self._due_soon_days = due_soon_days

    async def summary(
        self,
        user_id: str,
        month: Optional[str] = None,
        today: Optional[date] = None,
    ) -> DashboardSummary:
        transactions = await self._transactions.list_all(user_id)
        goals = await self._goals.list_for_user(user_id)
        return build_dashboard(
            transactions,
            goals,
            today=today or date.today(),
            month=month,
            due_soon_days=self._due_soon_days,
        )


class AppComponents(NamedTuple):
    """Everything the UI layer needs."""
    auth: AuthFlow
    transactions: TransactionFlow
    budgets: BudgetFlow
    goals: GoalFlow
    profiles: ProfileFlow
    dashboard: DashboardFlow
    sheets_client: Optional[GoogleSheetsClient]


def create_app_components(
    use_storage: bool = True,
    store: Optional[DocumentStoreInterface] = None,
    avatar_store: Optional[CloudinaryAvatarStore] = None,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to initialize Google Sheets storage.
                    Set to False to run against an in-memory store.
        store: Explicit document store (overrides use_storage)
        avatar_store: Explicit blob store for avatars

    Returns:
        AppComponents with every flow wired to the same store
    """
    sheets_client = None
    audit_logger = None

    configured = validate_all_settings()
    for name in ("google_sheets", "cloudinary"):
        if not configured[name]:
            logger.warning(
                "settings_not_configured",
                section=name,
                error=configured.get(f"{name}_error"),
            )

    if store is None and use_storage and configured["google_sheets"]:
        try:
            sheets_client = GoogleSheetsClient()
            store = GoogleSheetsDocumentStore(sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except Exception as e:
            # Storage unreachable - continue without it
            logger.warning("storage_not_available", error=str(e))
            sheets_client = None
            store = None

    if store is None:
        store = InMemoryDocumentStore()
    if audit_logger is None:
        audit_logger = AuditLogger()  # Local-only logging

    if avatar_store is None and configured["cloudinary"]:
        avatar_store = CloudinaryAvatarStore()

    transactions = TransactionRepository(store)
    budgets = BudgetRepository(store)
    goals = GoalRepository(store)
    profiles = ProfileRepository(store)

    reconciler = BudgetReconciler(budgets, transactions, audit_logger)
    profile_flow = ProfileFlow(profiles, avatar_store, audit_logger)

    return AppComponents(
        auth=AuthFlow(
            DocumentStoreIdentityProvider(store),
            profile_flow,
            audit_logger,
        ),
        transactions=TransactionFlow(transactions, reconciler, audit_logger=audit_logger),
        budgets=BudgetFlow(budgets, reconciler, audit_logger=audit_logger),
        goals=GoalFlow(goals, audit_logger=audit_logger),
        profiles=profile_flow,
        dashboard=DashboardFlow(transactions, goals),
        sheets_client=sheets_client,
    )
