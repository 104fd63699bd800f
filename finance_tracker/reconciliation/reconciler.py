"""
Budget Reconciler

Keeps Budget.spent_amount in line with the expense transactions of the
same (user, category, month).

INVARIANT (best effort): when every step succeeds, a budget's spent
amount equals the sum of the amounts of its matching expense
transactions, and it is never negative.

DESIGN DECISION: No atomicity. The transaction write happens first and
the budget write second, as two separate remote calls. If the budget
write fails, the failure is audited and raised as ReconciliationError;
nothing is rolled back and nothing is retried. `rebuild` recomputes a
budget from its transactions to repair such drift.
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel

from finance_tracker.audit import AuditLogger
from finance_tracker.config import get_settings
from finance_tracker.models.audit import AuditEventType
from finance_tracker.models.finance import (
    Budget,
    BudgetKey,
    Transaction,
    TransactionType,
    first_day_of,
)
from finance_tracker.services.storage import (
    BudgetRepository,
    StorageError,
    TransactionRepository,
)


SYNTHETIC_NOTE = "Spending recorded with budget"


class ReconciliationError(Exception):
    """A budget write failed; the budget may no longer match its transactions."""

    def __init__(
        self,
        step: str,
        key: BudgetKey,
        cause: Exception,
        transaction_id: Optional[str] = None,
    ):
        self.step = step
        self.key = key
        self.cause = cause
        self.transaction_id = transaction_id
        super().__init__(
            f"Budget {key.category}/{key.month} not reconciled ({step}): {cause}"
        )


class ManualBudgetResult(BaseModel):
    """Outcome of a budget entered through the budget form."""

    budget: Budget
    created: bool
    synthetic_transaction: Optional[Transaction] = None


def budget_key_for(transaction: Transaction) -> BudgetKey:
    """Key of the budget an expense transaction counts against."""
    return BudgetKey(transaction.user_id, transaction.category, transaction.month)


class BudgetReconciler:
    """
    Applies transaction changes to budgets.

    Each public method corresponds to one user action and performs its
    budget writes strictly in sequence.
    """

    def __init__(
        self,
        budgets: BudgetRepository,
        transactions: TransactionRepository,
        audit_logger: Optional[AuditLogger] = None,
        default_alert_threshold: Optional[int] = None,
    ):
        self._budgets = budgets
        self._transactions = transactions
        self._audit_logger = audit_logger
        if default_alert_threshold is None:
            default_alert_threshold = get_settings().app.default_alert_threshold
        self._default_alert_threshold = default_alert_threshold

    async def _fail(
        self,
        step: str,
        key: BudgetKey,
        error: Exception,
        transaction_id: Optional[str],
        correlation_id: Optional[UUID],
    ) -> ReconciliationError:
        if self._audit_logger:
            await self._audit_logger.log_reconciliation_failed(
                step=step,
                user_id=key.user_id,
                category=key.category,
                month=key.month,
                error_message=str(error),
                transaction_id=transaction_id,
                correlation_id=correlation_id,
            )
        return ReconciliationError(step, key, error, transaction_id)

    async def _add(
        self,
        step: str,
        key: BudgetKey,
        amount: Decimal,
        transaction_id: Optional[str],
        correlation_id: Optional[UUID],
    ) -> Budget:
        try:
            budget, created = await self._budgets.add_spent(
                key,
                amount,
                alert_threshold=self._default_alert_threshold,
            )
        except StorageError as e:
            raise await self._fail(step, key, e, transaction_id, correlation_id) from e

        if self._audit_logger:
            await self._audit_logger.log_budget_adjusted(
                budget, amount, created, correlation_id=correlation_id
            )
        return budget

    async def _subtract(
        self,
        step: str,
        key: BudgetKey,
        amount: Decimal,
        transaction_id: Optional[str],
        correlation_id: Optional[UUID],
    ) -> Optional[Budget]:
        try:
            budget = await self._budgets.subtract_spent(key, amount)
        except StorageError as e:
            raise await self._fail(step, key, e, transaction_id, correlation_id) from e

        if budget is not None and self._audit_logger:
            await self._audit_logger.log_budget_adjusted(
                budget, -amount, False, correlation_id=correlation_id
            )
        return budget

    async def on_transaction_created(
        self,
        transaction: Transaction,
        correlation_id: Optional[UUID] = None,
    ) -> Optional[Budget]:
        """
        Count a new expense against its budget, auto-creating the budget
        (budget amount 0) if there is none.

        Income transactions don't touch budgets; returns None for them.
        """
        if not transaction.is_expense:
            return None
        return await self._add(
            "create",
            budget_key_for(transaction),
            transaction.amount,
            transaction.id,
            correlation_id,
        )

    async def on_transaction_updated(
        self,
        old: Transaction,
        new: Transaction,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[Optional[Budget], Optional[Budget]]:
        """
        Move an edited transaction between budgets.

        The old amount is taken off the old budget (if the old version was
        an expense) and the new amount is put on the new budget (if the new
        version is an expense). Both steps run even when the key did not
        change, so an unchanged key receives subtract-then-add.

        Returns:
            (budget after the subtract step, budget after the add step)
        """
        removed_from = None
        added_to = None

        if old.is_expense:
            removed_from = await self._subtract(
                "update_remove",
                budget_key_for(old),
                old.amount,
                old.id,
                correlation_id,
            )
        if new.is_expense:
            added_to = await self._add(
                "update_add",
                budget_key_for(new),
                new.amount,
                new.id,
                correlation_id,
            )
        return removed_from, added_to

    async def on_transaction_deleted(
        self,
        transaction: Transaction,
        correlation_id: Optional[UUID] = None,
    ) -> Optional[Budget]:
        """Take a deleted expense off its budget, floored at zero."""
        if not transaction.is_expense:
            return None
        return await self._subtract(
            "delete",
            budget_key_for(transaction),
            transaction.amount,
            transaction.id,
            correlation_id,
        )

    async def create_manual_budget(
        self,
        budget: Budget,
        correlation_id: Optional[UUID] = None,
    ) -> ManualBudgetResult:
        """
        Record a budget entered by the user.

        An existing budget with the same key absorbs it (budget and spent
        amounts are summed). Spending entered with the budget is mirrored
        by a synthetic expense transaction on the 1st of the month so the
        transaction ledger still explains the spent amount; that
        transaction is not reconciled again.
        """
        try:
            merged, created = await self._budgets.merge(budget)
        except StorageError as e:
            raise await self._fail("merge", budget.key, e, None, correlation_id) from e

        if self._audit_logger:
            await self._audit_logger.log_entity(
                event_type=(
                    AuditEventType.BUDGET_CREATED if created
                    else AuditEventType.BUDGET_MERGED
                ),
                entity_type="budget",
                entity_id=merged.id,
                user_id=merged.user_id,
                description=f"Budget {merged.category}/{merged.month} saved",
                details={
                    "budget_amount": str(merged.budget_amount),
                    "spent_amount": str(merged.spent_amount),
                    "incoming_budget_amount": str(budget.budget_amount),
                    "incoming_spent_amount": str(budget.spent_amount),
                },
                correlation_id=correlation_id,
            )

        synthetic = None
        if budget.spent_amount > 0:
            synthetic = Transaction(
                user_id=budget.user_id,
                type=TransactionType.EXPENSE,
                amount=budget.spent_amount,
                category=budget.category,
                date=first_day_of(budget.month),
                note=SYNTHETIC_NOTE,
            )
            try:
                synthetic = await self._transactions.create(synthetic)
            except StorageError as e:
                raise await self._fail(
                    "synthetic_transaction", budget.key, e, synthetic.id, correlation_id
                ) from e

            if self._audit_logger:
                await self._audit_logger.log_transaction(
                    AuditEventType.TRANSACTION_CREATED,
                    synthetic,
                    correlation_id=correlation_id,
                )

        return ManualBudgetResult(
            budget=merged,
            created=created,
            synthetic_transaction=synthetic,
        )

    async def rebuild(self, key: BudgetKey) -> Optional[Budget]:
        """
        Recompute a budget's spent amount from its expense transactions.

        Repairs drift left by failed reconciliation steps. Creates an
        auto budget if spending exists without one; returns None when
        there is neither a budget nor any spending.
        """
        expenses = await self._transactions.expenses_for(key)
        total = sum((t.amount for t in expenses), Decimal("0"))

        budget = await self._budgets.find(key)
        if budget is None:
            if total == 0:
                return None
            budget, _ = await self._budgets.add_spent(
                key, total, alert_threshold=self._default_alert_threshold
            )
            previous = Decimal("0")
        else:
            previous = budget.spent_amount
            if previous != total:
                budget = await self._budgets.set_spent(budget, total)

        if self._audit_logger:
            await self._audit_logger.log_budget_rebuilt(budget, previous)
        return budget
