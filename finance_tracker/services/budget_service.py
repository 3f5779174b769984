"""
Budget Service

Monthly spending caps per category. Spending is never stored on the
budget: it is summed from expense transactions each time budgets are read.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from finance_tracker.analytics import budget_overview, month_bounds, spent_in_month
from finance_tracker.audit import AuditLogger
from finance_tracker.config import get_settings
from finance_tracker.models.audit import AuditEventBuilder
from finance_tracker.models.finance import (
    Budget,
    BudgetWithSpent,
    TransactionFilter,
    TransactionType,
    format_month,
)
from finance_tracker.models.reports import BudgetOverview
from finance_tracker.services.base import UserScopedService, apply_changes
from finance_tracker.services.category_service import CategoryService
from finance_tracker.services.storage import (
    BudgetStorageInterface,
    NotFoundError,
    TransactionStorageInterface,
)


def current_month() -> str:
    today = date.today()
    return format_month(today.year, today.month)


class BudgetService(UserScopedService):
    """CRUD for budgets, with spending computed from transactions."""

    def __init__(
        self,
        storage: BudgetStorageInterface,
        transaction_storage: TransactionStorageInterface,
        category_service: CategoryService,
        user_id: Optional[UUID],
        audit_logger: Optional[AuditLogger] = None,
        warning_ratio: Optional[float] = None,
    ):
        super().__init__(user_id, audit_logger)
        self._storage = storage
        self._transactions = transaction_storage
        self._categories = category_service
        if warning_ratio is None:
            warning_ratio = get_settings().app.budget_warning_ratio
        self._warning_ratio = warning_ratio

    async def get_budgets(
        self,
        month: Optional[str] = None,
        year: Optional[int] = None,
    ) -> list[BudgetWithSpent]:
        """
        Budgets with their category and spent amount filled in.

        Args:
            month: "YYYY-MM" to restrict to one month (all months if None)
            year: Further restrict to one year
        """
        user_id = self._require_user()
        budgets = await self._storage.list_budgets(user_id, month=month)
        if year is not None:
            budgets = [b for b in budgets if b.year == year]
        if not budgets:
            return []

        categories = {
            c.id: c for c in await self._categories.get_categories(include_inactive=True)
        }
        expenses = await self._transactions.list_transactions(
            user_id,
            TransactionFilter(type=TransactionType.EXPENSE),
        )
        return [
            BudgetWithSpent(
                **b.model_dump(),
                spent=spent_in_month(expenses, b.category_id, b.month),
                category=categories.get(b.category_id),
            )
            for b in budgets
        ]

    async def get_budget(self, budget_id: UUID) -> Optional[BudgetWithSpent]:
        user_id = self._require_user()
        budget = await self._storage.get_budget(user_id, budget_id)
        if budget is None:
            return None
        return BudgetWithSpent(
            **budget.model_dump(),
            spent=await self.get_spent_amount(budget.category_id, budget.month),
            category=await self._categories.get_category(budget.category_id),
        )

    async def create_budget(
        self,
        category_id: UUID,
        amount: Decimal,
        month: str,
    ) -> Budget:
        """
        Set a budget for one category and month.

        Raises:
            NotFoundError: If the category doesn't exist for this user
            DuplicateError: If the category already has a budget that month
        """
        user_id = self._require_user()
        if await self._categories.get_category(category_id) is None:
            raise NotFoundError("Category not found")

        budget = Budget(
            user_id=user_id,
            category_id=category_id,
            amount=amount,
            month=month,
        )
        saved = await self._storage.save_budget(budget)

        self._logger.info("budget_set", budget_id=str(saved.id), month=saved.month)
        await self._audit.log(AuditEventBuilder.budget_set(
            user_id=user_id,
            budget_id=saved.id,
            category_id=saved.category_id,
            month=saved.month,
            amount=str(saved.amount),
        ))
        return saved

    async def update_budget(self, budget_id: UUID, changes: dict[str, Any]) -> Budget:
        user_id = self._require_user()
        budget = await self._storage.get_budget(user_id, budget_id)
        if budget is None:
            raise NotFoundError("Budget not found")

        # A new month carries its own year
        if "month" in changes and "year" not in changes:
            changes = {**changes, "year": None}
        saved = await self._storage.update_budget(apply_changes(budget, changes))

        self._logger.info("budget_updated", budget_id=str(budget_id), fields=sorted(changes))
        await self._audit.log(AuditEventBuilder.budget_updated(
            user_id=user_id,
            budget_id=budget_id,
            changes={key: str(value) for key, value in changes.items()},
        ))
        return saved

    async def delete_budget(self, budget_id: UUID) -> None:
        user_id = self._require_user()
        deleted = await self._storage.delete_budget(user_id, budget_id)
        if not deleted:
            raise NotFoundError("Budget not found")

        self._logger.info("budget_deleted", budget_id=str(budget_id))
        await self._audit.log(AuditEventBuilder.budget_deleted(user_id, budget_id))

    async def get_spent_amount(self, category_id: UUID, month: str) -> Decimal:
        """Sum of expense transactions in a category within a calendar month."""
        user_id = self._require_user()
        start, end = month_bounds(month)
        expenses = await self._transactions.list_transactions(
            user_id,
            TransactionFilter(
                type=TransactionType.EXPENSE,
                category_id=category_id,
                date_from=start,
                date_to=end,
            ),
        )
        return spent_in_month(expenses, category_id, month)

    async def get_budget_overview(
        self,
        month: Optional[str] = None,
        year: Optional[int] = None,
    ) -> BudgetOverview:
        """Totals over one month's budgets (the current month by default)."""
        budgets = await self.get_budgets(month or current_month(), year)
        return budget_overview(budgets, self._warning_ratio)
