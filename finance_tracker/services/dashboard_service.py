"""
Dashboard Service

Headline numbers for the landing page: balances, this month's cash flow,
where the money went, the latest activity and the budget picture.
"""

from datetime import date
from typing import Optional
from uuid import UUID

from finance_tracker.analytics import (
    month_bounds,
    monthly_trend,
    most_recent,
    percentage,
    shift_months,
    top_categories,
    transaction_stats,
)
from finance_tracker.analytics.aggregation import UNKNOWN_NAME
from finance_tracker.audit import AuditLogger
from finance_tracker.config import get_settings
from finance_tracker.models.finance import TransactionWithDetails
from finance_tracker.models.reports import DashboardStats, RecentTransaction
from finance_tracker.services.base import UserScopedService
from finance_tracker.services.budget_service import BudgetService, current_month
from finance_tracker.services.transaction_service import TransactionService
from finance_tracker.services.wallet_service import WalletService


TOP_CATEGORY_LIMIT = 6
RECENT_TRANSACTION_LIMIT = 5


def to_recent(transaction: TransactionWithDetails) -> RecentTransaction:
    return RecentTransaction(
        id=transaction.id,
        description=transaction.description,
        amount=transaction.amount,
        type=transaction.type,
        date=transaction.date,
        category_name=transaction.category.name if transaction.category else UNKNOWN_NAME,
        wallet_name=transaction.wallet.name if transaction.wallet else UNKNOWN_NAME,
    )


class DashboardService(UserScopedService):

    def __init__(
        self,
        wallet_service: WalletService,
        transaction_service: TransactionService,
        budget_service: BudgetService,
        user_id: Optional[UUID],
        audit_logger: Optional[AuditLogger] = None,
        trend_months: Optional[int] = None,
    ):
        super().__init__(user_id, audit_logger)
        self._wallets = wallet_service
        self._transactions = transaction_service
        self._budgets = budget_service
        self._trend_months = trend_months or get_settings().app.dashboard_trend_months

    async def get_dashboard_stats(self) -> DashboardStats:
        """
        Compute every dashboard figure from one read of the transactions.

        Income, expenses, savings rate and top categories cover the current
        calendar month. The transaction count covers all time.
        """
        self._require_user()
        today = date.today()
        start, end = month_bounds(current_month())
        trend_start = shift_months(today, -self._trend_months)

        transactions = await self._transactions.get_transactions()
        this_month = [t for t in transactions if start <= t.date <= end]
        stats = transaction_stats(this_month)

        return DashboardStats(
            total_balance=await self._wallets.get_total_balance(),
            monthly_income=stats.total_income,
            monthly_expenses=stats.total_expenses,
            total_transactions=len(transactions),
            savings_rate=percentage(stats.net_amount, stats.total_income),
            top_categories=top_categories(this_month, limit=TOP_CATEGORY_LIMIT),
            recent_transactions=[
                to_recent(t) for t in most_recent(transactions, RECENT_TRANSACTION_LIMIT)
            ],
            monthly_trend=monthly_trend(
                t for t in transactions if trend_start <= t.date <= today
            ),
            budget_overview=await self._budgets.get_budget_overview(current_month()),
        )
