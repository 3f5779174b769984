"""
Recommendation Service

Builds a plain-text summary of the user's last 30 days and asks the
recommendation agent for advice. With too little history there is
nothing to analyse, so a fixed getting-started recommendation is
returned instead of calling the model.
"""

from datetime import date, timedelta
from typing import Optional
from uuid import UUID, uuid4

from finance_tracker.agents import RecommendationAgent, RecommendationError
from finance_tracker.analytics import format_currency, transaction_stats
from finance_tracker.audit import AuditLogger
from finance_tracker.models.assistant import Impact, Recommendation, RecommendationType
from finance_tracker.models.audit import AuditEventBuilder
from finance_tracker.models.goals import GoalLoanStatus
from finance_tracker.services.base import UserScopedService
from finance_tracker.services.budget_service import BudgetService
from finance_tracker.services.goal_loan_service import GoalLoanService
from finance_tracker.services.transaction_service import TransactionService
from finance_tracker.services.wallet_service import WalletService


LOOKBACK_DAYS = 30
TRANSACTION_LIMIT = 50
BUDGET_LIMIT = 10
MIN_TRANSACTIONS = 3


def starter_recommendation() -> Recommendation:
    return Recommendation(
        type=RecommendationType.GOAL,
        title="Start Tracking Your Finances",
        description=(
            "Consistent tracking is the first step to financial clarity. "
            "Add your daily transactions to get personalized insights."
        ),
        impact=Impact.HIGH,
        priority=1,
        timeframe="Immediate",
        action_items=[
            "Add at least 10 transactions this week.",
            "Set up your primary wallet.",
            "Create your first budget for a key category like Food.",
        ],
    )


class RecommendationService(UserScopedService):

    def __init__(
        self,
        agent: RecommendationAgent,
        wallet_service: WalletService,
        transaction_service: TransactionService,
        budget_service: BudgetService,
        goal_loan_service: GoalLoanService,
        user_id: Optional[UUID],
        audit_logger: Optional[AuditLogger] = None,
        currency_symbol: str = "Rp",
    ):
        super().__init__(user_id, audit_logger)
        self._agent = agent
        self._wallets = wallet_service
        self._transactions = transaction_service
        self._budgets = budget_service
        self._goals = goal_loan_service
        self._currency_symbol = currency_symbol

    async def get_recommendations(self, today: Optional[date] = None) -> list[Recommendation]:
        """
        Advice for the signed-in user.

        Raises RecommendationError when the model fails; the failure is
        audited as an external service error.
        """
        user_id = self._require_user()
        today = today or date.today()
        since = today - timedelta(days=LOOKBACK_DAYS)

        transactions = [
            t for t in await self._transactions.get_transactions()
            if since <= t.date <= today
        ][:TRANSACTION_LIMIT]
        if len(transactions) < MIN_TRANSACTIONS:
            self._logger.info("recommendations_skipped", transactions=len(transactions))
            return [starter_recommendation()]

        summary = await self._summarize(transactions)
        correlation_id = uuid4()
        try:
            recommendations = await self._agent.recommend(summary)
        except RecommendationError as e:
            await self._audit.log(AuditEventBuilder.external_service_error(
                service="gemini_recommendations",
                error_message=str(e.__cause__ or e),
                correlation_id=correlation_id,
            ))
            raise

        self._logger.info("recommendations_generated", count=len(recommendations))
        await self._audit.log(AuditEventBuilder.recommendations_generated(
            user_id=user_id,
            count=len(recommendations),
            correlation_id=correlation_id,
        ))
        return recommendations

    async def _summarize(self, transactions) -> str:
        money = self._money
        stats = transaction_stats(transactions)
        wallets = await self._wallets.get_wallets()
        budgets = (await self._budgets.get_budgets())[:BUDGET_LIMIT]
        goals = await self._goals.get_goals_and_loans(status=GoalLoanStatus.ACTIVE)

        lines = [
            f"Last {LOOKBACK_DAYS} days: income {money(stats.total_income)}, "
            f"expenses {money(stats.total_expenses)}, net {money(stats.net_amount)}, "
            f"{stats.transaction_count} transactions.",
            "",
            "Recent transactions:",
        ]
        for t in transactions:
            category = t.category.name if t.category else "Uncategorized"
            lines.append(f"- {t.date} {t.type.value} {money(t.amount)} {category}: {t.description}")

        lines.append("")
        lines.append("Wallets:")
        lines.extend(f"- {w.name} ({w.type.value}): {money(w.balance)}" for w in wallets)

        if budgets:
            lines.append("")
            lines.append("Budgets:")
            for b in budgets:
                name = b.category.name if b.category else "Unknown"
                lines.append(
                    f"- {b.month} {name}: {money(b.spent)} of {money(b.amount)} spent"
                )

        if goals:
            lines.append("")
            lines.append("Active goals and loans:")
            for g in goals:
                lines.append(
                    f"- {g.type.value} {g.title}: {money(g.current_amount)} of "
                    f"{money(g.target_amount)}, {g.progress_percentage:.0f}% done"
                )

        return "\n".join(lines)

    def _money(self, amount) -> str:
        return format_currency(amount, self._currency_symbol)
