"""
Report Service

Builds the Reports & Analytics page: a summary for a trailing period,
trends, breakdowns, budget analysis and rule-based insights, plus a CSV
export of the headline sections.
"""

import csv
import io
from datetime import date
from typing import Optional
from uuid import UUID

from finance_tracker.analytics import (
    budget_analysis,
    category_breakdown,
    daily_spending,
    generate_insights,
    monthly_trend,
    shift_months,
    summarize,
    wallet_performance,
)
from finance_tracker.audit import AuditLogger
from finance_tracker.config import AppSettings, get_settings
from finance_tracker.models.audit import AuditEventBuilder
from finance_tracker.models.finance import TransactionFilter
from finance_tracker.models.reports import ReportData, ReportPeriod
from finance_tracker.services.base import UserScopedService
from finance_tracker.services.budget_service import BudgetService, current_month
from finance_tracker.services.transaction_service import TransactionService


PERIOD_MONTHS: dict[ReportPeriod, int] = {
    ReportPeriod.MONTH: 1,
    ReportPeriod.THREE_MONTHS: 3,
    ReportPeriod.SIX_MONTHS: 6,
    ReportPeriod.YEAR: 12,
}


def get_date_range(
    period: ReportPeriod,
    today: Optional[date] = None,
) -> tuple[date, date]:
    """The trailing window a report covers: N months ago until today."""
    end = today or date.today()
    return shift_months(end, -PERIOD_MONTHS[ReportPeriod(period)]), end


class ReportService(UserScopedService):

    def __init__(
        self,
        transaction_service: TransactionService,
        budget_service: BudgetService,
        user_id: Optional[UUID],
        audit_logger: Optional[AuditLogger] = None,
        app_settings: Optional[AppSettings] = None,
    ):
        super().__init__(user_id, audit_logger)
        self._transactions = transaction_service
        self._budgets = budget_service
        self._settings = app_settings or get_settings().app

    @staticmethod
    def get_date_range(period: ReportPeriod) -> tuple[date, date]:
        return get_date_range(period)

    async def get_report_data(self, period: ReportPeriod) -> ReportData:
        """
        Everything the Reports page shows for one period.

        Budget analysis always covers the current month's budgets,
        whatever the period.
        """
        self._require_user()
        period = ReportPeriod(period)
        start, end = get_date_range(period)

        transactions = await self._transactions.get_transactions_filtered(
            TransactionFilter(date_from=start, date_to=end)
        )
        budgets = await self._budgets.get_budgets(current_month())

        summary = summarize(transactions, start, end)
        trend = monthly_trend(transactions)
        breakdown = category_breakdown(transactions)
        analysis = budget_analysis(budgets)

        self._logger.info(
            "report_generated",
            period=period.value,
            transaction_count=summary.transaction_count,
        )
        return ReportData(
            period=period,
            start_date=start,
            end_date=end,
            summary=summary,
            monthly_trend=trend,
            category_breakdown=breakdown,
            wallet_performance=wallet_performance(transactions),
            daily_spending=daily_spending(transactions),
            budget_analysis=analysis,
            insights=generate_insights(
                summary,
                trend,
                breakdown,
                analysis,
                small_transaction_threshold=self._settings.small_transaction_threshold,
                currency_symbol=self._settings.currency_symbol,
            ),
        )

    async def export_report_csv(self, report: ReportData, period: ReportPeriod) -> str:
        """Render the summary, category breakdown and monthly trend as CSV."""
        user_id = self._require_user()
        content = report_to_csv(report, ReportPeriod(period))
        await self._audit.log(AuditEventBuilder.report_exported(user_id, ReportPeriod(period).value))
        return content


def report_to_csv(report: ReportData, period: ReportPeriod) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    summary = report.summary

    writer.writerow(["FINANCIAL REPORT SUMMARY"])
    writer.writerow(["Period", period.value])
    writer.writerow(["Total Income", summary.total_income])
    writer.writerow(["Total Expenses", summary.total_expenses])
    writer.writerow(["Net Savings", summary.net_savings])
    writer.writerow(["Savings Rate (%)", f"{summary.savings_rate:.2f}"])
    writer.writerow(["Transaction Count", summary.transaction_count])
    writer.writerow([])

    writer.writerow(["CATEGORY BREAKDOWN"])
    writer.writerow(["Category", "Amount", "Percentage", "Transaction Count", "Avg Transaction"])
    for category in report.category_breakdown:
        writer.writerow([
            category.name,
            category.amount,
            f"{category.percentage:.2f}",
            category.transaction_count,
            f"{category.avg_transaction:.2f}",
        ])
    writer.writerow([])

    writer.writerow(["MONTHLY TREND"])
    writer.writerow(["Month", "Income", "Expenses", "Savings", "Savings Rate (%)"])
    for point in report.monthly_trend:
        writer.writerow([
            point.month,
            point.income,
            point.expense,
            point.savings,
            f"{point.savings_rate:.2f}",
        ])

    return buffer.getvalue()
