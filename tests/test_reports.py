"""
Tests for aggregation, reports and the dashboard.
"""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from conftest import run
from finance_tracker.analytics import (
    budget_overview,
    category_breakdown,
    daily_spending,
    format_currency,
    generate_insights,
    month_bounds,
    month_key,
    monthly_trend,
    most_recent,
    percentage,
    shift_months,
    summarize,
    wallet_performance,
)
from finance_tracker.models.audit import AuditEventType
from finance_tracker.models.finance import (
    BudgetStatus,
    BudgetWithSpent,
    Category,
    CategoryType,
    TransactionType,
    TransactionWithDetails,
    Wallet,
    WalletType,
)
from finance_tracker.models.reports import (
    BudgetAnalysis,
    CategoryBreakdown,
    InsightType,
    MonthlyTrendPoint,
    ReportData,
    ReportPeriod,
    ReportSummary,
)
from finance_tracker.services.budget_service import current_month
from finance_tracker.services.dashboard_service import DashboardService
from finance_tracker.services.report_service import (
    ReportService,
    get_date_range,
    report_to_csv,
)


USER = uuid4()
BCA = Wallet(user_id=USER, name="BCA", account_number="1", type=WalletType.BANK, color="#111111")
FOOD = Category(user_id=USER, name="Food & Dining", type=CategoryType.EXPENSE, color="#EF4444")
RENT = Category(user_id=USER, name="Housing", type=CategoryType.EXPENSE, color="#10B981")
SALARY = Category(user_id=USER, name="Salary", type=CategoryType.INCOME)


def txn(amount, transaction_type=TransactionType.EXPENSE, on=date(2025, 3, 10),
        category=FOOD, wallet=BCA):
    return TransactionWithDetails(
        user_id=USER,
        wallet_id=wallet.id if wallet else uuid4(),
        category_id=category.id if category else uuid4(),
        amount=Decimal(str(amount)),
        type=transaction_type,
        description="t",
        date=on,
        wallet=wallet,
        category=category,
    )


class TestDateHelpers:

    def test_month_bounds(self):
        assert month_bounds("2024-02") == (date(2024, 2, 1), date(2024, 2, 29))
        assert month_bounds("2025-04") == (date(2025, 4, 1), date(2025, 4, 30))

    def test_shift_months_clamps_day(self):
        assert shift_months(date(2025, 3, 31), -1) == date(2025, 2, 28)
        assert shift_months(date(2025, 1, 15), -3) == date(2024, 10, 15)

    def test_month_key(self):
        assert month_key(date(2025, 3, 9)) == "2025-03"

    def test_report_date_range(self):
        today = date(2025, 6, 15)
        assert get_date_range(ReportPeriod.MONTH, today) == (date(2025, 5, 15), today)
        assert get_date_range(ReportPeriod.THREE_MONTHS, today) == (date(2025, 3, 15), today)
        assert get_date_range(ReportPeriod.SIX_MONTHS, today) == (date(2024, 12, 15), today)
        assert get_date_range(ReportPeriod.YEAR, today) == (date(2024, 6, 15), today)


class TestFormatting:

    def test_format_currency(self):
        assert format_currency(Decimal("1500000")) == "Rp 1.500.000"
        assert format_currency(Decimal("999"), "$") == "$ 999"

    def test_percentage_of_zero(self):
        assert percentage(Decimal("10"), Decimal("0")) == 0.0
        assert percentage(Decimal("25"), Decimal("100")) == 25.0


class TestAggregation:

    def test_summarize(self):
        transactions = [
            txn(4000000, TransactionType.INCOME, category=SALARY),
            txn(300000, on=date(2025, 3, 2)),
            txn(700000, on=date(2025, 3, 5)),
            txn(100000, on=date(2025, 3, 5)),
        ]
        summary = summarize(transactions, date(2025, 3, 1), date(2025, 3, 11))
        assert summary.total_income == Decimal("4000000")
        assert summary.total_expenses == Decimal("1100000")
        assert summary.net_savings == Decimal("2900000")
        assert summary.savings_rate == pytest.approx(72.5)
        assert summary.transaction_count == 4
        assert summary.avg_daily_spending == Decimal("110000.00")
        assert summary.top_spending_day == date(2025, 3, 5)
        assert summary.most_expensive_transaction == Decimal("700000")

    def test_summarize_empty(self):
        summary = summarize([], date(2025, 3, 1), date(2025, 3, 1))
        assert summary.savings_rate == 0.0
        assert summary.avg_daily_spending == Decimal("0")
        assert summary.top_spending_day is None

    def test_monthly_trend_oldest_first(self):
        trend = monthly_trend([
            txn(100, on=date(2025, 3, 1)),
            txn(1000, TransactionType.INCOME, on=date(2025, 1, 1), category=SALARY),
            txn(200, on=date(2025, 1, 20)),
        ])
        assert [p.month for p in trend] == ["2025-01", "2025-03"]
        assert trend[0].savings == Decimal("800")
        assert trend[0].savings_rate == pytest.approx(80.0)
        assert trend[1].income == Decimal("0")
        assert trend[1].savings_rate == 0.0

    def test_category_breakdown(self):
        breakdown = category_breakdown([
            txn(300, category=FOOD),
            txn(100, category=FOOD),
            txn(600, category=RENT),
            txn(5000, TransactionType.INCOME, category=SALARY),
            txn(0.5, category=None),
        ])
        assert [c.name for c in breakdown] == ["Housing", "Food & Dining", "Other"]
        food = breakdown[1]
        assert food.transaction_count == 2
        assert food.avg_transaction == Decimal("200.00")
        assert food.color == "#EF4444"
        assert sum(c.percentage for c in breakdown) == pytest.approx(100.0)

    def test_wallet_performance(self):
        other = Wallet(user_id=USER, name="GoPay", account_number="2", type=WalletType.EWALLET)
        performance = wallet_performance([
            txn(1000, TransactionType.INCOME, category=SALARY),
            txn(300),
            txn(50, wallet=other),
            txn(10, wallet=None),
        ])
        assert [w.name for w in performance] == ["BCA", "Unknown", "GoPay"]
        assert performance[0].net_flow == Decimal("700")
        assert performance[0].transaction_count == 2

    def test_daily_spending_window(self):
        days = daily_spending(
            [txn(10, on=date(2025, 3, d)) for d in range(1, 11)] + [txn(5, on=date(2025, 3, 10))],
            window=3,
        )
        assert [d.date.day for d in days] == [8, 9, 10]
        assert days[-1].amount == Decimal("15")
        assert days[-1].transaction_count == 2

    def test_most_recent_by_creation(self):
        base = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)
        first, second, third = (
            txn(n).model_copy(update={"created_at": base + timedelta(minutes=n)})
            for n in (1, 2, 3)
        )
        assert [t.amount for t in most_recent([second, first, third], 2)] == [
            Decimal("3"), Decimal("2"),
        ]

    def test_budget_overview_ratio(self):
        def budget(amount, spent):
            return BudgetWithSpent(
                user_id=USER,
                category_id=uuid4(),
                amount=Decimal(amount),
                month="2025-03",
                spent=Decimal(spent),
            )

        budgets = [budget("100", "80"), budget("100", "90"), budget("100", "120")]
        overview = budget_overview(budgets, warning_ratio=0.8)
        assert overview.on_track_count == 1
        assert overview.over_budget_count == 1
        assert budget_overview(budgets, warning_ratio=0.95).on_track_count == 2


class TestInsights:

    def summary(self, income, expenses, count=1):
        net = Decimal(income) - Decimal(expenses)
        return ReportSummary(
            total_income=Decimal(income),
            total_expenses=Decimal(expenses),
            net_savings=net,
            savings_rate=percentage(net, Decimal(income)),
            transaction_count=count,
        )

    def test_high_savings_rate(self):
        insights = generate_insights(self.summary("1000000", "500000"), [], [], [])
        assert insights[0].type == InsightType.POSITIVE
        assert insights[0].value == "50.0%"

    def test_low_savings_rate(self):
        insights = generate_insights(self.summary("1000000", "950000"), [], [], [])
        assert insights[0].title == "Low Savings Rate"

    def test_spending_increase_and_concentration(self):
        trend = [
            MonthlyTrendPoint(month="2025-02", expense=Decimal("100")),
            MonthlyTrendPoint(month="2025-03", expense=Decimal("150")),
        ]
        breakdown = [CategoryBreakdown(
            name="Housing",
            amount=Decimal("150"),
            percentage=60.0,
            color="#000000",
            transaction_count=1,
            avg_transaction=Decimal("150"),
        )]
        titles = [i.title for i in generate_insights(
            self.summary("1000", "850"), trend, breakdown, []
        )]
        assert "High Category Concentration" in titles
        assert "Spending Increase" in titles

    def test_no_change_insight_without_previous_spending(self):
        trend = [
            MonthlyTrendPoint(month="2025-02", expense=Decimal("0")),
            MonthlyTrendPoint(month="2025-03", expense=Decimal("150")),
        ]
        titles = [i.title for i in generate_insights(self.summary("1000", "850"), trend, [], [])]
        assert "Spending Increase" not in titles

    def test_budget_exceeded_and_small_transactions(self):
        analysis = [BudgetAnalysis(
            category_name="Food",
            budget_amount=Decimal("100"),
            spent_amount=Decimal("150"),
            remaining_amount=Decimal("-50"),
            utilization_rate=150.0,
            status=BudgetStatus.OVER,
        )]
        insights = generate_insights(
            self.summary("1000000", "850000", count=20),
            [],
            [],
            analysis,
            small_transaction_threshold=50000.0,
        )
        by_title = {i.title: i for i in insights}
        assert by_title["Budget Exceeded"].type == InsightType.WARNING
        assert by_title["Frequent Small Transactions"].value == "Avg: Rp 42.500"


class TestReportService:

    def test_report_for_period(self, transaction_service, budget_service, user_id, app_settings,
                               food, salary, record):
        today = date.today()
        record(salary, 5000000, TransactionType.INCOME, on=today)
        record(food, 1000000, on=today)
        record(food, 999999, on=shift_months(today, -4))

        service = ReportService(transaction_service, budget_service, user_id, app_settings=app_settings)
        report = run(service.get_report_data(ReportPeriod.THREE_MONTHS))

        assert report.end_date == today
        assert report.summary.total_income == Decimal("5000000")
        assert report.summary.total_expenses == Decimal("1000000")
        assert report.summary.savings_rate == pytest.approx(80.0)
        assert [c.name for c in report.category_breakdown] == ["Food & Dining"]
        assert report.wallet_performance[0].name == "BCA"
        assert any(i.title == "Excellent Savings Rate!" for i in report.insights)

    def test_budget_analysis_covers_current_month(self, transaction_service, budget_service,
                                                  user_id, app_settings, food, record):
        run(budget_service.create_budget(food.id, Decimal("500000"), current_month()))
        record(food, 600000, on=date.today())

        service = ReportService(transaction_service, budget_service, user_id, app_settings=app_settings)
        report = run(service.get_report_data(ReportPeriod.YEAR))
        [analysis] = report.budget_analysis
        assert analysis.status == BudgetStatus.OVER
        assert analysis.remaining_amount == Decimal("-100000")

    def test_export_is_audited(self, transaction_service, budget_service, user_id, app_settings,
                               audit_logger, audit_storage):
        service = ReportService(
            transaction_service, budget_service, user_id, audit_logger, app_settings=app_settings
        )
        report = run(service.get_report_data(ReportPeriod.MONTH))
        content = run(service.export_report_csv(report, ReportPeriod.MONTH))
        assert content.startswith("FINANCIAL REPORT SUMMARY\n")
        events = run(audit_storage.get_recent_events())
        assert AuditEventType.REPORT_EXPORTED in [e.event_type for e in events]


class TestReportCsv:

    def test_layout(self):
        report = ReportData(
            period=ReportPeriod.MONTH,
            start_date=date(2025, 2, 10),
            end_date=date(2025, 3, 10),
            summary=ReportSummary(
                total_income=Decimal("1000000"),
                total_expenses=Decimal("750000"),
                net_savings=Decimal("250000"),
                savings_rate=25.0,
                transaction_count=3,
            ),
            category_breakdown=[CategoryBreakdown(
                name="Food & Dining",
                amount=Decimal("750000"),
                percentage=100.0,
                color="#EF4444",
                transaction_count=2,
                avg_transaction=Decimal("375000"),
            )],
            monthly_trend=[MonthlyTrendPoint(
                month="2025-03",
                income=Decimal("1000000"),
                expense=Decimal("750000"),
                savings=Decimal("250000"),
                savings_rate=25.0,
            )],
        )

        lines = report_to_csv(report, ReportPeriod.MONTH).split("\n")
        assert lines[:9] == [
            "FINANCIAL REPORT SUMMARY",
            "Period,month",
            "Total Income,1000000",
            "Total Expenses,750000",
            "Net Savings,250000",
            "Savings Rate (%),25.00",
            "Transaction Count,3",
            "",
            "CATEGORY BREAKDOWN",
        ]
        assert lines[9] == "Category,Amount,Percentage,Transaction Count,Avg Transaction"
        assert lines[10] == "Food & Dining,750000,100.00,2,375000.00"
        assert lines[12] == "MONTHLY TREND"
        assert lines[14] == "2025-03,1000000,750000,250000,25.00"


class TestDashboardService:

    def test_stats(self, wallet_service, transaction_service, budget_service, user_id,
                   food, salary, record):
        today = date.today()
        record(salary, 4000000, TransactionType.INCOME, on=today)
        record(food, 1000000, on=today)
        record(food, 123, on=shift_months(today, -13))

        service = DashboardService(
            wallet_service, transaction_service, budget_service, user_id, trend_months=6
        )
        stats = run(service.get_dashboard_stats())

        assert stats.total_balance == Decimal("1000000") + Decimal("4000000") - Decimal("1000123")
        assert stats.monthly_income == Decimal("4000000")
        assert stats.monthly_expenses == Decimal("1000000")
        assert stats.savings_rate == pytest.approx(75.0)
        assert stats.total_transactions == 3
        assert [c.name for c in stats.top_categories] == ["Food & Dining"]
        assert len(stats.recent_transactions) == 3
        assert stats.recent_transactions[0].amount == Decimal("123")
        assert [p.month for p in stats.monthly_trend] == [month_key(today)]

    def test_recent_transactions_limited(self, wallet_service, transaction_service,
                                         budget_service, user_id, food, record):
        for amount in range(1, 8):
            record(food, amount)
        service = DashboardService(
            wallet_service, transaction_service, budget_service, user_id, trend_months=6
        )
        stats = run(service.get_dashboard_stats())
        assert [t.amount for t in stats.recent_transactions] == [
            Decimal(n) for n in (7, 6, 5, 4, 3)
        ]
        assert stats.recent_transactions[0].category_name == "Food & Dining"
        assert stats.recent_transactions[0].wallet_name == "BCA"

    def test_empty(self, wallet_service, transaction_service, budget_service, user_id):
        service = DashboardService(
            wallet_service, transaction_service, budget_service, user_id, trend_months=6
        )
        stats = run(service.get_dashboard_stats())
        assert stats.total_transactions == 0
        assert stats.savings_rate == 0.0
        assert stats.budget_overview.total_budget == Decimal("0")
