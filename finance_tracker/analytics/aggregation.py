"""
Aggregation Functions

Stateless, single-pass computations over transactions that are already
loaded into memory. Reports, the dashboard, budgets and the Ask-AI
executor all build on these.

DESIGN DECISION: Nothing here touches storage. Every function takes lists
and returns models, so it is deterministic and trivially testable.
"""

import calendar
from collections import defaultdict
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from dateutil.relativedelta import relativedelta

from finance_tracker.models.finance import (
    DEFAULT_CATEGORY_COLOR,
    BudgetStatus,
    BudgetWithSpent,
    Transaction,
    TransactionType,
    TransactionWithDetails,
    budget_status,
    format_month,
)
from finance_tracker.models.reports import (
    BudgetAnalysis,
    BudgetOverview,
    CategoryBreakdown,
    DailySpending,
    Insight,
    InsightType,
    MonthlyTrendPoint,
    ReportSummary,
    TopCategory,
    TransactionStats,
    WalletPerformance,
)


ZERO = Decimal("0")
CENT = Decimal("0.01")

UNCATEGORIZED_NAME = "Other"
UNKNOWN_NAME = "Unknown"
DAILY_SPENDING_WINDOW = 30


# =============================================================================
# DATE HELPERS
# =============================================================================

def month_key(d: date) -> str:
    """"YYYY-MM" bucket for a date."""
    return format_month(d.year, d.month)


def month_bounds(month: str) -> tuple[date, date]:
    """
    First and last day of a "YYYY-MM" month.

    The last day comes from the calendar, so February and 30-day months
    are handled correctly.
    """
    year, month_num = (int(part) for part in month.split("-"))
    last_day = calendar.monthrange(year, month_num)[1]
    return date(year, month_num, 1), date(year, month_num, last_day)


def shift_months(d: date, months: int) -> date:
    """Move a date by whole months, clamping the day to the target month."""
    return d + relativedelta(months=months)


def round_money(amount: Decimal) -> Decimal:
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def percentage(part: Decimal, whole: Decimal) -> float:
    """part / whole * 100, or 0 when whole is not positive."""
    if whole <= 0:
        return 0.0
    return float(part / whole * 100)


def format_currency(amount: Decimal, symbol: str = "Rp") -> str:
    """Whole-unit amount with dot thousands separators, e.g. "Rp 1.500.000"."""
    formatted = f"{amount:,.0f}".replace(",", ".")
    return f"{symbol} {formatted}"


# =============================================================================
# TOTALS
# =============================================================================

def _expenses(transactions: Iterable[Transaction]) -> list[Transaction]:
    return [t for t in transactions if t.type == TransactionType.EXPENSE]


def transaction_stats(transactions: Iterable[Transaction]) -> TransactionStats:
    income = ZERO
    expenses = ZERO
    count = 0
    for t in transactions:
        if t.type == TransactionType.INCOME:
            income += t.amount
        else:
            expenses += t.amount
        count += 1
    return TransactionStats(
        total_income=income,
        total_expenses=expenses,
        net_amount=income - expenses,
        transaction_count=count,
    )


def summarize(
    transactions: list[Transaction],
    start: date,
    end: date,
) -> ReportSummary:
    """
    Headline figures for a report period.

    Average daily spending divides total expenses by the whole number of
    days between start and end. The top spending day is the date with the
    highest expense total.
    """
    stats = transaction_stats(transactions)
    net_savings = stats.total_income - stats.total_expenses

    days = (end - start).days
    avg_daily = round_money(stats.total_expenses / days) if days > 0 else ZERO

    per_day: dict[date, Decimal] = defaultdict(lambda: ZERO)
    for t in _expenses(transactions):
        per_day[t.date] += t.amount
    top_day = max(per_day.items(), key=lambda item: item[1])[0] if per_day else None

    most_expensive = max((t.amount for t in _expenses(transactions)), default=ZERO)

    return ReportSummary(
        total_income=stats.total_income,
        total_expenses=stats.total_expenses,
        net_savings=net_savings,
        savings_rate=percentage(net_savings, stats.total_income),
        transaction_count=stats.transaction_count,
        avg_daily_spending=avg_daily,
        top_spending_day=top_day,
        most_expensive_transaction=most_expensive,
    )


# =============================================================================
# GROUPINGS
# =============================================================================

def monthly_trend(transactions: Iterable[Transaction]) -> list[MonthlyTrendPoint]:
    """
    Income, expense and savings per "YYYY-MM", oldest month first.

    Only months that have at least one transaction appear.
    """
    buckets: dict[str, list[Decimal]] = defaultdict(lambda: [ZERO, ZERO])
    for t in transactions:
        bucket = buckets[month_key(t.date)]
        if t.type == TransactionType.INCOME:
            bucket[0] += t.amount
        else:
            bucket[1] += t.amount

    points = []
    for month in sorted(buckets):
        income, expense = buckets[month]
        savings = income - expense
        points.append(MonthlyTrendPoint(
            month=month,
            income=income,
            expense=expense,
            savings=savings,
            savings_rate=percentage(savings, income),
        ))
    return points


def category_breakdown(
    transactions: Iterable[TransactionWithDetails],
) -> list[CategoryBreakdown]:
    """
    Expense totals grouped by category name, largest first.

    Transactions whose category is missing are grouped under "Other".
    """
    totals: dict[str, Decimal] = defaultdict(lambda: ZERO)
    counts: dict[str, int] = defaultdict(int)
    colors: dict[str, str] = {}
    total_expenses = ZERO

    for t in _expenses(transactions):
        category = getattr(t, "category", None)
        name = category.name if category else UNCATEGORIZED_NAME
        colors.setdefault(name, category.color if category else DEFAULT_CATEGORY_COLOR)
        totals[name] += t.amount
        counts[name] += 1
        total_expenses += t.amount

    breakdown = [
        CategoryBreakdown(
            name=name,
            amount=amount,
            percentage=percentage(amount, total_expenses),
            color=colors[name],
            transaction_count=counts[name],
            avg_transaction=round_money(amount / counts[name]),
        )
        for name, amount in totals.items()
    ]
    breakdown.sort(key=lambda c: c.amount, reverse=True)
    return breakdown


def top_categories(
    transactions: Iterable[TransactionWithDetails],
    limit: int = 6,
) -> list[TopCategory]:
    return [
        TopCategory(
            name=c.name,
            amount=c.amount,
            color=c.color,
            percentage=c.percentage,
        )
        for c in category_breakdown(transactions)[:limit]
    ]


def wallet_performance(
    transactions: Iterable[TransactionWithDetails],
) -> list[WalletPerformance]:
    """Income, expenses and net flow per wallet, best net flow first."""
    income: dict[str, Decimal] = defaultdict(lambda: ZERO)
    expenses: dict[str, Decimal] = defaultdict(lambda: ZERO)
    counts: dict[str, int] = defaultdict(int)
    colors: dict[str, str] = {}

    for t in transactions:
        wallet = getattr(t, "wallet", None)
        name = wallet.name if wallet else UNKNOWN_NAME
        colors.setdefault(name, wallet.color if wallet else DEFAULT_CATEGORY_COLOR)
        if t.type == TransactionType.INCOME:
            income[name] += t.amount
        else:
            expenses[name] += t.amount
        counts[name] += 1

    performance = [
        WalletPerformance(
            name=name,
            total_income=income[name],
            total_expenses=expenses[name],
            net_flow=income[name] - expenses[name],
            transaction_count=count,
            color=colors[name],
        )
        for name, count in counts.items()
    ]
    performance.sort(key=lambda w: w.net_flow, reverse=True)
    return performance


def daily_spending(
    transactions: Iterable[Transaction],
    window: int = DAILY_SPENDING_WINDOW,
) -> list[DailySpending]:
    """Expense totals per date, ascending, keeping only the last `window` dates."""
    totals: dict[date, Decimal] = defaultdict(lambda: ZERO)
    counts: dict[date, int] = defaultdict(int)
    for t in _expenses(transactions):
        totals[t.date] += t.amount
        counts[t.date] += 1

    days = [
        DailySpending(date=day, amount=totals[day], transaction_count=counts[day])
        for day in sorted(totals)
    ]
    return days[-window:]


def spent_in_month(
    transactions: Iterable[Transaction],
    category_id,
    month: str,
) -> Decimal:
    """Sum of expenses in one category within a calendar month."""
    start, end = month_bounds(month)
    return sum(
        (
            t.amount for t in _expenses(transactions)
            if t.category_id == category_id and start <= t.date <= end
        ),
        ZERO,
    )


# =============================================================================
# BUDGETS
# =============================================================================

def budget_analysis(budgets: Iterable[BudgetWithSpent]) -> list[BudgetAnalysis]:
    return [
        BudgetAnalysis(
            category_name=b.category.name if b.category else UNKNOWN_NAME,
            budget_amount=b.amount,
            spent_amount=b.spent,
            remaining_amount=b.remaining,
            utilization_rate=b.utilization_rate,
            status=budget_status(b.utilization_rate),
        )
        for b in budgets
    ]


def budget_overview(
    budgets: list[BudgetWithSpent],
    warning_ratio: float = 0.8,
) -> BudgetOverview:
    """
    Totals across a month's budgets.

    A budget is over when spent exceeds the amount, and on track when spent
    is at most `warning_ratio` of the amount.
    """
    ratio = Decimal(str(warning_ratio))
    return BudgetOverview(
        total_budget=sum((b.amount for b in budgets), ZERO),
        total_spent=sum((b.spent for b in budgets), ZERO),
        over_budget_count=sum(1 for b in budgets if b.spent > b.amount),
        on_track_count=sum(1 for b in budgets if b.spent <= b.amount * ratio),
    )


# =============================================================================
# INSIGHTS
# =============================================================================

def generate_insights(
    summary: ReportSummary,
    trend: list[MonthlyTrendPoint],
    breakdown: list[CategoryBreakdown],
    budgets: list[BudgetAnalysis],
    small_transaction_threshold: float = 50000.0,
    currency_symbol: str = "Rp",
) -> list[Insight]:
    """Rule-based observations shown on the Reports page."""
    insights: list[Insight] = []

    rate = summary.savings_rate
    if rate > 20:
        insights.append(Insight(
            type=InsightType.POSITIVE,
            title="Excellent Savings Rate!",
            description=(
                f"Your savings rate of {rate:.1f}% is above the recommended 20%. "
                "Keep up the great work!"
            ),
            value=f"{rate:.1f}%",
        ))
    elif rate < 10:
        insights.append(Insight(
            type=InsightType.WARNING,
            title="Low Savings Rate",
            description=(
                f"Your savings rate of {rate:.1f}% is below the recommended 20%. "
                "Consider reducing expenses or increasing income."
            ),
            value=f"{rate:.1f}%",
        ))

    if breakdown and breakdown[0].percentage > 40:
        top = breakdown[0]
        insights.append(Insight(
            type=InsightType.WARNING,
            title="High Category Concentration",
            description=(
                f"{top.name} accounts for {top.percentage:.1f}% of your expenses. "
                "Consider diversifying your spending."
            ),
            value=f"{top.percentage:.1f}%",
        ))

    if len(trend) >= 2 and trend[-2].expense > 0:
        last, previous = trend[-1], trend[-2]
        change = percentage(last.expense - previous.expense, previous.expense)
        if change > 20:
            insights.append(Insight(
                type=InsightType.WARNING,
                title="Spending Increase",
                description=(
                    f"Your expenses increased by {change:.1f}% compared to last month. "
                    "Review your recent purchases."
                ),
                value=f"+{change:.1f}%",
            ))
        elif change < -10:
            insights.append(Insight(
                type=InsightType.POSITIVE,
                title="Spending Reduction",
                description=(
                    f"Great job! You reduced your expenses by {abs(change):.1f}% "
                    "compared to last month."
                ),
                value=f"-{abs(change):.1f}%",
            ))

    over_count = sum(1 for b in budgets if b.status == BudgetStatus.OVER)
    if over_count:
        noun = "category" if over_count == 1 else "categories"
        insights.append(Insight(
            type=InsightType.WARNING,
            title="Budget Exceeded",
            description=(
                f"You've exceeded the budget in {over_count} {noun}. "
                "Review your spending in these areas."
            ),
            value=f"{over_count} categories",
        ))

    if summary.transaction_count > 0:
        avg_size = summary.total_expenses / summary.transaction_count
        if avg_size < Decimal(str(small_transaction_threshold)):
            insights.append(Insight(
                type=InsightType.INFO,
                title="Frequent Small Transactions",
                description=(
                    "You make many small transactions. Consider consolidating "
                    "purchases to better track spending."
                ),
                value=f"Avg: {format_currency(avg_size, currency_symbol)}",
            ))

    return insights


def most_recent(transactions: list[Transaction], limit: int) -> list[Transaction]:
    """The `limit` most recently created transactions."""
    candidates = list(transactions)
    candidates.sort(key=lambda t: t.created_at, reverse=True)
    return candidates[:limit]
