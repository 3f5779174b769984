"""Pure aggregation over in-memory transactions, budgets and wallets."""

from finance_tracker.analytics.aggregation import (
    budget_analysis,
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
    spent_in_month,
    summarize,
    top_categories,
    transaction_stats,
    wallet_performance,
)

__all__ = [
    "budget_analysis",
    "budget_overview",
    "category_breakdown",
    "daily_spending",
    "format_currency",
    "generate_insights",
    "month_bounds",
    "month_key",
    "monthly_trend",
    "most_recent",
    "percentage",
    "shift_months",
    "spent_in_month",
    "summarize",
    "top_categories",
    "transaction_stats",
    "wallet_performance",
]
