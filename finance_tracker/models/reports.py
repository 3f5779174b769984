"""
Report and Dashboard Models

Everything here is DERIVED data: computed from transactions, wallets and
budgets already loaded into memory. Nothing in this module is persisted.
"""

import datetime as dt
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from finance_tracker.models.finance import BudgetStatus, TransactionType


class ReportPeriod(str, Enum):
    MONTH = "month"
    THREE_MONTHS = "3months"
    SIX_MONTHS = "6months"
    YEAR = "year"


class InsightType(str, Enum):
    POSITIVE = "positive"
    WARNING = "warning"
    INFO = "info"


class TransactionStats(BaseModel):
    total_income: Decimal = Decimal("0")
    total_expenses: Decimal = Decimal("0")
    net_amount: Decimal = Decimal("0")
    transaction_count: int = 0


class MonthlyTrendPoint(BaseModel):
    """Income and expense totals for one calendar month ("YYYY-MM")."""

    month: str
    income: Decimal = Decimal("0")
    expense: Decimal = Decimal("0")
    savings: Decimal = Decimal("0")
    savings_rate: float = 0.0

    @property
    def label(self) -> str:
        """Short display label, e.g. "Mar 2025"."""
        return date.fromisoformat(f"{self.month}-01").strftime("%b %Y")


class CategoryBreakdown(BaseModel):
    name: str
    amount: Decimal
    percentage: float
    color: str
    transaction_count: int
    avg_transaction: Decimal


class WalletPerformance(BaseModel):
    name: str
    total_income: Decimal
    total_expenses: Decimal
    net_flow: Decimal
    transaction_count: int
    color: str


class DailySpending(BaseModel):
    date: dt.date
    amount: Decimal
    transaction_count: int


class BudgetAnalysis(BaseModel):
    category_name: str
    budget_amount: Decimal
    spent_amount: Decimal
    remaining_amount: Decimal
    utilization_rate: float
    status: BudgetStatus


class BudgetOverview(BaseModel):
    total_budget: Decimal = Decimal("0")
    total_spent: Decimal = Decimal("0")
    over_budget_count: int = 0
    on_track_count: int = 0


class Insight(BaseModel):
    type: InsightType
    title: str
    description: str
    value: Optional[str] = None


class ReportSummary(BaseModel):
    total_income: Decimal = Decimal("0")
    total_expenses: Decimal = Decimal("0")
    net_savings: Decimal = Decimal("0")
    savings_rate: float = 0.0
    transaction_count: int = 0
    avg_daily_spending: Decimal = Decimal("0")
    top_spending_day: Optional[date] = None
    most_expensive_transaction: Decimal = Decimal("0")


class ReportData(BaseModel):
    period: ReportPeriod
    start_date: date
    end_date: date
    summary: ReportSummary
    monthly_trend: list[MonthlyTrendPoint] = Field(default_factory=list)
    category_breakdown: list[CategoryBreakdown] = Field(default_factory=list)
    wallet_performance: list[WalletPerformance] = Field(default_factory=list)
    daily_spending: list[DailySpending] = Field(default_factory=list)
    budget_analysis: list[BudgetAnalysis] = Field(default_factory=list)
    insights: list[Insight] = Field(default_factory=list)


class RecentTransaction(BaseModel):
    id: UUID
    description: str
    amount: Decimal
    type: TransactionType
    date: dt.date
    category_name: str
    wallet_name: str


class TopCategory(BaseModel):
    name: str
    amount: Decimal
    color: str
    percentage: float


class DashboardStats(BaseModel):
    total_balance: Decimal = Decimal("0")
    monthly_income: Decimal = Decimal("0")
    monthly_expenses: Decimal = Decimal("0")
    total_transactions: int = 0
    savings_rate: float = 0.0
    top_categories: list[TopCategory] = Field(default_factory=list)
    recent_transactions: list[RecentTransaction] = Field(default_factory=list)
    monthly_trend: list[MonthlyTrendPoint] = Field(default_factory=list)
    budget_overview: BudgetOverview = Field(default_factory=BudgetOverview)
