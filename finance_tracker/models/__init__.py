"""
Data Models Package

This package contains all Pydantic models used in the Personal Finance Tracker.
All data flowing through the system must conform to these schemas.
"""

from finance_tracker.models.finance import (
    BalanceOperation,
    Budget,
    BudgetStatus,
    BudgetWithSpent,
    Category,
    CategoryType,
    CategoryWithUsage,
    Transaction,
    TransactionFilter,
    TransactionType,
    TransactionWithDetails,
    Wallet,
    WalletType,
    budget_status,
    format_month,
    sort_transactions,
)
from finance_tracker.models.goals import (
    GoalLoan,
    GoalLoanCategory,
    GoalLoanPayment,
    GoalLoanStats,
    GoalLoanStatus,
    GoalLoanType,
    GoalLoanWithMetrics,
    PaymentType,
    Priority,
)
from finance_tracker.models.assets import (
    Asset,
    AssetCategory,
    AssetCategoryBreakdown,
    AssetCondition,
    AssetStats,
    AssetStatus,
    AssetWithMetrics,
)
from finance_tracker.models.assistant import (
    ChatMessage,
    ChatMessageType,
    ChatSession,
    Impact,
    Recommendation,
    RecommendationType,
)
from finance_tracker.models.receipt import (
    ExtractedReceipt,
    ReceiptUpload,
    ValidationIssue,
    ValidationResult,
)
from finance_tracker.models.reports import (
    BudgetAnalysis,
    BudgetOverview,
    CategoryBreakdown,
    DailySpending,
    DashboardStats,
    Insight,
    InsightType,
    MonthlyTrendPoint,
    RecentTransaction,
    ReportData,
    ReportPeriod,
    ReportSummary,
    TopCategory,
    TransactionStats,
    WalletPerformance,
)
from finance_tracker.models.query import QueryResult, StructuredQuery
from finance_tracker.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Core finance models
    "BalanceOperation",
    "Budget",
    "BudgetStatus",
    "BudgetWithSpent",
    "Category",
    "CategoryType",
    "CategoryWithUsage",
    "Transaction",
    "TransactionFilter",
    "TransactionType",
    "TransactionWithDetails",
    "Wallet",
    "WalletType",
    "budget_status",
    "format_month",
    "sort_transactions",
    # Goals and loans
    "GoalLoan",
    "GoalLoanCategory",
    "GoalLoanPayment",
    "GoalLoanStats",
    "GoalLoanStatus",
    "GoalLoanType",
    "GoalLoanWithMetrics",
    "PaymentType",
    "Priority",
    # Assets
    "Asset",
    "AssetCategory",
    "AssetCategoryBreakdown",
    "AssetCondition",
    "AssetStats",
    "AssetStatus",
    "AssetWithMetrics",
    # Ask-AI history and recommendations
    "ChatMessage",
    "ChatMessageType",
    "ChatSession",
    "Impact",
    "Recommendation",
    "RecommendationType",
    # Receipt models
    "ExtractedReceipt",
    "ReceiptUpload",
    "ValidationIssue",
    "ValidationResult",
    # Report models
    "BudgetAnalysis",
    "BudgetOverview",
    "CategoryBreakdown",
    "DailySpending",
    "DashboardStats",
    "Insight",
    "InsightType",
    "MonthlyTrendPoint",
    "RecentTransaction",
    "ReportData",
    "ReportPeriod",
    "ReportSummary",
    "TopCategory",
    "TransactionStats",
    "WalletPerformance",
    # Query models
    "QueryResult",
    "StructuredQuery",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
