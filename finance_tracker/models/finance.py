"""
Core Data Models for Personal Finance Tracker

These models define the strict schemas for all data flowing through the system.
They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be serializable for storage and logging

DESIGN DECISION: Money is always Decimal, never float.
Aggregations that end up as percentages are floats; balances and sums are not.
"""

import datetime as dt
import re
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


HEX_COLOR_PATTERN = r"^#[0-9A-Fa-f]{6}$"
MONTH_PATTERN = re.compile(r"^(\d{4})-(0[1-9]|1[0-2])$")

DEFAULT_WALLET_COLOR = "#3B82F6"
DEFAULT_CATEGORY_COLOR = "#6B7280"
DEFAULT_CATEGORY_ICON = "Tag"


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class WalletType(str, Enum):
    """Kind of money-holding account."""
    BANK = "bank"
    EWALLET = "ewallet"


class TransactionType(str, Enum):
    """
    Direction of a transaction.

    Income adds to the wallet balance, expense subtracts from it.
    """
    INCOME = "income"
    EXPENSE = "expense"


class CategoryType(str, Enum):
    """
    What a category classifies.

    Transactions and budgets use INCOME/EXPENSE categories;
    the remaining types label goals, loans and assets.
    """
    INCOME = "income"
    EXPENSE = "expense"
    GOAL = "goal"
    LOAN = "loan"
    ASSET = "asset"


class BalanceOperation(str, Enum):
    ADD = "add"
    SUBTRACT = "subtract"


# =============================================================================
# WALLETS
# =============================================================================

class Wallet(BaseModel):
    """
    A named money-holding account (bank or e-wallet).

    The balance is maintained by the transaction service: every recorded
    transaction adjusts it, every reverted one undoes the adjustment.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: UUID
    name: str = Field(..., min_length=1, max_length=100)
    account_number: str = Field(..., min_length=1, max_length=50)
    balance: Decimal = Field(default=Decimal("0"), decimal_places=2)
    type: WalletType
    color: str = Field(default=DEFAULT_WALLET_COLOR, pattern=HEX_COLOR_PATTERN)
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


# =============================================================================
# CATEGORIES
# =============================================================================

class Category(BaseModel):
    """A user-defined label (with color and icon) used to classify records."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: UUID
    name: str = Field(..., min_length=1, max_length=100)
    type: CategoryType
    color: str = Field(default=DEFAULT_CATEGORY_COLOR, pattern=HEX_COLOR_PATTERN)
    icon: str = Field(default=DEFAULT_CATEGORY_ICON, max_length=50)
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class CategoryWithUsage(Category):
    """Category plus how often transactions reference it."""

    usage_count: int = Field(default=0, ge=0)
    last_used: Optional[datetime] = None


# =============================================================================
# TRANSACTIONS
# =============================================================================

class Transaction(BaseModel):
    """
    A dated income or expense record.

    Affects exactly one wallet and is classified by exactly one category.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: UUID
    wallet_id: UUID
    category_id: UUID
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    type: TransactionType
    description: str = Field(..., min_length=1, max_length=500)
    date: dt.date = Field(default_factory=dt.date.today)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def signed_amount(self) -> Decimal:
        """Effect of this transaction on its wallet balance."""
        return self.amount if self.type == TransactionType.INCOME else -self.amount


class TransactionWithDetails(Transaction):
    """Transaction joined with its wallet and category."""

    wallet: Optional[Wallet] = None
    category: Optional[Category] = None


class TransactionFilter(BaseModel):
    """
    Chained filters for listing transactions.

    Every filter that is set must match; unset filters match everything.
    """

    type: Optional[TransactionType] = None
    wallet_id: Optional[UUID] = None
    category_id: Optional[UUID] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    limit: Optional[int] = Field(default=None, ge=1)

    def matches(self, transaction: Transaction) -> bool:
        if self.type and transaction.type != self.type:
            return False
        if self.wallet_id and transaction.wallet_id != self.wallet_id:
            return False
        if self.category_id and transaction.category_id != self.category_id:
            return False
        if self.date_from and transaction.date < self.date_from:
            return False
        if self.date_to and transaction.date > self.date_to:
            return False
        return True


def sort_transactions(transactions: list[Transaction]) -> list[Transaction]:
    """Newest first: by date, then by creation time."""
    return sorted(
        transactions,
        key=lambda t: (t.date, t.created_at),
        reverse=True,
    )


# =============================================================================
# BUDGETS
# =============================================================================

class BudgetStatus(str, Enum):
    UNDER = "under"
    ON_TRACK = "on-track"
    OVER = "over"


def budget_status(utilization_rate: float) -> BudgetStatus:
    """Classify a utilization percentage: over 100 is over, over 80 on track."""
    if utilization_rate > 100:
        return BudgetStatus.OVER
    if utilization_rate > 80:
        return BudgetStatus.ON_TRACK
    return BudgetStatus.UNDER


class Budget(BaseModel):
    """
    A per-category, per-month spending cap.

    `month` is "YYYY-MM"; `year` is kept alongside it and must agree.
    There is at most one budget per user, category and month.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: UUID
    category_id: UUID
    amount: Decimal = Field(..., ge=0, decimal_places=2)
    month: str
    year: Optional[int] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator('month')
    @classmethod
    def validate_month(cls, v: str) -> str:
        if not MONTH_PATTERN.match(v):
            raise ValueError(f"Month must be in YYYY-MM format, got {v!r}")
        return v

    @model_validator(mode='after')
    def validate_year(self) -> 'Budget':
        month_year = int(self.month[:4])
        if self.year is None:
            self.year = month_year
        elif self.year != month_year:
            raise ValueError("Budget year does not match its month")
        return self


class BudgetWithSpent(Budget):
    """Budget joined with its category and the actual spending against it."""

    spent: Decimal = Decimal("0")
    category: Optional[Category] = None

    @property
    def remaining(self) -> Decimal:
        return self.amount - self.spent

    @property
    def utilization_rate(self) -> float:
        """Spent as a percentage of the budget (0 for a zero budget)."""
        if self.amount <= 0:
            return 0.0
        return float(self.spent / self.amount * 100)

    @property
    def is_over_budget(self) -> bool:
        return self.spent > self.amount

    @property
    def status(self) -> BudgetStatus:
        return budget_status(self.utilization_rate)


def format_month(year: int, month: int) -> str:
    """Build the "YYYY-MM" key used by budgets and monthly buckets."""
    return f"{year:04d}-{month:02d}"
