"""
Goal and Loan Models

A single record type covers both savings goals and loans:
- For a GOAL, current_amount is what has been saved so far.
- For a LOAN, current_amount is the balance still owed.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator

from finance_tracker.models.finance import Wallet, utcnow


class GoalLoanType(str, Enum):
    GOAL = "goal"
    LOAN = "loan"


class GoalLoanCategory(str, Enum):
    EMERGENCY = "emergency"
    RETIREMENT = "retirement"
    EDUCATION = "education"
    TRAVEL = "travel"
    HOUSE = "house"
    VEHICLE = "vehicle"
    WEDDING = "wedding"
    BUSINESS = "business"
    PERSONAL_LOAN = "personal_loan"
    MORTGAGE = "mortgage"
    CAR_LOAN = "car_loan"
    CREDIT_CARD = "credit_card"
    STUDENT_LOAN = "student_loan"
    OTHER = "other"


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class GoalLoanStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    PAUSED = "paused"
    CANCELLED = "cancelled"


class PaymentType(str, Enum):
    CONTRIBUTION = "contribution"
    PAYMENT = "payment"
    INTEREST = "interest"
    FEE = "fee"
    ADJUSTMENT = "adjustment"


class GoalLoan(BaseModel):
    """A savings goal or a loan being paid down."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: UUID
    title: str = Field(..., min_length=1, max_length=200)
    type: GoalLoanType
    category: GoalLoanCategory = GoalLoanCategory.OTHER
    target_amount: Decimal = Field(..., gt=0, decimal_places=2)
    current_amount: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    target_date: date
    interest_rate: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    monthly_payment: Decimal = Field(default=Decimal("0"), ge=0)
    priority: Priority = Priority.MEDIUM
    status: GoalLoanStatus = GoalLoanStatus.ACTIVE
    description: Optional[str] = Field(default=None, max_length=1000)
    payment_source: Optional[UUID] = Field(
        default=None,
        description="Wallet the payments/contributions come from"
    )
    start_date: date = Field(default_factory=date.today)
    lender_name: Optional[str] = Field(default=None, max_length=200)
    account_number: Optional[str] = Field(default=None, max_length=50)
    minimum_payment: Decimal = Field(default=Decimal("0"), ge=0)
    payment_due_date: Optional[int] = Field(
        default=1,
        ge=1,
        le=31,
        description="Day of month a loan payment is due"
    )
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode='after')
    def validate_dates(self) -> 'GoalLoan':
        if self.target_date < self.start_date:
            raise ValueError("Target date cannot be before start date")
        return self


class GoalLoanPayment(BaseModel):
    """A contribution to a goal or a payment against a loan."""

    id: UUID = Field(default_factory=uuid4)
    user_id: UUID
    goal_loan_id: UUID
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    transaction_type: PaymentType
    transaction_date: date = Field(default_factory=date.today)
    source_wallet_id: Optional[UUID] = None
    notes: Optional[str] = Field(default=None, max_length=500)
    is_automatic: bool = False
    created_at: datetime = Field(default_factory=utcnow)


class GoalLoanWithMetrics(GoalLoan):
    """Goal/loan plus the progress figures shown on the Goals & Loans page."""

    progress_percentage: float = 0.0
    remaining_amount: Decimal = Decimal("0")
    days_remaining: int = 0
    months_remaining: int = 0
    is_on_track: bool = True
    total_paid: Decimal = Decimal("0")
    next_payment_date: Optional[date] = None
    wallet: Optional[Wallet] = None


class GoalLoanStats(BaseModel):
    total_goals: int = 0
    total_loans: int = 0
    active_items: int = 0
    completed_items: int = 0
    total_goal_amount: Decimal = Decimal("0")
    total_loan_amount: Decimal = Decimal("0")
    total_saved: Decimal = Decimal("0")
    total_owed: Decimal = Decimal("0")
    monthly_payments: Decimal = Decimal("0")
    monthly_contributions: Decimal = Decimal("0")
