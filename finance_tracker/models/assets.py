"""
Asset Models

Things the user owns outside their wallets: property, vehicles,
electronics, jewelry and investments. Values are entered by the user and
refreshed by hand; nothing here is priced automatically.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from finance_tracker.models.finance import utcnow


class AssetCategory(str, Enum):
    PROPERTY = "property"
    VEHICLE = "vehicle"
    ELECTRONICS = "electronics"
    JEWELRY = "jewelry"
    INVESTMENT = "investment"
    OTHER = "other"


class AssetStatus(str, Enum):
    ACTIVE = "active"
    SOLD = "sold"
    DEPRECIATED = "depreciated"


class AssetCondition(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


class Asset(BaseModel):
    """An owned asset with its purchase and current value."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: UUID
    name: str = Field(..., min_length=1, max_length=200)
    category: AssetCategory
    current_value: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    purchase_value: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    purchase_date: date
    monthly_contribution: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    interest_rate: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        le=100,
        description="Annual interest rate in percent"
    )
    status: AssetStatus = AssetStatus.ACTIVE
    condition: AssetCondition = AssetCondition.GOOD
    description: Optional[str] = Field(default=None, max_length=1000)
    location: Optional[str] = Field(default=None, max_length=200)
    notes: Optional[str] = Field(default=None, max_length=1000)
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class AssetWithMetrics(Asset):
    gain_loss: Decimal = Decimal("0")
    gain_loss_percentage: float = 0.0
    months_owned: int = 0
    projected_value: Optional[Decimal] = Field(
        default=None,
        description="Compounded purchase value plus contributions (investments with a rate only)"
    )


class AssetCategoryBreakdown(BaseModel):
    category: AssetCategory
    count: int
    value: Decimal
    percentage: float


class AssetStats(BaseModel):
    total_assets: int = 0
    total_current_value: Decimal = Decimal("0")
    total_purchase_value: Decimal = Decimal("0")
    total_gain_loss: Decimal = Decimal("0")
    total_gain_loss_percentage: float = 0.0
    category_breakdown: list[AssetCategoryBreakdown] = Field(default_factory=list)
    top_performers: list[AssetWithMetrics] = Field(default_factory=list)
    worst_performers: list[AssetWithMetrics] = Field(default_factory=list)
