"""
Query Models (for the Ask-AI page)

CRITICAL: The LLM converts user questions to a StructuredQuery.
The query is then executed DETERMINISTICALLY on the user's transactions.
The LLM is FORBIDDEN from answering directly.
"""

from datetime import date, datetime
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from finance_tracker.models.finance import TransactionType, utcnow


class StructuredQuery(BaseModel):
    """A structured query converted from natural language."""

    query_id: UUID = Field(default_factory=uuid4)
    original_question: str
    created_at: datetime = Field(default_factory=utcnow)

    query_type: str = Field(
        ...,
        pattern="^(lookup|aggregate|compare|list|exists)$",
        description="Type of query to execute"
    )

    # Filters
    type_filter: Optional[TransactionType] = None
    category_filter: Optional[str] = Field(
        default=None,
        description="Category name (case-insensitive partial match)"
    )
    wallet_filter: Optional[str] = Field(
        default=None,
        description="Wallet name (case-insensitive partial match)"
    )
    description_filter: Optional[str] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None

    # For aggregations
    aggregation_type: Optional[str] = Field(
        default=None,
        pattern="^(sum|count|average|min|max)$"
    )
    group_by: Optional[str] = Field(
        default=None,
        pattern="^(category|wallet|month|year)$"
    )

    limit: int = Field(default=10, ge=1, le=100)


class QueryResult(BaseModel):
    """
    Result of executing a structured query.

    This is what the LLM uses to generate a natural language response.
    """

    query_id: UUID
    executed_at: datetime = Field(default_factory=utcnow)

    success: bool
    error_message: Optional[str] = None

    data_found: bool
    result_count: int = Field(ge=0)
    results: list[dict] = Field(default_factory=list)
    aggregation_result: Optional[dict] = None

    query_description: str = Field(
        ...,
        description="Human-readable description of what was queried"
    )
