"""
Assistant Models

Persisted Ask-AI conversations and the AI recommendations page.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from finance_tracker.models.finance import utcnow


NEW_SESSION_TITLE = "New conversation"


class ChatMessageType(str, Enum):
    USER = "user"
    AI = "ai"


class ChatMessage(BaseModel):
    """One message of an Ask-AI conversation."""

    id: UUID = Field(default_factory=uuid4)
    user_id: UUID
    session_id: UUID
    type: ChatMessageType
    message: str = Field(..., min_length=1)
    created_at: datetime = Field(default_factory=utcnow)


class ChatSession(BaseModel):
    """
    Summary of one conversation for the session list.

    The title is the first question asked in it.
    """

    session_id: UUID
    first_message: str = NEW_SESSION_TITLE
    last_message_at: datetime
    message_count: int = 0


class RecommendationType(str, Enum):
    SAVING = "saving"
    INVESTMENT = "investment"
    BUDGET = "budget"
    GOAL = "goal"
    WARNING = "warning"


class Impact(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Recommendation(BaseModel):
    """A single piece of advice generated from the user's recent finances."""

    id: UUID = Field(default_factory=uuid4)
    type: RecommendationType
    title: str = Field(..., min_length=1, max_length=200)
    description: str
    impact: Impact = Impact.MEDIUM
    priority: int = Field(default=3, ge=1, le=5, description="1 is the most urgent")
    potential_saving: Optional[float] = Field(
        default=None,
        ge=0,
        description="Estimated monthly saving in the app currency"
    )
    timeframe: str = "1 month"
    action_items: list[str] = Field(default_factory=list)
    is_implemented: bool = False
