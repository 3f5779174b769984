"""AI Agents package."""

from finance_tracker.agents.ai_agents import (
    CategorySuggestion,
    NaturalLanguageResponse,
    QueryAgent,
    QueryIntent,
    ReceiptAgent,
    RecommendationAgent,
    RecommendationError,
)

__all__ = [
    "CategorySuggestion",
    "NaturalLanguageResponse",
    "QueryAgent",
    "QueryIntent",
    "ReceiptAgent",
    "RecommendationAgent",
    "RecommendationError",
]
