"""
AI Agents for the Finance Tracker

CRITICAL BOUNDARIES:

1. RECEIPT AGENT:
   - CAN: Suggest one of the user's own categories for a scanned receipt
   - CANNOT: Persist data without human confirmation
   - CANNOT: Invent categories the user doesn't have

2. QUERY AGENT (Ask AI):
   - CAN: Convert natural language to structured queries
   - CAN: Generate natural language responses FROM DATA
   - CANNOT: Answer questions directly from knowledge
   - CANNOT: Invent or hallucinate data
   - MUST: Say "no data found" if query returns nothing

3. RECOMMENDATION AGENT:
   - CAN: Suggest actions based on a summary of stored data
   - CANNOT: Change any data

The LLM is a TRANSLATOR, not an ORACLE.
It converts between human language and structured operations.
It NEVER makes up financial data.
"""

import calendar
import json
import re
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

import google.generativeai as genai
import structlog
from dateutil.relativedelta import relativedelta
from pydantic import BaseModel, Field, ValidationError

from finance_tracker.analytics import format_currency
from finance_tracker.config import GeminiSettings, get_settings
from finance_tracker.models.assistant import Recommendation
from finance_tracker.models.finance import Category, TransactionType
from finance_tracker.models.query import QueryResult, StructuredQuery
from finance_tracker.models.receipt import ExtractedReceipt


logger = structlog.get_logger(__name__)

# Default category name -> words that suggest it on a receipt
CATEGORY_KEYWORDS: dict[str, list[str]] = {
    "food & dining": [
        "restaurant", "resto", "cafe", "coffee", "kopi", "bakery", "makan",
        "nasi", "ayam", "mie", "pizza", "burger", "kfc", "mcdonald", "starbucks",
        "croissant", "tea", "teh", "food",
    ],
    "transportation": [
        "gojek", "grab", "taxi", "bluebird", "fuel", "bensin", "pertamina",
        "shell", "parkir", "parking", "toll", "tol", "kereta", "train",
    ],
    "shopping": [
        "supermarket", "minimarket", "indomaret", "alfamart", "mall", "store",
        "toko", "shop", "market", "hypermart", "carrefour", "transmart",
    ],
    "bills & utilities": [
        "pln", "listrik", "electricity", "pdam", "water", "internet", "wifi",
        "indihome", "telkomsel", "pulsa", "token",
    ],
    "entertainment": ["cinema", "bioskop", "xxi", "cgv", "netflix", "spotify", "game", "ticket"],
    "healthcare": ["apotek", "pharmacy", "klinik", "clinic", "hospital", "rumah sakit", "dokter", "obat"],
    "education": ["book", "buku", "gramedia", "course", "kursus", "school", "sekolah", "tuition"],
    "personal care": ["salon", "barber", "spa", "cosmetic", "kosmetik", "skincare"],
    "salary": ["salary", "gaji", "payroll"],
    "investment returns": ["dividend", "dividen", "interest", "bunga"],
}

MONTH_NAMES = {
    "january": 1, "february": 2, "march": 3, "april": 4,
    "may": 5, "june": 6, "july": 7, "august": 8,
    "september": 9, "october": 10, "november": 11, "december": 12,
}


def build_model(settings: Optional[GeminiSettings], max_output_tokens: int):
    """Configure Google Generative AI and create a model."""
    settings = settings or get_settings().gemini
    genai.configure(api_key=settings.api_key)
    return genai.GenerativeModel(
        model_name=settings.model_name,
        generation_config={
            "temperature": settings.temperature,
            "max_output_tokens": min(max_output_tokens, settings.max_tokens),
        },
    )


def parse_json_response(text: str) -> Optional[dict]:
    """The outermost {...} of a model response, or None."""
    start = text.find("{")
    end = text.rfind("}") + 1
    if start < 0 or end <= start:
        return None
    try:
        data = json.loads(text[start:end])
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


class CategorySuggestion(BaseModel):
    """AI's suggestion for a receipt's category."""

    category_id: UUID
    category_name: str
    confidence: float = Field(ge=0.0, le=1.0)
    reasoning: str


class QueryIntent(BaseModel):
    """
    Parsed intent from a natural language question.

    This is what the LLM extracts from the user's question.
    It is then converted to a StructuredQuery for execution.
    """

    query_type: str = Field(
        default="list",
        description="Type: lookup, aggregate, compare, list, exists"
    )
    transaction_type: Optional[str] = Field(
        default=None,
        description="income or expense, if the question is about one of them"
    )
    category: Optional[str] = Field(
        default=None,
        description="Category name mentioned"
    )
    wallet: Optional[str] = Field(
        default=None,
        description="Wallet or bank mentioned"
    )
    description: Optional[str] = Field(
        default=None,
        description="Merchant or item mentioned"
    )
    time_reference: Optional[str] = Field(
        default=None,
        description="Time reference (last month, this year, etc.)"
    )
    aggregation: Optional[str] = Field(
        default=None,
        description="Aggregation type: sum, count, average, etc."
    )
    group_by: Optional[str] = Field(
        default=None,
        description="Group by: category, wallet, month, year"
    )


class NaturalLanguageResponse(BaseModel):
    """
    AI-generated natural language response based on query results.

    The LLM generates this FROM the query results.
    It NEVER invents data - only formats what was found.
    """

    response: str
    confidence: float = Field(ge=0.0, le=1.0)
    data_used: bool


class ReceiptAgent:
    """
    Suggests which of the user's categories a scanned receipt belongs to.

    Order of preference:
    1. Gemini picks from the user's categories of the receipt's type
    2. Keyword matching on the description
    3. The first category of that type
    """

    def __init__(
        self,
        model: Optional[Any] = None,
        gemini_settings: Optional[GeminiSettings] = None,
    ):
        self._model = model
        self._settings = gemini_settings

    def _get_model(self):
        if self._model is None:
            self._model = build_model(self._settings, max_output_tokens=512)
        return self._model

    async def suggest_category(
        self,
        extracted: ExtractedReceipt,
        categories: list[Category],
    ) -> Optional[CategorySuggestion]:
        """
        Suggest a category for the extracted receipt.

        Returns None when the user has no category of the receipt's type.
        """
        candidates = [c for c in categories if c.type.value == extracted.type.value]
        if not candidates:
            return None

        if extracted.description:
            suggestion = await self._ask_model(extracted, candidates)
            if suggestion:
                return suggestion

            matched = self._match_keywords(extracted.description, candidates)
            if matched:
                return CategorySuggestion(
                    category_id=matched.id,
                    category_name=matched.name,
                    confidence=0.6,
                    reasoning="Based on keywords in the receipt description",
                )

        first = candidates[0]
        return CategorySuggestion(
            category_id=first.id,
            category_name=first.name,
            confidence=0.3,
            reasoning="Could not determine category - please select manually",
        )

    async def _ask_model(
        self,
        extracted: ExtractedReceipt,
        candidates: list[Category],
    ) -> Optional[CategorySuggestion]:
        names = [c.name for c in candidates]
        prompt = f"""You are helping categorize a receipt for a personal finance app.

Receipt items or merchant: {extracted.description}
Transaction type: {extracted.type.value}

Available categories: {', '.join(names)}

Respond with ONLY a JSON object in this exact format:
{{"category": "one of the available categories", "confidence": 0.8, "reasoning": "brief explanation"}}

Be conservative - if unsure, use a low confidence."""

        try:
            response = await self._get_model().generate_content_async(prompt)
            data = parse_json_response(response.text.strip())
        except Exception as e:
            # Fall back to keyword matching
            logger.warning("category_suggestion_failed", error=str(e))
            return None
        if not data:
            return None

        wanted = str(data.get("category", "")).strip().lower()
        for category in candidates:
            if category.name.lower() == wanted:
                try:
                    confidence = min(max(float(data.get("confidence", 0.5)), 0.0), 1.0)
                except (TypeError, ValueError):
                    confidence = 0.5
                return CategorySuggestion(
                    category_id=category.id,
                    category_name=category.name,
                    confidence=confidence,
                    reasoning=str(data.get("reasoning") or "Suggested by AI"),
                )
        return None

    @staticmethod
    def _match_keywords(description: str, candidates: list[Category]) -> Optional[Category]:
        text = description.lower()
        for category in candidates:
            name = category.name.lower()
            if name in text:
                return category
            if any(keyword in text for keyword in CATEGORY_KEYWORDS.get(name, [])):
                return category
        return None


class QueryAgent:
    """
    AI agent for the Ask-AI page.

    FLOW:
    1. User asks question -> LLM extracts intent
    2. Intent -> StructuredQuery (deterministic conversion)
    3. StructuredQuery executes on transactions (deterministic)
    4. Results -> LLM generates natural language response

    The LLM is sandwiched between two deterministic steps.
    It cannot hallucinate because it only sees real data.
    """

    def __init__(
        self,
        model: Optional[Any] = None,
        gemini_settings: Optional[GeminiSettings] = None,
        currency_symbol: str = "Rp",
    ):
        self._model = model
        self._settings = gemini_settings
        self._currency_symbol = currency_symbol

    def _get_model(self):
        if self._model is None:
            self._model = build_model(self._settings, max_output_tokens=1024)
        return self._model

    async def parse_question(self, question: str) -> QueryIntent:
        """
        Parse a natural language question into a structured intent.

        Falls back to a plain listing when the model is unavailable or
        returns something unusable.
        """
        prompt = f"""You are parsing a question about personal income and expenses.

Question: "{question}"

Extract the intent as a JSON object with these fields:
- query_type: one of [lookup, aggregate, compare, list, exists]
  - lookup: finding specific transaction(s)
  - aggregate: calculating totals, averages, counts
  - compare: comparing periods, categories or wallets
  - list: listing transactions matching criteria
  - exists: checking if something exists (yes/no)
- transaction_type: "income" or "expense" if the question is about one of them
- category: a spending or income category mentioned (e.g. "Food & Dining", "Salary")
- wallet: a bank or e-wallet mentioned
- description: a merchant or item mentioned
- time_reference: a time period like "today", "this week", "last month",
  "this month", "this year", "last year", "January", "2024"
- aggregation: for aggregate queries: sum, count, average, min, max
- group_by: if they want a breakdown: category, wallet, month, year

Examples:
"How much did I spend on Food & Dining last month?" ->
{{"query_type": "aggregate", "transaction_type": "expense", "category": "Food & Dining", "time_reference": "last month", "aggregation": "sum"}}

"Did I get my salary this month?" ->
{{"query_type": "exists", "transaction_type": "income", "category": "Salary", "time_reference": "this month"}}

"Show my spending by category this year" ->
{{"query_type": "aggregate", "transaction_type": "expense", "time_reference": "this year", "aggregation": "sum", "group_by": "category"}}

Respond with ONLY the JSON object, no explanation."""

        try:
            response = await self._get_model().generate_content_async(prompt)
            data = parse_json_response(response.text.strip())
            if data:
                return QueryIntent(**{k: v for k, v in data.items() if v is not None})
        except Exception as e:
            logger.warning("question_parsing_failed", error=str(e))

        return QueryIntent(query_type="list")

    def _resolve_time_reference(
        self,
        time_ref: Optional[str],
        today: Optional[date] = None,
    ) -> tuple[Optional[date], Optional[date]]:
        """
        Convert natural language time reference to date range.

        This is DETERMINISTIC - no LLM involvement.
        """
        if not time_ref:
            return None, None

        time_ref = time_ref.lower().strip()
        today = today or date.today()

        if time_ref == "today":
            return today, today

        if time_ref == "yesterday":
            yesterday = today - timedelta(days=1)
            return yesterday, yesterday

        if time_ref in ["this week", "current week"]:
            start = today - timedelta(days=today.weekday())
            return start, start + timedelta(days=6)

        if time_ref in ["last week", "previous week"]:
            start = today - timedelta(days=today.weekday() + 7)
            return start, start + timedelta(days=6)

        if time_ref in ["this month", "current month"]:
            return self._month_range(today.year, today.month)

        if time_ref in ["last month", "previous month"]:
            last = today - relativedelta(months=1)
            return self._month_range(last.year, last.month)

        if time_ref in ["this year", "current year"]:
            return date(today.year, 1, 1), date(today.year, 12, 31)

        if time_ref in ["last year", "previous year"]:
            return date(today.year - 1, 1, 1), date(today.year - 1, 12, 31)

        recent = re.match(r"(?:last|past) (\d+) (day|week|month)s?", time_ref)
        if recent:
            count, unit = int(recent.group(1)), recent.group(2)
            if unit == "day":
                return today - timedelta(days=count), today
            if unit == "week":
                return today - timedelta(weeks=count), today
            return today - relativedelta(months=count), today

        year_match = re.search(r"20\d{2}", time_ref)

        for month_name, month_num in MONTH_NAMES.items():
            if month_name in time_ref:
                if year_match:
                    year = int(year_match.group())
                else:
                    # A month later than the current one must be last year's
                    year = today.year if month_num <= today.month else today.year - 1
                return self._month_range(year, month_num)

        if year_match:
            year = int(year_match.group())
            return date(year, 1, 1), date(year, 12, 31)

        return None, None

    @staticmethod
    def _month_range(year: int, month: int) -> tuple[date, date]:
        return date(year, month, 1), date(year, month, calendar.monthrange(year, month)[1])

    def intent_to_query(
        self,
        intent: QueryIntent,
        original_question: str,
    ) -> StructuredQuery:
        """
        Convert parsed intent to executable structured query.

        This is DETERMINISTIC - maps intent fields to query parameters.
        """
        date_from, date_to = self._resolve_time_reference(intent.time_reference)

        query_type = intent.query_type.lower().strip()
        if query_type not in {"lookup", "aggregate", "compare", "list", "exists"}:
            query_type = "list"

        type_filter = None
        if intent.transaction_type:
            type_lower = intent.transaction_type.lower()
            if type_lower in ["income", "earning", "earnings"]:
                type_filter = TransactionType.INCOME
            elif type_lower in ["expense", "expenses", "spending", "spend"]:
                type_filter = TransactionType.EXPENSE

        agg_type = None
        if intent.aggregation:
            agg_lower = intent.aggregation.lower()
            if agg_lower in ["sum", "total"]:
                agg_type = "sum"
            elif agg_lower in ["count", "number"]:
                agg_type = "count"
            elif agg_lower in ["average", "avg", "mean"]:
                agg_type = "average"
            elif agg_lower in ["min", "minimum", "lowest"]:
                agg_type = "min"
            elif agg_lower in ["max", "maximum", "highest"]:
                agg_type = "max"

        group = None
        if intent.group_by:
            group_lower = intent.group_by.lower()
            if group_lower in ["category", "type"]:
                group = "category"
            elif group_lower in ["wallet", "bank", "account"]:
                group = "wallet"
            elif group_lower == "month":
                group = "month"
            elif group_lower == "year":
                group = "year"

        return StructuredQuery(
            original_question=original_question,
            query_type=query_type,
            type_filter=type_filter,
            category_filter=intent.category,
            wallet_filter=intent.wallet,
            description_filter=intent.description,
            date_from=date_from,
            date_to=date_to,
            aggregation_type=agg_type,
            group_by=group,
        )

    def _format_value(self, key: str, value: Any) -> str:
        if isinstance(value, (float, Decimal)) and "amount" in key.lower():
            return f"{key}: {format_currency(Decimal(str(value)), self._currency_symbol)}"
        return f"{key}: {value}"

    def _summarize_data(self, result: QueryResult) -> str:
        data_summary = []

        if result.aggregation_result:
            for key, value in result.aggregation_result.items():
                if isinstance(value, dict):
                    data_summary.append(f"{key}:")
                    for group, amount in value.items():
                        data_summary.append("  " + self._format_value(f"{group} amount", amount))
                else:
                    data_summary.append(self._format_value(key, value))

        for item in result.results[:5]:
            parts = []
            if "date" in item:
                parts.append(str(item["date"]))
            if "description" in item:
                parts.append(item["description"])
            if "amount" in item:
                parts.append(format_currency(Decimal(str(item["amount"])), self._currency_symbol))
            if "category" in item:
                parts.append(item["category"])
            if "answer" in item:
                parts.append(f"answer: {item['answer']}")
            if parts:
                data_summary.append(" | ".join(parts))

        return "\n".join(data_summary) or "No details available"

    async def generate_response(
        self,
        query: StructuredQuery,
        result: QueryResult,
    ) -> NaturalLanguageResponse:
        """
        Generate a natural language response from query results.

        CRITICAL: The LLM can ONLY use the data provided.
        It CANNOT invent or supplement with its own knowledge.
        """
        if not result.success:
            return NaturalLanguageResponse(
                response="Sorry, I couldn't look that up right now. Please try again.",
                confidence=1.0,
                data_used=False,
            )

        if not result.data_found:
            return NaturalLanguageResponse(
                response=(
                    "I don't have any records matching your question. "
                    f"({result.query_description})"
                ),
                confidence=1.0,
                data_used=False,
            )

        data_str = self._summarize_data(result)

        prompt = f"""You are answering a question about personal finances using ONLY the data provided.

Original question: "{query.original_question}"

Query performed: {result.query_description}

Results found: {result.result_count}

Data:
{data_str}

Generate a natural, helpful response.
- Use simple language
- Format amounts with the currency symbol "{self._currency_symbol}"
- If asked yes/no, answer clearly first
- Keep it concise

IMPORTANT: Use ONLY the data above. Do NOT add any information not in the data.
If the data doesn't fully answer the question, say what you can and acknowledge the limitation."""

        try:
            response = await self._get_model().generate_content_async(prompt)
            return NaturalLanguageResponse(
                response=response.text.strip(),
                confidence=0.9,
                data_used=True,
            )
        except Exception as e:
            logger.warning("response_generation_failed", error=str(e))
            if result.aggregation_result:
                return NaturalLanguageResponse(
                    response=f"Based on your records:\n{data_str}",
                    confidence=0.7,
                    data_used=True,
                )
            return NaturalLanguageResponse(
                response=f"Found {result.result_count} matching transactions.",
                confidence=0.6,
                data_used=True,
            )


RECOMMENDATION_ERROR = (
    "Sorry, I couldn't generate recommendations at this time. Please try again later."
)
RECOMMENDATION_COUNT = 5


class RecommendationError(Exception):
    """The model could not produce usable recommendations."""

    def __init__(self, message: str = RECOMMENDATION_ERROR):
        super().__init__(message)


def parse_json_array(text: str) -> Optional[list]:
    """The outermost [...] of a model response, ignoring code fences, or None."""
    text = re.sub(r"```(?:json)?", "", text)
    start = text.find("[")
    end = text.rfind("]") + 1
    if start < 0 or end <= start:
        return None
    try:
        data = json.loads(text[start:end])
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, list) else None


class RecommendationAgent:
    """
    Turns a summary of the user's recent finances into advice.

    The summary is built from stored data only; the model decides what to
    suggest, not what the numbers are.
    """

    def __init__(
        self,
        model: Optional[Any] = None,
        gemini_settings: Optional[GeminiSettings] = None,
        currency_symbol: str = "Rp",
    ):
        self._model = model
        self._settings = gemini_settings
        self._currency_symbol = currency_symbol

    def _get_model(self):
        if self._model is None:
            self._model = build_model(self._settings, max_output_tokens=2048)
        return self._model

    async def recommend(
        self,
        summary: str,
        count: int = RECOMMENDATION_COUNT,
    ) -> list[Recommendation]:
        """
        Ask the model for `count` recommendations.

        Items that do not fit the Recommendation model are dropped; an
        unusable response raises RecommendationError.
        """
        prompt = f"""You are a personal finance advisor. Based on the user's financial data below,
give {count} specific, actionable recommendations.

{summary}

All amounts are in {self._currency_symbol}.

Respond with ONLY a JSON array. Each element must have these fields:
- type: one of [saving, investment, budget, goal, warning]
- title: short title
- description: one or two sentences
- impact: one of [high, medium, low]
- priority: 1 (most urgent) to 5
- potential_saving: estimated monthly saving as a number, or null
- timeframe: e.g. "1 week", "1 month", "3 months"
- action_items: list of 2 to 4 concrete steps"""

        try:
            response = await self._get_model().generate_content_async(prompt)
            items = parse_json_array(response.text)
        except Exception as e:
            logger.warning("recommendation_generation_failed", error=str(e))
            raise RecommendationError() from e
        if not items:
            logger.warning("recommendation_response_unusable")
            raise RecommendationError()

        recommendations = []
        for item in items[:count]:
            try:
                recommendations.append(Recommendation.model_validate(item))
            except ValidationError as e:
                logger.warning("recommendation_skipped", error=str(e))
        if not recommendations:
            raise RecommendationError()
        return recommendations
