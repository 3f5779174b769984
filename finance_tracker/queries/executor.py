"""
Query Execution Engine

DESIGN DECISION: Query execution is DETERMINISTIC.
The LLM converts natural language to StructuredQuery.
This engine executes that query on the user's actual transactions.
The LLM then formats the response.

At no point does the LLM have direct access to answer questions.
It can only see what this engine returns from storage.
"""

from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Optional

from finance_tracker.analytics import month_key
from finance_tracker.analytics.aggregation import UNCATEGORIZED_NAME, UNKNOWN_NAME
from finance_tracker.models.finance import TransactionFilter, TransactionWithDetails
from finance_tracker.models.query import QueryResult, StructuredQuery
from finance_tracker.services.transaction_service import TransactionService


DEFAULT_COMPARE_GROUP = "month"


class QueryExecutionError(Exception):
    """Error during query execution."""
    pass


def aggregate(amounts: list[Decimal], aggregation_type: Optional[str]) -> Decimal | int:
    """Apply one aggregation to a non-empty list of amounts (sum by default)."""
    if aggregation_type == "count":
        return len(amounts)
    if aggregation_type == "average":
        return sum(amounts, Decimal("0")) / len(amounts)
    if aggregation_type == "min":
        return min(amounts)
    if aggregation_type == "max":
        return max(amounts)
    return sum(amounts, Decimal("0"))


def group_key(transaction: TransactionWithDetails, group_by: str) -> str:
    if group_by == "category":
        return transaction.category.name if transaction.category else UNCATEGORIZED_NAME
    if group_by == "wallet":
        return transaction.wallet.name if transaction.wallet else UNKNOWN_NAME
    if group_by == "month":
        return month_key(transaction.date)
    if group_by == "year":
        return str(transaction.date.year)
    return "other"


def date_range_str(date_from: Optional[date], date_to: Optional[date]) -> str:
    """Format a date range for a query description."""
    if date_from and date_to:
        if date_from == date_to:
            return f"on {date_from.strftime('%d %b %Y')}"
        elif date_from.month == date_to.month and date_from.year == date_to.year:
            return f"in {date_from.strftime('%B %Y')}"
        elif date_from.year == date_to.year:
            return f"from {date_from.strftime('%b')} to {date_to.strftime('%b %Y')}"
        else:
            return f"from {date_from.strftime('%b %Y')} to {date_to.strftime('%b %Y')}"
    elif date_from:
        return f"from {date_from.strftime('%d %b %Y')}"
    elif date_to:
        return f"until {date_to.strftime('%d %b %Y')}"
    return ""


class QueryExecutor:
    """
    Executes structured queries against the user's transactions.

    GUARANTEES:
    - Only returns real data from storage
    - Never invents or estimates
    - Clear "no data found" if nothing matches
    """

    def __init__(self, transaction_service: TransactionService):
        self._transactions = transaction_service

    async def execute(self, query: StructuredQuery) -> QueryResult:
        """
        Execute a structured query and return results.

        Failures are reported in the result rather than raised, so the
        Ask-AI page can always show an answer.
        """
        handlers = {
            "lookup": self._execute_lookup,
            "list": self._execute_list,
            "aggregate": self._execute_aggregate,
            "exists": self._execute_exists,
            "compare": self._execute_compare,
        }
        handler = handlers.get(query.query_type, self._execute_list)
        try:
            return await handler(query)
        except Exception as e:
            return QueryResult(
                query_id=query.query_id,
                success=False,
                error_message=str(e),
                data_found=False,
                result_count=0,
                query_description=f"Query failed: {e}",
            )

    async def _fetch(self, query: StructuredQuery) -> list[TransactionWithDetails]:
        """Matching transactions, newest first."""
        transactions = await self._transactions.get_transactions_filtered(
            TransactionFilter(
                type=query.type_filter,
                date_from=query.date_from,
                date_to=query.date_to,
            )
        )

        if query.category_filter:
            wanted = query.category_filter.strip().lower()
            transactions = [
                t for t in transactions
                if t.category and wanted in t.category.name.lower()
            ]
        if query.wallet_filter:
            wanted = query.wallet_filter.strip().lower()
            transactions = [
                t for t in transactions
                if t.wallet and wanted in t.wallet.name.lower()
            ]
        if query.description_filter:
            wanted = query.description_filter.strip().lower()
            transactions = [t for t in transactions if wanted in t.description.lower()]
        return transactions

    def _describe_filters(self, query: StructuredQuery) -> list[str]:
        parts = []
        if query.type_filter:
            parts.append(f"type: {query.type_filter.value}")
        if query.category_filter:
            parts.append(f"category: {query.category_filter}")
        if query.wallet_filter:
            parts.append(f"wallet: {query.wallet_filter}")
        if query.description_filter:
            parts.append(f"matching: {query.description_filter}")
        if query.date_from or query.date_to:
            parts.append(date_range_str(query.date_from, query.date_to))
        return parts

    async def _execute_lookup(self, query: StructuredQuery) -> QueryResult:
        return await self._listing(query, "Looking for transactions")

    async def _execute_list(self, query: StructuredQuery) -> QueryResult:
        return await self._listing(query, "Listing transactions")

    async def _listing(self, query: StructuredQuery, heading: str) -> QueryResult:
        transactions = (await self._fetch(query))[:query.limit]
        results = [self._transaction_to_dict(t) for t in transactions]
        return QueryResult(
            query_id=query.query_id,
            success=True,
            data_found=len(results) > 0,
            result_count=len(results),
            results=results,
            query_description=" | ".join([heading] + self._describe_filters(query)),
        )

    async def _execute_aggregate(
        self,
        query: StructuredQuery,
        group_by: Optional[str] = None,
    ) -> QueryResult:
        """Execute an aggregate query (sum, count, average, min, max)."""
        transactions = await self._fetch(query)
        if not transactions:
            return QueryResult(
                query_id=query.query_id,
                success=True,
                data_found=False,
                result_count=0,
                query_description="No transactions found for aggregation",
            )

        amounts = [t.amount for t in transactions]
        aggregation_type = query.aggregation_type or "sum"
        value = aggregate(amounts, aggregation_type)

        aggregation_result: dict = {"transaction_count": len(amounts)}
        if aggregation_type == "count":
            aggregation_result["count"] = value
        else:
            aggregation_result[f"{aggregation_type}_amount"] = float(value)

        group_by = group_by or query.group_by
        if group_by:
            groups: dict[str, list[Decimal]] = defaultdict(list)
            for t in transactions:
                groups[group_key(t, group_by)].append(t.amount)
            breakdown = {}
            for key in sorted(groups):
                grouped = aggregate(groups[key], aggregation_type)
                breakdown[key] = grouped if aggregation_type == "count" else float(grouped)
            aggregation_result["breakdown"] = breakdown

        desc_parts = [f"Calculating {aggregation_type}"] + self._describe_filters(query)
        if group_by:
            desc_parts.append(f"grouped by {group_by}")

        return QueryResult(
            query_id=query.query_id,
            success=True,
            data_found=True,
            result_count=len(transactions),
            aggregation_result=aggregation_result,
            query_description=" ".join(desc_parts),
        )

    async def _execute_exists(self, query: StructuredQuery) -> QueryResult:
        """Execute an exists query (yes/no check)."""
        transactions = await self._fetch(query)
        exists = len(transactions) > 0

        result_data = [{"exists": exists, "answer": "yes" if exists else "no"}]
        if exists:
            result_data.append(self._transaction_to_dict(transactions[0]))

        return QueryResult(
            query_id=query.query_id,
            success=True,
            data_found=exists,
            result_count=1 if exists else 0,
            results=result_data,
            query_description=" ".join(
                ["Checking for transactions"] + self._describe_filters(query)
            ),
        )

    async def _execute_compare(self, query: StructuredQuery) -> QueryResult:
        """Aggregate with a breakdown; by month unless another grouping is given."""
        return await self._execute_aggregate(
            query,
            group_by=query.group_by or DEFAULT_COMPARE_GROUP,
        )

    def _transaction_to_dict(self, transaction: TransactionWithDetails) -> dict:
        return {
            "id": str(transaction.id),
            "description": transaction.description,
            "type": transaction.type.value,
            "amount": float(transaction.amount),
            "date": transaction.date.isoformat(),
            "category": transaction.category.name if transaction.category else UNCATEGORIZED_NAME,
            "wallet": transaction.wallet.name if transaction.wallet else UNKNOWN_NAME,
        }
