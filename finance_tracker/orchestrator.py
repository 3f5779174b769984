"""
Main Orchestrator for the Finance Tracker

This module ties together all the components and defines the
end-to-end flows for:
1. Receipt scanning (image -> check -> Gemini -> validate -> review -> save)
2. Ask AI (question -> parse -> execute -> respond), with saved conversations

It also builds every storage backend and service for the app.

DESIGN DECISION: The orchestrator enforces the boundaries:
- No scanned receipt becomes a transaction without human confirmation
- No question is answered without a data lookup
- Every step is audited
"""

from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

import structlog

from finance_tracker.agents import (
    CategorySuggestion,
    QueryAgent,
    ReceiptAgent,
    RecommendationAgent,
)
from finance_tracker.audit import AuditLogger, create_correlation_id
from finance_tracker.config import get_settings
from finance_tracker.models.assistant import ChatMessageType
from finance_tracker.models.finance import Category, Transaction, TransactionType
from finance_tracker.models.query import QueryResult, StructuredQuery
from finance_tracker.models.receipt import ExtractedReceipt, ReceiptUpload, ValidationResult
from finance_tracker.queries import QueryExecutor
from finance_tracker.services.asset_service import AssetService
from finance_tracker.services.budget_service import BudgetService
from finance_tracker.services.category_service import CategoryService
from finance_tracker.services.chat_service import ChatService
from finance_tracker.services.dashboard_service import DashboardService
from finance_tracker.services.goal_loan_service import GoalLoanService
from finance_tracker.services.receipt import ReceiptAnalysisError, ReceiptAnalyzer
from finance_tracker.services.recommendation_service import RecommendationService
from finance_tracker.services.report_service import ReportService
from finance_tracker.services.storage import (
    GoogleSheetsAssetStorage,
    GoogleSheetsAuditStorage,
    GoogleSheetsBudgetStorage,
    GoogleSheetsCategoryStorage,
    GoogleSheetsChatStorage,
    GoogleSheetsClient,
    GoogleSheetsGoalLoanStorage,
    GoogleSheetsTransactionStorage,
    GoogleSheetsWalletStorage,
    InMemoryAssetStorage,
    InMemoryAuditStorage,
    InMemoryBudgetStorage,
    InMemoryCategoryStorage,
    InMemoryChatStorage,
    InMemoryGoalLoanStorage,
    InMemoryTransactionStorage,
    InMemoryWalletStorage,
)
from finance_tracker.services.transaction_service import TransactionService
from finance_tracker.services.wallet_service import WalletService
from finance_tracker.validation import ReceiptValidator


logger = structlog.get_logger(__name__)


class ReceiptScanFlow:
    """
    Orchestrates the receipt scanning flow.

    Flow:
    1. Check   -> Type, size and decodability of the upload
    2. Analyze -> Gemini reads amount, description, date and type
    3. Validate -> Two-stage validation
    4. Review  -> Present to user (PAUSE - require confirmation)
    5. Confirm -> User picks wallet and category and approves
    6. Save    -> Recorded through TransactionService (balance included)

    Human confirmation (step 5) is MANDATORY.
    The system NEVER auto-saves.
    """

    def __init__(
        self,
        analyzer: ReceiptAnalyzer,
        validator: ReceiptValidator,
        receipt_agent: ReceiptAgent,
        transaction_service: TransactionService,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._analyzer = analyzer
        self._validator = validator
        self._receipt_agent = receipt_agent
        self._transactions = transaction_service
        self._audit_logger = audit_logger or AuditLogger()

    @property
    def user_id(self) -> Optional[UUID]:
        return self._transactions.user_id

    async def analyze(
        self,
        image_bytes: bytes,
        filename: str,
        mime_type: str,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[ReceiptUpload, ExtractedReceipt, ValidationResult, str]:
        """
        Check, analyze and validate an uploaded receipt.

        Returns:
            (upload, extracted, validation_result, user_message)

        Raises:
            InvalidReceiptImageError: The upload cannot be analyzed
            ReceiptAnalysisError: Gemini failed; the user can enter manually
        """
        correlation_id = correlation_id or create_correlation_id()

        upload = self._analyzer.check_upload(image_bytes, filename, mime_type)
        await self._audit_logger.log_receipt_uploaded(
            upload_id=upload.upload_id,
            filename=filename,
            file_size=upload.file_size_bytes,
            correlation_id=correlation_id,
            user_id=self.user_id,
        )

        try:
            extracted = await self._analyzer.analyze_receipt(image_bytes, upload.mime_type)
        except ReceiptAnalysisError as e:
            await self._audit_logger.log_external_service_error(
                service="gemini",
                error_message=str(e.__cause__ or e),
                correlation_id=correlation_id,
            )
            raise

        await self._audit_logger.log_receipt_analyzed(
            extraction_id=extracted.extraction_id,
            amount=str(extracted.amount) if extracted.amount is not None else None,
            correlation_id=correlation_id,
            user_id=self.user_id,
        )

        result, message = await self.validate_extraction(extracted, correlation_id)
        return upload, extracted, result, message

    async def validate_extraction(
        self,
        extracted: ExtractedReceipt,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[ValidationResult, str]:
        correlation_id = correlation_id or create_correlation_id()

        result = await self._validator.validate(extracted)
        message = self._validator.get_user_friendly_summary(result)

        if not result.is_valid:
            issues = [
                {"field": i.field, "type": i.issue_type, "message": i.message}
                for i in result.issues
            ]
            stage = "schema" if not result.schema_valid else "semantic"
            await self._audit_logger.log_validation_failed(
                extraction_id=extracted.extraction_id,
                stage=stage,
                issues=issues,
                correlation_id=correlation_id,
                user_id=self.user_id,
            )

        return result, message

    async def suggest_category(
        self,
        extracted: ExtractedReceipt,
        categories: list[Category],
    ) -> Optional[CategorySuggestion]:
        return await self._receipt_agent.suggest_category(extracted, categories)

    async def confirm_and_save(
        self,
        extracted: ExtractedReceipt,
        wallet_id: UUID,
        category_id: UUID,
        amount: Decimal,
        description: str,
        transaction_date: date,
        transaction_type: TransactionType,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Record the reviewed receipt as a transaction.

        CRITICAL: This is called ONLY after explicit user confirmation.
        The arguments are the values the user reviewed (and may have edited).
        """
        correlation_id = correlation_id or create_correlation_id()

        transaction = await self._transactions.create_transaction(
            wallet_id=wallet_id,
            category_id=category_id,
            amount=amount,
            transaction_type=transaction_type,
            description=description,
            transaction_date=transaction_date,
            correlation_id=correlation_id,
        )

        await self._audit_logger.log_receipt_confirmed(
            transaction_id=transaction.id,
            extraction_id=extracted.extraction_id,
            correlation_id=correlation_id,
            user_id=self.user_id,
        )
        return transaction

    async def reject(
        self,
        extracted: ExtractedReceipt,
        reason: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Record that the user discarded the scan after reviewing it."""
        await self._audit_logger.log_receipt_rejected(
            extraction_id=extracted.extraction_id,
            reason=reason,
            correlation_id=correlation_id or create_correlation_id(),
            user_id=self.user_id,
        )


class QueryFlow:
    """
    Orchestrates the Ask-AI flow.

    CRITICAL BOUNDARIES:
    1. User question -> LLM parses intent
    2. Intent -> StructuredQuery (deterministic)
    3. Query -> Execute on transactions (deterministic)
    4. Results -> LLM generates response

    The LLM is NEVER allowed to answer directly.

    With a chat service, a question asked in a session is stored together
    with its answer.
    """

    def __init__(
        self,
        query_agent: QueryAgent,
        query_executor: QueryExecutor,
        audit_logger: Optional[AuditLogger] = None,
        user_id: Optional[UUID] = None,
        chat_service: Optional[ChatService] = None,
    ):
        self._query_agent = query_agent
        self._query_executor = query_executor
        self._audit_logger = audit_logger or AuditLogger()
        self._user_id = user_id
        self._chat = chat_service

    async def answer_question(
        self,
        question: str,
        correlation_id: Optional[UUID] = None,
        session_id: Optional[UUID] = None,
    ) -> tuple[str, QueryResult, StructuredQuery]:
        """
        Answer a user's question from their own transactions.

        When `session_id` is given the question and the answer are appended
        to that conversation.

        Returns:
            (answer, query_result, structured_query)
        """
        correlation_id = correlation_id or create_correlation_id()
        saving = self._chat is not None and session_id is not None
        if saving:
            await self._chat.save_message(session_id, ChatMessageType.USER, question)

        intent = await self._query_agent.parse_question(question)
        query = self._query_agent.intent_to_query(intent, question)
        result = await self._query_executor.execute(query)

        await self._audit_logger.log_query_executed(
            query_id=query.query_id,
            query_type=query.query_type,
            result_count=result.result_count,
            correlation_id=correlation_id,
            user_id=self._user_id,
        )

        response = await self._query_agent.generate_response(query, result)
        if saving:
            await self._chat.save_message(session_id, ChatMessageType.AI, response.response)
        return response.response, result, query


class AppComponents:
    """Every service and flow the app uses, wired to one storage backend."""

    def __init__(
        self,
        wallets: WalletService,
        categories: CategoryService,
        transactions: TransactionService,
        budgets: BudgetService,
        reports: ReportService,
        dashboard: DashboardService,
        goals_loans: GoalLoanService,
        assets: AssetService,
        chat: ChatService,
        recommendations: RecommendationService,
        receipt_flow: ReceiptScanFlow,
        query_flow: QueryFlow,
        audit_logger: AuditLogger,
        sheets_client: Optional[GoogleSheetsClient] = None,
    ):
        self.wallets = wallets
        self.categories = categories
        self.transactions = transactions
        self.budgets = budgets
        self.reports = reports
        self.dashboard = dashboard
        self.goals_loans = goals_loans
        self.assets = assets
        self.chat = chat
        self.recommendations = recommendations
        self.receipt_flow = receipt_flow
        self.query_flow = query_flow
        self.audit_logger = audit_logger
        self.sheets_client = sheets_client

    @property
    def storage_connected(self) -> bool:
        return self.sheets_client is not None


def _sheets_storages(client: GoogleSheetsClient) -> dict:
    return {
        "wallet": GoogleSheetsWalletStorage(client),
        "category": GoogleSheetsCategoryStorage(client),
        "transaction": GoogleSheetsTransactionStorage(client),
        "budget": GoogleSheetsBudgetStorage(client),
        "goal_loan": GoogleSheetsGoalLoanStorage(client),
        "asset": GoogleSheetsAssetStorage(client),
        "chat": GoogleSheetsChatStorage(client),
        "audit": GoogleSheetsAuditStorage(client),
    }


def _memory_storages() -> dict:
    return {
        "wallet": InMemoryWalletStorage(),
        "category": InMemoryCategoryStorage(),
        "transaction": InMemoryTransactionStorage(),
        "budget": InMemoryBudgetStorage(),
        "goal_loan": InMemoryGoalLoanStorage(),
        "asset": InMemoryAssetStorage(),
        "chat": InMemoryChatStorage(),
        "audit": InMemoryAuditStorage(),
    }


def create_app_components(
    user_id: Optional[UUID] = None,
    use_storage: bool = True,
    receipt_model=None,
    query_model=None,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        user_id: The signed-in user (defaults to AppSettings.user_id)
        use_storage: Whether to connect to Google Sheets. When False, or
                    when the connection fails, in-memory storage is used.
        receipt_model: Generative model for receipts and category
                    suggestions (Gemini from settings when None)
        query_model: Generative model for Ask AI and recommendations
                    (Gemini from settings when None)
    """
    app_settings = get_settings().app
    user_id = user_id or app_settings.user_id

    sheets_client = None
    storages = None
    if use_storage:
        try:
            sheets_client = GoogleSheetsClient()
            sheets_client.get_spreadsheet()
            storages = _sheets_storages(sheets_client)
        except Exception as e:
            # Storage not configured - continue with in-memory storage
            logger.warning("storage_not_configured", error=str(e))
            sheets_client = None
    if storages is None:
        storages = _memory_storages()

    audit_logger = AuditLogger(storages["audit"])

    wallets = WalletService(storages["wallet"], user_id, audit_logger)
    categories = CategoryService(
        storages["category"], storages["transaction"], user_id, audit_logger
    )
    transactions = TransactionService(
        storages["transaction"], wallets, categories, user_id, audit_logger
    )
    budgets = BudgetService(
        storages["budget"],
        storages["transaction"],
        categories,
        user_id,
        audit_logger,
        warning_ratio=app_settings.budget_warning_ratio,
    )
    reports = ReportService(
        transactions, budgets, user_id, audit_logger, app_settings=app_settings
    )
    dashboard = DashboardService(
        wallets,
        transactions,
        budgets,
        user_id,
        audit_logger,
        trend_months=app_settings.dashboard_trend_months,
    )
    goals_loans = GoalLoanService(storages["goal_loan"], wallets, user_id, audit_logger)
    assets = AssetService(storages["asset"], user_id, audit_logger)
    chat = ChatService(storages["chat"], user_id, audit_logger)
    recommendations = RecommendationService(
        agent=RecommendationAgent(model=query_model, currency_symbol=app_settings.currency_symbol),
        wallet_service=wallets,
        transaction_service=transactions,
        budget_service=budgets,
        goal_loan_service=goals_loans,
        user_id=user_id,
        audit_logger=audit_logger,
        currency_symbol=app_settings.currency_symbol,
    )

    receipt_flow = ReceiptScanFlow(
        analyzer=ReceiptAnalyzer(model=receipt_model, app_settings=app_settings),
        validator=ReceiptValidator(storages["transaction"], user_id, app_settings),
        receipt_agent=ReceiptAgent(model=receipt_model),
        transaction_service=transactions,
        audit_logger=audit_logger,
    )
    query_flow = QueryFlow(
        query_agent=QueryAgent(model=query_model, currency_symbol=app_settings.currency_symbol),
        query_executor=QueryExecutor(transactions),
        audit_logger=audit_logger,
        user_id=user_id,
        chat_service=chat,
    )

    return AppComponents(
        wallets=wallets,
        categories=categories,
        transactions=transactions,
        budgets=budgets,
        reports=reports,
        dashboard=dashboard,
        goals_loans=goals_loans,
        assets=assets,
        chat=chat,
        recommendations=recommendations,
        receipt_flow=receipt_flow,
        query_flow=query_flow,
        audit_logger=audit_logger,
        sheets_client=sheets_client,
    )
