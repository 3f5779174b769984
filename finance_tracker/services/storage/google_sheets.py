"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the managed storage backend because:
1. Users can view their own data directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions (the service layer compensates failed multi-step writes)
- Limited query capabilities (we read the whole sheet and filter in Python)

Every table is one worksheet whose header row is the model's field names.
Rows are written RAW so numbers, dates and UUIDs round-trip as text.
"""

import json
from datetime import datetime
from typing import Generic, Optional, TypeVar
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from pydantic import BaseModel
from tenacity import retry, stop_after_attempt, wait_exponential

from finance_tracker.config import get_settings
from finance_tracker.models.assets import Asset, AssetCategory
from finance_tracker.models.assistant import ChatMessage
from finance_tracker.models.audit import AuditEvent, AuditEventType, AuditSeverity
from finance_tracker.models.finance import (
    Budget,
    Category,
    CategoryType,
    Transaction,
    TransactionFilter,
    Wallet,
    sort_transactions,
    utcnow,
)
from finance_tracker.models.goals import (
    GoalLoan,
    GoalLoanPayment,
    GoalLoanStatus,
    GoalLoanType,
)
from finance_tracker.services.storage.interface import (
    AssetStorageInterface,
    AuditStorageInterface,
    BudgetStorageInterface,
    CategoryStorageInterface,
    ChatStorageInterface,
    ConnectionError,
    DuplicateError,
    GoalLoanStorageInterface,
    NotFoundError,
    StorageError,
    TransactionStorageInterface,
    WalletStorageInterface,
)

logger = structlog.get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "user_id",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._worksheets: dict[str, gspread.Worksheet] = {}
        self._settings = get_settings().google_sheets

    @property
    def settings(self):
        return self._settings

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_worksheet(self, title: str, columns: list[str], rows: int = 1000) -> gspread.Worksheet:
        """Get a worksheet by title, creating it with a header row if missing."""
        if title in self._worksheets:
            return self._worksheets[title]

        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
            logger.info("worksheet_created", title=title, columns=len(columns))

        self._worksheets[title] = sheet
        return sheet


def model_to_row(model: BaseModel, columns: list[str]) -> list[str]:
    """Serialize a model to a row of strings in column order."""
    data = model.model_dump(mode="json")
    row = []
    for column in columns:
        value = data.get(column)
        if value is None:
            row.append("")
        elif isinstance(value, bool):
            row.append("true" if value else "false")
        else:
            row.append(str(value))
    return row


def row_to_model(row: list[str], columns: list[str], model_cls: type[ModelT]) -> ModelT:
    """
    Parse a sheet row back into a model.

    Empty cells are omitted so model defaults apply.
    """
    data = {
        column: value
        for column, value in zip(columns, row)
        if value != ""
    }
    return model_cls.model_validate(data)


class SheetTable(Generic[ModelT]):
    """
    One worksheet holding one model type, keyed by its `id` column.

    Reads always fetch the whole sheet; malformed rows are skipped and logged.
    """

    def __init__(self, client: GoogleSheetsClient, title: str, model_cls: type[ModelT]):
        self._client = client
        self._title = title
        self._model_cls = model_cls
        self.columns = list(model_cls.model_fields)

    def _sheet(self) -> gspread.Worksheet:
        return self._client.get_worksheet(self._title, self.columns)

    def _rows(self) -> list[list[str]]:
        return self._sheet().get_all_values()[1:]

    def read_all(self) -> list[ModelT]:
        items = []
        for row in self._rows():
            if not row or not row[0]:
                continue
            try:
                items.append(row_to_model(row, self.columns, self._model_cls))
            except ValueError as e:
                logger.warning(
                    "malformed_row_skipped",
                    sheet=self._title,
                    row_id=row[0],
                    error=str(e),
                )
        return items

    def find(self, item_id: UUID) -> Optional[ModelT]:
        for row in self._rows():
            if row and row[0] == str(item_id):
                return row_to_model(row, self.columns, self._model_cls)
        return None

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def append(self, item: ModelT) -> None:
        self._sheet().append_row(
            model_to_row(item, self.columns),
            value_input_option="RAW",
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def append_many(self, items: list[ModelT]) -> None:
        if items:
            self._sheet().append_rows(
                [model_to_row(item, self.columns) for item in items],
                value_input_option="RAW",
            )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def replace(self, item_id: UUID, item: ModelT) -> bool:
        """Overwrite the row for item_id. Returns False when there is none."""
        sheet = self._sheet()
        # Row 1 is the header
        for idx, row in enumerate(sheet.get_all_values()[1:], start=2):
            if row and row[0] == str(item_id):
                sheet.update(
                    range_name=f"A{idx}",
                    values=[model_to_row(item, self.columns)],
                    value_input_option="RAW",
                )
                return True
        return False

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def remove(self, item_id: UUID) -> bool:
        sheet = self._sheet()
        for idx, row in enumerate(sheet.get_all_values()[1:], start=2):
            if row and row[0] == str(item_id):
                sheet.delete_rows(idx)
                return True
        return False


class GoogleSheetsWalletStorage(WalletStorageInterface):
    """Google Sheets implementation of wallet storage."""

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        client = client or GoogleSheetsClient()
        self._table = SheetTable(client, client.settings.wallets_sheet_name, Wallet)

    async def save_wallet(self, wallet: Wallet) -> Wallet:
        try:
            self._table.append(wallet)
            return wallet
        except Exception as e:
            raise StorageError(f"Failed to save wallet: {e}")

    async def get_wallet(self, user_id: UUID, wallet_id: UUID) -> Optional[Wallet]:
        try:
            wallet = self._table.find(wallet_id)
        except Exception as e:
            raise StorageError(f"Failed to get wallet: {e}")
        if wallet is None or wallet.user_id != user_id:
            return None
        return wallet

    async def update_wallet(self, wallet: Wallet) -> Wallet:
        try:
            wallet.updated_at = utcnow()
            if not self._table.replace(wallet.id, wallet):
                raise NotFoundError(f"Wallet not found: {wallet.id}")
            return wallet
        except NotFoundError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update wallet: {e}")

    async def list_wallets(self, user_id: UUID, active_only: bool = True) -> list[Wallet]:
        try:
            wallets = [
                w for w in self._table.read_all()
                if w.user_id == user_id and (w.is_active or not active_only)
            ]
        except Exception as e:
            raise StorageError(f"Failed to list wallets: {e}")
        wallets.sort(key=lambda w: w.created_at, reverse=True)
        return wallets


class GoogleSheetsCategoryStorage(CategoryStorageInterface):
    """Google Sheets implementation of category storage."""

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        client = client or GoogleSheetsClient()
        self._table = SheetTable(client, client.settings.categories_sheet_name, Category)

    async def save_category(self, category: Category) -> Category:
        try:
            self._table.append(category)
            return category
        except Exception as e:
            raise StorageError(f"Failed to save category: {e}")

    async def save_categories(self, categories: list[Category]) -> list[Category]:
        try:
            self._table.append_many(categories)
            return categories
        except Exception as e:
            raise StorageError(f"Failed to save categories: {e}")

    async def get_category(self, user_id: UUID, category_id: UUID) -> Optional[Category]:
        try:
            category = self._table.find(category_id)
        except Exception as e:
            raise StorageError(f"Failed to get category: {e}")
        if category is None or category.user_id != user_id:
            return None
        return category

    async def update_category(self, category: Category) -> Category:
        try:
            category.updated_at = utcnow()
            if not self._table.replace(category.id, category):
                raise NotFoundError(f"Category not found: {category.id}")
            return category
        except NotFoundError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update category: {e}")

    async def list_categories(
        self,
        user_id: UUID,
        types: Optional[list[CategoryType]] = None,
        active_only: bool = True,
    ) -> list[Category]:
        try:
            categories = [
                c for c in self._table.read_all()
                if c.user_id == user_id
                and (c.is_active or not active_only)
                and (types is None or c.type in types)
            ]
        except Exception as e:
            raise StorageError(f"Failed to list categories: {e}")
        categories.sort(key=lambda c: c.name.lower())
        return categories


class GoogleSheetsTransactionStorage(TransactionStorageInterface):
    """
    Google Sheets implementation of transaction storage.

    Transactions are stored one per row; filtering and ordering happen
    in Python after reading the sheet.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        client = client or GoogleSheetsClient()
        self._table = SheetTable(client, client.settings.transactions_sheet_name, Transaction)

    async def save_transaction(self, transaction: Transaction) -> Transaction:
        try:
            self._table.append(transaction)
            return transaction
        except Exception as e:
            raise StorageError(f"Failed to save transaction: {e}")

    async def get_transaction(
        self,
        user_id: UUID,
        transaction_id: UUID,
    ) -> Optional[Transaction]:
        try:
            transaction = self._table.find(transaction_id)
        except Exception as e:
            raise StorageError(f"Failed to get transaction: {e}")
        if transaction is None or transaction.user_id != user_id:
            return None
        return transaction

    async def update_transaction(self, transaction: Transaction) -> Transaction:
        try:
            transaction.updated_at = utcnow()
            if not self._table.replace(transaction.id, transaction):
                raise NotFoundError(f"Transaction not found: {transaction.id}")
            return transaction
        except NotFoundError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update transaction: {e}")

    async def delete_transaction(self, user_id: UUID, transaction_id: UUID) -> bool:
        existing = await self.get_transaction(user_id, transaction_id)
        if existing is None:
            return False
        try:
            return self._table.remove(transaction_id)
        except Exception as e:
            raise StorageError(f"Failed to delete transaction: {e}")

    async def list_transactions(
        self,
        user_id: UUID,
        filters: Optional[TransactionFilter] = None,
    ) -> list[Transaction]:
        filters = filters or TransactionFilter()
        try:
            transactions = sort_transactions([
                t for t in self._table.read_all()
                if t.user_id == user_id and filters.matches(t)
            ])
        except Exception as e:
            raise StorageError(f"Failed to list transactions: {e}")
        if filters.limit:
            return transactions[:filters.limit]
        return transactions

    async def count_by_category(self, user_id: UUID, category_id: UUID) -> int:
        transactions = await self.list_transactions(
            user_id,
            TransactionFilter(category_id=category_id),
        )
        return len(transactions)


class GoogleSheetsBudgetStorage(BudgetStorageInterface):
    """Google Sheets implementation of budget storage."""

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        client = client or GoogleSheetsClient()
        self._table = SheetTable(client, client.settings.budgets_sheet_name, Budget)

    def _check_unique(self, budget: Budget) -> None:
        for other in self._table.read_all():
            if (
                other.id != budget.id
                and other.user_id == budget.user_id
                and other.category_id == budget.category_id
                and other.month == budget.month
            ):
                raise DuplicateError(
                    f"Budget already exists for category {budget.category_id} in {budget.month}"
                )

    async def save_budget(self, budget: Budget) -> Budget:
        try:
            self._check_unique(budget)
            self._table.append(budget)
            return budget
        except DuplicateError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save budget: {e}")

    async def get_budget(self, user_id: UUID, budget_id: UUID) -> Optional[Budget]:
        try:
            budget = self._table.find(budget_id)
        except Exception as e:
            raise StorageError(f"Failed to get budget: {e}")
        if budget is None or budget.user_id != user_id:
            return None
        return budget

    async def update_budget(self, budget: Budget) -> Budget:
        try:
            self._check_unique(budget)
            budget.updated_at = utcnow()
            if not self._table.replace(budget.id, budget):
                raise NotFoundError(f"Budget not found: {budget.id}")
            return budget
        except (NotFoundError, DuplicateError):
            raise
        except Exception as e:
            raise StorageError(f"Failed to update budget: {e}")

    async def delete_budget(self, user_id: UUID, budget_id: UUID) -> bool:
        existing = await self.get_budget(user_id, budget_id)
        if existing is None:
            return False
        try:
            return self._table.remove(budget_id)
        except Exception as e:
            raise StorageError(f"Failed to delete budget: {e}")

    async def list_budgets(
        self,
        user_id: UUID,
        month: Optional[str] = None,
    ) -> list[Budget]:
        try:
            budgets = [
                b for b in self._table.read_all()
                if b.user_id == user_id and (month is None or b.month == month)
            ]
        except Exception as e:
            raise StorageError(f"Failed to list budgets: {e}")
        budgets.sort(key=lambda b: b.created_at, reverse=True)
        return budgets


class GoogleSheetsGoalLoanStorage(GoalLoanStorageInterface):
    """Google Sheets implementation of goal/loan storage (two worksheets)."""

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        client = client or GoogleSheetsClient()
        self._items = SheetTable(client, client.settings.goals_loans_sheet_name, GoalLoan)
        self._payments = SheetTable(
            client,
            client.settings.goal_loan_payments_sheet_name,
            GoalLoanPayment,
        )

    async def save_goal_loan(self, item: GoalLoan) -> GoalLoan:
        try:
            self._items.append(item)
            return item
        except Exception as e:
            raise StorageError(f"Failed to save goal/loan: {e}")

    async def get_goal_loan(self, user_id: UUID, item_id: UUID) -> Optional[GoalLoan]:
        try:
            item = self._items.find(item_id)
        except Exception as e:
            raise StorageError(f"Failed to get goal/loan: {e}")
        if item is None or item.user_id != user_id:
            return None
        return item

    async def update_goal_loan(self, item: GoalLoan) -> GoalLoan:
        try:
            item.updated_at = utcnow()
            if not self._items.replace(item.id, item):
                raise NotFoundError(f"Goal/loan not found: {item.id}")
            return item
        except NotFoundError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update goal/loan: {e}")

    async def list_goal_loans(
        self,
        user_id: UUID,
        item_type: Optional[GoalLoanType] = None,
        status: Optional[GoalLoanStatus] = None,
        active_only: bool = True,
    ) -> list[GoalLoan]:
        try:
            items = [
                i for i in self._items.read_all()
                if i.user_id == user_id
                and (i.is_active or not active_only)
                and (item_type is None or i.type == item_type)
                and (status is None or i.status == status)
            ]
        except Exception as e:
            raise StorageError(f"Failed to list goals/loans: {e}")
        items.sort(key=lambda i: i.created_at, reverse=True)
        return items

    async def save_payment(self, payment: GoalLoanPayment) -> GoalLoanPayment:
        try:
            self._payments.append(payment)
            return payment
        except Exception as e:
            raise StorageError(f"Failed to save payment: {e}")

    async def list_payments(
        self,
        user_id: UUID,
        goal_loan_id: UUID,
    ) -> list[GoalLoanPayment]:
        try:
            payments = [
                p for p in self._payments.read_all()
                if p.user_id == user_id and p.goal_loan_id == goal_loan_id
            ]
        except Exception as e:
            raise StorageError(f"Failed to list payments: {e}")
        payments.sort(key=lambda p: (p.transaction_date, p.created_at), reverse=True)
        return payments


class GoogleSheetsAssetStorage(AssetStorageInterface):
    """Google Sheets implementation of asset storage."""

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        client = client or GoogleSheetsClient()
        self._table = SheetTable(client, client.settings.assets_sheet_name, Asset)

    async def save_asset(self, asset: Asset) -> Asset:
        try:
            self._table.append(asset)
            return asset
        except Exception as e:
            raise StorageError(f"Failed to save asset: {e}")

    async def get_asset(self, user_id: UUID, asset_id: UUID) -> Optional[Asset]:
        try:
            asset = self._table.find(asset_id)
        except Exception as e:
            raise StorageError(f"Failed to get asset: {e}")
        if asset is None or asset.user_id != user_id:
            return None
        return asset

    async def update_asset(self, asset: Asset) -> Asset:
        try:
            asset.updated_at = utcnow()
            if not self._table.replace(asset.id, asset):
                raise NotFoundError(f"Asset not found: {asset.id}")
            return asset
        except NotFoundError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update asset: {e}")

    async def list_assets(
        self,
        user_id: UUID,
        category: Optional[AssetCategory] = None,
        active_only: bool = True,
    ) -> list[Asset]:
        try:
            assets = [
                a for a in self._table.read_all()
                if a.user_id == user_id
                and (a.is_active or not active_only)
                and (category is None or a.category == category)
            ]
        except Exception as e:
            raise StorageError(f"Failed to list assets: {e}")
        assets.sort(key=lambda a: a.created_at, reverse=True)
        return assets


class GoogleSheetsChatStorage(ChatStorageInterface):
    """Google Sheets implementation of Ask-AI chat history."""

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        client = client or GoogleSheetsClient()
        self._table = SheetTable(client, client.settings.chat_messages_sheet_name, ChatMessage)

    async def save_message(self, message: ChatMessage) -> ChatMessage:
        try:
            self._table.append(message)
            return message
        except Exception as e:
            raise StorageError(f"Failed to save chat message: {e}")

    async def list_messages(
        self,
        user_id: UUID,
        session_id: Optional[UUID] = None,
    ) -> list[ChatMessage]:
        try:
            messages = [
                m for m in self._table.read_all()
                if m.user_id == user_id and (session_id is None or m.session_id == session_id)
            ]
        except Exception as e:
            raise StorageError(f"Failed to list chat messages: {e}")
        messages.sort(key=lambda m: m.created_at)
        return messages

    async def delete_session(self, user_id: UUID, session_id: UUID) -> int:
        messages = await self.list_messages(user_id, session_id)
        try:
            # One row at a time: row numbers shift after every delete
            return sum(1 for m in messages if self._table.remove(m.id))
        except Exception as e:
            raise StorageError(f"Failed to delete chat session: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _sheet(self) -> gspread.Worksheet:
        return self._client.get_worksheet(
            self._client.settings.audit_sheet_name,
            AUDIT_COLUMNS,
            rows=5000,  # More rows for audit log
        )

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return AuditEvent(
            event_id=UUID(safe_get(0)),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            user_id=UUID(safe_get(4)) if safe_get(4) else None,
            entity_type=safe_get(5) or None,
            entity_id=UUID(safe_get(6)) if safe_get(6) else None,
            correlation_id=UUID(safe_get(7)) if safe_get(7) else None,
            description=safe_get(8),
            details=json.loads(safe_get(9)) if safe_get(9) else {},
            error_message=safe_get(10) or None,
            is_user_action=safe_get(11).lower() == "true",
        )

    def _read_events(self) -> list[AuditEvent]:
        events = []
        for row in self._sheet().get_all_values()[1:]:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except (ValueError, IndexError) as e:
                logger.warning("malformed_audit_row_skipped", row_id=row[0], error=str(e))
        return events

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _append_row(self, row: list) -> None:
        self._sheet().append_row(row, value_input_option="RAW")

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event, giving up quietly after the retries."""
        try:
            self._append_row(event.to_sheets_row())
            return True
        except Exception as e:
            # Audit logging must not break the main flow
            logger.warning(
                "audit_write_failed",
                event_id=str(event.event_id),
                error=str(e),
            )
            return False

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        try:
            events = [e for e in self._read_events() if e.correlation_id == correlation_id]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        try:
            events = [
                e for e in self._read_events()
                if e.entity_type == entity_type and e.entity_id == entity_id
            ]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        try:
            events = self._read_events()
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        # Newest first
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
