"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing and for running without credentials
3. Keep business logic decoupled from storage implementation

The interface is intentionally simple - we're not building a full ORM.
One interface per table; every read is scoped to a user_id.
"""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from finance_tracker.models.assets import Asset, AssetCategory
from finance_tracker.models.assistant import ChatMessage
from finance_tracker.models.audit import AuditEvent
from finance_tracker.models.finance import (
    Budget,
    Category,
    CategoryType,
    Transaction,
    TransactionFilter,
    Wallet,
)
from finance_tracker.models.goals import (
    GoalLoan,
    GoalLoanPayment,
    GoalLoanStatus,
    GoalLoanType,
)


class WalletStorageInterface(ABC):
    """
    Abstract interface for wallet storage operations.

    Wallets are never physically deleted; deactivation is an update.
    """

    @abstractmethod
    async def save_wallet(self, wallet: Wallet) -> Wallet:
        """
        Insert a new wallet.

        Args:
            wallet: The wallet to save

        Returns:
            The stored wallet

        Raises:
            StorageError: If save fails
        """
        pass

    @abstractmethod
    async def get_wallet(self, user_id: UUID, wallet_id: UUID) -> Optional[Wallet]:
        """
        Retrieve one of the user's wallets.

        Returns:
            The wallet if found (active or not), None otherwise
        """
        pass

    @abstractmethod
    async def update_wallet(self, wallet: Wallet) -> Wallet:
        """
        Replace a stored wallet with the given one.

        Raises:
            NotFoundError: If the wallet doesn't exist
        """
        pass

    @abstractmethod
    async def list_wallets(self, user_id: UUID, active_only: bool = True) -> list[Wallet]:
        """List the user's wallets, newest first."""
        pass


class CategoryStorageInterface(ABC):
    """Abstract interface for category storage operations."""

    @abstractmethod
    async def save_category(self, category: Category) -> Category:
        pass

    @abstractmethod
    async def save_categories(self, categories: list[Category]) -> list[Category]:
        """
        Insert several categories in one call.

        Used to seed the default category set for a new user.
        """
        pass

    @abstractmethod
    async def get_category(self, user_id: UUID, category_id: UUID) -> Optional[Category]:
        pass

    @abstractmethod
    async def update_category(self, category: Category) -> Category:
        """
        Replace a stored category.

        Raises:
            NotFoundError: If the category doesn't exist
        """
        pass

    @abstractmethod
    async def list_categories(
        self,
        user_id: UUID,
        types: Optional[list[CategoryType]] = None,
        active_only: bool = True,
    ) -> list[Category]:
        """
        List the user's categories ordered by name.

        Args:
            user_id: Owner of the categories
            types: Only return categories of these types (all types when None)
            active_only: Skip deactivated categories
        """
        pass


class TransactionStorageInterface(ABC):
    """
    Abstract interface for transaction storage operations.

    Transactions are physically deleted; wallet balances are the
    responsibility of the service layer, not of storage.
    """

    @abstractmethod
    async def save_transaction(self, transaction: Transaction) -> Transaction:
        """
        Insert a new transaction.

        Raises:
            StorageError: If save fails
        """
        pass

    @abstractmethod
    async def get_transaction(
        self,
        user_id: UUID,
        transaction_id: UUID,
    ) -> Optional[Transaction]:
        pass

    @abstractmethod
    async def update_transaction(self, transaction: Transaction) -> Transaction:
        """
        Replace a stored transaction.

        Raises:
            NotFoundError: If the transaction doesn't exist
        """
        pass

    @abstractmethod
    async def delete_transaction(self, user_id: UUID, transaction_id: UUID) -> bool:
        """
        Delete a transaction by ID.

        Returns:
            True if a row was deleted, False if it didn't exist
        """
        pass

    @abstractmethod
    async def list_transactions(
        self,
        user_id: UUID,
        filters: Optional[TransactionFilter] = None,
    ) -> list[Transaction]:
        """
        List the user's transactions matching every given filter.

        Ordered by date descending, then created_at descending.
        `filters.limit` is applied after sorting.
        """
        pass

    @abstractmethod
    async def count_by_category(self, user_id: UUID, category_id: UUID) -> int:
        """Number of the user's transactions that reference a category."""
        pass


class BudgetStorageInterface(ABC):
    """Abstract interface for budget storage operations."""

    @abstractmethod
    async def save_budget(self, budget: Budget) -> Budget:
        """
        Insert a new budget.

        Raises:
            DuplicateError: If the user already has a budget for this
                category and month
        """
        pass

    @abstractmethod
    async def get_budget(self, user_id: UUID, budget_id: UUID) -> Optional[Budget]:
        pass

    @abstractmethod
    async def update_budget(self, budget: Budget) -> Budget:
        """
        Replace a stored budget.

        Raises:
            NotFoundError: If the budget doesn't exist
            DuplicateError: If the change collides with another budget
        """
        pass

    @abstractmethod
    async def delete_budget(self, user_id: UUID, budget_id: UUID) -> bool:
        pass

    @abstractmethod
    async def list_budgets(
        self,
        user_id: UUID,
        month: Optional[str] = None,
    ) -> list[Budget]:
        """List the user's budgets (optionally for one "YYYY-MM"), newest first."""
        pass


class GoalLoanStorageInterface(ABC):
    """Abstract interface for goals, loans and their payments."""

    @abstractmethod
    async def save_goal_loan(self, item: GoalLoan) -> GoalLoan:
        pass

    @abstractmethod
    async def get_goal_loan(self, user_id: UUID, item_id: UUID) -> Optional[GoalLoan]:
        pass

    @abstractmethod
    async def update_goal_loan(self, item: GoalLoan) -> GoalLoan:
        """
        Replace a stored goal or loan.

        Raises:
            NotFoundError: If the item doesn't exist
        """
        pass

    @abstractmethod
    async def list_goal_loans(
        self,
        user_id: UUID,
        item_type: Optional[GoalLoanType] = None,
        status: Optional[GoalLoanStatus] = None,
        active_only: bool = True,
    ) -> list[GoalLoan]:
        """List the user's goals and loans, newest first."""
        pass

    @abstractmethod
    async def save_payment(self, payment: GoalLoanPayment) -> GoalLoanPayment:
        pass

    @abstractmethod
    async def list_payments(
        self,
        user_id: UUID,
        goal_loan_id: UUID,
    ) -> list[GoalLoanPayment]:
        """Payments recorded against one goal or loan, most recent date first."""
        pass


class AssetStorageInterface(ABC):
    """Abstract interface for asset storage. Deletion is an update."""

    @abstractmethod
    async def save_asset(self, asset: Asset) -> Asset:
        pass

    @abstractmethod
    async def get_asset(self, user_id: UUID, asset_id: UUID) -> Optional[Asset]:
        pass

    @abstractmethod
    async def update_asset(self, asset: Asset) -> Asset:
        """
        Replace a stored asset.

        Raises:
            NotFoundError: If the asset doesn't exist
        """
        pass

    @abstractmethod
    async def list_assets(
        self,
        user_id: UUID,
        category: Optional[AssetCategory] = None,
        active_only: bool = True,
    ) -> list[Asset]:
        """List the user's assets, newest first."""
        pass


class ChatStorageInterface(ABC):
    """
    Abstract interface for Ask-AI chat history.

    Messages are never edited; a whole session is deleted at once.
    """

    @abstractmethod
    async def save_message(self, message: ChatMessage) -> ChatMessage:
        pass

    @abstractmethod
    async def list_messages(
        self,
        user_id: UUID,
        session_id: Optional[UUID] = None,
    ) -> list[ChatMessage]:
        """The user's messages (optionally of one session), oldest first."""
        pass

    @abstractmethod
    async def delete_session(self, user_id: UUID, session_id: UUID) -> int:
        """
        Delete every message of one of the user's sessions.

        Returns:
            Number of messages deleted
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Args:
            event: The audit event to log

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one receipt scan flow).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity.

        Args:
            entity_type: Type of entity (e.g., 'wallet', 'transaction')
            entity_id: The entity's ID

        Returns:
            List of events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
