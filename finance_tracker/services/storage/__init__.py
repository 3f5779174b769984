"""Storage services package."""

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
from finance_tracker.services.storage.memory import (
    InMemoryAssetStorage,
    InMemoryAuditStorage,
    InMemoryBudgetStorage,
    InMemoryCategoryStorage,
    InMemoryChatStorage,
    InMemoryGoalLoanStorage,
    InMemoryTransactionStorage,
    InMemoryWalletStorage,
)
from finance_tracker.services.storage.google_sheets import (
    GoogleSheetsAssetStorage,
    GoogleSheetsAuditStorage,
    GoogleSheetsBudgetStorage,
    GoogleSheetsCategoryStorage,
    GoogleSheetsChatStorage,
    GoogleSheetsClient,
    GoogleSheetsGoalLoanStorage,
    GoogleSheetsTransactionStorage,
    GoogleSheetsWalletStorage,
)

__all__ = [
    # Interfaces
    "AssetStorageInterface",
    "AuditStorageInterface",
    "BudgetStorageInterface",
    "CategoryStorageInterface",
    "ChatStorageInterface",
    "GoalLoanStorageInterface",
    "TransactionStorageInterface",
    "WalletStorageInterface",
    # In-memory
    "InMemoryAssetStorage",
    "InMemoryAuditStorage",
    "InMemoryBudgetStorage",
    "InMemoryCategoryStorage",
    "InMemoryChatStorage",
    "InMemoryGoalLoanStorage",
    "InMemoryTransactionStorage",
    "InMemoryWalletStorage",
    # Google Sheets
    "GoogleSheetsAssetStorage",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsBudgetStorage",
    "GoogleSheetsCategoryStorage",
    "GoogleSheetsChatStorage",
    "GoogleSheetsClient",
    "GoogleSheetsGoalLoanStorage",
    "GoogleSheetsTransactionStorage",
    "GoogleSheetsWalletStorage",
    # Errors
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
]
