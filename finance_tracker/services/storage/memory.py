"""
In-Memory Storage Implementation

Dict-backed implementation of every storage interface. Used by the test
suite and as the fallback when Google Sheets is not configured, so the
app can still be explored locally. Data lives only as long as the process.

Stored objects are copied on the way in and on the way out so callers
cannot mutate storage state without going through an update call, the
same as with a remote backend.
"""

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
    DuplicateError,
    GoalLoanStorageInterface,
    NotFoundError,
    TransactionStorageInterface,
    WalletStorageInterface,
)


def _copy(model):
    return model.model_copy(deep=True)


class InMemoryWalletStorage(WalletStorageInterface):

    def __init__(self):
        self._wallets: dict[UUID, Wallet] = {}

    async def save_wallet(self, wallet: Wallet) -> Wallet:
        if wallet.id in self._wallets:
            raise DuplicateError(f"Wallet already exists: {wallet.id}")
        self._wallets[wallet.id] = _copy(wallet)
        return _copy(wallet)

    async def get_wallet(self, user_id: UUID, wallet_id: UUID) -> Optional[Wallet]:
        wallet = self._wallets.get(wallet_id)
        if wallet is None or wallet.user_id != user_id:
            return None
        return _copy(wallet)

    async def update_wallet(self, wallet: Wallet) -> Wallet:
        stored = self._wallets.get(wallet.id)
        if stored is None or stored.user_id != wallet.user_id:
            raise NotFoundError(f"Wallet not found: {wallet.id}")
        wallet.updated_at = utcnow()
        self._wallets[wallet.id] = _copy(wallet)
        return _copy(wallet)

    async def list_wallets(self, user_id: UUID, active_only: bool = True) -> list[Wallet]:
        wallets = [
            _copy(w) for w in self._wallets.values()
            if w.user_id == user_id and (w.is_active or not active_only)
        ]
        wallets.sort(key=lambda w: w.created_at, reverse=True)
        return wallets


class InMemoryCategoryStorage(CategoryStorageInterface):

    def __init__(self):
        self._categories: dict[UUID, Category] = {}

    async def save_category(self, category: Category) -> Category:
        if category.id in self._categories:
            raise DuplicateError(f"Category already exists: {category.id}")
        self._categories[category.id] = _copy(category)
        return _copy(category)

    async def save_categories(self, categories: list[Category]) -> list[Category]:
        return [await self.save_category(category) for category in categories]

    async def get_category(self, user_id: UUID, category_id: UUID) -> Optional[Category]:
        category = self._categories.get(category_id)
        if category is None or category.user_id != user_id:
            return None
        return _copy(category)

    async def update_category(self, category: Category) -> Category:
        stored = self._categories.get(category.id)
        if stored is None or stored.user_id != category.user_id:
            raise NotFoundError(f"Category not found: {category.id}")
        category.updated_at = utcnow()
        self._categories[category.id] = _copy(category)
        return _copy(category)

    async def list_categories(
        self,
        user_id: UUID,
        types: Optional[list[CategoryType]] = None,
        active_only: bool = True,
    ) -> list[Category]:
        categories = [
            _copy(c) for c in self._categories.values()
            if c.user_id == user_id
            and (c.is_active or not active_only)
            and (types is None or c.type in types)
        ]
        categories.sort(key=lambda c: c.name.lower())
        return categories


class InMemoryTransactionStorage(TransactionStorageInterface):

    def __init__(self):
        self._transactions: dict[UUID, Transaction] = {}

    async def save_transaction(self, transaction: Transaction) -> Transaction:
        if transaction.id in self._transactions:
            raise DuplicateError(f"Transaction already exists: {transaction.id}")
        self._transactions[transaction.id] = _copy(transaction)
        return _copy(transaction)

    async def get_transaction(
        self,
        user_id: UUID,
        transaction_id: UUID,
    ) -> Optional[Transaction]:
        transaction = self._transactions.get(transaction_id)
        if transaction is None or transaction.user_id != user_id:
            return None
        return _copy(transaction)

    async def update_transaction(self, transaction: Transaction) -> Transaction:
        stored = self._transactions.get(transaction.id)
        if stored is None or stored.user_id != transaction.user_id:
            raise NotFoundError(f"Transaction not found: {transaction.id}")
        transaction.updated_at = utcnow()
        self._transactions[transaction.id] = _copy(transaction)
        return _copy(transaction)

    async def delete_transaction(self, user_id: UUID, transaction_id: UUID) -> bool:
        stored = self._transactions.get(transaction_id)
        if stored is None or stored.user_id != user_id:
            return False
        del self._transactions[transaction_id]
        return True

    async def list_transactions(
        self,
        user_id: UUID,
        filters: Optional[TransactionFilter] = None,
    ) -> list[Transaction]:
        filters = filters or TransactionFilter()
        transactions = sort_transactions([
            _copy(t) for t in self._transactions.values()
            if t.user_id == user_id and filters.matches(t)
        ])
        if filters.limit:
            return transactions[:filters.limit]
        return transactions

    async def count_by_category(self, user_id: UUID, category_id: UUID) -> int:
        return sum(
            1 for t in self._transactions.values()
            if t.user_id == user_id and t.category_id == category_id
        )


class InMemoryBudgetStorage(BudgetStorageInterface):

    def __init__(self):
        self._budgets: dict[UUID, Budget] = {}

    def _check_unique(self, budget: Budget) -> None:
        for other in self._budgets.values():
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
        if budget.id in self._budgets:
            raise DuplicateError(f"Budget already exists: {budget.id}")
        self._check_unique(budget)
        self._budgets[budget.id] = _copy(budget)
        return _copy(budget)

    async def get_budget(self, user_id: UUID, budget_id: UUID) -> Optional[Budget]:
        budget = self._budgets.get(budget_id)
        if budget is None or budget.user_id != user_id:
            return None
        return _copy(budget)

    async def update_budget(self, budget: Budget) -> Budget:
        stored = self._budgets.get(budget.id)
        if stored is None or stored.user_id != budget.user_id:
            raise NotFoundError(f"Budget not found: {budget.id}")
        self._check_unique(budget)
        budget.updated_at = utcnow()
        self._budgets[budget.id] = _copy(budget)
        return _copy(budget)

    async def delete_budget(self, user_id: UUID, budget_id: UUID) -> bool:
        stored = self._budgets.get(budget_id)
        if stored is None or stored.user_id != user_id:
            return False
        del self._budgets[budget_id]
        return True

    async def list_budgets(
        self,
        user_id: UUID,
        month: Optional[str] = None,
    ) -> list[Budget]:
        budgets = [
            _copy(b) for b in self._budgets.values()
            if b.user_id == user_id and (month is None or b.month == month)
        ]
        budgets.sort(key=lambda b: b.created_at, reverse=True)
        return budgets


class InMemoryGoalLoanStorage(GoalLoanStorageInterface):

    def __init__(self):
        self._items: dict[UUID, GoalLoan] = {}
        self._payments: dict[UUID, GoalLoanPayment] = {}

    async def save_goal_loan(self, item: GoalLoan) -> GoalLoan:
        if item.id in self._items:
            raise DuplicateError(f"Goal/loan already exists: {item.id}")
        self._items[item.id] = _copy(item)
        return _copy(item)

    async def get_goal_loan(self, user_id: UUID, item_id: UUID) -> Optional[GoalLoan]:
        item = self._items.get(item_id)
        if item is None or item.user_id != user_id:
            return None
        return _copy(item)

    async def update_goal_loan(self, item: GoalLoan) -> GoalLoan:
        stored = self._items.get(item.id)
        if stored is None or stored.user_id != item.user_id:
            raise NotFoundError(f"Goal/loan not found: {item.id}")
        item.updated_at = utcnow()
        self._items[item.id] = _copy(item)
        return _copy(item)

    async def list_goal_loans(
        self,
        user_id: UUID,
        item_type: Optional[GoalLoanType] = None,
        status: Optional[GoalLoanStatus] = None,
        active_only: bool = True,
    ) -> list[GoalLoan]:
        items = [
            _copy(i) for i in self._items.values()
            if i.user_id == user_id
            and (i.is_active or not active_only)
            and (item_type is None or i.type == item_type)
            and (status is None or i.status == status)
        ]
        items.sort(key=lambda i: i.created_at, reverse=True)
        return items

    async def save_payment(self, payment: GoalLoanPayment) -> GoalLoanPayment:
        self._payments[payment.id] = _copy(payment)
        return _copy(payment)

    async def list_payments(
        self,
        user_id: UUID,
        goal_loan_id: UUID,
    ) -> list[GoalLoanPayment]:
        payments = [
            _copy(p) for p in self._payments.values()
            if p.user_id == user_id and p.goal_loan_id == goal_loan_id
        ]
        payments.sort(key=lambda p: (p.transaction_date, p.created_at), reverse=True)
        return payments


class InMemoryAssetStorage(AssetStorageInterface):

    def __init__(self):
        self._assets: dict[UUID, Asset] = {}

    async def save_asset(self, asset: Asset) -> Asset:
        if asset.id in self._assets:
            raise DuplicateError(f"Asset already exists: {asset.id}")
        self._assets[asset.id] = _copy(asset)
        return _copy(asset)

    async def get_asset(self, user_id: UUID, asset_id: UUID) -> Optional[Asset]:
        asset = self._assets.get(asset_id)
        if asset is None or asset.user_id != user_id:
            return None
        return _copy(asset)

    async def update_asset(self, asset: Asset) -> Asset:
        stored = self._assets.get(asset.id)
        if stored is None or stored.user_id != asset.user_id:
            raise NotFoundError(f"Asset not found: {asset.id}")
        asset.updated_at = utcnow()
        self._assets[asset.id] = _copy(asset)
        return _copy(asset)

    async def list_assets(
        self,
        user_id: UUID,
        category: Optional[AssetCategory] = None,
        active_only: bool = True,
    ) -> list[Asset]:
        assets = [
            _copy(a) for a in self._assets.values()
            if a.user_id == user_id
            and (a.is_active or not active_only)
            and (category is None or a.category == category)
        ]
        assets.sort(key=lambda a: a.created_at, reverse=True)
        return assets


class InMemoryChatStorage(ChatStorageInterface):

    def __init__(self):
        self._messages: list[ChatMessage] = []

    async def save_message(self, message: ChatMessage) -> ChatMessage:
        self._messages.append(_copy(message))
        return _copy(message)

    async def list_messages(
        self,
        user_id: UUID,
        session_id: Optional[UUID] = None,
    ) -> list[ChatMessage]:
        messages = [
            _copy(m) for m in self._messages
            if m.user_id == user_id and (session_id is None or m.session_id == session_id)
        ]
        messages.sort(key=lambda m: m.created_at)
        return messages

    async def delete_session(self, user_id: UUID, session_id: UUID) -> int:
        kept = [
            m for m in self._messages
            if not (m.user_id == user_id and m.session_id == session_id)
        ]
        deleted = len(self._messages) - len(kept)
        self._messages = kept
        return deleted


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(_copy(event))
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
