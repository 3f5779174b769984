"""
Transaction Service

Records income and expenses and keeps wallet balances in step with them.

CRITICAL: Storage has no multi-row transactions. Every write here is two or
more sequential calls (transaction row, then wallet balance). When a later
call fails, the earlier ones are compensated so that no transaction exists
without its balance effect, and the failure is re-raised and audited.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from finance_tracker.analytics import (
    month_bounds,
    monthly_trend,
    shift_months,
    transaction_stats,
)
from finance_tracker.audit import AuditLogger, create_correlation_id
from finance_tracker.models.audit import AuditEventBuilder
from finance_tracker.models.finance import (
    BalanceOperation,
    Transaction,
    TransactionFilter,
    TransactionType,
    TransactionWithDetails,
    format_month,
)
from finance_tracker.models.reports import MonthlyTrendPoint, TransactionStats
from finance_tracker.services.base import (
    InvalidOperationError,
    UserScopedService,
    apply_changes,
)
from finance_tracker.services.category_service import CategoryService
from finance_tracker.services.storage import NotFoundError, TransactionStorageInterface
from finance_tracker.services.wallet_service import WalletService


def apply_operation(transaction_type: TransactionType) -> BalanceOperation:
    """How recording a transaction of this type moves its wallet balance."""
    if transaction_type == TransactionType.INCOME:
        return BalanceOperation.ADD
    return BalanceOperation.SUBTRACT


def revert_operation(transaction_type: TransactionType) -> BalanceOperation:
    """How removing a transaction of this type moves its wallet balance."""
    if transaction_type == TransactionType.INCOME:
        return BalanceOperation.SUBTRACT
    return BalanceOperation.ADD


class TransactionService(UserScopedService):
    """
    Transaction CRUD with wallet balance bookkeeping.

    Flow for a new transaction:
    1. Check wallet and category belong to the user
    2. Insert the transaction
    3. Add (income) or subtract (expense) the amount on the wallet
       - on failure, delete the inserted row and re-raise
    """

    def __init__(
        self,
        storage: TransactionStorageInterface,
        wallet_service: WalletService,
        category_service: CategoryService,
        user_id: Optional[UUID],
        audit_logger: Optional[AuditLogger] = None,
    ):
        super().__init__(user_id, audit_logger)
        self._storage = storage
        self._wallets = wallet_service
        self._categories = category_service

    # =========================================================================
    # READS
    # =========================================================================

    async def get_transactions(self) -> list[TransactionWithDetails]:
        """All of the user's transactions, newest date first."""
        return await self.get_transactions_filtered(TransactionFilter())

    async def get_transactions_filtered(
        self,
        filters: TransactionFilter,
    ) -> list[TransactionWithDetails]:
        user_id = self._require_user()
        transactions = await self._storage.list_transactions(user_id, filters)
        return await self._with_details(transactions)

    async def get_transaction(self, transaction_id: UUID) -> Optional[TransactionWithDetails]:
        user_id = self._require_user()
        transaction = await self._storage.get_transaction(user_id, transaction_id)
        if transaction is None:
            return None
        return (await self._with_details([transaction]))[0]

    async def _with_details(
        self,
        transactions: list[Transaction],
    ) -> list[TransactionWithDetails]:
        """Attach wallet and category (including deactivated ones)."""
        wallets = {w.id: w for w in await self._wallets.get_wallets(include_inactive=True)}
        categories = {
            c.id: c for c in await self._categories.get_categories(include_inactive=True)
        }
        return [
            TransactionWithDetails(
                **t.model_dump(),
                wallet=wallets.get(t.wallet_id),
                category=categories.get(t.category_id),
            )
            for t in transactions
        ]

    # =========================================================================
    # WRITES
    # =========================================================================

    async def create_transaction(
        self,
        wallet_id: UUID,
        category_id: UUID,
        amount: Decimal,
        transaction_type: TransactionType,
        description: str,
        transaction_date: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Record a transaction and apply it to its wallet balance.

        Raises:
            NotFoundError: Wallet or category doesn't exist for this user
            InvalidOperationError: Category type doesn't match the transaction type
            StorageError: A storage call failed (the insert is rolled back)
        """
        user_id = self._require_user()
        correlation_id = correlation_id or create_correlation_id()

        transaction = Transaction(
            user_id=user_id,
            wallet_id=wallet_id,
            category_id=category_id,
            amount=amount,
            type=transaction_type,
            description=description,
            date=transaction_date or date.today(),
        )
        await self._check_references(transaction)

        saved = await self._storage.save_transaction(transaction)
        try:
            await self._wallets.update_balance(
                saved.wallet_id,
                saved.amount,
                apply_operation(saved.type),
                correlation_id=correlation_id,
            )
        except Exception as e:
            await self._roll_back_insert(saved, e, correlation_id)
            raise

        self._logger.info(
            "transaction_recorded",
            transaction_id=str(saved.id),
            type=saved.type.value,
            amount=str(saved.amount),
        )
        await self._audit.log(AuditEventBuilder.transaction_recorded(
            user_id=user_id,
            transaction_id=saved.id,
            wallet_id=saved.wallet_id,
            transaction_type=saved.type.value,
            amount=str(saved.amount),
            correlation_id=correlation_id,
        ))
        return saved

    async def update_transaction(
        self,
        transaction_id: UUID,
        changes: dict[str, Any],
    ) -> Transaction:
        """
        Edit a transaction, moving its balance effect accordingly.

        The original amount is reverted from the original wallet, the row is
        updated, and the new amount is applied to the (possibly new) wallet.
        A failure part way through restores the original row and balance.
        """
        user_id = self._require_user()
        correlation_id = create_correlation_id()

        original = await self._storage.get_transaction(user_id, transaction_id)
        if original is None:
            raise NotFoundError("Transaction not found")
        updated = apply_changes(original, changes)
        await self._check_references(updated)

        await self._wallets.update_balance(
            original.wallet_id,
            original.amount,
            revert_operation(original.type),
            correlation_id=correlation_id,
        )
        try:
            saved = await self._storage.update_transaction(updated)
        except Exception:
            await self._reapply(original, correlation_id)
            raise

        try:
            await self._wallets.update_balance(
                saved.wallet_id,
                saved.amount,
                apply_operation(saved.type),
                correlation_id=correlation_id,
            )
        except Exception as e:
            await self._restore_original(original, e, correlation_id)
            raise

        self._logger.info("transaction_updated", transaction_id=str(transaction_id))
        await self._audit.log(AuditEventBuilder.transaction_updated(
            user_id=user_id,
            transaction_id=transaction_id,
            changes={key: str(value) for key, value in changes.items()},
            correlation_id=correlation_id,
        ))
        return saved

    async def delete_transaction(self, transaction_id: UUID) -> None:
        """Revert the balance effect, then delete the row."""
        user_id = self._require_user()
        correlation_id = create_correlation_id()

        transaction = await self._storage.get_transaction(user_id, transaction_id)
        if transaction is None:
            raise NotFoundError("Transaction not found")

        await self._wallets.update_balance(
            transaction.wallet_id,
            transaction.amount,
            revert_operation(transaction.type),
            correlation_id=correlation_id,
        )
        try:
            await self._storage.delete_transaction(user_id, transaction_id)
        except Exception:
            await self._reapply(transaction, correlation_id)
            raise

        self._logger.info("transaction_deleted", transaction_id=str(transaction_id))
        await self._audit.log(AuditEventBuilder.transaction_deleted(
            user_id=user_id,
            transaction_id=transaction_id,
            amount=str(transaction.amount),
            correlation_id=correlation_id,
        ))

    async def _check_references(self, transaction: Transaction) -> None:
        wallet = await self._wallets.get_wallet(transaction.wallet_id)
        if wallet is None:
            raise NotFoundError("Wallet not found")
        category = await self._categories.get_category(transaction.category_id)
        if category is None:
            raise NotFoundError("Category not found")
        if category.type.value != transaction.type.value:
            raise InvalidOperationError(
                f"Category '{category.name}' is a {category.type.value} category, "
                f"not {transaction.type.value}"
            )

    # =========================================================================
    # COMPENSATION
    # =========================================================================

    async def _roll_back_insert(
        self,
        transaction: Transaction,
        error: Exception,
        correlation_id: UUID,
    ) -> None:
        """Delete a transaction whose balance update failed."""
        self._logger.error(
            "balance_update_failed",
            transaction_id=str(transaction.id),
            wallet_id=str(transaction.wallet_id),
            error=str(error),
        )
        try:
            await self._storage.delete_transaction(transaction.user_id, transaction.id)
        except Exception as cleanup_error:
            self._logger.critical(
                "transaction_rollback_failed",
                transaction_id=str(transaction.id),
                error=str(cleanup_error),
            )
            await self._audit.log_error(
                error_type="transaction_rollback_failed",
                error_message=str(cleanup_error),
                details={"transaction_id": str(transaction.id)},
                correlation_id=correlation_id,
            )
            return

        await self._audit.log(AuditEventBuilder.transaction_rolled_back(
            user_id=transaction.user_id,
            transaction_id=transaction.id,
            error_message=str(error),
            correlation_id=correlation_id,
        ))

    async def _reapply(self, transaction: Transaction, correlation_id: UUID) -> None:
        """Put back a balance effect that was reverted before a failed write."""
        await self._wallets.update_balance(
            transaction.wallet_id,
            transaction.amount,
            apply_operation(transaction.type),
            correlation_id=correlation_id,
        )

    async def _restore_original(
        self,
        original: Transaction,
        error: Exception,
        correlation_id: UUID,
    ) -> None:
        """Undo an edit whose new balance effect could not be applied."""
        self._logger.error(
            "balance_update_failed",
            transaction_id=str(original.id),
            error=str(error),
        )
        try:
            await self._storage.update_transaction(original)
            await self._reapply(original, correlation_id)
        except Exception as cleanup_error:
            self._logger.critical(
                "transaction_restore_failed",
                transaction_id=str(original.id),
                error=str(cleanup_error),
            )
            await self._audit.log_error(
                error_type="transaction_restore_failed",
                error_message=str(cleanup_error),
                details={"transaction_id": str(original.id)},
                correlation_id=correlation_id,
            )
            return

        await self._audit.log(AuditEventBuilder.transaction_rolled_back(
            user_id=original.user_id,
            transaction_id=original.id,
            error_message=str(error),
            correlation_id=correlation_id,
        ))

    # =========================================================================
    # STATISTICS
    # =========================================================================

    async def get_transaction_stats(
        self,
        month: Optional[int] = None,
        year: Optional[int] = None,
    ) -> TransactionStats:
        """
        Income, expenses, net and count; for one calendar month when both
        month and year are given, otherwise over all transactions.
        """
        user_id = self._require_user()
        filters = TransactionFilter()
        if month and year:
            start, end = month_bounds(format_month(year, month))
            filters = TransactionFilter(date_from=start, date_to=end)
        transactions = await self._storage.list_transactions(user_id, filters)
        return transaction_stats(transactions)

    async def get_monthly_data(self, months: int = 6) -> list[MonthlyTrendPoint]:
        """Per-month income/expense/savings from `months` ago until today."""
        user_id = self._require_user()
        today = date.today()
        transactions = await self._storage.list_transactions(
            user_id,
            TransactionFilter(date_from=shift_months(today, -months), date_to=today),
        )
        return monthly_trend(transactions)


__all__ = [
    "TransactionService",
    "apply_operation",
    "revert_operation",
]
