"""
Wallet Service

Manages the user's bank accounts and e-wallets. Balances are changed only
through `update_balance`, which the transaction service calls whenever a
transaction is recorded, edited or removed.
"""

from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from finance_tracker.audit import AuditLogger
from finance_tracker.models.audit import AuditEventBuilder
from finance_tracker.models.finance import (
    DEFAULT_WALLET_COLOR,
    BalanceOperation,
    Wallet,
    WalletType,
)
from finance_tracker.services.base import UserScopedService, apply_changes
from finance_tracker.services.storage import NotFoundError, WalletStorageInterface


class WalletService(UserScopedService):
    """CRUD for wallets plus balance arithmetic."""

    def __init__(
        self,
        storage: WalletStorageInterface,
        user_id: Optional[UUID],
        audit_logger: Optional[AuditLogger] = None,
    ):
        super().__init__(user_id, audit_logger)
        self._storage = storage

    async def get_wallets(self, include_inactive: bool = False) -> list[Wallet]:
        """Active wallets (or all of them), newest first."""
        user_id = self._require_user()
        return await self._storage.list_wallets(user_id, active_only=not include_inactive)

    async def get_wallet(self, wallet_id: UUID) -> Optional[Wallet]:
        user_id = self._require_user()
        return await self._storage.get_wallet(user_id, wallet_id)

    async def create_wallet(
        self,
        name: str,
        account_number: str,
        wallet_type: WalletType,
        balance: Decimal = Decimal("0"),
        color: str = DEFAULT_WALLET_COLOR,
    ) -> Wallet:
        user_id = self._require_user()
        wallet = Wallet(
            user_id=user_id,
            name=name,
            account_number=account_number,
            type=wallet_type,
            balance=balance,
            color=color,
        )
        saved = await self._storage.save_wallet(wallet)

        self._logger.info("wallet_created", wallet_id=str(saved.id), type=saved.type.value)
        await self._audit.log(AuditEventBuilder.wallet_created(
            user_id=user_id,
            wallet_id=saved.id,
            name=saved.name,
            opening_balance=str(saved.balance),
        ))
        return saved

    async def update_wallet(self, wallet_id: UUID, changes: dict[str, Any]) -> Wallet:
        """
        Apply field changes to a wallet.

        Raises:
            NotFoundError: If the wallet doesn't exist for this user
            InvalidOperationError: If an unknown or immutable field is given
        """
        user_id = self._require_user()
        wallet = await self._get_existing(wallet_id)
        saved = await self._storage.update_wallet(apply_changes(wallet, changes))

        self._logger.info("wallet_updated", wallet_id=str(wallet_id), fields=sorted(changes))
        await self._audit.log(AuditEventBuilder.wallet_updated(
            user_id=user_id,
            wallet_id=wallet_id,
            changes={key: str(value) for key, value in changes.items()},
        ))
        return saved

    async def delete_wallet(self, wallet_id: UUID) -> None:
        """Soft delete: the wallet is hidden but its history is kept."""
        user_id = self._require_user()
        wallet = await self._get_existing(wallet_id)
        wallet.is_active = False
        await self._storage.update_wallet(wallet)

        self._logger.info("wallet_deactivated", wallet_id=str(wallet_id))
        await self._audit.log(AuditEventBuilder.wallet_deactivated(user_id, wallet_id))

    async def update_balance(
        self,
        wallet_id: UUID,
        amount: Decimal,
        operation: BalanceOperation,
        correlation_id: Optional[UUID] = None,
    ) -> Wallet:
        """
        Add to or subtract from a wallet's balance.

        The balance may go negative; overdrafts are the user's business.

        Raises:
            NotFoundError: If the wallet doesn't exist for this user
        """
        user_id = self._require_user()
        wallet = await self._get_existing(wallet_id)

        if operation == BalanceOperation.ADD:
            wallet.balance = wallet.balance + amount
        else:
            wallet.balance = wallet.balance - amount
        updated = await self._storage.update_wallet(wallet)

        self._logger.info(
            "balance_adjusted",
            wallet_id=str(wallet_id),
            operation=operation.value,
            amount=str(amount),
            new_balance=str(updated.balance),
        )
        await self._audit.log(AuditEventBuilder.balance_adjusted(
            user_id=user_id,
            wallet_id=wallet_id,
            operation=operation.value,
            amount=str(amount),
            new_balance=str(updated.balance),
            correlation_id=correlation_id,
        ))
        return updated

    async def get_total_balance(self) -> Decimal:
        """Sum of balances over active wallets."""
        wallets = await self.get_wallets()
        return sum((w.balance for w in wallets), Decimal("0"))

    async def _get_existing(self, wallet_id: UUID) -> Wallet:
        wallet = await self.get_wallet(wallet_id)
        if wallet is None:
            raise NotFoundError("Wallet not found")
        return wallet
