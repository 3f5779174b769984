"""
Asset Service

Tracks what the user owns outside their wallets and how its value has
moved since purchase. Investments with an interest rate also get a
projected value: the purchase value compounded monthly plus the monthly
contributions, over the months owned so far.
"""

from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional
from uuid import UUID

from finance_tracker.audit import AuditLogger
from finance_tracker.models.assets import (
    Asset,
    AssetCategory,
    AssetCategoryBreakdown,
    AssetStats,
    AssetWithMetrics,
)
from finance_tracker.models.audit import AuditEventBuilder
from finance_tracker.models.finance import utcnow
from finance_tracker.services.base import UserScopedService, apply_changes
from finance_tracker.services.storage import AssetStorageInterface, NotFoundError


ZERO = Decimal("0")
CENT = Decimal("0.01")
DAYS_PER_MONTH = 30.44
PERFORMER_COUNT = 5
STALE_AFTER_DAYS = 30


def projected_value(asset: Asset, months: int) -> Optional[Decimal]:
    """Future value of an investment after `months`, or None when it has no rate."""
    if asset.category != AssetCategory.INVESTMENT or asset.interest_rate <= 0:
        return None
    rate = asset.interest_rate / 100 / 12
    growth = (1 + rate) ** months
    value = asset.purchase_value * growth + asset.monthly_contribution * (growth - 1) / rate
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def calculate_asset_metrics(asset: Asset, today: Optional[date] = None) -> AssetWithMetrics:
    today = today or date.today()
    gain_loss = asset.current_value - asset.purchase_value
    percentage = 0.0
    if asset.purchase_value > 0:
        percentage = float(gain_loss / asset.purchase_value * 100)
    months_owned = max(0, int((today - asset.purchase_date).days // DAYS_PER_MONTH))

    return AssetWithMetrics(
        **asset.model_dump(),
        gain_loss=gain_loss,
        gain_loss_percentage=percentage,
        months_owned=months_owned,
        projected_value=projected_value(asset, months_owned),
    )


class AssetService(UserScopedService):
    """CRUD, value updates and portfolio statistics for assets."""

    def __init__(
        self,
        storage: AssetStorageInterface,
        user_id: Optional[UUID],
        audit_logger: Optional[AuditLogger] = None,
    ):
        super().__init__(user_id, audit_logger)
        self._storage = storage

    async def get_assets(self, category: Optional[AssetCategory] = None) -> list[AssetWithMetrics]:
        """Active assets, newest first, with metrics."""
        user_id = self._require_user()
        assets = await self._storage.list_assets(user_id, category=category)
        return [calculate_asset_metrics(asset) for asset in assets]

    async def get_assets_by_category(self, category: AssetCategory) -> list[AssetWithMetrics]:
        return await self.get_assets(category=AssetCategory(category))

    async def get_asset(self, asset_id: UUID) -> Optional[AssetWithMetrics]:
        user_id = self._require_user()
        asset = await self._storage.get_asset(user_id, asset_id)
        if asset is None:
            return None
        return calculate_asset_metrics(asset)

    async def create_asset(
        self,
        name: str,
        category: AssetCategory,
        current_value: Decimal,
        purchase_value: Decimal,
        purchase_date: date,
        **fields: Any,
    ) -> Asset:
        user_id = self._require_user()
        asset = Asset(
            user_id=user_id,
            name=name,
            category=category,
            current_value=current_value,
            purchase_value=purchase_value,
            purchase_date=purchase_date,
            **fields,
        )
        saved = await self._storage.save_asset(asset)

        self._logger.info("asset_created", asset_id=str(saved.id), category=saved.category.value)
        await self._audit.log(AuditEventBuilder.asset_created(
            user_id=user_id,
            asset_id=saved.id,
            name=saved.name,
            value=str(saved.current_value),
        ))
        return saved

    async def update_asset(self, asset_id: UUID, changes: dict[str, Any]) -> Asset:
        user_id = self._require_user()
        asset = await self._get_existing(asset_id)
        updated = await self._storage.update_asset(apply_changes(asset, changes))

        self._logger.info("asset_updated", asset_id=str(asset_id), fields=sorted(changes))
        await self._audit.log(AuditEventBuilder.asset_updated(
            user_id=user_id,
            asset_id=asset_id,
            changes={k: str(v) for k, v in changes.items()},
        ))
        return updated

    async def delete_asset(self, asset_id: UUID) -> None:
        """Soft delete."""
        user_id = self._require_user()
        asset = await self._get_existing(asset_id)
        asset.is_active = False
        await self._storage.update_asset(asset)

        self._logger.info("asset_deleted", asset_id=str(asset_id))
        await self._audit.log(AuditEventBuilder.asset_deleted(user_id, asset_id))

    async def update_asset_value(
        self,
        asset_id: UUID,
        new_value: Decimal,
        notes: Optional[str] = None,
    ) -> Asset:
        """Record a fresh valuation; notes replace the previous ones when given."""
        user_id = self._require_user()
        asset = await self._get_existing(asset_id)
        old_value = asset.current_value

        changes: dict[str, Any] = {"current_value": new_value}
        if notes:
            changes["notes"] = notes
        updated = await self._storage.update_asset(apply_changes(asset, changes))

        self._logger.info(
            "asset_value_updated",
            asset_id=str(asset_id),
            old_value=str(old_value),
            new_value=str(updated.current_value),
        )
        await self._audit.log(AuditEventBuilder.asset_value_updated(
            user_id=user_id,
            asset_id=asset_id,
            old_value=str(old_value),
            new_value=str(updated.current_value),
        ))
        return updated

    async def get_asset_stats(self) -> AssetStats:
        assets = await self.get_assets()
        if not assets:
            return AssetStats()

        total_current = sum((a.current_value for a in assets), ZERO)
        total_purchase = sum((a.purchase_value for a in assets), ZERO)
        total_gain = total_current - total_purchase

        breakdown = []
        for category in AssetCategory:
            members = [a for a in assets if a.category == category]
            if not members:
                continue
            value = sum((a.current_value for a in members), ZERO)
            breakdown.append(AssetCategoryBreakdown(
                category=category,
                count=len(members),
                value=value,
                percentage=float(value / total_current * 100) if total_current > 0 else 0.0,
            ))

        ranked = sorted(assets, key=lambda a: a.gain_loss_percentage, reverse=True)
        return AssetStats(
            total_assets=len(assets),
            total_current_value=total_current,
            total_purchase_value=total_purchase,
            total_gain_loss=total_gain,
            total_gain_loss_percentage=(
                float(total_gain / total_purchase * 100) if total_purchase > 0 else 0.0
            ),
            category_breakdown=breakdown,
            top_performers=ranked[:PERFORMER_COUNT],
            worst_performers=list(reversed(ranked))[:PERFORMER_COUNT],
        )

    async def get_assets_needing_update(self, days: int = STALE_AFTER_DAYS) -> list[Asset]:
        """Active assets whose value has not been touched in `days`, stalest first."""
        user_id = self._require_user()
        cutoff = utcnow() - timedelta(days=days)
        assets = await self._storage.list_assets(user_id)
        stale = [a for a in assets if a.updated_at < cutoff]
        stale.sort(key=lambda a: a.updated_at)
        return stale

    async def _get_existing(self, asset_id: UUID) -> Asset:
        user_id = self._require_user()
        asset = await self._storage.get_asset(user_id, asset_id)
        if asset is None:
            raise NotFoundError("Asset not found")
        return asset
