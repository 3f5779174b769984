"""
Category Service

Categories label transactions and budgets (income/expense types) as well
as goals, loans and assets. Deletion is soft, and is refused while any
transaction still references the category.
"""

from typing import Any, Optional
from uuid import UUID

from finance_tracker.audit import AuditLogger
from finance_tracker.models.audit import AuditEventBuilder
from finance_tracker.models.finance import (
    DEFAULT_CATEGORY_COLOR,
    DEFAULT_CATEGORY_ICON,
    Category,
    CategoryType,
    CategoryWithUsage,
    TransactionFilter,
)
from finance_tracker.services.base import (
    CategoryInUseError,
    InvalidOperationError,
    UserScopedService,
    apply_changes,
)
from finance_tracker.services.storage import (
    CategoryStorageInterface,
    NotFoundError,
    TransactionStorageInterface,
)


# (name, type, color, icon)
DEFAULT_CATEGORIES: tuple[tuple[str, CategoryType, str, str], ...] = (
    # Income
    ("Salary", CategoryType.INCOME, "#10B981", "Briefcase"),
    ("Freelance", CategoryType.INCOME, "#84CC16", "Briefcase"),
    ("Investment Returns", CategoryType.INCOME, "#06B6D4", "TrendingUp"),
    ("Business Income", CategoryType.INCOME, "#8B5CF6", "Briefcase"),
    ("Rental Income", CategoryType.INCOME, "#F59E0B", "Home"),
    ("Side Hustle", CategoryType.INCOME, "#EC4899", "Zap"),
    # Expense
    ("Food & Dining", CategoryType.EXPENSE, "#EF4444", "UtensilsCrossed"),
    ("Transportation", CategoryType.EXPENSE, "#3B82F6", "Car"),
    ("Shopping", CategoryType.EXPENSE, "#8B5CF6", "ShoppingBag"),
    ("Bills & Utilities", CategoryType.EXPENSE, "#F59E0B", "Zap"),
    ("Entertainment", CategoryType.EXPENSE, "#EC4899", "Film"),
    ("Healthcare", CategoryType.EXPENSE, "#06B6D4", "Heart"),
    ("Education", CategoryType.EXPENSE, "#8B5CF6", "BookOpen"),
    ("Housing", CategoryType.EXPENSE, "#10B981", "Home"),
    ("Insurance", CategoryType.EXPENSE, "#6B7280", "Shield"),
    ("Personal Care", CategoryType.EXPENSE, "#F97316", "Heart"),
    # Goals
    ("Emergency Fund", CategoryType.GOAL, "#EF4444", "AlertTriangle"),
    ("Retirement", CategoryType.GOAL, "#10B981", "Target"),
    ("Education Fund", CategoryType.GOAL, "#3B82F6", "BookOpen"),
    ("Travel Fund", CategoryType.GOAL, "#06B6D4", "Plane"),
    ("House Down Payment", CategoryType.GOAL, "#8B5CF6", "Home"),
    ("Vehicle Fund", CategoryType.GOAL, "#F59E0B", "Car"),
    ("Wedding Fund", CategoryType.GOAL, "#EC4899", "Heart"),
    ("Business Investment", CategoryType.GOAL, "#84CC16", "Briefcase"),
    ("Investment Portfolio", CategoryType.GOAL, "#F97316", "TrendingUp"),
    # Loans
    ("Personal Loan", CategoryType.LOAN, "#EF4444", "CreditCard"),
    ("Mortgage", CategoryType.LOAN, "#10B981", "Home"),
    ("Car Loan", CategoryType.LOAN, "#3B82F6", "Car"),
    ("Credit Card Debt", CategoryType.LOAN, "#EC4899", "CreditCard"),
    ("Student Loan", CategoryType.LOAN, "#8B5CF6", "BookOpen"),
    ("Business Loan", CategoryType.LOAN, "#F59E0B", "Briefcase"),
    ("Medical Debt", CategoryType.LOAN, "#06B6D4", "Heart"),
    # Assets
    ("Real Estate", CategoryType.ASSET, "#10B981", "Home"),
    ("Vehicles", CategoryType.ASSET, "#3B82F6", "Car"),
    ("Electronics", CategoryType.ASSET, "#8B5CF6", "Smartphone"),
    ("Jewelry & Valuables", CategoryType.ASSET, "#F59E0B", "Gem"),
    ("Investment Assets", CategoryType.ASSET, "#06B6D4", "TrendingUp"),
    ("Collectibles", CategoryType.ASSET, "#EC4899", "Gift"),
    ("Business Assets", CategoryType.ASSET, "#84CC16", "Briefcase"),
)

# Which category types each feature offers in its pickers
CONTEXT_TYPES: dict[str, list[CategoryType]] = {
    "transaction": [CategoryType.INCOME, CategoryType.EXPENSE],
    "budget": [CategoryType.INCOME, CategoryType.EXPENSE],
    "goal": [CategoryType.GOAL],
    "loan": [CategoryType.LOAN],
    "asset": [CategoryType.ASSET],
}

CATEGORY_TYPE_INFO: list[dict[str, str]] = [
    {
        "value": CategoryType.INCOME.value,
        "label": "Income",
        "description": "Categories for money coming in (salary, freelance, etc.)",
    },
    {
        "value": CategoryType.EXPENSE.value,
        "label": "Expense",
        "description": "Categories for money going out (food, bills, etc.)",
    },
    {
        "value": CategoryType.GOAL.value,
        "label": "Financial Goal",
        "description": "Categories for savings goals and targets",
    },
    {
        "value": CategoryType.LOAN.value,
        "label": "Loan/Debt",
        "description": "Categories for loans and debt management",
    },
    {
        "value": CategoryType.ASSET.value,
        "label": "Asset",
        "description": "Categories for tracking valuable possessions",
    },
]


class CategoryService(UserScopedService):
    """
    CRUD for categories, usage statistics and the default category set.

    Usage counts come from the transaction store, so the service needs
    both storages.
    """

    def __init__(
        self,
        storage: CategoryStorageInterface,
        transaction_storage: TransactionStorageInterface,
        user_id: Optional[UUID],
        audit_logger: Optional[AuditLogger] = None,
    ):
        super().__init__(user_id, audit_logger)
        self._storage = storage
        self._transactions = transaction_storage

    async def get_categories(self, include_inactive: bool = False) -> list[Category]:
        """Active categories (or all of them), ordered by name."""
        user_id = self._require_user()
        return await self._storage.list_categories(user_id, active_only=not include_inactive)

    async def get_categories_by_type(self, category_type: CategoryType) -> list[Category]:
        user_id = self._require_user()
        return await self._storage.list_categories(user_id, types=[category_type])

    async def get_categories_by_context(self, context: str) -> list[Category]:
        """
        Categories offered by a feature's picker.

        Transactions and budgets use income and expense categories; goals,
        loans and assets each use their own type.
        """
        user_id = self._require_user()
        try:
            types = CONTEXT_TYPES[context]
        except KeyError:
            raise InvalidOperationError(f"Unknown category context: {context}")
        return await self._storage.list_categories(user_id, types=types)

    async def get_category(self, category_id: UUID) -> Optional[Category]:
        user_id = self._require_user()
        return await self._storage.get_category(user_id, category_id)

    async def create_category(
        self,
        name: str,
        category_type: CategoryType,
        color: str = DEFAULT_CATEGORY_COLOR,
        icon: str = DEFAULT_CATEGORY_ICON,
    ) -> Category:
        user_id = self._require_user()
        category = Category(
            user_id=user_id,
            name=name,
            type=category_type,
            color=color,
            icon=icon,
        )
        saved = await self._storage.save_category(category)

        self._logger.info("category_created", category_id=str(saved.id), type=saved.type.value)
        await self._audit.log(AuditEventBuilder.category_created(
            user_id=user_id,
            category_id=saved.id,
            name=saved.name,
            category_type=saved.type.value,
        ))
        return saved

    async def update_category(self, category_id: UUID, changes: dict[str, Any]) -> Category:
        category = await self._get_existing(category_id)
        return await self._storage.update_category(apply_changes(category, changes))

    async def delete_category(self, category_id: UUID) -> None:
        """
        Soft delete a category.

        Raises:
            CategoryInUseError: If any transaction references the category
        """
        user_id = self._require_user()
        category = await self._get_existing(category_id)

        usage_count = await self._transactions.count_by_category(user_id, category_id)
        if usage_count > 0:
            raise CategoryInUseError(category_id, usage_count)

        category.is_active = False
        await self._storage.update_category(category)
        await self._audit.log(AuditEventBuilder.category_deactivated(user_id, category_id))

    async def get_category_usage(self, category_id: UUID) -> CategoryWithUsage:
        """Number of referencing transactions and when the latest was created."""
        user_id = self._require_user()
        category = await self._get_existing(category_id)
        transactions = await self._transactions.list_transactions(
            user_id,
            TransactionFilter(category_id=category_id),
        )
        last_used = max((t.created_at for t in transactions), default=None)
        return CategoryWithUsage(
            **category.model_dump(),
            usage_count=len(transactions),
            last_used=last_used,
        )

    async def get_categories_with_usage(self) -> list[CategoryWithUsage]:
        """Every active category with usage statistics, computed in one pass."""
        user_id = self._require_user()
        categories = await self._storage.list_categories(user_id)
        transactions = await self._transactions.list_transactions(user_id)

        counts: dict[UUID, int] = {}
        last_used: dict[UUID, Any] = {}
        for t in transactions:
            counts[t.category_id] = counts.get(t.category_id, 0) + 1
            if t.category_id not in last_used or t.created_at > last_used[t.category_id]:
                last_used[t.category_id] = t.created_at

        return [
            CategoryWithUsage(
                **c.model_dump(),
                usage_count=counts.get(c.id, 0),
                last_used=last_used.get(c.id),
            )
            for c in categories
        ]

    async def create_default_categories(self) -> list[Category]:
        """Seed the default income, expense, goal, loan and asset categories."""
        user_id = self._require_user()
        categories = [
            Category(user_id=user_id, name=name, type=category_type, color=color, icon=icon)
            for name, category_type, color, icon in DEFAULT_CATEGORIES
        ]
        saved = await self._storage.save_categories(categories)

        self._logger.info("default_categories_created", count=len(saved))
        await self._audit.log(AuditEventBuilder.default_categories_created(user_id, len(saved)))
        return saved

    @staticmethod
    def get_category_types() -> list[dict[str, str]]:
        """Options for a category type dropdown."""
        return [dict(info) for info in CATEGORY_TYPE_INFO]

    async def bulk_update_categories(
        self,
        updates: list[tuple[UUID, dict[str, Any]]],
    ) -> list[Category]:
        """Apply several (category_id, changes) pairs in order."""
        return [
            await self.update_category(category_id, changes)
            for category_id, changes in updates
        ]

    async def duplicate_category(self, category_id: UUID, new_name: str) -> Category:
        """Create a new category with the same type, color and icon."""
        original = await self._get_existing(category_id)
        return await self.create_category(
            name=new_name,
            category_type=original.type,
            color=original.color,
            icon=original.icon,
        )

    async def _get_existing(self, category_id: UUID) -> Category:
        category = await self.get_category(category_id)
        if category is None:
            raise NotFoundError("Category not found")
        return category
