"""
Tests for the domain services against in-memory storage.
"""

from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from conftest import run
from finance_tracker.analytics import shift_months
from finance_tracker.models.audit import AuditEventType
from finance_tracker.models.finance import (
    BalanceOperation,
    CategoryType,
    TransactionFilter,
    TransactionType,
    Wallet,
    WalletType,
)
from finance_tracker.services.base import (
    AuthenticationError,
    CategoryInUseError,
    InvalidOperationError,
    apply_changes,
)
from finance_tracker.services.budget_service import current_month
from finance_tracker.services.category_service import DEFAULT_CATEGORIES, CategoryService
from finance_tracker.services.storage import (
    DuplicateError,
    InMemoryTransactionStorage,
    InMemoryWalletStorage,
    NotFoundError,
    StorageError,
)
from finance_tracker.services.transaction_service import (
    TransactionService,
    apply_operation,
    revert_operation,
)
from finance_tracker.services.wallet_service import WalletService


def event_types(audit_storage):
    return [e.event_type for e in run(audit_storage.get_recent_events())]


class FailingUpdateWalletStorage(InMemoryWalletStorage):
    """Wallet storage whose writes fail once armed, for all wallets or one."""

    def __init__(self):
        super().__init__()
        self.fail_updates = False
        self.fail_wallet_id = None

    async def update_wallet(self, wallet):
        if self.fail_updates or wallet.id == self.fail_wallet_id:
            raise StorageError("Sheets unavailable")
        return await super().update_wallet(wallet)


class FailingDeleteTransactionStorage(InMemoryTransactionStorage):

    async def delete_transaction(self, user_id, transaction_id):
        raise StorageError("Sheets unavailable")


class TestApplyChanges:

    def test_returns_revalidated_copy(self):
        wallet = Wallet(user_id=uuid4(), name="BCA", account_number="1", type=WalletType.BANK)
        updated = apply_changes(wallet, {"name": "BNI"})
        assert updated.name == "BNI"
        assert wallet.name == "BCA"

    def test_rejects_immutable_fields(self):
        wallet = Wallet(user_id=uuid4(), name="BCA", account_number="1", type=WalletType.BANK)
        with pytest.raises(InvalidOperationError):
            apply_changes(wallet, {"user_id": uuid4()})

    def test_rejects_unknown_fields(self):
        wallet = Wallet(user_id=uuid4(), name="BCA", account_number="1", type=WalletType.BANK)
        with pytest.raises(InvalidOperationError):
            apply_changes(wallet, {"nickname": "main"})

    def test_invalid_values_fail_validation(self):
        wallet = Wallet(user_id=uuid4(), name="BCA", account_number="1", type=WalletType.BANK)
        with pytest.raises(ValueError):
            apply_changes(wallet, {"color": "red"})


class TestWalletService:

    def test_requires_user(self, wallet_storage):
        service = WalletService(wallet_storage, None)
        with pytest.raises(AuthenticationError):
            run(service.get_wallets())

    def test_create_and_list(self, wallet_service, wallet, audit_storage):
        wallets = run(wallet_service.get_wallets())
        assert [w.id for w in wallets] == [wallet.id]
        assert AuditEventType.WALLET_CREATED in event_types(audit_storage)

    def test_wallets_are_user_scoped(self, wallet_storage, wallet):
        other = WalletService(wallet_storage, uuid4())
        assert run(other.get_wallets()) == []
        assert run(other.get_wallet(wallet.id)) is None

    def test_update_balance(self, wallet_service, wallet):
        updated = run(wallet_service.update_balance(
            wallet.id, Decimal("250000"), BalanceOperation.SUBTRACT
        ))
        assert updated.balance == Decimal("750000")
        updated = run(wallet_service.update_balance(
            wallet.id, Decimal("50000"), BalanceOperation.ADD
        ))
        assert updated.balance == Decimal("800000")

    def test_balance_may_go_negative(self, wallet_service, wallet):
        updated = run(wallet_service.update_balance(
            wallet.id, Decimal("1500000"), BalanceOperation.SUBTRACT
        ))
        assert updated.balance == Decimal("-500000")

    def test_update_balance_missing_wallet(self, wallet_service):
        with pytest.raises(NotFoundError):
            run(wallet_service.update_balance(uuid4(), Decimal("1"), BalanceOperation.ADD))

    def test_delete_is_soft(self, wallet_service, wallet):
        run(wallet_service.delete_wallet(wallet.id))
        assert run(wallet_service.get_wallets()) == []
        inactive = run(wallet_service.get_wallets(include_inactive=True))
        assert [w.is_active for w in inactive] == [False]

    def test_total_balance_counts_active_wallets(self, wallet_service, wallet):
        second = run(wallet_service.create_wallet(
            name="GoPay",
            account_number="0812",
            wallet_type=WalletType.EWALLET,
            balance=Decimal("200000"),
        ))
        assert run(wallet_service.get_total_balance()) == Decimal("1200000")
        run(wallet_service.delete_wallet(second.id))
        assert run(wallet_service.get_total_balance()) == Decimal("1000000")

    def test_update_wallet(self, wallet_service, wallet, audit_storage):
        updated = run(wallet_service.update_wallet(wallet.id, {"name": "BCA Savings"}))
        assert updated.name == "BCA Savings"
        assert run(wallet_service.get_wallet(wallet.id)).name == "BCA Savings"
        [event] = run(audit_storage.get_events_by_entity("wallet", wallet.id))[1:]
        assert event.event_type == AuditEventType.WALLET_UPDATED
        assert event.details == {"changes": {"name": "BCA Savings"}}


class TestCategoryService:

    def test_default_categories(self, category_service, audit_storage):
        created = run(category_service.create_default_categories())
        assert len(created) == len(DEFAULT_CATEGORIES) == 39
        types = {c.type for c in created}
        assert types == set(CategoryType)
        assert AuditEventType.DEFAULT_CATEGORIES_CREATED in event_types(audit_storage)

    def test_by_type_and_context(self, category_service):
        run(category_service.create_default_categories())
        income = run(category_service.get_categories_by_type(CategoryType.INCOME))
        assert len(income) == 6
        for_transactions = run(category_service.get_categories_by_context("transaction"))
        assert {c.type for c in for_transactions} == {CategoryType.INCOME, CategoryType.EXPENSE}
        with pytest.raises(InvalidOperationError):
            run(category_service.get_categories_by_context("unknown"))

    def test_categories_sorted_by_name(self, category_service, transport, food):
        names = [c.name for c in run(category_service.get_categories())]
        assert names == ["Food & Dining", "Transportation"]

    def test_delete_unused_category(self, category_service, food):
        run(category_service.delete_category(food.id))
        assert run(category_service.get_categories()) == []

    def test_delete_in_use_category_refused(self, category_service, food, record):
        record(food, 25000)
        record(food, 30000)
        with pytest.raises(CategoryInUseError) as excinfo:
            run(category_service.delete_category(food.id))
        assert excinfo.value.usage_count == 2
        assert run(category_service.get_category(food.id)).is_active

    def test_usage(self, category_service, food, transport, record):
        record(food, 25000)
        usage = run(category_service.get_category_usage(food.id))
        assert usage.usage_count == 1
        assert usage.last_used is not None

        by_name = {c.name: c for c in run(category_service.get_categories_with_usage())}
        assert by_name["Food & Dining"].usage_count == 1
        assert by_name["Transportation"].usage_count == 0
        assert by_name["Transportation"].last_used is None

    def test_duplicate_and_bulk_update(self, category_service, food):
        copy = run(category_service.duplicate_category(food.id, "Groceries"))
        assert copy.type == food.type and copy.color == food.color
        updated = run(category_service.bulk_update_categories([
            (food.id, {"color": "#000000"}),
            (copy.id, {"icon": "ShoppingCart"}),
        ]))
        assert updated[0].color == "#000000"
        assert updated[1].icon == "ShoppingCart"

    def test_category_type_options(self):
        values = [info["value"] for info in CategoryService.get_category_types()]
        assert values == ["income", "expense", "goal", "loan", "asset"]


class TestTransactionService:

    def test_operations(self):
        assert apply_operation(TransactionType.INCOME) == BalanceOperation.ADD
        assert apply_operation(TransactionType.EXPENSE) == BalanceOperation.SUBTRACT
        assert revert_operation(TransactionType.INCOME) == BalanceOperation.SUBTRACT
        assert revert_operation(TransactionType.EXPENSE) == BalanceOperation.ADD

    def test_expense_reduces_balance(self, wallet_service, wallet, food, record):
        record(food, 50000)
        assert run(wallet_service.get_wallet(wallet.id)).balance == Decimal("950000")

    def test_income_increases_balance(self, wallet_service, wallet, salary, record):
        record(salary, 5000000, TransactionType.INCOME)
        assert run(wallet_service.get_wallet(wallet.id)).balance == Decimal("6000000")

    def test_recorded_transaction_is_audited(self, food, record, audit_storage):
        record(food, 50000)
        types = event_types(audit_storage)
        assert AuditEventType.TRANSACTION_RECORDED in types
        assert AuditEventType.BALANCE_ADJUSTED in types

    def test_type_must_match_category(self, transaction_service, wallet, salary):
        with pytest.raises(InvalidOperationError):
            run(transaction_service.create_transaction(
                wallet_id=wallet.id,
                category_id=salary.id,
                amount=Decimal("1000"),
                transaction_type=TransactionType.EXPENSE,
                description="Mismatch",
            ))

    def test_missing_wallet_or_category(self, transaction_service, wallet, food):
        with pytest.raises(NotFoundError):
            run(transaction_service.create_transaction(
                wallet_id=uuid4(),
                category_id=food.id,
                amount=Decimal("1000"),
                transaction_type=TransactionType.EXPENSE,
                description="No wallet",
            ))
        with pytest.raises(NotFoundError):
            run(transaction_service.create_transaction(
                wallet_id=wallet.id,
                category_id=uuid4(),
                amount=Decimal("1000"),
                transaction_type=TransactionType.EXPENSE,
                description="No category",
            ))

    def test_details_joined(self, transaction_service, wallet, food, record):
        saved = record(food, 50000, description="Nasi goreng")
        details = run(transaction_service.get_transaction(saved.id))
        assert details.wallet.name == "BCA"
        assert details.category.name == "Food & Dining"

    def test_filtered_listing(self, transaction_service, food, salary, record):
        record(food, 10000, on=date(2025, 1, 5))
        record(food, 20000, on=date(2025, 2, 5))
        record(salary, 30000, TransactionType.INCOME, on=date(2025, 2, 6))

        expenses = run(transaction_service.get_transactions_filtered(
            TransactionFilter(type=TransactionType.EXPENSE)
        ))
        assert [t.amount for t in expenses] == [Decimal("20000"), Decimal("10000")]

        february = run(transaction_service.get_transactions_filtered(
            TransactionFilter(date_from=date(2025, 2, 1), date_to=date(2025, 2, 28))
        ))
        assert len(february) == 2

    def test_update_amount_moves_balance(self, transaction_service, wallet_service, wallet, food, record):
        saved = record(food, 50000)
        run(transaction_service.update_transaction(saved.id, {"amount": Decimal("80000")}))
        assert run(wallet_service.get_wallet(wallet.id)).balance == Decimal("920000")

    def test_update_wallet_moves_effect(self, transaction_service, wallet_service, wallet, food, record):
        other = run(wallet_service.create_wallet(
            name="GoPay",
            account_number="0812",
            wallet_type=WalletType.EWALLET,
            balance=Decimal("100000"),
        ))
        saved = record(food, 40000)
        run(transaction_service.update_transaction(saved.id, {"wallet_id": other.id}))
        assert run(wallet_service.get_wallet(wallet.id)).balance == Decimal("1000000")
        assert run(wallet_service.get_wallet(other.id)).balance == Decimal("60000")

    def test_update_type_flips_balance_effect(self, transaction_service, wallet_service, wallet, food, salary, record):
        saved = record(food, 50000)
        updated = run(transaction_service.update_transaction(saved.id, {
            "type": TransactionType.INCOME,
            "category_id": salary.id,
        }))
        assert updated.type == TransactionType.INCOME
        assert run(wallet_service.get_wallet(wallet.id)).balance == Decimal("1050000")

    def test_update_rejects_mismatched_category(self, transaction_service, wallet_service, wallet, food, salary, record):
        saved = record(food, 40000)
        with pytest.raises(InvalidOperationError):
            run(transaction_service.update_transaction(saved.id, {"category_id": salary.id}))
        assert run(wallet_service.get_wallet(wallet.id)).balance == Decimal("960000")

    def test_delete_reverts_balance(self, transaction_service, wallet_service, wallet, food, record, audit_storage):
        saved = record(food, 50000)
        run(transaction_service.delete_transaction(saved.id))
        assert run(wallet_service.get_wallet(wallet.id)).balance == Decimal("1000000")
        assert run(transaction_service.get_transactions()) == []
        assert AuditEventType.TRANSACTION_DELETED in event_types(audit_storage)

    def test_delete_missing(self, transaction_service):
        with pytest.raises(NotFoundError):
            run(transaction_service.delete_transaction(uuid4()))

    def test_failed_balance_update_rolls_back_insert(
        self, user_id, category_service, transaction_storage, audit_logger, audit_storage, food
    ):
        wallet_storage = FailingUpdateWalletStorage()
        wallets = WalletService(wallet_storage, user_id, audit_logger)
        transactions = TransactionService(
            transaction_storage, wallets, category_service, user_id, audit_logger
        )
        wallet = run(wallets.create_wallet(
            name="BCA",
            account_number="1",
            wallet_type=WalletType.BANK,
            balance=Decimal("1000000"),
        ))
        wallet_storage.fail_updates = True

        with pytest.raises(StorageError):
            run(transactions.create_transaction(
                wallet_id=wallet.id,
                category_id=food.id,
                amount=Decimal("50000"),
                transaction_type=TransactionType.EXPENSE,
                description="Lunch",
            ))

        assert run(transaction_storage.list_transactions(user_id)) == []
        assert run(wallets.get_wallet(wallet.id)).balance == Decimal("1000000")
        assert AuditEventType.TRANSACTION_ROLLED_BACK in event_types(audit_storage)

    def test_failed_edit_restores_original(
        self, user_id, category_service, transaction_storage, audit_logger, audit_storage, food
    ):
        wallet_storage = FailingUpdateWalletStorage()
        wallets = WalletService(wallet_storage, user_id, audit_logger)
        transactions = TransactionService(
            transaction_storage, wallets, category_service, user_id, audit_logger
        )
        bca = run(wallets.create_wallet(
            name="BCA", account_number="1", wallet_type=WalletType.BANK, balance=Decimal("1000"),
        ))
        gopay = run(wallets.create_wallet(
            name="GoPay", account_number="2", wallet_type=WalletType.EWALLET, balance=Decimal("500"),
        ))
        saved = run(transactions.create_transaction(
            wallet_id=bca.id,
            category_id=food.id,
            amount=Decimal("100"),
            transaction_type=TransactionType.EXPENSE,
            description="Lunch",
        ))
        wallet_storage.fail_wallet_id = gopay.id

        with pytest.raises(StorageError):
            run(transactions.update_transaction(saved.id, {"wallet_id": gopay.id}))

        row = run(transaction_storage.get_transaction(user_id, saved.id))
        assert row.wallet_id == bca.id
        assert row.amount == Decimal("100")
        assert run(wallets.get_wallet(bca.id)).balance == Decimal("900")
        assert run(wallets.get_wallet(gopay.id)).balance == Decimal("500")
        assert AuditEventType.TRANSACTION_ROLLED_BACK in event_types(audit_storage)

    def test_failed_delete_reapplies_balance(
        self, user_id, wallet_service, category_service, audit_logger, wallet, food
    ):
        storage = FailingDeleteTransactionStorage()
        transactions = TransactionService(
            storage, wallet_service, category_service, user_id, audit_logger
        )
        saved = run(transactions.create_transaction(
            wallet_id=wallet.id,
            category_id=food.id,
            amount=Decimal("100"),
            transaction_type=TransactionType.EXPENSE,
            description="Lunch",
        ))

        with pytest.raises(StorageError):
            run(transactions.delete_transaction(saved.id))

        assert run(wallet_service.get_wallet(wallet.id)).balance == Decimal("999900")
        assert run(storage.get_transaction(user_id, saved.id)) is not None

    def test_monthly_stats(self, transaction_service, food, salary, record):
        record(salary, 3000000, TransactionType.INCOME, on=date(2025, 3, 1))
        record(food, 500000, on=date(2025, 3, 31))
        record(food, 100000, on=date(2025, 4, 1))

        stats = run(transaction_service.get_transaction_stats(month=3, year=2025))
        assert stats.total_income == Decimal("3000000")
        assert stats.total_expenses == Decimal("500000")
        assert stats.net_amount == Decimal("2500000")
        assert stats.transaction_count == 2

        overall = run(transaction_service.get_transaction_stats())
        assert overall.transaction_count == 3

    def test_monthly_data(self, transaction_service, food, record):
        today = date.today()
        record(food, 10000, on=today)
        record(food, 20000, on=shift_months(today, -1))
        record(food, 30000, on=shift_months(today, -12))

        points = run(transaction_service.get_monthly_data(months=6))
        assert len(points) == 2
        assert points[0].month < points[1].month
        assert points[-1].expense == Decimal("10000")


class TestBudgetService:

    def test_spent_counts_expenses_in_month(self, budget_service, food, transport, record):
        month = current_month()
        today = date.today()
        record(food, 300000, on=today)
        record(food, 200000, on=today)
        record(transport, 999000, on=today)
        record(food, 700000, on=shift_months(today, -1))

        assert run(budget_service.get_spent_amount(food.id, month)) == Decimal("500000")

    def test_get_budgets_with_spent(self, budget_service, food, record, audit_storage):
        month = current_month()
        run(budget_service.create_budget(food.id, Decimal("1000000"), month))
        record(food, 900000, on=date.today())

        [budget] = run(budget_service.get_budgets(month))
        assert budget.category.name == "Food & Dining"
        assert budget.spent == Decimal("900000")
        assert budget.utilization_rate == pytest.approx(90.0)
        assert AuditEventType.BUDGET_SET in event_types(audit_storage)

    def test_one_budget_per_category_and_month(self, budget_service, food):
        run(budget_service.create_budget(food.id, Decimal("1000000"), "2025-03"))
        with pytest.raises(DuplicateError):
            run(budget_service.create_budget(food.id, Decimal("2000000"), "2025-03"))
        run(budget_service.create_budget(food.id, Decimal("2000000"), "2025-04"))

    def test_budget_needs_existing_category(self, budget_service):
        with pytest.raises(NotFoundError):
            run(budget_service.create_budget(uuid4(), Decimal("1000"), "2025-03"))

    def test_update_month_resets_year(self, budget_service, food, audit_storage):
        budget = run(budget_service.create_budget(food.id, Decimal("1000"), "2024-12"))
        updated = run(budget_service.update_budget(budget.id, {"month": "2025-01"}))
        assert updated.year == 2025
        events = run(audit_storage.get_events_by_entity("budget", budget.id))
        assert [e.event_type for e in events] == [
            AuditEventType.BUDGET_SET,
            AuditEventType.BUDGET_UPDATED,
        ]

    def test_delete(self, budget_service, food):
        budget = run(budget_service.create_budget(food.id, Decimal("1000"), "2025-03"))
        run(budget_service.delete_budget(budget.id))
        assert run(budget_service.get_budget(budget.id)) is None
        with pytest.raises(NotFoundError):
            run(budget_service.delete_budget(budget.id))

    def test_overview(self, budget_service, food, transport, record):
        month = current_month()
        today = date.today()
        run(budget_service.create_budget(food.id, Decimal("1000000"), month))
        run(budget_service.create_budget(transport.id, Decimal("500000"), month))
        record(food, 1200000, on=today)
        record(transport, 100000, on=today)

        overview = run(budget_service.get_budget_overview())
        assert overview.total_budget == Decimal("1500000")
        assert overview.total_spent == Decimal("1300000")
        assert overview.over_budget_count == 1
        assert overview.on_track_count == 1

    def test_filter_by_year(self, budget_service, food):
        run(budget_service.create_budget(food.id, Decimal("1000"), "2024-12"))
        run(budget_service.create_budget(food.id, Decimal("1000"), "2025-01"))
        assert len(run(budget_service.get_budgets(year=2025))) == 1
        assert len(run(budget_service.get_budgets())) == 2
