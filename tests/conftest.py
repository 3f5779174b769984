"""
Shared fixtures.

Every service runs against the in-memory storage backends, and generative
models are replaced by StubModel, so no test touches the network.
"""

import asyncio
from decimal import Decimal
from io import BytesIO
from types import SimpleNamespace
from uuid import uuid4

import pytest
from PIL import Image

from finance_tracker.audit import AuditLogger
from finance_tracker.config import AppSettings
from finance_tracker.models.finance import CategoryType, TransactionType, WalletType
from finance_tracker.services.asset_service import AssetService
from finance_tracker.services.budget_service import BudgetService
from finance_tracker.services.category_service import CategoryService
from finance_tracker.services.chat_service import ChatService
from finance_tracker.services.goal_loan_service import GoalLoanService
from finance_tracker.services.storage import (
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


def run(coro):
    return asyncio.run(coro)


class StubModel:
    """
    Stands in for a Gemini GenerativeModel.

    Returns the queued responses in order (the last one repeats), or
    raises `error` on every call.
    """

    def __init__(self, *responses, error=None):
        self.responses = list(responses)
        self.error = error
        self.calls = []

    async def generate_content_async(self, content):
        self.calls.append(content)
        if self.error is not None:
            raise self.error
        text = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        return SimpleNamespace(text=text)


def png_bytes(size=(20, 20)) -> bytes:
    buffer = BytesIO()
    Image.new("RGB", size, color="white").save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def user_id():
    return uuid4()


@pytest.fixture
def app_settings():
    return AppSettings(
        currency_code="IDR",
        currency_symbol="Rp",
        max_upload_size_mb=10,
        supported_image_formats="jpg,jpeg,png,webp",
        budget_warning_ratio=0.8,
        dashboard_trend_months=6,
        small_transaction_threshold=50000.0,
        max_receipt_amount=100000000.0,
        future_date_tolerance_days=1,
    )


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(audit_storage)


@pytest.fixture
def wallet_storage():
    return InMemoryWalletStorage()


@pytest.fixture
def category_storage():
    return InMemoryCategoryStorage()


@pytest.fixture
def transaction_storage():
    return InMemoryTransactionStorage()


@pytest.fixture
def budget_storage():
    return InMemoryBudgetStorage()


@pytest.fixture
def goal_loan_storage():
    return InMemoryGoalLoanStorage()


@pytest.fixture
def asset_storage():
    return InMemoryAssetStorage()


@pytest.fixture
def chat_storage():
    return InMemoryChatStorage()


@pytest.fixture
def wallet_service(wallet_storage, user_id, audit_logger):
    return WalletService(wallet_storage, user_id, audit_logger)


@pytest.fixture
def category_service(category_storage, transaction_storage, user_id, audit_logger):
    return CategoryService(category_storage, transaction_storage, user_id, audit_logger)


@pytest.fixture
def transaction_service(
    transaction_storage, wallet_service, category_service, user_id, audit_logger
):
    return TransactionService(
        transaction_storage, wallet_service, category_service, user_id, audit_logger
    )


@pytest.fixture
def budget_service(budget_storage, transaction_storage, category_service, user_id, audit_logger):
    return BudgetService(
        budget_storage,
        transaction_storage,
        category_service,
        user_id,
        audit_logger,
        warning_ratio=0.8,
    )


@pytest.fixture
def goal_loan_service(goal_loan_storage, wallet_service, user_id, audit_logger):
    return GoalLoanService(goal_loan_storage, wallet_service, user_id, audit_logger)


@pytest.fixture
def asset_service(asset_storage, user_id, audit_logger):
    return AssetService(asset_storage, user_id, audit_logger)


@pytest.fixture
def chat_service(chat_storage, user_id, audit_logger):
    return ChatService(chat_storage, user_id, audit_logger)


@pytest.fixture
def wallet(wallet_service):
    return run(wallet_service.create_wallet(
        name="BCA",
        account_number="1234567890",
        wallet_type=WalletType.BANK,
        balance=Decimal("1000000"),
    ))


@pytest.fixture
def food(category_service):
    return run(category_service.create_category("Food & Dining", CategoryType.EXPENSE))


@pytest.fixture
def transport(category_service):
    return run(category_service.create_category("Transportation", CategoryType.EXPENSE))


@pytest.fixture
def salary(category_service):
    return run(category_service.create_category("Salary", CategoryType.INCOME))


@pytest.fixture
def record(transaction_service, wallet):
    """Shortcut for recording a transaction in the default wallet."""

    def _record(category, amount, transaction_type=TransactionType.EXPENSE,
                description="Test transaction", on=None, wallet_id=None):
        return run(transaction_service.create_transaction(
            wallet_id=wallet_id or wallet.id,
            category_id=category.id,
            amount=Decimal(str(amount)),
            transaction_type=transaction_type,
            description=description,
            transaction_date=on,
        ))

    return _record
