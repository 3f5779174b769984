"""
Tests for the Google Sheets backend against an in-process fake worksheet.

Only the retry behaviour of the write paths is covered here; reads and
filtering share their logic with the in-memory storage.
"""

from decimal import Decimal
from types import SimpleNamespace
from uuid import uuid4

import pytest
import tenacity

from conftest import run
from finance_tracker.models.audit import AuditEventBuilder
from finance_tracker.models.finance import Wallet, WalletType
from finance_tracker.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsWalletStorage,
    StorageError,
)
from finance_tracker.services.storage.google_sheets import SheetTable


class FakeWorksheet:
    """Holds rows in memory; each write method fails `failures[name]` times first."""

    def __init__(self, failures=None):
        self.rows = []
        self.failures = dict(failures or {})
        self.calls = {}

    def _attempt(self, name):
        self.calls[name] = self.calls.get(name, 0) + 1
        if self.failures.get(name, 0) > 0:
            self.failures[name] -= 1
            raise ConnectionResetError(f"{name} interrupted")

    def get_all_values(self):
        return [list(row) for row in self.rows]

    def append_row(self, row, value_input_option=None):
        self._attempt("append_row")
        self.rows.append(list(row))

    def update(self, range_name, values, value_input_option=None):
        self._attempt("update")
        self.rows[int(range_name[1:]) - 1] = list(values[0])

    def delete_rows(self, index):
        self._attempt("delete_rows")
        del self.rows[index - 1]


class FakeClient:

    def __init__(self, worksheet):
        self.worksheet = worksheet
        self.settings = SimpleNamespace(
            wallets_sheet_name="Wallets",
            audit_sheet_name="AuditLog",
        )

    def get_worksheet(self, title, columns, rows=1000):
        if not self.worksheet.rows:
            self.worksheet.rows.append(list(columns))
        return self.worksheet


@pytest.fixture
def no_retry_wait(monkeypatch):
    for method in (
        SheetTable.append,
        SheetTable.replace,
        SheetTable.remove,
        GoogleSheetsAuditStorage._append_row,
    ):
        monkeypatch.setattr(method.retry, "wait", tenacity.wait_none())


def make_wallet():
    return Wallet(
        user_id=uuid4(),
        name="BCA",
        account_number="1234567890",
        type=WalletType.BANK,
        balance=Decimal("1000000"),
    )


class TestSheetWrites:

    def test_balance_update_survives_a_transient_error(self, no_retry_wait):
        worksheet = FakeWorksheet()
        storage = GoogleSheetsWalletStorage(FakeClient(worksheet))
        wallet = run(storage.save_wallet(make_wallet()))
        worksheet.failures["update"] = 1

        wallet.balance = Decimal("950000")
        run(storage.update_wallet(wallet))

        assert worksheet.calls["update"] == 2
        stored = run(storage.get_wallet(wallet.user_id, wallet.id))
        assert stored.balance == Decimal("950000")

    def test_update_gives_up_after_three_attempts(self, no_retry_wait):
        worksheet = FakeWorksheet()
        storage = GoogleSheetsWalletStorage(FakeClient(worksheet))
        wallet = run(storage.save_wallet(make_wallet()))
        worksheet.failures["update"] = 5

        with pytest.raises(StorageError):
            run(storage.update_wallet(wallet))
        assert worksheet.calls["update"] == 3

    def test_remove_retries(self, no_retry_wait):
        worksheet = FakeWorksheet({"delete_rows": 2})
        table = SheetTable(FakeClient(worksheet), "Wallets", Wallet)
        wallet = make_wallet()
        table.append(wallet)

        assert table.remove(wallet.id)
        assert worksheet.calls["delete_rows"] == 3
        assert table.read_all() == []

    def test_append_retries(self, no_retry_wait):
        worksheet = FakeWorksheet({"append_row": 1})
        table = SheetTable(FakeClient(worksheet), "Wallets", Wallet)
        wallet = make_wallet()

        table.append(wallet)

        assert [w.id for w in table.read_all()] == [wallet.id]


class TestAuditSheet:

    def event(self):
        return AuditEventBuilder.system_error(error_type="test", error_message="boom")

    def test_append_retries_then_succeeds(self, no_retry_wait):
        worksheet = FakeWorksheet()
        storage = GoogleSheetsAuditStorage(FakeClient(worksheet))
        worksheet.failures["append_row"] = 2

        assert run(storage.append_event(self.event())) is True
        assert worksheet.calls["append_row"] == 3
        assert len(run(storage.get_recent_events())) == 1

    def test_append_reports_failure_after_retries(self, no_retry_wait):
        worksheet = FakeWorksheet()
        storage = GoogleSheetsAuditStorage(FakeClient(worksheet))
        worksheet.failures["append_row"] = 10

        assert run(storage.append_event(self.event())) is False
        assert worksheet.calls["append_row"] == 3
