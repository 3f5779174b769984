"""
Tests for receipt scanning: Gemini extraction, validation and
category suggestion.

The generative model is always a StubModel.
"""

import json
from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
import tenacity

from conftest import StubModel, png_bytes, run
from finance_tracker.agents import ReceiptAgent
from finance_tracker.models.finance import Category, CategoryType, TransactionType
from finance_tracker.models.receipt import ExtractedReceipt
from finance_tracker.services.receipt import (
    InvalidReceiptImageError,
    ReceiptAnalysisError,
    ReceiptAnalyzer,
)
from finance_tracker.services.receipt.gemini_service import (
    ANALYSIS_FAILED_MESSAGE,
    extract_json_object,
    normalize_amount,
    normalize_date,
    normalize_type,
    parse_receipt_response,
)
from finance_tracker.validation import ReceiptValidator


TODAY = date(2025, 3, 15)


@pytest.fixture
def no_retry_wait(monkeypatch):
    monkeypatch.setattr(ReceiptAnalyzer._generate.retry, "wait", tenacity.wait_none())


def receipt_json(**fields):
    data = {
        "amount": 75000,
        "description": "Kopi Americano, Croissant Coklat",
        "date": "2025-03-14",
        "type": "expense",
    }
    data.update(fields)
    return json.dumps(data)


class TestResponseParsing:

    def test_json_wrapped_in_markdown(self):
        text = "```json\n" + receipt_json() + "\n```"
        assert extract_json_object(text)["amount"] == 75000

    def test_no_json_object(self):
        with pytest.raises(ValueError):
            extract_json_object("I could not read this receipt")

    def test_normalize_amount(self):
        assert normalize_amount(75000) == Decimal("75000")
        assert normalize_amount("125,000") == Decimal("125000")
        assert normalize_amount(12.5) == Decimal("12.5")
        for value in (None, 0, -5, "abc", True, "NaN"):
            assert normalize_amount(value) is None

    def test_normalize_date(self):
        assert normalize_date("2025-03-01", TODAY) == date(2025, 3, 1)
        assert normalize_date("March 5", TODAY) == date(2025, 3, 5)
        assert normalize_date(None, TODAY) == TODAY
        assert normalize_date("illegible", TODAY) == TODAY
        assert normalize_date("2025-02-30", TODAY) == TODAY

    def test_normalize_type(self):
        assert normalize_type("Income") == TransactionType.INCOME
        assert normalize_type("expense") == TransactionType.EXPENSE
        assert normalize_type("refund") == TransactionType.EXPENSE
        assert normalize_type(None) == TransactionType.EXPENSE

    def test_parse_receipt_response(self):
        text = receipt_json(amount=None, description="  Indomaret  ", date=None, type="income")
        extracted = parse_receipt_response(text, TODAY)
        assert extracted.amount is None
        assert extracted.description == "Indomaret"
        assert extracted.date == TODAY
        assert extracted.type == TransactionType.INCOME
        assert extracted.raw_response == text


class TestCheckUpload:

    @pytest.fixture
    def analyzer(self, app_settings):
        return ReceiptAnalyzer(model=StubModel(receipt_json()), app_settings=app_settings)

    def test_accepts_png(self, analyzer):
        upload = analyzer.check_upload(png_bytes(), "receipt.png", "image/png")
        assert upload.mime_type == "image/png"
        assert upload.file_size_bytes > 0

    def test_rejects_unsupported_type(self, analyzer):
        with pytest.raises(InvalidReceiptImageError, match="Unsupported file type"):
            analyzer.check_upload(b"%PDF-1.4", "receipt.pdf", "application/pdf")

    def test_rejects_empty_file(self, analyzer):
        with pytest.raises(InvalidReceiptImageError, match="empty"):
            analyzer.check_upload(b"", "receipt.png", "image/png")

    def test_rejects_oversized_file(self, analyzer):
        data = b"\x00" * (11 * 1024 * 1024)
        with pytest.raises(InvalidReceiptImageError, match="too large"):
            analyzer.check_upload(data, "receipt.jpg", "image/jpeg")

    def test_rejects_unreadable_image(self, analyzer):
        with pytest.raises(InvalidReceiptImageError, match="not a readable image"):
            analyzer.check_upload(b"definitely not a png", "receipt.png", "image/png")


class TestReceiptAnalyzer:

    def test_analyze_receipt(self, app_settings):
        model = StubModel(receipt_json())
        analyzer = ReceiptAnalyzer(model=model, app_settings=app_settings)

        extracted = run(analyzer.analyze_receipt(png_bytes(), "image/png"))

        assert extracted.amount == Decimal("75000")
        assert extracted.description == "Kopi Americano, Croissant Coklat"
        assert extracted.date == date(2025, 3, 14)
        assert extracted.type == TransactionType.EXPENSE
        prompt, image = model.calls[0]
        assert "receipt" in prompt
        assert image["mime_type"] == "image/png"

    def test_retries_then_succeeds(self, app_settings, no_retry_wait):
        class FlakyModel(StubModel):
            async def generate_content_async(self, content):
                if not self.calls:
                    self.calls.append(content)
                    raise ConnectionError("temporarily unavailable")
                return await super().generate_content_async(content)

        model = FlakyModel(receipt_json())
        analyzer = ReceiptAnalyzer(model=model, app_settings=app_settings)

        extracted = run(analyzer.analyze_receipt(png_bytes(), "image/png"))

        assert extracted.amount == Decimal("75000")
        assert len(model.calls) == 2

    def test_gives_up_after_three_attempts(self, app_settings, no_retry_wait):
        model = StubModel(error=ConnectionError("down"))
        analyzer = ReceiptAnalyzer(model=model, app_settings=app_settings)

        with pytest.raises(ReceiptAnalysisError) as exc_info:
            run(analyzer.analyze_receipt(png_bytes(), "image/png"))

        assert str(exc_info.value) == ANALYSIS_FAILED_MESSAGE
        assert len(model.calls) == 3

    def test_unparseable_response(self, app_settings):
        analyzer = ReceiptAnalyzer(model=StubModel("Sorry, this is blurry."), app_settings=app_settings)
        with pytest.raises(ReceiptAnalysisError):
            run(analyzer.analyze_receipt(png_bytes(), "image/png"))


class TestReceiptValidator:

    @pytest.fixture
    def validator(self, transaction_storage, user_id, app_settings):
        return ReceiptValidator(transaction_storage, user_id, app_settings)

    def test_clean_receipt(self, validator):
        extracted = ExtractedReceipt(amount=Decimal("75000"), description="Kopi", date=date.today())
        result = run(validator.validate(extracted))
        assert result.is_valid
        assert result.issues == []
        assert validator.get_user_friendly_summary(result).startswith("✅")

    def test_missing_amount_is_an_error(self, validator):
        result = run(validator.validate(ExtractedReceipt(description="Kopi", date=date.today())))
        assert not result.schema_valid
        assert not result.can_proceed_with_review
        assert result.error_count == 1
        assert result.issues[0].field == "amount"
        summary = validator.get_user_friendly_summary(result)
        assert "❌" in summary
        assert "enter the details manually" in summary

    def test_missing_description_and_date_are_warnings(self, validator):
        result = run(validator.validate(ExtractedReceipt(amount=Decimal("5000"))))
        assert result.can_proceed_with_review
        assert not result.has_errors
        assert {issue.field for issue in result.issues} == {"description", "date"}
        assert len(result.warnings) == 2

    def test_future_and_old_dates(self, validator):
        future = ExtractedReceipt(amount=Decimal("5000"), description="x",
                                  date=date.today() + timedelta(days=5))
        old = ExtractedReceipt(amount=Decimal("5000"), description="x",
                               date=date.today() - timedelta(days=800))
        future_issues = run(validator.validate(future)).issues
        old_issues = run(validator.validate(old)).issues
        assert [i.issue_type for i in future_issues] == ["future_date"]
        assert [i.issue_type for i in old_issues] == ["suspicious_date"]

    def test_tomorrow_within_tolerance(self, validator):
        extracted = ExtractedReceipt(amount=Decimal("5000"), description="x",
                                     date=date.today() + timedelta(days=1))
        assert run(validator.validate(extracted)).issues == []

    def test_implausible_amounts(self, validator):
        high = ExtractedReceipt(amount=Decimal("250000000"), description="x", date=date.today())
        low = ExtractedReceipt(amount=Decimal("0.5"), description="x", date=date.today())
        high_result = run(validator.validate(high))
        assert high_result.is_valid
        assert "Rp 250.000.000" in high_result.warnings[0]
        assert run(validator.validate(low)).issues[0].issue_type == "suspicious_value"

    def test_possible_duplicate(self, validator, record, food):
        record(food, 75000, on=date.today())
        same = ExtractedReceipt(amount=Decimal("75000"), description="Kopi", date=date.today())
        income = same.model_copy(update={"type": TransactionType.INCOME})
        other_amount = same.model_copy(update={"amount": Decimal("80000")})

        duplicate = run(validator.validate(same)).issues
        assert [i.issue_type for i in duplicate] == ["potential_duplicate"]
        assert run(validator.validate(income)).issues == []
        assert run(validator.validate(other_amount)).issues == []
        assert run(validator.validate(same, check_duplicates=False)).issues == []

    def test_duplicate_check_skipped_without_storage(self, app_settings, record, food):
        record(food, 75000, on=date.today())
        validator = ReceiptValidator(app_settings=app_settings)
        extracted = ExtractedReceipt(amount=Decimal("75000"), description="Kopi", date=date.today())
        assert run(validator.validate(extracted)).issues == []


class TestReceiptAgent:

    @pytest.fixture
    def categories(self):
        user_id = uuid4()
        return [
            Category(user_id=user_id, name="Shopping", type=CategoryType.EXPENSE),
            Category(user_id=user_id, name="Food & Dining", type=CategoryType.EXPENSE),
            Category(user_id=user_id, name="Salary", type=CategoryType.INCOME),
        ]

    def test_model_suggestion(self, categories):
        model = StubModel('{"category": "food & dining", "confidence": 0.9, "reasoning": "Coffee shop"}')
        extracted = ExtractedReceipt(amount=Decimal("75000"), description="Kopi Americano")

        suggestion = run(ReceiptAgent(model=model).suggest_category(extracted, categories))

        assert suggestion.category_name == "Food & Dining"
        assert suggestion.confidence == 0.9
        assert "Salary" not in model.calls[0]

    def test_unknown_model_category_falls_back_to_keywords(self, categories):
        model = StubModel('{"category": "Groceries", "confidence": 0.9, "reasoning": "?"}')
        extracted = ExtractedReceipt(amount=Decimal("75000"), description="Indomaret Point")

        suggestion = run(ReceiptAgent(model=model).suggest_category(extracted, categories))

        assert suggestion.category_name == "Shopping"
        assert suggestion.confidence == 0.6

    def test_model_failure_falls_back_to_keywords(self, categories):
        model = StubModel(error=RuntimeError("quota"))
        extracted = ExtractedReceipt(amount=Decimal("30000"), description="Nasi Goreng Ayam")

        suggestion = run(ReceiptAgent(model=model).suggest_category(extracted, categories))

        assert suggestion.category_name == "Food & Dining"

    def test_first_category_when_nothing_matches(self, categories):
        model = StubModel("no idea")
        extracted = ExtractedReceipt(amount=Decimal("30000"), description="XJ-42")

        suggestion = run(ReceiptAgent(model=model).suggest_category(extracted, categories))

        assert suggestion.category_name == "Shopping"
        assert suggestion.confidence == 0.3

    def test_income_receipt_uses_income_categories(self, categories):
        extracted = ExtractedReceipt(amount=Decimal("30000"), type=TransactionType.INCOME)
        suggestion = run(ReceiptAgent(model=StubModel("{}")).suggest_category(extracted, categories))
        assert suggestion.category_name == "Salary"

    def test_no_candidates(self, categories):
        expense_only = [c for c in categories if c.type == CategoryType.EXPENSE]
        extracted = ExtractedReceipt(amount=Decimal("30000"), type=TransactionType.INCOME)
        assert run(ReceiptAgent(model=StubModel("{}")).suggest_category(extracted, expense_only)) is None
