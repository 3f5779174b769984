"""
Receipt Analysis Service using Gemini

A single multimodal call turns a receipt photo into a proposed
transaction: amount, description, date and income/expense type.

This service handles:
1. Checking the upload (type, size, decodable image)
2. Sending the image and extraction prompt to Gemini
3. Parsing the JSON object out of the response
4. Normalizing the fields into an ExtractedReceipt

CRITICAL: The result is a PROPOSAL. Nothing is saved here; the user
reviews the extracted fields, picks a wallet and category, and confirms.
"""

import json
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from io import BytesIO
from typing import Any, Optional

import google.generativeai as genai
import structlog
from dateutil import parser as date_parser
from PIL import Image, UnidentifiedImageError
from tenacity import retry, stop_after_attempt, wait_exponential

from finance_tracker.config import AppSettings, GeminiSettings, get_settings
from finance_tracker.models.finance import TransactionType
from finance_tracker.models.receipt import (
    ALLOWED_IMAGE_MIME_TYPES,
    ExtractedReceipt,
    ReceiptUpload,
)


ANALYSIS_FAILED_MESSAGE = "AI analysis failed. Please try again or enter manually."

# File extension -> MIME type for the configured supported formats
FORMAT_MIME_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
}

RECEIPT_PROMPT = """You are an expert financial assistant specializing in receipt analysis.
Analyze the provided receipt image and extract the following information.
Return the data ONLY as a valid JSON object with the specified keys.

1. amount: The final total amount of the transaction. It should be a number without any currency symbols or commas.
2. description: Identify all the individual items purchased from the receipt. Format them as a single, comma-separated string (e.g., "Item 1, Item 2, Item 3"). If you cannot identify specific items, use the merchant's name as the description.
3. date: The date of the transaction in "YYYY-MM-DD" format. If the year is not present, assume the current year ({year}).
4. type: The type of transaction. Default to "expense". If the receipt clearly indicates a refund, return, or deposit, set it to "income".

Example JSON output for a receipt with items:
{{"amount": 75000, "description": "Kopi Americano, Croissant Coklat, Air Mineral", "date": "{year}-07-01", "type": "expense"}}

Example JSON output if items are not clear:
{{"amount": 125000, "description": "Supermarket Sejahtera", "date": "{year}-07-02", "type": "expense"}}

If you cannot find a specific piece of information, set its value to null.
Do not add any explanatory text or markdown formatting around the JSON object."""


class ReceiptError(Exception):
    """Base exception for receipt scanning errors."""
    pass


class InvalidReceiptImageError(ReceiptError):
    """The upload is not an image we can send for analysis."""
    pass


class ReceiptAnalysisError(ReceiptError):
    """The model call failed or returned something we could not parse."""

    def __init__(self, message: str = ANALYSIS_FAILED_MESSAGE):
        super().__init__(message)


def extract_json_object(text: str) -> dict[str, Any]:
    """
    Parse the outermost {...} in a model response.

    Models sometimes wrap JSON in prose or markdown fences, so everything
    outside the first "{" and the last "}" is ignored.
    """
    start = text.find("{")
    end = text.rfind("}") + 1
    if start < 0 or end <= start:
        raise ValueError("Response does not contain a JSON object")
    data = json.loads(text[start:end])
    if not isinstance(data, dict):
        raise ValueError("Response JSON is not an object")
    return data


def normalize_amount(value: Any) -> Optional[Decimal]:
    """A positive amount, or None for missing, zero or unreadable values."""
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value).replace(",", "").strip())
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite() or amount <= 0:
        return None
    return amount


def normalize_date(value: Any, today: Optional[date] = None) -> date:
    """
    ISO dates pass through; other formats are parsed leniently with the
    current year filled in when missing. Missing or unparseable → today.
    """
    today = today or date.today()
    if not value:
        return today
    text = str(value).strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        default = datetime(today.year, today.month, today.day)
        return date_parser.parse(text, default=default).date()
    except (ValueError, OverflowError):
        return today


def normalize_type(value: Any) -> TransactionType:
    if isinstance(value, str) and value.strip().lower() == TransactionType.INCOME.value:
        return TransactionType.INCOME
    return TransactionType.EXPENSE


def parse_receipt_response(text: str, today: Optional[date] = None) -> ExtractedReceipt:
    """Turn raw model output into an ExtractedReceipt."""
    data = extract_json_object(text)
    description = data.get("description")
    return ExtractedReceipt(
        amount=normalize_amount(data.get("amount")),
        description=str(description).strip()[:500] if description else None,
        date=normalize_date(data.get("date"), today),
        type=normalize_type(data.get("type")),
        raw_response=text,
    )


class ReceiptAnalyzer:
    """
    Gemini-backed receipt reader.

    IMPORTANT BOUNDARIES:
    1. This service ONLY extracts data; semantic checks live in the validator
    2. Any failure surfaces as a single user-facing ReceiptAnalysisError
    3. Missing fields stay missing (None) except the date, which defaults to today
    """

    def __init__(
        self,
        model: Optional[Any] = None,
        gemini_settings: Optional[GeminiSettings] = None,
        app_settings: Optional[AppSettings] = None,
    ):
        self._app_settings = app_settings or get_settings().app
        self._gemini_settings = gemini_settings
        self._model = model
        self._logger = structlog.get_logger(__name__)

    def _get_model(self):
        """Get or create the Gemini model."""
        if self._model is None:
            settings = self._gemini_settings or get_settings().gemini
            genai.configure(api_key=settings.api_key)
            self._model = genai.GenerativeModel(
                model_name=settings.model_name,
                generation_config={
                    "temperature": settings.temperature,
                    "max_output_tokens": settings.max_tokens,
                },
            )
        return self._model

    @property
    def allowed_mime_types(self) -> set[str]:
        configured = {
            FORMAT_MIME_TYPES[fmt]
            for fmt in self._app_settings.supported_formats_list
            if fmt in FORMAT_MIME_TYPES
        }
        return configured & ALLOWED_IMAGE_MIME_TYPES

    def check_upload(
        self,
        image_bytes: bytes,
        filename: str,
        mime_type: str,
    ) -> ReceiptUpload:
        """
        Reject uploads that cannot be analyzed.

        Raises:
            InvalidReceiptImageError: Unsupported type, empty, too large,
                or not a decodable image
        """
        mime_type = (mime_type or "").lower()
        if mime_type not in self.allowed_mime_types:
            raise InvalidReceiptImageError(
                f"Unsupported file type: {mime_type or 'unknown'}. "
                f"Supported formats: {self._app_settings.supported_image_formats}"
            )
        if not image_bytes:
            raise InvalidReceiptImageError("The uploaded file is empty")

        size = len(image_bytes)
        if size > self._app_settings.max_upload_size_bytes:
            raise InvalidReceiptImageError(
                f"File is too large ({size / (1024 * 1024):.1f} MB). "
                f"Maximum size is {self._app_settings.max_upload_size_mb} MB"
            )

        try:
            with Image.open(BytesIO(image_bytes)) as img:
                img.verify()
        except (UnidentifiedImageError, OSError, SyntaxError) as e:
            raise InvalidReceiptImageError(f"The file is not a readable image: {e}")

        return ReceiptUpload(
            original_filename=filename,
            file_size_bytes=size,
            mime_type=mime_type,
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def _generate(self, image_bytes: bytes, mime_type: str) -> str:
        prompt = RECEIPT_PROMPT.format(year=date.today().year)
        response = await self._get_model().generate_content_async([
            prompt,
            {"mime_type": mime_type, "data": image_bytes},
        ])
        return response.text.strip()

    async def analyze_receipt(self, image_bytes: bytes, mime_type: str) -> ExtractedReceipt:
        """
        Extract amount, description, date and type from a receipt image.

        Raises:
            ReceiptAnalysisError: The model call failed or returned no
                usable JSON object
        """
        try:
            text = await self._generate(image_bytes, mime_type)
            extracted = parse_receipt_response(text)
        except Exception as e:
            self._logger.error("receipt_analysis_failed", error=str(e))
            raise ReceiptAnalysisError() from e

        self._logger.info(
            "receipt_analyzed",
            extraction_id=str(extracted.extraction_id),
            has_amount=extracted.amount is not None,
            type=extracted.type.value,
        )
        return extracted
