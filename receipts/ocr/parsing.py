"""Helpers shared by the vision engines to turn model output into receipt fields.

Vision models answer with free text that usually, but not always, is a bare JSON
object. These helpers strip markdown fences, pull out the JSON object and
normalise the individual fields. Date formats are passed explicitly rather than
read from a module-level formatter.
"""

import json
import logging
import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_DATE_FORMATS: tuple[str, ...] = ("%Y-%m-%d", "%m/%d/%Y", "%d/%m/%Y", "%Y/%m/%d")

_FENCED_JSON = re.compile(r"```(?:json)?\s*([\s\S]*?)```")
_AMOUNT_NOISE = re.compile(r"[^\d,.\-]")


def build_receipt_prompt(
    expected_language: str | None = None,
    extraction_hints: list[str] | None = None,
) -> str:
    """Build the structured-extraction prompt sent alongside the image.

    Args:
        expected_language: Optional language hint for the document
        extraction_hints: Optional free-text hints appended as extra instructions

    Returns:
        Prompt text asking for a single JSON object
    """
    prompt = """Analyze this receipt or bill image and extract the following information in JSON format:
{
    "provider": "merchant/store or service provider name",
    "amount": total_amount_as_number,
    "date": "YYYY-MM-DD",
    "currency": "currency_code",
    "confidence": number_between_0_and_1
}

Instructions:
- Extract the exact merchant name as it appears on the document
- Use the total amount (including tax if shown)
- Date should be in YYYY-MM-DD format
- Currency should be 3-letter code (USD, EUR, etc.)
- Confidence is your certainty that the extracted fields are correct
- If any field cannot be determined, use null
- Return only valid JSON, no additional text or explanation"""

    if expected_language:
        prompt += f"\n- The document is expected to be written in: {expected_language}"
    for hint in extraction_hints or []:
        prompt += f"\n- {hint}"
    return prompt


def extract_json_object(content: str) -> dict[str, Any]:
    """Extract and parse the JSON object from model output.

    Handles markdown code blocks and text surrounding the object.

    Args:
        content: Raw model output

    Returns:
        Parsed JSON object

    Raises:
        json.JSONDecodeError: If no valid JSON found
        ValueError: If the JSON is not an object
    """
    fenced = _FENCED_JSON.search(content)
    if fenced:
        content = fenced.group(1)

    start = content.find("{")
    end = content.rfind("}")
    if start != -1 and end > start:
        content = content[start : end + 1]

    parsed = json.loads(content.strip())
    if not isinstance(parsed, dict):
        raise ValueError(f"Expected a JSON object, got {type(parsed).__name__}")
    return parsed


def parse_amount(value: Any) -> Decimal | None:
    """Normalise an amount given as a number or a formatted string.

    Accepts currency symbols, thousand separators and a decimal comma
    ("$1,234.56", "1.234,56", "45,67").
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        amount = Decimal(str(value))
        if not amount.is_finite():
            logger.warning(f"Ignoring non-finite amount: {value!r}")
            return None
        return amount

    text = _AMOUNT_NOISE.sub("", str(value))
    if not text:
        return None

    if "," in text and "." in text:
        # Whichever separator comes last is the decimal separator
        if text.rfind(",") > text.rfind("."):
            text = text.replace(".", "").replace(",", ".")
        else:
            text = text.replace(",", "")
    elif "," in text:
        head, _, tail = text.rpartition(",")
        text = f"{head.replace(',', '')}.{tail}" if len(tail) != 3 else text.replace(",", "")

    try:
        return Decimal(text)
    except InvalidOperation:
        logger.warning(f"Could not parse amount: {value!r}")
        return None


def parse_date(value: Any, formats: tuple[str, ...] = DEFAULT_DATE_FORMATS) -> date | None:
    """Parse a date string trying each format in order; first match wins."""
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None

    for fmt in formats:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue

    logger.warning(f"Could not parse date: {text}")
    return None


def parse_confidence(value: Any) -> float | None:
    """Return the confidence as a float in [0, 1], or None when absent or out of range."""
    if value is None or isinstance(value, bool):
        return None
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return None
    if not 0.0 <= confidence <= 1.0:
        logger.warning(f"Discarding out-of-range confidence: {confidence}")
        return None
    return confidence


def _text_or_none(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_receipt_fields(
    content: str,
    date_formats: tuple[str, ...] = DEFAULT_DATE_FORMATS,
) -> dict[str, Any]:
    """Parse model output into the keyword arguments of an OcrSuccess.

    Args:
        content: Raw model output containing a JSON object
        date_formats: Accepted date formats, tried in order

    Returns:
        Dict with provider, amount, date, currency and confidence keys

    Raises:
        json.JSONDecodeError: If no valid JSON found
        ValueError: If the JSON is not an object
    """
    data = extract_json_object(content)
    currency = _text_or_none(data.get("currency"))
    return {
        "provider": _text_or_none(data.get("provider")),
        "amount": parse_amount(data.get("amount")),
        "date": parse_date(data.get("date"), date_formats),
        "currency": currency.upper() if currency else None,
        "confidence": parse_confidence(data.get("confidence")),
    }
