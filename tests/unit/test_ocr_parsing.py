"""Unit tests for receipt-content parsing helpers."""

import json
from datetime import date
from decimal import Decimal

import pytest

from receipts.ocr.parsing import (
    build_receipt_prompt,
    extract_json_object,
    parse_amount,
    parse_confidence,
    parse_date,
    parse_receipt_fields,
)


class TestPrompt:
    """Test prompt construction."""

    def test_asks_for_receipt_fields(self) -> None:
        prompt = build_receipt_prompt()

        for field in ("provider", "amount", "date", "currency", "confidence"):
            assert f'"{field}"' in prompt

    def test_language_and_hints_appended(self) -> None:
        prompt = build_receipt_prompt("de", ["Amounts use a decimal comma"])

        assert "expected to be written in: de" in prompt
        assert "- Amounts use a decimal comma" in prompt


class TestExtractJsonObject:
    """Test JSON extraction from model output."""

    def test_bare_json(self) -> None:
        assert extract_json_object('{"amount": 1}') == {"amount": 1}

    def test_markdown_fence(self) -> None:
        content = '```json\n{"provider": "Shop"}\n```'

        assert extract_json_object(content) == {"provider": "Shop"}

    def test_surrounding_text(self) -> None:
        content = 'Here is the data: {"currency": "EUR"} Hope this helps.'

        assert extract_json_object(content) == {"currency": "EUR"}

    def test_invalid_json(self) -> None:
        with pytest.raises(json.JSONDecodeError):
            extract_json_object("no json here")

    def test_non_object(self) -> None:
        with pytest.raises(ValueError, match="Expected a JSON object"):
            extract_json_object("[1, 2]")


class TestParseAmount:
    """Test amount normalisation."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (12.5, Decimal("12.5")),
            (42, Decimal("42")),
            ("$1,234.56", Decimal("1234.56")),
            ("1.234,56 €", Decimal("1234.56")),
            ("45,67", Decimal("45.67")),
            ("1,234", Decimal("1234")),
            ("USD 9.99", Decimal("9.99")),
        ],
    )
    def test_formats(self, value: object, expected: Decimal) -> None:
        assert parse_amount(value) == expected

    @pytest.mark.parametrize("value", [None, True, "", "n/a", "--", float("inf"), float("nan")])
    def test_unparseable(self, value: object) -> None:
        assert parse_amount(value) is None


class TestParseDate:
    """Test date parsing with ordered formats."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("2025-01-15", date(2025, 1, 15)),
            ("01/15/2025", date(2025, 1, 15)),
            ("25/12/2024", date(2024, 12, 25)),
            ("2024/12/31", date(2024, 12, 31)),
        ],
    )
    def test_supported_formats(self, value: str, expected: date) -> None:
        assert parse_date(value) == expected

    def test_month_first_wins_when_ambiguous(self) -> None:
        assert parse_date("03/04/2025") == date(2025, 3, 4)

    def test_explicit_formats(self) -> None:
        assert parse_date("03/04/2025", ("%d/%m/%Y",)) == date(2025, 4, 3)

    @pytest.mark.parametrize("value", [None, "", "   ", "yesterday", "2025-13-45"])
    def test_unparseable(self, value: object) -> None:
        assert parse_date(value) is None


class TestParseConfidence:
    """Test confidence normalisation."""

    def test_in_range(self) -> None:
        assert parse_confidence("0.85") == 0.85

    @pytest.mark.parametrize("value", [None, True, "high", 1.2, -0.1])
    def test_absent_or_out_of_range(self, value: object) -> None:
        assert parse_confidence(value) is None


class TestParseReceiptFields:
    """Test full field parsing."""

    def test_complete_answer(self) -> None:
        content = json.dumps(
            {
                "provider": " Corner Cafe ",
                "amount": "12.50",
                "date": "2025-01-15",
                "currency": "usd",
                "confidence": 0.9,
            }
        )

        assert parse_receipt_fields(content) == {
            "provider": "Corner Cafe",
            "amount": Decimal("12.50"),
            "date": date(2025, 1, 15),
            "currency": "USD",
            "confidence": 0.9,
        }

    def test_nulls_and_missing_keys(self) -> None:
        fields = parse_receipt_fields('{"provider": null, "amount": 3}')

        assert fields["provider"] is None
        assert fields["amount"] == Decimal("3")
        assert fields["date"] is None
        assert fields["currency"] is None
        assert fields["confidence"] is None
