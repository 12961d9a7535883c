"""Tests for regex-based monetary amount extraction."""

from decimal import Decimal

import pytest

from receipt_recon.extraction.amounts import (
    AmountCandidate,
    CurrencyHint,
    extract_amounts,
    parse_amount,
)


class TestParseAmount:
    """Tests for the parse_amount function."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("45", Decimal("45")),
            ("45.00", Decimal("45.00")),
            ("24,50", Decimal("24.50")),
            ("12.5", Decimal("12.5")),
            ("1,234.50", Decimal("1234.50")),
            ("1.234,50", Decimal("1234.50")),
            ("1,234", Decimal("1234")),
        ],
    )
    def test_valid_numbers(self, raw: str, expected: Decimal) -> None:
        assert parse_amount(raw) == expected

    @pytest.mark.parametrize("raw", ["", "abc", ".,", None])
    def test_invalid_numbers(self, raw: str | None) -> None:
        assert parse_amount(raw) is None  # type: ignore[arg-type]


class TestExtractAmounts:
    """Tests for the extract_amounts function."""

    def test_total_and_subtotal(self) -> None:
        candidates = extract_amounts("Total: S/ 45.00, Subtotal: S/40.00")
        assert [c.value for c in candidates] == [Decimal("45.00"), Decimal("40.00")]
        assert all(c.currency_hint == CurrencyHint.PEN for c in candidates)
        assert [c.source_offset for c in candidates] == [10, 29]

    def test_soles_prefix_variants(self) -> None:
        for text in ("S/ 24.00", "S/.24.00", "s/24.00", "S./ 24.00"):
            candidates = extract_amounts(text)
            assert len(candidates) == 1, text
            assert candidates[0].value == Decimal("24.00")
            assert candidates[0].currency_hint == CurrencyHint.PEN

    def test_pen_code(self) -> None:
        candidates = extract_amounts("Importe PEN 120.50")
        assert len(candidates) == 1
        assert candidates[0].value == Decimal("120.50")
        assert candidates[0].currency_hint == CurrencyHint.PEN

    def test_dollar_and_usd(self) -> None:
        assert extract_amounts("$ 12.50")[0].currency_hint == CurrencyHint.USD
        candidates = extract_amounts("USD 30")
        assert len(candidates) == 1
        assert candidates[0].value == Decimal("30")
        assert candidates[0].currency_hint == CurrencyHint.USD

    def test_bare_decimal_with_currency_word(self) -> None:
        candidates = extract_amounts("Pagado 24,50 soles")
        assert len(candidates) == 1
        assert candidates[0].value == Decimal("24.50")
        assert candidates[0].currency_hint == CurrencyHint.PEN
        assert candidates[0].raw_text == "24,50"

    def test_bare_decimal_without_currency(self) -> None:
        candidates = extract_amounts("Total 1.234,50")
        assert len(candidates) == 1
        assert candidates[0].value == Decimal("1234.50")
        assert candidates[0].currency_hint == CurrencyHint.UNKNOWN

    def test_thousands_separator_with_prefix(self) -> None:
        candidates = extract_amounts("S/ 1,234.50")
        assert [c.value for c in candidates] == [Decimal("1234.50")]

    def test_same_number_reported_once(self) -> None:
        candidates = extract_amounts("S/ 45.00")
        assert len(candidates) == 1
        assert candidates[0].currency_hint == CurrencyHint.PEN

    def test_sorted_by_value_descending(self) -> None:
        text = "Propina 5 soles\nTotal S/ 86.50\nItems 2"
        candidates = extract_amounts(text)
        assert [c.value for c in candidates] == [
            Decimal("86.50"),
            Decimal("5"),
            Decimal("2"),
        ]
        assert candidates[1].currency_hint == CurrencyHint.PEN
        assert candidates[2].currency_hint == CurrencyHint.UNKNOWN

    def test_dates_and_times_ignored(self) -> None:
        assert extract_amounts("Fecha 15/03/2024 Hora 13:45") == []

    def test_month_name_dates_ignored(self) -> None:
        assert extract_amounts("15 mar. 2024") == []
        assert extract_amounts("3 de enero") == []

    def test_long_digit_runs_ignored(self) -> None:
        assert extract_amounts("Operación 12345678901234") == []
        assert extract_amounts("Nro. de celular: 987654321") == []

    def test_operation_length_integers_ignored(self) -> None:
        assert extract_amounts("Nro. de operacion: 123456") == []
        assert [c.value for c in extract_amounts("Ticket 12345")] == [Decimal("12345")]

    def test_operation_length_is_configurable(self) -> None:
        candidates = extract_amounts("Nro. de operacion: 123456", number_min_digits=7)
        assert [c.value for c in candidates] == [Decimal("123456")]

    def test_currency_marked_long_amount_kept(self) -> None:
        assert [c.value for c in extract_amounts("S/ 123456")] == [Decimal("123456")]

    def test_no_monetary_text(self) -> None:
        assert extract_amounts("Gracias por su compra") == []
        assert extract_amounts("") == []

    def test_values_non_negative(self) -> None:
        candidates = extract_amounts("Descuento -5.00\nTotal S/ 40.00")
        assert candidates
        assert all(c.value >= 0 for c in candidates)

    def test_offset_points_at_numeric_text(self) -> None:
        text = "Monto S/ 33.90"
        candidate = extract_amounts(text)[0]
        assert text[candidate.source_offset : candidate.end_offset] == "33.90"

    def test_candidates_unscored(self) -> None:
        candidate = extract_amounts("S/ 10.00")[0]
        assert isinstance(candidate, AmountCandidate)
        assert candidate.confidence == 0.0
        assert candidate.context == ""
