"""
Tests para los helpers comunes

- Parser de importes en formato europeo
- Formato de visualización
- Eco de campos numéricos en edición
- Redondeo monetario y traducción de rechazos
"""

from decimal import Decimal

import pytest

from purchasing.common.decimal_input import (
    parse_decimal_input, format_decimal_display, NumericInputEcho
)
from purchasing.common.money import round2, round4, to_decimal, format_rate
from purchasing.common.exceptions import (
    ClosedPeriodError, CollaboratorRejection, OverageConfirmationRequired,
    LineValidationError, translate_rejection
)


# ===== TESTS DEL PARSER =====

class TestParseDecimalInput:
    """Tests para parse_decimal_input"""

    @pytest.mark.parametrize("raw, expected", [
        ("1.234,56", Decimal("1234.56")),
        ("1.234", Decimal("1234")),
        ("1.23", Decimal("1.23")),
        ("1.000", Decimal("1000")),
        ("1,000", Decimal("1")),
        ("10,5", Decimal("10.5")),
        ("1.234.567", Decimal("1234567")),
        ("-3,25", Decimal("-3.25")),
        (" 12 ", Decimal("12")),
    ])
    def test_european_format(self, raw, expected):
        """Test puntos de miles y coma decimal"""
        assert parse_decimal_input(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "   ", "abc", "-", ",", True])
    def test_garbage_returns_zero(self, raw):
        """Test entradas sin número devuelven 0 sin lanzar"""
        assert parse_decimal_input(raw) == Decimal("0")

    def test_numeric_prefix_only(self):
        """Test solo se lee el prefijo numérico"""
        assert parse_decimal_input("12abc") == Decimal("12")
        assert parse_decimal_input("7,5 €") == Decimal("7.5")

    def test_numbers_pass_through(self):
        """Test valores numéricos no se reinterpretan"""
        assert parse_decimal_input(Decimal("4.5")) == Decimal("4.5")
        assert parse_decimal_input(3) == Decimal("3")
        assert parse_decimal_input(0.1) == Decimal("0.1")

    def test_partial_typing(self):
        """Test estados intermedios de tecleo"""
        assert parse_decimal_input("1,") == Decimal("1")
        assert parse_decimal_input("0,0") == Decimal("0")

    @pytest.mark.parametrize("value", [
        Decimal("1234.56"), Decimal("0.5"), Decimal("1000"), Decimal("-42.1"), Decimal("12.3456"),
    ])
    def test_display_then_parse_is_stable(self, value):
        """Test volver a parsear el texto mostrado devuelve el mismo valor"""
        assert parse_decimal_input(format_decimal_display(value)) == value


# ===== TESTS DE FORMATO =====

class TestFormatDecimalDisplay:
    """Tests para format_decimal_display"""

    def test_format(self):
        assert format_decimal_display(Decimal("1234.56")) == "1.234,56"
        assert format_decimal_display(Decimal("1234567")) == "1.234.567"
        assert format_decimal_display(Decimal("12.50")) == "12,5"
        assert format_decimal_display(Decimal("-1000.5")) == "-1.000,5"

    def test_zero(self):
        assert format_decimal_display(Decimal("0.00")) == "0"
        assert format_decimal_display(None) == "0"


# ===== TESTS DEL ECO =====

class TestNumericInputEcho:
    """Tests para NumericInputEcho"""

    def test_echo_while_focused(self):
        """Test mientras hay foco se muestra lo tecleado"""
        echo = NumericInputEcho()
        value = echo.on_input("row-1", "unit_price", "1,")
        assert value == Decimal("1")
        assert echo.display("row-1", "unit_price", value) == "1,"

    def test_blur_shows_formatted(self):
        """Test al perder el foco se muestra el valor formateado"""
        echo = NumericInputEcho()
        value = echo.on_input("row-1", "unit_price", "1234,5")
        echo.on_blur("row-1", "unit_price")
        assert echo.echo("row-1", "unit_price") is None
        assert echo.display("row-1", "unit_price", value) == "1.234,5"

    def test_forget_row(self):
        """Test borrar una fila descarta su eco"""
        echo = NumericInputEcho()
        echo.on_input("row-1", "quantity", "2")
        echo.on_input("row-1", "unit_price", "3,")
        echo.on_input("row-2", "quantity", "5")
        echo.forget_row("row-1")
        assert len(echo) == 1
        assert echo.echo("row-2", "quantity") == "5"

    def test_instances_are_independent(self):
        """Test cada editor tiene su propio eco"""
        first, second = NumericInputEcho(), NumericInputEcho()
        first.on_input("row-1", "quantity", "2,")
        assert second.echo("row-1", "quantity") is None


# ===== TESTS DE REDONDEO =====

class TestMoney:
    """Tests para redondeo half-up"""

    def test_round_half_up(self):
        assert round2(Decimal("2.345")) == Decimal("2.35")
        assert round2(Decimal("-2.345")) == Decimal("-2.35")
        assert round4(Decimal("1.23455")) == Decimal("1.2346")

    def test_float_goes_through_repr(self):
        assert to_decimal(1.1) == Decimal("1.1")
        assert round2(1.005) == Decimal("1.01")

    def test_format_rate(self):
        assert format_rate(Decimal("21.00")) == "21"
        assert format_rate(Decimal("10.50")) == "10.5"


# ===== TESTS DE EXCEPCIONES =====

class TestExceptions:
    """Tests para errores tipados"""

    def test_closed_period_is_translated(self):
        message = translate_rejection(ClosedPeriodError(period_end="2026-02-28"))
        assert "mes está cerrado" in message

    def test_closed_period_text_is_translated(self):
        message = translate_rejection(CollaboratorRejection("Periodo cerrado para 2026-01"))
        assert "mes está cerrado" in message

    def test_other_rejections_pass_through(self):
        assert translate_rejection(CollaboratorRejection("Cuenta bloqueada")) == "Cuenta bloqueada"

    def test_overage_payload(self):
        error = OverageConfirmationRequired(Decimal("120.00"), Decimal("100.00"))
        payload = error.to_dict()
        assert payload["code"] == "OVERAGE_CONFIRMATION_REQUIRED"
        assert payload["requires_confirmation"] is True
        assert payload["max_allowed"] == "100.00"
        assert error.status_code == 409

    def test_line_validation_payload(self):
        error = LineValidationError("El concepto es obligatorio", field="concept", line_index=2)
        payload = error.to_dict()
        assert payload["field"] == "concept"
        assert payload["line_index"] == 2
        assert error.status_code == 422
