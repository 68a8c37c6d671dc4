"""
Normalización de importes tecleados por el usuario

Los usuarios escriben importes en formato europeo ("1.234,56") o con punto
decimal ("1.23"). Reglas:

- Si aparece alguna coma, los puntos son separadores de miles y la coma es
  el separador decimal.
- Un único punto sin coma es decimal si le siguen 1 o 2 dígitos; si no, es
  separador de miles ("1.000" -> 1000).
- Varios puntos sin coma son todos separadores de miles.
- Solo se lee el prefijo numérico; si no hay ninguno el resultado es 0.
"""
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Hashable, Optional, Tuple

from purchasing.common.money import ZERO, to_decimal

_NUMERIC_PREFIX = re.compile(r'^[+-]?(\d+(\.\d*)?|\.\d+)')


def _normalize_separators(text: str) -> str:
    if ',' in text:
        return text.replace('.', '').replace(',', '.')

    dots = text.count('.')
    if dots == 1:
        decimals = text.split('.', 1)[1]
        digits = re.match(r'\d*', decimals).group(0)
        if 1 <= len(digits) <= 2:
            return text
        return text.replace('.', '')
    if dots > 1:
        return text.replace('.', '')
    return text


def parse_decimal_input(raw: Any) -> Decimal:
    """
    Convertir la entrada del usuario a Decimal. Nunca lanza excepción.

    Args:
        raw: Texto tecleado, número o None

    Returns:
        Valor numérico (0 si la entrada no contiene ningún número)
    """
    if raw is None:
        return ZERO
    if isinstance(raw, bool):
        return ZERO
    if isinstance(raw, (int, float, Decimal)):
        value = to_decimal(raw)
        return value if value.is_finite() else ZERO

    text = str(raw).strip().replace(' ', '')
    if not text:
        return ZERO

    match = _NUMERIC_PREFIX.match(_normalize_separators(text))
    if not match:
        return ZERO
    try:
        return Decimal(match.group(0))
    except InvalidOperation:
        return ZERO


def format_decimal_display(value: Any) -> str:
    """
    Mostrar un importe con miles agrupados por '.' y decimales con ','.

    Conserva todos los decimales significativos para que volver a parsear
    el texto mostrado devuelva el mismo valor.
    """
    number = to_decimal(value)
    if not number.is_finite() or number == 0:
        return "0"

    text = format(number.normalize(), 'f')
    sign = ''
    if text.startswith('-'):
        sign, text = '-', text[1:]

    integer_part, _, decimal_part = text.partition('.')
    groups = []
    while len(integer_part) > 3:
        groups.insert(0, integer_part[-3:])
        integer_part = integer_part[:-3]
    groups.insert(0, integer_part)

    result = sign + '.'.join(groups)
    if decimal_part:
        result += ',' + decimal_part
    return result


class NumericInputEcho:
    """
    Texto literal que el usuario está tecleando en cada campo numérico.

    Vive dentro de un editor concreto (nunca a nivel de proceso). Mientras un
    campo tiene el foco se devuelve lo tecleado tal cual ("1,", "0,0") en
    lugar del valor formateado; al perder el foco se descarta.
    """

    def __init__(self):
        self._echo: Dict[Tuple[Hashable, str], str] = {}

    def on_input(self, row_key: Hashable, field: str, raw: str) -> Decimal:
        self._echo[(row_key, field)] = raw
        return parse_decimal_input(raw)

    def on_blur(self, row_key: Hashable, field: str) -> None:
        self._echo.pop((row_key, field), None)

    def forget_row(self, row_key: Hashable) -> None:
        for key in [k for k in self._echo if k[0] == row_key]:
            del self._echo[key]

    def echo(self, row_key: Hashable, field: str) -> Optional[str]:
        return self._echo.get((row_key, field))

    def display(self, row_key: Hashable, field: str, value: Any) -> str:
        """Texto a mostrar: el eco si el campo tiene foco, si no el valor formateado."""
        literal = self.echo(row_key, field)
        if literal is not None:
            return literal
        return format_decimal_display(value)

    def __len__(self) -> int:
        return len(self._echo)
