"""
Motor de precios por línea

Dos modos de precio por documento:

- TAX_EXCLUSIVE: el precio tecleado no incluye IVA. Se calcula la base
  (cantidad x precio - descuento) y el IVA se suma encima.
- TAX_INCLUSIVE: el precio tecleado ya incluye IVA (tickets). El total de la
  línea es lo tecleado y la base se obtiene dividiendo por (1 + tipo/100).
  El precio unitario sin IVA se guarda con 4 decimales.

Los intermedios se calculan a precisión completa; solo se redondea al guardar
(subtotal, IVA, total y retención a 2 decimales).
"""
from decimal import Decimal
from typing import Any, Iterable, List, Optional
from uuid import uuid4
import logging

from purchasing.core.config import settings
from purchasing.common.decimal_input import parse_decimal_input
from purchasing.common.exceptions import LineValidationError
from purchasing.common.money import ZERO, round2, round4, to_decimal
from purchasing.modules.documents.models import DocumentType, PricingMode
from purchasing.modules.documents.schemas import LineInput, DocumentLineOut

logger = logging.getLogger(__name__)

HUNDRED = Decimal('100')
ONE = Decimal('1')


class LinePricingEngine:
    """Calcula los importes derivados de cada línea"""

    def __init__(self, default_tax_rate: Optional[Any] = None):
        if default_tax_rate is None:
            default_tax_rate = settings.DEFAULT_TAX_RATE
        self.default_tax_rate = to_decimal(default_tax_rate)

    def new_line(self, temp_id: Optional[str] = None) -> DocumentLineOut:
        """Línea vacía con el tipo de IVA por defecto"""
        return DocumentLineOut(
            temp_id=temp_id or uuid4().hex,
            concept="",
            quantity=ONE,
            unit_price=ZERO,
            entered_unit_price=ZERO,
            tax_rate=self.default_tax_rate,
            discount_percent=ZERO,
            withholding_tax_rate=ZERO,
            subtotal=round2(ZERO),
            tax_amount=round2(ZERO),
            total=round2(ZERO),
            withholding_amount=round2(ZERO),
        )

    def _validate(self, line: LineInput, document_type: DocumentType, index: Optional[int], require_concept: bool):
        quantity = parse_decimal_input(line.quantity)
        unit_price = parse_decimal_input(line.unit_price)
        tax_rate = self.default_tax_rate if line.tax_rate is None else parse_decimal_input(line.tax_rate)
        discount = parse_decimal_input(line.discount_percent)
        withholding_rate = parse_decimal_input(line.withholding_tax_rate)

        if require_concept and not (line.concept or "").strip():
            raise LineValidationError("El concepto es obligatorio", field="concept", line_index=index)
        if quantity < 0:
            raise LineValidationError("La cantidad no puede ser negativa", field="quantity", line_index=index)
        if unit_price < 0:
            raise LineValidationError("El precio unitario no puede ser negativo", field="unit_price", line_index=index)
        if discount < 0 or discount > HUNDRED:
            raise LineValidationError(
                "El descuento debe estar entre 0 y 100", field="discount_percent", line_index=index
            )
        if tax_rate <= -HUNDRED:
            raise LineValidationError("El tipo de IVA debe ser mayor que -100", field="tax_rate", line_index=index)
        if withholding_rate < 0:
            raise LineValidationError(
                "La retención no puede ser negativa", field="withholding_tax_rate", line_index=index
            )

        # Los tickets de gasto nunca llevan retención
        if document_type == DocumentType.EXPENSE:
            withholding_rate = ZERO

        return quantity, unit_price, tax_rate, discount, withholding_rate

    def compute_line(
        self,
        line: LineInput,
        mode: PricingMode,
        document_type: DocumentType,
        index: Optional[int] = None,
        require_concept: bool = False
    ) -> DocumentLineOut:
        """
        Calcular una línea a partir de lo tecleado.

        Args:
            line: Línea de entrada (los números pueden venir como texto)
            mode: Modo de precio del documento
            document_type: INVOICE o EXPENSE (solo las facturas llevan retención)
            index: Posición de la línea, para los mensajes de error
            require_concept: True al enviar el documento

        Returns:
            Línea con subtotal, IVA, total y retención calculados

        Raises:
            LineValidationError: Si algún valor está fuera de rango
        """
        quantity, entered_price, tax_rate, discount, withholding_rate = self._validate(
            line, document_type, index, require_concept
        )

        raw = quantity * entered_price
        discount_amount = raw * discount / HUNDRED

        if mode == PricingMode.TAX_INCLUSIVE:
            total = round2(raw - discount_amount)
            subtotal_raw = total / (ONE + tax_rate / HUNDRED)
            subtotal = round2(subtotal_raw)
            tax_amount = total - subtotal
            unit_price = round4(subtotal_raw / (quantity if quantity != 0 else ONE))
        else:
            subtotal_raw = raw - discount_amount
            tax_raw = subtotal_raw * tax_rate / HUNDRED
            subtotal = round2(subtotal_raw)
            tax_amount = round2(tax_raw)
            total = round2(subtotal_raw + tax_raw)
            unit_price = round4(entered_price)

        withholding_amount = round2(subtotal * withholding_rate / HUNDRED)

        return DocumentLineOut(
            id=line.id,
            temp_id=line.temp_id,
            concept=line.concept,
            description=line.description,
            quantity=quantity,
            unit_price=unit_price,
            entered_unit_price=entered_price,
            tax_rate=tax_rate,
            discount_percent=discount,
            withholding_tax_rate=withholding_rate,
            subtotal=subtotal,
            tax_amount=tax_amount,
            total=total,
            withholding_amount=withholding_amount,
        )

    def compute_lines(
        self,
        lines: Iterable[LineInput],
        mode: PricingMode,
        document_type: DocumentType,
        require_concept: bool = False
    ) -> List[DocumentLineOut]:
        return [
            self.compute_line(line, mode, document_type, index=i, require_concept=require_concept)
            for i, line in enumerate(lines)
        ]

    @staticmethod
    def as_input(line: Any, unit_price: Optional[Decimal] = None) -> LineInput:
        """LineInput a partir de una línea calculada o persistida"""
        return LineInput(
            id=getattr(line, "id", None),
            temp_id=getattr(line, "temp_id", None),
            concept=line.concept,
            description=line.description,
            quantity=to_decimal(line.quantity),
            unit_price=to_decimal(line.entered_unit_price if unit_price is None else unit_price),
            tax_rate=to_decimal(line.tax_rate),
            discount_percent=to_decimal(line.discount_percent),
            withholding_tax_rate=to_decimal(line.withholding_tax_rate),
        )

    def recompute_for_mode(
        self,
        lines: Iterable[Any],
        mode: PricingMode,
        document_type: DocumentType
    ) -> List[DocumentLineOut]:
        """
        Recalcular todas las líneas al cambiar el modo de precio.

        El precio unitario guardado (sin IVA) pasa a ser el precio tecleado en
        el nuevo modo. La conversión pierde información y no es reversible.
        """
        result = [
            self.compute_line(self.as_input(line, unit_price=to_decimal(line.unit_price)), mode, document_type, index=i)
            for i, line in enumerate(lines)
        ]
        logger.debug(f"Recomputed {len(result)} lines for mode {mode.value}")
        return result
