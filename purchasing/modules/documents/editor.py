"""
Sesión de edición de líneas

Estado de un editor abierto: líneas calculadas, modo de precio y el eco de
lo que el usuario está tecleando en cada campo numérico. Cada editor tiene
su propia sesión.
"""
from decimal import Decimal
from typing import Any, Hashable, List, Mapping, Optional

from purchasing.common.decimal_input import NumericInputEcho
from purchasing.modules.documents.models import DocumentType, PricingMode, default_pricing_mode
from purchasing.modules.documents.pricing import LinePricingEngine
from purchasing.modules.documents.schemas import DocumentLineOut, DocumentTotals, LineInput
from purchasing.modules.documents.totals import aggregate_lines

NUMERIC_FIELDS = ("quantity", "unit_price", "tax_rate", "discount_percent", "withholding_tax_rate")
TEXT_FIELDS = ("concept", "description")


class LineEditorSession:

    def __init__(
        self,
        document_type: DocumentType,
        engine: LinePricingEngine,
        pricing_mode: Optional[PricingMode] = None,
        lines: Optional[List[Any]] = None,
        tax_labels: Optional[Mapping[Decimal, str]] = None,
        withholding_labels: Optional[Mapping[Decimal, str]] = None
    ):
        self.document_type = document_type
        self.engine = engine
        self.pricing_mode = pricing_mode or default_pricing_mode(document_type)
        self.tax_labels = tax_labels
        self.withholding_labels = withholding_labels
        self.echo = NumericInputEcho()
        self.lines: List[DocumentLineOut] = [
            engine.compute_line(engine.as_input(line), self.pricing_mode, document_type)
            for line in (lines or [])
        ]
        self.dirty = False

    def _index(self, row_key: Hashable) -> int:
        for i, line in enumerate(self.lines):
            if line.row_key == row_key or str(line.row_key) == str(row_key):
                return i
        raise KeyError(row_key)

    def line(self, row_key: Hashable) -> DocumentLineOut:
        return self.lines[self._index(row_key)]

    def add_line(self) -> DocumentLineOut:
        line = self.engine.new_line()
        self.lines.append(line)
        self.dirty = True
        return line

    def remove_line(self, row_key: Hashable) -> None:
        index = self._index(row_key)
        self.echo.forget_row(self.lines[index].row_key)
        del self.lines[index]
        self.dirty = True

    def update_field(self, row_key: Hashable, field: str, raw: Any) -> DocumentLineOut:
        """
        Aplicar lo tecleado en un campo y recalcular la línea.

        Los campos numéricos se recalculan desde el precio tecleado
        (entered_unit_price), no desde el precio sin IVA derivado.
        """
        if field not in NUMERIC_FIELDS and field not in TEXT_FIELDS:
            raise ValueError(f"Campo desconocido: {field}")

        index = self._index(row_key)
        current = self.lines[index]
        data = self.engine.as_input(current).model_dump()
        if field in NUMERIC_FIELDS:
            data[field] = self.echo.on_input(current.row_key, field, "" if raw is None else str(raw))
        else:
            data[field] = raw

        updated = self.engine.compute_line(LineInput(**data), self.pricing_mode, self.document_type, index=index)
        self.lines[index] = updated
        self.dirty = True
        return updated

    def blur(self, row_key: Hashable, field: str) -> None:
        self.echo.on_blur(self.line(row_key).row_key, field)

    def display(self, row_key: Hashable, field: str) -> str:
        line = self.line(row_key)
        # El precio se muestra en el modo del documento
        value = line.entered_unit_price if field == "unit_price" else getattr(line, field)
        return self.echo.display(line.row_key, field, value)

    def set_pricing_mode(self, mode: PricingMode) -> List[DocumentLineOut]:
        if mode == self.pricing_mode:
            return self.lines
        self.lines = self.engine.recompute_for_mode(self.lines, mode, self.document_type)
        self.pricing_mode = mode
        self.dirty = True
        return self.lines

    def totals(self) -> DocumentTotals:
        return aggregate_lines(self.lines, self.tax_labels, self.withholding_labels)

    def to_inputs(self) -> List[LineInput]:
        """Líneas listas para enviar (guardado completo)"""
        return [self.engine.as_input(line) for line in self.lines]

    def mark_saved(self, lines: Optional[List[Any]] = None) -> None:
        if lines is not None:
            self.lines = [
                self.engine.compute_line(self.engine.as_input(line), self.pricing_mode, self.document_type)
                for line in lines
            ]
        self.dirty = False

