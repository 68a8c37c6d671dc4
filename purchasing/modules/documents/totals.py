"""
Agregación de totales del documento a partir de sus líneas
"""
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional

from purchasing.common.money import ZERO, format_rate, to_decimal
from purchasing.modules.documents.schemas import DocumentTotals, TaxBreakdownItem


def _label(rate: Decimal, labels: Optional[Mapping[Decimal, str]], prefix: str) -> str:
    if labels:
        for key, label in labels.items():
            if to_decimal(key) == rate:
                return label
    return f"{prefix} {format_rate(rate)}%"


def _group(lines: List[Any], rate_attr: str, amount_attr: str, skip_zero: bool) -> Dict[Decimal, Dict[str, Decimal]]:
    groups: Dict[Decimal, Dict[str, Decimal]] = {}
    for line in lines:
        amount = to_decimal(getattr(line, amount_attr))
        if skip_zero and amount == 0:
            continue
        rate = to_decimal(getattr(line, rate_attr)).normalize()
        group = groups.setdefault(rate, {"base": ZERO, "amount": ZERO})
        group["base"] += to_decimal(line.subtotal)
        group["amount"] += amount
    return groups


def aggregate_lines(
    lines: Iterable[Any],
    tax_labels: Optional[Mapping[Decimal, str]] = None,
    withholding_labels: Optional[Mapping[Decimal, str]] = None
) -> DocumentTotals:
    """
    Sumar las líneas y construir el desglose por tipo.

    Los totales son sumas directas de los importes ya redondeados de cada
    línea. El desglose de IVA incluye todos los tipos presentes; el de
    retenciones solo los importes distintos de cero. Ambos ordenados por
    tipo de mayor a menor.
    """
    lines = list(lines)

    subtotal = sum((to_decimal(line.subtotal) for line in lines), ZERO)
    tax_amount = sum((to_decimal(line.tax_amount) for line in lines), ZERO)
    total = sum((to_decimal(line.total) for line in lines), ZERO)
    withholding_amount = sum((to_decimal(line.withholding_amount) for line in lines), ZERO)

    tax_groups = _group(lines, "tax_rate", "tax_amount", skip_zero=False)
    withholding_groups = _group(lines, "withholding_tax_rate", "withholding_amount", skip_zero=True)

    tax_breakdown = [
        TaxBreakdownItem(rate=rate, label=_label(rate, tax_labels, "TAX"), base=g["base"], amount=g["amount"])
        for rate, g in sorted(tax_groups.items(), key=lambda item: item[0], reverse=True)
    ]
    withholding_breakdown = [
        TaxBreakdownItem(
            rate=rate, label=_label(rate, withholding_labels, "WITHHOLDING"), base=g["base"], amount=g["amount"]
        )
        for rate, g in sorted(withholding_groups.items(), key=lambda item: item[0], reverse=True)
    ]

    return DocumentTotals(
        subtotal=subtotal,
        tax_amount=tax_amount,
        total=total,
        withholding_amount=withholding_amount,
        net_payable=total - withholding_amount,
        tax_breakdown=tax_breakdown,
        withholding_breakdown=withholding_breakdown,
    )
