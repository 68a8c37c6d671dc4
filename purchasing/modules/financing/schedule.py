"""
Calendario de cuotas de una operación de financiación

El importe financiado (bruto + comisión) se reparte en cuotas mensuales
iguales redondeadas a 2 decimales; la última cuota absorbe el resto para
que la suma cuadre exactamente. El principal se reparte igual sobre el
bruto y la diferencia con la cuota es interés (comisión).
"""
from datetime import date
from decimal import Decimal
from typing import Any, List, Optional

from dateutil.relativedelta import relativedelta

from purchasing.common.money import ZERO, round2, to_decimal
from purchasing.modules.financing.schemas import ScheduledInstallment


def first_due_date_for(payment_date: date) -> date:
    return payment_date + relativedelta(months=+1)


def build_installment_schedule(
    gross_amount: Any,
    fee_amount: Any,
    num_installments: int,
    first_due_date: Optional[date] = None
) -> List[ScheduledInstallment]:
    if num_installments < 1:
        raise ValueError("num_installments debe ser al menos 1")

    gross = round2(to_decimal(gross_amount))
    fee = round2(to_decimal(fee_amount))
    total = gross + fee
    start = first_due_date or first_due_date_for(date.today())

    base_amount = round2(total / Decimal(num_installments))
    base_principal = round2(gross / Decimal(num_installments))

    items = []
    paid_amount = ZERO
    paid_principal = ZERO
    for i in range(1, num_installments + 1):
        last = i == num_installments
        amount = (total - paid_amount) if last else base_amount
        principal = (gross - paid_principal) if last else base_principal
        paid_amount += amount
        paid_principal += principal
        items.append(ScheduledInstallment(
            installment_number=i,
            due_date=start + relativedelta(months=+(i - 1)),
            amount=amount,
            principal=principal,
            interest=amount - principal,
            outstanding=total - paid_amount,
        ))
    return items
