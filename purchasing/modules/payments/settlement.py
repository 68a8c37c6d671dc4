"""
Motor de liquidación de pagos

Valida una solicitud de pago contra el saldo del documento y la convierte en
una instrucción para el registro de pagos. Tres modos:

- STANDARD: pago normal (transferencia, tarjeta, efectivo...)
- PERSONAL: lo paga un socio de su bolsillo y queda pendiente de reembolso
- FINANCING: la deuda se reclasifica a una entidad de crédito

El motor nunca modifica saldos; solo decide si la solicitud es válida.
"""
from decimal import Decimal
from typing import Any, Iterable, Optional
from uuid import uuid4
import logging

from purchasing.core.config import settings
from purchasing.common.decimal_input import parse_decimal_input
from purchasing.common.exceptions import (
    PaymentValidationError, OverageConfirmationRequired, UnsupportedOperationError
)
from purchasing.common.money import ZERO, round2, to_decimal
from purchasing.modules.documents.schemas import SettlementView
from purchasing.modules.documents.status import DocumentStateMachine
from purchasing.modules.payments.models import PaymentMethod, SettlementMode, RESERVED_METHODS
from purchasing.modules.payments.schemas import (
    FinancingPaymentRequest, PersonalPaymentRequest, SettlementInstruction, StandardPaymentRequest
)

logger = logging.getLogger(__name__)


def _is_active(option: Any) -> bool:
    return bool(getattr(option, "is_active", True))


class SettlementEngine:

    def __init__(
        self,
        credit_providers: Iterable[Any] = (),
        partners: Iterable[Any] = (),
        tolerance: Optional[Decimal] = None
    ):
        self.credit_providers = list(credit_providers)
        self.partners = list(partners)
        self.tolerance = settings.OVERAGE_TOLERANCE if tolerance is None else to_decimal(tolerance)

    @property
    def financing_available(self) -> bool:
        """La financiación solo se ofrece si hay alguna entidad activa"""
        return any(_is_active(p) for p in self.credit_providers)

    @staticmethod
    def max_allowed(view: SettlementView) -> Decimal:
        allowed = abs(to_decimal(view.pending_amount))
        if view.editing_payment_amount is not None:
            allowed += abs(to_decimal(view.editing_payment_amount))
        return allowed

    def register_payment(self, view: SettlementView, request) -> SettlementInstruction:
        """
        Validar una solicitud de pago.

        Args:
            view: Saldo actual del documento
            request: StandardPaymentRequest, PersonalPaymentRequest o FinancingPaymentRequest

        Returns:
            Instrucción con el importe firmado y los datos del modo

        Raises:
            UnsupportedOperationError: Edición de pagos o modo no válido para devoluciones
            DocumentStateError: El documento no admite pagos
            PaymentValidationError: Importe o datos del modo inválidos
            OverageConfirmationRequired: El importe supera el pendiente sin confirmación
        """
        mode = SettlementMode(request.mode)

        if request.payment_id is not None:
            raise UnsupportedOperationError(
                "La edición de pagos no está disponible; elimina el pago y regístralo de nuevo",
                {"payment_id": str(request.payment_id), "mode": mode.value}
            )

        DocumentStateMachine(view.status, view.is_locked).ensure_can_register_payment()

        is_refund = to_decimal(view.total) < 0
        if is_refund and mode != SettlementMode.STANDARD:
            raise UnsupportedOperationError(
                "Los documentos a devolver solo admiten cobros estándar",
                {"mode": mode.value}
            )

        amount = round2(parse_decimal_input(request.amount))
        if amount <= 0:
            raise PaymentValidationError("El importe debe ser mayor que 0", field="amount")

        instruction = {
            "document_id": view.document_id,
            "mode": mode,
            "request_id": request.request_id or uuid4().hex,
            "payment_date": request.payment_date,
            "notes": request.notes,
        }
        if mode == SettlementMode.STANDARD:
            instruction.update(self._standard(request))
        elif mode == SettlementMode.PERSONAL:
            instruction.update(self._personal(request))
        else:
            instruction.update(self._financing(request))

        max_allowed = self.max_allowed(view)
        if mode == SettlementMode.FINANCING:
            # La financiación reclasifica todo el pendiente, nunca una parte
            if abs(amount - max_allowed) > self.tolerance:
                raise PaymentValidationError(
                    f"La financiación debe cubrir todo el importe pendiente ({max_allowed})",
                    field="amount"
                )
            amount = max_allowed
        elif amount > max_allowed + self.tolerance and not request.confirm_overage:
            raise OverageConfirmationRequired(amount, max_allowed, is_refund=is_refund)

        signed_amount = -amount if is_refund else amount
        logger.debug(f"Settlement {mode.value} for document {view.document_id}: {signed_amount}")
        return SettlementInstruction(amount=signed_amount, is_refund=is_refund, **instruction)

    # ===== MODOS =====

    def _standard(self, request: StandardPaymentRequest) -> dict:
        if request.method in RESERVED_METHODS:
            raise PaymentValidationError(
                f"El método {request.method.value} no está disponible para pagos estándar",
                field="method"
            )
        return {
            "method": request.method,
            "bank_account_id": request.bank_account_id,
            "bank_reference": request.bank_reference,
        }

    def _personal(self, request: PersonalPaymentRequest) -> dict:
        if not request.payer_partner_id:
            raise PaymentValidationError("Selecciona el socio que realizó el pago", field="payer_partner_id")
        partner = next((p for p in self.partners if p.id == request.payer_partner_id), None)
        if partner is None or not _is_active(partner):
            raise PaymentValidationError("El socio seleccionado no está activo", field="payer_partner_id")
        return {
            "method": PaymentMethod.PERSONAL,
            "payer_partner_id": partner.id,
        }

    def _financing(self, request: FinancingPaymentRequest) -> dict:
        if not self.financing_available:
            raise UnsupportedOperationError("No hay entidades de financiación activas")
        if not request.provider_id:
            raise PaymentValidationError("Selecciona la entidad de financiación", field="provider_id")
        provider = next((p for p in self.credit_providers if p.id == request.provider_id), None)
        if provider is None or not _is_active(provider):
            raise PaymentValidationError("La entidad de financiación no está activa", field="provider_id")
        if request.num_installments < 1:
            raise PaymentValidationError("El número de cuotas debe ser al menos 1", field="num_installments")

        fee = round2(parse_decimal_input(request.fee_amount))
        if fee < ZERO:
            raise PaymentValidationError("La comisión no puede ser negativa", field="fee_amount")

        return {
            "method": PaymentMethod.EXTERNAL_CREDIT,
            "provider_id": provider.id,
            "num_installments": request.num_installments,
            "fee_amount": fee,
            "bank_account_id": request.bank_account_id,
            "first_due_date": request.first_due_date,
            "contract_reference": request.contract_reference,
        }
