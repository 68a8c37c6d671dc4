"""
Máquina de estados de documentos de compra

Tres conceptos independientes:

1. Estado del documento (status): administrativo, se guarda.
2. Estado de pago (PENDING / PARTIAL / PAID): se deriva de los pagos.
3. Vencimiento (is_overdue): se deriva de la fecha de vencimiento.

Un documento bloqueado (APPROVED, PAID o con el flag is_locked) no admite
cambios de líneas ni de cabecera, pero sí registrar pagos.
"""
from datetime import date
from decimal import Decimal
from typing import Any, Optional
import enum

from purchasing.core.config import settings
from purchasing.common.exceptions import DocumentStateError, PermissionDeniedError
from purchasing.common.money import to_decimal
from purchasing.modules.documents.models import DocumentStatus
from purchasing.modules.documents.schemas import AllowedActions


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    PARTIAL = "PARTIAL"
    PAID = "PAID"


LOCKED_STATUSES = {DocumentStatus.APPROVED, DocumentStatus.PAID}
APPROVABLE_STATUSES = {
    DocumentStatus.DRAFT,
    DocumentStatus.PENDING,
    DocumentStatus.REGISTERED,
    DocumentStatus.PENDING_VALIDATION,
}
DELETABLE_STATUSES = {DocumentStatus.PENDING, DocumentStatus.PENDING_VALIDATION, DocumentStatus.DRAFT}
NO_PAYMENT_STATUSES = {DocumentStatus.DRAFT, DocumentStatus.CANCELLED}
# Estados en los que el documento ya está contabilizado
BOOKED_STATUSES = {DocumentStatus.REGISTERED, DocumentStatus.APPROVED, DocumentStatus.PAID}


def derive_payment_status(total: Any, paid_amount: Any, status: DocumentStatus) -> Optional[PaymentStatus]:
    """Estado de pago; None mientras el documento no está contabilizado"""
    if status not in BOOKED_STATUSES:
        return None
    total = abs(to_decimal(total))
    paid = abs(to_decimal(paid_amount))
    if total > 0 and paid >= total - settings.OVERAGE_TOLERANCE:
        return PaymentStatus.PAID
    if paid > 0:
        return PaymentStatus.PARTIAL
    return PaymentStatus.PENDING


def is_overdue(
    status: DocumentStatus,
    payment_status: Optional[PaymentStatus],
    due_date: Optional[date],
    today: Optional[date] = None
) -> bool:
    if status not in BOOKED_STATUSES or payment_status == PaymentStatus.PAID or not due_date:
        return False
    return due_date < (today or date.today())


def is_settled(pending_amount: Any, total: Any = 0) -> bool:
    """Saldado si el pendiente es cero (o se ha pagado de más con confirmación)"""
    pending = to_decimal(pending_amount)
    if to_decimal(total) < 0:
        return pending >= -settings.OVERAGE_TOLERANCE
    return pending <= settings.OVERAGE_TOLERANCE


class DocumentStateMachine:
    """Permisos y transiciones de un documento en su estado actual"""

    def __init__(
        self,
        status: DocumentStatus,
        locked_flag: bool = False,
        internal_number: Optional[str] = None,
        has_payments: bool = False,
        pre_payment_status: Optional[DocumentStatus] = None
    ):
        self.status = status
        self.locked_flag = bool(locked_flag)
        self.internal_number = internal_number
        self.has_payments = has_payments
        self.pre_payment_status = pre_payment_status

    @classmethod
    def for_document(cls, document) -> "DocumentStateMachine":
        return cls(
            status=document.status,
            locked_flag=document.is_locked,
            internal_number=document.internal_number,
            has_payments=bool(document.payments),
            pre_payment_status=document.pre_payment_status,
        )

    # ===== PERMISOS =====

    @property
    def is_locked(self) -> bool:
        return self.status in LOCKED_STATUSES or self.locked_flag

    def can_edit(self) -> bool:
        return not self.is_locked and self.status != DocumentStatus.CANCELLED

    def can_register_payment(self) -> bool:
        return self.status not in NO_PAYMENT_STATUSES

    def can_approve(self, privileged: bool) -> bool:
        if not privileged:
            return False
        if not self.is_locked and self.status in APPROVABLE_STATUSES:
            return True
        # Documento pagado antes de aprobarse: falta asignarle número definitivo
        return self.status == DocumentStatus.PAID and not self.internal_number

    def can_delete(self) -> bool:
        return not self.is_locked and self.status in DELETABLE_STATUSES

    def can_cancel(self, privileged: bool) -> bool:
        return (
            privileged
            and self.status not in (DocumentStatus.CANCELLED, DocumentStatus.PAID)
            and not self.has_payments
        )

    def allowed_actions(self, privileged: bool) -> AllowedActions:
        return AllowedActions(
            can_edit=self.can_edit(),
            can_register_payment=self.can_register_payment(),
            can_approve=self.can_approve(privileged),
            can_delete=self.can_delete(),
            can_cancel=self.can_cancel(privileged),
        )

    # ===== COMPROBACIONES =====

    def ensure_can_edit(self):
        if not self.can_edit():
            raise DocumentStateError(
                "El documento está bloqueado y no se puede modificar",
                status=self.status.value, action="edit"
            )

    def ensure_can_register_payment(self):
        if not self.can_register_payment():
            raise DocumentStateError(
                f"No se pueden registrar pagos en un documento en estado {self.status.value}",
                status=self.status.value, action="register_payment"
            )

    def ensure_can_approve(self, privileged: bool):
        if not privileged:
            raise PermissionDeniedError("Solo un administrador puede aprobar documentos")
        if not self.can_approve(privileged):
            raise DocumentStateError(
                f"No se puede aprobar un documento en estado {self.status.value}",
                status=self.status.value, action="approve"
            )

    def ensure_can_delete(self):
        if not self.can_delete():
            raise DocumentStateError(
                "Solo se pueden eliminar documentos pendientes y no bloqueados",
                status=self.status.value, action="delete"
            )

    def ensure_can_cancel(self, privileged: bool):
        if not privileged:
            raise PermissionDeniedError("Solo un administrador puede anular documentos")
        if self.has_payments:
            raise DocumentStateError(
                "No se puede anular un documento con pagos registrados",
                status=self.status.value, action="cancel"
            )
        if not self.can_cancel(privileged):
            raise DocumentStateError(
                f"No se puede anular un documento en estado {self.status.value}",
                status=self.status.value, action="cancel"
            )

    # ===== TRANSICIONES =====

    def status_after_approval(self) -> DocumentStatus:
        if self.status == DocumentStatus.PAID:
            return DocumentStatus.PAID
        return DocumentStatus.APPROVED

    def status_after_payment(self, pending_amount: Decimal, total: Decimal) -> DocumentStatus:
        if is_settled(pending_amount, total) and self.status not in NO_PAYMENT_STATUSES:
            return DocumentStatus.PAID
        return self.status

    def status_after_payment_removed(self, pending_amount: Decimal, total: Decimal) -> DocumentStatus:
        """
        Estado tras eliminar un pago.

        Solo vuelve a APPROVED si el documento tiene número definitivo; si se
        pagó antes de aprobarse recupera el estado que tenía antes del pago.
        """
        if self.status != DocumentStatus.PAID or is_settled(pending_amount, total):
            return self.status
        if self.internal_number:
            return DocumentStatus.APPROVED
        return self.pre_payment_status or DocumentStatus.PENDING_VALIDATION
