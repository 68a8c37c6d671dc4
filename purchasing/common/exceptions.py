"""
Excepciones tipadas del módulo de compras

Cada error lleva un ``code`` legible por máquina y ``data`` estructurada para
que la capa HTTP (y cualquier otro llamador) distinga por tipo, no por texto:

    PurchasingError
    +-- InputValidationError          (422)
    |   +-- LineValidationError
    |   +-- PaymentValidationError
    +-- OverageConfirmationRequired   (409)
    +-- UnsupportedOperationError     (400)
    +-- DocumentStateError            (409)
    +-- NotFoundError                 (404)
    +-- PermissionDeniedError         (403)
    +-- CollaboratorRejection         (400)
        +-- ClosedPeriodError
"""

from decimal import Decimal
from typing import Any, Dict, Optional


class PurchasingError(Exception):
    """Base de todos los errores de dominio"""

    code: str = "PURCHASING_ERROR"
    status_code: int = 400

    def __init__(self, message: str, data: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.data = data or {}

    def to_dict(self) -> Dict[str, Any]:
        payload = {"detail": self.message, "code": self.code}
        payload.update(self.data)
        return payload


# ===== VALIDACIÓN LOCAL =====

class InputValidationError(PurchasingError):
    """Entrada inválida detectada antes de llamar a cualquier colaborador"""
    code = "VALIDATION_ERROR"
    status_code = 422

    def __init__(self, message: str, field: Optional[str] = None, data: Optional[Dict[str, Any]] = None):
        data = dict(data or {})
        if field:
            data["field"] = field
        super().__init__(message, data)
        self.field = field


class LineValidationError(InputValidationError):
    code = "LINE_VALIDATION_ERROR"

    def __init__(self, message: str, field: Optional[str] = None, line_index: Optional[int] = None):
        data = {"line_index": line_index} if line_index is not None else None
        super().__init__(message, field=field, data=data)
        self.line_index = line_index


class PaymentValidationError(InputValidationError):
    code = "PAYMENT_VALIDATION_ERROR"


# ===== CONFIRMACIÓN =====

class OverageConfirmationRequired(PurchasingError):
    """El importe supera el pendiente: el usuario debe confirmar explícitamente"""
    code = "OVERAGE_CONFIRMATION_REQUIRED"
    status_code = 409

    def __init__(self, amount: Decimal, max_allowed: Decimal, is_refund: bool = False):
        concept = "el reembolso pendiente" if is_refund else "el pendiente"
        message = (
            f"El importe ({amount}) supera {concept} ({max_allowed}). "
            f"Confirma para registrarlo de todos modos."
        )
        super().__init__(message, {
            "requires_confirmation": True,
            "amount": str(amount),
            "max_allowed": str(max_allowed),
        })
        self.amount = amount
        self.max_allowed = max_allowed
        self.is_refund = is_refund


# ===== OPERACIONES / ESTADO =====

class UnsupportedOperationError(PurchasingError):
    code = "UNSUPPORTED_OPERATION"
    status_code = 400


class DocumentStateError(PurchasingError):
    """Operación no permitida en el estado actual del documento"""
    code = "DOCUMENT_STATE_ERROR"
    status_code = 409

    def __init__(self, message: str, status: Optional[str] = None, action: Optional[str] = None):
        data = {}
        if status is not None:
            data["status"] = status
        if action is not None:
            data["action"] = action
        super().__init__(message, data)
        self.status = status
        self.action = action


class NotFoundError(PurchasingError):
    code = "NOT_FOUND"
    status_code = 404


class PermissionDeniedError(PurchasingError):
    code = "PERMISSION_DENIED"
    status_code = 403


# ===== COLABORADOR (LEDGER) =====

class CollaboratorRejection(PurchasingError):
    """Rechazo del colaborador de persistencia; el mensaje se muestra tal cual"""
    code = "COLLABORATOR_REJECTION"
    status_code = 400


class ClosedPeriodError(CollaboratorRejection):
    code = "PERIOD_CLOSED"

    def __init__(self, message: str = "Periodo cerrado", period_end: Optional[Any] = None):
        data = {"period_end": str(period_end)} if period_end is not None else None
        super().__init__(message, data)
        self.period_end = period_end


def translate_rejection(error: CollaboratorRejection) -> str:
    """
    Traducir rechazos conocidos a un mensaje accionable.

    Los periodos cerrados tienen una acción concreta para el usuario; el resto
    de rechazos se devuelven tal cual.
    """
    if isinstance(error, ClosedPeriodError) or "periodo cerrado" in error.message.lower():
        return (
            "No se puede completar la operación: el mes está cerrado en Contabilidad. "
            "Cambia la fecha a un mes abierto o reabre el periodo."
        )
    return error.message
