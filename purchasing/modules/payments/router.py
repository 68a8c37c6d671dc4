from fastapi import APIRouter, Body, Depends, status
from typing import List
from uuid import UUID

from purchasing.dependencies.dbDependecies import db_dependency
from purchasing.dependencies.userDependencies import user_dependency
from purchasing.modules.auth.dependencies import AuthDependencies
from purchasing.modules.auth.schemas import AuthContext
from purchasing.modules.payments.service import PaymentService
from purchasing.modules.payments.schemas import PaymentOut, PaymentRegistered, SettlementRequest

payments_router = APIRouter(tags=["Payments"])


@payments_router.post(
    "/documents/{document_id}/payments",
    response_model=PaymentRegistered,
    status_code=status.HTTP_201_CREATED
)
def register_payment(
    document_id: UUID,
    db: db_dependency,
    current_user: user_dependency,
    request: SettlementRequest = Body(..., discriminator="mode")
):
    """
    Registrar un pago

    - **mode**: STANDARD, PERSONAL (pagado por un socio) o FINANCING (reclasificado a una entidad)
    - **amount**: importe tal cual se teclea ("1.234,56" o 1234.56)
    - **confirm_overage**: obligatorio si el importe supera el pendiente
    - **request_id**: clave de idempotencia; reintentos con la misma clave no duplican el pago
    """
    return PaymentService(db).register_payment(document_id, request, current_user)


@payments_router.get("/documents/{document_id}/payments", response_model=List[PaymentOut])
def list_payments(document_id: UUID, db: db_dependency, current_user: user_dependency):
    return PaymentService(db).list_payments(document_id)


@payments_router.delete("/payments/{payment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_payment(
    payment_id: UUID,
    db: db_dependency,
    auth_context: AuthContext = Depends(AuthDependencies.require_privileged())
):
    """Eliminar un pago estándar (solo administradores)"""
    PaymentService(db).delete_payment(payment_id)
