from fastapi import APIRouter, Depends, Query, status
from typing import List, Optional
from uuid import UUID

from purchasing.dependencies.dbDependecies import db_dependency
from purchasing.dependencies.userDependencies import user_dependency
from purchasing.modules.auth.dependencies import AuthDependencies
from purchasing.modules.auth.schemas import AuthContext
from purchasing.modules.financing.models import CreditOperationStatus
from purchasing.modules.financing.service import FinancingService
from purchasing.modules.financing.schemas import (
    CreditProviderCreate, CreditProviderUpdate, CreditProviderOut, CreditOperationOut,
    CreditOperationDetail, InstallmentPay
)

financing_router = APIRouter(prefix="/financing", tags=["Financing"])


@financing_router.get("/providers", response_model=List[CreditProviderOut])
def list_credit_providers(
    db: db_dependency,
    current_user: user_dependency,
    include_inactive: bool = Query(False)
):
    """Entidades de financiación para el selector de pagos"""
    return FinancingService(db).list_credit_providers(include_inactive)


@financing_router.post("/providers", response_model=CreditProviderOut, status_code=status.HTTP_201_CREATED)
def create_credit_provider(
    data: CreditProviderCreate,
    db: db_dependency,
    auth_context: AuthContext = Depends(AuthDependencies.require_privileged())
):
    return FinancingService(db).create_provider(data)


@financing_router.patch("/providers/{provider_id}", response_model=CreditProviderOut)
def update_credit_provider(
    provider_id: UUID,
    data: CreditProviderUpdate,
    db: db_dependency,
    auth_context: AuthContext = Depends(AuthDependencies.require_privileged())
):
    """Actualizar o desactivar una entidad de financiación"""
    return FinancingService(db).update_provider(provider_id, data)


@financing_router.get("/operations", response_model=List[CreditOperationOut])
def list_credit_operations(
    db: db_dependency,
    current_user: user_dependency,
    status_filter: Optional[CreditOperationStatus] = Query(None, alias="status")
):
    return FinancingService(db).list_operations(status_filter)


@financing_router.get("/operations/{operation_id}", response_model=CreditOperationDetail)
def get_credit_operation(operation_id: UUID, db: db_dependency, current_user: user_dependency):
    """Detalle de la operación con su calendario de cuotas"""
    return FinancingService(db).get_operation_detail(operation_id)


@financing_router.post("/installments/{installment_id}/pay", response_model=CreditOperationDetail)
def pay_installment(
    installment_id: UUID,
    data: InstallmentPay,
    db: db_dependency,
    auth_context: AuthContext = Depends(AuthDependencies.require_privileged())
):
    return FinancingService(db).pay_installment(installment_id, data)
