from fastapi import APIRouter, Depends, Query
from typing import List, Optional
from uuid import UUID

from purchasing.dependencies.dbDependecies import db_dependency
from purchasing.dependencies.userDependencies import user_dependency
from purchasing.modules.auth.dependencies import AuthDependencies
from purchasing.modules.auth.schemas import AuthContext
from purchasing.modules.partners.service import PartnerService
from purchasing.modules.partners.schemas import (
    PartnerOption, PendingReimbursement, ReimbursementCreate, ReimbursementOut
)

partners_router = APIRouter(prefix="/partners", tags=["Partners"])


@partners_router.get("", response_model=List[PartnerOption])
def list_partners(db: db_dependency, current_user: user_dependency):
    """Socios activos para el selector de pagos personales"""
    return PartnerService(db).list_partners_for_selector()


@partners_router.get("/reimbursements/pending", response_model=List[PendingReimbursement])
def list_pending_reimbursements(
    db: db_dependency,
    current_user: user_dependency,
    partner_id: Optional[UUID] = Query(None)
):
    return PartnerService(db).list_pending_reimbursements(partner_id)


@partners_router.post("/reimbursements/{payment_id}", response_model=ReimbursementOut)
def reimburse_personal_purchase(
    payment_id: UUID,
    data: ReimbursementCreate,
    db: db_dependency,
    auth_context: AuthContext = Depends(AuthDependencies.require_privileged())
):
    """Registrar el reembolso de un pago personal (solo administradores)"""
    return PartnerService(db).reimburse_personal_purchase(payment_id, data)
