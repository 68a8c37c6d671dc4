from fastapi import APIRouter, Depends, status, Query
from typing import List

from purchasing.dependencies.dbDependecies import db_dependency
from purchasing.dependencies.userDependencies import user_dependency
from purchasing.modules.auth.dependencies import AuthDependencies
from purchasing.modules.auth.schemas import AuthContext
from purchasing.modules.taxes.models import TaxKind, TaxType
from purchasing.modules.taxes.service import TaxService
from purchasing.modules.taxes.schemas import TaxRateCreate, TaxRateOut, TaxRateOption, DefaultTaxRate

taxes_router = APIRouter(prefix="/taxes", tags=["Taxes"])


@taxes_router.get("", response_model=List[TaxRateOption])
def list_tax_rates(
    db: db_dependency,
    current_user: user_dependency,
    kind: TaxKind = Query(TaxKind.PURCHASE),
    tax_type: TaxType = Query(TaxType.VAT),
    include_inactive: bool = Query(False)
):
    """
    Listar tipos impositivos para el selector del editor de líneas

    - **kind**: purchase (compras) o sales (ventas)
    - **tax_type**: VAT (IVA) o WITHHOLDING (retención)
    """
    return TaxService(db).get_tax_rates(kind, tax_type, include_inactive)


@taxes_router.get("/default", response_model=DefaultTaxRate)
def get_default_tax_rate(
    db: db_dependency,
    current_user: user_dependency,
    kind: TaxKind = Query(TaxKind.PURCHASE)
):
    """Tipo por defecto para líneas nuevas"""
    return TaxService(db).get_default_rate(kind)


@taxes_router.post("", response_model=TaxRateOut, status_code=status.HTTP_201_CREATED)
def create_tax_rate(
    tax_data: TaxRateCreate,
    db: db_dependency,
    auth_context: AuthContext = Depends(AuthDependencies.require_privileged())
):
    """Crear un tipo impositivo (solo administradores)"""
    return TaxService(db).create_tax_rate(tax_data)
