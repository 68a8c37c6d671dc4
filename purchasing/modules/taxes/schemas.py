from pydantic import BaseModel, Field, field_validator
from decimal import Decimal
from uuid import UUID
from datetime import datetime

from purchasing.modules.taxes.models import TaxKind, TaxType


class TaxRateCreate(BaseModel):
    """Esquema para crear un tipo impositivo"""
    name: str = Field(..., min_length=1, max_length=100, description="Nombre (ej. 'IVA 21%')")
    rate: Decimal = Field(..., description="Porcentaje (ej. 21 para 21%)")
    kind: TaxKind = TaxKind.PURCHASE
    tax_type: TaxType = TaxType.VAT
    is_default: bool = False

    @field_validator('rate')
    @classmethod
    def validate_rate(cls, v):
        if v <= -100 or v > 100:
            raise ValueError('El porcentaje debe ser mayor que -100 y como máximo 100')
        return v


class TaxRateOut(BaseModel):
    id: UUID
    name: str
    rate: Decimal
    kind: TaxKind
    tax_type: TaxType
    is_default: bool
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class TaxRateOption(BaseModel):
    """Opción para el selector de impuestos del editor de líneas"""
    rate: Decimal
    label: str
    is_default: bool
    is_active: bool


class DefaultTaxRate(BaseModel):
    kind: TaxKind
    rate: Decimal
    label: str
