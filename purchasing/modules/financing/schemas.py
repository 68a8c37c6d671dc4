from pydantic import BaseModel, Field
from typing import List, Optional
from decimal import Decimal
from uuid import UUID
from datetime import date, datetime

from purchasing.modules.financing.models import CreditOperationStatus


class CreditProviderCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    provider_type: Optional[str] = Field(None, max_length=50)
    contact_email: Optional[str] = Field(None, max_length=100)


class CreditProviderUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    provider_type: Optional[str] = Field(None, max_length=50)
    contact_email: Optional[str] = Field(None, max_length=100)
    is_active: Optional[bool] = None


class CreditProviderOut(BaseModel):
    id: UUID
    name: str
    provider_type: Optional[str] = None
    contact_email: Optional[str] = None
    is_active: bool

    class Config:
        from_attributes = True


class ScheduledInstallment(BaseModel):
    """Cuota calculada antes de persistir la operación"""
    installment_number: int
    due_date: date
    amount: Decimal
    principal: Decimal
    interest: Decimal
    outstanding: Decimal


class InstallmentOut(BaseModel):
    id: UUID
    installment_number: int
    due_date: date
    amount: Decimal
    principal: Decimal
    interest: Decimal
    outstanding: Decimal
    status: str  # PENDING, PAID u OVERDUE (derivado)
    paid_date: Optional[date] = None
    bank_account_id: Optional[str] = None


class CreditOperationOut(BaseModel):
    id: UUID
    provider_id: UUID
    provider_name: Optional[str] = None
    document_id: UUID
    payment_id: Optional[UUID] = None
    contract_reference: Optional[str] = None
    gross_amount: Decimal
    fee_amount: Decimal
    num_installments: int
    total_paid: Decimal
    total_pending: Decimal
    status: CreditOperationStatus
    created_at: Optional[datetime] = None


class CreditOperationDetail(BaseModel):
    operation: CreditOperationOut
    installments: List[InstallmentOut]


class InstallmentPay(BaseModel):
    paid_date: date = Field(default_factory=date.today)
    bank_account_id: Optional[str] = Field(None, max_length=64)

