from pydantic import BaseModel, Field
from typing import Literal, Optional, Union
from decimal import Decimal
from uuid import UUID
from datetime import date, datetime

from purchasing.modules.payments.models import PaymentMethod, SettlementMode
from purchasing.modules.documents.schemas import SettlementView


# ===== SOLICITUDES =====

class PaymentRequestBase(BaseModel):
    amount: Union[Decimal, str]  # Texto tal cual lo teclea el usuario
    payment_date: date = Field(default_factory=date.today)
    notes: Optional[str] = None
    confirm_overage: bool = False
    request_id: Optional[str] = Field(None, max_length=64)
    payment_id: Optional[UUID] = None  # Pago en edición


class StandardPaymentRequest(PaymentRequestBase):
    mode: Literal["STANDARD"] = "STANDARD"
    method: PaymentMethod = PaymentMethod.TRANSFER
    bank_account_id: Optional[str] = Field(None, max_length=64)
    bank_reference: Optional[str] = Field(None, max_length=100)


class PersonalPaymentRequest(PaymentRequestBase):
    mode: Literal["PERSONAL"] = "PERSONAL"
    payer_partner_id: Optional[UUID] = None


class FinancingPaymentRequest(PaymentRequestBase):
    mode: Literal["FINANCING"] = "FINANCING"
    provider_id: Optional[UUID] = None
    num_installments: int = 1
    fee_amount: Union[Decimal, str] = Decimal('0')
    bank_account_id: Optional[str] = Field(None, max_length=64)
    first_due_date: Optional[date] = None
    contract_reference: Optional[str] = Field(None, max_length=100)


# El campo "mode" decide el tipo concreto
SettlementRequest = Union[StandardPaymentRequest, PersonalPaymentRequest, FinancingPaymentRequest]


# ===== INSTRUCCIÓN =====

class SettlementInstruction(BaseModel):
    """Pago validado, listo para el registro de pagos"""
    document_id: UUID
    mode: SettlementMode
    request_id: str
    amount: Decimal  # Con signo: negativo en documentos a devolver
    is_refund: bool = False
    payment_date: date
    method: PaymentMethod
    notes: Optional[str] = None
    bank_account_id: Optional[str] = None
    bank_reference: Optional[str] = None
    payer_partner_id: Optional[UUID] = None
    provider_id: Optional[UUID] = None
    num_installments: Optional[int] = None
    fee_amount: Optional[Decimal] = None
    first_due_date: Optional[date] = None
    contract_reference: Optional[str] = None


# ===== RESPUESTAS =====

class PaymentOut(BaseModel):
    id: UUID
    document_id: UUID
    request_id: str
    amount: Decimal
    payment_date: date
    method: PaymentMethod
    settlement_mode: SettlementMode
    bank_reference: Optional[str] = None
    bank_account_id: Optional[str] = None
    notes: Optional[str] = None
    payer_partner_id: Optional[UUID] = None
    reimbursed_at: Optional[datetime] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PaymentRegistered(BaseModel):
    payment: PaymentOut
    settlement: SettlementView
    document_status: str
    payment_status: Optional[str] = None
