from pydantic import BaseModel, Field
from typing import Optional
from decimal import Decimal
from uuid import UUID
from datetime import date, datetime


class PartnerOption(BaseModel):
    """Opción para el selector de socio en pagos personales"""
    id: UUID
    name: str
    partner_number: Optional[str] = None

    class Config:
        from_attributes = True


class PendingReimbursement(BaseModel):
    payment_id: UUID
    document_id: UUID
    document_number: Optional[str] = None
    counterparty_name: Optional[str] = None
    amount: Decimal
    payment_date: date
    payer_partner_id: UUID
    payer_name: str
    partner_number: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None


class ReimbursementCreate(BaseModel):
    bank_account_id: str = Field(..., min_length=1, max_length=64)


class ReimbursementOut(BaseModel):
    payment_id: UUID
    payer_partner_id: UUID
    amount: Decimal
    reimbursed_at: datetime
    reimbursement_bank_account_id: str
