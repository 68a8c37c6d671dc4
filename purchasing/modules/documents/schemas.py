from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Annotated, List, Literal, Optional, Union
from decimal import Decimal
from uuid import UUID
from datetime import date, datetime

from purchasing.modules.documents.models import DocumentType, DocumentStatus, PricingMode


# ===== CONTRAPARTE =====

class SupplierCounterparty(BaseModel):
    kind: Literal["supplier"] = "supplier"
    id: UUID
    name: Optional[str] = None


class TechnicianCounterparty(BaseModel):
    kind: Literal["technician"] = "technician"
    id: UUID
    name: Optional[str] = None


class ManualBeneficiary(BaseModel):
    kind: Literal["manual"] = "manual"
    name: str = Field(..., min_length=1, max_length=200)

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        if not v.strip():
            raise ValueError('El nombre del beneficiario no puede estar vacío')
        return v.strip()


Counterparty = Annotated[
    Union[SupplierCounterparty, TechnicianCounterparty, ManualBeneficiary],
    Field(discriminator="kind")
]

ALLOWED_COUNTERPARTIES = {
    DocumentType.INVOICE: {"supplier", "technician"},
    DocumentType.EXPENSE: {"manual", "supplier"},
}


# ===== LÍNEAS =====

# Los campos numéricos aceptan el texto tal cual lo teclea el usuario ("1.234,56")
NumericInput = Union[Decimal, str, None]


class LineInput(BaseModel):
    """Línea tal como llega del editor; la validación la hace el motor de precios"""
    id: Optional[UUID] = None
    temp_id: Optional[str] = None
    concept: Optional[str] = None
    description: Optional[str] = None
    quantity: NumericInput = Decimal('1')
    unit_price: NumericInput = Decimal('0')
    tax_rate: NumericInput = None  # None = tipo por defecto
    discount_percent: NumericInput = Decimal('0')
    withholding_tax_rate: NumericInput = Decimal('0')


class DocumentLineOut(BaseModel):
    id: Optional[UUID] = None
    temp_id: Optional[str] = None
    concept: Optional[str] = None
    description: Optional[str] = None
    quantity: Decimal
    unit_price: Decimal
    entered_unit_price: Decimal
    tax_rate: Decimal
    discount_percent: Decimal
    withholding_tax_rate: Decimal
    subtotal: Decimal
    tax_amount: Decimal
    total: Decimal
    withholding_amount: Decimal

    class Config:
        from_attributes = True

    @property
    def row_key(self):
        return self.id or self.temp_id


# ===== TOTALES =====

class TaxBreakdownItem(BaseModel):
    rate: Decimal
    label: str
    base: Decimal
    amount: Decimal


class DocumentTotals(BaseModel):
    subtotal: Decimal
    tax_amount: Decimal
    total: Decimal
    withholding_amount: Decimal
    net_payable: Decimal
    tax_breakdown: List[TaxBreakdownItem] = []
    withholding_breakdown: List[TaxBreakdownItem] = []


# ===== DOCUMENTOS =====

class DocumentCreate(BaseModel):
    """Esquema para crear un documento de compra"""
    document_type: DocumentType
    counterparty: Counterparty
    issue_date: date = Field(default_factory=date.today)
    due_date: Optional[date] = None
    supplier_invoice_number: Optional[str] = Field(None, max_length=100)
    project_id: Optional[UUID] = None
    scanned_document_id: Optional[UUID] = None
    pricing_mode: Optional[PricingMode] = None
    notes: Optional[str] = None
    lines: List[LineInput] = []

    @model_validator(mode="after")
    def validate_counterparty_kind(self):
        allowed = ALLOWED_COUNTERPARTIES[self.document_type]
        if self.counterparty.kind not in allowed:
            raise ValueError(
                f"Contraparte '{self.counterparty.kind}' no permitida para {self.document_type.value}"
            )
        if self.due_date and self.due_date < self.issue_date:
            raise ValueError('La fecha de vencimiento no puede ser anterior a la de emisión')
        return self


class DocumentUpdate(BaseModel):
    """Cambios de cabecera; solo se aplican los campos enviados"""
    counterparty: Optional[Counterparty] = None
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    supplier_invoice_number: Optional[str] = Field(None, max_length=100)
    project_id: Optional[UUID] = None
    notes: Optional[str] = None


class LinesReplace(BaseModel):
    lines: List[LineInput]


class PricingModeChange(BaseModel):
    pricing_mode: PricingMode


class ApproveRequest(BaseModel):
    """Ediciones sin guardar que se persisten antes de aprobar"""
    header: Optional[DocumentUpdate] = None
    lines: Optional[List[LineInput]] = None


class PreviewRequest(BaseModel):
    document_type: DocumentType
    pricing_mode: Optional[PricingMode] = None
    lines: List[LineInput] = []


class PreviewResponse(BaseModel):
    pricing_mode: PricingMode
    lines: List[DocumentLineOut]
    totals: DocumentTotals


class AllowedActions(BaseModel):
    can_edit: bool
    can_register_payment: bool
    can_approve: bool
    can_delete: bool
    can_cancel: bool


class DocumentOut(BaseModel):
    id: UUID
    document_type: DocumentType
    status: DocumentStatus
    is_locked: bool
    pricing_mode: PricingMode
    counterparty: Counterparty
    project_id: Optional[UUID] = None
    scanned_document_id: Optional[UUID] = None
    supplier_invoice_number: Optional[str] = None
    internal_number: Optional[str] = None
    issue_date: date
    due_date: Optional[date] = None
    notes: Optional[str] = None
    tax_base: Decimal
    tax_amount: Decimal
    withholding_amount: Decimal
    total: Decimal
    paid_amount: Decimal
    pending_amount: Decimal
    payment_status: Optional[str] = None
    is_overdue: bool = False
    created_at: Optional[datetime] = None


class DocumentDetail(DocumentOut):
    lines: List[DocumentLineOut]
    totals: DocumentTotals
    allowed_actions: AllowedActions


class DocumentList(BaseModel):
    documents: List[DocumentOut]
    total: int
    limit: int
    offset: int


class SettlementView(BaseModel):
    """Saldo del documento tal como lo ve el motor de liquidación"""
    document_id: UUID
    document_type: DocumentType
    status: DocumentStatus
    is_locked: bool
    total: Decimal
    paid_amount: Decimal
    pending_amount: Decimal
    editing_payment_amount: Optional[Decimal] = None
