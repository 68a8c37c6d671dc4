"""
Modelos SQLAlchemy para documentos de compra

- Facturas de proveedor (INVOICE) y tickets de gasto (EXPENSE) comparten
  cabecera (PurchaseDocument) y líneas (DocumentLine)
- ScannedDocument registra el escaneo asociado; al borrar el documento el
  escaneo vuelve a quedar sin asignar

La contraparte es exactamente una de: proveedor, técnico o beneficiario
manual (nombre libre). La restricción se comprueba también en base de datos.
"""
from sqlalchemy import (
    Column, String, Boolean, Integer, Numeric, Enum, Date, Text, ForeignKey, Uuid, CheckConstraint
)
from sqlalchemy.orm import relationship
from decimal import Decimal
from uuid import uuid4
import enum

from purchasing.database.database import Base
from purchasing.common.mixins import TimestampMixin


# ===== ENUMS =====

class DocumentType(str, enum.Enum):
    INVOICE = "INVOICE"   # Factura de proveedor
    EXPENSE = "EXPENSE"   # Ticket de gasto


class DocumentStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    PENDING = "PENDING"
    PENDING_VALIDATION = "PENDING_VALIDATION"
    REGISTERED = "REGISTERED"
    APPROVED = "APPROVED"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


class PricingMode(str, enum.Enum):
    TAX_EXCLUSIVE = "TAX_EXCLUSIVE"   # Precio sin IVA
    TAX_INCLUSIVE = "TAX_INCLUSIVE"   # Precio con IVA incluido (tickets)


class ScanStatus(str, enum.Enum):
    UNASSIGNED = "UNASSIGNED"
    ASSIGNED = "ASSIGNED"


def default_pricing_mode(document_type: DocumentType) -> PricingMode:
    if document_type == DocumentType.EXPENSE:
        return PricingMode.TAX_INCLUSIVE
    return PricingMode.TAX_EXCLUSIVE


# ===== MODELOS =====

class ScannedDocument(Base, TimestampMixin):
    __tablename__ = "scanned_documents"

    id = Column(Uuid, primary_key=True, default=uuid4)
    file_name = Column(String(255), nullable=False)
    file_path = Column(String(500), nullable=True)
    status = Column(Enum(ScanStatus), nullable=False, default=ScanStatus.UNASSIGNED, index=True)
    assigned_to_type = Column(Enum(DocumentType), nullable=True)
    assigned_to_id = Column(Uuid, nullable=True)


class PurchaseDocument(Base, TimestampMixin):
    """
    Cabecera del documento de compra

    Los importes son los agregados de las líneas; paid_amount lo mantiene el
    registro de pagos y pending_amount siempre se deriva.
    """
    __tablename__ = "purchase_documents"

    id = Column(Uuid, primary_key=True, default=uuid4)
    document_type = Column(Enum(DocumentType), nullable=False, index=True)
    status = Column(Enum(DocumentStatus), nullable=False, default=DocumentStatus.PENDING_VALIDATION, index=True)
    is_locked = Column(Boolean, nullable=False, default=False)
    # Estado previo a quedar pagado; se restaura si se elimina el pago
    pre_payment_status = Column(Enum(DocumentStatus), nullable=True)
    pricing_mode = Column(Enum(PricingMode), nullable=False, default=PricingMode.TAX_EXCLUSIVE)

    # Contraparte (exactamente una)
    supplier_id = Column(Uuid, nullable=True, index=True)
    technician_id = Column(Uuid, nullable=True, index=True)
    beneficiary_name = Column(String(200), nullable=True)
    counterparty_name = Column(String(200), nullable=True)  # Nombre mostrado para proveedor/técnico

    project_id = Column(Uuid, nullable=True, index=True)
    scanned_document_id = Column(Uuid, ForeignKey("scanned_documents.id"), nullable=True)

    supplier_invoice_number = Column(String(100), nullable=True)
    internal_number = Column(String(30), nullable=True, unique=True)  # Número definitivo al aprobar
    issue_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=True)
    notes = Column(Text, nullable=True)

    # Totales calculados
    tax_base = Column(Numeric(15, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(15, 2), nullable=False, default=0)
    withholding_amount = Column(Numeric(15, 2), nullable=False, default=0)
    total = Column(Numeric(15, 2), nullable=False, default=0)
    paid_amount = Column(Numeric(15, 2), nullable=False, default=0)

    created_by = Column(String(64), nullable=True)

    # Relationships
    lines = relationship(
        "DocumentLine",
        back_populates="document",
        cascade="all, delete-orphan",
        order_by="DocumentLine.position"
    )
    payments = relationship("Payment", back_populates="document", order_by="Payment.payment_date")
    scanned_document = relationship("ScannedDocument")

    __table_args__ = (
        CheckConstraint(
            "(CASE WHEN supplier_id IS NOT NULL THEN 1 ELSE 0 END)"
            " + (CASE WHEN technician_id IS NOT NULL THEN 1 ELSE 0 END)"
            " + (CASE WHEN beneficiary_name IS NOT NULL THEN 1 ELSE 0 END) = 1",
            name="ck_purchase_document_single_counterparty"
        ),
    )

    @property
    def pending_amount(self) -> Decimal:
        return Decimal(self.total or 0) - Decimal(self.paid_amount or 0)


class DocumentLine(Base, TimestampMixin):
    """
    Línea de un documento de compra

    unit_price es siempre el precio sin IVA (4 decimales); entered_unit_price
    conserva lo tecleado en el modo de precio del documento.
    """
    __tablename__ = "document_lines"

    id = Column(Uuid, primary_key=True, default=uuid4)
    document_id = Column(Uuid, ForeignKey("purchase_documents.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)

    concept = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    quantity = Column(Numeric(15, 4), nullable=False, default=1)
    unit_price = Column(Numeric(15, 4), nullable=False, default=0)
    entered_unit_price = Column(Numeric(15, 4), nullable=False, default=0)
    tax_rate = Column(Numeric(6, 2), nullable=False, default=0)
    discount_percent = Column(Numeric(5, 2), nullable=False, default=0)
    withholding_tax_rate = Column(Numeric(6, 2), nullable=False, default=0)

    # Calculados
    subtotal = Column(Numeric(15, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(15, 2), nullable=False, default=0)
    total = Column(Numeric(15, 2), nullable=False, default=0)
    withholding_amount = Column(Numeric(15, 2), nullable=False, default=0)

    document = relationship("PurchaseDocument", back_populates="lines")
