"""
Modelos SQLAlchemy para financiación externa de compras

- Entidades de crédito (CreditProvider)
- Operaciones de crédito (CreditOperation): una compra reclasificada como
  deuda con la entidad
- Cuotas (Installment): calendario mensual de la operación
"""
from sqlalchemy import Column, String, Integer, Numeric, Enum, Date, Text, ForeignKey, Uuid
from sqlalchemy.orm import relationship
from uuid import uuid4
import enum

from purchasing.database.database import Base
from purchasing.common.mixins import BaseMixin, TimestampMixin


class CreditOperationStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"          # Con cuotas pendientes
    COMPLETED = "COMPLETED"    # Todas las cuotas pagadas
    DEFAULT = "DEFAULT"        # Impago


class InstallmentStatus(str, enum.Enum):
    """Estado almacenado; OVERDUE se deriva de due_date, nunca se guarda"""
    PENDING = "PENDING"
    PAID = "PAID"


class CreditProvider(Base, BaseMixin):
    __tablename__ = "credit_providers"

    name = Column(String(200), nullable=False, unique=True)
    provider_type = Column(String(50), nullable=True)  # BNPL, leasing, préstamo...
    contact_email = Column(String(100), nullable=True)

    operations = relationship("CreditOperation", back_populates="provider")


class CreditOperation(Base, TimestampMixin):
    __tablename__ = "credit_operations"

    id = Column(Uuid, primary_key=True, default=uuid4)
    provider_id = Column(Uuid, ForeignKey("credit_providers.id"), nullable=False, index=True)
    document_id = Column(Uuid, ForeignKey("purchase_documents.id"), nullable=False, index=True)
    payment_id = Column(Uuid, ForeignKey("payments.id"), nullable=True)

    gross_amount = Column(Numeric(15, 2), nullable=False)
    fee_amount = Column(Numeric(15, 2), nullable=False, default=0)
    num_installments = Column(Integer, nullable=False, default=1)
    contract_reference = Column(String(100), nullable=True)
    bank_account_id = Column(String(64), nullable=True)  # Cuenta donde se cargan las cuotas
    status = Column(Enum(CreditOperationStatus), nullable=False, default=CreditOperationStatus.ACTIVE, index=True)
    notes = Column(Text, nullable=True)

    # Acumulados desde las cuotas
    total_paid = Column(Numeric(15, 2), nullable=False, default=0)
    total_pending = Column(Numeric(15, 2), nullable=False, default=0)

    created_by = Column(String(64), nullable=True)

    provider = relationship("CreditProvider", back_populates="operations")
    document = relationship("PurchaseDocument")
    installments = relationship(
        "Installment",
        back_populates="operation",
        cascade="all, delete-orphan",
        order_by="Installment.installment_number"
    )


class Installment(Base, TimestampMixin):
    __tablename__ = "credit_installments"

    id = Column(Uuid, primary_key=True, default=uuid4)
    operation_id = Column(Uuid, ForeignKey("credit_operations.id"), nullable=False, index=True)
    installment_number = Column(Integer, nullable=False)
    due_date = Column(Date, nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)
    principal = Column(Numeric(15, 2), nullable=False)
    interest = Column(Numeric(15, 2), nullable=False, default=0)
    outstanding = Column(Numeric(15, 2), nullable=False)  # Saldo pendiente tras esta cuota
    status = Column(Enum(InstallmentStatus), nullable=False, default=InstallmentStatus.PENDING)
    paid_date = Column(Date, nullable=True)
    bank_account_id = Column(String(64), nullable=True)

    operation = relationship("CreditOperation", back_populates="installments")
