"""
Pagos de documentos de compra

El modo de liquidación no se guarda: se deduce del método.
PERSONAL = pagado por un socio (pendiente de reembolso),
EXTERNAL_CREDIT = reclasificado como financiación, el resto = pago estándar.
"""
from sqlalchemy import Column, String, Numeric, Enum, Date, Text, ForeignKey, Uuid, DateTime
from sqlalchemy.orm import relationship
from uuid import uuid4
import enum

from purchasing.database.database import Base
from purchasing.common.mixins import TimestampMixin


class PaymentMethod(str, enum.Enum):
    TRANSFER = "TRANSFER"
    CARD = "CARD"
    CASH = "CASH"
    DIRECT_DEBIT = "DIRECT_DEBIT"
    CHECK = "CHECK"
    PERSONAL = "PERSONAL"
    EXTERNAL_CREDIT = "EXTERNAL_CREDIT"
    OTHER = "OTHER"


# Métodos que el registro estándar no puede usar
RESERVED_METHODS = {PaymentMethod.PERSONAL, PaymentMethod.EXTERNAL_CREDIT}


class SettlementMode(str, enum.Enum):
    STANDARD = "STANDARD"
    PERSONAL = "PERSONAL"
    FINANCING = "FINANCING"


def settlement_mode_for(method: PaymentMethod) -> SettlementMode:
    if method == PaymentMethod.PERSONAL:
        return SettlementMode.PERSONAL
    if method == PaymentMethod.EXTERNAL_CREDIT:
        return SettlementMode.FINANCING
    return SettlementMode.STANDARD


class Payment(Base, TimestampMixin):
    __tablename__ = "payments"

    id = Column(Uuid, primary_key=True, default=uuid4)
    document_id = Column(Uuid, ForeignKey("purchase_documents.id"), nullable=False, index=True)
    request_id = Column(String(64), nullable=False, unique=True)  # Clave de idempotencia

    amount = Column(Numeric(15, 2), nullable=False)  # Negativo en documentos a devolver
    payment_date = Column(Date, nullable=False)
    method = Column(Enum(PaymentMethod), nullable=False)
    bank_reference = Column(String(100), nullable=True)
    bank_account_id = Column(String(64), nullable=True)
    notes = Column(Text, nullable=True)
    created_by = Column(String(64), nullable=True)

    # Pago personal de un socio
    payer_partner_id = Column(Uuid, ForeignKey("partners.id"), nullable=True, index=True)
    reimbursed_at = Column(DateTime(timezone=True), nullable=True)
    reimbursement_bank_account_id = Column(String(64), nullable=True)

    document = relationship("PurchaseDocument", back_populates="payments")
    payer_partner = relationship("Partner")

    @property
    def settlement_mode(self) -> SettlementMode:
        return settlement_mode_for(self.method)
