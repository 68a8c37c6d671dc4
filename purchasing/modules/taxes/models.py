"""
Modelo SQLAlchemy de tipos impositivos

Opciones de IVA y retención que el editor de líneas ofrece para compras y
ventas. Las etiquetas se usan también en el desglose de totales.
"""
from sqlalchemy import Column, String, Numeric, Boolean, Enum, UniqueConstraint
import enum

from purchasing.database.database import Base
from purchasing.common.mixins import BaseMixin


class TaxKind(str, enum.Enum):
    PURCHASE = "purchase"
    SALES = "sales"


class TaxType(str, enum.Enum):
    VAT = "VAT"                  # IVA
    WITHHOLDING = "WITHHOLDING"  # Retención (IRPF)


class TaxRate(Base, BaseMixin):
    __tablename__ = "tax_rates"

    name = Column(String(100), nullable=False)
    rate = Column(Numeric(6, 2), nullable=False)  # Porcentaje: 21 = 21%
    kind = Column(Enum(TaxKind), nullable=False, default=TaxKind.PURCHASE, index=True)
    tax_type = Column(Enum(TaxType), nullable=False, default=TaxType.VAT, index=True)
    is_default = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint("kind", "tax_type", "rate", name="uq_tax_rate_kind_type_rate"),
    )
