from fastapi import HTTPException, status
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from decimal import Decimal
from typing import Dict, List
import logging

from purchasing.core.config import settings
from purchasing.common.money import format_rate
from purchasing.modules.taxes.models import TaxRate, TaxKind, TaxType
from purchasing.modules.taxes.schemas import TaxRateCreate, TaxRateOption, DefaultTaxRate

logger = logging.getLogger(__name__)


class TaxService:
    def __init__(self, db: Session):
        self.db = db

    def _query(self, kind: TaxKind, tax_type: TaxType, include_inactive: bool = False):
        query = self.db.query(TaxRate).filter(TaxRate.kind == kind, TaxRate.tax_type == tax_type)
        if not include_inactive:
            query = query.filter(TaxRate.is_active == True)
        return query.order_by(TaxRate.rate.desc())

    def get_tax_rates(
        self,
        kind: TaxKind = TaxKind.PURCHASE,
        tax_type: TaxType = TaxType.VAT,
        include_inactive: bool = False
    ) -> List[TaxRateOption]:
        """Opciones de impuesto para el selector del editor de líneas"""
        try:
            return [
                TaxRateOption(
                    rate=tax.rate,
                    label=tax.name,
                    is_default=tax.is_default,
                    is_active=tax.is_active
                )
                for tax in self._query(kind, tax_type, include_inactive).all()
            ]
        except Exception as e:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error al obtener impuestos: {str(e)}"
            )

    def get_default_rate(self, kind: TaxKind = TaxKind.PURCHASE) -> DefaultTaxRate:
        """
        Tipo por defecto para líneas nuevas.

        Si no hay ninguno marcado como predeterminado se usa DEFAULT_TAX_RATE.
        """
        default = self._query(kind, TaxType.VAT).filter(TaxRate.is_default == True).first()
        if default:
            return DefaultTaxRate(kind=kind, rate=default.rate, label=default.name)
        rate = settings.DEFAULT_TAX_RATE
        return DefaultTaxRate(kind=kind, rate=rate, label=f"IVA {format_rate(rate)}%")

    def get_labels(self, kind: TaxKind = TaxKind.PURCHASE, tax_type: TaxType = TaxType.VAT) -> Dict[Decimal, str]:
        """Etiquetas por porcentaje para el desglose de totales"""
        return {tax.rate: tax.name for tax in self._query(kind, tax_type, include_inactive=True).all()}

    def create_tax_rate(self, tax_data: TaxRateCreate) -> TaxRate:
        """Crear un tipo impositivo; si es predeterminado desmarca el anterior"""
        try:
            if tax_data.tax_type == TaxType.WITHHOLDING and tax_data.rate < 0:
                raise HTTPException(
                    status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                    detail="La retención no puede ser negativa"
                )

            existing = self.db.query(TaxRate).filter(
                TaxRate.kind == tax_data.kind,
                TaxRate.tax_type == tax_data.tax_type,
                TaxRate.rate == tax_data.rate
            ).first()
            if existing:
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail=f"Ya existe un impuesto del {format_rate(tax_data.rate)}% para este tipo"
                )

            if tax_data.is_default:
                self.db.query(TaxRate).filter(
                    TaxRate.kind == tax_data.kind,
                    TaxRate.tax_type == tax_data.tax_type,
                    TaxRate.is_default == True
                ).update({TaxRate.is_default: False}, synchronize_session=False)

            tax = TaxRate(**tax_data.model_dump())
            self.db.add(tax)
            self.db.commit()
            self.db.refresh(tax)
            logger.info(f"Tax rate created: {tax.name} ({tax.kind.value}/{tax.tax_type.value})")
            return tax

        except HTTPException:
            raise
        except IntegrityError as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Error de integridad: {str(e)}"
            )
        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error interno del servidor: {str(e)}"
            )
