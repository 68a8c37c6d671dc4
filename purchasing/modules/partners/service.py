from fastapi import HTTPException, status
from sqlalchemy.orm import Session, selectinload
from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID
import logging

from purchasing.common.exceptions import (
    PurchasingError, NotFoundError, UnsupportedOperationError, DocumentStateError
)
from purchasing.modules.partners.models import Partner
from purchasing.modules.partners.schemas import (
    PartnerOption, PendingReimbursement, ReimbursementCreate, ReimbursementOut
)
from purchasing.modules.payments.models import Payment, PaymentMethod

logger = logging.getLogger(__name__)


class PartnerService:
    def __init__(self, db: Session):
        self.db = db

    def list_active_partners(self) -> List[Partner]:
        return self.db.query(Partner).filter(Partner.is_active == True).order_by(Partner.name).all()

    def list_partners_for_selector(self) -> List[PartnerOption]:
        return [PartnerOption.model_validate(p) for p in self.list_active_partners()]

    def list_pending_reimbursements(self, partner_id: Optional[UUID] = None) -> List[PendingReimbursement]:
        """Pagos personales todavía no reembolsados al socio"""
        query = self.db.query(Payment).options(
            selectinload(Payment.document),
            selectinload(Payment.payer_partner)
        ).filter(
            Payment.method == PaymentMethod.PERSONAL,
            Payment.reimbursed_at.is_(None)
        )
        if partner_id:
            query = query.filter(Payment.payer_partner_id == partner_id)

        result = []
        for payment in query.order_by(Payment.payment_date).all():
            document = payment.document
            result.append(PendingReimbursement(
                payment_id=payment.id,
                document_id=payment.document_id,
                document_number=document.internal_number or document.supplier_invoice_number,
                counterparty_name=document.counterparty_name or document.beneficiary_name,
                amount=payment.amount,
                payment_date=payment.payment_date,
                payer_partner_id=payment.payer_partner_id,
                payer_name=payment.payer_partner.name,
                partner_number=payment.payer_partner.partner_number,
                notes=payment.notes,
                created_at=payment.created_at,
            ))
        return result

    def reimburse_personal_purchase(self, payment_id: UUID, data: ReimbursementCreate) -> ReimbursementOut:
        """Registrar el reembolso al socio de un pago personal"""
        try:
            payment = self.db.query(Payment).filter(Payment.id == payment_id).first()
            if not payment:
                raise NotFoundError("Pago no encontrado", {"payment_id": str(payment_id)})
            if payment.method != PaymentMethod.PERSONAL:
                raise UnsupportedOperationError("Solo los pagos personales se pueden reembolsar")
            if payment.reimbursed_at is not None:
                raise DocumentStateError("El pago ya fue reembolsado", action="reimburse")

            payment.reimbursed_at = datetime.now(timezone.utc)
            payment.reimbursement_bank_account_id = data.bank_account_id
            self.db.commit()
            self.db.refresh(payment)
            logger.info(f"Personal payment {payment_id} reimbursed to partner {payment.payer_partner_id}")

            return ReimbursementOut(
                payment_id=payment.id,
                payer_partner_id=payment.payer_partner_id,
                amount=payment.amount,
                reimbursed_at=payment.reimbursed_at,
                reimbursement_bank_account_id=payment.reimbursement_bank_account_id,
            )
        except PurchasingError:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error al registrar el reembolso: {str(e)}"
            )
