"""
Registro de pagos (fuente de verdad de los saldos)

- submit_payment persiste una instrucción ya validada por SettlementEngine.
  Es idempotente por request_id: reintentar la misma solicitud devuelve el
  pago existente.
- paid_amount del documento se recalcula como suma de sus pagos.
- Al saldar el documento pasa a PAID; al borrar un pago de un documento
  PAID vuelve a APPROVED (o al estado previo si aún no estaba aprobado).
"""
from fastapi import HTTPException, status
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from sqlalchemy import func
from decimal import Decimal
from typing import List, Optional
from uuid import UUID
import logging

from purchasing.common.exceptions import (
    PurchasingError, NotFoundError, UnsupportedOperationError, CollaboratorRejection
)
from purchasing.common.money import ZERO, round2
from purchasing.modules.auth.schemas import AuthContext
from purchasing.modules.documents.models import DocumentStatus, PurchaseDocument
from purchasing.modules.documents.service import DocumentService, check_open_period
from purchasing.modules.documents.status import DocumentStateMachine, derive_payment_status
from purchasing.modules.financing.service import FinancingService
from purchasing.modules.partners.service import PartnerService
from purchasing.modules.payments.models import Payment, SettlementMode
from purchasing.modules.payments.schemas import PaymentOut, PaymentRegistered, SettlementInstruction
from purchasing.modules.payments.settlement import SettlementEngine

logger = logging.getLogger(__name__)


class PaymentService:
    def __init__(self, db: Session):
        self.db = db

    def _recalculate_paid(self, document: PurchaseDocument) -> Decimal:
        paid = self.db.query(func.coalesce(func.sum(Payment.amount), 0)).filter(
            Payment.document_id == document.id
        ).scalar()
        document.paid_amount = round2(paid or ZERO)
        return document.paid_amount

    def _find_by_request(self, request_id: str) -> Optional[Payment]:
        return self.db.query(Payment).filter(Payment.request_id == request_id).first()

    def build_engine(self) -> SettlementEngine:
        return SettlementEngine(
            credit_providers=FinancingService(self.db).list_credit_providers(),
            partners=PartnerService(self.db).list_active_partners(),
        )

    def submit_payment(self, instruction: SettlementInstruction, user_id: Optional[str] = None) -> UUID:
        """
        Persistir un pago validado y devolver su id.

        Pago, operación de crédito (si aplica) y nuevo saldo del documento se
        guardan en una sola transacción.
        """
        existing = self._find_by_request(instruction.request_id)
        if existing:
            if existing.document_id != instruction.document_id:
                raise CollaboratorRejection("La clave de la solicitud ya se usó para otro documento")
            logger.info(f"Duplicate payment request {instruction.request_id}; returning {existing.id}")
            return existing.id

        try:
            document = self.db.query(PurchaseDocument).filter(
                PurchaseDocument.id == instruction.document_id
            ).first()
            if not document:
                raise NotFoundError("Documento no encontrado", {"document_id": str(instruction.document_id)})

            machine = DocumentStateMachine(document.status, document.is_locked, document.internal_number)
            machine.ensure_can_register_payment()
            check_open_period(instruction.payment_date)

            payment = Payment(
                document_id=document.id,
                request_id=instruction.request_id,
                amount=instruction.amount,
                payment_date=instruction.payment_date,
                method=instruction.method,
                bank_reference=instruction.bank_reference,
                bank_account_id=instruction.bank_account_id,
                notes=instruction.notes,
                created_by=user_id,
                payer_partner_id=instruction.payer_partner_id,
            )
            self.db.add(payment)
            self.db.flush()

            if instruction.mode == SettlementMode.FINANCING:
                FinancingService(self.db).create_operation(document.id, payment.id, instruction, user_id)

            self._recalculate_paid(document)
            new_status = machine.status_after_payment(document.pending_amount, document.total)
            if new_status == DocumentStatus.PAID and document.status != DocumentStatus.PAID:
                document.pre_payment_status = document.status
            document.status = new_status

            self.db.commit()
            logger.info(
                f"Payment {payment.id} ({instruction.mode.value}) of {instruction.amount} "
                f"registered for document {document.id}; pending={document.pending_amount}"
            )
            return payment.id

        except PurchasingError:
            self.db.rollback()
            raise
        except IntegrityError:
            # Otra petición con la misma clave llegó antes
            self.db.rollback()
            existing = self._find_by_request(instruction.request_id)
            if existing:
                if existing.document_id != instruction.document_id:
                    raise CollaboratorRejection("La clave de la solicitud ya se usó para otro documento")
                return existing.id
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error registering payment for document {instruction.document_id}: {e}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error al registrar el pago: {str(e)}"
            )

    def register_payment(self, document_id: UUID, request, auth: AuthContext) -> PaymentRegistered:
        """Validar con el motor de liquidación, persistir y devolver el saldo actualizado"""
        documents = DocumentService(self.db)
        # Un reintento ya registrado no se vuelve a validar contra el saldo
        existing = self._find_by_request(request.request_id) if request.request_id else None
        if existing and existing.document_id == document_id:
            logger.info(f"Duplicate payment request {request.request_id}; returning {existing.id}")
            payment_id = existing.id
        else:
            view = documents.get_settlement_view(document_id)
            instruction = self.build_engine().register_payment(view, request)
            payment_id = self.submit_payment(instruction, auth.user_id)

        self.db.expire_all()
        payment = self.db.query(Payment).filter(Payment.id == payment_id).first()
        settlement = documents.get_settlement_view(document_id)
        payment_status = derive_payment_status(settlement.total, settlement.paid_amount, settlement.status)
        return PaymentRegistered(
            payment=PaymentOut.model_validate(payment),
            settlement=settlement,
            document_status=settlement.status.value,
            payment_status=payment_status.value if payment_status else None,
        )

    def list_payments(self, document_id: UUID) -> List[Payment]:
        document = self.db.query(PurchaseDocument).filter(PurchaseDocument.id == document_id).first()
        if not document:
            raise NotFoundError("Documento no encontrado", {"document_id": str(document_id)})
        return self.db.query(Payment).filter(Payment.document_id == document_id).order_by(
            Payment.payment_date, Payment.created_at
        ).all()

    def delete_payment(self, payment_id: UUID) -> None:
        """
        Eliminar un pago estándar.

        Los pagos personales y de financiación tienen asientos asociados
        (reembolso, operación de crédito) y no se pueden borrar desde aquí.
        """
        try:
            payment = self.db.query(Payment).filter(Payment.id == payment_id).first()
            if not payment:
                raise NotFoundError("Pago no encontrado", {"payment_id": str(payment_id)})
            if payment.settlement_mode != SettlementMode.STANDARD:
                raise UnsupportedOperationError(
                    "Solo se pueden eliminar pagos estándar",
                    {"mode": payment.settlement_mode.value}
                )
            check_open_period(payment.payment_date)

            document = payment.document
            self.db.delete(payment)
            self.db.flush()

            self._recalculate_paid(document)
            machine = DocumentStateMachine.for_document(document)
            document.status = machine.status_after_payment_removed(document.pending_amount, document.total)
            if document.status != DocumentStatus.PAID:
                document.pre_payment_status = None

            self.db.commit()
            logger.info(f"Payment {payment_id} deleted; document {document.id} pending={document.pending_amount}")
        except PurchasingError:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error al eliminar el pago: {str(e)}"
            )
