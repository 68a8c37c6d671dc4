from fastapi import HTTPException, status
from sqlalchemy.orm import Session, selectinload
from sqlalchemy.exc import IntegrityError
from datetime import date
from decimal import Decimal
from typing import List, Optional
from uuid import UUID
import logging

from purchasing.common.exceptions import PurchasingError, NotFoundError, DocumentStateError
from purchasing.common.money import ZERO
from purchasing.modules.financing.models import (
    CreditProvider, CreditOperation, Installment, CreditOperationStatus, InstallmentStatus
)
from purchasing.modules.financing.schemas import (
    CreditProviderCreate, CreditProviderUpdate, CreditOperationOut, CreditOperationDetail,
    InstallmentOut, InstallmentPay
)
from purchasing.modules.financing.schedule import build_installment_schedule, first_due_date_for

logger = logging.getLogger(__name__)


def installment_display_status(installment: Installment, today: Optional[date] = None) -> str:
    """PAID, PENDING u OVERDUE (vencida sin pagar; nunca se guarda)"""
    if installment.status == InstallmentStatus.PAID:
        return InstallmentStatus.PAID.value
    if installment.due_date < (today or date.today()):
        return "OVERDUE"
    return InstallmentStatus.PENDING.value


class FinancingService:
    def __init__(self, db: Session):
        self.db = db

    # ===== ENTIDADES =====

    def list_credit_providers(self, include_inactive: bool = False) -> List[CreditProvider]:
        query = self.db.query(CreditProvider)
        if not include_inactive:
            query = query.filter(CreditProvider.is_active == True)
        return query.order_by(CreditProvider.name).all()

    def create_provider(self, data: CreditProviderCreate) -> CreditProvider:
        try:
            provider = CreditProvider(**data.model_dump())
            self.db.add(provider)
            self.db.commit()
            self.db.refresh(provider)
            logger.info(f"Credit provider created: {provider.name}")
            return provider
        except IntegrityError:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Ya existe una entidad con el nombre '{data.name}'"
            )
        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error al crear la entidad: {str(e)}"
            )

    def update_provider(self, provider_id: UUID, data: CreditProviderUpdate) -> CreditProvider:
        provider = self.db.query(CreditProvider).filter(CreditProvider.id == provider_id).first()
        if not provider:
            raise NotFoundError("Entidad de financiación no encontrada", {"provider_id": str(provider_id)})
        try:
            for field, value in data.model_dump(exclude_unset=True).items():
                setattr(provider, field, value)
            self.db.commit()
            self.db.refresh(provider)
            return provider
        except IntegrityError:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Ya existe una entidad con ese nombre"
            )
        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error al actualizar la entidad: {str(e)}"
            )

    # ===== OPERACIONES =====

    def create_operation(self, document_id: UUID, payment_id: UUID, instruction, user_id: Optional[str] = None) -> CreditOperation:
        """
        Crear la operación de crédito y su calendario (sin commit).

        Se llama desde el registro de pagos dentro de su transacción.
        """
        gross = abs(Decimal(instruction.amount))
        fee = instruction.fee_amount or ZERO
        first_due = instruction.first_due_date or first_due_date_for(instruction.payment_date)
        schedule = build_installment_schedule(gross, fee, instruction.num_installments, first_due)

        operation = CreditOperation(
            provider_id=instruction.provider_id,
            document_id=document_id,
            payment_id=payment_id,
            gross_amount=gross,
            fee_amount=fee,
            num_installments=instruction.num_installments,
            contract_reference=instruction.contract_reference,
            bank_account_id=instruction.bank_account_id,
            status=CreditOperationStatus.ACTIVE,
            notes=instruction.notes,
            total_paid=ZERO,
            total_pending=gross + fee,
            created_by=user_id,
        )
        for item in schedule:
            operation.installments.append(Installment(
                installment_number=item.installment_number,
                due_date=item.due_date,
                amount=item.amount,
                principal=item.principal,
                interest=item.interest,
                outstanding=item.outstanding,
                status=InstallmentStatus.PENDING,
                bank_account_id=instruction.bank_account_id,
            ))
        self.db.add(operation)
        logger.info(
            f"Credit operation for document {document_id}: {gross} + {fee} in {instruction.num_installments} installments"
        )
        return operation

    def _operation_out(self, operation: CreditOperation) -> CreditOperationOut:
        return CreditOperationOut(
            id=operation.id,
            provider_id=operation.provider_id,
            provider_name=operation.provider.name if operation.provider else None,
            document_id=operation.document_id,
            payment_id=operation.payment_id,
            contract_reference=operation.contract_reference,
            gross_amount=operation.gross_amount,
            fee_amount=operation.fee_amount,
            num_installments=operation.num_installments,
            total_paid=operation.total_paid,
            total_pending=operation.total_pending,
            status=operation.status,
            created_at=operation.created_at,
        )

    def list_operations(self, status_filter: Optional[CreditOperationStatus] = None) -> List[CreditOperationOut]:
        query = self.db.query(CreditOperation).options(selectinload(CreditOperation.provider))
        if status_filter:
            query = query.filter(CreditOperation.status == status_filter)
        return [self._operation_out(op) for op in query.order_by(CreditOperation.created_at.desc()).all()]

    def get_operation_detail(self, operation_id: UUID, today: Optional[date] = None) -> CreditOperationDetail:
        operation = self.db.query(CreditOperation).options(
            selectinload(CreditOperation.provider),
            selectinload(CreditOperation.installments)
        ).filter(CreditOperation.id == operation_id).first()
        if not operation:
            raise NotFoundError("Operación de crédito no encontrada", {"operation_id": str(operation_id)})

        return CreditOperationDetail(
            operation=self._operation_out(operation),
            installments=[
                InstallmentOut(
                    id=inst.id,
                    installment_number=inst.installment_number,
                    due_date=inst.due_date,
                    amount=inst.amount,
                    principal=inst.principal,
                    interest=inst.interest,
                    outstanding=inst.outstanding,
                    status=installment_display_status(inst, today),
                    paid_date=inst.paid_date,
                    bank_account_id=inst.bank_account_id,
                )
                for inst in operation.installments
            ]
        )

    def pay_installment(self, installment_id: UUID, data: InstallmentPay) -> CreditOperationDetail:
        """Marcar una cuota como pagada y actualizar los acumulados de la operación"""
        try:
            installment = self.db.query(Installment).filter(Installment.id == installment_id).first()
            if not installment:
                raise NotFoundError("Cuota no encontrada", {"installment_id": str(installment_id)})
            if installment.status == InstallmentStatus.PAID:
                raise DocumentStateError("La cuota ya está pagada", status=InstallmentStatus.PAID.value, action="pay")

            installment.status = InstallmentStatus.PAID
            installment.paid_date = data.paid_date
            if data.bank_account_id:
                installment.bank_account_id = data.bank_account_id

            operation = installment.operation
            paid = sum((Decimal(i.amount) for i in operation.installments if i.status == InstallmentStatus.PAID), ZERO)
            operation.total_paid = paid
            operation.total_pending = Decimal(operation.gross_amount) + Decimal(operation.fee_amount) - paid
            if all(i.status == InstallmentStatus.PAID for i in operation.installments):
                operation.status = CreditOperationStatus.COMPLETED

            self.db.commit()
            logger.info(f"Installment {installment.installment_number} of operation {operation.id} paid")
            return self.get_operation_detail(operation.id)
        except PurchasingError:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error al pagar la cuota: {str(e)}"
            )
