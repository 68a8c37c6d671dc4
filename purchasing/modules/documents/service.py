"""
Servicio de documentos de compra

Persistencia de cabecera y líneas, transiciones de estado y vista de saldo
para la liquidación. Las reglas de cálculo viven en LinePricingEngine,
aggregate_lines y DocumentStateMachine; aquí solo se aplican y se guardan.
"""
from fastapi import HTTPException, status
from sqlalchemy.orm import Session, selectinload
from sqlalchemy import func
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID
import logging

from purchasing.core.config import settings
from purchasing.common.exceptions import (
    PurchasingError, NotFoundError, InputValidationError, ClosedPeriodError, DocumentStateError
)
from purchasing.modules.auth.schemas import AuthContext
from purchasing.modules.documents.models import (
    PurchaseDocument, DocumentLine, ScannedDocument, DocumentType, DocumentStatus,
    PricingMode, ScanStatus, default_pricing_mode
)
from purchasing.modules.documents.schemas import (
    DocumentCreate, DocumentUpdate, LineInput, DocumentLineOut, DocumentOut, DocumentDetail,
    PreviewRequest, PreviewResponse, ApproveRequest, SettlementView, ALLOWED_COUNTERPARTIES
)
from purchasing.modules.documents.pricing import LinePricingEngine
from purchasing.modules.documents.totals import aggregate_lines
from purchasing.modules.documents.status import DocumentStateMachine, derive_payment_status, is_overdue
from purchasing.modules.taxes.models import TaxKind, TaxType
from purchasing.modules.taxes.service import TaxService

logger = logging.getLogger(__name__)

NUMBER_PREFIXES = {
    DocumentType.INVOICE: "C",
    DocumentType.EXPENSE: "T",
}


def check_open_period(on_date: Optional[date]):
    """Rechazar operaciones con fecha dentro de un periodo contable cerrado"""
    closed_until = settings.ACCOUNTING_CLOSED_UNTIL
    if closed_until and on_date and on_date <= closed_until:
        raise ClosedPeriodError(
            f"Periodo cerrado hasta {closed_until.isoformat()}",
            period_end=closed_until
        )


def counterparty_of(document: PurchaseDocument) -> Dict:
    if document.supplier_id:
        return {"kind": "supplier", "id": document.supplier_id, "name": document.counterparty_name}
    if document.technician_id:
        return {"kind": "technician", "id": document.technician_id, "name": document.counterparty_name}
    return {"kind": "manual", "name": document.beneficiary_name}


class DocumentService:
    def __init__(self, db: Session, engine: Optional[LinePricingEngine] = None):
        self.db = db
        self.taxes = TaxService(db)
        self._engine = engine

    @property
    def engine(self) -> LinePricingEngine:
        if self._engine is None:
            self._engine = LinePricingEngine(self.taxes.get_default_rate(TaxKind.PURCHASE).rate)
        return self._engine

    # ===== HELPERS =====

    def _get_document(self, document_id: UUID) -> PurchaseDocument:
        document = self.db.query(PurchaseDocument).options(
            selectinload(PurchaseDocument.lines),
            selectinload(PurchaseDocument.payments)
        ).filter(PurchaseDocument.id == document_id).first()
        if not document:
            raise NotFoundError("Documento no encontrado", {"document_id": str(document_id)})
        return document

    def _apply_counterparty(self, document: PurchaseDocument, counterparty) -> None:
        allowed = ALLOWED_COUNTERPARTIES[document.document_type]
        if counterparty.kind not in allowed:
            raise InputValidationError(
                f"Contraparte '{counterparty.kind}' no permitida para {document.document_type.value}",
                field="counterparty"
            )
        document.supplier_id = counterparty.id if counterparty.kind == "supplier" else None
        document.technician_id = counterparty.id if counterparty.kind == "technician" else None
        document.beneficiary_name = counterparty.name if counterparty.kind == "manual" else None
        document.counterparty_name = counterparty.name

    def _assign_scan(self, document: PurchaseDocument, scanned_document_id: UUID) -> None:
        scan = self.db.query(ScannedDocument).filter(ScannedDocument.id == scanned_document_id).first()
        if not scan:
            raise NotFoundError("Documento escaneado no encontrado", {"scanned_document_id": str(scanned_document_id)})
        if scan.status == ScanStatus.ASSIGNED and scan.assigned_to_id != document.id:
            raise DocumentStateError("El documento escaneado ya está asignado", status=scan.status.value)
        scan.status = ScanStatus.ASSIGNED
        scan.assigned_to_type = document.document_type
        scan.assigned_to_id = document.id
        document.scanned_document_id = scan.id

    def _release_scan(self, document: PurchaseDocument) -> None:
        if not document.scanned_document_id:
            return
        scan = self.db.query(ScannedDocument).filter(ScannedDocument.id == document.scanned_document_id).first()
        if scan:
            scan.status = ScanStatus.UNASSIGNED
            scan.assigned_to_type = None
            scan.assigned_to_id = None

    def _replace_lines(self, document: PurchaseDocument, lines: List[DocumentLineOut]) -> None:
        """Sustituir todas las líneas (sin commit; el llamador cierra la transacción)"""
        document.lines.clear()
        self.db.flush()
        for position, line in enumerate(lines):
            document.lines.append(DocumentLine(
                position=position,
                concept=(line.concept or "").strip(),
                description=line.description,
                quantity=line.quantity,
                unit_price=line.unit_price,
                entered_unit_price=line.entered_unit_price,
                tax_rate=line.tax_rate,
                discount_percent=line.discount_percent,
                withholding_tax_rate=line.withholding_tax_rate,
                subtotal=line.subtotal,
                tax_amount=line.tax_amount,
                total=line.total,
                withholding_amount=line.withholding_amount,
            ))
        self._refresh_totals(document, lines)

    def _refresh_totals(self, document: PurchaseDocument, lines) -> None:
        totals = aggregate_lines(lines)
        document.tax_base = totals.subtotal
        document.tax_amount = totals.tax_amount
        document.withholding_amount = totals.withholding_amount
        document.total = totals.total

    def _apply_header(self, document: PurchaseDocument, data: DocumentUpdate) -> None:
        changes = data.model_dump(exclude_unset=True)
        if "counterparty" in changes and data.counterparty is not None:
            self._apply_counterparty(document, data.counterparty)
        for field in ("issue_date", "due_date", "supplier_invoice_number", "project_id", "notes"):
            if field in changes:
                setattr(document, field, changes[field])
        if document.issue_date is None:
            raise InputValidationError("La fecha de emisión es obligatoria", field="issue_date")
        if document.due_date and document.due_date < document.issue_date:
            raise InputValidationError(
                "La fecha de vencimiento no puede ser anterior a la de emisión", field="due_date"
            )
        check_open_period(document.issue_date)

    def _next_internal_number(self, document: PurchaseDocument) -> str:
        issue_date = document.issue_date or date.today()
        prefix = f"{NUMBER_PREFIXES[document.document_type]}-{issue_date.strftime('%y')}-"
        last = self.db.query(func.max(PurchaseDocument.internal_number)).filter(
            PurchaseDocument.internal_number.like(f"{prefix}%")
        ).scalar()
        sequence = int(last.rsplit("-", 1)[1]) + 1 if last else 1
        return f"{prefix}{sequence:04d}"

    def tax_labels(self) -> Dict[Decimal, str]:
        return self.taxes.get_labels(TaxKind.PURCHASE, TaxType.VAT)

    def withholding_labels(self) -> Dict[Decimal, str]:
        return self.taxes.get_labels(TaxKind.PURCHASE, TaxType.WITHHOLDING)

    # ===== SALIDA =====

    def to_out(self, document: PurchaseDocument) -> DocumentOut:
        payment_status = derive_payment_status(document.total, document.paid_amount, document.status)
        return DocumentOut(
            id=document.id,
            document_type=document.document_type,
            status=document.status,
            is_locked=DocumentStateMachine.for_document(document).is_locked,
            pricing_mode=document.pricing_mode,
            counterparty=counterparty_of(document),
            project_id=document.project_id,
            scanned_document_id=document.scanned_document_id,
            supplier_invoice_number=document.supplier_invoice_number,
            internal_number=document.internal_number,
            issue_date=document.issue_date,
            due_date=document.due_date,
            notes=document.notes,
            tax_base=document.tax_base,
            tax_amount=document.tax_amount,
            withholding_amount=document.withholding_amount,
            total=document.total,
            paid_amount=document.paid_amount,
            pending_amount=document.pending_amount,
            payment_status=payment_status.value if payment_status else None,
            is_overdue=is_overdue(document.status, payment_status, document.due_date),
            created_at=document.created_at,
        )

    def to_detail(self, document: PurchaseDocument, auth: Optional[AuthContext] = None) -> DocumentDetail:
        privileged = bool(auth and auth.is_privileged)
        out = self.to_out(document)
        return DocumentDetail(
            **out.model_dump(),
            lines=[DocumentLineOut.model_validate(line) for line in document.lines],
            totals=aggregate_lines(document.lines, self.tax_labels(), self.withholding_labels()),
            allowed_actions=DocumentStateMachine.for_document(document).allowed_actions(privileged),
        )

    # ===== OPERACIONES =====

    def create_document(self, data: DocumentCreate, user_id: Optional[str] = None) -> PurchaseDocument:
        """Crear un documento con sus líneas en una sola transacción"""
        try:
            mode = data.pricing_mode or default_pricing_mode(data.document_type)
            lines = self.engine.compute_lines(data.lines, mode, data.document_type, require_concept=True)
            check_open_period(data.issue_date)

            document = PurchaseDocument(
                document_type=data.document_type,
                status=DocumentStatus.PENDING_VALIDATION,
                is_locked=False,
                pricing_mode=mode,
                project_id=data.project_id,
                supplier_invoice_number=data.supplier_invoice_number,
                issue_date=data.issue_date,
                due_date=data.due_date,
                notes=data.notes,
                paid_amount=Decimal('0'),
                created_by=user_id,
            )
            self._apply_counterparty(document, data.counterparty)
            self.db.add(document)
            self.db.flush()

            if data.scanned_document_id:
                self._assign_scan(document, data.scanned_document_id)

            self._replace_lines(document, lines)
            self.db.commit()
            self.db.refresh(document)
            logger.info(f"Purchase document {document.id} created ({document.document_type.value}, total={document.total})")
            return document

        except PurchasingError:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error creating purchase document: {e}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error al crear el documento: {str(e)}"
            )

    def list_documents(
        self,
        document_type: Optional[DocumentType] = None,
        status_filter: Optional[DocumentStatus] = None,
        limit: int = 20,
        offset: int = 0
    ) -> dict:
        query = self.db.query(PurchaseDocument)
        if document_type:
            query = query.filter(PurchaseDocument.document_type == document_type)
        if status_filter:
            query = query.filter(PurchaseDocument.status == status_filter)

        total = query.count()
        documents = query.order_by(
            PurchaseDocument.issue_date.desc(), PurchaseDocument.created_at.desc()
        ).offset(offset).limit(limit).all()
        return {
            "documents": [self.to_out(document) for document in documents],
            "total": total,
            "limit": limit,
            "offset": offset,
        }

    def get_document(self, document_id: UUID) -> PurchaseDocument:
        return self._get_document(document_id)

    def update_document(self, document_id: UUID, data: DocumentUpdate) -> PurchaseDocument:
        try:
            document = self._get_document(document_id)
            DocumentStateMachine.for_document(document).ensure_can_edit()
            self._apply_header(document, data)
            self.db.commit()
            self.db.refresh(document)
            return document
        except PurchasingError:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error al actualizar el documento: {str(e)}"
            )

    def save_document_lines(self, document_id: UUID, lines: List[LineInput]) -> PurchaseDocument:
        """
        Guardar el conjunto completo de líneas.

        Borra las líneas existentes e inserta las nuevas en la misma
        transacción: o se guardan todas o ninguna.
        """
        try:
            document = self._get_document(document_id)
            DocumentStateMachine.for_document(document).ensure_can_edit()
            computed = self.engine.compute_lines(
                lines, document.pricing_mode, document.document_type, require_concept=True
            )
            check_open_period(document.issue_date)
            self._replace_lines(document, computed)
            self.db.commit()
            self.db.refresh(document)
            logger.info(f"Saved {len(computed)} lines for document {document_id}")
            return document
        except PurchasingError:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error saving lines for document {document_id}: {e}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error al guardar las líneas: {str(e)}"
            )

    def set_pricing_mode(self, document_id: UUID, mode: PricingMode) -> PurchaseDocument:
        """Cambiar el modo de precio recalculando todas las líneas"""
        try:
            document = self._get_document(document_id)
            DocumentStateMachine.for_document(document).ensure_can_edit()
            if document.pricing_mode == mode:
                return document

            computed = self.engine.recompute_for_mode(document.lines, mode, document.document_type)
            document.pricing_mode = mode
            self._replace_lines(document, computed)
            self.db.commit()
            self.db.refresh(document)
            logger.info(f"Document {document_id} switched to {mode.value}")
            return document
        except PurchasingError:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error al cambiar el modo de precio: {str(e)}"
            )

    def preview(self, request: PreviewRequest) -> PreviewResponse:
        """Calcular líneas y totales sin guardar nada"""
        mode = request.pricing_mode or default_pricing_mode(request.document_type)
        lines = self.engine.compute_lines(request.lines, mode, request.document_type)
        return PreviewResponse(
            pricing_mode=mode,
            lines=lines,
            totals=aggregate_lines(lines, self.tax_labels(), self.withholding_labels()),
        )

    def get_settlement_view(self, document_id: UUID, editing_payment_id: Optional[UUID] = None) -> SettlementView:
        document = self._get_document(document_id)
        editing_amount = None
        if editing_payment_id:
            editing = next((p for p in document.payments if p.id == editing_payment_id), None)
            if editing is None:
                raise NotFoundError("Pago no encontrado", {"payment_id": str(editing_payment_id)})
            editing_amount = Decimal(editing.amount)
        return SettlementView(
            document_id=document.id,
            document_type=document.document_type,
            status=document.status,
            is_locked=DocumentStateMachine.for_document(document).is_locked,
            total=document.total,
            paid_amount=document.paid_amount,
            pending_amount=document.pending_amount,
            editing_payment_amount=editing_amount,
        )

    def approve_document(
        self,
        document_id: UUID,
        auth: AuthContext,
        pending_edits: Optional[ApproveRequest] = None
    ) -> PurchaseDocument:
        """
        Aprobar el documento: bloquea la edición y asigna el número definitivo.

        Las ediciones pendientes se guardan primero; si fallan, no se aprueba.
        """
        try:
            document = self._get_document(document_id)
            machine = DocumentStateMachine.for_document(document)
            machine.ensure_can_approve(auth.is_privileged)

            if pending_edits and (pending_edits.header or pending_edits.lines is not None):
                machine.ensure_can_edit()
                if pending_edits.header:
                    self._apply_header(document, pending_edits.header)
                if pending_edits.lines is not None:
                    computed = self.engine.compute_lines(
                        pending_edits.lines, document.pricing_mode, document.document_type, require_concept=True
                    )
                    self._replace_lines(document, computed)
                self.db.flush()

            check_open_period(document.issue_date)
            document.status = machine.status_after_approval()
            document.is_locked = True
            if not document.internal_number:
                document.internal_number = self._next_internal_number(document)

            self.db.commit()
            self.db.refresh(document)
            logger.info(f"Document {document_id} approved as {document.internal_number} by {auth.user_id}")
            return document
        except PurchasingError:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error approving document {document_id}: {e}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error al aprobar el documento: {str(e)}"
            )

    def cancel_document(self, document_id: UUID, auth: AuthContext) -> PurchaseDocument:
        try:
            document = self._get_document(document_id)
            DocumentStateMachine.for_document(document).ensure_can_cancel(auth.is_privileged)
            document.status = DocumentStatus.CANCELLED
            self.db.commit()
            self.db.refresh(document)
            logger.info(f"Document {document_id} cancelled by {auth.user_id}")
            return document
        except PurchasingError:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error al anular el documento: {str(e)}"
            )

    def delete_document(self, document_id: UUID) -> None:
        """
        Eliminar un documento pendiente.

        Líneas, cabecera y liberación del escaneo van en una transacción.
        """
        try:
            document = self._get_document(document_id)
            DocumentStateMachine.for_document(document).ensure_can_delete()
            if document.payments:
                raise DocumentStateError(
                    "No se puede eliminar un documento con pagos registrados",
                    status=document.status.value, action="delete"
                )

            document.lines.clear()
            self.db.flush()
            self.db.delete(document)
            self.db.flush()
            self._release_scan(document)
            self.db.commit()
            logger.info(f"Document {document_id} deleted")
        except PurchasingError:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error deleting document {document_id}: {e}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error al eliminar el documento: {str(e)}"
            )
