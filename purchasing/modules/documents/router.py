"""
Router para documentos de compra (facturas de proveedor y tickets de gasto)

- Alta, consulta y edición de cabecera
- Guardado completo de líneas y cambio de modo de precio
- Vista previa de cálculos sin guardar
- Aprobación, anulación y borrado
"""
from fastapi import APIRouter, Depends, Query, status
from typing import Optional
from uuid import UUID

from purchasing.core.config import settings
from purchasing.dependencies.dbDependecies import db_dependency
from purchasing.dependencies.userDependencies import user_dependency
from purchasing.modules.auth.dependencies import AuthDependencies
from purchasing.modules.auth.schemas import AuthContext
from purchasing.modules.documents.models import DocumentType, DocumentStatus
from purchasing.modules.documents.service import DocumentService
from purchasing.modules.documents.schemas import (
    DocumentCreate, DocumentUpdate, DocumentDetail, DocumentList, LinesReplace,
    PricingModeChange, PreviewRequest, PreviewResponse, ApproveRequest, SettlementView
)

documents_router = APIRouter(
    prefix="/documents",
    tags=["Documents"],
    responses={404: {"description": "Not found"}}
)


@documents_router.post("", response_model=DocumentDetail, status_code=status.HTTP_201_CREATED)
def create_document(data: DocumentCreate, db: db_dependency, current_user: user_dependency):
    """
    Crear un documento de compra

    - **document_type**: INVOICE (factura) o EXPENSE (ticket)
    - **counterparty**: proveedor o técnico (facturas); beneficiario manual o proveedor (tickets)
    - **lines**: líneas iniciales; el concepto es obligatorio
    """
    service = DocumentService(db)
    document = service.create_document(data, current_user.user_id)
    return service.to_detail(document, current_user)


@documents_router.get("", response_model=DocumentList)
def list_documents(
    db: db_dependency,
    current_user: user_dependency,
    document_type: Optional[DocumentType] = Query(None),
    status_filter: Optional[DocumentStatus] = Query(None, alias="status"),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0)
):
    return DocumentService(db).list_documents(document_type, status_filter, limit, offset)


@documents_router.post("/preview", response_model=PreviewResponse)
def preview_document(request: PreviewRequest, db: db_dependency, current_user: user_dependency):
    """Calcular líneas y totales sin guardar"""
    return DocumentService(db).preview(request)


@documents_router.get("/{document_id}", response_model=DocumentDetail)
def get_document(document_id: UUID, db: db_dependency, current_user: user_dependency):
    service = DocumentService(db)
    return service.to_detail(service.get_document(document_id), current_user)


@documents_router.patch("/{document_id}", response_model=DocumentDetail)
def update_document(document_id: UUID, data: DocumentUpdate, db: db_dependency, current_user: user_dependency):
    """Actualizar la cabecera (solo documentos no bloqueados)"""
    service = DocumentService(db)
    return service.to_detail(service.update_document(document_id, data), current_user)


@documents_router.put("/{document_id}/lines", response_model=DocumentDetail)
def replace_lines(document_id: UUID, data: LinesReplace, db: db_dependency, current_user: user_dependency):
    """Guardar el conjunto completo de líneas"""
    service = DocumentService(db)
    return service.to_detail(service.save_document_lines(document_id, data.lines), current_user)


@documents_router.post("/{document_id}/pricing-mode", response_model=DocumentDetail)
def change_pricing_mode(
    document_id: UUID,
    data: PricingModeChange,
    db: db_dependency,
    current_user: user_dependency
):
    """
    Cambiar entre precios con y sin IVA

    Todas las líneas se recalculan tomando el precio sin IVA guardado como
    nuevo precio tecleado. El cambio no es reversible sin pérdida.
    """
    service = DocumentService(db)
    return service.to_detail(service.set_pricing_mode(document_id, data.pricing_mode), current_user)


@documents_router.get("/{document_id}/settlement", response_model=SettlementView)
def get_settlement_view(document_id: UUID, db: db_dependency, current_user: user_dependency):
    return DocumentService(db).get_settlement_view(document_id)


@documents_router.post("/{document_id}/approve", response_model=DocumentDetail)
def approve_document(
    document_id: UUID,
    db: db_dependency,
    pending_edits: Optional[ApproveRequest] = None,
    auth_context: AuthContext = Depends(AuthDependencies.require_privileged())
):
    """
    Aprobar un documento (solo administradores)

    Si se envían ediciones pendientes se guardan antes; si fallan la
    aprobación no se realiza.
    """
    service = DocumentService(db)
    document = service.approve_document(document_id, auth_context, pending_edits)
    return service.to_detail(document, auth_context)


@documents_router.post("/{document_id}/cancel", response_model=DocumentDetail)
def cancel_document(
    document_id: UUID,
    db: db_dependency,
    auth_context: AuthContext = Depends(AuthDependencies.require_privileged())
):
    service = DocumentService(db)
    return service.to_detail(service.cancel_document(document_id, auth_context), auth_context)


@documents_router.delete("/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_document(document_id: UUID, db: db_dependency, current_user: user_dependency):
    """Eliminar un documento pendiente y liberar su escaneo"""
    DocumentService(db).delete_document(document_id)
