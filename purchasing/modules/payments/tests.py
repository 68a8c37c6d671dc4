"""
Tests para el módulo de Pagos

- Motor de liquidación: límites, confirmación de excesos, devoluciones y
  validación de cada modo (estándar, socio, financiación)
- Registro de pagos: idempotencia, transición a PAID y vuelta al estado previo
- Endpoints
"""

from datetime import date
from decimal import Decimal
from types import SimpleNamespace
from uuid import uuid4

import pytest

from purchasing.common.exceptions import (
    OverageConfirmationRequired, PaymentValidationError, UnsupportedOperationError,
    DocumentStateError, CollaboratorRejection
)
from purchasing.modules.documents.models import DocumentType, DocumentStatus
from purchasing.modules.documents.schemas import SettlementView
from purchasing.modules.documents.service import DocumentService
from purchasing.modules.financing.models import CreditOperation
from purchasing.modules.payments.models import Payment, PaymentMethod, SettlementMode
from purchasing.modules.payments.schemas import (
    StandardPaymentRequest, PersonalPaymentRequest, FinancingPaymentRequest
)
from purchasing.modules.payments.settlement import SettlementEngine
from purchasing.modules.payments.service import PaymentService


def make_view(total="100.00", paid="0.00", status=DocumentStatus.APPROVED, editing=None):
    total, paid = Decimal(total), Decimal(paid)
    return SettlementView(
        document_id=uuid4(),
        document_type=DocumentType.INVOICE,
        status=status,
        is_locked=status in (DocumentStatus.APPROVED, DocumentStatus.PAID),
        total=total,
        paid_amount=paid,
        pending_amount=total - paid,
        editing_payment_amount=Decimal(editing) if editing else None,
    )


@pytest.fixture
def partner():
    return SimpleNamespace(id=uuid4(), name="Ana Socia", is_active=True)


@pytest.fixture
def provider():
    return SimpleNamespace(id=uuid4(), name="Financiera Norte", is_active=True)


# ===== TESTS DEL MOTOR DE LIQUIDACIÓN =====

class TestSettlementEngine:
    """Tests para SettlementEngine"""

    def test_standard_payment(self):
        instruction = SettlementEngine().register_payment(
            make_view(), StandardPaymentRequest(amount="40,00", method=PaymentMethod.CARD)
        )
        assert instruction.amount == Decimal("40.00")
        assert instruction.mode == SettlementMode.STANDARD
        assert instruction.method == PaymentMethod.CARD
        assert instruction.request_id

    def test_amount_must_be_positive(self):
        for amount in ("0", "-5", "abc"):
            with pytest.raises(PaymentValidationError) as exc_info:
                SettlementEngine().register_payment(make_view(), StandardPaymentRequest(amount=amount))
            assert exc_info.value.field == "amount"

    def test_fully_paid_document_requires_confirmation(self):
        """Test documento de 500,00 ya pagado: un pago de 10 pide confirmación"""
        view = make_view(total="500.00", paid="500.00", status=DocumentStatus.PAID)
        with pytest.raises(OverageConfirmationRequired) as exc_info:
            SettlementEngine().register_payment(view, StandardPaymentRequest(amount="10"))
        assert exc_info.value.max_allowed == Decimal("0.00")
        assert exc_info.value.to_dict()["requires_confirmation"] is True

    def test_overage_confirmed(self):
        instruction = SettlementEngine().register_payment(
            make_view(), StandardPaymentRequest(amount="120", confirm_overage=True)
        )
        assert instruction.amount == Decimal("120.00")

    def test_tolerance(self):
        instruction = SettlementEngine().register_payment(make_view(), StandardPaymentRequest(amount="100,01"))
        assert instruction.amount == Decimal("100.01")
        with pytest.raises(OverageConfirmationRequired):
            SettlementEngine().register_payment(make_view(), StandardPaymentRequest(amount="100,02"))

    def test_editing_payments_is_unsupported(self):
        request = StandardPaymentRequest(amount="10", payment_id=uuid4())
        with pytest.raises(UnsupportedOperationError):
            SettlementEngine().register_payment(make_view(), request)

    def test_max_allowed_includes_payment_being_edited(self):
        view = make_view(total="100.00", paid="100.00", editing="30.00")
        assert SettlementEngine.max_allowed(view) == Decimal("30.00")

    def test_refund_is_negated(self):
        view = make_view(total="-50.00")
        instruction = SettlementEngine().register_payment(view, StandardPaymentRequest(amount="50"))
        assert instruction.amount == Decimal("-50.00")
        assert instruction.is_refund is True

    def test_refund_only_standard(self, partner):
        view = make_view(total="-50.00")
        request = PersonalPaymentRequest(amount="50", payer_partner_id=partner.id)
        with pytest.raises(UnsupportedOperationError):
            SettlementEngine(partners=[partner]).register_payment(view, request)

    def test_document_state(self):
        for status in (DocumentStatus.DRAFT, DocumentStatus.CANCELLED):
            with pytest.raises(DocumentStateError):
                SettlementEngine().register_payment(make_view(status=status), StandardPaymentRequest(amount="1"))

    def test_reserved_methods(self):
        request = StandardPaymentRequest(amount="10", method=PaymentMethod.PERSONAL)
        with pytest.raises(PaymentValidationError) as exc_info:
            SettlementEngine().register_payment(make_view(), request)
        assert exc_info.value.field == "method"

    def test_personal_payment(self, partner):
        request = PersonalPaymentRequest(amount="25", payer_partner_id=partner.id)
        instruction = SettlementEngine(partners=[partner]).register_payment(make_view(), request)
        assert instruction.method == PaymentMethod.PERSONAL
        assert instruction.payer_partner_id == partner.id

    def test_personal_payment_requires_active_partner(self, partner):
        with pytest.raises(PaymentValidationError):
            SettlementEngine(partners=[partner]).register_payment(
                make_view(), PersonalPaymentRequest(amount="25")
            )
        partner.is_active = False
        with pytest.raises(PaymentValidationError):
            SettlementEngine(partners=[partner]).register_payment(
                make_view(), PersonalPaymentRequest(amount="25", payer_partner_id=partner.id)
            )

    def test_financing_payment(self, provider):
        request = FinancingPaymentRequest(
            amount="100", provider_id=provider.id, num_installments=3, fee_amount="4,50"
        )
        engine = SettlementEngine(credit_providers=[provider])
        assert engine.financing_available
        instruction = engine.register_payment(make_view(), request)
        assert instruction.method == PaymentMethod.EXTERNAL_CREDIT
        assert instruction.fee_amount == Decimal("4.50")
        assert instruction.num_installments == 3

    def test_financing_reclassifies_whole_pending(self, provider):
        engine = SettlementEngine(credit_providers=[provider])
        view = make_view(total="100.00", paid="40.00")

        for amount in ("10", "59,98", "150"):
            request = FinancingPaymentRequest(
                amount=amount, provider_id=provider.id, confirm_overage=True
            )
            with pytest.raises(PaymentValidationError) as exc_info:
                engine.register_payment(view, request)
            assert exc_info.value.field == "amount"

        # Dentro de la tolerancia se financia exactamente el pendiente
        instruction = engine.register_payment(
            view, FinancingPaymentRequest(amount="60,01", provider_id=provider.id)
        )
        assert instruction.amount == Decimal("60.00")

    def test_financing_unavailable_without_providers(self):
        request = FinancingPaymentRequest(amount="100", provider_id=uuid4())
        with pytest.raises(UnsupportedOperationError):
            SettlementEngine().register_payment(make_view(), request)

    def test_financing_validation(self, provider):
        engine = SettlementEngine(credit_providers=[provider])
        with pytest.raises(PaymentValidationError) as exc_info:
            engine.register_payment(make_view(), FinancingPaymentRequest(amount="100"))
        assert exc_info.value.field == "provider_id"

        with pytest.raises(PaymentValidationError) as exc_info:
            engine.register_payment(
                make_view(), FinancingPaymentRequest(amount="100", provider_id=provider.id, num_installments=0)
            )
        assert exc_info.value.field == "num_installments"

        with pytest.raises(PaymentValidationError) as exc_info:
            engine.register_payment(
                make_view(), FinancingPaymentRequest(amount="100", provider_id=provider.id, fee_amount="-1")
            )
        assert exc_info.value.field == "fee_amount"


# ===== TESTS DEL REGISTRO DE PAGOS =====

class TestPaymentService:
    """Tests para PaymentService"""

    def test_partial_payment(self, db_session, sample_invoice, admin_auth):
        DocumentService(db_session).approve_document(sample_invoice.id, admin_auth)
        result = PaymentService(db_session).register_payment(
            sample_invoice.id, StandardPaymentRequest(amount="10,00", payment_date=date(2026, 3, 15)), admin_auth
        )
        assert result.document_status == "APPROVED"
        assert result.payment_status == "PARTIAL"
        assert result.settlement.paid_amount == Decimal("10.00")
        assert result.settlement.pending_amount == Decimal("26.30")

    def test_full_payment_marks_paid(self, db_session, sample_invoice, admin_auth):
        DocumentService(db_session).approve_document(sample_invoice.id, admin_auth)
        result = PaymentService(db_session).register_payment(
            sample_invoice.id, StandardPaymentRequest(amount="36,30"), admin_auth
        )
        assert result.document_status == "PAID"
        assert result.payment_status == "PAID"
        assert result.settlement.pending_amount == Decimal("0.00")

    def test_same_request_id_is_not_duplicated(self, db_session, sample_invoice, admin_auth):
        service = PaymentService(db_session)
        request = StandardPaymentRequest(amount="36,30", request_id="pago-118-1")
        first = service.register_payment(sample_invoice.id, request, admin_auth)
        second = service.register_payment(sample_invoice.id, request, admin_auth)

        assert first.payment.id == second.payment.id
        assert db_session.query(Payment).count() == 1
        assert second.settlement.paid_amount == Decimal("36.30")

    def test_request_id_from_other_document(self, db_session, sample_invoice, sample_expense, admin_auth):
        service = PaymentService(db_session)
        service.register_payment(sample_invoice.id, StandardPaymentRequest(amount="5", request_id="k-1"), admin_auth)
        with pytest.raises(CollaboratorRejection):
            service.register_payment(
                sample_expense.id, StandardPaymentRequest(amount="1", request_id="k-1"), admin_auth
            )

    def test_delete_payment_reopens_document(self, db_session, sample_invoice, admin_auth):
        DocumentService(db_session).approve_document(sample_invoice.id, admin_auth)
        service = PaymentService(db_session)
        result = service.register_payment(sample_invoice.id, StandardPaymentRequest(amount="36,30"), admin_auth)

        service.delete_payment(result.payment.id)

        db_session.expire_all()
        document = DocumentService(db_session).get_document(sample_invoice.id)
        assert document.status == DocumentStatus.APPROVED
        assert document.paid_amount == Decimal("0.00")

    def test_delete_payment_before_approval(self, db_session, sample_invoice, admin_auth):
        """Test un documento pagado sin aprobar vuelve a su estado y sigue siendo aprobable"""
        service = PaymentService(db_session)
        result = service.register_payment(sample_invoice.id, StandardPaymentRequest(amount="36,30"), admin_auth)
        assert result.document_status == "PAID"

        service.delete_payment(result.payment.id)

        db_session.expire_all()
        documents = DocumentService(db_session)
        document = documents.get_document(sample_invoice.id)
        assert document.status == DocumentStatus.PENDING_VALIDATION
        assert document.internal_number is None
        assert document.pre_payment_status is None
        actions = documents.to_detail(document, admin_auth).allowed_actions
        assert actions.can_edit and actions.can_approve and actions.can_delete

        approved = documents.approve_document(sample_invoice.id, admin_auth)
        assert approved.status == DocumentStatus.APPROVED
        assert approved.internal_number is not None

    def test_delete_payment_after_late_approval(self, db_session, sample_invoice, admin_auth):
        """Test pagado, aprobado después y con el pago eliminado queda APPROVED"""
        service = PaymentService(db_session)
        result = service.register_payment(sample_invoice.id, StandardPaymentRequest(amount="36,30"), admin_auth)
        DocumentService(db_session).approve_document(sample_invoice.id, admin_auth)

        service.delete_payment(result.payment.id)

        db_session.expire_all()
        document = DocumentService(db_session).get_document(sample_invoice.id)
        assert document.status == DocumentStatus.APPROVED
        assert document.internal_number is not None

    def test_concurrent_request_id_from_other_document(
        self, db_session, sample_invoice, sample_expense, admin_auth, monkeypatch
    ):
        """Test la clave ganada por otra petición para otro documento no devuelve su pago"""
        service = PaymentService(db_session)
        service.register_payment(
            sample_invoice.id, StandardPaymentRequest(amount="5", request_id="k-carrera"), admin_auth
        )
        view = DocumentService(db_session).get_settlement_view(sample_expense.id)
        instruction = service.build_engine().register_payment(
            view, StandardPaymentRequest(amount="1", request_id="k-carrera")
        )

        # La primera búsqueda no ve el pago, como si aún no estuviera confirmado
        lookups = []
        find_by_request = PaymentService._find_by_request

        def late_lookup(self, request_id):
            lookups.append(request_id)
            return None if len(lookups) == 1 else find_by_request(self, request_id)

        monkeypatch.setattr(PaymentService, "_find_by_request", late_lookup)

        with pytest.raises(CollaboratorRejection):
            service.submit_payment(instruction, admin_auth.user_id)
        assert len(lookups) == 2
        assert db_session.query(Payment).filter(Payment.document_id == sample_expense.id).count() == 0

    def test_financing_must_cover_pending(self, db_session, sample_invoice, sample_provider, admin_auth):
        request = FinancingPaymentRequest(amount="10", provider_id=sample_provider.id, num_installments=2)
        with pytest.raises(PaymentValidationError) as exc_info:
            PaymentService(db_session).register_payment(sample_invoice.id, request, admin_auth)
        assert exc_info.value.field == "amount"
        assert db_session.query(CreditOperation).count() == 0
        assert db_session.query(Payment).count() == 0

    def test_only_standard_payments_can_be_deleted(self, db_session, sample_invoice, sample_partner, admin_auth):
        service = PaymentService(db_session)
        result = service.register_payment(
            sample_invoice.id, PersonalPaymentRequest(amount="10", payer_partner_id=sample_partner.id), admin_auth
        )
        with pytest.raises(UnsupportedOperationError):
            service.delete_payment(result.payment.id)

    def test_financing_creates_operation(self, db_session, sample_invoice, sample_provider, admin_auth):
        request = FinancingPaymentRequest(
            amount="36,30",
            provider_id=sample_provider.id,
            num_installments=3,
            fee_amount="3,00",
            payment_date=date(2026, 3, 20),
        )
        result = PaymentService(db_session).register_payment(sample_invoice.id, request, admin_auth)

        assert result.payment.settlement_mode == SettlementMode.FINANCING
        assert result.document_status == "PAID"

        operation = db_session.query(CreditOperation).one()
        assert operation.payment_id == result.payment.id
        assert operation.gross_amount == Decimal("36.30")
        assert operation.total_pending == Decimal("39.30")
        assert [i.due_date for i in operation.installments] == [
            date(2026, 4, 20), date(2026, 5, 20), date(2026, 6, 20)
        ]

    def test_cancelled_document_rejects_payments(self, db_session, sample_invoice, admin_auth):
        DocumentService(db_session).cancel_document(sample_invoice.id, admin_auth)
        with pytest.raises(DocumentStateError):
            PaymentService(db_session).register_payment(
                sample_invoice.id, StandardPaymentRequest(amount="1"), admin_auth
            )
        assert db_session.query(Payment).count() == 0


# ===== TESTS DE ENDPOINTS =====

class TestPaymentEndpoints:
    """Tests de los endpoints de pagos"""

    def test_register_and_list(self, client, user_headers, sample_invoice):
        response = client.post(
            f"/documents/{sample_invoice.id}/payments",
            json={"mode": "STANDARD", "amount": "20,00", "method": "TRANSFER", "bank_reference": "TRF-1"},
            headers=user_headers
        )
        assert response.status_code == 201
        data = response.json()
        assert data["payment"]["settlement_mode"] == "STANDARD"
        assert Decimal(data["settlement"]["pending_amount"]) == Decimal("16.30")

        response = client.get(f"/documents/{sample_invoice.id}/payments", headers=user_headers)
        assert response.status_code == 200
        assert len(response.json()) == 1

    def test_overage_returns_conflict(self, client, user_headers, sample_invoice):
        response = client.post(
            f"/documents/{sample_invoice.id}/payments",
            json={"mode": "STANDARD", "amount": "50"},
            headers=user_headers
        )
        assert response.status_code == 409
        data = response.json()
        assert data["code"] == "OVERAGE_CONFIRMATION_REQUIRED"
        assert data["requires_confirmation"] is True
        assert Decimal(data["max_allowed"]) == Decimal("36.30")

    def test_unknown_mode(self, client, user_headers, sample_invoice):
        response = client.post(
            f"/documents/{sample_invoice.id}/payments",
            json={"mode": "BARTER", "amount": "5"},
            headers=user_headers
        )
        assert response.status_code == 422

    def test_delete_requires_admin(self, client, user_headers, admin_headers, sample_invoice):
        response = client.post(
            f"/documents/{sample_invoice.id}/payments",
            json={"mode": "STANDARD", "amount": "5"},
            headers=user_headers
        )
        payment_id = response.json()["payment"]["id"]

        assert client.delete(f"/payments/{payment_id}", headers=user_headers).status_code == 403
        assert client.delete(f"/payments/{payment_id}", headers=admin_headers).status_code == 204
