"""
Tests para el módulo de Socios (pagos personales y reembolsos)
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from purchasing.common.exceptions import DocumentStateError, NotFoundError, UnsupportedOperationError
from purchasing.modules.partners.models import Partner
from purchasing.modules.partners.schemas import ReimbursementCreate
from purchasing.modules.partners.service import PartnerService
from purchasing.modules.payments.schemas import PersonalPaymentRequest, StandardPaymentRequest
from purchasing.modules.payments.service import PaymentService


@pytest.fixture
def personal_payment(db_session, sample_invoice, sample_partner, admin_auth):
    result = PaymentService(db_session).register_payment(
        sample_invoice.id,
        PersonalPaymentRequest(amount="12,50", payer_partner_id=sample_partner.id, notes="Pagado con su tarjeta"),
        admin_auth
    )
    return result.payment


class TestPartnerService:
    """Tests para PartnerService"""

    def test_selector_lists_active_partners(self, db_session, sample_partner):
        db_session.add(Partner(name="Luis Socio", partner_number="S-002", is_active=False))
        db_session.commit()

        options = PartnerService(db_session).list_partners_for_selector()
        assert [o.name for o in options] == ["Ana Socia"]
        assert options[0].partner_number == "S-001"

    def test_pending_reimbursements(self, db_session, personal_payment, sample_partner, sample_invoice, admin_auth):
        PaymentService(db_session).register_payment(
            sample_invoice.id, StandardPaymentRequest(amount="5"), admin_auth
        )

        pending = PartnerService(db_session).list_pending_reimbursements()
        assert len(pending) == 1
        assert pending[0].payment_id == personal_payment.id
        assert pending[0].amount == Decimal("12.50")
        assert pending[0].payer_name == "Ana Socia"
        assert pending[0].counterparty_name == "Suministros Levante S.L."
        assert pending[0].document_number == "F-2026-118"

    def test_filter_by_partner(self, db_session, personal_payment):
        assert PartnerService(db_session).list_pending_reimbursements(uuid4()) == []

    def test_reimburse(self, db_session, personal_payment):
        service = PartnerService(db_session)
        result = service.reimburse_personal_purchase(personal_payment.id, ReimbursementCreate(bank_account_id="ES-01"))

        assert result.amount == Decimal("12.50")
        assert result.reimbursement_bank_account_id == "ES-01"
        assert result.reimbursed_at is not None
        assert service.list_pending_reimbursements() == []

        with pytest.raises(DocumentStateError):
            service.reimburse_personal_purchase(personal_payment.id, ReimbursementCreate(bank_account_id="ES-01"))

    def test_reimburse_standard_payment(self, db_session, sample_invoice, admin_auth):
        result = PaymentService(db_session).register_payment(
            sample_invoice.id, StandardPaymentRequest(amount="5"), admin_auth
        )
        with pytest.raises(UnsupportedOperationError):
            PartnerService(db_session).reimburse_personal_purchase(
                result.payment.id, ReimbursementCreate(bank_account_id="ES-01")
            )

    def test_reimburse_unknown_payment(self, db_session):
        with pytest.raises(NotFoundError):
            PartnerService(db_session).reimburse_personal_purchase(uuid4(), ReimbursementCreate(bank_account_id="X"))


class TestPartnerEndpoints:
    """Tests de los endpoints de socios"""

    def test_list(self, client, user_headers, sample_partner):
        response = client.get("/partners", headers=user_headers)
        assert response.status_code == 200
        assert response.json()[0]["name"] == "Ana Socia"

    def test_personal_payment_and_reimbursement(
        self, client, user_headers, admin_headers, sample_invoice, sample_partner
    ):
        response = client.post(f"/documents/{sample_invoice.id}/payments", json={
            "mode": "PERSONAL",
            "amount": "36,30",
            "payer_partner_id": str(sample_partner.id),
        }, headers=user_headers)
        assert response.status_code == 201
        payment_id = response.json()["payment"]["id"]

        pending = client.get(
            "/partners/reimbursements/pending", params={"partner_id": str(sample_partner.id)}, headers=user_headers
        ).json()
        assert [p["payment_id"] for p in pending] == [payment_id]

        response = client.post(
            f"/partners/reimbursements/{payment_id}", json={"bank_account_id": "ES-01"}, headers=user_headers
        )
        assert response.status_code == 403

        response = client.post(
            f"/partners/reimbursements/{payment_id}", json={"bank_account_id": "ES-01"}, headers=admin_headers
        )
        assert response.status_code == 200
        assert client.get("/partners/reimbursements/pending", headers=user_headers).json() == []
