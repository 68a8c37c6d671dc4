"""
Tests para el módulo de Financiación

- Calendario de cuotas (reparto, resto en la última cuota, fechas mensuales)
- Operaciones de crédito creadas desde pagos FINANCING
- Pago de cuotas y estado OVERDUE derivado
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from fastapi import HTTPException

from purchasing.common.exceptions import DocumentStateError, NotFoundError
from purchasing.modules.financing.models import CreditOperationStatus
from purchasing.modules.financing.schedule import build_installment_schedule, first_due_date_for
from purchasing.modules.financing.schemas import CreditProviderCreate, CreditProviderUpdate, InstallmentPay
from purchasing.modules.financing.service import FinancingService
from purchasing.modules.payments.schemas import FinancingPaymentRequest
from purchasing.modules.payments.service import PaymentService


@pytest.fixture
def financed_invoice(db_session, sample_invoice, sample_provider, admin_auth):
    """Factura de 36,30 financiada en 3 cuotas con 3,00 de comisión"""
    request = FinancingPaymentRequest(
        amount="36,30",
        provider_id=sample_provider.id,
        num_installments=3,
        fee_amount="3,00",
        payment_date=date(2026, 3, 20),
        contract_reference="CTR-77",
    )
    PaymentService(db_session).register_payment(sample_invoice.id, request, admin_auth)
    return FinancingService(db_session).list_operations()[0]


# ===== TESTS DEL CALENDARIO =====

class TestInstallmentSchedule:
    """Tests para build_installment_schedule"""

    def test_even_split(self):
        items = build_installment_schedule(Decimal("90"), Decimal("0"), 3, date(2026, 4, 1))
        assert [i.amount for i in items] == [Decimal("30.00")] * 3
        assert [i.outstanding for i in items] == [Decimal("60.00"), Decimal("30.00"), Decimal("0.00")]

    def test_last_installment_absorbs_remainder(self):
        items = build_installment_schedule(Decimal("100"), Decimal("0"), 3, date(2026, 4, 1))
        assert [i.amount for i in items] == [Decimal("33.33"), Decimal("33.33"), Decimal("33.34")]
        assert sum(i.amount for i in items) == Decimal("100.00")

    def test_fee_is_interest(self):
        items = build_installment_schedule(Decimal("100"), Decimal("5"), 3, date(2026, 4, 1))
        assert [i.amount for i in items] == [Decimal("35.00")] * 3
        assert [i.principal for i in items] == [Decimal("33.33"), Decimal("33.33"), Decimal("33.34")]
        assert [i.interest for i in items] == [Decimal("1.67"), Decimal("1.67"), Decimal("1.66")]
        assert sum(i.principal for i in items) == Decimal("100.00")
        assert sum(i.interest for i in items) == Decimal("5.00")

    def test_monthly_due_dates(self):
        items = build_installment_schedule(Decimal("30"), Decimal("0"), 3, date(2026, 1, 31))
        assert [i.due_date for i in items] == [date(2026, 1, 31), date(2026, 2, 28), date(2026, 3, 31)]
        assert [i.installment_number for i in items] == [1, 2, 3]

    def test_first_due_date(self):
        assert first_due_date_for(date(2026, 3, 20)) == date(2026, 4, 20)

    def test_single_installment(self):
        [item] = build_installment_schedule(Decimal("12.34"), Decimal("0.66"), 1, date(2026, 4, 1))
        assert item.amount == Decimal("13.00")
        assert item.outstanding == Decimal("0.00")

    def test_invalid_count(self):
        with pytest.raises(ValueError):
            build_installment_schedule(Decimal("10"), Decimal("0"), 0)


# ===== TESTS DE SERVICIO =====

class TestFinancingService:
    """Tests para FinancingService"""

    def test_providers(self, db_session, sample_provider):
        service = FinancingService(db_session)
        service.create_provider(CreditProviderCreate(name="Leasing Sur", provider_type="leasing"))
        assert [p.name for p in service.list_credit_providers()] == ["Financiera Norte", "Leasing Sur"]

        service.update_provider(sample_provider.id, CreditProviderUpdate(is_active=False))
        assert [p.name for p in service.list_credit_providers()] == ["Leasing Sur"]
        assert len(service.list_credit_providers(include_inactive=True)) == 2

    def test_duplicate_provider(self, db_session, sample_provider):
        with pytest.raises(HTTPException) as exc_info:
            FinancingService(db_session).create_provider(CreditProviderCreate(name="Financiera Norte"))
        assert exc_info.value.status_code == 409

    def test_operation_created(self, db_session, financed_invoice):
        assert financed_invoice.provider_name == "Financiera Norte"
        assert financed_invoice.gross_amount == Decimal("36.30")
        assert financed_invoice.fee_amount == Decimal("3.00")
        assert financed_invoice.total_pending == Decimal("39.30")
        assert financed_invoice.contract_reference == "CTR-77"
        assert financed_invoice.status == CreditOperationStatus.ACTIVE

    def test_operation_detail(self, db_session, financed_invoice):
        detail = FinancingService(db_session).get_operation_detail(financed_invoice.id, today=date(2026, 4, 1))
        assert [i.amount for i in detail.installments] == [Decimal("13.10")] * 3
        assert [i.status for i in detail.installments] == ["PENDING"] * 3

    def test_overdue_is_derived(self, db_session, financed_invoice):
        detail = FinancingService(db_session).get_operation_detail(financed_invoice.id, today=date(2026, 5, 21))
        assert [i.status for i in detail.installments] == ["OVERDUE", "OVERDUE", "PENDING"]

    def test_pay_installments(self, db_session, financed_invoice):
        service = FinancingService(db_session)
        installments = service.get_operation_detail(financed_invoice.id).installments

        detail = service.pay_installment(installments[0].id, InstallmentPay(paid_date=date(2026, 4, 20)))
        assert detail.operation.total_paid == Decimal("13.10")
        assert detail.operation.total_pending == Decimal("26.20")
        assert detail.installments[0].status == "PAID"
        assert detail.operation.status == CreditOperationStatus.ACTIVE

        with pytest.raises(DocumentStateError):
            service.pay_installment(installments[0].id, InstallmentPay())

        service.pay_installment(installments[1].id, InstallmentPay())
        detail = service.pay_installment(installments[2].id, InstallmentPay())
        assert detail.operation.status == CreditOperationStatus.COMPLETED
        assert detail.operation.total_pending == Decimal("0.00")

    def test_unknown_installment(self, db_session):
        with pytest.raises(NotFoundError):
            FinancingService(db_session).pay_installment(uuid4(), InstallmentPay())


# ===== TESTS DE ENDPOINTS =====

class TestFinancingEndpoints:
    """Tests de los endpoints de financiación"""

    def test_providers(self, client, user_headers, admin_headers):
        response = client.post("/financing/providers", json={"name": "Leasing Sur"}, headers=user_headers)
        assert response.status_code == 403

        response = client.post("/financing/providers", json={"name": "Leasing Sur"}, headers=admin_headers)
        assert response.status_code == 201

        response = client.get("/financing/providers", headers=user_headers)
        assert [p["name"] for p in response.json()] == ["Leasing Sur"]

    def test_financing_payment_flow(self, client, user_headers, admin_headers, sample_invoice, sample_provider):
        response = client.post(f"/documents/{sample_invoice.id}/payments", json={
            "mode": "FINANCING",
            "amount": "36,30",
            "provider_id": str(sample_provider.id),
            "num_installments": 2,
            "payment_date": "2026-03-20",
        }, headers=user_headers)
        assert response.status_code == 201
        assert response.json()["document_status"] == "PAID"

        operations = client.get("/financing/operations", headers=user_headers).json()
        assert len(operations) == 1

        detail = client.get(f"/financing/operations/{operations[0]['id']}", headers=user_headers).json()
        assert [Decimal(i["amount"]) for i in detail["installments"]] == [Decimal("18.15"), Decimal("18.15")]

        installment_id = detail["installments"][0]["id"]
        response = client.post(f"/financing/installments/{installment_id}/pay", json={}, headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["installments"][0]["status"] == "PAID"
