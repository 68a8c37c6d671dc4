"""
Tests para el módulo de Impuestos
"""

from decimal import Decimal

import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from purchasing.modules.taxes.models import TaxKind, TaxType
from purchasing.modules.taxes.schemas import TaxRateCreate
from purchasing.modules.taxes.service import TaxService


class TestTaxService:
    """Tests para TaxService"""

    def test_rates_ordered_descending(self, db_session, sample_tax_rates):
        options = TaxService(db_session).get_tax_rates()
        assert [o.rate for o in options] == [Decimal("21"), Decimal("10"), Decimal("4")]
        assert options[0].is_default is True

    def test_withholding_rates_are_separate(self, db_session, sample_tax_rates):
        options = TaxService(db_session).get_tax_rates(tax_type=TaxType.WITHHOLDING)
        assert len(options) == 1
        assert options[0].label == "IRPF 15%"

    def test_inactive_rates_hidden_by_default(self, db_session, sample_tax_rates):
        sample_tax_rates[2].is_active = False
        db_session.commit()

        service = TaxService(db_session)
        assert len(service.get_tax_rates()) == 2
        assert len(service.get_tax_rates(include_inactive=True)) == 3

    def test_default_rate_from_table(self, db_session, sample_tax_rates):
        default = TaxService(db_session).get_default_rate()
        assert default.rate == Decimal("21")
        assert default.label == "IVA 21%"

    def test_default_rate_fallback(self, db_session):
        """Test sin impuestos configurados se usa DEFAULT_TAX_RATE"""
        default = TaxService(db_session).get_default_rate()
        assert default.rate == Decimal("21")
        assert default.label == "IVA 21%"

    def test_labels(self, db_session, sample_tax_rates):
        labels = TaxService(db_session).get_labels()
        assert labels[Decimal("10")] == "IVA 10%"

    def test_create_default_unsets_previous(self, db_session, sample_tax_rates):
        service = TaxService(db_session)
        service.create_tax_rate(TaxRateCreate(name="IVA 5%", rate=Decimal("5"), is_default=True))

        db_session.expire_all()
        assert service.get_default_rate().rate == Decimal("5")
        defaults = [o for o in service.get_tax_rates() if o.is_default]
        assert len(defaults) == 1

    def test_create_duplicate_rate(self, db_session, sample_tax_rates):
        with pytest.raises(HTTPException) as exc_info:
            TaxService(db_session).create_tax_rate(TaxRateCreate(name="Otro 21", rate=Decimal("21")))
        assert exc_info.value.status_code == 409

    def test_negative_withholding_rejected(self, db_session):
        data = TaxRateCreate(name="Raro", rate=Decimal("-1"), tax_type=TaxType.WITHHOLDING)
        with pytest.raises(HTTPException) as exc_info:
            TaxService(db_session).create_tax_rate(data)
        assert exc_info.value.status_code == 422

    def test_rate_bounds(self):
        with pytest.raises(ValidationError):
            TaxRateCreate(name="Imposible", rate=Decimal("150"))


class TestTaxEndpoints:
    """Tests de los endpoints de impuestos"""

    def test_list_requires_user(self, client, sample_tax_rates):
        response = client.get("/taxes")
        assert response.status_code == 401
        assert response.json()["code"] == "MISSING_USER"

    def test_list(self, client, user_headers, sample_tax_rates):
        response = client.get("/taxes", headers=user_headers)
        assert response.status_code == 200
        assert len(response.json()) == 3

    def test_default(self, client, user_headers, sample_tax_rates):
        response = client.get("/taxes/default", headers=user_headers, params={"kind": TaxKind.PURCHASE.value})
        assert response.status_code == 200
        assert Decimal(response.json()["rate"]) == Decimal("21")

    def test_create_requires_privileged_role(self, client, user_headers):
        response = client.post("/taxes", headers=user_headers, json={"name": "IVA 5%", "rate": "5"})
        assert response.status_code == 403

    def test_create(self, client, admin_headers):
        response = client.post("/taxes", headers=admin_headers, json={"name": "IVA 5%", "rate": "5"})
        assert response.status_code == 201
        assert response.json()["kind"] == "purchase"
