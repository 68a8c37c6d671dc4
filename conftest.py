"""
Fixtures compartidas para los tests

La base de datos es SQLite en memoria (StaticPool): se recrea en cada test.
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "test"
os.environ["ACCOUNTING_CLOSED_UNTIL"] = ""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from purchasing.main import app
from purchasing.database.database import Base, SessionLocal, sync_engine, get_db
from purchasing.modules.auth.schemas import AuthContext
from purchasing.modules.taxes.models import TaxRate, TaxKind, TaxType
from purchasing.modules.partners.models import Partner
from purchasing.modules.financing.models import CreditProvider
from purchasing.modules.documents.models import DocumentType, ScannedDocument
from purchasing.modules.documents.schemas import DocumentCreate
from purchasing.modules.documents.service import DocumentService


@pytest.fixture
def db_session():
    Base.metadata.drop_all(bind=sync_engine)
    Base.metadata.create_all(bind=sync_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=sync_engine)


@pytest.fixture
def client(db_session):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def admin_auth():
    return AuthContext(user_id="admin-1", roles=["admin"])


@pytest.fixture
def user_auth():
    return AuthContext(user_id="user-1", roles=["accountant"])


@pytest.fixture
def admin_headers(admin_auth):
    return {"X-User-ID": admin_auth.user_id, "X-User-Roles": "admin"}


@pytest.fixture
def user_headers(user_auth):
    return {"X-User-ID": user_auth.user_id, "X-User-Roles": "accountant"}


@pytest.fixture
def sample_tax_rates(db_session):
    rates = [
        TaxRate(name="IVA 21%", rate=Decimal("21"), kind=TaxKind.PURCHASE, tax_type=TaxType.VAT, is_default=True),
        TaxRate(name="IVA 10%", rate=Decimal("10"), kind=TaxKind.PURCHASE, tax_type=TaxType.VAT),
        TaxRate(name="IVA 4%", rate=Decimal("4"), kind=TaxKind.PURCHASE, tax_type=TaxType.VAT),
        TaxRate(name="IRPF 15%", rate=Decimal("15"), kind=TaxKind.PURCHASE, tax_type=TaxType.WITHHOLDING),
    ]
    db_session.add_all(rates)
    db_session.commit()
    return rates


@pytest.fixture
def sample_partner(db_session):
    partner = Partner(name="Ana Socia", partner_number="S-001", email="ana@example.com")
    db_session.add(partner)
    db_session.commit()
    db_session.refresh(partner)
    return partner


@pytest.fixture
def sample_provider(db_session):
    provider = CreditProvider(name="Financiera Norte", provider_type="BNPL")
    db_session.add(provider)
    db_session.commit()
    db_session.refresh(provider)
    return provider


@pytest.fixture
def sample_scan(db_session):
    scan = ScannedDocument(file_name="factura-001.pdf")
    db_session.add(scan)
    db_session.commit()
    db_session.refresh(scan)
    return scan


@pytest.fixture
def invoice_data():
    """Factura de proveedor: 3 x 10,00 al 21% sin IVA incluido"""
    return {
        "document_type": "INVOICE",
        "counterparty": {"kind": "supplier", "id": str(uuid4()), "name": "Suministros Levante S.L."},
        "issue_date": "2026-03-10",
        "due_date": "2026-04-10",
        "supplier_invoice_number": "F-2026-118",
        "lines": [
            {"concept": "Cable HDMI", "quantity": "3", "unit_price": "10,00", "tax_rate": "21"},
        ],
    }


@pytest.fixture
def sample_invoice(db_session, invoice_data):
    return DocumentService(db_session).create_document(DocumentCreate(**invoice_data), "user-1")


@pytest.fixture
def sample_expense(db_session):
    data = DocumentCreate(
        document_type=DocumentType.EXPENSE,
        counterparty={"kind": "manual", "name": "Gasolinera Sur"},
        issue_date=date(2026, 3, 12),
        lines=[{"concept": "Café", "quantity": "1", "unit_price": "1,50", "tax_rate": "10"}],
    )
    return DocumentService(db_session).create_document(data, "user-1")
