"""
Seed script: populate the reference data the purchasing editors rely on.

What it creates:
- Purchase tax rates: IVA 21% (default), 10%, 4%, 0% and IRPF 15% / 7% withholdings.
- Sales tax rates mirroring the purchase VAT rates.
- Partners (socios) that can pay purchases personally.
- Credit providers for financed purchases.
- Optionally a few pending purchase documents for manual testing (--demo-documents).

Run with the project installed (pip install -e .):
    python scripts/seed_reference_data.py --partners "Ana Socia,Luis Socio" --demo-documents 3

Existing rows are left untouched, so the script can be run repeatedly.
Note: This is intended for development environments only.
"""
import argparse
import random
from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

from purchasing.database.database import SessionLocal, Base, sync_engine
from purchasing.modules.taxes.models import TaxRate, TaxKind, TaxType
from purchasing.modules.partners.models import Partner
from purchasing.modules.financing.models import CreditProvider
from purchasing.modules.documents.models import DocumentType
from purchasing.modules.documents.schemas import DocumentCreate
from purchasing.modules.documents.service import DocumentService
import purchasing.modules.payments.models  # noqa: F401  (registra Payment para las relaciones)

VAT_RATES = [
    ("IVA 21%", Decimal("21"), True),
    ("IVA 10%", Decimal("10"), False),
    ("IVA 4%", Decimal("4"), False),
    ("IVA 0%", Decimal("0"), False),
]
WITHHOLDING_RATES = [
    ("IRPF 15%", Decimal("15")),
    ("IRPF 7%", Decimal("7")),
]
CONCEPTS = ["Cable HDMI", "Soporte de pared", "Servicio de instalación", "Material de oficina", "Desplazamiento"]


def create_tax_rate(db, name, rate, kind, tax_type, is_default=False):
    existing = db.query(TaxRate).filter(
        TaxRate.kind == kind, TaxRate.tax_type == tax_type, TaxRate.rate == rate
    ).first()
    if existing:
        return existing
    tax = TaxRate(name=name, rate=rate, kind=kind, tax_type=tax_type, is_default=is_default)
    db.add(tax)
    db.commit()
    return tax


def create_taxes(db):
    taxes = []
    for kind in (TaxKind.PURCHASE, TaxKind.SALES):
        for name, rate, is_default in VAT_RATES:
            taxes.append(create_tax_rate(db, name, rate, kind, TaxType.VAT, is_default))
    for name, rate in WITHHOLDING_RATES:
        taxes.append(create_tax_rate(db, name, rate, TaxKind.PURCHASE, TaxType.WITHHOLDING))
    return taxes


def create_partners(db, names):
    partners = []
    for i, name in enumerate(names, start=1):
        partner = db.query(Partner).filter(Partner.name == name).first()
        if not partner:
            partner = Partner(name=name, partner_number=f"S-{i:03d}")
            db.add(partner)
            db.commit()
        partners.append(partner)
    return partners


def create_providers(db, names):
    providers = []
    for name in names:
        provider = db.query(CreditProvider).filter(CreditProvider.name == name).first()
        if not provider:
            provider = CreditProvider(name=name, provider_type="BNPL")
            db.add(provider)
            db.commit()
        providers.append(provider)
    return providers


def create_demo_documents(db, count):
    service = DocumentService(db)
    created = 0
    for _ in range(count):
        issue_date = date.today() - timedelta(days=random.randint(0, 20))
        lines = [
            {
                "concept": random.choice(CONCEPTS),
                "quantity": str(random.randint(1, 5)),
                "unit_price": f"{random.randint(5, 250)},{random.randint(0, 99):02d}",
                "tax_rate": random.choice(["21", "10"]),
            }
            for _ in range(random.randint(1, 4))
        ]
        service.create_document(DocumentCreate(
            document_type=DocumentType.INVOICE,
            counterparty={"kind": "supplier", "id": uuid4(), "name": f"Proveedor demo {random.randint(1, 40)}"},
            issue_date=issue_date,
            due_date=issue_date + timedelta(days=30),
            supplier_invoice_number=f"F-{random.randint(1000, 9999)}",
            lines=lines,
        ), user_id="seed")
        created += 1
    return created


def main():
    parser = argparse.ArgumentParser(description="Seed purchasing reference data")
    parser.add_argument("--partners", default="Ana Socia,Luis Socio", help="Comma separated partner names")
    parser.add_argument("--providers", default="Financiera Norte,Leasing Sur", help="Comma separated credit providers")
    parser.add_argument("--demo-documents", type=int, default=0)
    parser.add_argument("--create-tables", action="store_true", help="Create tables before seeding")
    args = parser.parse_args()

    if args.create_tables:
        Base.metadata.create_all(bind=sync_engine)

    db = SessionLocal()
    try:
        print("Creating tax rates...")
        taxes = create_taxes(db)
        print(f"Tax rates: {len(taxes)}")

        partners = create_partners(db, [n.strip() for n in args.partners.split(",") if n.strip()])
        print(f"Partners: {len(partners)}")

        providers = create_providers(db, [n.strip() for n in args.providers.split(",") if n.strip()])
        print(f"Credit providers: {len(providers)}")

        if args.demo_documents:
            print("Creating demo purchase invoices...")
            print(f"Documents created: {create_demo_documents(db, args.demo_documents)}")

        print("\nSeed completed.")
        print("Headers for API requests:")
        print("  X-User-ID: <any id>")
        print("  X-User-Roles: admin")
    finally:
        db.close()


if __name__ == "__main__":
    main()
