"""
Tests para el módulo de Documentos de compra

Cubren:
- Motor de precios (con y sin IVA incluido) y validación de líneas
- Agregación de totales y desglose por tipo
- Máquina de estados y estado de pago derivado
- Sesión de edición con eco de lo tecleado
- Servicio y endpoints: alta, guardado de líneas, aprobación, anulación,
  borrado y periodos cerrados
"""

from datetime import date
from decimal import Decimal
from itertools import product
from uuid import uuid4

import pytest
from pydantic import ValidationError

from purchasing.core.config import settings
from purchasing.common.decimal_input import parse_decimal_input
from purchasing.common.money import round2
from purchasing.common.exceptions import (
    LineValidationError, DocumentStateError, PermissionDeniedError, ClosedPeriodError
)
from purchasing.modules.documents.models import (
    DocumentType, DocumentStatus, PricingMode, ScanStatus, PurchaseDocument, DocumentLine
)
from purchasing.modules.documents.schemas import (
    LineInput, DocumentCreate, DocumentUpdate, ApproveRequest, PreviewRequest
)
from purchasing.modules.documents.pricing import LinePricingEngine
from purchasing.modules.documents.totals import aggregate_lines
from purchasing.modules.documents.status import (
    DocumentStateMachine, PaymentStatus, derive_payment_status, is_overdue, is_settled
)
from purchasing.modules.documents.editor import LineEditorSession
from purchasing.modules.documents.service import DocumentService


# Valores con medios céntimos, cantidades fraccionarias y miles con punto
SWEEP_QUANTITIES = ["0", "1", "3", "2,5", "0,333", "7"]
SWEEP_PRICES = ["0", "0,005", "0,015", "1,005", "12,345", "99,99", "1.234,56"]
SWEEP_DISCOUNTS = ["0", "10", "12,5", "100"]


@pytest.fixture
def engine():
    return LinePricingEngine(Decimal("21"))


# ===== TESTS DEL MOTOR DE PRECIOS =====

class TestLinePricingEngine:
    """Tests para LinePricingEngine"""

    def test_tax_exclusive_line(self, engine):
        """Test 3 x 10,00 al 21% sin IVA incluido"""
        line = LineInput(concept="Cable HDMI", quantity="3", unit_price="10,00", tax_rate="21")
        result = engine.compute_line(line, PricingMode.TAX_EXCLUSIVE, DocumentType.INVOICE)

        assert result.subtotal == Decimal("30.00")
        assert result.tax_amount == Decimal("6.30")
        assert result.total == Decimal("36.30")
        assert result.unit_price == Decimal("10.0000")

    def test_tax_inclusive_line(self, engine):
        """Test ticket de 1,50 con IVA del 10% incluido"""
        line = LineInput(concept="Café", quantity="1", unit_price="1,50", tax_rate="10")
        result = engine.compute_line(line, PricingMode.TAX_INCLUSIVE, DocumentType.EXPENSE)

        assert result.total == Decimal("1.50")
        assert result.subtotal == Decimal("1.36")
        assert result.tax_amount == Decimal("0.14")
        assert result.unit_price == Decimal("1.3636")
        assert result.entered_unit_price == Decimal("1.50")

    def test_inclusive_amounts_add_up(self, engine):
        line = LineInput(concept="Menú", quantity="3", unit_price="12,35", tax_rate="10")
        result = engine.compute_line(line, PricingMode.TAX_INCLUSIVE, DocumentType.EXPENSE)
        assert result.subtotal + result.tax_amount == result.total

    @pytest.mark.parametrize("tax_rate", ["0", "4", "10", "21", "-50", "-99,99"])
    def test_exclusive_rounding_closes(self, engine, tax_rate):
        """Test total y subtotal + IVA nunca difieren en más de un céntimo"""
        for quantity, price, discount in product(SWEEP_QUANTITIES, SWEEP_PRICES, SWEEP_DISCOUNTS):
            line = LineInput(
                concept="Barrido", quantity=quantity, unit_price=price, tax_rate=tax_rate, discount_percent=discount
            )
            result = engine.compute_line(line, PricingMode.TAX_EXCLUSIVE, DocumentType.INVOICE)
            gap = abs(result.total - (result.subtotal + result.tax_amount))
            assert gap <= Decimal("0.01"), (quantity, price, discount, tax_rate)

    @pytest.mark.parametrize("tax_rate", ["0", "4", "10", "21", "-50", "-99,99"])
    def test_inclusive_total_is_kept(self, engine, tax_rate):
        """Test con IVA incluido el total tecleado se reproduce exactamente"""
        for quantity, price, discount in product(SWEEP_QUANTITIES, SWEEP_PRICES, SWEEP_DISCOUNTS):
            line = LineInput(
                concept="Barrido", quantity=quantity, unit_price=price, tax_rate=tax_rate, discount_percent=discount
            )
            result = engine.compute_line(line, PricingMode.TAX_INCLUSIVE, DocumentType.EXPENSE)
            gross = parse_decimal_input(quantity) * parse_decimal_input(price)
            expected = round2(gross * (100 - parse_decimal_input(discount)) / 100)
            assert result.total == expected, (quantity, price, discount, tax_rate)
            assert result.subtotal + result.tax_amount == result.total

    def test_withholding_uses_rounded_subtotal(self, engine):
        """Test la retención se calcula sobre el subtotal ya redondeado"""
        line = LineInput(
            concept="Asesoría", quantity="1", unit_price="10,005", tax_rate="21", withholding_tax_rate="50"
        )
        result = engine.compute_line(line, PricingMode.TAX_EXCLUSIVE, DocumentType.INVOICE)
        assert result.subtotal == Decimal("10.01")
        assert result.withholding_amount == Decimal("5.01")

    def test_discount(self, engine):
        line = LineInput(concept="Soporte", quantity="2", unit_price="50", tax_rate="21", discount_percent="10")
        result = engine.compute_line(line, PricingMode.TAX_EXCLUSIVE, DocumentType.INVOICE)
        assert result.subtotal == Decimal("90.00")
        assert result.tax_amount == Decimal("18.90")
        assert result.total == Decimal("108.90")

    def test_withholding_on_invoice(self, engine):
        line = LineInput(
            concept="Servicio técnico", quantity="1", unit_price="200", tax_rate="21", withholding_tax_rate="15"
        )
        result = engine.compute_line(line, PricingMode.TAX_EXCLUSIVE, DocumentType.INVOICE)
        assert result.withholding_amount == Decimal("30.00")

    def test_expense_never_has_withholding(self, engine):
        line = LineInput(concept="Taxi", quantity="1", unit_price="20", tax_rate="10", withholding_tax_rate="15")
        result = engine.compute_line(line, PricingMode.TAX_INCLUSIVE, DocumentType.EXPENSE)
        assert result.withholding_tax_rate == Decimal("0")
        assert result.withholding_amount == Decimal("0.00")

    def test_default_tax_rate(self, engine):
        result = engine.compute_line(
            LineInput(concept="Varios", unit_price="100"), PricingMode.TAX_EXCLUSIVE, DocumentType.INVOICE
        )
        assert result.tax_rate == Decimal("21")
        assert result.total == Decimal("121.00")

    def test_zero_quantity_inclusive(self, engine):
        """Test cantidad 0 no divide por cero"""
        line = LineInput(concept="Nada", quantity="0", unit_price="5", tax_rate="21")
        result = engine.compute_line(line, PricingMode.TAX_INCLUSIVE, DocumentType.EXPENSE)
        assert result.total == Decimal("0.00")
        assert result.unit_price == Decimal("0.0000")

    def test_garbage_input_is_zero(self, engine):
        line = LineInput(concept="Raro", quantity="abc", unit_price="xyz", tax_rate="21")
        result = engine.compute_line(line, PricingMode.TAX_EXCLUSIVE, DocumentType.INVOICE)
        assert result.total == Decimal("0.00")

    @pytest.mark.parametrize("field, value", [
        ("quantity", "-1"),
        ("unit_price", "-5"),
        ("discount_percent", "150"),
        ("discount_percent", "-1"),
        ("tax_rate", "-100"),
        ("withholding_tax_rate", "-2"),
    ])
    def test_out_of_range_values(self, engine, field, value):
        line = LineInput(concept="Línea", **{field: value})
        with pytest.raises(LineValidationError) as exc_info:
            engine.compute_lines([line], PricingMode.TAX_EXCLUSIVE, DocumentType.INVOICE)
        assert exc_info.value.field == field
        assert exc_info.value.line_index == 0

    def test_concept_required_on_submit(self, engine):
        lines = [LineInput(concept="Ok", unit_price="1"), LineInput(concept="  ", unit_price="1")]
        with pytest.raises(LineValidationError) as exc_info:
            engine.compute_lines(lines, PricingMode.TAX_EXCLUSIVE, DocumentType.INVOICE, require_concept=True)
        assert exc_info.value.field == "concept"
        assert exc_info.value.line_index == 1

    def test_concept_not_required_while_editing(self, engine):
        result = engine.compute_line(LineInput(unit_price="1"), PricingMode.TAX_EXCLUSIVE, DocumentType.INVOICE)
        assert result.total == Decimal("1.21")

    def test_recompute_to_exclusive_uses_net_price(self, engine):
        """Test al pasar a sin IVA el precio neto guardado pasa a ser el tecleado"""
        inclusive = engine.compute_line(
            LineInput(concept="Café", quantity="1", unit_price="1,50", tax_rate="10"),
            PricingMode.TAX_INCLUSIVE, DocumentType.EXPENSE
        )
        [exclusive] = engine.recompute_for_mode([inclusive], PricingMode.TAX_EXCLUSIVE, DocumentType.EXPENSE)

        assert exclusive.entered_unit_price == Decimal("1.3636")
        assert exclusive.subtotal == Decimal("1.36")
        assert exclusive.tax_amount == Decimal("0.14")
        assert exclusive.total == Decimal("1.50")

    def test_recompute_to_inclusive(self, engine):
        exclusive = engine.compute_line(
            LineInput(concept="Cable", quantity="1", unit_price="10", tax_rate="21"),
            PricingMode.TAX_EXCLUSIVE, DocumentType.INVOICE
        )
        [inclusive] = engine.recompute_for_mode([exclusive], PricingMode.TAX_INCLUSIVE, DocumentType.INVOICE)
        assert inclusive.total == Decimal("10.00")
        assert inclusive.subtotal == Decimal("8.26")
        assert inclusive.tax_amount == Decimal("1.74")

    def test_new_line(self, engine):
        line = engine.new_line()
        assert line.temp_id
        assert line.quantity == Decimal("1")
        assert line.tax_rate == Decimal("21")


# ===== TESTS DE TOTALES =====

class TestAggregateLines:
    """Tests para aggregate_lines"""

    def test_totals_and_breakdown(self, engine):
        lines = engine.compute_lines([
            LineInput(concept="A", quantity="1", unit_price="100", tax_rate="21", withholding_tax_rate="15"),
            LineInput(concept="B", quantity="2", unit_price="10", tax_rate="10"),
            LineInput(concept="C", quantity="1", unit_price="50", tax_rate="21"),
        ], PricingMode.TAX_EXCLUSIVE, DocumentType.INVOICE)

        totals = aggregate_lines(lines, {Decimal("21.00"): "IVA 21%"}, {Decimal("15"): "IRPF 15%"})

        assert totals.subtotal == Decimal("170.00")
        assert totals.tax_amount == Decimal("33.50")
        assert totals.total == Decimal("203.50")
        assert totals.withholding_amount == Decimal("15.00")
        assert totals.net_payable == Decimal("188.50")

        assert [item.rate for item in totals.tax_breakdown] == [Decimal("21"), Decimal("10")]
        assert totals.tax_breakdown[0].label == "IVA 21%"
        assert totals.tax_breakdown[0].base == Decimal("150.00")
        assert totals.tax_breakdown[1].label == "TAX 10%"

        assert len(totals.withholding_breakdown) == 1
        assert totals.withholding_breakdown[0].label == "IRPF 15%"
        assert totals.withholding_breakdown[0].amount == Decimal("15.00")

    def test_totals_are_sums_of_rounded_lines(self, engine):
        lines = engine.compute_lines([
            LineInput(concept="X", quantity="1", unit_price="0,333", tax_rate="21"),
            LineInput(concept="Y", quantity="1", unit_price="0,333", tax_rate="21"),
        ], PricingMode.TAX_EXCLUSIVE, DocumentType.INVOICE)
        totals = aggregate_lines(lines)
        assert totals.total == sum(line.total for line in lines)

    def test_empty(self):
        totals = aggregate_lines([])
        assert totals.total == Decimal("0")
        assert totals.tax_breakdown == []


# ===== TESTS DE ESTADOS =====

class TestDocumentStateMachine:
    """Tests para DocumentStateMachine"""

    def test_pending_document(self):
        machine = DocumentStateMachine(DocumentStatus.PENDING_VALIDATION)
        actions = machine.allowed_actions(privileged=True)
        assert actions.can_edit is True
        assert actions.can_approve is True
        assert actions.can_delete is True
        assert actions.can_register_payment is True

    def test_non_privileged_cannot_approve_or_cancel(self):
        machine = DocumentStateMachine(DocumentStatus.PENDING_VALIDATION)
        actions = machine.allowed_actions(privileged=False)
        assert actions.can_approve is False
        assert actions.can_cancel is False
        with pytest.raises(PermissionDeniedError):
            machine.ensure_can_approve(privileged=False)

    @pytest.mark.parametrize("status", [DocumentStatus.APPROVED, DocumentStatus.PAID])
    def test_locked_statuses(self, status):
        machine = DocumentStateMachine(status, internal_number="C-26-0001")
        assert machine.is_locked
        assert machine.can_edit() is False
        assert machine.can_delete() is False
        assert machine.can_register_payment() is True
        with pytest.raises(DocumentStateError):
            machine.ensure_can_edit()

    def test_locked_flag(self):
        machine = DocumentStateMachine(DocumentStatus.REGISTERED, locked_flag=True)
        assert machine.is_locked
        assert machine.can_approve(privileged=True) is False

    def test_paid_without_number_can_be_approved(self):
        machine = DocumentStateMachine(DocumentStatus.PAID)
        assert machine.can_approve(privileged=True) is True
        assert machine.status_after_approval() == DocumentStatus.PAID

    @pytest.mark.parametrize("status", [DocumentStatus.DRAFT, DocumentStatus.CANCELLED])
    def test_no_payments(self, status):
        machine = DocumentStateMachine(status)
        with pytest.raises(DocumentStateError) as exc_info:
            machine.ensure_can_register_payment()
        assert exc_info.value.action == "register_payment"

    def test_cancel_with_payments(self):
        machine = DocumentStateMachine(DocumentStatus.APPROVED, has_payments=True)
        with pytest.raises(DocumentStateError):
            machine.ensure_can_cancel(privileged=True)

    def test_payment_transitions(self):
        machine = DocumentStateMachine(DocumentStatus.APPROVED)
        assert machine.status_after_payment(Decimal("10.00"), Decimal("100.00")) == DocumentStatus.APPROVED
        assert machine.status_after_payment(Decimal("0.00"), Decimal("100.00")) == DocumentStatus.PAID
        assert machine.status_after_payment(Decimal("0.01"), Decimal("100.00")) == DocumentStatus.PAID

        paid = DocumentStateMachine(DocumentStatus.PAID, internal_number="C-26-0001")
        assert paid.status_after_payment_removed(Decimal("50.00"), Decimal("100.00")) == DocumentStatus.APPROVED
        assert paid.status_after_payment_removed(Decimal("0"), Decimal("100.00")) == DocumentStatus.PAID

    def test_unapproved_paid_document_returns_to_previous_status(self):
        """Test un documento pagado sin número no queda bloqueado como APPROVED"""
        paid = DocumentStateMachine(DocumentStatus.PAID, pre_payment_status=DocumentStatus.REGISTERED)
        assert paid.status_after_payment_removed(Decimal("50.00"), Decimal("100.00")) == DocumentStatus.REGISTERED

        legacy = DocumentStateMachine(DocumentStatus.PAID)
        reopened = legacy.status_after_payment_removed(Decimal("50.00"), Decimal("100.00"))
        assert reopened == DocumentStatus.PENDING_VALIDATION
        machine = DocumentStateMachine(reopened)
        assert machine.can_edit()
        assert machine.can_approve(privileged=True)

    def test_is_settled(self):
        assert is_settled(Decimal("-20.00"), Decimal("100.00"))  # pagado de más con confirmación
        assert not is_settled(Decimal("0.02"), Decimal("100.00"))
        assert is_settled(Decimal("0.00"), Decimal("-50.00"))
        assert not is_settled(Decimal("-10.00"), Decimal("-50.00"))


class TestPaymentStatus:
    """Tests para el estado de pago derivado"""

    def test_not_booked(self):
        assert derive_payment_status(Decimal("100"), Decimal("0"), DocumentStatus.PENDING_VALIDATION) is None

    def test_booked(self):
        assert derive_payment_status(Decimal("100"), Decimal("0"), DocumentStatus.APPROVED) == PaymentStatus.PENDING
        assert derive_payment_status(Decimal("100"), Decimal("40"), DocumentStatus.APPROVED) == PaymentStatus.PARTIAL
        assert derive_payment_status(Decimal("100"), Decimal("99.99"), DocumentStatus.APPROVED) == PaymentStatus.PAID

    def test_refund_uses_absolute_values(self):
        status = derive_payment_status(Decimal("-50"), Decimal("-50"), DocumentStatus.APPROVED)
        assert status == PaymentStatus.PAID

    def test_overdue(self):
        today = date(2026, 5, 1)
        assert is_overdue(DocumentStatus.APPROVED, PaymentStatus.PENDING, date(2026, 4, 30), today)
        assert not is_overdue(DocumentStatus.APPROVED, PaymentStatus.PAID, date(2026, 4, 30), today)
        assert not is_overdue(DocumentStatus.APPROVED, PaymentStatus.PENDING, date(2026, 5, 1), today)
        assert not is_overdue(DocumentStatus.PENDING_VALIDATION, None, date(2026, 4, 30), today)
        assert not is_overdue(DocumentStatus.APPROVED, PaymentStatus.PENDING, None, today)


# ===== TESTS DEL EDITOR =====

class TestLineEditorSession:
    """Tests para LineEditorSession"""

    def test_typing_echo_and_recalculation(self, engine):
        session = LineEditorSession(DocumentType.INVOICE, engine)
        line = session.add_line()

        updated = session.update_field(line.row_key, "unit_price", "10,")
        assert updated.total == Decimal("12.10")
        assert session.display(line.row_key, "unit_price") == "10,"
        assert session.dirty is True

        session.blur(line.row_key, "unit_price")
        assert session.display(line.row_key, "unit_price") == "10"

    def test_inclusive_shows_entered_price(self, engine):
        session = LineEditorSession(DocumentType.EXPENSE, engine)
        assert session.pricing_mode == PricingMode.TAX_INCLUSIVE
        line = session.add_line()
        session.update_field(line.row_key, "tax_rate", "10")
        session.update_field(line.row_key, "unit_price", "1,50")
        session.blur(line.row_key, "unit_price")

        assert session.display(line.row_key, "unit_price") == "1,5"
        assert session.line(line.row_key).unit_price == Decimal("1.3636")

    def test_recalculates_from_entered_price(self, engine):
        """Test cambiar la cantidad parte del precio tecleado, no del neto derivado"""
        session = LineEditorSession(DocumentType.EXPENSE, engine)
        line = session.add_line()
        session.update_field(line.row_key, "tax_rate", "10")
        session.update_field(line.row_key, "unit_price", "1,50")
        updated = session.update_field(line.row_key, "quantity", "2")
        assert updated.total == Decimal("3.00")

    def test_remove_line_forgets_echo(self, engine):
        session = LineEditorSession(DocumentType.INVOICE, engine)
        line = session.add_line()
        session.update_field(line.row_key, "quantity", "2,")
        session.remove_line(line.row_key)
        assert session.lines == []
        assert len(session.echo) == 0

    def test_unknown_field(self, engine):
        session = LineEditorSession(DocumentType.INVOICE, engine)
        line = session.add_line()
        with pytest.raises(ValueError):
            session.update_field(line.row_key, "color", "rojo")

    def test_switch_mode_and_totals(self, engine):
        session = LineEditorSession(DocumentType.INVOICE, engine)
        line = session.add_line()
        session.update_field(line.row_key, "concept", "Cable")
        session.update_field(line.row_key, "unit_price", "10")

        session.set_pricing_mode(PricingMode.TAX_INCLUSIVE)
        totals = session.totals()
        assert totals.total == Decimal("10.00")
        assert totals.subtotal == Decimal("8.26")

    def test_to_inputs_and_mark_saved(self, engine):
        session = LineEditorSession(DocumentType.INVOICE, engine)
        line = session.add_line()
        session.update_field(line.row_key, "concept", "Cable")
        session.update_field(line.row_key, "unit_price", "10")

        inputs = session.to_inputs()
        assert inputs[0].concept == "Cable"
        assert inputs[0].unit_price == Decimal("10")

        session.mark_saved()
        assert session.dirty is False

    def test_sessions_do_not_share_echo(self, engine):
        first = LineEditorSession(DocumentType.INVOICE, engine)
        second = LineEditorSession(DocumentType.INVOICE, engine)
        line = first.add_line()
        first.update_field(line.row_key, "quantity", "3,")
        assert len(first.echo) == 1
        assert len(second.echo) == 0


# ===== TESTS DE SERVICIO =====

class TestDocumentService:
    """Tests para DocumentService"""

    def test_create_invoice(self, db_session, sample_invoice):
        assert sample_invoice.status == DocumentStatus.PENDING_VALIDATION
        assert sample_invoice.pricing_mode == PricingMode.TAX_EXCLUSIVE
        assert sample_invoice.total == Decimal("36.30")
        assert sample_invoice.tax_base == Decimal("30.00")
        assert sample_invoice.pending_amount == Decimal("36.30")
        assert len(sample_invoice.lines) == 1
        assert sample_invoice.internal_number is None

    def test_create_expense_defaults_to_inclusive(self, db_session, sample_expense):
        assert sample_expense.pricing_mode == PricingMode.TAX_INCLUSIVE
        assert sample_expense.beneficiary_name == "Gasolinera Sur"
        assert sample_expense.total == Decimal("1.50")
        assert sample_expense.lines[0].unit_price == Decimal("1.3636")

    def test_manual_beneficiary_not_allowed_on_invoice(self, invoice_data):
        invoice_data["counterparty"] = {"kind": "manual", "name": "Alguien"}
        with pytest.raises(ValidationError):
            DocumentCreate(**invoice_data)

    def test_due_date_before_issue(self, invoice_data):
        invoice_data["due_date"] = "2026-03-01"
        with pytest.raises(ValidationError):
            DocumentCreate(**invoice_data)

    def test_create_rejects_invalid_line(self, db_session, invoice_data):
        invoice_data["lines"].append({"concept": "", "unit_price": "5"})
        with pytest.raises(LineValidationError):
            DocumentService(db_session).create_document(DocumentCreate(**invoice_data))
        assert db_session.query(PurchaseDocument).count() == 0

    def test_save_lines_replaces_set(self, db_session, sample_invoice):
        service = DocumentService(db_session)
        document = service.save_document_lines(sample_invoice.id, [
            LineInput(concept="Monitor", quantity="1", unit_price="150", tax_rate="21"),
            LineInput(concept="Libro", quantity="2", unit_price="20", tax_rate="4"),
        ])

        assert [line.concept for line in document.lines] == ["Monitor", "Libro"]
        assert [line.position for line in document.lines] == [0, 1]
        assert document.total == Decimal("223.10")
        assert db_session.query(DocumentLine).count() == 2

    def test_failed_save_keeps_previous_lines(self, db_session, sample_invoice):
        service = DocumentService(db_session)
        with pytest.raises(LineValidationError):
            service.save_document_lines(sample_invoice.id, [
                LineInput(concept="Bien", unit_price="1"),
                LineInput(concept="Mal", quantity="-1"),
            ])
        db_session.expire_all()
        document = service.get_document(sample_invoice.id)
        assert [line.concept for line in document.lines] == ["Cable HDMI"]
        assert document.total == Decimal("36.30")

    def test_update_header(self, db_session, sample_invoice):
        document = DocumentService(db_session).update_document(
            sample_invoice.id, DocumentUpdate(notes="Revisar", supplier_invoice_number="F-2026-119")
        )
        assert document.notes == "Revisar"
        assert document.supplier_invoice_number == "F-2026-119"
        assert document.due_date == date(2026, 4, 10)

    def test_set_pricing_mode(self, db_session, sample_invoice):
        document = DocumentService(db_session).set_pricing_mode(sample_invoice.id, PricingMode.TAX_INCLUSIVE)
        assert document.pricing_mode == PricingMode.TAX_INCLUSIVE
        assert document.total == Decimal("30.00")
        assert document.tax_base == Decimal("24.79")

    def test_preview_does_not_persist(self, db_session, sample_tax_rates):
        response = DocumentService(db_session).preview(PreviewRequest(
            document_type=DocumentType.EXPENSE,
            lines=[LineInput(concept="Café", unit_price="1,50", tax_rate="10")],
        ))
        assert response.pricing_mode == PricingMode.TAX_INCLUSIVE
        assert response.totals.total == Decimal("1.50")
        assert response.totals.tax_breakdown[0].label == "IVA 10%"
        assert db_session.query(PurchaseDocument).count() == 0

    def test_approve_assigns_number_and_locks(self, db_session, sample_invoice, admin_auth, invoice_data):
        service = DocumentService(db_session)
        document = service.approve_document(sample_invoice.id, admin_auth)

        assert document.status == DocumentStatus.APPROVED
        assert document.is_locked is True
        assert document.internal_number == "C-26-0001"

        second = service.create_document(DocumentCreate(**invoice_data))
        second = service.approve_document(second.id, admin_auth)
        assert second.internal_number == "C-26-0002"

    def test_approved_document_is_read_only(self, db_session, sample_invoice, admin_auth):
        service = DocumentService(db_session)
        service.approve_document(sample_invoice.id, admin_auth)
        with pytest.raises(DocumentStateError):
            service.save_document_lines(sample_invoice.id, [LineInput(concept="Nuevo", unit_price="1")])
        with pytest.raises(DocumentStateError):
            service.update_document(sample_invoice.id, DocumentUpdate(notes="x"))

    def test_approve_requires_privileged(self, db_session, sample_invoice, user_auth):
        with pytest.raises(PermissionDeniedError):
            DocumentService(db_session).approve_document(sample_invoice.id, user_auth)

    def test_approve_saves_pending_edits_first(self, db_session, sample_invoice, admin_auth):
        edits = ApproveRequest(
            header=DocumentUpdate(notes="Aprobada con cambios"),
            lines=[LineInput(concept="Cable HDMI 2m", quantity="4", unit_price="10", tax_rate="21")],
        )
        document = DocumentService(db_session).approve_document(sample_invoice.id, admin_auth, edits)
        assert document.status == DocumentStatus.APPROVED
        assert document.notes == "Aprobada con cambios"
        assert document.total == Decimal("48.40")

    def test_approve_aborts_when_edits_fail(self, db_session, sample_invoice, admin_auth):
        edits = ApproveRequest(lines=[LineInput(concept="", unit_price="1")])
        service = DocumentService(db_session)
        with pytest.raises(LineValidationError):
            service.approve_document(sample_invoice.id, admin_auth, edits)
        db_session.expire_all()
        document = service.get_document(sample_invoice.id)
        assert document.status == DocumentStatus.PENDING_VALIDATION
        assert document.internal_number is None

    def test_expense_numbering(self, db_session, sample_expense, admin_auth):
        document = DocumentService(db_session).approve_document(sample_expense.id, admin_auth)
        assert document.internal_number == "T-26-0001"

    def test_cancel(self, db_session, sample_invoice, admin_auth):
        document = DocumentService(db_session).cancel_document(sample_invoice.id, admin_auth)
        assert document.status == DocumentStatus.CANCELLED

    def test_delete_releases_scan(self, db_session, sample_scan, invoice_data):
        invoice_data["scanned_document_id"] = str(sample_scan.id)
        service = DocumentService(db_session)
        document = service.create_document(DocumentCreate(**invoice_data))
        db_session.refresh(sample_scan)
        assert sample_scan.status == ScanStatus.ASSIGNED
        assert sample_scan.assigned_to_id == document.id

        service.delete_document(document.id)

        db_session.expire_all()
        assert db_session.query(PurchaseDocument).count() == 0
        assert db_session.query(DocumentLine).count() == 0
        assert sample_scan.status == ScanStatus.UNASSIGNED
        assert sample_scan.assigned_to_id is None

    def test_cannot_delete_approved(self, db_session, sample_invoice, admin_auth):
        service = DocumentService(db_session)
        service.approve_document(sample_invoice.id, admin_auth)
        with pytest.raises(DocumentStateError):
            service.delete_document(sample_invoice.id)

    def test_closed_period(self, db_session, invoice_data, monkeypatch):
        monkeypatch.setattr(settings, "ACCOUNTING_CLOSED_UNTIL", date(2026, 3, 31))
        with pytest.raises(ClosedPeriodError):
            DocumentService(db_session).create_document(DocumentCreate(**invoice_data))

    def test_settlement_view(self, db_session, sample_invoice):
        view = DocumentService(db_session).get_settlement_view(sample_invoice.id)
        assert view.total == Decimal("36.30")
        assert view.pending_amount == Decimal("36.30")
        assert view.is_locked is False


# ===== TESTS DE ENDPOINTS =====

class TestDocumentEndpoints:
    """Tests de los endpoints de documentos"""

    def test_create_and_get(self, client, user_headers, invoice_data, sample_tax_rates):
        response = client.post("/documents", json=invoice_data, headers=user_headers)
        assert response.status_code == 201
        data = response.json()
        assert Decimal(data["total"]) == Decimal("36.30")
        assert data["counterparty"]["kind"] == "supplier"
        assert data["payment_status"] is None
        assert data["allowed_actions"]["can_approve"] is False
        assert data["totals"]["tax_breakdown"][0]["label"] == "IVA 21%"

        response = client.get(f"/documents/{data['id']}", headers=user_headers)
        assert response.status_code == 200
        assert len(response.json()["lines"]) == 1

    def test_admin_sees_approve_action(self, client, admin_headers, sample_invoice):
        response = client.get(f"/documents/{sample_invoice.id}", headers=admin_headers)
        assert response.json()["allowed_actions"]["can_approve"] is True

    def test_invalid_line_returns_field(self, client, user_headers, invoice_data):
        invoice_data["lines"][0]["discount_percent"] = "120"
        response = client.post("/documents", json=invoice_data, headers=user_headers)
        assert response.status_code == 422
        data = response.json()
        assert data["code"] == "LINE_VALIDATION_ERROR"
        assert data["field"] == "discount_percent"
        assert data["line_index"] == 0

    def test_list(self, client, user_headers, sample_invoice, sample_expense):
        response = client.get("/documents", headers=user_headers, params={"document_type": "EXPENSE"})
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["documents"][0]["document_type"] == "EXPENSE"

    def test_not_found(self, client, user_headers):
        response = client.get(f"/documents/{uuid4()}", headers=user_headers)
        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    def test_replace_lines(self, client, user_headers, sample_invoice):
        response = client.put(
            f"/documents/{sample_invoice.id}/lines",
            json={"lines": [{"concept": "Monitor", "quantity": "1", "unit_price": "1.234,56", "tax_rate": "21"}]},
            headers=user_headers
        )
        assert response.status_code == 200
        data = response.json()
        assert Decimal(data["tax_base"]) == Decimal("1234.56")
        assert Decimal(data["total"]) == Decimal("1493.82")

    def test_preview(self, client, user_headers):
        response = client.post("/documents/preview", json={
            "document_type": "INVOICE",
            "lines": [{"concept": "Cable HDMI", "quantity": "3", "unit_price": "10,00", "tax_rate": "21"}],
        }, headers=user_headers)
        assert response.status_code == 200
        assert Decimal(response.json()["totals"]["total"]) == Decimal("36.30")

    def test_approve_requires_admin(self, client, user_headers, sample_invoice):
        response = client.post(f"/documents/{sample_invoice.id}/approve", headers=user_headers)
        assert response.status_code == 403

    def test_approve_then_edit_conflict(self, client, admin_headers, sample_invoice):
        response = client.post(f"/documents/{sample_invoice.id}/approve", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["internal_number"] == "C-26-0001"
        assert response.json()["allowed_actions"]["can_edit"] is False

        response = client.patch(f"/documents/{sample_invoice.id}", json={"notes": "x"}, headers=admin_headers)
        assert response.status_code == 409
        assert response.json()["code"] == "DOCUMENT_STATE_ERROR"

    def test_pricing_mode_change(self, client, user_headers, sample_expense):
        response = client.post(
            f"/documents/{sample_expense.id}/pricing-mode",
            json={"pricing_mode": "TAX_EXCLUSIVE"},
            headers=user_headers
        )
        assert response.status_code == 200
        assert response.json()["pricing_mode"] == "TAX_EXCLUSIVE"
        assert Decimal(response.json()["total"]) == Decimal("1.50")

    def test_cancel_and_delete(self, client, admin_headers, user_headers, sample_invoice, sample_expense):
        response = client.post(f"/documents/{sample_invoice.id}/cancel", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["status"] == "CANCELLED"

        response = client.delete(f"/documents/{sample_expense.id}", headers=user_headers)
        assert response.status_code == 204

    def test_closed_period_message(self, client, user_headers, invoice_data, monkeypatch):
        monkeypatch.setattr(settings, "ACCOUNTING_CLOSED_UNTIL", date(2026, 3, 31))
        response = client.post("/documents", json=invoice_data, headers=user_headers)
        assert response.status_code == 400
        data = response.json()
        assert data["code"] == "PERIOD_CLOSED"
        assert "mes está cerrado" in data["detail"]
