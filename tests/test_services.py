import uuid
from datetime import datetime, timezone

import pytest

from invoicepay.models import Invoice, MilestoneRule
from invoicepay.razorpay import CreateOrderResponse, RazorpayError
from invoicepay.repositories import (
    Database,
    InvoiceFilter,
    InvoiceRepository,
    MilestoneRuleRepository,
    NotFoundError,
    PaymentRepository,
)
from invoicepay.services import (
    InvoiceService,
    MilestoneRuleService,
    PaymentService,
    ValidationError,
    VerificationResult,
    expected_signature,
)


class FakeGateway:
    def __init__(self, order_id="order_abc", fail=False):
        self.order_id = order_id
        self.fail = fail
        self.calls = []

    def create_order(self, amount, receipt_id):
        self.calls.append((amount, receipt_id))
        if self.fail:
            raise RazorpayError("razorpay order creation failed: boom")
        return CreateOrderResponse(id=self.order_id, status="created")


@pytest.fixture
def db():
    database = Database()
    yield database
    database.close()


def _invoice():
    return Invoice(
        project_id=uuid.uuid4(),
        client_id=uuid.uuid4(),
        freelancer_id=uuid.uuid4(),
        type="FIXED",
        amount=99.0,
    )


def _payment_service(db, gateway=None, secret="secret"):
    return PaymentService(
        PaymentRepository(db),
        InvoiceRepository(db),
        MilestoneRuleRepository(db),
        gateway or FakeGateway(),
        secret,
    )


def test_invoice_service_round_trip(db):
    service = InvoiceService(InvoiceRepository(db))
    invoice = _invoice()
    service.create_invoice(invoice)
    assert service.get_invoice(str(invoice.id)) == invoice
    service.update_status(invoice.id, "PENDING")
    assert service.get_invoice(invoice.id).status == "PENDING"
    listed = service.list_invoices(InvoiceFilter(client_id=str(invoice.client_id)))
    assert [i.id for i in listed] == [invoice.id]


def test_invoice_pdf(db):
    service = InvoiceService(InvoiceRepository(db))
    invoice = _invoice()
    service.create_invoice(invoice)
    data = service.invoice_pdf(invoice.id)
    assert data.startswith(b"%PDF")
    assert str(invoice.id).encode("ascii") in data


def test_invoice_pdf_missing_invoice(db):
    service = InvoiceService(InvoiceRepository(db))
    with pytest.raises(NotFoundError):
        service.invoice_pdf(uuid.uuid4())


def test_create_rule_rejects_negative_amount(db):
    service = MilestoneRuleService(MilestoneRuleRepository(db))
    with pytest.raises(ValidationError, match="non-negative"):
        service.create_rule(MilestoneRule(project_id=uuid.uuid4(), phase="a", amount=-1))


def test_create_and_lookup_rules(db):
    service = MilestoneRuleService(MilestoneRuleRepository(db))
    project = uuid.uuid4()
    rule = MilestoneRule(project_id=project, phase="design", amount=0.0)
    service.create_rule(rule)
    assert service.rule_for_phase(project, "design") == rule
    assert service.rules_for_project(project) == [rule]


def test_update_rule_keeps_due_date_when_not_given(db):
    service = MilestoneRuleService(MilestoneRuleRepository(db))
    project = uuid.uuid4()
    due = datetime(2024, 6, 1, tzinfo=timezone.utc)
    rule = MilestoneRule(project_id=project, phase="design", amount=10.0, due_date=due)
    service.create_rule(rule)

    change = MilestoneRule(id=rule.id, project_id=uuid.uuid4(), phase="build", amount=20.0)
    updated = service.update_rule(change)
    stored = service.rule_for_phase(project, "build")
    assert stored == updated
    assert stored.amount == 20.0
    assert stored.due_date == due
    assert stored.project_id == project


def test_update_rule_errors(db):
    service = MilestoneRuleService(MilestoneRuleRepository(db))
    with pytest.raises(ValidationError):
        service.update_rule(MilestoneRule(project_id=uuid.uuid4(), phase="a", amount=-5))
    with pytest.raises(NotFoundError):
        service.update_rule(MilestoneRule(project_id=uuid.uuid4(), phase="a", amount=5))


def test_create_payment_order_records_pending_payment(db):
    gateway = FakeGateway(order_id="order_xyz")
    service = _payment_service(db, gateway)
    invoice_id = str(uuid.uuid4())
    milestone_id = str(uuid.uuid4())
    payment, order = service.create_payment_order(
        invoice_id, milestone_id, str(uuid.uuid4()), str(uuid.uuid4()), 500.0
    )
    assert gateway.calls == [(500.0, "rcpt_" + invoice_id[:8])]
    assert order.id == "order_xyz"
    stored = PaymentRepository(db).get_by_id(payment.id)
    assert stored.status == "pending"
    assert stored.order_id == "order_xyz"
    assert stored.milestone_id == uuid.UUID(milestone_id)
    assert stored.invoice_id == uuid.UUID(invoice_id)
    assert stored.amount_paid == 500.0


def test_create_payment_order_without_milestone(db):
    service = _payment_service(db)
    payment, _ = service.create_payment_order(
        str(uuid.uuid4()), "", str(uuid.uuid4()), str(uuid.uuid4()), 1.0
    )
    assert PaymentRepository(db).get_by_id(payment.id).milestone_id is None


def test_create_payment_order_rejects_bad_ids(db):
    service = _payment_service(db)
    with pytest.raises(ValueError):
        service.create_payment_order("nope", "", str(uuid.uuid4()), str(uuid.uuid4()), 1.0)


def test_gateway_failure_stores_nothing(db):
    service = _payment_service(db, FakeGateway(fail=True))
    invoice_id = str(uuid.uuid4())
    with pytest.raises(RazorpayError):
        service.create_payment_order(
            invoice_id, "", str(uuid.uuid4()), str(uuid.uuid4()), 1.0
        )
    count = db.execute("SELECT COUNT(*) FROM payments").fetchone()[0]
    assert count == 0


def test_expected_signature_properties():
    first = expected_signature("secret", "order_1", "pay_1")
    assert len(first) == 64
    assert all(c in "0123456789abcdef" for c in first)
    assert first == expected_signature("secret", "order_1", "pay_1")
    assert first != expected_signature("token", "order_1", "pay_1")
    assert first != expected_signature("secret", "pay_1", "order_1")


def test_verify_payment_valid_marks_invoice_paid(db):
    service = _payment_service(db, secret="secret")
    invoices = InvoiceRepository(db)
    invoice = _invoice()
    invoices.create_invoice(invoice)
    signature = expected_signature("secret", "order_1", "pay_1")
    result = service.verify_payment("pay_1", "order_1", signature, str(invoice.id))
    assert result == VerificationResult(True, "Payment verified and invoice marked paid")
    assert invoices.get_invoice(invoice.id).status == "paid"


def test_verify_payment_invalid_signature(db):
    service = _payment_service(db, secret="secret")
    invoices = InvoiceRepository(db)
    invoice = _invoice()
    invoices.create_invoice(invoice)
    result = service.verify_payment("pay_1", "order_1", "bad", str(invoice.id))
    assert result == VerificationResult(False, "Invalid signature")
    assert invoices.get_invoice(invoice.id).status == "draft"


def test_verify_payment_reads_secret_from_env(db, monkeypatch):
    monkeypatch.setenv("RAZORPAY_KEY_SECRET", "token")
    service = PaymentService(
        PaymentRepository(db), InvoiceRepository(db), MilestoneRuleRepository(db),
        FakeGateway(),
    )
    invoice = _invoice()
    InvoiceRepository(db).create_invoice(invoice)
    signature = expected_signature("token", "order_2", "pay_2")
    assert service.verify_payment("pay_2", "order_2", signature, str(invoice.id)).valid


def test_verify_payment_failing_storage(db):
    service = _payment_service(db, secret="secret")
    db.close()
    signature = expected_signature("secret", "o", "p")
    with pytest.raises(RuntimeError, match="Signature valid but DB update failed"):
        service.verify_payment("p", "o", signature, str(uuid.uuid4()))