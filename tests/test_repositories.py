import uuid
from datetime import datetime, timezone

import pytest

from invoicepay.models import Invoice, MilestoneRule, Payment
from invoicepay.repositories import (
    Database,
    InvoiceFilter,
    InvoiceRepository,
    MilestoneRuleRepository,
    NotFoundError,
    PaymentRepository,
)


@pytest.fixture
def db():
    database = Database(":memory:")
    yield database
    database.close()


def _invoice(**overrides):
    values = dict(
        project_id=uuid.uuid4(),
        client_id=uuid.uuid4(),
        freelancer_id=uuid.uuid4(),
        type="FIXED",
        amount=250.5,
    )
    values.update(overrides)
    return Invoice(**values)


def test_invoice_round_trip(db):
    repo = InvoiceRepository(db)
    due = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    invoice = _invoice(due_date=due, milestone_phase="design", hours_worked=3.5)
    repo.create_invoice(invoice)
    assert repo.get_invoice(str(invoice.id)) == invoice
    assert repo.get_invoice(invoice.id).due_date == due


def test_invoice_default_status_is_draft(db):
    repo = InvoiceRepository(db)
    invoice = _invoice()
    repo.create_invoice(invoice)
    assert repo.get_invoice(invoice.id).status == "draft"


def test_get_missing_invoice_raises(db):
    repo = InvoiceRepository(db)
    with pytest.raises(NotFoundError):
        repo.get_invoice(uuid.uuid4())


def test_update_status_and_mark_paid(db):
    repo = InvoiceRepository(db)
    invoice = _invoice()
    repo.create_invoice(invoice)
    repo.update_status(str(invoice.id), "PENDING")
    assert repo.get_invoice(invoice.id).status == "PENDING"
    repo.mark_paid(invoice.id)
    assert repo.get_invoice(invoice.id).status == "paid"


def test_update_status_of_unknown_invoice_is_silent(db):
    repo = InvoiceRepository(db)
    invoice = _invoice()
    repo.create_invoice(invoice)
    repo.update_status(uuid.uuid4(), "PAID")
    assert repo.get_invoice(invoice.id).status == "draft"


def test_list_invoices_filters(db):
    repo = InvoiceRepository(db)
    client = uuid.uuid4()
    first = _invoice(client_id=client, type="FIXED")
    second = _invoice(client_id=client, type="HOURLY")
    other = _invoice()
    for invoice in (first, second, other):
        repo.create_invoice(invoice)

    assert [i.id for i in repo.list_invoices(InvoiceFilter())] == [
        first.id,
        second.id,
        other.id,
    ]
    by_client = repo.list_invoices(InvoiceFilter(client_id=str(client)))
    assert [i.id for i in by_client] == [first.id, second.id]
    hourly = repo.list_invoices(InvoiceFilter(client_id=str(client), type="HOURLY"))
    assert [i.id for i in hourly] == [second.id]
    by_project = repo.list_invoices(InvoiceFilter(project_id=str(other.project_id)))
    assert [i.id for i in by_project] == [other.id]
    assert repo.list_invoices(InvoiceFilter(status="paid")) == []


def test_find_by_project_and_phase(db):
    repo = InvoiceRepository(db)
    invoice = _invoice(milestone_phase="launch")
    repo.create_invoice(invoice)
    assert repo.find_by_project_and_phase(invoice.project_id, "launch").id == invoice.id
    with pytest.raises(NotFoundError):
        repo.find_by_project_and_phase(invoice.project_id, "other")


def test_milestone_rule_round_trip_and_update(db):
    repo = MilestoneRuleRepository(db)
    project = uuid.uuid4()
    rule = MilestoneRule(project_id=project, phase="alpha", amount=100.0)
    repo.create(rule)
    assert repo.get_by_id(rule.id) == rule

    rule.amount = 150.0
    rule.phase = "beta"
    repo.update(rule)
    stored = repo.get_by_id(str(rule.id))
    assert stored.amount == 150.0
    assert stored.phase == "beta"
    assert repo.get_by_project_and_phase(project, "beta").id == rule.id


def test_milestone_update_inserts_unknown_rule(db):
    repo = MilestoneRuleRepository(db)
    rule = MilestoneRule(project_id=uuid.uuid4(), phase="gamma", amount=1.0)
    repo.update(rule)
    assert repo.get_by_id(rule.id) == rule


def test_milestone_rules_by_project(db):
    repo = MilestoneRuleRepository(db)
    project = uuid.uuid4()
    rules = [MilestoneRule(project_id=project, phase=p, amount=1.0) for p in ("a", "b")]
    for rule in rules:
        repo.create(rule)
    repo.create(MilestoneRule(project_id=uuid.uuid4(), phase="a", amount=2.0))
    assert [r.id for r in repo.get_by_project(project)] == [r.id for r in rules]
    assert repo.get_by_project(uuid.uuid4()) == []


def test_missing_milestone_rule_raises(db):
    repo = MilestoneRuleRepository(db)
    with pytest.raises(NotFoundError):
        repo.get_by_id(uuid.uuid4())
    with pytest.raises(NotFoundError):
        repo.get_by_project_and_phase(uuid.uuid4(), "alpha")


def test_payment_round_trip_and_mark_paid(db):
    repo = PaymentRepository(db)
    payment = Payment(
        invoice_id=uuid.uuid4(),
        payer_id=uuid.uuid4(),
        receiver_id=uuid.uuid4(),
        amount_paid=42.0,
        milestone_id=uuid.uuid4(),
        order_id="order_1",
    )
    repo.create(payment)
    assert repo.get_by_id(payment.id) == payment
    repo.mark_paid(payment.id)
    assert repo.get_by_id(payment.id).status == "paid"


def test_payment_without_milestone(db):
    repo = PaymentRepository(db)
    payment = Payment(
        invoice_id=uuid.uuid4(),
        payer_id=uuid.uuid4(),
        receiver_id=uuid.uuid4(),
        amount_paid=5.0,
    )
    repo.create(payment)
    stored = repo.get_by_id(payment.id)
    assert stored.milestone_id is None
    assert stored.status == "completed"


def test_migrate_is_idempotent(tmp_path):
    path = tmp_path / "store.db"
    invoice = _invoice()
    with Database(path) as first:
        InvoiceRepository(first).create_invoice(invoice)
    with Database(path) as second:
        second.migrate()
        assert InvoiceRepository(second).get_invoice(invoice.id) == invoice