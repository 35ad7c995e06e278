"""Business rules on top of the repositories."""

from __future__ import annotations

import hashlib
import hmac
import os
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Tuple, Union

from .models import Invoice, MilestoneRule, Payment
from .pdf import render_invoice_pdf
from .razorpay import CreateOrderResponse, RazorpayClient
from .repositories import (
    InvoiceFilter,
    InvoiceRepository,
    MilestoneRuleRepository,
    PaymentRepository,
)

Key = Union[str, uuid.UUID]


class ValidationError(ValueError):
    """Input broke a business rule."""


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of checking a payment signature."""

    valid: bool
    message: str


def expected_signature(secret: str, order_id: str, payment_id: str) -> str:
    """Return the hex HMAC-SHA256 of ``order_id|payment_id`` under ``secret``."""
    data = f"{order_id}|{payment_id}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), data, hashlib.sha256).hexdigest()


class InvoiceService:
    """Invoice operations."""

    def __init__(self, repo: InvoiceRepository) -> None:
        self.repo = repo

    def create_invoice(self, invoice: Invoice) -> None:
        """Store a new invoice."""
        self.repo.create_invoice(invoice)

    def get_invoice(self, invoice_id: Key) -> Invoice:
        """Return one invoice."""
        return self.repo.get_invoice(invoice_id)

    def update_status(self, invoice_id: Key, status: str) -> None:
        """Change an invoice's status."""
        self.repo.update_status(invoice_id, status)

    def list_invoices(self, filter: Optional[InvoiceFilter] = None) -> List[Invoice]:
        """Return invoices matching ``filter``."""
        return self.repo.list_invoices(filter)

    def invoice_pdf(self, invoice_id: Key) -> bytes:
        """Render the stored invoice as PDF bytes."""
        return render_invoice_pdf(self.repo.get_invoice(invoice_id))


def _check_amount(rule: MilestoneRule) -> None:
    if rule.amount < 0:
        raise ValidationError("milestone amount must be non-negative")


class MilestoneRuleService:
    """Milestone rule operations."""

    def __init__(self, repo: MilestoneRuleRepository) -> None:
        self.repo = repo

    def create_rule(self, rule: MilestoneRule) -> None:
        """Store a new rule; its amount must not be negative."""
        _check_amount(rule)
        self.repo.create(rule)

    def update_rule(self, rule: MilestoneRule) -> MilestoneRule:
        """Update phase, amount and, when given, due date of a stored rule."""
        _check_amount(rule)
        existing = self.repo.get_by_id(rule.id)
        existing.phase = rule.phase
        existing.amount = rule.amount
        if rule.due_date is not None:
            existing.due_date = rule.due_date
        self.repo.update(existing)
        return existing

    def rules_for_project(self, project_id: Key) -> List[MilestoneRule]:
        """Return every rule of a project."""
        return self.repo.get_by_project(project_id)

    def rule_for_phase(self, project_id: Key, phase: str) -> MilestoneRule:
        """Return the project's rule for ``phase``."""
        return self.repo.get_by_project_and_phase(project_id, phase)


class PaymentService:
    """Creates gateway orders and verifies completed payments."""

    def __init__(
        self,
        payment_repo: PaymentRepository,
        invoice_repo: InvoiceRepository,
        milestone_repo: MilestoneRuleRepository,
        razorpay: Optional[RazorpayClient] = None,
        secret: Optional[str] = None,
    ) -> None:
        self.payment_repo = payment_repo
        self.invoice_repo = invoice_repo
        self.milestone_repo = milestone_repo
        self._razorpay = razorpay
        self._secret = secret

    def _client(self) -> RazorpayClient:
        return self._razorpay if self._razorpay is not None else RazorpayClient.from_env()

    def _signing_secret(self) -> str:
        if self._secret is not None:
            return self._secret
        return os.environ.get("RAZORPAY_KEY_SECRET", "")

    def create_payment_order(
        self,
        invoice_id: str,
        milestone_id: str,
        payer_id: str,
        receiver_id: str,
        amount: float,
    ) -> Tuple[Payment, CreateOrderResponse]:
        """Open a gateway order and record a pending payment for it.

        Raises ValueError for malformed identifiers.
        """
        invoice_uuid = uuid.UUID(invoice_id)
        payer_uuid = uuid.UUID(payer_id)
        receiver_uuid = uuid.UUID(receiver_id)

        order = self._client().create_order(amount, "rcpt_" + invoice_id[:8])

        now = datetime.now(timezone.utc)
        payment = Payment(
            invoice_id=invoice_uuid,
            payer_id=payer_uuid,
            receiver_id=receiver_uuid,
            amount_paid=amount,
            status="pending",
            order_id=order.id,
            created_at=now,
            updated_at=now,
        )
        if milestone_id:
            payment.milestone_id = uuid.UUID(milestone_id)

        self.payment_repo.create(payment)
        return payment, order

    def verify_payment(
        self, payment_id: str, order_id: str, signature: str, invoice_id: str
    ) -> VerificationResult:
        """Check the gateway signature and mark the invoice paid when it holds.

        Raises RuntimeError when the signature is valid but storage fails.
        """
        wanted = expected_signature(self._signing_secret(), order_id, payment_id)
        if wanted != signature:
            return VerificationResult(False, "Invalid signature")

        invoice_uuid = uuid.UUID(invoice_id)
        try:
            self.invoice_repo.mark_paid(invoice_uuid)
        except Exception as exc:
            raise RuntimeError("Signature valid but DB update failed") from exc
        try:
            self.payment_repo.mark_paid(invoice_uuid)
        except Exception as exc:
            raise RuntimeError("Invoice marked but payment DB update failed") from exc

        return VerificationResult(True, "Payment verified and invoice marked paid")