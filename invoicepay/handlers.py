"""Request handlers for the invoice, milestone rule and payment APIs."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import IntEnum
from typing import Callable, Iterable, List, Mapping, Optional, Sequence, Union

from .events import InvoiceEvent
from .models import (
    Invoice,
    InvoiceStatus,
    InvoiceType,
    InvoiceView,
    MilestoneRule,
    invoice_view,
)
from .repositories import InvoiceFilter, InvoiceRepository
from .services import (
    InvoiceService,
    MilestoneRuleService,
    PaymentService,
    VerificationResult,
)

log = logging.getLogger(__name__)

Metadata = Mapping[str, Union[str, Sequence[str]]]
Publisher = Callable[[InvoiceEvent], None]
ProfileClient = Callable[[str, Mapping[str, str]], float]
TimeClient = Callable[
    [str, str, Optional[datetime], Optional[datetime], Mapping[str, str]],
    Iterable["TimeLog"],
]

_NIL_UUID = uuid.UUID(int=0)


class StatusCode(IntEnum):
    """Status codes attached to handler errors."""

    UNKNOWN = 2
    INVALID_ARGUMENT = 3
    NOT_FOUND = 5
    PERMISSION_DENIED = 7
    INTERNAL = 13
    UNAUTHENTICATED = 16


class HandlerError(Exception):
    """A request was refused; ``code`` says why."""

    def __init__(self, message: str, code: StatusCode = StatusCode.UNKNOWN) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


@dataclass(frozen=True)
class TimeLog:
    """One tracked stretch of work; ``duration`` is in minutes."""

    duration: float


@dataclass(frozen=True)
class CreateInvoiceRequest:
    """Everything needed to raise a new invoice."""

    project_id: str
    client_id: str
    freelancer_id: str
    type: InvoiceType
    fixed_amount: float = 0.0
    milestone_phase: str = ""
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "type", InvoiceType(self.type))


@dataclass(frozen=True)
class MilestoneRuleView:
    """The outward-facing shape of a milestone rule."""

    id: str
    project_id: str
    phase: str
    amount: float
    created_at: datetime
    due_date: Optional[datetime] = None


@dataclass(frozen=True)
class PaymentOrder:
    """A gateway order opened for an invoice payment."""

    payment_id: str
    razorpay_order_id: str
    amount: float
    currency: str
    invoice_id: str


def _values(metadata: Metadata, key: str) -> List[str]:
    found: List[str] = []
    for name, value in metadata.items():
        if name.lower() == key:
            found.extend([value] if isinstance(value, str) else value)
    return found


def extract_role(metadata: Optional[Metadata]) -> str:
    """Return the first ``role`` value of the request metadata."""
    if metadata is None:
        raise HandlerError("missing metadata")
    roles = _values(metadata, "role")
    if not roles:
        raise HandlerError("role not found in metadata")
    return roles[0]


def milestone_view(rule: MilestoneRule) -> MilestoneRuleView:
    """Convert a stored milestone rule to its outward-facing view."""
    return MilestoneRuleView(
        id=str(rule.id),
        project_id=str(rule.project_id),
        phase=rule.phase,
        amount=rule.amount,
        created_at=rule.created_at,
        due_date=rule.due_date,
    )


def _uuid_or_nil(text: str) -> uuid.UUID:
    try:
        return uuid.UUID(text)
    except ValueError:
        return _NIL_UUID


def _require_uuid(text: str, message: str) -> uuid.UUID:
    try:
        return uuid.UUID(text)
    except ValueError as exc:
        raise HandlerError(message, StatusCode.INVALID_ARGUMENT) from exc


class InvoiceHandler:
    """Serves invoice requests."""

    def __init__(
        self,
        repo: InvoiceRepository,
        service: InvoiceService,
        milestone_service: MilestoneRuleService,
        publish: Optional[Publisher] = None,
        profile_client: Optional[ProfileClient] = None,
        time_client: Optional[TimeClient] = None,
    ) -> None:
        self.repo = repo
        self.service = service
        self.milestone_service = milestone_service
        self.publish = publish
        self.profile_client = profile_client
        self.time_client = time_client

    def _hourly_terms(self, role: str, request: CreateInvoiceRequest) -> tuple[float, float]:
        outgoing = {"role": role, "user_id": request.freelancer_id}
        try:
            if self.profile_client is None:
                raise RuntimeError("no profile client configured")
            hourly_rate = float(self.profile_client(request.freelancer_id, outgoing))
        except Exception as exc:
            raise HandlerError(f"failed to get freelancer profile: {exc}") from exc
        try:
            if self.time_client is None:
                raise RuntimeError("no time tracker client configured")
            logs = list(
                self.time_client(
                    request.freelancer_id,
                    request.project_id,
                    request.date_from,
                    request.date_to,
                    outgoing,
                )
            )
        except Exception as exc:
            raise HandlerError(f"failed to get tracked time: {exc}") from exc
        hours_worked = sum(entry.duration / 60.0 for entry in logs)
        return hourly_rate, hours_worked

    def _milestone_amount(self, project_id: uuid.UUID, phase: str) -> float:
        if not phase:
            raise HandlerError("milestone phase is required")
        try:
            self.milestone_service.rule_for_phase(project_id, phase)
        except Exception as exc:
            raise HandlerError(
                f"milestone rule for phase '{phase}' not found: {exc}"
            ) from exc
        raise HandlerError("invoice already exists for this milestone phase")

    def create_invoice(
        self, metadata: Optional[Metadata], request: CreateInvoiceRequest
    ) -> InvoiceView:
        """Work out the amount for the request, store the invoice and announce it."""
        role = extract_role(metadata)
        if role != "freelancer":
            raise HandlerError("unauthorized: only freelancer can create invoice status")

        project_id = _uuid_or_nil(request.project_id)
        client_id = _uuid_or_nil(request.client_id)
        freelancer_id = _uuid_or_nil(request.freelancer_id)
        due_date = request.date_to

        amount = 0.0
        hours_worked = 0.0
        hourly_rate = 0.0
        if request.type is InvoiceType.FIXED:
            amount = request.fixed_amount
        elif request.type is InvoiceType.HOURLY:
            hourly_rate, hours_worked = self._hourly_terms(role, request)
            amount = hourly_rate * hours_worked
        elif request.type is InvoiceType.MILESTONE:
            amount = self._milestone_amount(project_id, request.milestone_phase)

        invoice = Invoice(
            project_id=project_id,
            client_id=client_id,
            freelancer_id=freelancer_id,
            type=request.type.value,
            amount=amount,
            due_date=due_date,
            hours_worked=hours_worked,
            hourly_rate=hourly_rate,
            status="PENDING",
            milestone_phase=request.milestone_phase,
        )
        try:
            self.repo.create_invoice(invoice)
        except Exception as exc:
            raise HandlerError(f"failed to create invoice: {exc}") from exc

        if self.publish is not None:
            event = InvoiceEvent(
                invoice_id=str(invoice.id),
                client_id=str(invoice.client_id),
                event_type="invoice_created",
            )
            try:
                self.publish(event)
            except Exception as exc:
                log.warning("failed to send invoice event: %s", exc)

        return InvoiceView(
            invoice_id=str(invoice.id),
            freelancer_id=str(invoice.freelancer_id),
            client_id=str(invoice.client_id),
            project_id=str(invoice.project_id),
            type=request.type,
            amount=invoice.amount,
            hourly_rate=invoice.hourly_rate,
            hours_worked=invoice.hours_worked,
            status=InvoiceStatus.PENDING,
            milestone_phase=invoice.milestone_phase,
            due_date=due_date,
            issued_at=invoice.created_at,
        )

    def get_invoice(self, invoice_id: str) -> InvoiceView:
        """Return one invoice."""
        return invoice_view(self.repo.get_invoice(invoice_id))

    def invoices_by_user(
        self, metadata: Optional[Metadata], user_id: str, role: str
    ) -> List[InvoiceView]:
        """Return the invoices of a freelancer or client; the caller must hold ``role``."""
        caller_role = extract_role(metadata)
        if caller_role != role:
            raise HandlerError("unauthorized: role mismatch")
        if caller_role == "freelancer":
            criteria = InvoiceFilter(freelancer_id=user_id)
        elif caller_role == "client":
            criteria = InvoiceFilter(client_id=user_id)
        else:
            raise HandlerError("invalid role")
        return [invoice_view(inv) for inv in self.repo.list_invoices(criteria)]

    def invoices_by_project(self, project_id: str) -> List[InvoiceView]:
        """Return every invoice of a project."""
        criteria = InvoiceFilter(project_id=project_id)
        return [invoice_view(inv) for inv in self.repo.list_invoices(criteria)]

    def update_invoice_status(
        self,
        metadata: Optional[Metadata],
        invoice_id: str,
        status: Union[InvoiceStatus, str],
    ) -> InvoiceView:
        """Let a client change an invoice's status; return the stored result."""
        role = extract_role(metadata)
        if role != "client":
            raise HandlerError("unauthorized: only clients can update invoice status")
        self.repo.update_status(invoice_id, InvoiceStatus(status).value)
        return invoice_view(self.repo.get_invoice(invoice_id))

    def invoice_pdf(self, invoice_id: str) -> bytes:
        """Return the invoice rendered as PDF bytes."""
        return self.service.invoice_pdf(invoice_id)


class MilestoneRuleHandler:
    """Serves milestone rule requests."""

    def __init__(self, service: MilestoneRuleService) -> None:
        self.service = service

    def create_rule(
        self,
        metadata: Optional[Metadata],
        project_id: str,
        phase: str,
        amount: float,
        due_date: Optional[datetime] = None,
    ) -> MilestoneRuleView:
        """Let a client add a milestone rule to a project."""
        role = extract_role(metadata)
        if role != "client":
            raise HandlerError(
                "only clients can create milestone rules", StatusCode.PERMISSION_DENIED
            )
        project_uuid = _require_uuid(project_id, "invalid project ID")
        rule = MilestoneRule(
            project_id=project_uuid, phase=phase, amount=amount, due_date=due_date
        )
        try:
            self.service.create_rule(rule)
        except Exception as exc:
            raise HandlerError(str(exc), StatusCode.INTERNAL) from exc
        return milestone_view(rule)

    def update_rule(
        self,
        metadata: Optional[Metadata],
        rule_id: str,
        phase: str,
        amount: float,
        due_date: Optional[datetime] = None,
    ) -> MilestoneRuleView:
        """Let a client change a rule's phase, amount and due date."""
        role = extract_role(metadata)
        if role != "client":
            raise HandlerError(
                "only clients can update milestone rules", StatusCode.PERMISSION_DENIED
            )
        rule_uuid = _require_uuid(rule_id, "invalid ID")
        rule = MilestoneRule(
            id=rule_uuid,
            project_id=_NIL_UUID,
            phase=phase,
            amount=amount,
            due_date=due_date,
        )
        try:
            updated = self.service.update_rule(rule)
        except Exception as exc:
            raise HandlerError(str(exc), StatusCode.INTERNAL) from exc
        return milestone_view(updated)

    def rules_for_project(self, project_id: str) -> List[MilestoneRuleView]:
        """Return every rule of a project."""
        project_uuid = _require_uuid(project_id, "invalid project ID")
        try:
            rules = self.service.rules_for_project(project_uuid)
        except Exception as exc:
            raise HandlerError(str(exc), StatusCode.INTERNAL) from exc
        return [milestone_view(rule) for rule in rules]

    def rule_for_phase(self, project_id: str, phase: str) -> MilestoneRuleView:
        """Return the project's rule for ``phase``."""
        project_uuid = _require_uuid(project_id, "invalid project ID")
        try:
            rule = self.service.rule_for_phase(project_uuid, phase)
        except Exception as exc:
            raise HandlerError(str(exc), StatusCode.NOT_FOUND) from exc
        return milestone_view(rule)


class PaymentHandler:
    """Serves payment requests."""

    def __init__(self, service: PaymentService) -> None:
        self.service = service

    def create_payment_order(
        self,
        metadata: Optional[Metadata],
        invoice_id: str,
        milestone_id: str,
        payer_id: str,
        receiver_id: str,
        amount: float,
    ) -> PaymentOrder:
        """Let a client open a gateway order for an invoice."""
        if metadata is None:
            raise HandlerError("missing metadata", StatusCode.UNAUTHENTICATED)
        roles = _values(metadata, "role")
        log.debug("payment order requested with roles %s", roles)
        if not roles or roles[0] != "client":
            raise HandlerError(
                "only clients can initiate payment", StatusCode.PERMISSION_DENIED
            )
        payment, order = self.service.create_payment_order(
            invoice_id, milestone_id, payer_id, receiver_id, amount
        )
        return PaymentOrder(
            payment_id=str(payment.id),
            razorpay_order_id=order.id,
            amount=amount,
            currency="INR",
            invoice_id=invoice_id,
        )

    def verify_payment(
        self, payment_id: str, order_id: str, signature: str, invoice_id: str
    ) -> VerificationResult:
        """Check a gateway signature and record the payment."""
        try:
            return self.service.verify_payment(payment_id, order_id, signature, invoice_id)
        except RuntimeError as exc:
            raise HandlerError(
                f"verification failed: {exc}", StatusCode.INTERNAL
            ) from exc