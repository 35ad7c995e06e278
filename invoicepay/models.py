"""Domain records for invoices, milestone rules and payments."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Type, TypeVar


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InvoiceType(str, Enum):
    """How an invoice amount is worked out."""

    FIXED = "FIXED"
    HOURLY = "HOURLY"
    MILESTONE = "MILESTONE"


class InvoiceStatus(str, Enum):
    """Lifecycle state of an invoice as exposed to callers."""

    PENDING = "PENDING"
    PAID = "PAID"


_E = TypeVar("_E", bound=Enum)


def _enum_from_name(enum_cls: Type[_E], name: str) -> _E:
    """Look a member up by name, falling back to the first (zero) member."""
    try:
        return enum_cls[name]
    except KeyError:
        return next(iter(enum_cls))


@dataclass(kw_only=True)
class Invoice:
    """A stored invoice."""

    project_id: uuid.UUID
    client_id: uuid.UUID
    freelancer_id: uuid.UUID
    type: str
    amount: float
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    status: str = "draft"
    due_date: Optional[datetime] = None
    hours_worked: float = 0.0
    hourly_rate: float = 0.0
    milestone_phase: str = ""
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)


@dataclass(kw_only=True)
class MilestoneRule:
    """The amount owed when a project reaches a given phase."""

    project_id: uuid.UUID
    phase: str
    amount: float
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    due_date: Optional[datetime] = None
    created_at: datetime = field(default_factory=_now)


@dataclass(kw_only=True)
class Payment:
    """A payment made against an invoice."""

    invoice_id: uuid.UUID
    payer_id: uuid.UUID
    receiver_id: uuid.UUID
    amount_paid: float
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    milestone_id: Optional[uuid.UUID] = None
    order_id: str = ""
    platform_fee: float = 0.0
    amount_credited: float = 0.0
    status: str = "completed"
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)


@dataclass(frozen=True, kw_only=True)
class InvoiceView:
    """The outward-facing shape of an invoice."""

    invoice_id: str
    freelancer_id: str
    client_id: str
    project_id: str
    type: InvoiceType
    amount: float
    hourly_rate: float
    hours_worked: float
    status: InvoiceStatus
    milestone_phase: str
    due_date: Optional[datetime] = None
    issued_at: Optional[datetime] = None


def invoice_view(invoice: Invoice) -> InvoiceView:
    """Convert a stored invoice to its outward-facing view.

    Type and status names that are not known map to the first member.
    """
    return InvoiceView(
        invoice_id=str(invoice.id),
        freelancer_id=str(invoice.freelancer_id),
        client_id=str(invoice.client_id),
        project_id=str(invoice.project_id),
        type=_enum_from_name(InvoiceType, invoice.type),
        amount=invoice.amount,
        hourly_rate=invoice.hourly_rate,
        hours_worked=invoice.hours_worked,
        status=_enum_from_name(InvoiceStatus, invoice.status),
        milestone_phase=invoice.milestone_phase,
        due_date=invoice.due_date,
    )