"""SQLite-backed storage for invoices, milestone rules and payments."""

from __future__ import annotations

import logging
import os
import sqlite3
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional, Union

from .models import Invoice, MilestoneRule, Payment

log = logging.getLogger(__name__)

Key = Union[str, uuid.UUID]

_SCHEMA = """
CREATE TABLE IF NOT EXISTS invoices (
    id TEXT PRIMARY KEY,
    project_id TEXT NOT NULL,
    client_id TEXT NOT NULL,
    freelancer_id TEXT NOT NULL,
    type TEXT NOT NULL,
    status TEXT DEFAULT 'draft',
    amount REAL NOT NULL,
    due_date TEXT,
    hours_worked REAL NOT NULL DEFAULT 0,
    hourly_rate REAL NOT NULL DEFAULT 0,
    milestone_phase TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS milestone_rules (
    id TEXT PRIMARY KEY,
    project_id TEXT NOT NULL,
    phase TEXT NOT NULL,
    amount REAL NOT NULL,
    due_date TEXT,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_milestone_rules_project_id
    ON milestone_rules (project_id);
CREATE TABLE IF NOT EXISTS payments (
    id TEXT PRIMARY KEY,
    invoice_id TEXT NOT NULL,
    milestone_id TEXT,
    payer_id TEXT NOT NULL,
    order_id TEXT NOT NULL DEFAULT '',
    receiver_id TEXT NOT NULL,
    amount_paid REAL NOT NULL,
    platform_fee REAL NOT NULL,
    amount_credited REAL NOT NULL,
    status TEXT DEFAULT 'completed',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""


class NotFoundError(LookupError):
    """No stored record matched the lookup."""


def _key(value: Key) -> str:
    """Return the canonical text form of an identifier."""
    if isinstance(value, uuid.UUID):
        return str(value)
    try:
        return str(uuid.UUID(value))
    except ValueError:
        return value


def _dt(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value is not None else None


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Database:
    """A SQLite connection with the service schema applied."""

    def __init__(self, path: Union[str, os.PathLike] = ":memory:") -> None:
        self.connection = sqlite3.connect(os.fspath(path))
        self.connection.row_factory = sqlite3.Row
        self.migrate()

    def migrate(self) -> None:
        """Create any missing tables and indexes."""
        try:
            with self.connection:
                self.connection.executescript(_SCHEMA)
        except sqlite3.Error as exc:
            log.error("migration error: %s", exc)
            raise
        log.info("database migration successful")

    def close(self) -> None:
        """Close the underlying connection."""
        self.connection.close()

    def __enter__(self) -> "Database":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def execute(self, sql: str, params: Iterable[Any] = ()) -> sqlite3.Cursor:
        """Run one statement inside a transaction."""
        with self.connection:
            return self.connection.execute(sql, tuple(params))


@dataclass
class InvoiceFilter:
    """Criteria for listing invoices; unset fields match everything."""

    client_id: Optional[str] = None
    freelancer_id: Optional[str] = None
    project_id: Optional[str] = None
    status: Optional[str] = None
    type: Optional[str] = None


def _invoice_from_row(row: sqlite3.Row) -> Invoice:
    return Invoice(
        id=uuid.UUID(row["id"]),
        project_id=uuid.UUID(row["project_id"]),
        client_id=uuid.UUID(row["client_id"]),
        freelancer_id=uuid.UUID(row["freelancer_id"]),
        type=row["type"],
        status=row["status"],
        amount=row["amount"],
        due_date=_parse_dt(row["due_date"]),
        hours_worked=row["hours_worked"],
        hourly_rate=row["hourly_rate"],
        milestone_phase=row["milestone_phase"],
        created_at=_parse_dt(row["created_at"]),
        updated_at=_parse_dt(row["updated_at"]),
    )


class InvoiceRepository:
    """Stores and queries invoices."""

    def __init__(self, db: Database) -> None:
        self.db = db

    def create_invoice(self, invoice: Invoice) -> None:
        """Insert a new invoice."""
        self.db.execute(
            "INSERT INTO invoices (id, project_id, client_id, freelancer_id, type,"
            " status, amount, due_date, hours_worked, hourly_rate, milestone_phase,"
            " created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                str(invoice.id),
                str(invoice.project_id),
                str(invoice.client_id),
                str(invoice.freelancer_id),
                invoice.type,
                invoice.status,
                invoice.amount,
                _dt(invoice.due_date),
                invoice.hours_worked,
                invoice.hourly_rate,
                invoice.milestone_phase,
                _dt(invoice.created_at),
                _dt(invoice.updated_at),
            ),
        )

    def get_invoice(self, invoice_id: Key) -> Invoice:
        """Return the invoice with ``invoice_id`` or raise NotFoundError."""
        row = self.db.execute(
            "SELECT * FROM invoices WHERE id = ? LIMIT 1", (_key(invoice_id),)
        ).fetchone()
        if row is None:
            raise NotFoundError(f"invoice {invoice_id} not found")
        return _invoice_from_row(row)

    def update_status(self, invoice_id: Key, status: str) -> None:
        """Set the status of the invoice; unknown ids are ignored."""
        self.db.execute(
            "UPDATE invoices SET status = ?, updated_at = ? WHERE id = ?",
            (status, _dt(_now()), _key(invoice_id)),
        )

    def list_invoices(self, filter: Optional[InvoiceFilter] = None) -> List[Invoice]:
        """Return invoices matching every set field of ``filter``."""
        criteria = filter or InvoiceFilter()
        clauses = []
        params: List[Any] = []
        for column, value in (
            ("client_id", criteria.client_id),
            ("freelancer_id", criteria.freelancer_id),
            ("project_id", criteria.project_id),
        ):
            if value is not None:
                clauses.append(f"{column} = ?")
                params.append(_key(value))
        for column, value in (("status", criteria.status), ("type", criteria.type)):
            if value is not None:
                clauses.append(f"{column} = ?")
                params.append(value)
        sql = "SELECT * FROM invoices"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY rowid"
        return [_invoice_from_row(row) for row in self.db.execute(sql, params)]

    def find_by_project_and_phase(self, project_id: Key, phase: str) -> Invoice:
        """Return the first invoice for a project's milestone phase."""
        row = self.db.execute(
            "SELECT * FROM invoices WHERE project_id = ? AND milestone_phase = ?"
            " ORDER BY id LIMIT 1",
            (_key(project_id), phase),
        ).fetchone()
        if row is None:
            raise NotFoundError(f"no invoice for project {project_id} phase {phase!r}")
        return _invoice_from_row(row)

    def mark_paid(self, invoice_id: Key) -> None:
        """Set the invoice's status to ``paid``."""
        self.update_status(invoice_id, "paid")


def _rule_from_row(row: sqlite3.Row) -> MilestoneRule:
    return MilestoneRule(
        id=uuid.UUID(row["id"]),
        project_id=uuid.UUID(row["project_id"]),
        phase=row["phase"],
        amount=row["amount"],
        due_date=_parse_dt(row["due_date"]),
        created_at=_parse_dt(row["created_at"]),
    )


class MilestoneRuleRepository:
    """Stores and queries milestone rules."""

    def __init__(self, db: Database) -> None:
        self.db = db

    def create(self, rule: MilestoneRule) -> None:
        """Insert a new rule."""
        self.db.execute(
            "INSERT INTO milestone_rules (id, project_id, phase, amount, due_date,"
            " created_at) VALUES (?, ?, ?, ?, ?, ?)",
            (
                str(rule.id),
                str(rule.project_id),
                rule.phase,
                rule.amount,
                _dt(rule.due_date),
                _dt(rule.created_at),
            ),
        )

    def update(self, rule: MilestoneRule) -> None:
        """Save every field of ``rule``, inserting it if it is not stored."""
        self.db.execute(
            "INSERT INTO milestone_rules (id, project_id, phase, amount, due_date,"
            " created_at) VALUES (?, ?, ?, ?, ?, ?)"
            " ON CONFLICT (id) DO UPDATE SET project_id = excluded.project_id,"
            " phase = excluded.phase, amount = excluded.amount,"
            " due_date = excluded.due_date, created_at = excluded.created_at",
            (
                str(rule.id),
                str(rule.project_id),
                rule.phase,
                rule.amount,
                _dt(rule.due_date),
                _dt(rule.created_at),
            ),
        )

    def get_by_id(self, rule_id: Key) -> MilestoneRule:
        """Return the rule with ``rule_id`` or raise NotFoundError."""
        row = self.db.execute(
            "SELECT * FROM milestone_rules WHERE id = ? LIMIT 1", (_key(rule_id),)
        ).fetchone()
        if row is None:
            raise NotFoundError(f"milestone rule {rule_id} not found")
        return _rule_from_row(row)

    def get_by_project(self, project_id: Key) -> List[MilestoneRule]:
        """Return every rule of a project."""
        rows = self.db.execute(
            "SELECT * FROM milestone_rules WHERE project_id = ? ORDER BY rowid",
            (_key(project_id),),
        )
        return [_rule_from_row(row) for row in rows]

    def get_by_project_and_phase(self, project_id: Key, phase: str) -> MilestoneRule:
        """Return the project's rule for ``phase`` or raise NotFoundError."""
        row = self.db.execute(
            "SELECT * FROM milestone_rules WHERE project_id = ? AND phase = ?"
            " ORDER BY id LIMIT 1",
            (_key(project_id), phase),
        ).fetchone()
        if row is None:
            raise NotFoundError(f"no milestone rule for phase {phase!r}")
        return _rule_from_row(row)


def _payment_from_row(row: sqlite3.Row) -> Payment:
    milestone = row["milestone_id"]
    return Payment(
        id=uuid.UUID(row["id"]),
        invoice_id=uuid.UUID(row["invoice_id"]),
        milestone_id=uuid.UUID(milestone) if milestone is not None else None,
        payer_id=uuid.UUID(row["payer_id"]),
        order_id=row["order_id"],
        receiver_id=uuid.UUID(row["receiver_id"]),
        amount_paid=row["amount_paid"],
        platform_fee=row["platform_fee"],
        amount_credited=row["amount_credited"],
        status=row["status"],
        created_at=_parse_dt(row["created_at"]),
        updated_at=_parse_dt(row["updated_at"]),
    )


class PaymentRepository:
    """Stores payments."""

    def __init__(self, db: Database) -> None:
        self.db = db

    def create(self, payment: Payment) -> None:
        """Insert a new payment."""
        self.db.execute(
            "INSERT INTO payments (id, invoice_id, milestone_id, payer_id, order_id,"
            " receiver_id, amount_paid, platform_fee, amount_credited, status,"
            " created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                str(payment.id),
                str(payment.invoice_id),
                str(payment.milestone_id) if payment.milestone_id is not None else None,
                str(payment.payer_id),
                payment.order_id,
                str(payment.receiver_id),
                payment.amount_paid,
                payment.platform_fee,
                payment.amount_credited,
                payment.status,
                _dt(payment.created_at),
                _dt(payment.updated_at),
            ),
        )

    def get_by_id(self, payment_id: Key) -> Payment:
        """Return the payment with ``payment_id`` or raise NotFoundError."""
        row = self.db.execute(
            "SELECT * FROM payments WHERE id = ? LIMIT 1", (_key(payment_id),)
        ).fetchone()
        if row is None:
            raise NotFoundError(f"payment {payment_id} not found")
        return _payment_from_row(row)

    def mark_paid(self, payment_id: Key) -> None:
        """Set the payment's status to ``paid``; unknown ids are ignored."""
        self.db.execute(
            "UPDATE payments SET status = ?, updated_at = ? WHERE id = ?",
            ("paid", _dt(_now()), _key(payment_id)),
        )