"""Single-page PDF rendering of an invoice."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from .models import Invoice

_K = 72 / 25.4  # points per millimetre
_PAGE_W = 595.28
_PAGE_H = 841.89
_MARGIN = 10.0
_CELL_H = 10.0
_REGULAR = "F1"
_BOLD = "F2"


@dataclass(frozen=True)
class _Line:
    text: str
    font: str
    size: float
    advance: float


def _layout(invoice: Invoice, generated_at: Optional[datetime]) -> List[_Line]:
    when = generated_at or datetime.now()
    body = [
        f"Invoice ID: {invoice.id}",
        f"Project ID: {invoice.project_id}",
        f"Client ID: {invoice.client_id}",
        f"Freelancer ID: {invoice.freelancer_id}",
        f"Invoice Type: {invoice.type}",
        f"Status: {invoice.status}",
    ]
    if invoice.due_date is not None:
        body.append(f"Due Date: {invoice.due_date:%Y-%m-%d}")
    body += [
        f"Hours Worked: {invoice.hours_worked:.2f}",
        f"Hourly Rate: ${invoice.hourly_rate:.2f}",
        f"Milestone/Phase: {invoice.milestone_phase}",
    ]
    return [
        _Line("Invoice", _BOLD, 20, 15),
        *(_Line(text, _REGULAR, 12, 8) for text in body),
        _Line(f"Amount Due: ${invoice.amount:.2f}", _BOLD, 14, 15),
        _Line(f"Generated on {when:%Y-%m-%d %H:%M:%S}", _REGULAR, 10, 10),
    ]


def invoice_lines(invoice: Invoice, generated_at: Optional[datetime] = None) -> List[str]:
    """Return the text lines printed on the invoice, top to bottom."""
    return [line.text for line in _layout(invoice, generated_at)]


def _escape(text: str) -> str:
    return text.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")


def _content(lines: List[_Line]) -> bytes:
    ops = []
    y = _MARGIN
    for line in lines:
        baseline = y + _CELL_H / 2 + 0.3 * line.size / _K
        ops.append(
            f"BT /{line.font} {line.size:.2f} Tf "
            f"{_MARGIN * _K:.2f} {_PAGE_H - baseline * _K:.2f} Td "
            f"({_escape(line.text)}) Tj ET"
        )
        y += line.advance
    return "\n".join(ops).encode("latin-1", "replace")


def render_invoice_pdf(invoice: Invoice, generated_at: Optional[datetime] = None) -> bytes:
    """Render the invoice as an A4 PDF document and return its bytes."""
    stream = _content(_layout(invoice, generated_at))
    objects = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        b"<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        (
            f"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 {_PAGE_W:.2f} {_PAGE_H:.2f}] "
            "/Resources << /Font << /F1 4 0 R /F2 5 0 R >> >> /Contents 6 0 R >>"
        ).encode("ascii"),
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica /Encoding /WinAnsiEncoding >>",
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica-Bold /Encoding /WinAnsiEncoding >>",
        f"<< /Length {len(stream)} >>\nstream\n".encode("ascii") + stream + b"\nendstream",
    ]
    out = bytearray(b"%PDF-1.3\n")
    offsets = []
    for number, body in enumerate(objects, start=1):
        offsets.append(len(out))
        out += f"{number} 0 obj\n".encode("ascii") + body + b"\nendobj\n"
    xref_at = len(out)
    out += f"xref\n0 {len(objects) + 1}\n0000000000 65535 f \n".encode("ascii")
    for offset in offsets:
        out += f"{offset:010d} 00000 n \n".encode("ascii")
    out += (
        f"trailer\n<< /Size {len(objects) + 1} /Root 1 0 R >>\n"
        f"startxref\n{xref_at}\n%%EOF\n"
    ).encode("ascii")
    return bytes(out)