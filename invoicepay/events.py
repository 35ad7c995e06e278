"""Invoice events published to a message broker."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from typing import Callable

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class InvoiceEvent:
    """Notice that something happened to an invoice."""

    invoice_id: str
    client_id: str
    event_type: str

    def to_json(self) -> bytes:
        """Serialise to compact JSON bytes."""
        return json.dumps(asdict(self), separators=(",", ":")).encode("utf-8")


def produce_invoice_event(
    send: Callable[[str, bytes], None], topic: str, event: InvoiceEvent
) -> None:
    """Publish ``event`` on ``topic`` through ``send(topic, value)``.

    Errors raised by ``send`` are logged and propagated.
    """
    data = event.to_json()
    try:
        send(topic, data)
    except Exception as exc:
        log.error("event write error: %s", exc)
        raise
    log.info("produced invoice event: %s", event)