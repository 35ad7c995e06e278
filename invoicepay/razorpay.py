"""Client for creating payment-gateway orders."""

from __future__ import annotations

import base64
import json
import os
import urllib.error
import urllib.request
from dataclasses import asdict, dataclass

ORDERS_URL = "https://api.razorpay.com/v1/orders"


class RazorpayError(Exception):
    """The gateway refused or mangled an order request."""


@dataclass(frozen=True)
class CreateOrderRequest:
    """Body of an order-creation call; amount is in the smallest currency unit."""

    amount: int
    currency: str
    receipt: str
    payment_capture: int

    def to_json(self) -> bytes:
        """Serialise to compact JSON bytes."""
        return json.dumps(asdict(self), separators=(",", ":")).encode("utf-8")


@dataclass(frozen=True)
class CreateOrderResponse:
    """The parts of the gateway's reply the service uses."""

    id: str
    status: str


def _parse_order_response(body: bytes) -> CreateOrderResponse:
    data = json.loads(body)
    if not isinstance(data, dict):
        raise RazorpayError("unexpected order response: " + body.decode("utf-8", "replace"))
    order_id = data.get("id", "")
    status = data.get("status", "")
    if not isinstance(order_id, str) or not isinstance(status, str):
        raise RazorpayError("unexpected order response: " + body.decode("utf-8", "replace"))
    return CreateOrderResponse(id=order_id, status=status)


@dataclass
class RazorpayClient:
    """Creates orders with basic-auth credentials."""

    key_id: str = ""
    key_secret: str = ""
    url: str = ORDERS_URL
    timeout: float = 30.0

    @classmethod
    def from_env(cls) -> "RazorpayClient":
        """Build a client from RAZORPAY_KEY_ID and RAZORPAY_KEY_SECRET."""
        return cls(
            key_id=os.environ.get("RAZORPAY_KEY_ID", ""),
            key_secret=os.environ.get("RAZORPAY_KEY_SECRET", ""),
        )

    def build_order_request(self, amount: float, receipt_id: str) -> CreateOrderRequest:
        """Return the request for ``amount`` rupees, truncated to whole paise."""
        return CreateOrderRequest(
            amount=int(amount * 100),
            currency="INR",
            receipt=receipt_id,
            payment_capture=1,
        )

    def create_order(self, amount: float, receipt_id: str) -> CreateOrderResponse:
        """Create an order; raise RazorpayError unless the gateway answers 200."""
        payload = self.build_order_request(amount, receipt_id).to_json()
        credentials = base64.b64encode(
            f"{self.key_id}:{self.key_secret}".encode("utf-8")
        ).decode("ascii")
        request = urllib.request.Request(
            self.url,
            data=payload,
            method="POST",
            headers={
                "Authorization": f"Basic {credentials}",
                "Content-Type": "application/json",
            },
        )
        try:
            with urllib.request.urlopen(request, timeout=self.timeout) as response:
                status, body = response.status, response.read()
        except urllib.error.HTTPError as exc:
            status, body = exc.code, exc.read()
        if status != 200:
            raise RazorpayError(
                "razorpay order creation failed: " + body.decode("utf-8", "replace")
            )
        return _parse_order_response(body)