# invoicepay

A small invoicing and payments library for freelance projects. It stores
invoices, milestone billing rules and payments in SQLite, renders invoices as
one-page PDF documents, creates Razorpay orders and checks the signatures
Razorpay sends back after a payment. Request handlers on top add role checks.

## Modules

| Module                    | What it holds |
|---------------------------|---------------|
| `invoicepay.models`       | `Invoice`, `MilestoneRule`, `Payment` dataclasses; `InvoiceType`, `InvoiceStatus`; `InvoiceView` and `invoice_view()` |
| `invoicepay.config`       | `Config` and `load_config()` |
| `invoicepay.events`       | `InvoiceEvent` and `produce_invoice_event()` |
| `invoicepay.pdf`          | `invoice_lines()` and `render_invoice_pdf()` |
| `invoicepay.razorpay`     | `RazorpayClient`, `CreateOrderRequest`, `CreateOrderResponse`, `RazorpayError` |
| `invoicepay.repositories` | `Database`, `InvoiceRepository`, `MilestoneRuleRepository`, `PaymentRepository`, `InvoiceFilter`, `NotFoundError` |
| `invoicepay.services`     | `InvoiceService`, `MilestoneRuleService`, `PaymentService`, `VerificationResult`, `ValidationError`, `expected_signature()` |
| `invoicepay.handlers`     | `InvoiceHandler`, `MilestoneRuleHandler`, `PaymentHandler`, `HandlerError`, `StatusCode` and request/response types |

## Configuration

`load_config(env_file=".env")` reads a dotenv file and returns a `Config`;
variables set in the process environment take precedence over the file. It
raises `FileNotFoundError` when the file does not exist. Unset values fall
back to defaults:

| Variable              | Default                      |
|-----------------------|------------------------------|
| `DB_HOST`             | `localhost`                  |
| `DB_PORT`             | `5432`                       |
| `DB_USER`             | `postgres`                   |
| `DB_PASSWORD`         | `password`                   |
| `DB_NAME`             | `freelanceX_invoice_service` |
| `PORT`                | `50051`                      |
| `KAFKA_BROKER`        | `localhost:9092`             |
| `INVOICE_KAFKA_TOPIC` | `invoice-events`             |

`Config.dsn()` formats these into a `host=... port=... user=... password=...
dbname=... sslmode=disable` connection string. The storage in this package is
SQLite and does not use it.

Razorpay credentials come from `RAZORPAY_KEY_ID` and `RAZORPAY_KEY_SECRET`;
`RazorpayClient.from_env()` reads them.

## Storage and services

```python
from invoicepay.razorpay import RazorpayClient
from invoicepay.repositories import (
    Database,
    InvoiceRepository,
    MilestoneRuleRepository,
    PaymentRepository,
)
from invoicepay.services import InvoiceService, MilestoneRuleService, PaymentService

db = Database("invoices.db")  # ":memory:" by default; the schema is created on open

invoices = InvoiceRepository(db)
milestones = MilestoneRuleRepository(db)
payments = PaymentRepository(db)

invoice_service = InvoiceService(invoices)
milestone_service = MilestoneRuleService(milestones)

secret = "secret"
payment_service = PaymentService(
    payments, invoices, milestones, RazorpayClient.from_env(), secret
)
```

`Database` is also a context manager that closes the connection on exit.
Lookups of a single record raise `NotFoundError` when nothing matches;
`InvoiceRepository.list_invoices()` takes an `InvoiceFilter` whose unset
fields match everything.

- `invoice_service.invoice_pdf(invoice_id)` returns the PDF bytes of a stored
  invoice.
- `milestone_service.create_rule(rule)` and `update_rule(rule)` raise
  `ValidationError` for a negative amount. `update_rule` changes the stored
  rule's phase and amount, and its due date only when one is given.
- `payment_service.create_payment_order(invoice_id, milestone_id, payer_id,
  receiver_id, amount)` opens a Razorpay order (receipt `rcpt_` plus the first
  eight characters of the invoice id) and stores a pending payment. Malformed
  identifiers raise `ValueError`; a gateway refusal raises `RazorpayError`.
- `payment_service.verify_payment(payment_id, order_id, signature,
  invoice_id)` returns a `VerificationResult`. A valid signature sets the
  invoice's status to `paid`; a storage failure after that raises
  `RuntimeError`.

`expected_signature(secret, order_id, payment_id)` computes the hex
HMAC-SHA256 of `order_id|payment_id`, the value Razorpay is expected to send.

`RazorpayClient.build_order_request(amount, receipt_id)` converts rupees to
whole paise (truncating) in INR with automatic capture; `create_order` posts it
with basic authentication and raises `RazorpayError` unless the answer is 200.

## PDF invoices

`render_invoice_pdf(invoice, generated_at=None)` returns an A4 PDF listing the
invoice's ids, type, status, due date (when set), hours, hourly rate, milestone
phase, amount due and the generation time. `invoice_lines()` returns the same
text lines without rendering.

## Events

`InvoiceEvent(invoice_id, client_id, event_type).to_json()` gives compact JSON
bytes. `produce_invoice_event(send, topic, event)` calls `send(topic, data)`,
logging and re-raising any error it raises.

## Request handlers

`invoicepay.handlers` wraps the services with role checks. Callers pass request
metadata, a mapping holding a `role` entry (a string or a list of strings; the
first value counts):

- only a `freelancer` may create invoices;
- only a `client` may update invoice status, create or update milestone rules,
  or start a payment;
- `invoices_by_user` requires the caller's role to equal the requested role,
  which must be `freelancer` or `client`.

Failures raise `HandlerError`, whose `code` is a `StatusCode`.

`InvoiceHandler.create_invoice(metadata, request)` takes a
`CreateInvoiceRequest` and stores the invoice as `PENDING`:

- `FIXED` invoices use `fixed_amount`;
- `HOURLY` invoices call `profile_client(freelancer_id, metadata)` for the
  hourly rate and `time_client(freelancer_id, project_id, date_from, date_to,
  metadata)` for `TimeLog` entries, whose minutes are summed into hours;
- `MILESTONE` invoices are always refused: without a phase, with "milestone
  phase is required"; when a rule exists for the phase, as already invoiced;
  otherwise, as the rule not being found.

When a `publish` callable is given, an `invoice_created` `InvoiceEvent` is
passed to it; a failure there is only logged.

In views produced by `invoice_view()`, type and status names that are not
members of `InvoiceType` or `InvoiceStatus` appear as the first member, so an
invoice stored as `paid` shows as `PENDING`.

## What it does not do

- It runs no server and has no command-line entry point; the handlers are
  plain Python objects to be called from whatever transport you choose.
- It has no message-broker client: events go to the `send` or `publish`
  callable you supply.
- It has no user-profile or time-tracking client: hourly invoices need the
  `profile_client` and `time_client` callables to be supplied.
- Storage is SQLite only.

## Tests

The test suite uses pytest and is installed with the `test` extra:

```
pip install -e ".[test]"
pytest
```