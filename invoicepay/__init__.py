"""Invoices, milestone billing rules, SQLite storage, PDF rendering and Razorpay payment verification."""

__version__ = "0.1.0"