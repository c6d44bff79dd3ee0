"""Ticket-to-UAT test generation with quality-gated retries."""

__version__ = "0.1.0"
