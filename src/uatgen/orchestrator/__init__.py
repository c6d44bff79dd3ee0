"""Ticket-to-UAT job orchestration: storage, agents and the quality-gated retry loop."""
