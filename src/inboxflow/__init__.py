"""inboxflow - durable email sync, triage and smart-reply workflows."""

__version__ = "0.1.0"
