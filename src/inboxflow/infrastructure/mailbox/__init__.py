"""Mailbox provider adapters."""

from inboxflow.infrastructure.mailbox.nylas import NylasMailboxProvider

__all__ = ["NylasMailboxProvider"]
