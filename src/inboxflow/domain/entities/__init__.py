"""Value objects exchanged with the mailbox and store ports."""

from inboxflow.domain.entities.email_message import MailboxMessage, ThreadContext, ThreadMessage

__all__ = ["MailboxMessage", "ThreadContext", "ThreadMessage"]
