"""Outbound notification package.

Layout:
    protocol.py      — Notifier Protocol, Topic, NotifyError hierarchy
    messages.py      — compose_* functions building title + HTML content
    mail_service.py  — MailServiceNotifier (httpx → HTTP mail service)
    outbox.py        — OutboxNotifier (in-process, development and tests)
    factory.py       — create_notifier() — selection by config.mail
"""

from authority.notify.messages import Message
from authority.notify.protocol import (
    NotificationBounced,
    NotificationUnavailable,
    Notifier,
    NotifyError,
    Topic,
)

__all__ = [
    "Message",
    "NotificationBounced",
    "NotificationUnavailable",
    "Notifier",
    "NotifyError",
    "Topic",
]
