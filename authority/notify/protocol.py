"""Notifier Protocol — the abstract mail-delivery collaborator.

The core hands a fully composed message to ``Notifier.send`` and learns only
whether delivery was accepted. Failures are split in two:

  NotificationBounced     — terminal (destination bounced or prohibited).
                            Surfaced to the caller; retrying cannot help.
  NotificationUnavailable — transient (service down, timeout, bad response).
"""

from __future__ import annotations

from enum import Enum
from typing import Protocol, runtime_checkable


class Topic(str, Enum):
    """Message category. Values are the mail service's topic strings."""

    EMAIL_VERIFICATION = "verification_challenge"
    PARENT_PERMISSION = "parent_permission"
    PASSWORD_RESET = "password_reset"


class NotifyError(Exception):
    """Base class for delivery failures."""


class NotificationBounced(NotifyError):
    """The destination rejected the message. Do not retry."""


class NotificationUnavailable(NotifyError):
    """The delivery transport failed. The request may be retried later."""


@runtime_checkable
class Notifier(Protocol):
    async def send(self, destination: str, topic: Topic, title: str, content: str) -> None:
        """Deliver one message.

        Raises:
            NotificationBounced: Destination bounced or is prohibited.
            NotificationUnavailable: Any other delivery failure.
        """
        ...

    async def close(self) -> None:
        ...
