"""OutboxNotifier — keeps messages in process instead of delivering them.

Used when no mail service is configured (development) and in tests, where
the captured content is how a test learns a challenge or reset secret.
``fail_with`` makes every send raise the given error, to exercise the
bounce and outage paths.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from authority.notify.protocol import NotifyError, Topic
from authority.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class OutboxEntry:
    destination: str
    topic: Topic
    title: str
    content: str


class OutboxNotifier:
    def __init__(self) -> None:
        self.sent: list[OutboxEntry] = []
        self.fail_with: Optional[NotifyError] = None

    async def send(self, destination: str, topic: Topic, title: str, content: str) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append(OutboxEntry(destination, topic, title, content))
        # Content holds the raw secret; only the envelope is logged.
        logger.info("outbox_message_stored", topic=topic.value, title=title)

    def last(self, topic: Optional[Topic] = None) -> OutboxEntry:
        """Most recent message, optionally of one topic. IndexError if none."""
        matching = [m for m in self.sent if topic is None or m.topic is topic]
        return matching[-1]

    async def close(self) -> None:
        self.sent.clear()
