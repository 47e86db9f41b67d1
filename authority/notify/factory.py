"""Notifier factory — selection by config.mail.

  - mail.service_url set   → MailServiceNotifier
  - mail.service_url unset → OutboxNotifier (messages logged, not delivered)
"""

from __future__ import annotations

from authority.config import Config
from authority.notify.protocol import Notifier
from authority.utils.logger import get_logger

logger = get_logger(__name__)


def create_notifier(config: Config) -> Notifier:
    if config.mail.service_url:
        from authority.notify.mail_service import MailServiceNotifier

        logger.info("notifier_selected", notifier="MailServiceNotifier")
        return MailServiceNotifier(config.mail.service_url, timeout_s=config.mail.timeout_s)

    from authority.notify.outbox import OutboxNotifier

    logger.warning(
        "notifier_selected",
        notifier="OutboxNotifier",
        detail="mail.service_url not configured; messages are not delivered",
    )
    return OutboxNotifier()
