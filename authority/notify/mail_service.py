"""MailServiceNotifier — delivers messages through an HTTP mail service.

Wire contract:
  POST {service_url}/public/mail/new
  body: {"request_id": 0, "destination", "topic", "title", "content"}
  2xx                              → accepted
  error body "DestinationBounced"  → NotificationBounced
  error body "DestinationProhibited" → NotificationBounced
  anything else (status, timeout, connection error) → NotificationUnavailable

The httpx.AsyncClient is created once per notifier and closed by close();
it is never instantiated per-message.
"""

from __future__ import annotations

from typing import Any, Optional

import httpx

from authority.notify.protocol import NotificationBounced, NotificationUnavailable, Topic
from authority.utils.logger import get_logger

logger = get_logger(__name__)

MAIL_NEW_PATH = "/public/mail/new"

#: Mail service error codes meaning "this destination will never accept it".
TERMINAL_MAIL_ERRORS: frozenset[str] = frozenset({"DestinationBounced", "DestinationProhibited"})


def _error_code(response: httpx.Response) -> Optional[str]:
    """Extract the mail service error code from an error response, if any."""
    try:
        body: Any = response.json()
    except ValueError:
        return None
    if isinstance(body, str):
        return body
    if isinstance(body, dict):
        code = body.get("error")
        return code if isinstance(code, str) else None
    return None


class MailServiceNotifier:
    """Notifier backed by the HTTP mail service."""

    def __init__(
        self,
        service_url: str,
        timeout_s: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._url = service_url.rstrip("/") + MAIL_NEW_PATH
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout_s))

    async def send(self, destination: str, topic: Topic, title: str, content: str) -> None:
        payload = {
            "request_id": 0,
            "destination": destination,
            "topic": topic.value,
            "title": title,
            "content": content,
        }
        try:
            response = await self._client.post(self._url, json=payload)
        except httpx.HTTPError as exc:
            logger.error(
                "mail_service_unreachable",
                topic=topic.value,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise NotificationUnavailable(str(exc)) from exc

        if response.is_success:
            logger.debug("mail_sent", topic=topic.value)
            return

        code = _error_code(response)
        if code in TERMINAL_MAIL_ERRORS:
            logger.warning("mail_bounced", topic=topic.value, mail_error=code)
            raise NotificationBounced(code)

        logger.error(
            "mail_service_error",
            topic=topic.value,
            status_code=response.status_code,
            mail_error=code,
        )
        raise NotificationUnavailable(f"mail service returned HTTP {response.status_code}")

    async def close(self) -> None:
        await self._client.aclose()
