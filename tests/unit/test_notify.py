"""Unit tests for authority/notify — message composition, mail service client, factory.

MailServiceNotifier is driven through httpx.MockTransport; no sockets are opened.
"""

from __future__ import annotations

import json
from typing import Any

import httpx
import pytest

from authority.config import Config, MailConfig
from authority.notify.factory import create_notifier
from authority.notify.mail_service import MailServiceNotifier
from authority.notify.messages import (
    compose_email_verification,
    compose_parent_permission,
    compose_password_reset,
)
from authority.notify.outbox import OutboxNotifier
from authority.notify.protocol import (
    NotificationBounced,
    NotificationUnavailable,
    Notifier,
    Topic,
)

ORIGIN = "https://app.test"


def _notifier(handler: Any) -> MailServiceNotifier:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return MailServiceNotifier("http://mail.internal:8078/", client=client)


# ─── Messages ─────────────────────────────────────────────────────────────────


class TestMessages:
    def test_email_verification(self) -> None:
        message = compose_email_verification(ORIGIN, "Alice", "SECRET")
        assert message.topic is Topic.EMAIL_VERIFICATION
        assert message.title == "https://app.test: Email Verification"
        assert "https://app.test/email_confirm?verificationChallengeKey=SECRET" in message.content
        assert "15 minutes" in message.content

    def test_parent_permission_names_child(self) -> None:
        message = compose_parent_permission(ORIGIN, "Kid", "SECRET")
        assert message.topic is Topic.PARENT_PERMISSION
        assert "Kid" in message.title
        assert "/parent_permission_confirm?verificationChallengeKey=SECRET" in message.content

    def test_password_reset(self) -> None:
        message = compose_password_reset(ORIGIN, "SECRET")
        assert message.topic is Topic.PASSWORD_RESET
        assert "https://app.test/reset_password?resetKey=SECRET" in message.content

    def test_realname_is_escaped(self) -> None:
        message = compose_email_verification(ORIGIN, "<script>x</script>", "SECRET")
        assert "<script>" not in message.content
        assert "&lt;script&gt;" in message.content


# ─── MailServiceNotifier ──────────────────────────────────────────────────────


class TestMailServiceNotifier:
    async def test_posts_payload(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"mail_id": 1})

        notifier = _notifier(handler)
        await notifier.send("a@example.com", Topic.PASSWORD_RESET, "Title", "<p>body</p>")
        await notifier.close()

        assert len(seen) == 1
        assert seen[0].method == "POST"
        assert str(seen[0].url) == "http://mail.internal:8078/public/mail/new"
        body = json.loads(seen[0].content)
        assert body == {
            "request_id": 0,
            "destination": "a@example.com",
            "topic": "password_reset",
            "title": "Title",
            "content": "<p>body</p>",
        }

    @pytest.mark.parametrize(
        "payload", ["DestinationBounced", "DestinationProhibited", {"error": "DestinationBounced"}]
    )
    async def test_terminal_errors_bounce(self, payload: Any) -> None:
        notifier = _notifier(lambda request: httpx.Response(400, json=payload))
        with pytest.raises(NotificationBounced):
            await notifier.send("x@example.com", Topic.EMAIL_VERIFICATION, "t", "c")

    async def test_other_error_is_unavailable(self) -> None:
        notifier = _notifier(lambda request: httpx.Response(400, json="Unknown"))
        with pytest.raises(NotificationUnavailable):
            await notifier.send("x@example.com", Topic.EMAIL_VERIFICATION, "t", "c")

    async def test_server_error_is_unavailable(self) -> None:
        notifier = _notifier(lambda request: httpx.Response(500, text="oops"))
        with pytest.raises(NotificationUnavailable, match="500"):
            await notifier.send("x@example.com", Topic.EMAIL_VERIFICATION, "t", "c")

    async def test_connection_error_is_unavailable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        notifier = _notifier(handler)
        with pytest.raises(NotificationUnavailable):
            await notifier.send("x@example.com", Topic.EMAIL_VERIFICATION, "t", "c")

    def test_satisfies_protocol(self) -> None:
        assert isinstance(_notifier(lambda request: httpx.Response(200)), Notifier)


# ─── OutboxNotifier ───────────────────────────────────────────────────────────


class TestOutboxNotifier:
    async def test_captures_messages(self) -> None:
        outbox = OutboxNotifier()
        await outbox.send("a@example.com", Topic.EMAIL_VERIFICATION, "t1", "c1")
        await outbox.send("a@example.com", Topic.PASSWORD_RESET, "t2", "c2")
        assert outbox.last().title == "t2"
        assert outbox.last(Topic.EMAIL_VERIFICATION).title == "t1"

    async def test_fail_with(self) -> None:
        outbox = OutboxNotifier()
        outbox.fail_with = NotificationBounced("DestinationBounced")
        with pytest.raises(NotificationBounced):
            await outbox.send("a@example.com", Topic.EMAIL_VERIFICATION, "t", "c")
        assert outbox.sent == []


# ─── Factory ──────────────────────────────────────────────────────────────────


class TestCreateNotifier:
    async def test_outbox_without_service_url(self) -> None:
        assert isinstance(create_notifier(Config.defaults()), OutboxNotifier)

    async def test_mail_service_with_url(self) -> None:
        config = Config(mail=MailConfig(service_url="http://mail:8078"))
        notifier = create_notifier(config)
        assert isinstance(notifier, MailServiceNotifier)
        await notifier.close()
