"""Message composition for verification and password-reset mail.

Each message names the account, carries the raw secret inside a confirmation
link under the public web origin, and states the 15-minute validity.
The raw secret appears ONLY in the returned content; it is never logged.
"""

from __future__ import annotations

from dataclasses import dataclass
from html import escape

from authority.notify.protocol import Topic

_FOOTER = (
    "<p>If you did not make this request, then feel free to ignore.</p>"
    "<p>This link is valid for up to 15 minutes.</p>"
    "<p>Do not share this link with others.</p>"
)


@dataclass(frozen=True)
class Message:
    topic: Topic
    title: str
    content: str


def compose_email_verification(origin: str, realname: str, challenge_key: str) -> Message:
    return Message(
        topic=Topic.EMAIL_VERIFICATION,
        title=f"{origin}: Email Verification",
        content=(
            f"<p>This email has been sent to verify for: <code>{escape(realname)}</code></p>"
            + _FOOTER
            + f"<p>Verification link: {origin}/email_confirm"
            f"?verificationChallengeKey={challenge_key}</p>"
        ),
    )


def compose_parent_permission(origin: str, realname: str, challenge_key: str) -> Message:
    return Message(
        topic=Topic.PARENT_PERMISSION,
        title=f"{origin}: Parent Permission For {realname}",
        content=(
            f"<p>Your child, <code>{escape(realname)}</code>, has requested "
            f"permission to use: <code>{origin}</code></p>"
            + _FOOTER
            + f"<p>Verification link: {origin}/parent_permission_confirm"
            f"?verificationChallengeKey={challenge_key}</p>"
        ),
    )


def compose_password_reset(origin: str, reset_key: str) -> Message:
    return Message(
        topic=Topic.PASSWORD_RESET,
        title=f"{origin}: Password Reset",
        content=(
            "<p>Requested password reset service.</p>"
            + _FOOTER
            + f"<p>Password change link: {origin}/reset_password?resetKey={reset_key}</p>"
        ),
    )
