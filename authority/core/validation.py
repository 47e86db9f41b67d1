"""Pure field checks, run before any ledger or notifier I/O."""

from __future__ import annotations

from authority.constants import PASSWORD_MIN_LENGTH, USERNAME_MAX_LENGTH
from authority.errors import AuthError, ErrorKind

_USERNAME_ALPHABET = frozenset("abcdefghijklmnopqrstuvwxyz0123456789")


def is_username_valid(username: str) -> bool:
    """1..20 characters, ASCII lowercase letters and digits only."""
    return 0 < len(username) <= USERNAME_MAX_LENGTH and set(username) <= _USERNAME_ALPHABET


def is_realname_valid(realname: str) -> bool:
    return len(realname) > 0


def is_password_secure(password: str) -> bool:
    """At least 8 characters including one decimal digit."""
    return len(password) >= PASSWORD_MIN_LENGTH and any(c in "0123456789" for c in password)


def check_profile(username: str, realname: str) -> None:
    """Raise on the first invalid profile field (realname first)."""
    if not is_realname_valid(realname):
        raise AuthError(ErrorKind.REALNAME_INVALID)
    if not is_username_valid(username):
        raise AuthError(ErrorKind.USERNAME_INVALID)


def check_password(password: str) -> None:
    if not is_password_secure(password):
        raise AuthError(ErrorKind.PASSWORD_INSECURE)


def check_email(email: str) -> None:
    if not email:
        raise AuthError(ErrorKind.EMAIL_EMPTY)
