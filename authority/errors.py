"""Error taxonomy for the credential authority.

Every failure that crosses the core boundary is an ``AuthError`` carrying an
``ErrorKind``. Kinds are grouped into ``ErrorClass`` families so the HTTP
adapter (and any other transport) can map a whole family to one status code
without knowing individual kinds.

Internal-class errors are raised only after the underlying exception has been
logged with full context; their message never includes that context.
"""

from __future__ import annotations

from enum import Enum


class ErrorClass(str, Enum):
    """Families of failure, ordered roughly by how the caller should react."""

    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    CONFLICT = "conflict"
    UNAUTHORIZED = "unauthorized"
    RATE_LIMITED = "rate_limited"
    VALIDATION = "validation"
    EXTERNAL = "external"
    INTERNAL = "internal"


class ErrorKind(str, Enum):
    """Individual error kinds. The value is the wire name returned to callers."""

    # NotFound-class
    USER_NONEXISTENT = "UserNonexistent"
    USER_DATA_NONEXISTENT = "UserDataNonexistent"
    EMAIL_NONEXISTENT = "EmailNonexistent"
    PASSWORD_NONEXISTENT = "PasswordNonexistent"
    CREDENTIAL_NONEXISTENT = "CredentialNonexistent"
    CHALLENGE_NONEXISTENT = "ChallengeNonexistent"
    PASSWORD_RESET_NONEXISTENT = "PasswordResetNonexistent"

    # Expired-class
    CREDENTIAL_EXPIRED = "CredentialExpired"
    CHALLENGE_TIMED_OUT = "ChallengeTimedOut"
    PASSWORD_RESET_TIMED_OUT = "PasswordResetTimedOut"

    # Conflict-class
    USERNAME_TAKEN = "UsernameTaken"
    EMAIL_ALREADY_CLAIMED = "EmailAlreadyClaimed"
    CHALLENGE_ALREADY_USED = "ChallengeAlreadyUsed"
    PASSWORD_RESET_ALREADY_CONSUMED = "PasswordResetAlreadyConsumed"

    # Unauthorized-class
    CREDENTIAL_UNAUTHORIZED = "CredentialUnauthorized"
    PASSWORD_INCORRECT = "PasswordIncorrect"
    CHALLENGE_WRONG_KIND = "ChallengeWrongKind"

    # RateLimited-class
    EMAIL_COOLDOWN_ACTIVE = "EmailCooldownActive"

    # Validation-class
    PASSWORD_INSECURE = "PasswordInsecure"
    USERNAME_INVALID = "UsernameInvalid"
    REALNAME_INVALID = "RealnameInvalid"
    EMAIL_EMPTY = "EmailEmpty"

    # External-class
    NOTIFICATION_BOUNCED = "NotificationBounced"
    NOTIFICATION_UNAVAILABLE = "NotificationUnavailable"

    # Internal-class
    STORE_FAILURE = "StoreFailure"
    HASHING_FAILURE = "HashingFailure"

    @property
    def error_class(self) -> ErrorClass:
        return _KIND_CLASSES[self]


_KIND_CLASSES: dict[ErrorKind, ErrorClass] = {
    ErrorKind.USER_NONEXISTENT: ErrorClass.NOT_FOUND,
    ErrorKind.USER_DATA_NONEXISTENT: ErrorClass.NOT_FOUND,
    ErrorKind.EMAIL_NONEXISTENT: ErrorClass.NOT_FOUND,
    ErrorKind.PASSWORD_NONEXISTENT: ErrorClass.NOT_FOUND,
    ErrorKind.CREDENTIAL_NONEXISTENT: ErrorClass.NOT_FOUND,
    ErrorKind.CHALLENGE_NONEXISTENT: ErrorClass.NOT_FOUND,
    ErrorKind.PASSWORD_RESET_NONEXISTENT: ErrorClass.NOT_FOUND,
    ErrorKind.CREDENTIAL_EXPIRED: ErrorClass.EXPIRED,
    ErrorKind.CHALLENGE_TIMED_OUT: ErrorClass.EXPIRED,
    ErrorKind.PASSWORD_RESET_TIMED_OUT: ErrorClass.EXPIRED,
    ErrorKind.USERNAME_TAKEN: ErrorClass.CONFLICT,
    ErrorKind.EMAIL_ALREADY_CLAIMED: ErrorClass.CONFLICT,
    ErrorKind.CHALLENGE_ALREADY_USED: ErrorClass.CONFLICT,
    ErrorKind.PASSWORD_RESET_ALREADY_CONSUMED: ErrorClass.CONFLICT,
    ErrorKind.CREDENTIAL_UNAUTHORIZED: ErrorClass.UNAUTHORIZED,
    ErrorKind.PASSWORD_INCORRECT: ErrorClass.UNAUTHORIZED,
    ErrorKind.CHALLENGE_WRONG_KIND: ErrorClass.UNAUTHORIZED,
    ErrorKind.EMAIL_COOLDOWN_ACTIVE: ErrorClass.RATE_LIMITED,
    ErrorKind.PASSWORD_INSECURE: ErrorClass.VALIDATION,
    ErrorKind.USERNAME_INVALID: ErrorClass.VALIDATION,
    ErrorKind.REALNAME_INVALID: ErrorClass.VALIDATION,
    ErrorKind.EMAIL_EMPTY: ErrorClass.VALIDATION,
    ErrorKind.NOTIFICATION_BOUNCED: ErrorClass.EXTERNAL,
    ErrorKind.NOTIFICATION_UNAVAILABLE: ErrorClass.EXTERNAL,
    ErrorKind.STORE_FAILURE: ErrorClass.INTERNAL,
    ErrorKind.HASHING_FAILURE: ErrorClass.INTERNAL,
}


class AuthError(Exception):
    """Raised by every core operation that cannot complete.

    HTTP mapping: by ``error_class``, see ``authority.api.router``.
    """

    def __init__(self, kind: ErrorKind, message: str | None = None) -> None:
        super().__init__(message or kind.value)
        self.kind = kind
        self.message = message or kind.value

    @property
    def error_class(self) -> ErrorClass:
        return self.kind.error_class

    def __repr__(self) -> str:
        return f"AuthError({self.kind.value!r})"
