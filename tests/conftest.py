"""Root test configuration for the credential authority.

Provides:
  - clock        — FakeClock pinned to a fixed epoch-ms instant (advance() to move)
  - outbox       — OutboxNotifier capturing every message (and the secrets in it)
  - hasher       — Argon2 PasswordHasher with minimal cost, for fast tests
  - ledger       — fresh InMemoryLedger per test
  - authority    — CredentialAuthority wired to the four fixtures above
  - link_key     — pulls the raw secret out of a captured message link
  - make_account — async factory: signup → Account(user_id, ..., key)
  - verify_email — async helper: challenge → read outbox → confirm

The rate limiter's in-memory storage is reset before every test so HTTP
tests do not bleed 429s into each other.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable

import pytest

from authority.api.limiter import limiter
from authority.codec import PasswordHasher
from authority.core.authority import CredentialAuthority
from authority.core.props import BoundEmail, ConfirmEmailProps, NewChallengeProps, SignupProps
from authority.ledger.memory_backend import InMemoryLedger
from authority.notify.outbox import OutboxNotifier

#: 2023-11-14T22:13:20Z, an arbitrary fixed "now".
T0 = 1_700_000_000_000

YEAR_MS = 365 * 24 * 60 * 60 * 1000

PUBLIC_ORIGIN = "https://app.test"


class FakeClock:
    """Callable clock returning a controllable epoch-ms value."""

    def __init__(self, now: int = T0) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture(autouse=True)
def reset_rate_limiter() -> None:
    """Reset the in-memory rate limiter storage between tests."""
    limiter.reset()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def outbox() -> OutboxNotifier:
    return OutboxNotifier()


@pytest.fixture
def hasher() -> PasswordHasher:
    return PasswordHasher(time_cost=1, memory_cost=8, parallelism=1)


@pytest.fixture
async def ledger() -> AsyncIterator[InMemoryLedger]:
    backend = InMemoryLedger()
    await backend.initialize()
    yield backend
    await backend.close()


@pytest.fixture
def authority(
    ledger: InMemoryLedger,
    outbox: OutboxNotifier,
    hasher: PasswordHasher,
    clock: FakeClock,
) -> CredentialAuthority:
    return CredentialAuthority(
        ledger=ledger,
        notifier=outbox,
        password_hasher=hasher,
        clock=clock,
        public_origin=PUBLIC_ORIGIN,
    )


@pytest.fixture
def link_key() -> Callable[[str, str], str]:
    """Return f(content, param) → value of ``param=`` in the message link."""

    def extract(content: str, param: str) -> str:
        match = re.search(rf"{param}=([A-Za-z0-9_-]+)", content)
        assert match is not None, f"no {param} link in message"
        return match.group(1)

    return extract


# ─── Account helpers ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Account:
    """A freshly signed-up account and the NoEmail key signup returned."""

    user_id: int
    username: str
    password: str
    key: str


@pytest.fixture
def make_account(
    authority: CredentialAuthority, clock: FakeClock
) -> Callable[..., Awaitable[Account]]:
    """Return an async factory: await make_account("bob", age_years=10)."""

    async def create(
        username: str = "alice", password: str = "password1", age_years: int = 30
    ) -> Account:
        issued = await authority.signup(
            SignupProps(
                username=username,
                realname=username.title(),
                password=password,
                date_of_birth=clock.now - age_years * YEAR_MS,
            )
        )
        assert issued.key is not None
        return Account(issued.api_key.creator_user_id, username, password, issued.key)

    return create


@pytest.fixture
def verify_email(
    authority: CredentialAuthority,
    outbox: OutboxNotifier,
    link_key: Callable[[str, str], str],
) -> Callable[..., Awaitable[BoundEmail]]:
    """Return an async helper running a whole challenge → confirm round."""

    async def verify(api_key: str, address: str, to_parent: bool = False) -> BoundEmail:
        await authority.new_verification_challenge(
            NewChallengeProps(api_key=api_key, email=address, to_parent=to_parent)
        )
        secret = link_key(outbox.last().content, "verificationChallengeKey")
        return await authority.confirm_email(
            ConfirmEmailProps(verification_challenge_key=secret, to_parent=to_parent)
        )

    return verify
