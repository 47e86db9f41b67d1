"""Shared rate limiter for the public credential endpoints.

Uses slowapi (Starlette-compatible rate limiting) keyed by client address.
This caps brute-force password guessing and signup floods per address; the
per-account verification cooldown is enforced separately in the core.

The Limiter instance is created here and shared between:
  - authority/api/router.py  (route decorators)
  - authority/main.py        (app.state.limiter + SlowAPIMiddleware registration)
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address)

PUBLIC_RATE_LIMIT = "60/minute"

# Login, signup and password-reset endpoints: the guessing surface.
CREDENTIAL_RATE_LIMIT = "20/minute"
