"""Shared constants for the credential authority.

All validity windows, thresholds and secret sizes used across modules are
defined here. No magic numbers in other modules; import from here.

Every duration is expressed in integer milliseconds, matching the
``creation_time`` and ``date_of_birth`` fields stored on ledger records.
"""

# ─── Validity Windows ────────────────────────────────────────────────────────

# How long a verification challenge or password reset link stays usable.
# A record created at T is usable up to and including T + window.
FIFTEEN_MINUTES_MS: int = 15 * 60 * 1000

CHALLENGE_VALIDITY_MS: int = FIFTEEN_MINUTES_MS
PASSWORD_RESET_VALIDITY_MS: int = FIFTEEN_MINUTES_MS

# ─── Verification Cooldown ───────────────────────────────────────────────────

# Sliding window over which challenge requests are counted per account.
CHALLENGE_COOLDOWN_WINDOW_MS: int = FIFTEEN_MINUTES_MS

# Maximum challenges one account may create inside the window.
# The request that would create one more is rejected with EmailCooldownActive.
CHALLENGE_COOLDOWN_LIMIT: int = 4

# ─── Age Gate ────────────────────────────────────────────────────────────────

# 13 Julian years (365.25-day years). Accounts younger than this need a
# verified parent email before their keys are issued as Valid.
THIRTEEN_YEARS_MS: int = int(13 * 365.25 * 24 * 60 * 60 * 1000)

# ─── Secrets ─────────────────────────────────────────────────────────────────

# Raw secret entropy: 256 bits.
SECRET_BYTES: int = 32

# ─── Account Field Rules ─────────────────────────────────────────────────────

USERNAME_MAX_LENGTH: int = 20
PASSWORD_MIN_LENGTH: int = 8

# ─── API Key Defaults ────────────────────────────────────────────────────────

# Duration used when a caller does not specify one (1 hour).
DEFAULT_API_KEY_DURATION_MS: int = 60 * 60 * 1000

# ─── Service Identity ────────────────────────────────────────────────────────

SERVICE_NAME: str = "credential-authority"
SERVICE_VERSION: str = "1.0.0"
