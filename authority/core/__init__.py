"""Core credential logic. Depends only on the Ledger and Notifier protocols."""

from authority.core.authority import CredentialAuthority
from authority.core.resolver import Tier

__all__ = ["CredentialAuthority", "Tier"]
