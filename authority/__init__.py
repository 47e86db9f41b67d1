"""Credential authority: API keys, passwords, email verification and age gating."""
