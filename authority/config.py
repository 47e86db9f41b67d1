"""Config loading for the credential authority service.

Reads `.authority/config.yaml` (or `~/.authority/config.yaml`).
Raises SystemExit on parse errors, a missing `version` field, or an invalid
ledger backend. If no config file is found, returns default values (safe to
run without config).

Config search order:
  1. `config_path` argument (if provided; for testing or explicit override)
  2. AUTHORITY_CONFIG environment variable (if set)
  3. `.authority/config.yaml` (working directory, for development)
  4. `~/.authority/config.yaml` (home directory, for production deployments)

Environment variable overrides:
  AUTHORITY_PORT        — overrides server.port
  AUTHORITY_LEDGER_PATH — overrides ledger.path
  AUTHORITY_MAIL_URL    — overrides mail.service_url
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from typing import Optional

import yaml

from authority.utils.logger import get_logger

logger = get_logger(__name__)

# ─── Version constants ────────────────────────────────────────────────────────

SUPPORTED_CONFIG_VERSION = 1

SUPPORTED_VERSIONS: frozenset[int] = frozenset({1})

# ─── Validation sets ─────────────────────────────────────────────────────────

VALID_LEDGER_BACKENDS: frozenset[str] = frozenset({"sqlite", "memory"})

DEFAULT_CONFIG_PATHS = [
    ".authority/config.yaml",
    os.path.expanduser("~/.authority/config.yaml"),
]

DEFAULT_LEDGER_PATH = "~/.authority/ledger.db"


# ─── Dataclasses ─────────────────────────────────────────────────────────────


@dataclass
class SiteConfig:
    """Public-facing site settings.

    public_origin_web: origin used to build the links embedded in
                       verification and password-reset messages.
    """

    public_origin_web: str = "http://localhost:3000"


@dataclass
class LedgerConfig:
    """Ledger backend configuration."""

    backend: str = "sqlite"  # "sqlite" | "memory"
    path: str = DEFAULT_LEDGER_PATH


@dataclass
class MailConfig:
    """Mail service configuration.

    service_url: base URL of the HTTP mail service. None → messages are kept
                 in the in-process outbox and logged (development mode).
    """

    service_url: Optional[str] = None
    timeout_s: float = 5.0


@dataclass
class ServerConfig:
    """HTTP binding configuration."""

    host: str = "127.0.0.1"
    port: int = 8079


@dataclass
class Config:
    """Root configuration object populated from .authority/config.yaml.

    All fields have safe defaults; the service can start without any config file.
    """

    version: int = SUPPORTED_CONFIG_VERSION
    site: SiteConfig = field(default_factory=SiteConfig)
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    mail: MailConfig = field(default_factory=MailConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    path: Optional[str] = None  # Path to the loaded config file

    @classmethod
    def defaults(cls) -> "Config":
        """Return a fully-default Config (no file required)."""
        return cls()

    @classmethod
    def from_dict(cls, raw: dict, path: Optional[str] = None) -> "Config":
        """Construct Config from a parsed YAML dict.

        Merges user-supplied values onto defaults; unknown keys are silently ignored.

        Raises:
            SystemExit(1): On invalid ledger.backend value.
        """
        # ── Ledger ────────────────────────────────────────────────────────────
        ledger_raw = raw.get("ledger") or {}
        backend = ledger_raw.get("backend", "sqlite")
        if backend not in VALID_LEDGER_BACKENDS:
            msg = (
                f"CONFIG ERROR: Invalid ledger.backend: '{backend}'. "
                f"Supported values: {sorted(VALID_LEDGER_BACKENDS)}."
            )
            print(msg, file=sys.stderr)
            raise SystemExit(1)
        ledger = LedgerConfig(
            backend=backend,
            path=ledger_raw.get("path", DEFAULT_LEDGER_PATH),
        )

        # ── Site ──────────────────────────────────────────────────────────────
        site_raw = raw.get("site") or {}
        site = SiteConfig(
            public_origin_web=site_raw.get("public_origin_web", "http://localhost:3000"),
        )

        # ── Mail ──────────────────────────────────────────────────────────────
        mail_raw = raw.get("mail") or {}
        mail = MailConfig(
            service_url=mail_raw.get("service_url"),
            timeout_s=float(mail_raw.get("timeout_s", 5.0)),
        )

        # ── Server ────────────────────────────────────────────────────────────
        server_raw = raw.get("server") or {}
        server = ServerConfig(
            host=server_raw.get("host", "127.0.0.1"),
            port=server_raw.get("port", 8079),
        )

        return cls(
            version=raw.get("version", SUPPORTED_CONFIG_VERSION),
            site=site,
            ledger=ledger,
            mail=mail,
            server=server,
            path=path,
        )


# ─── Config loading ───────────────────────────────────────────────────────────


def load_config(config_path: Optional[str] = None) -> Config:
    """Load and validate the service configuration.

    If no file is found at any search path, returns default Config (not an error).
    If a file is found but invalid, writes the error to stderr and raises SystemExit(1).

    Environment overrides are applied after loading (or defaulting), so they
    always take precedence over file values.

    Raises:
        SystemExit(1): On YAML parse error, missing ``version`` field, unsupported
                       version, invalid ``ledger.backend``, or invalid ``AUTHORITY_PORT``.
    """
    search_paths: list[str] = []
    if config_path:
        search_paths.append(config_path)
    env_config = os.environ.get("AUTHORITY_CONFIG")
    if env_config:
        search_paths.append(env_config)
    search_paths.extend(DEFAULT_CONFIG_PATHS)

    found_path: Optional[str] = None
    for candidate in search_paths:
        expanded = os.path.expanduser(candidate)
        if os.path.isfile(expanded):
            found_path = expanded
            break

    # ── No config file found ─────────────────────────────────────────────────
    if found_path is None:
        logger.info("No config file found, using defaults", searched=search_paths)
        config = Config.defaults()
        _apply_env_overrides(config)
        return config

    # ── Parse config file ─────────────────────────────────────────────────────
    logger.info("Loading config", path=found_path)

    try:
        with open(found_path) as fh:
            raw = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        msg = (
            f"CONFIG ERROR: Failed to parse {found_path}: {exc}\n"
            "The authority refuses to start with an invalid config. "
            "Check the YAML syntax and try again."
        )
        print(msg, file=sys.stderr)
        raise SystemExit(1)
    except OSError as exc:
        msg = f"CONFIG ERROR: Could not read {found_path}: {exc}"
        print(msg, file=sys.stderr)
        raise SystemExit(1)

    if not isinstance(raw, dict):
        if raw is None:
            msg = (
                f"CONFIG ERROR: {found_path} is missing the required 'version' field.\n"
                "Add 'version: 1' to the top of your config file."
            )
        else:
            msg = (
                f"CONFIG ERROR: {found_path} is not a valid YAML mapping.\n"
                "The config file must be a YAML dictionary at the top level."
            )
        print(msg, file=sys.stderr)
        raise SystemExit(1)

    # ── Version validation ────────────────────────────────────────────────────
    version = raw.get("version")
    if version is None:
        msg = (
            f"CONFIG ERROR: {found_path} is missing the required 'version' field.\n"
            "Add 'version: 1' to the top of your config file."
        )
        print(msg, file=sys.stderr)
        raise SystemExit(1)

    if version not in SUPPORTED_VERSIONS:
        msg = (
            f"CONFIG ERROR: Unsupported config version: {version}. "
            f"Supported versions: {sorted(SUPPORTED_VERSIONS)}."
        )
        print(msg, file=sys.stderr)
        raise SystemExit(1)

    config = Config.from_dict(raw, path=found_path)
    _apply_env_overrides(config)

    if config.server.host == "0.0.0.0":
        logger.warning(
            "SECURITY WARNING: the authority is configured to bind on 0.0.0.0 "
            "(all interfaces). Put it behind a TLS-terminating proxy."
        )
    if config.ledger.backend == "memory":
        logger.warning("ledger.backend is 'memory'; all records are lost on exit")

    logger.info(
        "Config loaded",
        path=found_path,
        version=config.version,
        ledger_backend=config.ledger.backend,
        mail_configured=config.mail.service_url is not None,
    )
    return config


def _apply_env_overrides(config: Config) -> None:
    """Apply environment variable overrides to a Config object in-place.

    Handles:
      AUTHORITY_PORT        — config.server.port (integer; SystemExit(1) if invalid)
      AUTHORITY_LEDGER_PATH — config.ledger.path
      AUTHORITY_MAIL_URL    — config.mail.service_url
    """
    env_port = os.environ.get("AUTHORITY_PORT")
    if env_port is not None:
        try:
            config.server.port = int(env_port)
        except ValueError:
            msg = (
                f"CONFIG ERROR: AUTHORITY_PORT environment variable is not a valid "
                f"integer: '{env_port}'"
            )
            print(msg, file=sys.stderr)
            raise SystemExit(1)

    env_ledger_path = os.environ.get("AUTHORITY_LEDGER_PATH")
    if env_ledger_path:
        config.ledger.path = env_ledger_path

    env_mail_url = os.environ.get("AUTHORITY_MAIL_URL")
    if env_mail_url:
        config.mail.service_url = env_mail_url
