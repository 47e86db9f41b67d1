"""Health endpoint for the credential authority.

  GET /health — 503 before ``app.state.ready`` is set (lifespan startup),
                200 afterwards with ledger and notifier status.

Status is "degraded" when the ledger health check fails; the process stays
up so the probe can report it.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Request

from authority.constants import SERVICE_VERSION

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request) -> dict[str, Any]:
    """Primary health check endpoint.

    Response body (200):
        {
          "status": "ok" | "degraded",
          "version": "1.0.0",
          "ledger": "healthy" | "error",
          "ledger_backend": "sqlite" | "memory",
          "notifier": "MailServiceNotifier" | "OutboxNotifier"
        }
    """
    if not getattr(request.app.state, "ready", False):
        raise HTTPException(
            status_code=503,
            detail={"status": "starting", "message": "Credential authority is starting up."},
        )

    ledger = request.app.state.ledger
    ledger_ok = await ledger.health_check()
    config = getattr(request.app.state, "config", None)

    return {
        "status": "ok" if ledger_ok else "degraded",
        "version": SERVICE_VERSION,
        "ledger": "healthy" if ledger_ok else "error",
        "ledger_backend": config.ledger.backend if config is not None else None,
        "notifier": type(request.app.state.notifier).__name__,
    }
