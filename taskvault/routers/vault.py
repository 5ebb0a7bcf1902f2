"""Markdown vault status and rebuild API."""
from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

logger = logging.getLogger("taskvault.vault")

vault_router = APIRouter(prefix="/api/vault", tags=["vault"])


class RebuildRequest(BaseModel):
    background: bool = False


def _get_export_service(request: Request):
    export_service = getattr(request.app.state, "export_service", None)
    if not export_service:
        raise HTTPException(status_code=503, detail="Markdown export is disabled")
    return export_service


@vault_router.get("/status")
async def get_vault_status(request: Request):
    """Return whether mirroring is on, where the vault lives and how much is tracked."""
    export_service = getattr(request.app.state, "export_service", None)
    scope = getattr(request.app.state, "export_scope", None)
    if not export_service:
        return {"enabled": False, "vaultPath": "", "trackedEntities": 0, "pendingExports": 0}
    return {
        "enabled": True,
        "vaultPath": str(export_service.vault_path),
        "trackedEntities": len(export_service.sync_state),
        "pendingExports": scope.pending if scope else 0,
    }


@vault_router.post("/rebuild")
async def rebuild_vault(request: Request, body: RebuildRequest | None = None):
    """Re-export every entity into the vault."""
    export_service = _get_export_service(request)
    body = body or RebuildRequest()

    if body.background:
        scope = getattr(request.app.state, "export_scope", None)
        if scope is None or scope.launch(export_service.full_export(), "vault-rebuild") is None:
            raise HTTPException(status_code=503, detail="Export scope is not accepting work")
        return {"status": "ok", "mode": "background", "message": "Vault rebuild triggered in background"}

    logger.info("Vault rebuild requested")
    stats = await export_service.full_export()
    return {"status": "ok", "mode": "foreground", "stats": stats}
