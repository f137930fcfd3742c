from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


@router.get("/health")
def health(request: Request) -> dict[str, str]:
    mode = "verify-only" if request.app.state.settings.verify_only else "issuing"
    return {"status": "ok", "mode": mode}
