from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request

router = APIRouter(tags=["keys"])


@router.get("/.well-known/jwks.json")
def jwks(request: Request) -> dict[str, list[dict[str, Any]]]:
    """Public verification keys, including superseded keys still in their grace period."""
    return request.app.state.key_source.jwks()
