"""
Cache Routes
============

Explicit invalidation and warming hooks for bulk edits and register
updates, plus cache statistics.

Version: 0.1.0
"""

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from services.applicability.dependencies import get_engine
from services.applicability.services.engine import ApplicabilityEngine
from shared.logging import get_logger


logger = get_logger(__name__)

router = APIRouter()


class InvalidateRequest(BaseModel):
    """Omit organization_id to drop every entry."""

    organization_id: str | None = Field(None, description="Organization to invalidate")


class WarmRequest(BaseModel):
    organization_ids: list[str] = Field(..., min_length=1)


@router.post("/invalidate")
async def invalidate(
    request: InvalidateRequest,
    engine: ApplicabilityEngine = Depends(get_engine),
) -> dict[str, Any]:
    if request.organization_id is not None:
        engine.profiles.get(request.organization_id)
        removed = await engine.invalidate_organization(request.organization_id)
        scope = "organization"
    else:
        removed = await engine.invalidate_all()
        scope = "all"

    logger.info(
        "cache_invalidated",
        scope=scope,
        organization_id=request.organization_id,
        removed=removed,
    )
    return {"success": True, "scope": scope, "removed": removed}


@router.post("/warm")
async def warm(
    request: WarmRequest,
    engine: ApplicabilityEngine = Depends(get_engine),
) -> dict[str, Any]:
    """Pre-compute reports so first views are served from cache."""
    return await engine.warm_cache(request.organization_ids)


@router.get("/stats")
async def stats(
    engine: ApplicabilityEngine = Depends(get_engine),
) -> dict[str, Any]:
    return engine.cache.stats().to_dict()
