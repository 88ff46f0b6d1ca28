"""
Regulation Store Routes
=======================

Bulk, versioned loads of the legal register.

Version: 0.1.0
"""

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from services.applicability.dependencies import get_engine
from services.applicability.services.engine import ApplicabilityEngine
from services.applicability.services.regulation_store import source_from_settings
from shared.config import settings
from shared.logging import get_logger
from shared.models.regulation import Regulation, RegulationVersionInfo


logger = get_logger(__name__)

router = APIRouter()


# =============================================================================
# Request Models
# =============================================================================


class RegulationVersionCreate(BaseModel):
    """A complete register version."""

    version: str = Field(..., min_length=1, description="Version label")
    regulations: list[Regulation] = Field(..., description="Every record of the version")


# =============================================================================
# Routes
# =============================================================================


@router.post(
    "/versions",
    response_model=RegulationVersionInfo,
    status_code=status.HTTP_201_CREATED,
)
async def commit_version(
    request: RegulationVersionCreate,
    engine: ApplicabilityEngine = Depends(get_engine),
) -> RegulationVersionInfo:
    """
    Commit a new register version.

    The version becomes visible atomically; queries in flight keep the
    version they started with.
    """
    try:
        snapshot = engine.regulations.commit(request.regulations, request.version)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    return snapshot.info()


@router.get("/version", response_model=RegulationVersionInfo)
async def get_version(
    engine: ApplicabilityEngine = Depends(get_engine),
) -> RegulationVersionInfo:
    """Metadata of the committed version."""
    return engine.regulations.snapshot().info()


@router.post("/reload", response_model=RegulationVersionInfo)
async def reload_from_source(
    engine: ApplicabilityEngine = Depends(get_engine),
) -> RegulationVersionInfo:
    """Load and commit the register from the configured source."""
    source = source_from_settings(settings.regulation_source)
    if source is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No regulation source configured",
        )

    version, records = await source.fetch()
    if version == engine.regulations.version:
        logger.info("regulation_reload_unchanged", version=version)
        return engine.regulations.snapshot().info()
    return engine.regulations.commit(records, version).info()
