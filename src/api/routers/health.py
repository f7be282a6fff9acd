"""Health check and enrichment counters (no auth)."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from loguru import logger
from pydantic import BaseModel

from src.api.dependencies import get_repo, get_stats
from src.db.repository import Repository
from src.parsers.metrics import EnrichmentStats

router = APIRouter(prefix="/api/v1", tags=["health"])


class HealthResponse(BaseModel):
    status: str
    version: str
    db_ok: bool
    enrichment: dict[str, Any]


@router.get("/health", response_model=HealthResponse)
async def health_check(
    repo: Repository = Depends(get_repo),
    stats: EnrichmentStats = Depends(get_stats),
) -> HealthResponse:
    db_ok = False
    try:
        db_ok = await repo.ping()
    except Exception as e:
        logger.warning(f"[API] Health DB check failed: {e}")

    return HealthResponse(
        status="ok" if db_ok else "degraded",
        version="0.1.0",
        db_ok=db_ok,
        enrichment=stats.snapshot().to_dict(),
    )


@router.get("/stats/enrichment")
async def enrichment_stats(stats: EnrichmentStats = Depends(get_stats)) -> dict[str, Any]:
    return {"data": stats.snapshot().to_dict()}
