"""Token endpoints: list, detail, analysis feed, golden dogs, market history."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from loguru import logger
from pydantic import BaseModel, Field, ValidationError, field_validator

from src.api.dependencies import get_repo, require_api_key
from src.db.repository import Repository
from src.models.base import utcnow
from src.models.token import ANALYSIS_STATUSES
from src.parsers.signal_decay import golden_dog_fetch_limit, rank_golden_dogs

router = APIRouter(prefix="/api/v1/tokens", tags=["tokens"])

RISK_LEVELS = ("safe", "warning", "danger")


class RiskFactors(BaseModel):
    honeypotRisk: str = ""
    taxRisk: str = ""
    ownerRisk: str = ""
    concentrationRisk: str = ""

    model_config = {"extra": "ignore"}


class AnalysisSubmission(BaseModel):
    """Verdict posted by the external analyzer."""

    risk_score: int = Field(alias="riskScore", ge=0, le=100)
    risk_level: str = Field(alias="riskLevel", min_length=1)
    is_golden_dog: bool = Field(default=False, alias="isGoldenDog")
    golden_dog_score: int = Field(default=0, alias="goldenDogScore", ge=0, le=100)
    reasoning: str = ""
    recommendation: str = ""
    risk_factors: RiskFactors = Field(default_factory=RiskFactors, alias="riskFactors")

    model_config = {"extra": "ignore", "populate_by_name": True}

    @field_validator("risk_level")
    @classmethod
    def _known_level(cls, v: str) -> str:
        level = v.strip().lower()
        if level not in RISK_LEVELS:
            raise ValueError("invalid riskLevel")
        return level


def _first_error(exc: ValidationError) -> str:
    error = exc.errors()[0]
    field = ".".join(str(p) for p in error.get("loc", ()))
    return f"{field}: {error.get('msg', 'invalid')}" if field else error.get("msg", "invalid payload")


@router.get("")
async def list_tokens(
    repo: Repository = Depends(get_repo),
    status_filter: str = Query("", alias="status"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
) -> dict[str, Any]:
    if status_filter and status_filter not in ANALYSIS_STATUSES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid status")
    tokens = await repo.list_tokens(status=status_filter, limit=limit, offset=offset)
    return {"data": [t.to_dict() for t in tokens]}


@router.get("/pending")
async def pending_tokens(
    repo: Repository = Depends(get_repo),
    limit: int = Query(20, ge=1, le=100),
) -> dict[str, Any]:
    """Enriched tokens waiting for an analysis verdict."""
    tokens = await repo.list_pending_analysis(limit)
    return {"data": [t.to_dict() for t in tokens]}


@router.get("/golden-dogs")
async def golden_dogs(
    repo: Repository = Depends(get_repo),
    limit: int = Query(20, ge=1, le=100),
) -> dict[str, Any]:
    """Analyzed golden dogs ranked by time-decayed score; expired tokens are omitted."""
    candidates = await repo.list_golden_dogs(golden_dog_fetch_limit(limit))
    ranked = rank_golden_dogs(candidates, utcnow(), limit)
    return {"data": [item.to_dict() for item in ranked]}


@router.get("/{address}")
async def get_token(address: str, repo: Repository = Depends(get_repo)) -> dict[str, Any]:
    token = await repo.get_token(address)
    if token is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="token not found")
    return {"data": token.to_dict()}


@router.get("/{address}/history")
async def market_history(
    address: str,
    repo: Repository = Depends(get_repo),
    limit: int = Query(100, ge=1, le=500),
) -> dict[str, Any]:
    snapshots = await repo.list_snapshots(address, limit)
    return {"data": [s.to_dict() for s in snapshots]}


@router.get("/{address}/alerts")
async def token_alerts(
    address: str,
    repo: Repository = Depends(get_repo),
    limit: int = Query(50, ge=1, le=200),
) -> dict[str, Any]:
    alerts = await repo.list_alerts(address, limit)
    return {"data": [a.to_dict() for a in alerts]}


@router.post("/{address}/analysis", dependencies=[Depends(require_api_key)])
async def submit_analysis(
    address: str,
    payload: dict[str, Any] = Body(...),
    repo: Repository = Depends(get_repo),
) -> dict[str, Any]:
    try:
        submission = AnalysisSubmission.model_validate(payload)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=_first_error(e))

    values: dict[str, Any] = {
        "risk_score": submission.risk_score,
        "risk_level": submission.risk_level,
        "is_golden_dog": submission.is_golden_dog,
        "golden_dog_score": submission.golden_dog_score,
        "analysis_result": payload,
    }
    honeypot_risk = submission.risk_factors.honeypotRisk.strip()
    if honeypot_risk:
        values["is_honeypot"] = honeypot_risk.upper() == "HIGH"

    if not await repo.save_analysis(address, **values):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="token not found")
    logger.info(
        f"[API] Analysis stored for {address}: {submission.risk_level} "
        f"golden_dog={submission.is_golden_dog} score={submission.golden_dog_score}"
    )
    return {"status": "ok"}
