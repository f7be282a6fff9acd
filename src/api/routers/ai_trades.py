"""AI trade history and aggregate stats."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable, Sequence
from decimal import Decimal
from typing import Any

from fastapi import APIRouter, Depends, Query

from src.api.dependencies import get_repo
from src.db.repository import Repository
from src.models.trade import AITrade

router = APIRouter(prefix="/api/v1/ai-trades", tags=["ai-trades"])

STATS_FETCH_LIMIT = 5000


def _aggregate(trades: Sequence[AITrade]) -> dict[str, Any]:
    """count, win rate over trades with non-zero P/L, avg and total P/L."""
    total = sum((t.profit_loss for t in trades), Decimal(0))
    decided = [t for t in trades if t.profit_loss != 0]
    wins = sum(1 for t in decided if t.profit_loss > 0)
    return {
        "count": len(trades),
        "winRate": float(wins / len(decided)) if decided else 0.0,
        "avgPL": float(total / len(trades)) if trades else 0.0,
        "totalPL": float(total),
    }


def _group(trades: Sequence[AITrade], key: Callable[[AITrade], str], label: str) -> list[dict[str, Any]]:
    groups: dict[str, list[AITrade]] = defaultdict(list)
    for trade in trades:
        groups[key(trade)].append(trade)
    return [{label: name, **_aggregate(items)} for name, items in sorted(groups.items())]


def trade_stats(trades: Sequence[AITrade]) -> dict[str, Any]:
    stats = _aggregate(trades)
    stats["byStrategy"] = _group(trades, lambda t: t.strategy_used or "unknown", "strategy")
    stats["byPeriod"] = _group(
        trades, lambda t: t.created_at.strftime("%Y-%m-%d") if t.created_at else "unknown", "period"
    )
    return stats


@router.get("")
async def list_ai_trades(
    repo: Repository = Depends(get_repo),
    userId: str = Query(""),
    limit: int = Query(50, ge=1, le=500),
) -> dict[str, Any]:
    trades = await repo.list_ai_trades(user_id=userId.strip(), limit=limit)
    return {"data": [t.to_dict() for t in trades]}


@router.get("/stats")
async def ai_trade_stats(
    repo: Repository = Depends(get_repo),
    userId: str = Query(""),
) -> dict[str, Any]:
    trades = await repo.list_ai_trades(user_id=userId.strip(), limit=STATS_FETCH_LIMIT)
    return {"data": trade_stats(trades)}
