"""Tests for trade history aggregates and the /api/v1/ai-trades endpoints."""

from datetime import datetime
from decimal import Decimal

import pytest

from src.api.routers.ai_trades import trade_stats
from src.models.trade import AITrade

USER = "user-1"
TOKEN = "0x1111111111111111111111111111111111111111"


def _trade(profit_loss: str, strategy: str = "", day: int = 1, user: str = USER) -> AITrade:
    return AITrade(
        user_id=user,
        token_address=TOKEN,
        token_symbol="TST",
        trade_type="SELL",
        amount_in=Decimal(100),
        tx_hash="0x" + "ef" * 32,
        status="success",
        strategy_used=strategy,
        profit_loss=Decimal(profit_loss),
        created_at=datetime(2024, 5, day, 12, 0),
    )


class TestTradeStats:
    def test_aggregate(self):
        stats = trade_stats([_trade("0.5"), _trade("-0.25"), _trade("0")])
        assert stats["count"] == 3
        assert stats["winRate"] == 0.5
        assert stats["totalPL"] == 0.25
        assert stats["avgPL"] == pytest.approx(0.25 / 3)

    def test_empty(self):
        stats = trade_stats([])
        assert stats["count"] == 0
        assert stats["winRate"] == 0.0
        assert stats["byStrategy"] == []

    def test_grouping(self):
        stats = trade_stats(
            [_trade("0.5", "momentum", day=1), _trade("-0.5", "", day=2), _trade("0.25", "momentum", day=2)]
        )
        by_strategy = {g["strategy"]: g for g in stats["byStrategy"]}
        assert by_strategy["momentum"]["count"] == 2
        assert by_strategy["unknown"]["count"] == 1
        assert [g["period"] for g in stats["byPeriod"]] == ["2024-05-01", "2024-05-02"]


class TestEndpoints:
    @pytest.mark.asyncio
    async def test_history_filtered_by_user(self, client, repo):
        await repo.create_ai_trade(_trade("0.5"))
        await repo.create_ai_trade(_trade("0.5", user="someone-else"))

        resp = await client.get("/api/v1/ai-trades", params={"userId": USER})

        data = resp.json()["data"]
        assert len(data) == 1
        assert data[0]["user_id"] == USER

    @pytest.mark.asyncio
    async def test_stats(self, client, repo):
        await repo.create_ai_trade(_trade("0.5", "momentum"))
        await repo.create_ai_trade(_trade("-0.25", "momentum"))

        resp = await client.get("/api/v1/ai-trades/stats", params={"userId": USER})

        data = resp.json()["data"]
        assert data["count"] == 2
        assert data["winRate"] == 0.5
        assert data["byStrategy"][0]["strategy"] == "momentum"
