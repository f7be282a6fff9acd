"""Tests for EnrichmentEngine: state machine, retry bookkeeping, snapshots, alerts.

Data hub and chain are AsyncMocks; persistence is in-memory SQLite.
"""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.models.base import utcnow
from src.models.token import (
    STATUS_ENRICH_FAILED,
    STATUS_ENRICHED,
    STATUS_ENRICHING,
    STATUS_PENDING,
)
from src.parsers.datahub.client import DataSourceError
from src.parsers.datahub.models import (
    CreatorHistory,
    HolderDistribution,
    MarketPair,
    SecurityReport,
)
from src.parsers.enrichment import EnrichmentEngine
from src.parsers.metrics import EnrichmentStats

TOKEN = "0x1111111111111111111111111111111111111111"
PAIR = "0x2222222222222222222222222222222222222222"


def _pair(liquidity: str) -> MarketPair:
    pair = MarketPair.model_validate(
        {"pairAddress": PAIR, "priceUsd": "0.5", "liquidity": {"usd": liquidity}}
    )
    pair.raw = {"liquidity": {"usd": liquidity}}
    return pair


def _datahub(security=None, pair=None) -> MagicMock:
    datahub = MagicMock()
    datahub.get_token_security = AsyncMock(
        return_value=security or SecurityReport(is_honeypot="0", buy_tax="0.25", sell_tax="0.5")
    )
    datahub.get_pair = AsyncMock(return_value=pair or _pair("10000"))
    datahub.get_holders = AsyncMock(return_value=HolderDistribution(top10Share=Decimal("0.35"), total=120))
    datahub.get_creator_history = AsyncMock(return_value=CreatorHistory(creatorAddress="0xcreator"))
    return datahub


class _Waits:
    def __init__(self, stop: bool = False) -> None:
        self.delays: list[float] = []
        self._stop = stop

    async def __call__(self, delay: float) -> bool:
        self.delays.append(delay)
        return self._stop


def _engine(repo, datahub, waits=None, gateway=None) -> EnrichmentEngine:
    return EnrichmentEngine(repo, datahub, EnrichmentStats(), gateway=gateway, wait=waits or _Waits())


class TestEnrichOnce:
    @pytest.mark.asyncio
    async def test_success_sets_enriched_and_stores_aggregate(self, repo, make_token):
        await repo.create_token(make_token())
        engine = _engine(repo, _datahub())

        assert await engine.enrich_with_retry(TOKEN, PAIR, 3, "new_pair") is True

        token = await repo.get_token(TOKEN)
        assert token.analysis_status == STATUS_ENRICHED
        assert token.enrich_attempts == 1
        assert token.enrich_error == ""
        assert token.enriched_at is not None
        assert token.last_market_refresh_at is not None
        assert token.buy_tax == Decimal("0.25")
        assert token.creator_address == "0xcreator"
        assert token.risk_details["normalized"]["top10_holder_share"] == "0.35"
        assert token.market_data["liquidity"] == {"usd": "10000"}
        assert token.holder_data["total"] == 120
        assert engine.stats.snapshot().enrich_success == 1

        snapshots = await repo.list_snapshots(TOKEN)
        assert len(snapshots) == 1
        assert snapshots[0].liquidity_usd == Decimal("10000")

    @pytest.mark.asyncio
    async def test_optional_sources_are_best_effort(self, repo, make_token):
        await repo.create_token(make_token())
        datahub = _datahub()
        datahub.get_pair.side_effect = DataSourceError("HTTP 404")
        datahub.get_holders.side_effect = DataSourceError("HTTP 500")
        datahub.get_creator_history.side_effect = DataSourceError("HTTP 500")
        engine = _engine(repo, datahub)

        assert await engine.enrich_with_retry(TOKEN, PAIR, 3, "new_pair") is True

        token = await repo.get_token(TOKEN)
        assert token.analysis_status == STATUS_ENRICHED
        assert token.market_data is None
        assert token.holder_data is None
        # No market data → no snapshot
        assert await repo.list_snapshots(TOKEN) == []

    @pytest.mark.asyncio
    async def test_honeypot_falls_back_to_sell_simulation(self, repo, make_token):
        await repo.create_token(make_token())
        gateway = MagicMock()
        gateway.simulate_sell = AsyncMock(return_value=True)
        engine = _engine(repo, _datahub(security=SecurityReport(buy_tax="0")), gateway=gateway)

        await engine.enrich_with_retry(TOKEN, PAIR, 1, "new_pair")

        gateway.simulate_sell.assert_awaited_once_with(TOKEN)
        assert (await repo.get_token(TOKEN)).is_honeypot is True

    @pytest.mark.asyncio
    async def test_scan_verdict_wins_over_simulation(self, repo, make_token):
        await repo.create_token(make_token())
        gateway = MagicMock()
        gateway.simulate_sell = AsyncMock(return_value=True)
        engine = _engine(repo, _datahub(), gateway=gateway)

        await engine.enrich_with_retry(TOKEN, PAIR, 1, "new_pair")

        gateway.simulate_sell.assert_not_awaited()
        assert (await repo.get_token(TOKEN)).is_honeypot is False


class TestRetry:
    @pytest.mark.asyncio
    async def test_exhausted_attempts_mark_enrich_failed(self, repo, make_token):
        await repo.create_token(make_token())
        datahub = _datahub()
        datahub.get_token_security.side_effect = DataSourceError("HTTP 503 on /security")
        waits = _Waits()
        engine = _engine(repo, datahub, waits)

        assert await engine.enrich_with_retry(TOKEN, PAIR, 3, "new_pair") is False

        token = await repo.get_token(TOKEN)
        assert token.analysis_status == STATUS_ENRICH_FAILED
        assert token.enrich_attempts == 3
        assert token.enrich_error == "HTTP 503 on /security"
        assert waits.delays == [1.0, 4.0]
        assert engine.stats.snapshot().enrich_failure == 3

    @pytest.mark.asyncio
    async def test_recovers_on_second_attempt(self, repo, make_token):
        await repo.create_token(make_token())
        datahub = _datahub()
        datahub.get_token_security.side_effect = [
            DataSourceError("timeout"),
            SecurityReport(is_honeypot="0"),
        ]
        engine = _engine(repo, datahub)

        assert await engine.enrich_with_retry(TOKEN, PAIR, 3, "recovery") is True
        token = await repo.get_token(TOKEN)
        assert token.analysis_status == STATUS_ENRICHED
        assert token.enrich_attempts == 2
        assert token.enrich_error == ""

    @pytest.mark.asyncio
    async def test_shutdown_during_backoff_leaves_enriching(self, repo, make_token):
        await repo.create_token(make_token())
        datahub = _datahub()
        datahub.get_token_security.side_effect = DataSourceError("down")
        engine = _engine(repo, datahub, _Waits(stop=True))

        assert await engine.enrich_with_retry(TOKEN, PAIR, 3, "new_pair") is False

        token = await repo.get_token(TOKEN)
        assert token.analysis_status == STATUS_ENRICHING
        assert token.enrich_attempts == 1
        assert token.enrich_error == "down"

    @pytest.mark.asyncio
    async def test_long_errors_are_trimmed(self, repo, make_token):
        await repo.create_token(make_token())
        datahub = _datahub()
        datahub.get_token_security.side_effect = DataSourceError("e" * 2000)
        engine = _engine(repo, datahub)

        await engine.enrich_with_retry(TOKEN, PAIR, 1, "new_pair")
        assert len((await repo.get_token(TOKEN)).enrich_error) == 512


class TestRefresh:
    @pytest.mark.asyncio
    async def test_liquidity_drop_creates_alert(self, repo, make_token):
        await repo.create_token(make_token())
        datahub = _datahub(pair=_pair("10000"))
        engine = _engine(repo, datahub)
        await engine.enrich_with_retry(TOKEN, PAIR, 1, "new_pair")

        datahub.get_pair.return_value = _pair("5000")
        await engine.refresh_token_market(await repo.get_token(TOKEN))

        alerts = await repo.list_alerts(TOKEN)
        assert len(alerts) == 1
        assert alerts[0].alert_type == "LIQUIDITY_DROP"
        token = await repo.get_token(TOKEN)
        assert len(token.market_alerts) == 1
        assert token.market_alerts[0]["change"] == -0.5
        assert len(await repo.list_snapshots(TOKEN)) == 2

    @pytest.mark.asyncio
    async def test_small_drop_does_not_alert(self, repo, make_token):
        await repo.create_token(make_token())
        datahub = _datahub(pair=_pair("10000"))
        engine = _engine(repo, datahub)
        await engine.enrich_with_retry(TOKEN, PAIR, 1, "new_pair")

        datahub.get_pair.return_value = _pair("9000")
        await engine.refresh_token_market(await repo.get_token(TOKEN))
        assert await repo.list_alerts(TOKEN) == []

    @pytest.mark.asyncio
    async def test_missing_pair_address_rejected(self, repo, make_token):
        token = await repo.create_token(make_token(pair=""))
        engine = _engine(repo, _datahub())
        with pytest.raises(ValueError, match="missing pair address"):
            await engine.refresh_token_market(token)

    @pytest.mark.asyncio
    async def test_refresh_batch_selects_stale_recent_tokens(self, repo, make_token):
        now = utcnow()
        stale = "0x3333333333333333333333333333333333333333"
        fresh = "0x4444444444444444444444444444444444444444"
        old = "0x5555555555555555555555555555555555555555"
        await repo.create_token(make_token(stale, last_market_refresh_at=now - timedelta(minutes=10)))
        await repo.create_token(make_token(fresh, last_market_refresh_at=now - timedelta(minutes=1)))
        await repo.create_token(
            make_token(
                old,
                created_at=now - timedelta(hours=7),
                last_market_refresh_at=now - timedelta(hours=1),
            )
        )
        datahub = _datahub()
        engine = _engine(repo, datahub)

        assert await engine.refresh_batch() == 1
        datahub.get_pair.assert_awaited_once_with(PAIR)
        assert engine.stats.snapshot().refresh_success == 1


class TestRecovery:
    @pytest.mark.asyncio
    async def test_recover_batch_redrives_pending_and_stale(self, repo, make_token):
        now = utcnow()
        pending = "0x6666666666666666666666666666666666666666"
        stuck = "0x7777777777777777777777777777777777777777"
        await repo.create_token(make_token(pending))
        await repo.create_token(
            make_token(stuck, analysis_status=STATUS_ENRICHING, updated_at=now - timedelta(minutes=30))
        )
        engine = _engine(repo, _datahub())

        assert await engine.recover_batch() == 2
        assert (await repo.get_token(pending)).analysis_status == STATUS_ENRICHED
        assert (await repo.get_token(stuck)).analysis_status == STATUS_ENRICHED

    @pytest.mark.asyncio
    async def test_recently_updated_enriching_is_left_alone(self, repo, make_token):
        await repo.create_token(make_token(analysis_status=STATUS_ENRICHING))
        datahub = _datahub()
        engine = _engine(repo, datahub)

        assert await engine.recover_batch() == 0
        datahub.get_token_security.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_schedule_runs_in_background(self, repo, make_token):
        await repo.create_token(make_token())
        engine = _engine(repo, _datahub())
        engine.schedule(TOKEN, PAIR, 1, "new_pair")
        await engine.drain()
        assert (await repo.get_token(TOKEN)).analysis_status == STATUS_ENRICHED
        assert (await repo.get_token(TOKEN)).analysis_status != STATUS_PENDING
