"""Token enrichment engine: security, market, holder and creator aggregation with bounded retry.

State machine per token:
  pending → enriching → enriched
                      → enrich_failed   (after N failed attempts)

Background loops (all stop on the shared shutdown event):
  recovery   every 60s   re-drive pending / enrich_failed (3 attempts)
                         and enriching rows stuck > 10 min (2 attempts)
  refresh    every 5min  re-fetch pair data for tokens < 6h old, snapshot + alert
  stats      every 60s   log the EnrichmentStats line

Discovery and recovery may both drive the same token at once; nothing
serializes them and the last write wins on the token row.
"""

import asyncio
from collections.abc import Callable, Coroutine
from datetime import timedelta
from functools import partial
from typing import Any

from loguru import logger

from src.chain.gateway import ChainGateway
from src.db.repository import Repository, trim_error
from src.models.base import utcnow
from src.models.token import STATUS_ENRICH_FAILED, STATUS_PENDING, Token, TokenMarketSnapshot
from src.parsers.alerts import evaluate_liquidity_drop
from src.parsers.datahub.client import DataHubClient, DataSourceError
from src.parsers.datahub.models import MarketPair
from src.parsers.metrics import EnrichmentStats
from src.parsers.retry import WaitFn, run_with_retry, wait_or_stop

DEFAULT_ATTEMPTS = 3
STALE_ATTEMPTS = 2

RECOVERY_BATCH = 20
RECOVERY_DELAY_SEC = 0.5
STALE_ENRICHING_AFTER = timedelta(minutes=10)

REFRESH_BATCH = 120
REFRESH_DELAY_SEC = 0.35
REFRESH_MIN_AGE = timedelta(minutes=5)
REFRESH_MAX_TOKEN_AGE = timedelta(hours=6)


class EnrichmentEngine:
    def __init__(
        self,
        repo: Repository,
        datahub: DataHubClient,
        stats: EnrichmentStats,
        *,
        gateway: ChainGateway | None = None,
        stop: asyncio.Event | None = None,
        wait: WaitFn | None = None,
        default_attempts: int = DEFAULT_ATTEMPTS,
    ) -> None:
        self._repo = repo
        self._datahub = datahub
        self._stats = stats
        self._gateway = gateway
        self._stop = stop or asyncio.Event()
        self._wait = wait or partial(wait_or_stop, self._stop)
        self._default_attempts = default_attempts
        self._tasks: set[asyncio.Task] = set()

    @property
    def stats(self) -> EnrichmentStats:
        return self._stats

    # --- Scheduling -------------------------------------------------------------

    def schedule(
        self, address: str, pair_address: str, attempts: int | None = None, reason: str = "new_pair"
    ) -> asyncio.Task:
        """Start enrichment in the background; the task reference is held until it finishes."""
        task = asyncio.create_task(
            self.enrich_with_retry(address, pair_address, attempts or self._default_attempts, reason),
            name=f"enrich:{address}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for in-flight enrichment tasks (used on shutdown and in tests)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # --- Bounded retry ------------------------------------------------------------

    async def enrich_with_retry(
        self, address: str, pair_address: str, max_attempts: int, reason: str
    ) -> bool:
        """Drive one token to ``enriched`` or ``enrich_failed``. Returns True on success."""

        async def _attempt(attempt: int) -> None:
            try:
                await self._repo.mark_enriching(address)
            except Exception as e:
                logger.warning(f"[ENRICH] mark enriching failed for {address}: {e}")
            await self.enrich_once(address, pair_address)

        async def _on_error(attempt: int, error: Exception) -> None:
            self._stats.record_enrich_failure(error)
            logger.warning(
                f"[ENRICH] Attempt {attempt}/{max_attempts} failed for {address} "
                f"(reason={reason}): {error}"
            )
            try:
                await self._repo.set_enrich_error(address, str(error))
            except Exception as e:
                logger.warning(f"[ENRICH] Could not store error for {address}: {e}")

        result = await run_with_retry(
            _attempt, max_attempts=max_attempts, wait=self._wait, on_error=_on_error
        )
        if result.ok:
            self._stats.record_enrich_success()
            return True
        if result.cancelled:
            # Row stays in ``enriching``; the stale sweep picks it up after restart
            logger.info(f"[ENRICH] Shutdown during backoff for {address}")
            return False

        message = trim_error(str(result.last_error))
        try:
            await self._repo.mark_enrich_failed(address, message)
        except Exception as e:
            logger.error(f"[ENRICH] Could not mark {address} enrich_failed: {e}")
        logger.warning(f"[ENRICH] {address} enrich_failed after {result.attempts} attempts")
        return False

    # --- Single attempt -------------------------------------------------------------

    async def enrich_once(self, address: str, pair_address: str) -> None:
        """One aggregation pass. Raises if the (required) security scan fails."""
        report = await self._datahub.get_token_security(address)
        normalized = report.normalize()

        market: MarketPair | None = None
        if pair_address:
            try:
                market = await self._datahub.get_pair(pair_address)
            except DataSourceError as e:
                logger.warning(f"[ENRICH] Market data unavailable for {address}/{pair_address}: {e}")

        holder_data: dict[str, Any] | None = None
        try:
            holders = await self._datahub.get_holders(address)
            holder_data = holders.model_dump(mode="json")
            normalized.top10_holder_share = holders.top10Share
        except DataSourceError as e:
            logger.warning(f"[ENRICH] Holder distribution unavailable for {address}: {e}")

        creator_history: dict[str, Any] | None = None
        try:
            history = await self._datahub.get_creator_history(address)
            creator_history = history.model_dump(mode="json")
            if not normalized.creator_address:
                normalized.creator_address = history.creatorAddress
        except DataSourceError as e:
            logger.warning(f"[ENRICH] Creator history unavailable for {address}: {e}")

        is_honeypot = normalized.is_honeypot
        if not report.is_honeypot.strip() and self._gateway is not None:
            try:
                is_honeypot = await self._gateway.simulate_sell(address)
            except Exception as e:
                logger.warning(f"[ENRICH] Sell simulation failed for {address}: {e}")

        await self._repo.save_enrichment(
            address,
            risk_details={
                "raw": report.raw or {},
                "normalized": normalized.model_dump(mode="json"),
            },
            market_data=market.normalize() if market is not None else None,
            holder_data=holder_data,
            creator_history=creator_history,
            is_honeypot=is_honeypot,
            buy_tax=normalized.buy_tax,
            sell_tax=normalized.sell_tax,
            creator_address=normalized.creator_address,
        )

        if market is not None:
            try:
                await self.store_snapshot_and_alert(address, market)
            except Exception as e:
                logger.warning(f"[ENRICH] Snapshot/alert failed for {address}: {e}")

        logger.info(f"[ENRICH] Token enriched: {address}")

    # --- Market refresh ----------------------------------------------------------------

    async def store_snapshot_and_alert(self, address: str, market: MarketPair) -> None:
        prev = await self._repo.get_latest_snapshot(address)
        buys, sells = market.txns_h1()
        await self._repo.add_snapshot(
            TokenMarketSnapshot(
                token_address=address,
                price_usd=market.price_usd,
                liquidity_usd=market.liquidity_usd,
                volume_h1=market.volume_h1,
                buys_h1=buys,
                sells_h1=sells,
                raw=market.raw,
            )
        )

        drop = evaluate_liquidity_drop(
            prev.liquidity_usd if prev is not None else None, market.liquidity_usd
        )
        if drop is None:
            return
        await self._repo.record_alert(drop.to_alert(address), drop.inline_entry())
        logger.warning(
            f"[REFRESH] LIQUIDITY_DROP {address}: "
            f"${drop.prev_liquidity_usd} → ${drop.new_liquidity_usd} ({float(drop.change):.1%})"
        )

    async def refresh_token_market(self, token: Token) -> None:
        if not token.pair_address:
            raise ValueError("missing pair address")
        market = await self._datahub.get_pair(token.pair_address)
        await self._repo.update_token(
            token.address,
            market_data=market.normalize(),
            last_market_refresh_at=utcnow(),
        )
        await self.store_snapshot_and_alert(token.address, market)

    async def refresh_batch(self) -> int:
        """Refresh recently-created tokens whose market data is stale. Returns tokens refreshed."""
        now = utcnow()
        try:
            tokens = await self._repo.list_tokens_for_refresh(
                now - REFRESH_MIN_AGE, now - REFRESH_MAX_TOKEN_AGE, REFRESH_BATCH
            )
        except Exception as e:
            self._stats.record_refresh_failure(e)
            logger.error(f"[REFRESH] Query failed: {e}")
            return 0

        refreshed = 0
        for token in tokens:
            try:
                await self.refresh_token_market(token)
            except Exception as e:
                self._stats.record_refresh_failure(e)
                logger.warning(f"[REFRESH] {token.address} failed: {e}")
            else:
                self._stats.record_refresh_success()
                refreshed += 1
            if await self._wait(REFRESH_DELAY_SEC):
                break
        if tokens:
            logger.info(f"[REFRESH] {refreshed}/{len(tokens)} tokens refreshed")
        return refreshed

    # --- Recovery ----------------------------------------------------------------------

    async def recover_batch(self) -> int:
        """Re-drive pending, enrich_failed and stale enriching tokens. Returns tokens visited."""
        visited = 0
        for status in (STATUS_PENDING, STATUS_ENRICH_FAILED):
            try:
                tokens = await self._repo.list_tokens_by_status(status, RECOVERY_BATCH)
            except Exception as e:
                logger.error(f"[RECOVERY] List {status} failed: {e}")
                continue
            for token in tokens:
                await self.enrich_with_retry(
                    token.address, token.pair_address, self._default_attempts, "recovery"
                )
                visited += 1
                if await self._wait(RECOVERY_DELAY_SEC):
                    return visited

        try:
            stale = await self._repo.list_stale_enriching(
                utcnow() - STALE_ENRICHING_AFTER, RECOVERY_BATCH
            )
        except Exception as e:
            logger.error(f"[RECOVERY] List stale enriching failed: {e}")
            return visited
        for token in stale:
            await self.enrich_with_retry(token.address, token.pair_address, STALE_ATTEMPTS, "stale_enriching")
            visited += 1
            if await self._wait(RECOVERY_DELAY_SEC):
                break
        if visited:
            logger.info(f"[RECOVERY] Re-drove {visited} tokens")
        return visited

    # --- Loops -------------------------------------------------------------------------

    async def _run_periodic(
        self, tag: str, interval: float, fn: Callable[[], Coroutine[Any, Any, Any]]
    ) -> None:
        while not await self._wait(interval):
            try:
                await fn()
            except Exception as e:
                logger.exception(f"[{tag}] Loop iteration failed: {e}")
        logger.info(f"[{tag}] Stopped")

    async def run_recovery_loop(self, interval: float = 60.0) -> None:
        await self._run_periodic("RECOVERY", interval, self.recover_batch)

    async def run_refresh_loop(self, interval: float = 300.0) -> None:
        await self._run_periodic("REFRESH", interval, self.refresh_batch)

    async def run_stats_loop(self, interval: float = 60.0) -> None:
        async def _log() -> None:
            logger.info(f"[STATS] {self._stats.format_stats_line()}")

        await self._run_periodic("STATS", interval, _log)
