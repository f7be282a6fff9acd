"""PancakeSwap V2 PairCreated scanner feeding token discovery.

Mode is chosen once at startup:
  push   WebSocket ``logs`` subscription on the factory (needs BSC_WS_URL)
  poll   every 30s, getLogs(last_block+1 .. head); first window = head-5000

If the push subscription cannot be established or drops, the scanner falls
back to polling for the rest of the process.

Only pairs against WBNB are tracked; the non-WBNB side becomes a Token row
(first sighting wins). Each new row is enriched in the background and
announced to WebSocket clients as ``{"type": "new_token", ...}``.
"""

import asyncio
from decimal import Decimal
from functools import partial
from typing import Any, Protocol

from loguru import logger

from src.chain.constants import NATIVE_DECIMALS, WBNB
from src.chain.gateway import ChainGateway, PairCreated, decode_pair_created, target_token
from src.db.repository import Repository
from src.models.token import STATUS_PENDING, Token
from src.parsers.enrichment import EnrichmentEngine
from src.parsers.retry import WaitFn, wait_or_stop

POLL_INTERVAL_SEC = 30
INITIAL_WINDOW_BLOCKS = 5000


class Broadcaster(Protocol):
    def broadcast(self, payload: dict[str, Any]) -> None: ...


class PairScanner:
    def __init__(
        self,
        gateway: ChainGateway,
        repo: Repository,
        engine: EnrichmentEngine,
        broadcaster: Broadcaster,
        *,
        stop: asyncio.Event | None = None,
        wait: WaitFn | None = None,
        poll_interval: float = POLL_INTERVAL_SEC,
        initial_window: int = INITIAL_WINDOW_BLOCKS,
        enrich_attempts: int = 3,
    ) -> None:
        self._gateway = gateway
        self._repo = repo
        self._engine = engine
        self._broadcaster = broadcaster
        self._stop = stop or asyncio.Event()
        self._wait = wait or partial(wait_or_stop, self._stop)
        self._poll_interval = poll_interval
        self._initial_window = initial_window
        self._enrich_attempts = enrich_attempts
        self._last_block = 0
        self._handlers: set[asyncio.Task] = set()
        self.mode = ""

    @property
    def last_block(self) -> int:
        return self._last_block

    # --- Event handling -----------------------------------------------------------

    async def handle_log(self, log: Any) -> Token | None:
        event = decode_pair_created(log)
        if event is None:
            logger.debug("[SCAN] Skipping malformed PairCreated log")
            return None
        return await self.handle_pair_created(event)

    async def handle_pair_created(self, event: PairCreated) -> Token | None:
        """Insert the non-WBNB token if unseen. Returns the new row, or None if skipped."""
        target = target_token(event)
        if target is None:
            return None

        logger.debug(f"[SCAN] New pair {event.pair} token {target}")
        if await self._repo.token_exists(target):
            return None

        name, symbol, decimals = await self._gateway.get_token_info(target)

        wbnb_reserve = 0
        try:
            reserve0, reserve1 = await self._gateway.get_pair_reserves(event.pair)
            wbnb_reserve = reserve0 if event.token0 == WBNB else reserve1
        except Exception as e:
            logger.warning(f"[SCAN] getReserves failed for {event.pair}: {e}")

        token = Token(
            address=target,
            name=name,
            symbol=symbol,
            decimals=decimals,
            pair_address=event.pair,
            initial_liquidity=Decimal(wbnb_reserve).scaleb(-NATIVE_DECIMALS),
            analysis_status=STATUS_PENDING,
            risk_score=0,
            risk_level="pending",
            risk_details={"status": "pending"},
            is_golden_dog=False,
            is_honeypot=False,
            buy_tax=Decimal(0),
            sell_tax=Decimal(0),
        )
        created = await self._repo.create_token(token)
        if created is None:
            return None

        self._engine.schedule(created.address, created.pair_address, self._enrich_attempts, "new_pair")
        self._broadcaster.broadcast({"type": "new_token", "token": created.to_dict()})
        logger.info(
            f"[SCAN] Token saved: {created.symbol or '?'} ({created.address}) "
            f"liq={created.initial_liquidity} BNB"
        )
        return created

    async def _safe_handle(self, log: Any) -> None:
        try:
            await self.handle_log(log)
        except Exception as e:
            logger.exception(f"[SCAN] Failed to handle PairCreated log: {e}")

    async def drain_handlers(self) -> None:
        if self._handlers:
            await asyncio.gather(*list(self._handlers), return_exceptions=True)

    # --- Polling ------------------------------------------------------------------

    async def poll_once(self) -> int:
        """Process logs since the last poll. Returns the number of logs seen."""
        latest = await self._gateway.block_number()
        if self._last_block == 0:
            from_block = max(0, latest - self._initial_window)
        else:
            from_block = self._last_block + 1
        if from_block > latest:
            return 0

        logs = await self._gateway.get_pair_created_logs(from_block, latest)
        for log in logs:
            await self._safe_handle(log)
        self._last_block = latest
        if logs:
            logger.info(f"[SCAN] Polled blocks {from_block}-{latest}: {len(logs)} pairs")
        return len(logs)

    async def run_polling(self) -> None:
        self.mode = "poll"
        logger.info(f"[SCAN] Polling PairCreated every {self._poll_interval}s")
        while not await self._wait(self._poll_interval):
            try:
                await self.poll_once()
            except Exception as e:
                logger.warning(f"[SCAN] Poll failed: {e}")

    # --- Push subscription ----------------------------------------------------------

    async def _consume_subscription(self) -> None:
        async for log in self._gateway.subscribe_pair_created():
            task = asyncio.create_task(self._safe_handle(log))
            self._handlers.add(task)
            task.add_done_callback(self._handlers.discard)

    async def run_subscription(self) -> bool:
        """Consume pushed events until shutdown. Returns False if the subscription failed."""
        self.mode = "push"
        consumer = asyncio.create_task(self._consume_subscription())
        stopper = asyncio.create_task(self._stop.wait())
        done, _ = await asyncio.wait({consumer, stopper}, return_when=asyncio.FIRST_COMPLETED)
        if stopper in done:
            consumer.cancel()
            await asyncio.gather(consumer, return_exceptions=True)
            return True

        stopper.cancel()
        error = consumer.exception()
        logger.warning(f"[SCAN] Subscription ended: {error or 'socket closed'}")
        return False

    async def run(self) -> None:
        if self._gateway.has_push:
            if await self.run_subscription():
                return
            logger.warning("[SCAN] Falling back to polling")
        await self.run_polling()
