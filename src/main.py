"""Entry point for the BSC meme radar: discovery, enrichment loops, trade API."""

import asyncio
import signal
from decimal import Decimal

from loguru import logger

from config.settings import settings
from src.api.auth import NonceCache
from src.api.dependencies import AppState
from src.api.ws import BroadcastHub
from src.chain.gateway import ChainGateway
from src.db.database import async_session_factory, engine
from src.db.repository import Repository
from src.parsers.datahub.client import DataHubClient
from src.parsers.enrichment import EnrichmentEngine
from src.parsers.metrics import EnrichmentStats
from src.parsers.scanner import PairScanner
from src.trading.custody import KeyCustody
from src.trading.executor import TradeExecutor
from src.trading.wallet import WalletService
from src.utils.logger import setup_logger


async def main() -> None:
    setup_logger(json_logs=settings.json_logs, level=settings.log_level)
    logger.info("Starting BSC meme radar...")

    # Graceful shutdown on SIGINT/SIGTERM
    loop = asyncio.get_running_loop()
    shutdown_event = asyncio.Event()

    def _signal_handler() -> None:
        logger.info("Shutdown signal received")
        shutdown_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _signal_handler)

    repo = Repository(async_session_factory)
    stats = EnrichmentStats()
    hub = BroadcastHub()
    gateway = ChainGateway(settings.bsc_rpc_url, settings.bsc_ws_url)
    datahub = DataHubClient(
        settings.datahub_base_url,
        settings.datahub_api_key,
        chain=settings.datahub_chain,
        max_rps=settings.datahub_max_rps,
        timeout=settings.datahub_timeout_sec,
        stop=shutdown_event,
    )
    custody = KeyCustody(settings.wallet_master_key)
    if not custody.configured:
        logger.warning("[WALLET] WALLET_MASTER_KEY not set, managed wallets are disabled")

    enrichment = EnrichmentEngine(
        repo,
        datahub,
        stats,
        gateway=gateway,
        stop=shutdown_event,
        default_attempts=settings.enrichment_attempts,
    )
    scanner = PairScanner(
        gateway,
        repo,
        enrichment,
        hub,
        stop=shutdown_event,
        poll_interval=settings.scanner_poll_interval_sec,
        initial_window=settings.scanner_initial_window,
        enrich_attempts=settings.enrichment_attempts,
    )

    tasks = [
        asyncio.create_task(enrichment.run_recovery_loop(settings.recovery_interval_sec)),
        asyncio.create_task(enrichment.run_refresh_loop(settings.refresh_interval_sec)),
        asyncio.create_task(enrichment.run_stats_loop(settings.stats_interval_sec)),
        asyncio.create_task(hub.run(shutdown_event)),
    ]
    if settings.enable_scanner:
        tasks.append(asyncio.create_task(scanner.run()))

    if settings.api_enabled:
        from src.api.app import create_app
        from src.api.server import run_api_server

        state = AppState(
            repo=repo,
            stats=stats,
            nonce_cache=NonceCache(settings.api_nonce_ttl_sec),
            hub=hub,
            wallets=WalletService(
                repo,
                custody,
                gateway,
                default_max_balance=Decimal(str(settings.wallet_default_max_balance)),
            ),
            executor=TradeExecutor(repo, gateway, custody, timeout=settings.trade_timeout_sec),
            api_key=settings.api_key,
            hmac_secret=settings.api_hmac_secret,
            signature_window_sec=settings.api_signature_window_sec,
        )
        if not settings.api_hmac_secret:
            logger.warning("[API] API_HMAC_SECRET not set, trade endpoints accept unsigned requests")
        app = create_app(state)
        tasks.append(
            asyncio.create_task(run_api_server(app, settings.api_port, shutdown_event))
        )

    await shutdown_event.wait()

    # Loops exit on the event; give them a moment, then cancel stragglers
    done, pending = await asyncio.wait(tasks, timeout=10)
    for task in pending:
        task.cancel()
    await asyncio.gather(*pending, return_exceptions=True)
    for task in done:
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Task ended with error: {task.exception()}")

    try:
        await asyncio.wait_for(scanner.drain_handlers(), timeout=5)
        await asyncio.wait_for(enrichment.drain(), timeout=10)
    except TimeoutError:
        logger.warning("[ENRICH] In-flight enrichment cancelled at shutdown")
    await datahub.close()
    await gateway.close()
    await engine.dispose()
    logger.info("Shutdown complete")


if __name__ == "__main__":
    asyncio.run(main())
