"""API fixtures: the app wired to in-memory SQLite with a mocked chain."""

from collections.abc import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
import pytest_asyncio

from src.api.app import create_app, limiter
from src.api.auth import NonceCache
from src.api.dependencies import AppState
from src.api.ws import BroadcastHub
from src.chain.gateway import TxReceipt
from src.db.repository import Repository
from src.parsers.metrics import EnrichmentStats
from src.trading.custody import KeyCustody
from src.trading.executor import TradeExecutor
from src.trading.wallet import WalletService
from tests.test_api.signing import API_KEY, MASTER, SECRET, TX_HASH


@pytest.fixture
def gateway() -> MagicMock:
    gateway = MagicMock()
    gateway.get_native_balance = AsyncMock(return_value=2 * 10**18)
    gateway.get_token_balance = AsyncMock(return_value=0)
    gateway.get_token_decimals = AsyncMock(return_value=18)
    return gateway


@pytest.fixture
def swapper() -> MagicMock:
    swapper = MagicMock()
    swapper.buy = AsyncMock(return_value=TX_HASH)
    swapper.sell = AsyncMock(return_value=TX_HASH)
    swapper.wait_for_receipt = AsyncMock(
        return_value=TxReceipt(tx_hash=TX_HASH, success=True, gas_used=120_000, block_number=7)
    )
    return swapper


@pytest.fixture
def app_state(repo: Repository, gateway, swapper) -> AppState:
    custody = KeyCustody(MASTER)
    return AppState(
        repo=repo,
        stats=EnrichmentStats(),
        nonce_cache=NonceCache(),
        hub=BroadcastHub(),
        wallets=WalletService(repo, custody, gateway),
        executor=TradeExecutor(repo, gateway, custody, swapper=swapper),
        api_key=API_KEY,
        hmac_secret=SECRET,
    )


@pytest_asyncio.fixture
async def client(app_state: AppState) -> AsyncGenerator[httpx.AsyncClient, None]:
    limiter.reset()
    app = create_app(app_state)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
