"""FastAPI dependency injection: components from ``app.state``, auth guards."""

from dataclasses import dataclass

from fastapi import Request

from src.api.auth import NonceCache, check_api_key, check_user_match, verify_signature
from src.api.ws import BroadcastHub
from src.db.repository import Repository
from src.parsers.metrics import EnrichmentStats
from src.trading.executor import TradeExecutor
from src.trading.wallet import WalletService


@dataclass
class AppState:
    """Components built by the composition root and shared with request handlers."""

    repo: Repository
    stats: EnrichmentStats
    nonce_cache: NonceCache
    hub: BroadcastHub
    wallets: WalletService
    executor: TradeExecutor
    api_key: str = ""
    hmac_secret: str = ""
    signature_window_sec: int = 300


def get_state(request: Request) -> AppState:
    return request.app.state.components


def get_repo(request: Request) -> Repository:
    return get_state(request).repo


def get_stats(request: Request) -> EnrichmentStats:
    return get_state(request).stats


def get_wallets(request: Request) -> WalletService:
    return get_state(request).wallets


def get_executor(request: Request) -> TradeExecutor:
    return get_state(request).executor


async def require_api_key(request: Request) -> None:
    check_api_key(get_state(request).api_key, request.headers.get("X-API-Key"))


async def require_signed_request(request: Request) -> None:
    """API key + user match + HMAC signature with single-use nonce."""
    state = get_state(request)
    body = await request.body()
    check_api_key(state.api_key, request.headers.get("X-API-Key"))
    check_user_match(request.headers.get("X-User-Id"), body)

    uri = request.url.path
    if request.url.query:
        uri = f"{uri}?{request.url.query}"
    verify_signature(
        secret=state.hmac_secret,
        method=request.method,
        uri=uri,
        timestamp=request.headers.get("X-Timestamp"),
        nonce=request.headers.get("X-Nonce"),
        signature=request.headers.get("X-Signature"),
        body=body,
        nonce_cache=state.nonce_cache,
        window_sec=state.signature_window_sec,
    )
