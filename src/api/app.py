"""FastAPI application factory for the radar API."""

from __future__ import annotations

from fastapi import FastAPI
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.middleware.cors import CORSMiddleware

from src.api.dependencies import AppState
from src.api.middleware import SecurityHeadersMiddleware

# Rate limiter (shared instance)
limiter = Limiter(key_func=get_remote_address)


def create_app(state: AppState, *, cors_origins: list[str] | None = None) -> FastAPI:
    """Build the app around the components owned by the composition root."""
    app = FastAPI(title="BSC Meme Radar API", version="0.1.0", redoc_url=None)

    app.state.components = state
    app.state.hub = state.hub

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins or ["http://localhost:3000"],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "OPTIONS"],
        allow_headers=[
            "Content-Type",
            "X-API-Key",
            "X-User-Id",
            "X-Timestamp",
            "X-Nonce",
            "X-Signature",
        ],
    )

    from src.api.routers.ai_trades import router as ai_trades_router
    from src.api.routers.health import router as health_router
    from src.api.routers.tokens import router as tokens_router
    from src.api.routers.wallet import router as wallet_router
    from src.api.ws import router as ws_router

    app.include_router(health_router)
    app.include_router(tokens_router)
    app.include_router(wallet_router)
    app.include_router(ai_trades_router)
    app.include_router(ws_router)

    return app
