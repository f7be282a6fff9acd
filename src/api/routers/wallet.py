"""Managed wallet endpoints: provisioning, balance, positions, policy, trade execution.

Mutating calls require a signed request (see ``src.api.auth``).
"""

from decimal import Decimal
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from loguru import logger
from pydantic import BaseModel, field_validator

from config.settings import settings
from src.api.app import limiter
from src.api.dependencies import (
    get_executor,
    get_repo,
    get_wallets,
    require_api_key,
    require_signed_request,
)
from src.db.repository import Repository
from src.trading.custody import KeyDecryptionError, MissingMasterKeyError
from src.trading.errors import (
    ChainUnavailableError,
    PolicyViolationError,
    TradeError,
    TradeSubmissionError,
    TradeTimeoutError,
    TradeValidationError,
    WalletExistsError,
    WalletNotFoundError,
)
from src.trading.executor import TradeExecutor, TradeRequest
from src.trading.risk_manager import TradePolicy
from src.trading.wallet import WalletService

router = APIRouter(prefix="/api/v1/wallet", tags=["wallet"])

_STATUS_BY_ERROR: list[tuple[type[TradeError], int]] = [
    (TradeValidationError, status.HTTP_400_BAD_REQUEST),
    (PolicyViolationError, status.HTTP_400_BAD_REQUEST),
    (WalletNotFoundError, status.HTTP_404_NOT_FOUND),
    (WalletExistsError, status.HTTP_409_CONFLICT),
    (ChainUnavailableError, status.HTTP_502_BAD_GATEWAY),
    (TradeTimeoutError, status.HTTP_504_GATEWAY_TIMEOUT),
    (TradeSubmissionError, status.HTTP_500_INTERNAL_SERVER_ERROR),
]


class UserBody(BaseModel):
    userId: str = ""

    model_config = {"extra": "ignore"}


class WalletConfigBody(BaseModel):
    userId: str = ""
    config: dict[str, Any] = {}

    model_config = {"extra": "ignore"}


class ExecuteTradeBody(BaseModel):
    userId: str = ""
    tokenAddress: str = ""
    tokenSymbol: str = ""
    type: str = ""
    amountIn: str = ""
    amountOutMin: str = ""
    goldenDogScore: int = 0
    profitLoss: Decimal = Decimal(0)
    force: bool = False
    decisionReason: str = ""
    strategyUsed: str = ""

    model_config = {"extra": "ignore"}

    @field_validator("amountIn", "amountOutMin", mode="before")
    @classmethod
    def _numbers_as_text(cls, v: Any) -> Any:
        if isinstance(v, (int, float, Decimal)) and not isinstance(v, bool):
            return str(v)
        return v

    def to_request(self) -> TradeRequest:
        return TradeRequest(
            user_id=self.userId.strip(),
            token_address=self.tokenAddress.strip(),
            token_symbol=self.tokenSymbol,
            side=self.type,
            amount_in=self.amountIn,
            amount_out_min=self.amountOutMin,
            golden_dog_score=self.goldenDogScore,
            profit_loss=self.profitLoss,
            force=self.force,
            decision_reason=self.decisionReason,
            strategy_used=self.strategyUsed,
        )


def _require_user(user_id: str) -> str:
    user_id = user_id.strip()
    if not user_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="userId is required")
    return user_id


def _to_http(error: Exception) -> HTTPException:
    if isinstance(error, (MissingMasterKeyError, KeyDecryptionError)):
        logger.error(f"[WALLET] Key custody error: {type(error).__name__}")
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="wallet key unavailable"
        )
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return HTTPException(status_code=code, detail=str(error) or "trade failed")
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="internal server error")


@router.post("/create", dependencies=[Depends(require_signed_request)])
async def create_wallet(
    body: UserBody, wallets: WalletService = Depends(get_wallets)
) -> dict[str, Any]:
    user_id = _require_user(body.userId)
    try:
        wallet = await wallets.create_wallet(user_id)
    except (TradeError, MissingMasterKeyError, KeyDecryptionError) as e:
        raise _to_http(e)
    return {"data": wallet.to_dict()}


@router.get("/info", dependencies=[Depends(require_api_key)])
async def wallet_info(
    userId: str = Query(""), wallets: WalletService = Depends(get_wallets)
) -> dict[str, Any]:
    try:
        wallet = await wallets.get_wallet(_require_user(userId))
    except TradeError as e:
        raise _to_http(e)
    return {"data": wallet.to_dict()}


@router.get("/balance", dependencies=[Depends(require_signed_request)])
async def wallet_balance(
    userId: str = Query(""), wallets: WalletService = Depends(get_wallets)
) -> dict[str, Any]:
    """Re-read the on-chain balance and return the refreshed wallet."""
    try:
        wallet = await wallets.refresh_balance(_require_user(userId))
    except TradeError as e:
        raise _to_http(e)
    return {"data": wallet.to_dict()}


@router.get("/positions", dependencies=[Depends(require_api_key)])
async def positions(
    userId: str = Query(""), repo: Repository = Depends(get_repo)
) -> dict[str, Any]:
    items = await repo.list_positions(_require_user(userId))
    return {"data": [p.to_dict() for p in items]}


@router.get("/config", dependencies=[Depends(require_api_key)])
async def get_config(
    userId: str = Query(""), repo: Repository = Depends(get_repo)
) -> dict[str, Any]:
    config = await repo.get_wallet_config(_require_user(userId))
    return {"data": config or TradePolicy().to_config()}


@router.put("/config", dependencies=[Depends(require_signed_request)])
async def put_config(
    body: WalletConfigBody, repo: Repository = Depends(get_repo)
) -> dict[str, Any]:
    user_id = _require_user(body.userId)
    try:
        policy = TradePolicy.from_config(body.config)
    except PolicyViolationError as e:
        raise _to_http(e)
    stored = policy.to_config()
    await repo.upsert_wallet_config(user_id, stored)
    logger.info(f"[WALLET] Config updated for user {user_id} (enabled={policy.enabled})")
    return {"data": stored}


@router.post("/execute-trade", dependencies=[Depends(require_signed_request)])
@limiter.limit(settings.trade_rate_limit)
async def execute_trade(
    request: Request,
    body: ExecuteTradeBody,
    executor: TradeExecutor = Depends(get_executor),
) -> dict[str, Any]:
    try:
        outcome = await executor.execute(body.to_request())
    except (TradeError, MissingMasterKeyError, KeyDecryptionError) as e:
        logger.warning(f"[TRADE] Rejected {body.type} {body.tokenAddress} for {body.userId}: {e}")
        raise _to_http(e)
    except Exception as e:
        logger.exception(f"[TRADE] Unexpected failure: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="trade failed"
        )
    return {"data": outcome.to_dict()}
