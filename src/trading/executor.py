"""Managed-wallet trade execution.

Pipeline for one request (serialized per user):
  1. validate fields, load wallet + policy              (no chain calls yet)
  2. resolve amount, read balances, run policy checks  ┐
  3. decrypt key, submit swap                          │ one request deadline
  4. poll receipt                                      │ (asyncio.timeout_at)
  5. re-read balances, update position + wallet        ┘
  6. write the AITrade record

Anything rejected before step 3 completes leaves no record and no state change.
If the deadline expires after submission, the trade is recorded as ``pending``.
"""

import asyncio
from collections import defaultdict
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from typing import Any

from loguru import logger
from web3 import Web3

from src.chain.constants import NATIVE_DECIMALS
from src.chain.gateway import ChainGateway, TxReceipt
from src.db.repository import Repository, trim_error
from src.models.base import utcnow
from src.models.trade import (
    SIDE_BUY,
    SIDE_SELL,
    TRADE_FAILED,
    TRADE_PENDING,
    TRADE_SUCCESS,
    AITrade,
)
from src.models.wallet import ManagedWallet
from src.trading.amounts import (
    from_units,
    parse_native_amount,
    parse_optional_min_out,
    resolve_sell_amount,
)
from src.trading.custody import KeyCustody
from src.trading.errors import (
    ChainUnavailableError,
    PolicyViolationError,
    TradeSubmissionError,
    TradeTimeoutError,
    TradeValidationError,
    WalletNotFoundError,
)
from src.trading.ledger import PositionLedger
from src.trading.pancake_swap import PancakeSwapper
from src.trading.risk_manager import RiskManager, TradePolicy

DEFAULT_TRADE_TIMEOUT = 45.0
SETTLEMENT_TIMEOUT_MESSAGE = "settlement timed out"
DAILY_WINDOW = timedelta(hours=24)


@dataclass
class TradeRequest:
    user_id: str
    token_address: str
    side: str
    amount_in: str
    token_symbol: str = ""
    amount_out_min: str = ""
    golden_dog_score: int = 0
    profit_loss: Decimal = Decimal(0)
    force: bool = False
    decision_reason: str = ""
    strategy_used: str = ""


@dataclass
class TradeOutcome:
    trade: AITrade

    @property
    def status(self) -> str:
        return self.trade.status

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.trade.status == TRADE_SUCCESS,
            "status": self.trade.status,
            "txHash": self.trade.tx_hash,
            "amountIn": str(self.trade.amount_in),
            "amountOut": str(self.trade.amount_out) if self.trade.amount_out is not None else "",
            "profitLoss": str(self.trade.profit_loss),
            "error": self.trade.error_message,
            "trade": self.trade.to_dict(),
        }


@dataclass
class _Prepared:
    """Everything resolved before submission."""

    amount: int  # wei for BUY, token units for SELL
    amount_out_min: int
    decimals: int
    native_before: int
    token_before: int


def validate_request(request: TradeRequest) -> str:
    """Check required fields; returns the normalized side."""
    if not request.user_id:
        raise TradeValidationError("userId is required")
    if not request.token_address:
        raise TradeValidationError("tokenAddress is required")
    if not request.side:
        raise TradeValidationError("type is required")
    if not request.amount_in or not request.amount_in.strip():
        raise TradeValidationError("amountIn is required")
    side = request.side.strip().upper()
    if side not in (SIDE_BUY, SIDE_SELL):
        raise TradeValidationError("type must be BUY or SELL")
    if not Web3.is_address(request.token_address):
        raise TradeValidationError("invalid tokenAddress")
    return side


class TradeExecutor:
    def __init__(
        self,
        repo: Repository,
        gateway: ChainGateway,
        custody: KeyCustody,
        *,
        swapper: PancakeSwapper | None = None,
        risk: RiskManager | None = None,
        ledger: PositionLedger | None = None,
        timeout: float = DEFAULT_TRADE_TIMEOUT,
    ) -> None:
        self._repo = repo
        self._gateway = gateway
        self._custody = custody
        self._swapper = swapper or PancakeSwapper(gateway)
        self._risk = risk or RiskManager()
        self._ledger = ledger or PositionLedger(repo)
        self._timeout = timeout
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def execute(self, request: TradeRequest) -> TradeOutcome:
        side = validate_request(request)
        wallet = await self._repo.get_wallet(request.user_id)
        if wallet is None:
            raise WalletNotFoundError("wallet not found")
        policy = TradePolicy.from_config(await self._repo.get_wallet_config(request.user_id))
        buy_wei = parse_native_amount(request.amount_in) if side == SIDE_BUY else 0

        async with self._locks[request.user_id]:
            deadline = asyncio.get_running_loop().time() + self._timeout
            try:
                async with asyncio.timeout_at(deadline):
                    if side == SIDE_BUY:
                        prepared = await self._prepare_buy(request, wallet, policy, buy_wei)
                    else:
                        prepared = await self._prepare_sell(request, wallet, policy)
                    tx_hash = await self._submit(side, request, wallet, prepared)
            except TimeoutError as e:
                logger.warning(f"[TRADE] {side} {request.token_address} timed out before submission")
                raise TradeTimeoutError("trade timed out") from e

            trade = await self._settle(side, request, wallet, prepared, tx_hash, deadline)

        log = logger.info if trade.status == TRADE_SUCCESS else logger.warning
        log(
            f"[TRADE] {side} {request.token_symbol or request.token_address} "
            f"user={request.user_id} status={trade.status} tx={tx_hash[:18]}"
        )
        return TradeOutcome(trade=trade)

    # --- Pre-submission ---------------------------------------------------------------

    async def _read(self, label: str, coro: Any) -> Any:
        try:
            return await coro
        except (TimeoutError, asyncio.CancelledError):
            raise
        except Exception as e:
            logger.warning(f"[TRADE] {label} failed: {e}")
            raise ChainUnavailableError(f"failed to get {label}") from e

    async def _prepare_buy(
        self, request: TradeRequest, wallet: ManagedWallet, policy: TradePolicy, amount_wei: int
    ) -> _Prepared:
        recent = await self._repo.list_ai_trades_since(request.user_id, utcnow() - DAILY_WINDOW)
        allowed, reason = self._risk.pre_buy_check(
            policy,
            amount_bnb=from_units(amount_wei, NATIVE_DECIMALS),
            golden_dog_score=request.golden_dog_score,
            recent_trades=recent,
            wallet_max_balance=wallet.max_balance,
        )
        if not allowed:
            raise PolicyViolationError(reason)

        native_before = await self._read("balance", self._gateway.get_native_balance(wallet.address))
        allowed, reason = self._risk.pre_buy_balance_check(balance_wei=native_before, amount_wei=amount_wei)
        if not allowed:
            raise PolicyViolationError(reason)

        decimals = await self._read("token decimals", self._gateway.get_token_decimals(request.token_address))
        token_before = await self._read(
            "token balance", self._gateway.get_token_balance(request.token_address, wallet.address)
        )
        return _Prepared(
            amount=amount_wei,
            amount_out_min=parse_optional_min_out(request.amount_out_min, decimals),
            decimals=decimals,
            native_before=native_before,
            token_before=token_before,
        )

    async def _prepare_sell(
        self, request: TradeRequest, wallet: ManagedWallet, policy: TradePolicy
    ) -> _Prepared:
        decimals = await self._read("token decimals", self._gateway.get_token_decimals(request.token_address))
        token_before = await self._read(
            "token balance", self._gateway.get_token_balance(request.token_address, wallet.address)
        )
        amount = resolve_sell_amount(request.amount_in, token_before, decimals)

        allowed, reason, amount = self._risk.size_sell(
            policy,
            amount=amount,
            token_balance=token_before,
            profit_loss=request.profit_loss,
            force=request.force,
        )
        if not allowed:
            raise PolicyViolationError(reason)
        allowed, reason = self._risk.pre_sell_check(token_balance=token_before, amount=amount)
        if not allowed or amount <= 0:
            raise PolicyViolationError(reason or "insufficient token balance")

        native_before = await self._read("balance", self._gateway.get_native_balance(wallet.address))
        return _Prepared(
            amount=amount,
            amount_out_min=parse_optional_min_out(request.amount_out_min, NATIVE_DECIMALS),
            decimals=decimals,
            native_before=native_before,
            token_before=token_before,
        )

    async def _submit(
        self, side: str, request: TradeRequest, wallet: ManagedWallet, prepared: _Prepared
    ) -> str:
        with self._custody.signing_account(wallet.encrypted_key) as account:
            try:
                if side == SIDE_BUY:
                    return await self._swapper.buy(
                        account, request.token_address, prepared.amount, prepared.amount_out_min
                    )
                return await self._swapper.sell(
                    account, request.token_address, prepared.amount, prepared.amount_out_min
                )
            except (TimeoutError, asyncio.CancelledError):
                raise
            except Exception as e:
                logger.error(f"[TRADE] {side} submission failed for {request.token_address}: {e}")
                raise TradeSubmissionError("trade failed") from e

    # --- Settlement ---------------------------------------------------------------------

    async def _settle(
        self,
        side: str,
        request: TradeRequest,
        wallet: ManagedWallet,
        prepared: _Prepared,
        tx_hash: str,
        deadline: float,
    ) -> AITrade:
        trade = AITrade(
            user_id=request.user_id,
            token_address=request.token_address,
            token_symbol=request.token_symbol,
            trade_type=side,
            amount_in=from_units(
                prepared.amount, prepared.decimals if side == SIDE_SELL else NATIVE_DECIMALS
            ),
            amount_out=None,
            tx_hash=tx_hash,
            status=TRADE_PENDING,
            golden_dog_score=request.golden_dog_score,
            decision_reason=request.decision_reason,
            strategy_used=request.strategy_used,
            profit_loss=Decimal(0),
            error_message="",
        )

        receipt: TxReceipt | None = None
        try:
            async with asyncio.timeout_at(deadline):
                receipt = await self._swapper.wait_for_receipt(tx_hash)
                trade.status = TRADE_SUCCESS if receipt.success else TRADE_FAILED
                trade.gas_used = receipt.gas_used
                trade.block_number = receipt.block_number
                if not receipt.success:
                    trade.error_message = "transaction reverted"
                await self._apply_post_trade(side, request, wallet, prepared, trade)
        except TimeoutError:
            if receipt is None:
                trade.status = TRADE_PENDING
                trade.error_message = SETTLEMENT_TIMEOUT_MESSAGE
            else:
                logger.warning(f"[TRADE] Post-trade reads skipped for {tx_hash[:18]}: deadline expired")
        except Exception as e:
            if receipt is None:
                raise
            logger.warning(f"[TRADE] Post-trade update failed for {tx_hash[:18]}: {e}")

        trade.error_message = trim_error(trade.error_message)
        return await self._repo.create_ai_trade(trade)

    async def _apply_post_trade(
        self,
        side: str,
        request: TradeRequest,
        wallet: ManagedWallet,
        prepared: _Prepared,
        trade: AITrade,
    ) -> None:
        native_after = await self._gateway.get_native_balance(wallet.address)

        if trade.status == TRADE_SUCCESS:
            if side == SIDE_BUY:
                token_after = await self._gateway.get_token_balance(
                    request.token_address, wallet.address
                )
                delta = token_after - prepared.token_before
                if delta > 0:
                    trade.amount_out = from_units(delta, prepared.decimals)
                    await self._ledger.record_buy(
                        request.user_id,
                        request.token_address,
                        trade.amount_out,
                        trade.amount_in,
                        request.token_symbol,
                    )
            else:
                delta = native_after - prepared.native_before
                if delta > 0:
                    trade.amount_out = from_units(delta, NATIVE_DECIMALS)
                    trade.profit_loss = await self._ledger.record_sell(
                        request.user_id, request.token_address, trade.amount_in, trade.amount_out
                    )

        balance = from_units(native_after, NATIVE_DECIMALS)
        await self._repo.update_wallet_balance(wallet.id, balance)
        wallet.balance = balance
