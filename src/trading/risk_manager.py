"""Per-user trade policy (the wallet config blob) and the pre-trade checks it drives.

BUY checks (only when the policy is enabled):
  golden-dog score ≥ minGoldenDogScore
  amount ≤ maxAmountPerTrade
  24h BUY volume + amount ≤ dailyBudget
  24h realized losses ≤ maxDailyLoss
Always, regardless of policy: amount ≤ wallet max balance, amount ≤ on-chain balance.

SELL sizing (policy enabled and not forced):
  P/L ≤ stopLoss (negative)  → sell everything
  else take-profit ladder     → highest level ≤ P/L picks the sell ratio;
                                no level reached rejects the trade
Checks return (allowed, reason); reason is empty when allowed.
"""

from collections.abc import Sequence
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from src.models.trade import AITrade, SIDE_BUY
from src.trading.amounts import apply_ratio
from src.trading.errors import PolicyViolationError


class TradePolicy(BaseModel):
    enabled: bool = False
    max_amount_per_trade: Decimal = Field(default=Decimal(0), alias="maxAmountPerTrade")
    min_golden_dog_score: int = Field(default=0, alias="minGoldenDogScore")
    daily_budget: Decimal = Field(default=Decimal(0), alias="dailyBudget")
    confirm_threshold: Decimal = Field(default=Decimal(0), alias="confirmThreshold")
    max_daily_loss: Decimal = Field(default=Decimal(0), alias="maxDailyLoss")
    take_profit_levels: list[Decimal] = Field(default_factory=list, alias="takeProfitLevels")
    take_profit_amounts: list[Decimal] = Field(default_factory=list, alias="takeProfitAmounts")
    stop_loss: Decimal = Field(default=Decimal(0), alias="stopLoss")

    model_config = {"extra": "ignore", "populate_by_name": True}

    @classmethod
    def from_config(cls, config: dict[str, Any] | None) -> "TradePolicy":
        """Load a stored config blob. A missing config means auto-trade is disabled."""
        if not config:
            return cls()
        try:
            return cls.model_validate(config)
        except ValidationError as e:
            raise PolicyViolationError("wallet config is invalid") from e

    def to_config(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


def matched_take_profit_index(profit_loss: Decimal, levels: Sequence[Decimal]) -> int:
    """Index of the last level ≤ profit_loss (levels scanned in order), or -1."""
    index = -1
    for i, level in enumerate(levels):
        if profit_loss >= level:
            index = i
    return index


def pick_take_profit_ratio(index: int, amounts: Sequence[Decimal]) -> Decimal:
    if index < 0:
        return Decimal(0)
    if not amounts:
        return Decimal(1)
    if index < len(amounts):
        return amounts[index]
    return amounts[-1]


def daily_buy_volume(trades: Sequence[AITrade]) -> Decimal:
    return sum((t.amount_in for t in trades if t.trade_type == SIDE_BUY), Decimal(0))


def daily_realized_loss(trades: Sequence[AITrade]) -> Decimal:
    return sum((-t.profit_loss for t in trades if t.profit_loss < 0), Decimal(0))


class RiskManager:
    """Pre-trade checks. All synchronous (pure logic); the executor supplies the data."""

    def pre_buy_check(
        self,
        policy: TradePolicy,
        *,
        amount_bnb: Decimal,
        golden_dog_score: int,
        recent_trades: Sequence[AITrade],
        wallet_max_balance: Decimal,
    ) -> tuple[bool, str]:
        if policy.enabled:
            if policy.min_golden_dog_score > 0 and golden_dog_score < policy.min_golden_dog_score:
                return False, "golden dog score below threshold"
            if policy.max_amount_per_trade > 0 and amount_bnb > policy.max_amount_per_trade:
                return False, "amount exceeds max per trade"
            if policy.daily_budget > 0:
                used = daily_buy_volume(recent_trades)
                if used + amount_bnb > policy.daily_budget:
                    return False, "daily budget exceeded"
            if policy.max_daily_loss > 0:
                if daily_realized_loss(recent_trades) > policy.max_daily_loss:
                    return False, "max daily loss exceeded"

        if wallet_max_balance > 0 and amount_bnb > wallet_max_balance:
            return False, "amount exceeds max balance limit"
        return True, ""

    def pre_buy_balance_check(self, *, balance_wei: int, amount_wei: int) -> tuple[bool, str]:
        if balance_wei < amount_wei:
            return False, "insufficient balance"
        return True, ""

    def size_sell(
        self,
        policy: TradePolicy,
        *,
        amount: int,
        token_balance: int,
        profit_loss: Decimal,
        force: bool,
    ) -> tuple[bool, str, int]:
        """Apply stop-loss / take-profit sizing. Returns (allowed, reason, amount)."""
        if not policy.enabled or force:
            return True, "", amount

        if policy.stop_loss < 0 and profit_loss <= policy.stop_loss:
            return True, "", token_balance

        if policy.take_profit_levels:
            index = matched_take_profit_index(profit_loss, policy.take_profit_levels)
            if index < 0:
                return False, "profit target not met", amount
            ratio = pick_take_profit_ratio(index, policy.take_profit_amounts)
            if 0 < ratio < 1:
                return True, "", apply_ratio(token_balance, ratio)
        return True, "", amount

    def pre_sell_check(self, *, token_balance: int, amount: int) -> tuple[bool, str]:
        if token_balance < amount:
            return False, "insufficient token balance"
        return True, ""
