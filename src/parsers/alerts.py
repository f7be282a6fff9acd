"""Market alert rules evaluated on every stored snapshot.

Only one rule today: liquidity dropping 40% or more between two consecutive
snapshots. The rule needs a positive baseline, so a token's first snapshot
never alerts.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from src.models.base import utcnow
from src.models.token import TokenAlert

LIQUIDITY_DROP = "LIQUIDITY_DROP"
LIQUIDITY_DROP_THRESHOLD = Decimal("-0.4")
LIQUIDITY_DROP_MESSAGE = "Liquidity dropped more than 40% within refresh window"
SEVERITY_HIGH = "HIGH"


@dataclass
class LiquidityDrop:
    prev_liquidity_usd: Decimal
    new_liquidity_usd: Decimal
    change: Decimal

    def to_alert(self, token_address: str) -> TokenAlert:
        return TokenAlert(
            token_address=token_address,
            alert_type=LIQUIDITY_DROP,
            severity=SEVERITY_HIGH,
            message=LIQUIDITY_DROP_MESSAGE,
            details={
                "prevLiquidityUsd": str(self.prev_liquidity_usd),
                "newLiquidityUsd": str(self.new_liquidity_usd),
                "change": float(self.change),
                "threshold": float(LIQUIDITY_DROP_THRESHOLD),
            },
        )

    def inline_entry(self) -> dict[str, Any]:
        return {
            "type": LIQUIDITY_DROP,
            "severity": SEVERITY_HIGH,
            "change": float(self.change),
            "timestamp": utcnow().isoformat() + "Z",
        }


def evaluate_liquidity_drop(
    prev_liquidity: Decimal | None, new_liquidity: Decimal | None
) -> LiquidityDrop | None:
    if prev_liquidity is None or new_liquidity is None:
        return None
    if prev_liquidity <= 0 or new_liquidity <= 0:
        return None
    change = (new_liquidity - prev_liquidity) / prev_liquidity
    if change > LIQUIDITY_DROP_THRESHOLD:
        return None
    return LiquidityDrop(prev_liquidity, new_liquidity, change)
