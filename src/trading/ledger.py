"""Average-cost position ledger.

Quantities are in token units (as Decimal), cost in BNB. A sell removes cost
proportionally (average cost × quantity sold); realized P/L is reported as a
fraction of the cost removed.
"""

from dataclasses import dataclass
from decimal import Decimal

from src.db.repository import Repository
from src.models.trade import AIPosition

ZERO = Decimal(0)


@dataclass
class PositionState:
    quantity: Decimal = ZERO
    cost_bnb: Decimal = ZERO

    @classmethod
    def from_model(cls, position: AIPosition | None) -> "PositionState | None":
        if position is None:
            return None
        return cls(quantity=position.quantity, cost_bnb=position.cost_bnb)


def apply_buy(position: PositionState | None, quantity: Decimal, cost_bnb: Decimal) -> PositionState:
    """Add a fill. A non-positive quantity leaves the position unchanged."""
    state = position or PositionState()
    if quantity <= 0:
        return state
    return PositionState(quantity=state.quantity + quantity, cost_bnb=state.cost_bnb + cost_bnb)


def apply_sell(
    position: PositionState | None, quantity_sold: Decimal, proceeds_bnb: Decimal
) -> tuple[PositionState, Decimal]:
    """Remove a fill. Returns (new position, realized P/L ratio)."""
    if position is None or position.quantity <= 0:
        return position or PositionState(), ZERO

    # avg_cost × quantity_sold
    cost_sold = position.cost_bnb * quantity_sold / position.quantity
    profit_loss = (proceeds_bnb - cost_sold) / cost_sold if cost_sold > 0 else ZERO

    quantity = max(ZERO, position.quantity - quantity_sold)
    cost = max(ZERO, position.cost_bnb - cost_sold)
    if quantity == 0:
        cost = ZERO
    return PositionState(quantity=quantity, cost_bnb=cost), profit_loss


class PositionLedger:
    """Applies fills to the stored ``ai_positions`` row for (user, token)."""

    def __init__(self, repo: Repository) -> None:
        self._repo = repo

    async def get(self, user_id: str, token_address: str) -> PositionState | None:
        return PositionState.from_model(await self._repo.get_position(user_id, token_address))

    async def record_buy(
        self,
        user_id: str,
        token_address: str,
        quantity: Decimal,
        cost_bnb: Decimal,
        token_symbol: str = "",
    ) -> PositionState:
        state = apply_buy(await self.get(user_id, token_address), quantity, cost_bnb)
        await self._repo.save_position(
            user_id,
            token_address,
            quantity=state.quantity,
            cost_bnb=state.cost_bnb,
            token_symbol=token_symbol,
        )
        return state

    async def record_sell(
        self, user_id: str, token_address: str, quantity_sold: Decimal, proceeds_bnb: Decimal
    ) -> Decimal:
        """Apply a sell; returns realized P/L (0 when there was no position)."""
        current = await self.get(user_id, token_address)
        if current is None or current.quantity <= 0:
            return ZERO
        state, profit_loss = apply_sell(current, quantity_sold, proceeds_bnb)
        await self._repo.save_position(
            user_id, token_address, quantity=state.quantity, cost_bnb=state.cost_bnb
        )
        return profit_loss
