from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import DateTime, Index, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base, utcnow

SIDE_BUY = "BUY"
SIDE_SELL = "SELL"

TRADE_SUCCESS = "success"
TRADE_FAILED = "failed"
TRADE_PENDING = "pending"


class AITrade(Base):
    """Execution record for a managed-wallet trade that reached submission."""

    __tablename__ = "ai_trades"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64))
    token_address: Mapped[str] = mapped_column(String(42))
    token_symbol: Mapped[str] = mapped_column(String(64), default="")
    trade_type: Mapped[str] = mapped_column(String(4))  # BUY | SELL
    amount_in: Mapped[Decimal] = mapped_column(default=Decimal(0))
    amount_out: Mapped[Decimal | None] = mapped_column()
    tx_hash: Mapped[str] = mapped_column(String(66))
    status: Mapped[str] = mapped_column(String(10))
    gas_used: Mapped[int | None] = mapped_column(Integer)
    block_number: Mapped[int | None] = mapped_column(Integer)
    golden_dog_score: Mapped[int] = mapped_column(Integer, default=0)
    decision_reason: Mapped[str] = mapped_column(String(1000), default="")
    strategy_used: Mapped[str] = mapped_column(String(100), default="")
    profit_loss: Mapped[Decimal] = mapped_column(default=Decimal(0))
    error_message: Mapped[str] = mapped_column(String(512), default="")
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        Index("idx_ai_trades_user_time", "user_id", "created_at"),
        Index("idx_ai_trades_tx_hash", "tx_hash"),
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "token_address": self.token_address,
            "token_symbol": self.token_symbol,
            "type": self.trade_type,
            "amount_in": str(self.amount_in),
            "amount_out": str(self.amount_out) if self.amount_out is not None else "",
            "tx_hash": self.tx_hash,
            "status": self.status,
            "gas_used": self.gas_used,
            "block_number": self.block_number,
            "golden_dog_score": self.golden_dog_score,
            "decision_reason": self.decision_reason,
            "strategy_used": self.strategy_used,
            "profit_loss": str(self.profit_loss),
            "error_message": self.error_message,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class AIPosition(Base):
    """Cost-basis position per (user, token)."""

    __tablename__ = "ai_positions"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64))
    token_address: Mapped[str] = mapped_column(String(42))
    token_symbol: Mapped[str] = mapped_column(String(64), default="")
    quantity: Mapped[Decimal] = mapped_column(default=Decimal(0))
    cost_bnb: Mapped[Decimal] = mapped_column(default=Decimal(0))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("user_id", "token_address", name="uq_ai_positions_user_token"),
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "token_address": self.token_address,
            "token_symbol": self.token_symbol,
            "quantity": str(self.quantity),
            "cost_bnb": str(self.cost_bnb),
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
