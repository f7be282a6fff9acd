from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import JSON, DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base, utcnow


class ManagedWallet(Base):
    """Custody-held trading wallet, one per user."""

    __tablename__ = "managed_wallets"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), unique=True)
    address: Mapped[str] = mapped_column(String(42))
    encrypted_key: Mapped[str] = mapped_column(String(256))  # hex(nonce || ciphertext)
    balance: Mapped[Decimal] = mapped_column(default=Decimal(0))
    max_balance: Mapped[Decimal] = mapped_column(default=Decimal(5))
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, server_default=func.now()
    )

    def __repr__(self) -> str:
        # encrypted_key intentionally omitted
        return f"ManagedWallet(user_id={self.user_id!r}, address={self.address!r})"

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "address": self.address,
            "balance": str(self.balance),
            "max_balance": str(self.max_balance),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class WalletConfig(Base):
    """Per-user auto-trade policy, stored as a JSON blob and replaced wholesale."""

    __tablename__ = "wallet_configs"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), unique=True)
    config: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, server_default=func.now()
    )
