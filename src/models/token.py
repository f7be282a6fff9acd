from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Index, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base, utcnow

# analysis_status values
STATUS_PENDING = "pending"
STATUS_ENRICHING = "enriching"
STATUS_ENRICH_FAILED = "enrich_failed"
STATUS_ENRICHED = "enriched"
STATUS_ANALYZED = "analyzed"

ANALYSIS_STATUSES = (
    STATUS_PENDING,
    STATUS_ENRICHING,
    STATUS_ENRICH_FAILED,
    STATUS_ENRICHED,
    STATUS_ANALYZED,
)

MAX_INLINE_ALERTS = 20


class Token(Base):
    """A token first seen in a PairCreated event against WBNB."""

    __tablename__ = "tokens"

    id: Mapped[int] = mapped_column(primary_key=True)
    address: Mapped[str] = mapped_column(String(42), unique=True)
    name: Mapped[str] = mapped_column(String(255), default="")
    symbol: Mapped[str] = mapped_column(String(64), default="")
    decimals: Mapped[int] = mapped_column(Integer, default=18)
    pair_address: Mapped[str] = mapped_column(String(42), default="")
    initial_liquidity: Mapped[Decimal] = mapped_column(default=Decimal(0))

    analysis_status: Mapped[str] = mapped_column(String(20), default=STATUS_PENDING)
    enrich_error: Mapped[str] = mapped_column(String(512), default="")
    enrich_attempts: Mapped[int] = mapped_column(Integer, default=0)

    risk_score: Mapped[int] = mapped_column(Integer, default=0)
    risk_level: Mapped[str] = mapped_column(String(20), default="pending")
    risk_details: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    golden_dog_score: Mapped[int] = mapped_column(Integer, default=0)
    is_golden_dog: Mapped[bool] = mapped_column(Boolean, default=False)
    is_honeypot: Mapped[bool] = mapped_column(Boolean, default=False)
    buy_tax: Mapped[Decimal] = mapped_column(default=Decimal(0))
    sell_tax: Mapped[Decimal] = mapped_column(default=Decimal(0))
    creator_address: Mapped[str] = mapped_column(String(42), default="")

    market_data: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    holder_data: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    creator_history: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    market_alerts: Mapped[list[dict[str, Any]] | None] = mapped_column(JSON)
    analysis_result: Mapped[dict[str, Any] | None] = mapped_column(JSON)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, server_default=func.now()
    )
    enriched_at: Mapped[datetime | None] = mapped_column(DateTime)
    last_market_refresh_at: Mapped[datetime | None] = mapped_column(DateTime)
    analyzed_at: Mapped[datetime | None] = mapped_column(DateTime)

    __table_args__ = (
        Index("idx_tokens_status_updated", "analysis_status", "updated_at"),
        Index("idx_tokens_created", "created_at"),
        Index("idx_tokens_golden", "is_golden_dog", "analysis_status"),
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "address": self.address,
            "name": self.name,
            "symbol": self.symbol,
            "decimals": self.decimals,
            "pair_address": self.pair_address,
            "initial_liquidity": str(self.initial_liquidity),
            "analysis_status": self.analysis_status,
            "enrich_error": self.enrich_error,
            "enrich_attempts": self.enrich_attempts,
            "risk_score": self.risk_score,
            "risk_level": self.risk_level,
            "risk_details": self.risk_details,
            "golden_dog_score": self.golden_dog_score,
            "is_golden_dog": self.is_golden_dog,
            "is_honeypot": self.is_honeypot,
            "buy_tax": str(self.buy_tax),
            "sell_tax": str(self.sell_tax),
            "creator_address": self.creator_address,
            "market_data": self.market_data,
            "holder_data": self.holder_data,
            "creator_history": self.creator_history,
            "market_alerts": self.market_alerts or [],
            "analysis_result": self.analysis_result,
            "created_at": _iso(self.created_at),
            "enriched_at": _iso(self.enriched_at),
            "last_market_refresh_at": _iso(self.last_market_refresh_at),
            "analyzed_at": _iso(self.analyzed_at),
        }


class TokenMarketSnapshot(Base):
    """Append-only market state captured on every successful refresh."""

    __tablename__ = "token_market_snapshots"

    id: Mapped[int] = mapped_column(primary_key=True)
    token_address: Mapped[str] = mapped_column(String(42))
    price_usd: Mapped[Decimal | None] = mapped_column()
    liquidity_usd: Mapped[Decimal | None] = mapped_column()
    volume_h1: Mapped[Decimal | None] = mapped_column()
    buys_h1: Mapped[int | None] = mapped_column(Integer)
    sells_h1: Mapped[int | None] = mapped_column(Integer)
    raw: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        Index("idx_market_snapshots_token_time", "token_address", "created_at"),
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "token_address": self.token_address,
            "price_usd": _dec(self.price_usd),
            "liquidity_usd": _dec(self.liquidity_usd),
            "volume_h1": _dec(self.volume_h1),
            "buys_h1": self.buys_h1,
            "sells_h1": self.sells_h1,
            "created_at": _iso(self.created_at),
        }


class TokenAlert(Base):
    """Detection rule firing (currently only LIQUIDITY_DROP)."""

    __tablename__ = "token_alerts"

    id: Mapped[int] = mapped_column(primary_key=True)
    token_address: Mapped[str] = mapped_column(String(42))
    alert_type: Mapped[str] = mapped_column(String(40))
    severity: Mapped[str] = mapped_column(String(10))
    message: Mapped[str] = mapped_column(String(255))
    details: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, server_default=func.now()
    )

    __table_args__ = (Index("idx_token_alerts_token_time", "token_address", "created_at"),)

    def to_dict(self) -> dict[str, Any]:
        return {
            "token_address": self.token_address,
            "type": self.alert_type,
            "severity": self.severity,
            "message": self.message,
            "details": self.details,
            "created_at": _iso(self.created_at),
        }


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _dec(value: Decimal | None) -> str | None:
    return str(value) if value is not None else None
