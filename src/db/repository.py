"""Repository for every read and write the radar and trade engine perform.

Each method opens its own short session from the injected factory and commits
before returning, so callers never hold a session across network awaits.
Returned ORM objects are detached (``expire_on_commit=False``).
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from loguru import logger
from sqlalchemy import desc, func, or_, select, text, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.models.base import utcnow
from src.models.token import (
    MAX_INLINE_ALERTS,
    STATUS_ANALYZED,
    STATUS_ENRICH_FAILED,
    STATUS_ENRICHED,
    STATUS_ENRICHING,
    Token,
    TokenAlert,
    TokenMarketSnapshot,
)
from src.models.trade import AIPosition, AITrade
from src.models.wallet import ManagedWallet, WalletConfig

ENRICH_ERROR_MAX = 512


def _sanitize(val: str | None) -> str:
    """Strip null bytes and control chars that PostgreSQL rejects."""
    if val is None:
        return ""
    return val.replace("\x00", "").strip()


def trim_error(message: str) -> str:
    message = message.strip()
    if len(message) > ENRICH_ERROR_MAX:
        return message[:ENRICH_ERROR_MAX]
    return message


class Repository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._sf = session_factory

    async def ping(self) -> bool:
        async with self._sf() as session:
            await session.execute(text("SELECT 1"))
        return True

    # --- Tokens --------------------------------------------------------------

    async def token_exists(self, address: str) -> bool:
        async with self._sf() as session:
            result = await session.execute(
                select(func.count()).select_from(Token).where(Token.address == address)
            )
            return result.scalar_one() > 0

    async def create_token(self, token: Token) -> Token | None:
        """Insert a new token. Returns None if the address was already stored."""
        token.name = _sanitize(token.name)
        token.symbol = _sanitize(token.symbol)
        async with self._sf() as session:
            session.add(token)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                logger.debug(f"[DB] Token {token.address} already exists")
                return None
            return token

    async def get_token(self, address: str) -> Token | None:
        async with self._sf() as session:
            result = await session.execute(select(Token).where(Token.address == address))
            return result.scalar_one_or_none()

    async def update_token(self, address: str, **values: Any) -> None:
        values.setdefault("updated_at", utcnow())
        async with self._sf() as session:
            await session.execute(update(Token).where(Token.address == address).values(**values))
            await session.commit()

    async def mark_enriching(self, address: str) -> None:
        """Enter ``enriching``: clear the last error and bump the attempt counter."""
        async with self._sf() as session:
            await session.execute(
                update(Token)
                .where(Token.address == address)
                .values(
                    analysis_status=STATUS_ENRICHING,
                    enrich_error="",
                    enrich_attempts=Token.enrich_attempts + 1,
                    updated_at=utcnow(),
                )
            )
            await session.commit()

    async def set_enrich_error(self, address: str, message: str) -> None:
        await self.update_token(address, enrich_error=trim_error(message))

    async def mark_enrich_failed(self, address: str, message: str) -> None:
        await self.update_token(
            address,
            analysis_status=STATUS_ENRICH_FAILED,
            enrich_error=trim_error(message),
        )

    async def list_tokens_by_status(self, status: str, limit: int) -> list[Token]:
        async with self._sf() as session:
            result = await session.execute(
                select(Token)
                .where(Token.analysis_status == status)
                .order_by(Token.created_at.asc())
                .limit(limit)
            )
            return list(result.scalars().all())

    async def list_stale_enriching(self, before: datetime, limit: int) -> list[Token]:
        async with self._sf() as session:
            result = await session.execute(
                select(Token)
                .where(Token.analysis_status == STATUS_ENRICHING, Token.updated_at < before)
                .order_by(Token.updated_at.asc())
                .limit(limit)
            )
            return list(result.scalars().all())

    async def list_tokens_for_refresh(
        self, refreshed_before: datetime, created_since: datetime, limit: int
    ) -> list[Token]:
        async with self._sf() as session:
            result = await session.execute(
                select(Token)
                .where(
                    Token.created_at >= created_since,
                    Token.pair_address != "",
                    or_(
                        Token.last_market_refresh_at.is_(None),
                        Token.last_market_refresh_at < refreshed_before,
                    ),
                )
                .order_by(Token.created_at.desc())
                .limit(limit)
            )
            return list(result.scalars().all())

    async def list_tokens(
        self, *, status: str = "", limit: int = 50, offset: int = 0
    ) -> list[Token]:
        query = select(Token)
        if status:
            query = query.where(Token.analysis_status == status)
        query = query.order_by(desc(Token.created_at)).offset(offset).limit(limit)
        async with self._sf() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def list_pending_analysis(self, limit: int) -> list[Token]:
        """Enriched tokens still waiting for an external analysis verdict."""
        return await self.list_tokens(status=STATUS_ENRICHED, limit=limit)

    async def list_golden_dogs(self, fetch_limit: int) -> list[Token]:
        async with self._sf() as session:
            result = await session.execute(
                select(Token)
                .where(Token.analysis_status == STATUS_ANALYZED, Token.is_golden_dog.is_(True))
                .order_by(desc(Token.analyzed_at))
                .limit(fetch_limit)
            )
            return list(result.scalars().all())

    async def save_analysis(self, address: str, **values: Any) -> bool:
        values["analysis_status"] = STATUS_ANALYZED
        values.setdefault("analyzed_at", utcnow())
        values["updated_at"] = utcnow()
        async with self._sf() as session:
            result = await session.execute(
                update(Token).where(Token.address == address).values(**values)
            )
            await session.commit()
            return result.rowcount > 0

    async def save_enrichment(self, address: str, **values: Any) -> None:
        now = utcnow()
        values["analysis_status"] = STATUS_ENRICHED
        values["enrich_error"] = ""
        values.setdefault("enriched_at", now)
        values.setdefault("last_market_refresh_at", now)
        await self.update_token(address, **values)

    # --- Market snapshots & alerts -------------------------------------------

    async def get_latest_snapshot(self, token_address: str) -> TokenMarketSnapshot | None:
        async with self._sf() as session:
            result = await session.execute(
                select(TokenMarketSnapshot)
                .where(TokenMarketSnapshot.token_address == token_address)
                .order_by(desc(TokenMarketSnapshot.created_at), desc(TokenMarketSnapshot.id))
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def add_snapshot(self, snapshot: TokenMarketSnapshot) -> TokenMarketSnapshot:
        async with self._sf() as session:
            session.add(snapshot)
            await session.commit()
            return snapshot

    async def list_snapshots(self, token_address: str, limit: int = 100) -> list[TokenMarketSnapshot]:
        async with self._sf() as session:
            result = await session.execute(
                select(TokenMarketSnapshot)
                .where(TokenMarketSnapshot.token_address == token_address)
                .order_by(desc(TokenMarketSnapshot.created_at), desc(TokenMarketSnapshot.id))
                .limit(limit)
            )
            return list(result.scalars().all())

    async def record_alert(self, alert: TokenAlert, inline: dict[str, Any]) -> None:
        """Persist the alert and append ``inline`` to the token's capped alert list."""
        async with self._sf() as session:
            session.add(alert)
            token = (
                await session.execute(select(Token).where(Token.address == alert.token_address))
            ).scalar_one_or_none()
            if token is not None:
                history = list(token.market_alerts or [])
                history.append(inline)
                token.market_alerts = history[-MAX_INLINE_ALERTS:]
            await session.commit()

    async def list_alerts(self, token_address: str, limit: int = 50) -> list[TokenAlert]:
        async with self._sf() as session:
            result = await session.execute(
                select(TokenAlert)
                .where(TokenAlert.token_address == token_address)
                .order_by(desc(TokenAlert.created_at), desc(TokenAlert.id))
                .limit(limit)
            )
            return list(result.scalars().all())

    # --- Wallets & policy ----------------------------------------------------

    async def get_wallet(self, user_id: str) -> ManagedWallet | None:
        async with self._sf() as session:
            result = await session.execute(
                select(ManagedWallet).where(ManagedWallet.user_id == user_id)
            )
            return result.scalar_one_or_none()

    async def create_wallet(self, wallet: ManagedWallet) -> ManagedWallet | None:
        async with self._sf() as session:
            session.add(wallet)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                return None
            return wallet

    async def update_wallet_balance(self, wallet_id: int, balance: Decimal) -> None:
        async with self._sf() as session:
            await session.execute(
                update(ManagedWallet)
                .where(ManagedWallet.id == wallet_id)
                .values(balance=balance, updated_at=utcnow())
            )
            await session.commit()

    async def get_wallet_config(self, user_id: str) -> dict[str, Any] | None:
        async with self._sf() as session:
            result = await session.execute(
                select(WalletConfig).where(WalletConfig.user_id == user_id)
            )
            record = result.scalar_one_or_none()
            return dict(record.config) if record is not None else None

    async def upsert_wallet_config(self, user_id: str, config: dict[str, Any]) -> None:
        async with self._sf() as session:
            result = await session.execute(
                select(WalletConfig).where(WalletConfig.user_id == user_id)
            )
            record = result.scalar_one_or_none()
            if record is None:
                session.add(WalletConfig(user_id=user_id, config=config))
            else:
                record.config = config
                record.updated_at = utcnow()
            await session.commit()

    # --- Trades & positions --------------------------------------------------

    async def create_ai_trade(self, trade: AITrade) -> AITrade:
        async with self._sf() as session:
            session.add(trade)
            await session.commit()
            return trade

    async def list_ai_trades_since(self, user_id: str, since: datetime) -> list[AITrade]:
        async with self._sf() as session:
            result = await session.execute(
                select(AITrade).where(AITrade.user_id == user_id, AITrade.created_at >= since)
            )
            return list(result.scalars().all())

    async def list_ai_trades(self, *, user_id: str = "", limit: int = 100) -> list[AITrade]:
        query = select(AITrade)
        if user_id:
            query = query.where(AITrade.user_id == user_id)
        query = query.order_by(desc(AITrade.created_at), desc(AITrade.id)).limit(limit)
        async with self._sf() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def get_position(self, user_id: str, token_address: str) -> AIPosition | None:
        async with self._sf() as session:
            result = await session.execute(
                select(AIPosition).where(
                    AIPosition.user_id == user_id, AIPosition.token_address == token_address
                )
            )
            return result.scalar_one_or_none()

    async def save_position(
        self,
        user_id: str,
        token_address: str,
        *,
        quantity: Decimal,
        cost_bnb: Decimal,
        token_symbol: str | None = None,
    ) -> None:
        async with self._sf() as session:
            result = await session.execute(
                select(AIPosition).where(
                    AIPosition.user_id == user_id, AIPosition.token_address == token_address
                )
            )
            position = result.scalar_one_or_none()
            if position is None:
                position = AIPosition(
                    user_id=user_id,
                    token_address=token_address,
                    token_symbol=token_symbol or "",
                )
                session.add(position)
            elif token_symbol:
                position.token_symbol = token_symbol
            position.quantity = quantity
            position.cost_bnb = cost_bnb
            position.updated_at = utcnow()
            await session.commit()

    async def list_positions(self, user_id: str) -> list[AIPosition]:
        async with self._sf() as session:
            result = await session.execute(
                select(AIPosition)
                .where(AIPosition.user_id == user_id)
                .order_by(desc(AIPosition.updated_at))
            )
            return list(result.scalars().all())
