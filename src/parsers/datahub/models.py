"""Data hub payloads: wire records (as served) and the normalized views stored on tokens."""

from decimal import Decimal, InvalidOperation
from typing import Any

from pydantic import BaseModel, Field, field_validator

# --- Value parsers ------------------------------------------------------------


def parse_binary_flag(val: Any) -> bool:
    """Parse '1'/'true'/'yes' (any case) to True; everything else is False."""
    if val is None:
        return False
    return str(val).strip().lower() in ("1", "true", "yes")


def parse_plain_number(val: Any) -> Decimal:
    """Parse a non-negative number, tolerating a trailing '%'. Garbage → 0."""
    if val is None:
        return Decimal(0)
    clean = str(val).strip().removesuffix("%").strip()
    if not clean:
        return Decimal(0)
    try:
        num = Decimal(clean)
    except InvalidOperation:
        return Decimal(0)
    if not num.is_finite() or num < 0:
        return Decimal(0)
    return num


def parse_percent(val: Any) -> Decimal:
    """Parse a tax/percent value to a fraction in [0, 1].

    Values above 1 are read as percentages ("5" → 0.05), then capped at 1.
    """
    num = parse_plain_number(val)
    if num > 1:
        num = num / 100
    return min(num, Decimal(1))


# --- Security scan ------------------------------------------------------------

_SECURITY_FIELDS = (
    "is_honeypot",
    "buy_tax",
    "sell_tax",
    "is_mintable",
    "can_take_back_ownership",
    "is_proxy",
    "is_open_source",
    "holder_count",
    "lp_holder_count",
    "creator_address",
    "owner_address",
    "total_supply",
)


class SecurityReport(BaseModel):
    """GoPlus-style security scan. Every flag arrives as a string ('0'/'1')."""

    is_honeypot: str = ""
    buy_tax: str = ""
    sell_tax: str = ""
    is_mintable: str = ""
    can_take_back_ownership: str = ""
    is_proxy: str = ""
    is_open_source: str = ""
    holder_count: str = ""
    lp_holder_count: str = ""
    creator_address: str = ""
    owner_address: str = ""
    total_supply: str = ""
    raw: dict[str, Any] | None = None

    model_config = {"extra": "ignore"}

    @field_validator(*_SECURITY_FIELDS, mode="before")
    @classmethod
    def _stringify(cls, v: Any) -> str:
        return "" if v is None else str(v)

    def normalize(self) -> "NormalizedSecurity":
        return NormalizedSecurity(
            is_honeypot=parse_binary_flag(self.is_honeypot),
            buy_tax=parse_percent(self.buy_tax),
            sell_tax=parse_percent(self.sell_tax),
            is_mintable=parse_binary_flag(self.is_mintable),
            can_take_back_ownership=parse_binary_flag(self.can_take_back_ownership),
            is_proxy=parse_binary_flag(self.is_proxy),
            is_open_source=parse_binary_flag(self.is_open_source),
            holder_count=int(parse_plain_number(self.holder_count)),
            lp_holder_count=int(parse_plain_number(self.lp_holder_count)),
            creator_address=self.creator_address.strip(),
            owner_address=self.owner_address.strip(),
            total_supply=self.total_supply.strip(),
        )


class NormalizedSecurity(BaseModel):
    is_honeypot: bool = False
    buy_tax: Decimal = Decimal(0)
    sell_tax: Decimal = Decimal(0)
    is_mintable: bool = False
    can_take_back_ownership: bool = False
    is_proxy: bool = False
    is_open_source: bool = False
    holder_count: int = 0
    lp_holder_count: int = 0
    creator_address: str = ""
    owner_address: str = ""
    total_supply: str = ""
    top10_holder_share: Decimal | None = None


# --- Market pair (DexScreener shape) -------------------------------------------


class PeriodValues(BaseModel):
    m5: Decimal | None = None
    h1: Decimal | None = None
    h6: Decimal | None = None
    h24: Decimal | None = None

    model_config = {"extra": "ignore"}


class PairLiquidity(BaseModel):
    usd: Decimal | None = None
    base: Decimal | None = None
    quote: Decimal | None = None

    model_config = {"extra": "ignore"}


class PairTxns(BaseModel):
    buys: int | None = None
    sells: int | None = None

    model_config = {"extra": "ignore"}


class PairTxnsByPeriod(BaseModel):
    m5: PairTxns | None = None
    h1: PairTxns | None = None
    h6: PairTxns | None = None
    h24: PairTxns | None = None

    model_config = {"extra": "ignore"}


class MarketPair(BaseModel):
    pairAddress: str = ""
    priceUsd: str | None = None
    priceChange: PeriodValues | None = None
    volume: PeriodValues | None = None
    liquidity: PairLiquidity | None = None
    txns: PairTxnsByPeriod | None = None
    raw: dict[str, Any] = Field(default_factory=dict)

    model_config = {"extra": "ignore"}

    @property
    def price_usd(self) -> Decimal | None:
        if not self.priceUsd:
            return None
        num = parse_plain_number(self.priceUsd)
        return num if num > 0 else None

    @property
    def liquidity_usd(self) -> Decimal:
        if self.liquidity and self.liquidity.usd is not None:
            return self.liquidity.usd
        return Decimal(0)

    @property
    def volume_h1(self) -> Decimal:
        if self.volume and self.volume.h1 is not None:
            return self.volume.h1
        return Decimal(0)

    def txns_h1(self) -> tuple[int, int]:
        if self.txns and self.txns.h1:
            return self.txns.h1.buys or 0, self.txns.h1.sells or 0
        return 0, 0

    def normalize(self) -> dict[str, Any]:
        """JSON-ready market view with the raw payload kept for audit."""

        def _periods(values: PeriodValues | None) -> dict[str, str]:
            values = values or PeriodValues()
            return {k: str(getattr(values, k) or 0) for k in ("m5", "h1", "h6", "h24")}

        def _txns(period: str) -> dict[str, int]:
            bucket = getattr(self.txns, period, None) if self.txns else None
            return {
                "buys": (bucket.buys or 0) if bucket else 0,
                "sells": (bucket.sells or 0) if bucket else 0,
            }

        return {
            "raw": self.raw,
            "priceUsd": self.priceUsd or "",
            "priceChange": _periods(self.priceChange),
            "volume": _periods(self.volume),
            "txns": {p: _txns(p) for p in ("m5", "h1", "h24")},
            "liquidity": {"usd": str(self.liquidity_usd)},
        }


# --- Holders / creator ----------------------------------------------------------


class HolderDistribution(BaseModel):
    topHolders: list[dict[str, Any]] = Field(default_factory=list)
    top10Share: Decimal = Decimal(0)
    total: int = 0
    source: str = ""

    model_config = {"extra": "ignore"}


class CreatorHistory(BaseModel):
    creatorAddress: str = ""
    contractAddress: str = ""
    creationTxHash: str = ""
    createdContracts: list[str] = Field(default_factory=list)
    recentTxs: list[dict[str, Any]] = Field(default_factory=list)
    source: str = ""

    model_config = {"extra": "ignore"}
