"""Amount parsing between user-facing decimal strings and on-chain integer units.

All arithmetic is Decimal/int; nothing round-trips through float.
"""

from decimal import Decimal, InvalidOperation, localcontext

from src.chain.constants import NATIVE_DECIMALS
from src.trading.errors import TradeValidationError

FULL_BALANCE_TOKENS = ("ALL", "100%")


def _parse_decimal(text: str) -> Decimal:
    try:
        value = Decimal(text.strip())
    except (InvalidOperation, AttributeError) as e:
        raise TradeValidationError("invalid amountIn") from e
    if not value.is_finite():
        raise TradeValidationError("invalid amountIn")
    return value


def to_units(value: Decimal, decimals: int) -> int:
    """Decimal amount → integer minor units (truncating beyond ``decimals``)."""
    return int(value.scaleb(decimals))


def from_units(units: int, decimals: int) -> Decimal:
    return Decimal(units).scaleb(-decimals)


def parse_native_amount(text: str) -> int:
    """BUY amount: a positive BNB decimal string → wei."""
    value = _parse_decimal(text)
    wei = to_units(value, NATIVE_DECIMALS)
    if wei <= 0:
        raise TradeValidationError("invalid amountIn")
    return wei


def parse_token_amount(text: str, decimals: int) -> int:
    value = _parse_decimal(text)
    units = to_units(value, decimals)
    if units <= 0:
        raise TradeValidationError("invalid amountIn")
    return units


def parse_optional_min_out(text: str, decimals: int) -> int:
    """Slippage floor; blank means no floor."""
    if not text or not text.strip():
        return 0
    value = _parse_decimal(text)
    return max(0, to_units(value, decimals))


def parse_ratio(text: str) -> Decimal | None:
    """Parse '0.5' or '50%' to a fraction in (0, 1]. Anything else → None."""
    clean = (text or "").strip()
    if not clean:
        return None
    is_percent = clean.endswith("%")
    try:
        ratio = Decimal(clean.removesuffix("%").strip())
    except InvalidOperation:
        return None
    if not ratio.is_finite():
        return None
    if is_percent:
        ratio = ratio / 100
    if ratio <= 0 or ratio > 1:
        return None
    return ratio


def apply_ratio(units: int, ratio: Decimal) -> int:
    with localcontext() as ctx:
        ctx.prec = 80
        return int(Decimal(units) * ratio)


def resolve_sell_amount(text: str, token_balance: int, decimals: int) -> int:
    """SELL amount in token units.

    - "ALL" / "100%"            → full balance
    - ratio in (0, 1] or "N%"   → that fraction of the balance
    - positive whole number     → explicit token amount
    A percentage outside (0, 100%] or a fraction above 1 ("1.5") is an
    out-of-range ratio and is rejected.
    """
    clean = (text or "").strip()
    if clean.upper() in FULL_BALANCE_TOKENS:
        return token_balance
    ratio = parse_ratio(clean)
    if ratio is not None:
        return apply_ratio(token_balance, ratio)
    if clean.endswith("%"):
        raise TradeValidationError("invalid amountIn")
    value = _parse_decimal(clean)
    if value != value.to_integral_value():
        raise TradeValidationError("invalid amountIn")
    return parse_token_amount(clean, decimals)
