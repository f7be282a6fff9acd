from src.models.base import Base
from src.models.token import Token, TokenAlert, TokenMarketSnapshot
from src.models.trade import AIPosition, AITrade
from src.models.wallet import ManagedWallet, WalletConfig

__all__ = [
    "Base",
    "Token",
    "TokenMarketSnapshot",
    "TokenAlert",
    "ManagedWallet",
    "WalletConfig",
    "AITrade",
    "AIPosition",
]
