"""Managed BSC wallets: one per user, key generated here and stored encrypted.

Only the address is ever shown in logs and responses.
"""

from decimal import Decimal

from eth_account import Account
from loguru import logger

from src.chain.constants import NATIVE_DECIMALS
from src.chain.gateway import ChainGateway
from src.db.repository import Repository
from src.models.wallet import ManagedWallet
from src.trading.amounts import from_units
from src.trading.custody import KeyCustody
from src.trading.errors import ChainUnavailableError, WalletExistsError, WalletNotFoundError

DEFAULT_MAX_BALANCE = Decimal(5)


class WalletService:
    def __init__(
        self,
        repo: Repository,
        custody: KeyCustody,
        gateway: ChainGateway | None = None,
        *,
        default_max_balance: Decimal = DEFAULT_MAX_BALANCE,
    ) -> None:
        self._repo = repo
        self._custody = custody
        self._gateway = gateway
        self._default_max_balance = default_max_balance

    async def create_wallet(self, user_id: str) -> ManagedWallet:
        if await self._repo.get_wallet(user_id) is not None:
            raise WalletExistsError("wallet already exists")

        account = Account.create()
        encrypted = self._custody.encrypt(bytes(account.key))
        wallet = ManagedWallet(
            user_id=user_id,
            address=account.address,
            encrypted_key=encrypted,
            balance=Decimal(0),
            max_balance=self._default_max_balance,
        )
        created = await self._repo.create_wallet(wallet)
        if created is None:
            raise WalletExistsError("wallet already exists")
        logger.info(f"[WALLET] Created wallet {created.address} for user {user_id}")
        return created

    async def get_wallet(self, user_id: str) -> ManagedWallet:
        wallet = await self._repo.get_wallet(user_id)
        if wallet is None:
            raise WalletNotFoundError("wallet not found")
        return wallet

    async def refresh_balance(self, user_id: str) -> ManagedWallet:
        """Re-read the on-chain BNB balance and store it on the wallet row."""
        wallet = await self.get_wallet(user_id)
        if self._gateway is None:
            return wallet
        try:
            wei = await self._gateway.get_native_balance(wallet.address)
        except Exception as e:
            logger.warning(f"[WALLET] Balance read failed for {wallet.address}: {e}")
            raise ChainUnavailableError("failed to get balance") from e
        wallet.balance = from_units(wei, NATIVE_DECIMALS)
        await self._repo.update_wallet_balance(wallet.id, wallet.balance)
        return wallet
