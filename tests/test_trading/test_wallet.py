"""Tests for WalletService: creation, lookup, on-chain balance refresh."""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from web3 import Web3

from src.trading.custody import KeyCustody, MissingMasterKeyError
from src.trading.errors import ChainUnavailableError, WalletExistsError, WalletNotFoundError
from src.trading.wallet import WalletService

MASTER = "test-master-key"


def _service(repo, gateway=None, master=MASTER) -> WalletService:
    return WalletService(repo, KeyCustody(master), gateway, default_max_balance=Decimal(5))


class TestCreateWallet:
    @pytest.mark.asyncio
    async def test_creates_encrypted_wallet(self, repo):
        wallet = await _service(repo).create_wallet("user-1")

        assert Web3.is_checksum_address(wallet.address)
        assert wallet.balance == 0
        assert wallet.max_balance == Decimal(5)
        with KeyCustody(MASTER).signing_account(wallet.encrypted_key) as account:
            assert account.address == wallet.address

    @pytest.mark.asyncio
    async def test_response_never_contains_key(self, repo):
        wallet = await _service(repo).create_wallet("user-1")
        payload = wallet.to_dict()
        assert "encrypted_key" not in payload
        assert wallet.encrypted_key not in repr(wallet)

    @pytest.mark.asyncio
    async def test_one_wallet_per_user(self, repo):
        service = _service(repo)
        await service.create_wallet("user-1")
        with pytest.raises(WalletExistsError, match="wallet already exists"):
            await service.create_wallet("user-1")

    @pytest.mark.asyncio
    async def test_missing_master_key(self, repo):
        with pytest.raises(MissingMasterKeyError):
            await _service(repo, master="").create_wallet("user-1")
        assert await repo.get_wallet("user-1") is None


class TestGetWallet:
    @pytest.mark.asyncio
    async def test_not_found(self, repo):
        with pytest.raises(WalletNotFoundError, match="wallet not found"):
            await _service(repo).get_wallet("nobody")


class TestRefreshBalance:
    @pytest.mark.asyncio
    async def test_reads_chain_and_persists(self, repo):
        gateway = MagicMock()
        gateway.get_native_balance = AsyncMock(return_value=15 * 10**17)
        service = _service(repo, gateway)
        created = await service.create_wallet("user-1")

        wallet = await service.refresh_balance("user-1")

        assert wallet.balance == Decimal("1.5")
        gateway.get_native_balance.assert_awaited_once_with(created.address)
        assert (await repo.get_wallet("user-1")).balance == Decimal("1.5")

    @pytest.mark.asyncio
    async def test_chain_failure(self, repo):
        gateway = MagicMock()
        gateway.get_native_balance = AsyncMock(side_effect=ConnectionError("rpc down"))
        service = _service(repo, gateway)
        await service.create_wallet("user-1")

        with pytest.raises(ChainUnavailableError, match="failed to get balance"):
            await service.refresh_balance("user-1")
