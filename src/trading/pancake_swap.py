"""PancakeSwap V2 swap execution: approve, swap, wait for receipt.

BUY   swapExactETHForTokensSupportingFeeOnTransferTokens  (path WBNB → token)
SELL  approve(router, 2 × amount), best-effort
      swapExactTokensForETHSupportingFeeOnTransferTokens  (path token → WBNB)

Swaps carry a now+2min on-chain deadline. Receipt polling has no timeout of
its own; the caller bounds it with the request deadline.
"""

import asyncio

from eth_account.signers.local import LocalAccount
from loguru import logger
from web3 import Web3

from src.chain.constants import PANCAKE_ROUTER_V2
from src.chain.gateway import (
    ChainGateway,
    TxReceipt,
    encode_approve,
    encode_buy,
    encode_sell,
    swap_deadline,
)

CONFIRM_POLL_INTERVAL = 2.0  # seconds


class PancakeSwapper:
    def __init__(self, gateway: ChainGateway, *, poll_interval: float = CONFIRM_POLL_INTERVAL) -> None:
        self._gateway = gateway
        self._poll_interval = poll_interval

    async def buy(self, account: LocalAccount, token: str, amount_wei: int, amount_out_min: int) -> str:
        data = encode_buy(
            Web3.to_checksum_address(token), account.address, amount_out_min, swap_deadline()
        )
        tx_hash = await self._gateway.send_transaction(account, PANCAKE_ROUTER_V2, data, value=amount_wei)
        logger.info(f"[TRADE] BUY sent {tx_hash[:18]} ({amount_wei} wei → {token})")
        return tx_hash

    async def approve(self, account: LocalAccount, token: str, amount: int) -> str | None:
        """Approve the router for ``amount``. Failures are logged; the swap may still succeed."""
        try:
            tx_hash = await self._gateway.send_transaction(
                account, token, encode_approve(PANCAKE_ROUTER_V2, amount)
            )
        except Exception as e:
            logger.warning(f"[TRADE] approve failed for {token}: {e}")
            return None
        logger.debug(f"[TRADE] approve sent {tx_hash[:18]}")
        return tx_hash

    async def sell(self, account: LocalAccount, token: str, amount: int, amount_out_min: int) -> str:
        await self.approve(account, token, amount * 2)
        data = encode_sell(
            Web3.to_checksum_address(token), account.address, amount, amount_out_min, swap_deadline()
        )
        tx_hash = await self._gateway.send_transaction(account, PANCAKE_ROUTER_V2, data)
        logger.info(f"[TRADE] SELL sent {tx_hash[:18]} ({amount} units of {token})")
        return tx_hash

    async def wait_for_receipt(self, tx_hash: str) -> TxReceipt:
        """Poll until mined. Transient RPC errors are logged and polled through."""
        while True:
            try:
                receipt = await self._gateway.get_receipt(tx_hash)
            except Exception as e:
                logger.debug(f"[TRADE] receipt poll failed for {tx_hash[:18]}: {e}")
                receipt = None
            if receipt is not None:
                return receipt
            await asyncio.sleep(self._poll_interval)
