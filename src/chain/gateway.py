"""BSC chain gateway: PairCreated feed, ERC-20 and pair reads, tx signing and submission.

Thin async wrapper over web3.py. Every method is a suspension point; callers
bound them with their own deadline (``asyncio.timeout_at``) or shutdown event.
"""

from __future__ import annotations

import time
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from eth_account.signers.local import LocalAccount
from loguru import logger
from web3 import AsyncWeb3, Web3
from web3.exceptions import TransactionNotFound, Web3Exception
from web3.providers import AsyncHTTPProvider, WebSocketProvider

from src.chain.constants import (
    DEAD_ADDRESS,
    FALLBACK_GAS_LIMIT,
    NON_DIAGNOSTIC_REVERTS,
    PAIR_CREATED_TOPIC,
    PANCAKE_FACTORY_V2,
    PANCAKE_ROUTER_V2,
    SEL_DECIMALS,
    SEL_GET_RESERVES,
    SEL_NAME,
    SEL_SYMBOL,
    SWAP_DEADLINE_SEC,
    WBNB,
)


@dataclass
class PairCreated:
    token0: str
    token1: str
    pair: str
    block_number: int = 0


@dataclass
class TxReceipt:
    tx_hash: str
    success: bool
    gas_used: int
    block_number: int


def _to_bytes(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        return bytes.fromhex(value[2:] if value.startswith("0x") else value)
    return bytes(value)


def _address_from_word(word: bytes) -> str:
    return Web3.to_checksum_address(word[-20:])


def decode_pair_created(log: Any) -> PairCreated | None:
    """Decode a PairCreated log; None if it is malformed."""
    topics = [_to_bytes(t) for t in log["topics"]]
    data = _to_bytes(log["data"])
    if len(topics) < 3 or len(data) < 32:
        return None
    block = log.get("blockNumber") or 0
    if isinstance(block, str):
        block = int(block, 16)
    return PairCreated(
        token0=_address_from_word(topics[1]),
        token1=_address_from_word(topics[2]),
        pair=_address_from_word(data[:32]),
        block_number=int(block),
    )


def target_token(event: PairCreated) -> str | None:
    """The non-WBNB side of the pair, or None if WBNB is not involved."""
    if event.token0 == WBNB:
        return event.token1
    if event.token1 == WBNB:
        return event.token0
    return None


def selector(signature: str) -> bytes:
    return Web3.keccak(text=signature)[:4]


def encode_call(signature: str, types: list[str], args: list[Any]) -> bytes:
    return selector(signature) + abi_encode(types, args)


def _decode_string(data: bytes) -> str:
    if not data:
        return ""
    try:
        return abi_decode(["string"], data)[0]
    except Exception:
        # Some old tokens return bytes32 instead of string
        return data[:32].rstrip(b"\x00").decode("utf-8", errors="ignore")


def encode_buy(token: str, recipient: str, amount_out_min: int, deadline: int) -> bytes:
    return encode_call(
        "swapExactETHForTokensSupportingFeeOnTransferTokens(uint256,address[],address,uint256)",
        ["uint256", "address[]", "address", "uint256"],
        [amount_out_min, [WBNB, token], recipient, deadline],
    )


def encode_sell(
    token: str, recipient: str, amount_in: int, amount_out_min: int, deadline: int
) -> bytes:
    return encode_call(
        "swapExactTokensForETHSupportingFeeOnTransferTokens(uint256,uint256,address[],address,uint256)",
        ["uint256", "uint256", "address[]", "address", "uint256"],
        [amount_in, amount_out_min, [token, WBNB], recipient, deadline],
    )


def encode_approve(spender: str, amount: int) -> bytes:
    return encode_call("approve(address,uint256)", ["address", "uint256"], [spender, amount])


def encode_balance_of(owner: str) -> bytes:
    return encode_call("balanceOf(address)", ["address"], [owner])


def swap_deadline() -> int:
    return int(time.time()) + SWAP_DEADLINE_SEC


class ChainGateway:
    """Async BSC access over HTTP (calls, logs, txs) and optional WebSocket (push)."""

    def __init__(self, rpc_url: str, ws_url: str = "", *, timeout: float = 15.0) -> None:
        self._ws_url = ws_url
        self.w3 = AsyncWeb3(AsyncHTTPProvider(rpc_url, request_kwargs={"timeout": timeout}))

    @property
    def has_push(self) -> bool:
        return bool(self._ws_url)

    async def close(self) -> None:
        await self.w3.provider.disconnect()

    # --- Discovery ------------------------------------------------------------

    async def block_number(self) -> int:
        return await self.w3.eth.block_number

    async def get_pair_created_logs(self, from_block: int, to_block: int) -> list[Any]:
        return await self.w3.eth.get_logs(
            {
                "fromBlock": from_block,
                "toBlock": to_block,
                "address": PANCAKE_FACTORY_V2,
                "topics": [PAIR_CREATED_TOPIC],
            }
        )

    async def subscribe_pair_created(self) -> AsyncIterator[Any]:
        """Yield raw PairCreated logs pushed over WebSocket until the socket closes."""
        async with AsyncWeb3(WebSocketProvider(self._ws_url)) as ws:
            sub_id = await ws.eth.subscribe(
                "logs", {"address": PANCAKE_FACTORY_V2, "topics": [PAIR_CREATED_TOPIC]}
            )
            logger.info(f"[CHAIN] Subscribed to PairCreated ({sub_id})")
            async for payload in ws.socket.process_subscriptions():
                yield payload["result"]

    # --- Reads ----------------------------------------------------------------

    async def _call(self, to: str, data: bytes | str) -> bytes:
        result = await self.w3.eth.call({"to": to, "data": data})
        return bytes(result)

    async def get_token_info(self, token: str) -> tuple[str, str, int]:
        """Best-effort (name, symbol, decimals); blank/18 on any failure."""
        token = Web3.to_checksum_address(token)
        name, symbol, decimals = "", "", 18
        try:
            name = _decode_string(await self._call(token, SEL_NAME))
        except (Web3Exception, ValueError) as e:
            logger.debug(f"[CHAIN] name() failed for {token}: {e}")
        try:
            symbol = _decode_string(await self._call(token, SEL_SYMBOL))
        except (Web3Exception, ValueError) as e:
            logger.debug(f"[CHAIN] symbol() failed for {token}: {e}")
        try:
            raw = await self._call(token, SEL_DECIMALS)
            if raw:
                decimals = int.from_bytes(raw[:32], "big")
        except (Web3Exception, ValueError) as e:
            logger.debug(f"[CHAIN] decimals() failed for {token}: {e}")
        return name, symbol, decimals

    async def get_token_decimals(self, token: str) -> int:
        _, _, decimals = await self.get_token_info(token)
        return decimals

    async def get_pair_reserves(self, pair: str) -> tuple[int, int]:
        data = await self._call(pair, SEL_GET_RESERVES)
        if len(data) < 64:
            return 0, 0
        return int.from_bytes(data[0:32], "big"), int.from_bytes(data[32:64], "big")

    async def get_native_balance(self, address: str) -> int:
        return await self.w3.eth.get_balance(Web3.to_checksum_address(address))

    async def get_token_balance(self, token: str, owner: str) -> int:
        data = await self._call(
            Web3.to_checksum_address(token), encode_balance_of(Web3.to_checksum_address(owner))
        )
        return int.from_bytes(data[:32], "big") if data else 0

    async def get_receipt(self, tx_hash: str) -> TxReceipt | None:
        try:
            receipt = await self.w3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return None
        if receipt is None:
            return None
        return TxReceipt(
            tx_hash=tx_hash,
            success=receipt["status"] == 1,
            gas_used=int(receipt["gasUsed"]),
            block_number=int(receipt["blockNumber"]),
        )

    async def simulate_sell(self, token: str, amount: int = 10**18) -> bool:
        """Simulate a sell through the router. Returns True if the token looks like a honeypot.

        Reverts that only reflect the simulator holding no tokens are ignored.
        """
        data = encode_sell(
            Web3.to_checksum_address(token), DEAD_ADDRESS, amount, 0, swap_deadline()
        )
        try:
            await self._call(PANCAKE_ROUTER_V2, data)
        except (Web3Exception, ValueError) as e:
            message = str(e).lower()
            if any(reason in message for reason in NON_DIAGNOSTIC_REVERTS):
                return False
            logger.debug(f"[CHAIN] Sell simulation reverted for {token}: {e}")
            return True
        return False

    # --- Writes ---------------------------------------------------------------

    async def send_transaction(
        self, account: LocalAccount, to: str, data: bytes, value: int = 0
    ) -> str:
        """Sign with ``account`` and broadcast. Returns the 0x tx hash."""
        to = Web3.to_checksum_address(to)
        nonce = await self.w3.eth.get_transaction_count(account.address, "pending")
        gas_price = await self.w3.eth.gas_price
        chain_id = await self.w3.eth.chain_id
        call = {"from": account.address, "to": to, "value": value, "data": data}
        try:
            gas = await self.w3.eth.estimate_gas(call)
        except (Web3Exception, ValueError) as e:
            logger.debug(f"[CHAIN] estimate_gas failed, using {FALLBACK_GAS_LIMIT}: {e}")
            gas = FALLBACK_GAS_LIMIT
        tx = {
            "to": to,
            "value": value,
            "data": data,
            "nonce": nonce,
            "gas": gas,
            "gasPrice": gas_price,
            "chainId": chain_id,
        }
        signed = account.sign_transaction(tx)
        tx_hash = await self.w3.eth.send_raw_transaction(signed.raw_transaction)
        return Web3.to_hex(tx_hash)
