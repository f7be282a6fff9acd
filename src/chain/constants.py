"""PancakeSwap V2 / BSC addresses and raw ERC-20 selectors."""

from web3 import Web3

PANCAKE_FACTORY_V2 = Web3.to_checksum_address("0xcA143Ce32Fe78f1f7019d7d551a6402fC5350c73")
PANCAKE_ROUTER_V2 = Web3.to_checksum_address("0x10ED43C718714eb63d5aA57B78B54704E256024E")
WBNB = Web3.to_checksum_address("0xbb4CdB9CBd36B01bD1cBaEBF2De08d9173bc095c")
DEAD_ADDRESS = Web3.to_checksum_address("0x000000000000000000000000000000000000dEaD")

PAIR_CREATED_TOPIC = "0x0d3648bd0f6ba80134a33ba9275ac585d9d315f0ad8355cddefde31afa28d0e9"

# 4-byte selectors
SEL_NAME = "0x06fdde03"
SEL_SYMBOL = "0x95d89b41"
SEL_DECIMALS = "0x313ce567"
SEL_GET_RESERVES = "0x0902f1ac"

NATIVE_DECIMALS = 18
WEI_PER_BNB = 10**NATIVE_DECIMALS

FALLBACK_GAS_LIMIT = 400_000
SWAP_DEADLINE_SEC = 120

# Revert reasons from a simulated sell that only mean "the simulator holds no tokens"
NON_DIAGNOSTIC_REVERTS = (
    "insufficient allowance",
    "transfer amount exceeds balance",
    "insufficient balance",
    "erc20: transfer amount exceeds balance",
)
