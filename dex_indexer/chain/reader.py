from typing import Dict, List, Tuple
import logging

import backoff
from web3 import Web3
from web3.exceptions import BadFunctionCallOutput, ContractLogicError

from dex_indexer.chain.blocks import BlockClient
from dex_indexer.chain.client import get_web3_client
from dex_indexer.chain.events import fetch_logs
from dex_indexer.config.settings import (
    ERC20_ABI,
    FACTORY_ABI,
    POOL_ABI,
    POOL_CREATED_TOPIC,
    SWAP_TOPIC,
    Settings,
)

logger = logging.getLogger(__name__)


def _is_contract_error(exc: Exception) -> bool:
    # A revert or empty return is deterministic; retrying only burns time.
    return isinstance(exc, (ContractLogicError, BadFunctionCallOutput))


rpc_retry = backoff.on_exception(
    backoff.expo,
    Exception,
    max_tries=3,
    giveup=_is_contract_error,
    logger=logger,
)


class ChainReader:
    """
    All reads the indexer makes against the chain.

    Addresses come in lower-case (the store's canonical form) and are
    checksummed here before they reach web3. Every call goes through an
    HTTP provider with a request timeout and a short retry.
    """

    def __init__(
        self,
        w3: Web3,
        factory_address: str,
        rpc_url: str | None = None,
        timeout: float = 10,
        blocks_per_call: int = 2000,
    ):
        self.w3 = w3
        self.blocks_per_call = blocks_per_call
        self.factory_address = factory_address.lower()
        self.blocks = BlockClient(w3, rpc_url=rpc_url, timeout=timeout)
        self._factory = w3.eth.contract(address=Web3.to_checksum_address(factory_address), abi=FACTORY_ABI)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ChainReader":
        w3 = get_web3_client(settings.rpc_url, timeout=settings.rpc_timeout_seconds)
        return cls(
            w3,
            settings.factory_address,
            rpc_url=settings.rpc_url,
            timeout=settings.rpc_timeout_seconds,
            blocks_per_call=settings.blocks_per_call,
        )

    def _erc20(self, token: str):
        return self.w3.eth.contract(address=Web3.to_checksum_address(token), abi=ERC20_ABI)

    # ── blocks ─────────────────────────────────────────────────────────
    def latest_block(self) -> int:
        return self.blocks.get_latest_block()

    def block_timestamps(self, block_numbers) -> Dict[int, int]:
        return self.blocks.get_block_timestamps(block_numbers)

    # ── factory ────────────────────────────────────────────────────────
    @rpc_retry
    def factory_pool_count(self) -> int:
        return int(self._factory.functions.allPoolsLength().call())

    @rpc_retry
    def factory_pool_at(self, index: int) -> str:
        return self._factory.functions.allPools(index).call()

    def _walk_logs(self, address: str, from_block: int, to_block: int, topic: str) -> List[dict]:
        logs: List[dict] = []
        for start, end in self.blocks.walk_block_ranges(from_block, to_block, self.blocks_per_call):
            logs.extend(fetch_logs(self.w3, address, start, end, [topic]))
        return logs

    def pool_created_logs(self, from_block: int, to_block: int) -> List[dict]:
        return self._walk_logs(self.factory_address, from_block, to_block, POOL_CREATED_TOPIC)

    # ── pools ──────────────────────────────────────────────────────────
    @rpc_retry
    def pool_tokens(self, pool: str) -> Tuple[str, str]:
        contract = self.w3.eth.contract(address=Web3.to_checksum_address(pool), abi=POOL_ABI)
        return contract.functions.tokenA().call(), contract.functions.tokenB().call()

    def swap_logs(self, pool: str, from_block: int, to_block: int) -> List[dict]:
        return self._walk_logs(pool, from_block, to_block, SWAP_TOPIC)

    # ── tokens ─────────────────────────────────────────────────────────
    @rpc_retry
    def token_symbol(self, token: str) -> str:
        return self._erc20(token).functions.symbol().call()

    @rpc_retry
    def token_decimals(self, token: str) -> int:
        return int(self._erc20(token).functions.decimals().call())

    @rpc_retry
    def balance_of(self, token: str, holder: str) -> int:
        """ERC-20 balance of `holder`. The only source of pool reserves."""
        return int(self._erc20(token).functions.balanceOf(Web3.to_checksum_address(holder)).call())
