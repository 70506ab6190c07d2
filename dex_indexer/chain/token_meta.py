from typing import Dict, Mapping
import logging

from dex_indexer.utils.clean_util import clean_symbol
from dex_indexer.utils.types import TokenInfo

logger = logging.getLogger(__name__)

DEFAULT_DECIMALS = 18


def pseudo_symbol(token_addr: str) -> str:
    """Stand-in symbol for tokens whose symbol() cannot be read: `0x1234...`."""
    return token_addr[:6] + "..."


class TokenMetaCache:
    """
    Read-through cache of token symbol / decimals.

    Lookup order: cache → static known-token table → token contract. A token's
    metadata never changes, so an entry is never refreshed once stored.
    Unreadable metadata is never fatal: decimals fall back to 18 and the
    symbol to a truncated address.
    """

    def __init__(self, chain, known_tokens: Mapping[str, Mapping] | None = None):
        self.chain = chain
        self._cache: Dict[str, TokenInfo] = {}
        for addr, meta in (known_tokens or {}).items():
            addr = addr.lower()
            self._cache[addr] = TokenInfo(addr, str(meta["symbol"]), int(meta.get("decimals", DEFAULT_DECIMALS)))

    def get(self, token_addr: str) -> TokenInfo:
        addr = token_addr.lower()
        if addr in self._cache:
            return self._cache[addr]
        info, complete = self._fetch(addr)
        # Fallbacks are not cached so a transient RPC failure doesn't pin 18 decimals forever.
        if complete:
            self._cache[addr] = info
        return info

    def _fetch(self, addr: str) -> tuple[TokenInfo, bool]:
        complete = True
        try:
            symbol = clean_symbol(self.chain.token_symbol(addr)) or pseudo_symbol(addr)
        except Exception as e:
            logger.warning("symbol() unreadable for %s, using pseudo-symbol: %s", addr, e)
            symbol = pseudo_symbol(addr)
            complete = False

        try:
            decimals = int(self.chain.token_decimals(addr))
        except Exception as e:
            logger.warning("decimals() unreadable for %s, assuming %d: %s", addr, DEFAULT_DECIMALS, e)
            decimals = DEFAULT_DECIMALS
            complete = False

        logger.debug("Token %s: symbol=%s decimals=%d", addr, symbol, decimals)
        return TokenInfo(addr, symbol, decimals), complete
