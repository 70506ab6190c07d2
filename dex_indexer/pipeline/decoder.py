# decoder.py
# --------------------------------------------------------------
# Decode pool Swap events:
#   Swap(address indexed sender,
#        uint256 amountAIn, uint256 amountBIn,
#        uint256 amountAOut, uint256 amountBOut,
#        address indexed to)
# --------------------------------------------------------------
from datetime import datetime, timezone
from typing import Dict, Optional
import logging

from eth_abi import decode
from eth_abi.exceptions import DecodingError

from dex_indexer.utils.types import PoolRef, SwapRecord

logger = logging.getLogger(__name__)


def _tx_hash(value) -> str:
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    return str(value).lower()


def decode_swap_amounts(log: dict) -> tuple[int, int, int, int]:
    amount_a_in, amount_b_in, amount_a_out, amount_b_out = decode(["uint256"] * 4, bytes(log["data"]))
    return amount_a_in, amount_b_in, amount_a_out, amount_b_out


def decode_swap_log(log: dict, pool: PoolRef, block_ts: Dict[int, int]) -> Optional[SwapRecord]:
    """
    Swap log → SwapRecord, or None when the log is malformed.

    Direction comes from which "in" leg is non-zero: amountAIn > 0 means
    tokenA went in and tokenB came out, otherwise amountBIn > 0 means the
    reverse. Both zero cannot be a real swap and is dropped.
    """
    try:
        amount_a_in, amount_b_in, amount_a_out, amount_b_out = decode_swap_amounts(log)
    except DecodingError as e:
        logger.warning("Undecodable swap log in %s (tx %s): %s", pool.address, log.get("transactionHash"), e)
        return None

    if amount_a_in > 0:
        token_in, token_out = pool.token_a, pool.token_b
        amount_in, amount_out = amount_a_in, amount_b_out
    elif amount_b_in > 0:
        token_in, token_out = pool.token_b, pool.token_a
        amount_in, amount_out = amount_b_in, amount_a_out
    else:
        logger.debug("Dropping swap with no input leg in %s (tx %s)", pool.address, log.get("transactionHash"))
        return None

    bn = int(log["blockNumber"])
    return SwapRecord(
        tx_hash=_tx_hash(log["transactionHash"]),
        pool_address=pool.address.lower(),
        token_in=token_in.lower(),
        token_out=token_out.lower(),
        amount_in=amount_in,
        amount_out=amount_out,
        block_number=bn,
        log_index=int(log.get("logIndex") or 0),
        timestamp=datetime.fromtimestamp(block_ts[bn], tz=timezone.utc),
    )
