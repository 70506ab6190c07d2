from typing import List
import logging

import backoff
from web3 import Web3
from web3.types import LogReceipt

from dex_indexer.utils.log_utils import sanitize_log

logger = logging.getLogger(__name__)


@backoff.on_exception(backoff.expo, Exception, max_tries=3)
def fetch_logs(
    w3: Web3,
    address: str,
    from_block: int,
    to_block: int,
    topics: List[str]
) -> List[dict]:
    """Generic log fetcher for a given address and topics over a block range.

    Errors propagate after the retries are spent: an empty list here would
    look like "no swaps" and the cursor would move past them.
    """
    logs: List[LogReceipt] = w3.eth.get_logs({
        "fromBlock": from_block,
        "toBlock": to_block,
        "address": Web3.to_checksum_address(address),
        "topics": topics,
    })
    logger.debug("Fetched %d logs for %s in blocks %d-%d", len(logs), address, from_block, to_block)
    return [sanitize_log(log) for log in logs]
