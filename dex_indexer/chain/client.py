from web3 import Web3, HTTPProvider
import backoff
import logging
from typing import Dict, Tuple

logger = logging.getLogger(__name__)

# Cache of Web3 clients per (RPC URL, timeout)
_web3_clients: Dict[Tuple[str, float], Web3] = {}


@backoff.on_exception(backoff.expo, Exception, max_tries=5, jitter=None)
def _create_web3_client(rpc_url: str, timeout: float) -> Web3:
    logger.info("Connecting to RPC: %s", rpc_url)
    w3 = Web3(HTTPProvider(rpc_url, request_kwargs={"timeout": timeout}))

    if not w3.is_connected():
        raise ConnectionError(f"Failed to connect to RPC: {rpc_url}")

    logger.info("Connected to %s", rpc_url)
    return w3


def get_web3_client(rpc_url: str, timeout: float = 10) -> Web3:
    """Returns a cached or newly created Web3 client for a given RPC URL.

    Every request made through the client carries `timeout` seconds, so one
    unresponsive endpoint fails the call instead of stalling the loop.
    """
    key = (rpc_url, timeout)
    if key not in _web3_clients:
        _web3_clients[key] = _create_web3_client(rpc_url, timeout)
    return _web3_clients[key]
