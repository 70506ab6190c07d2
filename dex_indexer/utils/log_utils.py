from web3.datastructures import AttributeDict
from hexbytes import HexBytes
from typing import List, Sequence, TypeVar
import math

T = TypeVar("T")


def sanitize_log(log) -> dict:
    """Convert a Web3 log receipt to a plain dict (bytes → HexBytes, nested AttributeDicts → dict)."""
    out = {}
    for k, v in dict(log).items():
        if isinstance(v, (bytes, bytearray)) and not isinstance(v, HexBytes):
            out[k] = HexBytes(v)
        elif isinstance(v, AttributeDict):
            out[k] = dict(v)
        else:
            out[k] = v
    return out


def chunk(items: Sequence[T], size: int) -> List[List[T]]:
    """Split `items` into consecutive batches of at most `size`."""
    if size <= 0 or len(items) <= size:
        return [list(items)] if items else []
    n_chunks = math.ceil(len(items) / size)
    return [list(items[i * size:(i + 1) * size]) for i in range(n_chunks)]
