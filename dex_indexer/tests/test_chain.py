import time
from unittest.mock import MagicMock

import pytest
from hexbytes import HexBytes
from web3.datastructures import AttributeDict

from dex_indexer.chain.blocks import BlockClient
from dex_indexer.utils.errors import BlockTimestampError
from dex_indexer.utils.log_utils import chunk, sanitize_log


@pytest.fixture
def no_sleep(monkeypatch):
    monkeypatch.setattr(time, "sleep", lambda _s: None)


def fake_w3(timestamps):
    w3 = MagicMock()
    w3.eth.block_number = max(timestamps)

    def get_block(number, full_transactions=False):
        if number not in timestamps:
            raise ValueError(f"block {number} not found")
        return {"number": number, "timestamp": timestamps[number]}

    w3.eth.get_block.side_effect = get_block
    return w3


def test_walk_block_ranges_is_inclusive():
    assert list(BlockClient.walk_block_ranges(1, 5, step=2)) == [(1, 2), (3, 4), (5, 5)]
    assert list(BlockClient.walk_block_ranges(7, 7)) == [(7, 7)]
    assert list(BlockClient.walk_block_ranges(8, 7)) == []


def test_timestamps_read_once_per_block():
    w3 = fake_w3({10: 1000, 11: 1002})
    blocks = BlockClient(w3)

    assert blocks.get_block_timestamps([11, 10, 11]) == {10: 1000, 11: 1002}
    assert blocks.get_block_timestamps([10]) == {10: 1000}
    assert w3.eth.get_block.call_count == 2
    assert blocks.get_latest_block() == 11


def test_unresolvable_block_raises(no_sleep):
    blocks = BlockClient(fake_w3({10: 1000}))
    with pytest.raises(BlockTimestampError):
        blocks.get_block_timestamps([10, 99])


def test_batch_failure_falls_back_to_single_reads(monkeypatch):
    import requests

    def boom(*_args, **_kwargs):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(requests, "post", boom)
    blocks = BlockClient(fake_w3({5: 50, 6: 52}), rpc_url="http://localhost:8545")
    assert blocks.get_block_timestamps([5, 6]) == {5: 50, 6: 52}


def test_sanitize_log():
    raw = AttributeDict({
        "data": b"\x01\x02",
        "args": AttributeDict({"x": 1}),
        "blockNumber": 3,
    })
    clean = sanitize_log(raw)
    assert isinstance(clean["data"], HexBytes)
    assert clean["args"] == {"x": 1}
    assert clean["blockNumber"] == 3


def test_chunk():
    assert chunk([1, 2, 3, 4, 5], 2) == [[1, 2], [3, 4], [5]]
    assert chunk([1], 200) == [[1]]
    assert chunk([], 200) == []
