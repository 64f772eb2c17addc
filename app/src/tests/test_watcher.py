import asyncio
from unittest.mock import MagicMock

import pytest
from arascan.dto import HeadNotice
from arascan.exceptions import LedgerConnectionError
from arascan.services.stats import STATS_ID, StatsUpdater
from arascan.services.watcher import RealtimeWatcher
from arascan.storage import BLOCKS, METADATA, TRANSFERS

from fakes import ALICE, block_hash, transfer_block_parts


@pytest.fixture
def watcher(ledger, store, correlator) -> RealtimeWatcher:
    return RealtimeWatcher(ledger, correlator, StatsUpdater(ledger, store))


@pytest.mark.asyncio
async def test_heads_are_ingested_and_stats_refreshed(ledger, store, watcher):
    extrinsics, events = transfer_block_parts(11)
    ledger.add_chain(1, 10)
    ledger.add_block(11, extrinsics, events)
    ledger.heads = [HeadNotice(number=10, hash=block_hash(10)), HeadNotice(number=11)]

    await watcher.run()
    await watcher.stop()

    assert await store.count(BLOCKS) == 2
    assert await store.find_one(TRANSFERS, {"signer": ALICE, "nonce": 0}) is not None
    stats = await store.find_one(METADATA, {"_id": STATS_ID})
    assert stats["finalized_block_count"] == 11
    assert watcher.pending == 0


@pytest.mark.asyncio
async def test_duplicate_heads_ingest_once(ledger, store, watcher):
    ledger.add_chain(1, 5)
    ledger.heads = [HeadNotice(number=5, hash=block_hash(5))] * 3

    await watcher.run()
    await watcher.stop()

    assert await store.count(BLOCKS) == 1
    assert ledger.fetched.count(block_hash(5)) == 3


@pytest.mark.asyncio
async def test_failed_head_does_not_stop_others(ledger, store, watcher, monkeypatch):
    ledger.add_chain(1, 6)
    ledger.heads = [HeadNotice(number=5, hash=block_hash(5)), HeadNotice(number=6, hash=block_hash(6))]
    original = ledger.get_block

    async def get_block(block_hash_):
        if block_hash_ == block_hash(5):
            raise LedgerConnectionError("ws://node", OSError("connection reset"))
        return await original(block_hash_)

    monkeypatch.setattr(ledger, "get_block", get_block)

    await watcher.run()
    await watcher.stop()

    assert await store.find_one(BLOCKS, {"_id": 5}) is None
    assert await store.find_one(BLOCKS, {"_id": 6}) is not None


@pytest.mark.asyncio
async def test_unknown_head_hash_is_skipped(ledger, store, watcher):
    ledger.heads = [HeadNotice(number=99)]

    await watcher.run()
    await watcher.stop()

    assert await store.count(BLOCKS) == 0


@pytest.mark.asyncio
async def test_stop_cancels_subscription(ledger, store, correlator):
    class EndlessLedger(type(ledger)):
        async def subscribe_new_heads(self, on_head) -> None:
            await asyncio.Event().wait()

    endless = EndlessLedger()
    watcher = RealtimeWatcher(endless, correlator, StatsUpdater(endless, store))

    task = asyncio.create_task(watcher.run())
    await asyncio.sleep(0)
    await watcher.stop()
    await task

    assert task.done()
    assert not task.cancelled()


@pytest.mark.asyncio
async def test_unexpected_head_failure_is_logged(ledger, store, watcher, monkeypatch):
    ledger.add_chain(1, 6)
    ledger.heads = [HeadNotice(number=5, hash=block_hash(5)), HeadNotice(number=6, hash=block_hash(6))]
    original = ledger.get_block

    async def get_block(block_hash_):
        if block_hash_ == block_hash(5):
            raise KeyError("header")
        return await original(block_hash_)

    monkeypatch.setattr(ledger, "get_block", get_block)
    logger = MagicMock()
    monkeypatch.setattr("arascan.services.watcher.logger", logger)

    await watcher.run()
    handled = list(watcher._tasks)
    await watcher.stop()

    logger.exception.assert_called_once_with("Failed to handle new head", block_number=5)
    assert all(task.exception() is None for task in handled)
    assert await store.find_one(BLOCKS, {"_id": 6}) is not None
