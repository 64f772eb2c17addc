import pytest
from arascan.dto import ChainStats, StakingSnapshot
from arascan.services.stats import STATS_ID, StatsUpdater
from arascan.storage import METADATA

from fakes import ALICE, BOB


@pytest.mark.asyncio
async def test_refresh_writes_stats(ledger, store):
    ledger.add_chain(1, 30)

    stats = await StatsUpdater(ledger, store).refresh()

    assert stats == ChainStats(era=12, session=345, validators=[ALICE, BOB], finalized_block_count=30)
    assert await store.find_one(METADATA, {"_id": STATS_ID}) == {
        "_id": STATS_ID,
        "era": 12,
        "session": 345,
        "validators": [ALICE, BOB],
        "finalized_block_count": 30,
    }


@pytest.mark.asyncio
async def test_refresh_overwrites_singleton(ledger, store):
    ledger.add_chain(1, 30)
    updater = StatsUpdater(ledger, store)
    await updater.refresh()

    ledger.add_chain(31, 40)
    ledger.snapshot = StakingSnapshot(era=13, session=350, validators=[BOB])
    await updater.refresh()

    assert await store.count(METADATA) == 1
    stored = await store.find_one(METADATA, {"_id": STATS_ID})
    assert stored["era"] == 13
    assert stored["validators"] == [BOB]
    assert stored["finalized_block_count"] == 40
