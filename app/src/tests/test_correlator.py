import pytest
from arascan.dto import AccountState, CallMeta, OutcomeStatus
from arascan.exceptions import BlockCommitError, RecordStoreError, StoreConnectionError
from arascan.services.correlator import BlockCorrelator
from arascan.storage import ACCOUNTS, BLOCKS, EVENTS, STAKING_TXS, TRANSFERS, InMemoryRecordStore

from fakes import (
    ALICE,
    BOB,
    CHARLIE,
    block_hash,
    call_extrinsic,
    chain_event,
    timestamp_extrinsic,
    transfer_block_parts,
    transfer_extrinsic,
)

NOW = 1_600_000_000_000


class FlakyStore(InMemoryRecordStore):
    """Fails the first `failures` writes to one collection."""

    def __init__(self, collection: str, failures: int = 1, error: type[RecordStoreError] = RecordStoreError) -> None:
        super().__init__()
        self.failing = collection
        self.failures = failures
        self.error = error

    async def upsert(self, collection, filter, patch):
        if collection == self.failing and self.failures > 0:
            self.failures -= 1
            raise self.error(f"{collection} is unavailable")
        return await super().upsert(collection, filter, patch)


async def _snapshot(store: InMemoryRecordStore) -> dict:
    return {name: await store.scan(name) for name in (BLOCKS, EVENTS, TRANSFERS, ACCOUNTS, STAKING_TXS)}


# ── ingest() ───────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_ingest_transfer_block(ledger, store, correlator):
    extrinsics, events = transfer_block_parts(10, now=NOW)
    ledger.add_block(10, extrinsics, events)

    outcome = await correlator.ingest(block_hash(10))

    assert outcome.status is OutcomeStatus.PROCESSED
    assert outcome.header.number == 10

    block = await store.find_one(BLOCKS, {"_id": 10})
    assert block["block_hash"] == block_hash(10)
    assert block["block_parent_hash"] == block_hash(9)
    assert len(block["extrinsics"]) == 2

    transfer = await store.find_one(TRANSFERS, {"signer": ALICE, "nonce": 0})
    assert transfer["src"] == ALICE
    assert transfer["dst"] == BOB
    assert transfer["amount"] == str(10**12)
    assert transfer["block"] == 10
    assert transfer["extrinsic_index"] == 1
    assert transfer["ts"] == NOW


@pytest.mark.asyncio
async def test_ingest_skips_success_events(ledger, store, correlator):
    extrinsics, events = transfer_block_parts(10)
    ledger.add_block(10, extrinsics, events)

    await correlator.ingest(block_hash(10))

    stored = await store.scan(EVENTS, sort=[("method", 1)])
    assert [(e["section"], e["method"]) for e in stored] == [("balances", "Transfer"), ("balances", "Withdraw")]
    assert all(e["block"] == 10 and e["extrinsic_index"] == 1 for e in stored)


@pytest.mark.asyncio
async def test_ingest_refreshes_transfer_accounts(ledger, store, correlator):
    ledger.accounts[ALICE] = AccountState(balance={"free": "90", "reserved": "0"})
    ledger.accounts[BOB] = AccountState(balance={"free": "10", "reserved": "0"})
    extrinsics, events = transfer_block_parts(10)
    ledger.add_block(10, extrinsics, events)

    await correlator.ingest(block_hash(10))

    assert (await store.find_one(ACCOUNTS, {"_id": ALICE}))["balance"] == {"free": "90", "reserved": "0"}
    assert (await store.find_one(ACCOUNTS, {"_id": BOB}))["balance"] == {"free": "10", "reserved": "0"}
    assert (ALICE, False) in ledger.account_queries
    assert (BOB, False) in ledger.account_queries


@pytest.mark.asyncio
async def test_ingest_is_idempotent(ledger, store, correlator):
    extrinsics, events = transfer_block_parts(10)
    ledger.add_block(10, extrinsics, events)

    await correlator.ingest(block_hash(10))
    before = await _snapshot(store)
    queries = len(ledger.account_queries)

    outcome = await correlator.ingest(block_hash(10))

    assert outcome.status is OutcomeStatus.SKIPPED
    assert outcome.skipped
    assert await _snapshot(store) == before
    assert len(ledger.account_queries) == queries


@pytest.mark.asyncio
async def test_transfer_dedup_across_runs(ledger, store, correlator):
    ledger.add_block(10, [timestamp_extrinsic(0, NOW), transfer_extrinsic(1, ALICE, 7, BOB, 100)])
    ledger.add_block(20, [timestamp_extrinsic(0, NOW + 60_000), transfer_extrinsic(1, ALICE, 7, CHARLIE, 250)])

    await correlator.ingest(block_hash(10))
    await correlator.ingest(block_hash(20))

    assert await store.count(TRANSFERS) == 1
    transfer = await store.find_one(TRANSFERS, {"signer": ALICE, "nonce": 7})
    assert transfer["dst"] == CHARLIE
    assert transfer["amount"] == "250"
    assert transfer["ts"] == NOW + 60_000


@pytest.mark.asyncio
async def test_unchanged_timestamped_transfer_is_not_correlated(ledger, store, correlator):
    extrinsic = transfer_extrinsic(1, ALICE, 3, BOB, 100)
    ledger.add_block(10, [timestamp_extrinsic(0, NOW), extrinsic])
    await correlator.ingest(block_hash(10))

    # Row identical to what block 11 carries, already timestamped.
    await store.upsert(
        TRANSFERS,
        {"signer": ALICE, "nonce": 4},
        {"src": ALICE, "dst": BOB, "amount": "5", "block": 11, "extrinsic_index": 1, "ts": 1},
    )
    ledger.add_block(
        11,
        [timestamp_extrinsic(0, NOW + 6000), transfer_extrinsic(1, ALICE, 4, BOB, 5)],
        [chain_event(0, 1, "balances", "Transfer", ALICE, BOB, 5)],
    )
    queries = len(ledger.account_queries)

    await correlator.ingest(block_hash(11))

    transfer = await store.find_one(TRANSFERS, {"signer": ALICE, "nonce": 4})
    assert transfer["ts"] == 1
    assert len(ledger.account_queries) == queries
    # The event row is still recorded, only correlation is skipped.
    assert await store.count(EVENTS, {"block": 11}) == 1


@pytest.mark.asyncio
async def test_untimestamped_transfer_is_correlated_again(ledger, store, correlator):
    await store.upsert(
        TRANSFERS,
        {"signer": ALICE, "nonce": 4},
        {"src": ALICE, "dst": BOB, "amount": "5", "block": 11, "extrinsic_index": 1},
    )
    ledger.add_block(11, [timestamp_extrinsic(0, NOW), transfer_extrinsic(1, ALICE, 4, BOB, 5)])

    await correlator.ingest(block_hash(11))

    assert (await store.find_one(TRANSFERS, {"signer": ALICE, "nonce": 4}))["ts"] == NOW


@pytest.mark.asyncio
async def test_force_transfer_uses_source(ledger, store, correlator):
    sudo = transfer_extrinsic(1, CHARLIE, 0, BOB, 42, call_index="0x0502", source=ALICE)
    ledger.add_block(10, [timestamp_extrinsic(0, NOW), sudo])

    await correlator.ingest(block_hash(10))

    transfer = await store.find_one(TRANSFERS, {"signer": CHARLIE, "nonce": 0})
    assert transfer["src"] == ALICE
    assert transfer["dst"] == BOB
    assert transfer["ts"] == NOW


@pytest.mark.asyncio
async def test_block_without_updater_skips_correlation(ledger, store, correlator):
    ledger.add_block(10, [transfer_extrinsic(0, ALICE, 0, BOB, 100)], [chain_event(0, 0, "balances", "Transfer", ALICE, BOB, 100)])

    outcome = await correlator.ingest(block_hash(10))

    assert outcome.status is OutcomeStatus.PROCESSED
    assert (await store.find_one(TRANSFERS, {"signer": ALICE, "nonce": 0})).get("ts") is None
    assert ledger.account_queries == []


@pytest.mark.asyncio
async def test_undecodable_extrinsic_does_not_abort_block(ledger, store, correlator):
    ledger.add_block(
        10,
        [timestamp_extrinsic(0, NOW), call_extrinsic(1, "0xffff", ALICE, 0), transfer_extrinsic(2, ALICE, 1, BOB, 9)],
    )

    outcome = await correlator.ingest(block_hash(10))

    assert outcome.status is OutcomeStatus.PROCESSED
    assert (await store.find_one(TRANSFERS, {"signer": ALICE, "nonce": 1}))["ts"] == NOW


@pytest.mark.asyncio
async def test_block_decoded_call_wins_over_index_lookup(ledger, store, correlator):
    # 0x0500 decodes to balances.transfer today, this block's runtime used it for remark.
    remark = call_extrinsic(1, "0x0500", ALICE, 4).model_copy(update={"call": CallMeta(section="remark", method="remark")})
    ledger.add_block(10, [timestamp_extrinsic(0, NOW), remark])

    outcome = await correlator.ingest(block_hash(10))

    assert outcome.status is OutcomeStatus.PROCESSED
    assert await store.count(TRANSFERS) == 0


@pytest.mark.asyncio
async def test_new_account_event(ledger, store, correlator):
    ledger.accounts[CHARLIE] = AccountState(balance={"free": "500", "reserved": "0"})
    ledger.add_block(
        10,
        [timestamp_extrinsic(0, NOW), transfer_extrinsic(1, ALICE, 0, CHARLIE, 500)],
        [
            chain_event(0, 1, "system", "NewAccount", CHARLIE),
            chain_event(1, 1, "balances", "Endowed", CHARLIE, 500),
            chain_event(2, 1, "balances", "Transfer", ALICE, CHARLIE, 500),
        ],
    )

    await correlator.ingest(block_hash(10))

    account = await store.find_one(ACCOUNTS, {"_id": CHARLIE})
    assert account["balance"] == {"free": "500", "reserved": "0"}
    assert account["created_at_block"] == 10
    assert account["created_ts"] == NOW


@pytest.mark.asyncio
async def test_identity_events_refresh_identity(ledger, store, correlator):
    identity = {"display": "Alice", "legal": "", "web": "", "riot": "", "email": "", "twitter": "", "judgements": []}
    ledger.accounts[ALICE] = AccountState(balance={"free": "1"}, identity=identity)
    ledger.add_block(
        10,
        [timestamp_extrinsic(0, NOW), call_extrinsic(1, "0x1101", ALICE, 0, info={"display": {"Raw": "Alice"}})],
        [chain_event(0, 1, "identity", "IdentitySet", ALICE)],
    )

    await correlator.ingest(block_hash(10))

    assert (await store.find_one(ACCOUNTS, {"_id": ALICE}))["identity"] == identity
    assert (ALICE, True) in ledger.account_queries


@pytest.mark.asyncio
async def test_identity_cleared_clears_identity(ledger, store, correlator):
    await store.upsert(ACCOUNTS, {"_id": ALICE}, {"balance": {"free": "1"}, "identity": {"display": "Alice"}})
    ledger.add_block(
        10,
        [timestamp_extrinsic(0, NOW), call_extrinsic(1, "0x1103", ALICE, 1)],
        [chain_event(0, 1, "identity", "IdentityCleared", ALICE, 1000)],
    )

    await correlator.ingest(block_hash(10))

    assert (await store.find_one(ACCOUNTS, {"_id": ALICE}))["identity"] is None


@pytest.mark.asyncio
async def test_staking_events_are_recorded_and_timestamped(ledger, store, correlator):
    ledger.add_block(
        10,
        [timestamp_extrinsic(0, NOW), call_extrinsic(1, "0x0600", ALICE, 2, value=1000)],
        [
            chain_event(0, 1, "staking", "Bonded", ALICE, 1000),
            chain_event(1, 1, "staking", "StakersElected"),
        ],
    )

    await correlator.ingest(block_hash(10))

    rows = await store.scan(STAKING_TXS)
    assert len(rows) == 1
    assert rows[0]["stash"] == ALICE
    assert rows[0]["kind"] == "Bonded"
    assert rows[0]["amount"] == "1000"
    assert rows[0]["block"] == 10
    assert rows[0]["extrinsic_index"] == 1
    assert rows[0]["event_index"] == 0
    assert rows[0]["ts"] == NOW


@pytest.mark.asyncio
async def test_ignored_and_unclassified_extrinsics_only_store_events(ledger, store, correlator):
    ledger.add_block(
        10,
        [timestamp_extrinsic(0, NOW), call_extrinsic(1, "0x1400", None), call_extrinsic(2, "0x2000", ALICE, 0)],
        [chain_event(0, 2, "system", "Remarked", ALICE, "0x00")],
    )

    outcome = await correlator.ingest(block_hash(10))

    assert outcome.status is OutcomeStatus.PROCESSED
    assert await store.count(EVENTS) == 1
    assert await store.count(TRANSFERS) == 0
    assert await store.count(ACCOUNTS) == 0


# ── failures ───────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_block_commit_failure_is_raised(ledger):
    store = FlakyStore(BLOCKS)
    correlator = BlockCorrelator(ledger, store)
    extrinsics, events = transfer_block_parts(10)
    ledger.add_block(10, extrinsics, events)

    with pytest.raises(BlockCommitError) as exc_info:
        await correlator.ingest(block_hash(10))

    assert exc_info.value.block_number == 10
    assert await store.find_one(BLOCKS, {"_id": 10}) is None


@pytest.mark.asyncio
async def test_event_dedup_on_reingest_after_failed_commit(ledger):
    store = FlakyStore(BLOCKS)
    correlator = BlockCorrelator(ledger, store)
    extrinsics, events = transfer_block_parts(10)
    ledger.add_block(10, extrinsics, events)

    with pytest.raises(BlockCommitError):
        await correlator.ingest(block_hash(10))
    events_after_first_attempt = await store.count(EVENTS)

    outcome = await correlator.ingest(block_hash(10))

    assert outcome.status is OutcomeStatus.PROCESSED
    assert await store.count(EVENTS) == events_after_first_attempt == 2
    assert await store.count(TRANSFERS) == 1


@pytest.mark.asyncio
async def test_derived_write_failure_is_logged_and_block_commits(ledger):
    store = FlakyStore(TRANSFERS)
    correlator = BlockCorrelator(ledger, store)
    extrinsics, events = transfer_block_parts(10)
    ledger.add_block(10, extrinsics, events)

    outcome = await correlator.ingest(block_hash(10))

    assert outcome.status is OutcomeStatus.PROCESSED
    assert await store.count(TRANSFERS) == 0
    assert await store.find_one(BLOCKS, {"_id": 10}) is not None


@pytest.mark.asyncio
async def test_store_connection_error_propagates(ledger):
    store = FlakyStore(EVENTS, error=StoreConnectionError)
    correlator = BlockCorrelator(ledger, store)
    extrinsics, events = transfer_block_parts(10)
    ledger.add_block(10, extrinsics, events)

    with pytest.raises(StoreConnectionError):
        await correlator.ingest(block_hash(10))

    assert await store.find_one(BLOCKS, {"_id": 10}) is None
    assert len(correlator.locks) == 0
