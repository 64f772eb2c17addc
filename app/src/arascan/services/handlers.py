"""
Default indexing rules.

Event handlers run during the block scan, once per event. Correlation
handlers run after the scan, once per (source, updater) pair, and receive the
block's timestamp through `Correlation.updater.value`.
"""

import structlog

from arascan.dto import BlockHeader, CallMeta, ChainEvent
from arascan.providers.ledger import address_of
from arascan.services.accounts import update_account
from arascan.services.dispatch import Correlation, DispatchTable, DispatchTableBuilder, IngestionContext
from arascan.storage.protocols import ACCOUNTS, STAKING_TXS, TRANSFERS

logger = structlog.get_logger()

TIMESTAMP_SET = CallMeta(section="timestamp", method="set")
TRANSFER_CALLS = ("transfer", "transferKeepAlive", "forceTransfer")
STAKING_KINDS = ("Bonded", "Unbonded", "Withdrawn", "Rewarded", "Reward", "Slashed", "Slash")


def _staking_key(header: BlockHeader, event: ChainEvent) -> dict:
    return {
        "stash": address_of(event.data[0]),
        "block": header.number,
        "extrinsic_index": event.phase_index,
        "event_index": event.index,
    }


async def record_new_account(ctx: IngestionContext, header: BlockHeader, event: ChainEvent) -> None:
    address = address_of(event.data[0]) if event.data else None
    if address is None:
        logger.warning("NewAccount event without an address", block_number=header.number, event_index=event.index)
        return
    state = await ctx.ledger.query_account_state(address)
    await ctx.store.upsert(ACCOUNTS, {"_id": address}, {"balance": state.balance, "created_at_block": header.number})
    logger.info("New account", address=address, block_number=header.number)


async def record_staking_event(ctx: IngestionContext, header: BlockHeader, event: ChainEvent) -> None:
    if event.method not in STAKING_KINDS or not event.data:
        return
    # The amount is the last argument in every staking event shape (Rewarded has a destination in between).
    await ctx.store.upsert(STAKING_TXS, _staking_key(header, event), {"kind": event.method, "amount": str(event.data[-1])})


async def stamp_transfer(ctx: IngestionContext, correlation: Correlation) -> None:
    target = correlation.target
    if target is None or not target.record:
        return
    await ctx.store.upsert(TRANSFERS, dict(target.record), {"ts": correlation.updater.value})


async def stamp_account_creation(ctx: IngestionContext, correlation: Correlation) -> None:
    address = address_of(correlation.event.data[0]) if correlation.event.data else None
    if address is None:
        return
    await ctx.store.upsert(ACCOUNTS, {"_id": address}, {"created_ts": correlation.updater.value})


async def refresh_transfer_accounts(ctx: IngestionContext, correlation: Correlation) -> None:
    for value in correlation.event.data[:2]:
        address = address_of(value)
        if address is not None:
            await update_account(ctx.ledger, ctx.store, address)


async def refresh_identity(ctx: IngestionContext, correlation: Correlation) -> None:
    address = address_of(correlation.event.data[0]) if correlation.event.data else None
    if address is None:
        return
    await update_account(ctx.ledger, ctx.store, address, with_identity=True)


async def stamp_staking_tx(ctx: IngestionContext, correlation: Correlation) -> None:
    if not correlation.event.data:
        return
    await ctx.store.upsert(STAKING_TXS, _staking_key(correlation.header, correlation.event), {"ts": correlation.updater.value})


def default_dispatch() -> DispatchTable:
    """Build the dispatch table of the default indexing rules."""
    builder = DispatchTableBuilder()

    builder.on_event("system", "NewAccount")(record_new_account)
    builder.on_event("staking")(record_staking_event)

    for method in TRANSFER_CALLS:
        builder.on_correlation("balances", method, TIMESTAMP_SET)(stamp_transfer)
    builder.on_correlation("system", "NewAccount", TIMESTAMP_SET)(stamp_account_creation)
    builder.on_correlation("balances", "Transfer")(refresh_transfer_accounts)
    for method in ("IdentitySet", "IdentityCleared", "IdentityKilled"):
        builder.on_correlation("identity", method)(refresh_identity)
    for kind in STAKING_KINDS:
        builder.on_correlation("staking", kind, TIMESTAMP_SET)(stamp_staking_tx)

    return builder.build()
