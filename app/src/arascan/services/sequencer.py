"""Backfill sequencer walking the chain backward from a starting block."""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import structlog

from arascan.dto import BlockHeader, IngestOutcome
from arascan.providers.protocols import LedgerClient
from arascan.services.correlator import BlockCorrelator
from arascan.services.cursor import get_last_block
from arascan.storage.protocols import RecordStore

logger = structlog.get_logger()

MAX_SKIP_BLOCKS = 50


@dataclass
class SequenceCounter:
    processed: int = 0
    # Consecutive skips only, reset by every processed block.
    skipped: int = 0
    total_skipped: int = 0

    def record(self, outcome: IngestOutcome) -> None:
        if outcome.skipped:
            self.skipped += 1
            self.total_skipped += 1
        else:
            self.processed += 1
            self.skipped = 0


@dataclass(frozen=True)
class BackfillPlan:
    start_hash: str
    until_block_number: int


CompletionCallback = Callable[[BlockHeader, SequenceCounter], Awaitable[None]]


async def plan_backfill(
    ledger: LedgerClient,
    store: RecordStore,
    *,
    starting_block: int | None = None,
    ignore_cursor: bool = False,
) -> BackfillPlan:
    """
    Resolve where a backfill starts and where it may stop.

    Args:
        ledger: Ledger client used to resolve the starting hash
        store: Record store holding the cursor
        starting_block: Block number to start from, defaults to the chain head
        ignore_cursor: Walk down to block 1 regardless of the stored cursor

    Returns:
        BackfillPlan with the starting hash and the lowest block number to walk past

    Raises:
        ValueError: If `starting_block` does not exist on chain.

    """
    if starting_block is not None:
        start_hash = await ledger.get_block_hash(starting_block)
        if start_hash is None:
            raise ValueError(f"Block {starting_block} not found on chain")
    else:
        start_hash = (await ledger.get_header()).hash

    until = 0
    if not ignore_cursor:
        cursor = await get_last_block(store)
        if cursor is not None:
            until = cursor.number

    logger.info("Backfill planned", starting_block=starting_block, until_block_number=until)
    return BackfillPlan(start_hash=start_hash, until_block_number=until)


class BackfillSequencer:
    """Ingests blocks one at a time, following parent hashes down the chain."""

    def __init__(
        self,
        correlator: BlockCorrelator,
        *,
        max_skip: int = MAX_SKIP_BLOCKS,
        no_skip_limit: bool = False,
    ) -> None:
        self.correlator = correlator
        self.max_skip = max_skip
        self.no_skip_limit = no_skip_limit

    def should_continue(self, block_number: int, until_block_number: int, counter: SequenceCounter) -> bool:
        if block_number <= 1:
            return False
        if self.no_skip_limit:
            return True
        return block_number > 2 and block_number > until_block_number and counter.skipped <= self.max_skip

    async def run(
        self,
        start_hash: str,
        until_block_number: int = 0,
        on_complete: CompletionCallback | None = None,
    ) -> SequenceCounter:
        """
        Walk backward from `start_hash`.

        The walk stops once it passes `until_block_number`, after more than
        `max_skip` consecutive already-stored blocks (unless `no_skip_limit`),
        or at block 1. `on_complete` is only called when the walk ends that
        way; an error propagates without calling it.

        Args:
            start_hash: Hash of the first (highest) block to ingest
            until_block_number: Block number of the previous run's starting block
            on_complete: Called with the starting block header, typically to persist the cursor

        Returns:
            SequenceCounter of the walk

        """
        counter = SequenceCounter()
        start_header: BlockHeader | None = None
        block_hash = start_hash

        while True:
            outcome = await self.correlator.ingest(block_hash)
            header = outcome.header
            if start_header is None:
                start_header = header
            counter.record(outcome)

            if not self.should_continue(header.number, until_block_number, counter):
                break
            block_hash = header.parent_hash
            await asyncio.sleep(0)

        logger.info(
            "Backfill finished",
            start_block=start_header.number,
            last_block=header.number,
            processed=counter.processed,
            skipped=counter.total_skipped,
        )
        if on_complete is not None:
            await on_complete(start_header, counter)
        return counter
