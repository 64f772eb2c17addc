import asyncio

import structlog

from arascan.dto import HeadNotice
from arascan.providers.protocols import LedgerClient
from arascan.services.correlator import BlockCorrelator
from arascan.services.stats import StatsUpdater

logger = structlog.get_logger()


class RealtimeWatcher:
    """
    Ingests every new head announced by the node, then refreshes chain stats.

    Each head is handled in its own task; overlapping ingestion of the same
    block is serialized by the correlator's block locks.
    """

    def __init__(self, ledger: LedgerClient, correlator: BlockCorrelator, stats: StatsUpdater) -> None:
        self.ledger = ledger
        self.correlator = correlator
        self.stats = stats
        self._tasks: set[asyncio.Task] = set()
        self._subscription: asyncio.Task | None = None

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def run(self) -> None:
        """Subscribe to new heads until the subscription ends or `stop()` is called."""
        self._subscription = asyncio.ensure_future(self.ledger.subscribe_new_heads(self.on_head))
        try:
            await self._subscription
        except asyncio.CancelledError:
            if asyncio.current_task().cancelling():
                raise
            logger.info("Head subscription cancelled")
        finally:
            self._subscription = None

    async def on_head(self, head: HeadNotice) -> None:
        logger.info("Imported block", block_number=head.number)
        task = asyncio.create_task(self.handle_head(head))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def handle_head(self, head: HeadNotice) -> None:
        try:
            block_hash = head.hash or await self.ledger.get_block_hash(head.number)
            if block_hash is None:
                logger.warning("Could not resolve head hash", block_number=head.number)
                return
            await self.correlator.ingest(block_hash)
            await self.stats.refresh()
        except Exception:
            logger.exception("Failed to handle new head", block_number=head.number)

    async def stop(self) -> None:
        """Cancel the subscription and wait for heads already being handled."""
        if self._subscription is not None:
            self._subscription.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
