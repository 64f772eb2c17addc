import structlog

from arascan.dto import ChainStats
from arascan.providers.protocols import LedgerClient
from arascan.storage.protocols import METADATA, RecordStore

logger = structlog.get_logger()

STATS_ID = "stats"


class StatsUpdater:
    """Maintains the `metadata/stats` singleton."""

    def __init__(self, ledger: LedgerClient, store: RecordStore) -> None:
        self.ledger = ledger
        self.store = store

    async def refresh(self) -> ChainStats:
        """
        Query era, session, validator set and finalized height, and overwrite the stored stats.

        Returns:
            The stats that were written

        """
        snapshot = await self.ledger.query_staking_snapshot()
        finalized = await self.ledger.get_finalized_header()
        stats = ChainStats(
            era=snapshot.era,
            session=snapshot.session,
            validators=snapshot.validators,
            finalized_block_count=finalized.number,
        )
        await self.store.upsert(METADATA, {"_id": STATS_ID}, stats.model_dump())
        logger.debug("Stats updated", era=stats.era, session=stats.session, finalized=stats.finalized_block_count)
        return stats
