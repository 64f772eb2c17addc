import structlog
from arascan.dto import ChainStats
from arascan.exceptions import ArascanError
from arascan.services.stats import StatsUpdater
from asgiref.sync import async_to_sync
from django.core.management.base import BaseCommand, CommandError

from project.core.storage import get_record_store
from project.core.utils import get_ledger

logger = structlog.get_logger()


class Command(BaseCommand):
    help = "Refresh era, session, validator set and finalized height in metadata/stats."

    def handle(self, *args, **options) -> None:
        try:
            stats = async_to_sync(self._refresh)()
        except ArascanError as e:
            logger.exception("Stats update failed", error=str(e))
            raise CommandError(str(e)) from e

        self.stdout.write(f"Era: {stats.era}, session: {stats.session}, validators: {len(stats.validators)}")
        self.stdout.write(self.style.SUCCESS(f"Finalized blocks: {stats.finalized_block_count}"))

    async def _refresh(self) -> ChainStats:
        store = get_record_store()
        try:
            async with get_ledger() as ledger:
                return await StatsUpdater(ledger, store).refresh()
        finally:
            await store.close()
