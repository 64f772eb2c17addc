import structlog
from arascan.exceptions import LedgerConnectionError
from arascan.services.stats import StatsUpdater
from arascan.services.watcher import RealtimeWatcher
from asgiref.sync import async_to_sync
from django.conf import settings
from django.core.management.base import BaseCommand, CommandError

from project.core.storage import get_record_store
from project.core.utils import get_correlator, get_ledger

logger = structlog.get_logger()


class Command(BaseCommand):
    help = "Follow new chain heads, ingesting each block and refreshing chain stats."

    def handle(self, *args, **options) -> None:
        self.stdout.write(f"Subscribing to new heads on {settings.SUBSTRATE_URL}...")
        self.stdout.write("Press Ctrl+C to stop...")
        try:
            async_to_sync(self._watch)()
        except KeyboardInterrupt:
            logger.info("quitting")
            self.stdout.write(self.style.WARNING("\nInterrupted by user"))
        except LedgerConnectionError as e:
            logger.exception("Head subscription failed", uri=e.uri)
            raise CommandError(str(e)) from e

    async def _watch(self) -> None:
        store = get_record_store()
        try:
            async with get_ledger() as ledger:
                watcher = RealtimeWatcher(ledger, get_correlator(ledger, store), StatsUpdater(ledger, store))
                try:
                    await watcher.run()
                finally:
                    await watcher.stop()
        finally:
            await store.close()
