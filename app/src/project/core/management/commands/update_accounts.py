import structlog
from arascan.exceptions import ArascanError
from arascan.services.reconciler import AccountReconciler, ReconcileCounter
from asgiref.sync import async_to_sync
from django.conf import settings
from django.core.management.base import BaseCommand, CommandError

from project.core.storage import get_record_store
from project.core.utils import get_ledger

logger = structlog.get_logger()


class Command(BaseCommand):
    help = "Re-query balance (and identity, where one is recorded) of every indexed account."

    def add_arguments(self, parser) -> None:
        parser.add_argument(
            "--concurrency",
            type=int,
            default=settings.RECONCILE_CONCURRENCY,
            help=f"Accounts refreshed in parallel (default: {settings.RECONCILE_CONCURRENCY})",
        )

    def handle(self, *args, **options) -> None:
        try:
            counter = async_to_sync(self._reconcile)(options["concurrency"])
        except KeyboardInterrupt:
            logger.info("quitting")
            self.stdout.write(self.style.WARNING("\nInterrupted by user"))
            return
        except ArascanError as e:
            logger.exception("Account update stopped", error=str(e))
            raise CommandError(str(e)) from e

        self.stdout.write(self.style.SUCCESS(f"Completed: {counter.processed} accounts updated, {counter.failed} errors"))

    async def _reconcile(self, concurrency: int) -> ReconcileCounter:
        store = get_record_store()
        try:
            async with get_ledger() as ledger:
                reconciler = AccountReconciler(
                    ledger,
                    store,
                    concurrency=concurrency,
                    page_size=settings.RECONCILE_PAGE_SIZE,
                )
                return await reconciler.reconcile_all()
        finally:
            await store.close()
